from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from threadfolio.core.db import get_session
from threadfolio.core.security import decode_access_token
from threadfolio.models.user import User
from threadfolio.services.exceptions import UnauthorizedError
from threadfolio.services.shop_service import get_or_create_user

security = HTTPBearer(auto_error=False)


async def resolve_user_from_token(session: AsyncSession, token: str | None) -> User:
    """Verify an identity-provider token and map its subject to a local user."""
    if not token:
        raise UnauthorizedError("Missing or invalid authorization header")
    claims = decode_access_token(token)
    if not claims:
        raise UnauthorizedError("Invalid or expired token")
    return await get_or_create_user(
        session,
        external_id=str(claims["sub"]),
        email=claims.get("email"),
        full_name=claims.get("name"),
    )


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Missing or invalid authorization header")
    return await resolve_user_from_token(session, credentials.credentials)
