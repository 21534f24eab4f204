from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from threadfolio.core.config import settings


def create_access_token(subject: str, *, email: str | None = None, name: str | None = None) -> str:
    """Mint an identity token the way the identity provider does. Used by tests and local tooling."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode: dict = {"sub": str(subject), "exp": expire, "type": "access"}
    if email:
        to_encode["email"] = email
    if name:
        to_encode["name"] = name
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict | None:
    """Returns the verified claims, or None when the token is invalid, expired or not an access token."""
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
    except JWTError:
        return None
    if payload.get("type", "access") != "access":
        return None
    if not payload.get("sub"):
        return None
    return payload
