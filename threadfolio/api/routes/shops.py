from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from threadfolio.api.deps import get_current_user, get_session
from threadfolio.models.client import Client, ClientCreate
from threadfolio.models.shop import (
    CalendarSettingsPublic,
    CalendarSettingsUpdate,
    ShopCreate,
    ShopHoursEntry,
    ShopPublic,
)
from threadfolio.models.user import User
from threadfolio.services.shop_service import (
    create_client,
    create_shop,
    get_calendar_settings,
    get_owned_shop,
    get_shop_hours,
    list_shops_for_user,
    replace_shop_hours,
    update_calendar_settings,
)

router = APIRouter(prefix="/shops", tags=["shops"])


@router.post("", response_model=ShopPublic, status_code=status.HTTP_201_CREATED)
async def open_shop(
    body: ShopCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ShopPublic:
    shop = await create_shop(session, current_user, body.name)
    return ShopPublic(id=shop.id, name=shop.name, owner_user_id=shop.owner_user_id)


@router.get("", response_model=list[ShopPublic])
async def list_my_shops(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ShopPublic]:
    shops = await list_shops_for_user(session, current_user)
    return [ShopPublic(id=s.id, name=s.name, owner_user_id=s.owner_user_id) for s in shops]


@router.get("/{shop_id}/hours", response_model=list[ShopHoursEntry])
async def read_shop_hours(
    shop_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ShopHoursEntry]:
    shop = await get_owned_shop(session, current_user, shop_id)
    return await get_shop_hours(session, shop.id)


@router.put("/{shop_id}/hours", response_model=list[ShopHoursEntry])
async def write_shop_hours(
    shop_id: str,
    body: list[ShopHoursEntry],
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ShopHoursEntry]:
    shop = await get_owned_shop(session, current_user, shop_id)
    return await replace_shop_hours(session, shop.id, body)


@router.get("/{shop_id}/calendar-settings", response_model=CalendarSettingsPublic)
async def read_calendar_settings(
    shop_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> CalendarSettingsPublic:
    shop = await get_owned_shop(session, current_user, shop_id)
    return await get_calendar_settings(session, shop.id)


@router.put("/{shop_id}/calendar-settings", response_model=CalendarSettingsPublic)
async def write_calendar_settings(
    shop_id: str,
    body: CalendarSettingsUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> CalendarSettingsPublic:
    shop = await get_owned_shop(session, current_user, shop_id)
    return await update_calendar_settings(session, shop.id, body)


@router.post("/{shop_id}/clients", response_model=Client, status_code=status.HTTP_201_CREATED)
async def add_client(
    shop_id: str,
    body: ClientCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Client:
    shop = await get_owned_shop(session, current_user, shop_id)
    return await create_client(session, shop.id, body)
