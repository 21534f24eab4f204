import logging
from datetime import time

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from threadfolio.core.config import settings
from threadfolio.models.client import Client, ClientCreate
from threadfolio.models.shop import (
    CalendarSettings,
    CalendarSettingsPublic,
    CalendarSettingsUpdate,
    Shop,
    ShopHours,
    ShopHoursEntry,
)
from threadfolio.models.user import User
from threadfolio.services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def get_user_by_external_id(session: AsyncSession, external_id: str) -> User | None:
    result = await session.execute(select(User).where(User.external_id == external_id))
    return result.scalar_one_or_none()


async def get_or_create_user(
    session: AsyncSession, external_id: str, email: str | None = None, full_name: str | None = None
) -> User:
    """Resolve an identity-provider subject to a local user, creating it on first sight."""
    user = await get_user_by_external_id(session, external_id)
    if user:
        return user
    # Two first requests for one subject can race here; the loser keeps the winner's row
    insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    result = await session.execute(
        insert(User.__table__)
        .values(external_id=external_id, email=email, full_name=full_name)
        .on_conflict_do_nothing(index_elements=["external_id"])
    )
    user = await get_user_by_external_id(session, external_id)
    if result.rowcount:
        logger.info("Provisioned user %s for subject %s", user.id, external_id)
    else:
        logger.info("Subject %s was provisioned concurrently, reusing user %s", external_id, user.id)
    return user


async def create_shop(session: AsyncSession, owner: User, name: str) -> Shop:
    shop = Shop(owner_user_id=owner.id, name=name)
    session.add(shop)
    await session.flush()
    await session.refresh(shop)
    return shop


async def list_shops_for_user(session: AsyncSession, user: User) -> list[Shop]:
    result = await session.execute(
        select(Shop).where(Shop.owner_user_id == user.id).order_by(Shop.name)
    )
    return list(result.scalars().all())


async def get_owned_shop(session: AsyncSession, user: User, shop_id: str) -> Shop:
    result = await session.execute(
        select(Shop).where(Shop.id == shop_id, Shop.owner_user_id == user.id)
    )
    shop = result.scalar_one_or_none()
    if not shop:
        raise NotFoundError("Shop not found.")
    return shop


def default_shop_hours() -> list[ShopHoursEntry]:
    """Hours for shops that never configured their own (business days from settings)."""
    hours: list[ShopHoursEntry] = []
    for day in range(7):
        if day in settings.business_days_set:
            hours.append(
                ShopHoursEntry(
                    day_of_week=day,
                    open_time=time(settings.business_start_hour, 0),
                    close_time=time(settings.business_end_hour, 0),
                    is_closed=False,
                )
            )
        else:
            hours.append(ShopHoursEntry(day_of_week=day, is_closed=True))
    return hours


async def get_shop_hours(session: AsyncSession, shop_id: str) -> list[ShopHoursEntry]:
    result = await session.execute(
        select(ShopHours).where(ShopHours.shop_id == shop_id).order_by(ShopHours.day_of_week)
    )
    rows = result.scalars().all()
    if not rows:
        return default_shop_hours()
    configured = {
        r.day_of_week: ShopHoursEntry(
            day_of_week=r.day_of_week,
            open_time=r.open_time,
            close_time=r.close_time,
            is_closed=r.is_closed,
        )
        for r in rows
    }
    # Days missing from a partial configuration are closed
    return [configured.get(d) or ShopHoursEntry(day_of_week=d, is_closed=True) for d in range(7)]


async def replace_shop_hours(
    session: AsyncSession, shop_id: str, hours: list[ShopHoursEntry]
) -> list[ShopHoursEntry]:
    days = [h.day_of_week for h in hours]
    if len(days) != len(set(days)):
        raise ValidationError("Each day of the week may appear only once.")
    await session.execute(delete(ShopHours).where(ShopHours.shop_id == shop_id))
    for h in hours:
        session.add(
            ShopHours(
                shop_id=shop_id,
                day_of_week=h.day_of_week,
                open_time=h.open_time,
                close_time=h.close_time,
                is_closed=h.is_closed,
            )
        )
    await session.flush()
    logger.info("Working hours replaced for shop %s (%d days)", shop_id, len(hours))
    return await get_shop_hours(session, shop_id)


def _settings_to_public(shop_id: str, row: CalendarSettings | None) -> CalendarSettingsPublic:
    if row is None:
        return CalendarSettingsPublic(
            shop_id=shop_id,
            buffer_time_minutes=settings.buffer_time_minutes,
            default_appointment_duration=settings.slot_duration_minutes,
            send_reminders=True,
            reminder_hours_before=settings.reminder_hours_before,
        )
    return CalendarSettingsPublic(
        shop_id=shop_id,
        buffer_time_minutes=row.buffer_time_minutes,
        default_appointment_duration=row.default_appointment_duration,
        send_reminders=row.send_reminders,
        reminder_hours_before=row.reminder_hours_before,
    )


async def get_calendar_settings(session: AsyncSession, shop_id: str) -> CalendarSettingsPublic:
    result = await session.execute(select(CalendarSettings).where(CalendarSettings.shop_id == shop_id))
    return _settings_to_public(shop_id, result.scalar_one_or_none())


async def update_calendar_settings(
    session: AsyncSession, shop_id: str, data: CalendarSettingsUpdate
) -> CalendarSettingsPublic:
    result = await session.execute(select(CalendarSettings).where(CalendarSettings.shop_id == shop_id))
    row = result.scalar_one_or_none()
    if row is None:
        row = CalendarSettings(shop_id=shop_id)
    row.buffer_time_minutes = data.buffer_time_minutes
    row.default_appointment_duration = data.default_appointment_duration
    row.send_reminders = data.send_reminders
    row.reminder_hours_before = data.reminder_hours_before
    session.add(row)
    await session.flush()
    return _settings_to_public(shop_id, row)


async def create_client(session: AsyncSession, shop_id: str, data: ClientCreate) -> Client:
    client = Client(
        shop_id=shop_id,
        first_name=data.first_name,
        last_name=data.last_name,
        email=str(data.email) if data.email else None,
        phone_number=data.phone_number,
    )
    session.add(client)
    await session.flush()
    await session.refresh(client)
    return client


async def get_shop_client(session: AsyncSession, shop_id: str, client_id: str) -> Client:
    result = await session.execute(
        select(Client).where(Client.id == client_id, Client.shop_id == shop_id)
    )
    client = result.scalar_one_or_none()
    if not client:
        raise NotFoundError("Client not found.")
    return client
