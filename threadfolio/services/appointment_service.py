import logging
from datetime import UTC, date, datetime, time
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from threadfolio.models.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStatus,
    AppointmentUpdate,
)
from threadfolio.models.shop import Shop
from threadfolio.models.user import User
from threadfolio.services.appointment_repository import (
    count_appointments_by_date,
    fetch_appointment,
    insert_appointment_if_no_overlap,
    query_appointments_in_range,
    update_appointment_if_no_overlap,
)
from threadfolio.services.cache import counts_cache
from threadfolio.services.exceptions import (
    ConflictError,
    NotFoundError,
    OutOfHoursError,
    ValidationError,
)
from threadfolio.services.shop_service import get_calendar_settings, get_owned_shop, get_shop_client
from threadfolio.services.slot_service import is_within_working_hours

logger = logging.getLogger(__name__)

_CANCELLED = AppointmentStatus.cancelled.value
# Fields an update may not clear
_NON_NULLABLE = ("title", "date", "start_time", "end_time", "type", "status", "reminder_sent")


def _utc_naive_now() -> datetime:
    """Naive UTC for comparison with TIMESTAMP WITHOUT TIME ZONE."""
    return datetime.now(UTC).replace(tzinfo=None)


def _validate_interval(start_time: time, end_time: time) -> None:
    if start_time >= end_time:
        raise ValidationError("The start time must be before the end time.")


def _validate_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationError("The start date must not be after the end date.")


async def _get_owned_appointment(session: AsyncSession, user: User, appointment_id: str) -> Appointment:
    result = await session.execute(
        select(Appointment)
        .join(Shop, Shop.id == Appointment.shop_id)
        .where(Appointment.id == appointment_id, Shop.owner_user_id == user.id)
        .execution_options(populate_existing=True)
    )
    appointment = result.scalar_one_or_none()
    if not appointment:
        raise NotFoundError()
    return appointment


async def _require_public(session: AsyncSession, appointment_id: str) -> AppointmentPublic:
    public = await fetch_appointment(session, appointment_id)
    if public is None:
        raise NotFoundError()
    return public


async def create_appointment(
    session: AsyncSession, user: User, data: AppointmentCreate
) -> AppointmentPublic:
    shop = await get_owned_shop(session, user, data.shop_id)
    _validate_interval(data.start_time, data.end_time)
    if data.client_id:
        await get_shop_client(session, shop.id, data.client_id)
    if not await is_within_working_hours(session, shop.id, data.date, data.start_time, data.end_time):
        raise OutOfHoursError()
    calendar = await get_calendar_settings(session, shop.id)

    now = _utc_naive_now()
    values = {
        "id": str(uuid4()),
        "shop_id": shop.id,
        "client_id": data.client_id,
        "order_id": data.order_id,
        "title": data.title,
        "date": data.date,
        "start_time": data.start_time,
        "end_time": data.end_time,
        "type": data.type.value,
        "status": AppointmentStatus.scheduled.value,
        "notes": data.notes,
        "reminder_sent": False,
        "created_at": now,
        "updated_at": now,
    }
    inserted = await insert_appointment_if_no_overlap(
        session, values, buffer_minutes=calendar.buffer_time_minutes
    )
    if not inserted:
        logger.info(
            "Booking conflict for shop %s on %s %s-%s", shop.id, data.date, data.start_time, data.end_time
        )
        raise ConflictError()
    logger.info("Appointment %s created for shop %s on %s", values["id"], shop.id, data.date)
    return await _require_public(session, values["id"])


async def update_appointment(
    session: AsyncSession, user: User, appointment_id: str, data: AppointmentUpdate
) -> AppointmentPublic:
    current = await _get_owned_appointment(session, user, appointment_id)
    changes = data.model_dump(exclude_unset=True)
    for field in _NON_NULLABLE:
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be cleared.")
    for field in ("type", "status"):
        if field in changes:
            changes[field] = changes[field].value if hasattr(changes[field], "value") else changes[field]

    new_date = changes.get("date", current.date)
    new_start = changes.get("start_time", current.start_time)
    new_end = changes.get("end_time", current.end_time)
    new_status = changes.get("status", current.status)
    _validate_interval(new_start, new_end)

    if changes.get("client_id"):
        await get_shop_client(session, current.shop_id, changes["client_id"])

    moved = (new_date, new_start, new_end) != (current.date, current.start_time, current.end_time)
    reinstated = current.status == _CANCELLED and new_status != _CANCELLED
    check_overlap = (moved or reinstated) and new_status != _CANCELLED
    if check_overlap and not await is_within_working_hours(
        session, current.shop_id, new_date, new_start, new_end
    ):
        raise OutOfHoursError()

    if not changes:
        return await _require_public(session, appointment_id)

    calendar = await get_calendar_settings(session, current.shop_id)
    changes["updated_at"] = _utc_naive_now()
    updated = await update_appointment_if_no_overlap(
        session,
        appointment_id,
        changes,
        shop_id=current.shop_id,
        day=new_date,
        start_time=new_start,
        end_time=new_end,
        check_overlap=check_overlap,
        buffer_minutes=calendar.buffer_time_minutes,
    )
    if not updated:
        logger.info(
            "Reschedule conflict for appointment %s on %s %s-%s", appointment_id, new_date, new_start, new_end
        )
        raise ConflictError()
    logger.info("Appointment %s updated (%s)", appointment_id, ", ".join(sorted(changes)))
    return await _require_public(session, appointment_id)


async def cancel_appointment(session: AsyncSession, user: User, appointment_id: str) -> AppointmentPublic:
    """Mark an appointment cancelled. The row is kept; cancelling twice is a no-op."""
    current = await _get_owned_appointment(session, user, appointment_id)
    if current.status == _CANCELLED:
        return await _require_public(session, appointment_id)
    table = Appointment.__table__
    await session.execute(
        update(table)
        .where(table.c.id == appointment_id)
        .values(status=_CANCELLED, updated_at=_utc_naive_now())
    )
    logger.info("Appointment %s cancelled", appointment_id)
    return await _require_public(session, appointment_id)


async def get_appointment(session: AsyncSession, user: User, appointment_id: str) -> AppointmentPublic:
    await _get_owned_appointment(session, user, appointment_id)
    return await _require_public(session, appointment_id)


async def get_appointments_by_time_range(
    session: AsyncSession,
    user: User,
    shop_id: str,
    start_date: date,
    end_date: date,
    *,
    include_cancelled: bool = False,
) -> list[AppointmentPublic]:
    shop = await get_owned_shop(session, user, shop_id)
    _validate_range(start_date, end_date)
    return await query_appointments_in_range(
        session, shop.id, start_date, end_date, include_cancelled=include_cancelled
    )


async def get_appointment_counts(
    session: AsyncSession, user: User, shop_id: str, start_date: date, end_date: date
) -> dict[date, int]:
    shop = await get_owned_shop(session, user, shop_id)
    _validate_range(start_date, end_date)
    cached = await counts_cache.get(shop.id, start_date, end_date)
    if cached is not None:
        return cached
    counts = await count_appointments_by_date(session, shop.id, start_date, end_date)
    await counts_cache.set(shop.id, start_date, end_date, counts)
    return counts
