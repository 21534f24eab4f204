from datetime import date, datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from threadfolio.services.appointment_repository import intervals_overlap, query_appointments_in_range
from threadfolio.services.shop_service import get_calendar_settings, get_shop_hours


def day_of_week(d: date) -> int:
    """0 = Sunday … 6 = Saturday, matching shop_hours.day_of_week."""
    return (d.weekday() + 1) % 7


async def get_working_hours_for_date(
    session: AsyncSession, shop_id: str, d: date
) -> tuple[time, time] | None:
    """(open, close) for the date, or None when the shop is closed that day."""
    dow = day_of_week(d)
    for entry in await get_shop_hours(session, shop_id):
        if entry.day_of_week != dow:
            continue
        if entry.is_closed or entry.open_time is None or entry.close_time is None:
            return None
        return entry.open_time, entry.close_time
    return None


async def is_within_working_hours(
    session: AsyncSession, shop_id: str, d: date, start_time: time, end_time: time
) -> bool:
    hours = await get_working_hours_for_date(session, shop_id, d)
    if hours is None:
        return False
    open_time, close_time = hours
    return start_time >= open_time and end_time <= close_time


def _slot_times(d: date, open_time: time, close_time: time, duration_minutes: int) -> list[tuple[time, time]]:
    """Consecutive (start, end) slots inside opening hours; a trailing partial slot is dropped."""
    slots: list[tuple[time, time]] = []
    current = datetime.combine(d, open_time)
    end = datetime.combine(d, close_time)
    delta = timedelta(minutes=duration_minutes)
    while current + delta <= end:
        slots.append((current.time(), (current + delta).time()))
        current += delta
    return slots


async def get_available_slots_for_date(
    session: AsyncSession, shop_id: str, d: date
) -> list[tuple[time, time, bool]]:
    """Returns list of (start, end, available). Cancelled appointments free their slots."""
    hours = await get_working_hours_for_date(session, shop_id, d)
    if hours is None:
        return []
    calendar = await get_calendar_settings(session, shop_id)
    slots = _slot_times(d, hours[0], hours[1], calendar.default_appointment_duration)
    if not slots:
        return []
    booked = await query_appointments_in_range(session, shop_id, d, d)
    out: list[tuple[time, time, bool]] = []
    for start, end in slots:
        taken = any(
            intervals_overlap(start, end, a.start_time, a.end_time, calendar.buffer_time_minutes)
            for a in booked
        )
        out.append((start, end, not taken))
    return out
