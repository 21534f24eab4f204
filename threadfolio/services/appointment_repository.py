"""Persistence primitives for appointments.

The overlap check and the write always happen in one SQL statement so two
concurrent requests cannot both pass the check. On PostgreSQL the statement
also runs under a transaction-scoped advisory lock keyed by (shop, date):
under READ COMMITTED a NOT EXISTS subquery alone does not see rows inserted by
a transaction that has not committed yet, the lock makes the second writer
wait for the first to commit.
"""

import hashlib
import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import func, insert, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from threadfolio.models.appointment import Appointment, AppointmentPublic, AppointmentStatus
from threadfolio.models.client import Client, ClientSummary

logger = logging.getLogger(__name__)

_CANCELLED = AppointmentStatus.cancelled.value


def _shift(t: time, minutes: int) -> time:
    """Move a time-of-day by minutes, clamped to the same calendar day."""
    if not minutes:
        return t
    anchor = datetime(2000, 1, 1)
    shifted = datetime.combine(anchor.date(), t) + timedelta(minutes=minutes)
    if shifted.date() < anchor.date():
        return time.min
    if shifted.date() > anchor.date():
        return time.max
    return shifted.time()


def _advisory_lock_key(shop_id: str, day: date) -> int:
    digest = hashlib.blake2b(f"{shop_id}:{day.isoformat()}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


async def _lock_shop_day(session: AsyncSession, shop_id: str, day: date) -> None:
    if session.get_bind().dialect.name != "postgresql":
        # SQLite serializes writers, the conditional statement is enough there
        return
    await session.execute(select(func.pg_advisory_xact_lock(_advisory_lock_key(shop_id, day))))


def _overlap_exists(
    shop_id: str,
    day: date,
    start_time: time,
    end_time: time,
    *,
    buffer_minutes: int = 0,
    exclude_id: str | None = None,
):
    """EXISTS clause matching non-cancelled appointments that intersect [start, end) plus buffer."""
    existing = Appointment.__table__.alias("existing")
    q = select(existing.c.id).where(
        existing.c.shop_id == shop_id,
        existing.c.date == day,
        existing.c.status != _CANCELLED,
        existing.c.start_time < _shift(end_time, buffer_minutes),
        existing.c.end_time > _shift(start_time, -buffer_minutes),
    )
    if exclude_id is not None:
        q = q.where(existing.c.id != exclude_id)
    return q.exists()


def intervals_overlap(
    a_start: time, a_end: time, b_start: time, b_end: time, buffer_minutes: int = 0
) -> bool:
    """Python mirror of the SQL overlap predicate, used for slot availability."""
    return b_start < _shift(a_end, buffer_minutes) and b_end > _shift(a_start, -buffer_minutes)


async def insert_appointment_if_no_overlap(
    session: AsyncSession, values: dict, *, buffer_minutes: int = 0
) -> bool:
    """INSERT … SELECT … WHERE NOT EXISTS(overlap). Returns False when the slot is taken.

    ``values`` must hold every column; column defaults do not apply to INSERT … SELECT.
    """
    table = Appointment.__table__
    await _lock_shop_day(session, values["shop_id"], values["date"])
    conflict = _overlap_exists(
        values["shop_id"],
        values["date"],
        values["start_time"],
        values["end_time"],
        buffer_minutes=buffer_minutes,
    )
    columns = list(values)
    source = select(*[literal(values[c], type_=table.c[c].type) for c in columns]).where(~conflict)
    result = await session.execute(insert(table).from_select(columns, source))
    return result.rowcount == 1


async def update_appointment_if_no_overlap(
    session: AsyncSession,
    appointment_id: str,
    values: dict,
    *,
    shop_id: str,
    day: date,
    start_time: time,
    end_time: time,
    check_overlap: bool,
    buffer_minutes: int = 0,
) -> bool:
    """UPDATE … WHERE id = :id AND NOT EXISTS(overlap excluding self).

    Returns False when the row is missing or the new interval is taken.
    """
    table = Appointment.__table__
    stmt = update(table).where(table.c.id == appointment_id).values(**values)
    if check_overlap:
        await _lock_shop_day(session, shop_id, day)
        stmt = stmt.where(
            ~_overlap_exists(
                shop_id,
                day,
                start_time,
                end_time,
                buffer_minutes=buffer_minutes,
                exclude_id=appointment_id,
            )
        )
    result = await session.execute(stmt)
    return result.rowcount == 1


def to_public(appointment: Appointment, client: Client | None = None) -> AppointmentPublic:
    summary = None
    if client is not None:
        summary = ClientSummary(
            id=client.id,
            first_name=client.first_name or "",
            last_name=client.last_name or "",
            email=client.email,
            phone_number=client.phone_number,
        )
    return AppointmentPublic(
        id=appointment.id,
        shop_id=appointment.shop_id,
        client_id=appointment.client_id,
        order_id=appointment.order_id,
        title=appointment.title,
        date=appointment.date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        type=appointment.type,
        status=appointment.status,
        notes=appointment.notes,
        reminder_sent=bool(appointment.reminder_sent),
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
        client=summary,
    )


def _with_client():
    # populate_existing: rows may have been rewritten by core UPDATEs earlier in this session
    return (
        select(Appointment, Client)
        .outerjoin(Client, Appointment.client_id == Client.id)
        .execution_options(populate_existing=True)
    )


async def fetch_appointment(session: AsyncSession, appointment_id: str) -> AppointmentPublic | None:
    result = await session.execute(_with_client().where(Appointment.id == appointment_id))
    row = result.first()
    if row is None:
        return None
    return to_public(row[0], row[1])


async def query_appointments_in_range(
    session: AsyncSession,
    shop_id: str,
    start_date: date,
    end_date: date,
    *,
    include_cancelled: bool = False,
) -> list[AppointmentPublic]:
    q = (
        _with_client()
        .where(
            Appointment.shop_id == shop_id,
            Appointment.date >= start_date,
            Appointment.date <= end_date,
        )
        .order_by(Appointment.date, Appointment.start_time)
    )
    if not include_cancelled:
        q = q.where(Appointment.status != _CANCELLED)
    result = await session.execute(q)
    return [to_public(a, c) for a, c in result.all()]


async def count_appointments_by_date(
    session: AsyncSession, shop_id: str, start_date: date, end_date: date
) -> dict[date, int]:
    result = await session.execute(
        select(Appointment.date, func.count(Appointment.id))
        .where(
            Appointment.shop_id == shop_id,
            Appointment.date >= start_date,
            Appointment.date <= end_date,
            Appointment.status != _CANCELLED,
        )
        .group_by(Appointment.date)
        .order_by(Appointment.date)
    )
    return {row[0]: int(row[1]) for row in result.all()}
