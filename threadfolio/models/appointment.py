import datetime as dt
from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, String
from sqlmodel import Field, SQLModel

from threadfolio.models.client import ClientSummary


def _utc_naive_now() -> dt.datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return dt.datetime.now(dt.UTC).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid4())


class AppointmentType(str, Enum):
    consultation = "consultation"
    fitting = "fitting"
    pickup = "pickup"
    delivery = "delivery"
    other = "other"


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_shop_date_time", "shop_id", "date", "start_time"),
        CheckConstraint("start_time < end_time", name="ck_appointments_time_order"),
    )
    id: str = Field(default_factory=_new_id, primary_key=True)
    shop_id: str = Field(foreign_key="shops.id", index=True)
    client_id: str | None = Field(default=None, foreign_key="clients.id", index=True)
    order_id: str | None = None
    title: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    type: str = Field(default=AppointmentType.other.value, sa_type=String(20))
    status: str = Field(default=AppointmentStatus.scheduled.value, sa_type=String(20), index=True)
    notes: str | None = None
    reminder_sent: bool = False
    # Naive UTC; the column type is explicit so the driver never expects an aware value
    created_at: dt.datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime(timezone=False))
    updated_at: dt.datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime(timezone=False))


class AppointmentCreate(SQLModel):
    shop_id: str
    client_id: str | None = None
    order_id: str | None = None
    title: str = Field(min_length=1)
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    type: AppointmentType = AppointmentType.other
    notes: str | None = None


class AppointmentUpdate(SQLModel):
    """Partial update; only fields explicitly set are applied."""

    client_id: str | None = None
    order_id: str | None = None
    title: str | None = Field(default=None, min_length=1)
    date: dt.date | None = None
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    type: AppointmentType | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None
    reminder_sent: bool | None = None


class AppointmentPublic(SQLModel):
    id: str
    shop_id: str
    client_id: str | None = None
    order_id: str | None = None
    title: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    type: AppointmentType
    status: AppointmentStatus
    notes: str | None = None
    reminder_sent: bool = False
    created_at: dt.datetime
    updated_at: dt.datetime
    client: ClientSummary | None = None
