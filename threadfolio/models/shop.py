import datetime as dt
from uuid import uuid4

from pydantic import field_validator, model_validator
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return str(uuid4())


class Shop(SQLModel, table=True):
    __tablename__ = "shops"
    id: str = Field(default_factory=_new_id, primary_key=True)
    owner_user_id: int = Field(foreign_key="users.id", index=True)
    name: str


class ShopCreate(SQLModel):
    name: str


class ShopPublic(SQLModel):
    id: str
    name: str
    owner_user_id: int


class ShopHours(SQLModel, table=True):
    """Working hours for one weekday. day_of_week: 0 = Sunday … 6 = Saturday."""

    __tablename__ = "shop_hours"
    __table_args__ = (UniqueConstraint("shop_id", "day_of_week", name="uq_shop_hours_shop_day"),)
    id: int | None = Field(default=None, primary_key=True)
    shop_id: str = Field(foreign_key="shops.id", index=True)
    day_of_week: int
    open_time: dt.time | None = None
    close_time: dt.time | None = None
    is_closed: bool = False


class ShopHoursEntry(SQLModel):
    day_of_week: int
    open_time: dt.time | None = None
    close_time: dt.time | None = None
    is_closed: bool = False

    @field_validator("day_of_week")
    @classmethod
    def _valid_day(cls, v: int) -> int:
        if not 0 <= v <= 6:
            raise ValueError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @model_validator(mode="after")
    def _valid_hours(self) -> "ShopHoursEntry":
        if self.is_closed:
            self.open_time = None
            self.close_time = None
            return self
        if self.open_time is None or self.close_time is None:
            raise ValueError("open_time and close_time are required unless the day is closed")
        if self.open_time >= self.close_time:
            raise ValueError("open_time must be before close_time")
        return self


class CalendarSettings(SQLModel, table=True):
    __tablename__ = "calendar_settings"
    id: int | None = Field(default=None, primary_key=True)
    shop_id: str = Field(foreign_key="shops.id", unique=True, index=True)
    buffer_time_minutes: int = 0
    default_appointment_duration: int = 30
    send_reminders: bool = True
    reminder_hours_before: int = 24


class CalendarSettingsUpdate(SQLModel):
    buffer_time_minutes: int = Field(default=0, ge=0)
    default_appointment_duration: int = Field(default=30, gt=0)
    send_reminders: bool = True
    reminder_hours_before: int = Field(default=24, ge=0)


class CalendarSettingsPublic(SQLModel):
    shop_id: str
    buffer_time_minutes: int
    default_appointment_duration: int
    send_reminders: bool
    reminder_hours_before: int
