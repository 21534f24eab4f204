from threadfolio.models.user import User
from threadfolio.models.shop import (
    CalendarSettings,
    CalendarSettingsPublic,
    CalendarSettingsUpdate,
    Shop,
    ShopCreate,
    ShopHours,
    ShopHoursEntry,
    ShopPublic,
)
from threadfolio.models.client import Client, ClientCreate, ClientSummary
from threadfolio.models.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStatus,
    AppointmentType,
    AppointmentUpdate,
)

__all__ = [
    "User",
    "Shop",
    "ShopCreate",
    "ShopPublic",
    "ShopHours",
    "ShopHoursEntry",
    "CalendarSettings",
    "CalendarSettingsPublic",
    "CalendarSettingsUpdate",
    "Client",
    "ClientCreate",
    "ClientSummary",
    "Appointment",
    "AppointmentCreate",
    "AppointmentPublic",
    "AppointmentStatus",
    "AppointmentType",
    "AppointmentUpdate",
]
