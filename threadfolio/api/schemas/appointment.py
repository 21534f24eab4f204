from datetime import time

from pydantic import BaseModel


class SlotInfo(BaseModel):
    start_time: time
    end_time: time
    available: bool


class AvailableSlotsResponse(BaseModel):
    shop_id: str
    date: str  # YYYY-MM-DD
    slots: list[SlotInfo]


class AppointmentCountsResponse(BaseModel):
    shop_id: str
    start_date: str
    end_date: str
    counts: dict[str, int]  # YYYY-MM-DD -> non-cancelled appointments
