from threadfolio.store import actions
from threadfolio.store.api_client import BookingApi, BookingApiClient
from threadfolio.store.ranges import (
    STALE_AFTER_SECONDS,
    VIEW_DAY,
    VIEW_LIST,
    VIEW_MONTH,
    VIEW_WEEK,
    DateRange,
    LoadedRange,
    adjacent_ranges,
    view_range,
)
from threadfolio.store.reducer import appointment_reducer, prune_stale
from threadfolio.store.state import AppointmentState, OptimisticMarker
from threadfolio.store.store import AppointmentStore

__all__ = [
    "actions",
    "BookingApi",
    "BookingApiClient",
    "STALE_AFTER_SECONDS",
    "DateRange",
    "LoadedRange",
    "VIEW_DAY",
    "VIEW_LIST",
    "VIEW_MONTH",
    "VIEW_WEEK",
    "adjacent_ranges",
    "view_range",
    "appointment_reducer",
    "prune_stale",
    "AppointmentState",
    "OptimisticMarker",
    "AppointmentStore",
]
