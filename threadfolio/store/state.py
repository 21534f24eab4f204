from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from threadfolio.models.appointment import AppointmentPublic
from threadfolio.store.ranges import DateRange, LoadedRange

MARKER_CREATE = "create"
MARKER_UPDATE = "update"

LOAD_PENDING = "pending"
LOAD_SUCCESS = "success"
LOAD_ERROR = "error"
LOAD_SUPERSEDED = "superseded"


def freeze(d: dict) -> Mapping:
    """Read-only view; transitions build a new dict instead of mutating."""
    return MappingProxyType(d)


def _empty() -> Mapping:
    return freeze({})


@dataclass(frozen=True)
class OptimisticMarker:
    type: str  # MARKER_CREATE or MARKER_UPDATE
    timestamp: float


@dataclass(frozen=True)
class LoadingEntry:
    date_range: DateRange
    status: str


@dataclass(frozen=True)
class AppointmentState:
    appointments: Mapping[str, AppointmentPublic] = field(default_factory=_empty)
    loaded_ranges: tuple[LoadedRange, ...] = ()
    loading: Mapping[str, LoadingEntry] = field(default_factory=_empty)
    optimistic_updates: Mapping[str, OptimisticMarker] = field(default_factory=_empty)
    errors: Mapping[str, str] = field(default_factory=_empty)
    last_sync: float = 0.0
    # request id -> DateRange.key of the fetch it belongs to
    active_requests: Mapping[str, str] = field(default_factory=_empty)

    def has_marker(self, appointment_id: str) -> bool:
        return appointment_id in self.optimistic_updates
