"""Actions accepted by the appointment reducer.

Local call results and remote push messages are both plain actions, so every
ordering rule lives in the reducer.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from threadfolio.models.appointment import AppointmentPublic
from threadfolio.store.ranges import DateRange


@dataclass(frozen=True)
class LoadStart:
    date_range: DateRange
    request_id: str


@dataclass(frozen=True)
class LoadSuccess:
    appointments: tuple[AppointmentPublic, ...]
    date_range: DateRange
    request_id: str


@dataclass(frozen=True)
class LoadError:
    error: str
    date_range: DateRange
    request_id: str


@dataclass(frozen=True)
class CreateOptimistic:
    appointment: AppointmentPublic
    temp_id: str


@dataclass(frozen=True)
class CreateSuccess:
    appointment: AppointmentPublic
    temp_id: str


@dataclass(frozen=True)
class CreateError:
    temp_id: str
    error: str


@dataclass(frozen=True)
class UpdateOptimistic:
    id: str
    updates: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateSuccess:
    appointment: AppointmentPublic


@dataclass(frozen=True)
class UpdateError:
    id: str
    previous_data: AppointmentPublic
    error: str


@dataclass(frozen=True)
class CancelOptimistic:
    id: str
    previous_data: AppointmentPublic


@dataclass(frozen=True)
class CancelSuccess:
    appointment: AppointmentPublic


@dataclass(frozen=True)
class CancelError:
    id: str
    previous_data: AppointmentPublic
    error: str


@dataclass(frozen=True)
class RemoteUpdated:
    appointment: AppointmentPublic


@dataclass(frozen=True)
class RemoteCreated:
    appointment: AppointmentPublic


@dataclass(frozen=True)
class InvalidateRange:
    date_range: DateRange


@dataclass(frozen=True)
class ClearStale:
    keep_range: DateRange | None = None
