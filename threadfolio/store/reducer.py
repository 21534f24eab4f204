"""Pure state transitions for the optimistic appointment store.

``appointment_reducer(state, action, now=...)`` never mutates ``state``; it
returns either the same snapshot (action ignored) or a new one. The clock
reading is passed in so transitions are deterministic under test.
"""

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime

from threadfolio.models.appointment import AppointmentPublic, AppointmentStatus
from threadfolio.store import actions as a
from threadfolio.store.ranges import (
    STALE_AFTER_SECONDS,
    fresh_ranges,
    invalidate_ranges,
    is_covered,
    replace_range,
)
from threadfolio.store.state import (
    LOAD_ERROR,
    LOAD_PENDING,
    LOAD_SUCCESS,
    LOAD_SUPERSEDED,
    MARKER_CREATE,
    MARKER_UPDATE,
    AppointmentState,
    LoadingEntry,
    OptimisticMarker,
    freeze,
)

_HANDLERS: dict[type, Callable] = {}


def _handles(action_type: type):
    def register(fn):
        _HANDLERS[action_type] = fn
        return fn

    return register


def _stamp(now: float) -> datetime:
    return datetime.fromtimestamp(now, UTC).replace(tzinfo=None)


def _with(mapping, key, value):
    d = dict(mapping)
    d[key] = value
    return freeze(d)


def _without(mapping, *keys):
    d = dict(mapping)
    for k in keys:
        d.pop(k, None)
    return freeze(d)


def _is_older(incoming: AppointmentPublic, existing: AppointmentPublic | None) -> bool:
    return existing is not None and incoming.updated_at < existing.updated_at


def appointment_reducer(
    state: AppointmentState,
    action: object,
    *,
    now: float,
    stale_after: float = STALE_AFTER_SECONDS,
) -> AppointmentState:
    handler = _HANDLERS.get(type(action))
    if handler is None:
        return state
    return handler(state, action, now, stale_after)


@_handles(a.LoadStart)
def _load_start(state: AppointmentState, action: a.LoadStart, now: float, stale_after: float) -> AppointmentState:
    # Only the latest fetch of a given range may land; other ranges load side by side
    key = action.date_range.key
    loading = dict(state.loading)
    active = dict(state.active_requests)
    for request_id, range_key in state.active_requests.items():
        if range_key != key:
            continue
        entry = loading.get(request_id)
        if entry is not None and entry.status == LOAD_PENDING:
            loading[request_id] = LoadingEntry(entry.date_range, LOAD_SUPERSEDED)
        del active[request_id]
    loading[action.request_id] = LoadingEntry(action.date_range, LOAD_PENDING)
    active[action.request_id] = key
    return replace(state, loading=freeze(loading), active_requests=freeze(active))


@_handles(a.LoadSuccess)
def _load_success(state: AppointmentState, action: a.LoadSuccess, now: float, stale_after: float) -> AppointmentState:
    if state.active_requests.get(action.request_id) != action.date_range.key:
        return state

    incoming = {appt.id: appt for appt in action.appointments}
    merged = {}
    for appointment_id, appointment in state.appointments.items():
        pending = state.has_marker(appointment_id)
        if pending or not action.date_range.contains(appointment.date) or appointment_id in incoming:
            merged[appointment_id] = appointment
    for appointment_id, appointment in incoming.items():
        # Local in-flight intent wins over fetched data until its round trip resolves
        if not state.has_marker(appointment_id):
            merged[appointment_id] = appointment

    return replace(
        state,
        appointments=freeze(merged),
        loaded_ranges=replace_range(state.loaded_ranges, action.date_range, now, stale_after),
        loading=_with(state.loading, action.request_id, LoadingEntry(action.date_range, LOAD_SUCCESS)),
        active_requests=_without(state.active_requests, action.request_id),
        last_sync=now,
    )


@_handles(a.LoadError)
def _load_error(state: AppointmentState, action: a.LoadError, now: float, stale_after: float) -> AppointmentState:
    if action.request_id not in state.active_requests:
        return state
    return replace(
        state,
        loading=_with(state.loading, action.request_id, LoadingEntry(action.date_range, LOAD_ERROR)),
        errors=_with(state.errors, action.request_id, action.error),
        active_requests=_without(state.active_requests, action.request_id),
    )


@_handles(a.CreateOptimistic)
def _create_optimistic(
    state: AppointmentState, action: a.CreateOptimistic, now: float, stale_after: float
) -> AppointmentState:
    return replace(
        state,
        appointments=_with(state.appointments, action.temp_id, action.appointment),
        optimistic_updates=_with(state.optimistic_updates, action.temp_id, OptimisticMarker(MARKER_CREATE, now)),
    )


@_handles(a.CreateSuccess)
def _create_success(state: AppointmentState, action: a.CreateSuccess, now: float, stale_after: float) -> AppointmentState:
    appointments = dict(state.appointments)
    appointments.pop(action.temp_id, None)
    appointments[action.appointment.id] = action.appointment
    return replace(
        state,
        appointments=freeze(appointments),
        optimistic_updates=_without(state.optimistic_updates, action.temp_id),
    )


@_handles(a.CreateError)
def _create_error(state: AppointmentState, action: a.CreateError, now: float, stale_after: float) -> AppointmentState:
    return replace(
        state,
        appointments=_without(state.appointments, action.temp_id),
        optimistic_updates=_without(state.optimistic_updates, action.temp_id),
        errors=_with(state.errors, action.temp_id, action.error),
    )


@_handles(a.UpdateOptimistic)
def _update_optimistic(
    state: AppointmentState, action: a.UpdateOptimistic, now: float, stale_after: float
) -> AppointmentState:
    existing = state.appointments.get(action.id)
    if existing is None or state.has_marker(action.id):
        return state
    updated = existing.model_copy(update={**action.updates, "updated_at": _stamp(now)})
    return replace(
        state,
        appointments=_with(state.appointments, action.id, updated),
        optimistic_updates=_with(state.optimistic_updates, action.id, OptimisticMarker(MARKER_UPDATE, now)),
    )


@_handles(a.CancelOptimistic)
def _cancel_optimistic(
    state: AppointmentState, action: a.CancelOptimistic, now: float, stale_after: float
) -> AppointmentState:
    existing = state.appointments.get(action.id)
    if existing is None or state.has_marker(action.id):
        return state
    cancelled = existing.model_copy(update={"status": AppointmentStatus.cancelled, "updated_at": _stamp(now)})
    return replace(
        state,
        appointments=_with(state.appointments, action.id, cancelled),
        optimistic_updates=_with(state.optimistic_updates, action.id, OptimisticMarker(MARKER_UPDATE, now)),
    )


@_handles(a.UpdateSuccess)
@_handles(a.CancelSuccess)
def _confirm(state: AppointmentState, action, now: float, stale_after: float) -> AppointmentState:
    return replace(
        state,
        appointments=_with(state.appointments, action.appointment.id, action.appointment),
        optimistic_updates=_without(state.optimistic_updates, action.appointment.id),
    )


@_handles(a.UpdateError)
@_handles(a.CancelError)
def _rollback(state: AppointmentState, action, now: float, stale_after: float) -> AppointmentState:
    return replace(
        state,
        appointments=_with(state.appointments, action.id, action.previous_data),
        optimistic_updates=_without(state.optimistic_updates, action.id),
        errors=_with(state.errors, action.id, action.error),
    )


@_handles(a.RemoteUpdated)
def _remote_updated(state: AppointmentState, action: a.RemoteUpdated, now: float, stale_after: float) -> AppointmentState:
    incoming = action.appointment
    if state.has_marker(incoming.id):
        return state
    if _is_older(incoming, state.appointments.get(incoming.id)):
        return state
    return replace(state, appointments=_with(state.appointments, incoming.id, incoming))


@_handles(a.RemoteCreated)
def _remote_created(state: AppointmentState, action: a.RemoteCreated, now: float, stale_after: float) -> AppointmentState:
    incoming = action.appointment
    if _is_older(incoming, state.appointments.get(incoming.id)):
        return state
    return replace(state, appointments=_with(state.appointments, incoming.id, incoming))


@_handles(a.InvalidateRange)
def _invalidate_range(
    state: AppointmentState, action: a.InvalidateRange, now: float, stale_after: float
) -> AppointmentState:
    return replace(state, loaded_ranges=invalidate_ranges(state.loaded_ranges, action.date_range))


@_handles(a.ClearStale)
def _clear_stale(state: AppointmentState, action: a.ClearStale, now: float, stale_after: float) -> AppointmentState:
    return prune_stale(state, now, keep_range=action.keep_range, stale_after=stale_after)


def prune_stale(
    state: AppointmentState,
    now: float,
    *,
    keep_range=None,
    stale_after: float = STALE_AFTER_SECONDS,
) -> AppointmentState:
    """Drop expired ranges and the appointments only they covered.

    Appointments with an optimistic marker are never evicted. Errors are cleared.
    """
    fresh = fresh_ranges(state.loaded_ranges, now, keep_range=keep_range, stale_after=stale_after)
    kept = {
        appointment_id: appointment
        for appointment_id, appointment in state.appointments.items()
        if state.has_marker(appointment_id) or is_covered(appointment.date, fresh)
    }
    return replace(
        state,
        appointments=freeze(kept),
        loaded_ranges=fresh,
        errors=freeze({}),
    )
