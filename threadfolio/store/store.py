import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, date, datetime
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import ValidationError as PayloadValidationError

from threadfolio.models.appointment import (
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStatus,
    AppointmentType,
    AppointmentUpdate,
)
from threadfolio.services.exceptions import (
    BookingError,
    MutationInProgressError,
    NetworkError,
    NotFoundError,
    SupersededError,
    ValidationError,
)
from threadfolio.store import actions as a
from threadfolio.store.api_client import BookingApi
from threadfolio.store.ranges import (
    STALE_AFTER_SECONDS,
    DateRange,
    adjacent_ranges,
    is_range_loaded,
    view_range,
)
from threadfolio.store.reducer import appointment_reducer
from threadfolio.store.state import LOAD_SUCCESS, AppointmentState

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[AppointmentState], None]


def _temp_id() -> str:
    return f"temp-{uuid4()}"


def _request_id() -> str:
    return str(uuid4())


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, BookingError):
        return exc.message
    return str(exc) or type(exc).__name__


class AppointmentStore:
    """Optimistic, eventually consistent view of one shop's appointments.

    One instance per session. All state changes go through ``dispatch``;
    network calls happen outside the reducer and dispatch their outcome.
    Callers must not run two mutations for the same appointment at once: a
    second one is rejected with ``MutationInProgressError`` until the first
    resolves.
    """

    def __init__(
        self,
        api: BookingApi,
        shop_id: str,
        *,
        clock: Callable[[], float] = time.time,
        stale_after: float = STALE_AFTER_SECONDS,
        request_timeout: float | None = 30.0,
        temp_id_factory: Callable[[], str] = _temp_id,
        request_id_factory: Callable[[], str] = _request_id,
    ) -> None:
        self.shop_id = shop_id
        self._api = api
        self._clock = clock
        self._stale_after = stale_after
        self._request_timeout = request_timeout
        self._temp_id_factory = temp_id_factory
        self._request_id_factory = request_id_factory
        self._state = AppointmentState(last_sync=clock())
        self._listeners: list[Listener] = []
        self._prefetches: set[asyncio.Task] = set()

    @property
    def state(self) -> AppointmentState:
        return self._state

    def dispatch(self, action: object) -> AppointmentState:
        new_state = appointment_reducer(self._state, action, now=self._clock(), stale_after=self._stale_after)
        if new_state is not self._state:
            self._state = new_state
            for listener in list(self._listeners):
                listener(new_state)
        return new_state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _call(self, awaitable: Awaitable[T]) -> T:
        if self._request_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self._request_timeout)
        except asyncio.TimeoutError as exc:
            raise NetworkError("The booking service did not respond in time.", cause=exc) from exc

    # Reads

    def get_appointments_for_date_range(self, start_date: date, end_date: date) -> list[AppointmentPublic]:
        """Appointments dated within [start_date, end_date], cancelled ones included, by date then start."""
        found = [
            appt for appt in self._state.appointments.values() if start_date <= appt.date <= end_date
        ]
        return sorted(found, key=lambda appt: (appt.date, appt.start_time))

    def is_date_range_loaded(self, start_date: date, end_date: date) -> bool:
        return is_range_loaded(self._state.loaded_ranges, DateRange(start_date, end_date), self._clock())

    def get_error(self, key: str) -> str | None:
        return self._state.errors.get(key)

    def is_pending(self, appointment_id: str) -> bool:
        return self._state.has_marker(appointment_id)

    # Loading

    async def load_appointments(
        self, start_date: date, end_date: date, *, force: bool = False
    ) -> list[AppointmentPublic]:
        date_range = DateRange(start_date, end_date)
        if not force and self.is_date_range_loaded(start_date, end_date):
            return self.get_appointments_for_date_range(start_date, end_date)

        request_id = self._request_id_factory()
        self.dispatch(a.LoadStart(date_range=date_range, request_id=request_id))
        try:
            appointments = await self._call(
                self._api.get_appointments_by_time_range(self.shop_id, start_date, end_date)
            )
        except BaseException as exc:
            logger.warning("Loading appointments %s failed: %s", date_range.key, exc)
            self.dispatch(a.LoadError(error=_error_message(exc), date_range=date_range, request_id=request_id))
            raise
        self.dispatch(
            a.LoadSuccess(appointments=tuple(appointments), date_range=date_range, request_id=request_id)
        )
        entry = self._state.loading.get(request_id)
        if entry is None or entry.status != LOAD_SUCCESS:
            raise SupersededError()
        return self.get_appointments_for_date_range(start_date, end_date)

    async def load_view(self, view: str, anchor: date, *, prefetch: bool = True) -> list[AppointmentPublic]:
        """Load what a month, week, day or list view around ``anchor`` shows."""
        shown = view_range(view, anchor)
        appointments = await self.load_appointments(shown.start_date, shown.end_date)
        if prefetch:
            self.prefetch_adjacent(view, anchor)
        return appointments

    def prefetch_adjacent(self, view: str, anchor: date) -> list[asyncio.Task]:
        """Start background loads for the neighbouring ranges that are not cached yet."""
        tasks = []
        for date_range in adjacent_ranges(view, anchor):
            if self.is_date_range_loaded(date_range.start_date, date_range.end_date):
                continue
            task = asyncio.create_task(self._prefetch(date_range))
            self._prefetches.add(task)
            task.add_done_callback(self._prefetches.discard)
            tasks.append(task)
        return tasks

    async def _prefetch(self, date_range: DateRange) -> None:
        try:
            await self.load_appointments(date_range.start_date, date_range.end_date)
        except BookingError as exc:
            logger.debug("Prefetch of %s skipped: %s", date_range.key, exc)

    # Mutations

    async def create_appointment(
        self,
        *,
        title: str,
        date: date,
        start_time,
        end_time,
        type: AppointmentType = AppointmentType.other,
        client_id: str | None = None,
        order_id: str | None = None,
        notes: str | None = None,
    ) -> AppointmentPublic:
        if start_time >= end_time:
            raise ValidationError("The start time must be before the end time.")
        data = AppointmentCreate(
            shop_id=self.shop_id,
            client_id=client_id,
            order_id=order_id,
            title=title,
            date=date,
            start_time=start_time,
            end_time=end_time,
            type=type,
            notes=notes,
        )
        temp_id = self._temp_id_factory()
        stamp = datetime.fromtimestamp(self._clock(), UTC).replace(tzinfo=None)
        optimistic = AppointmentPublic(
            id=temp_id,
            shop_id=self.shop_id,
            client_id=client_id,
            order_id=order_id,
            title=title,
            date=date,
            start_time=start_time,
            end_time=end_time,
            type=type,
            status=AppointmentStatus.scheduled,
            notes=notes,
            reminder_sent=False,
            created_at=stamp,
            updated_at=stamp,
        )
        self.dispatch(a.CreateOptimistic(appointment=optimistic, temp_id=temp_id))
        try:
            confirmed = await self._call(self._api.create_appointment(data))
        except BaseException as exc:
            logger.info("Create of %s rolled back: %s", temp_id, exc)
            self.dispatch(a.CreateError(temp_id=temp_id, error=_error_message(exc)))
            raise
        self.dispatch(a.CreateSuccess(appointment=confirmed, temp_id=temp_id))
        return confirmed

    def _current_for_mutation(self, appointment_id: str) -> AppointmentPublic:
        current = self._state.appointments.get(appointment_id)
        if current is None:
            raise NotFoundError()
        if self._state.has_marker(appointment_id):
            raise MutationInProgressError()
        return current

    async def update_appointment(self, appointment_id: str, data: AppointmentUpdate) -> AppointmentPublic:
        current = self._current_for_mutation(appointment_id)
        updates: Mapping[str, Any] = data.model_dump(exclude_unset=True)
        start_time = updates.get("start_time") or current.start_time
        end_time = updates.get("end_time") or current.end_time
        if start_time >= end_time:
            raise ValidationError("The start time must be before the end time.")

        self.dispatch(a.UpdateOptimistic(id=appointment_id, updates=updates))
        try:
            confirmed = await self._call(self._api.update_appointment(appointment_id, data))
        except BaseException as exc:
            logger.info("Update of %s rolled back: %s", appointment_id, exc)
            self.dispatch(a.UpdateError(id=appointment_id, previous_data=current, error=_error_message(exc)))
            raise
        self.dispatch(a.UpdateSuccess(appointment=confirmed))
        return confirmed

    async def cancel_appointment(self, appointment_id: str) -> AppointmentPublic:
        current = self._current_for_mutation(appointment_id)
        self.dispatch(a.CancelOptimistic(id=appointment_id, previous_data=current))
        try:
            confirmed = await self._call(self._api.cancel_appointment(appointment_id))
        except BaseException as exc:
            logger.info("Cancel of %s rolled back: %s", appointment_id, exc)
            self.dispatch(a.CancelError(id=appointment_id, previous_data=current, error=_error_message(exc)))
            raise
        self.dispatch(a.CancelSuccess(appointment=confirmed))
        return confirmed

    # Cache management

    def invalidate_range(self, start_date: date, end_date: date) -> None:
        self.dispatch(a.InvalidateRange(date_range=DateRange(start_date, end_date)))

    def clear_stale_data(self, keep_range: DateRange | None = None) -> None:
        self.dispatch(a.ClearStale(keep_range=keep_range))

    async def run_gc(self, interval: float = 60.0) -> None:
        """Sweep stale ranges every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.clear_stale_data()

    # Remote push

    def handle_push(self, message: Mapping[str, Any]) -> None:
        """Apply one ``{"event": "created"|"updated", "appointment": {...}}`` message.

        Malformed messages are logged and dropped so one bad frame cannot stop ``consume``.
        """
        if not isinstance(message, Mapping):
            logger.warning("Dropping push message that is not an object: %r", message)
            return
        event = message.get("event")
        payload = message.get("appointment")
        if payload is None:
            return
        if isinstance(payload, AppointmentPublic):
            appointment = payload
        else:
            try:
                appointment = AppointmentPublic.model_validate(payload)
            except PayloadValidationError as exc:
                logger.warning("Dropping malformed %r push: %s", event, exc)
                return
        if appointment.shop_id != self.shop_id:
            return
        if event == "created":
            self.dispatch(a.RemoteCreated(appointment=appointment))
        elif event == "updated":
            self.dispatch(a.RemoteUpdated(appointment=appointment))
        else:
            logger.debug("Ignoring unknown push event %r", event)

    async def consume(self, channel: asyncio.Queue) -> None:
        """Feed push messages from ``channel`` into the store until a ``None`` arrives."""
        while True:
            message = await channel.get()
            if message is None:
                return
            self.handle_push(message)
