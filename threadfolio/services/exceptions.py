class BookingError(Exception):
    """Base exception for booking failures that are reported to the caller.

    ``code`` is a stable machine-readable identifier carried over the wire so the
    client can rebuild the same exception type; ``message`` is safe to show to users.
    """

    code = "booking_error"
    status_code = 400
    default_message = "The request could not be completed."

    def __init__(self, message: str | None = None, *, cause: Exception | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.cause = cause


class ConflictError(BookingError):
    """The requested interval overlaps another non-cancelled appointment."""

    code = "conflict"
    status_code = 409
    default_message = "This time slot is already booked. Please choose another time."


class OutOfHoursError(BookingError):
    code = "out_of_hours"
    status_code = 422
    default_message = "The appointment is outside of working hours."


class NotFoundError(BookingError):
    """Missing, or not owned by the caller; the two are indistinguishable on purpose."""

    code = "not_found"
    status_code = 404
    default_message = "Appointment not found."


class UnauthorizedError(BookingError):
    code = "unauthorized"
    status_code = 401
    default_message = "Missing or invalid credentials."


class ValidationError(BookingError):
    code = "validation_error"
    status_code = 422
    default_message = "Invalid appointment data."


class NetworkError(BookingError):
    """Transport-level failure or timeout during a round trip to the booking API."""

    code = "network_error"
    status_code = 503
    default_message = "Could not reach the booking service. Your change was not saved."


class MutationInProgressError(BookingError):
    """A change for this appointment is still being saved."""

    code = "mutation_in_progress"
    status_code = 409
    default_message = "A previous change to this appointment is still being saved."


class SupersededError(BookingError):
    """A newer load of the same date range started; this result was discarded."""

    code = "superseded"
    status_code = 409
    default_message = "A newer request for these appointments replaced this one."


ERRORS_BY_CODE: dict[str, type[BookingError]] = {
    cls.code: cls
    for cls in (
        BookingError,
        ConflictError,
        OutOfHoursError,
        NotFoundError,
        UnauthorizedError,
        ValidationError,
        NetworkError,
        MutationInProgressError,
        SupersededError,
    )
}
