"""Domain exceptions raised by the reservation engine and its components."""


class ReservationError(Exception):
    """Base domain error carrying a machine-readable code."""

    code = "RESERVATION_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidDate(ReservationError):
    code = "INVALID_DATE"

    def __init__(self, date: str):
        self.date = date
        super().__init__(f"Invalid date '{date}', expected MM/DD/YYYY")


class UnknownService(ReservationError):
    code = "UNKNOWN_SERVICE"

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"Service '{service_id}' not found")


class DuplicateService(ReservationError):
    code = "DUPLICATE_SERVICE"

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"Service '{service_id}' already exists")


class BookingNotFound(ReservationError):
    code = "NOT_FOUND"

    def __init__(self, pnr: str):
        self.pnr = pnr
        super().__init__(f"PNR '{pnr}' not found")


class AlreadyCancelled(ReservationError):
    code = "ALREADY_CANCELLED"

    def __init__(self, pnr: str):
        self.pnr = pnr
        super().__init__(f"Booking '{pnr}' is already cancelled")


class InvalidTransition(ReservationError):
    code = "INVALID_TRANSITION"

    def __init__(self, pnr: str, current: str, requested: str):
        self.pnr = pnr
        self.current = current
        self.requested = requested
        super().__init__(f"Booking '{pnr}' cannot move from {current} to {requested}")


class InsufficientCapacity(ReservationError):
    """Internal signal used to route a request to the waitlist."""

    code = "INSUFFICIENT_CAPACITY"


class PaymentDeclined(ReservationError):
    code = "PAYMENT_DECLINED"

    def __init__(self, amount, pnr=None):
        self.pnr = pnr
        self.amount = amount
        suffix = f" for PNR '{pnr}'" if pnr else ""
        super().__init__(f"Payment of {amount} declined{suffix}")


class InvalidPassenger(ReservationError):
    code = "INVALID_PASSENGER"


class CorruptedCounter(ReservationError):
    code = "CORRUPTED_COUNTER"


class CorruptedRecord(ReservationError):
    code = "CORRUPTED_RECORD"

    def __init__(self, record: str, reason: str):
        self.record = record
        self.reason = reason
        super().__init__(f"Corrupted record ({reason}): {record!r}")


class AuthenticationFailed(ReservationError):
    code = "AUTHENTICATION_FAILED"


class PermissionDenied(ReservationError):
    code = "PERMISSION_DENIED"


class PersistenceFailed(ReservationError):
    """The snapshot store rejected a save; the operation was rolled back."""

    code = "PERSISTENCE_FAILED"
