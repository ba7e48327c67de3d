"""Domain error taxonomy.

Four families a caller can tell apart:

- validation errors (422): bad input, never worth retrying as-is
- state conflicts (409): the entity moved on; refresh and retry
- not-found / permission errors (404 / 403)
- integration failures (502): the settlement layer could not be reached

``PRICE_TOO_LOW`` is deliberately absent: it is a business outcome returned
as data, see ``rentchain.services.booking_service.BookingResult``.
"""


class DomainError(Exception):
    status_code = 400
    code = "DOMAIN_ERROR"

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> dict:
        out = {"error": self.code, "detail": self.message}
        if self.context:
            out["context"] = self.context
        return out


class ValidationError(DomainError):
    status_code = 422
    code = "VALIDATION_ERROR"


class FixedSeverityError(ValidationError):
    code = "FIXED_SEVERITY"


class NotFoundError(DomainError):
    status_code = 404
    code = "NOT_FOUND"


class PermissionDeniedError(DomainError):
    status_code = 403
    code = "FORBIDDEN"


class StateConflictError(DomainError):
    status_code = 409
    code = "STATE_CONFLICT"


class InvalidTransitionError(StateConflictError):
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, action: str, message: str = ""):
        super().__init__(
            message or f"cannot {action} a booking in status {current}",
            current=current,
            action=action,
        )
        self.current = current
        self.action = action


class NegotiationExpiredError(StateConflictError):
    code = "NEGOTIATION_EXPIRED"


class ActiveBookingExistsError(StateConflictError):
    code = "ACTIVE_BOOKING_EXISTS"


class DuplicateReclamationError(StateConflictError):
    code = "DUPLICATE_RECLAMATION"


class ConcurrentModificationError(StateConflictError):
    code = "CONCURRENT_MODIFICATION"


class SettlementError(DomainError):
    status_code = 502
    code = "SETTLEMENT_FAILED"
