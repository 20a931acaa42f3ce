"""
Outcome taxonomy for admission and cancellation.

Every rejection is an AdmissionError carrying:
  - code: stable machine-readable category (NOT_FOUND, CONFLICT, ...)
  - reason: finer stable code (SLOT_NOT_AVAILABLE, MAX_BOOKINGS_REACHED, ...)
  - message: human-readable text, safe to show to the caller
  - status_code: HTTP status used by the API layer

Rejections are raised, never returned, and the API layer renders them
uniformly. They also cross the FCFS queue as plain dicts (to_payload /
from_payload) so a worker's rejection reaches the waiting caller intact.
"""

from typing import Optional


class AdmissionError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500
    default_reason = "INTERNAL_ERROR"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason

    def to_payload(self) -> dict:
        return {
            "code": self.code,
            "reason": self.reason,
            "message": self.message,
            "status_code": self.status_code,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "AdmissionError":
        error_cls = _BY_CODE.get(payload.get("code"), Internal)
        return error_cls(payload.get("message", "An unexpected error occurred"), payload.get("reason"))

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(reason={self.reason}, message={self.message!r})>"


class NotFound(AdmissionError):
    code = "NOT_FOUND"
    status_code = 404
    default_reason = "NOT_FOUND"

    @classmethod
    def resource(cls, name: str) -> "NotFound":
        return cls(f"{name} not found", f"{name.upper()}_NOT_FOUND")


class InvalidRequest(AdmissionError):
    code = "INVALID_REQUEST"
    status_code = 400
    default_reason = "INVALID_INPUT"


class Forbidden(AdmissionError):
    code = "FORBIDDEN"
    status_code = 403
    default_reason = "FORBIDDEN"


class Conflict(AdmissionError):
    code = "CONFLICT"
    status_code = 409
    default_reason = "CONFLICT"


class RateLimited(AdmissionError):
    code = "RATE_LIMITED"
    status_code = 429
    default_reason = "RATE_LIMIT_EXCEEDED"

    def __init__(self, retry_after: int, message: Optional[str] = None, decision=None):
        super().__init__(
            message or f"Too many requests. Please try again in {retry_after} seconds."
        )
        self.retry_after = retry_after
        # RateLimitDecision, so the API layer can still emit X-RateLimit-* headers
        self.decision = decision


class Unauthorized(AdmissionError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_reason = "UNAUTHORIZED"


class BookingTimeout(AdmissionError):
    code = "BOOKING_TIMEOUT"
    status_code = 504
    default_reason = "QUEUE_WAIT_TIMEOUT"


class Internal(AdmissionError):
    pass


_BY_CODE = {
    cls.code: cls
    for cls in (NotFound, InvalidRequest, Forbidden, Conflict, Unauthorized, BookingTimeout, Internal)
}
