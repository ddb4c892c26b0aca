"""Error taxonomy shared by the HTTP surface, the API client and the
booking lifecycle engine.

Three families distinguish *why* an operation failed:

- ``ValidationError``: the caller's input is malformed or missing. Raised
  before any remote call and never retried.
- ``NotAllowedError``: a policy rejection (wrong day, outside the booking
  window, terminal booking). Not a fault; the caller may try again later.
- ``RemoteOperationError``: the document store or backend failed. The
  underlying message is carried verbatim so it can be shown to the user.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code = 400
    code = "app_error"
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid input"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


# -------------------------------
# Policy rejections
# -------------------------------

class NotAllowedError(AppError):
    status_code = 409
    code = "not_allowed"
    default_message = "Operation not allowed"


class CheckInNotAllowedError(NotAllowedError):
    code = "check_in_not_allowed"
    default_message = "Check-in not allowed"


class TransitionNotAllowedError(NotAllowedError):
    code = "transition_not_allowed"
    default_message = "Booking is no longer ongoing"


# -------------------------------
# Remote faults
# -------------------------------

class RemoteOperationError(AppError):
    status_code = 502
    code = "remote_error"
    default_message = "Remote operation failed"


class ApiError(RemoteOperationError):
    """Non-2xx answer (or transport failure) from the booking backend."""

    code = "api_error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        if status_code is not None:
            self.status_code = status_code


class BookingFailedError(RemoteOperationError):
    code = "booking_failed"
    default_message = "Failed to book spot"


class CheckInFailedError(RemoteOperationError):
    code = "check_in_failed"
    default_message = "Failed to check in"


class CancelFailedError(RemoteOperationError):
    code = "cancel_failed"
    default_message = "Failed to cancel booking"


class ChangeTimingFailedError(RemoteOperationError):
    code = "change_timing_failed"
    default_message = "Failed to change timing"
