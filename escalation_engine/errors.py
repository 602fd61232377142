"""
Error taxonomy for the Escalation Engine.

Every error raised to a caller carries a human-readable message and
the HTTP status code the API layer answers with.
"""

from typing import Optional

from .models import ReasonCode


class EngineError(Exception):
    """Base class for classified engine errors."""

    status_code = 500
    error_code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"success": False, "error": self.error_code, "message": self.message}


class Unauthenticated(EngineError):
    """Missing, malformed, expired, revoked or foreign credential."""

    status_code = 401
    error_code = "unauthenticated"

    def __init__(self, message: str, reason: ReasonCode = ReasonCode.INVALID):
        super().__init__(message)
        self.reason = reason

    def to_dict(self):
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data


class Forbidden(EngineError):
    status_code = 403
    error_code = "forbidden"


class ValidationError(EngineError):
    status_code = 400
    error_code = "validation_error"


class UnroutableDepartment(ValidationError):
    """No supervisor is configured for the requested department."""

    error_code = "unroutable_department"

    def __init__(self, department: str):
        super().__init__(
            f'There is no supervisor assigned for the "{department}" department. '
            "Please assign a supervisor in the Employees section."
        )
        self.department = department


class NotFound(EngineError):
    status_code = 404
    error_code = "not_found"


class Conflict(EngineError):
    status_code = 409
    error_code = "conflict"


class UpstreamFailure(EngineError):
    """Identity provider or record store unavailable after retries."""

    status_code = 500
    error_code = "upstream_failure"

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class UpstreamTimeout(UpstreamFailure):
    error_code = "upstream_timeout"
