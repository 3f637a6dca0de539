"""
Error hierarchy for the experiments / pricing service.

Every error carries a machine readable ``code`` and the HTTP status the API
layer renders it with. Services raise these; the handlers registered in
app.main turn them into ``{"error": ..., "code": ...}`` responses.
"""

from starlette import status


class ExperimentPlatformError(Exception):
    code = "INTERNAL_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: str | None = None, http_status: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status

    def to_response(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(ExperimentPlatformError):
    """Malformed input, rejected before any side effect."""

    code = "VALIDATION_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST


class InvalidIdentityError(ValidationError):
    code = "INVALID_IDENTITY"


class NotFoundError(ExperimentPlatformError):
    code = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND


class StateError(ExperimentPlatformError):
    """The resource exists but is in the wrong state for the operation."""

    code = "INVALID_STATE"
    http_status = status.HTTP_409_CONFLICT


class NotActiveError(StateError):
    code = "NOT_ACTIVE"
    http_status = status.HTTP_400_BAD_REQUEST


class NoVariantsError(StateError):
    """Experiment has no variants or no traffic weight: a configuration error."""

    code = "NO_VARIANTS"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
