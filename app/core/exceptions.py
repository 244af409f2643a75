"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register one handler against
``PulseError`` and get consistent HTTP status codes everywhere.

Every error carries a stable ``kind`` and a human-readable message.
Storage details never reach the HTTP response.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Complaint", resource_id=complaint_id)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class PulseError(Exception):
    """Base class for every error the service layer raises on purpose."""

    kind = "error"
    http_status = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(PulseError):
    """Malformed or missing input. User-fixable.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    kind = "validation_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ForbiddenError(PulseError):
    """Caller is authenticated but not allowed to perform this action."""

    kind = "forbidden"
    http_status = 403

    def __init__(self, message: str = "You are not allowed to perform this action",
                 *, action: str | None = None, user_id: str | None = None) -> None:
        self.action = action
        self.user_id = user_id
        super().__init__(message)


class NotFoundError(PulseError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Complaint", "Assignee").
        resource_id: The id that was looked up.
    """

    kind = "not_found"
    http_status = 404

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ConflictError(PulseError):
    """Valid request, but the entity's current state disallows it.

    Args:
        message: Human-readable explanation.
        current_state: State that blocked the operation (e.g. "CLOSED").
    """

    kind = "conflict"
    http_status = 409

    def __init__(self, message: str, current_state: str | None = None) -> None:
        self.current_state = current_state
        super().__init__(message)


class StorageError(PulseError):
    """Transaction or commit failure. Not user-actionable."""

    kind = "storage_error"
    http_status = 500

    def __init__(self, message: str = "The operation could not be saved") -> None:
        super().__init__(message)
