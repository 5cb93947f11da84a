class AppError(Exception):
    """Base class for all application exceptions."""

    code = "UNKNOWN"

    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class DomainValidationError(AppError):
    """Raised for field-level validation failures; `details` maps field names to messages."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class NotEditableError(AppError):
    """Raised when the draft lifecycle forbids a mutation."""

    code = "NOT_EDITABLE"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class AssignmentConflictError(AppError):
    """Raised when a resource or teacher is contended by another booking."""

    code = "CONFLICT"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""

    code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class PermissionDeniedError(AppError):
    code = "PERMISSION_DENIED"

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class RateLimitedError(AppError):
    code = "RATE_LIMITED"

    def __init__(self, scope: str, retry_after: int):
        super().__init__(
            f"Too many requests for {scope}. Try again in {retry_after} second(s).",
            status_code=429,
            details={"retry_after": retry_after},
        )
        self.retry_after = retry_after
