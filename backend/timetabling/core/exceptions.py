class AppError(Exception):
    """Base class for all timetabling engine exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class FormatError(AppError, ValueError):
    """Raised when a wall-clock time string is malformed."""
    def __init__(self, value: str, details: dict = None):
        super().__init__(f"Time {value!r} must be in HH:MM 24-hour format", status_code=422, details=details)
        self.value = value

class NoActiveTimetableError(AppError):
    """Raised when an operation needs a current timetable and there is none."""
    def __init__(self, operation: str):
        super().__init__(f"Cannot {operation}: no active timetable", status_code=409)
        self.operation = operation

class NotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)
        self.resource_type = resource_type
        self.resource_id = resource_id

class GenerationInProgressError(AppError):
    """Raised when a generation is requested while another one is in flight."""
    def __init__(self, timetable_id: str | None = None):
        super().__init__(
            "A timetable generation is already in progress",
            status_code=409,
            details={"timetable_id": timetable_id} if timetable_id else None,
        )

class GenerationFailure(AppError):
    """Raised when the external generation call fails or returns unusable slots."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=502, details=details)

class ConfigurationError(AppError):
    """Raised when engine configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
