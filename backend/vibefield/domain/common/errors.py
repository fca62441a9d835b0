"""Domain error types."""
from typing import Optional


class DomainError(Exception):
    """Base domain error."""
    pass


class ValidationError(DomainError):
    """Validation error."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidPositionError(ValidationError):
    """Coordinates are non-finite or outside lat/lng range."""
    def __init__(self, lat: float, lng: float):
        self.lat = lat
        self.lng = lng
        super().__init__(f"Invalid position lat={lat!r} lng={lng!r}")


class AuthorizationError(DomainError):
    """Authorization error."""
    def __init__(self, message: str = "Not authorized"):
        self.message = message
        super().__init__(message)


class StorageUnavailableError(DomainError):
    """Storage timed out or the connection dropped. Callers decide whether to retry."""
    def __init__(self, operation: str, cause: Optional[BaseException] = None, retry_after_s: int = 2):
        self.operation = operation
        self.cause = cause
        self.retry_after_s = retry_after_s
        self.message = f"Storage unavailable during {operation}"
        super().__init__(self.message)
