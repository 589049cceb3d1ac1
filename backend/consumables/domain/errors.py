class DomainError(Exception):
    """Base domain error with a user-facing message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PermissionDenied(DomainError):
    """Raised when the user has insufficient permissions."""


class InvalidRequest(DomainError):
    """Raised when the submitted input fails validation."""


class InvalidTransition(DomainError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current, requested) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"'{current.value}' 상태에서 '{requested.value}'(으)로 변경할 수 없습니다.")


class StorageError(Exception):
    """Raised when the backing store cannot be read or written."""
