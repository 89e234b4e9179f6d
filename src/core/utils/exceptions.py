class AppError(Exception):
    """Base exception for application errors."""

    pass


class ValidationError(AppError, ValueError):
    """Raised when a request is rejected before touching storage."""

    pass


class StorageError(AppError):
    """Raised when the storage engine is unreachable or rejects an operation."""

    def __init__(self, message: str = "Storage operation failed", operation: str = None):
        self.operation = operation
        super().__init__(message)
