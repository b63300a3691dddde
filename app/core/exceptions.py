"""Custom exception hierarchy."""

from typing import Any, Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error=original_error)
        self.status_code = status_code


class TransientRemoteError(APIClientError):
    """Timeouts, connection failures, 5xx and 429 responses."""
    pass


class APITimeoutError(TransientRemoteError):
    """Raised when an external API call times out."""
    pass


class PermanentRemoteError(APIClientError):
    """4xx responses other than 429."""
    pass


class RunFailedError(AppError):
    """A run ended in failed, cancelled or expired."""

    def __init__(self, message: str, run_status: str, code: Optional[str] = None):
        super().__init__(message)
        self.run_status = run_status
        self.code = code


class ContractViolationError(AppError):
    """The model did not return results through the structured callback."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class DocumentNotReadyError(ValidationError):
    """Raised when a document is not ready for analysis."""
    pass


class DuplicateResourceError(AppError):
    """Raised when an identical, still active upload already exists."""

    def __init__(self, existing: Any, message: str = "File already exists"):
        super().__init__(message)
        self.existing = existing


class CleanupError(AppError):
    """Raised when retiring a single resource fails."""
    pass


class NotFoundError(AppError):
    """Raised when a requested record does not exist for the caller."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass
