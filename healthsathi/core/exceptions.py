"""
Exception taxonomy for the local store and the services built on it.
Every error carries a human readable message and a details mapping.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class StoreUnavailable(AppError):
    """Backing storage cannot be opened."""
    def __init__(self, message: str = "Failed to open database", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class DuplicateKey(AppError):
    """Primary key or unique index value already exists."""
    def __init__(self, message: str = "Duplicate key", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class NotFound(AppError):
    """Merge-update target does not exist."""
    def __init__(self, message: str = "Record not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class InvalidCredential(AppError):
    """Authentication failure error."""
    def __init__(self, message: str = "Invalid email or password.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class TransactionFailed(AppError):
    """Any other engine-level transaction error."""
    def __init__(self, message: str = "Transaction failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class InvalidAttachment(AppError):
    """Attachment payload is not a decodable data URI or base64 string."""
    def __init__(self, message: str = "Invalid attachment payload", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


def describe_error(exc: Exception) -> Dict[str, Any]:
    """Flatten an exception into a loggable mapping."""
    if isinstance(exc, AppError):
        return {
            "code": exc.__class__.__name__,
            "message": exc.message,
            "details": exc.details,
        }
    return {"code": exc.__class__.__name__, "message": str(exc), "details": {}}
