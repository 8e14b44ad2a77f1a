"""
Invoice Archive Hub - SharePoint Archive Errors

Exception types raised by the archive core. Every error carries a message,
an optional HTTP status code and a details dict so routes and the CLI can
report failures uniformly.
"""

from typing import Dict, Optional


class ArchiveError(Exception):
    """Base exception for SharePoint archive errors."""
    def __init__(self, message: str, status_code: int = None, details: Dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class AuthError(ArchiveError):
    """Raised when no access token can be obtained."""
    pass


class MissingParameterError(ArchiveError):
    """Raised when required identifiers (site, drive, table, ...) are absent."""
    pass


class StorageError(ArchiveError):
    """Raised when the durable store cannot read or write a path."""
    pass


class RowValidationError(ArchiveError):
    """Raised when row input has no supported shape or the table schema is unusable."""
    pass


# Graph error codes that mean "an item with this name is already there"
CONFLICT_ERROR_CODES = ("nameAlreadyExists",)


class GraphRequestError(ArchiveError):
    """
    A Microsoft Graph request answered with a non-success status.

    ``conflict`` is True when Graph reported that the target name is taken
    (HTTP 409 or error code ``nameAlreadyExists``).
    """
    def __init__(
        self,
        message: str,
        status_code: int = None,
        details: Dict = None,
        code: Optional[str] = None,
        conflict: bool = None
    ):
        super().__init__(message, status_code=status_code, details=details)
        self.code = code
        if conflict is None:
            conflict = status_code == 409 or code in CONFLICT_ERROR_CODES
        self.conflict = conflict


class UploadError(GraphRequestError):
    """Raised when Graph rejects a file upload."""
    pass


class CollisionExhaustedError(ArchiveError):
    """Raised when every allowed candidate name collided."""
    def __init__(self, base_name: str, extension: str, attempts: int):
        self.base_name = base_name
        self.extension = extension
        self.attempts = attempts
        super().__init__(
            f"too many name collisions for {base_name}{extension} ({attempts} attempts)",
            details={"base_name": base_name, "extension": extension, "attempts": attempts}
        )
