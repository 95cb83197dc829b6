"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # This is your base class - DON'T raise it directly! Always use a specific subclass so callers
    # can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvalidStateException(DomainException):
    """Raised when a component is in an invalid state for the requested operation."""

    pass


class ScanInProgressError(InvalidStateException):
    """Raised when a scan is requested while another scan is still running.

    Hey future me - the scanner is single-flight per instance. A second caller is
    rejected immediately, NOT queued. Background polling catches this and simply
    tries again on the next tick.
    """

    def __init__(self, folder_path: str | None = None) -> None:
        super().__init__("Scan already in progress")
        self.folder_path = folder_path


class CatalogUnavailableError(DomainException):
    """The catalog store could not be opened or created.

    This is the ONLY fatal error of the library subsystem - it propagates out of
    init() and there is no internal recovery.
    """

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"Catalog store unavailable at {location}: {reason}")
        self.location = location
        self.reason = reason


class TagReadError(DomainException):
    """Tags could not be read from an audio file.

    Recoverable per-file error: the scanner counts it and moves on.
    """

    def __init__(self, file_path: str, reason: str) -> None:
        super().__init__(f"Cannot read tags from {file_path}: {reason}")
        self.file_path = file_path
        self.reason = reason


class TagWriteError(DomainException):
    """Tags could not be written into an audio file. The catalog row is left untouched."""

    def __init__(self, file_path: str, reason: str) -> None:
        super().__init__(f"Cannot write tags to {file_path}: {reason}")
        self.file_path = file_path
        self.reason = reason


__all__ = [
    "DomainException",
    "EntityNotFoundException",
    "InvalidStateException",
    "ScanInProgressError",
    "CatalogUnavailableError",
    "TagReadError",
    "TagWriteError",
]
