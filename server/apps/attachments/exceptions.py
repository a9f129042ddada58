"""Exceptions for attachments app."""

from typing import override

from django.core.exceptions import ImproperlyConfigured, ValidationError


class AttachmentError(Exception):
    """Base class for all attachment errors."""


class FileNotFound(AttachmentError):  # noqa: N818
    """Raised when a storage id has no backing object."""

    def __init__(self, file_id: str) -> None:
        """Initialize FileNotFound.

        Args:
            file_id: Storage id that could not be found.
        """
        self.file_id = file_id
        super().__init__(f'File {file_id!r} not found on storage')


class InvalidFile(AttachmentError, ValidationError):  # noqa: N818
    """Raised when an analyzer or validator rejects uploaded content.

    Subclasses Django's ValidationError so record layers can surface
    the reason as a form/field error instead of a retry prompt.
    """

    def __init__(self, reason: str) -> None:
        """Initialize InvalidFile.

        Args:
            reason: Human-readable rejection reason.
        """
        self.reason = reason
        super().__init__(reason, code='invalid_file')

    @override
    def __str__(self) -> str:
        """Return the rejection reason."""
        return self.reason


class ConfigurationError(AttachmentError, ImproperlyConfigured):
    """Raised when a storage key is unknown or a backend is missing."""


class StorageError(AttachmentError, OSError):
    """Raised when a storage backend fails to read or write.

    Treated as retryable by callers; nothing here retries automatically.
    """
