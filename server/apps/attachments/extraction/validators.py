"""Validators: analyzers that reject uploads instead of adding metadata.

Place them after the analyzers whose output they check, e.g.::

    MetadataExtractor([
        *default_analyzers('content'),
        DimensionsAnalyzer(),
        SizeValidator(max_bytes=5 * 1024 * 1024),
        ContentTypeValidator(accept=['image/*']),
        DimensionsValidator(width=range(100, 2001)),
    ])
"""

from collections.abc import Iterable
from fnmatch import fnmatchcase
from typing import BinaryIO, final

from server.apps.attachments.exceptions import InvalidFile
from server.apps.attachments.extraction.pipeline import UploadContext
from server.apps.attachments.metadata import Metadata

Dimension = int | range


@final
class SizeValidator:
    """Reject uploads outside a byte size range."""

    def __init__(
        self,
        max_bytes: int | None = None,
        min_bytes: int | None = None,
        message: str | None = None,
    ) -> None:
        """Initialize validator.

        Args:
            max_bytes: Maximum allowed size, inclusive.
            min_bytes: Minimum allowed size, inclusive.
            message: Replaces the default rejection reason.
        """
        self.max_bytes = max_bytes
        self.min_bytes = min_bytes
        self.message = message

    def __call__(
        self,
        io: BinaryIO,
        context: UploadContext,
        metadata: Metadata,
    ) -> None:
        size = metadata.size
        if size is None:
            return
        if self.max_bytes is not None and size > self.max_bytes:
            raise InvalidFile(
                self.message
                or f'File is too large ({size} bytes, maximum is {self.max_bytes} bytes)',
            )
        if self.min_bytes is not None and size < self.min_bytes:
            raise InvalidFile(
                self.message
                or f'File is too small ({size} bytes, minimum is {self.min_bytes} bytes)',
            )


@final
class ContentTypeValidator:
    """Accept or reject uploads by MIME type; supports wildcards like 'image/*'.

    Uploads whose MIME type could not be determined are not checked.
    """

    def __init__(
        self,
        accept: Iterable[str] | None = None,
        reject: Iterable[str] | None = None,
        message: str | None = None,
    ) -> None:
        """Initialize validator.

        Args:
            accept: Allowed patterns; uploads must match one of them.
            reject: Forbidden patterns.
            message: Replaces the default rejection reason.
        """
        self.accept = tuple(accept) if accept is not None else None
        self.reject = tuple(reject or ())
        self.message = message

    def __call__(
        self,
        io: BinaryIO,
        context: UploadContext,
        metadata: Metadata,
    ) -> None:
        mime_type = metadata.mime_type
        if mime_type is None:
            return
        if self.accept is not None and not _matches_any(mime_type, self.accept):
            raise InvalidFile(
                self.message or f'Content type {mime_type!r} is not allowed',
            )
        if _matches_any(mime_type, self.reject):
            raise InvalidFile(
                self.message or f'Content type {mime_type!r} is forbidden',
            )


@final
class DimensionsValidator:
    """Check image width/height (from DimensionsAnalyzer) against limits.

    Each limit is an exact pixel count or a range of allowed values.
    Uploads without dimensions are not checked.
    """

    def __init__(
        self,
        width: Dimension | None = None,
        height: Dimension | None = None,
        message: str | None = None,
    ) -> None:
        self.width = width
        self.height = height
        self.message = message

    def __call__(
        self,
        io: BinaryIO,
        context: UploadContext,
        metadata: Metadata,
    ) -> None:
        for name, limit in (('width', self.width), ('height', self.height)):
            actual = metadata.get(name)
            if limit is None or actual is None:
                continue
            if not _within(int(actual), limit):
                raise InvalidFile(self.message or _dimension_reason(name, limit))


def _matches_any(mime_type: str, patterns: Iterable[str]) -> bool:
    return any(fnmatchcase(mime_type, pattern) for pattern in patterns)


def _within(actual: int, limit: Dimension) -> bool:
    if isinstance(limit, range):
        return actual in limit
    return actual == limit


def _dimension_reason(name: str, limit: Dimension) -> str:
    if isinstance(limit, range):
        return (
            f'Image {name} must be between {limit.start} and '
            f'{limit.stop - 1} pixels'
        )
    return f'Image {name} must be {limit} pixels'
