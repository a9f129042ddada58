"""Built-in metadata analyzers."""

import hashlib
import mimetypes
import os
from pathlib import PurePath
from typing import Any, BinaryIO, Final, Literal, final

import magic
from PIL import Image, UnidentifiedImageError

from server.apps.attachments.exceptions import InvalidFile
from server.apps.attachments.extraction.pipeline import Analyzer, UploadContext
from server.apps.attachments.metadata import FILENAME, MIME_TYPE, SIZE, Metadata

_CHUNK_SIZE: Final = 8192  # 8KB chunks for checksum calculation
_MAGIC_SAMPLE_BYTES: Final = 2048  # Enough for libmagic to identify type

MimeTypeSource = Literal['content', 'extension', 'header']


def analyze_size(
    io: BinaryIO,
    context: UploadContext,
    metadata: Metadata,
) -> dict[str, Any]:
    """Measure the stream length in bytes."""
    size = io.seek(0, os.SEEK_END)
    return {SIZE: size}


def analyze_filename(
    io: BinaryIO,
    context: UploadContext,
    metadata: Metadata,
) -> dict[str, Any]:
    """Take the filename from the context, else from the stream's name."""
    filename = context.filename
    if not filename:
        stream_name = getattr(io, 'name', None)
        if isinstance(stream_name, str) and stream_name:
            filename = PurePath(stream_name).name
    return {FILENAME: filename or None}


@final
class MimeTypeAnalyzer:
    """Determine the MIME type of an upload.

    Sources:
        content: sniff the first bytes with libmagic (python-magic).
        extension: look up the filename extension with mimetypes.
        header: trust the Content-Type supplied by the client.
    """

    def __init__(self, source: MimeTypeSource = 'extension') -> None:
        """Initialize analyzer.

        Args:
            source: Where the MIME type comes from.

        Raises:
            ValueError: If source is unknown.
        """
        if source not in {'content', 'extension', 'header'}:
            raise ValueError(f'Unknown MIME type source: {source!r}')
        self.source = source

    def __call__(
        self,
        io: BinaryIO,
        context: UploadContext,
        metadata: Metadata,
    ) -> dict[str, Any]:
        if self.source == 'content':
            mime_type = detect_mime_type_from_content(io)
        elif self.source == 'extension':
            mime_type = detect_mime_type_from_filename(
                metadata.filename or context.filename,
            )
        else:
            mime_type = context.content_type or None
        return {MIME_TYPE: mime_type}


def detect_mime_type_from_content(io: BinaryIO) -> str | None:
    """Sniff MIME type from the leading bytes.

    Args:
        io: Stream positioned at the start.

    Returns:
        MIME type (e.g., 'image/png'), or None for empty streams.
    """
    sample = io.read(_MAGIC_SAMPLE_BYTES)
    if not sample:
        return None
    return magic.from_buffer(sample, mime=True)


def detect_mime_type_from_filename(filename: str | None) -> str | None:
    """Guess MIME type from a filename extension.

    Args:
        filename: Filename with extension, or None.

    Returns:
        MIME type, or None if unknown or there is no filename.
    """
    if not filename:
        return None
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type


@final
class ChecksumAnalyzer:
    """Hash the content in chunks, stored under the algorithm name."""

    def __init__(self, algorithm: str = 'sha256') -> None:
        """Initialize analyzer.

        Args:
            algorithm: Any hashlib algorithm name (e.g., 'sha256', 'md5').
        """
        hashlib.new(algorithm)  # Fail early on unknown algorithms
        self.algorithm = algorithm

    def __call__(
        self,
        io: BinaryIO,
        context: UploadContext,
        metadata: Metadata,
    ) -> dict[str, Any]:
        return {self.algorithm: calculate_checksum(io, self.algorithm)}


def calculate_checksum(io: BinaryIO, algorithm: str = 'sha256') -> str:
    """Calculate a hex checksum of a stream.

    Reads in chunks to handle large files efficiently.

    Args:
        io: Stream positioned at the start.
        algorithm: hashlib algorithm name.

    Returns:
        Hex-encoded digest.
    """
    digest = hashlib.new(algorithm)
    for chunk in iter(lambda: io.read(_CHUNK_SIZE), b''):
        digest.update(chunk)
    return digest.hexdigest()


@final
class DimensionsAnalyzer:
    """Store image ``width`` and ``height`` using Pillow.

    Pillow only parses the image header here; pixel data is not decoded.
    Uploads already known to be non-images are skipped.
    """

    def __init__(self, strict: bool = True) -> None:
        """Initialize analyzer.

        Args:
            strict: Reject uploads whose image data cannot be read.
                When False such uploads simply get no dimensions.
        """
        self.strict = strict

    def __call__(
        self,
        io: BinaryIO,
        context: UploadContext,
        metadata: Metadata,
    ) -> dict[str, Any]:
        mime_type = metadata.mime_type
        if mime_type and not mime_type.startswith('image/'):
            return {}

        try:
            width, height = extract_dimensions(io)
        except InvalidFile:
            if self.strict:
                raise
            return {}
        return {'width': width, 'height': height}


def extract_dimensions(io: BinaryIO) -> tuple[int, int]:
    """Read image dimensions from a stream.

    Args:
        io: Stream positioned at the start.

    Returns:
        (width, height) in pixels.

    Raises:
        InvalidFile: If the stream is not a readable image.
    """
    try:
        with Image.open(io) as image:
            return image.size
    except (UnidentifiedImageError, OSError) as error:
        raise InvalidFile(f'Could not read image dimensions: {error}') from error


def default_analyzers(
    mime_type_source: MimeTypeSource = 'extension',
) -> list[Analyzer]:
    """Analyzers every uploader runs unless configured otherwise.

    Args:
        mime_type_source: Where the MIME type comes from.

    Returns:
        [filename, size, MIME type] analyzers.
    """
    return [
        analyze_filename,
        analyze_size,
        MimeTypeAnalyzer(mime_type_source),
    ]
