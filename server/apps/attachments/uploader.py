"""Uploader: extract metadata, pick a location, write bytes."""

import contextlib
import io
import logging
import mimetypes
import tempfile
import uuid
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import PurePath
from typing import Any, BinaryIO, Final, override

from django.core.files.base import File as DjangoFile

from server.apps.attachments.extraction.analyzers import default_analyzers
from server.apps.attachments.extraction.pipeline import (
    MetadataExtractor,
    UploadContext,
)
from server.apps.attachments.metadata import Metadata
from server.apps.attachments.storage.base import copy_stream
from server.apps.attachments.storage.registry import StorageRegistry
from server.apps.attachments.uploaded_file import UploadedFile

CACHE: Final = 'cache'
STORE: Final = 'store'

# Non-seekable streams are spooled to memory up to this size, then to disk
_SPOOL_MAX_SIZE: Final = 10 * 1024 * 1024

Uploadable = bytes | bytearray | BinaryIO | DjangoFile | UploadedFile

logger = logging.getLogger(__name__)


class Uploader:
    """Turns content into an UploadedFile on a registered storage.

    Subclass and override ``generate_location`` for structured ids
    (see DatePartitionedUploader).
    """

    def __init__(
        self,
        registry: StorageRegistry,
        extractor: MetadataExtractor | None = None,
        cache_key: str = CACHE,
        store_key: str = STORE,
    ) -> None:
        """Initialize uploader.

        Args:
            registry: Storage registry to resolve keys with.
            extractor: Metadata pipeline (defaults to filename, size and
                extension-based MIME type).
            cache_key: Storage key for freshly attached files.
            store_key: Storage key for promoted files.

        Raises:
            ConfigurationError: If cache or store storage is missing.
        """
        registry.require(cache_key, store_key)
        self.registry = registry
        self.extractor = extractor or MetadataExtractor(default_analyzers())
        self.cache_key = cache_key
        self.store_key = store_key

    def upload(
        self,
        content: Uploadable,
        storage_key: str,
        context: UploadContext | None = None,
    ) -> UploadedFile:
        """Upload content to the storage registered under storage_key.

        Metadata is extracted (and validated) before anything is written,
        so a rejected upload leaves no object behind.

        Args:
            content: Bytes, binary stream, Django File, or an existing
                uploaded file (copied with its metadata).
            storage_key: Target storage key.
            context: Filename/content type supplied by the caller.

        Returns:
            Reference to the new object.

        Raises:
            ConfigurationError: If storage_key is not registered.
            InvalidFile: If extraction rejects the content.
            StorageError: If the backend write fails.
        """
        storage = self.registry.resolve(storage_key)
        if isinstance(content, UploadedFile):
            return self._transfer(content, storage_key, move=False)

        context = _build_context(content, context)
        with _as_stream(content) as stream:
            metadata = self.extractor.extract(stream, context)
            file_id = self.generate_location(stream, metadata, context)
            logger.info('Uploading to %s: %s', storage_key, file_id)
            storage.upload(stream, file_id, metadata=metadata)

        return UploadedFile(file_id, storage_key, metadata, self.registry)

    def move(
        self,
        uploaded_file: UploadedFile,
        to_storage_key: str,
        delete_source: bool = True,
    ) -> UploadedFile:
        """Move an uploaded file to another storage under a new id.

        Backends rename when source and target are the same backend;
        otherwise bytes are copied and (by default) the source object
        is deleted afterwards.

        Args:
            uploaded_file: File to move.
            to_storage_key: Target storage key.
            delete_source: Remove the source object after a copy.

        Returns:
            Reference to the moved file, with the same metadata.

        Raises:
            FileNotFound: If the source object is gone.
            StorageError: If the backend write fails.
        """
        return self._transfer(
            uploaded_file,
            to_storage_key,
            move=True,
            delete_source=delete_source,
        )

    def generate_location(
        self,
        io: BinaryIO | UploadedFile | None,
        metadata: Metadata,
        context: UploadContext,
    ) -> str:
        """Generate a unique id for a new object.

        Args:
            io: Upload stream (or the file being moved).
            metadata: Extracted metadata.
            context: Upload context.

        Returns:
            Random hex token, suffixed with '.ext' when known.
        """
        extension = infer_extension(metadata)
        token = uuid.uuid4().hex
        if extension:
            return f'{token}.{extension}'
        return token

    def _transfer(
        self,
        uploaded_file: UploadedFile,
        to_storage_key: str,
        move: bool,
        delete_source: bool = False,
    ) -> UploadedFile:
        source = uploaded_file
        if source.registry is None:
            source = source.bind(self.registry)
        target = self.registry.resolve(to_storage_key)
        context = UploadContext(
            filename=source.original_filename,
            content_type=source.mime_type,
        )
        file_id = self.generate_location(source, source.metadata, context)
        renamed = move and target.is_same_storage(source)

        logger.info(
            '%s %s:%s -> %s:%s',
            'Moving' if move else 'Copying',
            source.storage_key,
            source.id,
            to_storage_key,
            file_id,
        )
        target.upload(source, file_id, move=move, metadata=source.metadata)
        if move and delete_source and not renamed:
            source.delete()

        return UploadedFile(file_id, to_storage_key, source.metadata, self.registry)


class DatePartitionedUploader(Uploader):
    """Uploader that places objects under 'YYYY/MM/DD/' directories."""

    @override
    def generate_location(
        self,
        io: BinaryIO | UploadedFile | None,
        metadata: Metadata,
        context: UploadContext,
    ) -> str:
        name = super().generate_location(io, metadata, context)
        today = datetime.now(tz=UTC)
        return f'{today:%Y/%m/%d}/{name}'


def infer_extension(metadata: Metadata) -> str | None:
    """Pick an id extension from the filename, else from the MIME type.

    Args:
        metadata: Extracted metadata.

    Returns:
        Extension without dot, or None.
    """
    extension = metadata.extension
    if extension:
        return extension
    if metadata.mime_type:
        guessed = mimetypes.guess_extension(metadata.mime_type)
        if guessed:
            return guessed.lstrip('.')
    return None


def _build_context(content: Any, context: UploadContext | None) -> UploadContext:
    """Fill filename/content type from Django upload objects when missing."""
    context = context or UploadContext()
    filename = context.filename
    content_type = context.content_type
    if isinstance(content, DjangoFile):
        if not filename and content.name:
            filename = PurePath(content.name).name
        if not content_type:
            content_type = getattr(content, 'content_type', None)
    if (filename, content_type) == (context.filename, context.content_type):
        return context
    return UploadContext(filename, content_type, context.options)


@contextlib.contextmanager
def _as_stream(content: Any) -> Iterator[BinaryIO]:
    """Yield a seekable binary stream for any supported content.

    Caller-owned streams are never closed here; temporary copies are.
    """
    if isinstance(content, bytes | bytearray):
        yield io.BytesIO(content)
        return

    if not hasattr(content, 'read'):
        raise TypeError(f'Cannot upload object of type {type(content).__name__}')

    if _is_seekable(content):
        yield content
        return

    with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_SIZE) as spooled:
        copy_stream(content, spooled)
        spooled.seek(0)
        yield spooled  # type: ignore[misc]


def _is_seekable(content: Any) -> bool:
    seekable = getattr(content, 'seekable', None)
    if seekable is None:
        return hasattr(content, 'seek')
    return bool(seekable())
