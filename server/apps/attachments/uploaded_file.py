"""Reference to one object held by a storage backend."""

import contextlib
import json
import logging
import tempfile
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import IO, TYPE_CHECKING, Any, BinaryIO, override

from server.apps.attachments.exceptions import ConfigurationError, InvalidFile
from server.apps.attachments.metadata import Metadata, get_extension
from server.apps.attachments.storage.base import copy_stream

if TYPE_CHECKING:
    from server.apps.attachments.storage.base import Storage
    from server.apps.attachments.storage.registry import StorageRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class UploadedFile:
    """Immutable ``{id, storage_key, metadata}`` reference.

    Two references are equal when id and storage_key match; metadata
    is informational only. The registry is how the reference finds its
    backend and is not part of its identity or serialized form.
    """

    id: str  # noqa: WPS125
    storage_key: str
    metadata: Metadata = field(default_factory=Metadata)
    registry: 'StorageRegistry | None' = field(default=None, repr=False)

    @override
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UploadedFile):
            return NotImplemented
        return (self.id, self.storage_key) == (other.id, other.storage_key)

    @override
    def __hash__(self) -> int:
        return hash((self.id, self.storage_key))

    @property
    def storage(self) -> 'Storage':
        """Backend holding this file.

        Raises:
            ConfigurationError: If the storage key is not registered.
        """
        if self.registry is None:
            raise ConfigurationError(
                f'Uploaded file {self.id!r} is not bound to a storage registry',
            )
        return self.registry.resolve(self.storage_key)

    @property
    def size(self) -> int | None:
        return self.metadata.size

    @property
    def mime_type(self) -> str | None:
        return self.metadata.mime_type

    @property
    def content_type(self) -> str | None:
        return self.metadata.mime_type

    @property
    def original_filename(self) -> str | None:
        return self.metadata.filename

    @property
    def extension(self) -> str | None:
        """Extension from the id, falling back to the original filename."""
        return get_extension(self.id) or get_extension(self.original_filename)

    @contextlib.contextmanager
    def open(self) -> Iterator[BinaryIO]:
        """Open the stored content for reading.

        Most backends return a lazy stream that fetches content while
        it is being read. The stream is closed when the block exits.

        Yields:
            Readable binary stream.

        Raises:
            FileNotFound: If the object no longer exists.
        """
        stream = self.storage.open(self.id)
        try:
            yield stream
        finally:
            stream.close()

    def read(self) -> bytes:
        """Read the whole content into memory."""
        with self.open() as stream:
            return stream.read()

    def stream(self, destination: IO[bytes]) -> int:
        """Copy content into a writable file object in chunks.

        Args:
            destination: Writable binary file object.

        Returns:
            Number of bytes written.
        """
        with self.open() as source:
            return copy_stream(source, destination)

    @contextlib.contextmanager
    def download(self) -> Iterator[IO[bytes]]:
        """Stream content into a temporary file and yield it.

        The temp file keeps the reference's extension (none when there
        is no extension) and is deleted when the block exits.

        Yields:
            Named temporary file positioned at the start.
        """
        extension = self.extension
        suffix = f'.{extension}' if extension else ''
        with tempfile.NamedTemporaryFile(prefix='attachment-', suffix=suffix) as temp_file:
            self.stream(temp_file)
            temp_file.flush()
            temp_file.seek(0)
            yield temp_file

    def url(self, **options: Any) -> str:
        """Build an access URL via the backend (e.g., expires_in=300)."""
        return self.storage.url(self.id, **options)

    def exists(self) -> bool:
        return self.storage.exists(self.id)

    def delete(self) -> None:
        """Delete the backing object (idempotent)."""
        logger.info('Deleting uploaded file: %s:%s', self.storage_key, self.id)
        self.storage.delete(self.id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON-compatible representation."""
        return {
            'id': self.id,
            'storage_key': self.storage_key,
            'metadata': self.metadata.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        registry: 'StorageRegistry | None' = None,
    ) -> 'UploadedFile':
        """Build a reference from its persisted representation.

        Args:
            data: {'id': ..., 'storage_key': ..., 'metadata': {...}}.
            registry: Registry the reference resolves its backend with.

        Returns:
            UploadedFile instance.

        Raises:
            InvalidFile: If id or storage_key is missing.
        """
        file_id = data.get('id')
        storage_key = data.get('storage_key')
        if not file_id or not storage_key:
            raise InvalidFile('Uploaded file data must contain "id" and "storage_key"')
        return cls(
            id=str(file_id),
            storage_key=str(storage_key),
            metadata=Metadata.from_dict(data.get('metadata')),
            registry=registry,
        )

    @classmethod
    def from_json(
        cls,
        text: str,
        registry: 'StorageRegistry | None' = None,
    ) -> 'UploadedFile':
        """Build a reference from a JSON string.

        Raises:
            InvalidFile: If the JSON is malformed or not an object.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as error:
            raise InvalidFile(f'Uploaded file data is not valid JSON: {error}') from error
        if not isinstance(data, dict):
            raise InvalidFile('Uploaded file data must be a JSON object')
        return cls.from_dict(data, registry)

    def bind(self, registry: 'StorageRegistry') -> 'UploadedFile':
        """Return the same reference bound to another registry."""
        return UploadedFile(self.id, self.storage_key, self.metadata, registry)

