"""Storage backend contract."""

import abc
import contextlib
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, BinaryIO, Final

if TYPE_CHECKING:
    from server.apps.attachments.metadata import Metadata
    from server.apps.attachments.uploaded_file import UploadedFile

CHUNK_SIZE: Final = 64 * 1024


class Storage(abc.ABC):
    """Uniform contract over byte storage.

    Ids are backend-relative (a path or an object key). Implementations
    must never partially commit an upload: either the full content is
    visible under the id afterwards, or nothing changed.
    """

    @abc.abstractmethod
    def upload(
        self,
        content: 'BinaryIO | UploadedFile',
        file_id: str,
        *,
        move: bool = False,
        metadata: 'Metadata | None' = None,
    ) -> None:
        """Write content under the given id.

        Args:
            content: Binary stream, or an uploaded file to copy from.
            file_id: Destination id.
            move: Rename instead of copy when content is an uploaded file
                held by this same backend.
            metadata: Optional metadata (backends may use the MIME type).

        Raises:
            StorageError: If the write fails.
        """

    @abc.abstractmethod
    def open(self, file_id: str) -> BinaryIO:
        """Open a lazy binary stream over stored content.

        Args:
            file_id: Id to open.

        Returns:
            Readable binary stream. Caller closes it.

        Raises:
            FileNotFound: If nothing is stored under the id.
            StorageError: On any other read failure.
        """

    @abc.abstractmethod
    def exists(self, file_id: str) -> bool:
        """Check whether an object is stored under the id."""

    @abc.abstractmethod
    def delete(self, file_id: str) -> None:
        """Delete an object. Deleting a missing id is not an error."""

    @abc.abstractmethod
    def delete_prefixed(self, prefix: str) -> None:
        """Delete every object whose id starts with the prefix directory."""

    @abc.abstractmethod
    def url(self, file_id: str, **options: Any) -> str:
        """Build an access URL. Unsupported options are ignored."""

    def is_same_storage(self, content: object) -> bool:
        """Check whether content is an uploaded file held by this backend.

        Args:
            content: Upload source passed to ``upload``.

        Returns:
            True when a rename/move is possible instead of a copy.
        """
        from server.apps.attachments.uploaded_file import UploadedFile

        if not isinstance(content, UploadedFile) or content.registry is None:
            return False
        return content.registry.get(content.storage_key) is self


@contextlib.contextmanager
def open_source(content: 'BinaryIO | UploadedFile') -> Iterator[BinaryIO]:
    """Yield a readable stream for an upload source.

    Uploaded files are opened from their own backend and closed at
    exit; plain streams are rewound and left open for the caller.

    Args:
        content: Binary stream or uploaded file.

    Yields:
        Readable binary stream positioned at the start.
    """
    from server.apps.attachments.uploaded_file import UploadedFile

    if isinstance(content, UploadedFile):
        with content.open() as source:
            yield source
        return

    if content.seekable():
        content.seek(0)
    yield content


def normalize_prefix(prefix: str) -> str:
    """Turn a prefix into a directory-style prefix ending with '/'.

    Args:
        prefix: Raw prefix (e.g., 'cache', 'cache/', '/cache').

    Returns:
        Normalized prefix (e.g., 'cache/'), or '' for the root.
    """
    stripped = prefix.strip('/')
    if not stripped:
        return ''
    return f'{stripped}/'


def copy_stream(source: BinaryIO, destination: Any) -> int:
    """Copy a binary stream into a writable file object in chunks.

    Args:
        source: Readable binary stream.
        destination: Writable file-like object.

    Returns:
        Number of bytes copied.
    """
    copied = 0
    for chunk in iter(lambda: source.read(CHUNK_SIZE), b''):
        destination.write(chunk)
        copied += len(chunk)
    return copied
