"""In-memory storage backend, mostly for tests."""

import io
import logging
from typing import TYPE_CHECKING, Any, BinaryIO, final, override

from server.apps.attachments.exceptions import FileNotFound
from server.apps.attachments.storage.base import (
    Storage,
    normalize_prefix,
    open_source,
)

if TYPE_CHECKING:
    from server.apps.attachments.metadata import Metadata
    from server.apps.attachments.uploaded_file import UploadedFile

logger = logging.getLogger(__name__)


@final
class MemoryStorage(Storage):
    """Keeps every object in a single dict of id -> bytes.

    There is no internal lock; callers sharing one instance across
    threads must serialize access themselves.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self.store: dict[str, bytes] = {}

    @override
    def upload(
        self,
        content: 'BinaryIO | UploadedFile',
        file_id: str,
        *,
        move: bool = False,
        metadata: 'Metadata | None' = None,
    ) -> None:
        if move and self.is_same_storage(content):
            source_id = content.id  # type: ignore[union-attr]
            logger.debug('Renaming in memory: %s -> %s', source_id, file_id)
            try:
                self.store[file_id] = self.store.pop(source_id)
            except KeyError:
                raise FileNotFound(source_id) from None
            return

        # Read everything first so a failing stream never leaves a
        # half-written entry behind.
        with open_source(content) as source:
            data = source.read()
        self.store[file_id] = data

    @override
    def open(self, file_id: str) -> BinaryIO:
        try:
            return io.BytesIO(self.store[file_id])
        except KeyError:
            raise FileNotFound(file_id) from None

    @override
    def exists(self, file_id: str) -> bool:
        return file_id in self.store

    @override
    def delete(self, file_id: str) -> None:
        self.store.pop(file_id, None)

    @override
    def delete_prefixed(self, prefix: str) -> None:
        directory = normalize_prefix(prefix)
        for key in [key for key in self.store if key.startswith(directory)]:
            del self.store[key]  # noqa: WPS420

    @override
    def url(self, file_id: str, **options: Any) -> str:
        return f'memory://{file_id}'

    def clear(self) -> None:
        """Remove every stored object."""
        self.store.clear()
