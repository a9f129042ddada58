"""Attachment lifecycle for a multi-file field (has_many)."""

import json
import logging
from collections.abc import Iterable, Iterator, Sequence
from typing import Any

from server.apps.attachments.attacher import (
    AttachmentData,
    Attacher,
    is_attachment_data,
)
from server.apps.attachments.exceptions import InvalidFile
from server.apps.attachments.extraction.pipeline import UploadContext
from server.apps.attachments.uploaded_file import UploadedFile
from server.apps.attachments.uploader import Uploadable, Uploader

CollectionData = Sequence[AttachmentData] | str | None

logger = logging.getLogger(__name__)


class AttacherCollection:
    """Ordered sequence of attachers sharing one dirty flag.

    promote/persist/destroy apply element-wise. ``remove`` and ``clear``
    delete backing objects right away; ``assign`` keeps the replaced
    files until persist().
    """

    def __init__(self, uploader: Uploader, data: CollectionData = None) -> None:
        """Initialize collection.

        Args:
            uploader: Uploader shared by all items.
            data: Persisted list of attachment data (or JSON array).
        """
        self.uploader = uploader
        self.attachers: list[Attacher] = []
        self.superseded: list[UploadedFile] = []
        self.dirty = False
        if data is not None:
            self.load_data(data)

    def __len__(self) -> int:
        return len(self.attachers)

    def __iter__(self) -> Iterator[UploadedFile]:
        return iter(self.files)

    def __getitem__(self, index: int) -> UploadedFile:
        return self.files[index]

    @property
    def files(self) -> list[UploadedFile]:
        return [attacher.file for attacher in self.attachers if attacher.file]

    @property
    def changed(self) -> bool:
        return self.dirty or any(attacher.dirty for attacher in self.attachers)

    @property
    def data(self) -> list[dict[str, Any]]:
        """Persisted representation: a list, empty when nothing is attached."""
        return [uploaded.to_dict() for uploaded in self.files]

    def load_data(self, data: CollectionData) -> None:
        """Reset the collection from persisted data.

        Args:
            data: List of attachment data, JSON array string, or None.

        Raises:
            InvalidFile: If a JSON string is malformed.
            TypeError: If data is not a list.
        """
        self.attachers = [
            Attacher(self.uploader, item) for item in decode_collection_data(data) if item
        ]
        self.superseded = []
        self.dirty = False

    def add(
        self,
        content: Uploadable,
        context: UploadContext | None = None,
    ) -> UploadedFile:
        """Upload content to cache and append it.

        Returns:
            The new cached file.
        """
        attacher = Attacher(self.uploader)
        uploaded = attacher.attach(content, context)
        self.attachers.append(attacher)
        self.dirty = True
        return uploaded  # type: ignore[return-value]

    def remove(self, uploaded_file: UploadedFile) -> None:
        """Detach a file and delete its backing object.

        Raises:
            ValueError: If the file is not in the collection.
        """
        for index, attacher in enumerate(self.attachers):
            if attacher.file == uploaded_file:
                attacher.destroy_attached()
                del self.attachers[index]  # noqa: WPS420
                self.dirty = True
                return
        raise ValueError(f'{uploaded_file!r} is not attached')

    def clear(self) -> None:
        """Detach every file and delete every backing object."""
        for attacher in self.attachers:
            attacher.destroy_attached()
        self.attachers = []
        self.dirty = True

    def assign(
        self,
        contents: Iterable[Uploadable | AttachmentData],
        context: UploadContext | None = None,
    ) -> list[UploadedFile]:
        """Replace the whole sequence with new uploads and cached files.

        Items that are attachment data (dict or JSON string) re-attach a
        file already in the collection or in cache storage; anything else
        is uploaded. All items resolve before anything changes; if one
        fails the uploads already written are deleted and the collection
        is untouched.

        Returns:
            The new files, in order.

        Raises:
            InvalidFile: If an upload is rejected or cached data is invalid.
        """
        attachers: list[Attacher] = []
        uploaded_attachers: list[Attacher] = []
        try:
            for content in contents:
                if is_attachment_data(content):
                    attacher = self._reattach(content)  # type: ignore[arg-type]
                else:
                    attacher = Attacher(self.uploader)
                    attacher.attach(content, context)  # type: ignore[arg-type]
                    uploaded_attachers.append(attacher)
                attachers.append(attacher)
        except Exception:
            for attacher in uploaded_attachers:
                attacher.destroy_attached()
            raise

        kept = [attacher.file for attacher in attachers]
        self.superseded.extend(
            uploaded for uploaded in self.files if uploaded not in kept
        )
        self.attachers = attachers
        self.dirty = True
        return self.files

    def promote(self) -> None:
        """Promote every cached item (before-save hook)."""
        for attacher in self.attachers:
            attacher.promote()

    def persist(self) -> None:
        """Finish a save cycle (after-save hook)."""
        for attacher in self.attachers:
            attacher.persist()
        if not self.dirty:
            return
        for uploaded in self.superseded:
            uploaded.delete()
        self.superseded = []
        self.dirty = False

    def destroy_attached(self) -> None:
        """Delete every attached file (after-destroy hook)."""
        for attacher in self.attachers:
            attacher.destroy_attached()
        for uploaded in self.superseded:
            uploaded.delete()
        self.superseded = []

    def url(self, index: int, **options: Any) -> str:
        return self.files[index].url(**options)

    before_save = promote
    after_save = persist
    after_destroy = destroy_attached

    def _reattach(self, data: AttachmentData) -> Attacher:
        """Keep an item already in the collection, else assign from cache."""
        existing = Attacher(self.uploader, data)
        for attacher in self.attachers:
            if attacher.file == existing.file:
                return attacher
        attacher = Attacher(self.uploader)
        attacher.assign_cached(data)
        return attacher


def decode_collection_data(data: CollectionData) -> Sequence[AttachmentData]:
    """Turn persisted collection data into a list of item data.

    Args:
        data: List of attachment data, JSON array string, or None.

    Returns:
        Item data, empty when there is nothing attached.

    Raises:
        InvalidFile: If a JSON string is malformed.
        TypeError: If data is not a list.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data) if data else None
        except json.JSONDecodeError as error:
            raise InvalidFile(f'Invalid attachment data: {error}') from error
    if data is None:
        return []
    if isinstance(data, str) or not isinstance(data, Sequence):
        raise TypeError(f'Unsupported collection data: {type(data).__name__}')
    return data
