"""Attachment lifecycle for one field on one record instance.

Save cycle, driven by the record layer::

    attacher.attach(upload)     # zero or more times, caller driven
    attacher.promote()          # before the record is written
    record.save()               # the record's own storage write
    attacher.persist()          # after the write succeeded

If the record write fails after promote(), the promoted object stays
in store storage unreferenced while the previous object stays intact.
Leaking a new object is preferred over losing the only copy of the old.
"""

import enum
import logging
from collections.abc import Mapping
from typing import Any

from server.apps.attachments.exceptions import InvalidFile
from server.apps.attachments.extraction.pipeline import UploadContext
from server.apps.attachments.uploaded_file import UploadedFile
from server.apps.attachments.uploader import Uploadable, Uploader

AttachmentData = UploadedFile | Mapping[str, Any] | str | None

logger = logging.getLogger(__name__)


class AttachmentState(enum.Enum):
    """Where the current attachment lives."""

    EMPTY = 'empty'
    CACHED = 'cached'
    STORED = 'stored'


class Attacher:
    """State machine for a single attachment.

    Attributes:
        current: Attached file, or None.
        previous: File superseded by a change not yet persisted; deleted
            by persist() once the record is durably saved.
        dirty: True when current changed since the last persist().
    """

    def __init__(self, uploader: Uploader, data: AttachmentData = None) -> None:
        """Initialize attacher.

        Args:
            uploader: Uploader used for caching and promotion.
            data: Persisted attachment data to start from (STORED state).
        """
        self.uploader = uploader
        self.current: UploadedFile | None = None
        self.previous: UploadedFile | None = None
        self.dirty = False
        if data is not None:
            self.load_data(data)

    @property
    def file(self) -> UploadedFile | None:
        return self.current

    @property
    def state(self) -> AttachmentState:
        if self.current is None:
            return AttachmentState.EMPTY
        if self.current.storage_key == self.uploader.cache_key:
            return AttachmentState.CACHED
        return AttachmentState.STORED

    @property
    def cached(self) -> bool:
        return self.state is AttachmentState.CACHED

    @property
    def stored(self) -> bool:
        return self.state is AttachmentState.STORED

    @property
    def changed(self) -> bool:
        return self.dirty

    @property
    def data(self) -> dict[str, Any] | None:
        """Persisted representation of current (None when empty)."""
        if self.current is None:
            return None
        return self.current.to_dict()

    def load_data(self, data: AttachmentData) -> None:
        """Reset state from persisted data without marking it dirty.

        Args:
            data: UploadedFile, dict, JSON string, or None.
        """
        self.current = self._load(data)
        self.previous = None
        self.dirty = False

    def attach(
        self,
        content: Uploadable | None,
        context: UploadContext | None = None,
    ) -> UploadedFile | None:
        """Attach new content (uploaded to cache) or detach with None.

        The upload happens before any state changes, so a rejected or
        failed upload leaves the attacher untouched.

        Args:
            content: Content to upload, or None to remove the attachment.
            context: Filename/content type supplied by the caller.

        Returns:
            The new cached file, or None.

        Raises:
            InvalidFile: If extraction rejects the content.
            StorageError: If the cache write fails.
        """
        if content is None:
            self._supersede(None)
            return None

        uploaded = self.uploader.upload(content, self.uploader.cache_key, context)
        self._supersede(uploaded)
        return uploaded

    def assign_cached(self, data: AttachmentData) -> UploadedFile | None:
        """Attach a file that already sits in cache storage.

        Used when a form is redisplayed after a validation error and
        posts back the cached file's data instead of re-uploading.

        Args:
            data: Cached file data (dict, JSON string or UploadedFile).

        Returns:
            The attached file, or None when data is empty.

        Raises:
            InvalidFile: If the file is not in cache storage or is gone.
        """
        uploaded = self._load(data)
        if uploaded is None:
            return self.attach(None)
        if uploaded.storage_key != self.uploader.cache_key:
            raise InvalidFile(
                f'Expected a file from {self.uploader.cache_key!r} storage, '
                f'got {uploaded.storage_key!r}',
            )
        if uploaded == self.current:
            return self.current
        if not uploaded.exists():
            raise InvalidFile(f'Cached file {uploaded.id!r} no longer exists')
        self._supersede(uploaded)
        return uploaded

    def promote(self) -> UploadedFile | None:
        """Move a cached file to store storage (before-save hook).

        No-op unless the attacher is CACHED.

        Returns:
            The current file after promotion.

        Raises:
            FileNotFound: If the cached object disappeared.
            StorageError: If the store write fails.
        """
        if self.state is not AttachmentState.CACHED:
            return self.current

        promoted = self.uploader.move(self.current, self.uploader.store_key)  # type: ignore[arg-type]
        logger.info('Promoted attachment: %s -> %s', self.current.id, promoted.id)  # type: ignore[union-attr]
        self.current = promoted
        self.dirty = True
        return promoted

    def persist(self) -> None:
        """Finish a save cycle (after-save hook).

        Must only run after the record write succeeded: it deletes the
        superseded file, which up to now was the only durable one.
        """
        if not self.dirty:
            return
        if self.previous is not None:
            self.previous.delete()
            self.previous = None
        self.dirty = False

    def destroy_attached(self) -> None:
        """Delete attached files (after-destroy hook). Missing objects are fine."""
        for uploaded in (self.current, self.previous):
            if uploaded is not None:
                uploaded.delete()
        self.previous = None

    def url(self, **options: Any) -> str | None:
        """URL of the current file, or None when empty."""
        if self.current is None:
            return None
        return self.current.url(**options)

    # Lifecycle hook names used by record layers.
    before_save = promote
    after_save = persist
    after_destroy = destroy_attached

    def _supersede(self, uploaded: UploadedFile | None) -> None:
        """Replace current, keeping the last durable file for persist().

        When a superseded file is already waiting for cleanup, the file
        being replaced now was never persisted and is deleted at once.
        """
        replaced = self.current
        if replaced is not None and replaced != uploaded:
            if self.previous is None:
                self.previous = replaced
            else:
                replaced.delete()
        self.current = uploaded
        self.dirty = True

    def _load(self, data: AttachmentData) -> UploadedFile | None:
        registry = self.uploader.registry
        if data is None or data == '':
            return None
        if isinstance(data, UploadedFile):
            return data.bind(registry)
        if isinstance(data, str):
            return UploadedFile.from_json(data, registry) if data != 'null' else None
        if isinstance(data, Mapping):
            return UploadedFile.from_dict(data, registry)
        raise TypeError(f'Unsupported attachment data: {type(data).__name__}')


def is_attachment_data(value: object) -> bool:
    """Check whether a value is persisted data rather than new content.

    Form redisplays post back a cached file as a JSON string or a dict;
    those are re-attached with ``assign_cached`` instead of uploaded.
    """
    return isinstance(value, str | Mapping)
