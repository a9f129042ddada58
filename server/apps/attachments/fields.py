"""Declarative attachment fields for record classes.

Example::

    class Post:
        cover = AttachmentField(uploader)
        images = AttachmentField(uploader, multiple=True)

        def __init__(self, cover_data=None, images_data=None):
            self.cover_data = cover_data
            self.images_data = images_data

    post.cover = ContentFile(b'...', name='cover.jpg')
    Post.cover.before_save(post)   # promote + write post.cover_data
    save_somehow(post)
    Post.cover.after_save(post)    # delete the replaced file

The record keeps the serialized reference in ``<name>_data``; the field
keeps one Attacher (or AttacherCollection) per instance.
"""

from collections.abc import Callable
from typing import Any, final

from server.apps.attachments.attacher import Attacher, is_attachment_data
from server.apps.attachments.collection import (
    AttacherCollection,
    decode_collection_data,
)
from server.apps.attachments.extraction.pipeline import UploadContext
from server.apps.attachments.uploaded_file import UploadedFile
from server.apps.attachments.uploader import Uploadable, Uploader

UploaderSource = Uploader | Callable[[], Uploader]


@final
class AttachmentField:
    """Descriptor wiring one named attachment onto a record class."""

    def __init__(
        self,
        uploader: UploaderSource,
        *,
        multiple: bool = False,
        data_attribute: str | None = None,
    ) -> None:
        """Initialize field.

        Args:
            uploader: Uploader, or a zero-argument factory returning one
                (resolved on first use, e.g. after settings are loaded).
            multiple: Hold an ordered collection instead of one file.
            data_attribute: Record attribute with the serialized data
                (defaults to '<name>_data').
        """
        self._uploader_source = uploader
        self._uploader: Uploader | None = None
        self.multiple = multiple
        self.name = ''
        self.data_attribute = data_attribute or ''

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        if not self.data_attribute:
            self.data_attribute = f'{name}_data'

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        """Return the attached file(s), or the field itself on the class."""
        if instance is None:
            return self
        attacher = self.attacher(instance)
        if isinstance(attacher, AttacherCollection):
            return attacher.files
        return attacher.file

    def __set__(self, instance: Any, value: Any) -> None:
        """Attach content (single) or replace the sequence (multiple).

        Attachment data (a dict or JSON string, as posted back by a
        redisplayed form) re-attaches a cached file instead of uploading.
        """
        attacher = self.attacher(instance)
        if isinstance(attacher, AttacherCollection):
            if isinstance(value, str):
                value = decode_collection_data(value)
            attacher.assign(value or [])
        elif is_attachment_data(value):
            attacher.assign_cached(value)
        else:
            attacher.attach(value)

    @property
    def uploader(self) -> Uploader:
        if self._uploader is None:
            source = self._uploader_source
            self._uploader = source if isinstance(source, Uploader) else source()
        return self._uploader

    def attacher(self, instance: Any) -> Attacher | AttacherCollection:
        """Get (building on first access) the instance's attacher."""
        key = self._attacher_key
        attacher = instance.__dict__.get(key)
        if attacher is None:
            data = getattr(instance, self.data_attribute, None)
            if self.multiple:
                attacher = AttacherCollection(self.uploader, data)
            else:
                attacher = Attacher(self.uploader, data)
            instance.__dict__[key] = attacher
        return attacher

    def attach(
        self,
        instance: Any,
        content: Uploadable | None,
        context: UploadContext | None = None,
    ) -> UploadedFile | None:
        """Attach with an explicit upload context (filename, content type)."""
        attacher = self.attacher(instance)
        if isinstance(attacher, AttacherCollection):
            if content is None:
                attacher.clear()
                return None
            return attacher.add(content, context)
        return attacher.attach(content, context)

    def url(self, instance: Any, **options: Any) -> str | None:
        attacher = self.attacher(instance)
        if isinstance(attacher, AttacherCollection):
            files = attacher.files
            return files[0].url(**options) if files else None
        return attacher.url(**options)

    def changed(self, instance: Any) -> bool:
        attacher = instance.__dict__.get(self._attacher_key)
        return attacher is not None and attacher.changed

    def before_save(self, instance: Any) -> None:
        """Promote cached files and write serialized data onto the record."""
        if not self.changed(instance):
            return
        attacher = self.attacher(instance)
        attacher.promote()
        setattr(instance, self.data_attribute, attacher.data)

    def after_save(self, instance: Any) -> None:
        """Delete files superseded by the saved change."""
        attacher = instance.__dict__.get(self._attacher_key)
        if attacher is not None:
            attacher.persist()

    def after_destroy(self, instance: Any) -> None:
        """Delete the files of a destroyed record."""
        self.attacher(instance).destroy_attached()

    @property
    def _attacher_key(self) -> str:
        return f'_{self.name}_attacher'


def attachment_fields(model: type) -> dict[str, AttachmentField]:
    """Collect attachment fields declared on a class and its bases.

    Args:
        model: Record class.

    Returns:
        Mapping of attribute name to field, base classes first.
    """
    fields: dict[str, AttachmentField] = {}
    for klass in reversed(model.__mro__):
        for name, attribute in vars(klass).items():
            if isinstance(attribute, AttachmentField):
                fields[name] = attribute
    return fields
