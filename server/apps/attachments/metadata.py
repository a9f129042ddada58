"""Metadata model for uploaded files."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import PurePosixPath
from typing import Any, Final, TypeAlias

Scalar: TypeAlias = str | int | float | bool | None

SIZE: Final = 'size'
MIME_TYPE: Final = 'mime_type'
FILENAME: Final = 'filename'
WELL_KNOWN_KEYS: Final = (SIZE, MIME_TYPE, FILENAME)


@dataclass(frozen=True)
class Metadata:
    """Metadata describing one stored object.

    The well-known keys are typed fields; anything an analyzer adds
    (checksum, width, height...) lives in ``extra``, in insertion order.
    """

    size: int | None = None
    mime_type: str | None = None
    filename: str | None = None
    extra: dict[str, Scalar] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Scalar:
        """Look up a well-known or extra key.

        Raises:
            KeyError: If the key is neither well-known nor in extra.
        """
        if key in WELL_KNOWN_KEYS:
            return getattr(self, key)
        return self.extra[key]

    def __contains__(self, key: object) -> bool:
        return key in WELL_KNOWN_KEYS or key in self.extra

    def get(self, key: str, default: Scalar = None) -> Scalar:
        """Look up a key, falling back to default when absent or null."""
        try:
            value = self[key]
        except KeyError:
            return default
        return default if value is None else value

    def merge(self, values: Mapping[str, Any]) -> 'Metadata':
        """Return a copy with values merged in.

        Well-known keys go to the typed fields, the rest to ``extra``.

        Args:
            values: Mapping of metadata key to scalar value.

        Returns:
            New Metadata instance.
        """
        typed: dict[str, Any] = {}
        extra = dict(self.extra)
        for key, value in values.items():
            if key in WELL_KNOWN_KEYS:
                typed[key] = value
            else:
                extra[key] = value
        if typed.get(SIZE) is not None:
            typed[SIZE] = int(typed[SIZE])
        return replace(self, extra=extra, **typed)

    def to_dict(self) -> dict[str, Scalar]:
        """Serialize to a flat dict; absent well-known keys become None."""
        data: dict[str, Scalar] = {
            SIZE: self.size,
            MIME_TYPE: self.mime_type,
            FILENAME: self.filename,
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> 'Metadata':
        """Build metadata from its flat serialized form."""
        return cls().merge(data or {})

    @property
    def extension(self) -> str | None:
        """Extension of the original filename, if any."""
        return get_extension(self.filename)


def get_extension(name: str | None) -> str | None:
    """Get the lower-cased extension of a file name or id.

    Never fails: names with no dot-suffix, hidden files ('.bashrc'),
    trailing dots ('file.') and None all give None.

    Args:
        name: File name or storage id (e.g., '2026/10/photo.JPG').

    Returns:
        Extension without dot (e.g., 'jpg'), or None.
    """
    if not name:
        return None
    suffix = PurePosixPath(name).suffix
    if len(suffix) <= 1:
        return None
    return suffix[1:].lower()
