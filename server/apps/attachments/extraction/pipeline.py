"""Composable metadata extraction pipeline."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Protocol, final

from server.apps.attachments.metadata import Metadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadContext:
    """Caller-supplied facts about an upload.

    Attributes:
        filename: Original filename (e.g., from a form upload).
        content_type: Content-Type claimed by the client.
        options: Free-form values for custom analyzers and locations.
    """

    filename: str | None = None
    content_type: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


class Analyzer(Protocol):
    """Callable contributing metadata fields for one upload."""

    def __call__(
        self,
        io: BinaryIO,
        context: UploadContext,
        metadata: Metadata,
    ) -> Mapping[str, Any] | None:
        """Analyze the stream.

        Args:
            io: Upload stream, positioned at the start.
            context: Caller-supplied upload context.
            metadata: Metadata gathered by earlier analyzers.

        Returns:
            Fields to merge (or None for nothing).

        Raises:
            InvalidFile: To reject the upload.
        """


@final
class MetadataExtractor:
    """Runs analyzers in order and merges their results."""

    def __init__(self, analyzers: Iterable[Analyzer]) -> None:
        """Initialize extractor.

        Args:
            analyzers: Analyzers in the order they should run.
        """
        self.analyzers: tuple[Analyzer, ...] = tuple(analyzers)

    def extract(
        self,
        io: BinaryIO,
        context: UploadContext | None = None,
    ) -> Metadata:
        """Extract metadata from a seekable stream.

        The stream is rewound before every analyzer and once more at the
        end, so the caller can upload it right away.

        Args:
            io: Seekable binary stream.
            context: Upload context.

        Returns:
            Extracted metadata.

        Raises:
            InvalidFile: If an analyzer rejects the content.
        """
        context = context or UploadContext()
        metadata = Metadata()
        try:
            for analyzer in self.analyzers:
                io.seek(0)
                contribution = analyzer(io, context, metadata)
                if contribution:
                    metadata = metadata.merge(contribution)
        finally:
            io.seek(0)

        logger.debug('Extracted metadata: %s', metadata.to_dict())
        return metadata

    def with_analyzers(self, *analyzers: Analyzer) -> 'MetadataExtractor':
        """Return a new extractor with extra analyzers appended."""
        return MetadataExtractor((*self.analyzers, *analyzers))
