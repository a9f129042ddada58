"""Metadata extraction for uploads.

Analyzers run in order over the upload stream (rewound before each one)
and contribute metadata fields. Validators are analyzers that contribute
nothing and raise InvalidFile instead, so extraction doubles as the
validation checkpoint before any bytes reach storage.
"""

from server.apps.attachments.extraction.analyzers import (
    ChecksumAnalyzer,
    DimensionsAnalyzer,
    MimeTypeAnalyzer,
    analyze_filename,
    analyze_size,
    default_analyzers,
)
from server.apps.attachments.extraction.pipeline import (
    Analyzer,
    MetadataExtractor,
    UploadContext,
)
from server.apps.attachments.extraction.validators import (
    ContentTypeValidator,
    DimensionsValidator,
    SizeValidator,
)

__all__ = [
    'Analyzer',
    'ChecksumAnalyzer',
    'ContentTypeValidator',
    'DimensionsAnalyzer',
    'DimensionsValidator',
    'MetadataExtractor',
    'MimeTypeAnalyzer',
    'SizeValidator',
    'UploadContext',
    'analyze_filename',
    'analyze_size',
    'default_analyzers',
]
