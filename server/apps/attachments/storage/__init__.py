"""Storage backends for attachments.

Every backend implements the same small contract (upload, open,
exists, delete, delete_prefixed, url) so attachers never care where
bytes actually live:

- MemoryStorage for tests
- FileSystemStorage for local disk
- S3Storage for S3-compatible object stores (AWS, MinIO, R2)
"""

from server.apps.attachments.storage.base import Storage
from server.apps.attachments.storage.filesystem import FileSystemStorage
from server.apps.attachments.storage.memory import MemoryStorage
from server.apps.attachments.storage.registry import (
    StorageRegistry,
    registry_from_settings,
)
from server.apps.attachments.storage.s3 import S3Storage

__all__ = [
    'FileSystemStorage',
    'MemoryStorage',
    'S3Storage',
    'Storage',
    'StorageRegistry',
    'registry_from_settings',
]
