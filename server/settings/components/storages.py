"""Attachment storage configuration.

Two storages are required:
- cache: where files land when attached, before the record is saved
- store: where files are promoted to when the record is saved

Cache is always the local filesystem. Store uses an S3-compatible
bucket (MinIO for local development, R2 or S3 in production) when
ATTACHMENT_STORE_BUCKET is set, the filesystem otherwise.
"""

from typing import Any, Final

from server.settings.components import config
from server.settings.components.common import MEDIA_ROOT

_FILESYSTEM_BACKEND: Final = 'server.apps.attachments.storage.FileSystemStorage'
_S3_BACKEND: Final = 'server.apps.attachments.storage.S3Storage'

_STORE_BUCKET = config('ATTACHMENT_STORE_BUCKET', default='')

if _STORE_BUCKET:
    _STORE: dict[str, Any] = {
        'BACKEND': _S3_BACKEND,
        'OPTIONS': {
            'bucket': _STORE_BUCKET,
            'prefix': 'store',
            'endpoint_url': config('AWS_S3_ENDPOINT_URL', default=None),
            'region_name': config('AWS_S3_REGION_NAME', default='auto'),
            'aws_access_key_id': config('AWS_ACCESS_KEY_ID', default=None),
            'aws_secret_access_key': config('AWS_SECRET_ACCESS_KEY', default=None),
            'force_path_style': config(
                'AWS_S3_FORCE_PATH_STYLE',
                cast=bool,
                default=False,
            ),
        },
    }
else:
    _STORE = {
        'BACKEND': _FILESYSTEM_BACKEND,
        'OPTIONS': {
            'directory': MEDIA_ROOT,
            'prefix': 'store',
        },
    }

ATTACHMENT_STORAGES: Final[dict[str, dict[str, Any]]] = {
    'cache': {
        'BACKEND': _FILESYSTEM_BACKEND,
        'OPTIONS': {
            'directory': MEDIA_ROOT,
            'prefix': 'cache',
        },
    },
    'store': _STORE,
}
