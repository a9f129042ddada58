"""Storage backend for S3-compatible object stores."""

import io
import logging
from typing import TYPE_CHECKING, Any, BinaryIO, Final, final, override

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from decouple import config

from server.apps.attachments.exceptions import FileNotFound, StorageError
from server.apps.attachments.storage.base import (
    Storage,
    normalize_prefix,
    open_source,
)

if TYPE_CHECKING:
    from server.apps.attachments.metadata import Metadata
    from server.apps.attachments.uploaded_file import UploadedFile

_MISSING_CODES: Final = frozenset(('404', 'NoSuchKey', 'NotFound'))
_DELETE_BATCH_SIZE: Final = 1000  # S3 DeleteObjects limit

# url() options forwarded to presigned GET requests
_URL_PARAMS: Final = {  # noqa: WPS407
    'response_content_disposition': 'ResponseContentDisposition',
    'response_content_type': 'ResponseContentType',
    'version_id': 'VersionId',
}

logger = logging.getLogger(__name__)


def _is_missing(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') in _MISSING_CODES


class _ObjectStream(io.RawIOBase):
    """Readable S3 object body raising StorageError on transport failures."""

    def __init__(self, body: Any, key: str) -> None:
        super().__init__()
        self._body = body
        self._key = key

    @override
    def readable(self) -> bool:
        return True

    @override
    def readinto(self, buffer: Any) -> int:
        try:
            chunk = self._body.read(len(buffer))
        except BotoCoreError as error:
            raise StorageError(f'Failed to read {self._key!r}: {error}') from error
        buffer[:len(chunk)] = chunk
        return len(chunk)

    @override
    def close(self) -> None:
        if not self.closed:
            self._body.close()
        super().close()


@final
class S3Storage(Storage):
    """Stores objects under ``prefix/`` in one S3 bucket.

    Works with AWS S3, MinIO and Cloudflare R2. Uploads go through the
    boto3 managed transfer, which aborts multipart uploads on failure so
    no partial object becomes visible.
    """

    def __init__(  # noqa: WPS211
        self,
        bucket: str,
        prefix: str | None = None,
        client: BaseClient | None = None,
        upload_options: dict[str, Any] | None = None,
        public: bool = False,
        force_path_style: bool = False,
        **client_kwargs: Any,
    ) -> None:
        """Initialize S3 storage.

        Args:
            bucket: Bucket name.
            prefix: Optional key prefix (e.g., 'cache').
            client: Preconfigured boto3 S3 client.
            upload_options: Extra arguments for every upload
                (e.g., {'ACL': 'private'}).
            public: Build plain object URLs instead of presigned ones.
            force_path_style: Use path-style addressing (MinIO).
            client_kwargs: Passed to boto3.client when client is None
                (endpoint_url, region_name, credentials...).
        """
        self.bucket = bucket
        self.prefix = prefix.strip('/') if prefix else None
        self.upload_options = dict(upload_options or {})
        self.public = public
        if client is None:
            s3_config = Config(
                s3={'addressing_style': 'path'} if force_path_style else {},
            )
            client = boto3.client('s3', config=s3_config, **client_kwargs)
        self.client = client

    @classmethod
    def from_env(cls, prefix: str | None = None) -> 'S3Storage':
        """Build storage from S3_* environment variables.

        Args:
            prefix: Optional key prefix.

        Returns:
            Configured S3Storage.
        """
        return cls(
            bucket=config('S3_BUCKET'),
            prefix=prefix,
            endpoint_url=config('S3_ENDPOINT', default=None),
            region_name=config('S3_REGION', default='us-east-1'),
            aws_access_key_id=config('S3_ACCESS_KEY', default=None),
            aws_secret_access_key=config('S3_SECRET_KEY', default=None),
            force_path_style=config('S3_FORCE_PATH_STYLE', cast=bool, default=True),
        )

    @override
    def upload(
        self,
        content: 'BinaryIO | UploadedFile',
        file_id: str,
        *,
        move: bool = False,
        metadata: 'Metadata | None' = None,
    ) -> None:
        """Upload content to ``prefix/file_id``.

        When moving within the same storage, S3 has no rename, so this
        performs a server-side copy followed by deletion of the source.

        Args:
            content: Binary stream or uploaded file.
            file_id: Destination id.
            move: Copy server-side and delete the source object.
            metadata: Used for the Content-Type header.

        Raises:
            FileNotFound: If the source object of a move is missing.
            StorageError: If S3 rejects the request.
        """
        key = self.object_key(file_id)
        extra_args = self._upload_args(metadata)
        source_id = getattr(content, 'id', None)
        try:
            if move and self.is_same_storage(content):
                source_key = self.object_key(source_id)  # type: ignore[arg-type]
                logger.info('Moving object: %s -> %s', source_key, key)
                self.client.copy(
                    {'Bucket': self.bucket, 'Key': source_key},
                    self.bucket,
                    key,
                    ExtraArgs=extra_args or None,
                )
                self.client.delete_object(Bucket=self.bucket, Key=source_key)
                return

            logger.info('Uploading object: %s', key)
            with open_source(content) as source:
                self.client.upload_fileobj(
                    source,
                    self.bucket,
                    key,
                    ExtraArgs=extra_args or None,
                )
        except ClientError as error:
            if source_id is not None and _is_missing(error):
                raise FileNotFound(source_id) from error
            raise StorageError(f'Failed to upload {key!r}: {error}') from error
        except BotoCoreError as error:
            raise StorageError(f'Failed to upload {key!r}: {error}') from error

    @override
    def open(self, file_id: str) -> BinaryIO:
        """Open the object body as a lazy stream.

        Args:
            file_id: Object id.

        Returns:
            Stream reading the body from the network on demand.

        Raises:
            FileNotFound: If the object does not exist.
            StorageError: On any other S3 failure.
        """
        key = self.object_key(file_id)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as error:
            if _is_missing(error):
                raise FileNotFound(file_id) from error
            raise StorageError(f'Failed to open {key!r}: {error}') from error
        except BotoCoreError as error:
            raise StorageError(f'Failed to open {key!r}: {error}') from error
        return _ObjectStream(response['Body'], key)  # type: ignore[return-value]

    @override
    def exists(self, file_id: str) -> bool:
        key = self.object_key(file_id)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as error:
            if _is_missing(error):
                return False
            raise StorageError(f'Failed to check {key!r}: {error}') from error
        except BotoCoreError as error:
            raise StorageError(f'Failed to check {key!r}: {error}') from error
        return True

    @override
    def delete(self, file_id: str) -> None:
        key = self.object_key(file_id)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as error:
            raise StorageError(f'Failed to delete {key!r}: {error}') from error
        logger.info('Deleted object: %s', key)

    @override
    def delete_prefixed(self, prefix: str) -> None:
        directory = self.object_key(normalize_prefix(prefix))
        paginator = self.client.get_paginator('list_objects_v2')
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=directory):
                keys = [{'Key': item['Key']} for item in page.get('Contents', [])]
                for start in range(0, len(keys), _DELETE_BATCH_SIZE):
                    batch = keys[start:start + _DELETE_BATCH_SIZE]
                    self.client.delete_objects(
                        Bucket=self.bucket,
                        Delete={'Objects': batch, 'Quiet': True},
                    )
                    logger.info('Deleted %d objects under %s', len(batch), directory)
        except (BotoCoreError, ClientError) as error:
            raise StorageError(f'Failed to delete {directory!r}: {error}') from error

    @override
    def url(self, file_id: str, **options: Any) -> str:
        """Build an object URL.

        Args:
            file_id: Object id.
            options: ``expires_in`` (seconds) produces a presigned,
                time-limited URL; response_content_disposition,
                response_content_type and version_id are forwarded to
                it. Anything else is ignored.

        Returns:
            Presigned URL, or plain endpoint/bucket/key URL.
        """
        key = self.object_key(file_id)
        expires_in = options.get('expires_in')
        if expires_in is None and self.public:
            endpoint = self.client.meta.endpoint_url.rstrip('/')
            return f'{endpoint}/{self.bucket}/{key}'

        params = {'Bucket': self.bucket, 'Key': key}
        for option, param in _URL_PARAMS.items():
            if options.get(option) is not None:
                params[param] = options[option]
        return self.client.generate_presigned_url(
            'get_object',
            Params=params,
            ExpiresIn=int(expires_in) if expires_in is not None else 3600,
        )

    def object_key(self, file_id: str) -> str:
        """Map an id to the full object key including the prefix."""
        if self.prefix:
            return f'{self.prefix}/{file_id}'
        return file_id

    def _upload_args(self, metadata: 'Metadata | None') -> dict[str, Any]:
        extra_args = dict(self.upload_options)
        if metadata is not None and metadata.mime_type:
            extra_args.setdefault('ContentType', metadata.mime_type)
        return extra_args
