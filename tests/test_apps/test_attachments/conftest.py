"""Shared fixtures for attachments app tests."""

import io

import boto3
import pytest
from django.core.files.base import ContentFile
from moto import mock_aws
from PIL import Image

from server.apps.attachments.storage import (
    FileSystemStorage,
    MemoryStorage,
    S3Storage,
    StorageRegistry,
)
from server.apps.attachments.uploader import Uploader

TEST_BUCKET = 'attachments'


@pytest.fixture
def memory_registry():
    """Registry with in-memory cache and store.

    Returns:
        StorageRegistry with 'cache' and 'store' keys.
    """
    return StorageRegistry({
        'cache': MemoryStorage(),
        'store': MemoryStorage(),
    })


@pytest.fixture
def cache(memory_registry):
    """In-memory cache storage of memory_registry."""
    return memory_registry['cache']


@pytest.fixture
def store(memory_registry):
    """In-memory store storage of memory_registry."""
    return memory_registry['store']


@pytest.fixture
def uploader(memory_registry):
    """Uploader over in-memory storages with default analyzers."""
    return Uploader(memory_registry)


@pytest.fixture
def filesystem_registry(tmp_path):
    """Registry with cache and store directories under tmp_path.

    Returns:
        StorageRegistry backed by FileSystemStorage.
    """
    return StorageRegistry({
        'cache': FileSystemStorage(tmp_path, prefix='cache'),
        'store': FileSystemStorage(tmp_path, prefix='store'),
    })


@pytest.fixture
def mock_s3():
    """Mock S3 service with attachments bucket.

    Yields:
        boto3 S3 resource with attachments bucket created.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        conn.create_bucket(Bucket=TEST_BUCKET)
        yield conn


@pytest.fixture
def s3_storage(mock_s3):
    """S3 storage writing under 'store/' in the mocked bucket."""
    return S3Storage(TEST_BUCKET, prefix='store', region_name='us-east-1')


@pytest.fixture
def sample_file_content():
    """Sample 5-byte text file.

    Returns:
        ContentFile named a.txt.
    """
    return ContentFile(b'hello', name='a.txt')


@pytest.fixture
def png_bytes():
    """Encoded 4x3 PNG image.

    Returns:
        PNG file content.
    """
    buffer = io.BytesIO()
    Image.new('RGB', (4, 3), color='red').save(buffer, format='PNG')
    return buffer.getvalue()
