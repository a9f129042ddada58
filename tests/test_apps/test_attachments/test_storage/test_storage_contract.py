"""Behaviour every storage backend must share."""

import io

import pytest

from server.apps.attachments.exceptions import FileNotFound
from server.apps.attachments.storage import FileSystemStorage, MemoryStorage


@pytest.fixture(params=['memory', 'filesystem', 's3'])
def storage(request, tmp_path):
    """Each storage backend in turn."""
    if request.param == 'memory':
        return MemoryStorage()
    if request.param == 'filesystem':
        return FileSystemStorage(tmp_path, prefix='cache')
    return request.getfixturevalue('s3_storage')


class TestStorageContract:
    """Tests for the common storage contract."""

    def test_upload_then_open(self, storage):
        """Test uploaded bytes can be read back."""
        storage.upload(io.BytesIO(b'hello'), 'a.txt')

        stream = storage.open('a.txt')
        try:
            assert stream.read() == b'hello'
        finally:
            stream.close()

    def test_upload_rewinds_stream(self, storage):
        """Test upload reads the stream from the start."""
        content = io.BytesIO(b'hello')
        content.read()

        storage.upload(content, 'a.txt')

        assert storage.exists('a.txt')
        stream = storage.open('a.txt')
        try:
            assert stream.read() == b'hello'
        finally:
            stream.close()

    def test_upload_nested_id(self, storage):
        """Test ids may contain directories."""
        storage.upload(io.BytesIO(b'x'), '2026/10/17/a.txt')

        assert storage.exists('2026/10/17/a.txt')

    def test_upload_overwrites(self, storage):
        """Test a second upload replaces the first."""
        storage.upload(io.BytesIO(b'old'), 'a.txt')
        storage.upload(io.BytesIO(b'new'), 'a.txt')

        stream = storage.open('a.txt')
        try:
            assert stream.read() == b'new'
        finally:
            stream.close()

    def test_open_missing(self, storage):
        """Test opening a missing id raises FileNotFound."""
        with pytest.raises(FileNotFound) as exc_info:
            storage.open('missing.txt')

        assert exc_info.value.file_id == 'missing.txt'

    def test_exists(self, storage):
        """Test exists reflects uploads and deletes."""
        assert not storage.exists('a.txt')

        storage.upload(io.BytesIO(b'x'), 'a.txt')
        assert storage.exists('a.txt')

        storage.delete('a.txt')
        assert not storage.exists('a.txt')

    def test_delete_missing_is_noop(self, storage):
        """Test deleting a missing id does not raise."""
        storage.delete('missing.txt')

        assert not storage.exists('missing.txt')

    def test_delete_prefixed(self, storage):
        """Test only ids under the prefix directory are deleted."""
        storage.upload(io.BytesIO(b'1'), 'a/1.txt')
        storage.upload(io.BytesIO(b'2'), 'a/b/2.txt')
        storage.upload(io.BytesIO(b'3'), 'ab/3.txt')

        storage.delete_prefixed('a')

        assert not storage.exists('a/1.txt')
        assert not storage.exists('a/b/2.txt')
        assert storage.exists('ab/3.txt')

    def test_delete_prefixed_trailing_slash(self, storage):
        """Test 'a/' and 'a' mean the same prefix."""
        storage.upload(io.BytesIO(b'1'), 'a/1.txt')

        storage.delete_prefixed('a/')

        assert not storage.exists('a/1.txt')

    def test_delete_prefixed_missing(self, storage):
        """Test purging an empty prefix does not raise."""
        storage.delete_prefixed('nothing-here')

    def test_url_is_string(self, storage):
        """Test url works and ignores unknown options."""
        storage.upload(io.BytesIO(b'x'), 'a.txt')

        url = storage.url('a.txt', unknown_option=True)

        assert isinstance(url, str)
        assert 'a.txt' in url
