"""Tests for FileSystemStorage."""

import io
import stat

import pytest

from server.apps.attachments.exceptions import FileNotFound, StorageError
from server.apps.attachments.storage import FileSystemStorage, StorageRegistry
from server.apps.attachments.uploaded_file import UploadedFile


class _BrokenStream(io.BytesIO):
    """Stream that fails on the second read, like a dropped connection."""

    def __init__(self, content):
        super().__init__(content)
        self.reads = 0

    def read(self, *args):
        self.reads += 1
        if self.reads > 1:
            raise OSError('connection reset')
        return super().read(*args)


@pytest.fixture
def storage(tmp_path):
    """Filesystem storage under tmp_path/cache."""
    return FileSystemStorage(tmp_path, prefix='cache')


class TestFileSystemStorage:
    """Tests for FileSystemStorage."""

    def test_creates_directory(self, tmp_path):
        """Test the storage directory is created on init."""
        FileSystemStorage(tmp_path / 'media', prefix='store')

        assert (tmp_path / 'media' / 'store').is_dir()

    def test_upload_writes_file(self, storage, tmp_path):
        """Test the object is a plain file under directory/prefix."""
        storage.upload(io.BytesIO(b'hello'), 'a/b.txt')

        assert (tmp_path / 'cache' / 'a' / 'b.txt').read_bytes() == b'hello'

    def test_upload_applies_permissions(self, tmp_path):
        """Test written files get the configured mode."""
        storage = FileSystemStorage(tmp_path, permissions=0o600)

        storage.upload(io.BytesIO(b'x'), 'a.txt')

        mode = stat.S_IMODE((tmp_path / 'a.txt').stat().st_mode)
        assert mode == 0o600

    def test_failed_upload_leaves_no_file(self, storage, tmp_path):
        """Test a failing stream leaves neither the object nor a temp file."""
        content = _BrokenStream(b'x' * 200_000)

        with pytest.raises(StorageError):
            storage.upload(content, 'a.txt')

        assert not storage.exists('a.txt')
        assert list((tmp_path / 'cache').iterdir()) == []

    def test_failed_upload_keeps_existing_file(self, storage):
        """Test a failed overwrite leaves the previous content intact."""
        storage.upload(io.BytesIO(b'old'), 'a.txt')

        with pytest.raises(StorageError):
            storage.upload(_BrokenStream(b'x' * 200_000), 'a.txt')

        with storage.open('a.txt') as stream:
            assert stream.read() == b'old'

    def test_path_traversal(self, storage):
        """Test ids cannot escape the storage directory."""
        with pytest.raises(StorageError, match='Path traversal'):
            storage.upload(io.BytesIO(b'x'), '../escape.txt')

    def test_exists_outside_root(self, storage, tmp_path):
        """Test exists is False for ids escaping the storage directory."""
        (tmp_path / 'secret.txt').write_bytes(b'x')

        assert not storage.exists('../secret.txt')

    def test_delete_cleans_empty_directories(self, storage, tmp_path):
        """Test empty parent directories are removed after delete."""
        storage.upload(io.BytesIO(b'x'), '2026/10/17/a.txt')

        storage.delete('2026/10/17/a.txt')

        assert not (tmp_path / 'cache' / '2026').exists()
        assert (tmp_path / 'cache').is_dir()

    def test_delete_keeps_non_empty_directories(self, storage, tmp_path):
        """Test directories with other files survive a delete."""
        storage.upload(io.BytesIO(b'x'), 'a/1.txt')
        storage.upload(io.BytesIO(b'x'), 'a/2.txt')

        storage.delete('a/1.txt')

        assert (tmp_path / 'cache' / 'a' / '2.txt').exists()

    def test_delete_without_clean(self, tmp_path):
        """Test clean=False leaves empty directories behind."""
        storage = FileSystemStorage(tmp_path, clean=False)
        storage.upload(io.BytesIO(b'x'), 'a/1.txt')

        storage.delete('a/1.txt')

        assert (tmp_path / 'a').is_dir()

    def test_delete_prefixed_root(self, storage, tmp_path):
        """Test an empty prefix empties the storage but keeps its root."""
        storage.upload(io.BytesIO(b'x'), 'a/1.txt')
        storage.upload(io.BytesIO(b'x'), '2.txt')

        storage.delete_prefixed('')

        assert list((tmp_path / 'cache').iterdir()) == []

    def test_url(self, storage):
        """Test URL is the prefixed path."""
        assert storage.url('a/b.txt') == '/cache/a/b.txt'

    def test_url_with_host(self, tmp_path):
        """Test URL uses the configured host."""
        storage = FileSystemStorage(
            tmp_path,
            prefix='store',
            host='https://cdn.example.com/',
        )

        assert storage.url('a.txt') == 'https://cdn.example.com/store/a.txt'

    def test_move_within_storage_renames(self, storage, tmp_path):
        """Test moving inside the same storage renames the file."""
        registry = StorageRegistry({'cache': storage})
        storage.upload(io.BytesIO(b'hello'), 'tmp/a.txt')
        uploaded = UploadedFile('tmp/a.txt', 'cache', registry=registry)

        storage.upload(uploaded, 'b.txt', move=True)

        assert not storage.exists('tmp/a.txt')
        assert not (tmp_path / 'cache' / 'tmp').exists()
        assert (tmp_path / 'cache' / 'b.txt').read_bytes() == b'hello'

    def test_move_missing_source(self, storage):
        """Test moving a missing file raises FileNotFound."""
        registry = StorageRegistry({'cache': storage})
        uploaded = UploadedFile('gone.txt', 'cache', registry=registry)

        with pytest.raises(FileNotFound):
            storage.upload(uploaded, 'b.txt', move=True)

    def test_copy_from_other_storage(self, filesystem_registry):
        """Test uploading a file from another storage copies it."""
        cache = filesystem_registry['cache']
        store = filesystem_registry['store']
        cache.upload(io.BytesIO(b'hello'), 'a.txt')
        uploaded = UploadedFile('a.txt', 'cache', registry=filesystem_registry)

        store.upload(uploaded, 'b.txt', move=True)

        assert cache.exists('a.txt')
        with store.open('b.txt') as stream:
            assert stream.read() == b'hello'
