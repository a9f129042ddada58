"""Tests for the single-file Attacher lifecycle."""

import pytest
from django.core.files.base import ContentFile

from server.apps.attachments.attacher import Attacher, AttachmentState
from server.apps.attachments.exceptions import (
    FileNotFound,
    InvalidFile,
    StorageError,
)
from server.apps.attachments.extraction import (
    MetadataExtractor,
    SizeValidator,
    UploadContext,
    default_analyzers,
)
from server.apps.attachments.uploader import Uploader


@pytest.fixture
def attacher(uploader):
    """Empty attacher over in-memory storages."""
    return Attacher(uploader)


@pytest.fixture
def stored_attacher(uploader):
    """Attacher loaded with a file already in store."""
    stored = uploader.upload(b'old', 'store', UploadContext(filename='old.txt'))
    return Attacher(uploader, stored.to_dict())


class TestAttach:
    """Tests for attach/assign_cached."""

    def test_initial_state(self, attacher):
        """Test a new attacher is empty and clean."""
        assert attacher.state is AttachmentState.EMPTY
        assert attacher.file is None
        assert attacher.data is None
        assert not attacher.changed

    def test_attach_caches(self, attacher, cache, sample_file_content):
        """Test attaching uploads to cache."""
        uploaded = attacher.attach(sample_file_content)

        assert attacher.state is AttachmentState.CACHED
        assert attacher.cached
        assert attacher.changed
        assert attacher.file == uploaded
        assert uploaded.storage_key == 'cache'
        assert uploaded.metadata.to_dict() == {
            'size': 5,
            'mime_type': 'text/plain',
            'filename': 'a.txt',
        }
        assert cache.store[uploaded.id] == b'hello'

    def test_attach_none_detaches(self, stored_attacher, store):
        """Test attaching None empties without deleting yet."""
        stored = stored_attacher.file

        assert stored_attacher.attach(None) is None

        assert stored_attacher.state is AttachmentState.EMPTY
        assert stored_attacher.changed
        assert stored_attacher.previous == stored
        assert store.exists(stored.id)

    def test_rejected_attach_keeps_state(self, memory_registry, cache):
        """Test a rejected upload leaves the attacher untouched."""
        uploader = Uploader(
            memory_registry,
            MetadataExtractor([*default_analyzers(), SizeValidator(max_bytes=2)]),
        )
        attacher = Attacher(uploader)
        first = attacher.attach(b'ok')
        attacher.persist()

        with pytest.raises(InvalidFile):
            attacher.attach(b'too big')

        assert attacher.file == first
        assert not attacher.changed
        assert list(cache.store) == [first.id]

    def test_failed_cache_write_keeps_state(self, stored_attacher, cache, monkeypatch):
        """Test a storage failure leaves the attacher untouched."""
        stored = stored_attacher.file

        def broken_upload(*args, **kwargs):
            raise StorageError('disk full')

        monkeypatch.setattr(cache, 'upload', broken_upload)

        with pytest.raises(StorageError):
            stored_attacher.attach(b'new')

        assert stored_attacher.file == stored
        assert not stored_attacher.changed

    def test_assign_cached(self, uploader, attacher):
        """Test re-attaching a cached file from form data."""
        cached = uploader.upload(b'hello', 'cache')

        assigned = attacher.assign_cached(cached.to_json())

        assert assigned == cached
        assert attacher.cached
        assert attacher.changed

    def test_assign_cached_same_file(self, attacher, sample_file_content):
        """Test assigning the current file again changes nothing."""
        uploaded = attacher.attach(sample_file_content)
        attacher.persist()

        assert attacher.assign_cached(uploaded.to_dict()) == uploaded
        assert not attacher.changed

    def test_assign_cached_rejects_stored_file(self, stored_attacher, attacher):
        """Test only cache references can be assigned."""
        with pytest.raises(InvalidFile, match="'cache' storage"):
            attacher.assign_cached(stored_attacher.data)

    def test_assign_cached_rejects_missing(self, uploader, attacher):
        """Test cache references must still exist."""
        cached = uploader.upload(b'hello', 'cache')
        cached.delete()

        with pytest.raises(InvalidFile, match='no longer exists'):
            attacher.assign_cached(cached.to_dict())

        assert attacher.file is None


class TestSaveCycle:
    """Tests for promote/persist/destroy."""

    def test_promote_moves_to_store(self, attacher, cache, store, sample_file_content):
        """Test promote moves the cached file and keeps its metadata."""
        cached = attacher.attach(sample_file_content)

        promoted = attacher.promote()

        assert attacher.state is AttachmentState.STORED
        assert attacher.stored
        assert promoted.storage_key == 'store'
        assert promoted.id != cached.id
        assert promoted.metadata == cached.metadata
        assert store.store[promoted.id] == b'hello'
        assert not cache.exists(cached.id)
        assert attacher.changed

    def test_promote_noop_unless_cached(self, stored_attacher, attacher, store):
        """Test promote does nothing for empty or stored attachers."""
        stored = stored_attacher.file

        assert stored_attacher.promote() == stored
        assert attacher.promote() is None
        assert not stored_attacher.changed
        assert len(store.store) == 1

    def test_promote_missing_cache_file(self, attacher):
        """Test promote fails loudly when the cached file vanished."""
        cached = attacher.attach(b'hello')
        cached.delete()

        with pytest.raises(FileNotFound):
            attacher.promote()

        assert attacher.file == cached

    def test_full_cycle(self, attacher, cache, store):
        """Test attach, promote and persist a 5-byte file."""
        attacher.attach(b'hello', UploadContext(filename='a.txt'))
        attacher.promote()
        data = attacher.data

        attacher.persist()

        assert not attacher.changed
        assert data['storage_key'] == 'store'
        assert data['metadata'] == {
            'size': 5,
            'mime_type': 'text/plain',
            'filename': 'a.txt',
        }
        assert cache.store == {}
        assert list(store.store.values()) == [b'hello']

    def test_replacement_deleted_only_after_persist(self, stored_attacher, store):
        """Test the old file survives until the record is durably saved."""
        old = stored_attacher.file

        stored_attacher.attach(ContentFile(b'new', name='new.txt'))
        stored_attacher.promote()

        # Record write has not happened yet; the old file must remain
        assert store.exists(old.id)
        assert stored_attacher.previous == old

        stored_attacher.persist()

        assert not store.exists(old.id)
        assert stored_attacher.file.read() == b'new'

    def test_failed_record_save_keeps_old_file(self, stored_attacher, store):
        """Test a failed record save leaks the new file, not the old one."""
        old = stored_attacher.file
        stored_attacher.attach(b'new')
        promoted = stored_attacher.promote()

        # The record write fails: persist() is never called
        assert store.exists(old.id)
        assert store.exists(promoted.id)

    def test_repeated_attach_before_save(self, stored_attacher, cache, store):
        """Test intermediate never-saved uploads do not pile up."""
        old = stored_attacher.file
        first = stored_attacher.attach(b'first')

        second = stored_attacher.attach(b'second')

        assert not cache.exists(first.id)
        assert cache.exists(second.id)
        assert stored_attacher.previous == old
        assert store.exists(old.id)

    def test_detach_and_persist(self, stored_attacher, store):
        """Test removing an attachment deletes it on persist."""
        old = stored_attacher.file
        stored_attacher.attach(None)
        stored_attacher.promote()

        stored_attacher.persist()

        assert not store.exists(old.id)
        assert stored_attacher.data is None

    def test_persist_noop_when_unchanged(self, stored_attacher, store):
        """Test persist without changes deletes nothing."""
        stored_attacher.persist()

        assert len(store.store) == 1

    def test_destroy_attached(self, stored_attacher, store):
        """Test destroy deletes the current file."""
        stored_attacher.destroy_attached()

        assert store.store == {}

    def test_destroy_attached_with_pending_change(self, stored_attacher, cache, store):
        """Test destroy also deletes a superseded file awaiting persist."""
        stored_attacher.attach(b'new')

        stored_attacher.destroy_attached()

        assert cache.store == {}
        assert store.store == {}
        assert stored_attacher.previous is None

    def test_destroy_missing_file(self, stored_attacher, store):
        """Test destroying an already deleted file is fine."""
        store.clear()

        stored_attacher.destroy_attached()

    def test_hook_aliases(self):
        """Test lifecycle hooks map to the attacher operations."""
        assert Attacher.before_save is Attacher.promote
        assert Attacher.after_save is Attacher.persist
        assert Attacher.after_destroy is Attacher.destroy_attached


class TestLoadData:
    """Tests for loading persisted data."""

    def test_load_json(self, uploader, stored_attacher):
        """Test JSON strings are loaded as stored files."""
        attacher = Attacher(uploader, stored_attacher.file.to_json())

        assert attacher.file == stored_attacher.file
        assert attacher.stored
        assert not attacher.changed
        assert attacher.file.read() == b'old'

    @pytest.mark.parametrize('data', [None, '', 'null'])
    def test_load_empty(self, uploader, data):
        """Test empty data gives an empty attacher."""
        assert Attacher(uploader, data).state is AttachmentState.EMPTY

    def test_load_unsupported(self, uploader):
        """Test unsupported data types are rejected."""
        with pytest.raises(TypeError):
            Attacher(uploader, 42)  # type: ignore[arg-type]

    def test_load_resets_pending_change(self, stored_attacher):
        """Test load_data discards unsaved state."""
        data = stored_attacher.data
        stored_attacher.attach(b'new')

        stored_attacher.load_data(data)

        assert stored_attacher.stored
        assert stored_attacher.previous is None
        assert not stored_attacher.changed

    def test_url(self, stored_attacher, attacher):
        """Test url delegates to the current file."""
        assert stored_attacher.url() == f'memory://{stored_attacher.file.id}'
        assert attacher.url() is None
