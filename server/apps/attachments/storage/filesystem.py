"""Local filesystem storage backend."""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, Final, final, override

from server.apps.attachments.exceptions import FileNotFound, StorageError
from server.apps.attachments.storage.base import (
    Storage,
    copy_stream,
    normalize_prefix,
    open_source,
)

if TYPE_CHECKING:
    from server.apps.attachments.metadata import Metadata
    from server.apps.attachments.uploaded_file import UploadedFile

_DEFAULT_PERMISSIONS: Final = 0o644
_DEFAULT_DIRECTORY_PERMISSIONS: Final = 0o755

logger = logging.getLogger(__name__)


@final
class FileSystemStorage(Storage):
    """Stores objects as files below ``directory/prefix``.

    Ids are relative paths (e.g., '2026/10/17/abc123.jpg'). Writes go to
    a temporary file in the target directory and are renamed into place,
    so readers never observe a partial object.
    """

    def __init__(  # noqa: WPS211
        self,
        directory: str | Path,
        prefix: str | None = None,
        permissions: int | None = _DEFAULT_PERMISSIONS,
        directory_permissions: int | None = _DEFAULT_DIRECTORY_PERMISSIONS,
        clean: bool = True,
        host: str | None = None,
    ) -> None:
        """Initialize filesystem storage.

        Args:
            directory: Base directory (e.g., MEDIA_ROOT).
            prefix: Optional sub-directory that is also the URL prefix.
            permissions: Mode applied to written files (None keeps umask).
            directory_permissions: Mode applied to created directories.
            clean: Remove empty parent directories after deletes.
            host: Optional URL host (e.g., 'https://cdn.example.com').
        """
        self.prefix = prefix.strip('/') if prefix else None
        self.directory = Path(directory).expanduser().resolve()
        if self.prefix:
            self.directory = self.directory / self.prefix
        self.permissions = permissions
        self.directory_permissions = directory_permissions
        self.clean = clean
        self.host = host.rstrip('/') if host else None

        self._make_directory(self.directory)

    @override
    def upload(
        self,
        content: 'BinaryIO | UploadedFile',
        file_id: str,
        *,
        move: bool = False,
        metadata: 'Metadata | None' = None,
    ) -> None:
        """Write content to ``directory/file_id``.

        Args:
            content: Binary stream or uploaded file.
            file_id: Relative destination path.
            move: Rename when content is a file in this same storage.
            metadata: Unused by this backend.

        Raises:
            StorageError: If the file cannot be written.
        """
        destination = self.path(file_id)
        try:
            self._make_directory(destination.parent)
            if move and self.is_same_storage(content):
                source = self.path(content.id)  # type: ignore[union-attr]
                logger.info('Moving file: %s -> %s', source, destination)
                try:
                    os.replace(source, destination)
                except FileNotFoundError:
                    raise FileNotFound(content.id) from None  # type: ignore[union-attr]
                self._clean_parents(source)
            else:
                logger.info('Writing file: %s', destination)
                self._write_atomically(content, destination)
        except OSError as error:
            raise StorageError(f'Failed to write {file_id!r}: {error}') from error

        if self.permissions is not None:
            destination.chmod(self.permissions)

    @override
    def open(self, file_id: str) -> BinaryIO:
        path = self.path(file_id)
        try:
            return path.open('rb')
        except FileNotFoundError:
            raise FileNotFound(file_id) from None
        except OSError as error:
            raise StorageError(f'Failed to open {file_id!r}: {error}') from error

    @override
    def exists(self, file_id: str) -> bool:
        try:
            path = self.path(file_id)
        except StorageError:
            # Ids outside the storage root never name a stored file.
            return False
        return path.is_file()

    @override
    def delete(self, file_id: str) -> None:
        path = self.path(file_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as error:
            raise StorageError(f'Failed to delete {file_id!r}: {error}') from error
        logger.info('Deleted file: %s', path)
        self._clean_parents(path)

    @override
    def delete_prefixed(self, prefix: str) -> None:
        directory = normalize_prefix(prefix)
        target = self.path(directory) if directory else self.directory
        if not target.is_dir():
            return

        logger.info('Deleting directory tree: %s', target)
        try:
            if target == self.directory:
                for child in target.iterdir():
                    _remove(child)
                return
            shutil.rmtree(target)
        except OSError as error:
            raise StorageError(f'Failed to delete {prefix!r}: {error}') from error
        self._clean_parents(target)

    @override
    def url(self, file_id: str, **options: Any) -> str:
        """Build a URL path for the file.

        Args:
            file_id: Relative file path.
            options: Ignored; kept for the common url() contract.

        Returns:
            '/prefix/id', prefixed with the host when one is configured.
        """
        parts = [part for part in (self.prefix, file_id) if part]
        path = '/' + '/'.join(parts)
        if self.host:
            return f'{self.host}{path}'
        return path

    def path(self, file_id: str) -> Path:
        """Resolve an id to an absolute path inside the storage root.

        Args:
            file_id: Relative file path.

        Returns:
            Absolute path.

        Raises:
            StorageError: If the id escapes the storage directory.
        """
        path = (self.directory / file_id).resolve()
        if path != self.directory and not path.is_relative_to(self.directory):
            raise StorageError(f'Path traversal detected: {file_id!r}')
        return path

    def _write_atomically(
        self,
        content: 'BinaryIO | UploadedFile',
        destination: Path,
    ) -> None:
        descriptor, temp_name = tempfile.mkstemp(
            dir=destination.parent,
            prefix='.upload-',
        )
        try:
            with os.fdopen(descriptor, 'wb') as temp_file:
                with open_source(content) as source:
                    copy_stream(source, temp_file)
            os.replace(temp_name, destination)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def _make_directory(self, directory: Path) -> None:
        if directory.is_dir():
            return
        directory.mkdir(parents=True, exist_ok=True)
        if self.directory_permissions is not None:
            directory.chmod(self.directory_permissions)

    def _clean_parents(self, path: Path) -> None:
        """Remove empty directories between path and the storage root."""
        if not self.clean:
            return
        for parent in path.parents:
            if parent == self.directory or not parent.is_relative_to(self.directory):
                return
            try:
                parent.rmdir()
            except OSError:
                # Not empty (or already gone); stop climbing.
                return


def _remove(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)
