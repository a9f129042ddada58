"""Storage registry: storage key -> backend instance."""

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any, final, override

from django.conf import settings
from django.utils.module_loading import import_string

from server.apps.attachments.exceptions import ConfigurationError
from server.apps.attachments.storage.base import Storage

logger = logging.getLogger(__name__)


@final
class StorageRegistry(Mapping[str, Storage]):
    """Read-only mapping of storage keys ('cache', 'store') to backends.

    Built once at startup and handed to uploaders and attachers
    explicitly; there is no module-level default instance.
    """

    def __init__(self, storages: Mapping[str, Storage]) -> None:
        """Initialize registry.

        Args:
            storages: Mapping of storage key to backend instance.
        """
        self._storages = MappingProxyType(dict(storages))

    @override
    def __getitem__(self, key: str) -> Storage:
        return self._storages[key]

    @override
    def __iter__(self) -> Iterator[str]:
        return iter(self._storages)

    @override
    def __len__(self) -> int:
        return len(self._storages)

    @override
    def __repr__(self) -> str:
        return f'StorageRegistry({sorted(self._storages)!r})'

    def resolve(self, key: str) -> Storage:
        """Find the backend registered under a key.

        Args:
            key: Storage key (e.g., 'cache').

        Returns:
            Storage backend.

        Raises:
            ConfigurationError: If no backend is registered for the key.
        """
        try:
            return self._storages[key]
        except KeyError:
            raise ConfigurationError(
                f'Storage {key!r} is not registered '
                f'(known: {", ".join(sorted(self._storages)) or "none"})',
            ) from None

    def require(self, *keys: str) -> None:
        """Fail fast unless every key is registered.

        Raises:
            ConfigurationError: For the first missing key.
        """
        for key in keys:
            self.resolve(key)

    def key_for(self, storage: Storage) -> str:
        """Reverse lookup of the key a backend instance is registered under.

        Raises:
            ConfigurationError: If the backend is not registered.
        """
        for key, candidate in self._storages.items():
            if candidate is storage:
                return key
        raise ConfigurationError(f'Storage {storage!r} is not registered')

    @classmethod
    def from_config(cls, storages: Mapping[str, Mapping[str, Any]]) -> 'StorageRegistry':
        """Build backends from a Django STORAGES-style dictionary.

        Example::

            {
                'cache': {
                    'BACKEND': 'server.apps.attachments.storage.FileSystemStorage',
                    'OPTIONS': {'directory': '/srv/media', 'prefix': 'cache'},
                },
            }

        Args:
            storages: Mapping of key to {'BACKEND': path, 'OPTIONS': {...}}.

        Returns:
            Registry with one instantiated backend per key.

        Raises:
            ConfigurationError: If a backend path is missing or invalid.
        """
        backends: dict[str, Storage] = {}
        for key, options in storages.items():
            backend_path = options.get('BACKEND')
            if not backend_path:
                raise ConfigurationError(f'Storage {key!r} has no BACKEND')
            try:
                backend_class = import_string(backend_path)
            except ImportError as error:
                raise ConfigurationError(
                    f'Could not import storage backend {backend_path!r}: {error}',
                ) from error
            backends[key] = backend_class(**options.get('OPTIONS', {}))
            logger.debug('Configured storage %s: %s', key, backend_path)
        return cls(backends)


def registry_from_settings() -> StorageRegistry:
    """Build the registry from ``settings.ATTACHMENT_STORAGES``.

    Returns:
        Configured StorageRegistry.

    Raises:
        ConfigurationError: If the setting is missing.
    """
    storages = getattr(settings, 'ATTACHMENT_STORAGES', None)
    if storages is None:
        raise ConfigurationError('ATTACHMENT_STORAGES setting is not defined')
    return StorageRegistry.from_config(storages)
