"""System checks for attachment storage configuration."""

from collections.abc import Sequence
from typing import Any, Final

from django.conf import settings
from django.core.checks import CheckMessage, Error, register

from server.apps.attachments.uploader import CACHE, STORE

_REQUIRED_KEYS: Final = (CACHE, STORE)


@register()
def check_attachment_storages(
    app_configs: Sequence[Any] | None,
    **kwargs: Any,
) -> list[CheckMessage]:
    """Ensure ATTACHMENT_STORAGES defines cache and store backends.

    Returns:
        One error per missing key or backend path.
    """
    storages = getattr(settings, 'ATTACHMENT_STORAGES', None)
    if storages is None:
        return [
            Error(
                'ATTACHMENT_STORAGES setting is not defined.',
                id='attachments.E001',
            ),
        ]

    errors: list[CheckMessage] = []
    for key in _REQUIRED_KEYS:
        if key not in storages:
            errors.append(Error(
                f'ATTACHMENT_STORAGES has no {key!r} storage.',
                id='attachments.E002',
            ))
        elif not storages[key].get('BACKEND'):
            errors.append(Error(
                f'ATTACHMENT_STORAGES[{key!r}] has no BACKEND.',
                id='attachments.E003',
            ))
    return errors
