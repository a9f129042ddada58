"""Django signal wiring for attachment lifecycle hooks.

pre_save    -> promote cached files, write <name>_data
post_save   -> delete files superseded by the saved change
post_delete -> delete the record's files

post_save and post_delete fire inside the surrounding transaction, so
their cleanup is deferred with transaction.on_commit(): files are only
deleted once the row change is durable. Outside an atomic block the
callback runs immediately.
"""

import logging
from functools import partial

from django.db import DEFAULT_DB_ALIAS, transaction
from django.db.models.signals import post_delete, post_save, pre_save

from server.apps.attachments.exceptions import ConfigurationError
from server.apps.attachments.fields import attachment_fields

logger = logging.getLogger(__name__)


def connect_attachment_signals(model: type) -> None:
    """Connect lifecycle receivers for every attachment field of a model.

    Args:
        model: Model class declaring AttachmentField attributes.

    Raises:
        ConfigurationError: If the model declares no attachment fields.
    """
    if not attachment_fields(model):
        raise ConfigurationError(f'{model.__qualname__} has no attachment fields')

    uid = _dispatch_uid(model)
    pre_save.connect(promote_attachments, sender=model, dispatch_uid=f'{uid}:pre_save')
    post_save.connect(persist_attachments, sender=model, dispatch_uid=f'{uid}:post_save')
    post_delete.connect(
        destroy_attachments,
        sender=model,
        dispatch_uid=f'{uid}:post_delete',
    )
    logger.debug('Connected attachment signals for %s', uid)


def disconnect_attachment_signals(model: type) -> None:
    """Undo connect_attachment_signals for a model."""
    uid = _dispatch_uid(model)
    pre_save.disconnect(sender=model, dispatch_uid=f'{uid}:pre_save')
    post_save.disconnect(sender=model, dispatch_uid=f'{uid}:post_save')
    post_delete.disconnect(sender=model, dispatch_uid=f'{uid}:post_delete')


def promote_attachments(
    sender: type,
    instance: object,
    raw: bool = False,
    **kwargs: object,
) -> None:
    """Promote changed attachments before the record is written.

    Fixture loading (raw=True) saves data as-is and is skipped.
    """
    if raw:
        return
    for field in attachment_fields(sender).values():
        field.before_save(instance)


def persist_attachments(
    sender: type,
    instance: object,
    raw: bool = False,
    using: str = DEFAULT_DB_ALIAS,
    **kwargs: object,
) -> None:
    """Clean up superseded files once the record write is committed."""
    if raw:
        return
    for field in attachment_fields(sender).values():
        transaction.on_commit(partial(field.after_save, instance), using=using)


def destroy_attachments(
    sender: type,
    instance: object,
    using: str = DEFAULT_DB_ALIAS,
    **kwargs: object,
) -> None:
    """Delete attachment files once the record delete is committed.

    A failing storage delete propagates to the caller instead of being
    logged and ignored.
    """
    for name, field in attachment_fields(sender).items():
        logger.info('Scheduling deletion of attachment %s of %r', name, instance)
        transaction.on_commit(partial(field.after_destroy, instance), using=using)


def _dispatch_uid(model: type) -> str:
    return f'attachments:{model.__module__}.{model.__qualname__}'
