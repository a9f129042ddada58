"""Django app configuration for attachments app."""

from typing import override

from django.apps import AppConfig


class AttachmentsConfig(AppConfig):
    """Configuration for attachments app."""

    name = 'server.apps.attachments'
    verbose_name = 'Attachments'

    @override
    def ready(self) -> None:
        """Register system checks when app is ready."""
        from server.apps.attachments import checks  # noqa: F401
