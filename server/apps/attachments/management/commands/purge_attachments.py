"""Management command to delete every attachment under a storage prefix."""

import logging
from typing import Any

from django.core.management.base import BaseCommand, CommandError

from server.apps.attachments.exceptions import AttachmentError
from server.apps.attachments.storage.registry import registry_from_settings
from server.apps.attachments.uploader import CACHE

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Delete all objects under a prefix of one configured storage."""

    help = 'Delete attachment objects under a prefix (default storage: cache)'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--storage',
            default=CACHE,
            help=f'Storage key from ATTACHMENT_STORAGES (default: {CACHE})',
        )
        parser.add_argument(
            '--prefix',
            default='',
            help='Directory/key prefix to purge (default: everything)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help=(
                'Print the storage and prefix that would be purged; '
                'objects are neither listed nor deleted'
            ),
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the purge command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        storage_key = options['storage']
        prefix = options['prefix']
        target = f'{storage_key}:{prefix or "/"}'

        try:
            storage = registry_from_settings().resolve(storage_key)
        except AttachmentError as exc:
            raise CommandError(str(exc)) from exc

        if options['dry_run']:
            self.stdout.write(
                self.style.SUCCESS(f'Would purge {target} (dry run, nothing deleted)'),
            )
            return

        storage.delete_prefixed(prefix)
        logger.info('Purged attachment storage %s', target)
        self.stdout.write(self.style.SUCCESS(f'Purged {target}'))
