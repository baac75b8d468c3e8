"""Management command to clean up old files and folders from trash."""

import logging
from datetime import timedelta
from typing import Any, Final

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from server.apps.vault.logic.trash_operations import (
    permanent_delete_file,
    permanent_delete_folder,
)
from server.apps.vault.models import FileEntry, Folder

_DEFAULT_BATCH_SIZE: Final = 1000

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Permanently delete items that stayed in trash past retention."""

    help = 'Clean up old files and folders from trash'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=_DEFAULT_BATCH_SIZE,
            help=f'Max items of each kind to process (default: {_DEFAULT_BATCH_SIZE})',
        )
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Retention in days (default: VAULT_TRASH_RETENTION_DAYS)',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        batch_size = options['batch_size']
        retention_days = options['days']
        if retention_days is None:
            retention_days = settings.VAULT_TRASH_RETENTION_DAYS

        cutoff = timezone.now() - timedelta(days=retention_days)

        self.stdout.write(
            f'Looking for items deleted before {cutoff} '
            f'(older than {retention_days} days)',
        )

        folder_count, folder_failed = self._purge_folders(
            cutoff,
            batch_size,
            dry_run=dry_run,
        )
        file_count, file_failed = self._purge_files(
            cutoff,
            batch_size,
            dry_run=dry_run,
        )

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Would purge {file_count} files and '
                    f'{folder_count} folders from trash',
                ),
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Purged {file_count} files and {folder_count} folders '
                    f'from trash, {file_failed + folder_failed} failed',
                ),
            )

    def _purge_folders(
        self,
        cutoff: Any,
        batch_size: int,
        *,
        dry_run: bool,
    ) -> tuple[int, int]:
        # Only roots of trashed subtrees; descendants go with them
        old_folders = Folder.all_objects.filter(
            is_deleted=True,
            deleted_at__lte=cutoff,
        ).exclude(
            parent__is_deleted=True,
        ).order_by('deleted_at')[:batch_size]

        count = 0
        failed = 0
        for folder in old_folders:
            if dry_run:
                self.stdout.write(
                    f'Would delete folder: {folder.name} '
                    f'(user: {folder.owner.username}, '
                    f'deleted: {folder.deleted_at})',
                )
                count += 1
                continue

            try:
                permanent_delete_folder(folder.id)
                count += 1
            except Exception as exc:
                self.stderr.write(f'Failed to delete folder {folder.id}: {exc}')
                logger.exception('Failed to purge folder from trash: %d', folder.id)
                failed += 1
        return count, failed

    def _purge_files(
        self,
        cutoff: Any,
        batch_size: int,
        *,
        dry_run: bool,
    ) -> tuple[int, int]:
        old_files = FileEntry.all_objects.filter(
            is_deleted=True,
            deleted_at__lte=cutoff,
        ).order_by('deleted_at')[:batch_size]

        count = 0
        failed = 0
        for file_entry in old_files:
            if dry_run:
                self.stdout.write(
                    f'Would delete: {file_entry.name} '
                    f'(user: {file_entry.owner.username}, '
                    f'deleted: {file_entry.deleted_at})',
                )
                count += 1
                continue

            try:
                permanent_delete_file(file_entry.id)
                count += 1
                logger.info(
                    'Purged file from trash: %s (ID: %d)',
                    file_entry.name,
                    file_entry.id,
                )
            except FileEntry.DoesNotExist:
                # Already removed along with a purged folder
                continue
            except Exception as exc:
                self.stderr.write(f'Failed to delete {file_entry.id}: {exc}')
                logger.exception(
                    'Failed to purge file from trash: %d',
                    file_entry.id,
                )
                failed += 1
        return count, failed
