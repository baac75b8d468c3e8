"""Signal handlers for vault app."""

import logging
from functools import partial

from django.db import transaction
from django.db.models.signals import post_delete
from django.dispatch import receiver

from server.apps.vault.logic.file_operations import release_blob
from server.apps.vault.models import FileEntry, FileVersion

logger = logging.getLogger(__name__)


@receiver(post_delete, sender=FileEntry)
def delete_file_from_storage(
    sender: type[FileEntry],
    instance: FileEntry,
    **kwargs: object,
) -> None:
    """Release a file's blob once the deleting transaction commits.

    This signal handler ensures that when a FileEntry record is deleted
    (via admin, ORM, cascading folder delete or any other method), the
    content in S3 storage is also cleaned up. Nothing is removed if the
    transaction rolls back.

    Args:
        sender: The FileEntry model class.
        instance: The FileEntry instance being deleted.
        **kwargs: Additional signal arguments.
    """
    if not instance.storage_key:
        return

    logger.info(
        'Scheduling blob delete after DB delete: %s',
        instance.storage_key,
    )
    transaction.on_commit(partial(release_blob, instance.storage_key))


@receiver(post_delete, sender=FileVersion)
def delete_version_blob(
    sender: type[FileVersion],
    instance: FileVersion,
    **kwargs: object,
) -> None:
    """Release a version's blob unless the file or another version uses it."""
    if not instance.storage_key:
        return
    transaction.on_commit(partial(release_blob, instance.storage_key))
