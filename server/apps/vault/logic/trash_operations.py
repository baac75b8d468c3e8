"""Business logic for trash (soft delete) operations.

Trashed files and folders are hidden from the default managers and
from every listing, but keep their grants and versions until purged.
A folder goes to trash together with its whole subtree; restoring it
brings back exactly the items that were trashed with it.
"""

import logging
from typing import Any

from django.core.cache import BaseCache
from django.db import transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from server.apps.vault.infrastructure import cache as vault_cache
from server.apps.vault.logic.access_control import (
    get_owned_file,
    get_owned_folder,
)
from server.apps.vault.logic.folder_operations import parent_listing_keys
from server.apps.vault.models import FileEntry, Folder, SharedFile, SharedFolder

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)


def _file_listing_keys(file_entry: FileEntry) -> list[str]:
    keys = [
        vault_cache.file_listing_key(file_entry.owner_id, file_entry.folder_id),
        vault_cache.file_shares_key(file_entry.id),
    ]
    keys.extend(
        vault_cache.shared_with_key(user_id)
        for user_id in file_entry.shares.values_list('shared_with_id', flat=True)
    )
    if file_entry.folder_id is not None:
        parent_id = Folder.all_objects.filter(
            id=file_entry.folder_id,
        ).values_list('parent_id', flat=True).first()
        keys.append(
            vault_cache.folder_listing_key(file_entry.owner_id, parent_id),
        )
    return keys


def soft_delete_file(
    file_id: int,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> FileEntry:
    """Move file to trash (soft delete).

    Args:
        file_id: ID of file to soft delete.
        owner: File owner.
        cache: Injected cache service.

    Returns:
        Updated FileEntry instance.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the user only holds a grant on the file.
    """
    file_entry = get_owned_file(file_id, owner, 'delete')

    file_entry.is_deleted = True
    file_entry.deleted_at = timezone.now()
    file_entry.save(update_fields=['is_deleted', 'deleted_at'])

    logger.info('File moved to trash: %s (ID: %d)', file_entry.name, file_id)

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        *_file_listing_keys(file_entry),
    )
    return file_entry


def restore_file(
    file_id: int,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> FileEntry:
    """Restore file from trash.

    The file goes back to its folder; if that folder is gone or in
    trash itself, the file lands in the owner's root.

    Args:
        file_id: ID of file to restore.
        owner: File owner.
        cache: Injected cache service.

    Returns:
        Updated FileEntry instance.

    Raises:
        FileEntry.DoesNotExist: If file not found or not in trash.
    """
    file_entry = FileEntry.all_objects.get(
        id=file_id,
        owner=owner,
        is_deleted=True,
    )

    if (
        file_entry.folder_id is not None
        and not Folder.objects.filter(id=file_entry.folder_id).exists()
    ):
        logger.info(
            'Folder %d of file %d not available, restoring to root',
            file_entry.folder_id,
            file_id,
        )
        file_entry.folder = None

    file_entry.is_deleted = False
    file_entry.deleted_at = None
    file_entry.save(update_fields=['is_deleted', 'deleted_at', 'folder'])

    logger.info(
        'File restored: %s (ID: %d, folder: %s)',
        file_entry.name,
        file_id,
        file_entry.folder_id,
    )

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        *_file_listing_keys(file_entry),
    )
    return file_entry


def permanent_delete_file(file_id: int, owner: _User | None = None) -> None:
    """Permanently delete file from trash.

    Removes the record with its grants and versions; blob cleanup runs
    after commit via the post_delete signal.

    Args:
        file_id: ID of file to permanently delete.
        owner: Restrict to this owner's trash; None for any owner.

    Raises:
        FileEntry.DoesNotExist: If file not found or not in trash.
    """
    lookup: dict[str, Any] = {'id': file_id, 'is_deleted': True}
    if owner is not None:
        lookup['owner'] = owner
    file_entry = FileEntry.all_objects.get(**lookup)
    file_size = file_entry.size_bytes

    with transaction.atomic():
        file_entry.delete()

    logger.info(
        'File permanently deleted: ID=%d (size: %d)',
        file_id,
        file_size,
    )


def list_trash(owner: _User) -> QuerySet[FileEntry]:
    """List all files in user's trash.

    Args:
        owner: User whose trash to list.

    Returns:
        QuerySet of deleted files, newest first.
    """
    return FileEntry.all_objects.filter(
        owner=owner,
        is_deleted=True,
    ).order_by('-deleted_at', '-id')


def list_trashed_folders(owner: _User) -> QuerySet[Folder]:
    """List folders the user trashed directly, newest first.

    Descendants trashed along with a folder are not listed on their own.
    """
    return Folder.all_objects.filter(
        owner=owner,
        is_deleted=True,
    ).exclude(
        parent__is_deleted=True,
        parent__deleted_at=F('deleted_at'),
    ).order_by('-deleted_at', '-id')


def empty_trash(owner: _User) -> int:
    """Permanently delete all files in user's trash.

    Args:
        owner: User whose trash to empty.

    Returns:
        Number of files deleted.
    """
    trash_files = list(list_trash(owner))
    count = 0

    for file_entry in trash_files:
        try:
            permanent_delete_file(file_entry.id, owner)
            count += 1
        except Exception:
            logger.exception(
                'Failed to permanently delete file: %d',
                file_entry.id,
            )
            raise

    logger.info(
        'Trash emptied for user %s: %d files deleted',
        owner.username,
        count,
    )
    return count


def _collect_subtree_ids(root_id: int, manager: Any, **filters: Any) -> list[int]:
    """Breadth-first folder IDs of a subtree, root included."""
    collected = [root_id]
    frontier = [root_id]
    while frontier:
        frontier = list(
            manager.filter(parent_id__in=frontier, **filters).exclude(
                id__in=collected,
            ).values_list('id', flat=True),
        )
        collected.extend(frontier)
    return collected


def soft_delete_folder(
    folder_id: int,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> int:
    """Move a folder and everything below it to trash.

    All items trashed together share one ``deleted_at`` stamp, which is
    how ``restore_folder`` finds them again.

    Args:
        folder_id: Folder to trash.
        owner: Folder owner.
        cache: Injected cache service.

    Returns:
        Number of folders trashed, including the folder itself.

    Raises:
        Folder.DoesNotExist: If the folder is missing or invisible.
        PermissionDenied: If the user only holds a grant on the folder.
    """
    folder = get_owned_folder(folder_id, owner, 'delete')
    deleted_at = timezone.now()

    with transaction.atomic():
        folder_ids = _collect_subtree_ids(folder.id, Folder.objects)
        Folder.all_objects.filter(id__in=folder_ids).update(
            is_deleted=True,
            deleted_at=deleted_at,
            deleted_by=owner,
        )
        file_count = FileEntry.objects.filter(folder_id__in=folder_ids).update(
            is_deleted=True,
            deleted_at=deleted_at,
        )

    logger.info(
        'Folder moved to trash: %s (ID: %d, %d folders, %d files)',
        folder.name,
        folder.id,
        len(folder_ids),
        file_count,
    )

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        *_folder_keys(owner.pk, folder.parent_id, folder_ids),
    )
    return len(folder_ids)


def restore_folder(
    folder_id: int,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> Folder:
    """Restore a trashed folder with the items trashed along with it.

    If the parent folder is gone or still in trash, the folder lands in
    the owner's root.

    Args:
        folder_id: Folder to restore.
        owner: Folder owner.
        cache: Injected cache service.

    Returns:
        Restored Folder instance.

    Raises:
        Folder.DoesNotExist: If folder not found or not in trash.
    """
    folder = Folder.all_objects.get(id=folder_id, owner=owner, is_deleted=True)
    deleted_at = folder.deleted_at

    with transaction.atomic():
        folder_ids = _collect_subtree_ids(
            folder.id,
            Folder.all_objects,
            is_deleted=True,
            deleted_at=deleted_at,
        )
        if (
            folder.parent_id is not None
            and not Folder.objects.filter(id=folder.parent_id).exists()
        ):
            logger.info(
                'Parent %d of folder %d not available, restoring to root',
                folder.parent_id,
                folder.id,
            )
            folder.parent = None
            folder.save(update_fields=['parent'])

        Folder.all_objects.filter(id__in=folder_ids).update(
            is_deleted=False,
            deleted_at=None,
            deleted_by=None,
        )
        FileEntry.all_objects.filter(
            folder_id__in=folder_ids,
            is_deleted=True,
            deleted_at=deleted_at,
        ).update(is_deleted=False, deleted_at=None)

    folder.refresh_from_db()
    logger.info(
        'Folder restored: %s (ID: %d, %d folders)',
        folder.name,
        folder.id,
        len(folder_ids),
    )

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        *_folder_keys(owner.pk, folder.parent_id, folder_ids),
    )
    return folder


def permanent_delete_folder(folder_id: int) -> None:
    """Permanently delete a trashed folder and its subtree.

    Raises:
        Folder.DoesNotExist: If folder not found or not in trash.
    """
    folder = Folder.all_objects.get(id=folder_id, is_deleted=True)
    with transaction.atomic():
        folder.delete()
    logger.info('Folder permanently deleted: ID=%d', folder_id)


def _folder_keys(
    owner_id: int,
    parent_id: int | None,
    folder_ids: list[int],
) -> list[str]:
    keys = parent_listing_keys(owner_id, parent_id)
    for subtree_id in folder_ids:
        keys.extend([
            vault_cache.folder_listing_key(owner_id, subtree_id),
            vault_cache.file_listing_key(owner_id, subtree_id),
        ])
    grantee_ids = set(
        SharedFolder.objects.filter(folder_id__in=folder_ids).values_list(
            'shared_with_id',
            flat=True,
        ),
    ) | set(
        SharedFile.objects.filter(file__folder_id__in=folder_ids).values_list(
            'shared_with_id',
            flat=True,
        ),
    )
    keys.extend(vault_cache.shared_with_key(user_id) for user_id in grantee_ids)
    return keys
