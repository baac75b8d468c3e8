"""Business logic for folder hierarchy operations.

Folders form one tree per owner. Only owners create, rename, move and
delete folders; grantees can read folder contents through their grants.
"""

import logging
from typing import Any

from django.core.cache import BaseCache
from django.db import transaction
from django.db.models import Count, Q, QuerySet
from django.utils import timezone

from server.apps.vault.exceptions import CircularFolderReferenceError
from server.apps.vault.infrastructure import cache as vault_cache
from server.apps.vault.infrastructure.metadata import validate_name
from server.apps.vault.logic.access_control import (
    get_owned_folder,
    grant_listing_keys,
    require_access,
)
from server.apps.vault.logic.summaries import (
    FileSummary,
    FolderContents,
    FolderSummary,
)
from server.apps.vault.models import (
    FileEntry,
    Folder,
    SharedFile,
    SharedFolder,
)
from server.apps.vault.permissions import PermissionType

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)


def _with_counts(folders: QuerySet[Folder]) -> QuerySet[Folder]:
    """Annotate folders with their active file and subfolder counts."""
    return folders.annotate(
        active_file_count=Count(
            'files',
            filter=Q(files__is_deleted=False),
            distinct=True,
        ),
        active_subfolder_count=Count(
            'subfolders',
            filter=Q(subfolders__is_deleted=False),
            distinct=True,
        ),
    )


def _summarize(folders: QuerySet[Folder]) -> list[FolderSummary]:
    return [
        FolderSummary.from_folder(
            folder,
            file_count=folder.active_file_count,
            subfolder_count=folder.active_subfolder_count,
        )
        for folder in _with_counts(folders)
    ]


def parent_listing_keys(owner_id: int, parent_id: int | None) -> list[str]:
    """Keys staled when folders appear in or leave a parent.

    The parent's own listing changes, and so does the listing one level
    up, which carries the parent's subfolder and file counts.
    """
    keys = [vault_cache.folder_listing_key(owner_id, parent_id)]
    if parent_id is not None:
        grandparent_id = Folder.all_objects.filter(
            id=parent_id,
        ).values_list('parent_id', flat=True).first()
        keys.append(vault_cache.folder_listing_key(owner_id, grandparent_id))
    return keys


def create_folder(
    owner: _User,
    name: str,
    parent_id: int | None = None,
    *,
    cache: BaseCache | None = None,
) -> Folder:
    """Create a folder in the owner's root or under one of their folders.

    Args:
        owner: Owner of the new folder.
        name: Folder name.
        parent_id: Optional parent folder ID, owned by the same user.
        cache: Injected cache service.

    Returns:
        Created Folder instance (``updated_at`` is None).

    Raises:
        ValidationError: If the name is empty or invalid.
        Folder.DoesNotExist: If the parent is missing or not owned.
    """
    folder_name = validate_name(name, 'Folder name')

    if parent_id is not None and not Folder.objects.filter(
        id=parent_id,
        owner=owner,
    ).exists():
        logger.warning(
            'Parent folder not found: ID=%s (user %s)',
            parent_id,
            owner.pk,
        )
        raise Folder.DoesNotExist(f'Parent folder not found: {parent_id}')

    folder = Folder.objects.create(
        name=folder_name,
        owner=owner,
        parent_id=parent_id,
    )
    logger.info(
        'Folder created: %s (ID: %d, parent: %s, user: %s)',
        folder.name,
        folder.id,
        parent_id,
        owner.pk,
    )

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        *parent_listing_keys(owner.pk, parent_id),
    )
    return folder


def rename_folder(
    folder_id: int,
    new_name: str,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> Folder:
    """Rename a folder.

    Args:
        folder_id: Folder to rename.
        new_name: New folder name.
        owner: Folder owner.
        cache: Injected cache service.

    Returns:
        Updated Folder instance.

    Raises:
        ValidationError: If the name is empty or invalid.
        Folder.DoesNotExist: If the folder is missing or invisible.
        PermissionDenied: If the user only holds a grant on the folder.
    """
    folder_name = validate_name(new_name, 'Folder name')
    folder = get_owned_folder(folder_id, owner, 'rename')

    old_name = folder.name
    folder.name = folder_name
    folder.updated_at = timezone.now()
    folder.save(update_fields=['name', 'updated_at'])

    logger.info(
        'Folder renamed: %s -> %s (ID: %d)',
        old_name,
        folder.name,
        folder.id,
    )

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        vault_cache.folder_listing_key(owner.pk, folder.parent_id),
        *grant_listing_keys(folder),
    )
    return folder


def is_circular_reference(folder_id: int, new_parent_id: int) -> bool:
    """Check whether moving a folder under a new parent creates a cycle.

    Walks up from ``new_parent_id`` through parent links. A dangling
    parent link ends the walk without reporting a cycle.

    Args:
        folder_id: Folder being moved.
        new_parent_id: Requested new parent.

    Returns:
        True if ``folder_id`` is the new parent or one of its ancestors.
    """
    current_id: int | None = new_parent_id
    seen: set[int] = set()
    while current_id is not None:
        if current_id == folder_id:
            return True
        if current_id in seen:
            # Pre-existing loop that does not involve folder_id
            logger.error('Folder parent loop detected at ID=%d', current_id)
            return False
        seen.add(current_id)
        current_id = Folder.all_objects.filter(
            id=current_id,
        ).values_list('parent_id', flat=True).first()
    return False


def move_folder(
    folder_id: int,
    new_parent_id: int | None,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> Folder:
    """Move a folder under another folder or to the owner's root.

    Args:
        folder_id: Folder to move.
        new_parent_id: Target parent, None for root.
        owner: Owner of both folders.
        cache: Injected cache service.

    Returns:
        Updated Folder instance.

    Raises:
        Folder.DoesNotExist: If the folder or the target is missing or
            not owned.
        PermissionDenied: If the user only holds a grant on the folder.
        CircularFolderReferenceError: If the target is the folder itself
            or one of its descendants.
    """
    with transaction.atomic():
        folder = get_owned_folder(folder_id, owner, 'move')

        if new_parent_id is not None:
            if not Folder.objects.filter(
                id=new_parent_id,
                owner=owner,
            ).exists():
                logger.warning(
                    'Target folder not found: ID=%s (user %s)',
                    new_parent_id,
                    owner.pk,
                )
                raise Folder.DoesNotExist(
                    f'Target folder not found: {new_parent_id}',
                )

            if is_circular_reference(folder.id, new_parent_id):
                logger.warning(
                    'Circular folder reference: %d under %d',
                    folder.id,
                    new_parent_id,
                )
                raise CircularFolderReferenceError(folder.id, new_parent_id)

        old_parent_id = folder.parent_id
        folder.parent_id = new_parent_id
        folder.updated_at = timezone.now()
        folder.save(update_fields=['parent', 'updated_at'])

    logger.info(
        'Folder moved: ID=%d from %s to %s',
        folder.id,
        old_parent_id,
        new_parent_id,
    )

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        *parent_listing_keys(owner.pk, old_parent_id),
        *parent_listing_keys(owner.pk, new_parent_id),
    )
    return folder


def delete_folder(
    folder_id: int,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> int:
    """Delete a folder with all descendant folders and their files.

    The whole subtree is removed in one transaction, deepest folders
    first. Blob contents are removed after commit by the post_delete
    signal. Grants and versions of removed resources go with them.

    Args:
        folder_id: Folder to delete.
        owner: Folder owner.
        cache: Injected cache service.

    Returns:
        Number of folders deleted, including the folder itself.

    Raises:
        Folder.DoesNotExist: If the folder is missing or invisible.
        PermissionDenied: If the user only holds a grant on the folder.
    """
    folder = get_owned_folder(folder_id, owner, 'delete')
    logger.info('Deleting folder: %s (ID: %d)', folder.name, folder.id)

    stale_keys = parent_listing_keys(owner.pk, folder.parent_id)
    with transaction.atomic():
        deleted_count = _delete_subtree(folder, stale_keys)

    vault_cache.invalidate(vault_cache.get_cache(cache), *stale_keys)

    logger.info(
        'Folder deleted: ID=%d (%d folders removed)',
        folder_id,
        deleted_count,
    )
    return deleted_count


def _delete_subtree(folder: Folder, stale_keys: list[str]) -> int:
    """Depth-first delete; collects cache keys made stale on the way."""
    deleted_count = 0
    for child in Folder.all_objects.filter(parent=folder):
        deleted_count += _delete_subtree(child, stale_keys)

    files = FileEntry.all_objects.filter(folder=folder)
    grantee_ids = set(
        SharedFolder.objects.filter(folder=folder).values_list(
            'shared_with_id',
            flat=True,
        ),
    ) | set(
        SharedFile.objects.filter(file__in=files).values_list(
            'shared_with_id',
            flat=True,
        ),
    )
    file_ids = list(files.values_list('id', flat=True))

    stale_keys.extend([
        vault_cache.folder_listing_key(folder.owner_id, folder.parent_id),
        vault_cache.folder_listing_key(folder.owner_id, folder.id),
        vault_cache.file_listing_key(folder.owner_id, folder.id),
        vault_cache.folder_shares_key(folder.id),
    ])
    stale_keys.extend(vault_cache.file_shares_key(file_id) for file_id in file_ids)
    stale_keys.extend(vault_cache.shared_with_key(user_id) for user_id in grantee_ids)

    removed_id = folder.id
    files.delete()
    folder.delete()
    logger.debug(
        'Folder removed: ID=%d with %d files',
        removed_id,
        len(file_ids),
    )
    return deleted_count + 1


def list_folders(
    owner: _User,
    parent_id: int | None = None,
    *,
    cache: BaseCache | None = None,
) -> list[FolderSummary]:
    """List an owner's folders under a parent, with child counts.

    Listings are cached per (owner, parent).

    Args:
        owner: Folder owner.
        parent_id: Parent folder ID, None for the root.
        cache: Injected cache service.

    Returns:
        Folder summaries ordered by name.
    """
    cache_service = vault_cache.get_cache(cache)
    cache_key = vault_cache.folder_listing_key(owner.pk, parent_id)

    cached = cache_service.get(cache_key)
    if cached is not None:
        logger.debug('Folder listing served from cache: %s', cache_key)
        return cached

    summaries = _summarize(
        Folder.objects.filter(owner=owner, parent_id=parent_id),
    )
    cache_service.set(cache_key, summaries, vault_cache.get_listing_ttl())

    logger.debug(
        'Folder listing built: %s (%d folders)',
        cache_key,
        len(summaries),
    )
    return summaries


def get_folder_contents(folder_id: int, user: _User) -> FolderContents:
    """Get a folder with its direct subfolders and files.

    Owners and grantees holding Read can view contents; reading
    through a grant counts as an access.

    Args:
        folder_id: Folder to open.
        user: User opening the folder.

    Returns:
        FolderContents snapshot.

    Raises:
        Folder.DoesNotExist: If the folder is missing or invisible.
        PermissionDenied: If the user's grant is expired.
    """
    folder = Folder.objects.filter(id=folder_id).first()
    if folder is None:
        raise Folder.DoesNotExist(f'Folder not found: {folder_id}')
    require_access(folder, user, PermissionType.READ)

    folder_summary = _summarize(Folder.objects.filter(id=folder.id))[0]
    subfolders = _summarize(Folder.objects.filter(parent=folder))
    files = [
        FileSummary.from_file(file_entry)
        for file_entry in FileEntry.objects.filter(folder=folder)
    ]
    return FolderContents(
        folder=folder_summary,
        subfolders=subfolders,
        files=files,
    )
