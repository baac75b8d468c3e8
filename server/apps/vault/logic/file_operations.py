"""Business logic for file operations."""

import logging
from typing import TYPE_CHECKING, Any, BinaryIO

from django.core.cache import BaseCache
from django.core.files.base import File as DjangoFile
from django.core.files.storage import default_storage
from django.db import transaction
from django.utils import timezone

from server.apps.vault.infrastructure import cache as vault_cache
from server.apps.vault.infrastructure.metadata import (
    build_storage_key,
    calculate_checksum,
    detect_mime_type,
    get_file_size,
    validate_name,
)
from server.apps.vault.logic.access_control import (
    get_owned_file,
    grant_listing_keys,
    require_access,
)
from server.apps.vault.logic.summaries import FileSummary
from server.apps.vault.models import FileEntry, FileVersion, Folder
from server.apps.vault.permissions import PermissionType

if TYPE_CHECKING:
    from datetime import datetime

    from server.apps.vault.infrastructure.storage import BlobStorage

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)


def _get_storage() -> 'BlobStorage':
    """Get the configured default storage backend.

    Returns:
        BlobStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]


def _get_owned_folder_or_root(owner: _User, folder_id: int | None) -> Folder | None:
    if folder_id is None:
        return None
    folder = Folder.objects.filter(id=folder_id, owner=owner).first()
    if folder is None:
        raise Folder.DoesNotExist(f'Folder not found: {folder_id}')
    return folder


def _listing_keys(owner_id: int, folder: Folder | None) -> list[str]:
    """Keys staled when files appear in or leave a folder."""
    keys = [vault_cache.file_listing_key(owner_id, folder.id if folder else None)]
    if folder is not None:
        # Parent listing carries this folder's file count
        keys.append(vault_cache.folder_listing_key(owner_id, folder.parent_id))
    return keys


def upload_file(  # noqa: WPS211
    owner: _User,
    name: str,
    file_obj: BinaryIO | DjangoFile,
    folder_id: int | None = None,
    content_type: str | None = None,
    is_public: bool = False,
    expires_at: 'datetime | None' = None,
    *,
    cache: BaseCache | None = None,
) -> FileEntry:
    """Upload file content to the blob store and create its record.

    Transaction safety: Upload to storage first, then create DB record.
    If the DB write fails, the uploaded blob is deleted (rollback).

    Args:
        owner: Owner of the file.
        name: Filename.
        file_obj: File-like object to upload.
        folder_id: Target folder, None for the owner's root.
        content_type: MIME type; detected from the name when omitted.
        is_public: Whether any user may read the file.
        expires_at: Optional end of public access.
        cache: Injected cache service.

    Returns:
        Created FileEntry instance.

    Raises:
        ValidationError: If the name is invalid.
        Folder.DoesNotExist: If the target folder is missing or not owned.
        Exception: If upload or DB operation fails.
    """
    filename = validate_name(name, 'File name')
    folder = _get_owned_folder_or_root(owner, folder_id)

    logger.info('Calculating metadata for file: %s', filename)
    checksum = calculate_checksum(file_obj)
    file_size = get_file_size(file_obj)
    mime_type = content_type or detect_mime_type(filename)

    storage = _get_storage()

    # Step 1: Upload to storage first
    saved_key = storage.save(build_storage_key(owner.pk, filename), file_obj)

    # Step 2: Create database record (in transaction)
    try:
        with transaction.atomic():
            file_entry = FileEntry.objects.create(
                name=filename,
                content_type=mime_type,
                size_bytes=file_size,
                checksum_sha256=checksum,
                storage_key=saved_key,
                owner=owner,
                folder=folder,
                is_public=is_public,
                expires_at=expires_at,
            )
    except Exception:
        logger.exception(
            'Database transaction failed, rolling back storage upload: %s',
            saved_key,
        )
        storage.rollback_upload(saved_key)
        raise

    logger.info(
        'File record created: %s (ID: %d, folder: %s)',
        file_entry.name,
        file_entry.id,
        folder_id,
    )
    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        *_listing_keys(owner.pk, folder),
    )
    return file_entry


def download_file(file_id: int, user: _User) -> bytes:
    """Read a file's content.

    Owners, grantees holding Read, and anyone for public non-expired
    files may download.

    Args:
        file_id: File to download.
        user: User asking for the content.

    Returns:
        File content.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the user's grant does not allow Read.
        FileNotFoundError: If the blob is gone from storage.
    """
    file_entry = FileEntry.objects.filter(id=file_id).first()
    if file_entry is None:
        raise FileEntry.DoesNotExist(f'FileEntry not found: {file_id}')
    require_access(file_entry, user, PermissionType.READ)

    content = _get_storage().get_blob(file_entry.storage_key)
    logger.info('File downloaded: %s (ID: %d) by user %s', file_entry.name, file_id, user.pk)
    return content


def update_file_content(
    file_id: int,
    user: _User,
    file_obj: BinaryIO | DjangoFile,
    *,
    cache: BaseCache | None = None,
) -> FileEntry:
    """Replace a file's content.

    New content goes to a fresh key; the record then points to it. The
    old blob is released unless a version still refers to it.

    Args:
        file_id: File to update.
        user: Owner or grantee holding Write.
        file_obj: New content.
        cache: Injected cache service.

    Returns:
        Updated FileEntry instance.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the user's grant does not allow Write.
    """
    file_entry = FileEntry.objects.filter(id=file_id).first()
    if file_entry is None:
        raise FileEntry.DoesNotExist(f'FileEntry not found: {file_id}')
    require_access(file_entry, user, PermissionType.WRITE)

    old_key = file_entry.storage_key
    checksum = calculate_checksum(file_obj)
    file_size = get_file_size(file_obj)
    storage = _get_storage()

    logger.info('Updating file content: %s (ID: %d)', file_entry.name, file_id)
    new_key = storage.save(
        build_storage_key(file_entry.owner_id, file_entry.name),
        file_obj,
    )

    try:
        with transaction.atomic():
            file_entry.storage_key = new_key
            file_entry.size_bytes = file_size
            file_entry.checksum_sha256 = checksum
            file_entry.last_modified = timezone.now()
            file_entry.save(update_fields=[
                'storage_key',
                'size_bytes',
                'checksum_sha256',
                'last_modified',
            ])
            transaction.on_commit(lambda: release_blob(old_key))
    except Exception:
        logger.exception('DB update failed, rolling back')
        storage.rollback_upload(new_key)
        raise

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        vault_cache.file_listing_key(file_entry.owner_id, file_entry.folder_id),
    )
    return file_entry


def release_blob(storage_key: str) -> None:
    """Delete a blob once no file or version refers to it.

    Best effort: storage failures are logged, the orphaned blob can be
    cleaned up later.

    Args:
        storage_key: Blob key no longer used by the caller.
    """
    still_used = (
        FileEntry.all_objects.filter(storage_key=storage_key).exists()
        or FileVersion.objects.filter(storage_key=storage_key).exists()
    )
    if still_used:
        logger.debug('Blob still referenced, keeping: %s', storage_key)
        return
    try:
        _get_storage().delete_blob(storage_key)
    except Exception:
        logger.exception('Failed to delete blob (orphaned): %s', storage_key)


def rename_file(
    file_id: int,
    new_name: str,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> FileEntry:
    """Rename a file.

    Raises:
        ValidationError: If the name is invalid.
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the user only holds a grant on the file.
    """
    filename = validate_name(new_name, 'File name')
    file_entry = get_owned_file(file_id, owner, 'rename')

    file_entry.name = filename
    file_entry.save(update_fields=['name'])
    logger.info('File renamed: ID=%d -> %s', file_id, filename)

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        vault_cache.file_listing_key(owner.pk, file_entry.folder_id),
        *grant_listing_keys(file_entry),
    )
    return file_entry


def move_file(
    file_id: int,
    folder_id: int | None,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> FileEntry:
    """Move a file to another folder or to the owner's root.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        Folder.DoesNotExist: If the target folder is missing or not owned.
        PermissionDenied: If the user only holds a grant on the file.
    """
    file_entry = get_owned_file(file_id, owner, 'move')
    target = _get_owned_folder_or_root(owner, folder_id)
    source = file_entry.folder

    file_entry.folder = target
    file_entry.save(update_fields=['folder'])
    logger.info(
        'File moved: ID=%d from folder %s to %s',
        file_id,
        source.id if source else None,
        folder_id,
    )

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        *_listing_keys(owner.pk, source),
        *_listing_keys(owner.pk, target),
    )
    return file_entry


def delete_file(
    file_id: int,
    owner: _User,
    *,
    cache: BaseCache | None = None,
) -> None:
    """Delete a file with its grants and versions.

    Storage cleanup runs after commit via the post_delete signal.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the user only holds a grant on the file.
    """
    file_entry = get_owned_file(file_id, owner, 'delete')
    folder = file_entry.folder
    grantee_ids = list(
        file_entry.shares.values_list('shared_with_id', flat=True),
    )

    with transaction.atomic():
        file_entry.delete()
    logger.info('File deleted: ID=%d', file_id)

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        *_listing_keys(owner.pk, folder),
        vault_cache.file_shares_key(file_id),
        *(vault_cache.shared_with_key(user_id) for user_id in grantee_ids),
    )


def list_files(
    owner: _User,
    folder_id: int | None = None,
    *,
    cache: BaseCache | None = None,
) -> list[FileSummary]:
    """List an owner's files in a folder, cached per (owner, folder).

    Args:
        owner: File owner.
        folder_id: Folder ID, None for the root.
        cache: Injected cache service.

    Returns:
        File summaries ordered by name.
    """
    cache_service = vault_cache.get_cache(cache)
    cache_key = vault_cache.file_listing_key(owner.pk, folder_id)

    cached = cache_service.get(cache_key)
    if cached is not None:
        logger.debug('File listing served from cache: %s', cache_key)
        return cached

    summaries = [
        FileSummary.from_file(file_entry)
        for file_entry in FileEntry.objects.filter(
            owner=owner,
            folder_id=folder_id,
        )
    ]
    cache_service.set(cache_key, summaries, vault_cache.get_listing_ttl())
    return summaries
