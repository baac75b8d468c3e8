"""Access control for owned and shared files and folders.

Owners always pass. Anyone else needs an active, unexpired grant whose
permission level satisfies the required level. Allowed checks through
a grant bump its access telemetry.

Callers that must not reveal whether a resource exists use the
``get_owned_*`` and ``require_*`` helpers: users with no relation to a
resource get ``DoesNotExist``, users holding a grant that is not
enough get ``PermissionDenied``.
"""

import logging
from datetime import datetime
from typing import Any

from django.core.cache import BaseCache
from django.core.exceptions import PermissionDenied
from django.db.models import F
from django.utils import timezone

from server.apps.vault.infrastructure import cache as vault_cache
from server.apps.vault.models import (
    FileEntry,
    Folder,
    SharedFile,
    SharedFolder,
    ShareGrant,
)
from server.apps.vault.permissions import (
    AccessDecision,
    PermissionType,
    satisfies,
)

# User type for Django's dynamic user model
_User = Any

Resource = Folder | FileEntry

logger = logging.getLogger(__name__)


def share_model_for(resource: Resource) -> type[ShareGrant]:
    """Get the grant model matching a resource.

    Args:
        resource: Folder or file entry.

    Returns:
        SharedFolder or SharedFile.

    Raises:
        TypeError: If the resource is neither.
    """
    if isinstance(resource, Folder):
        return SharedFolder
    if isinstance(resource, FileEntry):
        return SharedFile
    raise TypeError(f'Unsupported resource type: {type(resource).__name__}')


def shares_key_for(resource: Resource) -> str:
    """Key of the grant listing of a folder or file."""
    if isinstance(resource, Folder):
        return vault_cache.folder_shares_key(resource.pk)
    return vault_cache.file_shares_key(resource.pk)


def grant_listing_keys(resource: Resource) -> list[str]:
    """Keys of every cached listing that shows a resource's grants.

    Covers the resource's own grant listing and the "shared with me"
    listing of each grantee, revoked grants included.
    """
    share_model = share_model_for(resource)
    grantee_ids = share_model.objects.filter(
        **{share_model.resource_field: resource},
    ).values_list('shared_with_id', flat=True)
    return [
        shares_key_for(resource),
        *(vault_cache.shared_with_key(user_id) for user_id in grantee_ids),
    ]


def find_active_share(resource: Resource, user_id: int) -> ShareGrant | None:
    """Get the active grant of a resource to a user, expired or not.

    Args:
        resource: Shared folder or file.
        user_id: Grantee ID.

    Returns:
        The grant, or None if the user holds no active grant.
    """
    share_model = share_model_for(resource)
    return share_model.objects.filter(
        **{share_model.resource_field: resource},
        shared_with_id=user_id,
        is_active=True,
    ).order_by('-shared_at', '-id').first()


def check_access(
    resource: Resource,
    principal: _User,
    required: PermissionType,
    *,
    cache: BaseCache | None = None,
) -> AccessDecision:
    """Decide whether a user may act on a resource.

    Fail-closed: any unexpected error is logged and reported as DENY.

    Args:
        resource: Folder or file entry.
        principal: User asking for access.
        required: Minimum permission the action needs.
        cache: Injected cache service, refreshed when telemetry changes.

    Returns:
        AccessDecision.ALLOW or AccessDecision.DENY.
    """
    try:
        return _evaluate_access(resource, principal, required, cache)
    except Exception:
        logger.exception(
            'Access check failed, denying: %s %s for user %s',
            type(resource).__name__,
            getattr(resource, 'pk', None),
            getattr(principal, 'pk', None),
        )
        return AccessDecision.DENY


def check_folder_access(
    folder_id: int,
    principal: _User,
    required: PermissionType,
    *,
    cache: BaseCache | None = None,
) -> AccessDecision:
    """Access check by folder ID; missing folders are denied."""
    folder = Folder.objects.filter(id=folder_id).first()
    if folder is None:
        logger.info('Access denied, folder not found: ID=%s', folder_id)
        return AccessDecision.DENY
    return check_access(folder, principal, required, cache=cache)


def check_file_access(
    file_id: int,
    principal: _User,
    required: PermissionType,
    *,
    cache: BaseCache | None = None,
) -> AccessDecision:
    """Access check by file ID; missing files are denied."""
    file_entry = FileEntry.objects.filter(id=file_id).first()
    if file_entry is None:
        logger.info('Access denied, file not found: ID=%s', file_id)
        return AccessDecision.DENY
    return check_access(file_entry, principal, required, cache=cache)


def _evaluate_access(
    resource: Resource,
    principal: _User,
    required: PermissionType,
    cache: BaseCache | None,
) -> AccessDecision:
    if resource.owner_id == principal.pk:
        return AccessDecision.ALLOW

    share = find_active_share(resource, principal.pk)
    if share is None:
        logger.info(
            'Access denied, no active share: %s %d for user %s',
            type(resource).__name__,
            resource.pk,
            principal.pk,
        )
        return AccessDecision.DENY

    now = timezone.now()
    if share.is_expired(now):
        logger.info(
            'Access denied, share %d expired at %s',
            share.pk,
            share.expires_at,
        )
        return AccessDecision.DENY

    if not satisfies(share.permission, required):
        logger.warning(
            'Access denied, share %d grants %s but %s is required',
            share.pk,
            PermissionType(share.permission).label,
            PermissionType(required).label,
        )
        return AccessDecision.DENY

    _record_access(share, principal, now)
    # Grant listings carry the telemetry just bumped
    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        shares_key_for(resource),
        vault_cache.shared_with_key(principal.pk),
    )
    return AccessDecision.ALLOW


def _record_access(share: ShareGrant, principal: _User, now: datetime) -> None:
    """Persist access telemetry on a grant and mirror it on the instance."""
    type(share).objects.filter(id=share.pk).update(
        access_count=F('access_count') + 1,
        last_accessed_by=principal,
        last_accessed_at=now,
    )
    share.access_count += 1
    share.last_accessed_by = principal
    share.last_accessed_at = now
    logger.debug(
        'Share %d accessed by user %s (count: %d)',
        share.pk,
        principal.pk,
        share.access_count,
    )


def has_access_to_folder(
    folder: Folder,
    user: _User,
    required: PermissionType = PermissionType.READ,
) -> bool:
    """Check folder access without recording telemetry.

    A FullControl grant is treated like ownership.

    Args:
        folder: Folder to check.
        user: User asking for access.
        required: Minimum permission needed.

    Returns:
        True if the user owns the folder or holds a sufficient grant.
    """
    if folder.owner_id == user.pk:
        return True
    share = find_active_share(folder, user.pk)
    if share is None or share.is_expired():
        return False
    if share.permission == PermissionType.FULL_CONTROL:
        return True
    return satisfies(share.permission, required)


def _hide_or_deny(resource: Resource, user: _User, action: str) -> None:
    """Raise the error a non-owner gets for an owner-only action.

    Raises:
        PermissionDenied: If the user holds an active grant on the resource.
        DoesNotExist: Otherwise, so the resource stays invisible.
    """
    kind = type(resource).__name__
    if find_active_share(resource, user.pk) is not None:
        logger.warning(
            'User %s may not %s %s %d',
            user.pk,
            action,
            kind,
            resource.pk,
        )
        raise PermissionDenied(f'Only the owner can {action} this {kind}')
    raise type(resource).DoesNotExist(f'{kind} not found: {resource.pk}')


def get_owned_folder(folder_id: int, user: _User, action: str = 'manage') -> Folder:
    """Get a folder the user owns.

    Args:
        folder_id: Folder ID.
        user: Expected owner.
        action: Verb used in the PermissionDenied message.

    Returns:
        Folder instance.

    Raises:
        Folder.DoesNotExist: If the folder is missing or invisible to user.
        PermissionDenied: If the user only holds a grant on it.
    """
    folder = Folder.objects.filter(id=folder_id).first()
    if folder is None:
        raise Folder.DoesNotExist(f'Folder not found: {folder_id}')
    if folder.owner_id != user.pk:
        _hide_or_deny(folder, user, action)
    return folder


def get_owned_file(file_id: int, user: _User, action: str = 'manage') -> FileEntry:
    """Get a file the user owns.

    Args:
        file_id: File ID.
        user: Expected owner.
        action: Verb used in the PermissionDenied message.

    Returns:
        FileEntry instance.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible to user.
        PermissionDenied: If the user only holds a grant on it.
    """
    file_entry = FileEntry.objects.filter(id=file_id).first()
    if file_entry is None:
        raise FileEntry.DoesNotExist(f'FileEntry not found: {file_id}')
    if file_entry.owner_id != user.pk:
        _hide_or_deny(file_entry, user, action)
    return file_entry


def require_access(
    resource: Resource,
    user: _User,
    required: PermissionType,
) -> None:
    """Raise unless the access check allows the user.

    Publicly readable files pass Read checks for every user.

    Raises:
        PermissionDenied: If the user can see the resource but the check
            denies.
        DoesNotExist: If the user has no relation to the resource.
    """
    if (
        required == PermissionType.READ
        and isinstance(resource, FileEntry)
        and resource.is_publicly_readable()
    ):
        return
    if check_access(resource, user, required):
        return
    kind = type(resource).__name__
    if find_active_share(resource, user.pk) is not None:
        raise PermissionDenied(
            f'{PermissionType(required).label} permission required '
            f'on {kind} {resource.pk}',
        )
    raise type(resource).DoesNotExist(f'{kind} not found: {resource.pk}')
