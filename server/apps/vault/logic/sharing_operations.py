"""Business logic for sharing files and folders.

Sharing is idempotent per (resource, grantee): sharing again updates
the active grant in place. Revoking deactivates a grant but keeps it,
so owners can always see the full share history of their resources.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from django.contrib.auth import get_user_model
from django.core.cache import BaseCache
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from server.apps.vault.exceptions import ShareConflictError
from server.apps.vault.infrastructure import cache as vault_cache
from server.apps.vault.logic.access_control import (
    Resource,
    get_owned_file,
    get_owned_folder,
    share_model_for,
    shares_key_for,
)
from server.apps.vault.logic.summaries import (
    ShareHistory,
    ShareResult,
    ShareSummary,
    SharedWithMe,
)
from server.apps.vault.models import (
    SharedFile,
    SharedFolder,
    ShareGrant,
)
from server.apps.vault.permissions import PermissionType

User = get_user_model()

# User type for Django's dynamic user model
_User = Any

# Fields refreshed when an active grant is shared again
_RESHARE_FIELDS = ('permission', 'expires_at', 'note', 'shared_at', 'is_active')

logger = logging.getLogger(__name__)


def _clean_permission(permission: int) -> PermissionType:
    try:
        return PermissionType(permission)
    except ValueError as error:
        raise ValidationError(f'Unknown permission level: {permission}') from error


def _get_grantee(grantor: _User, grantee_id: int) -> _User:
    grantee = User.objects.get(pk=grantee_id)
    if grantee.pk == grantor.pk:
        raise ValidationError('Cannot share a resource with yourself')
    return grantee


def _apply_grant_fields(
    grant: ShareGrant,
    permission: PermissionType,
    expires_at: datetime | None,
    note: str,
) -> None:
    grant.permission = permission
    grant.expires_at = expires_at
    grant.note = note
    grant.shared_at = timezone.now()
    grant.is_active = True
    grant.save(update_fields=list(_RESHARE_FIELDS))


def _upsert_grant(  # noqa: WPS211
    resource: Resource,
    grantor: _User,
    grantee: _User,
    permission: PermissionType,
    expires_at: datetime | None,
    note: str,
) -> tuple[ShareGrant, bool]:
    """Create the active grant or update the existing one in place.

    Returns:
        Tuple of (grant, created).

    Raises:
        ShareConflictError: If a concurrent insert won the uniqueness
            constraint and its grant cannot be found.
    """
    share_model = share_model_for(resource)
    lookup = {
        share_model.resource_field: resource,
        'shared_with': grantee,
        'is_active': True,
    }

    with transaction.atomic():
        existing = share_model.objects.select_for_update().filter(
            **lookup,
        ).first()
        if existing is not None:
            _apply_grant_fields(existing, permission, expires_at, note)
            return existing, False

        try:
            with transaction.atomic():
                grant = share_model.objects.create(
                    **lookup,
                    shared_by=grantor,
                    permission=permission,
                    expires_at=expires_at,
                    note=note,
                )
        except IntegrityError:
            logger.warning(
                'Concurrent share of %s %d with user %s, updating winner',
                type(resource).__name__,
                resource.pk,
                grantee.pk,
            )
            winner = share_model.objects.select_for_update().filter(
                **lookup,
            ).first()
            if winner is None:
                raise ShareConflictError(resource.pk, grantee.pk) from None
            _apply_grant_fields(winner, permission, expires_at, note)
            return winner, False

    return grant, True


def _share(  # noqa: WPS211
    resource: Resource,
    grantor: _User,
    grantee_id: int,
    permission: int,
    expires_at: datetime | None,
    note: str,
    cache: BaseCache | None,
) -> ShareGrant:
    level = _clean_permission(permission)
    grantee = _get_grantee(grantor, grantee_id)

    grant, created = _upsert_grant(
        resource,
        grantor,
        grantee,
        level,
        expires_at,
        note,
    )
    logger.info(
        '%s %s %d with user %s (%s, grant %d)',
        'Shared' if created else 'Updated share of',
        type(resource).__name__,
        resource.pk,
        grantee.pk,
        level.label,
        grant.pk,
    )

    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        vault_cache.shared_with_key(grantee.pk),
        shares_key_for(resource),
    )
    return grant


def share_folder(  # noqa: WPS211
    folder_id: int,
    grantor: _User,
    grantee_id: int,
    permission: int = PermissionType.READ,
    expires_at: datetime | None = None,
    note: str = '',
    *,
    cache: BaseCache | None = None,
) -> SharedFolder:
    """Share a folder with another user.

    If the user already holds an active grant on the folder, that grant
    is updated (permission, expiry, note, shared_at) instead of creating
    a second one.

    Args:
        folder_id: Folder to share.
        grantor: Folder owner.
        grantee_id: User receiving access.
        permission: Permission level to grant.
        expires_at: Optional moment after which access checks fail.
        note: Optional note for the grantee.
        cache: Injected cache service.

    Returns:
        The created or updated SharedFolder.

    Raises:
        Folder.DoesNotExist: If the folder is missing or invisible.
        PermissionDenied: If the grantor only holds a grant on the folder.
        User.DoesNotExist: If the grantee does not exist.
        ValidationError: On self-share or unknown permission level.
    """
    folder = get_owned_folder(folder_id, grantor, 'share')
    return _share(
        folder,
        grantor,
        grantee_id,
        permission,
        expires_at,
        note,
        cache,
    )


def share_file(  # noqa: WPS211
    file_id: int,
    grantor: _User,
    grantee_id: int,
    permission: int = PermissionType.READ,
    expires_at: datetime | None = None,
    note: str = '',
    *,
    cache: BaseCache | None = None,
) -> SharedFile:
    """Share a file with another user, Read access by default.

    Same idempotent update rules as share_folder.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the grantor only holds a grant on the file.
        User.DoesNotExist: If the grantee does not exist.
        ValidationError: On self-share or unknown permission level.
    """
    file_entry = get_owned_file(file_id, grantor, 'share')
    return _share(
        file_entry,
        grantor,
        grantee_id,
        permission,
        expires_at,
        note,
        cache,
    )


def share_file_with_users(  # noqa: WPS211
    file_id: int,
    grantor: _User,
    grantee_ids: Iterable[int],
    permission: int = PermissionType.READ,
    expires_at: datetime | None = None,
    note: str = '',
    *,
    cache: BaseCache | None = None,
) -> list[ShareResult]:
    """Share a file with several users, reporting the outcome per user.

    Users that already hold an active grant are reported and left
    unchanged.

    Args:
        file_id: File to share.
        grantor: File owner.
        grantee_ids: Users receiving access.
        permission: Permission level to grant.
        expires_at: Optional expiry for the new grants.
        note: Optional note for the grantees.
        cache: Injected cache service.

    Returns:
        One ShareResult per distinct requested user ID.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the grantor only holds a grant on the file.
        ValidationError: If none of the users can receive the file.
    """
    file_entry = get_owned_file(file_id, grantor, 'share')
    level = _clean_permission(permission)
    requested = list(dict.fromkeys(grantee_ids))

    valid_ids = set(
        User.objects.filter(pk__in=requested).values_list('pk', flat=True),
    )
    valid_ids.discard(grantor.pk)
    if not valid_ids:
        raise ValidationError('No valid users to share the file with')

    already_shared = set(
        SharedFile.objects.filter(
            file=file_entry,
            shared_with_id__in=valid_ids,
            is_active=True,
        ).values_list('shared_with_id', flat=True),
    )

    results: list[ShareResult] = []
    for user_id in requested:
        if user_id == grantor.pk:
            results.append(
                ShareResult(user_id, False, 'Cannot share with yourself'),
            )
        elif user_id not in valid_ids:
            results.append(ShareResult(user_id, False, 'User not found'))
        elif user_id in already_shared:
            results.append(
                ShareResult(user_id, False, 'File already shared with user'),
            )
        else:
            _share(
                file_entry,
                grantor,
                user_id,
                level,
                expires_at,
                note,
                cache,
            )
            results.append(ShareResult(user_id, True, 'File shared'))

    logger.info(
        'File %d shared with %d of %d requested users',
        file_entry.pk,
        sum(1 for result in results if result.success),
        len(requested),
    )
    return results


def _revoke(
    resource: Resource,
    grantee_id: int,
    cache: BaseCache | None,
) -> ShareGrant:
    share_model = share_model_for(resource)
    with transaction.atomic():
        grant = share_model.objects.select_for_update().filter(
            **{share_model.resource_field: resource},
            shared_with_id=grantee_id,
            is_active=True,
        ).first()
        if grant is None:
            raise share_model.DoesNotExist(
                f'No active share of {type(resource).__name__} '
                f'{resource.pk} with user {grantee_id}',
            )
        grant.is_active = False
        grant.save(update_fields=['is_active'])

    logger.info(
        'Revoked access of user %s to %s %d (grant %d)',
        grantee_id,
        type(resource).__name__,
        resource.pk,
        grant.pk,
    )
    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        vault_cache.shared_with_key(grantee_id),
        shares_key_for(resource),
    )
    return grant


def revoke_folder_access(
    folder_id: int,
    grantee_id: int,
    caller: _User,
    *,
    cache: BaseCache | None = None,
) -> SharedFolder:
    """Deactivate a user's active grant on a folder.

    Raises:
        Folder.DoesNotExist: If the folder is missing or invisible.
        PermissionDenied: If the caller only holds a grant on the folder.
        SharedFolder.DoesNotExist: If the user holds no active grant.
    """
    folder = get_owned_folder(folder_id, caller, 'revoke access to')
    return _revoke(folder, grantee_id, cache)


def revoke_file_access(
    file_id: int,
    grantee_id: int,
    caller: _User,
    *,
    cache: BaseCache | None = None,
) -> SharedFile:
    """Deactivate a user's active grant on a file.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the caller only holds a grant on the file.
        SharedFile.DoesNotExist: If the user holds no active grant.
    """
    file_entry = get_owned_file(file_id, caller, 'revoke access to')
    return _revoke(file_entry, grantee_id, cache)


def _refresh_share_date(
    resource: Resource,
    grantee_id: int,
    cache: BaseCache | None,
) -> ShareGrant:
    share_model = share_model_for(resource)
    grant = share_model.objects.filter(
        **{share_model.resource_field: resource},
        shared_with_id=grantee_id,
        is_active=True,
    ).first()
    if grant is None:
        raise share_model.DoesNotExist(
            f'No active share of {type(resource).__name__} '
            f'{resource.pk} with user {grantee_id}',
        )
    grant.shared_at = timezone.now()
    grant.save(update_fields=['shared_at'])

    logger.info('Share date refreshed: grant %d', grant.pk)
    vault_cache.invalidate(
        vault_cache.get_cache(cache),
        vault_cache.shared_with_key(grantee_id),
        shares_key_for(resource),
    )
    return grant


def refresh_folder_share_date(
    folder_id: int,
    grantee_id: int,
    caller: _User,
    *,
    cache: BaseCache | None = None,
) -> SharedFolder:
    """Set ``shared_at`` of an active folder grant to now."""
    folder = get_owned_folder(folder_id, caller, 'update shares of')
    return _refresh_share_date(folder, grantee_id, cache)


def refresh_file_share_date(
    file_id: int,
    grantee_id: int,
    caller: _User,
    *,
    cache: BaseCache | None = None,
) -> SharedFile:
    """Set ``shared_at`` of an active file grant to now."""
    file_entry = get_owned_file(file_id, caller, 'update shares of')
    return _refresh_share_date(file_entry, grantee_id, cache)


def _list_shares(
    resource: Resource,
    cache: BaseCache | None,
) -> list[ShareSummary]:
    cache_service = vault_cache.get_cache(cache)
    cache_key = shares_key_for(resource)

    cached = cache_service.get(cache_key)
    if cached is not None:
        logger.debug('Share listing served from cache: %s', cache_key)
        return cached

    share_model = share_model_for(resource)
    grants = share_model.objects.filter(
        **{share_model.resource_field: resource},
    ).select_related(share_model.resource_field, 'shared_by', 'shared_with')
    summaries = [ShareSummary.from_grant(grant) for grant in grants]

    cache_service.set(cache_key, summaries, vault_cache.get_listing_ttl())
    return summaries


def list_folder_shares(
    folder_id: int,
    caller: _User,
    *,
    cache: BaseCache | None = None,
) -> list[ShareSummary]:
    """List every grant of a folder, active and revoked, newest first.

    Raises:
        Folder.DoesNotExist: If the folder is missing or invisible.
        PermissionDenied: If the caller only holds a grant on the folder.
    """
    folder = get_owned_folder(folder_id, caller, 'view shares of')
    return _list_shares(folder, cache)


def list_file_shares(
    file_id: int,
    caller: _User,
    *,
    cache: BaseCache | None = None,
) -> list[ShareSummary]:
    """List every grant of a file, active and revoked, newest first.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the caller only holds a grant on the file.
    """
    file_entry = get_owned_file(file_id, caller, 'view shares of')
    return _list_shares(file_entry, cache)


def list_shared_with_me(
    user: _User,
    *,
    cache: BaseCache | None = None,
) -> SharedWithMe:
    """List active grants a user received, with resource and grantor info.

    Cached per user with a short TTL.

    Args:
        user: Grantee.
        cache: Injected cache service.

    Returns:
        SharedWithMe snapshot of folder and file grants.
    """
    cache_service = vault_cache.get_cache(cache)
    cache_key = vault_cache.shared_with_key(user.pk)

    cached = cache_service.get(cache_key)
    if cached is not None:
        logger.debug('Shared-with listing served from cache: %s', cache_key)
        return cached

    folder_grants = SharedFolder.objects.filter(
        shared_with=user,
        is_active=True,
        folder__is_deleted=False,
    ).select_related('folder', 'shared_by', 'shared_with')
    file_grants = SharedFile.objects.filter(
        shared_with=user,
        is_active=True,
        file__is_deleted=False,
    ).select_related('file', 'shared_by', 'shared_with')

    shared = SharedWithMe(
        folders=[ShareSummary.from_grant(grant) for grant in folder_grants],
        files=[ShareSummary.from_grant(grant) for grant in file_grants],
    )
    cache_service.set(
        cache_key,
        shared,
        vault_cache.get_shared_with_me_ttl(),
    )
    return shared


def share_history(admin: _User) -> ShareHistory:
    """List every file and folder grant in the system, newest first.

    Args:
        admin: Staff user asking for the history.

    Returns:
        ShareHistory with totals and entries.

    Raises:
        PermissionDenied: If the user is not staff.
    """
    if not admin.is_staff:
        logger.warning('Non-staff user %s requested share history', admin.pk)
        raise PermissionDenied('Share history is available to staff only')

    entries = [
        ShareSummary.from_grant(grant)
        for grant in SharedFolder.objects.select_related(
            'folder',
            'shared_by',
            'shared_with',
        )
    ]
    entries.extend(
        ShareSummary.from_grant(grant)
        for grant in SharedFile.objects.select_related(
            'file',
            'shared_by',
            'shared_with',
        )
    )
    entries.sort(key=lambda entry: entry.shared_at, reverse=True)

    active = sum(1 for entry in entries if entry.is_active)
    return ShareHistory(
        total=len(entries),
        active=active,
        inactive=len(entries) - active,
        entries=entries,
    )

