"""Cache keys and the cache service used by vault logic.

Listings are cached as snapshots (lists of plain summaries, never model
instances). Invalidation is explicit: every mutating operation removes
the keys it may have staled.
"""

from typing import Final

from django.conf import settings
from django.core.cache import BaseCache, caches

_PREFIX: Final = 'vault'
_ROOT: Final = 'root'


def get_cache(cache: BaseCache | None = None) -> BaseCache:
    """Resolve the cache service for an operation.

    Args:
        cache: Explicitly injected cache, used as-is when given.

    Returns:
        The injected cache or the configured ``VAULT_CACHE_ALIAS`` cache.
    """
    if cache is not None:
        return cache
    return caches[getattr(settings, 'VAULT_CACHE_ALIAS', 'default')]


def get_listing_ttl() -> int:
    """Get TTL for folder and share listings.

    Returns:
        Seconds from settings or default of 300 (5 min).
    """
    return getattr(settings, 'VAULT_LISTING_CACHE_TTL', 300)


def get_shared_with_me_ttl() -> int:
    """Get TTL for "shared with me" listings.

    Returns:
        Seconds from settings or default of 60.
    """
    return getattr(settings, 'VAULT_SHARED_WITH_ME_CACHE_TTL', 60)


def folder_listing_key(owner_id: int, parent_id: int | None) -> str:
    """Key of the folder listing for (owner, parent)."""
    return f'{_PREFIX}:folders:{owner_id}:{parent_id or _ROOT}'


def file_listing_key(owner_id: int, folder_id: int | None) -> str:
    """Key of the file listing for (owner, folder)."""
    return f'{_PREFIX}:files:{owner_id}:{folder_id or _ROOT}'


def shared_with_key(user_id: int) -> str:
    """Key of the "shared with me" listing of a grantee."""
    return f'{_PREFIX}:shared-with:{user_id}'


def folder_shares_key(folder_id: int) -> str:
    """Key of the grant listing of a folder."""
    return f'{_PREFIX}:folder-shares:{folder_id}'


def file_shares_key(file_id: int) -> str:
    """Key of the grant listing of a file."""
    return f'{_PREFIX}:file-shares:{file_id}'


def invalidate(cache: BaseCache, *keys: str) -> None:
    """Remove every given key from the cache.

    Args:
        cache: Cache service.
        keys: Keys to remove; duplicates are fine.
    """
    cache.delete_many(list(dict.fromkeys(keys)))
