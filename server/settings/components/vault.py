"""File sharing settings."""

from server.settings.components import config

# Cache alias used for folder listings and share listings
VAULT_CACHE_ALIAS = config('VAULT_CACHE_ALIAS', default='default')

# Folder listings and shares-of-resource listings (seconds)
VAULT_LISTING_CACHE_TTL = config('VAULT_LISTING_CACHE_TTL', cast=int, default=300)

# "Shared with me" listings (seconds)
VAULT_SHARED_WITH_ME_CACHE_TTL = config(
    'VAULT_SHARED_WITH_ME_CACHE_TTL',
    cast=int,
    default=60,
)

# How long soft-deleted files stay in trash before cleanup_trash purges them
VAULT_TRASH_RETENTION_DAYS = config(
    'VAULT_TRASH_RETENTION_DAYS',
    cast=int,
    default=30,
)
