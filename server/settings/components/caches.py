"""Cache configuration.

Folder listings and share listings are snapshots stored here; expiry is
delegated to the cache backend through per-key timeouts.
"""

from server.settings.components import config

CACHES = {
    'default': {
        'BACKEND': config(
            'DJANGO_CACHE_BACKEND',
            default='django.core.cache.backends.locmem.LocMemCache',
        ),
        'LOCATION': config('DJANGO_CACHE_LOCATION', default='sharevault'),
    },
}
