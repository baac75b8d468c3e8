"""Settings for local development and tests."""

from server.settings.components import config

DEBUG = config('DJANGO_DEBUG', cast=bool, default=True)

ALLOWED_HOSTS = [
    'localhost',
    '0.0.0.0',  # noqa: S104
    '127.0.0.1',
    '[::1]',
]
