"""Settings for production deployments."""

from server.settings.components import config

DEBUG = False

ALLOWED_HOSTS = config(
    'DOMAIN_NAMES',
    cast=lambda names: [name.strip() for name in names.split(',')],
    default='',
)

SECURE_CONTENT_TYPE_NOSNIFF = True
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
