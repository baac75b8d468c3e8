"""Main settings file, composed from ``components`` and ``environments``.

The ``DJANGO_ENV`` variable selects the environment file; ``local.py``
is optional and never committed.
"""

from os import environ

import django_stubs_ext
from split_settings.tools import include, optional

# Allows runtime generics like ``admin.ModelAdmin[Folder]``
django_stubs_ext.monkeypatch()

environ.setdefault('DJANGO_ENV', 'development')
_ENV = environ['DJANGO_ENV']

_base_settings = (
    'components/common.py',
    'components/logging.py',
    'components/caches.py',
    'components/storages.py',
    'components/vault.py',
    # Select the right env:
    f'environments/{_ENV}.py',
    # Optionally override some settings:
    optional('environments/local.py'),
)

include(*_base_settings)
