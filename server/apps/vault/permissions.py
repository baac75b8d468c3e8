"""Permission levels for shared files and folders.

Levels are totally ordered and compared as integers:
Read < Write < Delete < Share < FullControl. A grant satisfies every
level at or below its own, so ``Share`` also passes ``Delete`` checks.
"""

import enum

from django.db import models


class PermissionType(models.IntegerChoices):
    """Permission level carried by a share grant."""

    READ = 0, 'Read'
    WRITE = 1, 'Write'
    DELETE = 2, 'Delete'
    SHARE = 3, 'Share'
    FULL_CONTROL = 4, 'Full control'


class AccessDecision(enum.Enum):
    """Outcome of an access check."""

    ALLOW = 'allow'
    DENY = 'deny'

    def __bool__(self) -> bool:
        """Only ALLOW is truthy."""
        return self is AccessDecision.ALLOW


def satisfies(granted: int, required: int) -> bool:
    """Check whether a granted level covers the required one.

    Args:
        granted: Permission level held by the grantee.
        required: Permission level the action needs.

    Returns:
        True if ``granted >= required``.
    """
    return int(granted) >= int(required)
