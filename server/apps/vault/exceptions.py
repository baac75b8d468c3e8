"""Exceptions for vault app.

Missing or invisible resources are reported with the model's
``DoesNotExist`` and visible-but-unauthorized access with Django's
``PermissionDenied``; the classes below cover the remaining cases.
"""


class CircularFolderReferenceError(Exception):
    """Raised when a move would make a folder its own ancestor."""

    def __init__(self, folder_id: int, target_parent_id: int) -> None:
        """Initialize CircularFolderReferenceError.

        Args:
            folder_id: Folder being moved.
            target_parent_id: Requested new parent.
        """
        self.folder_id = folder_id
        self.target_parent_id = target_parent_id
        super().__init__(
            f'Cannot move folder {folder_id} under {target_parent_id}: '
            'the folder would become its own ancestor',
        )


class ShareConflictError(Exception):
    """Raised when concurrent shares of one resource to one user collide."""

    def __init__(self, resource_id: int, grantee_id: int) -> None:
        """Initialize ShareConflictError.

        Args:
            resource_id: Shared file or folder.
            grantee_id: User the resource was being shared with.
        """
        self.resource_id = resource_id
        self.grantee_id = grantee_id
        super().__init__(
            f'Concurrent share of resource {resource_id} '
            f'with user {grantee_id} could not be reconciled',
        )


class ImmutableVersionError(Exception):
    """Raised when code tries to modify a stored version record."""
