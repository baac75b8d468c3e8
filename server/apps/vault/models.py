"""Database models for vault app."""

from datetime import datetime
from typing import ClassVar, Final, final, override

from django.conf import settings
from django.db import models
from django.utils import timezone

from server.apps.vault.exceptions import ImmutableVersionError
from server.apps.vault.permissions import PermissionType

# Constants for field max lengths
_NAME_MAX_LENGTH: Final = 255
_CONTENT_TYPE_MAX_LENGTH: Final = 255
_CHECKSUM_MAX_LENGTH: Final = 64  # SHA256 hex length
_STORAGE_KEY_MAX_LENGTH: Final = 1024
_PATH_MAX_LENGTH: Final = 1024
_VERSION_NUMBER_MAX_LENGTH: Final = 32
_STRUCTURE_HASH_MAX_LENGTH: Final = 64  # base64 of a SHA256 digest is 44


class ActiveManager(models.Manager):
    """Default manager that hides soft-deleted rows."""

    @override
    def get_queryset(self) -> models.QuerySet:
        """Exclude rows that are in trash."""
        return super().get_queryset().filter(is_deleted=False)


@final
class Folder(models.Model):
    """Node in a per-owner folder tree.

    Only the parent link is stored; children are always queried.
    A parent chain must be acyclic and end at a root (``parent=None``).
    """

    name = models.CharField(max_length=_NAME_MAX_LENGTH)

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='folders',
        db_index=True,
    )

    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='subfolders',
        help_text='Empty for root folders',
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text='Set on rename and move',
    )

    # Trash
    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    objects = ActiveManager()
    all_objects = models.Manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'Folder'  # type: ignore[mutable-override]
        verbose_name_plural = 'Folders'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['name', 'id']

        indexes: ClassVar[list[models.Index]] = [
            # Optimize folder listing queries
            models.Index(
                fields=['owner', 'parent'],
                name='folders_owner_parent_idx',
            ),
        ]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.CheckConstraint(
                condition=~models.Q(parent=models.F('id')),
                name='folders_not_own_parent',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner.username}:{self.name}'

    def get_path(self) -> str:
        """Build the slash-separated path from the root to this folder.

        Example: folder 'Q1' inside 'Reports' -> 'Reports/Q1'

        Returns:
            Folder path. A dangling parent link ends the walk.
        """
        names = [self.name]
        seen = {self.pk}
        parent_id = self.parent_id
        while parent_id is not None and parent_id not in seen:
            seen.add(parent_id)
            parent = Folder.all_objects.filter(id=parent_id).only(
                'name',
                'parent_id',
            ).first()
            if parent is None:
                break
            names.append(parent.name)
            parent_id = parent.parent_id
        return '/'.join(reversed(names))


@final
class FileEntry(models.Model):
    """Metadata of an uploaded file.

    Content bytes live in the blob store under ``storage_key``.
    """

    name = models.CharField(max_length=_NAME_MAX_LENGTH)

    content_type = models.CharField(
        max_length=_CONTENT_TYPE_MAX_LENGTH,
        default='application/octet-stream',
    )

    size_bytes = models.BigIntegerField(
        default=0,
        help_text='File size in bytes',
    )

    checksum_sha256 = models.CharField(
        max_length=_CHECKSUM_MAX_LENGTH,
        blank=True,
        default='',
        help_text='SHA256 hash for integrity verification',
    )

    storage_key = models.CharField(
        max_length=_STORAGE_KEY_MAX_LENGTH,
        unique=True,
        help_text='Blob store key: {owner_id}/{uuid}/{name}',
    )

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='file_entries',
        db_index=True,
    )

    folder = models.ForeignKey(
        Folder,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='files',
        help_text='Empty for files in the owner root',
    )

    uploaded_at = models.DateTimeField(auto_now_add=True)
    last_modified = models.DateTimeField(default=timezone.now)

    is_public = models.BooleanField(default=False)
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text='Public link stops working after this moment',
    )

    # Trash
    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = ActiveManager()
    all_objects = models.Manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Files'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['name', 'id']

        indexes: ClassVar[list[models.Index]] = [
            models.Index(
                fields=['owner', 'folder'],
                name='files_owner_folder_idx',
            ),
            models.Index(
                fields=['owner', '-uploaded_at'],
                name='files_owner_recent_idx',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner.username}:{self.name}'

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the public expiry has passed."""
        if self.expires_at is None:
            return False
        return (now or timezone.now()) > self.expires_at

    def is_publicly_readable(self, now: datetime | None = None) -> bool:
        """Public and not yet expired."""
        return self.is_public and not self.is_expired(now)


class ShareGrant(models.Model):
    """Permission granted by a resource owner to another user.

    Grants are never deleted: revoking sets ``is_active=False`` so the
    history stays visible to the owner.
    """

    # Name of the foreign key to the shared resource on concrete models
    resource_field: ClassVar[str]

    shared_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='%(class)s_granted',
    )

    shared_with = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='%(class)s_received',
    )

    shared_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(null=True, blank=True)

    permission = models.PositiveSmallIntegerField(
        choices=PermissionType.choices,
        default=PermissionType.READ,
    )

    is_active = models.BooleanField(default=True)

    note = models.TextField(blank=True, default='')

    # Access telemetry, bumped on every allowed check
    last_accessed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    last_accessed_at = models.DateTimeField(null=True, blank=True)
    access_count = models.PositiveIntegerField(default=0)

    class Meta:
        """Model metadata."""

        abstract = True
        ordering: ClassVar[list[str]] = ['-shared_at', '-id']

    @property
    def resource_id(self) -> int:
        """Id of the shared file or folder."""
        return getattr(self, f'{self.resource_field}_id')

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the grant's expiry has passed.

        Expired grants stay active; they simply fail access checks.
        """
        if self.expires_at is None:
            return False
        return (now or timezone.now()) > self.expires_at


@final
class SharedFolder(ShareGrant):
    """Share grant on a folder."""

    resource_field = 'folder'

    folder = models.ForeignKey(
        Folder,
        on_delete=models.CASCADE,
        related_name='shares',
    )

    class Meta(ShareGrant.Meta):
        """Model metadata."""

        verbose_name = 'Shared folder'  # type: ignore[mutable-override]
        verbose_name_plural = 'Shared folders'  # type: ignore[mutable-override]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            # At most one active grant per (folder, grantee)
            models.UniqueConstraint(
                fields=['folder', 'shared_with'],
                condition=models.Q(is_active=True),
                name='shared_folders_one_active_grant',
            ),
        ]

        indexes: ClassVar[list[models.Index]] = [
            models.Index(
                fields=['shared_with', 'is_active'],
                name='shared_folders_grantee_idx',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return (
            f'{self.folder.name} -> {self.shared_with.username} '
            f'({self.get_permission_display()})'
        )


@final
class SharedFile(ShareGrant):
    """Share grant on a file."""

    resource_field = 'file'

    file = models.ForeignKey(
        FileEntry,
        on_delete=models.CASCADE,
        related_name='shares',
    )

    class Meta(ShareGrant.Meta):
        """Model metadata."""

        verbose_name = 'Shared file'  # type: ignore[mutable-override]
        verbose_name_plural = 'Shared files'  # type: ignore[mutable-override]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            # At most one active grant per (file, grantee)
            models.UniqueConstraint(
                fields=['file', 'shared_with'],
                condition=models.Q(is_active=True),
                name='shared_files_one_active_grant',
            ),
        ]

        indexes: ClassVar[list[models.Index]] = [
            models.Index(
                fields=['shared_with', 'is_active'],
                name='shared_files_grantee_idx',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return (
            f'{self.file.name} -> {self.shared_with.username} '
            f'({self.get_permission_display()})'
        )


class VersionRecord(models.Model):
    """Immutable snapshot of a file or folder.

    Version numbers have the form ``major.minor`` and start at ``1.0``.
    """

    version_number = models.CharField(max_length=_VERSION_NUMBER_MAX_LENGTH)

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    change_notes = models.TextField(blank=True, default='')

    class Meta:
        """Model metadata."""

        abstract = True
        ordering: ClassVar[list[str]] = ['-created_at', '-id']

    @override
    def save(self, *args: object, **kwargs: object) -> None:
        """Insert the version; stored versions cannot be changed.

        Raises:
            ImmutableVersionError: If the row already exists.
        """
        if not self._state.adding:
            raise ImmutableVersionError(
                f'Version {self.version_number} is immutable',
            )
        super().save(*args, **kwargs)  # type: ignore[arg-type]


@final
class FileVersion(VersionRecord):
    """Snapshot of a file's blob key and size."""

    file = models.ForeignKey(
        FileEntry,
        on_delete=models.CASCADE,
        related_name='versions',
    )

    storage_key = models.CharField(max_length=_STORAGE_KEY_MAX_LENGTH)
    size_bytes = models.BigIntegerField()

    class Meta(VersionRecord.Meta):
        """Model metadata."""

        verbose_name = 'File version'  # type: ignore[mutable-override]
        verbose_name_plural = 'File versions'  # type: ignore[mutable-override]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.UniqueConstraint(
                fields=['file', 'version_number'],
                name='file_versions_number_unique',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.file.name} v{self.version_number}'


@final
class FolderVersion(VersionRecord):
    """Snapshot of a folder's path and structural hash."""

    folder = models.ForeignKey(
        Folder,
        on_delete=models.CASCADE,
        related_name='versions',
    )

    path = models.CharField(max_length=_PATH_MAX_LENGTH, blank=True)

    structure_hash = models.CharField(
        max_length=_STRUCTURE_HASH_MAX_LENGTH,
        help_text='Base64 SHA256 over the subtree shape and file metadata',
    )

    class Meta(VersionRecord.Meta):
        """Model metadata."""

        verbose_name = 'Folder version'  # type: ignore[mutable-override]
        verbose_name_plural = 'Folder versions'  # type: ignore[mutable-override]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.UniqueConstraint(
                fields=['folder', 'version_number'],
                name='folder_versions_number_unique',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.folder.name} v{self.version_number}'
