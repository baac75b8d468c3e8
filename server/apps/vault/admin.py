"""Django admin configuration for vault app."""


from django.contrib import admin
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.html import format_html

from server.apps.vault.models import (
    FileEntry,
    FileVersion,
    Folder,
    FolderVersion,
    SharedFile,
    SharedFolder,
    ShareGrant,
    VersionRecord,
)
from server.apps.vault.permissions import PermissionType


def _format_bytes(size_bytes: int) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.5 MB', '234 KB').
    """
    if size_bytes < 1024:
        return f'{size_bytes} B'
    if size_bytes < 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / 1024:.1f} KB'
    if size_bytes < 1024 * 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / (1024 * 1024):.1f} MB'
    return f'{size_bytes / (1024 * 1024 * 1024):.1f} GB'


@admin.register(Folder)
class FolderAdmin(admin.ModelAdmin[Folder]):
    """Admin interface for Folder model, trashed folders included."""

    list_display = [
        'name',
        'owner',
        'path_display',
        'created_at',
        'is_deleted',
    ]

    list_filter = [
        'is_deleted',
        'created_at',
        'owner',
    ]

    search_fields = [
        'name',
        'owner__username',
    ]

    readonly_fields = [
        'created_at',
        'updated_at',
        'deleted_at',
        'deleted_by',
    ]

    fieldsets = (
        ('Folder Information', {
            'fields': ('name', 'owner', 'parent'),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
        }),
        ('Trash', {
            'fields': ('is_deleted', 'deleted_at', 'deleted_by'),
        }),
    )

    def path_display(self, obj: Folder) -> str:
        """Display the folder's full path.

        Args:
            obj: Folder instance.

        Returns:
            Slash-separated path from the owner's root.
        """
        return obj.get_path()
    path_display.short_description = 'Path'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[Folder]:
        """Show trashed folders too.

        Args:
            request: HTTP request.

        Returns:
            QuerySet over all folders.
        """
        return Folder.all_objects.select_related('owner', 'parent')


@admin.register(FileEntry)
class FileEntryAdmin(admin.ModelAdmin[FileEntry]):
    """Admin interface for FileEntry model, trashed files included."""

    list_display = [
        'name',
        'owner',
        'folder',
        'size_display',
        'content_type',
        'is_public',
        'uploaded_at',
        'is_deleted',
    ]

    list_filter = [
        'content_type',
        'is_public',
        'is_deleted',
        'uploaded_at',
    ]

    search_fields = [
        'name',
        'storage_key',
        'checksum_sha256',
    ]

    readonly_fields = [
        'storage_key',
        'size_bytes',
        'content_type',
        'checksum_sha256',
        'uploaded_at',
        'last_modified',
        'deleted_at',
    ]

    fieldsets = (
        ('File Information', {
            'fields': ('name', 'owner', 'folder', 'storage_key'),
        }),
        ('Metadata', {
            'fields': (
                'size_bytes',
                'content_type',
                'checksum_sha256',
            ),
        }),
        ('Public Access', {
            'fields': ('is_public', 'expires_at'),
        }),
        ('Timestamps', {
            'fields': ('uploaded_at', 'last_modified'),
        }),
        ('Trash', {
            'fields': ('is_deleted', 'deleted_at'),
        }),
    )

    def size_display(self, obj: FileEntry) -> str:
        """Display file size in human-readable format.

        Args:
            obj: FileEntry instance.

        Returns:
            Formatted size string.
        """
        return _format_bytes(obj.size_bytes)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[FileEntry]:
        """Show trashed files too.

        Args:
            request: HTTP request.

        Returns:
            QuerySet over all files.
        """
        return FileEntry.all_objects.select_related('owner', 'folder')


class ShareGrantAdmin(admin.ModelAdmin[ShareGrant]):
    """Shared admin layout for folder and file grants."""

    list_filter = [
        'permission',
        'is_active',
        'shared_at',
    ]

    search_fields = [
        'shared_by__username',
        'shared_with__username',
        'note',
    ]

    readonly_fields = [
        'shared_at',
        'last_accessed_by',
        'last_accessed_at',
        'access_count',
    ]

    def permission_display(self, obj: ShareGrant) -> str:
        """Display permission level, struck through when inactive.

        Args:
            obj: Grant instance.

        Returns:
            HTML formatted permission label.
        """
        label = PermissionType(obj.permission).label
        if obj.is_active and not obj.is_expired():
            return format_html('<strong>{label}</strong>', label=label)
        return format_html('<s>{label}</s>', label=label)
    permission_display.short_description = 'Permission'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[ShareGrant]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related(
            'shared_by',
            'shared_with',
        )


@admin.register(SharedFolder)
class SharedFolderAdmin(ShareGrantAdmin):
    """Admin interface for SharedFolder model."""

    list_display = [
        'folder',
        'shared_by',
        'shared_with',
        'permission_display',
        'shared_at',
        'expires_at',
        'access_count',
    ]


@admin.register(SharedFile)
class SharedFileAdmin(ShareGrantAdmin):
    """Admin interface for SharedFile model."""

    list_display = [
        'file',
        'shared_by',
        'shared_with',
        'permission_display',
        'shared_at',
        'expires_at',
        'access_count',
    ]


class VersionAdmin(admin.ModelAdmin[VersionRecord]):
    """Read-only admin for immutable version records."""

    def has_change_permission(
        self,
        request: HttpRequest,
        obj: object = None,
    ) -> bool:
        """Versions are never edited.

        Returns:
            Always False.
        """
        return False


@admin.register(FileVersion)
class FileVersionAdmin(VersionAdmin):
    """Admin interface for FileVersion model."""

    list_display = [
        'file',
        'version_number',
        'size_display',
        'created_by',
        'created_at',
    ]

    search_fields = ['file__name', 'version_number']

    def size_display(self, obj: FileVersion) -> str:
        """Display version size in human-readable format.

        Args:
            obj: FileVersion instance.

        Returns:
            Formatted size string.
        """
        return _format_bytes(obj.size_bytes)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]


@admin.register(FolderVersion)
class FolderVersionAdmin(VersionAdmin):
    """Admin interface for FolderVersion model."""

    list_display = [
        'folder',
        'version_number',
        'path',
        'structure_hash',
        'created_by',
        'created_at',
    ]

    search_fields = ['folder__name', 'path', 'version_number']
