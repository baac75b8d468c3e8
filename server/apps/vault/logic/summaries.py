"""Plain data shapes returned by vault logic and stored in the cache.

These are snapshots: mutating a model after a summary was built never
changes the summary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import final

from server.apps.vault.models import FileEntry, Folder, ShareGrant
from server.apps.vault.permissions import PermissionType


@final
@dataclass(frozen=True, slots=True)
class FolderSummary:
    """Folder with its computed child counts."""

    id: int
    name: str
    owner_id: int
    parent_id: int | None
    created_at: datetime
    updated_at: datetime | None
    file_count: int
    subfolder_count: int

    @classmethod
    def from_folder(
        cls,
        folder: Folder,
        file_count: int,
        subfolder_count: int,
    ) -> 'FolderSummary':
        """Build a summary from a folder and its counts."""
        return cls(
            id=folder.id,
            name=folder.name,
            owner_id=folder.owner_id,
            parent_id=folder.parent_id,
            created_at=folder.created_at,
            updated_at=folder.updated_at,
            file_count=file_count,
            subfolder_count=subfolder_count,
        )


@final
@dataclass(frozen=True, slots=True)
class FileSummary:
    """File metadata without content."""

    id: int
    name: str
    content_type: str
    size_bytes: int
    owner_id: int
    folder_id: int | None
    uploaded_at: datetime
    last_modified: datetime
    is_public: bool

    @classmethod
    def from_file(cls, file_entry: FileEntry) -> 'FileSummary':
        """Build a summary from a file entry."""
        return cls(
            id=file_entry.id,
            name=file_entry.name,
            content_type=file_entry.content_type,
            size_bytes=file_entry.size_bytes,
            owner_id=file_entry.owner_id,
            folder_id=file_entry.folder_id,
            uploaded_at=file_entry.uploaded_at,
            last_modified=file_entry.last_modified,
            is_public=file_entry.is_public,
        )


@final
@dataclass(frozen=True, slots=True)
class ShareSummary:
    """Share grant joined with resource and user display info."""

    id: int
    resource_type: str
    resource_id: int
    resource_name: str
    shared_by_id: int
    shared_by_username: str
    shared_with_id: int
    shared_with_username: str
    permission: PermissionType
    shared_at: datetime
    expires_at: datetime | None
    is_active: bool
    note: str
    access_count: int
    last_accessed_at: datetime | None

    @classmethod
    def from_grant(cls, grant: ShareGrant) -> 'ShareSummary':
        """Build a summary from a grant.

        The grant should come with its resource and both users
        selected, otherwise each attribute access is a query.
        """
        resource = getattr(grant, grant.resource_field)
        return cls(
            id=grant.id,
            resource_type=grant.resource_field,
            resource_id=resource.id,
            resource_name=resource.name,
            shared_by_id=grant.shared_by_id,
            shared_by_username=grant.shared_by.username,
            shared_with_id=grant.shared_with_id,
            shared_with_username=grant.shared_with.username,
            permission=PermissionType(grant.permission),
            shared_at=grant.shared_at,
            expires_at=grant.expires_at,
            is_active=grant.is_active,
            note=grant.note,
            access_count=grant.access_count,
            last_accessed_at=grant.last_accessed_at,
        )


@final
@dataclass(frozen=True, slots=True)
class ShareResult:
    """Outcome of sharing one file with one of several users."""

    user_id: int
    success: bool
    message: str


@final
@dataclass(frozen=True, slots=True)
class SharedWithMe:
    """Active grants a user received, split by resource type."""

    folders: list[ShareSummary] = field(default_factory=list)
    files: list[ShareSummary] = field(default_factory=list)


@final
@dataclass(frozen=True, slots=True)
class ShareHistory:
    """Every grant in the system, for administrators."""

    total: int
    active: int
    inactive: int
    entries: list[ShareSummary]


@final
@dataclass(frozen=True, slots=True)
class FolderContents:
    """A folder with its direct subfolders and files."""

    folder: FolderSummary
    subfolders: list[FolderSummary]
    files: list[FileSummary]
