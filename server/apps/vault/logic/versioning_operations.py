"""Business logic for file and folder version history.

Versions are numbered ``major.minor`` per resource, starting at
``1.0`` and bumping the minor part for every new version. Folder
versions carry a structural hash of the whole subtree, so comparing
hashes tells whether anything below a folder changed since a version.
"""

import base64
import hashlib
import logging
import re
from typing import Any, Final

from django.db import transaction
from django.db.models import QuerySet

from server.apps.vault.logic.access_control import require_access
from server.apps.vault.models import (
    FileEntry,
    FileVersion,
    Folder,
    FolderVersion,
    VersionRecord,
)
from server.apps.vault.permissions import PermissionType

# User type for Django's dynamic user model
_User = Any

INITIAL_VERSION: Final = '1.0'

_VERSION_PATTERN: Final = re.compile(r'^(\d+)\.(\d+)$')

# Keeps adjacent names and numbers from running into each other
_FIELD_SEPARATOR: Final = '\x1f'

logger = logging.getLogger(__name__)


def parse_version_number(version_number: str) -> tuple[int, int] | None:
    """Parse a ``major.minor`` version number.

    Args:
        version_number: Stored version number, e.g. '1.12'.

    Returns:
        Tuple of (major, minor), or None if the value is malformed.
    """
    match = _VERSION_PATTERN.match(version_number.strip())
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def _next_version_number(
    versions: QuerySet,
    resource_label: str,
) -> str:
    """Compute the next number from a queryset of versions.

    Malformed stored numbers are skipped; if none parse, the minor part
    continues from the count of existing versions.
    """
    stored = list(versions.values_list('version_number', flat=True))
    if not stored:
        return INITIAL_VERSION

    parsed = []
    for version_number in stored:
        numbers = parse_version_number(version_number)
        if numbers is None:
            logger.warning(
                'Skipping malformed version number %r of %s',
                version_number,
                resource_label,
            )
            continue
        parsed.append(numbers)

    if not parsed:
        return f'1.{len(stored)}'

    major, minor = max(parsed)
    return f'{major}.{minor + 1}'


def next_file_version_number(file_id: int) -> str:
    """Get the number the next version of a file will receive."""
    return _next_version_number(
        FileVersion.objects.filter(file_id=file_id),
        f'file {file_id}',
    )


def next_folder_version_number(folder_id: int) -> str:
    """Get the number the next version of a folder will receive."""
    return _next_version_number(
        FolderVersion.objects.filter(folder_id=folder_id),
        f'folder {folder_id}',
    )


def calculate_structure_hash(folder: Folder) -> str:
    """Hash a folder subtree's shape and file metadata.

    The digest covers the folder name, its direct file and subfolder
    counts, each direct file's (name, size, last modified), then each
    subfolder's own hash. Folder identity is not part of the input, so
    identical trees hash the same. Items in trash are ignored.

    Args:
        folder: Root of the subtree.

    Returns:
        Base64-encoded SHA256 digest.
    """
    return _structure_hash(folder, visited=set())


def _structure_hash(folder: Folder, visited: set[int]) -> str:
    if folder.pk in visited:
        raise ValueError(f'Folder parent loop detected at ID={folder.pk}')
    visited.add(folder.pk)

    files = list(
        FileEntry.objects.filter(folder=folder).order_by('name', 'id'),
    )
    subfolders = list(
        Folder.objects.filter(parent=folder).order_by('name', 'id'),
    )

    parts = [folder.name, str(len(files)), str(len(subfolders))]
    for file_entry in files:
        parts.extend([
            file_entry.name,
            str(file_entry.size_bytes),
            file_entry.last_modified.isoformat(),
        ])
    parts.extend(
        _structure_hash(subfolder, visited) for subfolder in subfolders
    )

    digest = hashlib.sha256(
        _FIELD_SEPARATOR.join(parts).encode('utf-8'),
    ).digest()
    return base64.b64encode(digest).decode('ascii')


def _get_file(file_id: int) -> FileEntry:
    file_entry = FileEntry.objects.filter(id=file_id).first()
    if file_entry is None:
        raise FileEntry.DoesNotExist(f'FileEntry not found: {file_id}')
    return file_entry


def _get_folder(folder_id: int) -> Folder:
    folder = Folder.objects.filter(id=folder_id).first()
    if folder is None:
        raise Folder.DoesNotExist(f'Folder not found: {folder_id}')
    return folder


def create_file_version(
    file_id: int,
    user: _User,
    change_notes: str = '',
) -> FileVersion:
    """Snapshot a file's current blob key and size as a new version.

    Args:
        file_id: File to snapshot.
        user: Owner or grantee holding Write.
        change_notes: Optional description of the change.

    Returns:
        Created FileVersion.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the user's grant does not allow Write.
    """
    file_entry = _get_file(file_id)
    require_access(file_entry, user, PermissionType.WRITE)

    with transaction.atomic():
        # Serializes numbering per file
        FileEntry.objects.select_for_update().filter(id=file_entry.id).first()
        version = FileVersion.objects.create(
            file=file_entry,
            version_number=next_file_version_number(file_entry.id),
            storage_key=file_entry.storage_key,
            size_bytes=file_entry.size_bytes,
            created_by=user,
            change_notes=change_notes,
        )

    logger.info(
        'File version created: %s v%s (ID: %d, by user %s)',
        file_entry.name,
        version.version_number,
        version.id,
        user.pk,
    )
    return version


def create_folder_version(
    folder_id: int,
    user: _User,
    change_notes: str = '',
) -> FolderVersion:
    """Record a folder's path and structural hash as a new version.

    Args:
        folder_id: Folder to snapshot.
        user: Owner or grantee holding Write.
        change_notes: Optional description of the change.

    Returns:
        Created FolderVersion.

    Raises:
        Folder.DoesNotExist: If the folder is missing or invisible.
        PermissionDenied: If the user's grant does not allow Write.
    """
    folder = _get_folder(folder_id)
    require_access(folder, user, PermissionType.WRITE)

    with transaction.atomic():
        Folder.objects.select_for_update().filter(id=folder.id).first()
        version = FolderVersion.objects.create(
            folder=folder,
            version_number=next_folder_version_number(folder.id),
            path=folder.get_path(),
            structure_hash=calculate_structure_hash(folder),
            created_by=user,
            change_notes=change_notes,
        )

    logger.info(
        'Folder version created: %s v%s (hash: %s)',
        folder.name,
        version.version_number,
        version.structure_hash,
    )
    return version


def list_file_versions(file_id: int, user: _User) -> list[FileVersion]:
    """List a file's versions, newest first.

    Raises:
        FileEntry.DoesNotExist: If the file is missing or invisible.
        PermissionDenied: If the user's grant does not allow Read.
    """
    file_entry = _get_file(file_id)
    require_access(file_entry, user, PermissionType.READ)
    return list(FileVersion.objects.filter(file=file_entry))


def list_folder_versions(folder_id: int, user: _User) -> list[FolderVersion]:
    """List a folder's versions, newest first.

    Raises:
        Folder.DoesNotExist: If the folder is missing or invisible.
        PermissionDenied: If the user's grant does not allow Read.
    """
    folder = _get_folder(folder_id)
    require_access(folder, user, PermissionType.READ)
    return list(FolderVersion.objects.filter(folder=folder))


def _find_version(
    versions: QuerySet,
    version_number: str,
) -> VersionRecord | None:
    return versions.filter(version_number=version_number).first()


def get_file_version(
    file_id: int,
    version_number: str,
    user: _User,
) -> FileVersion | None:
    """Get one version of a file, or None if it has no such version."""
    file_entry = _get_file(file_id)
    require_access(file_entry, user, PermissionType.READ)
    return _find_version(
        FileVersion.objects.filter(file=file_entry),
        version_number,
    )


def get_folder_version(
    folder_id: int,
    version_number: str,
    user: _User,
) -> FolderVersion | None:
    """Get one version of a folder, or None if it has no such version."""
    folder = _get_folder(folder_id)
    require_access(folder, user, PermissionType.READ)
    return _find_version(
        FolderVersion.objects.filter(folder=folder),
        version_number,
    )


def has_folder_changed_since(
    folder_id: int,
    version_number: str,
    user: _User,
) -> bool:
    """Compare a folder's current structure with a stored version.

    Args:
        folder_id: Folder to check.
        version_number: Version to compare against.
        user: Owner or grantee holding Read.

    Returns:
        True if the structural hash differs from the version's.

    Raises:
        FolderVersion.DoesNotExist: If the folder has no such version.
    """
    version = get_folder_version(folder_id, version_number, user)
    if version is None:
        raise FolderVersion.DoesNotExist(
            f'Folder {folder_id} has no version {version_number}',
        )
    current = calculate_structure_hash(version.folder)
    return current != version.structure_hash
