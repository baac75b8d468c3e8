"""Metadata extraction and validation utilities for files and folders."""

import hashlib
import mimetypes
import uuid
from typing import BinaryIO, Final

from django.core.exceptions import ValidationError

_CHUNK_SIZE: Final = 8192  # 8KB chunks for checksum calculation
_NAME_MAX_LENGTH: Final = 255
_FORBIDDEN_NAME_CHARS: Final = frozenset('/\\\x00')


def validate_name(name: str | None, kind: str = 'Name') -> str:
    """Validate a file or folder name.

    Args:
        name: Proposed name.
        kind: Label used in error messages ('Folder name', 'File name').

    Returns:
        The name with surrounding whitespace stripped.

    Raises:
        ValidationError: If the name is empty, too long, or contains
            a path separator.
    """
    cleaned = (name or '').strip()
    if not cleaned:
        raise ValidationError(f'{kind} cannot be empty')
    if len(cleaned) > _NAME_MAX_LENGTH:
        raise ValidationError(
            f'{kind} cannot be longer than {_NAME_MAX_LENGTH} characters',
        )
    if cleaned in {'.', '..'} or _FORBIDDEN_NAME_CHARS & set(cleaned):
        raise ValidationError(f'{kind} contains invalid characters: {cleaned}')
    return cleaned


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from the filename extension.

    Args:
        filename: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return 'application/octet-stream'
    return mime_type


def calculate_checksum(file_obj: BinaryIO) -> str:
    """Calculate SHA256 checksum of file.

    Reads file in chunks to handle large files efficiently.
    Resets file pointer to beginning after calculation.

    Args:
        file_obj: File-like object to checksum.

    Returns:
        Hex-encoded SHA256 hash string.
    """
    sha256_hash = hashlib.sha256()

    file_obj.seek(0)
    for chunk in iter(lambda: file_obj.read(_CHUNK_SIZE), b''):
        sha256_hash.update(chunk)
    file_obj.seek(0)

    return sha256_hash.hexdigest()


def get_file_size(file_obj: BinaryIO) -> int:
    """Get file size from file object.

    Args:
        file_obj: File-like object.

    Returns:
        File size in bytes.
    """
    if hasattr(file_obj, 'size'):
        return file_obj.size
    file_obj.seek(0)
    file_size = len(file_obj.read())
    file_obj.seek(0)
    return file_size


def build_storage_key(owner_id: int, filename: str) -> str:
    """Build a fresh blob key for an upload.

    Example: (7, 'report.pdf') -> '7/3f2c.../report.pdf'

    Args:
        owner_id: Owner's user ID, first key component for isolation.
        filename: Validated filename.

    Returns:
        Storage key unique per upload.
    """
    return f'{owner_id}/{uuid.uuid4().hex}/{filename}'
