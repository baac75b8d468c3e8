"""Blob store for file contents, backed by S3-compatible storage."""

import logging
from typing import Any, final, override

from django.core.files.base import ContentFile
from storages.backends.s3 import S3Storage

logger = logging.getLogger(__name__)


@final
class BlobStorage(S3Storage):
    """Opaque key -> bytes store for uploaded file contents.

    Extends django-storages S3Storage with:
    - ``put_blob`` / ``get_blob`` / ``delete_blob`` by key
    - Transaction rollback support for failed DB operations
    - Enhanced error logging
    """

    @override
    def save(  # noqa: WPS211
        self,
        name: str,
        content: Any,
        max_length: int | None = None,
    ) -> str:
        """Save blob to S3 with error handling and logging.

        Args:
            name: Storage key for the blob.
            content: Blob content (file-like object).
            max_length: Optional maximum length for the key.

        Returns:
            Actual storage key used (may differ from name if conflicts).

        Raises:
            Exception: If S3 upload fails.
        """
        try:
            logger.info('Uploading blob to storage: %s', name)
            saved_name = super().save(name, content, max_length)
            logger.info('Successfully uploaded blob: %s', saved_name)
        except Exception:
            logger.exception('Failed to upload blob to storage: %s', name)
            raise
        else:
            return saved_name

    @override
    def delete(self, name: str) -> None:
        """Delete blob from S3 with error handling and logging.

        Args:
            name: Storage key of blob to delete.

        Raises:
            Exception: If S3 delete fails.
        """
        try:
            logger.info('Deleting blob from storage: %s', name)
            super().delete(name)
            logger.info('Successfully deleted blob: %s', name)
        except Exception:
            logger.exception('Failed to delete blob from storage: %s', name)
            raise

    def put_blob(self, key: str, data: bytes) -> str:
        """Store bytes under a key.

        Args:
            key: Requested storage key.
            data: Blob content.

        Returns:
            Storage key actually used.
        """
        return self.save(key, ContentFile(data))

    def get_blob(self, key: str) -> bytes:
        """Read the bytes stored under a key.

        Args:
            key: Storage key.

        Returns:
            Blob content.

        Raises:
            FileNotFoundError: If nothing is stored under the key.
        """
        if not self.exists(key):
            raise FileNotFoundError(f'Blob not found: {key}')
        with self.open(key, 'rb') as blob:
            return blob.read()

    def delete_blob(self, key: str) -> None:
        """Delete the blob stored under a key (no-op if missing).

        Args:
            key: Storage key.
        """
        if not self.exists(key):
            logger.warning('Blob not found in storage (already deleted?): %s', key)
            return
        self.delete(key)

    def rollback_upload(self, name: str) -> None:
        """Delete uploaded blob for DB transaction rollback.

        Called when a database write fails after the blob has been
        uploaded. This is best-effort: failures are logged, not raised,
        because the DB rollback has already occurred.

        Args:
            name: Storage key of blob to delete.
        """
        try:
            logger.warning('Rolling back upload, deleting blob: %s', name)
            self.delete(name)
            logger.info('Successfully rolled back blob upload: %s', name)
        except Exception:
            # The blob stays in storage but not in database
            logger.exception(
                'Failed to rollback upload, orphaned blob: %s',
                name,
            )
