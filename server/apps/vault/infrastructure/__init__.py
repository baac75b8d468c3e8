"""Infrastructure layer for vault app.

This package contains integrations with external systems:
- Blob storage for file contents (S3/MinIO)
- Cache keys and the injected cache service
- Metadata extraction (MIME type, checksum) and name validation

Keep infrastructure concerns separate from business logic.
"""
