"""Business logic layer for vault app.

This package contains all business logic for the vault:
- Access control over owned and shared resources
- Folder hierarchy management (create, rename, move, delete)
- Sharing of files and folders, revocation, share listings
- Version history for files and folders
- File upload, download and trash

All business logic should be implemented here, separate from
models (data layer) and infrastructure (external systems).
"""
