"""Tests for Folder and FileEntry models."""

from datetime import timedelta

import pytest
from django.db import IntegrityError
from django.utils import timezone

from server.apps.vault.models import FileEntry, Folder


@pytest.mark.django_db
class TestFolderModel:
    """Tests for Folder model."""

    def test_create_folder_defaults(self, user):
        """Test new folders have no update stamp and are not trashed."""
        folder = Folder.objects.create(owner=user, name='Docs')

        assert folder.updated_at is None
        assert folder.is_deleted is False
        assert folder.parent is None
        assert str(folder) == 'testuser:Docs'

    def test_get_path(self, user, make_folder):
        """Test path walks from root to folder."""
        reports = make_folder(user, 'Reports')
        quarter = make_folder(user, 'Q1', parent=reports)
        month = make_folder(user, 'January', parent=quarter)

        assert reports.get_path() == 'Reports'
        assert month.get_path() == 'Reports/Q1/January'

    def test_get_path_includes_trashed_parent(self, user, make_folder):
        """Test path still resolves through a trashed ancestor."""
        parent = make_folder(user, 'Parent')
        child = make_folder(user, 'Child', parent=parent)
        Folder.all_objects.filter(id=parent.id).update(is_deleted=True)

        assert child.get_path() == 'Parent/Child'

    def test_folder_cannot_be_own_parent(self, user, make_folder):
        """Test database rejects a self-parent link."""
        folder = make_folder(user, 'Loop')

        with pytest.raises(IntegrityError):
            Folder.objects.filter(id=folder.id).update(parent_id=folder.id)

    def test_default_manager_hides_trashed(self, user, make_folder):
        """Test objects excludes trashed folders, all_objects keeps them."""
        folder = make_folder(user, 'Gone')
        Folder.all_objects.filter(id=folder.id).update(is_deleted=True)

        assert not Folder.objects.filter(id=folder.id).exists()
        assert Folder.all_objects.filter(id=folder.id).exists()

    def test_delete_parent_cascades(self, user, make_folder, make_file):
        """Test deleting a folder removes children and their files."""
        parent = make_folder(user, 'Parent')
        child = make_folder(user, 'Child', parent=parent)
        file_entry = make_file(user, folder=child)

        parent.delete()

        assert not Folder.all_objects.filter(id=child.id).exists()
        assert not FileEntry.all_objects.filter(id=file_entry.id).exists()


@pytest.mark.django_db
class TestFileEntryModel:
    """Tests for FileEntry model."""

    def test_str(self, user, make_file):
        """Test string representation."""
        file_entry = make_file(user, name='notes.txt')

        assert str(file_entry) == 'testuser:notes.txt'

    def test_storage_key_unique(self, user, make_file):
        """Test two files cannot share a storage key."""
        file_entry = make_file(user)

        with pytest.raises(IntegrityError):
            FileEntry.objects.create(
                owner=user,
                name='copy.txt',
                size_bytes=1,
                checksum_sha256='b' * 64,
                storage_key=file_entry.storage_key,
            )

    def test_public_without_expiry_is_readable(self, user, make_file):
        """Test public file without expiry is publicly readable."""
        file_entry = make_file(user, is_public=True)

        assert file_entry.is_expired() is False
        assert file_entry.is_publicly_readable() is True

    def test_public_expired_is_not_readable(self, user, make_file):
        """Test public access ends at expiry."""
        file_entry = make_file(
            user,
            is_public=True,
            expires_at=timezone.now() - timedelta(minutes=1),
        )

        assert file_entry.is_expired() is True
        assert file_entry.is_publicly_readable() is False

    def test_private_file_is_not_publicly_readable(self, user, make_file):
        """Test private files are never publicly readable."""
        file_entry = make_file(user)

        assert file_entry.is_publicly_readable() is False
