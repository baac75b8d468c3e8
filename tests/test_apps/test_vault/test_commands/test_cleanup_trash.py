"""Tests for cleanup_trash management command."""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from server.apps.vault.logic.trash_operations import (
    soft_delete_file,
    soft_delete_folder,
)
from server.apps.vault.models import FileEntry, Folder


def _age(model, item_id, days):
    model.all_objects.filter(id=item_id).update(
        deleted_at=timezone.now() - timedelta(days=days),
    )


@pytest.mark.django_db
class TestCleanupTrashCommand:
    """Tests for cleanup_trash management command."""

    def test_cleanup_deletes_old_files(self, user, make_file):
        """Test cleanup deletes files older than 30 days."""
        file_entry = make_file(user, name='old_file.txt')
        soft_delete_file(file_entry.id, user)
        _age(FileEntry, file_entry.id, 31)

        out = StringIO()
        call_command('cleanup_trash', stdout=out)

        assert not FileEntry.all_objects.filter(id=file_entry.id).exists()
        assert 'Purged 1 files' in out.getvalue()

    def test_cleanup_preserves_recent_files(self, user, make_file):
        """Test cleanup preserves files deleted less than 30 days ago."""
        file_entry = make_file(user, name='recent_file.txt')
        soft_delete_file(file_entry.id, user)
        _age(FileEntry, file_entry.id, 29)

        out = StringIO()
        call_command('cleanup_trash', stdout=out)

        assert FileEntry.all_objects.filter(id=file_entry.id).exists()
        assert 'Purged 0 files' in out.getvalue()

    def test_cleanup_dry_run(self, user, make_file):
        """Test dry run reports without deleting."""
        file_entry = make_file(user, name='old_file.txt')
        soft_delete_file(file_entry.id, user)
        _age(FileEntry, file_entry.id, 40)

        out = StringIO()
        call_command('cleanup_trash', '--dry-run', stdout=out)

        assert FileEntry.all_objects.filter(id=file_entry.id).exists()
        assert 'Would delete: old_file.txt' in out.getvalue()
        assert 'Would purge 1 files' in out.getvalue()

    def test_cleanup_ignores_live_files(self, user, make_file):
        """Test files outside trash are never touched."""
        file_entry = make_file(user)

        call_command('cleanup_trash', stdout=StringIO())

        assert FileEntry.objects.filter(id=file_entry.id).exists()

    def test_cleanup_batch_size(self, user, make_file):
        """Test batch size limits how many files are purged."""
        for index in range(3):
            file_entry = make_file(user, name=f'{index}.txt')
            soft_delete_file(file_entry.id, user)
            _age(FileEntry, file_entry.id, 31)

        call_command('cleanup_trash', '--batch-size', '2', stdout=StringIO())

        assert FileEntry.all_objects.count() == 1

    def test_cleanup_custom_retention(self, user, make_file):
        """Test --days overrides the configured retention."""
        file_entry = make_file(user)
        soft_delete_file(file_entry.id, user)
        _age(FileEntry, file_entry.id, 8)

        call_command('cleanup_trash', '--days', '7', stdout=StringIO())

        assert not FileEntry.all_objects.filter(id=file_entry.id).exists()

    def test_cleanup_retention_from_settings(self, user, make_file, settings):
        """Test retention comes from VAULT_TRASH_RETENTION_DAYS."""
        settings.VAULT_TRASH_RETENTION_DAYS = 5
        file_entry = make_file(user)
        soft_delete_file(file_entry.id, user)
        _age(FileEntry, file_entry.id, 6)

        call_command('cleanup_trash', stdout=StringIO())

        assert not FileEntry.all_objects.filter(id=file_entry.id).exists()

    def test_cleanup_purges_old_folders(self, user, make_folder, make_file):
        """Test trashed folders go with their subtree."""
        root = make_folder(user, 'Root')
        child = make_folder(user, 'Child', parent=root)
        make_file(user, folder=child)
        soft_delete_folder(root.id, user)
        Folder.all_objects.update(deleted_at=timezone.now() - timedelta(days=31))
        FileEntry.all_objects.update(deleted_at=timezone.now() - timedelta(days=31))

        out = StringIO()
        call_command('cleanup_trash', stdout=out)

        assert Folder.all_objects.count() == 0
        assert FileEntry.all_objects.count() == 0
        assert 'Purged 0 files and 1 folders' in out.getvalue()
