"""Tests for versioning operations."""

import base64

import pytest
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from server.apps.vault.logic.versioning_operations import (
    INITIAL_VERSION,
    calculate_structure_hash,
    create_file_version,
    create_folder_version,
    get_file_version,
    get_folder_version,
    has_folder_changed_since,
    list_file_versions,
    list_folder_versions,
    next_file_version_number,
    next_folder_version_number,
    parse_version_number,
)
from server.apps.vault.models import (
    FileEntry,
    FileVersion,
    Folder,
    FolderVersion,
    SharedFile,
    SharedFolder,
)
from server.apps.vault.permissions import PermissionType


class TestParseVersionNumber:
    """Tests for parse_version_number function."""

    @pytest.mark.parametrize(('raw', 'expected'), [
        ('1.0', (1, 0)),
        ('1.12', (1, 12)),
        (' 2.3 ', (2, 3)),
    ])
    def test_valid(self, raw, expected):
        """Test well-formed numbers parse to integers."""
        assert parse_version_number(raw) == expected

    @pytest.mark.parametrize('raw', ['', '1', 'v1.0', '1.0.0', 'a.b', '1.-1'])
    def test_malformed(self, raw):
        """Test malformed numbers parse to None."""
        assert parse_version_number(raw) is None


@pytest.mark.django_db
class TestFileVersionNumbering:
    """Tests for file version numbering."""

    def test_sequence(self, user, make_file):
        """Test versions are numbered 1.0, 1.1, 1.2."""
        file_entry = make_file(user)

        numbers = [
            create_file_version(file_entry.id, user).version_number
            for _ in range(3)
        ]

        assert numbers == ['1.0', '1.1', '1.2']

    def test_first_number(self, user, make_file):
        """Test a file without versions starts at 1.0."""
        file_entry = make_file(user)

        assert next_file_version_number(file_entry.id) == INITIAL_VERSION

    def test_numeric_not_lexical_order(self, user, make_file):
        """Test 1.9 is followed by 1.10, then 1.11."""
        file_entry = make_file(user)
        FileVersion.objects.create(
            file=file_entry,
            version_number='1.9',
            storage_key=file_entry.storage_key,
            size_bytes=1,
        )

        assert create_file_version(file_entry.id, user).version_number == '1.10'
        assert create_file_version(file_entry.id, user).version_number == '1.11'

    def test_malformed_numbers_skipped(self, user, make_file):
        """Test malformed stored numbers do not break numbering."""
        file_entry = make_file(user)
        for number in ['garbage', '1.3']:
            FileVersion.objects.create(
                file=file_entry,
                version_number=number,
                storage_key=file_entry.storage_key,
                size_bytes=1,
            )

        assert next_file_version_number(file_entry.id) == '1.4'

    def test_only_malformed_numbers(self, user, make_file):
        """Test numbering continues from the count of versions."""
        file_entry = make_file(user)
        for number in ['first', 'second']:
            FileVersion.objects.create(
                file=file_entry,
                version_number=number,
                storage_key=file_entry.storage_key,
                size_bytes=1,
            )

        assert next_file_version_number(file_entry.id) == '1.2'

    def test_numbering_per_file(self, user, make_file):
        """Test each file has its own sequence."""
        first = make_file(user, name='a.txt')
        second = make_file(user, name='b.txt')
        create_file_version(first.id, user)
        create_file_version(first.id, user)

        assert create_file_version(second.id, user).version_number == '1.0'


@pytest.mark.django_db
class TestCreateFileVersion:
    """Tests for create_file_version function."""

    def test_snapshot_fields(self, user, make_file):
        """Test the version records key, size and author."""
        file_entry = make_file(user, size_bytes=42)

        version = create_file_version(file_entry.id, user, 'first draft')

        assert version.storage_key == file_entry.storage_key
        assert version.size_bytes == 42
        assert version.created_by == user
        assert version.change_notes == 'first draft'

    def test_write_grantee_can_version(self, user, other_user, make_file):
        """Test Write grantees may create versions."""
        file_entry = make_file(user)
        SharedFile.objects.create(
            file=file_entry,
            shared_by=user,
            shared_with=other_user,
            permission=PermissionType.WRITE,
        )

        assert create_file_version(file_entry.id, other_user).created_by == other_user

    def test_read_grantee_cannot_version(self, user, other_user, make_file):
        """Test Read grantees are forbidden."""
        file_entry = make_file(user)
        SharedFile.objects.create(file=file_entry, shared_by=user, shared_with=other_user)

        with pytest.raises(PermissionDenied):
            create_file_version(file_entry.id, other_user)

        assert FileVersion.objects.count() == 0

    def test_stranger_cannot_version(self, user, other_user, make_file):
        """Test strangers see not found."""
        file_entry = make_file(user)

        with pytest.raises(FileEntry.DoesNotExist):
            create_file_version(file_entry.id, other_user)

    def test_list_and_get(self, user, make_file):
        """Test versions are listed newest first and fetched by number."""
        file_entry = make_file(user)
        first = create_file_version(file_entry.id, user)
        second = create_file_version(file_entry.id, user)

        assert list_file_versions(file_entry.id, user) == [second, first]
        assert get_file_version(file_entry.id, '1.0', user) == first
        assert get_file_version(file_entry.id, '9.9', user) is None


@pytest.mark.django_db
class TestStructureHash:
    """Tests for calculate_structure_hash function."""

    def test_is_base64_sha256(self, user, make_folder):
        """Test the hash is a base64-encoded 32 byte digest."""
        folder = make_folder(user, 'Root')

        digest = base64.b64decode(calculate_structure_hash(folder))

        assert len(digest) == 32

    def test_is_deterministic(self, user, make_folder, make_file):
        """Test hashing twice without changes gives the same value."""
        folder = make_folder(user, 'Root')
        make_folder(user, 'Sub', parent=folder)
        make_file(user, folder=folder)

        assert calculate_structure_hash(folder) == calculate_structure_hash(folder)

    def test_identical_trees_match(self, user, other_user, make_folder, make_file):
        """Test folder identity is not part of the hash."""
        stamp = timezone.now()
        trees = []
        for owner in (user, other_user):
            root = make_folder(owner, 'Root')
            sub = make_folder(owner, 'Sub', parent=root)
            make_file(owner, name='a.txt', folder=sub, size_bytes=5, last_modified=stamp)
            trees.append(root)

        assert calculate_structure_hash(trees[0]) == calculate_structure_hash(trees[1])

    def test_size_change_changes_hash(self, user, make_folder, make_file):
        """Test changing a nested file's size changes the root hash."""
        root = make_folder(user, 'Root')
        sub = make_folder(user, 'Sub', parent=root)
        file_entry = make_file(user, folder=sub, size_bytes=10)
        before = calculate_structure_hash(root)

        FileEntry.objects.filter(id=file_entry.id).update(size_bytes=11)

        assert calculate_structure_hash(root) != before

    def test_subfolder_rename_changes_hash(self, user, make_folder):
        """Test renaming a nested folder changes the root hash."""
        root = make_folder(user, 'Root')
        sub = make_folder(user, 'Sub', parent=root)
        before = calculate_structure_hash(root)

        Folder.objects.filter(id=sub.id).update(name='Renamed')

        assert calculate_structure_hash(root) != before

    def test_trashed_items_ignored(self, user, make_folder, make_file):
        """Test trashed files do not count."""
        root = make_folder(user, 'Root')
        before = calculate_structure_hash(root)

        make_file(user, folder=root, is_deleted=True)

        assert calculate_structure_hash(root) == before

    def test_names_do_not_run_together(self, user, make_folder, make_file):
        """Test 'ab'+'c' and 'a'+'bc' trees hash differently."""
        stamp = timezone.now()
        first = make_folder(user, 'One')
        make_file(user, name='ab', folder=first, size_bytes=1, last_modified=stamp)
        second = make_folder(user, 'One')
        make_file(user, name='a', folder=second, size_bytes=11, last_modified=stamp)

        assert calculate_structure_hash(first) != calculate_structure_hash(second)


@pytest.mark.django_db
class TestFolderVersions:
    """Tests for folder version operations."""

    def test_create_records_path_and_hash(self, user, make_folder):
        """Test a folder version stores its path and current hash."""
        root = make_folder(user, 'Reports')
        quarter = make_folder(user, 'Q1', parent=root)

        version = create_folder_version(quarter.id, user, 'snapshot')

        assert version.version_number == '1.0'
        assert version.path == 'Reports/Q1'
        assert version.structure_hash == calculate_structure_hash(quarter)
        assert next_folder_version_number(quarter.id) == '1.1'

    def test_unchanged_since_version(self, user, make_folder):
        """Test no change is reported right after a version."""
        folder = make_folder(user, 'Docs')
        version = create_folder_version(folder.id, user)

        assert has_folder_changed_since(folder.id, version.version_number, user) is False

    def test_changed_after_new_file(self, user, make_folder, make_file):
        """Test adding a nested file is reported as a change."""
        root = make_folder(user, 'Docs')
        sub = make_folder(user, 'Sub', parent=root)
        create_folder_version(root.id, user)

        make_file(user, folder=sub)

        assert has_folder_changed_since(root.id, '1.0', user) is True

    def test_unknown_version(self, user, make_folder):
        """Test comparing against a missing version raises."""
        folder = make_folder(user)

        with pytest.raises(FolderVersion.DoesNotExist):
            has_folder_changed_since(folder.id, '1.0', user)

    def test_read_grantee_can_list(self, user, other_user, make_folder):
        """Test Read grantees list versions but cannot create them."""
        folder = make_folder(user)
        version = create_folder_version(folder.id, user)
        SharedFolder.objects.create(folder=folder, shared_by=user, shared_with=other_user)

        assert list_folder_versions(folder.id, other_user) == [version]
        assert get_folder_version(folder.id, '1.0', other_user) == version
        with pytest.raises(PermissionDenied):
            create_folder_version(folder.id, other_user)
