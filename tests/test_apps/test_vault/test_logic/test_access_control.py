"""Tests for access control evaluation."""

from datetime import timedelta

import pytest
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from server.apps.vault.infrastructure import cache as vault_cache
from server.apps.vault.logic import access_control
from server.apps.vault.logic.access_control import (
    check_access,
    check_file_access,
    check_folder_access,
    get_owned_file,
    get_owned_folder,
    has_access_to_folder,
    require_access,
)
from server.apps.vault.logic.sharing_operations import (
    list_folder_shares,
    list_shared_with_me,
    share_folder,
)
from server.apps.vault.models import FileEntry, Folder, SharedFile, SharedFolder
from server.apps.vault.permissions import AccessDecision, PermissionType


def _grant_folder(folder, grantor, grantee, permission, **fields):
    return SharedFolder.objects.create(
        folder=folder,
        shared_by=grantor,
        shared_with=grantee,
        permission=permission,
        **fields,
    )


@pytest.mark.django_db
class TestCheckAccess:
    """Tests for check_access function."""

    def test_owner_always_allowed(self, user, make_folder):
        """Test owners pass every level without any grant."""
        folder = make_folder(user)

        for level in PermissionType:
            assert check_access(folder, user, level) is AccessDecision.ALLOW

    def test_owner_access_records_nothing(self, user, other_user, make_folder):
        """Test owner checks do not touch grants of other users."""
        folder = make_folder(user)
        grant = _grant_folder(folder, user, other_user, PermissionType.READ)

        check_access(folder, user, PermissionType.READ)

        grant.refresh_from_db()
        assert grant.access_count == 0

    def test_no_share_denied(self, user, other_user, make_folder):
        """Test users without a grant are denied."""
        folder = make_folder(user)

        assert check_access(folder, other_user, PermissionType.READ) is AccessDecision.DENY

    def test_revoked_share_denied(self, user, other_user, make_folder):
        """Test inactive grants do not allow anything."""
        folder = make_folder(user)
        _grant_folder(folder, user, other_user, PermissionType.FULL_CONTROL, is_active=False)

        assert check_access(folder, other_user, PermissionType.READ) is AccessDecision.DENY

    def test_sufficient_share_allowed_and_recorded(self, user, other_user, make_folder):
        """Test allowed checks bump telemetry on the grant."""
        folder = make_folder(user)
        grant = _grant_folder(folder, user, other_user, PermissionType.WRITE)

        decision = check_access(folder, other_user, PermissionType.READ)

        assert decision is AccessDecision.ALLOW
        grant.refresh_from_db()
        assert grant.access_count == 1
        assert grant.last_accessed_by == other_user
        assert grant.last_accessed_at is not None

    def test_repeated_access_increments(self, user, other_user, make_folder):
        """Test every allowed check counts."""
        folder = make_folder(user)
        grant = _grant_folder(folder, user, other_user, PermissionType.READ)

        for _ in range(3):
            check_access(folder, other_user, PermissionType.READ)

        grant.refresh_from_db()
        assert grant.access_count == 3

    def test_insufficient_share_denied_without_telemetry(self, user, other_user, make_folder):
        """Test denied checks leave telemetry unchanged."""
        folder = make_folder(user)
        grant = _grant_folder(folder, user, other_user, PermissionType.READ)

        decision = check_access(folder, other_user, PermissionType.WRITE)

        assert decision is AccessDecision.DENY
        grant.refresh_from_db()
        assert grant.access_count == 0
        assert grant.last_accessed_at is None

    def test_expired_share_denied(self, user, other_user, make_folder):
        """Test an expired grant fails even at a lower level."""
        folder = make_folder(user)
        grant = _grant_folder(
            folder,
            user,
            other_user,
            PermissionType.FULL_CONTROL,
            expires_at=timezone.now() - timedelta(seconds=1),
        )

        assert check_access(folder, other_user, PermissionType.READ) is AccessDecision.DENY
        grant.refresh_from_db()
        assert grant.is_active is True
        assert grant.access_count == 0

    def test_share_before_expiry_allowed(self, user, other_user, make_folder):
        """Test grants work until their expiry moment."""
        folder = make_folder(user)
        _grant_folder(
            folder,
            user,
            other_user,
            PermissionType.READ,
            expires_at=timezone.now() + timedelta(days=1),
        )

        assert check_access(folder, other_user, PermissionType.READ) is AccessDecision.ALLOW

    def test_upgrade_write_to_delete(self, user, other_user, make_folder):
        """Test re-sharing at Delete lets a former Write grantee delete."""
        folder = make_folder(user)
        grant = _grant_folder(folder, user, other_user, PermissionType.WRITE)

        assert check_access(folder, other_user, PermissionType.DELETE) is AccessDecision.DENY
        grant.refresh_from_db()
        assert grant.access_count == 0

        SharedFolder.objects.filter(id=grant.id).update(permission=PermissionType.DELETE)

        assert check_access(folder, other_user, PermissionType.DELETE) is AccessDecision.ALLOW
        grant.refresh_from_db()
        assert grant.access_count == 1

    def test_file_share(self, user, other_user, make_file):
        """Test file grants are evaluated the same way."""
        file_entry = make_file(user)
        grant = SharedFile.objects.create(
            file=file_entry,
            shared_by=user,
            shared_with=other_user,
            permission=PermissionType.SHARE,
        )

        assert check_access(file_entry, other_user, PermissionType.DELETE) is AccessDecision.ALLOW
        assert check_access(file_entry, other_user, PermissionType.FULL_CONTROL) is AccessDecision.DENY
        grant.refresh_from_db()
        assert grant.access_count == 1

    def test_fails_closed_on_error(self, user, other_user, make_folder, monkeypatch):
        """Test unexpected errors during evaluation deny access."""
        folder = make_folder(user)

        def broken_lookup(resource, user_id):
            raise RuntimeError('database unavailable')

        monkeypatch.setattr(access_control, 'find_active_share', broken_lookup)

        assert check_access(folder, other_user, PermissionType.READ) is AccessDecision.DENY

    def test_fails_closed_on_unknown_resource(self, user):
        """Test unsupported resource types are denied, not raised."""
        assert check_access(object(), user, PermissionType.READ) is AccessDecision.DENY


@pytest.mark.django_db
class TestCheckById:
    """Tests for check_folder_access and check_file_access."""

    def test_missing_folder_denied(self, user):
        """Test unknown folder IDs are denied."""
        assert check_folder_access(99999, user, PermissionType.READ) is AccessDecision.DENY

    def test_missing_file_denied(self, user):
        """Test unknown file IDs are denied."""
        assert check_file_access(99999, user, PermissionType.READ) is AccessDecision.DENY

    def test_trashed_folder_denied_for_owner(self, user, make_folder):
        """Test trashed folders are treated as missing."""
        folder = make_folder(user)
        Folder.all_objects.filter(id=folder.id).update(is_deleted=True)

        assert check_folder_access(folder.id, user, PermissionType.READ) is AccessDecision.DENY

    def test_existing_file_checked(self, user, make_file):
        """Test existing files are evaluated normally."""
        file_entry = make_file(user)

        assert check_file_access(file_entry.id, user, PermissionType.WRITE) is AccessDecision.ALLOW


@pytest.mark.django_db
class TestHasAccessToFolder:
    """Tests for has_access_to_folder function."""

    def test_owner(self, user, make_folder):
        """Test owners have access."""
        assert has_access_to_folder(make_folder(user), user) is True

    def test_full_control_counts_as_owner(self, user, other_user, make_folder):
        """Test FullControl grants pass every level."""
        folder = make_folder(user)
        _grant_folder(folder, user, other_user, PermissionType.FULL_CONTROL)

        assert has_access_to_folder(folder, other_user, PermissionType.SHARE) is True

    def test_records_no_telemetry(self, user, other_user, make_folder):
        """Test the quick check leaves grant telemetry alone."""
        folder = make_folder(user)
        grant = _grant_folder(folder, user, other_user, PermissionType.READ)

        assert has_access_to_folder(folder, other_user) is True
        assert has_access_to_folder(folder, other_user, PermissionType.WRITE) is False

        grant.refresh_from_db()
        assert grant.access_count == 0

    def test_expired_grant(self, user, other_user, make_folder):
        """Test expired grants give no access."""
        folder = make_folder(user)
        _grant_folder(
            folder,
            user,
            other_user,
            PermissionType.READ,
            expires_at=timezone.now() - timedelta(seconds=1),
        )

        assert has_access_to_folder(folder, other_user) is False


@pytest.mark.django_db
class TestOwnershipHelpers:
    """Tests for get_owned_* and require_access."""

    def test_get_owned_folder_for_owner(self, user, make_folder):
        """Test owners get their folder."""
        folder = make_folder(user)

        assert get_owned_folder(folder.id, user) == folder

    def test_stranger_sees_not_found(self, user, other_user, make_folder):
        """Test users without a grant cannot tell the folder exists."""
        folder = make_folder(user)

        with pytest.raises(Folder.DoesNotExist):
            get_owned_folder(folder.id, other_user)

    def test_grantee_gets_permission_denied(self, user, other_user, make_folder):
        """Test grantees learn the action is forbidden."""
        folder = make_folder(user)
        _grant_folder(folder, user, other_user, PermissionType.FULL_CONTROL)

        with pytest.raises(PermissionDenied):
            get_owned_folder(folder.id, other_user, 'rename')

    def test_get_owned_file_stranger(self, user, other_user, make_file):
        """Test files follow the same rule."""
        file_entry = make_file(user)

        with pytest.raises(FileEntry.DoesNotExist):
            get_owned_file(file_entry.id, other_user)

    def test_require_access_public_file(self, user, other_user, make_file):
        """Test public files are readable by anyone."""
        file_entry = make_file(user, is_public=True)

        require_access(file_entry, other_user, PermissionType.READ)

    def test_require_access_public_file_not_writable(self, user, other_user, make_file):
        """Test public files are not writable by strangers."""
        file_entry = make_file(user, is_public=True)

        with pytest.raises(FileEntry.DoesNotExist):
            require_access(file_entry, other_user, PermissionType.WRITE)

    def test_require_access_expired_public_file(self, user, other_user, make_file):
        """Test expired public files are hidden from strangers."""
        file_entry = make_file(
            user,
            is_public=True,
            expires_at=timezone.now() - timedelta(seconds=1),
        )

        with pytest.raises(FileEntry.DoesNotExist):
            require_access(file_entry, other_user, PermissionType.READ)

    def test_require_access_insufficient_grant(self, user, other_user, make_folder):
        """Test grantees below the level get PermissionDenied."""
        folder = make_folder(user)
        _grant_folder(folder, user, other_user, PermissionType.READ)

        with pytest.raises(PermissionDenied):
            require_access(folder, other_user, PermissionType.WRITE)


@pytest.mark.django_db
class TestTelemetryReachesListings:
    """Tests that allowed access refreshes cached grant listings."""

    def test_owner_share_listing_shows_access(self, user, other_user, make_folder):
        """Test the owner sees the bumped access count."""
        folder = make_folder(user)
        _grant_folder(folder, user, other_user, PermissionType.READ)
        assert list_folder_shares(folder.id, user)[0].access_count == 0

        assert check_access(folder, other_user, PermissionType.READ) == AccessDecision.ALLOW

        shares = list_folder_shares(folder.id, user)
        assert shares[0].access_count == 1
        assert shares[0].last_accessed_at is not None

    def test_write_to_delete_upgrade_visible_to_owner(self, user, other_user, make_folder):
        """Test an allowed Delete after an upgrade shows in the listing."""
        folder = make_folder(user)
        share_folder(folder.id, user, other_user.pk, PermissionType.WRITE)
        assert list_folder_shares(folder.id, user)[0].access_count == 0

        share_folder(folder.id, user, other_user.pk, PermissionType.DELETE)
        assert check_access(folder, other_user, PermissionType.DELETE) == AccessDecision.ALLOW

        shares = list_folder_shares(folder.id, user)
        assert len(shares) == 1
        assert shares[0].permission == PermissionType.DELETE
        assert shares[0].access_count == 1

    def test_grantee_listing_shows_access(self, user, other_user, make_file):
        """Test the grantee's shared-with listing is refreshed too."""
        file_entry = make_file(user)
        SharedFile.objects.create(file=file_entry, shared_by=user, shared_with=other_user)
        assert list_shared_with_me(other_user).files[0].access_count == 0

        check_access(file_entry, other_user, PermissionType.READ)

        assert list_shared_with_me(other_user).files[0].access_count == 1

    def test_denied_access_keeps_cache(self, user, other_user, make_folder):
        """Test denied checks leave cached listings alone."""
        folder = make_folder(user)
        _grant_folder(folder, user, other_user, PermissionType.READ)
        cache = vault_cache.get_cache()
        cache.set(vault_cache.folder_shares_key(folder.id), 'cached')

        check_access(folder, other_user, PermissionType.WRITE)

        assert cache.get(vault_cache.folder_shares_key(folder.id)) == 'cached'
