"""Shared fixtures for vault app tests."""

import itertools

import boto3
import pytest
from django.contrib.auth import get_user_model
from django.core.cache import caches
from django.core.files.base import ContentFile
from moto import mock_aws

from server.apps.vault.models import FileEntry, Folder

User = get_user_model()

_keys = itertools.count(1)


@pytest.fixture(autouse=True)
def clear_cache():
    """Start and finish every test with an empty cache."""
    caches['default'].clear()
    yield
    caches['default'].clear()


@pytest.fixture
def user(db):
    """Create test user.

    Returns:
        User instance for testing.
    """
    return User.objects.create_user(
        username='testuser',
        password='testpass123',
        email='test@example.com',
    )


@pytest.fixture
def other_user(db):
    """Create second test user for isolation tests.

    Returns:
        Second user instance.
    """
    return User.objects.create_user(
        username='otheruser',
        password='testpass123',
        email='other@example.com',
    )


@pytest.fixture
def third_user(db):
    """Create a third user for multi-user sharing tests."""
    return User.objects.create_user(
        username='thirduser',
        password='testpass123',
        email='third@example.com',
    )


@pytest.fixture
def staff_user(db):
    """Create a staff user."""
    return User.objects.create_user(
        username='staffuser',
        password='testpass123',
        email='staff@example.com',
        is_staff=True,
    )


@pytest.fixture
def mock_s3():
    """Mock S3 service with sharevault bucket.

    Yields:
        boto3 S3 resource with sharevault bucket created.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        conn.create_bucket(Bucket='sharevault')
        yield conn


@pytest.fixture
def sample_file_content():
    """Sample file content for testing.

    Returns:
        ContentFile with test data.
    """
    return ContentFile(b'test file content', name='test.txt')


@pytest.fixture
def make_folder(db):
    """Factory creating folders directly in the database."""

    def factory(owner, name='Folder', parent=None):
        return Folder.objects.create(owner=owner, name=name, parent=parent)

    return factory


@pytest.fixture
def make_file(db):
    """Factory creating file records without touching storage."""

    def factory(owner, name='test.txt', folder=None, size_bytes=100, **fields):
        return FileEntry.objects.create(
            owner=owner,
            name=name,
            folder=folder,
            size_bytes=size_bytes,
            content_type='text/plain',
            checksum_sha256='a' * 64,
            storage_key=f'{owner.pk}/key{next(_keys)}/{name}',
            **fields,
        )

    return factory
