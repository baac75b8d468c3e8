import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Folder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(blank=True, help_text='Set on rename and move', null=True)),
                ('is_deleted', models.BooleanField(db_index=True, default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('deleted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='folders', to=settings.AUTH_USER_MODEL)),
                ('parent', models.ForeignKey(blank=True, help_text='Empty for root folders', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='subfolders', to='vault.folder')),
            ],
            options={
                'verbose_name': 'Folder',
                'verbose_name_plural': 'Folders',
                'ordering': ['name', 'id'],
                'indexes': [models.Index(fields=['owner', 'parent'], name='folders_owner_parent_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('parent', models.F('id')), _negated=True), name='folders_not_own_parent')],
            },
        ),
        migrations.CreateModel(
            name='FileEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('content_type', models.CharField(default='application/octet-stream', max_length=255)),
                ('size_bytes', models.BigIntegerField(default=0, help_text='File size in bytes')),
                ('checksum_sha256', models.CharField(blank=True, default='', help_text='SHA256 hash for integrity verification', max_length=64)),
                ('storage_key', models.CharField(help_text='Blob store key: {owner_id}/{uuid}/{name}', max_length=1024, unique=True)),
                ('uploaded_at', models.DateTimeField(auto_now_add=True)),
                ('last_modified', models.DateTimeField(default=django.utils.timezone.now)),
                ('is_public', models.BooleanField(default=False)),
                ('expires_at', models.DateTimeField(blank=True, help_text='Public link stops working after this moment', null=True)),
                ('is_deleted', models.BooleanField(db_index=True, default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('folder', models.ForeignKey(blank=True, help_text='Empty for files in the owner root', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='files', to='vault.folder')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='file_entries', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'File',
                'verbose_name_plural': 'Files',
                'ordering': ['name', 'id'],
                'indexes': [
                    models.Index(fields=['owner', 'folder'], name='files_owner_folder_idx'),
                    models.Index(fields=['owner', '-uploaded_at'], name='files_owner_recent_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SharedFolder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('shared_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('permission', models.PositiveSmallIntegerField(choices=[(0, 'Read'), (1, 'Write'), (2, 'Delete'), (3, 'Share'), (4, 'Full control')], default=0)),
                ('is_active', models.BooleanField(default=True)),
                ('note', models.TextField(blank=True, default='')),
                ('last_accessed_at', models.DateTimeField(blank=True, null=True)),
                ('access_count', models.PositiveIntegerField(default=0)),
                ('folder', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='shares', to='vault.folder')),
                ('last_accessed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('shared_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sharedfolder_granted', to=settings.AUTH_USER_MODEL)),
                ('shared_with', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sharedfolder_received', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Shared folder',
                'verbose_name_plural': 'Shared folders',
                'ordering': ['-shared_at', '-id'],
                'abstract': False,
                'indexes': [models.Index(fields=['shared_with', 'is_active'], name='shared_folders_grantee_idx')],
                'constraints': [models.UniqueConstraint(condition=models.Q(('is_active', True)), fields=('folder', 'shared_with'), name='shared_folders_one_active_grant')],
            },
        ),
        migrations.CreateModel(
            name='SharedFile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('shared_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('permission', models.PositiveSmallIntegerField(choices=[(0, 'Read'), (1, 'Write'), (2, 'Delete'), (3, 'Share'), (4, 'Full control')], default=0)),
                ('is_active', models.BooleanField(default=True)),
                ('note', models.TextField(blank=True, default='')),
                ('last_accessed_at', models.DateTimeField(blank=True, null=True)),
                ('access_count', models.PositiveIntegerField(default=0)),
                ('file', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='shares', to='vault.fileentry')),
                ('last_accessed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('shared_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sharedfile_granted', to=settings.AUTH_USER_MODEL)),
                ('shared_with', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sharedfile_received', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Shared file',
                'verbose_name_plural': 'Shared files',
                'ordering': ['-shared_at', '-id'],
                'abstract': False,
                'indexes': [models.Index(fields=['shared_with', 'is_active'], name='shared_files_grantee_idx')],
                'constraints': [models.UniqueConstraint(condition=models.Q(('is_active', True)), fields=('file', 'shared_with'), name='shared_files_one_active_grant')],
            },
        ),
        migrations.CreateModel(
            name='FileVersion',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('version_number', models.CharField(max_length=32)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('change_notes', models.TextField(blank=True, default='')),
                ('storage_key', models.CharField(max_length=1024)),
                ('size_bytes', models.BigIntegerField()),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('file', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='versions', to='vault.fileentry')),
            ],
            options={
                'verbose_name': 'File version',
                'verbose_name_plural': 'File versions',
                'ordering': ['-created_at', '-id'],
                'abstract': False,
                'constraints': [models.UniqueConstraint(fields=('file', 'version_number'), name='file_versions_number_unique')],
            },
        ),
        migrations.CreateModel(
            name='FolderVersion',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('version_number', models.CharField(max_length=32)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('change_notes', models.TextField(blank=True, default='')),
                ('path', models.CharField(blank=True, max_length=1024)),
                ('structure_hash', models.CharField(help_text='Base64 SHA256 over the subtree shape and file metadata', max_length=64)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('folder', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='versions', to='vault.folder')),
            ],
            options={
                'verbose_name': 'Folder version',
                'verbose_name_plural': 'Folder versions',
                'ordering': ['-created_at', '-id'],
                'abstract': False,
                'constraints': [models.UniqueConstraint(fields=('folder', 'version_number'), name='folder_versions_number_unique')],
            },
        ),
    ]
