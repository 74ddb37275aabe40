"""
Unit Tests for Blob Store Maintenance
=====================================
Tests cover:
- Orphaned and missing blob detection
- Orphan purge (dry run and real)
- Celery task wrappers
- init_dataroom management command
"""

import shutil
import tempfile
from io import StringIO
from pathlib import Path

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings

from contracts.models import AnalyticsEvent
from dataroom.services import BlobStore, EventLog, InventoryStore, UserDirectory
from dataroom.services.maintenance import find_missing_blobs, find_orphan_blobs, purge_orphans
from dataroom.tasks import check_inventory_blobs, purge_orphan_blobs


# Create a temporary public directory for tests
TEST_PUBLIC_DIR = Path(tempfile.mkdtemp())
TEST_INVENTORY_PATH = TEST_PUBLIC_DIR / 'inventory.json'
TEST_USERS_PATH = TEST_PUBLIC_DIR / 'users.json'
TEST_UPLOAD_DIR = TEST_PUBLIC_DIR / 'uploads'


def record(file_id, blob_name=None, url=None):
    return {
        'id': file_id,
        'name': f'{file_id}.pdf',
        'type': 'pdf',
        'size': '1 KB',
        'lastModified': '1/1/2024',
        'description': '',
        'tags': [],
        'downloadUrl': url or f'/uploads/{blob_name}',
    }


@override_settings(
    DATAROOM_INVENTORY_PATH=TEST_INVENTORY_PATH,
    DATAROOM_USERS_PATH=TEST_USERS_PATH,
    DATAROOM_UPLOAD_DIR=TEST_UPLOAD_DIR,
)
class MaintenanceTests(TestCase):
    """Tests for orphan detection and purge."""

    def setUp(self):
        TEST_UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
        (TEST_UPLOAD_DIR / 'kept.pdf').write_bytes(b'kept')
        (TEST_UPLOAD_DIR / 'orphan.pdf').write_bytes(b'orphan')
        InventoryStore.save({
            'lastUpdated': '2024-01-01T00:00:00.000000+00:00',
            'rootFiles': [record('f-kept', 'kept.pdf')],
            'categories': [{
                'id': 'legal',
                'title': 'Legal',
                'description': '',
                'files': [
                    record('f-gone', 'gone.pdf'),
                    record('f-external', url='https://example.com/terms.pdf'),
                ],
            }],
        })

    def tearDown(self):
        shutil.rmtree(TEST_PUBLIC_DIR, ignore_errors=True)

    # ===================
    # Detection
    # ===================

    def test_find_orphan_blobs(self):
        self.assertEqual(find_orphan_blobs(), ['orphan.pdf'])

    def test_find_missing_blobs(self):
        """External URLs are not blobs, so only the uploaded record is missing."""
        self.assertEqual(find_missing_blobs(), ['f-gone'])

    def test_every_blob_is_orphaned_without_inventory(self):
        TEST_INVENTORY_PATH.unlink()

        self.assertEqual(find_orphan_blobs(), ['kept.pdf', 'orphan.pdf'])

    # ===================
    # Purge
    # ===================

    def test_dry_run_deletes_nothing(self):
        result = purge_orphans(dry_run=True)

        self.assertEqual(result['orphans'], ['orphan.pdf'])
        self.assertEqual(result['deleted'], [])
        self.assertTrue(BlobStore.exists('orphan.pdf'))

    def test_purge_deletes_only_orphans(self):
        result = purge_orphans()

        self.assertEqual(result['deleted'], ['orphan.pdf'])
        self.assertEqual(result['failed'], [])
        self.assertFalse(BlobStore.exists('orphan.pdf'))
        self.assertTrue(BlobStore.exists('kept.pdf'))

    # ===================
    # Tasks
    # ===================

    def test_purge_task(self):
        result = purge_orphan_blobs(dry_run=False)

        self.assertTrue(result['success'])
        self.assertEqual(result['deleted'], ['orphan.pdf'])

    def test_purge_task_reports_corrupt_inventory(self):
        TEST_INVENTORY_PATH.write_text('{not json', encoding='utf-8')

        result = purge_orphan_blobs()

        self.assertFalse(result['success'])
        self.assertIn('error', result)
        self.assertTrue(BlobStore.exists('orphan.pdf'))

    def test_check_task(self):
        result = check_inventory_blobs()

        self.assertTrue(result['success'])
        self.assertEqual(result['missing'], ['f-gone'])


@override_settings(
    DATAROOM_INVENTORY_PATH=TEST_INVENTORY_PATH,
    DATAROOM_USERS_PATH=TEST_USERS_PATH,
    DATAROOM_UPLOAD_DIR=TEST_UPLOAD_DIR,
)
class InitDataroomCommandTests(TestCase):
    """Tests for the init_dataroom management command."""

    def tearDown(self):
        shutil.rmtree(TEST_PUBLIC_DIR, ignore_errors=True)

    def run_command(self, **options):
        out = StringIO()
        call_command('init_dataroom', stdout=out, **options)
        return out.getvalue()

    def test_creates_empty_inventory_and_upload_dir(self):
        output = self.run_command()

        self.assertTrue(TEST_UPLOAD_DIR.is_dir())
        document = InventoryStore.load()
        self.assertEqual(document['rootFiles'], [])
        self.assertEqual(document['categories'], [])
        self.assertTrue(document['lastUpdated'])
        self.assertIn('Dataroom initialized successfully', output)

    def test_keeps_existing_inventory(self):
        InventoryStore.save({
            'lastUpdated': '2024-01-01T00:00:00.000000+00:00',
            'rootFiles': [record('f-1', url='https://example.com/a.pdf')],
            'categories': [],
        })

        self.run_command()

        self.assertEqual([r['id'] for r in InventoryStore.load()['rootFiles']], ['f-1'])

    def test_seeds_admin_account(self):
        output = self.run_command(admin_username='root')

        admin = UserDirectory.get_user('root')
        self.assertEqual(admin['role'], 'admin')
        self.assertIn('Generated password', output)

    def test_does_not_seed_admin_when_users_exist(self):
        UserDirectory.create_user('existing', password='pw')

        self.run_command(admin_username='root', admin_password='pw')

        self.assertEqual([u['username'] for u in UserDirectory.list_users()], ['existing'])

    def test_purge_orphans(self):
        TEST_UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
        (TEST_UPLOAD_DIR / 'stray.pdf').write_bytes(b'stray')

        output = self.run_command(purge_orphans=True)

        self.assertFalse(BlobStore.exists('stray.pdf'))
        self.assertIn('Deleted: 1', output)

    def test_purge_orphans_dry_run(self):
        TEST_UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
        (TEST_UPLOAD_DIR / 'stray.pdf').write_bytes(b'stray')

        output = self.run_command(purge_orphans=True, dry_run=True)

        self.assertTrue(BlobStore.exists('stray.pdf'))
        self.assertIn('stray.pdf', output)

    def test_reset_analytics(self):
        EventLog.record(user_id='u1', username='alice', action='page_view', data={'page': '/'})

        self.run_command(reset_analytics=True)

        self.assertEqual(AnalyticsEvent.objects.count(), 0)

    def test_corrupt_inventory_fails(self):
        TEST_PUBLIC_DIR.mkdir(parents=True, exist_ok=True)
        TEST_INVENTORY_PATH.write_text('[]', encoding='utf-8')

        with self.assertRaises(CommandError):
            self.run_command()
