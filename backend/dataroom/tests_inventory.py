"""
Unit Tests for the Inventory Store and Inventory CRUD
=====================================================
Tests cover:
- Whole-document load/save (bootstrap, corruption, atomic replace)
- lastUpdated stamping
- Update with partial-field semantics
- Delete of record + blob
- Lookup order and id uniqueness
- Browse / search
- Lost updates under concurrent writers
- /api/files/ endpoint
"""

import copy
import json
import shutil
import tempfile
from datetime import datetime, timezone as dt_timezone
from pathlib import Path
from unittest.mock import patch

from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from dataroom.authentication import DataroomUser
from dataroom.exceptions import NotFound, StoreCorrupt, ValidationError
from dataroom.services import BlobStore, InventoryService, InventoryStore
from dataroom.services.inventory import find_duplicate_ids, iter_records, locate, parse_tags


# Create a temporary public directory for tests
TEST_PUBLIC_DIR = Path(tempfile.mkdtemp())
TEST_INVENTORY_PATH = TEST_PUBLIC_DIR / 'inventory.json'
TEST_UPLOAD_DIR = TEST_PUBLIC_DIR / 'uploads'


SAMPLE_DOCUMENT = {
    'lastUpdated': '2024-01-01T00:00:00.000000+00:00',
    'rootFiles': [
        {
            'id': 'root-1',
            'name': 'Overview.pdf',
            'type': 'pdf',
            'size': '1.2 MB',
            'lastModified': '1/1/2024',
            'description': 'Company overview',
            'tags': ['overview', 'intro'],
            'category': 'root',
            'downloadUrl': '/uploads/overview.pdf',
            'previewUrl': '/uploads/overview.pdf',
        },
    ],
    'categories': [
        {
            'id': 'financials',
            'title': 'Financials',
            'description': 'Financial statements',
            'files': [
                {
                    'id': 'fin-1',
                    'name': 'Q1 Results.xlsx',
                    'type': 'excel',
                    'size': '48 KB',
                    'lastModified': '2/3/2024',
                    'description': 'First quarter numbers',
                    'tags': ['finance', 'Q1'],
                    'category': 'financials',
                    'downloadUrl': '/uploads/q1.xlsx',
                },
            ],
        },
        {
            'id': 'legal',
            'title': 'Legal',
            'description': '',
            'files': [
                {
                    'id': 'legal-1',
                    'name': 'NDA.docx',
                    'type': 'word',
                    'size': '20 KB',
                    'lastModified': '2/4/2024',
                    'description': 'Mutual NDA',
                    'tags': ['legal'],
                    'category': 'legal',
                    'downloadUrl': 'https://example.com/nda.docx',
                },
            ],
        },
    ],
}

ADMIN = DataroomUser({'id': 'u-admin', 'username': 'admin', 'role': 'admin', 'name': 'Admin'})
INVESTOR = DataroomUser({'id': 'u-inv', 'username': 'investor', 'role': 'investor', 'name': 'Investor'})


class InventoryTestMixin:
    """Seeds the sample inventory and its two uploaded blobs."""

    def setUp(self):
        super().setUp()
        TEST_UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
        (TEST_UPLOAD_DIR / 'overview.pdf').write_bytes(b'%PDF-1.4 overview')
        (TEST_UPLOAD_DIR / 'q1.xlsx').write_bytes(b'xlsx bytes')
        InventoryStore.save(copy.deepcopy(SAMPLE_DOCUMENT))

    def tearDown(self):
        shutil.rmtree(TEST_UPLOAD_DIR, ignore_errors=True)
        if TEST_INVENTORY_PATH.exists():
            TEST_INVENTORY_PATH.unlink()
        super().tearDown()

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_PUBLIC_DIR, ignore_errors=True)

    def read_inventory_bytes(self) -> bytes:
        return TEST_INVENTORY_PATH.read_bytes()


@override_settings(
    DATAROOM_INVENTORY_PATH=TEST_INVENTORY_PATH,
    DATAROOM_UPLOAD_DIR=TEST_UPLOAD_DIR,
)
class InventoryStoreTests(InventoryTestMixin, TestCase):
    """Tests for whole-document persistence."""

    def test_load_returns_inner_document(self):
        """load() should unwrap the top-level 'dataroom' key."""
        document = InventoryStore.load()

        self.assertEqual(document, SAMPLE_DOCUMENT)

    def test_document_is_stored_under_dataroom_key(self):
        """The on-disk JSON should wrap the document in 'dataroom'."""
        raw = json.loads(self.read_inventory_bytes())

        self.assertEqual(list(raw.keys()), ['dataroom'])
        self.assertEqual(raw['dataroom']['rootFiles'][0]['id'], 'root-1')

    def test_save_load_round_trip_is_byte_identical(self):
        """Writing back a freshly loaded document should not change the file."""
        before = self.read_inventory_bytes()

        InventoryStore.save(InventoryStore.load())

        self.assertEqual(self.read_inventory_bytes(), before)

    def test_load_missing_document_fails(self):
        """A missing document is StoreCorrupt unless bootstrapping."""
        TEST_INVENTORY_PATH.unlink()

        with self.assertRaises(StoreCorrupt):
            InventoryStore.load()

    def test_load_missing_document_bootstraps_empty(self):
        """bootstrap=True should treat a missing file as an empty inventory."""
        TEST_INVENTORY_PATH.unlink()

        document = InventoryStore.load(bootstrap=True)

        self.assertEqual(document['rootFiles'], [])
        self.assertEqual(document['categories'], [])

    def test_load_malformed_json_fails_even_with_bootstrap(self):
        """An existing but unparseable document must never be treated as empty."""
        TEST_INVENTORY_PATH.write_text('{"dataroom": {"rootFiles": [', encoding='utf-8')

        with self.assertRaises(StoreCorrupt):
            InventoryStore.load(bootstrap=True)

    def test_load_without_dataroom_key_fails(self):
        """A JSON document without the 'dataroom' object is corrupt."""
        TEST_INVENTORY_PATH.write_text('{"rootFiles": []}', encoding='utf-8')

        with self.assertRaises(StoreCorrupt):
            InventoryStore.load()

    def test_load_with_non_list_categories_fails(self):
        """Structural problems should surface as StoreCorrupt."""
        TEST_INVENTORY_PATH.write_text(
            '{"dataroom": {"rootFiles": [], "categories": {}}}', encoding='utf-8'
        )

        with self.assertRaises(StoreCorrupt):
            InventoryStore.load()

    def test_failed_save_leaves_previous_document(self):
        """If the rename fails the old document should be untouched."""
        before = self.read_inventory_bytes()
        document = InventoryStore.load()
        document['rootFiles'] = []

        with patch('dataroom.services.json_store.os.replace', side_effect=OSError('disk full')):
            with self.assertRaises(OSError):
                InventoryStore.save(document)

        self.assertEqual(self.read_inventory_bytes(), before)
        leftovers = [p.name for p in TEST_PUBLIC_DIR.iterdir() if p.name.endswith('.tmp')]
        self.assertEqual(leftovers, [])

    def test_touch_sets_current_time(self):
        """touch() should stamp lastUpdated with now."""
        document = InventoryStore.load()
        fixed_now = datetime(2025, 6, 1, 12, 0, tzinfo=dt_timezone.utc)

        with patch('django.utils.timezone.now', return_value=fixed_now):
            stamp = InventoryStore.touch(document)

        self.assertEqual(stamp, '2025-06-01T12:00:00.000000+00:00')
        self.assertEqual(document['lastUpdated'], stamp)

    def test_touch_strictly_increases_when_clock_stalls(self):
        """Two touches at the same instant should still move lastUpdated forward."""
        document = InventoryStore.load()
        fixed_now = datetime(2025, 6, 1, 12, 0, tzinfo=dt_timezone.utc)

        with patch('django.utils.timezone.now', return_value=fixed_now):
            first = InventoryStore.touch(document)
            second = InventoryStore.touch(document)

        self.assertGreater(second, first)

    def test_touch_strictly_increases_when_clock_goes_back(self):
        """A clock behind the stored value should not move lastUpdated back."""
        document = InventoryStore.load()
        document['lastUpdated'] = '2030-01-01T00:00:00.000000+00:00'

        stamp = InventoryStore.touch(document)

        self.assertEqual(stamp, '2030-01-01T00:00:00.000001+00:00')


@override_settings(
    DATAROOM_INVENTORY_PATH=TEST_INVENTORY_PATH,
    DATAROOM_UPLOAD_DIR=TEST_UPLOAD_DIR,
)
class InventoryServiceTests(InventoryTestMixin, TestCase):
    """Tests for list / update / delete / browse."""

    # ===================
    # List Tests
    # ===================

    def test_list_returns_document_unmodified(self):
        """List should return the whole document as stored."""
        self.assertEqual(InventoryService.list_files(), SAMPLE_DOCUMENT)

    def test_list_does_not_write(self):
        """List is read-only."""
        before = self.read_inventory_bytes()

        InventoryService.list_files()

        self.assertEqual(self.read_inventory_bytes(), before)

    # ===================
    # Update Tests
    # ===================

    def test_update_only_tags_keeps_name_and_description(self):
        """Updating tags alone should leave name and description unchanged."""
        record = InventoryService.update_file('root-1', tags='x, y , z')

        self.assertEqual(record['tags'], ['x', 'y', 'z'])
        self.assertEqual(record['name'], 'Overview.pdf')
        self.assertEqual(record['description'], 'Company overview')

    def test_update_persists_changes(self):
        """Updates should be visible to the next load."""
        InventoryService.update_file('fin-1', name='Q1 Final.xlsx', description='Audited')

        record = InventoryService.get_file('fin-1')
        self.assertEqual(record['name'], 'Q1 Final.xlsx')
        self.assertEqual(record['description'], 'Audited')
        self.assertEqual(record['tags'], ['finance', 'Q1'])

    def test_update_with_tag_list_uses_it_as_is(self):
        """A tag sequence should be stored without splitting."""
        record = InventoryService.update_file('root-1', tags=['a, b', 'c'])

        self.assertEqual(record['tags'], ['a, b', 'c'])

    def test_update_empty_name_is_no_change(self):
        """An empty string for name means 'no change'."""
        record = InventoryService.update_file('root-1', name='', description='New text')

        self.assertEqual(record['name'], 'Overview.pdf')
        self.assertEqual(record['description'], 'New text')

    def test_update_never_touches_derived_fields(self):
        """type, size, URLs and lastModified are immutable through update."""
        original = copy.deepcopy(SAMPLE_DOCUMENT['rootFiles'][0])

        record = InventoryService.update_file('root-1', name='Renamed.pdf', tags='new')

        for key in ('id', 'type', 'size', 'lastModified', 'downloadUrl', 'previewUrl', 'category'):
            self.assertEqual(record[key], original[key])

    def test_update_bumps_last_updated(self):
        """A successful update should advance lastUpdated."""
        InventoryService.update_file('root-1', description='Changed')

        document = InventoryStore.load()
        self.assertGreater(document['lastUpdated'], SAMPLE_DOCUMENT['lastUpdated'])

    def test_update_unknown_id_raises_not_found(self):
        """Unknown id should fail without writing."""
        before = self.read_inventory_bytes()

        with self.assertRaises(NotFound):
            InventoryService.update_file('missing', name='x')

        self.assertEqual(self.read_inventory_bytes(), before)

    def test_update_without_id_raises_validation_error(self):
        with self.assertRaises(ValidationError):
            InventoryService.update_file('', name='x')

    # ===================
    # Delete Tests
    # ===================

    def test_delete_removes_record_and_blob(self):
        """Deleting should drop the record and its uploaded blob."""
        result = InventoryService.delete_file('root-1')

        self.assertTrue(result['blob_deleted'])
        self.assertFalse(BlobStore.exists('overview.pdf'))
        ids = [r['id'] for r in iter_records(InventoryService.list_files())]
        self.assertNotIn('root-1', ids)

    def test_delete_from_category(self):
        """Records inside a category should be removed from that category."""
        InventoryService.delete_file('fin-1')

        document = InventoryStore.load()
        self.assertEqual(document['categories'][0]['files'], [])
        self.assertFalse(BlobStore.exists('q1.xlsx'))

    def test_delete_unknown_id_does_not_mutate(self):
        """Unknown id should raise NotFound and leave the document untouched."""
        before = self.read_inventory_bytes()

        with self.assertRaises(NotFound):
            InventoryService.delete_file('missing')

        self.assertEqual(self.read_inventory_bytes(), before)

    def test_delete_tolerates_missing_blob(self):
        """A blob that is already gone should not block record removal."""
        (TEST_UPLOAD_DIR / 'overview.pdf').unlink()

        with self.assertLogs('dataroom.services.inventory', level='WARNING'):
            result = InventoryService.delete_file('root-1')

        self.assertFalse(result['blob_deleted'])
        self.assertEqual(InventoryStore.load()['rootFiles'], [])

    def test_delete_external_url_leaves_blobs_alone(self):
        """Records pointing outside the upload namespace have no blob to delete."""
        result = InventoryService.delete_file('legal-1')

        self.assertFalse(result['blob_deleted'])
        self.assertTrue(BlobStore.exists('overview.pdf'))
        self.assertTrue(BlobStore.exists('q1.xlsx'))

    def test_delete_bumps_last_updated(self):
        InventoryService.delete_file('legal-1')

        self.assertGreater(InventoryStore.load()['lastUpdated'], SAMPLE_DOCUMENT['lastUpdated'])

    # ===================
    # Lookup Tests
    # ===================

    def test_lookup_prefers_root_over_categories(self):
        """With a duplicated id, the root record is found first."""
        document = copy.deepcopy(SAMPLE_DOCUMENT)
        duplicate = copy.deepcopy(document['categories'][0]['files'][0])
        duplicate['id'] = 'root-1'
        document['categories'][0]['files'].append(duplicate)

        record, files, index = locate(document, 'root-1')

        self.assertIs(files, document['rootFiles'])
        self.assertEqual(record['name'], 'Overview.pdf')

    def test_duplicate_ids_are_reported(self):
        """Malformed documents with repeated ids should be detectable."""
        document = copy.deepcopy(SAMPLE_DOCUMENT)
        duplicate = copy.deepcopy(document['rootFiles'][0])
        document['categories'][1]['files'].append(duplicate)

        self.assertEqual(find_duplicate_ids(document), ['root-1'])

    def test_sample_document_ids_are_unique(self):
        self.assertEqual(find_duplicate_ids(SAMPLE_DOCUMENT), [])

    def test_parse_tags_drops_blank_entries(self):
        self.assertEqual(parse_tags(' a ,, b ,'), ['a', 'b'])

    # ===================
    # Browse Tests
    # ===================

    def test_browse_all_lists_root_then_categories(self):
        ids = [r['id'] for r in InventoryService.browse()]

        self.assertEqual(ids, ['root-1', 'fin-1', 'legal-1'])

    def test_browse_root_only(self):
        ids = [r['id'] for r in InventoryService.browse(category='root')]

        self.assertEqual(ids, ['root-1'])

    def test_browse_single_category(self):
        ids = [r['id'] for r in InventoryService.browse(category='financials')]

        self.assertEqual(ids, ['fin-1'])

    def test_browse_unknown_category_is_empty(self):
        self.assertEqual(InventoryService.browse(category='nope'), [])

    def test_search_matches_name_description_and_tags(self):
        """Search is a case-insensitive substring match on name, description and tags."""
        by_name = [r['id'] for r in InventoryService.browse(search='OVERVIEW')]
        by_description = [r['id'] for r in InventoryService.browse(search='quarter')]
        by_tag = [r['id'] for r in InventoryService.browse(search='q1')]

        self.assertEqual(by_name, ['root-1'])
        self.assertEqual(by_description, ['fin-1'])
        self.assertEqual(by_tag, ['fin-1'])

    def test_search_combines_with_category(self):
        self.assertEqual(InventoryService.browse(category='legal', search='overview'), [])

    # ===================
    # Concurrency
    # ===================

    def test_concurrent_writers_lose_updates(self):
        """
        Concurrent load-mutate-save is NOT safe: the last save wins and
        silently discards the other writer's change.
        """
        first = InventoryStore.load()
        second = InventoryStore.load()

        locate(first, 'root-1')[0]['description'] = 'Writer one'
        InventoryStore.save(first)

        locate(second, 'fin-1')[0]['description'] = 'Writer two'
        InventoryStore.save(second)

        document = InventoryStore.load()
        self.assertEqual(locate(document, 'root-1')[0]['description'], 'Company overview')
        self.assertEqual(locate(document, 'fin-1')[0]['description'], 'Writer two')


@override_settings(
    DATAROOM_INVENTORY_PATH=TEST_INVENTORY_PATH,
    DATAROOM_UPLOAD_DIR=TEST_UPLOAD_DIR,
)
class FileInventoryAPITests(InventoryTestMixin, APITestCase):
    """Tests for /api/files/ and /api/browse/."""

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=ADMIN)

    def test_list_files(self):
        response = self.client.get('/api/files/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['categories'][0]['id'], 'financials')

    def test_list_files_corrupt_store_returns_500(self):
        TEST_INVENTORY_PATH.write_text('not json', encoding='utf-8')

        response = self.client.get('/api/files/')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertIn('error', response.data)

    def test_update_file(self):
        response = self.client.put(
            '/api/files/',
            {'fileId': 'fin-1', 'tags': 'x, y , z'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['file']['tags'], ['x', 'y', 'z'])
        self.assertEqual(response.data['file']['name'], 'Q1 Results.xlsx')

    def test_update_file_with_tag_list(self):
        response = self.client.put(
            '/api/files/',
            {'fileId': 'fin-1', 'tags': ['one', 'two']},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['file']['tags'], ['one', 'two'])

    def test_update_requires_file_id(self):
        response = self.client.put('/api/files/', {'name': 'x'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'File ID required')

    def test_update_unknown_file_returns_404(self):
        response = self.client.put('/api/files/', {'fileId': 'missing', 'name': 'x'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'File not found')

    def seed_sparse_root_record(self):
        """Rewrite root-1 the way an older or hand-edited inventory stores it."""
        document = copy.deepcopy(SAMPLE_DOCUMENT)
        for key in ('description', 'tags', 'lastModified', 'size'):
            del document['rootFiles'][0][key]
        InventoryStore.save(document)

    def test_update_record_with_missing_optional_fields(self):
        """A record lacking description or tags should still update and serialize."""
        self.seed_sparse_root_record()

        response = self.client.put('/api/files/', {'fileId': 'root-1', 'name': 'Renamed.pdf'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['file']['name'], 'Renamed.pdf')
        self.assertNotIn('description', response.data['file'])
        self.assertEqual(locate(InventoryStore.load(), 'root-1')[0]['name'], 'Renamed.pdf')

    def test_browse_includes_record_with_missing_optional_fields(self):
        self.seed_sparse_root_record()

        response = self.client.get('/api/browse/', {'category': 'root'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([r['id'] for r in response.data['results']], ['root-1'])

    def test_delete_file(self):
        response = self.client.delete('/api/files/?id=root-1')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'File deleted successfully')
        self.assertFalse(BlobStore.exists('overview.pdf'))

    def test_delete_requires_id(self):
        response = self.client.delete('/api/files/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_unknown_file_returns_404(self):
        response = self.client.delete('/api/files/?id=missing')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_investor_cannot_manage_files(self):
        self.client.force_authenticate(user=INVESTOR)

        response = self.client.get('/api/files/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_anonymous_is_rejected(self):
        self.client.force_authenticate(user=None)

        response = self.client.get('/api/files/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_investor_can_browse(self):
        self.client.force_authenticate(user=INVESTOR)

        response = self.client.get('/api/browse/', {'category': 'all', 'search': 'nda'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], 'legal-1')
