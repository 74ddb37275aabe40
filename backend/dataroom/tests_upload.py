"""
Unit Tests for the Upload Pipeline
==================================
Tests cover:
- File type classification
- Human-readable size formatting
- Blob naming and sanitizing
- Record construction (category, description, tags, previewUrl)
- Unknown category fallback
- Failure ordering (missing payload, blob failure, inventory save failure)
- /api/upload/ endpoint
"""

import copy
import re
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from dataroom.authentication import DataroomUser
from dataroom.exceptions import BlobIOFailure, StoreCorrupt, ValidationError
from dataroom.services import BlobStore, InventoryStore, UploadService
from dataroom.services.blob_store import sanitize_filename
from dataroom.services.inventory import iter_records
from dataroom.services.upload import classify_file_type, format_file_size


# Create a temporary public directory for tests
TEST_PUBLIC_DIR = Path(tempfile.mkdtemp())
TEST_INVENTORY_PATH = TEST_PUBLIC_DIR / 'inventory.json'
TEST_UPLOAD_DIR = TEST_PUBLIC_DIR / 'uploads'

EMPTY_DOCUMENT = {
    'lastUpdated': '2024-01-01T00:00:00.000000+00:00',
    'rootFiles': [],
    'categories': [
        {'id': 'financials', 'title': 'Financials', 'description': '', 'files': []},
    ],
}

ADMIN = DataroomUser({'id': 'u-admin', 'username': 'admin', 'role': 'admin'})


class FileTypeClassificationTests(TestCase):
    """Tests for extension to type mapping."""

    def test_known_extensions(self):
        cases = {
            'deck.pdf': 'pdf',
            'photo.jpg': 'image',
            'photo.jpeg': 'image',
            'logo.png': 'image',
            'anim.gif': 'image',
            'hero.webp': 'image',
            'model.xls': 'excel',
            'model.xlsx': 'excel',
            'memo.doc': 'word',
            'memo.docx': 'word',
            'pitch.ppt': 'powerpoint',
            'pitch.pptx': 'powerpoint',
        }
        for filename, expected in cases.items():
            with self.subTest(filename=filename):
                self.assertEqual(classify_file_type(filename), expected)

    def test_extension_is_case_insensitive(self):
        self.assertEqual(classify_file_type('SCAN.PDF'), 'pdf')
        self.assertEqual(classify_file_type('Budget.XlSx'), 'excel')

    def test_unknown_or_missing_extension_is_generic(self):
        self.assertEqual(classify_file_type('archive.zip'), 'file')
        self.assertEqual(classify_file_type('README'), 'file')


class FileSizeFormattingTests(TestCase):
    """Tests for base-1024 size strings."""

    def test_zero_bytes(self):
        self.assertEqual(format_file_size(0), '0 B')

    def test_bytes(self):
        self.assertEqual(format_file_size(500), '500 B')

    def test_fractional_kilobytes(self):
        self.assertEqual(format_file_size(1536), '1.5 KB')

    def test_whole_units_drop_trailing_zero(self):
        self.assertEqual(format_file_size(1024), '1 KB')
        self.assertEqual(format_file_size(1024 * 1024), '1 MB')
        self.assertEqual(format_file_size(5 * 1024 ** 3), '5 GB')

    def test_rounds_to_one_decimal(self):
        self.assertEqual(format_file_size(1258291), '1.2 MB')

    def test_gigabytes_is_the_largest_unit(self):
        self.assertEqual(format_file_size(2048 * 1024 ** 3), '2048 GB')


class BlobNamingTests(TestCase):
    """Tests for generated blob filenames."""

    def test_sanitize_replaces_unsafe_characters(self):
        self.assertEqual(sanitize_filename('my report (v2).pdf'), 'my_report__v2_.pdf')

    def test_sanitize_keeps_safe_characters(self):
        self.assertEqual(sanitize_filename('Q1-2024.final.xlsx'), 'Q1-2024.final.xlsx')

    def test_name_format(self):
        name = BlobStore.generate_name('Deck v1.pdf')

        self.assertRegex(name, r'^\d+_[0-9a-f]{8}_Deck_v1\.pdf$')

    def test_same_millisecond_names_differ(self):
        """Two uploads of the same file in the same millisecond must not collide."""
        with patch('dataroom.services.blob_store.time.time', return_value=1700000000.5):
            first = BlobStore.generate_name('deck.pdf')
            second = BlobStore.generate_name('deck.pdf')

        self.assertNotEqual(first, second)
        self.assertTrue(first.startswith('1700000000500_'))

    def test_name_from_url_only_accepts_upload_prefix(self):
        self.assertEqual(BlobStore.name_from_url('/uploads/abc.pdf'), 'abc.pdf')
        self.assertIsNone(BlobStore.name_from_url('https://example.com/abc.pdf'))
        self.assertIsNone(BlobStore.name_from_url('/documents/abc.pdf'))
        self.assertIsNone(BlobStore.name_from_url('/uploads/../secret.json'))
        self.assertIsNone(BlobStore.name_from_url(None))


@override_settings(
    DATAROOM_INVENTORY_PATH=TEST_INVENTORY_PATH,
    DATAROOM_UPLOAD_DIR=TEST_UPLOAD_DIR,
)
class UploadServiceTests(TestCase):
    """Tests for UploadService.upload_file."""

    def setUp(self):
        InventoryStore.save(copy.deepcopy(EMPTY_DOCUMENT))

    def tearDown(self):
        shutil.rmtree(TEST_UPLOAD_DIR, ignore_errors=True)
        if TEST_INVENTORY_PATH.exists():
            TEST_INVENTORY_PATH.unlink()

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_PUBLIC_DIR, ignore_errors=True)

    def make_file(self, name='report.pdf', size=1536, content_type='application/pdf'):
        return SimpleUploadedFile(name, b'x' * size, content_type=content_type)

    # ===================
    # Record Construction
    # ===================

    def test_upload_into_category(self):
        """The record should land in the category with the given metadata."""
        record = UploadService.upload_file(
            self.make_file(),
            category='financials',
            description='Audited numbers',
            tags='finance, 2024 ,audit'
        )

        self.assertEqual(record['name'], 'report.pdf')
        self.assertEqual(record['type'], 'pdf')
        self.assertEqual(record['size'], '1.5 KB')
        self.assertEqual(record['description'], 'Audited numbers')
        self.assertEqual(record['tags'], ['finance', '2024', 'audit'])
        self.assertEqual(record['category'], 'financials')

        document = InventoryStore.load()
        self.assertEqual(document['rootFiles'], [])
        self.assertEqual(document['categories'][0]['files'], [record])

    def test_blob_is_written_and_linked(self):
        """downloadUrl should resolve to a blob holding the uploaded bytes."""
        record = UploadService.upload_file(self.make_file(size=10))

        blob_name = BlobStore.name_from_url(record['downloadUrl'])
        self.assertIsNotNone(blob_name)
        self.assertEqual(BlobStore.path_for(blob_name).read_bytes(), b'x' * 10)

    def test_pdf_and_images_get_preview_url(self):
        pdf = UploadService.upload_file(self.make_file('a.pdf'))
        image = UploadService.upload_file(self.make_file('b.PNG', content_type='image/png'))

        self.assertEqual(pdf['previewUrl'], pdf['downloadUrl'])
        self.assertEqual(image['previewUrl'], image['downloadUrl'])

    def test_other_types_have_no_preview_url(self):
        record = UploadService.upload_file(self.make_file('memo.docx', content_type='application/msword'))

        self.assertEqual(record['type'], 'word')
        self.assertNotIn('previewUrl', record)

    def test_last_modified_format(self):
        record = UploadService.upload_file(self.make_file())

        self.assertRegex(record['lastModified'], r'^\d{1,2}/\d{1,2}/\d{4}$')

    def test_defaults_to_root_with_placeholder_description(self):
        record = UploadService.upload_file(self.make_file())

        self.assertEqual(record['category'], 'root')
        self.assertEqual(record['description'], 'Uploaded file')
        self.assertEqual(record['tags'], [])
        self.assertEqual(InventoryStore.load()['rootFiles'], [record])

    def test_unknown_category_falls_back_to_root(self):
        """An unknown category id should not fail the upload."""
        record = UploadService.upload_file(self.make_file(), category='does-not-exist')

        self.assertEqual(record['category'], 'root')
        document = InventoryStore.load()
        self.assertEqual([r['id'] for r in document['rootFiles']], [record['id']])
        self.assertEqual(document['categories'][0]['files'], [])

    def test_ids_are_unique(self):
        for _ in range(5):
            UploadService.upload_file(self.make_file())

        ids = [record['id'] for record in iter_records(InventoryStore.load())]
        self.assertEqual(len(ids), 5)
        self.assertEqual(len(set(ids)), 5)

    def test_same_name_uploads_get_distinct_blobs(self):
        first = UploadService.upload_file(self.make_file())
        second = UploadService.upload_file(self.make_file())

        self.assertNotEqual(first['downloadUrl'], second['downloadUrl'])
        self.assertEqual(len(BlobStore.list_names()), 2)

    def test_upload_bumps_last_updated(self):
        UploadService.upload_file(self.make_file())

        self.assertGreater(InventoryStore.load()['lastUpdated'], EMPTY_DOCUMENT['lastUpdated'])

    def test_missing_inventory_is_bootstrapped(self):
        TEST_INVENTORY_PATH.unlink()

        record = UploadService.upload_file(self.make_file(), category='financials')

        document = InventoryStore.load()
        self.assertEqual(document['rootFiles'], [record])
        self.assertEqual(document['categories'], [])

    # ===================
    # Failure Handling
    # ===================

    def test_missing_file_is_rejected(self):
        with self.assertRaises(ValidationError):
            UploadService.upload_file(None)

        self.assertEqual(BlobStore.list_names(), [])

    @override_settings(FILE_UPLOAD_MAX_SIZE=1024)
    def test_oversized_file_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            UploadService.upload_file(self.make_file(size=2048))

        self.assertIn('exceeds maximum', str(ctx.exception))
        self.assertEqual(BlobStore.list_names(), [])

    def test_corrupt_inventory_aborts_before_blob_write(self):
        TEST_INVENTORY_PATH.write_text('{broken', encoding='utf-8')

        with self.assertRaises(StoreCorrupt):
            UploadService.upload_file(self.make_file())

        self.assertEqual(BlobStore.list_names(), [])

    def test_blob_failure_leaves_inventory_untouched(self):
        before = TEST_INVENTORY_PATH.read_bytes()

        with patch.object(BlobStore, 'save', side_effect=BlobIOFailure('Failed to store file')):
            with self.assertRaises(BlobIOFailure):
                UploadService.upload_file(self.make_file())

        self.assertEqual(TEST_INVENTORY_PATH.read_bytes(), before)

    def test_partial_blob_is_removed_on_write_error(self):
        """A write error mid-stream should not leave a partial blob."""
        broken = self.make_file()
        with patch.object(SimpleUploadedFile, 'chunks', side_effect=OSError('read error')):
            with self.assertRaises(BlobIOFailure):
                BlobStore.save(broken, 'report.pdf')

        self.assertEqual(BlobStore.list_names(), [])

    def test_name_collision_keeps_existing_blob(self):
        """A blob name that already exists should fail without touching the existing file."""
        existing = BlobStore.path_for('existing.pdf')
        existing.parent.mkdir(parents=True, exist_ok=True)
        existing.write_bytes(b'original')

        with patch.object(BlobStore, 'generate_name', return_value='existing.pdf'):
            with self.assertRaises(BlobIOFailure):
                BlobStore.save(self.make_file(), 'existing.pdf')

        self.assertTrue(existing.exists())
        self.assertEqual(existing.read_bytes(), b'original')

    def test_save_failure_is_logged_and_orphans_blob(self):
        """If the inventory save fails, the stored blob is orphaned and reported."""
        with patch.object(InventoryStore, 'save', side_effect=OSError('disk full')):
            with self.assertLogs('dataroom.services.upload', level='WARNING') as logs:
                with self.assertRaises(OSError):
                    UploadService.upload_file(self.make_file())

        self.assertEqual(len(BlobStore.list_names()), 1)
        self.assertIn('orphaned', logs.output[0])
        self.assertEqual(InventoryStore.load()['rootFiles'], [])


@override_settings(
    DATAROOM_INVENTORY_PATH=TEST_INVENTORY_PATH,
    DATAROOM_UPLOAD_DIR=TEST_UPLOAD_DIR,
)
class UploadAPITests(APITestCase):
    """Tests for POST /api/upload/."""

    def setUp(self):
        InventoryStore.save({
            'lastUpdated': '2024-01-01T00:00:00.000000+00:00',
            'rootFiles': [],
            'categories': [{'id': 'legal', 'title': 'Legal', 'description': '', 'files': []}],
        })
        self.client.force_authenticate(user=ADMIN)

    def tearDown(self):
        shutil.rmtree(TEST_UPLOAD_DIR, ignore_errors=True)
        if TEST_INVENTORY_PATH.exists():
            TEST_INVENTORY_PATH.unlink()

    def test_upload_file(self):
        test_file = SimpleUploadedFile('nda.pdf', b'%PDF-1.4 nda', content_type='application/pdf')

        response = self.client.post(
            '/api/upload/',
            {'file': test_file, 'category': 'legal', 'description': 'NDA', 'tags': 'legal, nda'},
            format='multipart'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['file']['category'], 'legal')
        self.assertEqual(response.data['file']['tags'], ['legal', 'nda'])
        self.assertTrue(re.match(r'^/uploads/\d+_', response.data['file']['downloadUrl']))

    def test_upload_without_file(self):
        response = self.client.post('/api/upload/', {'category': 'legal'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'No file provided')

    def test_upload_requires_admin(self):
        self.client.force_authenticate(
            user=DataroomUser({'id': 'u-inv', 'username': 'investor', 'role': 'investor'})
        )
        test_file = SimpleUploadedFile('x.pdf', b'x', content_type='application/pdf')

        response = self.client.post('/api/upload/', {'file': test_file}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(BlobStore.list_names(), [])
