"""
Upload Pipeline
===============
Accepts an uploaded file plus metadata, persists the blob, derives the
record metadata and appends a new FileRecord to the inventory.

Upload Algorithm:
1. Reject a missing payload (ValidationError) or one above the size limit
2. Write the blob (a failure here leaves the inventory untouched)
3. Classify the type from the extension
4. Format the human-readable size
5. Build the FileRecord (previewUrl only for pdf and image)
6. Append to the target category, falling back to rootFiles when the
   category id is unknown
7. Save the inventory (a failure here orphans the blob; logged, re-raised)
"""

import logging
import math
import os
import uuid
from datetime import date

from django.conf import settings

from ..exceptions import ValidationError
from .blob_store import BlobStore
from .inventory import ROOT_CATEGORY, find_category, parse_tags
from .inventory_store import InventoryStore

logger = logging.getLogger(__name__)


FILE_TYPES = ('pdf', 'image', 'excel', 'word', 'powerpoint', 'file')

DEFAULT_DESCRIPTION = 'Uploaded file'

EXTENSION_TYPES = {
    '.pdf': 'pdf',
    '.jpg': 'image',
    '.jpeg': 'image',
    '.png': 'image',
    '.gif': 'image',
    '.webp': 'image',
    '.xls': 'excel',
    '.xlsx': 'excel',
    '.doc': 'word',
    '.docx': 'word',
    '.ppt': 'powerpoint',
    '.pptx': 'powerpoint',
}

PREVIEWABLE_TYPES = ('pdf', 'image')

SIZE_UNITS = ['B', 'KB', 'MB', 'GB']


def get_max_upload_size():
    """Get max upload size from settings, default 50MB."""
    return getattr(settings, 'FILE_UPLOAD_MAX_SIZE', 50 * 1024 * 1024)


def classify_file_type(filename: str) -> str:
    """Map a filename's extension (case-insensitive) to a FileRecord type."""
    _, ext = os.path.splitext(filename or '')
    return EXTENSION_TYPES.get(ext.lower(), 'file')


def format_file_size(size_bytes: int) -> str:
    """
    Format bytes as a human-readable string.

    Base-1024 through B/KB/MB/GB with at most one decimal place; a trailing
    '.0' is dropped (1024 -> '1 KB', 1536 -> '1.5 KB', 0 -> '0 B').
    """
    if size_bytes <= 0:
        return '0 B'
    exponent = min(int(math.log(size_bytes, 1024)), len(SIZE_UNITS) - 1)
    # Guard against float error right at a unit boundary
    if exponent + 1 < len(SIZE_UNITS) and size_bytes >= 1024 ** (exponent + 1):
        exponent += 1
    text = f"{size_bytes / (1024 ** exponent):.1f}"
    if text.endswith('.0'):
        text = text[:-2]
    return f"{text} {SIZE_UNITS[exponent]}"


def format_record_date(value: date) -> str:
    """Locale-style M/D/YYYY date used for lastModified."""
    return f"{value.month}/{value.day}/{value.year}"


class UploadService:
    """Service turning an uploaded file into a FileRecord."""

    @classmethod
    def upload_file(cls, file_obj, category: str = ROOT_CATEGORY,
                    description: str = '', tags: str = '') -> dict:
        """
        Run the upload pipeline.

        Args:
            file_obj: Django UploadedFile (needs .name and .size)
            category: Target category id, or 'root'
            description: Free text description ('Uploaded file' when empty)
            tags: Comma separated tags

        Returns:
            dict: The new FileRecord

        Raises:
            ValidationError: no payload, or payload above the size limit
            BlobIOFailure: the blob could not be written
            StoreCorrupt: the existing inventory could not be parsed
        """
        if file_obj is None:
            raise ValidationError('No file provided')

        max_size = get_max_upload_size()
        if file_obj.size > max_size:
            raise ValidationError(
                f'File size {format_file_size(file_obj.size)} exceeds maximum '
                f'allowed {format_file_size(max_size)}'
            )

        original_filename = os.path.basename(file_obj.name or 'upload')
        category = category or ROOT_CATEGORY

        # Parse the inventory before touching the blob store so a corrupt
        # document aborts the upload without leaving a blob behind.
        document = InventoryStore.load(bootstrap=True)

        blob_name = BlobStore.save(file_obj, original_filename)
        download_url = BlobStore.url_for(blob_name)

        file_type = classify_file_type(original_filename)
        record = {
            'id': uuid.uuid4().hex,
            'name': original_filename,
            'type': file_type,
            'size': format_file_size(file_obj.size),
            'lastModified': format_record_date(date.today()),
            'description': description or DEFAULT_DESCRIPTION,
            'tags': parse_tags(tags) if tags else [],
            'category': category,
            'downloadUrl': download_url,
        }
        if file_type in PREVIEWABLE_TYPES:
            record['previewUrl'] = download_url

        target = find_category(document, category) if category != ROOT_CATEGORY else None
        if target is not None:
            target.setdefault('files', []).append(record)
        else:
            if category != ROOT_CATEGORY:
                logger.info(f"Unknown category '{category}', adding {original_filename} to root")
                record['category'] = ROOT_CATEGORY
            document.setdefault('rootFiles', []).append(record)

        InventoryStore.touch(document)
        try:
            InventoryStore.save(document)
        except Exception as e:
            logger.warning(
                f"Inventory save failed after storing blob {blob_name}; "
                f"the blob is now orphaned: {e}"
            )
            raise

        logger.info(f"Uploaded {original_filename} as file {record['id']} ({record['size']})")
        return record
