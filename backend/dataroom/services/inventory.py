"""
Inventory Service
=================
List / update / delete over inventory records, keeping the inventory
document and the blob store consistent.

Lookup order is always rootFiles first, then every category in document
order; the first record with a matching id wins.
"""

import logging
from typing import Iterator, List, Optional, Tuple

from ..exceptions import BlobIOFailure, NotFound, ValidationError
from .blob_store import BlobStore
from .inventory_store import InventoryStore

logger = logging.getLogger(__name__)


ROOT_CATEGORY = 'root'
ALL_CATEGORIES = 'all'

EDITABLE_FIELDS = ('name', 'description', 'tags')


def parse_tags(tags) -> List[str]:
    """
    Normalize tag input.

    A string is split on commas and each piece trimmed; blank pieces are
    dropped. Any other sequence is used as-is.
    """
    if isinstance(tags, str):
        return [tag.strip() for tag in tags.split(',') if tag.strip()]
    return list(tags)


def iter_file_lists(document: dict) -> Iterator[Tuple[Optional[dict], list]]:
    """
    Yield (category, files) pairs in lookup order.

    The root list is yielded first with category None.
    """
    yield None, document.setdefault('rootFiles', [])
    for category in document.setdefault('categories', []):
        yield category, category.setdefault('files', [])


def iter_records(document: dict) -> Iterator[dict]:
    """Every FileRecord in the document, root files first."""
    for _, files in iter_file_lists(document):
        yield from files


def locate(document: dict, file_id: str) -> Tuple[dict, list, int]:
    """
    Find a FileRecord by id.

    Returns:
        tuple: (record, owning list, index within that list)

    Raises:
        NotFound: no record has this id
    """
    for _, files in iter_file_lists(document):
        for index, record in enumerate(files):
            if record.get('id') == file_id:
                return record, files, index
    raise NotFound('File not found')


def find_category(document: dict, category_id: str) -> Optional[dict]:
    for category in document.get('categories', []):
        if category.get('id') == category_id:
            return category
    return None


def find_duplicate_ids(document: dict) -> List[str]:
    """Ids that appear on more than one record (a malformed document)."""
    seen = set()
    duplicates = []
    for record in iter_records(document):
        record_id = record.get('id')
        if record_id in seen and record_id not in duplicates:
            duplicates.append(record_id)
        seen.add(record_id)
    return duplicates


class InventoryService:
    """CRUD operations over the inventory document."""

    @staticmethod
    def list_files() -> dict:
        """Return the full inventory document unmodified."""
        return InventoryStore.load()

    @staticmethod
    def get_file(file_id: str) -> dict:
        document = InventoryStore.load()
        record, _, _ = locate(document, file_id)
        return record

    @staticmethod
    def update_file(file_id: str, name=None, description=None, tags=None) -> dict:
        """
        Update editable metadata on a FileRecord.

        Only truthy arguments are applied: an empty string for name or
        description means "no change". type, size, URLs and lastModified
        are never touched.

        Args:
            file_id: Id of the record to update
            name: New display name
            description: New description
            tags: Comma separated string or a sequence of tags

        Returns:
            dict: The updated record

        Raises:
            ValidationError: file_id missing
            NotFound: no record has this id
        """
        if not file_id:
            raise ValidationError('File ID required')

        document = InventoryStore.load()
        record, _, _ = locate(document, file_id)

        if name:
            record['name'] = name
        if description:
            record['description'] = description
        if tags:
            record['tags'] = parse_tags(tags)

        InventoryStore.touch(document)
        InventoryStore.save(document)

        logger.info(f"Updated metadata for file {file_id}")
        return record

    @staticmethod
    def delete_file(file_id: str) -> dict:
        """
        Remove a FileRecord and its blob.

        A blob that cannot be deleted (already missing, permissions) is
        logged and tolerated; the record is still removed and saved.

        Returns:
            dict: Deletion result with the removed record and whether the
                blob was physically deleted

        Raises:
            ValidationError: file_id missing
            NotFound: no record has this id (document left untouched)
        """
        if not file_id:
            raise ValidationError('File ID required')

        document = InventoryStore.load()
        record, files, index = locate(document, file_id)
        del files[index]

        blob_deleted = False
        blob_name = BlobStore.name_from_url(record.get('downloadUrl'))
        if blob_name:
            try:
                BlobStore.delete(blob_name)
                blob_deleted = True
            except BlobIOFailure as e:
                logger.warning(f"Blob for file {file_id} could not be deleted: {e}")

        InventoryStore.touch(document)
        InventoryStore.save(document)

        logger.info(f"Deleted file {file_id} (blob deleted: {blob_deleted})")
        return {'file': record, 'blob_deleted': blob_deleted}

    @staticmethod
    def browse(category: str = ALL_CATEGORIES, search: str = '') -> List[dict]:
        """
        Flattened, filtered view of the inventory for the portal page.

        Args:
            category: 'all', 'root' or a category id. Unknown ids match nothing.
            search: Case-insensitive substring matched against name,
                description and every tag

        Returns:
            list: Matching records, root files first then categories in order
        """
        document = InventoryStore.load()
        category = category or ALL_CATEGORIES

        if category == ALL_CATEGORIES:
            records = list(iter_records(document))
        elif category == ROOT_CATEGORY:
            records = list(document.get('rootFiles', []))
        else:
            found = find_category(document, category)
            records = list(found.get('files', [])) if found else []

        term = (search or '').strip().lower()
        if not term:
            return records

        def matches(record):
            return (
                term in (record.get('name') or '').lower()
                or term in (record.get('description') or '').lower()
                or any(term in (tag or '').lower() for tag in record.get('tags', []))
            )

        return [record for record in records if matches(record)]
