"""
Maintenance helpers for keeping the blob store and inventory in step.

A failed inventory save after a successful blob write leaves an orphaned
blob. These helpers find and remove such blobs.
"""

import logging
from typing import List

from ..exceptions import BlobIOFailure
from .blob_store import BlobStore
from .inventory import iter_records
from .inventory_store import InventoryStore

logger = logging.getLogger(__name__)


def referenced_blob_names(document: dict) -> set:
    """Blob names referenced by any record's downloadUrl."""
    names = set()
    for record in iter_records(document):
        name = BlobStore.name_from_url(record.get('downloadUrl'))
        if name:
            names.add(name)
    return names


def find_orphan_blobs() -> List[str]:
    """Blob files no FileRecord references."""
    document = InventoryStore.load(bootstrap=True)
    referenced = referenced_blob_names(document)
    return [name for name in BlobStore.list_names() if name not in referenced]


def find_missing_blobs() -> List[str]:
    """Record ids whose uploaded blob no longer exists."""
    document = InventoryStore.load(bootstrap=True)
    missing = []
    for record in iter_records(document):
        name = BlobStore.name_from_url(record.get('downloadUrl'))
        if name and not BlobStore.exists(name):
            missing.append(record.get('id'))
    return missing


def purge_orphans(dry_run: bool = False) -> dict:
    """
    Delete orphaned blobs.

    Args:
        dry_run: Only report what would be deleted

    Returns:
        dict: orphans found, deleted names and failures
    """
    orphans = find_orphan_blobs()
    deleted = []
    failed = []

    if not dry_run:
        for name in orphans:
            try:
                BlobStore.delete(name)
                deleted.append(name)
            except BlobIOFailure as e:
                logger.warning(f"Could not purge orphan blob {name}: {e}")
                failed.append(name)

    logger.info(
        f"Orphan purge: {len(orphans)} found, {len(deleted)} deleted, "
        f"{len(failed)} failed (dry run: {dry_run})"
    )
    return {
        'dry_run': dry_run,
        'orphans': orphans,
        'deleted': deleted,
        'failed': failed,
    }
