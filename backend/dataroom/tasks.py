"""
Celery tasks for dataroom maintenance.

Keeps the blob store free of uploads that no inventory record references
(left behind when an inventory save fails after the blob was written).
"""

import logging
from celery import shared_task
from .services.maintenance import find_missing_blobs, purge_orphans

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name='dataroom.tasks.purge_orphan_blobs'
)
def purge_orphan_blobs(self, dry_run: bool = False) -> dict:
    """
    Delete blobs that no FileRecord references.

    Args:
        dry_run: Only report the orphans

    Returns:
        Dictionary with purge results
    """
    try:
        result = purge_orphans(dry_run=dry_run)
        return {'success': True, **result}
    except Exception as e:
        logger.error(f"Orphan purge failed: {str(e)}", exc_info=True)
        return {
            'success': False,
            'error': str(e)
        }


@shared_task(
    bind=True,
    name='dataroom.tasks.check_inventory_blobs'
)
def check_inventory_blobs(self) -> dict:
    """
    Report records whose uploaded blob is missing from disk.

    Returns:
        Dictionary with the ids of records pointing at missing blobs
    """
    try:
        missing = find_missing_blobs()
        if missing:
            logger.warning(f"{len(missing)} inventory records point at missing blobs: {missing}")
        return {
            'success': True,
            'missing': missing
        }
    except Exception as e:
        logger.error(f"Inventory blob check failed: {str(e)}", exc_info=True)
        return {
            'success': False,
            'error': str(e)
        }
