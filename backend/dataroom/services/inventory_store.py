"""
Inventory Store
===============
Owns the on-disk inventory document describing categories, root-level
files and per-file metadata.

On disk the document is wrapped under a top-level ``dataroom`` key:

    {"dataroom": {"lastUpdated": "...", "rootFiles": [...], "categories": [...]}}

``load`` and ``save`` work on the inner document. There is no partial
update: every mutation is load -> mutate in memory -> save. No locking is
done, so concurrent writers race and the last save wins.
"""

import logging
from datetime import timedelta, timezone as dt_timezone
from pathlib import Path

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..exceptions import StoreCorrupt
from .json_store import read_json_document, write_json_document

logger = logging.getLogger(__name__)


def get_inventory_path() -> Path:
    """Get the inventory document location from settings."""
    return Path(getattr(
        settings,
        'DATAROOM_INVENTORY_PATH',
        settings.BASE_DIR / 'public' / 'inventory.json'
    ))


def empty_document() -> dict:
    """A brand new inventory with no files and no categories."""
    return {
        'lastUpdated': '',
        'rootFiles': [],
        'categories': [],
    }


class InventoryStore:
    """Whole-document load/save over the inventory JSON file."""

    ROOT_KEY = 'dataroom'

    @classmethod
    def load(cls, bootstrap: bool = False) -> dict:
        """
        Load the inventory document.

        Args:
            bootstrap: Treat a missing file as an empty inventory instead of
                failing. A malformed existing file always fails.

        Returns:
            dict: The inventory document (lastUpdated, rootFiles, categories)

        Raises:
            StoreCorrupt: missing (without bootstrap), unparseable or
                structurally invalid document
        """
        path = get_inventory_path()
        default = {cls.ROOT_KEY: empty_document()} if bootstrap else None
        raw = read_json_document(path, default=default)

        if not isinstance(raw, dict) or not isinstance(raw.get(cls.ROOT_KEY), dict):
            raise StoreCorrupt(f"Inventory document has no '{cls.ROOT_KEY}' object")

        document = raw[cls.ROOT_KEY]
        cls.validate(document)
        return document

    @classmethod
    def save(cls, document: dict) -> None:
        """
        Persist the whole inventory document atomically.

        The document is written as-is; callers stamp lastUpdated through
        ``touch`` before saving a mutation.
        """
        cls.validate(document)
        path = get_inventory_path()
        write_json_document(path, {cls.ROOT_KEY: document})
        logger.debug(f"Saved inventory to {path}")

    @staticmethod
    def validate(document) -> None:
        """Check the structural shape every operation relies on."""
        if not isinstance(document, dict):
            raise StoreCorrupt('Inventory document must be an object')
        if not isinstance(document.get('rootFiles', []), list):
            raise StoreCorrupt("Inventory 'rootFiles' must be a list")
        categories = document.get('categories', [])
        if not isinstance(categories, list):
            raise StoreCorrupt("Inventory 'categories' must be a list")
        for category in categories:
            if not isinstance(category, dict) or not isinstance(category.get('files', []), list):
                raise StoreCorrupt('Inventory category is malformed')

    @staticmethod
    def touch(document: dict) -> str:
        """
        Stamp lastUpdated with the current time.

        The stamp always moves forward: if the clock has not advanced past
        the previous value it is bumped by one microsecond.
        """
        now = timezone.now()
        previous = parse_datetime(document.get('lastUpdated') or '')
        if previous is not None:
            if timezone.is_naive(previous):
                previous = timezone.make_aware(previous, dt_timezone.utc)
            if now <= previous:
                now = previous + timedelta(microseconds=1)

        stamp = now.isoformat(timespec='microseconds')
        document['lastUpdated'] = stamp
        return stamp
