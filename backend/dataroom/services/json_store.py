"""
Whole-document JSON persistence shared by the inventory and user stores.

Documents are always read and written in full. Writes go to a temporary
file in the target directory which is then renamed over the target, so a
crash mid-write leaves the previous document intact.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from ..exceptions import StoreCorrupt

logger = logging.getLogger(__name__)


def read_json_document(path, default=None):
    """
    Read and parse a JSON document.

    Args:
        path: Location of the document
        default: Returned (as-is) when the file does not exist. When None,
            a missing file is a StoreCorrupt failure.

    Returns:
        The parsed JSON value
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as fh:
            return json.load(fh)
    except FileNotFoundError:
        if default is not None:
            logger.info(f"{path} does not exist yet, starting from an empty document")
            return default
        raise StoreCorrupt(f'Document not found: {path.name}')
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Failed to parse {path}: {e}")
        raise StoreCorrupt(f'Document is not valid JSON: {path.name}')


def write_json_document(path, data) -> None:
    """
    Atomically replace the document at path with data.

    Raises:
        OSError: if the temporary file cannot be written or renamed
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f'.{path.name}.',
        suffix='.tmp'
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        # Leave the previous document untouched
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
