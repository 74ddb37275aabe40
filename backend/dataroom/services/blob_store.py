"""
File Blob Store
===============
Physical uploaded file bytes under the public uploads directory.

Blobs are addressed by a generated filename and exposed to clients under a
root-relative URL prefix (``/uploads/`` by default). Only URLs inside that
prefix belong to the blob store; anything else (external links, seeded
demo assets) is left alone.
"""

import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import List, Optional

from django.conf import settings

from ..exceptions import BlobIOFailure

logger = logging.getLogger(__name__)


CHUNK_SIZE = 65536  # 64KB for memory-efficient writes

UNSAFE_FILENAME_CHARS = re.compile(r'[^a-zA-Z0-9.-]')


def get_upload_dir() -> Path:
    """Get the blob directory from settings."""
    return Path(getattr(
        settings,
        'DATAROOM_UPLOAD_DIR',
        settings.BASE_DIR / 'public' / 'uploads'
    ))


def get_upload_url_prefix() -> str:
    """Root-relative URL prefix for blobs, always ending in a slash."""
    prefix = getattr(settings, 'DATAROOM_UPLOAD_URL_PREFIX', '/uploads/')
    return prefix if prefix.endswith('/') else f'{prefix}/'


def sanitize_filename(filename: str) -> str:
    """Replace every character other than letters, digits, '.' and '-' with '_'."""
    return UNSAFE_FILENAME_CHARS.sub('_', filename)


class BlobStore:
    """Read/write/delete blobs in the upload directory."""

    @staticmethod
    def generate_name(original_filename: str) -> str:
        """
        Build a unique blob filename.

        Format: {ingestTimestampMillis}_{random8hex}_{sanitizedName}. The
        random suffix keeps two uploads landing in the same millisecond
        apart.
        """
        timestamp = int(time.time() * 1000)
        suffix = secrets.token_hex(4)
        return f"{timestamp}_{suffix}_{sanitize_filename(original_filename)}"

    @staticmethod
    def url_for(blob_name: str) -> str:
        return f"{get_upload_url_prefix()}{blob_name}"

    @staticmethod
    def name_from_url(url: Optional[str]) -> Optional[str]:
        """
        Resolve a download URL to a blob name.

        Returns None for URLs outside the blob namespace or ones that try to
        escape the upload directory.
        """
        prefix = get_upload_url_prefix()
        if not url or not url.startswith(prefix):
            return None
        name = url[len(prefix):]
        if not name or '/' in name or '\\' in name or name in ('.', '..'):
            return None
        return name

    @staticmethod
    def path_for(blob_name: str) -> Path:
        return get_upload_dir() / blob_name

    @classmethod
    def save(cls, file_obj, original_filename: str) -> str:
        """
        Write an uploaded file to the blob directory.

        Args:
            file_obj: Django UploadedFile or any binary file-like object
            original_filename: Name used to derive the blob filename

        Returns:
            str: The generated blob name

        Raises:
            BlobIOFailure: the bytes could not be written
        """
        blob_name = cls.generate_name(original_filename)
        path = cls.path_for(blob_name)

        opened = False
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'xb') as fh:
                opened = True
                if hasattr(file_obj, 'chunks'):
                    for chunk in file_obj.chunks():
                        fh.write(chunk)
                else:
                    for chunk in iter(lambda: file_obj.read(CHUNK_SIZE), b''):
                        fh.write(chunk)
        except OSError as e:
            logger.error(f"Failed to write blob {blob_name}: {e}")
            # Only remove a partial blob this call created
            if opened and path.exists():
                try:
                    path.unlink()
                except OSError:
                    logger.warning(f"Could not remove partial blob {path}")
            raise BlobIOFailure(f'Failed to store file: {original_filename}')

        logger.info(f"Stored blob {blob_name}")
        return blob_name

    @classmethod
    def exists(cls, blob_name: str) -> bool:
        return cls.path_for(blob_name).is_file()

    @classmethod
    def delete(cls, blob_name: str) -> None:
        """
        Remove a blob.

        Raises:
            BlobIOFailure: the blob is missing or could not be removed
        """
        path = cls.path_for(blob_name)
        try:
            os.remove(path)
        except OSError as e:
            raise BlobIOFailure(f'Failed to delete blob {blob_name}: {e}')
        logger.info(f"Deleted blob {blob_name}")

    @classmethod
    def list_names(cls) -> List[str]:
        """All blob filenames currently in the upload directory."""
        upload_dir = get_upload_dir()
        if not upload_dir.is_dir():
            return []
        return sorted(
            entry.name for entry in upload_dir.iterdir()
            if entry.is_file() and not entry.name.startswith('.')
        )
