"""
Dataroom app configuration.

Makes sure the public data directories exist on startup.
"""

import logging
from django.apps import AppConfig

logger = logging.getLogger(__name__)


class DataroomConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'dataroom'

    def ready(self):
        """
        Create the upload directory when serving requests.

        The inventory document itself is not created here: a missing
        inventory is bootstrapped by the first upload or by
        'python manage.py init_dataroom'.
        """
        import sys
        if 'runserver' in sys.argv or 'gunicorn' in sys.argv[0]:
            from .services.blob_store import get_upload_dir

            upload_dir = get_upload_dir()
            try:
                upload_dir.mkdir(parents=True, exist_ok=True)
                logger.info(f"Dataroom uploads directory: {upload_dir}")
            except OSError as e:
                logger.warning(
                    f"Failed to create uploads directory {upload_dir}: {e}. "
                    f"Run 'python manage.py init_dataroom' to initialize manually."
                )
