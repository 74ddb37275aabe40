"""
Dataroom Django project.
Loads Celery app for background maintenance tasks.
"""

from .celery import app as celery_app

__all__ = ('celery_app',)
