"""
Shared Data Contract Models
===========================
Models:
    - AnalyticsEvent: One recorded user action (append-only event log)

The file inventory itself is not a model: it lives in the inventory JSON
document (see dataroom.services.inventory_store).
"""

from django.db import models
from django.utils import timezone
import uuid


class AnalyticsEvent(models.Model):
    """
    One user action recorded for usage analytics.

    Events are append-only: the core never edits them and only deletes the
    oldest ones when the log grows past its retention cap. Insertion order
    (the auto primary key) defines "oldest".
    """

    ACTION_LOGIN = 'login'
    ACTION_LOGOUT = 'logout'
    ACTION_SEARCH = 'search'
    ACTION_FILE_DOWNLOAD = 'file_download'
    ACTION_FILE_PREVIEW = 'file_preview'
    ACTION_SESSION_START = 'session_start'
    ACTION_SESSION_END = 'session_end'
    ACTION_PAGE_VIEW = 'page_view'
    ACTION_PAGE_BLUR = 'page_blur'
    ACTION_PAGE_FOCUS = 'page_focus'
    ACTION_CATEGORY_FILTER = 'category_filter'
    ACTION_INTERACTION = 'interaction'

    ACTION_CHOICES = [
        (ACTION_LOGIN, 'Login'),
        (ACTION_LOGOUT, 'Logout'),
        (ACTION_SEARCH, 'Search'),
        (ACTION_FILE_DOWNLOAD, 'File download'),
        (ACTION_FILE_PREVIEW, 'File preview'),
        (ACTION_SESSION_START, 'Session start'),
        (ACTION_SESSION_END, 'Session end'),
        (ACTION_PAGE_VIEW, 'Page view'),
        (ACTION_PAGE_BLUR, 'Page blur'),
        (ACTION_PAGE_FOCUS, 'Page focus'),
        (ACTION_CATEGORY_FILTER, 'Category filter'),
        (ACTION_INTERACTION, 'Interaction'),
    ]

    event_id = models.UUIDField(
        default=uuid.uuid4,
        unique=True,
        editable=False,
        help_text="Public event identifier"
    )
    timestamp = models.DateTimeField(
        default=timezone.now,
        help_text="When the action happened"
    )
    user_id = models.CharField(
        max_length=64,
        help_text="Id of the acting user"
    )
    username = models.CharField(
        max_length=150,
        help_text="Username of the acting user"
    )
    action = models.CharField(
        max_length=32,
        choices=ACTION_CHOICES,
        help_text="Kind of action"
    )
    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Action-specific payload"
    )
    user_agent = models.CharField(
        max_length=255,
        blank=True,
        default='',
        help_text="Client user agent"
    )
    url = models.CharField(
        max_length=2048,
        blank=True,
        default='',
        help_text="Page the action happened on"
    )
    session_id = models.CharField(
        max_length=64,
        blank=True,
        default='',
        help_text="Client session identifier"
    )

    class Meta:
        verbose_name = "Analytics Event"
        verbose_name_plural = "Analytics Events"
        ordering = ['id']
        indexes = [
            models.Index(fields=['timestamp'], name='event_timestamp_idx'),
            models.Index(fields=['action'], name='event_action_idx'),
            models.Index(fields=['user_id'], name='event_user_idx'),
        ]

    def __str__(self):
        return f"{self.username} {self.action} @ {self.timestamp.isoformat()}"
