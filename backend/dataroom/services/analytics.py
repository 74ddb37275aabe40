"""
Event Log / Analytics Aggregator
================================
EventLog records user actions as an append-only, capped event list.
AnalyticsAggregator turns a sequence of events into summary statistics
over a caller-chosen time window.

Aggregation Algorithm:
1. Window filter: keep events with now - timestamp < window ('all' keeps everything)
2. Totals: distinct users, downloads, previews, searches
3. Top files: per fileName downloads + previews from download/preview
   events, stable sort by total descending, top 10
4. User activity: per user counts and latest timestamp, sorted by latest
   activity descending
5. Active users: users whose latest activity is less than 24h before now
6. Recent activity: 50 newest events, newest first
"""

import logging
from datetime import timedelta
from typing import Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from contracts.models import AnalyticsEvent
from ..analytics.serializers import EVENT_PAYLOAD_SERIALIZERS
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


TIME_RANGES = {
    '1d': timedelta(days=1),
    '7d': timedelta(days=7),
    '30d': timedelta(days=30),
    'all': None,
}

DEFAULT_TIME_RANGE = '7d'

ACTIVE_USER_WINDOW = timedelta(hours=24)
TOP_FILES_LIMIT = 10
RECENT_ACTIVITY_LIMIT = 50


def get_max_events() -> int:
    """Retention cap for the event log, default 1000."""
    return getattr(settings, 'ANALYTICS_MAX_EVENTS', 1000)


def validate_payload(action: str, data) -> dict:
    """
    Check an event payload against the shape registered for its action.

    Returns:
        dict: The cleaned payload (unknown keys dropped)

    Raises:
        ValidationError: unknown action or payload not matching its shape
    """
    serializer_class = EVENT_PAYLOAD_SERIALIZERS.get(action)
    if serializer_class is None:
        raise ValidationError(f'Unknown analytics action: {action}')

    serializer = serializer_class(data=data if data is not None else {})
    if not serializer.is_valid():
        raise ValidationError(f'Invalid payload for {action}: {dict(serializer.errors)}')
    return dict(serializer.data)


class EventLog:
    """Append-only analytics event log capped at ANALYTICS_MAX_EVENTS."""

    @classmethod
    def record(cls, user_id: str, username: str, action: str, data=None,
               user_agent: str = '', url: str = '', session_id: str = '',
               timestamp=None) -> AnalyticsEvent:
        """
        Append an event, evicting the oldest events past the retention cap.

        Raises:
            ValidationError: unknown action or malformed payload
        """
        payload = validate_payload(action, data)

        with transaction.atomic():
            event = AnalyticsEvent.objects.create(
                timestamp=timestamp or timezone.now(),
                user_id=str(user_id),
                username=username,
                action=action,
                data=payload,
                user_agent=(user_agent or '')[:255],
                url=(url or '')[:2048],
                session_id=(session_id or '')[:64],
            )
            evicted = cls.enforce_retention()

        if evicted:
            logger.debug(f"Evicted {evicted} oldest analytics events")
        return event

    @staticmethod
    def enforce_retention() -> int:
        """
        Drop the oldest events (by insertion order) above the cap.

        Returns:
            int: Number of events deleted
        """
        max_events = get_max_events()
        total = AnalyticsEvent.objects.count()
        overflow = total - max_events
        if overflow <= 0:
            return 0

        oldest_ids = list(
            AnalyticsEvent.objects.order_by('id').values_list('id', flat=True)[:overflow]
        )
        deleted, _ = AnalyticsEvent.objects.filter(id__in=oldest_ids).delete()
        return deleted

    @staticmethod
    def events() -> List[AnalyticsEvent]:
        """All retained events, oldest first."""
        return list(AnalyticsEvent.objects.order_by('id'))

    @staticmethod
    def clear() -> int:
        deleted, _ = AnalyticsEvent.objects.all().delete()
        logger.info(f"Cleared {deleted} analytics events")
        return deleted


class AnalyticsAggregator:
    """Pure aggregation over a sequence of events."""

    @staticmethod
    def get_window(time_range: str) -> Optional[timedelta]:
        """
        Resolve a time range name to a duration (None means unbounded).

        Raises:
            ValidationError: unknown range name
        """
        if time_range not in TIME_RANGES:
            raise ValidationError(
                f"Invalid time range '{time_range}'. "
                f"Must be one of: {', '.join(TIME_RANGES)}"
            )
        return TIME_RANGES[time_range]

    @classmethod
    def filter_window(cls, events: Iterable, time_range: str, now=None) -> list:
        """Keep events strictly younger than the window at `now`."""
        window = cls.get_window(time_range)
        events = list(events)
        if window is None:
            return events
        now = now or timezone.now()
        return [event for event in events if now - event.timestamp < window]

    @classmethod
    def summarize(cls, events: Iterable, time_range: str = DEFAULT_TIME_RANGE, now=None) -> dict:
        """
        Aggregate events into an analytics summary.

        Args:
            events: AnalyticsEvent instances in log (insertion) order
            time_range: '1d', '7d', '30d' or 'all'
            now: Aggregation instant, defaults to the current time

        Returns:
            dict: totalUsers, activeUsers, totalDownloads, totalPreviews,
                totalSearches, topFiles, userActivity, recentActivity
        """
        now = now or timezone.now()
        filtered = cls.filter_window(events, time_range, now=now)

        downloads = [e for e in filtered if e.action == AnalyticsEvent.ACTION_FILE_DOWNLOAD]
        previews = [e for e in filtered if e.action == AnalyticsEvent.ACTION_FILE_PREVIEW]
        searches = [e for e in filtered if e.action == AnalyticsEvent.ACTION_SEARCH]

        user_activity = cls._user_activity(filtered)
        active_users = sum(
            1 for entry in user_activity
            if now - entry['lastActive'] < ACTIVE_USER_WINDOW
        )

        recent = sorted(filtered, key=lambda e: e.timestamp, reverse=True)

        return {
            'timeRange': time_range,
            'generatedAt': now,
            'totalUsers': len({e.user_id for e in filtered}),
            'activeUsers': active_users,
            'totalDownloads': len(downloads),
            'totalPreviews': len(previews),
            'totalSearches': len(searches),
            'topFiles': cls._top_files(downloads, previews),
            'userActivity': user_activity,
            'recentActivity': recent[:RECENT_ACTIVITY_LIMIT],
        }

    @staticmethod
    def _top_files(downloads: list, previews: list) -> List[dict]:
        """
        Rank files by downloads + previews.

        Files enter the stats map in the order downloads then previews are
        seen; the stable sort keeps first-seen-first among ties.
        """
        file_stats = {}

        for event in downloads:
            file_name = (event.data or {}).get('fileName')
            if file_name is None:
                continue
            stats = file_stats.setdefault(
                file_name, {'fileName': file_name, 'downloads': 0, 'previews': 0}
            )
            stats['downloads'] += 1

        for event in previews:
            file_name = (event.data or {}).get('fileName')
            if file_name is None:
                continue
            stats = file_stats.setdefault(
                file_name, {'fileName': file_name, 'downloads': 0, 'previews': 0}
            )
            stats['previews'] += 1

        ranked = sorted(
            file_stats.values(),
            key=lambda s: s['downloads'] + s['previews'],
            reverse=True
        )
        return ranked[:TOP_FILES_LIMIT]

    @staticmethod
    def _user_activity(events: list) -> List[dict]:
        """Per-user counts and latest activity, most recently active first."""
        user_stats = {}

        for event in events:
            stats = user_stats.get(event.user_id)
            if stats is None:
                stats = user_stats[event.user_id] = {
                    'userId': event.user_id,
                    'username': event.username,
                    'lastActive': event.timestamp,
                    'downloads': 0,
                    'previews': 0,
                    'searches': 0,
                }

            if event.timestamp > stats['lastActive']:
                stats['lastActive'] = event.timestamp

            if event.action == AnalyticsEvent.ACTION_FILE_DOWNLOAD:
                stats['downloads'] += 1
            elif event.action == AnalyticsEvent.ACTION_FILE_PREVIEW:
                stats['previews'] += 1
            elif event.action == AnalyticsEvent.ACTION_SEARCH:
                stats['searches'] += 1

        return sorted(user_stats.values(), key=lambda s: s['lastActive'], reverse=True)
