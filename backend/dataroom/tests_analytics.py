"""
Unit Tests for the Event Log and Analytics Aggregator
=====================================================
Tests cover:
- Time window filtering (strict boundary, 'all')
- Totals, top files ranking and tie order
- Per-user activity and active users
- Recent activity ordering and limit
- Payload validation per action
- FIFO retention cap
- /api/analytics/ endpoints (including CSV and JSON export)
"""

import csv
import io
from datetime import datetime, timedelta, timezone as dt_timezone

from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from contracts.models import AnalyticsEvent
from dataroom.authentication import DataroomUser
from dataroom.exceptions import ValidationError
from dataroom.services import AnalyticsAggregator, EventLog


NOW = datetime(2025, 6, 15, 12, 0, tzinfo=dt_timezone.utc)

ADMIN = DataroomUser({'id': 'u-admin', 'username': 'admin', 'role': 'admin'})
INVESTOR = DataroomUser({'id': 'u-inv', 'username': 'investor', 'role': 'investor'})


def make_event(action, age=timedelta(0), user_id='u1', username='alice', data=None):
    """Unsaved event `age` before NOW."""
    return AnalyticsEvent(
        timestamp=NOW - age,
        user_id=user_id,
        username=username,
        action=action,
        data=data or {},
    )


def file_event(action, file_name, age=timedelta(0), user_id='u1', username='alice'):
    return make_event(
        action,
        age=age,
        user_id=user_id,
        username=username,
        data={'fileId': file_name, 'fileName': file_name, 'fileType': 'pdf', 'category': 'root'},
    )


def download(file_name, **kwargs):
    return file_event(AnalyticsEvent.ACTION_FILE_DOWNLOAD, file_name, **kwargs)


def preview(file_name, **kwargs):
    return file_event(AnalyticsEvent.ACTION_FILE_PREVIEW, file_name, **kwargs)


def search(query, **kwargs):
    return make_event(
        AnalyticsEvent.ACTION_SEARCH,
        data={'query': query, 'resultsCount': 1},
        **kwargs
    )


def file_payload(file_name):
    return {'fileId': 'f-1', 'fileName': file_name, 'fileType': 'pdf', 'category': 'root'}


class AnalyticsWindowTests(TestCase):
    """Tests for time range filtering."""

    def setUp(self):
        self.events = [
            download('a.pdf', age=timedelta(hours=2)),
            download('b.pdf', age=timedelta(days=2)),
            download('c.pdf', age=timedelta(days=10)),
            download('d.pdf', age=timedelta(days=40)),
        ]

    def test_seven_day_window(self):
        summary = AnalyticsAggregator.summarize(self.events, '7d', now=NOW)

        self.assertEqual(summary['totalDownloads'], 2)

    def test_other_windows(self):
        expected = {'1d': 1, '7d': 2, '30d': 3, 'all': 4}
        for time_range, total in expected.items():
            with self.subTest(time_range=time_range):
                summary = AnalyticsAggregator.summarize(self.events, time_range, now=NOW)
                self.assertEqual(summary['totalDownloads'], total)

    def test_window_boundary_is_exclusive(self):
        """An event exactly one window old is outside the window."""
        events = [download('edge.pdf', age=timedelta(days=7))]

        summary = AnalyticsAggregator.summarize(events, '7d', now=NOW)

        self.assertEqual(summary['totalDownloads'], 0)

    def test_invalid_range_is_rejected(self):
        with self.assertRaises(ValidationError):
            AnalyticsAggregator.summarize(self.events, '90d', now=NOW)

    def test_default_range_is_seven_days(self):
        summary = AnalyticsAggregator.summarize(self.events, now=NOW)

        self.assertEqual(summary['timeRange'], '7d')
        self.assertEqual(summary['totalDownloads'], 2)

    def test_empty_log(self):
        summary = AnalyticsAggregator.summarize([], 'all', now=NOW)

        self.assertEqual(summary['totalUsers'], 0)
        self.assertEqual(summary['activeUsers'], 0)
        self.assertEqual(summary['topFiles'], [])
        self.assertEqual(summary['userActivity'], [])
        self.assertEqual(summary['recentActivity'], [])
        self.assertEqual(summary['generatedAt'], NOW)


class TopFilesTests(TestCase):
    """Tests for the top files ranking."""

    def test_ranks_by_downloads_plus_previews(self):
        events = [
            download('G.pdf'),
            download('F.pdf'),
            download('F.pdf'),
            preview('F.pdf'),
        ]

        top = AnalyticsAggregator.summarize(events, 'all', now=NOW)['topFiles']

        self.assertEqual(top, [
            {'fileName': 'F.pdf', 'downloads': 2, 'previews': 1},
            {'fileName': 'G.pdf', 'downloads': 1, 'previews': 0},
        ])

    def test_ties_keep_first_seen_order(self):
        """Download events are counted before previews, so downloads win ties."""
        events = [
            preview('previewed.pdf'),
            download('first.pdf'),
            download('second.pdf'),
        ]

        top = AnalyticsAggregator.summarize(events, 'all', now=NOW)['topFiles']

        self.assertEqual(
            [entry['fileName'] for entry in top],
            ['first.pdf', 'second.pdf', 'previewed.pdf']
        )

    def test_limited_to_ten(self):
        events = [download(f'file-{i}.pdf') for i in range(12)]

        top = AnalyticsAggregator.summarize(events, 'all', now=NOW)['topFiles']

        self.assertEqual(len(top), 10)
        self.assertEqual(top[0]['fileName'], 'file-0.pdf')

    def test_events_without_file_name_are_skipped(self):
        events = [
            make_event(AnalyticsEvent.ACTION_FILE_DOWNLOAD, data={'fileId': 'x'}),
            download('named.pdf'),
        ]

        summary = AnalyticsAggregator.summarize(events, 'all', now=NOW)

        self.assertEqual(summary['totalDownloads'], 2)
        self.assertEqual([entry['fileName'] for entry in summary['topFiles']], ['named.pdf'])

    def test_other_actions_do_not_count(self):
        events = [search('report'), make_event(AnalyticsEvent.ACTION_PAGE_VIEW, data={'page': '/'})]

        summary = AnalyticsAggregator.summarize(events, 'all', now=NOW)

        self.assertEqual(summary['topFiles'], [])
        self.assertEqual(summary['totalSearches'], 1)


class UserActivityTests(TestCase):
    """Tests for per-user statistics."""

    def setUp(self):
        self.events = [
            download('a.pdf', age=timedelta(days=3), user_id='u2', username='bob'),
            search('deck', age=timedelta(days=1), user_id='u2', username='bob'),
            download('a.pdf', age=timedelta(hours=5), user_id='u1', username='alice'),
            preview('b.pdf', age=timedelta(hours=2), user_id='u1', username='alice'),
            search('nda', age=timedelta(hours=1), user_id='u1', username='alice'),
        ]

    def test_counts_per_user(self):
        activity = AnalyticsAggregator.summarize(self.events, '7d', now=NOW)['userActivity']

        alice, bob = activity
        self.assertEqual(
            (alice['userId'], alice['downloads'], alice['previews'], alice['searches']),
            ('u1', 1, 1, 1)
        )
        self.assertEqual(
            (bob['userId'], bob['downloads'], bob['previews'], bob['searches']),
            ('u2', 1, 0, 1)
        )

    def test_sorted_by_last_active_descending(self):
        activity = AnalyticsAggregator.summarize(self.events, '7d', now=NOW)['userActivity']

        self.assertEqual([entry['username'] for entry in activity], ['alice', 'bob'])
        self.assertEqual(activity[0]['lastActive'], NOW - timedelta(hours=1))
        self.assertEqual(activity[1]['lastActive'], NOW - timedelta(days=1))

    def test_active_users_within_last_day(self):
        summary = AnalyticsAggregator.summarize(self.events, '7d', now=NOW)

        self.assertEqual(summary['totalUsers'], 2)
        # bob's latest event is exactly 24h old
        self.assertEqual(summary['activeUsers'], 1)

    def test_last_active_uses_latest_event_regardless_of_order(self):
        events = [
            search('late', age=timedelta(hours=1)),
            search('early', age=timedelta(hours=9)),
        ]

        activity = AnalyticsAggregator.summarize(events, 'all', now=NOW)['userActivity']

        self.assertEqual(activity[0]['lastActive'], NOW - timedelta(hours=1))


class RecentActivityTests(TestCase):
    """Tests for the recent activity list."""

    def test_newest_first(self):
        events = [
            search('old', age=timedelta(hours=3)),
            search('new', age=timedelta(hours=1)),
            search('mid', age=timedelta(hours=2)),
        ]

        recent = AnalyticsAggregator.summarize(events, 'all', now=NOW)['recentActivity']

        self.assertEqual([e.data['query'] for e in recent], ['new', 'mid', 'old'])

    def test_limited_to_fifty(self):
        events = [search(f'q{i}', age=timedelta(minutes=60 - i)) for i in range(60)]

        recent = AnalyticsAggregator.summarize(events, 'all', now=NOW)['recentActivity']

        self.assertEqual(len(recent), 50)
        self.assertEqual(recent[0].data['query'], 'q59')
        self.assertEqual(recent[-1].data['query'], 'q10')


class EventLogTests(TestCase):
    """Tests for recording and retention."""

    def test_record_stores_event(self):
        event = EventLog.record(
            user_id='u1',
            username='alice',
            action=AnalyticsEvent.ACTION_FILE_DOWNLOAD,
            data=file_payload('deck.pdf'),
            user_agent='Mozilla/5.0',
            url='/dataroom',
            session_id='s-1',
        )

        stored = AnalyticsEvent.objects.get(pk=event.pk)
        self.assertEqual(stored.data['fileName'], 'deck.pdf')
        self.assertEqual(stored.user_agent, 'Mozilla/5.0')
        self.assertEqual(stored.session_id, 's-1')
        self.assertIsNotNone(stored.event_id)

    def test_record_drops_unknown_payload_keys(self):
        event = EventLog.record(
            user_id='u1',
            username='alice',
            action=AnalyticsEvent.ACTION_CATEGORY_FILTER,
            data={'category': 'legal', 'extra': 'ignored'},
        )

        self.assertEqual(event.data, {'category': 'legal'})

    def test_record_uses_given_timestamp(self):
        event = EventLog.record(
            user_id='u1',
            username='alice',
            action=AnalyticsEvent.ACTION_PAGE_VIEW,
            data={'page': '/'},
            timestamp=NOW,
        )

        self.assertEqual(AnalyticsEvent.objects.get(pk=event.pk).timestamp, NOW)

    def test_unknown_action_is_rejected(self):
        with self.assertRaises(ValidationError):
            EventLog.record(user_id='u1', username='alice', action='teleport', data={})

        self.assertEqual(AnalyticsEvent.objects.count(), 0)

    def test_malformed_payload_is_rejected(self):
        with self.assertRaises(ValidationError):
            EventLog.record(
                user_id='u1',
                username='alice',
                action=AnalyticsEvent.ACTION_FILE_PREVIEW,
                data={'fileId': 'f-1'},
            )

        self.assertEqual(AnalyticsEvent.objects.count(), 0)

    @override_settings(ANALYTICS_MAX_EVENTS=5)
    def test_oldest_events_are_evicted_past_cap(self):
        for i in range(7):
            EventLog.record(
                user_id='u1',
                username='alice',
                action=AnalyticsEvent.ACTION_PAGE_VIEW,
                data={'page': f'/page/{i}'},
            )

        pages = [event.data['page'] for event in EventLog.events()]
        self.assertEqual(pages, [f'/page/{i}' for i in range(2, 7)])

    def test_default_cap_is_one_thousand(self):
        AnalyticsEvent.objects.bulk_create([
            AnalyticsEvent(
                timestamp=NOW,
                user_id='u1',
                username='alice',
                action=AnalyticsEvent.ACTION_PAGE_VIEW,
                data={'page': f'/page/{i}'},
            )
            for i in range(1000)
        ])
        oldest_id = AnalyticsEvent.objects.order_by('id').first().id

        newest = EventLog.record(
            user_id='u1',
            username='alice',
            action=AnalyticsEvent.ACTION_PAGE_VIEW,
            data={'page': '/latest'},
        )

        self.assertEqual(AnalyticsEvent.objects.count(), 1000)
        self.assertFalse(AnalyticsEvent.objects.filter(id=oldest_id).exists())
        self.assertTrue(AnalyticsEvent.objects.filter(id=newest.id).exists())

    def test_events_are_oldest_first(self):
        for page in ('/one', '/two', '/three'):
            EventLog.record(
                user_id='u1',
                username='alice',
                action=AnalyticsEvent.ACTION_PAGE_VIEW,
                data={'page': page},
            )

        self.assertEqual([e.data['page'] for e in EventLog.events()], ['/one', '/two', '/three'])

    def test_clear(self):
        EventLog.record(user_id='u1', username='alice', action='search',
                        data={'query': 'x', 'resultsCount': 0})

        self.assertEqual(EventLog.clear(), 1)
        self.assertEqual(AnalyticsEvent.objects.count(), 0)


class AnalyticsAPITests(APITestCase):
    """Tests for /api/analytics/events/ and /api/analytics/summary/."""

    def record(self, action, data, user_id='u1', username='alice', age=timedelta(0)):
        return EventLog.record(
            user_id=user_id,
            username=username,
            action=action,
            data=data,
            timestamp=datetime.now(dt_timezone.utc) - age,
        )

    # ===================
    # Event Tracking
    # ===================

    def test_track_event(self):
        """The acting user comes from the session, not the request body."""
        self.client.force_authenticate(user=INVESTOR)

        response = self.client.post(
            '/api/analytics/events/',
            {
                'action': 'file_preview',
                'data': file_payload('deck.pdf'),
                'url': '/dataroom',
                'sessionId': 'session-1',
            },
            format='json',
            HTTP_USER_AGENT='TestAgent/1.0'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['userId'], 'u-inv')
        self.assertEqual(response.data['username'], 'investor')
        self.assertEqual(response.data['userAgent'], 'TestAgent/1.0')
        self.assertEqual(response.data['sessionId'], 'session-1')
        self.assertEqual(AnalyticsEvent.objects.count(), 1)

    def test_track_event_with_bad_payload(self):
        self.client.force_authenticate(user=INVESTOR)

        response = self.client.post(
            '/api/analytics/events/',
            {'action': 'search', 'data': {'query': 'deck', 'resultsCount': -1}},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(AnalyticsEvent.objects.count(), 0)

    def test_track_unknown_action(self):
        self.client.force_authenticate(user=INVESTOR)

        response = self.client.post(
            '/api/analytics/events/',
            {'action': 'teleport', 'data': {}},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Invalid event')

    def test_track_requires_login(self):
        response = self.client.post(
            '/api/analytics/events/',
            {'action': 'page_view', 'data': {'page': '/'}},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    # ===================
    # Event Listing
    # ===================

    def test_list_events_newest_first(self):
        self.record('page_view', {'page': '/old'}, age=timedelta(hours=2))
        self.record('page_view', {'page': '/new'})
        self.client.force_authenticate(user=ADMIN)

        response = self.client.get('/api/analytics/events/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(
            [event['data']['page'] for event in response.data['results']],
            ['/new', '/old']
        )

    def test_filter_events(self):
        self.record('file_download', file_payload('a.pdf'), user_id='u1', username='alice')
        self.record('file_download', file_payload('b.pdf'), user_id='u2', username='bob')
        self.record('search', {'query': 'a', 'resultsCount': 1}, user_id='u1', username='alice')
        self.client.force_authenticate(user=ADMIN)

        by_action = self.client.get('/api/analytics/events/', {'action': 'file_download'})
        by_user = self.client.get('/api/analytics/events/', {'username': 'ALI'})

        self.assertEqual(by_action.data['count'], 2)
        self.assertEqual(by_user.data['count'], 2)

    def test_list_events_requires_admin(self):
        self.client.force_authenticate(user=INVESTOR)

        response = self.client.get('/api/analytics/events/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    # ===================
    # Summary
    # ===================

    def test_summary(self):
        self.record('file_download', file_payload('F.pdf'), age=timedelta(hours=2))
        self.record('file_download', file_payload('F.pdf'), age=timedelta(days=2))
        self.record('file_preview', file_payload('F.pdf'), age=timedelta(hours=1))
        self.record('file_download', file_payload('G.pdf'), age=timedelta(days=10))
        self.client.force_authenticate(user=ADMIN)

        response = self.client.get('/api/analytics/summary/', {'range': '7d'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['timeRange'], '7d')
        self.assertEqual(response.data['totalDownloads'], 2)
        self.assertEqual(response.data['totalPreviews'], 1)
        self.assertEqual(response.data['totalUsers'], 1)
        self.assertEqual(response.data['activeUsers'], 1)
        self.assertEqual(response.data['topFiles'][0]['fileName'], 'F.pdf')
        self.assertEqual(len(response.data['recentActivity']), 3)

    def test_summary_defaults_to_seven_days(self):
        self.client.force_authenticate(user=ADMIN)

        response = self.client.get('/api/analytics/summary/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['timeRange'], '7d')

    def test_summary_invalid_range(self):
        self.client.force_authenticate(user=ADMIN)

        response = self.client.get('/api/analytics/summary/', {'range': 'forever'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_summary_requires_admin(self):
        self.client.force_authenticate(user=INVESTOR)

        response = self.client.get('/api/analytics/summary/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    # ===================
    # Export
    # ===================

    def test_export_csv(self):
        self.record('file_download', file_payload('F.pdf'), age=timedelta(hours=2))
        self.record('file_preview', file_payload('F.pdf'), age=timedelta(hours=1))
        self.record('search', {'query': 'deck', 'resultsCount': 2}, user_id='u2', username='bob')
        self.client.force_authenticate(user=ADMIN)

        response = self.client.get('/api/analytics/export/csv/', {'range': '7d'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv; charset=utf-8')
        self.assertRegex(
            response['Content-Disposition'],
            r'^attachment; filename="dataroom-analytics-7d-\d{4}-\d{2}-\d{2}\.csv"$'
        )

        rows = list(csv.reader(io.StringIO(response.content.decode())))
        self.assertEqual(rows[0], ['User Activity Report'])
        self.assertEqual(rows[2], ['Time Range:', '7d'])
        self.assertEqual(rows[4], ['Username', 'Last Active', 'Downloads', 'Previews', 'Searches'])
        user_rows = {row[0]: row for row in rows[5:7]}
        self.assertEqual(user_rows['alice'][2:], ['1', '1', '0'])
        self.assertEqual(user_rows['bob'][2:], ['0', '0', '1'])
        self.assertEqual(rows[7], [])
        self.assertEqual(rows[8], ['File Statistics'])
        self.assertEqual(rows[9], ['File Name', 'Downloads', 'Previews', 'Total'])
        self.assertEqual(rows[10], ['F.pdf', '1', '1', '2'])
        self.assertEqual(len(rows), 11)

    def test_export_csv_outside_window_has_only_headers(self):
        self.record('file_download', file_payload('G.pdf'), age=timedelta(days=10))
        self.client.force_authenticate(user=ADMIN)

        response = self.client.get('/api/analytics/export/csv/', {'range': '1d'})

        rows = list(csv.reader(io.StringIO(response.content.decode())))
        self.assertEqual(rows[4][0], 'Username')
        self.assertEqual(rows[6], ['File Statistics'])
        self.assertEqual(len(rows), 8)

    def test_export_json(self):
        self.record('file_download', file_payload('F.pdf'))
        self.client.force_authenticate(user=ADMIN)

        response = self.client.get('/api/analytics/export/json/', {'range': 'all'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('dataroom-analytics-all-', response['Content-Disposition'])
        self.assertEqual(response.data['timeRange'], 'all')
        self.assertEqual(response.data['summary']['totalDownloads'], 1)
        self.assertEqual(response.data['summary']['totalUsers'], 1)
        self.assertEqual(response.data['topFiles'][0]['fileName'], 'F.pdf')
        self.assertEqual(len(response.data['recentActivity']), 1)

    def test_export_unknown_format(self):
        self.client.force_authenticate(user=ADMIN)

        response = self.client.get('/api/analytics/export/xml/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Invalid export format', response.data['error'])

    def test_export_invalid_range(self):
        self.client.force_authenticate(user=ADMIN)

        response = self.client.get('/api/analytics/export/csv/', {'range': 'forever'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)

    def test_export_requires_admin(self):
        self.client.force_authenticate(user=INVESTOR)

        response = self.client.get('/api/analytics/export/csv/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
