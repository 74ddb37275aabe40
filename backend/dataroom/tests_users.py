"""
Unit Tests for Users, Sessions and Authentication
=================================================
Tests cover:
- UserDirectory CRUD and credential checks
- Sliding session expiry
- Login / logout / current user endpoints (and their analytics events)
- Open sessions following account deactivation, deletion and role changes
- Admin user management endpoint
"""

import json
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from contracts.models import AnalyticsEvent
from dataroom.authentication import DataroomUser
from dataroom.exceptions import NotFound, StoreCorrupt, ValidationError
from dataroom.services import SessionManager, UserDirectory


# Create a temporary public directory for tests
TEST_PUBLIC_DIR = Path(tempfile.mkdtemp())
TEST_USERS_PATH = TEST_PUBLIC_DIR / 'users.json'


def seed_users():
    TEST_USERS_PATH.write_text(json.dumps({
        'users': [
            {
                'id': 'u-admin',
                'username': 'admin',
                'password': 'admin-pass',
                'role': 'admin',
                'name': 'Admin',
                'email': 'admin@example.com',
                'isActive': True,
            },
            {
                'id': 'u-inv',
                'username': 'investor',
                'password': 'investor-pass',
                'role': 'investor',
                'name': 'Investor',
                'email': 'investor@example.com',
                'isActive': True,
                'permissions': {'canDownload': True, 'canPreview': True, 'allowedCategories': []},
            },
            {
                'id': 'u-old',
                'username': 'former',
                'password': 'former-pass',
                'role': 'investor',
                'name': 'Former',
                'email': '',
                'isActive': False,
            },
        ]
    }), encoding='utf-8')


@override_settings(DATAROOM_USERS_PATH=TEST_USERS_PATH)
class UserDirectoryTests(TestCase):
    """Tests for account storage and credential checks."""

    def setUp(self):
        TEST_PUBLIC_DIR.mkdir(parents=True, exist_ok=True)
        seed_users()

    def tearDown(self):
        if TEST_USERS_PATH.exists():
            TEST_USERS_PATH.unlink()

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_PUBLIC_DIR, ignore_errors=True)

    def test_list_users(self):
        usernames = [user['username'] for user in UserDirectory.list_users()]

        self.assertEqual(usernames, ['admin', 'investor', 'former'])

    def test_missing_document_is_empty(self):
        TEST_USERS_PATH.unlink()

        self.assertEqual(UserDirectory.list_users(), [])

    def test_malformed_document_fails(self):
        TEST_USERS_PATH.write_text('{"users": {}}', encoding='utf-8')

        with self.assertRaises(StoreCorrupt):
            UserDirectory.list_users()

    def test_create_user(self):
        user = UserDirectory.create_user('carol', password='secret', name='Carol')

        self.assertEqual(user['role'], 'investor')
        self.assertTrue(user['isActive'])
        self.assertEqual(UserDirectory.get_user('carol')['name'], 'Carol')

    def test_create_user_generates_password(self):
        user = UserDirectory.create_user('dave')

        self.assertEqual(len(user['password']), 12)

    def test_create_duplicate_username_fails(self):
        with self.assertRaises(ValidationError):
            UserDirectory.create_user('admin', password='x')

    def test_create_with_invalid_role_fails(self):
        with self.assertRaises(ValidationError):
            UserDirectory.create_user('eve', role='owner')

    def test_update_user(self):
        user = UserDirectory.update_user('investor', name='Renamed', isActive=False)

        self.assertEqual(user['name'], 'Renamed')
        self.assertFalse(UserDirectory.get_user('investor')['isActive'])

    def test_update_with_empty_password_keeps_password(self):
        UserDirectory.update_user('investor', password='')

        self.assertEqual(UserDirectory.get_user('investor')['password'], 'investor-pass')

    def test_update_unknown_user_fails(self):
        with self.assertRaises(NotFound):
            UserDirectory.update_user('nobody', name='x')

    def test_delete_user(self):
        UserDirectory.delete_user('investor')

        with self.assertRaises(NotFound):
            UserDirectory.get_user('investor')

    def test_authenticate(self):
        user = UserDirectory.authenticate('admin', 'admin-pass')

        self.assertEqual(user['id'], 'u-admin')

    def test_authenticate_wrong_password(self):
        self.assertIsNone(UserDirectory.authenticate('admin', 'wrong'))

    def test_authenticate_inactive_user(self):
        self.assertIsNone(UserDirectory.authenticate('former', 'former-pass'))

    def test_authenticate_unknown_user(self):
        self.assertIsNone(UserDirectory.authenticate('nobody', 'x'))


@override_settings(DATAROOM_SESSION_TIMEOUT=1800)
class SessionManagerTests(TestCase):
    """Tests for session tokens and sliding expiry."""

    USER = {'id': 'u1', 'username': 'alice', 'password': 'secret', 'role': 'investor'}

    def setUp(self):
        cache.clear()

    def test_session_user_has_no_password(self):
        token = SessionManager.start(self.USER)

        user = SessionManager.touch(token)

        self.assertEqual(user['username'], 'alice')
        self.assertNotIn('password', user)

    def test_unknown_token(self):
        self.assertIsNone(SessionManager.touch('nope'))
        self.assertIsNone(SessionManager.touch(''))

    def test_end_session(self):
        token = SessionManager.start(self.USER)

        SessionManager.end(token)

        self.assertIsNone(SessionManager.touch(token))

    def test_session_expires_after_inactivity(self):
        with patch('dataroom.services.sessions.time.time') as mock_time:
            mock_time.return_value = 1_000_000
            token = SessionManager.start(self.USER)

            mock_time.return_value = 1_000_000 + 1801
            self.assertIsNone(SessionManager.touch(token))

    def test_activity_extends_session(self):
        """Each touch restarts the inactivity timer."""
        with patch('dataroom.services.sessions.time.time') as mock_time:
            mock_time.return_value = 1_000_000
            token = SessionManager.start(self.USER)

            mock_time.return_value = 1_000_000 + 1200
            self.assertIsNotNone(SessionManager.touch(token))

            mock_time.return_value = 1_000_000 + 2400
            self.assertIsNotNone(SessionManager.touch(token))

            mock_time.return_value = 1_000_000 + 2400 + 1801
            self.assertIsNone(SessionManager.touch(token))


@override_settings(DATAROOM_USERS_PATH=TEST_USERS_PATH)
class AuthAPITests(APITestCase):
    """Tests for /api/auth/ endpoints."""

    def setUp(self):
        TEST_PUBLIC_DIR.mkdir(parents=True, exist_ok=True)
        seed_users()
        cache.clear()

    def tearDown(self):
        if TEST_USERS_PATH.exists():
            TEST_USERS_PATH.unlink()

    def login(self, username='investor', password='investor-pass'):
        return self.client.post(
            '/api/auth/login/',
            {'username': username, 'password': password},
            format='json'
        )

    def test_login_returns_token_and_user(self):
        response = self.login()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['token'])
        self.assertEqual(response.data['user']['username'], 'investor')
        self.assertNotIn('password', response.data['user'])

    def test_login_records_event(self):
        self.login()

        event = AnalyticsEvent.objects.get()
        self.assertEqual(event.action, AnalyticsEvent.ACTION_LOGIN)
        self.assertEqual(event.user_id, 'u-inv')
        self.assertEqual(event.data, {'userId': 'u-inv', 'username': 'investor'})

    def test_login_with_bad_credentials(self):
        response = self.login(password='wrong')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(AnalyticsEvent.objects.count(), 0)

    def test_login_inactive_user(self):
        response = self.login('former', 'former-pass')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_login_requires_both_fields(self):
        response = self.client.post('/api/auth/login/', {'username': 'admin'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_me_with_session_token(self):
        token = self.login().data['token']
        self.client.credentials(HTTP_AUTHORIZATION=f'Session {token}')

        response = self.client.get('/api/auth/me/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['id'], 'u-inv')

    def test_invalid_token_is_rejected(self):
        self.client.credentials(HTTP_AUTHORIZATION='Session not-a-token')

        response = self.client.get('/api/auth/me/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_ends_session(self):
        token = self.login().data['token']
        self.client.credentials(HTTP_AUTHORIZATION=f'Session {token}')

        response = self.client.post('/api/auth/logout/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            list(AnalyticsEvent.objects.values_list('action', flat=True)),
            ['login', 'logout']
        )
        self.assertEqual(self.client.get('/api/auth/me/').status_code, status.HTTP_401_UNAUTHORIZED)

    # ===================
    # Account Changes During a Session
    # ===================

    def test_deactivated_user_session_is_rejected(self):
        token = self.login().data['token']
        self.client.credentials(HTTP_AUTHORIZATION=f'Session {token}')

        UserDirectory.update_user('investor', isActive=False)

        response = self.client.get('/api/auth/me/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertIsNone(SessionManager.touch(token))

    def test_deleted_user_session_is_rejected(self):
        token = self.login().data['token']
        self.client.credentials(HTTP_AUTHORIZATION=f'Session {token}')

        UserDirectory.delete_user('investor')

        response = self.client.get('/api/auth/me/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_demoted_admin_loses_admin_access(self):
        """A role change should apply to a session opened before it."""
        token = self.login('admin', 'admin-pass').data['token']
        self.client.credentials(HTTP_AUTHORIZATION=f'Session {token}')
        self.assertEqual(self.client.get('/api/users/').status_code, status.HTTP_200_OK)

        UserDirectory.update_user('admin', role='investor')

        response = self.client.get('/api/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.data['user']['role'], 'investor')


@override_settings(DATAROOM_USERS_PATH=TEST_USERS_PATH)
class UserAPITests(APITestCase):
    """Tests for /api/users/."""

    def setUp(self):
        TEST_PUBLIC_DIR.mkdir(parents=True, exist_ok=True)
        seed_users()
        self.client.force_authenticate(
            user=DataroomUser({'id': 'u-admin', 'username': 'admin', 'role': 'admin'})
        )

    def tearDown(self):
        if TEST_USERS_PATH.exists():
            TEST_USERS_PATH.unlink()

    def test_list_users(self):
        response = self.client.get('/api/users/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['users']), 3)

    def test_create_user(self):
        response = self.client.post(
            '/api/users/',
            {'username': 'carol', 'name': 'Carol', 'email': 'carol@example.com'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['user']['role'], 'investor')
        self.assertEqual(len(response.data['user']['password']), 12)

    def test_create_duplicate_user(self):
        response = self.client.post('/api/users/', {'username': 'investor'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Username already exists')

    def test_update_user(self):
        response = self.client.put('/api/users/investor/', {'role': 'admin'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(UserDirectory.get_user('investor')['role'], 'admin')

    def test_update_invalid_role(self):
        response = self.client.put('/api/users/investor/', {'role': 'owner'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_unknown_user(self):
        response = self.client.put('/api/users/nobody/', {'name': 'x'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_user(self):
        response = self.client.delete('/api/users/investor/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(UserDirectory.list_users()), 2)

    def test_cannot_delete_self(self):
        response = self.client.delete('/api/users/admin/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(len(UserDirectory.list_users()), 3)

    def test_investor_cannot_manage_users(self):
        self.client.force_authenticate(
            user=DataroomUser({'id': 'u-inv', 'username': 'investor', 'role': 'investor'})
        )

        response = self.client.get('/api/users/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
