"""
DRF authentication backed by the dataroom Session Manager.

Clients send ``Authorization: Session <token>`` with the token returned by
the login endpoint. The account is re-read on every request, so admin changes to
an account apply to sessions that are already open.
"""

import logging

from rest_framework import authentication, exceptions

from .exceptions import DataroomError, NotFound
from .services.sessions import SessionManager
from .services.users import UserDirectory, public_user

logger = logging.getLogger(__name__)


class DataroomUser:
    """Request user built from a session's user record."""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, record: dict):
        self.record = record
        self.id = str(record.get('id', ''))
        self.username = record.get('username', '')
        self.role = record.get('role', 'investor')
        self.name = record.get('name', '')
        self.email = record.get('email', '')
        self.permissions = record.get('permissions') or {}

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    def __str__(self):
        return self.username


class SessionTokenAuthentication(authentication.BaseAuthentication):
    keyword = 'Session'

    def authenticate(self, request):
        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise exceptions.AuthenticationFailed('Invalid session header')

        token = header[1].decode()
        record = SessionManager.touch(token)
        if record is None:
            raise exceptions.AuthenticationFailed('Session expired or invalid')

        username = record.get('username')
        try:
            user = UserDirectory.get_user(username)
        except NotFound:
            user = None
        except DataroomError as e:
            logger.error(f"Could not load account {username} for session: {e}")
            raise exceptions.APIException('Failed to verify session')

        if user is None or not user.get('isActive', False):
            SessionManager.end(token)
            logger.info(f"Ended session for missing or inactive account {username}")
            raise exceptions.AuthenticationFailed('Session expired or invalid')

        return DataroomUser(public_user(user)), token

    def authenticate_header(self, request):
        return self.keyword
