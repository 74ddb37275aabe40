"""
Session Manager
===============
Opaque session tokens with a sliding inactivity timeout, kept in Django's
cache. Each successful touch pushes the expiry forward again.
"""

import logging
import secrets
import time
from typing import Optional

from django.conf import settings
from django.core.cache import cache

from .users import public_user

logger = logging.getLogger(__name__)


CACHE_KEY_PREFIX = 'dataroom-session:'


def get_session_timeout() -> int:
    """Inactivity timeout in seconds, default 30 minutes."""
    return getattr(settings, 'DATAROOM_SESSION_TIMEOUT', 30 * 60)


class SessionManager:

    @staticmethod
    def _key(token: str) -> str:
        return f'{CACHE_KEY_PREFIX}{token}'

    @classmethod
    def start(cls, user: dict) -> str:
        """Open a session for a user and return its token."""
        token = secrets.token_urlsafe(32)
        cache.set(
            cls._key(token),
            {'user': public_user(user), 'last_seen': time.time()},
            timeout=get_session_timeout()
        )
        logger.info(f"Session started for {user.get('username')}")
        return token

    @classmethod
    def touch(cls, token: str) -> Optional[dict]:
        """
        Resolve a token to its user and extend the session.

        Returns:
            dict: The session user, or None for unknown/expired tokens
        """
        if not token:
            return None

        key = cls._key(token)
        session = cache.get(key)
        if session is None:
            return None

        timeout = get_session_timeout()
        now = time.time()
        if now - session['last_seen'] > timeout:
            cache.delete(key)
            logger.info(f"Session expired for {session['user'].get('username')}")
            return None

        session['last_seen'] = now
        cache.set(key, session, timeout=timeout)
        return session['user']

    @classmethod
    def end(cls, token: str) -> None:
        cache.delete(cls._key(token))
