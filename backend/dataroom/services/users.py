"""
User Directory
==============
Dataroom accounts stored in the users JSON document ({"users": [...]}).

Passwords are kept in plain text, matching the existing users.json
format; hardening authentication is out of scope for this service.
"""

import logging
import secrets
import string
import uuid
from pathlib import Path
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from ..exceptions import NotFound, StoreCorrupt, ValidationError
from .json_store import read_json_document, write_json_document

logger = logging.getLogger(__name__)


ROLES = ('admin', 'investor')

PASSWORD_ALPHABET = string.ascii_letters + string.digits + '!@#$%^&*'
PASSWORD_LENGTH = 12

EDITABLE_FIELDS = ('password', 'role', 'name', 'email', 'isActive', 'permissions')


def get_users_path() -> Path:
    """Get the users document location from settings."""
    return Path(getattr(
        settings,
        'DATAROOM_USERS_PATH',
        settings.BASE_DIR / 'public' / 'users.json'
    ))


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return ''.join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def public_user(user: dict) -> dict:
    """A user record without its password."""
    return {key: value for key, value in user.items() if key != 'password'}


class UserDirectory:
    """CRUD and credential checks over the users document."""

    @staticmethod
    def _load() -> dict:
        document = read_json_document(get_users_path(), default={'users': []})
        if not isinstance(document, dict) or not isinstance(document.get('users'), list):
            raise StoreCorrupt("Users document has no 'users' list")
        return document

    @staticmethod
    def _save(document: dict) -> None:
        write_json_document(get_users_path(), document)

    @staticmethod
    def _find(document: dict, username: str) -> Optional[dict]:
        for user in document['users']:
            if user.get('username') == username:
                return user
        return None

    @staticmethod
    def _check_fields(fields: dict) -> None:
        role = fields.get('role')
        if role is not None and role not in ROLES:
            raise ValidationError(f"Invalid role '{role}'. Must be one of: {', '.join(ROLES)}")

    @classmethod
    def list_users(cls) -> List[dict]:
        return cls._load()['users']

    @classmethod
    def get_user(cls, username: str) -> dict:
        user = cls._find(cls._load(), username)
        if user is None:
            raise NotFound('User not found')
        return user

    @classmethod
    def create_user(cls, username: str, password: str = '', role: str = 'investor',
                    name: str = '', email: str = '', is_active: bool = True,
                    permissions: dict = None) -> dict:
        """
        Add a new account.

        A random 12-character password is generated when none is given.

        Raises:
            ValidationError: missing or duplicate username, invalid role
        """
        if not username:
            raise ValidationError('Username is required')
        cls._check_fields({'role': role})

        document = cls._load()
        if cls._find(document, username) is not None:
            raise ValidationError('Username already exists')

        user = {
            'id': uuid.uuid4().hex,
            'username': username,
            'password': password or generate_password(),
            'role': role,
            'name': name,
            'email': email,
            'isActive': is_active,
            'createdAt': timezone.now().isoformat(),
        }
        if permissions is not None:
            user['permissions'] = permissions

        document['users'].append(user)
        cls._save(document)

        logger.info(f"Created {role} user {username}")
        return user

    @classmethod
    def update_user(cls, username: str, **fields) -> dict:
        """
        Apply the given fields to an account; the username is immutable.

        An empty password keeps the current one.

        Raises:
            NotFound: no such user
            ValidationError: invalid role
        """
        cls._check_fields(fields)

        document = cls._load()
        user = cls._find(document, username)
        if user is None:
            raise NotFound('User not found')

        for key in EDITABLE_FIELDS:
            if key not in fields:
                continue
            if key == 'password' and not fields[key]:
                continue
            user[key] = fields[key]

        cls._save(document)
        logger.info(f"Updated user {username}")
        return user

    @classmethod
    def delete_user(cls, username: str) -> dict:
        document = cls._load()
        user = cls._find(document, username)
        if user is None:
            raise NotFound('User not found')

        document['users'].remove(user)
        cls._save(document)

        logger.info(f"Deleted user {username}")
        return user

    @classmethod
    def authenticate(cls, username: str, password: str) -> Optional[dict]:
        """Return the active user matching the credentials, else None."""
        if not username or not password:
            return None
        user = cls._find(cls._load(), username)
        if user is None or not user.get('isActive', False):
            return None
        if not secrets.compare_digest(str(user.get('password', '')), str(password)):
            return None
        return user
