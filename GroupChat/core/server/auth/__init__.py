"""
Authentication module for the server.

Provides the bcrypt hash/compare primitive and the authenticator that checks
a join request against the stored group credential.
"""

import asyncio
import hmac
import logging
from typing import Optional

import bcrypt

from GroupChat.config import config
from GroupChat.core.server.interfaces import AuthResult, GroupStore

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid group name or password"


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash password with bcrypt (rounds default to config.BCRYPT_ROUNDS)."""
    salt = bcrypt.gensalt(rounds=rounds or config.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify password against hash. A malformed hash never matches."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def verify_admin_password(supplied: Optional[str], expected: Optional[str] = None) -> bool:
    """
    Compare the admin shared secret in constant time.

    An empty configured secret disables the admin surface entirely.
    """
    expected = config.ADMIN_PASSWORD if expected is None else expected
    if not expected or not supplied:
        return False
    return hmac.compare_digest(supplied.encode('utf-8'), expected.encode('utf-8'))


class GroupAuthenticator:
    """
    Checks (group name, password) pairs against the credential store.

    Every failure yields the same error message so that a client cannot
    tell a missing group from a wrong password.
    """

    def __init__(self, store: GroupStore):
        """
        Initialize authenticator.

        Args:
            store: Credential store used to look groups up by name
        """
        self._store = store

    async def authenticate(self, group_name: str, password: str) -> AuthResult:
        """
        Authenticate a join request.

        Both the lookup and the bcrypt compare run in a worker thread; they
        are the only suspension points of a join besides history loading.

        Args:
            group_name: Exact group name
            password: Plain-text group password

        Returns:
            AuthResult with the group id and name on success
        """
        group = await asyncio.to_thread(self._store.get_group, group_name)
        if group is None or not group.is_active:
            logger.info("Join rejected: unknown or inactive group")
            return self._failure()

        matches = await asyncio.to_thread(verify_password, password, group.password_hash)
        if not matches:
            logger.info("Join rejected: password mismatch for group %s", group.name)
            return self._failure()

        return AuthResult(success=True, group_id=group.id, group_name=group.name)

    @staticmethod
    def _failure() -> AuthResult:
        return AuthResult(
            success=False,
            error_message=INVALID_CREDENTIALS,
            error_code="INVALID_CREDENTIALS"
        )


__all__ = [
    'INVALID_CREDENTIALS',
    'GroupAuthenticator',
    'hash_password',
    'verify_password',
    'verify_admin_password',
]
