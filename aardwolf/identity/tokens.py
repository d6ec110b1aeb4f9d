"""
Email verification tokens.

A token is issued as a pair: the plaintext :class:`EmailToken`, which goes into
the verification link and is never persisted, and its
:class:`HashedEmailToken`, which is stored on the email row. Tokens carry
enough entropy that an unsalted SHA-256 digest is sufficient; comparison is
constant-time.
"""

import hashlib
import re
import secrets
from typing import Tuple

from . import config
from .app_logging import getLogger
from .exceptions import CreationError, TokenVerificationFailed, \
    VerificationProcessFailed
from .passwords import REDACTED

logger = getLogger(__name__)

_DIGEST = re.compile(r'^[0-9a-f]{64}$')


class EmailToken:
    """
    Plaintext verification token.

    ``str(token)`` yields the token itself, for building the link that is sent
    to the user. ``repr(token)`` is redacted.
    """

    __slots__ = ('_value',)

    def __init__(self, value: str) -> None:
        self._value = value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f'EmailToken({REDACTED})'


class HashedEmailToken:
    """Digest of an :class:`EmailToken`, as stored on the email row."""

    __slots__ = ('_value',)

    def __init__(self, value: str) -> None:
        self._value = value

    def __repr__(self) -> str:
        return REDACTED

    def __str__(self) -> str:
        return REDACTED

    def to_storage(self) -> str:
        """The value to write to the database."""
        return self._value


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_token() -> Tuple[EmailToken, HashedEmailToken]:
    """
    Generate a new verification token.

    Returns
    -------
    :class:`EmailToken`
        To be sent to the user.
    :class:`HashedEmailToken`
        To be persisted.

    Raises
    ------
    :class:`.CreationError`
        The system entropy source is not available.

    """
    try:
        value = secrets.token_urlsafe(config.get_int('EMAIL_TOKEN_BYTES'))
    except (NotImplementedError, OSError) as e:
        logger.error('Could not generate email token: %s', e)
        raise CreationError('Error creating token') from e
    return EmailToken(value), HashedEmailToken(_digest(value))


def verify_token(hashed: HashedEmailToken, token: EmailToken) -> None:
    """
    Check a plaintext token against the stored digest.

    Raises
    ------
    :class:`.TokenVerificationFailed`
        The token does not match. This is not logged.
    :class:`.VerificationProcessFailed`
        The stored digest is malformed.

    """
    stored = hashed.to_storage()
    if not isinstance(stored, str) or not _DIGEST.match(stored):
        logger.error('Stored email token digest is malformed')
        raise VerificationProcessFailed('Error validating token')
    given = _digest(str(token))
    if not secrets.compare_digest(stored.encode('ascii'),
                                  given.encode('ascii')):
        raise TokenVerificationFailed('Invalid token')
