"""
Password hashing and verification.

Plaintext passwords only ever travel inside :class:`PlaintextPassword` (or
:class:`ValidatedPassword`, once they pass the :class:`PasswordPolicy`), and
stored hashes inside :class:`PasswordHash`. All three render as
:data:`REDACTED` in ``repr()``, ``str()`` and therefore in logs.

Hashes are produced with bcrypt. The work factor comes from the
``PASSWORD_HASH_COST`` setting.
"""

import secrets
from typing import Callable, NamedTuple, Optional, Tuple, Union

import bcrypt

from . import config
from .app_logging import getLogger
from .exceptions import CreationError, InvalidPassword, PasswordMismatch, \
    PasswordAuthenticationFailed, VerificationProcessFailed

logger = getLogger(__name__)

REDACTED = '********'

MAX_PASSWORD_BYTES = 72
"""bcrypt ignores (or refuses) anything past this many bytes."""


class _Secret:
    __slots__ = ('_value',)

    def __init__(self, value: str) -> None:
        self._value = value

    def __repr__(self) -> str:
        return REDACTED

    def __str__(self) -> str:
        return REDACTED


class PlaintextPassword(_Secret):
    """A password as entered by a user."""

    def __len__(self) -> int:
        return len(self._value)


class ValidatedPassword(PlaintextPassword):
    """A plaintext password that satisfied the password policy."""


class PasswordHash(_Secret):
    """A bcrypt hash as stored in ``local_auth.password_hash``."""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PasswordHash):
            return NotImplemented
        return secrets.compare_digest(self._value.encode('utf-8'),
                                      other._value.encode('utf-8'))

    def __hash__(self) -> int:
        return hash(self._value)

    def to_storage(self) -> str:
        """The value to write to the database."""
        return self._value


Candidate = Union[str, PlaintextPassword]


class PasswordPolicy(NamedTuple):
    """Rules a plaintext password has to satisfy before it is hashed."""

    min_length: int = 1
    """Minimum number of characters."""

    max_bytes: int = MAX_PASSWORD_BYTES
    """Maximum length of the UTF-8 encoding."""

    checks: Tuple[Callable[[str], Optional[str]], ...] = ()
    """
    Extra rules. Each returns ``None`` if the password is acceptable, or a
    reason for rejecting it.
    """


def default_policy() -> PasswordPolicy:
    """The policy configured for the current application."""
    return PasswordPolicy(
        min_length=max(1, config.get_int('PASSWORD_MIN_LENGTH'))
    )


def _reveal(password: Candidate) -> str:
    if isinstance(password, PlaintextPassword):
        return password._value
    return password


def validate(password: Candidate,
             policy: Optional[PasswordPolicy] = None) -> ValidatedPassword:
    """
    Check a plaintext password against the password policy.

    Parameters
    ----------
    password : str or :class:`PlaintextPassword`
    policy : :class:`PasswordPolicy`
        Defaults to :func:`default_policy`.

    Returns
    -------
    :class:`ValidatedPassword`

    Raises
    ------
    :class:`.InvalidPassword`

    """
    if policy is None:
        policy = default_policy()
    value = _reveal(password)
    if not value:
        raise InvalidPassword('Password must not be empty')
    if len(value) < policy.min_length:
        raise InvalidPassword(
            f'Password must be at least {policy.min_length} characters'
        )
    if len(value.encode('utf-8')) > policy.max_bytes:
        raise InvalidPassword(
            f'Password must be at most {policy.max_bytes} bytes'
        )
    for check in policy.checks:
        reason = check(value)
        if reason is not None:
            raise InvalidPassword(reason)
    return ValidatedPassword(value)


def compare(password: ValidatedPassword,
            confirmation: Candidate) -> ValidatedPassword:
    """
    Confirm that a password was entered the same way twice.

    The comparison is on the exact UTF-8 bytes of both entries.

    Raises
    ------
    :class:`.PasswordMismatch`

    """
    if not secrets.compare_digest(_reveal(password).encode('utf-8'),
                                  _reveal(confirmation).encode('utf-8')):
        raise PasswordMismatch('Passwords do not match')
    return password


def hash_password(password: ValidatedPassword) -> PasswordHash:
    """
    Generate a salted bcrypt hash of a validated password.

    Raises
    ------
    :class:`.CreationError`

    """
    if not isinstance(password, ValidatedPassword):
        raise TypeError('Only validated passwords can be hashed')
    try:
        salt = bcrypt.gensalt(rounds=config.get_int('PASSWORD_HASH_COST'))
        hashed = bcrypt.hashpw(password._value.encode('utf-8'), salt)
    except (ValueError, TypeError) as e:
        logger.error('Error creating password hash: %s', type(e).__name__)
        raise CreationError('Error creating password') from e
    return PasswordHash(hashed.decode('ascii'))


def check_password(password_hash: PasswordHash, password: Candidate) -> None:
    """
    Check a password against a stored hash.

    Raises
    ------
    :class:`.PasswordAuthenticationFailed`
        The password does not match. This is not logged.
    :class:`.VerificationProcessFailed`
        The stored hash could not be used.

    """
    encoded = _reveal(password).encode('utf-8')
    if not encoded or len(encoded) > MAX_PASSWORD_BYTES:
        # No validated password can look like this.
        raise PasswordAuthenticationFailed('Invalid password')
    try:
        verified = bcrypt.checkpw(encoded,
                                  password_hash.to_storage().encode('utf-8'))
    except (ValueError, TypeError) as e:
        logger.error('Error verifying password: %s', type(e).__name__)
        raise VerificationProcessFailed('Error validating password') from e
    if not verified:
        raise PasswordAuthenticationFailed('Invalid password')
