"""Password login records."""

from datetime import datetime
from typing import NamedTuple, Optional

from . import passwords
from .domain import Consumable
from .exceptions import VerificationProcessFailed
from .models import DBLocalAuth
from .passwords import Candidate, PasswordHash
from .util import now


class LocalAuth(Consumable):
    """A user's stored password, loaded for a single login attempt."""

    def __init__(self, id: int, user_id: int, password_hash: PasswordHash,
                 created_at: datetime) -> None:
        self.id = id
        self.user_id = user_id
        self.created_at = created_at
        self._password_hash = password_hash

    def __repr__(self) -> str:
        return f'LocalAuth(id={self.id}, user_id={self.user_id})'

    @classmethod
    def from_db(cls, db_local_auth: DBLocalAuth) -> 'LocalAuth':
        return cls(id=db_local_auth.id,
                   user_id=db_local_auth.user_id,
                   password_hash=db_local_auth.password_hash,
                   created_at=db_local_auth.created_at)

    def check(self, user_id: int, password: Candidate) -> None:
        """
        Check ``password`` on behalf of the user with ``user_id``.

        Raises
        ------
        :class:`.VerificationProcessFailed`
            This record belongs to another user.
        :class:`.PasswordAuthenticationFailed`

        """
        self._consume()
        if self.user_id != user_id:
            raise VerificationProcessFailed(
                'Local auth record belongs to another user'
            )
        passwords.check_password(self._password_hash, password)


class NewLocalAuth(NamedTuple):
    """An insertable password login for a user."""

    user_id: int
    password_hash: PasswordHash
    created_at: datetime

    @classmethod
    def new(cls, user_id: int, password: Candidate,
            policy: Optional[passwords.PasswordPolicy] = None) \
            -> 'NewLocalAuth':
        """
        Validate and hash ``password``.

        Raises
        ------
        :class:`.InvalidPassword`
        :class:`.CreationError`

        """
        validated = passwords.validate(password, policy)
        return cls(user_id=user_id,
                   password_hash=passwords.hash_password(validated),
                   created_at=now())

    @classmethod
    def new_from_two(cls, user_id: int, password: Candidate,
                     confirmation: Candidate,
                     policy: Optional[passwords.PasswordPolicy] = None) \
            -> 'NewLocalAuth':
        """
        Like :meth:`new`, for a password entered twice.

        Raises
        ------
        :class:`.InvalidPassword`
        :class:`.PasswordMismatch`
        :class:`.CreationError`

        """
        validated = passwords.compare(passwords.validate(password, policy),
                                      confirmation)
        return cls(user_id=user_id,
                   password_hash=passwords.hash_password(validated),
                   created_at=now())

    def to_db(self) -> DBLocalAuth:
        return DBLocalAuth(user_id=self.user_id,
                           password_hash=self.password_hash,
                           created_at=self.created_at)
