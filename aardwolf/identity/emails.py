"""Email addresses and their verification state."""

from typing import TYPE_CHECKING, NamedTuple, Optional, Tuple, Union

from .domain import Consumable
from .exceptions import AlreadyVerified
from .models import DBEmail
from .tokens import EmailToken, HashedEmailToken, create_token

if TYPE_CHECKING:
    from .users import PendingVerification, UnverifiedUser


class VerifiedEmail(NamedTuple):
    """An email address whose ownership has been confirmed."""

    id: int
    address: str
    user_id: int


class UnverifiedEmail(Consumable):
    """
    An email address still waiting for its verification token.

    Spent by :meth:`.UnverifiedUser.verify`.
    """

    def __init__(self, id: int, address: str, user_id: int,
                 verification_token_hash: Optional[HashedEmailToken],
                 verified: bool = False) -> None:
        self.id = id
        self.address = address
        self.user_id = user_id
        self.verification_token_hash = verification_token_hash
        self.verified = verified

    def __repr__(self) -> str:
        return f'UnverifiedEmail(id={self.id}, user_id={self.user_id})'

    def verify(self, user: 'UnverifiedUser',
               token: EmailToken) -> 'PendingVerification':
        """Shortcut for ``user.verify(self, token)``."""
        return user.verify(self, token)

    def _take_token_hash(self) -> HashedEmailToken:
        """Spend this email, returning the hash to check its token against."""
        self._consume()
        if self.verified:
            raise AlreadyVerified('Email is already verified')
        if self.verification_token_hash is None:
            raise AlreadyVerified('Email has no outstanding token')
        return self.verification_token_hash


class Email(NamedTuple):
    """An email row as loaded, before its state is known."""

    id: int
    address: str
    user_id: int
    verified: bool
    verification_token_hash: Optional[HashedEmailToken]

    @classmethod
    def from_db(cls, db_email: DBEmail) -> 'Email':
        return cls(id=db_email.id,
                   address=db_email.address,
                   user_id=db_email.user_id,
                   verified=bool(db_email.verified),
                   verification_token_hash=db_email.verification_token_hash)

    def to_verified(self) -> Union[VerifiedEmail, UnverifiedEmail]:
        """Split on verification state."""
        if self.verified:
            return VerifiedEmail(id=self.id, address=self.address,
                                 user_id=self.user_id)
        return UnverifiedEmail(
            id=self.id,
            address=self.address,
            user_id=self.user_id,
            verification_token_hash=self.verification_token_hash
        )


class NewEmail(NamedTuple):
    """An insertable, unverified email address."""

    address: str
    user_id: int
    verification_token_hash: HashedEmailToken

    @classmethod
    def create(cls, address: str, user_id: int) \
            -> Tuple['NewEmail', EmailToken]:
        """
        Prepare an email for ``user_id`` along with its token.

        The plaintext token is returned for delivery to the address and must
        not be stored.

        Raises
        ------
        :class:`.CreationError`

        """
        token, hashed = create_token()
        return cls(address=address, user_id=user_id,
                   verification_token_hash=hashed), token

    def to_db(self) -> DBEmail:
        return DBEmail(address=self.address,
                       user_id=self.user_id,
                       verified=False,
                       verification_token_hash=self.verification_token_hash)
