"""
User states and the transitions between them.

A user is not one object with a status field. Each state is its own class,
and the only way to reach a state is through the transition that proves it::

    UnauthenticatedUser --log_in_local--> AuthenticatedUser
    AuthenticatedUser --elevate_if_admin--> AdminUser
    UnauthenticatedUser --check_verified--> Verified | Unverified
    UnverifiedUser --verify--> PendingVerification
    PendingVerification --commit--> (AuthenticatedUser, VerifiedEmail)

A transition spends the value it was called on; using that value again
raises :class:`.StateConsumed`. :class:`AuthenticatedUser`,
:class:`AdminUser`, :class:`UnverifiedUser` and :class:`PendingVerification`
cannot be constructed outside this module.

Operations that read or write the store take the caller's ``session`` and
never commit it. Use :func:`.util.transaction` around a workflow.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, NamedTuple, Optional, Tuple, Union

from sqlalchemy import false, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.session import Session

from . import authorization, capabilities, tokens
from .app_logging import getLogger
from .audit import audit
from .domain import Consumable, Permission, Role
from .emails import UnverifiedEmail, VerifiedEmail
from .exceptions import AlreadyVerified, IdMismatch, \
    PasswordAuthenticationFailed, RelationMismatch, StoreError, \
    TokenVerificationFailed, UpdateFieldStoreFailed, UserVerifyStoreFailed, \
    VerificationProcessFailed
from .local_auth import LocalAuth
from .models import DBActor, DBEmail, DBUser
from .passwords import Candidate

logger = getLogger(__name__)

_PROOF = object()


def _require_proof(proof: object, cls: type) -> None:
    if proof is not _PROOF:
        raise TypeError(f'{cls.__name__} can only be obtained by a transition')


class UserLike(ABC):
    """Behavior shared by every user state."""

    @property
    @abstractmethod
    def id(self) -> int:
        """Primary key of the user."""

    @property
    @abstractmethod
    def created_at(self) -> datetime:
        """When the user registered."""

    def has_role(self, session: Session, role: Role) -> bool:
        return authorization.has_role(session, self.id, role)

    def has_permission(self, session: Session,
                       permission: Permission) -> bool:
        return authorization.has_permission(session, self.id, permission)

    def roles(self, session: Session) -> List[Role]:
        return authorization.get_roles(session, self.id)

    def is_verified(self, session: Session) -> bool:
        return self.has_role(session, Role.VERIFIED)

    def is_moderator(self, session: Session) -> bool:
        return self.has_role(session, Role.MODERATOR)

    def is_admin(self, session: Session) -> bool:
        return self.has_role(session, Role.ADMIN)


class AuthenticatedUserLike(UserLike, Consumable):
    """
    Behavior shared by users who have proven who they are.

    The ``can_*`` methods return a capability (see :mod:`.capabilities`)
    rather than a bool. The capability is the only way to perform the
    action.
    """

    @property
    @abstractmethod
    def primary_email(self) -> Optional[int]:
        """Id of the user's primary (verified) email, if any."""

    def can_post(self, session: Session,
                 actor: DBActor) -> capabilities.PostMaker:
        self._ensure_live()
        return capabilities.can_post(session, self.id, actor)

    def can_comment(self, session: Session,
                    actor: DBActor) -> capabilities.CommentMaker:
        self._ensure_live()
        return capabilities.can_comment(session, self.id, actor)

    def can_follow(self, session: Session,
                   actor: DBActor) -> capabilities.ActorFollower:
        self._ensure_live()
        return capabilities.can_follow(session, self.id, actor)

    def can_manage_follow_requests(self, session: Session, actor: DBActor) \
            -> capabilities.FollowRequestManager:
        self._ensure_live()
        return capabilities.can_manage_follow_requests(session, self.id,
                                                       actor)

    def can_configure_instance(self, session: Session) \
            -> capabilities.InstanceConfigurator:
        self._ensure_live()
        return capabilities.can_configure_instance(session, self.id)

    def can_ban_user(self, session: Session,
                     target_user_id: int) -> capabilities.UserBanner:
        self._ensure_live()
        return capabilities.can_ban_user(session, self.id, target_user_id)

    def can_grant_role(self, session: Session) -> capabilities.RoleGranter:
        self._ensure_live()
        return capabilities.can_grant_role(session, self.id)

    def can_revoke_role(self, session: Session) -> capabilities.RoleRevoker:
        self._ensure_live()
        return capabilities.can_revoke_role(session, self.id)


class QueriedUser(UserLike):
    """A user looked up for display; proves nothing about the requester."""

    def __init__(self, id: int, created_at: datetime,
                 primary_email: Optional[int] = None,
                 banned: bool = False) -> None:
        self._id = id
        self._created_at = created_at
        self.primary_email = primary_email
        self.banned = banned

    def __repr__(self) -> str:
        return f'QueriedUser(id={self._id})'

    @property
    def id(self) -> int:
        return self._id

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @classmethod
    def from_db(cls, db_user: DBUser) -> 'QueriedUser':
        return cls(id=db_user.id,
                   created_at=db_user.created_at,
                   primary_email=db_user.primary_email,
                   banned=bool(db_user.banned))


class UnauthenticatedUser(UserLike, Consumable):
    """A user found by a credential lookup, before the password check."""

    def __init__(self, id: int, created_at: datetime,
                 primary_email: Optional[int] = None) -> None:
        self._id = id
        self._created_at = created_at
        self._primary_email = primary_email

    def __repr__(self) -> str:
        return f'UnauthenticatedUser(id={self._id})'

    @property
    def id(self) -> int:
        return self._id

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @classmethod
    def from_db(cls, db_user: DBUser) -> 'UnauthenticatedUser':
        return cls(id=db_user.id,
                   created_at=db_user.created_at,
                   primary_email=db_user.primary_email)

    def log_in_local(self, local_auth: LocalAuth,
                     password: Candidate) -> 'AuthenticatedUser':
        """
        Authenticate with a password.

        Spends this user, whether or not the password is correct.

        Raises
        ------
        :class:`.PasswordAuthenticationFailed`
            Wrong password. Audited, not logged as an error.
        :class:`.VerificationProcessFailed`
            ``local_auth`` belongs to someone else, or the check itself
            broke.

        """
        self._consume()
        try:
            local_auth.check(self._id, password)
        except PasswordAuthenticationFailed:
            audit.login_attempt(self._id, False, 'invalid password')
            raise
        except VerificationProcessFailed as e:
            logger.error('Password check for user %s failed: %s', self._id, e)
            audit.login_attempt(self._id, False, 'verification error')
            raise
        audit.login_attempt(self._id, True)
        return AuthenticatedUser(_PROOF, self._id, self._created_at,
                                 self._primary_email)

    def check_verified(self, session: Session) \
            -> Union['Verified', 'Unverified']:
        """
        Split on whether the user holds the verified role.

        On the verified branch this user is handed back unspent. On the
        unverified branch it is spent and replaced by an
        :class:`UnverifiedUser`.

        Raises
        ------
        :class:`.StoreError`

        """
        self._ensure_live()
        if authorization.has_role(session, self._id, Role.VERIFIED):
            return Verified(self)
        self._consume()
        return Unverified(UnverifiedUser(_PROOF, self._id, self._created_at))


class UnverifiedUser(UserLike, Consumable):
    """
    A user who has not yet confirmed an email address.

    Carries only id and creation time; it has no primary email to read or
    set.
    """

    def __init__(self, proof: object, id: int, created_at: datetime) -> None:
        _require_proof(proof, UnverifiedUser)
        self._id = id
        self._created_at = created_at

    def __repr__(self) -> str:
        return f'UnverifiedUser(id={self._id})'

    @property
    def id(self) -> int:
        return self._id

    @property
    def created_at(self) -> datetime:
        return self._created_at

    def verify(self, email: Union[UnverifiedEmail, VerifiedEmail],
               token: tokens.EmailToken) -> 'PendingVerification':
        """
        Check ``token`` against ``email``.

        Spends both this user and ``email``. Nothing is written; commit the
        returned :class:`PendingVerification` to apply the change.

        Raises
        ------
        :class:`.AlreadyVerified`
        :class:`.TokenVerificationFailed`
        :class:`.VerificationProcessFailed`

        """
        self._consume()
        if not isinstance(email, UnverifiedEmail):
            audit.email_verified(self._id, email.id, False, 'already verified')
            raise AlreadyVerified('Email is already verified')
        try:
            tokens.verify_token(email._take_token_hash(), token)
        except AlreadyVerified:
            audit.email_verified(self._id, email.id, False, 'already verified')
            raise
        except TokenVerificationFailed:
            audit.email_verified(self._id, email.id, False, 'invalid token')
            raise
        return PendingVerification(_PROOF, self._id, self._created_at, email)


class Verified(NamedTuple):
    user: UnauthenticatedUser


class Unverified(NamedTuple):
    user: UnverifiedUser


class PendingVerification(Consumable):
    """A checked token, waiting to be written to the store."""

    def __init__(self, proof: object, user_id: int, created_at: datetime,
                 email: UnverifiedEmail) -> None:
        _require_proof(proof, PendingVerification)
        self.user_id = user_id
        self.created_at = created_at
        self.email = email

    def __repr__(self) -> str:
        return f'PendingVerification(user_id={self.user_id},' \
               f' email_id={self.email.id})'

    def commit(self, session: Session) \
            -> Tuple['AuthenticatedUser', VerifiedEmail]:
        """
        Apply the verification.

        Marks the email verified and clears its token hash, grants the
        verified role, and makes the email the user's primary email. The
        writes happen in a savepoint: either all of them are written or, on
        failure, none of them are. Earlier uncommitted work in ``session`` is
        kept.

        Raises
        ------
        :class:`.IdMismatch`
        :class:`.AlreadyVerified`
            Another verification of this email committed first.
        :class:`.UserVerifyStoreFailed`

        """
        self._consume()
        email = self.email
        if email.user_id != self.user_id:
            raise IdMismatch(f'Email {email.id} does not belong to user'
                             f' {self.user_id}')
        try:
            with session.begin_nested():
                updated = session.query(DBEmail) \
                    .filter(DBEmail.id == email.id) \
                    .filter(DBEmail.user_id == self.user_id) \
                    .filter(DBEmail.verified == false()) \
                    .update({DBEmail.verified: True,
                             DBEmail.verification_token_hash: None},
                            synchronize_session='fetch')
                if updated != 1:
                    audit.email_verified(self.user_id, email.id, False,
                                         'already verified')
                    raise AlreadyVerified('Email is already verified')
                authorization.grant_role(session, self.user_id,
                                         Role.VERIFIED)
                session.query(DBUser) \
                    .filter(DBUser.id == self.user_id) \
                    .update({DBUser.primary_email: email.id},
                            synchronize_session='fetch')
                session.flush()
        except (StoreError, SQLAlchemyError) as e:
            logger.error('Could not commit verification of email %s: %s',
                         email.id, e)
            # Bulk updates in the savepoint left stale attributes behind.
            session.expire_all()
            raise UserVerifyStoreFailed('Could not verify email') from e

        audit.email_verified(self.user_id, email.id, True)
        user = AuthenticatedUser(_PROOF, self.user_id, self.created_at,
                                 email.id)
        return user, VerifiedEmail(id=email.id, address=email.address,
                                   user_id=self.user_id)


class AuthenticatedUser(AuthenticatedUserLike):
    """A user who has logged in or just verified their email."""

    def __init__(self, proof: object, id: int, created_at: datetime,
                 primary_email: Optional[int] = None) -> None:
        _require_proof(proof, type(self))
        self._id = id
        self._created_at = created_at
        self._primary_email = primary_email

    def __repr__(self) -> str:
        return f'{type(self).__name__}(id={self._id})'

    @property
    def id(self) -> int:
        return self._id

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def primary_email(self) -> Optional[int]:
        return self._primary_email

    def set_primary_email(self, session: Session,
                          email: VerifiedEmail) -> None:
        """
        Make ``email`` this user's primary email.

        ``email`` must match a verified email of this user in the store.

        Raises
        ------
        :class:`.RelationMismatch`
            ``email`` is not a verified email of this user. Nothing is
            written.
        :class:`.UpdateFieldStoreFailed`

        """
        self._ensure_live()
        if email.user_id != self._id:
            raise RelationMismatch(f'Email {email.id} does not belong to user'
                                   f' {self._id}')
        try:
            owned = session.query(DBEmail.id) \
                .filter(DBEmail.id == email.id) \
                .filter(DBEmail.user_id == self._id) \
                .filter(DBEmail.verified == true()) \
                .first()
            if owned is None:
                raise RelationMismatch(f'Email {email.id} is not a verified'
                                       f' email of user {self._id}')
            updated = session.query(DBUser) \
                .filter(DBUser.id == self._id) \
                .update({DBUser.primary_email: email.id},
                        synchronize_session='fetch')
            session.flush()
        except SQLAlchemyError as e:
            logger.error('Could not set primary email for user %s: %s',
                         self._id, e)
            raise UpdateFieldStoreFailed('Could not set primary email') from e
        if updated != 1:
            raise UpdateFieldStoreFailed(f'No user {self._id}')
        self._primary_email = email.id

    def elevate_if_admin(self, session: Session) \
            -> Union['AdminUser', 'AuthenticatedUser']:
        """
        Get an :class:`AdminUser` if this user holds the admin role.

        Otherwise this user is returned, unspent.

        Raises
        ------
        :class:`.StoreError`

        """
        self._ensure_live()
        if not authorization.has_role(session, self._id, Role.ADMIN):
            return self
        self._consume()
        return AdminUser(_PROOF, self._id, self._created_at,
                         self._primary_email)


class AdminUser(AuthenticatedUser):
    """An authenticated user known to hold the admin role."""

    def elevate_if_admin(self, session: Session) -> 'AdminUser':
        self._ensure_live()
        return self

    def grant_role(self, session: Session, user_id: int, role: Role) -> None:
        """
        Grant ``role`` to another user. Idempotent.

        Raises
        ------
        :class:`.StoreError`

        """
        self._ensure_live()
        authorization.grant_role(session, user_id, role)
        audit.role_changed(self._id, user_id, role.value, granted=True)

    def revoke_role(self, session: Session, user_id: int,
                    role: Role) -> None:
        """Revoke ``role`` from another user. Idempotent."""
        self._ensure_live()
        authorization.revoke_role(session, user_id, role)
        audit.role_changed(self._id, user_id, role.value, granted=False)
