"""
Request-layer helpers for registration, login and email verification.

These wire the store lookups to the user states in :mod:`.users`. Like the
rest of the package they take the caller's session and never commit it:

.. code-block:: python

   with util.transaction() as session:
       user, email, token = accounts.register(session, address, pw, pw)
   send_verification_mail(address, str(token))

"""

from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.session import Session

from . import passwords
from .app_logging import getLogger
from .audit import audit
from .emails import Email, NewEmail, UnverifiedEmail, VerifiedEmail
from .exceptions import AlreadyVerified, NoSuchUser, \
    PasswordAuthenticationFailed, RegistrationFailed, StoreError
from .local_auth import LocalAuth, NewLocalAuth
from .models import DBEmail, DBLocalAuth, DBUser
from .passwords import Candidate, PasswordPolicy
from .tokens import EmailToken
from .users import AuthenticatedUser, QueriedUser, UnauthenticatedUser, \
    Unverified, UnverifiedUser, Verified
from .util import now

logger = getLogger(__name__)


def email_exists(session: Session, address: str) -> bool:
    """Determine whether ``address`` is already claimed by any user."""
    try:
        found = session.query(DBEmail.id) \
            .filter(DBEmail.address == address) \
            .first()
    except SQLAlchemyError as e:
        logger.error('Email lookup failed: %s', e)
        raise StoreError('Could not look up email') from e
    return found is not None


def register(session: Session, address: str, password: Candidate,
             confirmation: Candidate,
             policy: Optional[PasswordPolicy] = None) \
        -> Tuple[UnverifiedUser, UnverifiedEmail, EmailToken]:
    """
    Create a user with a password login and an unverified email.

    The password is validated and confirmed before anything is written.

    Returns
    -------
    :class:`.UnverifiedUser`
    :class:`.UnverifiedEmail`
    :class:`.EmailToken`
        Plaintext verification token, to be sent to ``address``.

    Raises
    ------
    :class:`.InvalidPassword`
    :class:`.PasswordMismatch`
    :class:`.RegistrationFailed`
        The address is taken, or the records could not be stored.

    """
    validated = passwords.compare(passwords.validate(password, policy),
                                  confirmation)
    if email_exists(session, address):
        raise RegistrationFailed('Email address is already registered')
    try:
        db_user = DBUser(created_at=now(), banned=False)
        session.add(db_user)
        session.flush()

        session.add(NewLocalAuth.new(db_user.id, validated, policy).to_db())
        new_email, token = NewEmail.create(address, db_user.id)
        db_email = new_email.to_db()
        session.add(db_email)
        session.flush()
    except IntegrityError as e:
        logger.info('Registration conflict for new user: %s', e)
        raise RegistrationFailed('Email address is already registered') \
            from e
    except SQLAlchemyError as e:
        logger.error('Could not register user: %s', e)
        raise RegistrationFailed('Could not create user') from e

    audit.user_registered(db_user.id, db_email.id)
    branch = UnauthenticatedUser.from_db(db_user).check_verified(session)
    if not isinstance(branch, Unverified):
        # A fresh user holds no roles.
        raise RegistrationFailed('New user is unexpectedly verified')
    email = UnverifiedEmail(
        id=db_email.id,
        address=db_email.address,
        user_id=db_user.id,
        verification_token_hash=new_email.verification_token_hash
    )
    return branch.user, email, token


def lookup_user_by_email(session: Session, address: str) \
        -> Tuple[UnauthenticatedUser, Email, Optional[LocalAuth]]:
    """
    Find the user who claims ``address``.

    Banned users are not found.

    Raises
    ------
    :class:`.NoSuchUser`
    :class:`.StoreError`

    """
    try:
        row = session.query(DBUser, DBEmail) \
            .join(DBEmail, DBEmail.user_id == DBUser.id) \
            .filter(DBEmail.address == address) \
            .filter(DBUser.banned.is_(False)) \
            .first()
        if row is None:
            raise NoSuchUser('No such user')
        db_user, db_email = row
        db_local_auth = session.query(DBLocalAuth) \
            .filter(DBLocalAuth.user_id == db_user.id) \
            .first()
    except SQLAlchemyError as e:
        logger.error('User lookup failed: %s', e)
        raise StoreError('Could not look up user') from e

    local_auth = None
    if db_local_auth is not None:
        local_auth = LocalAuth.from_db(db_local_auth)
    return UnauthenticatedUser.from_db(db_user), Email.from_db(db_email), \
        local_auth


def authenticate(session: Session, address: str,
                 password: Candidate) -> AuthenticatedUser:
    """
    Log a user in with email address and password.

    Raises
    ------
    :class:`.NoSuchUser`
    :class:`.PasswordAuthenticationFailed`
        Wrong password, or the user has no password login.
    :class:`.VerificationProcessFailed`

    """
    user, _, local_auth = lookup_user_by_email(session, address)
    if local_auth is None:
        audit.login_attempt(user.id, False, 'no password login')
        raise PasswordAuthenticationFailed('Invalid password')
    return user.log_in_local(local_auth, password)


def verify_email(session: Session, address: str, token: EmailToken) \
        -> Tuple[AuthenticatedUser, VerifiedEmail]:
    """
    Confirm ownership of ``address`` with the token sent to it.

    Raises
    ------
    :class:`.NoSuchUser`
    :class:`.AlreadyVerified`
        The email, or its user, is already verified.
    :class:`.TokenVerificationFailed`
    :class:`.UserVerifyStoreFailed`

    """
    user, email, _ = lookup_user_by_email(session, address)
    state = email.to_verified()
    if isinstance(state, VerifiedEmail):
        audit.email_verified(user.id, email.id, False, 'already verified')
        raise AlreadyVerified('Email is already verified')
    branch = user.check_verified(session)
    if isinstance(branch, Verified):
        audit.email_verified(user.id, email.id, False, 'already verified')
        raise AlreadyVerified('User is already verified')
    return branch.user.verify(state, token).commit(session)


def get_user_by_id(session: Session, user_id: int) -> QueriedUser:
    """
    Load a user for display.

    Raises
    ------
    :class:`.NoSuchUser`
    :class:`.StoreError`

    """
    try:
        db_user = session.query(DBUser).filter(DBUser.id == user_id).first()
    except SQLAlchemyError as e:
        logger.error('User lookup failed: %s', e)
        raise StoreError('Could not look up user') from e
    if db_user is None:
        raise NoSuchUser(f'No user {user_id}')
    return QueriedUser.from_db(db_user)
