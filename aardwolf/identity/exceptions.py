"""
Exceptions raised by the identity core.

Every failure mode has its own class so that callers can tell expected
outcomes (a wrong password, a denied permission) apart from faults (a broken
hash, an unreachable database) with ``except`` clauses alone.
"""


class ValidationError(ValueError):
    """A plaintext credential was rejected before hashing."""


class InvalidPassword(ValidationError):
    """Password does not satisfy the password policy."""


class PasswordMismatch(ValidationError):
    """Password and its confirmation are not identical."""


class CreationError(RuntimeError):
    """Could not hash a password or generate a token."""


class VerificationError(RuntimeError):
    """Could not verify a password or token."""


class VerificationProcessFailed(VerificationError):
    """
    Verification itself broke down.

    Raised for corrupt stored hashes, hash engine failures, or values that do
    not belong together. This is an operational fault.
    """


class VerificationFailed(VerificationError):
    """The supplied secret did not match. This is an expected outcome."""


class PasswordAuthenticationFailed(VerificationFailed):
    """Password is not correct."""


class TokenVerificationFailed(VerificationFailed):
    """Email verification token is not correct."""


class StoreError(RuntimeError):
    """The relational store failed."""


class UserVerifyError(RuntimeError):
    """Could not commit a pending email verification."""


class IdMismatch(UserVerifyError):
    """The email being verified belongs to a different user."""


class UserVerifyStoreFailed(UserVerifyError, StoreError):
    """The store failed while committing a verification."""


class AlreadyVerified(VerificationProcessFailed, UserVerifyError):
    """
    The email (or its user) has already been verified.

    Raised when a token is presented again, including when a concurrent
    verification committed first.
    """


class UpdateFieldError(RuntimeError):
    """Could not update a field on a user."""


class RelationMismatch(UpdateFieldError):
    """The related record belongs to a different user."""


class UpdateFieldStoreFailed(UpdateFieldError, StoreError):
    """The store failed while updating a user."""


class AuthorizationError(RuntimeError):
    """A capability could not be issued."""


class PermissionDenied(AuthorizationError):
    """The user is not permitted to perform the action."""


class AuthorizationStoreError(AuthorizationError, StoreError):
    """The store failed while checking permissions."""


class StateConsumed(RuntimeError):
    """A user state or capability was used after it was already spent."""


class NoSuchUser(RuntimeError):
    """User does not exist."""


class RegistrationFailed(RuntimeError):
    """Could not create the user."""
