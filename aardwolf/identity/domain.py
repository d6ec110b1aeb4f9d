"""
Roles and permissions known to the identity core.

Rather than refer to roles or permissions by writing new str objects, these
enumerations should be imported and used. The names stored in the ``roles``
and ``permissions`` tables are the enum values, and the tables are seeded
from :data:`ROLE_PERMISSIONS` (see :func:`.util.create_all`).
"""

from enum import Enum
from typing import Dict, FrozenSet

from .exceptions import StateConsumed


class Role(Enum):
    """A named bundle of permissions that can be granted to a user."""

    VERIFIED = 'verified'
    """Granted when the user confirms ownership of an email address."""

    MODERATOR = 'moderator'
    """May act against other users on the instance."""

    ADMIN = 'admin'
    """May configure the instance and hand out roles."""


class Permission(Enum):
    """An action that requires authorization."""

    MAKE_POST = 'make-post'
    MAKE_COMMENT = 'make-comment'
    FOLLOW_USER = 'follow-user'
    MANAGE_FOLLOW_REQUESTS = 'manage-follow-requests'
    CONFIGURE_INSTANCE = 'configure-instance'
    BAN_USER = 'ban-user'
    GRANT_ROLE = 'grant-role'
    REVOKE_ROLE = 'revoke-role'


ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.VERIFIED: frozenset({
        Permission.MAKE_POST,
        Permission.MAKE_COMMENT,
        Permission.FOLLOW_USER,
        Permission.MANAGE_FOLLOW_REQUESTS,
    }),
    Role.MODERATOR: frozenset({
        Permission.BAN_USER,
    }),
    Role.ADMIN: frozenset({
        Permission.BAN_USER,
        Permission.CONFIGURE_INSTANCE,
        Permission.GRANT_ROLE,
        Permission.REVOKE_ROLE,
    }),
}
"""
Static role/permission configuration.

A user holds a permission if any of their roles grants it. Roles do not
inherit from each other; an admin who should also post needs the verified
role as well.
"""


class Consumable:
    """
    A value that can be spent exactly once.

    User states and capabilities are handed on by transitions that consume
    them. Using a spent value again raises :class:`.StateConsumed`.
    """

    _consumed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    def _ensure_live(self) -> None:
        if self._consumed:
            raise StateConsumed(f'{type(self).__name__} was already used')

    def _consume(self) -> None:
        self._ensure_live()
        self._consumed = True
