"""
Role and permission lookups against the relational store.

These functions run inside whatever transaction the caller has open on
``session``; they flush but never commit. Nothing is cached, so every check
sees the current state of the store.
"""

from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.session import Session

from .app_logging import getLogger
from .domain import Permission, Role
from .exceptions import StoreError
from .models import DBPermission, DBRole, DBRolePermission, DBUserRole
from .util import now

logger = getLogger(__name__)


def has_role(session: Session, user_id: int, role: Role) -> bool:
    """Determine whether ``role`` is currently granted to the user."""
    try:
        granted = session.query(DBUserRole.id) \
            .join(DBRole, DBRole.id == DBUserRole.role_id) \
            .filter(DBUserRole.user_id == user_id) \
            .filter(DBRole.name == role.value) \
            .first()
    except SQLAlchemyError as e:
        logger.error('Role lookup failed: %s', e)
        raise StoreError('Could not look up role') from e
    return granted is not None


def has_permission(session: Session, user_id: int,
                   permission: Permission) -> bool:
    """
    Determine whether any of the user's roles grants ``permission``.

    Follows users -> user_roles -> role_permissions -> permissions.
    """
    try:
        granted = session.query(DBPermission.id) \
            .join(DBRolePermission,
                  DBRolePermission.permission_id == DBPermission.id) \
            .join(DBUserRole, DBUserRole.role_id == DBRolePermission.role_id) \
            .filter(DBUserRole.user_id == user_id) \
            .filter(DBPermission.name == permission.value) \
            .first()
    except SQLAlchemyError as e:
        logger.error('Permission lookup failed: %s', e)
        raise StoreError('Could not look up permission') from e
    return granted is not None


def get_roles(session: Session, user_id: int) -> List[Role]:
    """All roles currently granted to the user."""
    try:
        rows = session.query(DBRole.name) \
            .join(DBUserRole, DBUserRole.role_id == DBRole.id) \
            .filter(DBUserRole.user_id == user_id) \
            .all()
    except SQLAlchemyError as e:
        logger.error('Role lookup failed: %s', e)
        raise StoreError('Could not look up roles') from e
    return sorted((Role(name) for name, in rows), key=lambda r: r.value)


def _role_id(session: Session, role: Role) -> int:
    db_role = session.query(DBRole).filter(DBRole.name == role.value).first()
    if db_role is None:
        raise StoreError(f'Role {role.value} is not configured')
    return db_role.id


def grant_role(session: Session, user_id: int, role: Role) -> None:
    """
    Grant ``role`` to the user.

    Does nothing if the role is already granted, including when a concurrent
    grant of the same role commits first.

    Raises
    ------
    :class:`.StoreError`

    """
    try:
        if has_role(session, user_id, role):
            return
        role_id = _role_id(session, role)
        try:
            with session.begin_nested():
                session.add(DBUserRole(
                    user_id=user_id,
                    role_id=role_id,
                    created_at=now()
                ))
                session.flush()
        except IntegrityError:
            if not has_role(session, user_id, role):
                raise
            logger.debug('%s was already granted to user %s',
                         role.value, user_id)
            return
    except SQLAlchemyError as e:
        logger.error('Could not grant %s to user %s: %s',
                     role.value, user_id, e)
        raise StoreError('Could not grant role') from e
    logger.debug('Granted %s to user %s', role.value, user_id)


def revoke_role(session: Session, user_id: int, role: Role) -> None:
    """
    Revoke ``role`` from the user.

    Does nothing if the role is not granted.

    Raises
    ------
    :class:`.StoreError`

    """
    try:
        if not has_role(session, user_id, role):
            return
        session.query(DBUserRole) \
            .filter(DBUserRole.user_id == user_id) \
            .filter(DBUserRole.role_id == _role_id(session, role)) \
            .delete(synchronize_session='fetch')
        session.flush()
    except SQLAlchemyError as e:
        logger.error('Could not revoke %s from user %s: %s',
                     role.value, user_id, e)
        raise StoreError('Could not revoke role') from e
    logger.debug('Revoked %s from user %s', role.value, user_id)
