"""Helpers and Flask application integration."""

from contextlib import contextmanager
from datetime import datetime
from typing import Generator

from flask import Flask
from pytz import UTC
from sqlalchemy import text
from sqlalchemy.orm.session import Session

from . import config
from .app_logging import getLogger
from .domain import ROLE_PERMISSIONS, Permission, Role
from .models import db, DBPermission, DBRole, DBRolePermission

logger = getLogger(__name__)


def now() -> datetime:
    """Get the current time (UTC)."""
    return datetime.now(tz=UTC)


@contextmanager
def transaction() -> Generator[Session, None, None]:
    """
    Context manager for database transaction.

    Everything done with the yielded session is committed together when the
    block exits, or rolled back if anything in the block raises.
    """
    try:
        yield db.session
        # The caller may have explicitly committed already, in order to
        # implement exception handling logic. We only want to commit here if
        # anything remains uncommitted, flushed or not.
        session = db.session()
        if session.new or session.dirty or session.deleted \
                or session.in_transaction():
            session.commit()
    except Exception as e:
        logger.warning('Commit failed, rolling back: %s', str(e))
        db.session.rollback()
        raise


def init_app(app: Flask) -> None:
    """Set configuration defaults and attach session to the application."""
    config.set_defaults(app)
    db.init_app(app)


def current_session() -> Session:
    """Get/create database session for this context."""
    return db.session


def create_all() -> None:
    """Create all tables in the database and load roles/permissions."""
    db.create_all()
    with transaction() as session:
        insert_roles_and_permissions(session)


def drop_all() -> None:
    """Drop all tables in the database."""
    db.drop_all()


def insert_roles_and_permissions(session: Session) -> None:
    """Seed :data:`.domain.ROLE_PERMISSIONS`. Safe to run repeatedly."""
    created = now()
    roles = {}
    for role in Role:
        db_role = session.query(DBRole) \
            .filter(DBRole.name == role.value) \
            .first()
        if db_role is None:
            db_role = DBRole(name=role.value, created_at=created)
            session.add(db_role)
        roles[role] = db_role
    permissions = {}
    for permission in Permission:
        db_permission = session.query(DBPermission) \
            .filter(DBPermission.name == permission.value) \
            .first()
        if db_permission is None:
            db_permission = DBPermission(name=permission.value,
                                         created_at=created)
            session.add(db_permission)
        permissions[permission] = db_permission
    session.flush()

    for role, granted in ROLE_PERMISSIONS.items():
        for permission in granted:
            exists = session.query(DBRolePermission) \
                .filter(DBRolePermission.role_id == roles[role].id) \
                .filter(DBRolePermission.permission_id
                        == permissions[permission].id) \
                .first()
            if exists is None:
                session.add(DBRolePermission(
                    role_id=roles[role].id,
                    permission_id=permissions[permission].id
                ))
    session.flush()


def is_available() -> bool:
    """Check our connection to the database."""
    try:
        db.session.execute(text('SELECT 1'))
    except Exception as e:
        logger.error('Encountered an error talking to database: %s', e)
        return False
    return True
