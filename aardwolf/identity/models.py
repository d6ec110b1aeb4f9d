"""Database models for users, credentials, emails and roles."""

from typing import Any, Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, \
    String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .passwords import PasswordHash
from .tokens import HashedEmailToken

db: SQLAlchemy = SQLAlchemy()


class _SecretColumn(TypeDecorator):
    """Store a redacting secret wrapper as plain text."""

    impl = String(255)
    cache_ok = True
    wrapper: Any = None

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, self.wrapper):
            return value.to_storage()
        raise TypeError(f'Expected {self.wrapper.__name__}')

    def process_result_value(self, value: Optional[str],
                             dialect: Any) -> Any:
        if value is None:
            return None
        return self.wrapper(value)


class PasswordHashColumn(_SecretColumn):
    wrapper = PasswordHash


class TokenHashColumn(_SecretColumn):
    wrapper = HashedEmailToken


class DBUser(db.Model):  # type: ignore
    """
    Local authentication principal.

    +---------------+----------+------+-----+---------+----------------+
    | Field         | Type     | Null | Key | Default | Extra          |
    +---------------+----------+------+-----+---------+----------------+
    | id            | int      | NO   | PRI | NULL    | auto_increment |
    | created_at    | datetime | NO   |     | NULL    |                |
    | primary_email | int      | YES  |     | NULL    |                |
    | banned        | bool     | NO   | MUL | 0       |                |
    +---------------+----------+------+-----+---------+----------------+
    """

    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    primary_email = Column(Integer, nullable=True)
    """
    References ``emails.id``. Not a foreign key, so that the users/emails
    tables do not depend on each other; see ``set_primary_email``.
    """
    banned = Column(Boolean, nullable=False, default=False, index=True)


class DBLocalAuth(db.Model):  # type: ignore
    """Password login for a user. At most one per user."""

    __tablename__ = 'local_auth'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(ForeignKey('users.id'), nullable=False, unique=True)
    password_hash = Column(PasswordHashColumn, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship('DBUser')


class DBEmail(db.Model):  # type: ignore
    """
    Email addresses claimed by users.

    A verified email never has a token hash.
    """

    __tablename__ = 'emails'

    id = Column(Integer, primary_key=True, autoincrement=True)
    address = Column(String(255), nullable=False, unique=True, index=True)
    user_id = Column(ForeignKey('users.id'), nullable=False, index=True)
    verified = Column(Boolean, nullable=False, default=False)
    verification_token_hash = Column(TokenHashColumn, nullable=True)

    user = relationship('DBUser')


class DBRole(db.Model):  # type: ignore
    __tablename__ = 'roles'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class DBPermission(db.Model):  # type: ignore
    __tablename__ = 'permissions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class DBRolePermission(db.Model):  # type: ignore
    """Static configuration: which permissions each role grants."""

    __tablename__ = 'role_permissions'
    __table_args__ = (
        UniqueConstraint('role_id', 'permission_id',
                         name='uq_role_permissions'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_id = Column(ForeignKey('roles.id'), nullable=False)
    permission_id = Column(ForeignKey('permissions.id'), nullable=False)


class DBUserRole(db.Model):  # type: ignore
    """A role granted to a user. At most one row per (user, role)."""

    __tablename__ = 'user_roles'
    __table_args__ = (
        UniqueConstraint('user_id', 'role_id', name='uq_user_roles'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(ForeignKey('users.id'), nullable=False, index=True)
    role_id = Column(ForeignKey('roles.id'), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


# The records below belong to the rest of the service. Only the columns that
# capabilities read or write are mapped.

class DBActor(db.Model):  # type: ignore
    """Externally visible identity. Local actors point at their user."""

    __tablename__ = 'base_actors'

    id = Column(Integer, primary_key=True, autoincrement=True)
    display_name = Column(String(80), nullable=False)
    profile_url = Column(String(2048), nullable=False)
    inbox_url = Column(String(2048), nullable=False)
    outbox_url = Column(String(2048), nullable=False)
    local_user = Column(ForeignKey('users.id'), nullable=True)
    original_json = Column(JSON, nullable=False, default=dict)


class DBPost(db.Model):  # type: ignore
    __tablename__ = 'posts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    posted_by = Column(ForeignKey('base_actors.id'), nullable=True,
                       index=True)
    name = Column(String(140), nullable=True)
    media_type = Column(String(80), nullable=False)
    content = Column(Text, nullable=False)
    source = Column(Text, nullable=True)
    visibility = Column(String(16), nullable=False)
    original_json = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)


class DBComment(db.Model):  # type: ignore
    __tablename__ = 'comments'

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation = Column(ForeignKey('posts.id'), nullable=False)
    parent = Column(ForeignKey('posts.id'), nullable=False)
    post = Column(ForeignKey('posts.id'), nullable=False, unique=True)


class DBFollowRequest(db.Model):  # type: ignore
    __tablename__ = 'follow_requests'
    __table_args__ = (
        UniqueConstraint('follower', 'requested_follow',
                         name='uq_follow_requests'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower = Column(ForeignKey('base_actors.id'), nullable=False)
    requested_follow = Column(ForeignKey('base_actors.id'), nullable=False,
                              index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class DBFollower(db.Model):  # type: ignore
    __tablename__ = 'followers'
    __table_args__ = (
        UniqueConstraint('follower', 'follows', name='uq_followers'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower = Column(ForeignKey('base_actors.id'), nullable=False)
    follows = Column(ForeignKey('base_actors.id'), nullable=False,
                     index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class DBInstanceSetting(db.Model):  # type: ignore
    __tablename__ = 'instance_settings'

    key = Column(String(64), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
