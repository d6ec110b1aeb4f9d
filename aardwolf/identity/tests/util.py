"""Testing helpers."""

from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional

from flask import Flask
from sqlalchemy.orm.session import Session

from .. import authorization, util
from ..domain import Role
from ..models import DBActor, DBUser

PASSWORD = 'correcthorse'


def make_app(database_url: str = 'sqlite:///:memory:') -> Flask:
    """Flask app configured for fast, throwaway tests."""
    app = Flask('test')
    app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['PASSWORD_HASH_COST'] = 4
    app.config['PASSWORD_MIN_LENGTH'] = 8
    util.init_app(app)
    return app


@contextmanager
def temporary_db(database_url: str = 'sqlite:///:memory:',
                 create: bool = True,
                 drop: bool = True) -> Generator[Session, None, None]:
    """Provide an in-memory sqlite database for testing purposes."""
    app = make_app(database_url)
    with app.app_context():
        if create:
            util.create_all()
        try:
            with util.transaction():
                yield util.current_session()
        finally:
            if drop:
                util.drop_all()


def add_user(session: Session, *roles: Role,
             created_at: Optional[datetime] = None) -> DBUser:
    """Insert a bare user holding ``roles``."""
    db_user = DBUser(created_at=created_at or util.now(), banned=False)
    session.add(db_user)
    session.flush()
    for role in roles:
        authorization.grant_role(session, db_user.id, role)
    return db_user


def add_actor(session: Session, user_id: Optional[int],
              name: str = 'someone') -> DBActor:
    """Insert an actor, local to ``user_id`` unless that is ``None``."""
    db_actor = DBActor(display_name=name,
                       profile_url=f'https://example.com/{name}',
                       inbox_url=f'https://example.com/{name}/inbox',
                       outbox_url=f'https://example.com/{name}/outbox',
                       local_user=user_id,
                       original_json={})
    session.add(db_actor)
    session.flush()
    return db_actor
