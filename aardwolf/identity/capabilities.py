"""
Capabilities for privileged actions.

A capability is what a successful permission check returns. It is bound to
the user who passed the check and, for actor-scoped actions, to the actor the
user is acting as. Its methods are the only way this package performs the
corresponding mutation, so code that holds no capability has no way to take
the action.

Capabilities are issued by the ``can_*`` functions below (normally reached
through the ``can_*`` methods of :class:`.users.AuthenticatedUser`). They are
single-use, cannot be constructed directly, and refuse to be pickled or
copied.

.. code-block:: python

   with util.transaction() as session:
       try:
           maker = user.can_post(session, actor)
       except exceptions.PermissionDenied:
           raise Forbidden('Access denied')
       maker.make_post(session, content='hello')

"""

from typing import Any, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.session import Session

from . import authorization
from .app_logging import getLogger
from .audit import audit
from .domain import Consumable, Permission, Role
from .exceptions import AuthorizationStoreError, PermissionDenied, \
    StoreError
from .models import DBActor, DBComment, DBFollower, DBFollowRequest, \
    DBInstanceSetting, DBPost, DBUser
from .util import now

logger = getLogger(__name__)

_ISSUER = object()


class Capability(Consumable):
    """Base class for all capabilities."""

    permission: Permission

    def __init__(self, issuer: object, user_id: int) -> None:
        if issuer is not _ISSUER:
            raise TypeError(f'{type(self).__name__} is only issued by a '
                            'successful permission check')
        self.user_id = user_id

    def __repr__(self) -> str:
        return f'{type(self).__name__}(user_id={self.user_id})'

    def __reduce_ex__(self, protocol: Any) -> Any:
        raise TypeError('Capabilities cannot be serialized or copied')


class ActorCapability(Capability):
    """A capability to act as one specific actor."""

    def __init__(self, issuer: object, user_id: int, actor: DBActor) -> None:
        super(ActorCapability, self).__init__(issuer, user_id)
        self.actor_id = actor.id

    def __repr__(self) -> str:
        return f'{type(self).__name__}(user_id={self.user_id},' \
               f' actor_id={self.actor_id})'


class PostMaker(ActorCapability):
    """Publish a post as the bound actor."""

    permission = Permission.MAKE_POST

    def make_post(self, session: Session, content: str,
                  media_type: str = 'text/plain',
                  visibility: str = 'public',
                  name: Optional[str] = None,
                  source: Optional[str] = None,
                  original_json: Optional[dict] = None) -> DBPost:
        self._consume()
        try:
            db_post = _new_post(session, self.actor_id, content, media_type,
                                visibility, name, source, original_json)
            session.flush()
        except SQLAlchemyError as e:
            logger.error('Could not create post: %s', e)
            raise StoreError('Could not create post') from e
        return db_post


class CommentMaker(ActorCapability):
    """Reply to a post as the bound actor."""

    permission = Permission.MAKE_COMMENT

    def make_comment(self, session: Session, content: str,
                     conversation: DBPost, parent: DBPost,
                     media_type: str = 'text/plain',
                     visibility: str = 'public',
                     name: Optional[str] = None,
                     source: Optional[str] = None,
                     original_json: Optional[dict] = None) \
            -> Tuple[DBPost, DBComment]:
        """
        Create a post and the comment row tying it into ``conversation``.

        ``parent`` is either the conversation's top post or another comment
        in the same conversation.

        Raises
        ------
        :class:`ValueError`
            ``parent`` is not part of ``conversation``.
        :class:`.StoreError`

        """
        self._consume()
        if parent.id != conversation.id:
            try:
                in_conversation = session.query(DBComment.id) \
                    .filter(DBComment.post == parent.id) \
                    .filter(DBComment.conversation == conversation.id) \
                    .first()
            except SQLAlchemyError as e:
                logger.error('Could not look up comment parent: %s', e)
                raise StoreError('Could not create comment') from e
            if in_conversation is None:
                raise ValueError('Parent is not part of the conversation')
        try:
            with session.begin_nested():
                db_post = _new_post(session, self.actor_id, content,
                                    media_type, visibility, name, source,
                                    original_json)
                session.flush()
                db_comment = DBComment(conversation=conversation.id,
                                       parent=parent.id,
                                       post=db_post.id)
                session.add(db_comment)
                session.flush()
        except SQLAlchemyError as e:
            logger.error('Could not create comment: %s', e)
            raise StoreError('Could not create comment') from e
        return db_post, db_comment


class ActorFollower(ActorCapability):
    """Ask to follow another actor, as the bound actor."""

    permission = Permission.FOLLOW_USER

    def request_follow(self, session: Session,
                       target: DBActor) -> DBFollowRequest:
        """
        Create a follow request for ``target``.

        Asking again while a request is pending returns the pending request.
        """
        self._consume()
        if target.id == self.actor_id:
            raise ValueError('Actors cannot follow themselves')
        try:
            db_request = session.query(DBFollowRequest) \
                .filter(DBFollowRequest.follower == self.actor_id) \
                .filter(DBFollowRequest.requested_follow == target.id) \
                .first()
            if db_request is None:
                db_request = DBFollowRequest(follower=self.actor_id,
                                             requested_follow=target.id,
                                             created_at=now())
                session.add(db_request)
                session.flush()
        except SQLAlchemyError as e:
            logger.error('Could not create follow request: %s', e)
            raise StoreError('Could not create follow request') from e
        return db_request


class FollowRequestManager(ActorCapability):
    """Accept or reject a follow request addressed to the bound actor."""

    permission = Permission.MANAGE_FOLLOW_REQUESTS

    def _own(self, follow_request: DBFollowRequest) -> None:
        if follow_request.requested_follow != self.actor_id:
            raise PermissionDenied('Follow request is for another actor')

    def accept(self, session: Session,
               follow_request: DBFollowRequest) -> DBFollower:
        """
        Turn the request into a follower relationship.

        Nothing is written if this fails; earlier uncommitted work in
        ``session`` is kept.
        """
        self._consume()
        self._own(follow_request)
        try:
            with session.begin_nested():
                db_follower = session.query(DBFollower) \
                    .filter(DBFollower.follower == follow_request.follower) \
                    .filter(DBFollower.follows == self.actor_id) \
                    .first()
                if db_follower is None:
                    db_follower = DBFollower(
                        follower=follow_request.follower,
                        follows=self.actor_id,
                        created_at=now()
                    )
                    session.add(db_follower)
                session.delete(follow_request)
                session.flush()
        except SQLAlchemyError as e:
            logger.error('Could not accept follow request: %s', e)
            raise StoreError('Could not accept follow request') from e
        return db_follower

    def reject(self, session: Session,
               follow_request: DBFollowRequest) -> None:
        self._consume()
        self._own(follow_request)
        try:
            session.delete(follow_request)
            session.flush()
        except SQLAlchemyError as e:
            logger.error('Could not reject follow request: %s', e)
            raise StoreError('Could not reject follow request') from e


class InstanceConfigurator(Capability):
    """Change an instance-wide setting."""

    permission = Permission.CONFIGURE_INSTANCE

    def set_setting(self, session: Session, key: str,
                    value: Any) -> DBInstanceSetting:
        self._consume()
        try:
            db_setting = session.query(DBInstanceSetting) \
                .filter(DBInstanceSetting.key == key) \
                .first()
            if db_setting is None:
                db_setting = DBInstanceSetting(key=key)
                session.add(db_setting)
            db_setting.value = value
            db_setting.updated_at = now()
            session.flush()
        except SQLAlchemyError as e:
            logger.error('Could not set instance setting %s: %s', key, e)
            raise StoreError('Could not configure instance') from e
        audit.instance_configured(self.user_id, key)
        return db_setting

    def unset_setting(self, session: Session, key: str) -> None:
        self._consume()
        try:
            session.query(DBInstanceSetting) \
                .filter(DBInstanceSetting.key == key) \
                .delete(synchronize_session='fetch')
            session.flush()
        except SQLAlchemyError as e:
            logger.error('Could not unset instance setting %s: %s', key, e)
            raise StoreError('Could not configure instance') from e
        audit.instance_configured(self.user_id, key)


class UserBanner(Capability):
    """Ban one specific user."""

    permission = Permission.BAN_USER

    def __init__(self, issuer: object, user_id: int,
                 target_user_id: int) -> None:
        super(UserBanner, self).__init__(issuer, user_id)
        self.target_user_id = target_user_id

    def ban(self, session: Session) -> None:
        """Mark the target banned. Banned users can no longer log in."""
        self._consume()
        try:
            updated = session.query(DBUser) \
                .filter(DBUser.id == self.target_user_id) \
                .update({DBUser.banned: True},
                        synchronize_session='fetch')
            session.flush()
        except SQLAlchemyError as e:
            logger.error('Could not ban user %s: %s', self.target_user_id, e)
            raise StoreError('Could not ban user') from e
        if updated != 1:
            raise StoreError(f'No user {self.target_user_id}')
        audit.user_banned(self.user_id, self.target_user_id)


class RoleGranter(Capability):
    """Grant any role to any user, as an administrator."""

    permission = Permission.GRANT_ROLE

    def grant_role(self, session: Session, user_id: int, role: Role) -> None:
        """Grant ``role`` to the user; a no-op if already granted."""
        self._consume()
        authorization.grant_role(session, user_id, role)
        audit.role_changed(self.user_id, user_id, role.value, granted=True)


class RoleRevoker(Capability):
    """Revoke any role from any user, as an administrator."""

    permission = Permission.REVOKE_ROLE

    def revoke_role(self, session: Session, user_id: int,
                    role: Role) -> None:
        """Revoke ``role`` from the user; a no-op if not granted."""
        self._consume()
        authorization.revoke_role(session, user_id, role)
        audit.role_changed(self.user_id, user_id, role.value, granted=False)


def _new_post(session: Session, actor_id: int, content: str, media_type: str,
              visibility: str, name: Optional[str], source: Optional[str],
              original_json: Optional[dict]) -> DBPost:
    db_post = DBPost(posted_by=actor_id,
                     name=name,
                     media_type=media_type,
                     content=content,
                     source=source,
                     visibility=visibility,
                     original_json=original_json or {},
                     created_at=now())
    session.add(db_post)
    return db_post


def _check(session: Session, user_id: int, permission: Permission,
           target: Optional[str] = None) -> None:
    """
    Make sure ``user_id`` holds ``permission`` right now.

    Raises
    ------
    :class:`.PermissionDenied`
    :class:`.AuthorizationStoreError`

    """
    try:
        allowed = authorization.has_permission(session, user_id, permission)
    except StoreError as e:
        raise AuthorizationStoreError('Could not check permission') from e
    audit.access_control(user_id, permission.value, allowed, target=target,
                         reason=None if allowed else 'missing permission')
    if not allowed:
        raise PermissionDenied(f'Not permitted to {permission.value}')


def _check_actor(session: Session, user_id: int, actor: DBActor,
                 permission: Permission) -> None:
    target = f'actor:{actor.id}'
    if actor.local_user is None or actor.local_user != user_id:
        audit.access_control(user_id, permission.value, False, target=target,
                             reason='not acting as own actor')
        raise PermissionDenied('Not acting as this actor')
    _check(session, user_id, permission, target=target)


def can_post(session: Session, user_id: int, actor: DBActor) -> PostMaker:
    """
    Check that the user may publish posts as ``actor``.

    ``actor`` must be a local actor belonging to the user.

    Raises
    ------
    :class:`.PermissionDenied`
    :class:`.AuthorizationStoreError`

    """
    _check_actor(session, user_id, actor, PostMaker.permission)
    return PostMaker(_ISSUER, user_id, actor)


def can_comment(session: Session, user_id: int,
                actor: DBActor) -> CommentMaker:
    """Check that the user may comment as ``actor``."""
    _check_actor(session, user_id, actor, CommentMaker.permission)
    return CommentMaker(_ISSUER, user_id, actor)


def can_follow(session: Session, user_id: int,
               actor: DBActor) -> ActorFollower:
    """Check that the user may follow other actors as ``actor``."""
    _check_actor(session, user_id, actor, ActorFollower.permission)
    return ActorFollower(_ISSUER, user_id, actor)


def can_manage_follow_requests(session: Session, user_id: int,
                               actor: DBActor) -> FollowRequestManager:
    """Check that the user may answer follow requests for ``actor``."""
    _check_actor(session, user_id, actor, FollowRequestManager.permission)
    return FollowRequestManager(_ISSUER, user_id, actor)


def can_configure_instance(session: Session,
                           user_id: int) -> InstanceConfigurator:
    """Check that the user may change instance-wide settings."""
    _check(session, user_id, InstanceConfigurator.permission)
    return InstanceConfigurator(_ISSUER, user_id)


def can_ban_user(session: Session, user_id: int,
                 target_user_id: int) -> UserBanner:
    """
    Check that the user may ban ``target_user_id``.

    Nobody may ban themselves, whatever roles they hold.

    Raises
    ------
    :class:`.PermissionDenied`
    :class:`.AuthorizationStoreError`

    """
    target = f'user:{target_user_id}'
    if target_user_id == user_id:
        audit.access_control(user_id, UserBanner.permission.value, False,
                             target=target, reason='cannot ban self')
        raise PermissionDenied('Users cannot ban themselves')
    _check(session, user_id, UserBanner.permission, target=target)
    return UserBanner(_ISSUER, user_id, target_user_id)


def can_grant_role(session: Session, user_id: int) -> RoleGranter:
    """Check that the user may grant roles to other users."""
    _check(session, user_id, RoleGranter.permission)
    return RoleGranter(_ISSUER, user_id)


def can_revoke_role(session: Session, user_id: int) -> RoleRevoker:
    """Check that the user may revoke roles from other users."""
    _check(session, user_id, RoleRevoker.permission)
    return RoleRevoker(_ISSUER, user_id)
