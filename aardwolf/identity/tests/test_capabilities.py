"""Tests for :mod:`aardwolf.identity.capabilities`."""

import copy
import pickle
from unittest import TestCase, mock

from sqlalchemy.exc import OperationalError

from .. import accounts, authorization, capabilities
from .. import audit as audit_module
from ..domain import Role
from ..exceptions import AuthorizationStoreError, NoSuchUser, \
    PermissionDenied, StateConsumed, StoreError
from ..models import DBComment, DBFollower, DBFollowRequest, \
    DBInstanceSetting, DBPost, DBUser
from .util import PASSWORD, add_actor, temporary_db


def _log_in(session, address, *roles):
    _, email, _ = accounts.register(session, address, PASSWORD, PASSWORD)
    for role in roles:
        authorization.grant_role(session, email.user_id, role)
    return accounts.authenticate(session, address, PASSWORD)


class TestIssue(TestCase):
    """Capabilities are only handed out after a successful check."""

    def test_own_actor(self):
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com', Role.VERIFIED)
            actor = add_actor(session, user.id)
            with self.assertLogs(audit_module.logger, 'INFO') as logs:
                maker = user.can_post(session, actor)
            self.assertIsInstance(maker, capabilities.PostMaker)
            self.assertEqual(maker.actor_id, actor.id)
            self.assertEqual(logs.records[0].audit['status'], 'ALLOWED')

    def test_other_users_actor(self):
        """A user cannot act as an actor that belongs to someone else."""
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com', Role.VERIFIED)
            other = _log_in(session, 'b@example.com', Role.VERIFIED)
            actor = add_actor(session, other.id)
            with self.assertLogs(audit_module.logger, 'INFO') as logs:
                with self.assertRaises(PermissionDenied):
                    user.can_post(session, actor)
            self.assertEqual(logs.records[0].audit['status'], 'DENIED')

    def test_remote_actor(self):
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com', Role.VERIFIED)
            actor = add_actor(session, None, 'remote')
            with self.assertRaises(PermissionDenied):
                user.can_follow(session, actor)

    def test_missing_permission(self):
        """An unverified user may not post, even as their own actor."""
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com')
            actor = add_actor(session, user.id)
            with self.assertRaises(PermissionDenied):
                user.can_post(session, actor)
            with self.assertRaises(PermissionDenied):
                user.can_configure_instance(session)

    def test_store_failure(self):
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com', Role.VERIFIED)
            actor = add_actor(session, user.id)
            with mock.patch.object(authorization, 'has_permission') \
                    as mock_has_permission:
                mock_has_permission.side_effect = StoreError('unavailable')
                with self.assertRaises(AuthorizationStoreError):
                    user.can_post(session, actor)

    def test_not_constructible(self):
        with temporary_db() as session:
            actor = add_actor(session, None)
            with self.assertRaises(TypeError):
                capabilities.PostMaker(object(), 1, actor)
            with self.assertRaises(TypeError):
                capabilities.RoleGranter(object(), 1)

    def test_not_serializable(self):
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com', Role.ADMIN)
            granter = user.can_grant_role(session)
            with self.assertRaises(TypeError):
                pickle.dumps(granter)
            with self.assertRaises(TypeError):
                copy.copy(granter)


class TestPostMaker(TestCase):
    """Tests for :class:`.PostMaker` and :class:`.CommentMaker`."""

    def test_make_post(self):
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com', Role.VERIFIED)
            actor = add_actor(session, user.id)
            maker = user.can_post(session, actor)
            db_post = maker.make_post(session, content='hello')
            self.assertEqual(session.get(DBPost, db_post.id).posted_by,
                             actor.id)
            with self.assertRaises(StateConsumed):
                maker.make_post(session, content='hello again')

    def test_make_comment(self):
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com', Role.VERIFIED)
            actor = add_actor(session, user.id)
            top = user.can_post(session, actor).make_post(session, 'top')
            reply, comment = user.can_comment(session, actor).make_comment(
                session, 'reply', conversation=top, parent=top
            )
            self.assertEqual(comment.post, reply.id)
            user.can_comment(session, actor).make_comment(
                session, 'nested', conversation=top, parent=reply
            )
            self.assertEqual(session.query(DBComment).count(), 2)

            other = user.can_post(session, actor).make_post(session, 'other')
            with self.assertRaises(ValueError):
                user.can_comment(session, actor).make_comment(
                    session, 'lost', conversation=top, parent=other
                )

    def test_failed_comment_keeps_earlier_work(self):
        """A failed comment leaves the caller's uncommitted posts alone."""
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com', Role.VERIFIED)
            actor = add_actor(session, user.id)
            top = user.can_post(session, actor).make_post(session, 'top')
            commenter = user.can_comment(session, actor)
            with mock.patch.object(capabilities, '_new_post') as mock_new:
                mock_new.side_effect = OperationalError('INSERT', {}, None)
                with self.assertRaises(StoreError):
                    commenter.make_comment(session, 'reply',
                                           conversation=top, parent=top)
            self.assertIsNotNone(session.get(DBPost, top.id))
            self.assertEqual(session.query(DBPost).count(), 1)
            self.assertEqual(session.query(DBComment).count(), 0)


class TestFollow(TestCase):
    """Tests for :class:`.ActorFollower` and :class:`.FollowRequestManager`."""

    def _setup(self, session):
        alice = _log_in(session, 'alice@example.com', Role.VERIFIED)
        bob = _log_in(session, 'bob@example.com', Role.VERIFIED)
        return alice, add_actor(session, alice.id, 'alice'), \
            bob, add_actor(session, bob.id, 'bob')

    def test_request_and_accept(self):
        with temporary_db() as session:
            alice, alice_actor, bob, bob_actor = self._setup(session)
            request = alice.can_follow(session, alice_actor) \
                .request_follow(session, bob_actor)
            again = alice.can_follow(session, alice_actor) \
                .request_follow(session, bob_actor)
            self.assertEqual(request.id, again.id)

            follower = bob.can_manage_follow_requests(session, bob_actor) \
                .accept(session, request)
            self.assertEqual(follower.follower, alice_actor.id)
            self.assertEqual(follower.follows, bob_actor.id)
            self.assertEqual(session.query(DBFollowRequest).count(), 0)
            self.assertEqual(session.query(DBFollower).count(), 1)

    def test_failed_accept_keeps_earlier_work(self):
        """A failed accept leaves the request and the caller's work alone."""
        with temporary_db() as session:
            alice, alice_actor, bob, bob_actor = self._setup(session)
            request = alice.can_follow(session, alice_actor) \
                .request_follow(session, bob_actor)
            manager = bob.can_manage_follow_requests(session, bob_actor)
            with mock.patch.object(session, 'delete') as mock_delete:
                mock_delete.side_effect = OperationalError('DELETE', {}, None)
                with self.assertRaises(StoreError):
                    manager.accept(session, request)
            self.assertEqual(session.query(DBFollower).count(), 0)
            self.assertEqual(session.query(DBFollowRequest).count(), 1)
            self.assertIsNotNone(session.get(DBUser, alice.id))
            self.assertIsNotNone(session.get(DBUser, bob.id))

    def test_reject(self):
        with temporary_db() as session:
            alice, alice_actor, bob, bob_actor = self._setup(session)
            request = alice.can_follow(session, alice_actor) \
                .request_follow(session, bob_actor)
            bob.can_manage_follow_requests(session, bob_actor) \
                .reject(session, request)
            self.assertEqual(session.query(DBFollowRequest).count(), 0)
            self.assertEqual(session.query(DBFollower).count(), 0)

    def test_manage_other_actors_request(self):
        """A request addressed to someone else cannot be accepted."""
        with temporary_db() as session:
            alice, alice_actor, bob, bob_actor = self._setup(session)
            request = alice.can_follow(session, alice_actor) \
                .request_follow(session, bob_actor)
            with self.assertRaises(PermissionDenied):
                alice.can_manage_follow_requests(session, alice_actor) \
                    .accept(session, request)
            self.assertEqual(session.query(DBFollower).count(), 0)

    def test_follow_self(self):
        with temporary_db() as session:
            alice, alice_actor, _, _ = self._setup(session)
            with self.assertRaises(ValueError):
                alice.can_follow(session, alice_actor) \
                    .request_follow(session, alice_actor)


class TestInstanceConfigurator(TestCase):
    def test_set_and_unset(self):
        with temporary_db() as session:
            admin = _log_in(session, 'admin@example.com', Role.ADMIN)
            admin.can_configure_instance(session) \
                .set_setting(session, 'registration', {'open': False})
            admin.can_configure_instance(session) \
                .set_setting(session, 'registration', {'open': True})
            setting = session.get(DBInstanceSetting, 'registration')
            self.assertEqual(setting.value, {'open': True})

            admin.can_configure_instance(session) \
                .unset_setting(session, 'registration')
            self.assertIsNone(session.get(DBInstanceSetting, 'registration'))


class TestUserBanner(TestCase):
    def test_moderator_bans(self):
        """A banned user can no longer be found to log in."""
        with temporary_db() as session:
            moderator = _log_in(session, 'mod@example.com', Role.MODERATOR)
            user = _log_in(session, 'a@example.com', Role.VERIFIED)
            moderator.can_ban_user(session, user.id).ban(session)
            self.assertTrue(session.get(DBUser, user.id).banned)
            with self.assertRaises(NoSuchUser):
                accounts.authenticate(session, 'a@example.com', PASSWORD)

    def test_ban_self(self):
        with temporary_db() as session:
            moderator = _log_in(session, 'mod@example.com', Role.MODERATOR)
            with self.assertRaises(PermissionDenied):
                moderator.can_ban_user(session, moderator.id)

    def test_verified_cannot_ban(self):
        with temporary_db() as session:
            user = _log_in(session, 'a@example.com', Role.VERIFIED)
            other = _log_in(session, 'b@example.com', Role.VERIFIED)
            with self.assertRaises(PermissionDenied):
                user.can_ban_user(session, other.id)

    def test_no_such_user(self):
        with temporary_db() as session:
            moderator = _log_in(session, 'mod@example.com', Role.MODERATOR)
            with self.assertRaises(StoreError):
                moderator.can_ban_user(session, 9999).ban(session)


class TestRoleCapabilities(TestCase):
    def test_grant_and_revoke(self):
        with temporary_db() as session:
            admin = _log_in(session, 'admin@example.com', Role.ADMIN)
            user = _log_in(session, 'a@example.com')
            admin.can_grant_role(session) \
                .grant_role(session, user.id, Role.VERIFIED)
            self.assertTrue(user.is_verified(session))
            admin.can_revoke_role(session) \
                .revoke_role(session, user.id, Role.VERIFIED)
            self.assertFalse(user.is_verified(session))

    def test_moderator_cannot_grant(self):
        with temporary_db() as session:
            moderator = _log_in(session, 'mod@example.com', Role.MODERATOR)
            with self.assertRaises(PermissionDenied):
                moderator.can_grant_role(session)
