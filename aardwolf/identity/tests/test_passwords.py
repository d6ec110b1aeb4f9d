"""Tests for :mod:`aardwolf.identity.passwords`."""

import string
from unittest import TestCase

from hypothesis import given, settings
from hypothesis import strategies as st

from .. import passwords
from ..exceptions import CreationError, InvalidPassword, \
    PasswordAuthenticationFailed, PasswordMismatch, VerificationProcessFailed
from .util import make_app

ANY_LENGTH = passwords.PasswordPolicy(min_length=1)


class AppContextTestCase(TestCase):
    """Run every test inside an application context with a cheap hash cost."""

    @classmethod
    def setUpClass(cls):
        cls.app = make_app()
        cls.context = cls.app.app_context()
        cls.context.push()

    @classmethod
    def tearDownClass(cls):
        cls.context.pop()


class TestValidate(AppContextTestCase):
    """Tests for :func:`.passwords.validate`."""

    def test_empty(self):
        """An empty password is never valid."""
        with self.assertRaises(InvalidPassword):
            passwords.validate('', ANY_LENGTH)

    def test_too_short(self):
        """The default policy takes the minimum length from config."""
        with self.assertRaises(InvalidPassword):
            passwords.validate('short')
        self.assertIsInstance(passwords.validate('longenough'),
                              passwords.ValidatedPassword)

    def test_too_long(self):
        """Anything over 72 UTF-8 bytes is rejected."""
        passwords.validate('a' * 72, ANY_LENGTH)
        with self.assertRaises(InvalidPassword):
            passwords.validate('a' * 73, ANY_LENGTH)
        # 25 characters, 75 bytes.
        with self.assertRaises(InvalidPassword):
            passwords.validate('✓' * 25, ANY_LENGTH)

    def test_extra_checks(self):
        """Extra checks can reject a password with a reason."""
        def no_horses(value):
            return 'No horses' if 'horse' in value else None

        policy = passwords.PasswordPolicy(min_length=1, checks=(no_horses,))
        with self.assertRaises(InvalidPassword) as caught:
            passwords.validate('correcthorse', policy)
        self.assertEqual(str(caught.exception), 'No horses')
        passwords.validate('batterystaple', policy)

    def test_accepts_wrapped_plaintext(self):
        validated = passwords.validate(
            passwords.PlaintextPassword('correcthorse')
        )
        self.assertEqual(len(validated), len('correcthorse'))


class TestCompare(AppContextTestCase):
    """Tests for :func:`.passwords.compare`."""

    def test_same(self):
        validated = passwords.validate('correcthorse')
        self.assertIs(passwords.compare(validated, 'correcthorse'), validated)

    def test_different(self):
        validated = passwords.validate('correcthorse')
        with self.assertRaises(PasswordMismatch):
            passwords.compare(validated, 'correcthorsE')

    def test_exact_bytes(self):
        """Canonically equivalent but differently encoded text differs."""
        validated = passwords.validate('caf\u00e9caf\u00e9')
        with self.assertRaises(PasswordMismatch):
            passwords.compare(validated, 'cafe\u0301cafe\u0301')


class TestRedaction(AppContextTestCase):
    """Secrets never render their value."""

    def test_redacted(self):
        validated = passwords.validate('correcthorse')
        hashed = passwords.hash_password(validated)
        for secret in (passwords.PlaintextPassword('correcthorse'),
                       validated, hashed):
            self.assertEqual(repr(secret), passwords.REDACTED)
            self.assertEqual(str(secret), passwords.REDACTED)
            self.assertNotIn('correcthorse', f'{secret!r} {secret}')


class TestHashPassword(AppContextTestCase):
    """Tests for :func:`.passwords.hash_password`."""

    def test_requires_validation(self):
        with self.assertRaises(TypeError):
            passwords.hash_password('correcthorse')

    def test_salted(self):
        """Hashing the same password twice gives two different hashes."""
        validated = passwords.validate('correcthorse')
        first = passwords.hash_password(validated)
        second = passwords.hash_password(validated)
        self.assertNotEqual(first, second)
        self.assertTrue(first.to_storage().startswith('$2b$04$'))

    def test_bad_cost(self):
        """A cost bcrypt cannot use is a creation error."""
        self.app.config['PASSWORD_HASH_COST'] = 2
        try:
            with self.assertRaises(CreationError):
                passwords.hash_password(passwords.validate('correcthorse'))
        finally:
            self.app.config['PASSWORD_HASH_COST'] = 4


class TestCheckPassword(AppContextTestCase):
    """Tests for :func:`.passwords.check_password`."""

    @given(st.text(alphabet=string.printable, min_size=1, max_size=72))
    @settings(max_examples=25, deadline=None)
    def test_check_passwords_successful(self, passw):
        hashed = passwords.hash_password(passwords.validate(passw, ANY_LENGTH))
        passwords.check_password(hashed, passw)

    @given(st.text(alphabet=string.printable, min_size=1, max_size=72),
           st.text(alphabet=string.printable + 'ä✓\U0001f98a',
                   max_size=80))
    @settings(max_examples=25, deadline=None)
    def test_check_passwords_fuzz(self, passw, fuzzpw):
        hashed = passwords.hash_password(passwords.validate(passw, ANY_LENGTH))
        if passw == fuzzpw:
            passwords.check_password(hashed, fuzzpw)
        else:
            with self.assertRaises(PasswordAuthenticationFailed):
                passwords.check_password(hashed, fuzzpw)

    def test_corrupt_hash(self):
        """A stored hash bcrypt cannot parse is a process failure."""
        with self.assertLogs(passwords.logger, 'ERROR'):
            with self.assertRaises(VerificationProcessFailed):
                passwords.check_password(passwords.PasswordHash('nope'),
                                         'correcthorse')

    def test_wrong_password_not_logged_as_error(self):
        hashed = passwords.hash_password(passwords.validate('correcthorse'))
        with self.assertRaises(PasswordAuthenticationFailed):
            passwords.check_password(hashed, 'batterystaple')
