"""Tests for :mod:`aardwolf.identity.tokens`."""

import os
from unittest import TestCase, mock

from .. import tokens
from ..exceptions import CreationError, TokenVerificationFailed, \
    VerificationProcessFailed


class TestCreateToken(TestCase):
    """Tests for :func:`.tokens.create_token`."""

    def test_pair(self):
        """The hash is the digest of the plaintext, never the plaintext."""
        token, hashed = tokens.create_token()
        self.assertNotEqual(str(token), hashed.to_storage())
        self.assertEqual(len(hashed.to_storage()), 64)
        tokens.verify_token(hashed, token)

    def test_unique(self):
        issued = {str(tokens.create_token()[0]) for _ in range(50)}
        self.assertEqual(len(issued), 50)

    def test_redacted(self):
        token, hashed = tokens.create_token()
        self.assertNotIn(str(token), repr(token))
        self.assertNotIn(hashed.to_storage(), repr(hashed))
        self.assertNotIn(hashed.to_storage(), str(hashed))

    @mock.patch.dict(os.environ, {'EMAIL_TOKEN_BYTES': '16'})
    def test_configured_entropy(self):
        token, _ = tokens.create_token()
        # 16 bytes, base64 without padding.
        self.assertEqual(len(str(token)), 22)

    @mock.patch(f'{tokens.__name__}.secrets.token_urlsafe')
    def test_no_entropy(self, mock_token_urlsafe):
        """Failure to read random bytes is a creation error."""
        mock_token_urlsafe.side_effect = NotImplementedError
        with self.assertRaises(CreationError):
            tokens.create_token()


class TestVerifyToken(TestCase):
    """Tests for :func:`.tokens.verify_token`."""

    def test_cross_pairing(self):
        """A token only matches the hash it was issued with."""
        pairs = [tokens.create_token() for _ in range(5)]
        for i, (_, hashed) in enumerate(pairs):
            for j, (token, _) in enumerate(pairs):
                if i == j:
                    tokens.verify_token(hashed, token)
                else:
                    with self.assertRaises(TokenVerificationFailed):
                        tokens.verify_token(hashed, token)

    def test_tampered(self):
        token, hashed = tokens.create_token()
        with self.assertRaises(TokenVerificationFailed):
            tokens.verify_token(hashed, tokens.EmailToken(str(token) + 'x'))

    def test_malformed_digest(self):
        """A stored digest that is not hex SHA-256 is a process failure."""
        token, _ = tokens.create_token()
        with self.assertLogs(tokens.logger, 'ERROR'):
            with self.assertRaises(VerificationProcessFailed):
                tokens.verify_token(tokens.HashedEmailToken('bogus'), token)
