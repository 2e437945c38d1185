"""Tests for :mod:`approom_auth.passwords`."""

from unittest import TestCase
from datetime import datetime
import string

from hypothesis import given, settings
from hypothesis import strategies as st
from pytz import UTC

from .. import passwords
from ..domain import HashedPassword
from ..exceptions import ConfigurationError


class TestBcrypt(TestCase):
    """Passwords hashed with the default algorithm."""

    @given(st.text(alphabet=string.printable, max_size=100))
    @settings(max_examples=25, deadline=None)
    def test_check_passwords_successful(self, passw):
        hashed = passwords.hash_password(passw, rounds=4)
        self.assertTrue(passwords.check_password(passw, hashed),
                        f"should work for password '{passw}'")

    @given(st.text(alphabet=string.printable, max_size=100), st.text())
    @settings(max_examples=25, deadline=None)
    def test_check_passwords_fuzz(self, passw, fuzzpw):
        hashed = passwords.hash_password(passw, rounds=4)
        self.assertEqual(passwords.check_password(fuzzpw, hashed),
                         passw == fuzzpw)

    def test_long_passwords_are_not_truncated(self):
        """Passwords that share a long prefix are still told apart."""
        hashed = passwords.hash_password('x' * 100 + 'a', rounds=4)
        self.assertFalse(passwords.check_password('x' * 100 + 'b', hashed))

    def test_hash_metadata(self):
        hashed = passwords.hash_password('foopassword', rounds=4)
        self.assertEqual(hashed.algorithm, passwords.BCRYPT)
        self.assertEqual(hashed.version, passwords.CURRENT_VERSION)
        self.assertEqual(hashed.rounds, 4)
        self.assertIsNone(hashed.salt)
        self.assertNotIn('foopassword', hashed.hash)

    def test_default_rounds(self):
        self.assertEqual(passwords.DEFAULT_ROUNDS, 11)


class TestSHA512(TestCase):
    """Passwords hashed with salted HMAC-SHA512."""

    @given(st.text(), st.text())
    @settings(max_examples=200)
    def test_check_passwords_fuzz(self, passw, fuzzpw):
        hashed = passwords.hash_password(passw, passwords.SHA512)
        self.assertEqual(passwords.check_password(fuzzpw, hashed),
                         passw == fuzzpw)

    def test_salt_is_random(self):
        first = passwords.hash_password('foo', passwords.SHA512)
        second = passwords.hash_password('foo', passwords.SHA512)
        self.assertEqual(len(first.salt), passwords.SALT_LENGTH)
        self.assertNotEqual(first.salt, second.salt)
        self.assertNotEqual(first.hash, second.hash)


class TestCheckPassword(TestCase):
    """Edge cases of :func:`.passwords.check_password`."""

    def test_missing_hash(self):
        """A user without a password cannot log in, even with a blank one."""
        self.assertFalse(passwords.check_password('', None))
        self.assertFalse(passwords.check_password('foo', None))

    def test_empty_hash(self):
        empty = HashedPassword(hash='', algorithm=passwords.PLAIN, version=2,
                               created=datetime.now(tz=UTC))
        self.assertFalse(passwords.check_password('', empty))

    def test_unknown_algorithm(self):
        """An unknown algorithm is a configuration problem, not a mismatch."""
        weird = HashedPassword(hash='abc', algorithm='rot13', version=2,
                               created=datetime.now(tz=UTC))
        with self.assertRaises(ConfigurationError):
            passwords.check_password('abc', weird)
        with self.assertRaises(ConfigurationError):
            passwords.hash_password('abc', 'rot13')

    def test_plain(self):
        hashed = passwords.hash_password('foo', passwords.PLAIN)
        self.assertTrue(passwords.check_password('foo', hashed))
        self.assertFalse(passwords.check_password('bar', hashed))

    def test_malformed_bcrypt_hash(self):
        broken = HashedPassword(hash='not-a-hash', algorithm=passwords.BCRYPT,
                                version=2, created=datetime.now(tz=UTC))
        self.assertFalse(passwords.check_password('foo', broken))


class TestIsOutdated(TestCase):
    """Old hashes are flagged for replacement."""

    def test_current(self):
        hashed = passwords.hash_password('foo', rounds=4)
        self.assertFalse(passwords.is_outdated(hashed))

    def test_old_version(self):
        hashed = passwords.hash_password('foo', rounds=4)._replace(version=1)
        self.assertTrue(passwords.is_outdated(hashed))

    def test_other_algorithm(self):
        hashed = passwords.hash_password('foo', passwords.SHA512)
        self.assertTrue(passwords.is_outdated(hashed))
        self.assertFalse(passwords.is_outdated(hashed, passwords.SHA512))
