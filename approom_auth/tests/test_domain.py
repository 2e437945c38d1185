"""Tests for :mod:`approom_auth.domain`."""

from unittest import TestCase
from datetime import datetime, timedelta

from pytz import UTC

from ..domain import HashedPassword, User, Verification, RoleAssignment, \
    BridgedIdentity, ALL, to_dict, from_dict


class TestSerialization(TestCase):
    """Domain objects survive a trip through JSON-friendly dicts."""

    def test_nested(self):
        created = datetime(2020, 3, 4, 5, 6, 7, tzinfo=UTC)
        user = User(username='foo', email='foo@bar.com', user_id=2,
                    password=HashedPassword(hash='x', algorithm='sha512',
                                            version=2, created=created,
                                            salt='abc'))
        data = to_dict(user)
        self.assertEqual(data['password']['created'], created.isoformat())
        self.assertEqual(from_dict(User, data), user)

    def test_naive_datetime_is_utc(self):
        password = from_dict(HashedPassword, {
            'hash': 'x', 'algorithm': 'plain', 'version': 2,
            'created': '2020-03-04T05:06:07'
        })
        self.assertEqual(password.created.tzinfo, UTC)


class TestVerification(TestCase):
    """Expiry is reached at the expiration date itself."""

    def test_is_expired(self):
        now = datetime.now(tz=UTC)
        record = Verification(vtype='onetimeLogin', unique_code_hashed='x',
                              creation_date=now,
                              expiration_date=now + timedelta(minutes=5))
        self.assertFalse(record.is_expired(now))
        self.assertTrue(record.is_expired(record.expiration_date))
        self.assertFalse(record.is_used)
        self.assertEqual(record.get_extra('username', 'none'), 'none')


class TestRoleAssignment(TestCase):
    def test_str(self):
        self.assertEqual(str(RoleAssignment(user_id=1, role='owner',
                                            object_type='room',
                                            object_id='3')),
                         'owner of room #3')
        grant = RoleAssignment(user_id=1, role='globalMod',
                               object_type='site')
        self.assertEqual(grant.object_id, ALL)
        self.assertTrue(grant.is_global)


class TestBridgedIdentity(TestCase):
    def test_profile(self):
        identity = BridgedIdentity('github', '1', {'name': 'Foo',
                                                   'email': 'f@bar.com'})
        self.assertEqual(identity.display_name, 'Foo')
        self.assertEqual(identity.email, 'f@bar.com')
        self.assertIsNone(BridgedIdentity('github', '1').display_name)
