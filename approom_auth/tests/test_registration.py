"""Tests for :mod:`approom_auth.registration`."""

from unittest import TestCase, mock

from .. import sessionvars
from ..domain import BridgedIdentity
from ..passwords import SHA512, check_password
from ..registration import process_registration
from ..services import logins, users, verifications as store
from .util import temporary_db, verification_service, sent_code


class TestRegistrationFromBridgedLogin(TestCase):
    """A visitor arrives through a provider and registers an account."""

    def test_register(self):
        service = verification_service()
        with temporary_db():
            session = {}
            proxy, _ = service.identities.resolve_bridged_login(
                BridgedIdentity(provider='github', provider_user_id='77',
                                extra_data={'email': 'foo@bar.com'}),
                session
            )
            self.assertTrue(proxy.is_proxy)
            sessionvars.log_in(session, proxy)
            self.assertIsNone(sessionvars.get_user_id(session))

            started = process_registration({'email': 'foo@bar.com'},
                                           session, service)
            self.assertFalse(started.is_error, started.error_string())
            self.assertEqual(started.redirect, '/verify')
            self.assertFalse(users.email_exists('foo@bar.com'))

            verified = service.verify_code(sent_code(service), session)
            self.assertFalse(verified.is_error, verified.error_string())
            self.assertEqual(verified.redirect, '/register')

            finished = process_registration(
                {'username': 'foouser', 'real_name': 'Foo User',
                 'password': 'foopassword'},
                session, service, algorithm=SHA512
            )
            self.assertFalse(finished.is_error, finished.error_string())
            self.assertEqual(finished.redirect, '/profile')

            user = users.get_user_by_username_or_email('foouser')
            self.assertEqual(user.email, 'foo@bar.com')
            self.assertTrue(check_password('foopassword', user.password))
            self.assertEqual(sessionvars.get_user_id(session), user.user_id)
            self.assertEqual(
                logins.get_login_by_id(proxy.login_id).user_id, user.user_id
            )
            self.assertIsNone(sessionvars.get_verification_id(session))

    def test_details_up_front(self):
        """With every field given at first, the mailed link finishes it."""
        service = verification_service()
        with temporary_db():
            started = process_registration(
                {'email': 'foo@bar.com', 'username': 'foouser',
                 'password': 'foopassword'},
                {}, service, algorithm=SHA512
            )
            self.assertFalse(started.is_error, started.error_string())
            self.assertFalse(users.username_exists('foouser'))

            session = {}
            result = service.verify_code(sent_code(service), session)
            self.assertFalse(result.is_error, result.error_string())
            user = users.get_user_by_email('foo@bar.com')
            self.assertEqual(user.username, 'foouser')
            self.assertTrue(check_password('foopassword', user.password))

    def test_different_email_restarts(self):
        """Changing the address after verifying sends a new code."""
        service = verification_service()
        with temporary_db():
            session = {}
            process_registration({'email': 'foo@bar.com'}, session, service)
            service.verify_code(sent_code(service), session)

            result = process_registration(
                {'email': 'baz@bar.com', 'username': 'foouser',
                 'password': 'foopassword'},
                session, service, algorithm=SHA512
            )
            self.assertEqual(result.redirect, '/verify')
            self.assertEqual(service.mailer.send.call_args[0][0],
                             'baz@bar.com')
            self.assertFalse(users.username_exists('foouser'))

    def test_code_typed_in(self):
        """A code entered on the form counts like a followed link."""
        service = verification_service()
        with temporary_db():
            process_registration({'email': 'foo@bar.com'}, {}, service)
            code = sent_code(service)
            result = process_registration(
                {'code': code, 'username': 'foouser',
                 'password': 'foopassword'},
                {}, service, algorithm=SHA512
            )
            self.assertFalse(result.is_error, result.error_string())
            self.assertTrue(users.username_exists('foouser'))

    def test_code_used_concurrently(self):
        """A code consumed by another request first is refused cleanly."""
        service = verification_service()
        with temporary_db():
            process_registration({'email': 'foo@bar.com'}, {}, service)
            code = sent_code(service)
            with mock.patch.object(store, 'mark_used', return_value=False):
                result = process_registration(
                    {'code': code, 'username': 'foouser',
                     'password': 'foopassword'},
                    {}, service, algorithm=SHA512
                )
            self.assertTrue(result.is_error)
            self.assertIn('already been used', result.error_string())
            self.assertFalse(users.username_exists('foouser'))


class TestRegistrationValidation(TestCase):
    """Bad input is reported per field and nothing is sent."""

    def setUp(self):
        self.service = verification_service()

    def test_email_required(self):
        with temporary_db():
            result = process_registration({}, {}, self.service)
            self.assertTrue(result.has_field_error('email'))
            self.service.mailer.send.assert_not_called()

    def test_bad_email(self):
        with temporary_db():
            result = process_registration({'email': 'not-an-address'}, {},
                                          self.service)
            self.assertTrue(result.has_field_error('email'))

    def test_email_taken(self):
        with temporary_db():
            process_registration({'email': 'foo@bar.com', 'username': 'foo1',
                                  'password': 'foopassword'}, {},
                                 self.service, algorithm=SHA512)
            self.service.verify_code(sent_code(self.service), {})
            self.service.mailer.reset_mock()

            result = process_registration({'email': 'foo@bar.com'}, {},
                                          self.service)
            self.assertTrue(result.has_field_error('email'))
            self.service.mailer.send.assert_not_called()

    def test_reserved_username(self):
        with temporary_db():
            for name in ('admin', 'Administrator', 'support-team', 'root'):
                result = process_registration(
                    {'email': 'foo@bar.com', 'username': name}, {},
                    self.service
                )
                self.assertTrue(result.has_field_error('username'), name)

    def test_malformed_username(self):
        with temporary_db():
            for name in ('1foo', 'fo', 'foo bar', 'x' * 49):
                result = process_registration(
                    {'email': 'foo@bar.com', 'username': name}, {},
                    self.service
                )
                self.assertTrue(result.has_field_error('username'), name)

    def test_short_password(self):
        with temporary_db():
            result = process_registration(
                {'email': 'foo@bar.com', 'password': 'short'}, {},
                self.service
            )
            self.assertTrue(result.has_field_error('password'))

    def test_final_step_requires_fields(self):
        with temporary_db():
            session = {}
            process_registration({'email': 'foo@bar.com'}, session,
                                 self.service)
            self.service.verify_code(sent_code(self.service), session)
            result = process_registration({'username': 'foouser'}, session,
                                          self.service)
            self.assertTrue(result.has_field_error('password'))
