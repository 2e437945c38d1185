"""Tests for the HTTP endpoints and route decorators."""

from unittest import TestCase, mock
from http import HTTPStatus

from flask import jsonify

from .. import acl, passwords, sessionvars
from ..context import get_context
from ..decorators import permission_required
from ..domain import BridgedIdentity, User
from ..factory import create_web_app
from ..mail import Mailer
from ..routes import complete_bridged_login
from ..services import users
from .util import SITE_URL, sent_code


class RouteTestCase(TestCase):
    """Runs each test against a fresh application and in-memory database."""

    def setUp(self):
        self.mailer = mock.MagicMock(spec=Mailer)
        self.app = create_web_app(
            mailer=self.mailer,
            SQLALCHEMY_DATABASE_URI='sqlite:///:memory:',
            CREATE_DB=True,
            TESTING=True,
            SITE_URL=SITE_URL,
            PASSWORD_BCRYPT_ROUNDS=4,
        )

        @self.app.route('/room/<int:room_id>/edit')
        @permission_required(acl.EDIT, acl.ROOM, id_param='room_id')
        def edit_room(room_id: int):
            return jsonify({'room_id': room_id})

        self.client = self.app.test_client()
        with self.app.app_context():
            self.user = users.create_user(User(
                username='foouser', email='foo@bar.com',
                password=passwords.hash_password('foopassword',
                                                 passwords.BCRYPT, 4)
            ))

    def log_in(self):
        response = self.client.post('/login', json={
            'username': 'foouser', 'password': 'foopassword'
        })
        self.assertEqual(response.status_code, HTTPStatus.OK)
        return response

    def mailed_code(self) -> str:
        with self.app.app_context():
            return sent_code(get_context().verifications)


class TestLogin(RouteTestCase):
    """Password login and logout."""

    def test_login(self):
        response = self.log_in()
        self.assertEqual(response.json['redirect'], '/')
        with self.client.session_transaction() as session:
            self.assertEqual(sessionvars.get_user_id(session),
                             self.user.user_id)

        self.client.post('/logout')
        with self.client.session_transaction() as session:
            self.assertIsNone(sessionvars.get_user_id(session))

    def test_wrong_password(self):
        response = self.client.post('/login', json={
            'username': 'foouser', 'password': 'nope'
        })
        self.assertEqual(response.status_code, HTTPStatus.UNAUTHORIZED)
        self.assertIn('password', response.json['field_errors'])

    def test_unknown_user(self):
        response = self.client.post('/login', json={
            'username': 'nobody', 'password': 'foopassword'
        })
        self.assertEqual(response.status_code, HTTPStatus.UNAUTHORIZED)
        self.assertIn('username', response.json['field_errors'])


class TestPermissionRequired(RouteTestCase):
    """Protected pages divert, refuse or allow."""

    def test_anonymous_is_diverted(self):
        response = self.client.get('/room/3/edit')
        self.assertEqual(response.status_code, HTTPStatus.FOUND)
        self.assertTrue(response.headers['Location'].endswith('/login'))
        with self.client.session_transaction() as session:
            self.assertTrue(session[sessionvars.DIVERTED_URL]
                            .startswith('/room/3/edit'))

        response = self.log_in()
        self.assertTrue(response.json['redirect'].startswith('/room/3/edit'))

    def test_denied(self):
        self.log_in()
        response = self.client.get('/room/3/edit')
        self.assertEqual(response.status_code, HTTPStatus.FORBIDDEN)
        self.assertEqual(response.json['reason'], 'Access denied')

    def test_allowed(self):
        with self.app.app_context():
            acl.PermissionEvaluator().grant_role(self.user.user_id, acl.OWNER,
                                                 acl.ROOM, 3)
        self.log_in()
        response = self.client.get('/room/3/edit')
        self.assertEqual(response.status_code, HTTPStatus.OK)
        self.assertEqual(response.json, {'room_id': 3})
        self.assertEqual(self.client.get('/room/4/edit').status_code,
                         HTTPStatus.FORBIDDEN)


class TestTokens(RouteTestCase):
    """Refresh, access, use and revoke API tokens."""

    def test_token_lifecycle(self):
        response = self.client.post('/api/token/refresh', json={
            'username': 'foouser', 'password': 'foopassword'
        })
        self.assertEqual(response.status_code, HTTPStatus.OK)
        self.assertEqual(response.json['token_type'], 'refresh')
        refresh = response.json['token']

        response = self.client.post('/api/token/access',
                                    json={'token': refresh})
        self.assertEqual(response.status_code, HTTPStatus.OK)
        access = response.json['token']
        headers = {'Authorization': f'Bearer {access}'}

        response = self.client.get('/api/tokentest', headers=headers)
        self.assertEqual(response.status_code, HTTPStatus.OK)
        self.assertEqual(response.json['user']['id'], self.user.user_id)
        self.assertEqual(response.json['user']['username'], 'foouser')

        response = self.client.post('/api/logout-everywhere',
                                    headers=headers)
        self.assertEqual(response.status_code, HTTPStatus.OK)

        response = self.client.get('/api/tokentest', headers=headers)
        self.assertEqual(response.status_code, HTTPStatus.UNAUTHORIZED)
        response = self.client.post('/api/token/access',
                                    json={'token': refresh})
        self.assertEqual(response.status_code, HTTPStatus.UNAUTHORIZED)

    def test_refresh_token_is_not_access_token(self):
        response = self.client.post('/api/token/refresh', json={
            'username': 'foouser', 'password': 'foopassword'
        })
        headers = {'Authorization': f'Bearer {response.json["token"]}'}
        response = self.client.get('/api/tokentest', headers=headers)
        self.assertEqual(response.status_code, HTTPStatus.UNAUTHORIZED)

    def test_bad_credentials(self):
        response = self.client.post('/api/token/refresh', json={
            'username': 'foouser', 'password': 'nope'
        })
        self.assertEqual(response.status_code, HTTPStatus.UNAUTHORIZED)

    def test_no_token(self):
        self.assertEqual(self.client.get('/api/tokentest').status_code,
                         HTTPStatus.UNAUTHORIZED)
        response = self.client.post('/api/token/access', json={})
        self.assertEqual(response.status_code, HTTPStatus.BAD_REQUEST)


class TestVerificationRoutes(RouteTestCase):
    """Registration, one-time login and email change over HTTP."""

    def test_register(self):
        response = self.client.post('/register', json={
            'email': 'new@bar.com', 'username': 'newuser',
            'password': 'newpassword'
        })
        self.assertEqual(response.status_code, HTTPStatus.OK)
        self.assertEqual(response.json['redirect'], '/verify')

        response = self.client.get(f'/verify/code/{self.mailed_code()}')
        self.assertEqual(response.status_code, HTTPStatus.OK)
        with self.app.app_context():
            self.assertTrue(users.username_exists('newuser'))

        response = self.client.get(f'/verify/code/{self.mailed_code()}')
        self.assertEqual(response.status_code, HTTPStatus.BAD_REQUEST)

    def test_code_ignores_supplied_password_hash(self):
        response = self.client.post('/register', json={'email': 'new@bar.com'})
        self.assertEqual(response.status_code, HTTPStatus.OK)

        response = self.client.post(
            f'/verify/code/{self.mailed_code()}',
            json={'username': 'eviluser',
                  'password_hashed': {'hash': 'x', 'algorithm': 'plain',
                                      'version': 2}}
        )
        self.assertEqual(response.status_code, HTTPStatus.OK)
        self.assertEqual(response.json['redirect'], '/register')
        with self.app.app_context():
            self.assertFalse(users.username_exists('eviluser'))

        response = self.client.post('/login', json={
            'username': 'eviluser', 'password': 'x'
        })
        self.assertEqual(response.status_code, HTTPStatus.UNAUTHORIZED)

    def test_register_invalid(self):
        response = self.client.post('/register', json={'email': 'nope'})
        self.assertEqual(response.status_code, HTTPStatus.BAD_REQUEST)
        self.assertIn('email', response.json['field_errors'])

    def test_one_time_login(self):
        response = self.client.post('/verify/one-time-login',
                                    json={'email': 'foo@bar.com'})
        self.assertEqual(response.status_code, HTTPStatus.OK)
        response = self.client.post(f'/verify/code/{self.mailed_code()}')
        self.assertEqual(response.status_code, HTTPStatus.OK)
        with self.client.session_transaction() as session:
            self.assertEqual(sessionvars.get_user_id(session),
                             self.user.user_id)

    def test_one_time_login_unknown_email(self):
        """The response does not reveal whether the account exists."""
        response = self.client.post('/verify/one-time-login',
                                    json={'email': 'nobody@bar.com'})
        self.assertEqual(response.status_code, HTTPStatus.OK)
        self.mailer.send.assert_not_called()

    def test_change_email(self):
        self.assertEqual(
            self.client.post('/profile/email',
                             json={'email': 'new@bar.com'}).status_code,
            HTTPStatus.UNAUTHORIZED
        )
        self.log_in()
        response = self.client.post('/profile/email',
                                    json={'email': 'new@bar.com'})
        self.assertEqual(response.status_code, HTTPStatus.OK)
        response = self.client.get(f'/verify/code/{self.mailed_code()}')
        self.assertEqual(response.status_code, HTTPStatus.OK)
        with self.app.app_context():
            self.assertEqual(users.get_user_by_id(self.user.user_id).email,
                             'new@bar.com')


class TestCompleteBridgedLogin(RouteTestCase):
    """Provider callbacks hand their identity to the login flow."""

    def test_proxy_then_register(self):
        identity = BridgedIdentity(provider='github', provider_user_id='55',
                                   extra_data={'email': 'gh@bar.com'})
        with self.app.test_request_context('/auth/github/callback'):
            response, status = complete_bridged_login(identity, '10.0.0.1')
            self.assertEqual(status, HTTPStatus.OK)
            self.assertEqual(response.json['redirect'], '/register')
            self.assertIsNone(response.json['user']['user_id'])
            self.assertNotIn('password', response.json['user'])

    def test_linked_user(self):
        with self.app.app_context():
            get_context().identities.resolve_bridged_login(
                BridgedIdentity(provider='github', provider_user_id='56'),
                {sessionvars.USER_ID: self.user.user_id}
            )
        identity = BridgedIdentity(provider='github', provider_user_id='56')
        with self.app.test_request_context('/auth/github/callback'):
            response, status = complete_bridged_login(identity)
            self.assertEqual(response.json['user']['user_id'],
                             self.user.user_id)
            self.assertEqual(response.json['redirect'], '/')
