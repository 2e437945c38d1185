"""Provides JSON endpoints for login, registration, verification and tokens."""

from typing import Any, Dict, Optional, Tuple
from http import HTTPStatus
import logging

from flask import Blueprint, g, jsonify, request, session, Response
from werkzeug.exceptions import BadRequest, Unauthorized

from . import sessionvars
from .authenticate import authenticate
from .context import get_context, current_user
from .domain import BridgedIdentity, to_dict
from .exceptions import NoSuchUser, PasswordAuthenticationFailed, \
    InvalidToken
from .forms import validate
from .registration import process_registration
from .result import Result
from .services import users
from .decorators import token_required
from .tokens import ACCESS, REFRESH, minimal_profile

logger = logging.getLogger(__name__)

blueprint = Blueprint('approom_auth', __name__, url_prefix='')

ResponseData = Tuple[Response, int]


def _params() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    return dict(data)


def _respond(result: Result) -> ResponseData:
    status = HTTPStatus.BAD_REQUEST if result.is_error else HTTPStatus.OK
    return jsonify(result.to_dict()), status


def _user_data(user: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = to_dict(user)
    data.pop('password', None)
    return data


@blueprint.route('/login', methods=['POST'])
def login() -> ResponseData:
    """Log in with username (or email) and password."""
    params = _params()
    result = Result()
    context = get_context()
    try:
        user = authenticate(params.get('username', ''),
                            params.get('password', ''),
                            context.config['PASSWORD_ALGORITHM'],
                            context.config['PASSWORD_BCRYPT_ROUNDS'])
    except NoSuchUser:
        result.push_field_error('username', 'No account has that username'
                                ' or email address.')
        return jsonify(result.to_dict()), HTTPStatus.UNAUTHORIZED
    except PasswordAuthenticationFailed:
        result.push_field_error('password', 'Incorrect password.')
        return jsonify(result.to_dict()), HTTPStatus.UNAUTHORIZED
    sessionvars.log_in(session, user)
    result.push_success(f'You are now logged in as {user.username}.')
    result.redirect = sessionvars.clear_diversion(session) or '/'
    return _respond(result)


@blueprint.route('/logout', methods=['POST'])
def logout() -> ResponseData:
    sessionvars.log_out(session)
    return _respond(Result().push_success('You have been logged out.'))


@blueprint.route('/register', methods=['POST'])
def register() -> ResponseData:
    """Start or finish registration."""
    context = get_context()
    result = process_registration(
        _params(), session, context.verifications, request.remote_addr,
        context.config['PASSWORD_ALGORITHM'],
        context.config['PASSWORD_BCRYPT_ROUNDS']
    )
    return _respond(result)


@blueprint.route('/verify/code/<string:code>', methods=['GET', 'POST'])
def verify_code(code: str) -> ResponseData:
    """Act on a mailed verification link."""
    result = get_context().verifications.verify_code(
        code, session, request.remote_addr, _params()
    )
    return _respond(result)


@blueprint.route('/verify/one-time-login', methods=['POST'])
def request_one_time_login() -> ResponseData:
    """Mail a one-time login code."""
    email = _params().get('email')
    if not email:
        raise BadRequest('Email is required')
    user = users.get_user_by_email(email)
    # Same response whether or not the account exists.
    if user is not None:
        get_context().verifications.request_one_time_login(
            user, request.remote_addr
        )
    return _respond(Result().push_success(
        f'If {email} belongs to an account, a login code has been sent to it.'
    ))


@blueprint.route('/profile/email', methods=['POST'])
def request_email_change() -> ResponseData:
    """Mail a code confirming a new email address."""
    user = current_user()
    if user is None:
        raise Unauthorized('Log in to change your email address')
    new_email = _params().get('email')
    result = validate({'email': new_email}, required=['email'],
                      existing_user=user)
    if result.is_error:
        return _respond(result)
    get_context().verifications.request_email_change(user, new_email,
                                                     request.remote_addr)
    return _respond(result.push_success(
        f'A confirmation code has been sent to {new_email}.'
    ))


@blueprint.route('/api/token/refresh', methods=['POST'])
def refresh_token() -> ResponseData:
    """Exchange a username and password for a refresh token."""
    params = _params()
    config = get_context().config
    try:
        user = authenticate(params.get('username', ''),
                            params.get('password', ''),
                            config['PASSWORD_ALGORITHM'],
                            config['PASSWORD_BCRYPT_ROUNDS'])
    except (NoSuchUser, PasswordAuthenticationFailed) as e:
        raise Unauthorized('Invalid username or password') from e
    api_code = users.ensure_api_code(user.user_id)
    token = get_context().tokens.make_refresh_token(user, api_code)
    return jsonify({'token': token.token, 'token_type': REFRESH,
                    'expires': token.expires.isoformat()
                    if token.expires else None}), HTTPStatus.OK


@blueprint.route('/api/token/access', methods=['POST'])
def access_token() -> ResponseData:
    """Exchange a refresh token for an access token."""
    refresh = _params().get('token')
    if not refresh:
        raise BadRequest('A refresh token is required')
    tokens = get_context().tokens
    try:
        claims = tokens.validate_for_user(refresh, REFRESH,
                                          users.get_api_code)
    except InvalidToken as e:
        raise Unauthorized(str(e)) from e
    token = tokens.make_access_token(claims)
    return jsonify({'token': token.token, 'token_type': ACCESS,
                    'expires': token.expires.isoformat()
                    if token.expires else None}), HTTPStatus.OK


@blueprint.route('/api/tokentest', methods=['GET'])
@token_required(ACCESS)
def token_test() -> ResponseData:
    """Report who an access token belongs to."""
    return jsonify({'user': minimal_profile(g.token_user)}), HTTPStatus.OK


@blueprint.route('/api/logout-everywhere', methods=['POST'])
@token_required(ACCESS)
def logout_everywhere() -> ResponseData:
    """Revoke every token issued to the bearer."""
    users.bump_api_code(g.token_user.user_id)
    return _respond(Result().push_success('All of your tokens have been'
                                          ' revoked.'))


def complete_bridged_login(identity: BridgedIdentity,
                           ip: Optional[str] = None) -> ResponseData:
    """
    Finish a third-party login once the provider has authenticated the user.

    Provider callback routes call this with the identity they received.
    Visitors without an account are logged in as a proxy user and sent on to
    registration.
    """
    user, result = get_context().identities.resolve_bridged_login(
        identity, session, ip
    )
    sessionvars.log_in(session, user)
    if user.is_proxy:
        result.redirect = '/register'
    else:
        users.touch_login(user.user_id)
        result.redirect = sessionvars.clear_diversion(session) or '/'
    response = result.to_dict()
    response['user'] = _user_data(user)
    return jsonify(response), HTTPStatus.OK
