"""
The collaborators the web layer needs, built once per application.

:func:`build_context` wires a :class:`AuthContext` from configuration; the
application factory stores it on ``app.extensions``. Request handlers reach it
through :func:`get_context`.
"""

from typing import Any, Mapping, NamedTuple, Optional

from flask import current_app, g, session

from .acl import PermissionEvaluator
from .domain import User
from .identity import IdentityResolver
from .mail import Mailer
from .services import users
from .tokens import TokenService
from .verification import VerificationService
from . import sessionvars

EXTENSION_KEY = 'approom_auth'


class AuthContext(NamedTuple):
    """Application-wide auth components."""

    config: Mapping[str, Any]
    tokens: TokenService
    mailer: Mailer
    identities: IdentityResolver
    verifications: VerificationService


def build_context(config: Mapping[str, Any],
                  mailer: Optional[Mailer] = None) -> AuthContext:
    """Construct the auth components from application configuration."""
    if mailer is None:
        mailer = Mailer(host=config['MAIL_SERVER'], port=config['MAIL_PORT'],
                        sender=config['MAIL_SENDER'],
                        username=config['MAIL_USERNAME'],
                        password=config['MAIL_PASSWORD'],
                        use_ssl=config['MAIL_USE_SSL'])
    tokens = TokenService(config['TOKEN_CRYPTO_KEY'], config['TOKEN_ISSUER'],
                          config['TOKEN_EXPIRATION_SECS_ACCESS'],
                          config['TOKEN_EXPIRATION_SECS_REFRESH'])
    identities = IdentityResolver(
        creates_users=config['BRIDGED_LOGIN_CREATES_USER']
    )
    verifications = VerificationService(
        mailer, identities, config['VERIFICATION_CODE_SECRET'],
        config['SITE_URL'], config['VERIFICATION_CODE_LENGTH']
    )
    return AuthContext(config=config, tokens=tokens, mailer=mailer,
                       identities=identities, verifications=verifications)


def get_context() -> AuthContext:
    """Get the :class:`AuthContext` of the current application."""
    context: AuthContext = current_app.extensions[EXTENSION_KEY]
    return context


def current_permissions() -> PermissionEvaluator:
    """Get the permission evaluator for this request."""
    if 'approom_permissions' not in g:
        g.approom_permissions = PermissionEvaluator()
    evaluator: PermissionEvaluator = g.approom_permissions
    return evaluator


def current_user() -> Optional[User]:
    """Get the user logged in on this session, if any."""
    if 'approom_user' not in g:
        user = None
        user_id = sessionvars.get_user_id(session)
        if user_id is not None:
            user = users.get_user_by_id(user_id)
            if user is not None:
                user = user._replace(login_id=sessionvars.get_login_id(session))
        g.approom_user = user
    found: Optional[User] = g.approom_user
    return found
