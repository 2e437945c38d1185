"""Flask configuration."""

import os

SECRET_KEY = os.environ.get('SECRET_KEY', 'not-very-secret-session-key')
"""Signs the Flask session cookie. Set this in production."""

SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI',
                                         'sqlite:///approom.db')
SQLALCHEMY_TRACK_MODIFICATIONS = False

CREATE_DB = bool(int(os.environ.get('CREATE_DB', '0')))
"""Create the tables on startup; intended for development."""

LOGLEVEL = int(os.environ.get('LOGLEVEL', '20'))

#################### Tokens ####################
TOKEN_CRYPTO_KEY = os.environ.get('TOKEN_CRYPTO_KEY',
                                  'not-very-secret-token-key-change-me-please')
"""Key used to sign API tokens with HS256."""

TOKEN_ISSUER = os.environ.get('TOKEN_ISSUER', 'approom')
"""Value of the ``iss`` claim of every token we issue."""

TOKEN_EXPIRATION_SECS_ACCESS = int(
    os.environ.get('TOKEN_EXPIRATION_SECS_ACCESS', str(60 * 60))
)
"""Lifetime of an access token. Access tokens must always expire."""

TOKEN_EXPIRATION_SECS_REFRESH = int(
    os.environ.get('TOKEN_EXPIRATION_SECS_REFRESH', str(30 * 24 * 60 * 60))
)
"""Lifetime of a refresh token."""

#################### Passwords ####################
PASSWORD_ALGORITHM = os.environ.get('PASSWORD_ALGORITHM', 'bcrypt')
"""One of ``bcrypt``, ``sha512`` or ``plain`` (development only)."""

PASSWORD_BCRYPT_ROUNDS = int(os.environ.get('PASSWORD_BCRYPT_ROUNDS', '11'))

#################### Verification ####################
VERIFICATION_CODE_SECRET = os.environ.get('VERIFICATION_CODE_SECRET',
                                          'not-very-secret-code-key')
"""
HMAC key for verification code hashes.

Codes are hashed with a fixed key rather than a per-record salt so that a
presented code can be looked up directly.
"""

VERIFICATION_CODE_LENGTH = int(os.environ.get('VERIFICATION_CODE_LENGTH', '5'))

SITE_URL = os.environ.get('SITE_URL', 'http://localhost:5000')
"""Base of the links we mail out."""

#################### Login ####################
LOGIN_URL = os.environ.get('LOGIN_URL', '/login')
"""Where to divert anonymous users who hit a protected page."""

BRIDGED_LOGIN_CREATES_USER = bool(
    int(os.environ.get('BRIDGED_LOGIN_CREATES_USER', '0'))
)
"""
Create a full user right away on first bridged login.

When off (the default) a first-time bridged login yields an unsaved proxy user
and the real account is created when the visitor completes registration.
"""

#################### Mail ####################
MAIL_SERVER = os.environ.get('MAIL_SERVER', 'localhost')
MAIL_PORT = int(os.environ.get('MAIL_PORT', '25'))
MAIL_USERNAME = os.environ.get('MAIL_USERNAME', '')
MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD', '')
MAIL_USE_SSL = bool(int(os.environ.get('MAIL_USE_SSL', '0')))
MAIL_SENDER = os.environ.get('MAIL_SENDER', 'no-reply@localhost')
