"""
Hashing and checking of local passwords.

Every hash records the algorithm that made it and a format version, so that a
hash made under an older policy can be recognized with :func:`is_outdated` and
replaced the next time the user logs in.
"""

from typing import Optional
from datetime import datetime
from base64 import b64encode
import hashlib
import hmac
import logging
import secrets

import bcrypt
from pytz import UTC

from .domain import HashedPassword
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

BCRYPT = 'bcrypt'
SHA512 = 'sha512'
PLAIN = 'plain'
ALGORITHMS = (BCRYPT, SHA512, PLAIN)

DEFAULT_ALGORITHM = BCRYPT
DEFAULT_ROUNDS = 11
CURRENT_VERSION = 2
SALT_LENGTH = 16


def hash_password(password: str, algorithm: Optional[str] = None,
                  rounds: Optional[int] = None) -> HashedPassword:
    """
    Generate a secure hash of a password.

    Parameters
    ----------
    password : str
        The plaintext password.
    algorithm : str
        One of :const:`ALGORITHMS`. Defaults to :const:`DEFAULT_ALGORITHM`.
    rounds : int
        Cost factor for ``bcrypt``.

    Returns
    -------
    :class:`.HashedPassword`

    Raises
    ------
    :class:`.ConfigurationError`
        If ``algorithm`` is not supported.

    """
    algorithm = algorithm or DEFAULT_ALGORITHM
    created = datetime.now(tz=UTC)
    if algorithm == BCRYPT:
        rounds = rounds or DEFAULT_ROUNDS
        hashed = bcrypt.hashpw(_bcrypt_input(password),
                               bcrypt.gensalt(rounds=rounds))
        return HashedPassword(hash=hashed.decode('ascii'), algorithm=BCRYPT,
                              version=CURRENT_VERSION, created=created,
                              rounds=rounds)
    if algorithm == SHA512:
        salt = secrets.token_hex(SALT_LENGTH // 2)
        return HashedPassword(hash=_sha512(password, salt), algorithm=SHA512,
                              version=CURRENT_VERSION, created=created,
                              salt=salt)
    if algorithm == PLAIN:
        logger.warning('Storing a password with the plain algorithm')
        return HashedPassword(hash=password, algorithm=PLAIN,
                              version=CURRENT_VERSION, created=created)
    raise ConfigurationError(f'Unknown password algorithm: {algorithm}')


def check_password(password: str, hashed: Optional[HashedPassword]) -> bool:
    """
    Check a plaintext password against a stored hash.

    A missing or empty hash never matches, so an account without a password
    cannot be logged into with a blank one.
    """
    if hashed is None or not hashed.hash:
        return False
    if hashed.algorithm == BCRYPT:
        try:
            return bcrypt.checkpw(_bcrypt_input(password),
                                  hashed.hash.encode('ascii'))
        except ValueError:
            logger.error('Stored bcrypt hash is malformed')
            return False
    if hashed.algorithm == SHA512:
        return hmac.compare_digest(_sha512(password, hashed.salt or ''),
                                   hashed.hash)
    if hashed.algorithm == PLAIN:
        return hmac.compare_digest(password.encode('utf-8'),
                                   hashed.hash.encode('utf-8'))
    raise ConfigurationError(f'Unknown password algorithm: {hashed.algorithm}')


def is_outdated(hashed: HashedPassword,
                algorithm: Optional[str] = None) -> bool:
    """Determine whether a hash should be regenerated on next login."""
    return hashed.version < CURRENT_VERSION \
        or hashed.algorithm != (algorithm or DEFAULT_ALGORITHM)


def _sha512(password: str, salt: str) -> str:
    return hmac.new(salt.encode('utf-8'), password.encode('utf-8'),
                    hashlib.sha512).hexdigest()


def _bcrypt_input(password: str) -> bytes:
    # bcrypt only reads 72 bytes and refuses NUL, so feed it a digest.
    return b64encode(hashlib.sha256(password.encode('utf-8')).digest())
