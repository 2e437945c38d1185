"""Provide an API for local user authentication."""

from typing import Optional
import logging

from . import passwords
from .domain import User
from .exceptions import NoSuchUser, PasswordAuthenticationFailed, \
    InvalidToken
from .services import users
from .tokens import TokenService, ACCESS

logger = logging.getLogger(__name__)


def authenticate(username_or_email: str, password: str,
                 algorithm: Optional[str] = None,
                 rounds: Optional[int] = None) -> User:
    """
    Validate username/password. If successful, retrieve user details.

    Unlike most failures in this package, the two ways this can fail are told
    apart, so that the login form can say which field was wrong.

    Parameters
    ----------
    username_or_email : str
        Users may log in with either their username or their email address.
    password : str
        Password (as entered).
    algorithm : str
        Currently configured password algorithm. A stored hash made with a
        different algorithm or an older format is replaced on success.
    rounds : int
        Cost factor to use when replacing the hash.

    Returns
    -------
    :class:`.User`

    Raises
    ------
    :class:`.NoSuchUser`
        No user has this username or email.
    :class:`.PasswordAuthenticationFailed`
        The password is wrong, or the user has no password.

    """
    logger.debug('Authenticate with password, user: %s', username_or_email)
    user = users.get_user_by_username_or_email(username_or_email)
    if user is None or user.user_id is None:
        logger.debug('No such user: %s', username_or_email)
        raise NoSuchUser('No account with that username or email')
    if not passwords.check_password(password, user.password):
        raise PasswordAuthenticationFailed('Incorrect password')

    if user.password is not None \
            and passwords.is_outdated(user.password, algorithm):
        logger.info('Upgrading password hash of user %s', user.user_id)
        users.update_password(
            user.user_id, passwords.hash_password(password, algorithm, rounds)
        )
    users.touch_login(user.user_id)
    return user


def authenticate_token(token: str, tokens: TokenService,
                       required_type: str = ACCESS) -> User:
    """
    Authenticate the bearer of an API token.

    Raises
    ------
    :class:`.InvalidToken`
        Or one of its subclasses, if the token is bad, expired, of the wrong
        type, revoked, or names a user that no longer exists.

    """
    claims = tokens.validate_for_user(token, required_type,
                                      users.get_api_code)
    user = users.get_user_by_id(claims.user_id)
    if user is None:
        raise InvalidToken('Token user does not exist')
    return user._replace(login_id=claims.user.get('login_id'))
