"""
Resolution of bridged (third-party) logins into local users.

When a provider hands us back an authenticated identity, :class:`IdentityResolver`
decides which local user it belongs to. In order:

1. The stored login for the identity, if it is linked to a user.
2. The user already logged in on this session, who is linking a new provider.
3. Otherwise, either a newly created user (when ``creates_users`` is set) or
   an unsaved *proxy* user that carries only the login. The proxy becomes a
   real account when the visitor completes registration.

The login is then created or re-pointed at the resolved user.
"""

from typing import Optional, Tuple
import logging
import secrets

from . import sessionvars
from .domain import User, Login, BridgedIdentity
from .exceptions import LoginConflict, UserConflict
from .forms import clean_username, is_disallowed_username, \
    USERNAME_MAX_LENGTH
from .result import Result
from .services import logins, users
from .sessionvars import SessionData

logger = logging.getLogger(__name__)

MAX_USERNAME_TRIES = 100
SUFFIX_LENGTH = 4


class IdentityResolver(object):
    """Finds, links or creates the local user behind a bridged login."""

    def __init__(self, creates_users: bool = False) -> None:
        self.creates_users = creates_users

    def resolve_bridged_login(self, identity: BridgedIdentity,
                              session: SessionData,
                              ip: Optional[str] = None) -> Tuple[User, Result]:
        """
        Resolve ``identity`` to a user.

        Parameters
        ----------
        identity : :class:`.BridgedIdentity`
            What the provider told us.
        session : mapping
            The current session; only read, to find a logged-in user.
        ip : str
            Client address, recorded on the login.

        Returns
        -------
        tuple
            The :class:`.User` (which may be an unsaved proxy; check
            :attr:`.User.is_proxy`) with ``login_id`` set, and a
            :class:`.Result` carrying messages for the visitor.

        """
        result = Result()
        login = logins.find_and_touch(identity.provider,
                                      identity.provider_user_id, ip)
        user: Optional[User] = None
        if login is not None and login.user_id is not None:
            user = users.get_user_by_id(login.user_id)
            if user is None:
                logger.warning('Login %s points to missing user %s',
                               login.login_id, login.user_id)

        if user is None:
            session_user_id = sessionvars.get_user_id(session)
            if session_user_id is not None:
                user = users.get_user_by_id(session_user_id)

        created_user = False
        if user is None and self.creates_users:
            user = self.create_user_from_identity(identity)
            created_user = True

        previous_user_id = login.user_id if login is not None else None
        if login is None:
            intended_user_id = user.user_id if user is not None else None
            login = self._create_login(identity, user, ip)
            if login.user_id is not None \
                    and login.user_id != intended_user_id:
                # Another request created and linked this login first.
                winner = users.get_user_by_id(login.user_id)
                if winner is not None:
                    user = winner
                    created_user = False
                previous_user_id = login.user_id

        if user is not None and login.user_id != user.user_id:
            logins.set_user(login.login_id, user.user_id)
            login = login._replace(user_id=user.user_id)

        if user is not None and created_user:
            result.push_success(f'A new user account has been created for'
                                f' your {identity.provider} login.')
        elif user is not None and previous_user_id != user.user_id:
            logger.info('Linked %s login %s to user %s', identity.provider,
                        login.login_id, user.user_id)
            result.push_success(f'The {identity.provider} login has been'
                                f' linked with your existing user account.')

        if user is None:
            user = User(username=None, email=identity.email,
                        real_name=identity.display_name)
        return user._replace(login_id=login.login_id), result

    def _create_login(self, identity: BridgedIdentity, user: Optional[User],
                      ip: Optional[str]) -> Login:
        try:
            return logins.create_login(Login(
                provider=identity.provider,
                provider_user_id=identity.provider_user_id,
                user_id=user.user_id if user is not None else None,
                extra_data=identity.extra_data,
                last_use_ip=ip
            ))
        except LoginConflict:
            logger.warning('Lost race creating %s login %s; using the'
                           ' existing one', identity.provider,
                           identity.provider_user_id)
            existing = logins.find_and_touch(identity.provider,
                                             identity.provider_user_id, ip)
            if existing is None:
                raise
            return existing

    def connect_user_to_login(self, user_id: Optional[int],
                              login_id: Optional[int],
                              force: bool = False) -> Optional[Result]:
        """
        Link an existing login to an existing user.

        Returns ``None`` when there is nothing to do (no user or no login
        given). A login already linked to a different user is left alone
        unless ``force`` is set.
        """
        if user_id is None or login_id is None:
            return None
        result = Result()
        login = logins.get_login_by_id(login_id)
        if login is None:
            return result.push_error('The login to connect could not be'
                                     ' found.')
        if users.get_user_by_id(user_id) is None:
            return result.push_error('The user account to connect could not'
                                     ' be found.')
        if login.user_id == user_id:
            return result
        if login.user_id is not None and not force:
            logger.warning('Refusing to move %s login %s from user %s to %s',
                           login.provider, login_id, login.user_id, user_id)
            return result.push_error(f'That {login.provider} login is already'
                                     f' connected to another account.')
        logins.set_user(login_id, user_id)
        logger.info('Connected %s login %s to user %s', login.provider,
                    login_id, user_id)
        return result.push_success(f'Connected your {login.provider} login'
                                   f' with this user account.')

    def create_user_from_identity(self, identity: BridgedIdentity) -> User:
        """
        Create a user for ``identity`` with a unique derived username.

        Raises
        ------
        :class:`.UserConflict`
            If no free username was found.

        """
        base = clean_username(identity.display_name
                              or identity.provider_user_id)
        email = identity.email
        if email and users.email_exists(email):
            email = None
        for attempt in range(MAX_USERNAME_TRIES):
            if attempt == 0:
                candidate = base
            else:
                stem = base[:USERNAME_MAX_LENGTH - SUFFIX_LENGTH - 1]
                candidate = f'{stem}_{secrets.token_hex(SUFFIX_LENGTH // 2)}'
            if is_disallowed_username(candidate) \
                    or users.username_exists(candidate):
                continue
            try:
                return users.create_user(User(
                    username=candidate, email=email,
                    real_name=identity.display_name
                ))
            except UserConflict:
                continue
        raise UserConflict(f'No free username derived from {base}')
