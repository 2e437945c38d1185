"""Storage of local user accounts."""

from typing import Optional, Tuple
import logging

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from ..domain import User, HashedPassword
from ..exceptions import UserConflict
from . import util
from .models import DBUser, DBRole

logger = logging.getLogger(__name__)


def get_user_by_id(user_id: int) -> Optional[User]:
    """Load a user by id, or ``None``."""
    with util.transaction() as session:
        db_user = session.query(DBUser) \
            .filter(DBUser.user_id == user_id) \
            .first()
        return _to_domain(db_user) if db_user else None


def get_user_by_username_or_email(username_or_email: str) -> Optional[User]:
    """
    Load a user by username or email.

    A value of the form ``#<id>`` is looked up by user id instead.
    """
    if username_or_email.startswith('#'):
        try:
            return get_user_by_id(int(username_or_email[1:]))
        except ValueError:
            return None
    with util.transaction() as session:
        db_user = session.query(DBUser) \
            .filter(or_(DBUser.username == username_or_email,
                        DBUser.email == username_or_email)) \
            .first()
        return _to_domain(db_user) if db_user else None


def get_user_by_email(email: str) -> Optional[User]:
    with util.transaction() as session:
        db_user = session.query(DBUser) \
            .filter(DBUser.email == email) \
            .first()
        return _to_domain(db_user) if db_user else None


def username_exists(username: str) -> bool:
    """Determine whether a user with a particular username already exists."""
    with util.transaction() as session:
        return session.query(DBUser.user_id) \
            .filter(DBUser.username == username) \
            .first() is not None


def email_exists(email: str) -> bool:
    """Determine whether a user with a particular address already exists."""
    with util.transaction() as session:
        return session.query(DBUser.user_id) \
            .filter(DBUser.email == email) \
            .first() is not None


def create_user(user: User) -> User:
    """
    Persist a new user.

    Parameters
    ----------
    user : :class:`.User`
        Must have a username. ``user_id`` is ignored.

    Returns
    -------
    :class:`.User`
        The stored user, with ``user_id`` and ``api_code`` set.

    Raises
    ------
    :class:`.UserConflict`
        If the username or email is already taken.

    """
    if not user.username:
        raise ValueError('A user needs a username')
    db_user = DBUser(username=user.username, email=user.email,
                     real_name=user.real_name, api_code=1,
                     creation_date=util.to_db(util.now()))
    _set_password(db_user, user.password)
    try:
        with util.transaction() as session:
            session.add(db_user)
            session.flush()
            user_id = db_user.user_id
    except IntegrityError as e:
        raise UserConflict('Username or email already in use') from e
    logger.info('Created user %s (%s)', user_id, user.username)
    created = get_user_by_id(user_id)
    if created is None:
        raise RuntimeError(f'User {user_id} vanished after creation')
    return created._replace(login_id=user.login_id)


def update_email(user_id: int, email: str) -> None:
    """Change the email address of a user."""
    try:
        with util.transaction() as session:
            session.execute(update(DBUser)
                            .where(DBUser.user_id == user_id)
                            .values(email=email))
    except IntegrityError as e:
        raise UserConflict('Email already in use') from e


def update_password(user_id: int, password: HashedPassword) -> None:
    with util.transaction() as session:
        db_user = session.query(DBUser) \
            .filter(DBUser.user_id == user_id) \
            .first()
        if db_user is None:
            raise ValueError(f'No such user: {user_id}')
        _set_password(db_user, password)


def touch_login(user_id: int) -> None:
    """Record that the user just logged in."""
    with util.transaction() as session:
        session.execute(update(DBUser)
                        .where(DBUser.user_id == user_id)
                        .values(login_date=util.to_db(util.now())))


def get_api_code(user_id: int) -> Optional[int]:
    """
    Read the current api code of a user from the database.

    Selects the column directly so that no cached instance is consulted.
    """
    with util.transaction() as session:
        return session.execute(select(DBUser.api_code)
                               .where(DBUser.user_id == user_id)) \
            .scalar()


def ensure_api_code(user_id: int) -> int:
    """Get the api code of a user, assigning the first one if needed."""
    with util.transaction() as session:
        session.execute(update(DBUser)
                        .where(DBUser.user_id == user_id)
                        .where(DBUser.api_code.is_(None))
                        .values(api_code=1))
    code = get_api_code(user_id)
    if code is None:
        raise ValueError(f'No such user: {user_id}')
    return code


def bump_api_code(user_id: int) -> int:
    """
    Increment the api code of a user, revoking every token issued so far.

    The increment happens in the database so that concurrent bumps are not
    lost.
    """
    ensure_api_code(user_id)
    with util.transaction() as session:
        session.execute(update(DBUser)
                        .where(DBUser.user_id == user_id)
                        .values(api_code=DBUser.api_code + 1))
    code = get_api_code(user_id)
    if code is None:
        raise RuntimeError(f'No such user: {user_id}')
    logger.info('Bumped api code of user %s', user_id)
    return code


def delete_user(user_id: int) -> None:
    """Delete a user along with all of their roles."""
    with util.transaction() as session:
        session.query(DBRole) \
            .filter(DBRole.user_id == user_id) \
            .delete(synchronize_session=False)
        session.query(DBUser) \
            .filter(DBUser.user_id == user_id) \
            .delete(synchronize_session=False)
    logger.info('Deleted user %s', user_id)


def _set_password(db_user: DBUser, password: Optional[HashedPassword]) -> None:
    if password is None:
        db_user.password_hash = None
        db_user.password_alg = None
        db_user.password_ver = None
        db_user.password_salt = None
        db_user.password_rounds = None
        db_user.password_date = None
        return
    db_user.password_hash = password.hash
    db_user.password_alg = password.algorithm
    db_user.password_ver = password.version
    db_user.password_salt = password.salt
    db_user.password_rounds = password.rounds
    db_user.password_date = util.to_db(password.created)


def _get_password(db_user: DBUser) -> Optional[HashedPassword]:
    if not db_user.password_hash:
        return None
    return HashedPassword(hash=db_user.password_hash,
                          algorithm=db_user.password_alg,
                          version=db_user.password_ver or 0,
                          created=util.from_db(db_user.password_date),
                          salt=db_user.password_salt,
                          rounds=db_user.password_rounds)


def _to_domain(db_user: DBUser) -> User:
    return User(
        user_id=db_user.user_id,
        username=db_user.username,
        email=db_user.email,
        real_name=db_user.real_name,
        password=_get_password(db_user),
        api_code=db_user.api_code,
        login_date=util.from_db(db_user.login_date),
        creation_date=util.from_db(db_user.creation_date)
    )
