"""Storage of bridged logins."""

from typing import Optional
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..domain import Login
from ..exceptions import LoginConflict
from . import util
from .models import DBLogin

logger = logging.getLogger(__name__)


def find_and_touch(provider: str, provider_user_id: str,
                   ip: Optional[str] = None) -> Optional[Login]:
    """
    Find the login for a provider identity and record its use.

    Returns ``None`` if this identity has never logged in before.
    """
    with util.transaction() as session:
        session.execute(update(DBLogin)
                        .where(DBLogin.provider == provider)
                        .where(DBLogin.provider_user_id == provider_user_id)
                        .values(last_use_date=util.to_db(util.now()),
                                last_use_ip=ip))
        db_login = session.query(DBLogin) \
            .filter(DBLogin.provider == provider) \
            .filter(DBLogin.provider_user_id == provider_user_id) \
            .first()
        return _to_domain(db_login) if db_login else None


def get_login_by_id(login_id: int) -> Optional[Login]:
    with util.transaction() as session:
        db_login = session.query(DBLogin) \
            .filter(DBLogin.login_id == login_id) \
            .first()
        return _to_domain(db_login) if db_login else None


def get_logins_for_user(user_id: int) -> list:
    """Get every bridged login linked to a user."""
    with util.transaction() as session:
        return [_to_domain(db_login) for db_login
                in session.query(DBLogin).filter(DBLogin.user_id == user_id)]


def create_login(login: Login) -> Login:
    """
    Persist a new bridged login.

    Raises
    ------
    :class:`.LoginConflict`
        If a login for the same provider identity already exists, e.g.
        because a concurrent request created it first.

    """
    now = util.to_db(util.now())
    db_login = DBLogin(provider=login.provider,
                       provider_user_id=login.provider_user_id,
                       user_id=login.user_id,
                       extra_data=login.extra_data,
                       last_use_date=now,
                       last_use_ip=login.last_use_ip,
                       creation_date=now)
    try:
        with util.transaction() as session:
            session.add(db_login)
            session.flush()
            login_id = db_login.login_id
    except IntegrityError as e:
        raise LoginConflict(f'Login for {login.provider} identity '
                            f'{login.provider_user_id} already exists') from e
    logger.debug('Created login %s for provider %s', login_id, login.provider)
    stored = get_login_by_id(login_id)
    if stored is None:
        raise RuntimeError(f'Login {login_id} vanished after creation')
    return stored


def set_user(login_id: int, user_id: Optional[int]) -> None:
    """Link a login to a user (or unlink it, with ``None``)."""
    with util.transaction() as session:
        session.execute(update(DBLogin)
                        .where(DBLogin.login_id == login_id)
                        .values(user_id=user_id))


def _to_domain(db_login: DBLogin) -> Login:
    return Login(
        login_id=db_login.login_id,
        provider=db_login.provider,
        provider_user_id=db_login.provider_user_id,
        user_id=db_login.user_id,
        extra_data=db_login.extra_data,
        last_use_date=util.from_db(db_login.last_use_date),
        last_use_ip=db_login.last_use_ip,
        creation_date=util.from_db(db_login.creation_date)
    )
