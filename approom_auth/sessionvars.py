"""
Values we keep in the browser session.

All helpers take any mutable mapping, which in the web layer is
:data:`flask.session` and in tests is a plain dict.
"""

from typing import MutableMapping, Optional, Any
from datetime import datetime

from pytz import UTC

from .domain import User, Verification

USER_ID = 'user_id'
LOGIN_ID = 'login_id'
LAST_VERIFICATION_ID = 'last_verification_id'
LAST_VERIFICATION_CODE = 'last_verification_code'
LAST_VERIFICATION_DATE = 'last_verification_date'
DIVERTED_URL = 'diverted_url'

SessionData = MutableMapping[str, Any]


def log_in(session: SessionData, user: User) -> None:
    """Record ``user`` as logged in. Proxy users only keep their login."""
    if user.user_id is not None:
        session[USER_ID] = user.user_id
    if user.login_id is not None:
        session[LOGIN_ID] = user.login_id


def log_out(session: SessionData) -> None:
    for key in (USER_ID, LOGIN_ID):
        session.pop(key, None)
    forget_verification(session)


def get_user_id(session: SessionData) -> Optional[int]:
    return session.get(USER_ID)


def get_login_id(session: SessionData) -> Optional[int]:
    return session.get(LOGIN_ID)


def remember_verification(session: SessionData,
                          verification: Verification) -> None:
    """Bind a verification and its presented code to this session."""
    session[LAST_VERIFICATION_ID] = verification.verification_id
    session[LAST_VERIFICATION_CODE] = verification.code
    session[LAST_VERIFICATION_DATE] = datetime.now(tz=UTC).isoformat()


def forget_verification(session: SessionData) -> None:
    for key in (LAST_VERIFICATION_ID, LAST_VERIFICATION_CODE,
                LAST_VERIFICATION_DATE):
        session.pop(key, None)


def get_verification_id(session: SessionData) -> Optional[int]:
    return session.get(LAST_VERIFICATION_ID)


def divert(session: SessionData, url: str) -> None:
    """Remember where an anonymous user was going before login."""
    session[DIVERTED_URL] = url


def clear_diversion(session: SessionData) -> Optional[str]:
    """Forget (and return) a remembered destination."""
    url: Optional[str] = session.pop(DIVERTED_URL, None)
    return url
