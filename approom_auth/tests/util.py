"""Testing helpers."""

from contextlib import contextmanager
from typing import Generator
from unittest import mock

from flask import Flask
from sqlalchemy.orm.session import Session

from ..services import util
from ..identity import IdentityResolver
from ..mail import Mailer
from ..verification import VerificationService

CODE_SECRET = 'foosecret'
SITE_URL = 'https://approom.test'


@contextmanager
def temporary_db(database_url: str = 'sqlite:///:memory:',
                 create: bool = True,
                 drop: bool = True) -> Generator[Session, None, None]:
    """Provide an in-memory sqlite database for testing purposes."""
    app = Flask('foo')
    app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    with app.app_context():
        util.init_app(app)
        if create:
            util.create_all()
        try:
            yield util.current_session()
        finally:
            if drop:
                util.drop_all()


def verification_service(creates_users: bool = False) -> VerificationService:
    """Build a verification service that does not send real mail."""
    mailer = mock.MagicMock(spec=Mailer)
    return VerificationService(mailer, IdentityResolver(creates_users),
                               CODE_SECRET, SITE_URL)


def sent_code(service: VerificationService) -> str:
    """Pull the code out of the last message the service mailed."""
    _, subject, text = service.mailer.send.call_args[0]
    link = [line for line in text.splitlines()
            if line.startswith(f'{SITE_URL}/verify/code/')][0]
    return link.rsplit('/', 1)[1]
