"""Helpers and Flask application integration."""

from typing import Generator, Optional
from datetime import datetime
from contextlib import contextmanager
import logging

from flask import Flask
from pytz import UTC
from sqlalchemy.orm.session import Session

from .models import db

logger = logging.getLogger(__name__)


def now() -> datetime:
    """Get the current time, in UTC."""
    return datetime.now(tz=UTC)


def to_db(t: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to the naive UTC value we store."""
    if t is None:
        return None
    if t.tzinfo is None:
        return t
    return t.astimezone(UTC).replace(tzinfo=None)


def from_db(t: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive datetime read from the database."""
    if t is None:
        return None
    if t.tzinfo is None:
        return t.replace(tzinfo=UTC)
    return t


@contextmanager
def transaction() -> Generator[Session, None, None]:
    """
    Context manager for database transaction.

    Commits when the block exits cleanly. Bulk ``UPDATE`` and ``DELETE``
    statements do not mark the session dirty, so the commit is unconditional.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception as e:
        logger.error('Commit failed, rolling back: %s', str(e))
        db.session.rollback()
        raise


def init_app(app: Flask) -> None:
    """Attach the database session to the application."""
    db.init_app(app)


def current_session() -> Session:
    """Get/create database session for this context."""
    return db.session


def create_all() -> None:
    """Create all tables in the database."""
    db.create_all()


def drop_all() -> None:
    """Drop all tables in the database."""
    db.drop_all()
