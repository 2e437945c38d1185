"""Storage of pending verifications."""

from typing import Optional, List
from datetime import datetime
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..domain import Verification
from ..exceptions import CodeCollision
from . import util
from .models import DBVerification

logger = logging.getLogger(__name__)


def get_by_code_hashed(code_hashed: str) -> Optional[Verification]:
    """Find the verification whose code hashes to ``code_hashed``."""
    with util.transaction() as session:
        db_verification = session.query(DBVerification) \
            .filter(DBVerification.unique_code_hashed == code_hashed) \
            .first()
        return _to_domain(db_verification) if db_verification else None


def get_by_id(verification_id: int) -> Optional[Verification]:
    with util.transaction() as session:
        db_verification = session.query(DBVerification) \
            .filter(DBVerification.verification_id == verification_id) \
            .first()
        return _to_domain(db_verification) if db_verification else None


def find(vtype: str, user_id: Optional[int] = None, key: Optional[str] = None,
         val: Optional[str] = None) -> List[Verification]:
    """Find verifications of a type matching the given claim."""
    with util.transaction() as session:
        query = _matching(session.query(DBVerification), vtype, user_id,
                          key, val)
        return [_to_domain(v) for v in
                query.order_by(DBVerification.creation_date.desc())]


def create(verification: Verification) -> Verification:
    """
    Persist a new verification.

    Raises
    ------
    :class:`.CodeCollision`
        If another verification already has the same code.

    """
    db_verification = DBVerification(
        vtype=verification.vtype,
        unique_code_hashed=verification.unique_code_hashed,
        key=verification.key,
        val=verification.val,
        user_id=verification.user_id,
        login_id=verification.login_id,
        extra_data=verification.extra_data,
        ip_created=verification.ip_created,
        creation_date=util.to_db(verification.creation_date),
        expiration_date=util.to_db(verification.expiration_date)
    )
    try:
        with util.transaction() as session:
            session.add(db_verification)
            session.flush()
            verification_id = db_verification.verification_id
    except IntegrityError as e:
        raise CodeCollision('Verification code already in use') from e
    return verification._replace(verification_id=verification_id)


def delete_matching(vtype: str, user_id: Optional[int] = None,
                    key: Optional[str] = None,
                    val: Optional[str] = None) -> int:
    """Delete the unused verifications of a type for the same claim."""
    with util.transaction() as session:
        count: int = _matching(session.query(DBVerification), vtype, user_id,
                               key, val) \
            .filter(DBVerification.used_date.is_(None)) \
            .delete(synchronize_session=False)
    if count:
        logger.debug('Cancelled %i outstanding %s verifications', count,
                     vtype)
    return count


def mark_used(verification_id: int, used_date: datetime,
              ip: Optional[str] = None) -> bool:
    """
    Mark a verification as used, unless it already is.

    The check and the update are one conditional statement, so when several
    requests race to use the same verification exactly one gets ``True``.
    """
    with util.transaction() as session:
        result = session.execute(
            update(DBVerification)
            .where(DBVerification.verification_id == verification_id)
            .where(DBVerification.used_date.is_(None))
            .values(used_date=util.to_db(used_date), ip_used=ip)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount == 1)


def prune_expired(now: Optional[datetime] = None) -> int:
    """Delete every verification that has expired."""
    now = now or util.now()
    with util.transaction() as session:
        count: int = session.query(DBVerification) \
            .filter(DBVerification.expiration_date <= util.to_db(now)) \
            .delete(synchronize_session=False)
    logger.info('Pruned %i expired verifications', count)
    return count


def _matching(query, vtype, user_id, key, val):  # type: ignore
    query = query.filter(DBVerification.vtype == vtype)
    if user_id is not None:
        query = query.filter(DBVerification.user_id == user_id)
    if key is not None:
        query = query.filter(DBVerification.key == key)
    if val is not None:
        query = query.filter(DBVerification.val == val)
    return query


def _to_domain(db_verification: DBVerification) -> Verification:
    return Verification(
        verification_id=db_verification.verification_id,
        vtype=db_verification.vtype,
        unique_code_hashed=db_verification.unique_code_hashed,
        key=db_verification.key,
        val=db_verification.val,
        user_id=db_verification.user_id,
        login_id=db_verification.login_id,
        extra_data=db_verification.extra_data,
        ip_created=db_verification.ip_created,
        ip_used=db_verification.ip_used,
        creation_date=util.from_db(db_verification.creation_date),
        expiration_date=util.from_db(db_verification.expiration_date),
        used_date=util.from_db(db_verification.used_date)
    )
