"""Storage of role grants."""

from typing import List, Optional
import logging

from sqlalchemy.exc import IntegrityError

from ..domain import RoleAssignment, ALL
from . import util
from .models import DBRole

logger = logging.getLogger(__name__)


def get_roles_for_user(user_id: int) -> List[RoleAssignment]:
    """Load every role granted to a user."""
    with util.transaction() as session:
        return [_to_domain(db_role) for db_role in
                session.query(DBRole).filter(DBRole.user_id == user_id)]


def add_role(role: RoleAssignment) -> RoleAssignment:
    """
    Grant a role, unless the identical grant already exists.

    Returns the stored grant in either case.
    """
    existing = _find(role)
    if existing is not None:
        return existing
    db_role = DBRole(user_id=role.user_id, role=role.role,
                     object_type=role.object_type,
                     object_id=str(role.object_id))
    try:
        with util.transaction() as session:
            session.add(db_role)
    except IntegrityError:
        # Granted concurrently by another request.
        existing = _find(role)
        if existing is None:
            raise
        return existing
    logger.info('ACL change: granted %s to user %s', role, role.user_id)
    stored = _find(role)
    if stored is None:
        raise RuntimeError(f'Grant {role} vanished after creation')
    return stored


def delete_roles(user_id: Optional[int] = None, role: Optional[str] = None,
                 object_type: Optional[str] = None,
                 object_id: Optional[str] = None) -> int:
    """Delete the grants matching every given condition."""
    if user_id is None and object_type is None:
        raise ValueError('Refusing to delete roles without a user or type')
    with util.transaction() as session:
        query = session.query(DBRole)
        if user_id is not None:
            query = query.filter(DBRole.user_id == user_id)
        if role is not None:
            query = query.filter(DBRole.role == role)
        if object_type is not None:
            query = query.filter(DBRole.object_type == object_type)
        if object_id is not None:
            query = query.filter(DBRole.object_id == str(object_id))
        count: int = query.delete(synchronize_session=False)
    logger.info('ACL change: removed %i grants (user=%s role=%s type=%s '
                'id=%s)', count, user_id, role, object_type, object_id)
    return count


def _find(role: RoleAssignment) -> Optional[RoleAssignment]:
    with util.transaction() as session:
        db_role = session.query(DBRole) \
            .filter(DBRole.user_id == role.user_id) \
            .filter(DBRole.role == role.role) \
            .filter(DBRole.object_type == role.object_type) \
            .filter(DBRole.object_id == str(role.object_id)) \
            .first()
        return _to_domain(db_role) if db_role else None


def _to_domain(db_role: DBRole) -> RoleAssignment:
    return RoleAssignment(role_id=db_role.role_id, user_id=db_role.user_id,
                          role=db_role.role, object_type=db_role.object_type,
                          object_id=db_role.object_id or ALL)
