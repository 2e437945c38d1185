"""
Role-based permission checks.

A user holds role grants of the form ``(role, object_type, object_id)``, where
``object_id`` may be :data:`.ALL`. A grant on the ``site`` type with id
:data:`.ALL` is global and applies to objects of every type. The static
:data:`CAPABILITIES` table says which actions each role permits on which
object types.

Evaluation is default-deny: the answer is True only when some grant matches.
The owner of an object (its creator) is implicitly granted the ``owner`` role
on it, but only when the caller passes the object itself to
:meth:`PermissionEvaluator.has_permission`.
"""

from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Callable
import logging

from sqlalchemy.exc import SQLAlchemyError

from .domain import User, RoleAssignment, ALL
from .exceptions import ConsistencyError, PermissionDenied
from .services import roles

logger = logging.getLogger(__name__)

# Roles.
SITE_ADMIN = 'siteAdmin'
GLOBAL_MOD = 'globalMod'
MODERATOR = 'moderator'
OWNER = 'owner'
MEMBER = 'member'
CREATOR = 'creator'
FRIEND = 'friend'
VISITOR = 'visitor'
NONE = 'none'

# Object types.
SITE = 'site'
APP = 'app'
ROOM = 'room'
FILE = 'file'
ROOMDATA = 'roomdata'
USER = 'user'
ROLE = 'role'
LOGIN = 'login'
VERIFICATION = 'verification'
ANY_TYPE = '*'

# Actions.
ADMINISTER = 'administer'
ADD = 'add'
EDIT = 'edit'
LIST = 'list'
VIEW = 'view'
VIEW_DATA = 'viewData'
ADD_DATA = 'addData'
DELETE = 'delete'
PERM_DELETE = 'permDelete'
UNDELETE = 'unDelete'
ENABLE = 'enable'
DISABLE = 'disable'
STATS = 'stats'
SEE_VDEL = 'seeVDel'
ANALYTICS = 'analytics'
ADD_OWNER = 'add.owner'
DELETE_OWNER = 'delete.owner'
ADD_MODERATOR = 'add.moderator'
DELETE_MODERATOR = 'delete.moderator'
ADD_MEMBER = 'add.member'
DELETE_MEMBER = 'delete.member'

_MODERATE = frozenset([ADD, EDIT, VIEW, LIST, DELETE, SEE_VDEL, VIEW_DATA,
                       ADD_DATA])
_CONTRIBUTE = frozenset([ADD, EDIT, VIEW, LIST, VIEW_DATA, ADD_DATA])
_LOOK = frozenset([VIEW, VIEW_DATA])

CAPABILITIES: Dict[str, Dict[str, FrozenSet[str]]] = {
    SITE_ADMIN: {
        ANY_TYPE: _MODERATE | {PERM_DELETE, UNDELETE, ENABLE, DISABLE, STATS,
                               ADD_OWNER, DELETE_OWNER, ADD_MODERATOR,
                               DELETE_MODERATOR, ADD_MEMBER, DELETE_MEMBER},
        SITE: frozenset([ADMINISTER, ANALYTICS]),
    },
    GLOBAL_MOD: {
        ANY_TYPE: _MODERATE,
    },
    OWNER: {
        ANY_TYPE: _CONTRIBUTE | {ADD_MODERATOR, DELETE_MODERATOR, ADD_MEMBER,
                                 DELETE_MEMBER},
    },
    MODERATOR: {
        ANY_TYPE: _CONTRIBUTE | {ADD_MEMBER, DELETE_MEMBER},
    },
    MEMBER: {
        ANY_TYPE: _LOOK,
    },
    FRIEND: {
        ANY_TYPE: _LOOK,
    },
    CREATOR: {},
    VISITOR: {},
    NONE: {},
}
"""Actions each role permits, by object type (``*`` for any type)."""


def role_permits(role: str, action: str, object_type: str) -> bool:
    """Determine whether ``role`` permits ``action`` on ``object_type``."""
    capabilities = CAPABILITIES.get(role, {})
    return action in capabilities.get(object_type, frozenset()) \
        or action in capabilities.get(ANY_TYPE, frozenset())


def grant_matches(grant: RoleAssignment, action: str, object_type: str,
                  object_id: Optional[Any] = None) -> bool:
    """Determine whether ``grant`` allows ``action`` on the given object."""
    if not role_permits(grant.role, action, object_type):
        return False
    if grant.object_type == SITE and grant.object_id == ALL:
        return True
    if grant.object_type != object_type:
        return False
    if grant.object_id == ALL:
        return True
    return object_id is not None and grant.object_id == str(object_id)


def creator_of(resource: Any) -> Optional[Any]:
    """Get the id of the user who created ``resource``."""
    if isinstance(resource, dict):
        return resource.get('creator_id', resource.get('creator'))
    creator = getattr(resource, 'creator_id', None)
    if creator is None:
        creator = getattr(resource, 'creator', None)
    return creator


class PermissionEvaluator(object):
    """
    Answers permission questions for one request.

    Role grants are loaded once per user and cached for the lifetime of the
    evaluator; grant and revoke through the evaluator to keep the cache
    current.
    """

    def __init__(self, load_roles: Optional[Callable[[int],
                                                     List[RoleAssignment]]]
                 = None) -> None:
        self._load_roles = load_roles or roles.get_roles_for_user
        self._cache: Dict[int, List[RoleAssignment]] = {}

    def roles_for(self, user: Optional[User]) -> List[RoleAssignment]:
        """Get the role grants of ``user``; anonymous and proxy users have none."""
        if user is None or user.user_id is None:
            return []
        if user.user_id not in self._cache:
            self._cache[user.user_id] = self._load_roles(user.user_id)
        return self._cache[user.user_id]

    def is_owner(self, user: Optional[User], resource: Any) -> bool:
        """Determine whether ``user`` created ``resource``."""
        if user is None or user.user_id is None or resource is None:
            return False
        creator = creator_of(resource)
        return creator is not None and str(creator) == str(user.user_id)

    def has_permission(self, user: Optional[User], action: str,
                       object_type: str, object_id: Optional[Any] = None,
                       resource: Any = None) -> bool:
        """
        Decide whether ``user`` may perform ``action`` on an object.

        Parameters
        ----------
        user : :class:`.User` or None
            None for anonymous visitors, who are always denied.
        action : str
            One of the action constants in this module.
        object_type : str
            One of the object type constants in this module.
        object_id : str or int
            The specific object, or None for the type as a whole (e.g.
            adding a new object or listing objects).
        resource : object
            The object itself. When given and created by ``user``, the
            ``owner`` role is considered granted on it.

        Returns
        -------
        bool

        """
        for grant in self.roles_for(user):
            if grant_matches(grant, action, object_type, object_id):
                return True
        if resource is not None and self.is_owner(user, resource) \
                and role_permits(OWNER, action, object_type):
            return True
        logger.debug('Denied %s on %s %s to user %s', action, object_type,
                     object_id, user.user_id if user else None)
        return False

    def has_permission_on_all(self, user: Optional[User], action: str,
                              object_type: str,
                              object_ids: Iterable[Any]) -> bool:
        """Determine whether ``user`` may perform ``action`` on every object."""
        return all(self.has_permission(user, action, object_type, object_id)
                   for object_id in object_ids)

    def require_permission(self, user: Optional[User], action: str,
                           object_type: str, object_id: Optional[Any] = None,
                           resource: Any = None) -> None:
        """Like :meth:`has_permission`, but raise :class:`.PermissionDenied`."""
        if not self.has_permission(user, action, object_type, object_id,
                                   resource):
            raise PermissionDenied('Access denied')

    def is_site_admin(self, user: Optional[User]) -> bool:
        return any(grant.role == SITE_ADMIN and grant.object_type == SITE
                   and grant.object_id == ALL
                   for grant in self.roles_for(user))

    def describe_roles(self, user: Optional[User]) -> str:
        """Summarize the grants of ``user`` for display."""
        grants = self.roles_for(user)
        if not grants:
            return 'none'
        return ', '.join(str(grant) for grant in grants)

    def grant_role(self, user_id: int, role: str, object_type: str = SITE,
                   object_id: Any = ALL) -> RoleAssignment:
        """Grant a role. Granting an existing role again has no effect."""
        if role not in CAPABILITIES:
            raise ValueError(f'Unknown role: {role}')
        grant = roles.add_role(RoleAssignment(user_id=user_id, role=role,
                                              object_type=object_type,
                                              object_id=str(object_id)))
        self._cache.pop(user_id, None)
        return grant

    def revoke_roles(self, user_id: Optional[int] = None,
                     role: Optional[str] = None,
                     object_type: Optional[str] = None,
                     object_id: Optional[Any] = None) -> int:
        """Remove every grant matching the given conditions."""
        count = roles.delete_roles(
            user_id=user_id, role=role, object_type=object_type,
            object_id=str(object_id) if object_id is not None else None
        )
        if user_id is None:
            self._cache.clear()
        else:
            self._cache.pop(user_id, None)
        return count

    def grant_owner_roles(self, user: User, object_type: str,
                          object_id: Any) -> None:
        """
        Make ``user`` the owner and creator of an object they just created.

        Raises
        ------
        :class:`.ConsistencyError`
            If the grants could not be stored. The object then exists without
            an owner.

        """
        if user.user_id is None:
            raise ValueError('Cannot grant roles to an unsaved user')
        try:
            for role in (OWNER, CREATOR):
                self.grant_role(user.user_id, role, object_type, object_id)
        except SQLAlchemyError as e:
            logger.critical('Failed to grant owner roles on %s %s to user %s;'
                            ' the object has no owner', object_type,
                            object_id, user.user_id)
            raise ConsistencyError(f'{object_type} {object_id} was created'
                                   f' but could not be assigned an'
                                   f' owner') from e
