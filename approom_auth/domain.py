"""Defines the user, login, verification and role concepts used by approom."""

from typing import Any, Optional, Type, NamedTuple, Union, get_type_hints, \
    get_origin, get_args
from datetime import datetime
import dateutil.parser
from pytz import UTC

ALL = '*'
"""Object id sentinel meaning "every object of the given type"."""


class HashedPassword(NamedTuple):
    """A password hash, with enough metadata to verify and upgrade it."""

    hash: str
    """The encoded hash (or the plaintext, for the ``plain`` algorithm)."""

    algorithm: str
    """Identifier of the algorithm that produced :attr:`hash`."""

    version: int
    """Format version; hashes older than the current version are upgraded."""

    created: datetime
    """When the hash was made."""

    salt: Optional[str] = None
    """Salt for algorithms that do not embed it in :attr:`hash`."""

    rounds: Optional[int] = None
    """Cost factor for adaptive algorithms."""


class User(NamedTuple):
    """
    A local user account.

    An instance with no :attr:`user_id` is a *proxy*: an unsaved placeholder
    for someone who has authenticated through a bridged login but has not yet
    completed registration. Proxies are never persisted.
    """

    username: Optional[str]
    email: Optional[str]
    user_id: Optional[int] = None

    password: Optional[HashedPassword] = None
    """Hashed local password, if the user has one."""

    api_code: Optional[int] = None
    """Revocation counter embedded in tokens issued to this user."""

    real_name: Optional[str] = None
    login_id: Optional[int] = None
    """The bridged login the user authenticated through, if any."""

    login_date: Optional[datetime] = None
    creation_date: Optional[datetime] = None

    @property
    def is_proxy(self) -> bool:
        """Indicate whether this user exists only in memory."""
        return self.user_id is None


class BridgedIdentity(NamedTuple):
    """An identity asserted by a third-party authentication provider."""

    provider: str
    provider_user_id: str
    extra_data: Optional[dict] = None

    @property
    def display_name(self) -> Optional[str]:
        """Best available human name from the provider profile."""
        extra = self.extra_data or {}
        for key in ('displayName', 'username', 'name'):
            if extra.get(key):
                return str(extra[key])
        return None

    @property
    def email(self) -> Optional[str]:
        """Email address reported by the provider, if any."""
        return (self.extra_data or {}).get('email')


class Login(NamedTuple):
    """A stored bridged login, optionally linked to a :class:`.User`."""

    provider: str
    provider_user_id: str
    login_id: Optional[int] = None
    user_id: Optional[int] = None
    extra_data: Optional[dict] = None
    last_use_date: Optional[datetime] = None
    last_use_ip: Optional[str] = None
    creation_date: Optional[datetime] = None


class Verification(NamedTuple):
    """A single-use (or session-bound reusable) proof of some claim."""

    vtype: str
    """Kind of verification; see :mod:`approom_auth.verification`."""

    unique_code_hashed: str
    """Searchable hash of the code. The code itself is never stored."""

    expiration_date: datetime
    creation_date: datetime
    verification_id: Optional[int] = None

    key: Optional[str] = None
    """Name of the claim being proven, e.g. ``email``."""

    val: Optional[str] = None
    """Value of the claim being proven, e.g. the email address."""

    user_id: Optional[int] = None
    login_id: Optional[int] = None

    extra_data: Optional[dict] = None
    """Registration fields captured when the verification was requested."""

    used_date: Optional[datetime] = None
    ip_created: Optional[str] = None
    ip_used: Optional[str] = None

    code: Optional[str] = None
    """Plaintext code; only present on a freshly created record."""

    @property
    def is_used(self) -> bool:
        """Indicate whether the verification has been consumed."""
        return self.used_date is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Indicate whether the verification has expired as of ``now``."""
        if now is None:
            now = datetime.now(tz=UTC)
        return now >= self.expiration_date

    def get_extra(self, key: str, default: Any = None) -> Any:
        """Get a value from :attr:`extra_data`."""
        return (self.extra_data or {}).get(key, default)


class RoleAssignment(NamedTuple):
    """A role granted to a user on an object, or on all objects of a type."""

    user_id: int
    role: str
    object_type: str
    object_id: str = ALL
    role_id: Optional[int] = None

    def __str__(self) -> str:
        """Return this role as a human-readable phrase."""
        if self.object_id == ALL:
            return f'{self.role} of all {self.object_type}s'
        return f'{self.role} of {self.object_type} #{self.object_id}'

    @property
    def is_global(self) -> bool:
        """Indicate whether this role applies to every object."""
        return self.object_id == ALL


class SecureToken(NamedTuple):
    """A signed token, ready to hand to a client."""

    token: str
    expires: Optional[datetime] = None


class TokenClaims(NamedTuple):
    """The validated contents of a :class:`.SecureToken`."""

    type: str
    scope: Optional[str]
    api_code: Optional[int]
    user: dict
    """Minimal profile: ``provider``, ``id``, ``username``, ``login_id``."""

    issued_at: datetime
    issuer: Optional[str] = None
    expires: Optional[datetime] = None

    @property
    def user_id(self) -> Optional[int]:
        """The id of the user the token was issued to."""
        return self.user.get('id')


def to_dict(obj: Any) -> Any:
    """Generate a JSON-friendly representation of a domain object."""
    if isinstance(obj, tuple) and hasattr(obj, '_asdict'):
        return {key: to_dict(value) for key, value in obj._asdict().items()}
    if isinstance(obj, dict):
        return {key: to_dict(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_dict(value) for value in obj]
    if isinstance(obj, datetime):
        return obj.isoformat()
    return obj


def from_dict(cls: Type[Any], data: dict) -> Any:
    """Instantiate a domain NamedTuple from a dict made by :func:`to_dict`."""
    kwargs = {}
    for field, field_type in get_type_hints(cls).items():
        if field not in data:
            continue
        kwargs[field] = _cast(field_type, data[field])
    return cls(**kwargs)


def _cast(field_type: Any, value: Any) -> Any:
    if value is None:
        return None
    if get_origin(field_type) is Union:
        candidates = [t for t in get_args(field_type) if t is not type(None)]
        field_type = candidates[0] if len(candidates) == 1 else Any
    if field_type is datetime and isinstance(value, str):
        parsed = dateutil.parser.parse(value)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    if isinstance(field_type, type) and issubclass(field_type, tuple) \
            and hasattr(field_type, '_fields') and isinstance(value, dict):
        return from_dict(field_type, value)
    return value
