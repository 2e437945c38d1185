"""
Persistence for users, bridged logins, verifications and role grants.

Each store is a module of plain functions that open a
:func:`.util.transaction` and translate between SQLAlchemy rows and the
NamedTuples in :mod:`approom_auth.domain`.
"""

from . import users, logins, verifications, roles, util
from .util import init_app, create_all, drop_all, transaction
