"""
Protection of Flask routes.

:func:`permission_required` guards pages for logged-in users: anonymous
visitors are sent to the login page (and brought back afterwards), and users
without permission get a 403. :func:`token_required` guards API routes that
authenticate with a bearer token instead of the session.

.. code-block:: python

   @blueprint.route('/room/<int:room_id>/edit', methods=['GET', 'POST'])
   @permission_required(acl.EDIT, acl.ROOM, id_param='room_id')
   def edit_room(room_id: int):
       ...

"""

from typing import Optional, Callable, Any
from functools import wraps
import logging

from flask import g, redirect, request, session
from werkzeug.exceptions import Forbidden, Unauthorized

from . import sessionvars
from .authenticate import authenticate_token
from .context import get_context, current_permissions, current_user
from .exceptions import InvalidToken
from .tokens import ACCESS

logger = logging.getLogger(__name__)


def permission_required(action: str, object_type: str,
                        id_param: Optional[str] = None) -> Callable:
    """
    Generate a decorator that requires a logged-in user with a permission.

    Parameters
    ----------
    action : str
        Action constant from :mod:`approom_auth.acl`.
    object_type : str
        Object type constant from :mod:`approom_auth.acl`.
    id_param : str
        Name of the route parameter holding the object id. If not given, the
        permission is checked on the object type as a whole.

    Returns
    -------
    function

    """
    def protector(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            """
            Check the logged-in user's permission before calling the route.

            Raises
            ------
            :class:`.Forbidden`
                Raised when the user lacks the permission.

            """
            user = current_user()
            if user is None:
                logger.debug('No user; diverting to login')
                sessionvars.divert(session, request.full_path)
                return redirect(get_context().config['LOGIN_URL'])

            object_id = kwargs.get(id_param) if id_param else None
            if not current_permissions().has_permission(
                    user, action, object_type, object_id):
                logger.debug('User %s may not %s %s %s', user.user_id,
                             action, object_type, object_id)
                raise Forbidden('Access denied')
            sessionvars.clear_diversion(session)
            return func(*args, **kwargs)
        return wrapper
    return protector


def token_required(token_type: str = ACCESS) -> Callable:
    """Generate a decorator that requires a bearer token of ``token_type``."""
    def protector(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            header = request.headers.get('Authorization', '')
            if not header.startswith('Bearer '):
                raise Unauthorized('Missing bearer token')
            try:
                g.token_user = authenticate_token(
                    header[len('Bearer '):].strip(), get_context().tokens,
                    token_type
                )
            except InvalidToken as e:
                logger.debug('Token refused: %s', e)
                raise Unauthorized(str(e)) from e
            return func(*args, **kwargs)
        return wrapper
    return protector
