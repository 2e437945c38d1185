"""Issue and validate signed API tokens."""

from typing import Optional, Callable
from datetime import datetime, timedelta
import logging

import jwt
from pytz import UTC

from . import exceptions
from .domain import User, SecureToken, TokenClaims

logger = logging.getLogger(__name__)

ACCESS = 'access'
REFRESH = 'refresh'
LOGIN = 'login'

SCOPE_API = 'api'

PROVIDER_LOCAL_USER = 'localUser'
PROVIDER_LOCAL_LOGIN = 'localLogin'

ALGORITHM = 'HS256'


def minimal_profile(user: User) -> dict:
    """
    Identify ``user`` inside a token payload.

    Saved users are identified by id; proxy users can only be identified by
    the bridged login they came through.
    """
    if user.user_id is not None:
        provider = PROVIDER_LOCAL_USER
    elif user.login_id is not None:
        provider = PROVIDER_LOCAL_LOGIN
    else:
        provider = None
    return {'provider': provider, 'id': user.user_id,
            'username': user.username, 'login_id': user.login_id}


class TokenService(object):
    """Issues and validates HS256 tokens for one issuer."""

    def __init__(self, secret: str, issuer: str, access_ttl: int,
                 refresh_ttl: int) -> None:
        if not secret:
            raise exceptions.ConfigurationError('Token signing key not set')
        self._secret = secret
        self._issuer = issuer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    def issue(self, payload: dict, ttl: Optional[int] = None) -> SecureToken:
        """
        Sign ``payload`` as a new token.

        Parameters
        ----------
        payload : dict
            Claims to sign. Should include ``type``.
        ttl : int or None
            Lifetime in seconds. A token issued without a positive ``ttl`` has
            no expiration, and so will never pass :meth:`validate`.

        Returns
        -------
        :class:`.SecureToken`

        """
        now = datetime.now(tz=UTC)
        claims = dict(payload)
        claims['iat'] = int(now.timestamp())
        claims['iss'] = self._issuer
        expires = None
        if ttl and ttl > 0:
            expires = now + timedelta(seconds=ttl)
            claims['exp'] = int(expires.timestamp())
        token = jwt.encode(claims, self._secret, algorithm=ALGORITHM)
        return SecureToken(token=token, expires=expires)

    def decode(self, token: str) -> dict:
        """Check the signature of ``token`` and return its raw claims."""
        try:
            claims: dict = jwt.decode(
                token, self._secret, algorithms=[ALGORITHM],
                options={'verify_exp': False, 'verify_iat': False}
            )
        except jwt.exceptions.InvalidTokenError as e:
            raise exceptions.InvalidToken('Not a valid token') from e
        return claims

    def validate(self, token: str,
                 required_type: Optional[str] = None) -> TokenClaims:
        """
        Validate ``token`` and return its claims.

        Raises
        ------
        :class:`.InvalidToken`
            If the signature is bad or the token is malformed.
        :class:`.MissingTokenType`
            If the token carries no ``type``.
        :class:`.MissingExpiration`
            If the token carries no ``exp``. Such a token is treated as
            expired.
        :class:`.ExpiredToken`
            If the token has expired.
        :class:`.WrongTokenType`
            If ``required_type`` is given and does not match.

        """
        claims = self.decode(token)
        if not claims.get('type'):
            raise exceptions.MissingTokenType('Token has no type')
        if claims.get('iss') != self._issuer:
            raise exceptions.InvalidToken('Token has an unexpected issuer')
        if 'exp' not in claims:
            raise exceptions.MissingExpiration('Token has no expiration')
        expires = datetime.fromtimestamp(claims['exp'], tz=UTC)
        if datetime.now(tz=UTC) >= expires:
            raise exceptions.ExpiredToken('Token has expired')
        if required_type is not None and claims['type'] != required_type:
            raise exceptions.WrongTokenType(
                f'Expected a {required_type} token, got {claims["type"]}'
            )
        return TokenClaims(
            type=claims['type'],
            scope=claims.get('scope'),
            api_code=claims.get('api_code'),
            user=claims.get('user') or {},
            issued_at=datetime.fromtimestamp(claims.get('iat', 0), tz=UTC),
            issuer=claims.get('iss'),
            expires=expires
        )

    def validate_for_user(self, token: str, required_type: Optional[str],
                          load_api_code: Callable[[int], Optional[int]]) \
            -> TokenClaims:
        """
        Validate ``token`` and check that it has not been revoked.

        ``load_api_code`` must read the user's api code from the store on every
        call; bumping the stored value revokes every token issued before.

        Raises
        ------
        :class:`.RevokedToken`
            If the api code in the token is no longer current.

        """
        claims = self.validate(token, required_type)
        if claims.user_id is None:
            raise exceptions.InvalidToken('Token does not identify a user')
        current = load_api_code(claims.user_id)
        if current is None:
            raise exceptions.InvalidToken('Token user does not exist')
        if claims.api_code != current:
            logger.debug('Token for user %s has a stale api code',
                         claims.user_id)
            raise exceptions.RevokedToken('Token has been revoked')
        return claims

    def make_refresh_token(self, user: User, api_code: int) -> SecureToken:
        """Issue a long-lived refresh token for ``user``."""
        return self.issue({'type': REFRESH, 'scope': SCOPE_API,
                           'api_code': api_code,
                           'user': minimal_profile(user)},
                          self.refresh_ttl)

    def make_access_token(self, refresh: TokenClaims) -> SecureToken:
        """Issue a short-lived access token from a validated refresh token."""
        if refresh.type != REFRESH:
            raise exceptions.WrongTokenType('Access tokens require a refresh '
                                            'token')
        return self.issue({'type': ACCESS, 'scope': refresh.scope,
                           'api_code': refresh.api_code,
                           'user': refresh.user},
                          self.access_ttl)
