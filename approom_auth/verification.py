"""
Verification codes: single-use proofs that someone controls a claim.

A verification is issued for a claim (usually an email address), its code is
mailed out as a link, and when the code comes back the type-specific resolve
step runs. A verification moves from *valid* to *used* when consumed, or
expires ``expiration_date`` after issuance; expiry is checked when the code
is presented, never by a background sweep.

Types listed in :data:`REUSABLE_TYPES` stay usable after consumption, but only
by the session that consumed them.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from datetime import timedelta
import hashlib
import hmac
import logging
import secrets

from . import sessionvars
from .domain import User, Verification, HashedPassword, from_dict, to_dict
from .exceptions import CodeCollision, UnknownVerification, \
    VerificationError, VerificationExpired, VerificationUsed, UserConflict
from .forms import validate
from .identity import IdentityResolver
from .mail import Mailer
from .result import Result
from .services import users, util, verifications as store
from .sessionvars import SessionData

logger = logging.getLogger(__name__)

NEW_ACCOUNT_EMAIL = 'newAccountEmail'
ONE_TIME_LOGIN = 'onetimeLogin'
CHANGE_EMAIL = 'changeEmail'

REUSABLE_TYPES = frozenset([NEW_ACCOUNT_EMAIL])

EXPIRATION_MINUTES_LONG = 24 * 60
EXPIRATION_MINUTES_NORMAL = 30
EXPIRATION_MINUTES_SHORT = 5

MAX_CODE_COLLISIONS = 10
DEFAULT_CODE_LENGTH = 5

CODE_LETTERS = 'ABCDEFGHJKLMNPQRSTUVWXY'
CODE_DIGITS = '3456789'

FINAL_REGISTRATION_FIELDS = ('email', 'username', 'password')
OVERRIDABLE_FIELDS = ('username', 'real_name')


def generate_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """
    Generate a random code that is easy to read and type.

    Letters and digits alternate in pairs, and look-alike characters (``0``
    and ``O``, ``1`` and ``I``) are left out.
    """
    return ''.join(
        secrets.choice(CODE_DIGITS if (i // 2) % 2 else CODE_LETTERS)
        for i in range(length)
    )


def hash_code(code: str, secret: str) -> str:
    """
    Hash a verification code for storage and lookup.

    The key is fixed rather than salted per record, so that a presented code
    can be found by its hash.
    """
    normalized = code.strip().upper()
    return hmac.new(secret.encode('utf-8'), normalized.encode('utf-8'),
                    hashlib.sha512).hexdigest()


class VerificationService(object):
    """Issues, checks, consumes and resolves verifications."""

    def __init__(self, mailer: Mailer, identities: IdentityResolver,
                 code_secret: str, site_url: str,
                 code_length: int = DEFAULT_CODE_LENGTH) -> None:
        self.mailer = mailer
        self.identities = identities
        self._code_secret = code_secret
        self.site_url = site_url.rstrip('/')
        self.code_length = code_length
        self._resolvers: Dict[str, Callable[..., Result]] = {
            NEW_ACCOUNT_EMAIL: self._resolve_new_account_email,
            ONE_TIME_LOGIN: self._resolve_one_time_login,
            CHANGE_EMAIL: self._resolve_change_email,
        }

    def link(self, code: str) -> str:
        """Build the URL that presents ``code``."""
        return f'{self.site_url}/verify/code/{code}'

    def create(self, vtype: str, key: Optional[str] = None,
               val: Optional[str] = None, user_id: Optional[int] = None,
               login_id: Optional[int] = None,
               extra_data: Optional[dict] = None,
               ttl_minutes: int = EXPIRATION_MINUTES_NORMAL,
               ip: Optional[str] = None) -> Verification:
        """
        Issue a new verification.

        Returns
        -------
        :class:`.Verification`
            The stored record, with the plaintext :attr:`.Verification.code`
            set. This is the only time the code is available.

        Raises
        ------
        :class:`.CodeCollision`
            If no unused code could be found after repeated attempts.

        """
        self.cancel_outstanding(vtype, key, val, user_id)
        now = util.now()
        for attempt in range(1, MAX_CODE_COLLISIONS + 1):
            code = generate_code(self.code_length)
            record = Verification(
                vtype=vtype, key=key, val=val, user_id=user_id,
                login_id=login_id, extra_data=extra_data, ip_created=ip,
                unique_code_hashed=hash_code(code, self._code_secret),
                creation_date=now,
                expiration_date=now + timedelta(minutes=ttl_minutes)
            )
            try:
                stored = store.create(record)
            except CodeCollision:
                if attempt >= MAX_CODE_COLLISIONS:
                    logger.error('Could not generate a unique %s code',
                                 vtype)
                    raise
                logger.warning('Verification code collision on attempt %i',
                               attempt)
                if attempt == MAX_CODE_COLLISIONS - 2:
                    store.prune_expired()
                continue
            logger.info('Issued %s verification %s', vtype,
                        stored.verification_id)
            return stored._replace(code=code)
        raise CodeCollision('Could not generate a unique code')

    def cancel_outstanding(self, vtype: str, key: Optional[str] = None,
                           val: Optional[str] = None,
                           user_id: Optional[int] = None) -> int:
        """
        Cancel unused verifications of ``vtype`` for the same claim.

        A claim belonging to a user is matched by user; otherwise by
        ``key`` and ``val``. Used verifications are kept.
        """
        if user_id is not None:
            return store.delete_matching(vtype, user_id=user_id)
        if key is None and val is None:
            return 0
        return store.delete_matching(vtype, key=key, val=val)

    def find_by_code(self, code: str) -> Optional[Verification]:
        """Find the verification for a presented code, carrying that code."""
        found = store.get_by_code_hashed(hash_code(code, self._code_secret))
        if found is None:
            return None
        return found._replace(code=code.strip().upper())

    def get_sessioned_verification(self, session: SessionData) \
            -> Optional[Verification]:
        """Get the verification this session last validated, if any."""
        verification_id = sessionvars.get_verification_id(session)
        if verification_id is None:
            return None
        return store.get_by_id(verification_id)

    def _owned_by_session(self, verification: Verification,
                          session: SessionData) -> bool:
        return verification.vtype in REUSABLE_TYPES \
            and verification.verification_id is not None \
            and sessionvars.get_verification_id(session) \
            == verification.verification_id

    def check_valid(self, verification: Verification,
                    session: SessionData) -> None:
        """
        Check that ``verification`` may be acted upon by this session.

        Raises
        ------
        :class:`.VerificationUsed`
            If it was used, unless it is a reusable type and this is the
            session that used it.
        :class:`.VerificationExpired`
            If it has expired.

        """
        if verification.is_used \
                and not self._owned_by_session(verification, session):
            raise VerificationUsed('This verification code has already been'
                                   ' used.')
        if verification.is_expired(util.now()):
            raise VerificationExpired('This verification code has expired.')

    def is_valid(self, verification: Verification,
                 session: SessionData) -> bool:
        try:
            self.check_valid(verification, session)
        except VerificationError:
            return False
        return True

    def consume(self, verification: Verification, session: SessionData,
                ip: Optional[str] = None, forget: bool = True) \
            -> Verification:
        """
        Mark ``verification`` as used.

        Call this exactly once per action taken on the strength of the
        verification.

        Parameters
        ----------
        forget : bool
            If True, clear the verification from the session. Otherwise bind
            it to the session, so that a reusable verification can be used
            again by this session only.

        Raises
        ------
        :class:`.VerificationUsed`
            If the verification was already used, including by a concurrent
            request that got there first.

        """
        if verification.verification_id is None:
            raise ValueError('Cannot consume an unsaved verification')
        if verification.is_used:
            if not self._owned_by_session(verification, session):
                raise VerificationUsed('This verification code has already'
                                       ' been used.')
            self._bind(session, verification, forget)
            return verification

        used_date = util.now()
        if not store.mark_used(verification.verification_id, used_date, ip):
            current = store.get_by_id(verification.verification_id)
            if current is not None \
                    and self._owned_by_session(current, session):
                current = current._replace(code=verification.code)
                self._bind(session, current, forget)
                return current
            logger.warning('Verification %s was used concurrently',
                           verification.verification_id)
            raise VerificationUsed('This verification code has already been'
                                   ' used.')
        logger.info('Consumed %s verification %s', verification.vtype,
                    verification.verification_id)
        used = verification._replace(used_date=used_date, ip_used=ip)
        self._bind(session, used, forget)
        return used

    def _bind(self, session: SessionData, verification: Verification,
              forget: bool) -> None:
        if forget:
            sessionvars.forget_verification(session)
        else:
            sessionvars.remember_verification(session, verification)

    # Workflows.

    def request_new_account_email(self, email: str, session: SessionData,
                                  user_data: Optional[Mapping[str, Any]]
                                  = None,
                                  ip: Optional[str] = None) -> Verification:
        """
        Start registration: mail a code proving control of ``email``.

        Registration fields that have already been supplied (``username``,
        ``real_name``, ``password_hashed``) are kept on the verification, so
        that following the mailed link can complete the account directly.
        """
        extra_data = {k: v for k, v in (user_data or {}).items()
                      if v is not None}
        verification = self.create(
            NEW_ACCOUNT_EMAIL, key='email', val=email,
            login_id=sessionvars.get_login_id(session),
            extra_data=extra_data or None,
            ttl_minutes=EXPIRATION_MINUTES_NORMAL, ip=ip
        )
        if verification.code is None:
            raise RuntimeError('Issued verification has no code')
        self.mailer.send(
            email, 'Confirm your email address',
            f'Please confirm your email address by visiting:\n\n'
            f'{self.link(verification.code)}\n\n'
            f'Or enter this code on the verification page: '
            f'{verification.code}\n\n'
            f'This code expires in {EXPIRATION_MINUTES_NORMAL} minutes.\n'
        )
        return verification

    def request_one_time_login(self, user: User,
                               ip: Optional[str] = None) -> Verification:
        """Mail ``user`` a short-lived code that logs them in."""
        if user.user_id is None or not user.email:
            raise ValueError('One-time login needs a saved user with email')
        verification = self.create(ONE_TIME_LOGIN, user_id=user.user_id,
                                   ttl_minutes=EXPIRATION_MINUTES_SHORT,
                                   ip=ip)
        if verification.code is None:
            raise RuntimeError('Issued verification has no code')
        self.mailer.send(
            user.email, 'Your one-time login code',
            f'To log in as {user.username}, visit:\n\n'
            f'{self.link(verification.code)}\n\n'
            f'Or enter this code: {verification.code}\n\n'
            f'This code expires in {EXPIRATION_MINUTES_SHORT} minutes.\n'
        )
        return verification

    def request_email_change(self, user: User, new_email: str,
                             ip: Optional[str] = None) -> Verification:
        """Mail a code to ``new_email`` confirming the change of address."""
        if user.user_id is None:
            raise ValueError('Cannot change the email of an unsaved user')
        verification = self.create(CHANGE_EMAIL, key='email', val=new_email,
                                   user_id=user.user_id,
                                   ttl_minutes=EXPIRATION_MINUTES_LONG, ip=ip)
        if verification.code is None:
            raise RuntimeError('Issued verification has no code')
        self.mailer.send(
            new_email, 'Confirm your new email address',
            f'To confirm the change of email address for {user.username},'
            f' visit:\n\n{self.link(verification.code)}\n\n'
            f'Or enter this code: {verification.code}\n'
        )
        return verification

    def find_change_email_verifications(self, user_id: int,
                                        only_valid_pending: bool = True) \
            -> List[Verification]:
        """List the email changes a user has requested."""
        found = store.find(CHANGE_EMAIL, user_id=user_id)
        if not only_valid_pending:
            return found
        now = util.now()
        return [v for v in found if not v.is_used and not v.is_expired(now)]

    def verify_code(self, code: str, session: SessionData,
                    ip: Optional[str] = None,
                    extra_values: Optional[Mapping[str, Any]] = None) \
            -> Result:
        """
        Act on a presented verification code.

        Returns
        -------
        :class:`.Result`
            Success messages, or errors explaining why the code was refused.
            :attr:`.Result.redirect` says where to send the user next.

        """
        result = Result()
        verification = self.find_by_code(code)
        if verification is None:
            return result.push_error(str(UnknownVerification(
                'The verification code could not be found.'
            )))
        try:
            self.check_valid(verification, session)
            user = None
            if verification.user_id is not None:
                user = users.get_user_by_id(verification.user_id)
                if user is None:
                    return result.push_error('The account this code was'
                                             ' issued for no longer exists.')
            resolver = self._resolvers.get(verification.vtype)
            if resolver is None:
                logger.error('Unknown verification type %s',
                             verification.vtype)
                return result.push_error('Unknown kind of verification.')
            return resolver(verification, user, session, ip,
                            extra_values or {}, result)
        except VerificationError as e:
            return result.push_error(str(e))

    def _resolve_new_account_email(self, verification: Verification,
                                   user: Optional[User],
                                   session: SessionData, ip: Optional[str],
                                   extra_values: Mapping[str, Any],
                                   result: Result) -> Result:
        email = verification.val
        if email and users.email_exists(email):
            self.consume(verification, session, ip, forget=True)
            return result.push_error(f'The email address {email} is already'
                                     f' in use by another account.')

        checked = validate(supplied_fields(extra_values))
        if checked.is_error:
            return result.merge(checked)

        user_data = registration_values(verification, extra_values)
        if self.ready_for_account(user_data):
            _, created = self.create_account(verification, user_data,
                                             session, ip)
            return result.merge(created)

        self.consume(verification, session, ip, forget=False)
        result.push_success(f'Your email address {email} has been verified.'
                            f' Please complete your registration.')
        result.redirect = '/register'
        return result

    def _resolve_one_time_login(self, verification: Verification,
                                user: Optional[User], session: SessionData,
                                ip: Optional[str],
                                extra_values: Mapping[str, Any],
                                result: Result) -> Result:
        if user is None:
            return result.push_error('This login code is not linked to an'
                                     ' account.')
        self.consume(verification, session, ip, forget=True)
        users.touch_login(user.user_id)
        sessionvars.log_in(session, user)
        result.push_success(f'You are now logged in as {user.username}.')
        result.redirect = '/'
        return result

    def _resolve_change_email(self, verification: Verification,
                              user: Optional[User], session: SessionData,
                              ip: Optional[str],
                              extra_values: Mapping[str, Any],
                              result: Result) -> Result:
        if user is None or not verification.val:
            return result.push_error('This email change is not linked to an'
                                     ' account.')
        new_email = verification.val
        checked = validate({'email': new_email}, required=['email'],
                           existing_user=user)
        if checked.is_error:
            self.consume(verification, session, ip, forget=True)
            return result.merge(checked)
        self.consume(verification, session, ip, forget=True)
        try:
            users.update_email(user.user_id, new_email)
        except UserConflict:
            return result.push_field_error('email', 'That email address is'
                                           ' already in use by another'
                                           ' account.')
        logger.info('User %s changed email address', user.user_id)
        result.push_success(f'Your email address has been changed to'
                            f' {new_email}.')
        result.redirect = '/profile'
        return result

    def ready_for_account(self, user_data: Mapping[str, Any]) -> bool:
        """Check whether enough is known to create the account right away."""
        if not user_data.get('password_hashed'):
            return False
        for field in ('email', 'username'):
            if not user_data.get(field):
                return False
        checked = validate({'username': user_data['username']},
                           required=['username'])
        return not checked.is_error

    def create_account(self, verification: Verification,
                       user_data: Mapping[str, Any], session: SessionData,
                       ip: Optional[str] = None) \
            -> Tuple[Optional[User], Result]:
        """
        Create the account a new-account verification was issued for.

        The verification is consumed before the user is created, so that two
        requests racing on the same code cannot both create an account. The
        bridged login that started the registration (if any) is connected to
        the new user, and the user is logged in.
        """
        result = Result()
        try:
            self.consume(verification, session, ip, forget=True)
        except VerificationError as e:
            return None, result.push_error(str(e))

        password = user_data.get('password_hashed')
        if isinstance(password, dict):
            password = from_dict(HashedPassword, password)
        elif not isinstance(password, HashedPassword):
            password = None
        login_id = verification.login_id or sessionvars.get_login_id(session)
        try:
            user = users.create_user(User(
                username=user_data['username'],
                email=verification.val,
                real_name=user_data.get('real_name'),
                password=password
            ))
        except UserConflict:
            result.push_error('That username or email address is already in'
                              ' use.')
            return None, result

        if login_id is not None:
            connected = self.identities.connect_user_to_login(
                user.user_id, login_id
            )
            if connected is not None:
                result.merge(connected)
            user = user._replace(login_id=login_id)
        sessionvars.log_in(session, user)
        result.push_success(f'Your new account with username'
                            f' "{user.username}" has been created.')
        result.redirect = '/profile'
        return user, result


def registration_values(verification: Verification,
                        overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Combine fields captured on a verification with newly supplied ones.

    Only the fields in :data:`OVERRIDABLE_FIELDS` may be supplied when the
    code is presented. The password is only ever the one hashed when the
    verification was requested.
    """
    values: Dict[str, Any] = dict(verification.extra_data or {})
    values.update(supplied_fields(overrides))
    values['email'] = verification.val
    return values


def password_for_storage(password: HashedPassword) -> dict:
    """Serialize a hashed password for the verification's extra data."""
    data: dict = to_dict(password)
    return data


def supplied_fields(values: Mapping[str, Any]) -> Dict[str, str]:
    """Pick the registration fields that may accompany a presented code."""
    return {field: values[field] for field in OVERRIDABLE_FIELDS
            if isinstance(values.get(field), str) and values[field]}
