"""
Account registration.

Registration happens in two steps. First the visitor gives an email address
(and optionally the rest of their details); we mail them a new-account code.
Once the code has been verified in this session, the visitor submits the full
form and the account is created. If all the details were given in the first
step, following the mailed link creates the account directly.
"""

from typing import Any, Mapping, Optional
import logging

from . import passwords
from .forms import validate
from .result import Result
from .sessionvars import SessionData
from .verification import VerificationService, NEW_ACCOUNT_EMAIL, \
    FINAL_REGISTRATION_FIELDS, password_for_storage

logger = logging.getLogger(__name__)


def process_registration(data: Mapping[str, Any], session: SessionData,
                         verifier: VerificationService,
                         ip: Optional[str] = None,
                         algorithm: Optional[str] = None,
                         rounds: Optional[int] = None) -> Result:
    """
    Handle a submitted registration form.

    Parameters
    ----------
    data : mapping
        Form values: ``email``, ``username``, ``real_name``, ``password``
        and optionally ``code``, a verification code typed in by hand.
    session : mapping
        The visitor's session.
    verifier : :class:`.VerificationService`

    Returns
    -------
    :class:`.Result`
        Field errors to show on the form, or messages and a redirect.

    """
    verification = None
    if data.get('code'):
        verification = verifier.find_by_code(data['code'])
    if verification is None:
        verification = verifier.get_sessioned_verification(session)
    if verification is not None and (
            verification.vtype != NEW_ACCOUNT_EMAIL
            or not verifier.is_valid(verification, session)):
        verification = None

    email = data.get('email') or (verification.val if verification else None)
    final = verification is not None and verification.val == email
    values = {
        'email': email,
        'username': data.get('username'),
        'real_name': data.get('real_name'),
        'password': data.get('password'),
    }
    result = validate(values,
                      required=FINAL_REGISTRATION_FIELDS if final
                      else ('email',))
    if result.is_error:
        return result

    user_data = {
        'username': values['username'],
        'real_name': values['real_name'],
        'password_hashed': password_for_storage(
            passwords.hash_password(values['password'], algorithm, rounds)
        ) if values['password'] else None,
    }
    if final and verification is not None:
        _, created = verifier.create_account(verification, user_data,
                                             session, ip)
        return result.merge(created)

    verifier.request_new_account_email(email, session, user_data, ip)
    logger.debug('Started registration for a new account')
    result.push_success(f'We have sent a verification code to {email}.'
                        f' Follow the link in that message to continue.')
    result.redirect = '/verify'
    return result
