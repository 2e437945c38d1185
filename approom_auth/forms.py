"""Input validation for registration and account changes."""

from typing import Any, Iterable, Mapping, Optional
import re

from werkzeug.datastructures import MultiDict
from wtforms import Form, StringField, PasswordField, ValidationError
from wtforms.validators import Email, Length, Regexp, Optional as OptionalV

from .domain import User
from .result import Result
from .services import users

USERNAME_PATTERN = r'^[A-Za-z][A-Za-z0-9_.\-]*$'
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 48
PASSWORD_MIN_LENGTH = 8

DISALLOWED_USERNAMES = [
    'admin*', 'administrator', 'anonymous', 'approom*', 'guest', 'help',
    'me', 'moderator*', 'null', 'root', 'support*', 'system', 'undefined',
    'webmaster',
]
"""Reserved usernames; a trailing ``*`` reserves every name with that prefix."""


def is_disallowed_username(username: str) -> bool:
    """Determine whether ``username`` is reserved."""
    name = username.lower()
    for reserved in DISALLOWED_USERNAMES:
        if reserved.endswith('*'):
            if name.startswith(reserved[:-1]):
                return True
        elif name == reserved:
            return True
    return False


class RegistrationForm(Form):
    """Registration, email change and profile fields."""

    email = StringField('Email address',
                        validators=[OptionalV(), Email(), Length(max=255)])

    username = StringField(
        'Username',
        validators=[
            OptionalV(),
            Length(min=USERNAME_MIN_LENGTH, max=USERNAME_MAX_LENGTH),
            Regexp(USERNAME_PATTERN,
                   message='Usernames must start with a letter and may only'
                           ' contain letters, digits, dots, dashes and'
                           ' underscores.')
        ]
    )

    real_name = StringField('Full name',
                            validators=[OptionalV(), Length(max=255)])

    password = PasswordField(
        'Password',
        validators=[OptionalV(), Length(min=PASSWORD_MIN_LENGTH, max=128)]
    )

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Grab the user being edited, if any."""
        self.existing_user: Optional[User] = kwargs.pop('existing_user', None)
        super(RegistrationForm, self).__init__(*args, **kwargs)

    def validate_username(self, field: StringField) -> None:
        """Ensure that the username is allowed and unique."""
        if is_disallowed_username(field.data):
            raise ValidationError('That username is not allowed.')
        if self.existing_user and self.existing_user.username == field.data:
            return
        if users.username_exists(field.data):
            raise ValidationError('That username is already taken.')

    def validate_email(self, field: StringField) -> None:
        """Ensure that the email address is unique."""
        if self.existing_user and self.existing_user.email == field.data:
            return
        if users.email_exists(field.data):
            raise ValidationError('That email address is already in use by'
                                  ' another account.')


def validate(data: Mapping[str, Any], required: Iterable[str] = (),
             existing_user: Optional[User] = None) -> Result:
    """
    Validate user-supplied account fields.

    Parameters
    ----------
    data : mapping
        Field values; only the fields present are checked.
    required : iterable
        Names of fields that must be present and non-empty.
    existing_user : :class:`.User`
        The account being edited, whose own username and email do not count
        as taken.

    Returns
    -------
    :class:`.Result`
        Carries one field error per problem; never raises for bad input.

    """
    result = Result()
    values = {k: v for k, v in data.items() if v is not None}
    form = RegistrationForm(MultiDict(values), existing_user=existing_user)
    form.validate()
    for field, messages in form.errors.items():
        for message in messages:
            result.push_field_error(field, message)
    for field in required:
        if not data.get(field) and not result.has_field_error(field):
            result.push_field_error(field, 'This field is required.')
    return result


def clean_username(username: str) -> str:
    """Turn an arbitrary display name into a syntactically valid username."""
    cleaned = re.sub(r'[^A-Za-z0-9_.\-]', '', username)
    if not cleaned or not cleaned[0].isalpha():
        cleaned = 'u' + cleaned
    if len(cleaned) < USERNAME_MIN_LENGTH:
        cleaned = cleaned + '_' * (USERNAME_MIN_LENGTH - len(cleaned))
    return cleaned[:USERNAME_MAX_LENGTH]
