"""Exceptions."""


class ConfigurationError(RuntimeError):
    """The application is misconfigured."""


class AuthenticationFailed(RuntimeError):
    """Failed to authenticate user with provided credentials."""


class NoSuchUser(AuthenticationFailed):
    """User does not exist."""


class PasswordAuthenticationFailed(AuthenticationFailed):
    """Password is not correct."""


class InvalidToken(AuthenticationFailed):
    """Token is malformed, has a bad signature, or names no known user."""

    code = 0


class RevokedToken(InvalidToken):
    """Token was issued under an api code that has since been changed."""

    code = 5


class ExpiredToken(InvalidToken):
    """Token has expired."""

    code = 6


class MissingExpiration(ExpiredToken):
    """Token carries no expiration, and is treated as expired."""

    code = 7


class MissingTokenType(InvalidToken):
    """Token carries no type."""

    code = 8


class WrongTokenType(InvalidToken):
    """Token type does not match the type required here."""

    code = 9


class VerificationError(RuntimeError):
    """A verification code cannot be used."""


class UnknownVerification(VerificationError):
    """No verification matches the code."""


class VerificationUsed(VerificationError):
    """Verification has already been used."""


class VerificationExpired(VerificationError):
    """Verification has expired."""


class CodeCollision(VerificationError):
    """Generated verification code collides with an existing one."""


class LoginConflict(RuntimeError):
    """A login for this provider identity already exists."""


class UserConflict(RuntimeError):
    """A user with this username or email already exists."""


class PermissionDenied(RuntimeError):
    """User may not perform this action."""


class ConsistencyError(RuntimeError):
    """Stored state was left inconsistent by a partially failed operation."""
