"""
Accumulates the outcome of a multi-step workflow.

Field validation, permission and authentication problems are not raised as
exceptions out of the workflows in this package. Instead they are collected on
a :class:`Result`, which the caller turns into a re-rendered form, a redirect
or a JSON error.
"""

from typing import Dict, List, Optional, Any


class Result(object):
    """Errors and success messages gathered while handling a request."""

    def __init__(self) -> None:
        self.errors: List[str] = []
        self.field_errors: Dict[str, List[str]] = {}
        self.successes: List[str] = []
        self.redirect: Optional[str] = None

    def __repr__(self) -> str:
        return (f'<Result errors={self.errors!r} '
                f'field_errors={self.field_errors!r} '
                f'successes={self.successes!r}>')

    @property
    def is_error(self) -> bool:
        """Indicate whether any error has been recorded."""
        return bool(self.errors or self.field_errors)

    def push_error(self, message: str) -> 'Result':
        """Record a general error."""
        self.errors.append(message)
        return self

    def push_field_error(self, field: str, message: str) -> 'Result':
        """Record an error that belongs to a specific input field."""
        self.field_errors.setdefault(field, []).append(message)
        return self

    def push_success(self, message: str) -> 'Result':
        """Record a message to show the user on success."""
        self.successes.append(message)
        return self

    def has_field_error(self, field: str) -> bool:
        return field in self.field_errors

    def merge(self, other: 'Result') -> 'Result':
        """Fold the messages of ``other`` into this result."""
        self.errors.extend(other.errors)
        for field, messages in other.field_errors.items():
            self.field_errors.setdefault(field, []).extend(messages)
        self.successes.extend(other.successes)
        if other.redirect:
            self.redirect = other.redirect
        return self

    def error_string(self) -> str:
        """Collapse all errors into one line."""
        messages = list(self.errors)
        for field, field_messages in self.field_errors.items():
            messages.extend(f'{field}: {m}' for m in field_messages)
        return '; '.join(messages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'errors': list(self.errors),
            'field_errors': {k: list(v) for k, v in self.field_errors.items()},
            'successes': list(self.successes),
            'redirect': self.redirect,
        }
