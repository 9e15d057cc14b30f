"""Declarative error policies deciding whether a task error is caught or re-raised.

A policy is built from one of the following declarative values:

- ``True``: propagate every error and stop the run.
- ``False`` or ``None``: suppress every error (it is recorded on the queue).
- ``"system"``: propagate errors within :data:`SYSTEM_ERROR_TYPES`.
- ``{"invert": bool, "matches": "system" | {field: value, ...}}``: a rule.

Without ``invert`` a matching error propagates and a non-matching one is
suppressed. With ``invert`` a matching error is suppressed and every other
error propagates.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

SYSTEM_ERROR_TYPES: tuple[type[BaseException], ...] = (
    ArithmeticError,
    AssertionError,
    AttributeError,
    LookupError,
    NameError,
    SyntaxError,
    TypeError,
    UnicodeError,
)

SYSTEM_CATEGORY = "system"

_MISSING = object()


class ErrorRule(BaseModel):
    """Validated form of a mapping based error rule."""

    invert: bool = Field(default=False, description="Suppress matches instead of raising them")
    matches: Literal["system"] | dict[str, Any] = Field(
        description="Either 'system' or the field/value pairs an error must carry"
    )

    model_config = {"extra": "forbid"}


def error_field(error: Any, name: str) -> Any:
    """Return the value of ``name`` on an error instance or error class.

    ``name`` is always the class name of an exception, since built-ins such as
    ``AttributeError`` use a ``name`` attribute for something else. A missing
    ``message`` falls back to ``str(error)``.
    """
    if name == "name" and _is_error_type(error):
        return error.__name__
    if name == "name" and _is_error(error):
        return type(error).__name__
    value = getattr(error, name, _MISSING)
    if value is not _MISSING:
        return value
    if name == "message":
        return str(error) if _is_error(error) else _MISSING
    return _MISSING


def _is_error(error_or_type: Any) -> bool:
    return isinstance(error_or_type, BaseException)


def _is_error_type(error_or_type: Any) -> bool:
    return isinstance(error_or_type, type) and issubclass(error_or_type, BaseException)


class ErrorPolicy:
    """Base class of the policy variants."""

    def matches(
        self, error_or_type: Any, system_error_types: tuple[type[BaseException], ...]
    ) -> bool:
        raise NotImplementedError

    def propagates(
        self,
        error_or_type: Any,
        system_error_types: tuple[type[BaseException], ...] = SYSTEM_ERROR_TYPES,
    ) -> bool:
        """Return True when the error (or error class) should be re-raised."""
        if not _is_error(error_or_type) and not _is_error_type(error_or_type):
            return False
        return self.matches(error_or_type, system_error_types)


@dataclass(frozen=True, slots=True)
class Always(ErrorPolicy):
    """Propagate every error."""

    def matches(self, error_or_type, system_error_types):
        return True


@dataclass(frozen=True, slots=True)
class Never(ErrorPolicy):
    """Suppress every error."""

    def matches(self, error_or_type, system_error_types):
        return False


@dataclass(frozen=True, slots=True)
class CategoryMatch(ErrorPolicy):
    """Match errors belonging to a built-in category of error types."""

    invert: bool = False
    category: str = SYSTEM_CATEGORY

    def matches(self, error_or_type, system_error_types):
        if _is_error_type(error_or_type):
            matched = issubclass(error_or_type, system_error_types)
        else:
            matched = isinstance(error_or_type, system_error_types)
        return matched != self.invert


@dataclass(frozen=True, slots=True)
class FieldMatch(ErrorPolicy):
    """Match errors whose fields all equal the given values."""

    invert: bool = False
    fields: Mapping[str, Any] = field(default_factory=dict)

    def matches(self, error_or_type, system_error_types):
        matched = all(
            error_field(error_or_type, name) == value for name, value in self.fields.items()
        )
        return matched != self.invert


def parse_error_policy(throws: Any) -> ErrorPolicy:
    """Build an :class:`ErrorPolicy` from its declarative form.

    Raises:
        TypeError: If ``throws`` is not a supported declarative value.
        pydantic.ValidationError: If a mapping rule is malformed.
    """
    if isinstance(throws, ErrorPolicy):
        return throws
    if throws is True:
        return Always()
    if throws is None or throws is False:
        return Never()
    if isinstance(throws, str):
        return parse_error_policy({"matches": throws})
    if isinstance(throws, Mapping):
        rule = ErrorRule.model_validate(dict(throws))
        if rule.matches == SYSTEM_CATEGORY:
            return CategoryMatch(invert=rule.invert)
        return FieldMatch(invert=rule.invert, fields=dict(rule.matches))
    raise TypeError(f"Unsupported error policy: {throws!r}")


def throws_error(
    policy: Any,
    error_or_type: Any,
    raise_when_true: bool = False,
    system_error_types: tuple[type[BaseException], ...] = SYSTEM_ERROR_TYPES,
) -> bool:
    """Determine whether an error or error class propagates under ``policy``.

    Args:
        policy: An ErrorPolicy or any declarative policy value.
        error_or_type: Either an exception instance or an exception class.
        raise_when_true: Re-raise ``error_or_type`` when it is an instance that
            propagates. The original exception is raised, never wrapped, so its
            ``__cause__`` link is preserved.
        system_error_types: Error classes forming the "system" category.

    Returns:
        True if the error propagates.
    """
    propagates = parse_error_policy(policy).propagates(error_or_type, system_error_types)
    if propagates and raise_when_true and _is_error(error_or_type):
        raise error_or_type
    return propagates
