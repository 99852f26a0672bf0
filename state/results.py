"""Command results and the failure taxonomy.

Recoverable failures (``NotFound``, ``ValidationFailed``) are returned as
values inside a ``Result``; callers branch on ``result.ok``.  Only
``InvariantViolation`` is an exception, and it never leaves the store:
``EntityStore.transact`` catches it, logs it and rejects the mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class NotFound:
    """A referenced id does not exist."""

    kind: str  # "unit", "incident", "alert", "message"
    id: str

    code = "not_found"

    @property
    def detail(self) -> str:
        return f"{self.kind} {self.id!r} not found"


@dataclass(frozen=True)
class ValidationFailed:
    """A command was rejected before touching the store."""

    reason: str
    field: Optional[str] = None

    code = "validation_failed"

    @property
    def detail(self) -> str:
        if self.field:
            return f"{self.field}: {self.reason}"
        return self.reason


@dataclass(frozen=True)
class Rejected:
    """The store refused a mutation because it would break an invariant."""

    reason: str

    code = "invariant_violation"

    @property
    def detail(self) -> str:
        return self.reason


Failure = Union[NotFound, ValidationFailed, Rejected]


def parse_enum(enum_cls: type[E], value, field: str) -> Union[E, ValidationFailed]:
    """Coerce caller input to *enum_cls*, or say which field was wrong."""
    try:
        return enum_cls(value)
    except ValueError:
        return ValidationFailed(f"{value!r} is not a valid {field}", field)


class InvariantViolation(Exception):
    """Internal defect: a mutation produced an inconsistent state."""


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a command.  ``changed`` is False for idempotent no-ops."""

    value: Optional[T] = None
    error: Optional[Failure] = None
    changed: bool = True

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None, changed: bool = True) -> Result[T]:
        return cls(value=value, changed=changed)

    @classmethod
    def failure(cls, error: Failure) -> Result[T]:
        return cls(error=error, changed=False)

    def to_dict(self) -> dict:
        if self.error is not None:
            return {
                "ok": False,
                "error": {"code": self.error.code, "detail": self.error.detail},
            }
        value = self.value
        if hasattr(value, "to_dict"):
            value = value.to_dict()
        return {"ok": True, "changed": self.changed, "value": value}
