# Overview: Tagged success/failure wrapper used at the HTTP boundary.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar

from .errors import ErrorKind, LedgerError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Either a value or an error kind, never both.

    Build with Result.success / Result.failure (or capture) rather than the
    constructor so the two shapes stay exclusive.
    """
    value: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    details: dict = field(default_factory=dict)

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, details: dict | None = None) -> "Result[T]":
        return cls(error_kind=kind, message=message, details=details or {})

    @classmethod
    def from_error(cls, exc: LedgerError) -> "Result[T]":
        return cls.failure(exc.kind, exc.message, exc.details)

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def unwrap(self) -> T:
        if not self.ok:
            raise ValueError(f"unwrap on failed result: {self.error_kind.value}: {self.message}")
        return self.value

    def to_dict(self, serialize: Callable[[Any], Any] | None = None) -> dict:
        if self.ok:
            data = serialize(self.value) if serialize and self.value is not None else self.value
            return {"ok": True, "data": data}
        return {
            "ok": False,
            "error": {
                "kind": self.error_kind.value,
                "message": self.message,
                "details": self.details,
            },
        }


def capture(func: Callable[..., T], *args, **kwargs) -> Result[T]:
    """Run a ledger operation and fold LedgerError into a failed Result."""
    try:
        return Result.success(func(*args, **kwargs))
    except LedgerError as exc:
        return Result.from_error(exc)
