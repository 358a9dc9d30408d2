"""Explicit success/absence/failure results for store-touching helpers."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Why a store call did not produce a value."""

    NOT_FOUND = "not_found"  # Absence, not a failure
    NOT_CONFIGURED = "not_configured"  # Absence, not a failure
    STORE_ERROR = "store_error"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Value or error kind, never both."""

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: ErrorKind, message: str = "") -> "Result[T]":
        return cls(error=error, message=message)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def is_absent(self) -> bool:
        return self.error in (ErrorKind.NOT_FOUND, ErrorKind.NOT_CONFIGURED)

    @property
    def is_error(self) -> bool:
        return self.error is ErrorKind.STORE_ERROR
