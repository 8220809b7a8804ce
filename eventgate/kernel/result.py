"""
Explicit lookup results for the data-access layer.

A Result carries either a value or an ErrorKind, never both, so callers
branch on the kind instead of testing the truthiness of a tuple.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    STORE_FAILURE = "store_failure"


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    exception: Optional[BaseException] = None

    def __post_init__(self) -> None:
        if self.error is None and self.exception is not None:
            raise ValueError("exception requires an error kind")

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def not_found(self) -> bool:
        return self.error is ErrorKind.NOT_FOUND

    @property
    def failed(self) -> bool:
        return self.error is ErrorKind.STORE_FAILURE


def ok(value: T) -> Result[T]:
    return Result(value=value)


def not_found() -> Result:
    return Result(error=ErrorKind.NOT_FOUND)


def store_failure(exc: BaseException) -> Result:
    return Result(error=ErrorKind.STORE_FAILURE, exception=exc)
