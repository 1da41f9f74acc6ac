"""
Success/failure values returned by requestors and generators.

A request never raises for an expected failure; it hands back a Failure
carrying a typed error so schedulers can report it without try/except.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=Exception)


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    """A successful result."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Failure(Generic[E]):
    """A failed result, containing the error."""

    error: E

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        """Raise the carried error."""
        raise self.error


Result = Union[Success[T], Failure[E]]


def is_success(result: "Result") -> bool:
    """Check whether a result carries a value."""
    return isinstance(result, Success)
