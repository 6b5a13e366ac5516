"""
Result Type Implementation.

A small Ok/Err type used at the decoding boundary, where one malformed
record must be reported and skipped rather than abort a whole batch.
"""

from dataclasses import dataclass
from typing import Any, Generic, Iterable, List, Tuple, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A successful computation."""
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    """A failed computation."""
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> Any:
        raise ValueError(f"Called unwrap on Err: {self.error}")


Result = Union[Ok[T], Err[E]]


def partition(results: Iterable[Result[T, E]]) -> Tuple[List[T], List[E]]:
    """Split results into (values, errors), preserving order."""
    values: List[T] = []
    errors: List[E] = []
    for result in results:
        if isinstance(result, Ok):
            values.append(result.value)
        else:
            errors.append(result.error)
    return values, errors
