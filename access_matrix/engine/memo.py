"""
Single-entry memoization for derived views.
"""
from typing import Any, Callable, Generic, TypeVar


T = TypeVar("T")
_EMPTY = object()


class Memo(Generic[T]):
    """
    Remember the result of `compute` for the most recent arguments.

    Arguments are compared with ==, so callers pass cheap keys such as a store
    version or a query string rather than large collections.
    """

    def __init__(self, compute: Callable[..., T]):
        self._compute = compute
        self._key: Any = _EMPTY
        self._value: Any = None

    def __call__(self, *key: Any) -> T:
        if self._key is _EMPTY or self._key != key:
            self._value = self._compute(*key)
            self._key = key
        return self._value

    def clear(self) -> None:
        self._key = _EMPTY
        self._value = None
