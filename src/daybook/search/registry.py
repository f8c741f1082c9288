"""Mutex-guarded keyed maps and the non-blocking lock attempt primitive."""

from __future__ import annotations

import enum
import threading
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")


class LockAttempt(enum.Enum):
    """Result of a non-blocking lock acquisition."""

    ACQUIRED = "acquired"
    ALREADY_LOCKED = "already_locked"


def try_acquire(lock: threading.Lock) -> LockAttempt:
    """Attempt to take *lock* without waiting."""
    if lock.acquire(blocking=False):
        return LockAttempt.ACQUIRED
    return LockAttempt.ALREADY_LOCKED


class KeyedRegistry(Generic[T]):
    """A ``dict`` guarded by its own mutex.

    Critical sections cover map access only. Factories passed to
    :meth:`get_or_insert` run under the mutex and must be cheap.
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._items: dict[str, T] = {}

    def get(self, key: str) -> T | None:
        with self._mutex:
            return self._items.get(key)

    def get_or_insert(self, key: str, factory: Callable[[], T]) -> T:
        """Return the value for *key*, inserting ``factory()`` atomically if absent."""
        with self._mutex:
            value = self._items.get(key)
            if value is None:
                value = factory()
                self._items[key] = value
            return value

    def set(self, key: str, value: T) -> None:
        with self._mutex:
            self._items[key] = value

    def pop(self, key: str) -> T | None:
        with self._mutex:
            return self._items.pop(key, None)

    def keys(self) -> list[str]:
        with self._mutex:
            return sorted(self._items)

    def clear(self) -> None:
        with self._mutex:
            self._items.clear()

    def __contains__(self, key: object) -> bool:
        with self._mutex:
            return key in self._items

    def __len__(self) -> int:
        with self._mutex:
            return len(self._items)
