from __future__ import annotations

from threading import Lock
from typing import Generic, TypeVar

T = TypeVar("T")


class Snapshot(Generic[T]):
    """Holds an immutable value that is only ever replaced as a whole.

    Readers get the current reference and keep using it even if a writer
    swaps in a new value meanwhile.
    """

    def __init__(self, value: T) -> None:
        self._lock = Lock()
        self._value = value

    def get(self) -> T:
        return self._value

    def swap(self, value: T) -> T:
        with self._lock:
            previous = self._value
            self._value = value
        return previous
