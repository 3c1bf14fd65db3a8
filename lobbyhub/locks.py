"""Shared/exclusive locking for the in-memory stores.

Both the lobby registry and the connection table guard their maps with a
:class:`RWLock`. Readers may overlap with each other; a writer excludes
everyone. Each lock carries a *rank* and a thread may only acquire a lock whose
rank is strictly greater than every lock it already holds, so the order
"registry before connection table" is checked at runtime instead of being a
convention.

Critical sections guarded by these locks must never ``await``.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, List


class LockOrderError(RuntimeError):
    """Raised when a lock is acquired out of rank order."""


_held = threading.local()


def _held_ranks() -> List[int]:
    ranks = getattr(_held, "ranks", None)
    if ranks is None:
        ranks = []
        _held.ranks = ranks
    return ranks


class RWLock:
    """Writer-preferring readers/writer lock with rank checking."""

    def __init__(self, name: str, rank: int):
        self.name = name
        self.rank = rank
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def _check_order(self) -> None:
        ranks = _held_ranks()
        if ranks and max(ranks) >= self.rank:
            raise LockOrderError(
                f"cannot acquire {self.name!r} (rank {self.rank}) while holding rank {max(ranks)}"
            )

    def acquire_read(self) -> None:
        self._check_order()
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        _held_ranks().append(self.rank)

    def release_read(self) -> None:
        _held_ranks().remove(self.rank)
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        self._check_order()
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        _held_ranks().append(self.rank)

    def release_write(self) -> None:
        _held_ranks().remove(self.rank)
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


__all__ = ["RWLock", "LockOrderError"]
