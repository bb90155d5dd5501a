"""Shared/exclusive lock guarding an address space's region structure."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class SharedLock:
    """
    Reader-writer lock: many concurrent readers OR one exclusive writer.

    Writer-preference: once a writer is waiting, new readers block behind it
    so that a steady stream of enumerations cannot starve a mapping change.
    Not re-entrant on either side.
    """

    def __init__(self) -> None:
        """Create an unlocked SharedLock."""
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False
        self._waiting_writers = 0

    @property
    def reader_count(self) -> int:
        """Number of readers currently holding the lock."""
        return self._readers

    @property
    def is_writing(self) -> bool:
        """Whether a writer currently holds the lock."""
        return self._writing

    def acquire_read(self) -> None:
        with self._cond:
            while self._writing or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers == 0:
                raise RuntimeError("release_read() called without a reader")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._waiting_writers += 1
            acquired = False
            try:
                while self._writing or self._readers:
                    self._cond.wait()
                acquired = True
            finally:
                self._waiting_writers -= 1
                if not acquired:
                    # readers parked behind this writer must re-check
                    self._cond.notify_all()
            self._writing = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writing:
                raise RuntimeError("release_write() called without a writer")
            self._writing = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        """Hold the shared side for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        """Hold the exclusive side for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
