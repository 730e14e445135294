"""
Core Module - Reader/Writer Lock.

============================================================
RESPONSIBILITY
============================================================
Shared/exclusive lock guarding in-memory maps.

- Any number of readers may hold the lock together
- A writer holds it alone
- Waiting writers block new readers (writer preference)

============================================================
USAGE
============================================================
    lock = ReadWriteLock()

    with lock.read():
        value = mapping.get(key)

    with lock.write():
        mapping[key] = value

The lock is a plain threading primitive. Hold it only around
the map access itself, never across an ``await``.

============================================================
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    """Writer-preferring reader/writer lock."""
    
    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer_active = False
        self._writers_waiting = 0
    
    # =========================================================
    # SHARED SIDE
    # =========================================================
    
    def acquire_read(self) -> None:
        """Acquire the lock in shared mode."""
        with self._cond:
            while self._writer_active or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
    
    def release_read(self) -> None:
        """Release a shared hold."""
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()
    
    # =========================================================
    # EXCLUSIVE SIDE
    # =========================================================
    
    def acquire_write(self) -> None:
        """Acquire the lock in exclusive mode."""
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer_active or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer_active = True
    
    def release_write(self) -> None:
        """Release an exclusive hold."""
        with self._cond:
            if not self._writer_active:
                raise RuntimeError("release_write() called without a matching acquire_write()")
            self._writer_active = False
            self._cond.notify_all()
    
    # =========================================================
    # CONTEXT MANAGERS
    # =========================================================
    
    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the lock in shared mode for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()
    
    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the lock in exclusive mode for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
    
    def __repr__(self) -> str:
        return (
            f"<ReadWriteLock(readers={self._readers}, "
            f"writer_active={self._writer_active}, "
            f"writers_waiting={self._writers_waiting})>"
        )
