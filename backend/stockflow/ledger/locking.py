# Overview: Readers/writer lock guarding one ledger instance.

from __future__ import annotations

import threading
from contextlib import contextmanager


class ReadWriteLock:
    """
    Many concurrent readers or one writer.

    Writers are preferred: once a writer waits, new readers queue behind it so
    a steady read load cannot starve mutations. The thread holding the write
    side may re-enter both sides; readers may not upgrade to writers.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._owner: int | None = None
        self._depth = 0
        self._writers_waiting = 0

    def _owns_write(self) -> bool:
        return self._owner == threading.get_ident()

    @contextmanager
    def read(self):
        if self._owns_write():
            yield
            return
        with self._cond:
            while self._owner is not None or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        if self._owns_write():
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._owner is not None or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._owner = threading.get_ident()
            self._depth = 1
        try:
            yield
        finally:
            with self._cond:
                self._depth = 0
                self._owner = None
                self._cond.notify_all()
