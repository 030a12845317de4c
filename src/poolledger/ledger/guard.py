"""In-flight guard for mutating ledger operations.

Callers on other threads wait for the running operation to finish. A nested
call on the thread that already holds the guard (a settlement hook calling
back into the ledger) is rejected with ``Reentrancy``.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .errors import Reentrancy


class OperationGuard:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._operation: Optional[str] = None

    @property
    def in_flight(self) -> Optional[str]:
        return self._operation

    @contextmanager
    def reading(self) -> Iterator[None]:
        # Same-thread reads (from a settlement hook) see the in-flight state.
        with self._lock:
            yield

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self._operation is not None:
                raise Reentrancy(f"{operation} called while {self._operation} is in flight")
            self._operation = operation
            try:
                yield
            finally:
                self._operation = None
