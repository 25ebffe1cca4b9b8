"""Per-expense mutual exclusion for balance-checked writes.

Row locks (SELECT ... FOR UPDATE) serialize writers on databases that support
them; SQLite does not, so writers in this process also take an in-memory lock
keyed by expense id for the whole read-check-write-commit sequence.
"""

import threading
import weakref
from collections.abc import Iterator
from contextlib import contextmanager


class _ExpenseLock:
    __slots__ = ("lock", "__weakref__")

    def __init__(self) -> None:
        self.lock = threading.Lock()


_locks: "weakref.WeakValueDictionary[str, _ExpenseLock]" = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


@contextmanager
def expense_lock(expense_id: str) -> Iterator[None]:
    with _locks_guard:
        holder = _locks.get(expense_id)
        if holder is None:
            holder = _ExpenseLock()
            _locks[expense_id] = holder
    with holder.lock:
        yield
