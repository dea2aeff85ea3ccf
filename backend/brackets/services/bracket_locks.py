"""
Per-bracket mutual exclusion.

Score submission, advancement, withdrawal and group generation each perform
several dependent writes (match row, then next-match row). Holding the bracket
lock for the whole sequence keeps two requests on the same bracket from
interleaving inside one process. Cross-process writers are caught by the
match version check in the progression engine.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

_registry_lock = threading.Lock()
_bracket_locks: Dict[int, threading.RLock] = {}


def _lock_for(bracket_id: int) -> threading.RLock:
    with _registry_lock:
        lock = _bracket_locks.get(bracket_id)
        if lock is None:
            lock = threading.RLock()
            _bracket_locks[bracket_id] = lock
        return lock


@contextmanager
def bracket_lock(bracket_id: int) -> Iterator[None]:
    """Hold the bracket's lock. Re-entrant, so nested service calls are safe."""
    lock = _lock_for(bracket_id)
    with lock:
        yield


def forget_bracket(bracket_id: int) -> None:
    with _registry_lock:
        _bracket_locks.pop(bracket_id, None)
