"""Per-repository lock serializing branch updates across threads.

Each repository directory gets its own :class:`threading.Lock`, so
writers to different repositories never wait on each other.  Safety
across processes comes from the ref update itself, which the object
store performs as a compare-and-set.
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from typing import Iterator

# Per-process threading locks, keyed by resolved repo path
_thread_locks: dict[tuple[int, int] | str, threading.Lock] = {}
_thread_locks_guard = threading.Lock()


def _lock_key(repo_path: str) -> tuple[int, int] | str:
    real = os.path.realpath(repo_path)
    try:
        st = os.stat(real)
    except OSError:
        return os.path.normcase(real)
    if st.st_ino == 0:
        return os.path.normcase(real)
    return (st.st_dev, st.st_ino)


def get_repo_lock(repo_path: str) -> threading.Lock:
    """Return the lock for the repository at *repo_path*, creating it once."""
    key = _lock_key(repo_path)
    with _thread_locks_guard:
        if key not in _thread_locks:
            _thread_locks[key] = threading.Lock()
        return _thread_locks[key]


@contextmanager
def repo_lock(repo_path: str) -> Iterator[None]:
    with get_repo_lock(repo_path):
        yield
