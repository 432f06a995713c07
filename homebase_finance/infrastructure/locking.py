"""Per-provider mutual exclusion for balance-changing operations"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class ProviderLockRegistry:
    """
    Hands out one lock per provider id.

    Operations for the same provider run one at a time; different providers
    never contend. Cross-process safety comes from the row lock and version
    column on ProviderAccount, this only covers threads in one worker.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, provider_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(provider_id)
            if lock is None:
                lock = self._locks[provider_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, provider_id: str) -> Iterator[None]:
        lock = self._lock_for(provider_id)
        with lock:
            yield


provider_locks = ProviderLockRegistry()
