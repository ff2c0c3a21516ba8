import threading
from contextlib import contextmanager
from typing import Iterator, Optional
from uuid import UUID

from loguru import logger

from .errors import StoreUnavailableError
from .settings import settings


class MemberLockRegistry:
    """One mutual-exclusion scope per member.

    Every compound read-compute-write action for a member runs inside
    ``hold``; actions for different members never contend.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.member_lock_timeout_seconds
        self._locks: dict[UUID, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, member_id: UUID) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(member_id)
            if lock is None:
                lock = self._locks[member_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, member_id: UUID, timeout: Optional[float] = None) -> Iterator[None]:
        wait = self.timeout if timeout is None else timeout
        lock = self._lock_for(member_id)
        if not lock.acquire(timeout=wait):
            logger.warning("Timed out waiting for member lock", member_id=str(member_id), timeout=wait)
            raise StoreUnavailableError(f"Member {member_id} is busy; retry later")
        try:
            yield
        finally:
            lock.release()
