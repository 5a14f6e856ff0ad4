"""Per-path write serialisation.

Saves are read-modify-write cycles on a single XML file. Two saves to the
same file must not interleave, while saves to different files run freely.

Example:
    >>> registry = PathLockRegistry()
    >>> with registry.locked(Path("doc/Spreads/Spread_ub6.xml")):
    ...     update_file()
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

logger = logging.getLogger(__name__)


class PathLockRegistry:
    """One re-entrant lock per resolved file path, created on demand."""

    def __init__(self, timeout: Optional[float] = 30.0):
        """
        Args:
            timeout: Seconds to wait for a lock (None waits forever)
        """
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[Path, threading.RLock] = {}

    def lock_for(self, path: Path) -> threading.RLock:
        key = Path(path).resolve()
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def locked(self, path: Path) -> Iterator[None]:
        """
        Hold the lock for ``path`` for the duration of the block.

        Raises:
            TimeoutError: If the lock is not acquired within ``timeout``
        """
        lock = self.lock_for(path)
        acquired = lock.acquire(timeout=-1 if self.timeout is None else self.timeout)
        if not acquired:
            raise TimeoutError(f"Timed out waiting for write lock on {path}")
        logger.debug(f"Acquired write lock: {path}")
        try:
            yield
        finally:
            lock.release()
            logger.debug(f"Released write lock: {path}")

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Shared by every save in this process unless a caller injects its own
default_registry = PathLockRegistry()
