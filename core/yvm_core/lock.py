"""
lock.py — cross-process exclusive lock on the version store

A single advisory lock file serializes every store mutation across
processes. The OS drops the lock when the holding process dies, so a
crashed holder never wedges the store.
"""

import logging
import os
import sys
import time
from contextlib import contextmanager

from .errors import LockError, LockTimeout

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)


def _try_lock(fd):
    """Attempt a non-blocking exclusive lock. Return True on success."""
    try:
        if sys.platform == "win32":
            os.lseek(fd, 0, os.SEEK_SET)
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        return True
    except BlockingIOError:
        return False
    except PermissionError:
        # msvcrt reports contention as EACCES
        if sys.platform == "win32":
            return False
        raise


def _lock_blocking(fd):
    if sys.platform == "win32":
        while not _try_lock(fd):
            time.sleep(0.05)
    else:
        fcntl.flock(fd, fcntl.LOCK_EX)


def _unlock(fd):
    if sys.platform == "win32":
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(fd, fcntl.LOCK_UN)


@contextmanager
def exclusive_lock(lock_path, timeout=None, poll_interval=0.05):
    """Hold an exclusive advisory lock on `lock_path` for the `with` body.

    Args:
        lock_path: Lock file; created if missing.
        timeout: Seconds to wait for another holder. None blocks forever.
        poll_interval: Sleep between non-blocking attempts.

    Raises:
        LockTimeout: If the lock is still held elsewhere after `timeout`.
        LockError: If the lock file cannot be opened or locked.
    """
    try:
        os.makedirs(os.path.dirname(os.path.abspath(lock_path)), exist_ok=True)
        fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise LockError(f"Cannot open lock file {lock_path}: {e}") from e

    try:
        try:
            if timeout is None:
                _lock_blocking(fd)
            else:
                deadline = time.monotonic() + timeout
                waited = False
                while not _try_lock(fd):
                    if not waited:
                        logger.info("Waiting for store lock %s", lock_path)
                        waited = True
                    if time.monotonic() >= deadline:
                        raise LockTimeout(
                            f"Timed out after {timeout}s waiting for {lock_path}; "
                            "another yvm process is modifying the store")
                    time.sleep(poll_interval)
        except OSError as e:
            raise LockError(f"Cannot lock {lock_path}: {e}") from e

        logger.debug("Acquired store lock %s", lock_path)
        try:
            yield
        finally:
            _unlock(fd)
            logger.debug("Released store lock %s", lock_path)
    finally:
        os.close(fd)


def with_exclusive_lock(lock_path, body, timeout=None):
    """Run `body()` while holding the store lock and return its result."""
    with exclusive_lock(lock_path, timeout=timeout):
        return body()
