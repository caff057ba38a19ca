"""Per-application exclusive deployment lock"""

import fcntl
import logging
import os
from pathlib import Path
from typing import Optional

from ..api.exceptions import LockContention, LayoutError

logger = logging.getLogger(__name__)


class DeploymentLock:
    """Advisory ``flock`` on ``<app_root>/.deploy.lock``

    Acquisition never blocks: a held lock raises LockContention at once.
    The lock file is left in place so a contending run changes nothing.
    """

    def __init__(self, lock_file: Path, app_root: Optional[Path] = None):
        self.lock_file = Path(lock_file)
        self.app_root = app_root or self.lock_file.parent
        self._fd: Optional[int] = None

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Take the lock

        Raises:
            LockContention: If another process holds it
            LayoutError: If the lock file cannot be opened
        """
        if self._fd is not None:
            return

        try:
            fd = os.open(self.lock_file, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise LayoutError(f"Cannot open lock file {self.lock_file}: {e}") from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise LockContention(str(self.app_root))
        except OSError as e:
            os.close(fd)
            raise LayoutError(f"Cannot lock {self.lock_file}: {e}") from e

        # Owner pid for operators, written only once we hold the lock
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug(f"Acquired deployment lock {self.lock_file}")

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug(f"Released deployment lock {self.lock_file}")

    def holder_pid(self) -> Optional[int]:
        """Pid recorded by the current or last holder"""
        try:
            content = self.lock_file.read_text().strip()
        except OSError:
            return None
        return int(content) if content.isdigit() else None

    def is_locked(self) -> bool:
        """Whether another process holds the lock"""
        if self._fd is not None:
            return True
        if not self.lock_file.exists():
            return False
        fd = os.open(self.lock_file, os.O_RDONLY)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        else:
            fcntl.flock(fd, fcntl.LOCK_UN)
            return False
        finally:
            os.close(fd)

    def __enter__(self) -> 'DeploymentLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
