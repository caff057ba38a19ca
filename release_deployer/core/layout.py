"""Filesystem layout of an application root"""

import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Union

from ..api.exceptions import LayoutError, ReleaseCollision
from ..constants import (
    RELEASES_DIR,
    SHARED_DIR,
    BACKUPS_DIR,
    CURRENT_LINK_NAME,
    DEPLOYMENT_LOCK_FILE,
    RELEASE_ID_FORMAT,
    RELEASE_ID_PATTERN,
    BACKUP_ID_PREFIX,
    BACKUP_ID_PATTERN,
)
from ..models.config import SharedConfig

logger = logging.getLogger(__name__)


def generate_release_id(existing: Optional[List[str]] = None,
                        now: Optional[datetime] = None) -> str:
    """Timestamp id that sorts after every id in ``existing``

    Args:
        existing: Already used ids (any order)
        now: Clock override

    Returns:
        Id in ``YYYYMMDD-HHMMSS-ffffff`` form
    """
    now = now or datetime.now(timezone.utc)
    candidate = now.strftime(RELEASE_ID_FORMAT)

    if existing:
        newest = max(existing)
        if candidate <= newest:
            # Clock went backwards or two ids in the same microsecond
            last = datetime.strptime(newest, RELEASE_ID_FORMAT)
            candidate = (last + timedelta(microseconds=1)).strftime(RELEASE_ID_FORMAT)

    return candidate


def generate_backup_id(existing: Optional[List[str]] = None,
                       now: Optional[datetime] = None) -> str:
    """Backup flavour of :func:`generate_release_id`"""
    stripped = [b[len(BACKUP_ID_PREFIX):] for b in existing or []]
    return BACKUP_ID_PREFIX + generate_release_id(stripped, now)


class LayoutManager:
    """Owns releases/, shared/, backups/ and the current pointer

    Layout::

        app_root/
        ├── current -> releases/20250101-120000-000000
        ├── releases/
        ├── shared/
        └── backups/
    """

    def __init__(self, app_root: Union[str, Path], shared: Optional[SharedConfig] = None):
        """Initialize layout manager

        Args:
            app_root: Application root directory
            shared: Shared resource configuration
        """
        self.app_root = Path(app_root).expanduser().absolute()
        self.shared = shared or SharedConfig()

    @property
    def releases_dir(self) -> Path:
        return self.app_root / RELEASES_DIR

    @property
    def shared_dir(self) -> Path:
        return self.app_root / SHARED_DIR

    @property
    def backups_dir(self) -> Path:
        return self.app_root / BACKUPS_DIR

    @property
    def current_link(self) -> Path:
        return self.app_root / CURRENT_LINK_NAME

    @property
    def lock_file(self) -> Path:
        return self.app_root / DEPLOYMENT_LOCK_FILE

    def ensure(self) -> List[Path]:
        """Create any missing directory of the layout

        Returns:
            Directories that were created

        Raises:
            LayoutError: If a directory cannot be created
        """
        required = [
            self.app_root,
            self.releases_dir,
            self.shared_dir,
            self.backups_dir,
        ]
        required.extend(self.shared_dir / d for d in self.shared.dirs)
        required.extend(self.shared_dir / d for d in self.shared.writable_subdirs)

        created = []
        for directory in required:
            if directory.is_dir():
                continue
            if directory.exists() or directory.is_symlink():
                raise LayoutError(f"Path exists but is not a directory: {directory}")
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise LayoutError(f"Cannot create {directory}: {e}") from e
            created.append(directory)

        if created:
            logger.info(f"Created {len(created)} layout directories under {self.app_root}")

        return created

    def is_initialized(self) -> bool:
        return self.releases_dir.is_dir() and self.shared_dir.is_dir()

    def resolve_current_release(self) -> Optional[Path]:
        """Resolve the live release

        Returns:
            Absolute path of the release, or None when there is none
        """
        link = self.current_link
        if not link.is_symlink():
            return None

        target = Path(os.readlink(link))
        if not target.is_absolute():
            target = link.parent / target

        target = Path(os.path.normpath(target))
        if not target.is_dir():
            logger.warning(f"Current pointer is dangling: {link} -> {target}")
            return None

        return target

    def current_release_id(self) -> Optional[str]:
        current = self.resolve_current_release()
        return current.name if current else None

    def list_releases(self) -> List[str]:
        """Release ids, newest first"""
        return self._list_ids(self.releases_dir, RELEASE_ID_PATTERN)

    def list_backups(self) -> List[str]:
        """Backup ids, newest first"""
        return self._list_ids(self.backups_dir, BACKUP_ID_PATTERN)

    def release_path(self, release_id: str) -> Path:
        return self.releases_dir / release_id

    def backup_path(self, backup_id: str) -> Path:
        return self.backups_dir / backup_id

    def stage_path(self, release_id: str) -> Path:
        """Path for a new release directory

        Raises:
            ReleaseCollision: If the directory already exists
        """
        path = self.release_path(release_id)
        if path.exists() or path.is_symlink():
            raise ReleaseCollision(release_id, str(path))
        return path

    def new_release_id(self) -> str:
        return generate_release_id(self.list_releases())

    def new_backup_id(self) -> str:
        return generate_backup_id(self.list_backups())

    @staticmethod
    def _list_ids(directory: Path, pattern) -> List[str]:
        if not directory.is_dir():
            return []
        ids = [
            entry.name for entry in directory.iterdir()
            if entry.is_dir() and not entry.is_symlink() and pattern.match(entry.name)
        ]
        return sorted(ids, reverse=True)
