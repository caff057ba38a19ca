"""Ownership and mode normalization of a release tree"""

import logging
import os
import pwd
import stat
from pathlib import Path
from typing import Optional, Tuple

from ..constants import DEFAULT_WEB_USER
from ..models.config import PermissionConfig
from ..models.deployment import ServiceBackend

logger = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def user_exists(name: str) -> bool:
    try:
        pwd.getpwnam(name)
        return True
    except KeyError:
        return False


def resolve_web_user(backend: ServiceBackend, configured: Optional[str] = None) -> str:
    """User the front-end service runs as"""
    if configured:
        return configured
    if backend == ServiceBackend.FRANKENPHP:
        return "frankenphp"
    if backend in (ServiceBackend.CADDY, ServiceBackend.NGINX) and user_exists(backend.value):
        return backend.value
    return DEFAULT_WEB_USER


class PermissionNormalizer:
    """Brings modes (and ownership when root) of a release to a fixed state

    Only entries that differ are touched, so a second run changes nothing.
    Symlinks are never followed: shared/ belongs to the running application.
    """

    def __init__(self, config: Optional[PermissionConfig] = None,
                 backend: ServiceBackend = ServiceBackend.NONE):
        self.config = config or PermissionConfig()
        self.web_user = resolve_web_user(backend, self.config.web_user)

    def _owner(self) -> Optional[Tuple[int, int]]:
        if os.geteuid() != 0:
            return None
        try:
            entry = pwd.getpwnam(self.web_user)
        except KeyError:
            logger.warning(f"Web user '{self.web_user}' does not exist; ownership unchanged")
            return None
        return entry.pw_uid, entry.pw_gid

    def _is_writable(self, release_path: Path, path: Path) -> bool:
        relative = path.relative_to(release_path)
        for writable in self.config.writable_paths:
            prefix = Path(writable)
            if relative == prefix or prefix in relative.parents:
                return True
        return False

    def _wanted_mode(self, release_path: Path, path: Path, st: os.stat_result) -> int:
        if stat.S_ISDIR(st.st_mode):
            if self._is_writable(release_path, path):
                return self.config.writable_mode
            return self.config.dir_mode

        mode = self.config.file_mode
        if self._is_writable(release_path, path):
            mode = self.config.writable_mode & ~_EXEC_BITS
        if st.st_mode & _EXEC_BITS:
            # Keep scripts executable
            mode |= (mode & 0o444) >> 2
        return mode

    def normalize(self, release_path: Path) -> int:
        """Apply modes and ownership

        Args:
            release_path: Release directory

        Returns:
            Number of entries changed
        """
        release_path = Path(release_path)
        owner = self._owner()
        changed = 0

        for root, dirs, files in os.walk(release_path, followlinks=False):
            root_path = Path(root)
            entries = [root_path] if root_path == release_path else []
            entries.extend(root_path / name for name in dirs + files)

            for path in entries:
                st = os.lstat(path)
                if stat.S_ISLNK(st.st_mode):
                    continue

                touched = False
                wanted = self._wanted_mode(release_path, path, st)
                if stat.S_IMODE(st.st_mode) != wanted:
                    os.chmod(path, wanted)
                    touched = True

                if owner and (st.st_uid, st.st_gid) != owner:
                    os.chown(path, *owner, follow_symlinks=False)
                    touched = True

                if touched:
                    changed += 1

        logger.info(f"Normalized permissions of {changed} entries (web user: {self.web_user})")
        return changed
