"""Backup and retention of live releases"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..adapters.base import DatabaseExporter
from ..api.exceptions import BackupFailure
from ..constants import (
    BACKUP_METADATA_FILE,
    BACKUP_PARTIAL_PREFIX,
    BACKUP_RELEASE_DIR,
    BACKUP_SHARED_DIR,
    DATABASE_DUMP_FILE,
    DEFAULT_KEEP_BACKUPS,
    ENV_FILE,
)
from ..core.layout import LayoutManager
from ..models.config import DeploymentConfig
from ..models.deployment import Backup
from ..utils.async_utils import sync_to_async
from ..utils.file_utils import (
    copy_tree,
    format_size,
    get_directory_size,
    read_env_file,
    read_json,
    remove_path,
    write_json,
)

logger = logging.getLogger(__name__)


class BackupService:
    """Snapshots the live release and shared configuration

    Backup layout::

        backups/backup-20250101-120000-000000/
        ├── backup.json
        ├── database.sql      (optional)
        ├── release/          (copy of the live release, links kept as links)
        └── shared/.env       (copies of shared configuration files)
    """

    def __init__(self,
                 layout: LayoutManager,
                 config: Optional[DeploymentConfig] = None,
                 exporter: Optional[DatabaseExporter] = None):
        self.layout = layout
        self.config = config or DeploymentConfig()
        self.exporter = exporter

    async def snapshot(self, current_release_path: Path, shared_path: Path) -> Backup:
        """Copy the live release and shared configuration into a new backup

        Args:
            current_release_path: Release ``current`` resolves to
            shared_path: The application's shared/ directory

        Returns:
            Created backup

        Raises:
            BackupFailure: If the copy fails or times out; no partial
                backup directory is left behind
        """
        backup_id = self.layout.new_backup_id()
        backup_path = self.layout.backup_path(backup_id)
        # Built under a name that is never listed as a backup, renamed when complete
        staging_path = self.layout.backups_dir / f"{BACKUP_PARTIAL_PREFIX}{backup_id}"

        logger.info(f"Creating backup: {backup_id}")

        copy = asyncio.ensure_future(
            self._copy(current_release_path, shared_path, staging_path)
        )
        try:
            await asyncio.wait_for(asyncio.shield(copy), timeout=self.config.timeouts.snapshot)
        except asyncio.TimeoutError:
            await self._wait_for_copy(copy)
            await self._discard(staging_path)
            raise BackupFailure(
                f"Snapshot timed out after {self.config.timeouts.snapshot}s"
            )
        except OSError as e:
            await self._discard(staging_path)
            raise BackupFailure(f"Snapshot of {current_release_path} failed: {e}") from e
        except asyncio.CancelledError:
            await self._wait_for_copy(copy)
            await self._discard(staging_path)
            raise

        has_dump = await self._export_database(shared_path, staging_path)

        backup = Backup(
            backup_id=backup_id,
            path=backup_path,
            source_release=current_release_path.name,
            has_database_dump=has_dump,
            created_at=datetime.now(timezone.utc)
        )
        try:
            await write_json(staging_path / BACKUP_METADATA_FILE, backup.to_dict())
            os.replace(staging_path, backup_path)
        except OSError as e:
            await self._discard(staging_path)
            raise BackupFailure(f"Could not finalize backup {backup_id}: {e}") from e

        size = await sync_to_async(get_directory_size)(backup_path)
        logger.info(f"Backup created: {backup_path} ({format_size(size)})")
        return backup

    async def _copy(self, release_path: Path, shared_path: Path, backup_path: Path) -> None:
        backup_path.mkdir(parents=True)
        await sync_to_async(copy_tree)(release_path, backup_path / BACKUP_RELEASE_DIR)

        shared_backup = backup_path / BACKUP_SHARED_DIR
        shared_backup.mkdir()
        for name in self.config.shared.files:
            source = shared_path / name
            if source.is_file():
                target = shared_backup / name
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(source.read_bytes())

    async def _export_database(self, shared_path: Path, backup_path: Path) -> bool:
        """Best-effort database dump; never raises"""
        if self.exporter is None or not self.exporter.is_available():
            logger.info("No database export tool available; skipping database dump")
            return False

        try:
            env = read_env_file(shared_path / ENV_FILE)
        except (OSError, ValueError) as e:
            logger.warning(f"Cannot read shared environment file; skipping database dump: {e}")
            return False
        if not env:
            logger.info("No shared environment file; skipping database dump")
            return False

        dump_path = backup_path / DATABASE_DUMP_FILE
        try:
            result = await self.exporter.export(env, dump_path)
        except (OSError, ValueError) as e:
            logger.warning(f"Database export failed: {e}")
            result = None

        if result is None or not result.success:
            if dump_path.exists():
                dump_path.unlink()
            return False

        if result.skipped:
            logger.info(f"Database dump skipped: {result.output}")
            return False

        logger.info(f"Database dump stored in {dump_path}")
        return True

    @staticmethod
    async def _wait_for_copy(copy: asyncio.Future) -> None:
        """Let an abandoned copy finish; the executor thread cannot be interrupted"""
        await asyncio.wait([copy])
        if not copy.cancelled() and copy.exception() is not None:
            logger.debug(f"Abandoned snapshot copy ended with: {copy.exception()}")

    async def _discard(self, backup_path: Path) -> None:
        try:
            await sync_to_async(remove_path)(backup_path)
        except OSError as e:
            logger.warning(f"Could not remove partial backup {backup_path}: {e}")

    def prune(self, keep: int = DEFAULT_KEEP_BACKUPS) -> List[str]:
        """Remove the oldest backups beyond ``keep``

        Returns:
            Removed backup ids
        """
        removed = []
        for backup_id in self.layout.list_backups()[keep:]:
            path = self.layout.backup_path(backup_id)
            try:
                remove_path(path)
            except OSError as e:
                logger.warning(f"Could not remove old backup {path}: {e}")
                continue
            removed.append(backup_id)

        if removed:
            logger.info(f"Pruned {len(removed)} old backup(s)")
        return removed

    async def list_backups(self) -> List[Backup]:
        """Backups newest first"""
        backups = []
        for backup_id in self.layout.list_backups():
            path = self.layout.backup_path(backup_id)
            meta = await read_json(path / BACKUP_METADATA_FILE)
            created = meta.get("created_at")
            backups.append(Backup(
                backup_id=backup_id,
                path=path,
                source_release=meta.get("source_release"),
                has_database_dump=(path / DATABASE_DUMP_FILE).exists(),
                created_at=datetime.fromisoformat(created) if created else None
            ))
        return backups
