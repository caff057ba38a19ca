"""Database export for backups"""

import logging
import shutil
from pathlib import Path
from typing import Dict, Optional

from .base import DatabaseExporter
from ..models.result import CommandResult
from ..utils.async_utils import run_command

logger = logging.getLogger(__name__)


class MysqlDumpExporter(DatabaseExporter):
    """``mysqldump`` with credentials from the application environment"""

    SUPPORTED_CONNECTIONS = ("mysql", "mariadb")

    def __init__(self, binary: str = "mysqldump", timeout: Optional[float] = None):
        self.binary = binary
        self.timeout = timeout

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    async def export(self, env: Dict[str, Optional[str]], dump_path: Path) -> CommandResult:
        connection = (env.get("DB_CONNECTION") or "mysql").lower()
        if connection not in self.SUPPORTED_CONNECTIONS:
            return CommandResult.skip(f"Unsupported DB_CONNECTION: {connection}")

        database = env.get("DB_DATABASE")
        username = env.get("DB_USERNAME")
        if not database or not username:
            return CommandResult.skip("DB_DATABASE or DB_USERNAME not set")

        cmd = [self.binary, f"--user={username}", "--single-transaction"]
        if env.get("DB_HOST"):
            cmd.append(f"--host={env['DB_HOST']}")
        if env.get("DB_PORT"):
            cmd.append(f"--port={env['DB_PORT']}")
        cmd.append(database)

        # Password via environment keeps it out of the process list
        result = await run_command(
            cmd,
            env={"MYSQL_PWD": env.get("DB_PASSWORD") or ""},
            timeout=self.timeout,
            stdout_path=dump_path
        )
        if not result.success:
            logger.warning(f"Database export failed: {result.output}")
        return result
