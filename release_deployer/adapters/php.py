"""Composer and artisan collaborators for PHP applications"""

import logging
import re
from pathlib import Path
from typing import List, Optional

from packaging.version import InvalidVersion, Version

from .base import DependencyInstaller, LifecycleRunner
from ..constants import DEFAULT_PHP_BINARY, DEFAULT_COMPOSER_BINARY
from ..models.result import CommandResult
from ..utils.async_utils import run_command

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"(\d+\.\d+(?:\.\d+)?(?:[-.]?\w+)?)")


class ComposerInstaller(DependencyInstaller):
    """``composer install`` for production"""

    INSTALL_ARGS = [
        "install",
        "--no-dev",
        "--no-interaction",
        "--prefer-dist",
        "--optimize-autoloader",
    ]

    def __init__(self, binary: str = DEFAULT_COMPOSER_BINARY, timeout: Optional[float] = None):
        self.binary = binary
        self.timeout = timeout

    async def install(self, release_path: Path) -> CommandResult:
        if not (release_path / "composer.json").exists():
            logger.warning("No composer.json found, skipping dependency installation")
            return CommandResult.skip("No composer.json")

        return await run_command(
            [self.binary, *self.INSTALL_ARGS],
            cwd=release_path,
            timeout=self.timeout
        )


class ArtisanRunner(LifecycleRunner):
    """``php artisan <command> --no-interaction``"""

    def __init__(self, php_binary: str = DEFAULT_PHP_BINARY, timeout: Optional[float] = None):
        self.php_binary = php_binary
        self.timeout = timeout

    def is_available(self, release_path: Path) -> bool:
        return (release_path / "artisan").is_file()

    async def run(self, release_path: Path, args: List[str]) -> CommandResult:
        cmd = [self.php_binary, "artisan", *args]
        if "--no-interaction" not in args:
            cmd.append("--no-interaction")
        return await run_command(cmd, cwd=release_path, timeout=self.timeout)

    async def framework_version(self, release_path: Path) -> Optional[str]:
        """Framework version reported by ``artisan --version``"""
        if not self.is_available(release_path):
            return None

        result = await self.run(release_path, ["--version"])
        if not result.success:
            return None
        return parse_framework_version(result.output)


def parse_framework_version(output: str) -> Optional[str]:
    """Extract a normalized version from e.g. ``Laravel Framework 11.2.0``"""
    match = _VERSION_RE.search(output or "")
    if not match:
        return None
    try:
        return str(Version(match.group(1)))
    except InvalidVersion:
        return None
