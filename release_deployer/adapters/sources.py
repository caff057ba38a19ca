"""Source providers: git clone and in-place copy"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from .base import SourceProvider
from ..constants import IN_PLACE_EXCLUDES
from ..models.deployment import Deployment
from ..models.result import CommandResult
from ..utils.async_utils import run_command, sync_to_async
from ..utils.file_utils import copy_tree

logger = logging.getLogger(__name__)


class GitSourceProvider(SourceProvider):
    """Shallow clone of one branch or tag"""

    def __init__(self, timeout: Optional[float] = None, git_binary: str = "git"):
        self.timeout = timeout
        self.git_binary = git_binary

    async def fetch(self, deployment: Deployment, release_path: Path) -> CommandResult:
        if not deployment.repository:
            return CommandResult(success=False, output="No repository given")

        logger.info(f"Cloning {deployment.repository} (branch: {deployment.branch})")
        return await run_command(
            [
                self.git_binary, "clone",
                "--branch", deployment.branch,
                "--depth", "1",
                deployment.repository,
                str(release_path),
            ],
            timeout=self.timeout
        )

    async def revision(self, release_path: Path) -> Optional[str]:
        result = await run_command(
            [self.git_binary, "rev-parse", "HEAD"],
            cwd=release_path,
            timeout=30
        )
        return result.output.strip() if result.success else None


class InPlaceSourceProvider(SourceProvider):
    """Copies an existing application tree into the new release"""

    def __init__(self, exclude: Optional[Iterable[str]] = None):
        self.exclude = list(IN_PLACE_EXCLUDES) + list(exclude or [])

    async def fetch(self, deployment: Deployment, release_path: Path) -> CommandResult:
        source = deployment.source_path
        if source is None or not Path(source).is_dir():
            return CommandResult(success=False, output=f"Source directory not found: {source}")

        logger.info(f"Copying {source} into {release_path}")
        try:
            await sync_to_async(copy_tree)(Path(source), release_path, self.exclude)
        except OSError as e:
            return CommandResult(success=False, output=str(e))

        return CommandResult(success=True, output=f"Copied {source}")
