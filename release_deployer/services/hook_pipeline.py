"""Ordered lifecycle hooks run against a staged release"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

from .permissions import PermissionNormalizer
from ..adapters.base import DependencyInstaller, LifecycleRunner
from ..api.exceptions import HookFailure
from ..constants import APP_KEY_MARKER, ENV_FILE
from ..models.config import DeploymentConfig
from ..models.deployment import DeployOptions, ServiceBackend
from ..models.result import CommandResult, HookResult, OperationStatus
from ..utils.async_utils import sync_to_async

logger = logging.getLogger(__name__)

# Stage names, in execution order
STAGE_DEPENDENCIES = "dependencies"
STAGE_APP_KEY = "app_key"
STAGE_MIGRATE = "migrate"
STAGE_SEED = "seed"
STAGE_OPTIMIZE = "optimize"
STAGE_PERMISSIONS = "permissions"

STAGE_ORDER = [
    STAGE_DEPENDENCIES,
    STAGE_APP_KEY,
    STAGE_MIGRATE,
    STAGE_SEED,
    STAGE_OPTIMIZE,
    STAGE_PERMISSIONS,
]

CACHE_CLEAR_COMMANDS = [
    ["cache:clear"],
    ["config:clear"],
    ["route:clear"],
    ["view:clear"],
]
CACHE_BUILD_COMMANDS = [
    ["config:cache"],
    ["route:cache"],
    ["view:cache"],
]

StageFunc = Callable[[Path], Awaitable[CommandResult]]


class HookPipeline:
    """Fail-fast pipeline: dependencies, app key, migrate, seed, optimize, permissions

    One instance serves one deployment attempt; migrations are invoked at
    most once per instance.
    """

    def __init__(self,
                 installer: DependencyInstaller,
                 lifecycle: LifecycleRunner,
                 config: Optional[DeploymentConfig] = None,
                 backend: ServiceBackend = ServiceBackend.NONE):
        self.installer = installer
        self.lifecycle = lifecycle
        self.config = config or DeploymentConfig()
        self.normalizer = PermissionNormalizer(self.config.permissions, backend)
        self._migration_invoked = False

    def plan(self, options: DeployOptions) -> List[Tuple[str, Optional[StageFunc]]]:
        """Stages for the given options; ``None`` marks a skipped stage"""
        migrate = options.migrate
        return [
            (STAGE_DEPENDENCIES, self.install_dependencies),
            (STAGE_APP_KEY, self.provision_app_key),
            (STAGE_MIGRATE, self.migrate if migrate else None),
            (STAGE_SEED, self.seed if (options.seed and migrate) else None),
            (STAGE_OPTIMIZE, self.optimize if options.optimize else None),
            (STAGE_PERMISSIONS, self.normalize_permissions),
        ]

    async def run(self, release_path: Path, options: DeployOptions) -> List[HookResult]:
        """Run every planned stage in order

        Args:
            release_path: Staged release directory
            options: Deployment options

        Returns:
            One HookResult per stage (skipped stages included)

        Raises:
            HookFailure: On the first failing stage; earlier results are
                attached as ``results``
        """
        results: List[HookResult] = []
        timeout = self.config.timeouts.stage

        for name, func in self.plan(options):
            if func is None:
                results.append(HookResult(name, OperationStatus.SKIPPED, "disabled"))
                continue

            logger.info(f"Running stage: {name}")
            started = time.monotonic()
            try:
                outcome = await asyncio.wait_for(func(release_path), timeout=timeout)
            except asyncio.TimeoutError:
                outcome = CommandResult(
                    success=False,
                    output=f"Stage timed out after {timeout}s",
                    timed_out=True
                )
            except (OSError, ValueError) as e:
                outcome = CommandResult(success=False, output=str(e))
            duration = time.monotonic() - started

            if outcome.success:
                status = OperationStatus.SUCCESS
                if outcome.skipped:
                    status = OperationStatus.SKIPPED
                results.append(HookResult(name, status, outcome.output, duration))
                logger.info(f"Stage {name} finished in {duration:.1f}s")
                continue

            results.append(HookResult(name, OperationStatus.FAILED, outcome.output, duration))
            logger.error(f"Stage {name} failed: {outcome.output}")
            raise HookFailure(
                name,
                "timed out" if outcome.timed_out else "command failed",
                output=outcome.output,
                results=results
            )

        return results

    async def install_dependencies(self, release_path: Path) -> CommandResult:
        return await self.installer.install(release_path)

    async def provision_app_key(self, release_path: Path) -> CommandResult:
        env_path = release_path / ENV_FILE
        if not env_path.exists():
            logger.warning("No .env file found, skipping key generation")
            return CommandResult.skip("no .env file")

        if APP_KEY_MARKER.encode() in env_path.read_bytes():
            return CommandResult.skip("application key already set")

        if not self.lifecycle.is_available(release_path):
            return CommandResult.skip("no lifecycle entry point")

        logger.info("Generating application key")
        return await self.lifecycle.run(release_path, ["key:generate", "--force"])

    async def migrate(self, release_path: Path) -> CommandResult:
        if self._migration_invoked:
            return CommandResult.skip("migrations already invoked in this deployment")
        self._migration_invoked = True
        return await self._lifecycle(release_path, [["migrate", "--force"]])

    async def seed(self, release_path: Path) -> CommandResult:
        return await self._lifecycle(release_path, [["db:seed", "--force"]])

    async def optimize(self, release_path: Path) -> CommandResult:
        return await self._lifecycle(release_path, CACHE_CLEAR_COMMANDS + CACHE_BUILD_COMMANDS)

    async def normalize_permissions(self, release_path: Path) -> CommandResult:
        changed = await sync_to_async(self.normalizer.normalize)(release_path)
        return CommandResult(success=True, output=f"{changed} entries updated", returncode=0)

    async def _lifecycle(self, release_path: Path, commands: List[List[str]]) -> CommandResult:
        if not self.lifecycle.is_available(release_path):
            return CommandResult(
                success=False,
                output=f"Lifecycle entry point not found in {release_path}"
            )

        outputs = []
        for args in commands:
            result = await self.lifecycle.run(release_path, args)
            if result.output:
                outputs.append(result.output)
            if not result.success:
                return CommandResult(
                    success=False,
                    output="\n".join(outputs),
                    returncode=result.returncode,
                    timed_out=result.timed_out
                )

        return CommandResult(success=True, output="\n".join(outputs), returncode=0)
