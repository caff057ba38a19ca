"""Application maintenance mode around risky deployment stages"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from ..adapters.base import LifecycleRunner
from ..api.exceptions import MaintenanceExitFailure
from ..models.config import MaintenanceConfig
from ..models.result import CommandResult

logger = logging.getLogger(__name__)


class MaintenanceGate:
    """Sends ``down`` / ``up`` to the application with a bounded retry budget

    Entering is best effort. Failing to exit is escalated through
    MaintenanceExitFailure because the site stays unavailable.
    """

    def __init__(self, lifecycle: LifecycleRunner,
                 config: Optional[MaintenanceConfig] = None,
                 enabled: bool = True):
        self.lifecycle = lifecycle
        self.config = config or MaintenanceConfig()
        self.enabled = enabled
        self.active = False

    def get_retry_delay(self, attempt: int) -> float:
        """Delay before retry ``attempt`` (1-based) with exponential backoff"""
        return self.config.retry_delay * (self.config.backoff_multiplier ** (attempt - 1))

    async def enter(self, release_path: Optional[Path]) -> bool:
        """Put the live application into maintenance mode

        Returns:
            True if the application acknowledged; failures are only logged
        """
        if not self.enabled:
            return False
        if release_path is None:
            logger.info("No live release; maintenance mode not needed")
            return False

        logger.info("Enabling maintenance mode")
        result = await self._attempt(
            release_path,
            ["down", f"--retry={self.config.retry_after}"]
        )
        if result.success:
            self.active = True
            return True

        logger.warning(f"Could not enable maintenance mode, continuing: {result.output}")
        return False

    async def exit(self, release_path: Optional[Path]) -> bool:
        """Bring the application back online

        Returns:
            True if maintenance mode was lifted, False if it was never on

        Raises:
            MaintenanceExitFailure: If the application could not be brought up
        """
        if not self.enabled or not self.active:
            return False
        if release_path is None:
            raise MaintenanceExitFailure("No release to run the exit command against")

        logger.info("Disabling maintenance mode")
        result = await self._attempt(release_path, ["up"])
        if not result.success:
            logger.error(f"Application is still in maintenance mode: {result.output}")
            raise MaintenanceExitFailure(result.output)

        self.active = False
        return True

    async def _attempt(self, release_path: Path, args: List[str]) -> CommandResult:
        if not self.lifecycle.is_available(release_path):
            return CommandResult(
                success=False,
                output=f"Lifecycle entry point not found in {release_path}"
            )

        attempts = max(1, self.config.retries)
        result = CommandResult(success=False)
        for attempt in range(1, attempts + 1):
            result = await self.lifecycle.run(release_path, args)
            if result.success:
                return result
            if attempt < attempts:
                delay = self.get_retry_delay(attempt)
                logger.debug(f"'{args[0]}' failed (attempt {attempt}/{attempts}), retrying in {delay}s")
                await asyncio.sleep(delay)

        return result
