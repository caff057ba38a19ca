"""Front-end service reloaders and worker restarter"""

import logging
import shutil
from typing import List, Optional

from .base import ServiceReloader, WorkerRestarter
from ..constants import DEFAULT_CADDYFILE
from ..models.deployment import ServiceBackend
from ..models.result import OperationStatus, ReloadOutcome
from ..utils.async_utils import run_command

logger = logging.getLogger(__name__)


async def _run_reload(backend: str, cmd: List[str], timeout: Optional[float]) -> ReloadOutcome:
    if shutil.which(cmd[0]) is None:
        logger.info(f"{cmd[0]} not installed; skipping {backend} reload")
        return ReloadOutcome(backend, OperationStatus.SKIPPED, f"{cmd[0]} not installed")

    result = await run_command(cmd, timeout=timeout)
    if result.success:
        logger.info(f"Reloaded {backend}")
        return ReloadOutcome(backend, OperationStatus.SUCCESS, result.output)

    logger.error(f"Failed to reload {backend}: {result.output}")
    return ReloadOutcome(backend, OperationStatus.FAILED, result.output)


async def _service_active(unit: str) -> bool:
    if shutil.which("systemctl") is None:
        return False
    result = await run_command(["systemctl", "is-active", "--quiet", unit], timeout=10)
    return result.success


class ReverseProxyReloader(ServiceReloader):
    """Graceful configuration reload (nginx, caddy)"""

    def __init__(self, backend: ServiceBackend, timeout: Optional[float] = None,
                 caddyfile: str = DEFAULT_CADDYFILE):
        super().__init__(backend, timeout)
        self.caddyfile = caddyfile

    def command(self) -> List[str]:
        if self.backend == ServiceBackend.CADDY:
            return ["caddy", "reload", "--config", self.caddyfile]
        return ["systemctl", "reload", self.backend.value]

    async def reload(self) -> ReloadOutcome:
        if not await _service_active(self.backend.value):
            logger.info(f"{self.backend.value} is not running; nothing to reload")
            return ReloadOutcome(self.backend.value, OperationStatus.SKIPPED, "service not active")
        return await _run_reload(self.backend.value, self.command(), self.timeout)


class ProcessSupervisorReloader(ServiceReloader):
    """Full restart of an application server that holds code in memory"""

    def command(self) -> List[str]:
        return ["systemctl", "restart", self.backend.value]

    async def reload(self) -> ReloadOutcome:
        if not await _service_active(self.backend.value):
            logger.info(f"{self.backend.value} is not running; nothing to restart")
            return ReloadOutcome(self.backend.value, OperationStatus.SKIPPED, "service not active")
        return await _run_reload(self.backend.value, self.command(), self.timeout)


class NullReloader(ServiceReloader):
    """No front-end service to reload"""

    def __init__(self, backend: ServiceBackend = ServiceBackend.NONE, timeout: Optional[float] = None):
        super().__init__(backend, timeout)

    async def reload(self) -> ReloadOutcome:
        logger.info("No service backend selected; skipping reload")
        return ReloadOutcome(self.backend.value, OperationStatus.SKIPPED, "no backend")


class SupervisorWorkerRestarter(WorkerRestarter):
    """``supervisorctl restart all``"""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    async def restart(self) -> ReloadOutcome:
        return await _run_reload("supervisor", ["supervisorctl", "restart", "all"], self.timeout)
