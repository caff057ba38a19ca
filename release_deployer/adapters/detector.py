"""Detection of the active front-end service"""

import logging
import shutil
from typing import List, Optional

from .base import BackendDetector
from ..models.deployment import ServiceBackend
from ..utils.async_utils import run_command

logger = logging.getLogger(__name__)


class SystemdBackendDetector(BackendDetector):
    """Checks ``systemctl is-active`` in priority order"""

    DETECTION_ORDER = [
        ServiceBackend.FRANKENPHP,
        ServiceBackend.CADDY,
        ServiceBackend.NGINX,
    ]

    def __init__(self, order: Optional[List[ServiceBackend]] = None, timeout: float = 10):
        self.order = order or list(self.DETECTION_ORDER)
        self.timeout = timeout

    async def detect(self) -> ServiceBackend:
        if shutil.which("systemctl") is None:
            logger.info("systemctl not available; no service backend detected")
            return ServiceBackend.NONE

        for backend in self.order:
            result = await run_command(
                ["systemctl", "is-active", "--quiet", backend.value],
                timeout=self.timeout
            )
            if result.success:
                logger.info(f"Detected service backend: {backend.value}")
                return backend

        logger.warning("No web server detected (frankenphp, caddy, nginx)")
        return ServiceBackend.NONE


class StaticBackendDetector(BackendDetector):
    """Returns a configured backend without probing"""

    def __init__(self, backend: ServiceBackend):
        self.backend = backend

    async def detect(self) -> ServiceBackend:
        return self.backend
