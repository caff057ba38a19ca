"""Deployer API for deployment operations"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..adapters.factory import Collaborators
from ..core.cancellation import CancellationController
from ..core.layout import LayoutManager
from ..core.lock import DeploymentLock
from ..models.config import DeploymentConfig
from ..models.deployment import Backup, DeployMethod, DeployOptions, Deployment, Release
from ..models.result import DeployResult
from ..services.backup_service import BackupService
from ..services.config_service import ConfigService
from ..services.deploy_service import DeployService
from ..utils.async_utils import run_async

logger = logging.getLogger(__name__)


class Deployer:
    """Deployer class for deployment operations"""

    def __init__(self,
                 app_root: Union[str, Path],
                 config: Optional[DeploymentConfig] = None,
                 config_path: Optional[Union[str, Path]] = None,
                 collaborators: Optional[Collaborators] = None):
        """
        Initialize deployer

        Args:
            app_root: Application root holding releases/, shared/, backups/
            config: Deployment configuration; loaded from disk when omitted
            config_path: Explicit configuration file
            collaborators: External capabilities; host defaults when omitted
        """
        self.app_root = Path(app_root).expanduser().resolve()
        if config is None:
            config = ConfigService(self.app_root, config_path).load_config()
        self.config = config
        self.collaborators = collaborators or Collaborators.default(config)
        self.layout = LayoutManager(self.app_root, config.shared)

    def _service(self, cancellation: Optional[CancellationController] = None) -> DeployService:
        return DeployService(self.layout, self.collaborators, self.config, cancellation)

    def deploy(self,
               method: Union[str, DeployMethod] = DeployMethod.GIT,
               repository: Optional[str] = None,
               branch: str = "main",
               source_path: Optional[Union[str, Path]] = None,
               options: Optional[DeployOptions] = None) -> DeployResult:
        """
        Deploy a new release

        Args:
            method: ``git`` or ``in-place``
            repository: Repository URL for git deployments
            branch: Branch to check out
            source_path: Source directory for in-place deployments
            options: Deployment options

        Returns:
            DeployResult: Deployment result with exit code
        """
        deployment = Deployment(
            app_root=self.app_root,
            method=DeployMethod(method),
            repository=repository,
            branch=branch,
            source_path=Path(source_path) if source_path else None,
            options=options or DeployOptions()
        )
        return asyncio.run(self._async_deploy(deployment))

    async def _async_deploy(self, deployment: Deployment) -> DeployResult:
        cancellation = CancellationController()
        service = self._service(cancellation)

        task = asyncio.ensure_future(service.deploy(deployment))
        cancellation.attach(task)
        cancellation.install_signal_handlers()
        try:
            return await task
        finally:
            cancellation.remove_signal_handlers()

    def rollback(self, release_id: Optional[str] = None) -> DeployResult:
        """
        Re-promote an older release

        Args:
            release_id: Target release; defaults to the previous one

        Returns:
            DeployResult: Rollback result
        """
        return run_async(self._service().rollback(release_id))

    def list_releases(self) -> List[Release]:
        """Releases newest first"""
        return run_async(self._service().list_releases())

    def list_backups(self) -> List[Backup]:
        """Backups newest first"""
        service = BackupService(self.layout, self.config, self.collaborators.database)
        return run_async(service.list_backups())

    def inspect(self) -> Dict[str, Any]:
        """Host and layout diagnostics"""
        lock = DeploymentLock(self.layout.lock_file, self.app_root)
        backend = run_async(self.collaborators.detector.detect())

        tools = {}
        for name in (self.config.php_binary, self.config.composer_binary,
                     "git", "systemctl", "supervisorctl", "mysqldump"):
            tools[name] = shutil.which(name) is not None

        return {
            "app_root": str(self.app_root),
            "initialized": self.layout.is_initialized(),
            "current_release": self.layout.current_release_id(),
            "releases": len(self.layout.list_releases()),
            "backups": len(self.layout.list_backups()),
            "locked": lock.is_locked(),
            "lock_holder": lock.holder_pid(),
            "backend": backend.value,
            "tools": tools,
        }


def deploy(app_root: Union[str, Path],
           repository: Optional[str] = None,
           branch: str = "main",
           source_path: Optional[Union[str, Path]] = None,
           **options) -> DeployResult:
    """
    Convenience function for deployment

    Args:
        app_root: Application root
        repository: Repository URL; omit for an in-place deployment
        branch: Branch to check out
        source_path: Source directory for in-place deployments
        **options: DeployOptions fields (migrate, seed, backup, ...)

    Returns:
        DeployResult: Deployment result
    """
    method = DeployMethod.GIT if repository else DeployMethod.IN_PLACE
    return Deployer(app_root).deploy(
        method=method,
        repository=repository,
        branch=branch,
        source_path=source_path,
        options=DeployOptions.from_dict(options)
    )
