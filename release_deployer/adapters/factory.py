"""Reloader factory and collaborator bundle"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Type

from .base import (
    BackendDetector,
    DatabaseExporter,
    DependencyInstaller,
    LifecycleRunner,
    ServiceReloader,
    SourceProvider,
    WorkerRestarter,
)
from .database import MysqlDumpExporter
from .detector import StaticBackendDetector, SystemdBackendDetector
from .php import ArtisanRunner, ComposerInstaller
from .reload import (
    NullReloader,
    ProcessSupervisorReloader,
    ReverseProxyReloader,
    SupervisorWorkerRestarter,
)
from .sources import GitSourceProvider, InPlaceSourceProvider
from ..api.exceptions import ConfigError
from ..models.config import DeploymentConfig
from ..models.deployment import BackendKind, DeployMethod, ServiceBackend


class ReloaderFactory:
    """Factory for creating service reloaders"""

    # Registry of reloaders by reload style
    _reloaders: Dict[BackendKind, Type[ServiceReloader]] = {
        BackendKind.REVERSE_PROXY: ReverseProxyReloader,
        BackendKind.PROCESS_SUPERVISOR: ProcessSupervisorReloader,
        BackendKind.NONE: NullReloader,
    }

    @classmethod
    def create(cls, backend: ServiceBackend,
               config: Optional[DeploymentConfig] = None) -> ServiceReloader:
        """Create the reloader for a backend

        Args:
            backend: Detected or configured backend
            config: Deployment configuration

        Returns:
            ServiceReloader instance
        """
        config = config or DeploymentConfig()
        reloader_class = cls._reloaders[backend.kind]
        timeout = config.timeouts.command

        if reloader_class is ReverseProxyReloader:
            return ReverseProxyReloader(backend, timeout=timeout, caddyfile=config.caddyfile)
        return reloader_class(backend, timeout=timeout)

    @classmethod
    def register_reloader(cls, kind: BackendKind, reloader_class: Type[ServiceReloader]):
        """Register a reloader for a reload style

        Args:
            kind: Backend kind
            reloader_class: Reloader class
        """
        cls._reloaders[kind] = reloader_class


def parse_backend(value: str) -> Optional[ServiceBackend]:
    """``auto`` → None, otherwise a ServiceBackend

    Raises:
        ConfigError: For unknown names
    """
    if value in (None, "", "auto"):
        return None
    try:
        return ServiceBackend(value)
    except ValueError:
        supported = ", ".join(["auto"] + [b.value for b in ServiceBackend])
        raise ConfigError(f"Unknown service backend '{value}' (supported: {supported})")


@dataclass
class Collaborators:
    """External capabilities injected into the deployment controller"""

    sources: Dict[DeployMethod, SourceProvider]
    installer: DependencyInstaller
    lifecycle: LifecycleRunner
    detector: BackendDetector
    workers: WorkerRestarter
    database: Optional[DatabaseExporter] = None
    reloaders: Dict[ServiceBackend, ServiceReloader] = field(default_factory=dict)
    config: DeploymentConfig = field(default_factory=DeploymentConfig)

    def source_for(self, method: DeployMethod) -> SourceProvider:
        try:
            return self.sources[method]
        except KeyError:
            raise ConfigError(f"No source provider for method '{method.value}'")

    def reloader_for(self, backend: ServiceBackend) -> ServiceReloader:
        if backend not in self.reloaders:
            self.reloaders[backend] = ReloaderFactory.create(backend, self.config)
        return self.reloaders[backend]

    @classmethod
    def default(cls, config: Optional[DeploymentConfig] = None) -> 'Collaborators':
        """Host implementations: git, composer, artisan, systemd, supervisor, mysqldump"""
        config = config or DeploymentConfig()
        timeout = config.timeouts.command

        backend = parse_backend(config.backend)
        detector = StaticBackendDetector(backend) if backend else SystemdBackendDetector()

        return cls(
            sources={
                DeployMethod.GIT: GitSourceProvider(timeout=timeout),
                DeployMethod.IN_PLACE: InPlaceSourceProvider(exclude=config.shared.paths),
            },
            installer=ComposerInstaller(binary=config.composer_binary, timeout=timeout),
            lifecycle=ArtisanRunner(php_binary=config.php_binary, timeout=timeout),
            detector=detector,
            workers=SupervisorWorkerRestarter(timeout=timeout),
            database=MysqlDumpExporter(timeout=config.timeouts.snapshot),
            config=config,
        )
