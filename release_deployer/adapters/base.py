# release_deployer/adapters/base.py
"""Abstract interfaces of the orchestrator's external collaborators"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from ..models.deployment import Deployment, ServiceBackend
from ..models.result import CommandResult, ReloadOutcome


class SourceProvider(ABC):
    """Populates a release directory with application code"""

    @abstractmethod
    async def fetch(self, deployment: Deployment, release_path: Path) -> CommandResult:
        """
        Materialize the codebase at ``release_path``

        Args:
            deployment: Deployment being staged
            release_path: Directory to create (does not exist yet)

        Returns:
            CommandResult with captured output
        """
        pass

    async def revision(self, release_path: Path) -> Optional[str]:
        """Identifier of the fetched revision, if the source knows one"""
        return None


class DependencyInstaller(ABC):
    """Installs the application's runtime dependencies"""

    @abstractmethod
    async def install(self, release_path: Path) -> CommandResult:
        """
        Install dependencies for a release

        Args:
            release_path: Release directory

        Returns:
            CommandResult with captured output
        """
        pass


class LifecycleRunner(ABC):
    """Invokes the application's own lifecycle commands"""

    @abstractmethod
    async def run(self, release_path: Path, args: List[str]) -> CommandResult:
        """
        Run one lifecycle command against a release

        Args:
            release_path: Release directory
            args: Command name and arguments, e.g. ``["migrate", "--force"]``

        Returns:
            CommandResult with captured output
        """
        pass

    def is_available(self, release_path: Path) -> bool:
        """Whether the release ships the lifecycle entry point"""
        return True

    async def framework_version(self, release_path: Path) -> Optional[str]:
        """Version of the application framework, if known"""
        return None


class BackendDetector(ABC):
    """Reports which front-end service is active on the host"""

    @abstractmethod
    async def detect(self) -> ServiceBackend:
        pass


class ServiceReloader(ABC):
    """Reloads or restarts one kind of front-end service"""

    def __init__(self, backend: ServiceBackend, timeout: Optional[float] = None):
        self.backend = backend
        self.timeout = timeout

    @abstractmethod
    async def reload(self) -> ReloadOutcome:
        """
        Make the service pick up the new release

        Must not raise when the service is absent; returns a skipped
        outcome instead.
        """
        pass


class WorkerRestarter(ABC):
    """Restarts background queue workers"""

    @abstractmethod
    async def restart(self) -> ReloadOutcome:
        pass


class DatabaseExporter(ABC):
    """Produces a database dump for backups"""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def export(self, env: Dict[str, Optional[str]], dump_path: Path) -> CommandResult:
        """
        Dump the application database

        Args:
            env: Variables read from the shared environment file
            dump_path: Output file

        Returns:
            CommandResult, skipped when the environment names no database
        """
        pass
