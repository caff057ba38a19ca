# release_deployer/adapters/__init__.py
"""Adapters for the host tools the orchestrator drives"""

from .base import (
    SourceProvider,
    DependencyInstaller,
    LifecycleRunner,
    BackendDetector,
    ServiceReloader,
    WorkerRestarter,
    DatabaseExporter,
)
from .sources import GitSourceProvider, InPlaceSourceProvider
from .php import ComposerInstaller, ArtisanRunner, parse_framework_version
from .detector import SystemdBackendDetector, StaticBackendDetector
from .reload import (
    ReverseProxyReloader,
    ProcessSupervisorReloader,
    NullReloader,
    SupervisorWorkerRestarter,
)
from .database import MysqlDumpExporter
from .factory import ReloaderFactory, Collaborators, parse_backend

__all__ = [
    # Interfaces
    'SourceProvider',
    'DependencyInstaller',
    'LifecycleRunner',
    'BackendDetector',
    'ServiceReloader',
    'WorkerRestarter',
    'DatabaseExporter',

    # Implementations
    'GitSourceProvider',
    'InPlaceSourceProvider',
    'ComposerInstaller',
    'ArtisanRunner',
    'parse_framework_version',
    'SystemdBackendDetector',
    'StaticBackendDetector',
    'ReverseProxyReloader',
    'ProcessSupervisorReloader',
    'NullReloader',
    'SupervisorWorkerRestarter',
    'MysqlDumpExporter',

    # Factory
    'ReloaderFactory',
    'Collaborators',
    'parse_backend',
]
