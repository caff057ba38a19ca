"""Release Deployer - zero-downtime, release-based deployments.

Stages each deployment of a PHP application into its own release
directory, prepares it there, and makes it live by atomically switching
the ``current`` link, with backups, maintenance mode and rollback.
"""

from .__version__ import __version__, __version_info__, __author__, __email__, __license__

# Exceptions
from .api.exceptions import (
    DeployToolError,
    LayoutError,
    LockContention,
    BackupFailure,
    StagingFailure,
    HookFailure,
    SwitchFailure,
    ReloadFailure,
    MaintenanceExitFailure,
    ConfigError,
    ValidationError,
    DeploymentCancelled,
    ReleaseNotFoundError,
    UnexpectedError,
)

# Core API
from .api.deployer import Deployer, deploy

# Data models
from .models.config import DeploymentConfig
from .models.deployment import (
    DeployMethod,
    DeployOptions,
    Deployment,
    DeploymentState,
    ExitCode,
    ServiceBackend,
)
from .models.result import DeployResult

__all__ = [
    # Version information
    "__version__",
    "__version_info__",
    "__author__",
    "__email__",
    "__license__",

    # Main classes
    "Deployer",

    # Core API functions
    "deploy",

    # Data models
    "DeploymentConfig",
    "DeployMethod",
    "DeployOptions",
    "Deployment",
    "DeploymentState",
    "ExitCode",
    "ServiceBackend",
    "DeployResult",

    # Exceptions
    "DeployToolError",
    "LayoutError",
    "LockContention",
    "BackupFailure",
    "StagingFailure",
    "HookFailure",
    "SwitchFailure",
    "ReloadFailure",
    "MaintenanceExitFailure",
    "ConfigError",
    "ValidationError",
    "DeploymentCancelled",
    "ReleaseNotFoundError",
    "UnexpectedError",
]
