# release_deployer/api/__init__.py
"""API layer for release-deployer"""

from .exceptions import (
    DeployToolError,
    LayoutError,
    ReleaseCollision,
    LockContention,
    DeploymentInProgress,
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
from .deployer import Deployer, deploy

__all__ = [
    # Main classes
    "Deployer",

    # Convenience functions
    "deploy",

    # Exceptions
    "DeployToolError",
    "LayoutError",
    "ReleaseCollision",
    "LockContention",
    "DeploymentInProgress",
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
