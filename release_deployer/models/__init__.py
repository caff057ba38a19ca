"""Data models for release-deployer"""

from .config import (
    DeploymentConfig,
    RetentionConfig,
    TimeoutConfig,
    MaintenanceConfig,
    SharedConfig,
    PermissionConfig,
)
from .deployment import (
    DeployMethod,
    BackendKind,
    ServiceBackend,
    DeploymentState,
    ExitCode,
    DeployOptions,
    Deployment,
    Release,
    Backup,
)
from .result import (
    OperationStatus,
    ErrorDetail,
    Result,
    CommandResult,
    HookResult,
    ReloadOutcome,
    DeployResult,
)

__all__ = [
    # Configuration
    'DeploymentConfig',
    'RetentionConfig',
    'TimeoutConfig',
    'MaintenanceConfig',
    'SharedConfig',
    'PermissionConfig',

    # Deployment
    'DeployMethod',
    'BackendKind',
    'ServiceBackend',
    'DeploymentState',
    'ExitCode',
    'DeployOptions',
    'Deployment',
    'Release',
    'Backup',

    # Results
    'OperationStatus',
    'ErrorDetail',
    'Result',
    'CommandResult',
    'HookResult',
    'ReloadOutcome',
    'DeployResult',
]
