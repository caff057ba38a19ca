# release_deployer/services/__init__.py
"""Business logic services for release-deployer"""

from .config_service import ConfigService
from .backup_service import BackupService
from .permissions import PermissionNormalizer, resolve_web_user
from .hook_pipeline import HookPipeline, STAGE_ORDER
from .maintenance import MaintenanceGate
from .deploy_service import DeployService

__all__ = [
    "ConfigService",
    "BackupService",
    "PermissionNormalizer",
    "resolve_web_user",
    "HookPipeline",
    "STAGE_ORDER",
    "MaintenanceGate",
    "DeployService",
]
