"""Core functionality for release-deployer"""

from .layout import LayoutManager, generate_release_id, generate_backup_id
from .release_switch import ReleaseSwitch
from .lock import DeploymentLock
from .cancellation import CancellationController

__all__ = [
    "LayoutManager",
    "generate_release_id",
    "generate_backup_id",
    "ReleaseSwitch",
    "DeploymentLock",
    "CancellationController",
]
