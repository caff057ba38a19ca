"""Deployment, release and backup models"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import Dict, Optional, Any


class DeployMethod(Enum):
    """Where the new release comes from"""
    GIT = "git"
    IN_PLACE = "in-place"


class BackendKind(Enum):
    """Reload style of a front-end service"""
    REVERSE_PROXY = "reverse_proxy"
    PROCESS_SUPERVISOR = "process_supervisor"
    NONE = "none"


class ServiceBackend(Enum):
    """Front-end service serving the application"""
    NGINX = "nginx"
    CADDY = "caddy"
    FRANKENPHP = "frankenphp"
    NONE = "none"

    @property
    def kind(self) -> BackendKind:
        if self in (ServiceBackend.NGINX, ServiceBackend.CADDY):
            return BackendKind.REVERSE_PROXY
        if self == ServiceBackend.FRANKENPHP:
            return BackendKind.PROCESS_SUPERVISOR
        return BackendKind.NONE


class DeploymentState(Enum):
    """Controller states"""
    IDLE = "idle"
    PREPARING = "preparing"
    BACKING_UP = "backing_up"
    MAINTENANCE_ON = "maintenance_on"
    STAGING = "staging"
    RUNNING_HOOKS = "running_hooks"
    SWITCHING = "switching"
    RELOADING = "reloading"
    MAINTENANCE_OFF = "maintenance_off"
    COMPLETE = "complete"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


class ExitCode(IntEnum):
    """Process exit status of a deployment"""
    SUCCESS = 0
    FAILED_BEFORE_PROMOTION = 1
    ROLLED_BACK = 2
    ROLLBACK_FAILED = 3


@dataclass
class DeployOptions:
    """Boolean switches for one deployment"""

    migrate: bool = False
    seed: bool = False
    maintenance: bool = True
    restart_workers: bool = False
    optimize: bool = False
    backup: bool = False
    require_backup: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeployOptions':
        known = {f.name for f in fields(cls)}
        return cls(**{k: bool(v) for k, v in data.items() if k in known})


@dataclass
class Deployment:
    """One execution of the orchestrator"""

    app_root: Path
    method: DeployMethod
    repository: Optional[str] = None
    branch: str = "main"
    source_path: Optional[Path] = None
    options: DeployOptions = field(default_factory=DeployOptions)
    release_id: Optional[str] = None
    backend: ServiceBackend = ServiceBackend.NONE

    def describe_source(self) -> str:
        if self.method == DeployMethod.GIT:
            return f"{self.repository}@{self.branch}"
        return str(self.source_path) if self.source_path else "current release"


@dataclass
class Release:
    """A staged release directory"""

    release_id: str
    path: Path
    is_current: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def created_at(self) -> Optional[datetime]:
        value = self.metadata.get("created_at")
        return datetime.fromisoformat(value) if value else None


@dataclass
class Backup:
    """A snapshot under backups/"""

    backup_id: str
    path: Path
    source_release: Optional[str] = None
    has_database_dump: bool = False
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "path": str(self.path),
            "source_release": self.source_release,
            "has_database_dump": self.has_database_dump,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }
