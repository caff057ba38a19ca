"""Configuration data models"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from ..constants import (
    DEFAULT_KEEP_RELEASES,
    DEFAULT_KEEP_BACKUPS,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_STAGE_TIMEOUT,
    DEFAULT_SNAPSHOT_TIMEOUT,
    DEFAULT_MAINTENANCE_RETRIES,
    DEFAULT_MAINTENANCE_RETRY_DELAY,
    DEFAULT_MAINTENANCE_RETRY_AFTER,
    DEFAULT_SHARED_DIRS,
    DEFAULT_SHARED_FILES,
    DEFAULT_SHARED_WRITABLE_SUBDIRS,
    DEFAULT_DIR_MODE,
    DEFAULT_FILE_MODE,
    DEFAULT_WRITABLE_MODE,
    DEFAULT_WRITABLE_PATHS,
    DEFAULT_CADDYFILE,
    DEFAULT_PHP_BINARY,
    DEFAULT_COMPOSER_BINARY,
)


def _parse_mode(value: Any) -> int:
    """Accept octal modes written as int (0o755), str ("755") or int 755"""
    if isinstance(value, str):
        return int(value, 8)
    if isinstance(value, int) and value > 0o777:
        return int(str(value), 8)
    return value


@dataclass
class RetentionConfig:
    """How many releases and backups are kept"""

    releases: int = DEFAULT_KEEP_RELEASES
    backups: int = DEFAULT_KEEP_BACKUPS

    def __post_init__(self):
        if self.releases < 1:
            raise ValueError("retention.releases must be at least 1")
        if self.backups < 1:
            raise ValueError("retention.backups must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {"releases": self.releases, "backups": self.backups}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RetentionConfig':
        """Create from dictionary"""
        return cls(**data)


@dataclass
class TimeoutConfig:
    """Timeouts in seconds"""

    command: float = DEFAULT_COMMAND_TIMEOUT
    stage: float = DEFAULT_STAGE_TIMEOUT
    snapshot: float = DEFAULT_SNAPSHOT_TIMEOUT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {"command": self.command, "stage": self.stage, "snapshot": self.snapshot}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimeoutConfig':
        """Create from dictionary"""
        return cls(**data)


@dataclass
class MaintenanceConfig:
    """Maintenance mode retry budget"""

    retries: int = DEFAULT_MAINTENANCE_RETRIES
    retry_delay: float = DEFAULT_MAINTENANCE_RETRY_DELAY
    backoff_multiplier: float = 2.0
    retry_after: int = DEFAULT_MAINTENANCE_RETRY_AFTER

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "retries": self.retries,
            "retry_delay": self.retry_delay,
            "backoff_multiplier": self.backoff_multiplier,
            "retry_after": self.retry_after
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MaintenanceConfig':
        """Create from dictionary"""
        return cls(**data)


@dataclass
class SharedConfig:
    """Paths that live in shared/ and are linked into every release"""

    dirs: List[str] = field(default_factory=lambda: list(DEFAULT_SHARED_DIRS))
    files: List[str] = field(default_factory=lambda: list(DEFAULT_SHARED_FILES))
    writable_subdirs: List[str] = field(
        default_factory=lambda: list(DEFAULT_SHARED_WRITABLE_SUBDIRS)
    )

    @property
    def paths(self) -> List[str]:
        return self.dirs + self.files

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "dirs": self.dirs,
            "files": self.files,
            "writable_subdirs": self.writable_subdirs
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SharedConfig':
        """Create from dictionary"""
        return cls(**data)


@dataclass
class PermissionConfig:
    """Ownership and mode normalization"""

    web_user: Optional[str] = None  # None = derived from the service backend
    dir_mode: int = DEFAULT_DIR_MODE
    file_mode: int = DEFAULT_FILE_MODE
    writable_mode: int = DEFAULT_WRITABLE_MODE
    writable_paths: List[str] = field(default_factory=lambda: list(DEFAULT_WRITABLE_PATHS))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "web_user": self.web_user,
            "dir_mode": oct(self.dir_mode),
            "file_mode": oct(self.file_mode),
            "writable_mode": oct(self.writable_mode),
            "writable_paths": self.writable_paths
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PermissionConfig':
        """Create from dictionary"""
        data = dict(data)
        for key in ("dir_mode", "file_mode", "writable_mode"):
            if key in data:
                data[key] = _parse_mode(data[key])
        return cls(**data)


@dataclass
class DeploymentConfig:
    """Complete per-application configuration"""

    backend: str = "auto"
    php_binary: str = DEFAULT_PHP_BINARY
    composer_binary: str = DEFAULT_COMPOSER_BINARY
    caddyfile: str = DEFAULT_CADDYFILE
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    maintenance: MaintenanceConfig = field(default_factory=MaintenanceConfig)
    shared: SharedConfig = field(default_factory=SharedConfig)
    permissions: PermissionConfig = field(default_factory=PermissionConfig)
    defaults: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "backend": self.backend,
            "php_binary": self.php_binary,
            "composer_binary": self.composer_binary,
            "caddyfile": self.caddyfile,
            "retention": self.retention.to_dict(),
            "timeouts": self.timeouts.to_dict(),
            "maintenance": self.maintenance.to_dict(),
            "shared": self.shared.to_dict(),
            "permissions": self.permissions.to_dict(),
            "defaults": self.defaults
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeploymentConfig':
        """Create from dictionary"""
        data = data or {}
        return cls(
            backend=data.get("backend", "auto"),
            php_binary=data.get("php_binary", DEFAULT_PHP_BINARY),
            composer_binary=data.get("composer_binary", DEFAULT_COMPOSER_BINARY),
            caddyfile=data.get("caddyfile", DEFAULT_CADDYFILE),
            retention=RetentionConfig.from_dict(data.get("retention", {})),
            timeouts=TimeoutConfig.from_dict(data.get("timeouts", {})),
            maintenance=MaintenanceConfig.from_dict(data.get("maintenance", {})),
            shared=SharedConfig.from_dict(data.get("shared", {})),
            permissions=PermissionConfig.from_dict(data.get("permissions", {})),
            defaults=data.get("defaults", {})
        )
