"""Operation result models"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationStatus(Enum):
    """Operation status"""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    IN_PROGRESS = "in_progress"


@dataclass
class ErrorDetail:
    """Detailed error information"""

    code: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    fatal: bool = True
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "fatal": self.fatal,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass
class Result:
    """Base result class"""

    status: OperationStatus
    message: str = ""
    errors: List[ErrorDetail] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        """Check if operation was successful"""
        return self.status == OperationStatus.SUCCESS

    @property
    def duration(self) -> Optional[float]:
        """Get operation duration in seconds"""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def add_error(self, code: str, message: str, fatal: bool = True, **context) -> None:
        """Add an error"""
        self.errors.append(
            ErrorDetail(code=code, message=message, context=context, fatal=fatal)
        )

    def add_warning(self, message: str) -> None:
        """Add a warning"""
        self.warnings.append(message)

    def complete(self, status: Optional[OperationStatus] = None) -> None:
        """Mark operation as complete"""
        self.end_time = _utcnow()
        if status:
            self.status = status


@dataclass
class CommandResult:
    """Outcome of one external command"""

    success: bool
    output: str = ""
    returncode: Optional[int] = None
    timed_out: bool = False
    skipped: bool = False

    @classmethod
    def skip(cls, reason: str) -> 'CommandResult':
        return cls(success=True, output=reason, skipped=True)


@dataclass
class HookResult:
    """Outcome of one hook pipeline stage"""

    name: str
    status: OperationStatus
    output: str = ""
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.status != OperationStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "output": self.output,
            "duration": self.duration
        }


@dataclass
class ReloadOutcome:
    """Outcome of a front-end reload or worker restart"""

    backend: str
    status: OperationStatus
    output: str = ""

    @property
    def success(self) -> bool:
        return self.status != OperationStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "status": self.status.value,
            "output": self.output
        }


@dataclass
class DeployResult(Result):
    """Result of one deployment run"""

    app_root: Optional[Path] = None
    release_id: Optional[str] = None
    release_path: Optional[Path] = None
    previous_release: Optional[Path] = None
    backup_id: Optional[str] = None
    backup_path: Optional[Path] = None
    backend: Optional[str] = None
    final_state: Optional[str] = None
    state_history: List[str] = field(default_factory=list)
    hook_results: List[HookResult] = field(default_factory=list)
    reload: Optional[ReloadOutcome] = None
    worker_restart: Optional[ReloadOutcome] = None
    maintenance_exit_failed: bool = False
    promoted: bool = False
    rolled_back: bool = False
    rollback_succeeded: Optional[bool] = None
    failed_stage: Optional[str] = None
    failure_output: str = ""
    pruned_releases: List[str] = field(default_factory=list)
    pruned_backups: List[str] = field(default_factory=list)
    exit_code: int = 0

    @property
    def success(self) -> bool:
        return self.is_success

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "status": self.status.value,
            "message": self.message,
            "app_root": str(self.app_root) if self.app_root else None,
            "release_id": self.release_id,
            "release_path": str(self.release_path) if self.release_path else None,
            "previous_release": str(self.previous_release) if self.previous_release else None,
            "backup_id": self.backup_id,
            "backup_path": str(self.backup_path) if self.backup_path else None,
            "backend": self.backend,
            "final_state": self.final_state,
            "state_history": self.state_history,
            "hooks": [h.to_dict() for h in self.hook_results],
            "reload": self.reload.to_dict() if self.reload else None,
            "worker_restart": self.worker_restart.to_dict() if self.worker_restart else None,
            "maintenance_exit_failed": self.maintenance_exit_failed,
            "promoted": self.promoted,
            "rolled_back": self.rolled_back,
            "rollback_succeeded": self.rollback_succeeded,
            "failed_stage": self.failed_stage,
            "exit_code": self.exit_code,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": self.warnings,
            "duration": self.duration
        }
