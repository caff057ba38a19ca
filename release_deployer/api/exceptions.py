"""Exception definitions for release-deployer"""

from typing import Optional

from ..constants import ErrorCode, MSG_LOCK_HELD


class DeployToolError(Exception):
    """Base exception for release-deployer"""

    fatal = True

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.error_code = error_code


class LayoutError(DeployToolError):
    """Application root layout could not be prepared"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.LAYOUT_ERROR)


class ReleaseCollision(LayoutError):
    """Release directory already exists"""

    def __init__(self, release_id: str, path: str):
        DeployToolError.__init__(
            self,
            f"Release directory already exists: {path}",
            ErrorCode.RELEASE_COLLISION
        )
        self.release_id = release_id
        self.path = path


class LockContention(DeployToolError):
    """Another deployment holds the application lock"""

    def __init__(self, app_root: str):
        super().__init__(
            MSG_LOCK_HELD.format(app_root=app_root),
            ErrorCode.LOCK_CONTENTION
        )
        self.app_root = app_root


DeploymentInProgress = LockContention


class BackupFailure(DeployToolError):
    """Snapshot of the live release failed"""

    fatal = False

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.BACKUP_FAILURE)


class StagingFailure(DeployToolError):
    """Release could not be fetched or linked"""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message, ErrorCode.STAGING_FAILURE)
        self.output = output


class HookFailure(DeployToolError):
    """A named pipeline stage failed"""

    def __init__(self, stage: str, message: str, output: str = "", results=None):
        super().__init__(f"Stage '{stage}' failed: {message}", ErrorCode.HOOK_FAILURE)
        self.stage = stage
        self.output = output
        self.results = results or []


class SwitchFailure(DeployToolError):
    """Atomic replacement of the current pointer failed"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.SWITCH_FAILURE)


class ReloadFailure(DeployToolError):
    """Front-end service reload failed"""

    fatal = False

    def __init__(self, backend: str, output: str = ""):
        super().__init__(f"Failed to reload {backend}", ErrorCode.RELOAD_FAILURE)
        self.backend = backend
        self.output = output


class MaintenanceExitFailure(DeployToolError):
    """Application could not be brought out of maintenance mode"""

    fatal = False

    def __init__(self, output: str = ""):
        super().__init__(
            "Application is still in maintenance mode",
            ErrorCode.MAINTENANCE_EXIT_FAILURE
        )
        self.output = output


class ConfigError(DeployToolError):
    """Configuration error"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIG_ERROR)


class ValidationError(DeployToolError):
    """Invalid deployment input"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.VALIDATION_ERROR)


class DeploymentCancelled(DeployToolError):
    """Operator requested cancellation"""

    def __init__(self, stage: Optional[str] = None):
        message = "Deployment cancelled by operator"
        if stage:
            message += f" during {stage}"
        super().__init__(message, ErrorCode.CANCELLED)
        self.stage = stage


class ReleaseNotFoundError(DeployToolError):
    """Requested release does not exist"""

    def __init__(self, release_id: str):
        super().__init__(f"Release not found: {release_id}", ErrorCode.RELEASE_NOT_FOUND)
        self.release_id = release_id


class UnexpectedError(DeployToolError):
    """Error outside the tool's own failure modes, raised during a stage"""

    def __init__(self, stage: str, cause: Exception):
        super().__init__(
            f"Unexpected {type(cause).__name__}: {cause}",
            ErrorCode.UNEXPECTED_ERROR
        )
        self.stage = stage
        self.cause = cause
