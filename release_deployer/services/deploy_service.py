"""Deployment controller: stage, hook, promote, reload"""

import asyncio
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .backup_service import BackupService
from .hook_pipeline import HookPipeline
from .maintenance import MaintenanceGate
from ..adapters.factory import Collaborators
from ..api.exceptions import (
    BackupFailure,
    DeployToolError,
    DeploymentCancelled,
    HookFailure,
    LayoutError,
    MaintenanceExitFailure,
    ReleaseNotFoundError,
    ReloadFailure,
    StagingFailure,
    SwitchFailure,
    UnexpectedError,
    ValidationError,
)
from ..constants import (
    DEPLOYMENT_METADATA_FILE,
    ENV_EXAMPLE_FILE,
    ENV_FILE,
    ErrorCode,
    EMOJI_ARROW,
    RELEASE_ID_PATTERN,
)
from ..core.cancellation import CancellationController
from ..core.layout import LayoutManager
from ..core.lock import DeploymentLock
from ..core.release_switch import ReleaseSwitch
from ..models.config import DeploymentConfig
from ..models.deployment import (
    DeployMethod,
    Deployment,
    DeploymentState,
    ExitCode,
    Release,
)
from ..models.result import DeployResult, OperationStatus
from ..utils.async_utils import sync_to_async
from ..utils.file_utils import read_json, remove_path, write_json

logger = logging.getLogger(__name__)


def _uncancel_current_task() -> None:
    """Clear a cancellation request that has been handled"""
    task = asyncio.current_task()
    if task is not None and hasattr(task, "uncancel"):
        task.uncancel()


class DeployService:
    """Drives one deployment through the state machine

    Idle → Preparing → BackingUp → MaintenanceOn → Staging → RunningHooks
    → Switching → Reloading → MaintenanceOff → Complete, with RollingBack
    after a failure once the new release is live, and Failed as the other
    terminal state.
    """

    def __init__(self,
                 layout: LayoutManager,
                 collaborators: Collaborators,
                 config: Optional[DeploymentConfig] = None,
                 cancellation: Optional[CancellationController] = None):
        """Initialize deploy service

        Args:
            layout: Layout of the application root
            collaborators: External capabilities (source, installer, ...)
            config: Deployment configuration
            cancellation: Operator cancellation controller
        """
        self.layout = layout
        self.collaborators = collaborators
        self.config = config or collaborators.config
        self.cancellation = cancellation or CancellationController()

        self.switch = ReleaseSwitch(layout)
        self.lock = DeploymentLock(layout.lock_file, layout.app_root)
        self.backups = BackupService(layout, self.config, collaborators.database)
        self.state = DeploymentState.IDLE

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    async def deploy(self, deployment: Deployment) -> DeployResult:
        """Run a full deployment

        Args:
            deployment: What to deploy and how

        Returns:
            DeployResult; ``exit_code`` follows the 0/1/2/3 convention
        """
        self.state = DeploymentState.IDLE
        result = DeployResult(
            status=OperationStatus.IN_PROGRESS,
            app_root=self.layout.app_root,
            state_history=[DeploymentState.IDLE.value]
        )

        try:
            await self._run(deployment, result)
        finally:
            self.lock.release()

        result.final_state = self.state.value
        return result

    async def _run(self, deployment: Deployment, result: DeployResult) -> None:
        options = deployment.options
        gate: Optional[MaintenanceGate] = None
        previous: Optional[Path] = None
        release_path: Optional[Path] = None

        try:
            self._transition(result, DeploymentState.PREPARING)
            previous = await self._prepare(deployment, result)

            self._transition(result, DeploymentState.BACKING_UP)
            await self._backup(deployment, previous, result)
            self.cancellation.raise_if_requested(self.state.value)

            self._transition(result, DeploymentState.MAINTENANCE_ON)
            gate = MaintenanceGate(
                self.collaborators.lifecycle,
                self.config.maintenance,
                enabled=options.maintenance
            )
            if not await gate.enter(previous) and options.maintenance and previous is not None:
                result.add_error(
                    ErrorCode.MAINTENANCE_ENTER_FAILURE,
                    "Could not enable maintenance mode",
                    fatal=False
                )
            self.cancellation.raise_if_requested(self.state.value)

            self._transition(result, DeploymentState.STAGING)
            release_path = await self._stage(deployment, result)
            self.cancellation.raise_if_requested(self.state.value)

            self._transition(result, DeploymentState.RUNNING_HOOKS)
            await self._run_hooks(deployment, release_path, result)
            self.cancellation.raise_if_requested(self.state.value)

        except asyncio.CancelledError:
            _uncancel_current_task()
            await self._abort(result, DeploymentCancelled(self.state.value), gate, previous)
            return
        except DeployToolError as e:
            await self._abort(result, e, gate, previous)
            return
        except Exception as e:
            logger.exception(f"Unexpected error during {self.state.value}")
            error = UnexpectedError(self.state.value, e)
            if release_path is not None:
                await self._mark_failed(deployment, release_path, error.stage)
            elif self.state == DeploymentState.STAGING and result.release_path is not None:
                await self._discard_release(result.release_path)
            await self._abort(result, error, gate, previous)
            return

        self._transition(result, DeploymentState.SWITCHING)
        with self.cancellation.deferred():
            try:
                previous = self.switch.promote(release_path)
            except SwitchFailure as e:
                await self._abort(result, e, gate, previous)
                return
        result.promoted = True
        result.previous_release = previous
        logger.info(f"Release {deployment.release_id} is live")

        try:
            self.cancellation.raise_if_requested(self.state.value)

            self._transition(result, DeploymentState.RELOADING)
            await self._reload(deployment, result)
            self.cancellation.raise_if_requested(self.state.value)
        except asyncio.CancelledError:
            _uncancel_current_task()
            await self._roll_back(deployment, result, DeploymentCancelled(self.state.value),
                                  previous, gate)
            return
        except Exception as e:
            await self._roll_back(deployment, result, e, previous, gate)
            return

        result.pruned_releases = self.switch.prune_releases(self.config.retention.releases)

        with self.cancellation.deferred():
            self._transition(result, DeploymentState.MAINTENANCE_OFF)
            await self._exit_maintenance(gate, release_path, result)

            self._transition(result, DeploymentState.COMPLETE)
        result.exit_code = int(ExitCode.SUCCESS)
        result.message = f"Release {deployment.release_id} deployed"
        result.complete(OperationStatus.SUCCESS)

    def _transition(self, result: DeployResult, state: DeploymentState) -> None:
        logger.info(f"State: {self.state.value} {EMOJI_ARROW} {state.value}")
        self.state = state
        result.state_history.append(state.value)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _prepare(self, deployment: Deployment, result: DeployResult) -> Optional[Path]:
        """Validate inputs, take the lock, prepare the layout"""
        if deployment.method == DeployMethod.GIT and not deployment.repository:
            raise ValidationError("Git deployments require a repository URL")
        if deployment.method == DeployMethod.IN_PLACE and deployment.source_path is not None:
            if not Path(deployment.source_path).is_dir():
                raise ValidationError(f"Source directory not found: {deployment.source_path}")

        # The lock file lives in app_root; nothing else is touched until it is held
        try:
            self.layout.app_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LayoutError(f"Cannot create {self.layout.app_root}: {e}") from e
        self.lock.acquire()
        self.layout.ensure()

        previous = self.layout.resolve_current_release()
        if deployment.method == DeployMethod.IN_PLACE and deployment.source_path is None:
            if previous is None:
                raise ValidationError(
                    "In-place deployment needs a source path or an existing live release"
                )
            deployment.source_path = previous

        deployment.release_id = self.layout.new_release_id()
        deployment.backend = await self.collaborators.detector.detect()

        result.release_id = deployment.release_id
        result.backend = deployment.backend.value
        result.previous_release = previous
        logger.info(
            f"Deploying {deployment.describe_source()} as release {deployment.release_id} "
            f"(backend: {deployment.backend.value})"
        )
        return previous

    async def _backup(self, deployment: Deployment, previous: Optional[Path],
                      result: DeployResult) -> None:
        options = deployment.options
        if not options.backup:
            return
        if previous is None:
            logger.info("No live release yet; nothing to back up")
            return

        try:
            backup = await self.backups.snapshot(previous, self.layout.shared_dir)
        except BackupFailure as e:
            if options.require_backup:
                raise
            logger.warning(f"Backup failed, continuing: {e}")
            result.add_error(e.error_code, str(e), fatal=False)
            return

        result.backup_id = backup.backup_id
        result.backup_path = backup.path
        result.pruned_backups = self.backups.prune(self.config.retention.backups)

    async def _stage(self, deployment: Deployment, result: DeployResult) -> Path:
        """Fetch the release and link shared resources"""
        release_path = self.layout.stage_path(deployment.release_id)
        result.release_path = release_path
        source = self.collaborators.source_for(deployment.method)

        try:
            fetched = await source.fetch(deployment, release_path)
            if not fetched.success:
                raise StagingFailure(
                    f"Fetching {deployment.describe_source()} failed",
                    fetched.output
                )
            if not release_path.is_dir():
                raise StagingFailure(f"Source provider did not create {release_path}")

            self._link_shared(release_path)
            revision = await source.revision(release_path)
            await self._write_metadata(deployment, release_path, "staged", revision=revision)
        except OSError as e:
            await self._discard_release(release_path)
            raise StagingFailure(f"Staging {release_path} failed: {e}") from e
        except (StagingFailure, asyncio.CancelledError):
            await self._discard_release(release_path)
            raise

        return release_path

    def _link_shared(self, release_path: Path) -> None:
        """Replace shared paths in the release with links into shared/"""
        shared_dir = self.layout.shared_dir

        for name in self.config.shared.dirs:
            target = shared_dir / name
            target.mkdir(parents=True, exist_ok=True)
            self._replace_with_link(release_path / name, target)

        for name in self.config.shared.files:
            target = shared_dir / name
            if not target.exists():
                example = release_path / (ENV_EXAMPLE_FILE if name == ENV_FILE else f"{name}.example")
                if not example.is_file():
                    logger.warning(f"Shared file {target} missing and no example to seed it")
                    continue
                # First deployment: provision shared configuration once
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(example, target)
                logger.info(f"Provisioned {target} from {example.name}")
            self._replace_with_link(release_path / name, target)

    @staticmethod
    def _replace_with_link(link: Path, target: Path) -> None:
        remove_path(link)
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(target, target_is_directory=target.is_dir())

    async def _run_hooks(self, deployment: Deployment, release_path: Path,
                         result: DeployResult) -> None:
        pipeline = HookPipeline(
            self.collaborators.installer,
            self.collaborators.lifecycle,
            self.config,
            deployment.backend
        )
        try:
            result.hook_results = await pipeline.run(release_path, deployment.options)
        except HookFailure as e:
            result.hook_results = e.results
            await self._write_metadata(deployment, release_path, "failed", failed_stage=e.stage)
            raise

        version = await self.collaborators.lifecycle.framework_version(release_path)
        await self._write_metadata(deployment, release_path, "ready", framework_version=version)

    async def _reload(self, deployment: Deployment, result: DeployResult) -> None:
        reloader = self.collaborators.reloader_for(deployment.backend)
        outcome = await reloader.reload()
        result.reload = outcome
        if not outcome.success:
            failure = ReloadFailure(outcome.backend, outcome.output)
            logger.warning(f"{failure}; the new release is live on disk")
            result.add_error(failure.error_code, str(failure), fatal=False, output=outcome.output)

        if deployment.options.restart_workers:
            workers = await self.collaborators.workers.restart()
            result.worker_restart = workers
            if not workers.success:
                result.add_error(
                    ErrorCode.WORKER_RESTART_FAILURE,
                    "Failed to restart queue workers",
                    fatal=False,
                    output=workers.output
                )

    async def _exit_maintenance(self, gate: Optional[MaintenanceGate],
                                release_path: Optional[Path], result: DeployResult) -> None:
        if gate is None:
            return
        try:
            await gate.exit(release_path)
        except MaintenanceExitFailure as e:
            result.maintenance_exit_failed = True
            result.add_error(e.error_code, str(e), fatal=False, output=e.output)
            result.add_warning(
                "The application is still in maintenance mode; bring it up manually"
            )

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _abort(self, result: DeployResult, error: DeployToolError,
                     gate: Optional[MaintenanceGate], live: Optional[Path]) -> None:
        """Failure before promotion: nothing live changed"""
        if isinstance(error, DeploymentCancelled):
            stage = "cancelled"
        else:
            stage = getattr(error, "stage", None) or self.state.value
        result.failed_stage = stage
        result.failure_output = getattr(error, "output", "") or ""
        result.add_error(
            error.error_code or ErrorCode.VALIDATION_ERROR,
            str(error),
            fatal=True,
            stage=stage,
            release_path=str(result.release_path) if result.release_path else None,
            backup_path=str(result.backup_path) if result.backup_path else None
        )
        logger.error(f"Deployment failed during {stage}: {error}")

        with self.cancellation.deferred():
            await self._exit_maintenance(gate, live, result)

        self._transition(result, DeploymentState.FAILED)
        result.exit_code = int(ExitCode.FAILED_BEFORE_PROMOTION)
        result.message = f"Failed during {stage}; live release unchanged"
        result.complete(OperationStatus.FAILED)

    async def _roll_back(self, deployment: Deployment, result: DeployResult,
                         error: Exception, previous: Optional[Path],
                         gate: Optional[MaintenanceGate]) -> None:
        """Failure after promotion: return to the previous release"""
        stage = self.state.value
        result.failed_stage = stage
        code = getattr(error, "error_code", None) or ErrorCode.SWITCH_FAILURE
        result.add_error(code, str(error), fatal=True, stage=stage)
        logger.error(f"Deployment failed after promotion during {stage}: {error}")

        with self.cancellation.deferred():
            self._transition(result, DeploymentState.ROLLING_BACK)
            result.rolled_back = True
            live = result.release_path

            if previous is None:
                logger.error("No previous release to roll back to")
                result.rollback_succeeded = False
            else:
                try:
                    self.switch.promote(previous)
                    result.rollback_succeeded = True
                    live = previous
                    logger.info(f"Rolled back to {previous.name}")
                except SwitchFailure as e:
                    result.rollback_succeeded = False
                    result.add_error(e.error_code, f"Rollback failed: {e}", fatal=True)

            if result.rollback_succeeded:
                outcome = await self.collaborators.reloader_for(deployment.backend).reload()
                if not outcome.success:
                    result.add_error(
                        ErrorCode.RELOAD_FAILURE,
                        f"Reload after rollback failed: {outcome.output}",
                        fatal=False
                    )

            await self._exit_maintenance(gate, live, result)
            self._transition(result, DeploymentState.FAILED)

        if result.rollback_succeeded:
            result.exit_code = int(ExitCode.ROLLED_BACK)
            result.message = f"Failed during {stage}; rolled back to {previous.name}"
        else:
            result.exit_code = int(ExitCode.ROLLBACK_FAILED)
            result.message = f"Failed during {stage}; rollback failed, manual intervention required"
        result.complete(OperationStatus.FAILED)

    async def _discard_release(self, release_path: Path) -> None:
        try:
            await sync_to_async(remove_path)(release_path)
        except OSError as e:
            logger.warning(f"Could not remove half-staged release {release_path}: {e}")

    async def _mark_failed(self, deployment: Deployment, release_path: Path, stage: str) -> None:
        try:
            await self._write_metadata(deployment, release_path, "failed", failed_stage=stage)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not record failure in {release_path}: {e}")

    async def _write_metadata(self, deployment: Deployment, release_path: Path,
                              status: str, **extra) -> None:
        path = release_path / DEPLOYMENT_METADATA_FILE
        metadata = await read_json(path)
        metadata.update({
            "release_id": deployment.release_id,
            "method": deployment.method.value,
            "repository": deployment.repository,
            "branch": deployment.branch if deployment.method == DeployMethod.GIT else None,
            "source_path": str(deployment.source_path) if deployment.source_path else None,
            "backend": deployment.backend.value,
            "options": deployment.options.to_dict(),
            "status": status,
        })
        metadata.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        metadata.update({k: v for k, v in extra.items() if v is not None})
        await write_json(path, metadata)

    # ------------------------------------------------------------------
    # Manual operations
    # ------------------------------------------------------------------

    async def rollback(self, release_id: Optional[str] = None) -> DeployResult:
        """Re-promote an older release by hand

        Args:
            release_id: Target release; defaults to the one before ``current``

        Returns:
            DeployResult with exit code 0 on success, 1 otherwise
        """
        result = DeployResult(
            status=OperationStatus.IN_PROGRESS,
            app_root=self.layout.app_root
        )

        try:
            self.lock.acquire()
            current_id = self.layout.current_release_id()
            target_id = release_id
            if target_id is None:
                target_id = await self._release_before(current_id)
            if target_id is None:
                raise ReleaseNotFoundError("previous release")

            target = await self._rollback_target(target_id)

            with self.cancellation.deferred():
                previous = self.switch.promote(target)
            result.promoted = True
            result.release_id = target_id
            result.release_path = target
            result.previous_release = previous

            backend = await self.collaborators.detector.detect()
            result.backend = backend.value
            result.reload = await self.collaborators.reloader_for(backend).reload()
            if not result.reload.success:
                result.add_error(
                    ErrorCode.RELOAD_FAILURE,
                    f"Failed to reload {backend.value}",
                    fatal=False
                )
        except DeployToolError as e:
            result.add_error(e.error_code, str(e))
            result.exit_code = int(ExitCode.FAILED_BEFORE_PROMOTION)
            result.message = str(e)
            result.complete(OperationStatus.FAILED)
            return result
        finally:
            self.lock.release()

        result.message = f"Rolled back to {target_id}"
        result.exit_code = int(ExitCode.SUCCESS)
        result.complete(OperationStatus.SUCCESS)
        return result

    async def _rollback_target(self, release_id: str) -> Path:
        """Path of a release that may be promoted by hand

        Raises:
            ReleaseNotFoundError: If ``release_id`` names no release directory
            ValidationError: If the release never finished its hooks
        """
        if not RELEASE_ID_PATTERN.fullmatch(release_id):
            raise ReleaseNotFoundError(release_id)
        target = self.layout.release_path(release_id)
        if not target.is_dir() or target.is_symlink():
            raise ReleaseNotFoundError(release_id)

        meta = await read_json(target / DEPLOYMENT_METADATA_FILE)
        status = meta.get("status", "ready")
        if status != "ready":
            raise ValidationError(f"Release {release_id} is not deployable (status: {status})")
        return target

    async def _release_before(self, current_id: Optional[str]) -> Optional[str]:
        """Newest fully prepared release older than ``current_id``"""
        if current_id is None:
            return None
        for release_id in self.layout.list_releases():
            if release_id >= current_id:
                continue
            meta = await read_json(self.layout.release_path(release_id) / DEPLOYMENT_METADATA_FILE)
            if meta.get("status", "ready") == "ready":
                return release_id
        return None

    async def list_releases(self):
        """Releases newest first, with their metadata"""
        current_id = self.layout.current_release_id()
        releases = []
        for release_id in self.layout.list_releases():
            path = self.layout.release_path(release_id)
            releases.append(Release(
                release_id=release_id,
                path=path,
                is_current=release_id == current_id,
                metadata=await read_json(path / DEPLOYMENT_METADATA_FILE)
            ))
        return releases
