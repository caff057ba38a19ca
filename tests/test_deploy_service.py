"""Tests for the deployment controller state machine."""

import asyncio
import json
import os
import shutil
from unittest.mock import patch

import pytest

from release_deployer.adapters.sources import InPlaceSourceProvider
from release_deployer.api.exceptions import BackupFailure, SwitchFailure
from release_deployer.constants import DEPLOYMENT_METADATA_FILE, ErrorCode
from release_deployer.core.lock import DeploymentLock
from release_deployer.models.deployment import DeployMethod, Deployment, DeploymentState
from release_deployer.models.result import OperationStatus


async def _deploy_ok(service, make_deployment, **options):
    result = await service.deploy(make_deployment(**options))
    assert result.exit_code == 0, result.errors
    return result


class TestFirstDeployment:
    """Scenario: first deployment into an empty application root."""

    @pytest.mark.asyncio
    async def test_creates_layout_and_promotes(self, service, layout, make_deployment):
        """Should stage one release, point current at it and exit 0."""
        result = await service.deploy(make_deployment(backup=True))

        assert result.exit_code == 0
        assert result.success
        assert result.final_state == DeploymentState.COMPLETE.value
        assert layout.list_releases() == [result.release_id]
        assert layout.current_release_id() == result.release_id
        assert layout.list_backups() == []
        assert result.backup_id is None
        assert result.previous_release is None

    @pytest.mark.asyncio
    async def test_migrate_optimize_backup(self, service, layout, lifecycle, make_deployment):
        """Should run migrate and optimize and take no backup of an empty root."""
        result = await service.deploy(make_deployment(migrate=True, optimize=True, backup=True))

        assert result.exit_code == 0
        statuses = {h.name: h.status for h in result.hook_results}
        assert statuses["migrate"] == OperationStatus.SUCCESS
        assert statuses["optimize"] == OperationStatus.SUCCESS
        assert "migrate" in lifecycle.commands()
        assert "config:cache" in lifecycle.commands()
        assert layout.list_backups() == []
        assert list(layout.backups_dir.iterdir()) == []
        assert layout.current_release_id() == result.release_id

    @pytest.mark.asyncio
    async def test_state_history_follows_happy_path(self, service, make_deployment):
        """Should walk every state in order."""
        result = await service.deploy(make_deployment())

        assert result.state_history == [
            "idle", "preparing", "backing_up", "maintenance_on", "staging",
            "running_hooks", "switching", "reloading", "maintenance_off", "complete",
        ]

    @pytest.mark.asyncio
    async def test_links_shared_resources(self, service, layout, make_deployment):
        """Should replace storage and .env with links into shared/."""
        result = await service.deploy(make_deployment())
        release = result.release_path

        assert (release / "storage").is_symlink()
        assert os.readlink(release / "storage") == str(layout.shared_dir / "storage")
        assert (release / ".env").is_symlink()
        assert (layout.shared_dir / ".env").read_text().startswith("APP_NAME=demo")
        assert (layout.shared_dir / "storage" / "framework" / "views").is_dir()

    @pytest.mark.asyncio
    async def test_existing_shared_env_is_not_overwritten(self, service, layout, make_deployment):
        """Should seed .env only when shared/ has none."""
        layout.ensure()
        (layout.shared_dir / ".env").write_text("APP_KEY=base64:secret\n")

        await service.deploy(make_deployment())

        assert (layout.shared_dir / ".env").read_text() == "APP_KEY=base64:secret\n"

    @pytest.mark.asyncio
    async def test_writes_release_metadata(self, service, make_deployment):
        """Should record source, revision and framework version."""
        result = await service.deploy(make_deployment())

        meta = json.loads((result.release_path / DEPLOYMENT_METADATA_FILE).read_text())
        assert meta["status"] == "ready"
        assert meta["method"] == "git"
        assert meta["repository"] == "git@example.com:acme/shop.git"
        assert meta["branch"] == "main"
        assert meta["revision"] == "deadbeef0001"
        assert meta["framework_version"] == "11.2.0"
        assert meta["backend"] == "nginx"

    @pytest.mark.asyncio
    async def test_no_maintenance_without_live_release(self, service, lifecycle, make_deployment):
        """Should not run down/up when nothing is live yet."""
        await service.deploy(make_deployment())

        assert "down" not in lifecycle.commands()
        assert "up" not in lifecycle.commands()

    @pytest.mark.asyncio
    async def test_detects_backend_once(self, service, collaborators, reloader, make_deployment):
        """Should resolve the backend once and reload it."""
        result = await service.deploy(make_deployment())

        assert collaborators.detector.calls == 1
        assert reloader.calls == 1
        assert result.reload.status == OperationStatus.SUCCESS


class TestSubsequentDeployment:
    """Deployments on top of a live release."""

    @pytest.mark.asyncio
    async def test_backup_of_previous_release(self, service, layout, make_deployment):
        """Should snapshot the live release before switching."""
        first = await _deploy_ok(service, make_deployment)
        second = await _deploy_ok(service, make_deployment, backup=True)

        assert layout.list_backups() == [second.backup_id]
        backup_release = second.backup_path / "release"
        assert (backup_release / "VERSION").read_text() == "build-1\n"
        assert (backup_release / "storage").is_symlink()
        assert second.previous_release == first.release_path

    @pytest.mark.asyncio
    async def test_maintenance_wraps_deployment(self, service, lifecycle, make_deployment):
        """Should put the old release down and bring the new one up."""
        first = await _deploy_ok(service, make_deployment)
        lifecycle.calls.clear()

        second = await _deploy_ok(service, make_deployment)

        down = [c for c in lifecycle.calls if c[1][0] == "down"]
        up = [c for c in lifecycle.calls if c[1][0] == "up"]
        assert down == [(first.release_id, ["down", "--retry=60"])]
        assert up == [(second.release_id, ["up"])]

    @pytest.mark.asyncio
    async def test_no_maintenance_flag(self, service, lifecycle, make_deployment):
        """Should skip the gate when maintenance is disabled."""
        await _deploy_ok(service, make_deployment)
        lifecycle.calls.clear()

        await _deploy_ok(service, make_deployment, maintenance=False)

        assert "down" not in lifecycle.commands()

    @pytest.mark.asyncio
    async def test_retention_keeps_three_releases(self, service, layout, make_deployment):
        """Should never keep more than three releases."""
        ids = []
        for _ in range(5):
            ids.append((await _deploy_ok(service, make_deployment)).release_id)

        assert layout.list_releases() == list(reversed(ids[-3:]))
        assert layout.current_release_id() == ids[-1]

    @pytest.mark.asyncio
    async def test_backup_retention(self, service, layout, config, make_deployment):
        """Should cap backups at the configured count."""
        config.retention.backups = 2
        backup_ids = []
        for _ in range(5):
            result = await _deploy_ok(service, make_deployment, backup=True)
            if result.backup_id:
                backup_ids.append(result.backup_id)

        assert len(backup_ids) == 4
        assert layout.list_backups() == [backup_ids[-1], backup_ids[-2]]

    @pytest.mark.asyncio
    async def test_in_place_copies_live_release(self, service, layout, app_root, make_deployment):
        """Should use the live release as source when none is given."""
        first = await _deploy_ok(service, make_deployment)
        (first.release_path / "local-patch.txt").write_text("hotfix")

        in_place = Deployment(app_root=app_root, method=DeployMethod.IN_PLACE)
        service.collaborators.sources[DeployMethod.IN_PLACE] = InPlaceSourceProvider(
            exclude=service.config.shared.paths
        )

        result = await service.deploy(in_place)

        assert result.exit_code == 0
        assert (result.release_path / "local-patch.txt").read_text() == "hotfix"
        assert (result.release_path / "storage").is_symlink()
        assert layout.current_release_id() == result.release_id


class TestFailuresBeforePromotion:
    """Failures that leave the live release untouched (exit 1)."""

    @pytest.mark.asyncio
    async def test_hook_failure_keeps_current(self, service, layout, lifecycle, make_deployment):
        """Scenario: migration failure aborts before the switch."""
        first = await _deploy_ok(service, make_deployment)
        lifecycle.failing["migrate"] = "SQLSTATE[HY000] connection refused"

        result = await service.deploy(make_deployment(migrate=True))

        assert result.exit_code == 1
        assert result.failed_stage == "migrate"
        assert result.final_state == DeploymentState.FAILED.value
        assert not result.promoted
        assert layout.current_release_id() == first.release_id
        assert result.release_path.is_dir()
        assert "SQLSTATE" in result.failure_output
        assert "optimize" not in [h.name for h in result.hook_results]
        # Application brought back up after the abort
        assert lifecycle.commands()[-1] == "up"

    @pytest.mark.asyncio
    async def test_migration_failure_after_backup(self, service, layout, lifecycle,
                                                  make_deployment):
        """Scenario: backup taken, migration fails, live release and backup intact."""
        first = await _deploy_ok(service, make_deployment)
        lifecycle.failing["migrate"] = "SQLSTATE[42S01] table already exists"

        result = await service.deploy(make_deployment(backup=True, migrate=True))

        assert result.exit_code == 1
        assert layout.current_release_id() == first.release_id
        assert layout.list_backups() == [result.backup_id]
        assert (result.backup_path / "release" / "VERSION").read_text().strip() == "build-1"
        assert result.release_path.is_dir()
        assert sorted(layout.list_releases()) == sorted([first.release_id, result.release_id])
        meta = json.loads((result.release_path / DEPLOYMENT_METADATA_FILE).read_text())
        assert meta["status"] == "failed"
        assert meta["failed_stage"] == "migrate"

    @pytest.mark.asyncio
    async def test_unexpected_error_exits_maintenance(self, service, layout, lifecycle,
                                                      make_deployment):
        """Should abort with exit 1 and bring the application back up."""
        first = await _deploy_ok(service, make_deployment)
        lifecycle.calls.clear()

        with patch.object(lifecycle, "framework_version",
                          side_effect=ValueError("unparseable version output")):
            result = await service.deploy(make_deployment())

        assert result.exit_code == 1
        assert result.final_state == DeploymentState.FAILED.value
        assert result.errors[0].code == ErrorCode.UNEXPECTED_ERROR
        assert result.failed_stage == "running_hooks"
        assert lifecycle.commands()[0] == "down"
        assert lifecycle.commands()[-1] == "up"
        assert layout.current_release_id() == first.release_id
        meta = json.loads((result.release_path / DEPLOYMENT_METADATA_FILE).read_text())
        assert meta["status"] == "failed"
        assert not DeploymentLock(layout.lock_file).is_locked()

    @pytest.mark.asyncio
    async def test_unexpected_error_while_staging(self, service, layout, make_deployment):
        """Should discard the half-staged release."""
        first = await _deploy_ok(service, make_deployment)

        with patch.object(service, "_link_shared", side_effect=RuntimeError("boom")):
            result = await service.deploy(make_deployment())

        assert result.exit_code == 1
        assert result.failed_stage == "staging"
        assert layout.list_releases() == [first.release_id]

    @pytest.mark.asyncio
    async def test_latin1_shared_env_with_backup(self, service, layout, lifecycle, exporter,
                                                 make_deployment):
        """Should deploy without a dump when shared .env is not valid UTF-8."""
        await _deploy_ok(service, make_deployment)
        (layout.shared_dir / ".env").write_bytes(b"APP_NAME=caf\xe9\nDB_DATABASE=shop\n")
        exporter.available = True
        lifecycle.calls.clear()

        result = await service.deploy(make_deployment(backup=True))

        assert result.exit_code == 0, result.errors
        assert result.backup_id is not None
        assert not (result.backup_path / "database.sql").exists()
        assert exporter.exports == []
        assert lifecycle.commands()[0] == "down"
        assert lifecycle.commands()[-1] == "up"

    @pytest.mark.asyncio
    async def test_failed_release_metadata(self, service, installer, make_deployment):
        """Should mark the left-behind release as failed."""
        installer.fail = True

        result = await service.deploy(make_deployment())

        meta = json.loads((result.release_path / DEPLOYMENT_METADATA_FILE).read_text())
        assert meta["status"] == "failed"
        assert meta["failed_stage"] == "dependencies"

    @pytest.mark.asyncio
    async def test_staging_failure_removes_release_dir(self, service, layout, source, make_deployment):
        """Should discard a half-staged release."""
        source.fail = True

        result = await service.deploy(make_deployment())

        assert result.exit_code == 1
        assert result.failed_stage == "staging"
        assert layout.list_releases() == []
        assert result.errors[0].code == ErrorCode.STAGING_FAILURE

    @pytest.mark.asyncio
    async def test_git_requires_repository(self, service, app_root):
        """Should fail validation without touching the filesystem."""
        result = await service.deploy(Deployment(app_root=app_root, method=DeployMethod.GIT))

        assert result.exit_code == 1
        assert result.errors[0].code == ErrorCode.VALIDATION_ERROR
        assert list(app_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_switch_failure_keeps_current(self, service, layout, make_deployment):
        """Should leave current alone when the rename fails."""
        first = await _deploy_ok(service, make_deployment)

        with patch.object(service.switch, "promote", side_effect=SwitchFailure("rename failed")):
            result = await service.deploy(make_deployment())

        assert result.exit_code == 1
        assert result.failed_stage == "switching"
        assert layout.current_release_id() == first.release_id

    @pytest.mark.asyncio
    async def test_required_backup_failure_aborts(self, service, layout, make_deployment):
        """Should fail when a required backup cannot be taken."""
        first = await _deploy_ok(service, make_deployment)

        with patch.object(service.backups, "snapshot", side_effect=BackupFailure("disk full")):
            result = await service.deploy(make_deployment(backup=True, require_backup=True))

        assert result.exit_code == 1
        assert result.failed_stage == "backing_up"
        assert layout.current_release_id() == first.release_id
        assert len(layout.list_releases()) == 1

    @pytest.mark.asyncio
    async def test_optional_backup_failure_continues(self, service, layout, make_deployment):
        """Should record a non-fatal error and deploy anyway."""
        await _deploy_ok(service, make_deployment)

        with patch.object(service.backups, "snapshot", side_effect=BackupFailure("disk full")):
            result = await service.deploy(make_deployment(backup=True))

        assert result.exit_code == 0
        assert [e.code for e in result.errors] == [ErrorCode.BACKUP_FAILURE]
        assert not result.errors[0].fatal


class TestLockContention:
    """Scenario: a second run while the lock is held."""

    @pytest.mark.asyncio
    async def test_contending_run_changes_nothing(self, service, layout, app_root,
                                                  make_deployment, tree_snapshot):
        """Should exit 1 immediately and leave the tree as it was."""
        await _deploy_ok(service, make_deployment)

        holder = DeploymentLock(layout.lock_file)
        holder.acquire()
        try:
            before = tree_snapshot(app_root)
            result = await service.deploy(make_deployment(backup=True))
            after = tree_snapshot(app_root)
        finally:
            holder.release()

        assert result.exit_code == 1
        assert result.errors[0].code == ErrorCode.LOCK_CONTENTION
        assert "in progress" in result.errors[0].message
        assert before == after

    @pytest.mark.asyncio
    async def test_contending_run_does_not_repair_layout(self, service, layout, make_deployment):
        """Should not recreate missing shared directories without the lock."""
        await _deploy_ok(service, make_deployment)
        views = layout.shared_dir / "storage" / "framework" / "views"
        shutil.rmtree(views)
        shutil.rmtree(layout.backups_dir)

        holder = DeploymentLock(layout.lock_file)
        holder.acquire()
        try:
            result = await service.deploy(make_deployment())
        finally:
            holder.release()

        assert result.exit_code == 1
        assert result.errors[0].code == ErrorCode.LOCK_CONTENTION
        assert not views.exists()
        assert not layout.backups_dir.exists()

    @pytest.mark.asyncio
    async def test_lock_released_after_run(self, service, layout, make_deployment):
        """Should release the lock at the terminal state."""
        await _deploy_ok(service, make_deployment)

        assert not DeploymentLock(layout.lock_file).is_locked()


class TestPostPromotion:
    """Reload problems and failures after the switch."""

    @pytest.mark.asyncio
    async def test_reload_failure_is_non_fatal(self, service, layout, reloader, make_deployment):
        """Should keep the new release live and exit 0."""
        reloader.status = OperationStatus.FAILED

        result = await service.deploy(make_deployment())

        assert result.exit_code == 0
        assert layout.current_release_id() == result.release_id
        assert result.errors[0].code == ErrorCode.RELOAD_FAILURE
        assert not result.errors[0].fatal

    @pytest.mark.asyncio
    async def test_worker_restart(self, service, workers, make_deployment):
        """Should restart workers only when asked."""
        await _deploy_ok(service, make_deployment)
        assert workers.calls == 0

        result = await _deploy_ok(service, make_deployment, restart_workers=True)
        assert workers.calls == 1
        assert result.worker_restart.success

    @pytest.mark.asyncio
    async def test_maintenance_exit_failure_escalated(self, service, lifecycle, make_deployment):
        """Should complete with a distinct warning when up fails."""
        await _deploy_ok(service, make_deployment)
        lifecycle.failing["up"] = "cannot remove down file"

        result = await service.deploy(make_deployment())

        assert result.exit_code == 0
        assert result.final_state == DeploymentState.COMPLETE.value
        assert result.maintenance_exit_failed
        assert lifecycle.commands().count("up") == 2

    @pytest.mark.asyncio
    async def test_cancellation_after_promotion_rolls_back(self, service, layout, reloader,
                                                           make_deployment):
        """Should re-promote the previous release and exit 2."""
        first = await _deploy_ok(service, make_deployment)
        reloader.on_reload = service.cancellation.request

        result = await service.deploy(make_deployment())

        assert result.exit_code == 2
        assert result.rolled_back
        assert result.rollback_succeeded
        assert "rolling_back" in result.state_history
        assert result.final_state == DeploymentState.FAILED.value
        assert layout.current_release_id() == first.release_id
        # Reloaded for the new release and again after rolling back
        assert reloader.calls == 3

    @pytest.mark.asyncio
    async def test_rollback_failure_exits_3(self, service, layout, reloader, make_deployment):
        """Should report exit 3 when the previous release cannot be restored."""
        await _deploy_ok(service, make_deployment)
        reloader.on_reload = service.cancellation.request

        real_promote = service.switch.promote
        calls = []

        def promote(path):
            calls.append(path)
            if len(calls) > 1:
                raise SwitchFailure("read-only filesystem")
            return real_promote(path)

        with patch.object(service.switch, "promote", side_effect=promote):
            result = await service.deploy(make_deployment())

        assert result.exit_code == 3
        assert result.rolled_back
        assert result.rollback_succeeded is False
        assert layout.current_release_id() == result.release_id

    @pytest.mark.asyncio
    async def test_no_previous_release_exits_3(self, service, reloader, make_deployment):
        """Should report exit 3 when there is nothing to roll back to."""
        reloader.on_reload = service.cancellation.request

        result = await service.deploy(make_deployment())

        assert result.exit_code == 3
        assert result.rollback_succeeded is False


class TestCancellation:
    """Operator cancellation before the switch."""

    @pytest.mark.asyncio
    async def test_flagged_cancellation_before_switch(self, service, layout, lifecycle,
                                                      make_deployment):
        """Should stop before promoting and exit 1 with stage cancelled."""
        first = await _deploy_ok(service, make_deployment)
        lifecycle.on_command["migrate"] = service.cancellation.request

        result = await service.deploy(make_deployment(migrate=True))

        assert result.exit_code == 1
        assert result.failed_stage == "cancelled"
        assert result.errors[0].code == ErrorCode.CANCELLED
        assert layout.current_release_id() == first.release_id

    @pytest.mark.asyncio
    async def test_task_cancellation_during_hooks(self, service, layout, installer, make_deployment):
        """Should cancel a running stage and still return a result."""
        first = await _deploy_ok(service, make_deployment)
        installer.block = True

        task = asyncio.ensure_future(service.deploy(make_deployment()))
        service.cancellation.attach(task)
        while len(installer.installed) < 2:
            await asyncio.sleep(0.01)
        service.cancellation.request()

        result = await asyncio.wait_for(task, timeout=10)

        assert result.exit_code == 1
        assert result.failed_stage == "cancelled"
        assert layout.current_release_id() == first.release_id
        assert not DeploymentLock(layout.lock_file).is_locked()


class TestManualRollback:
    """Operator-driven rollback and listing."""

    @pytest.mark.asyncio
    async def test_rollback_to_previous(self, service, layout, make_deployment):
        """Should re-point current at the release before it."""
        first = await _deploy_ok(service, make_deployment)
        await _deploy_ok(service, make_deployment)

        result = await service.rollback()

        assert result.exit_code == 0
        assert layout.current_release_id() == first.release_id

    @pytest.mark.asyncio
    async def test_rollback_skips_failed_releases(self, service, layout, installer, make_deployment):
        """Should not promote a release whose hooks failed."""
        first = await _deploy_ok(service, make_deployment)
        installer.fail = True
        await service.deploy(make_deployment())
        installer.fail = False
        await _deploy_ok(service, make_deployment)

        await service.rollback()

        assert layout.current_release_id() == first.release_id

    @pytest.mark.asyncio
    async def test_rollback_unknown_release(self, service, make_deployment):
        """Should fail with exit 1 for a missing release."""
        await _deploy_ok(service, make_deployment)

        result = await service.rollback("20000101-000000-000000")

        assert result.exit_code == 1
        assert result.errors[0].code == ErrorCode.RELEASE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_rollback_refuses_failed_release(self, service, layout, installer,
                                                   make_deployment):
        """Should not promote a named release whose hooks failed."""
        await _deploy_ok(service, make_deployment)
        installer.fail = True
        failed = await service.deploy(make_deployment())
        installer.fail = False
        live = await _deploy_ok(service, make_deployment)

        result = await service.rollback(failed.release_id)

        assert result.exit_code == 1
        assert result.errors[0].code == ErrorCode.VALIDATION_ERROR
        assert not result.promoted
        assert layout.current_release_id() == live.release_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("release_id", ["../shared", "../backups", "current", ""])
    async def test_rollback_refuses_paths_outside_releases(self, service, layout,
                                                           make_deployment, release_id):
        """Should reject ids that are not release directory names."""
        live = await _deploy_ok(service, make_deployment)
        current_target = os.readlink(layout.current_link)

        result = await service.rollback(release_id)

        assert result.exit_code == 1
        assert result.errors[0].code == ErrorCode.RELEASE_NOT_FOUND
        assert layout.current_release_id() == live.release_id
        assert os.readlink(layout.current_link) == current_target

    @pytest.mark.asyncio
    async def test_list_releases_marks_current(self, service, make_deployment):
        """Should list newest first with the live one marked."""
        await _deploy_ok(service, make_deployment)
        second = await _deploy_ok(service, make_deployment)

        releases = await service.list_releases()

        assert [r.release_id for r in releases][0] == second.release_id
        assert [r.is_current for r in releases] == [True, False]
        assert releases[0].metadata["revision"] == "deadbeef0002"
