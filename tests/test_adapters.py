"""Tests for the host collaborators (reloaders, detector, PHP tooling, database)."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from release_deployer.adapters.database import MysqlDumpExporter
from release_deployer.adapters.detector import StaticBackendDetector, SystemdBackendDetector
from release_deployer.adapters.factory import Collaborators, ReloaderFactory, parse_backend
from release_deployer.adapters.php import ArtisanRunner, ComposerInstaller, parse_framework_version
from release_deployer.adapters.reload import (
    NullReloader,
    ProcessSupervisorReloader,
    ReverseProxyReloader,
)
from release_deployer.api.exceptions import ConfigError
from release_deployer.models.config import DeploymentConfig
from release_deployer.models.deployment import BackendKind, DeployMethod, ServiceBackend
from release_deployer.models.result import CommandResult, OperationStatus

WHICH = "release_deployer.adapters.reload.shutil.which"
RUN = "release_deployer.adapters.reload.run_command"


def ok(output=""):
    return CommandResult(success=True, output=output, returncode=0)


def failed(output="", returncode=1):
    return CommandResult(success=False, output=output, returncode=returncode)


class TestReloaderFactory:
    """Mapping backends to reload styles."""

    def test_backend_kinds(self):
        """Should classify each backend."""
        assert ServiceBackend.NGINX.kind == BackendKind.REVERSE_PROXY
        assert ServiceBackend.CADDY.kind == BackendKind.REVERSE_PROXY
        assert ServiceBackend.FRANKENPHP.kind == BackendKind.PROCESS_SUPERVISOR
        assert ServiceBackend.NONE.kind == BackendKind.NONE

    def test_create(self):
        """Should pick the reloader class by kind."""
        assert isinstance(ReloaderFactory.create(ServiceBackend.NGINX), ReverseProxyReloader)
        assert isinstance(ReloaderFactory.create(ServiceBackend.FRANKENPHP),
                          ProcessSupervisorReloader)
        assert isinstance(ReloaderFactory.create(ServiceBackend.NONE), NullReloader)

    def test_caddyfile_from_config(self):
        """Should pass the configured Caddyfile through."""
        config = DeploymentConfig(caddyfile="/srv/Caddyfile")

        reloader = ReloaderFactory.create(ServiceBackend.CADDY, config)

        assert reloader.command() == ["caddy", "reload", "--config", "/srv/Caddyfile"]

    def test_parse_backend(self):
        """Should treat auto as detection and reject unknown names."""
        assert parse_backend("auto") is None
        assert parse_backend("caddy") == ServiceBackend.CADDY
        with pytest.raises(ConfigError, match="apache"):
            parse_backend("apache")

    def test_default_collaborators(self):
        """Should honour a configured backend without probing."""
        collaborators = Collaborators.default(DeploymentConfig(backend="nginx"))

        assert isinstance(collaborators.detector, StaticBackendDetector)
        assert set(collaborators.sources) == {DeployMethod.GIT, DeployMethod.IN_PLACE}
        assert isinstance(collaborators.reloader_for(ServiceBackend.NGINX), ReverseProxyReloader)


class TestReloaders:
    """Reload commands per backend."""

    def test_commands(self):
        """Should reload proxies and restart supervisors."""
        assert ReverseProxyReloader(ServiceBackend.NGINX).command() == \
            ["systemctl", "reload", "nginx"]
        assert ProcessSupervisorReloader(ServiceBackend.FRANKENPHP).command() == \
            ["systemctl", "restart", "frankenphp"]

    @pytest.mark.asyncio
    async def test_reload_active_service(self):
        """Should report success when the reload command succeeds."""
        run = AsyncMock(side_effect=[ok(), ok()])
        with patch(WHICH, return_value="/usr/bin/systemctl"), patch(RUN, run):
            outcome = await ReverseProxyReloader(ServiceBackend.NGINX).reload()

        assert outcome.status == OperationStatus.SUCCESS
        assert run.call_args_list[-1].args[0] == ["systemctl", "reload", "nginx"]

    @pytest.mark.asyncio
    async def test_inactive_service_skipped(self):
        """Should not reload a service that is not running."""
        run = AsyncMock(return_value=failed(returncode=3))
        with patch(WHICH, return_value="/usr/bin/systemctl"), patch(RUN, run):
            outcome = await ProcessSupervisorReloader(ServiceBackend.FRANKENPHP).reload()

        assert outcome.status == OperationStatus.SKIPPED
        assert run.call_count == 1

    @pytest.mark.asyncio
    async def test_reload_failure(self):
        """Should report a failed reload with its output."""
        run = AsyncMock(side_effect=[ok(), failed("invalid config")])
        with patch(WHICH, return_value="/usr/bin/systemctl"), patch(RUN, run):
            outcome = await ReverseProxyReloader(ServiceBackend.NGINX).reload()

        assert outcome.status == OperationStatus.FAILED
        assert outcome.output == "invalid config"

    @pytest.mark.asyncio
    async def test_null_reloader(self):
        """Should skip without running anything."""
        outcome = await NullReloader().reload()
        assert outcome.status == OperationStatus.SKIPPED


class TestDetector:
    """Service backend detection."""

    @pytest.mark.asyncio
    async def test_priority_order(self):
        """Should return the first active backend in detection order."""
        calls = []

        async def fake_run(cmd, timeout=None):
            calls.append(cmd[-1])
            return ok() if cmd[-1] in ("caddy", "nginx") else failed(returncode=3)

        with patch("release_deployer.adapters.detector.shutil.which", return_value="/bin/systemctl"), \
                patch("release_deployer.adapters.detector.run_command", side_effect=fake_run):
            backend = await SystemdBackendDetector().detect()

        assert backend == ServiceBackend.CADDY
        assert calls == ["frankenphp", "caddy"]

    @pytest.mark.asyncio
    async def test_nothing_active(self):
        """Should fall back to no backend."""
        with patch("release_deployer.adapters.detector.shutil.which", return_value="/bin/systemctl"), \
                patch("release_deployer.adapters.detector.run_command",
                      AsyncMock(return_value=failed(returncode=3))):
            assert await SystemdBackendDetector().detect() == ServiceBackend.NONE

    @pytest.mark.asyncio
    async def test_without_systemctl(self):
        """Should not query units when systemctl is missing."""
        with patch("release_deployer.adapters.detector.shutil.which", return_value=None):
            assert await SystemdBackendDetector().detect() == ServiceBackend.NONE


class TestPhpTooling:
    """Composer and artisan wrappers."""

    @pytest.mark.parametrize("output,expected", [
        ("Laravel Framework 11.2.0", "11.2.0"),
        ("Laravel Framework 10.48", "10.48"),
        ("Laravel Framework v9.52.16", "9.52.16"),
        ("command not found", None),
        ("", None),
    ])
    def test_parse_framework_version(self, output, expected):
        """Should normalise the reported version."""
        assert parse_framework_version(output) == expected

    @pytest.mark.asyncio
    async def test_composer_skipped_without_manifest(self, tmp_path):
        """Should skip installation when there is no composer.json."""
        with patch("release_deployer.adapters.php.run_command") as run:
            result = await ComposerInstaller().install(tmp_path)

        assert result.success and result.skipped
        run.assert_not_called()

    @pytest.mark.asyncio
    async def test_composer_production_flags(self, tmp_path):
        """Should install without dev dependencies."""
        (tmp_path / "composer.json").write_text("{}")
        run = AsyncMock(return_value=ok())
        with patch("release_deployer.adapters.php.run_command", run):
            await ComposerInstaller(binary="composer").install(tmp_path)

        cmd = run.call_args.args[0]
        assert cmd[:2] == ["composer", "install"]
        assert "--no-dev" in cmd
        assert run.call_args.kwargs["cwd"] == tmp_path

    @pytest.mark.asyncio
    async def test_artisan_non_interactive(self, tmp_path):
        """Should append --no-interaction once."""
        run = AsyncMock(return_value=ok())
        with patch("release_deployer.adapters.php.run_command", run):
            await ArtisanRunner(php_binary="php8.3").run(tmp_path, ["migrate", "--force"])

        assert run.call_args.args[0] == ["php8.3", "artisan", "migrate", "--force", "--no-interaction"]

    @pytest.mark.asyncio
    async def test_framework_version_without_artisan(self, tmp_path):
        """Should report nothing for a release without artisan."""
        assert await ArtisanRunner().framework_version(tmp_path) is None


class TestMysqlDump:
    """Database export."""

    @pytest.mark.asyncio
    async def test_password_not_on_command_line(self, tmp_path):
        """Should pass the password through the environment."""
        run = AsyncMock(return_value=ok())
        env = {"DB_DATABASE": "shop", "DB_USERNAME": "shop", "DB_PASSWORD": "secret",
               "DB_HOST": "127.0.0.1"}
        with patch("release_deployer.adapters.database.run_command", run):
            await MysqlDumpExporter().export(env, tmp_path / "database.sql")

        cmd = run.call_args.args[0]
        assert "secret" not in " ".join(cmd)
        assert cmd[-1] == "shop"
        assert "--host=127.0.0.1" in cmd
        assert run.call_args.kwargs["env"] == {"MYSQL_PWD": "secret"}
        assert run.call_args.kwargs["stdout_path"] == Path(tmp_path / "database.sql")

    @pytest.mark.asyncio
    async def test_unsupported_connection(self, tmp_path):
        """Should skip databases it cannot dump."""
        result = await MysqlDumpExporter().export(
            {"DB_CONNECTION": "sqlite"}, tmp_path / "database.sql"
        )
        assert result.skipped
