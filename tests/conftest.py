"""Shared fixtures and fake collaborators for release-deployer tests."""

import asyncio
import getpass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from release_deployer.adapters.base import (
    BackendDetector,
    DatabaseExporter,
    DependencyInstaller,
    LifecycleRunner,
    ServiceReloader,
    SourceProvider,
    WorkerRestarter,
)
from release_deployer.adapters.factory import Collaborators
from release_deployer.core.layout import LayoutManager
from release_deployer.models.config import DeploymentConfig, MaintenanceConfig, PermissionConfig
from release_deployer.models.deployment import (
    DeployMethod,
    DeployOptions,
    Deployment,
    ServiceBackend,
)
from release_deployer.models.result import CommandResult, OperationStatus, ReloadOutcome
from release_deployer.services.deploy_service import DeployService


class FakeSource(SourceProvider):
    """Writes a minimal Laravel-like tree instead of cloning."""

    def __init__(self):
        self.fetched: List[Path] = []
        self.fail = False
        self.counter = 0

    async def fetch(self, deployment, release_path):
        self.fetched.append(release_path)
        if self.fail:
            return CommandResult(success=False, output="fatal: repository not found", returncode=128)

        self.counter += 1
        release_path.mkdir(parents=True)
        (release_path / "artisan").write_text("#!/usr/bin/env php\n")
        (release_path / "composer.json").write_text("{}\n")
        (release_path / ".env.example").write_text("APP_NAME=demo\nAPP_KEY=\n")
        (release_path / "VERSION").write_text(f"build-{self.counter}\n")
        (release_path / "storage").mkdir()
        (release_path / "storage" / "placeholder").write_text("")
        (release_path / "bootstrap" / "cache").mkdir(parents=True)
        return CommandResult(success=True, output="cloned", returncode=0)

    async def revision(self, release_path):
        return f"deadbeef{self.counter:04d}"


class FakeInstaller(DependencyInstaller):
    """Records installs; can fail or block."""

    def __init__(self):
        self.installed: List[Path] = []
        self.fail = False
        self.block = False

    async def install(self, release_path):
        self.installed.append(release_path)
        (release_path / "vendor").mkdir(exist_ok=True)
        if self.block:
            await asyncio.sleep(3600)
        if self.fail:
            return CommandResult(success=False, output="composer: dependency conflict", returncode=2)
        return CommandResult(success=True, output="installed", returncode=0)


class FakeLifecycle(LifecycleRunner):
    """Records ``artisan`` invocations as (release name, args)."""

    def __init__(self):
        self.calls: List[Tuple[str, List[str]]] = []
        self.failing: Dict[str, str] = {}
        self.on_command: Dict[str, Callable[[], None]] = {}

    def commands(self) -> List[str]:
        return [args[0] for _, args in self.calls]

    async def run(self, release_path, args):
        self.calls.append((release_path.name, list(args)))
        name = args[0]
        if name in self.on_command:
            self.on_command[name]()
        if name in self.failing:
            return CommandResult(success=False, output=self.failing[name], returncode=1)
        return CommandResult(success=True, output=f"{name} ok", returncode=0)

    async def framework_version(self, release_path):
        return "11.2.0"


class FakeDetector(BackendDetector):
    def __init__(self, backend: ServiceBackend = ServiceBackend.NGINX):
        self.backend = backend
        self.calls = 0

    async def detect(self):
        self.calls += 1
        return self.backend


class FakeReloader(ServiceReloader):
    """Returns a fixed status; ``on_reload`` runs before returning."""

    def __init__(self, backend: ServiceBackend = ServiceBackend.NGINX,
                 status: OperationStatus = OperationStatus.SUCCESS):
        super().__init__(backend)
        self.status = status
        self.calls = 0
        self.on_reload: Optional[Callable[[], None]] = None

    async def reload(self):
        self.calls += 1
        if self.on_reload is not None:
            self.on_reload()
        output = "reload failed: unit not found" if self.status == OperationStatus.FAILED else ""
        return ReloadOutcome(self.backend.value, self.status, output)


class FakeWorkers(WorkerRestarter):
    def __init__(self):
        self.calls = 0
        self.status = OperationStatus.SUCCESS

    async def restart(self):
        self.calls += 1
        return ReloadOutcome("supervisor", self.status)


class FakeExporter(DatabaseExporter):
    def __init__(self, available: bool = False, fail: bool = False):
        self.available = available
        self.fail = fail
        self.exports: List[Path] = []

    def is_available(self):
        return self.available

    async def export(self, env, dump_path):
        self.exports.append(dump_path)
        if self.fail:
            return CommandResult(success=False, output="access denied", returncode=2)
        dump_path.write_text(f"-- dump of {env.get('DB_DATABASE')}\n")
        return CommandResult(success=True, returncode=0)


@pytest.fixture
def app_root(tmp_path) -> Path:
    root = tmp_path / "app"
    root.mkdir()
    return root


@pytest.fixture
def config() -> DeploymentConfig:
    return DeploymentConfig(
        maintenance=MaintenanceConfig(retries=2, retry_delay=0),
        permissions=PermissionConfig(web_user=getpass.getuser()),
    )


@pytest.fixture
def layout(app_root, config) -> LayoutManager:
    return LayoutManager(app_root, config.shared)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def installer():
    return FakeInstaller()


@pytest.fixture
def lifecycle():
    return FakeLifecycle()


@pytest.fixture
def reloader():
    return FakeReloader()


@pytest.fixture
def workers():
    return FakeWorkers()


@pytest.fixture
def exporter():
    return FakeExporter()


@pytest.fixture
def collaborators(config, source, installer, lifecycle, reloader, workers, exporter):
    return Collaborators(
        sources={DeployMethod.GIT: source, DeployMethod.IN_PLACE: source},
        installer=installer,
        lifecycle=lifecycle,
        detector=FakeDetector(ServiceBackend.NGINX),
        workers=workers,
        database=exporter,
        reloaders={ServiceBackend.NGINX: reloader},
        config=config,
    )


@pytest.fixture
def service(layout, collaborators, config) -> DeployService:
    return DeployService(layout, collaborators, config)


@pytest.fixture
def make_deployment(app_root):
    def _make(**options) -> Deployment:
        return Deployment(
            app_root=app_root,
            method=DeployMethod.GIT,
            repository="git@example.com:acme/shop.git",
            branch="main",
            options=DeployOptions(**options),
        )
    return _make


def snapshot_tree(root: Path) -> Dict[str, Tuple[bool, int, int]]:
    """Map of every path under root to (is_link, mtime_ns, size)."""
    entries = {}
    for path in sorted(root.rglob("*")):
        st = path.lstat()
        entries[str(path.relative_to(root))] = (path.is_symlink(), st.st_mtime_ns, st.st_size)
    return entries


@pytest.fixture
def tree_snapshot():
    return snapshot_tree
