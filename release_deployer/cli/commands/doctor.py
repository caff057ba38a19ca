# release_deployer/cli/commands/doctor.py
"""System diagnostic command"""

import os
import sys

import click
from rich import box
from rich.table import Table

from ..utils import build_deployer, console, print_error
from ...api.deployer import Deployer
from ...api.exceptions import DeployToolError


class DiagnosticCheck:
    """Base class for diagnostic checks"""

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description
        self.passed = False
        self.message = ""
        self.fixes = []

    def run(self, deployer: Deployer, info: dict) -> 'DiagnosticCheck':
        """Run the diagnostic check"""
        raise NotImplementedError

    def fix(self, deployer: Deployer) -> bool:
        """Attempt to fix the issue"""
        return False


class LayoutCheck(DiagnosticCheck):
    """Check releases/, shared/ and backups/"""

    def __init__(self):
        super().__init__(
            "Layout",
            "Verify the application root directory structure"
        )

    def run(self, deployer, info):
        layout = deployer.layout
        missing = [
            p.name for p in (layout.releases_dir, layout.shared_dir, layout.backups_dir)
            if not p.is_dir()
        ]

        if missing:
            self.passed = False
            self.message = f"Missing directories: {', '.join(missing)}"
            self.fixes = [f"Create {d}" for d in missing]
        else:
            self.passed = True
            self.message = "releases/, shared/ and backups/ exist"

        return self

    def fix(self, deployer):
        deployer.layout.ensure()
        return True


class CurrentReleaseCheck(DiagnosticCheck):
    """Check the current pointer"""

    def __init__(self):
        super().__init__(
            "Current Release",
            "Verify that current resolves to a release"
        )

    def run(self, deployer, info):
        link = deployer.layout.current_link
        if info["current_release"]:
            self.passed = True
            self.message = f"current → {info['current_release']} ({info['releases']} release(s) on disk)"
        elif os.path.islink(link):
            self.passed = False
            self.message = f"Dangling link: {link} → {os.readlink(link)}"
        else:
            # Nothing deployed yet is a valid state
            self.passed = True
            self.message = "No release deployed yet"

        return self


class LockCheck(DiagnosticCheck):
    """Check for a running deployment"""

    def __init__(self):
        super().__init__(
            "Deployment Lock",
            "Check whether another deployment holds the lock"
        )

    def run(self, deployer, info):
        if info["locked"]:
            self.passed = False
            holder = info["lock_holder"]
            self.message = f"Locked by pid {holder}" if holder else "Locked"
        else:
            self.passed = True
            self.message = "Not locked"

        return self


class BackendCheck(DiagnosticCheck):
    """Check the front-end service"""

    def __init__(self):
        super().__init__(
            "Service Backend",
            "Detect the active front-end service"
        )

    def run(self, deployer, info):
        backend = info["backend"]
        self.passed = True
        if backend == "none":
            self.message = "No active backend detected; reloads will be skipped"
        else:
            self.message = f"Detected {backend}"

        return self


class ToolsCheck(DiagnosticCheck):
    """Check required executables"""

    REQUIRED = ("git",)

    def __init__(self):
        super().__init__(
            "Tools",
            "Verify command line tools on PATH"
        )

    def run(self, deployer, info):
        tools = info["tools"]
        config = deployer.config
        required = set(self.REQUIRED) | {config.php_binary, config.composer_binary}
        missing = sorted(name for name in required if not tools.get(name))
        optional = sorted(name for name, found in tools.items() if not found and name not in required)

        if missing:
            self.passed = False
            self.message = f"Missing: {', '.join(missing)}"
        else:
            self.passed = True
            self.message = "All required tools found"
        if optional:
            self.message += f" (optional, not found: {', '.join(optional)})"

        return self


class PermissionsCheck(DiagnosticCheck):
    """Check write access to the application root"""

    def __init__(self):
        super().__init__(
            "File Permissions",
            "Verify write access to the application root"
        )

    def run(self, deployer, info):
        if os.access(deployer.app_root, os.W_OK):
            self.passed = True
            self.message = f"{deployer.app_root} is writable"
        else:
            self.passed = False
            self.message = f"No write permission on {deployer.app_root}"

        return self


@click.command()
@click.argument('app_root', type=click.Path(exists=True, file_okay=False))
@click.option('--fix', is_flag=True, help='Attempt to fix issues automatically')
@click.option('--check', multiple=True,
              type=click.Choice(['all', 'layout', 'current', 'lock', 'backend', 'tools', 'permissions']),
              default=['all'],
              help='Specific checks to run')
@click.pass_context
def doctor(ctx, app_root, fix, check):
    """Run host and layout diagnostics for APP_ROOT

    Examples:

        # Run all checks
        release-deployer doctor /var/www/app

        # Create missing directories
        release-deployer doctor /var/www/app --check layout --fix
    """
    try:
        deployer = build_deployer(app_root)
    except DeployToolError as e:
        print_error(e)
        sys.exit(1)

    console.print("[bold]Release Deployer Diagnostics[/bold]\n")

    all_checks = {
        'layout': LayoutCheck(),
        'current': CurrentReleaseCheck(),
        'lock': LockCheck(),
        'backend': BackendCheck(),
        'tools': ToolsCheck(),
        'permissions': PermissionsCheck(),
    }

    if 'all' in check:
        checks_to_run = list(all_checks.values())
    else:
        checks_to_run = [all_checks[c] for c in check if c in all_checks]

    info = deployer.inspect()

    failed_checks = []
    for diagnostic_check in checks_to_run:
        diagnostic_check.run(deployer, info)
        if not diagnostic_check.passed:
            failed_checks.append(diagnostic_check)

    table = Table(title="Diagnostic Results", box=box.ROUNDED)
    table.add_column("Check", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Details")

    for diagnostic_check in checks_to_run:
        status = "[green]✓ PASS[/green]" if diagnostic_check.passed else "[red]✗ FAIL[/red]"
        table.add_row(diagnostic_check.name, status, diagnostic_check.message)

    console.print(table)

    unfixed = list(failed_checks)
    if fix and failed_checks:
        console.print("\n[yellow]Attempting automatic fixes...[/yellow]\n")

        for diagnostic_check in failed_checks:
            if diagnostic_check.fixes and diagnostic_check.fix(deployer):
                console.print(f"[green]✓[/green] Fixed: {diagnostic_check.name}")
                unfixed.remove(diagnostic_check)
            else:
                console.print(f"[red]✗[/red] Could not fix: {diagnostic_check.name}")

    if unfixed:
        console.print(f"\n[red]{len(unfixed)} check(s) failed[/red]")
        if not fix:
            console.print("Run with --fix to attempt automatic fixes")
        sys.exit(1)

    console.print("\n[green]All checks passed![/green]")
