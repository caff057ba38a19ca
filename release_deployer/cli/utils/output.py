# release_deployer/cli/utils/output.py
"""Output formatting utilities"""

from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ...api.exceptions import DeployToolError
from ...constants import (
    EMOJI_ERROR,
    EMOJI_SUCCESS,
    EMOJI_WARNING,
    EXIT_CODE_MEANINGS,
    MSG_DEPLOY_SUCCESS,
)
from ...models.deployment import Backup, Release
from ...models.result import DeployResult, OperationStatus

console = Console()

_STATUS_STYLES = {
    OperationStatus.SUCCESS: f"[green]{EMOJI_SUCCESS} success[/green]",
    OperationStatus.FAILED: f"[red]{EMOJI_ERROR} failed[/red]",
    OperationStatus.SKIPPED: "[dim]- skipped[/dim]",
    OperationStatus.IN_PROGRESS: "[yellow]… running[/yellow]",
}


def print_error(error: DeployToolError) -> None:
    """Print a tool error with its code"""
    code = f" [dim]({error.error_code})[/dim]" if error.error_code else ""
    console.print(f"[red]Error:[/red] {error}{code}")


def format_deploy_result(result: DeployResult, verbose: bool = False) -> None:
    """Format and display deploy operation result"""
    meaning = EXIT_CODE_MEANINGS.get(result.exit_code, "")

    if result.success:
        lines = [
            f"[green]{MSG_DEPLOY_SUCCESS.format(release_id=result.release_id)}[/green]",
            "",
            f"[bold]Release:[/bold] {result.release_path}",
            f"[bold]Backend:[/bold] {result.backend}",
        ]
        if result.previous_release:
            lines.append(f"[bold]Previous:[/bold] {result.previous_release.name}")
        if result.backup_path:
            lines.append(f"[bold]Backup:[/bold] {result.backup_path}")
        if result.reload:
            lines.append(f"[bold]Reload:[/bold] {_STATUS_STYLES[result.reload.status]}")
        if result.worker_restart:
            lines.append(f"[bold]Workers:[/bold] {_STATUS_STYLES[result.worker_restart.status]}")
        if result.pruned_releases:
            lines.append(f"[bold]Pruned releases:[/bold] {', '.join(result.pruned_releases)}")
        if result.duration is not None:
            lines.append(f"[bold]Duration:[/bold] {result.duration:.1f}s")

        border = "yellow" if result.errors else "green"
        console.print(Panel("\n".join(lines), title="Deploy Result", border_style=border))

    else:
        lines = [
            f"[red]{EMOJI_ERROR} Deployment failed:[/red] {result.message}",
            "",
            f"[bold]Exit code:[/bold] {result.exit_code} ({meaning})",
        ]
        if result.failed_stage:
            lines.append(f"[bold]Stage:[/bold] {result.failed_stage}")
        for error in result.errors:
            if error.fatal:
                lines.append(f"[bold]Cause:[/bold] {error.message} [dim]({error.code})[/dim]")
        if result.release_path and not result.promoted:
            lines.append(f"[bold]Release left at:[/bold] {result.release_path}")
        if result.backup_path:
            lines.append(f"[bold]Backup:[/bold] {result.backup_path}")
        if result.rolled_back:
            outcome = "[green]succeeded[/green]" if result.rollback_succeeded else "[red]failed[/red]"
            lines.append(f"[bold]Rollback:[/bold] {outcome}")

        console.print(Panel("\n".join(lines), title="Deploy Error", border_style="red"))

        if result.failure_output:
            console.print("\n[bold]Captured output:[/bold]")
            console.print(result.failure_output, markup=False, highlight=False)

    if result.maintenance_exit_failed:
        console.print(
            f"\n[bold red]{EMOJI_WARNING} The application is still in maintenance mode. "
            "Run 'php artisan up' in the live release.[/bold red]"
        )

    non_fatal = [e for e in result.errors if not e.fatal]
    if non_fatal:
        console.print("\n[bold yellow]Warnings:[/bold yellow]")
        for error in non_fatal:
            console.print(f"  • {error.message} [dim]({error.code})[/dim]")

    if verbose and result.hook_results:
        format_hook_results(result)


def format_hook_results(result: DeployResult) -> None:
    """Display per-stage hook results"""
    table = Table(title="Hook Stages", box=box.SIMPLE)
    table.add_column("Stage", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Duration", justify="right", style="yellow")

    for hook in result.hook_results:
        table.add_row(hook.name, _STATUS_STYLES[hook.status], f"{hook.duration:.1f}s")

    console.print(table)


def format_rollback_result(result: DeployResult) -> None:
    """Format and display manual rollback result"""
    if result.success:
        lines = [
            f"[green]{EMOJI_SUCCESS}[/green] {result.message}",
            "",
            f"[bold]Release:[/bold] {result.release_path}",
        ]
        if result.reload:
            lines.append(f"[bold]Reload:[/bold] {_STATUS_STYLES[result.reload.status]}")
        console.print(Panel("\n".join(lines), title="Rollback Result", border_style="green"))
    else:
        console.print(Panel(
            f"[red]{EMOJI_ERROR} Rollback failed:[/red] {result.message}",
            title="Rollback Error",
            border_style="red"
        ))


def format_releases_table(releases: List[Release]) -> None:
    table = Table(title="Releases", box=box.SIMPLE)
    table.add_column("", justify="center")
    table.add_column("Release", style="cyan", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Source", style="white")
    table.add_column("Revision", style="dim")
    table.add_column("Framework", style="green")

    for release in releases:
        meta = release.metadata
        if meta.get("method") == "git":
            source = f"{meta.get('repository')}@{meta.get('branch')}"
        else:
            source = meta.get("source_path") or "-"
        revision = meta.get("revision") or "-"
        table.add_row(
            "[green]●[/green]" if release.is_current else "",
            release.release_id,
            meta.get("status", "-"),
            source,
            revision[:12],
            meta.get("framework_version") or "-"
        )

    console.print(table)


def format_backups_table(backups: List[Backup]) -> None:
    table = Table(title="Backups", box=box.SIMPLE)
    table.add_column("Backup", style="cyan", no_wrap=True)
    table.add_column("Release", style="white")
    table.add_column("Database", justify="center")
    table.add_column("Created", style="yellow")

    for backup in backups:
        table.add_row(
            backup.backup_id,
            backup.source_release or "-",
            f"[green]{EMOJI_SUCCESS}[/green]" if backup.has_database_dump else "-",
            backup.created_at.strftime("%Y-%m-%d %H:%M:%S") if backup.created_at else "-"
        )

    console.print(table)
