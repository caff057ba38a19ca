# release_deployer/cli/main.py
"""Main CLI entry point for release-deployer"""

import os
import sys
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from ..constants import APP_NAME, ENV_LOG_LEVEL, LOG_FORMAT
from ..__version__ import __version__

# Import all commands
from .commands import (
    deploy,
    rollback,
    releases,
    backups,
    doctor,
)

console = Console()


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Setup logging configuration

    Args:
        verbose: Enable verbose output (INFO level)
        debug: Enable debug output (DEBUG level)
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.getLevelName(os.environ.get(ENV_LOG_LEVEL, "WARNING").upper())
        if not isinstance(level, int):
            level = logging.WARNING

    # Configure rich handler
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            RichHandler(
                console=console,
                show_time=debug,
                show_path=debug,
                rich_tracebacks=True,
                tracebacks_suppress=[click]
            )
        ],
        force=True
    )

    # Adjust third-party loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiofiles").setLevel(logging.WARNING)


class Context:
    """CLI context object"""

    def __init__(self):
        self.verbose: bool = False
        self.debug: bool = False
        self.quiet: bool = False


@click.group(name=APP_NAME)
@click.version_option(__version__, prog_name=APP_NAME)
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('-d', '--debug', is_flag=True, help='Enable debug output')
@click.option('-q', '--quiet', is_flag=True, help='Suppress all output except errors')
@click.pass_context
def cli(ctx, verbose, debug, quiet):
    """Release Deployer - Zero-downtime releases for PHP applications

    Each deployment is staged into its own directory under releases/,
    prepared there, and made live by atomically switching the ``current``
    link. Failures after the switch roll back to the previous release.

    Exit codes: 0 deployed, 1 failed before promotion, 2 failed and
    rolled back, 3 failed and rollback failed.
    """
    # Setup logging
    if quiet:
        logging.disable(logging.CRITICAL)
    else:
        logging.disable(logging.NOTSET)
        setup_logging(verbose=verbose, debug=debug)

    ctx.obj = Context()
    ctx.obj.verbose = verbose
    ctx.obj.debug = debug
    ctx.obj.quiet = quiet


# Register commands
cli.add_command(deploy.deploy)
cli.add_command(rollback.rollback)
cli.add_command(releases.releases)
cli.add_command(backups.backups)
cli.add_command(doctor.doctor)


def main():
    """Main entry point for the CLI application

    This function handles:
    - Keyboard interrupts outside a deployment
    - Unexpected exceptions with proper error display
    """
    try:
        cli(prog_name=APP_NAME)

    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)

    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        if '--debug' in sys.argv or '-d' in sys.argv:
            console.print_exception()
        sys.exit(1)


if __name__ == "__main__":
    main()
