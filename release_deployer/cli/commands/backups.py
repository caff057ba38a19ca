"""Backup listing command"""

import sys

import click

from ..utils import build_deployer, console, format_backups_table, print_error
from ...api.exceptions import DeployToolError


@click.command()
@click.argument('app_root', type=click.Path(exists=True, file_okay=False))
@click.option('--output', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
@click.pass_context
def backups(ctx, app_root, output):
    """List backups of APP_ROOT, newest first"""
    try:
        items = build_deployer(app_root).list_backups()
    except DeployToolError as e:
        print_error(e)
        sys.exit(1)

    if not items:
        console.print("[yellow]No backups found[/yellow]")
        return

    if output == 'json':
        console.print_json(data=[b.to_dict() for b in items])
    else:
        format_backups_table(items)
