"""Release listing command"""

import sys

import click

from ..utils import build_deployer, console, format_releases_table, print_error
from ...api.exceptions import DeployToolError


@click.command()
@click.argument('app_root', type=click.Path(exists=True, file_okay=False))
@click.option('--output', type=click.Choice(['table', 'json', 'brief']),
              default='table', help='Output format')
@click.pass_context
def releases(ctx, app_root, output):
    """List releases of APP_ROOT, newest first

    The release ``current`` points to is marked.
    """
    try:
        items = build_deployer(app_root).list_releases()
    except DeployToolError as e:
        print_error(e)
        sys.exit(1)

    if not items:
        console.print("[yellow]No releases found[/yellow]")
        return

    if output == 'json':
        console.print_json(data=[
            {
                'release_id': r.release_id,
                'path': str(r.path),
                'current': r.is_current,
                'metadata': r.metadata
            }
            for r in items
        ])
    elif output == 'brief':
        for r in items:
            marker = "*" if r.is_current else " "
            console.print(f"{marker} {r.release_id}", highlight=False)
    else:
        format_releases_table(items)
