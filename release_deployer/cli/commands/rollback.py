"""Manual rollback command"""

import sys

import click

from ..utils import build_deployer, format_rollback_result, print_error
from ...api.exceptions import DeployToolError


@click.command()
@click.argument('app_root', type=click.Path(exists=True, file_okay=False))
@click.option('--to', 'release_id', help='Release id to promote (default: the previous release)')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='Configuration file (default: APP_ROOT/.deploy.yaml)')
@click.pass_context
def rollback(ctx, app_root, release_id, config_path):
    """Switch APP_ROOT/current back to an older release

    Takes the deployment lock, re-points ``current`` atomically and
    reloads the front-end service.

    Examples:

        # Return to the release before the current one
        release-deployer rollback /var/www/app

        # Promote a specific release
        release-deployer rollback /var/www/app --to 20250101-120000-000000
    """
    try:
        deployer = build_deployer(app_root, config_path)
    except DeployToolError as e:
        print_error(e)
        sys.exit(1)

    result = deployer.rollback(release_id)
    format_rollback_result(result)
    sys.exit(result.exit_code)
