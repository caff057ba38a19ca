# release_deployer/cli/commands/deploy.py
"""Deploy command implementation"""

import sys

import click

from ..utils import build_deployer, console, format_deploy_result, print_error
from ...api.exceptions import DeployToolError
from ...models.deployment import DeployMethod, DeployOptions, ServiceBackend

BACKEND_CHOICES = ['auto'] + [b.value for b in ServiceBackend]


@click.command()
@click.argument('app_root', type=click.Path(file_okay=False))
@click.option('--method', type=click.Choice([m.value for m in DeployMethod]),
              default=DeployMethod.GIT.value, help='Where the release code comes from')
@click.option('--repo', 'repository', help='Repository URL (git method)')
@click.option('--branch', default='main', show_default=True, help='Branch to deploy')
@click.option('--source', 'source_path', type=click.Path(exists=True, file_okay=False),
              help='Source directory (in-place method, defaults to the live release)')
@click.option('--migrate', is_flag=True, help='Run database migrations')
@click.option('--seed', is_flag=True, help='Seed the database after migrating')
@click.option('--maintenance/--no-maintenance', default=True,
              help='Put the live application into maintenance mode while deploying')
@click.option('--restart-workers', is_flag=True, help='Restart queue workers after the switch')
@click.option('--optimize', is_flag=True, help='Rebuild framework caches')
@click.option('--backup', is_flag=True, help='Back up the live release first')
@click.option('--require-backup', is_flag=True,
              help='Abort the deployment if the backup fails (implies --backup)')
@click.option('--backend', type=click.Choice(BACKEND_CHOICES), default=None,
              help='Front-end service to reload [default: auto]')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='Configuration file (default: APP_ROOT/.deploy.yaml)')
@click.pass_context
def deploy(ctx, app_root, method, repository, branch, source_path, migrate, seed,
           maintenance, restart_workers, optimize, backup, require_backup, backend,
           config_path):
    """Deploy a new release of the application at APP_ROOT

    The new code is staged into APP_ROOT/releases/<id>, dependencies and
    hooks run there, and APP_ROOT/current is switched atomically once
    everything succeeded:

        APP_ROOT/
        ├── current -> releases/20250101-120000-000000
        ├── releases/
        ├── shared/      (.env, storage/)
        └── backups/

    Examples:

        # Deploy the main branch from git
        release-deployer deploy /var/www/app --repo git@example.com:app.git

        # Redeploy the live code with migrations and a backup
        release-deployer deploy /var/www/app --method in-place --migrate --backup

        # Force the reload backend
        release-deployer deploy /var/www/app --repo URL --backend caddy
    """
    options = DeployOptions(
        migrate=migrate,
        seed=seed,
        maintenance=maintenance,
        restart_workers=restart_workers,
        optimize=optimize,
        backup=backup or require_backup,
        require_backup=require_backup
    )

    try:
        deployer = build_deployer(app_root, config_path, backend)
    except DeployToolError as e:
        print_error(e)
        sys.exit(1)

    if not ctx.obj.quiet:
        console.print(f"[bold]Deploying to {deployer.app_root}[/bold]")

    result = deployer.deploy(
        method=method,
        repository=repository,
        branch=branch,
        source_path=source_path,
        options=options
    )

    format_deploy_result(result, verbose=ctx.obj.verbose or ctx.obj.debug)
    sys.exit(result.exit_code)
