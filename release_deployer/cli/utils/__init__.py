"""CLI utility functions"""

from .deployer import build_deployer
from .output import (
    console,
    print_error,
    format_deploy_result,
    format_hook_results,
    format_rollback_result,
    format_releases_table,
    format_backups_table,
)

__all__ = [
    'build_deployer',
    'console',
    'print_error',
    'format_deploy_result',
    'format_hook_results',
    'format_rollback_result',
    'format_releases_table',
    'format_backups_table',
]
