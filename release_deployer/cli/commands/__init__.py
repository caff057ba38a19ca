# release_deployer/cli/commands/__init__.py
"""CLI commands"""

from . import deploy
from . import rollback
from . import releases
from . import backups
from . import doctor

__all__ = [
    "deploy",
    "rollback",
    "releases",
    "backups",
    "doctor",
]
