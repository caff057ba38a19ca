"""Deployer construction shared by commands"""

from typing import Optional

from ...adapters.factory import parse_backend
from ...api.deployer import Deployer
from ...services.config_service import ConfigService


def build_deployer(app_root: str,
                   config_path: Optional[str] = None,
                   backend: Optional[str] = None) -> Deployer:
    """Load configuration for ``app_root`` and apply CLI overrides

    Raises:
        ConfigError: If the configuration or backend name is invalid
    """
    config = ConfigService(app_root, config_path).load_config()
    if backend:
        parse_backend(backend)
        config.backend = backend
    return Deployer(app_root, config=config)
