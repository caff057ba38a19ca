"""Configuration management service"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

import yaml

from ..api.exceptions import ConfigError
from ..constants import ENV_CONFIG_PATH, PROJECT_CONFIG_FILE
from ..models.config import DeploymentConfig

logger = logging.getLogger(__name__)


class ConfigService:
    """Loads the per-application ``.deploy.yaml``"""

    def __init__(self, app_root: Union[str, Path], config_path: Optional[Union[str, Path]] = None):
        """Initialize config service

        Args:
            app_root: Application root directory
            config_path: Explicit configuration file (overrides discovery)
        """
        self.app_root = Path(app_root)
        self.config_path = self._resolve_path(config_path)
        self._config: Optional[DeploymentConfig] = None

    def _resolve_path(self, config_path) -> Optional[Path]:
        if config_path:
            return Path(config_path).expanduser()
        env_path = os.environ.get(ENV_CONFIG_PATH)
        if env_path:
            return Path(env_path).expanduser()
        return None

    @property
    def config(self) -> DeploymentConfig:
        """Get current configuration (lazy load)"""
        if self._config is None:
            self.load_config()
        return self._config

    def load_config(self) -> DeploymentConfig:
        """Load configuration from file

        A missing default file yields the built-in defaults; a missing
        explicit file is an error.

        Returns:
            Loaded configuration

        Raises:
            ConfigError: If the file cannot be read or is malformed
        """
        path = self.config_path or (self.app_root / PROJECT_CONFIG_FILE)

        if not path.exists():
            if self.config_path is not None:
                raise ConfigError(f"Configuration file not found: {path}")
            logger.debug(f"No {PROJECT_CONFIG_FILE} in {self.app_root}; using defaults")
            self._config = DeploymentConfig()
            return self._config

        try:
            with open(path, 'r') as f:
                content = f.read()
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e

        # Simple environment variable expansion
        content = os.path.expandvars(content)

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")

        try:
            self._config = DeploymentConfig.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration in {path}: {e}") from e

        logger.info(f"Loaded configuration from {path}")
        return self._config

    def save_config(self, config: Optional[DeploymentConfig] = None,
                    path: Optional[Path] = None) -> Path:
        """Write configuration as YAML

        Args:
            config: Configuration to save (uses current if not provided)
            path: Destination (defaults to the app root file)

        Returns:
            Path written
        """
        if config:
            self._config = config

        target = path or self.config_path or (self.app_root / PROJECT_CONFIG_FILE)
        with open(target, 'w') as f:
            yaml.dump(self.config.to_dict(), f, default_flow_style=False, sort_keys=False)

        return target
