"""Tests for .deploy.yaml loading."""

import pytest
import yaml

from release_deployer.api.exceptions import ConfigError
from release_deployer.constants import DEFAULT_KEEP_BACKUPS, DEFAULT_KEEP_RELEASES
from release_deployer.models.config import DeploymentConfig
from release_deployer.services.config_service import ConfigService


class TestConfigService:
    """Configuration discovery and parsing."""

    def test_defaults_without_file(self, tmp_path):
        """Should fall back to built-in defaults."""
        config = ConfigService(tmp_path).config

        assert config.retention.releases == DEFAULT_KEEP_RELEASES
        assert config.retention.backups == DEFAULT_KEEP_BACKUPS
        assert config.backend == "auto"
        assert "storage" in config.shared.dirs
        assert ".env" in config.shared.files

    def test_load_yaml(self, tmp_path):
        """Should read nested sections and octal modes."""
        (tmp_path / ".deploy.yaml").write_text(
            "backend: caddy\n"
            "retention:\n"
            "  releases: 5\n"
            "permissions:\n"
            "  web_user: deploy\n"
            "  writable_mode: '770'\n"
            "maintenance:\n"
            "  retries: 1\n"
        )

        config = ConfigService(tmp_path).load_config()

        assert config.backend == "caddy"
        assert config.retention.releases == 5
        assert config.retention.backups == DEFAULT_KEEP_BACKUPS
        assert config.permissions.web_user == "deploy"
        assert config.permissions.writable_mode == 0o770
        assert config.maintenance.retries == 1

    def test_environment_expansion(self, tmp_path, monkeypatch):
        """Should expand ${VAR} references."""
        monkeypatch.setenv("DEPLOY_PHP", "/opt/php/bin/php")
        (tmp_path / ".deploy.yaml").write_text("php_binary: ${DEPLOY_PHP}\n")

        assert ConfigService(tmp_path).config.php_binary == "/opt/php/bin/php"

    def test_explicit_path_from_environment(self, tmp_path, monkeypatch):
        """Should honour RELEASE_DEPLOYER_CONFIG."""
        path = tmp_path / "elsewhere.yaml"
        path.write_text("backend: nginx\n")
        monkeypatch.setenv("RELEASE_DEPLOYER_CONFIG", str(path))

        assert ConfigService(tmp_path / "app").config.backend == "nginx"

    def test_missing_explicit_file(self, tmp_path):
        """Should reject an explicit path that does not exist."""
        with pytest.raises(ConfigError, match="not found"):
            ConfigService(tmp_path, tmp_path / "missing.yaml").load_config()

    @pytest.mark.parametrize("content", [
        "retention: [unclosed\n",
        "- just\n- a list\n",
        "retention:\n  releases: 0\n",
        "timeouts:\n  unknown: 1\n",
    ])
    def test_invalid_files(self, tmp_path, content):
        """Should raise ConfigError for malformed configuration."""
        (tmp_path / ".deploy.yaml").write_text(content)

        with pytest.raises(ConfigError):
            ConfigService(tmp_path).load_config()

    def test_save_and_reload(self, tmp_path):
        """Should write YAML that loads back to the same values."""
        config = DeploymentConfig(backend="frankenphp")
        config.retention.releases = 7
        config.permissions.dir_mode = 0o750

        path = ConfigService(tmp_path).save_config(config)

        assert yaml.safe_load(path.read_text())["backend"] == "frankenphp"
        loaded = ConfigService(tmp_path).load_config()
        assert loaded.retention.releases == 7
        assert loaded.permissions.dir_mode == 0o750
