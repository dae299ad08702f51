"""Tests for path utilities."""

from pathlib import Path

from portal_sync.utils.paths import (
    CONFIG_DIR_ENV_VAR,
    DEFAULT_CONFIG_DIR,
    DEFAULT_DATABASE_FILE,
    default_database_path,
    resolve_config_dir,
)


class TestDefaultConfigDir:
    """Test DEFAULT_CONFIG_DIR constant."""

    def test_default_config_dir_is_in_home(self):
        """Default config dir should be in user's home directory."""
        assert Path.home() / ".portal-sync" == DEFAULT_CONFIG_DIR


class TestResolveConfigDir:
    """Test resolve_config_dir function."""

    def test_explicit_path_string(self, tmp_path):
        """Explicit path string should be used."""
        assert resolve_config_dir(str(tmp_path)) == tmp_path.resolve()

    def test_explicit_path_with_tilde(self):
        """Explicit path with ~ should be expanded."""
        result = resolve_config_dir("~/custom-config")
        assert result == (Path.home() / "custom-config").resolve()

    def test_env_var_override(self, tmp_path, monkeypatch):
        """Environment variable should override default when no explicit path."""
        monkeypatch.setenv(CONFIG_DIR_ENV_VAR, str(tmp_path))
        assert resolve_config_dir(None) == tmp_path.resolve()

    def test_explicit_path_beats_env_var(self, tmp_path, monkeypatch):
        """Explicit path should win over the environment variable."""
        monkeypatch.setenv(CONFIG_DIR_ENV_VAR, "/somewhere/else")
        assert resolve_config_dir(tmp_path) == tmp_path.resolve()

    def test_default_when_no_explicit_and_no_env(self, monkeypatch):
        """Default should be used when no explicit path and no env var."""
        monkeypatch.delenv(CONFIG_DIR_ENV_VAR, raising=False)
        assert resolve_config_dir(None) == DEFAULT_CONFIG_DIR.expanduser().resolve()


class TestDefaultDatabasePath:
    """Test default_database_path function."""

    def test_database_inside_config_dir(self, tmp_path):
        """The database file lives in the config directory."""
        assert default_database_path(tmp_path) == tmp_path.resolve() / DEFAULT_DATABASE_FILE
