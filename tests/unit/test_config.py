"""Unit tests for configuration management."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from gemfinder.config import Config, config_summary, ensure_data_dir, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove gemfinder environment overrides."""
    for key in (
        "GEMFINDER_CONFIG",
        "GEMFINDER_DATA_DIR",
        "GEMFINDER_USER",
        "GEMFINDER_GUEST",
        "GEMFINDER_STORE_URL",
        "GEMFINDER_STORE_KEY",
        "GEMFINDER_STORE_BACKEND",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.mark.ai_generated
class TestConfig:
    """Tests for configuration management."""

    def test_default_config(self) -> None:
        """Test default configuration values."""
        config = Config()

        assert config.store.backend == "local"
        assert config.user.id == ""
        assert config.user.guest is False
        assert config.map.center_lat == pytest.approx(43.6532)
        assert config.map.center_lon == pytest.approx(-79.3832)
        assert config.map.zoom == 15

    def test_load_config_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading configuration from environment variables."""
        monkeypatch.setenv("GEMFINDER_USER", "alice")
        monkeypatch.setenv("GEMFINDER_GUEST", "yes")
        monkeypatch.setenv("GEMFINDER_STORE_URL", "https://project.example.com")

        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.toml"
            config = load_config(config_path)

            assert config.user.id == "alice"
            assert config.user.guest is True
            assert config.store.url == "https://project.example.com"

    def test_load_config_from_file(self) -> None:
        """Test loading configuration from TOML file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.toml"
            config_path.write_text("""
[store]
backend = "rest"
url = "https://project.example.com"
api_key = "anon"
timeout = 3

[data]
directory = "/custom/path"

[user]
id = "bob"

[map]
zoom = 12
            """)

            config = load_config(config_path)

            assert config.store.backend == "rest"
            assert config.store.timeout == 3.0
            assert config.user.id == "bob"
            assert config.map.zoom == 12
            assert str(config.data.directory) == "/custom/path"

    def test_env_overrides_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test environment variables take precedence over the file."""
        config_path = tmp_path / "config.toml"
        config_path.write_text('[user]\nid = "from-file"\n')
        monkeypatch.setenv("GEMFINDER_USER", "from-env")

        assert load_config(config_path).user.id == "from-env"

    def test_load_config_from_local_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test loading configuration from local .gemfinder.toml file."""
        local_config = tmp_path / ".gemfinder.toml"
        local_config.write_text('[user]\nid = "local"\n')

        monkeypatch.chdir(tmp_path)

        config = load_config()

        assert config.user.id == "local"
        assert config.config_path is not None
        assert config.config_path.name == ".gemfinder.toml"

    def test_config_path_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test $GEMFINDER_CONFIG selects the file."""
        config_path = tmp_path / "elsewhere.toml"
        config_path.write_text('[user]\nid = "env-file"\n')
        monkeypatch.setenv("GEMFINDER_CONFIG", str(config_path))

        assert load_config().user.id == "env-file"

    def test_unknown_backend_rejected(self, tmp_path: Path) -> None:
        """Test an unknown store backend is a configuration error."""
        config_path = tmp_path / "config.toml"
        config_path.write_text('[store]\nbackend = "firebase"\n')

        with pytest.raises(ValueError, match="firebase"):
            load_config(config_path)

    def test_summary_hides_key(self) -> None:
        """Test the summary reports whether a key is set without revealing it."""
        config = Config()
        config.store.api_key = "secret"
        summary = config_summary(config)

        assert summary["store_key_set"] is True
        assert "secret" not in str(summary)

    def test_ensure_data_dir(self, tmp_path: Path) -> None:
        """Test the data directory is created."""
        config = Config()
        config.data.directory = tmp_path / "nested" / "data"
        data_dir = ensure_data_dir(config)
        assert data_dir.is_dir()
