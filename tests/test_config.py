"""Tests for configuration module."""

import json
from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import SecretStr, ValidationError

from cursor_sync.config import Settings, StageTimeouts, WindowConfig, load_settings


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Test default settings creation."""
        settings = Settings()
        assert settings.window.default_lookback == timedelta(hours=1)
        assert settings.window.max_lookback == timedelta(days=7)
        assert settings.concurrency == 4
        assert settings.dry_run is False
        assert settings.store.path == Path(".cursor-sync.db")

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test settings loading from environment variables."""
        monkeypatch.setenv("CURSOR_SYNC_TARGET_TYPE", "trips")
        monkeypatch.setenv("CURSOR_SYNC_CONCURRENCY", "8")
        monkeypatch.setenv("CURSOR_SYNC_PROVIDER__BASE_URL", "https://api.example.com/trips")
        monkeypatch.setenv("CURSOR_SYNC_WINDOW__MAX_LOOKBACK", "P3D")

        settings = Settings()
        assert settings.target_type == "trips"
        assert settings.concurrency == 8
        assert settings.provider.base_url == "https://api.example.com/trips"
        assert settings.window.max_lookback == timedelta(days=3)

    def test_validate_provider_missing(self) -> None:
        """Test provider validation with no URL."""
        errors = Settings().validate_provider()
        assert any("base_url" in e for e in errors)

    def test_validate_provider_bad_scheme(self) -> None:
        """Test provider validation rejects non-http URLs."""
        settings = Settings(provider={"base_url": "ftp://example.com"})
        assert settings.validate_provider() == ["provider.base_url must be an http(s) URL"]

    def test_validate_provider_complete(self) -> None:
        """Test provider validation with a URL."""
        settings = Settings(provider={"base_url": "https://example.com", "api_token": "t"})
        assert settings.validate_provider() == []
        assert isinstance(settings.provider.api_token, SecretStr)

    def test_settings_to_file_json(self, tmp_path: Path) -> None:
        """Test saving settings to JSON file redacts the token."""
        settings = Settings(provider={"base_url": "https://example.com", "api_token": "secret"})
        output_path = tmp_path / "config.json"
        settings.to_file(output_path)

        data = json.loads(output_path.read_text())
        assert data["provider"]["base_url"] == "https://example.com"
        assert data["provider"]["api_token"] == "***REDACTED***"

    def test_to_file_omits_unset_token(self, tmp_path: Path) -> None:
        """Test an empty token is left out rather than written as a placeholder."""
        output_path = tmp_path / "config.json"
        Settings().to_file(output_path)

        data = json.loads(output_path.read_text())
        assert "api_token" not in data["provider"]

    def test_redacted_token_loads_as_empty(self, tmp_path: Path) -> None:
        """Test a saved file never turns its placeholder into a real token."""
        settings = Settings(provider={"base_url": "https://example.com", "api_token": "secret"})
        path = tmp_path / "config.toml"
        settings.to_file(path)

        loaded = Settings.from_file(path)
        assert loaded.provider.api_token.get_secret_value() == ""

    def test_settings_toml_round_trip(self, tmp_path: Path) -> None:
        """Test a written TOML file loads back."""
        settings = Settings(
            target_type="trips",
            window={"default_lookback": timedelta(minutes=10), "max_lookback": timedelta(days=2)},
        )
        path = tmp_path / "config.toml"
        settings.to_file(path)

        loaded = Settings.from_file(path)
        assert loaded.target_type == "trips"
        assert loaded.window.default_lookback == timedelta(minutes=10)
        assert loaded.window.max_lookback == timedelta(days=2)

    def test_from_file_missing(self, tmp_path: Path) -> None:
        """Test a missing config file is reported."""
        with pytest.raises(FileNotFoundError):
            Settings.from_file(tmp_path / "missing.toml")

    def test_from_file_unsupported(self, tmp_path: Path) -> None:
        """Test unknown config formats are rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("concurrency: 2")
        with pytest.raises(ValueError, match="Unsupported"):
            Settings.from_file(path)

    def test_load_settings_overrides(self, tmp_path: Path) -> None:
        """Test overrides win over the config file."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"concurrency": 2, "target_type": "trips"}))

        settings = load_settings(path, concurrency=6)
        assert settings.concurrency == 6
        assert settings.target_type == "trips"


class TestWindowConfig:
    """Test WindowConfig validation."""

    def test_max_below_default_rejected(self) -> None:
        """Test max lookback must cover the default lookback."""
        with pytest.raises(ValidationError, match="max_lookback"):
            WindowConfig(default_lookback=timedelta(hours=2), max_lookback=timedelta(hours=1))

    def test_non_positive_default_rejected(self) -> None:
        """Test the default lookback must be positive."""
        with pytest.raises(ValidationError, match="positive"):
            WindowConfig(default_lookback=timedelta(0))

    def test_parses_seconds(self) -> None:
        """Test lookbacks accept plain seconds."""
        config = WindowConfig(default_lookback=300, max_lookback=3600)
        assert config.default_lookback == timedelta(minutes=5)


class TestStageTimeouts:
    """Test StageTimeouts."""

    def test_for_stage(self) -> None:
        """Test per-stage lookup, with unknown stages unbounded."""
        timeouts = StageTimeouts(fetching=12.5, committing=None)
        assert timeouts.for_stage("fetching") == 12.5
        assert timeouts.for_stage("committing") is None
        assert timeouts.for_stage("resolving") is None
