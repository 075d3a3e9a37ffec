"""Tests for configuration management."""

import tempfile
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from life_connections.config import (
    DEFAULT_DOMAINS,
    AnalysisOptions,
    Settings,
    get_analysis_options,
    load_analysis_config,
)


class TestAnalysisOptions:
    """Tests for AnalysisOptions model."""

    def test_defaults(self) -> None:
        """Test AnalysisOptions default values."""
        options = AnalysisOptions()
        assert options.lookback_days == 40
        assert options.min_sample_size == 14
        assert options.min_p_value == 0.05
        assert options.min_effect_size == 0.3
        assert options.include_time_lag is False
        assert options.max_time_lag_days == 3
        assert options.max_connections == 10
        assert options.domains == DEFAULT_DOMAINS

    def test_domains_deduplicated(self) -> None:
        """Repeated domains are fetched once."""
        options = AnalysisOptions(domains=["mood", "health", "mood"])
        assert options.domains == ["mood", "health"]

    def test_sample_size_cannot_exceed_window(self) -> None:
        """The minimum sample must fit in the lookback window."""
        with pytest.raises(ValidationError):
            AnalysisOptions(lookback_days=10, min_sample_size=14)

    def test_invalid_p_value(self) -> None:
        """p-value threshold must be in (0, 1]."""
        with pytest.raises(ValidationError):
            AnalysisOptions(min_p_value=0)


class TestSettings:
    """Tests for Settings."""

    def test_settings_defaults(self, monkeypatch) -> None:
        """Test Settings default values."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        settings = Settings(_env_file=None)
        assert settings.redis_url == "redis://localhost:6379"
        assert settings.narrative_model == "claude-sonnet-4-20250514"
        assert settings.max_workers == 4
        assert settings.anthropic_api_key == ""

    def test_settings_from_env(self, monkeypatch) -> None:
        """Environment variables override defaults."""
        monkeypatch.setenv("RUN_TIMEOUT_SECONDS", "30")
        monkeypatch.setenv("DATABASE_URL", "postgresql://db/test")
        settings = Settings(_env_file=None)
        assert settings.run_timeout_seconds == 30.0
        assert settings.database_url == "postgresql://db/test"


class TestConfigLoading:
    """Tests for configuration loading functions."""

    def test_load_analysis_config(self) -> None:
        """Test loading configuration from YAML file."""
        config_data = {
            "analysis": {"lookback_days": 60, "include_time_lag": True},
            "domains": ["health", "mood"],
        }
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config_data, f)
            config_path = Path(f.name)

        try:
            loaded = load_analysis_config(config_path)
            assert loaded == config_data
        finally:
            config_path.unlink()

    def test_load_empty_file(self, tmp_path) -> None:
        """An empty file is an empty configuration."""
        config_path = tmp_path / "analysis.yaml"
        config_path.write_text("")
        assert load_analysis_config(config_path) == {}

    def test_shipped_config_matches_defaults(self) -> None:
        """config/analysis.yaml carries the model defaults."""
        config_path = Path(__file__).parent.parent / "config" / "analysis.yaml"
        assert get_analysis_options(load_analysis_config(config_path)) == AnalysisOptions()

    def test_get_analysis_options(self) -> None:
        """Sections map onto AnalysisOptions."""
        config = {"analysis": {"lookback_days": 60}, "domains": ["health", "mood"]}
        options = get_analysis_options(config)
        assert options.lookback_days == 60
        assert options.domains == ["health", "mood"]

    def test_overrides(self) -> None:
        """Non-None overrides win; None overrides are ignored."""
        config = {"analysis": {"lookback_days": 60, "include_time_lag": False}}
        options = get_analysis_options(config, lookback_days=None, include_time_lag=True)
        assert options.lookback_days == 60
        assert options.include_time_lag is True

    def test_empty_config(self) -> None:
        """Missing sections fall back to defaults."""
        assert get_analysis_options({}) == AnalysisOptions()
