"""Configuration management for Life Connections."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

DEFAULT_DOMAINS = ["activity", "health", "mood", "photos"]


class AnalysisOptions(BaseModel):
    """Options for a single analysis run."""

    lookback_days: int = Field(default=40, ge=1)
    min_sample_size: int = Field(default=14, ge=3)
    min_p_value: float = Field(default=0.05, gt=0, le=1)
    min_effect_size: float = Field(default=0.3, ge=0, le=1)
    include_time_lag: bool = False
    max_time_lag_days: int = Field(default=3, ge=0)

    # Series building and output shaping
    min_domain_days: int = Field(default=3, ge=1)
    max_data_points: int = Field(default=60, ge=1)
    max_connections: int = Field(default=10, ge=1)
    trend_window_days: int = Field(default=14, ge=3)
    domains: list[str] = Field(default_factory=lambda: list(DEFAULT_DOMAINS))

    @field_validator("domains")
    @classmethod
    def _dedupe_domains(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for domain in value:
            if domain not in seen:
                seen.append(domain)
        return seen

    @model_validator(mode="after")
    def _check_window(self) -> "AnalysisOptions":
        if self.min_sample_size > self.lookback_days:
            raise ValueError(
                f"min_sample_size ({self.min_sample_size}) exceeds "
                f"lookback_days ({self.lookback_days})"
            )
        return self


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Database
    database_url: str = "postgresql://localhost/life_connections"

    # Redis
    redis_url: str = "redis://localhost:6379"
    narrative_cache_ttl_seconds: int = 7 * 24 * 3600

    # Anthropic
    anthropic_api_key: str = ""
    narrative_model: str = "claude-sonnet-4-20250514"

    # Run limits
    run_timeout_seconds: float = 120.0
    narrative_timeout_seconds: float = 10.0
    max_workers: int = 4

    # Paths
    config_dir: Path = Path("config")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def load_analysis_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load analysis configuration from YAML file."""
    if config_path is None:
        config_path = Path("config/analysis.yaml")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def get_analysis_options(config: dict[str, Any], **overrides: Any) -> AnalysisOptions:
    """Build AnalysisOptions from configuration, applying non-None overrides."""
    data = dict(config.get("analysis", {}) or {})
    if config.get("domains"):
        data["domains"] = config["domains"]
    data.update({k: v for k, v in overrides.items() if v is not None})
    return AnalysisOptions(**data)
