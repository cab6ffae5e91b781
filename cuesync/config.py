"""Cuesync configuration management with environment variable overrides.

Priority order for configuration values:
1. Environment variables (CUESYNC_*, nested with ``__``)
2. YAML config file
3. Pydantic defaults (lowest priority)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from cuesync.platforms.registry import ProviderConfig, default_platforms
from cuesync.resilience.circuit_breaker import CircuitBreakerConfig

logger = logging.getLogger(__name__)


class ExtractionConfig(BaseModel):
    """Context extraction settings.

    Attributes:
        analysis_platform: Configured platform used as the text-understanding
            capability (None runs heuristics only)
        temperature: Sampling temperature for analyses
        max_tokens: Completion budget per analysis
        timeout_seconds: Bound on each analysis call
        history_window: Number of recent history messages analyzed
        max_key_points: Upper bound on extracted key points
    """

    analysis_platform: str | None = "claude"
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=500, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    history_window: int = Field(default=10, ge=0)
    max_key_points: int = Field(default=5, ge=1)


class ScoringWeights(BaseModel):
    """Weights of the preservation-score components.

    The overall score is ``base_score + sum(ratio * weight)``, clamped to
    [0, 100].
    """

    base_score: float = 0.0
    keyword_preservation: float = 25.0
    semantic_consistency: float = 20.0
    response_quality: float = 15.0
    technical_accuracy: float = 15.0
    continuity: float = 15.0
    platform_bonus: float = 10.0


class QueueConfig(BaseModel):
    """Background sync queue settings."""

    batch_size: int = Field(default=5, ge=1)
    inter_batch_delay_seconds: float = Field(default=1.0, ge=0)


class StoreConfig(BaseModel):
    """Persistence settings.

    Attributes:
        path: DuckDB database path (":memory:" for an in-process store)
    """

    path: str = ":memory:"


class CuesyncConfig(BaseSettings):
    """Main cuesync configuration.

    Attributes:
        platforms: Provider configurations keyed by platform name
        extraction: Context extraction settings
        scoring: Preservation-score weights
        queue: Sync queue settings
        resilience: Per-provider circuit breaker thresholds
        store: Persistence settings
        metrics_enabled: Record Prometheus metrics
        environment: Deployment environment name
    """

    platforms: dict[str, ProviderConfig] = Field(default_factory=default_platforms)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    resilience: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    metrics_enabled: bool = True
    environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        env_prefix="cuesync_",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over values passed in from the YAML file
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_config_from_file(config_path: str) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary (empty when the file is missing or unreadable)
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        logger.warning(f"Config file not found: {config_path}")
        return {}

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return {}

    if not isinstance(config, dict):
        logger.error(f"Config file {config_path} must contain a mapping")
        return {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_config(config_path: str | None = None) -> CuesyncConfig:
    """Get configuration instance.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        CuesyncConfig instance
    """
    if config_path:
        return CuesyncConfig(**load_config_from_file(config_path))
    return CuesyncConfig()
