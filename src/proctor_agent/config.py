"""
ProctorAgent Configuration
==========================

This module handles configuration loading for the proctoring agent.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    GEMINI_API_KEY                -> model.api_key
    GEMINI_API_URL                -> model.api_url
    PROCTOR_MODEL_BACKEND         -> model.backend
    PROCTOR_ANALYSIS_INTERVAL     -> analysis.interval_seconds
    PROCTOR_CONFIDENCE_THRESHOLD  -> analysis.confidence_threshold
    PROCTOR_STRICTNESS            -> analysis.strictness
    PROCTOR_RATE_LIMIT_MAX        -> rate_limit.max_requests
    PROCTOR_RATE_LIMIT_WINDOW     -> rate_limit.window_seconds
    PROCTOR_PORT                  -> server.port
    PROCTOR_LOG_LEVEL             -> logging.level
    PORT                          -> server.port (Cloud Run)

Example:
    from proctor_agent.config import settings

    print(settings.agent.name)
    print(settings.model.api_url)
    print(settings.analysis.confidence_threshold)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from proctor_agent.analysis.gemini import DEFAULT_API_URL, DEFAULT_HEALTH_URL
from proctor_agent.analysis.parser import DEFAULT_CONFIDENCE
from proctor_agent.models.request import GenerationConfig, SafetySetting
from proctor_agent.models.session import Strictness


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AgentConfig(BaseModel):
    """Agent identification configuration."""

    name: str = Field(default="proctor-agent", description="Agent name")
    version: str = Field(default="v0.1.0", description="Protocol version")


class ModelConfig(BaseModel):
    """Remote vision model configuration."""

    backend: str = Field(
        default="gemini",
        description="Model backend: 'gemini' or 'mock'",
    )
    api_url: str = Field(
        default=DEFAULT_API_URL,
        description="generateContent endpoint",
    )
    health_url: str = Field(
        default=DEFAULT_HEALTH_URL,
        description="Endpoint used for reachability checks",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API credential (prefer GEMINI_API_KEY)",
    )
    auth_scheme: str = Field(
        default="bearer",
        description="Credential header: 'bearer' or 'api_key'",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for every outbound model request",
    )
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    safety: SafetySetting = Field(default_factory=SafetySetting)
    mock_response_text: str = Field(
        default="",
        description="Reply text used by the mock backend",
    )


class AnalysisConfig(BaseModel):
    """Analysis cadence and gating configuration."""

    interval_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Minimum time between analysis dispatches",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for one analysis cycle",
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for the reachability check on connect",
    )
    confidence_threshold: float = Field(
        default=0.7,
        ge=0,
        le=1.0,
        description="Global minimum confidence for emitted violations",
    )
    default_confidence: float = Field(
        default=DEFAULT_CONFIDENCE,
        ge=0,
        le=1.0,
        description="Confidence assigned to parsed violations",
    )
    strictness: Strictness = Field(
        default=Strictness.MEDIUM,
        description="Initial strictness for new sessions",
    )


class RateLimitConfig(BaseModel):
    """Edge rate limiting configuration."""

    enabled: bool = Field(default=True, description="Enable rate limiting")
    max_requests: int = Field(
        default=100,
        ge=1,
        description="Requests allowed per client per window",
    )
    window_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Window duration",
    )
    sweep_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Interval between stale entry sweeps",
    )
    route_prefix: str = Field(
        default="/api/",
        description="Paths starting with this prefix are rate limited",
    )
    trust_forwarded_for: bool = Field(
        default=False,
        description="Identify clients by X-Forwarded-For (behind a proxy only)",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for ProctorAgent.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    agent: AgentConfig = Field(default_factory=AgentConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    # Build settings object
    settings = Settings.model_validate(config_data)

    return settings


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Model settings
    if env_key := os.environ.get("GEMINI_API_KEY"):
        config_data.setdefault("model", {})["api_key"] = env_key
    if env_url := os.environ.get("GEMINI_API_URL"):
        config_data.setdefault("model", {})["api_url"] = env_url
    if env_backend := os.environ.get("PROCTOR_MODEL_BACKEND"):
        config_data.setdefault("model", {})["backend"] = env_backend

    # Analysis settings
    if env_interval := os.environ.get("PROCTOR_ANALYSIS_INTERVAL"):
        config_data.setdefault("analysis", {})["interval_seconds"] = float(env_interval)
    if env_threshold := os.environ.get("PROCTOR_CONFIDENCE_THRESHOLD"):
        config_data.setdefault("analysis", {})["confidence_threshold"] = float(env_threshold)
    if env_strictness := os.environ.get("PROCTOR_STRICTNESS"):
        config_data.setdefault("analysis", {})["strictness"] = env_strictness.lower()

    # Rate limit settings
    if env_max := os.environ.get("PROCTOR_RATE_LIMIT_MAX"):
        config_data.setdefault("rate_limit", {})["max_requests"] = int(env_max)
    if env_window := os.environ.get("PROCTOR_RATE_LIMIT_WINDOW"):
        config_data.setdefault("rate_limit", {})["window_seconds"] = float(env_window)

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("PROCTOR_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("PROCTOR_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
