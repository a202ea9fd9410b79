"""
Pydantic Settings Configuration
=================================

Type-safe configuration for routing and orchestration.
Validates all values at load time and fails fast with clear error messages.
"""

from typing import List, Optional
from pathlib import Path
from importlib import metadata
from pydantic import BaseModel, Field, field_validator, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml


def _project_version() -> str:
    """Resolve the project version from package metadata."""
    try:
        return metadata.version("switchyard")
    except metadata.PackageNotFoundError:
        return "0.0.0-dev"


KNOWN_FALLBACK_OPTIONS = ("single_model_fallback", "simplified_workflow")


class RoutingSettings(BaseModel):
    """Routing engine and smart-default cache configuration"""
    cache_ttl_seconds: float = Field(300.0, ge=0, description="How long a cached routing decision stays valid")
    max_candidates: int = Field(10, ge=1, le=100, description="Ranked candidates retained per routing pass")
    smart_default_max_candidates: int = Field(5, ge=1, le=100, description="Ranked candidates retained for smart defaults")
    minimum_task_suitability: float = Field(6.0, ge=0, le=10, description="Suitability threshold for task filtering")
    high_urgency_ram_cap_gb: float = Field(4.0, gt=0, description="RAM ceiling applied to high-urgency smart defaults")

    model_config = ConfigDict(extra='allow')


class OrchestrationSettings(BaseModel):
    """Workflow orchestration configuration"""
    consensus_models: int = Field(3, ge=1, le=10, description="Models consulted per consensus step")
    dependency_poll_interval: float = Field(0.1, gt=0, description="Seconds between pipeline dependency checks")
    max_retries: int = Field(2, ge=1, le=10, description="Attempts per workflow before falling back")
    retry_base_delay: float = Field(1.0, ge=0, description="Initial retry delay in seconds")
    retry_max_delay: float = Field(10.0, ge=0, description="Retry delay cap in seconds")
    backoff_multiplier: float = Field(2.0, ge=1, description="Exponential backoff multiplier")
    fallback_options: List[str] = Field(
        default_factory=lambda: list(KNOWN_FALLBACK_OPTIONS),
        description="Named fallbacks tried in order once retries are exhausted",
    )
    circuit_breaker_threshold: int = Field(5, ge=1, description="Consecutive failures that open a workflow circuit")
    circuit_breaker_timeout: float = Field(60.0, ge=0, description="Seconds before an open circuit is retried")
    register_builtin_workflows: bool = Field(True, description="Register the bundled workflows at startup")

    @field_validator('fallback_options')
    @classmethod
    def validate_fallback_options(cls, v: List[str]) -> List[str]:
        unknown = [o for o in v if o not in KNOWN_FALLBACK_OPTIONS]
        if unknown:
            raise ValueError(
                f"Unknown fallback option(s): {', '.join(unknown)}. "
                f"Valid options: {', '.join(KNOWN_FALLBACK_OPTIONS)}"
            )
        return v

    model_config = ConfigDict(extra='allow')


class BackendsConfig(BaseModel):
    """Model backend configuration"""
    ollama_url: str = Field("http://localhost:11434", description="Ollama API URL")
    timeout_seconds: int = Field(120, ge=1, le=3600, description="Request timeout in seconds")

    model_config = ConfigDict(extra='allow')


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = Field("INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field("json", description="Log format (json, text)")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(valid_levels))}")
        return v_upper

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ('json', 'text'):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    model_config = ConfigDict(extra='allow')


class Settings(BaseSettings):
    """
    Main application settings with type validation.

    Configuration is loaded from:
    1. YAML config file (if provided)
    2. Environment variables with SWITCHYARD_ prefix (override)
    3. Default values (fallback)

    Environment variable mapping uses double-underscore nesting:
      SWITCHYARD_ROUTING__CACHE_TTL_SECONDS
      SWITCHYARD_ORCHESTRATION__MAX_RETRIES
      SWITCHYARD_BACKENDS__OLLAMA_URL
    """

    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    orchestration: OrchestrationSettings = Field(default_factory=OrchestrationSettings)
    backends: BackendsConfig = Field(default_factory=BackendsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    catalog_path: Optional[Path] = Field(None, description="JSON/YAML file seeding the candidate catalog")
    project_name: str = Field("Switchyard", description="Project name")
    version: str = Field(default_factory=_project_version, description="Project version")

    model_config = SettingsConfigDict(
        env_prefix='SWITCHYARD_',
        env_nested_delimiter='__',
        extra='allow',
        validate_assignment=True,
    )

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Settings":
        """
        Load settings from a YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables only."""
        return cls()

    def validate_required_config(self) -> List[str]:
        """
        Validate cross-field constraints.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.orchestration.retry_max_delay < self.orchestration.retry_base_delay:
            errors.append("orchestration.retry_max_delay must be >= retry_base_delay")

        if self.catalog_path is not None and not self.catalog_path.exists():
            errors.append(f"catalog_path does not exist: {self.catalog_path}")

        return errors


def load_settings(config_path: Optional[str | Path] = None) -> Settings:
    """
    Load and validate application settings.

    Args:
        config_path: Optional path to YAML config file

    Raises:
        ValueError: If configuration is invalid
    """
    if config_path:
        settings = Settings.from_yaml(config_path)
    else:
        settings = Settings.from_env()

    errors = settings.validate_required_config()
    if errors:
        raise ValueError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    return settings


__all__ = [
    'BackendsConfig',
    'LoggingConfig',
    'OrchestrationSettings',
    'RoutingSettings',
    'Settings',
    'load_settings',
]
