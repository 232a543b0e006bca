"""Configuration management for the CAD request router."""

import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class AnalyzerSettings(BaseModel):
    """Thresholds and confidence scores used by the complexity analyzer.

    The confidence values are illustrative defaults, not measured success rates.
    """
    direct_max_parameters: int = Field(default=8, description="Largest effective count routed direct")
    hybrid_max_parameters: int = Field(default=12, description="Largest effective count routed hybrid")
    direct_confidence: float = Field(default=0.99, ge=0.0, le=1.0)
    hybrid_confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    script_confidence: float = Field(default=0.95, ge=0.0, le=1.0)
    unknown_confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_thresholds(self) -> "AnalyzerSettings":
        if self.direct_max_parameters < 0:
            raise ValueError("direct_max_parameters must not be negative")
        if self.hybrid_max_parameters < self.direct_max_parameters:
            raise ValueError(
                "hybrid_max_parameters must be >= direct_max_parameters, got: "
                f"{self.hybrid_max_parameters} < {self.direct_max_parameters}"
            )
        return self


class BridgeConfig(BaseModel):
    """Main router configuration."""

    # Complexity analysis
    analyzer: AnalyzerSettings = Field(default_factory=AnalyzerSettings)

    # Circuit breaker
    circuit_breaker_failure_threshold: int = Field(default=5, description="Failures before opening circuit")
    circuit_breaker_open_duration: float = Field(default=60.0, description="Seconds the circuit stays open")
    circuit_breaker_scope: str = Field(default="pool", description="'pool' for one breaker, 'handle' for one per handle")

    # Handle pool
    pool_max_size: int = Field(default=3, description="Maximum concurrent application handles")
    pool_acquire_timeout: float = Field(default=30.0, description="Seconds to wait for a free handle")
    pool_poll_interval: float = Field(default=0.05, description="Re-check interval while waiting for a handle")

    # Retry policy for transient (connection) failures
    max_retries: int = Field(default=3, description="Retry attempts after the first try")
    retry_base_delay: float = Field(default=0.5, description="Backoff step, multiplied by the attempt number")
    retry_max_delay: float = Field(default=4.0, description="Maximum retry delay")

    # External calls
    call_timeout: Optional[float] = Field(default=60.0, description="Seconds to wait for one external call")

    # Script execution
    script_directory: Optional[str] = Field(default=None, description="Where generated scripts are written; system temp if unset")
    script_module: str = Field(default="Module1", description="Module name passed to the script entry point")
    script_extension: str = Field(default=".swp", description="File extension for generated scripts")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    structured_logging: bool = Field(default=True, description="Emit JSON log lines")

    @field_validator("circuit_breaker_failure_threshold", "pool_max_size")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"value must be positive, got: {v}")
        return v

    @field_validator("circuit_breaker_open_duration", "pool_acquire_timeout", "pool_poll_interval")
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"value must be positive, got: {v}")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_retries must not be negative, got: {v}")
        return v

    @field_validator("call_timeout")
    @classmethod
    def validate_call_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"call_timeout must be positive, got: {v}")
        return v

    @field_validator("circuit_breaker_scope")
    @classmethod
    def validate_scope(cls, v: str) -> str:
        if v not in ("pool", "handle"):
            raise ValueError(f"circuit_breaker_scope must be 'pool' or 'handle', got: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"Unknown log level: {v}")
        return v

    @property
    def script_path(self) -> Optional[Path]:
        return Path(self.script_directory) if self.script_directory else None

    # Environment variable overrides
    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """Create configuration with environment variable overrides."""
        config = cls()

        env_mappings = {
            "CADBRIDGE_POOL_SIZE": "pool_max_size",
            "CADBRIDGE_ACQUIRE_TIMEOUT": "pool_acquire_timeout",
            "CADBRIDGE_CB_THRESHOLD": "circuit_breaker_failure_threshold",
            "CADBRIDGE_CB_OPEN_DURATION": "circuit_breaker_open_duration",
            "CADBRIDGE_CB_SCOPE": "circuit_breaker_scope",
            "CADBRIDGE_MAX_RETRIES": "max_retries",
            "CADBRIDGE_CALL_TIMEOUT": "call_timeout",
            "CADBRIDGE_SCRIPT_DIR": "script_directory",
            "CADBRIDGE_LOG_LEVEL": "log_level",
        }

        for env_var, field_name in env_mappings.items():
            if env_var in os.environ:
                value = os.environ[env_var]
                field_info = cls.model_fields[field_name]
                if field_info.annotation == int:
                    setattr(config, field_name, int(value))
                elif field_info.annotation in (float, Optional[float]):
                    setattr(config, field_name, float(value))
                else:
                    setattr(config, field_name, value)

        return config


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or Path("config/config.yaml")
        self._config: Optional[BridgeConfig] = None

    def load_config(self, cli_overrides: Optional[Dict] = None) -> BridgeConfig:
        """
        Load configuration with override precedence: CLI > ENV > YAML > defaults.

        Args:
            cli_overrides: Optional dictionary of CLI flag overrides

        Returns:
            Fully merged BridgeConfig instance

        Raises:
            ValueError: If configuration validation fails
        """
        config_dict = {}

        if self.config_file.exists():
            with open(self.config_file, "r") as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config_dict.update(yaml_config)

        base_config = BridgeConfig(**config_dict)

        env_config = BridgeConfig.from_env()

        merged_dict = base_config.model_dump()
        env_dict = env_config.model_dump()

        # Only override with env values that differ from defaults
        default_dict = BridgeConfig().model_dump()
        for key, value in env_dict.items():
            if value != default_dict[key]:
                merged_dict[key] = value

        if cli_overrides:
            cli_overrides = {k: v for k, v in cli_overrides.items() if v is not None}
            merged_dict.update(cli_overrides)

        self._config = BridgeConfig(**merged_dict)
        return self._config

    @property
    def config(self) -> BridgeConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config
