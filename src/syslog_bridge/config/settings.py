"""Configuration settings using Pydantic for validation."""

import os
import re
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import ConfigurationError


class AWSConfig(BaseModel):
    """CloudWatch Logs client configuration."""
    region: Optional[str] = Field(default=None, description="AWS region; boto3 default chain when unset")
    endpoint_url: Optional[str] = Field(default=None, description="Endpoint override, e.g. LocalStack")

    # Trust material for TLS verification of the endpoint
    ca_bundle: Optional[str] = Field(default=None, description="Path to a PEM CA bundle")

    # Client lifetime; 0 rebuilds the client before every call
    client_max_age_seconds: float = Field(default=900.0, description="Age after which the client is rebuilt")

    # Transport-level settings handed to botocore
    max_attempts: int = Field(default=3, description="botocore transport attempts")
    connect_timeout_seconds: float = Field(default=10.0, description="Connect timeout")
    read_timeout_seconds: float = Field(default=30.0, description="Read timeout")

    @field_validator('ca_bundle')
    @classmethod
    def validate_ca_bundle(cls, v):
        if v and not os.path.isfile(v):
            raise ValueError(f"CA bundle not found: {v}")
        return v

    @field_validator('client_max_age_seconds')
    @classmethod
    def validate_client_age(cls, v):
        if v < 0:
            raise ValueError("client_max_age_seconds must not be negative")
        return v


class PipelineConfig(BaseModel):
    """Queueing and batching configuration."""
    queue_size: int = Field(default=100, description="Record queue capacity")
    flush_interval_seconds: float = Field(default=0.2, description="Batch flush period")
    overlap_dispatch: bool = Field(default=False, description="Accumulate while a batch is in flight")
    drain_on_shutdown: bool = Field(default=True, description="Flush pending records on shutdown")

    @field_validator('queue_size')
    @classmethod
    def validate_queue_size(cls, v):
        if v < 1:
            raise ValueError("queue_size must be at least 1")
        return v

    @field_validator('flush_interval_seconds')
    @classmethod
    def validate_flush_interval(cls, v):
        if v <= 0:
            raise ValueError("flush_interval_seconds must be positive")
        return v


class ListenerConfig(BaseModel):
    """Syslog listener configuration."""
    enable_udp: bool = Field(default=True, description="Listen for syslog over UDP")
    enable_tcp: bool = Field(default=True, description="Listen for syslog over TCP")
    max_message_size: int = Field(default=65535, description="Largest accepted TCP frame in bytes")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    output: str = Field(default="stdout", description="Log output destination")

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ('json', 'text'):
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        if v.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Unknown log level: {v}")
        return v.upper()


class BridgeSettings(BaseSettings):
    """Main bridge service settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    service_name: str = Field(default="syslog-bridge", description="Service name")

    # Destination and listener
    log_group_name: str = Field(default="", description="CloudWatch Logs group (required)")
    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=514, description="Listen port for UDP and TCP")
    json_output: bool = Field(default=False, description="Send events as JSON instead of raw content")

    # Component configurations
    aws: AWSConfig = Field(default_factory=AWSConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    listener: ListenerConfig = Field(default_factory=ListenerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if not 0 <= v <= 65535:
            raise ValueError("port must be between 0 and 65535")
        return v

    def require_log_group(self) -> str:
        """Return the destination group name or fail if it is missing."""
        if not self.log_group_name:
            raise ConfigurationError("LOG_GROUP_NAME must be specified")
        return self.log_group_name


def substitute_env_vars(obj: Any) -> Any:
    """
    Recursively substitute environment variables in configuration objects.

    Supports syntax:
    - ${VAR_NAME} - Required variable (raises error if not found)
    - ${VAR_NAME:-default} - Optional variable with default value

    Raises:
        ConfigurationError: If a required environment variable is not set
    """
    if isinstance(obj, dict):
        return {key: substitute_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        def replace_env_var(match):
            var_expr = match.group(1)

            if ':-' in var_expr:
                var_name, default_value = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default_value)

            var_name = var_expr.strip()
            value = os.getenv(var_name)
            if value is None:
                raise ConfigurationError(f"Required environment variable '{var_name}' is not set")
            return value

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    else:
        return obj


def load_settings(config_file: Optional[str] = None, **overrides: Any) -> BridgeSettings:
    """
    Load settings from an optional YAML file and the environment.

    Values from the file win over environment variables, and ``overrides``
    (typically command line flags) win over both. The file itself may pull
    values from the environment with ``${VAR}`` / ``${VAR:-default}``.

    Raises:
        ConfigurationError: If the file is missing or a variable is unset
    """
    config_data = {}

    if config_file:
        if not os.path.exists(config_file):
            raise ConfigurationError(f"Configuration file not found: {config_file}")

        import yaml

        with open(config_file, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        config_data = substitute_env_vars(raw_config)

    config_data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return BridgeSettings(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
