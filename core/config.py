"""Configuration loading and validation for the Allowance Tracker API.

Settings come from a JSON document in the ALLOWANCE_TRACKER_CONFIG environment
variable (set by the deployment), falling back to config.yaml for local work.
A handful of environment variables override individual values.
"""

import json
import logging
import os
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from core.envelope import DEFAULT_SERVER_ERROR_CODE

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ALLOWANCE_TRACKER_CONFIG"

# Environment variable -> (section, key); section None means top level
ENV_OVERRIDES = {
    "JWT_SECRET_KEY": ("jwt", "secret_key"),
    "LOG_LEVEL": ("logging", "level"),
    "APP_ENVIRONMENT": (None, "environment"),
    "CLOUD_PROVIDER": (None, "cloud_provider"),
}


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


class JwtSettings(BaseModel):
    """Token validation parameters."""

    secret_key: str = Field(..., min_length=1, description="Symmetric HMAC signing key")
    algorithms: List[str] = Field(
        default_factory=lambda: ["HS256", "HS384", "HS512"],
        description="Accepted HMAC algorithms",
    )

    @field_validator("algorithms")
    @classmethod
    def validate_algorithms(cls, v: List[str]) -> List[str]:
        """Only symmetric algorithms make sense with a shared secret."""
        if not v:
            raise ValueError("At least one algorithm is required")
        for algorithm in v:
            if not algorithm.upper().startswith("HS"):
                raise ValueError(f"Unsupported JWT algorithm '{algorithm}', expected HS256/HS384/HS512")
        return [a.upper() for a in v]


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO")
    pretty: bool = Field(default=False, description="Indented JSON for local development")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level '{v}'")
        return level


class Settings(BaseModel):
    """Validated application settings."""

    environment: str = Field(default="Production")
    cloud_provider: Optional[str] = Field(default=None, description="AWS, Azure or Local")
    jwt: JwtSettings
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    server_error_code: Literal["INTERNAL_SERVER_ERROR", "INTERNAL_ERROR"] = Field(
        default=DEFAULT_SERVER_ERROR_CODE,
        description="Error code used in every 500 envelope",
    )


def _read_raw_config(config_path: str) -> Dict[str, Any]:
    config_json = os.environ.get(CONFIG_ENV_VAR)
    if config_json:
        try:
            config = json.loads(config_json)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {CONFIG_ENV_VAR}: {e}") from e
        logger.info("Loaded configuration from environment variable")
        return config

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.info(f"No configuration file at {config_path}, using environment only")
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    logger.info(f"Loaded configuration from {config_path}")
    return config if config is not None else {}


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay environment variables on a raw configuration dictionary.

    Args:
        config: Raw configuration

    Returns:
        New dictionary with overrides applied; keys left empty in YAML are
        dropped

    Raises:
        ConfigurationError: If the document is not a dictionary
    """
    if not isinstance(config, dict):
        raise ConfigurationError("Configuration must be a YAML dictionary")

    merged = {
        k: (dict(v) if isinstance(v, dict) else v) for k, v in config.items() if v is not None
    }
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if not value:
            continue
        if section is None:
            merged[key] = value
        else:
            if not isinstance(merged.get(section), dict):
                merged[section] = {}
            merged[section][key] = value
    return merged


def validate_settings(config: Any) -> Settings:
    """Validate a raw configuration dictionary.

    Raises:
        ConfigurationError: If the structure or any value is invalid
    """
    if not isinstance(config, dict):
        raise ConfigurationError("Configuration must be a YAML dictionary")

    jwt_section = config.get("jwt") or {}
    if not isinstance(jwt_section, dict) or not jwt_section.get("secret_key"):
        raise ConfigurationError(
            "JWT secret not configured.\n\n"
            "Set the JWT_SECRET_KEY environment variable, or add to config.yaml:\n\n"
            "  jwt:\n"
            "    secret_key: <at least 32 random characters>\n"
        )

    try:
        return Settings(**config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_settings(config_path: str = "config.yaml") -> Settings:
    """Load, merge and validate settings.

    Args:
        config_path: Path to the YAML file used when the environment carries
            no JSON configuration

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If the configuration is unreadable or invalid
    """
    config = apply_env_overrides(_read_raw_config(config_path))
    settings = validate_settings(config)
    logger.info(
        "Configuration validated",
        extra={"environment": settings.environment, "cloud_provider": settings.cloud_provider},
    )
    return settings
