"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Rule tables stay in code; only deployment concerns are configurable
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from .env file
load_dotenv()

DEFAULT_EMERGENCY_NUMBER = "911"


class SafetyConfig(BaseModel):
    """Where the emergency path sends people."""

    country_code: str = Field(default="US", description="ISO-ish code used to pick the number")
    emergency_numbers: dict[str, str] = Field(
        default_factory=lambda: {
            "US": "911",
            "IN": "112",
            "GB": "999",
            "AE": "998",
            "SG": "995",
            "AU": "000",
            "CA": "911",
            "EU": "112",
        },
        description="Emergency dialing number per country code",
    )
    er_search_base_url: str = Field(
        default="https://www.google.com/maps/search/",
        description="Map search endpoint used by the find_er action",
    )

    @field_validator("country_code")
    def normalize_country_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("country_code must not be empty")
        return v

    @field_validator("er_search_base_url")
    def validate_search_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("er_search_base_url must be an http(s) URL")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _format_to_literal(val: str | None, debug: bool) -> Literal["json", "console"]:
        if val is None:
            return "console" if debug else "json"
        return "console" if val.strip().lower() == "console" else "json"

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    safety_config = SafetyConfig(
        country_code=os.getenv("EMERGENCY_COUNTRY_CODE", "US"),
        er_search_base_url=os.getenv(
            "ER_SEARCH_BASE_URL", "https://www.google.com/maps/search/"
        ),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format=_format_to_literal(os.getenv("LOG_FORMAT"), debug),
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        safety=safety_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def emergency_number(config: AppConfig | None = None) -> str:
    """Dialing number for the configured country, falling back to 911."""
    safety = (config or get_config()).safety
    return safety.emergency_numbers.get(safety.country_code, DEFAULT_EMERGENCY_NUMBER)


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")
        print(f"Emergency number: {emergency_number(config)} ({config.safety.country_code})")
    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


if __name__ == "__main__":
    validate_config()
