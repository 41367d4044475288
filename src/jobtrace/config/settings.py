"""Settings and configuration management."""

import logging
import re
import socket
from collections.abc import Callable, Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger = logging.getLogger(__name__)

# Regex for ${ENV_VAR} placeholders in YAML values
_ENV_VAR_PLACEHOLDER_RE = re.compile(r"^\$\{[A-Z_][A-Z0-9_]*\}$")

# YAML config search paths (checked in order, first found wins)
_YAML_SEARCH_PATHS = [
    Path("jobtrace.yaml"),
    Path("config/jobtrace.yaml"),
    Path.home() / ".config" / "jobtrace" / "jobtrace.yaml",
]

_LOG_FORMATS = ("text", "json")


def _find_yaml_config() -> Path | None:
    """Find the first jobtrace.yaml in search paths."""
    for path in _YAML_SEARCH_PATHS:
        if path.is_file():
            return path
    return None


class TracingSettings(BaseSettings):
    """Job tracing settings.

    Priority chain: init kwargs > env vars > .env file > jobtrace.yaml > defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="JOBTRACE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Class-level cache for the resolved YAML path (not a pydantic field)
    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Priority: init kwargs > env vars > .env file > jobtrace.yaml > file secrets > defaults
        """
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
        ]

        yaml_path = _find_yaml_config()
        cls._yaml_path = yaml_path
        if yaml_path:
            sources.append(
                YamlConfigSettingsSource(
                    settings_cls,
                    yaml_file=yaml_path,
                    yaml_file_encoding="utf-8",
                )
            )

        sources.append(file_secret_settings)
        return tuple(sources)

    @model_validator(mode="before")
    @classmethod
    def _resolve_env_var_placeholders(cls, data: Any) -> Any:
        """Drop unresolved ${VAR} placeholders so the field default applies."""
        if not isinstance(data, dict):
            return data
        return {
            key: value
            for key, value in data.items()
            if not (isinstance(value, str) and _ENV_VAR_PLACEHOLDER_RE.match(value))
        }

    # Root span naming
    trace_prefix: str = Field("jobs", description="First segment of every job trace name")
    job_attrs_for_trace_name: list[str] = Field(
        default_factory=lambda: ["class"],
        description="Job descriptor keys joined, in order, into the trace name",
    )
    job_attrs_for_span: list[str] = Field(
        default_factory=list,
        description="Job descriptor keys copied onto the root span as attributes",
    )
    host_name: str = Field(
        default_factory=socket.gethostname,
        description="Value of the http.host attribute on every job root span",
    )

    # Sampling and export
    sample_proc: Callable[[Mapping[str, Any]], Any] | None = Field(
        None,
        exclude=True,
        description="Predicate deciding per job whether to trace it (None = always)",
    )
    default_max_stack_frames: int = Field(
        10, ge=1, description="Maximum number of spans exported per job trace"
    )
    propagate_trace_context: bool = Field(
        False,
        description="Continue the trace carried in a job's traceparent key",
    )

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_format: str = Field("text", description="Log format: 'text' or 'json'")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in _LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(_LOG_FORMATS)}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"Unknown log level: {value}")
        return value


@lru_cache
def get_settings() -> TracingSettings:
    """Get cached settings instance."""
    return TracingSettings()


# Alias for CLI and other consumers that expect get_config()
get_config = get_settings
