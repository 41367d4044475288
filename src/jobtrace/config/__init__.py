"""Configuration module for jobtrace."""

from .logging import JSONFormatter, TextFormatter, TraceContextFilter, configure_logging
from .settings import TracingSettings, get_config, get_settings

__all__ = [
    "TracingSettings",
    "get_config",
    "get_settings",
    "configure_logging",
    "JSONFormatter",
    "TextFormatter",
    "TraceContextFilter",
]
