"""Config commands: effective interceptor settings and where each came from."""

from __future__ import annotations

import json

import typer
from pydantic_settings import DotEnvSettingsSource, EnvSettingsSource, YamlConfigSettingsSource
from rich.table import Table

from jobtrace.config import TracingSettings
from jobtrace.config.settings import _ENV_VAR_PLACEHOLDER_RE, _find_yaml_config
from jobtrace.jobs.span_builder import SEPARATOR

from ..helpers import console

config_app = typer.Typer(help="View tracing configuration")

SETTING_GROUPS = {
    "Root span naming": ("trace_prefix", "job_attrs_for_trace_name"),
    "Root span attributes": ("host_name", "job_attrs_for_span"),
    "Sampling and export": ("sample_proc", "default_max_stack_frames", "propagate_trace_context"),
    "Logging": ("log_level", "log_format"),
}

DEFAULT_SOURCE = "default"


def value_sources() -> dict[str, str]:
    """Map each explicitly configured field to the source that won.

    Sources are checked in priority order (env, .env, jobtrace.yaml); fields
    absent from the result come from their defaults.
    """
    sources = [
        ("env", EnvSettingsSource(TracingSettings)),
        (".env", DotEnvSettingsSource(TracingSettings)),
    ]
    yaml_path = _find_yaml_config()
    if yaml_path:
        yaml_source = YamlConfigSettingsSource(TracingSettings, yaml_file=yaml_path)
        sources.append((str(yaml_path), yaml_source))

    origin: dict[str, str] = {}
    for label, source in sources:
        for key, value in source().items():
            if isinstance(value, str) and _ENV_VAR_PLACEHOLDER_RE.match(value):
                continue
            origin.setdefault(key, label)
    return origin


def trace_name_pattern(settings: TracingSettings) -> str:
    """Root span name template, e.g. ``jobs/<queue>/<class>``."""
    return SEPARATOR.join(
        [settings.trace_prefix, *(f"<{key}>" for key in settings.job_attrs_for_trace_name)]
    )


def _display(key: str, settings: TracingSettings) -> str:
    if key == "sample_proc":
        proc = settings.sample_proc
        return "always sample" if proc is None else getattr(proc, "__qualname__", repr(proc))
    value = getattr(settings, key)
    if isinstance(value, list):
        return ", ".join(value) if value else "[dim]none[/dim]"
    return str(value)


@config_app.command("show")
def config_show(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show the effective interceptor settings and their sources."""
    from jobtrace.config import get_settings

    try:
        settings = get_settings()
    except ValueError as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1)

    origin = value_sources()
    config_file = _find_yaml_config()

    if json_output:
        payload = {
            "settings": settings.model_dump(),
            "sources": {
                key: origin.get(key, DEFAULT_SOURCE)
                for keys in SETTING_GROUPS.values()
                for key in keys
            },
            "trace_name_pattern": trace_name_pattern(settings),
            "config_file": str(config_file) if config_file else None,
        }
        print(json.dumps(payload, indent=2, default=str))
        return

    table = Table(title="jobtrace settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_column("Source", style="dim")

    for group, keys in SETTING_GROUPS.items():
        table.add_row(f"[bold]{group}[/bold]", "", "")
        for key in keys:
            table.add_row(f"  {key}", _display(key, settings), origin.get(key, DEFAULT_SOURCE))
        table.add_section()

    console.print(table)
    console.print(f"Trace name pattern: [bold]{trace_name_pattern(settings)}[/bold]")
    console.print(f"Config file: {config_file.absolute() if config_file else '[dim]none[/dim]'}")
