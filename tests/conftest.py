"""Pytest configuration and fixtures."""

import os
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from jobtrace.config import TracingSettings, get_settings  # noqa: E402
from jobtrace.config import settings as settings_module  # noqa: E402
from jobtrace.tracing.export import InMemoryExporter, set_default_exporter  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_global_state(monkeypatch, tmp_path):
    """Keep env vars, config files and process-wide defaults out of each test."""
    for key in list(os.environ):
        if key.startswith("JOBTRACE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        settings_module,
        "_YAML_SEARCH_PATHS",
        [Path("jobtrace.yaml"), Path("config/jobtrace.yaml")],
    )
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    set_default_exporter(None)


@pytest.fixture
def exporter():
    """In-memory exporter capturing every tree."""
    return InMemoryExporter()


@pytest.fixture
def settings():
    """Settings matching the MailerJob examples."""
    return TracingSettings(
        trace_prefix="jobs",
        job_attrs_for_trace_name=["queue", "class"],
        job_attrs_for_span=["jid", "queue", "retry"],
        host_name="worker-1.example.com",
        default_max_stack_frames=10,
    )


@pytest.fixture
def mailer_job():
    """A Sidekiq-style job descriptor."""
    return {
        "jid": "b4a577edbccf1d805744efa9",
        "class": "MailerJob",
        "queue": "default",
        "args": [42, "welcome"],
        "retry": True,
    }
