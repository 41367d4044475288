"""Tests for the jobtrace CLI."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from jobtrace import __version__
from jobtrace.cli.helpers import render_span_tree
from jobtrace.cli.main import app
from jobtrace.tracing.span import Span, SpanTree

runner = CliRunner()


@pytest.fixture(autouse=True)
def _keep_logging(monkeypatch):
    """Leave pytest's log handlers in place."""
    monkeypatch.setattr("jobtrace.config.configure_logging", lambda *args, **kwargs: None)


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestConfigCommands:
    """Tests for the config command group."""

    def test_show_json_reports_sources(self, monkeypatch):
        """Each setting is attributed to the source that set it."""
        Path("jobtrace.yaml").write_text("trace_prefix: background\nlog_format: json\n")
        Path(".env").write_text("JOBTRACE_DEFAULT_MAX_STACK_FRAMES=7\n")
        monkeypatch.setenv("JOBTRACE_LOG_FORMAT", "text")

        result = runner.invoke(app, ["config", "show", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["settings"]["trace_prefix"] == "background"
        assert data["settings"]["default_max_stack_frames"] == 7
        assert data["settings"]["log_format"] == "text"
        assert "sample_proc" not in data["settings"]
        assert data["sources"]["trace_prefix"] == "jobtrace.yaml"
        assert data["sources"]["default_max_stack_frames"] == ".env"
        assert data["sources"]["log_format"] == "env"
        assert data["sources"]["job_attrs_for_span"] == "default"
        assert data["trace_name_pattern"] == "background/<class>"
        assert data["config_file"] == "jobtrace.yaml"

    def test_unresolved_placeholder_reported_as_default(self):
        Path("jobtrace.yaml").write_text("trace_prefix: ${TRACE_PREFIX}\n")

        data = json.loads(runner.invoke(app, ["config", "show", "--json"]).stdout)

        assert data["settings"]["trace_prefix"] == "jobs"
        assert data["sources"]["trace_prefix"] == "default"

    def test_show_table(self):
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "Root span naming" in result.stdout
        assert "Trace name pattern: jobs/<class>" in result.stdout
        assert "Config file: none" in result.stdout


class TestSimulate:
    """Tests for the simulate command."""

    def test_simulate_with_failures(self):
        result = runner.invoke(
            app, ["simulate", "-n", "4", "-d", "4", "-f", "3", "--fail-every", "2", "-w", "2"]
        )

        assert result.exit_code == 0
        assert "Simulation Summary" in result.stdout
        assert "jobs/default/SyntheticJob" in result.stdout
        assert "spans dropped" in result.stdout


class TestRenderSpanTree:
    """Tests for render_span_tree."""

    def test_structure(self):
        root = Span(span_id="r", trace_id="t", name="jobs/default/MailerJob")
        child = root.start_child("smtp.send")
        child.start_child("dns.lookup").end()
        child.end()
        root.end()

        rendered = render_span_tree(SpanTree(root, dropped_spans=2))

        assert "jobs/default/MailerJob" in str(rendered.label)
        assert "smtp.send" in str(rendered.children[0].label)
        assert "dns.lookup" in str(rendered.children[0].children[0].label)
        assert "2 spans dropped" in str(rendered.children[-1].label)
