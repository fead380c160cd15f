"""Tests for the salesqueue CLI.

Commands run against the offline demo account (`--demo`) or fail before
any network access.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from salesqueue.cli import app

QUIET_ENV = {"SALES_QUEUE_LOG_LEVEL": "WARNING"}


@pytest.fixture
def runner() -> CliRunner:
    """Provide a CLI test runner."""
    return CliRunner()


def invoke(runner, args, env=None, input=None):
    with patch.dict(os.environ, {**QUIET_ENV, **(env or {})}, clear=True):
        return runner.invoke(app, args, input=input)


class TestDigestCommand:
    """`salesqueue digest`."""

    def test_demo_json(self, runner):
        result = invoke(runner, ["digest", "--demo"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["generated_at"] == "2026-02-16T09:00:00+01:00"
        assert data["stats"] == {"overdue_count": 1, "due_today_count": 1, "missing_next_action_count": 1}
        assert data["sections"]["overdue"][0]["person"]["email"] == "maria@example.com"

    def test_demo_markdown(self, runner):
        result = invoke(runner, ["digest", "--demo", "--format", "markdown"])
        assert result.exit_code == 0, result.output
        assert "## Missing next action" in result.stdout

    def test_demo_without_people_orgs(self, runner):
        result = invoke(runner, ["digest", "--demo", "--no-people-orgs", "--timezone", "UTC"])
        data = json.loads(result.stdout)
        assert data["timezone"] == "UTC"
        assert "email" not in data["sections"]["overdue"][0]["person"]

    def test_demo_filter_by_name_and_limit(self, runner):
        result = invoke(
            runner,
            ["digest", "--demo", "--overdue-filter", "Overdue activities", "--max-results", "0", "--overdue-limit", "5"],
        )
        data = json.loads(result.stdout)
        assert data["stats"]["overdue_count"] == 1
        assert data["stats"]["due_today_count"] == 0

    def test_missing_filters(self, runner):
        result = invoke(runner, ["digest"], env={"PIPEDRIVE_API_TOKEN": "t"})
        assert result.exit_code == 1
        assert "❌ Error: Missing filter configuration" in result.output
        assert "PIPEDRIVE_OVERDUE_FILTER_ID" in result.output

    def test_missing_token(self, runner):
        result = invoke(
            runner,
            ["digest", "--overdue-filter", "1", "--today-filter", "2", "--missing-filter", "3"],
        )
        assert result.exit_code == 1
        assert "PIPEDRIVE_API_TOKEN is not set" in result.output

    def test_unknown_format(self, runner):
        result = invoke(runner, ["digest", "--demo", "--format", "xml"])
        assert result.exit_code == 1
        assert "unknown format 'xml'" in result.output

    def test_bad_now(self, runner):
        result = invoke(runner, ["digest", "--demo", "--now", "yesterday"])
        assert result.exit_code == 2

    def test_unknown_timezone(self, runner):
        result = invoke(runner, ["digest", "--demo", "--timezone", "Nowhere/Land"])
        assert result.exit_code == 1
        assert "Unknown timezone 'Nowhere/Land'" in result.output


class TestFiltersCommands:
    """`salesqueue filters ...`."""

    def test_list(self, runner):
        result = invoke(runner, ["filters", "--demo", "list", "--type", "activity"])
        assert result.exit_code == 0, result.output
        assert "Filters (2)" in result.output
        assert "Overdue activities (id=101, type=activity)" in result.output

    def test_resolve(self, runner):
        result = invoke(runner, ["filters", "--demo", "resolve", "deals without next activity", "--type", "deals"])
        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "103"

    def test_resolve_unknown(self, runner):
        result = invoke(runner, ["filters", "--demo", "resolve", "Nope"])
        assert result.exit_code == 1
        assert "No filter named 'Nope' found" in result.output

    def test_fields(self, runner):
        result = invoke(runner, ["filters", "--demo", "fields", "deals"])
        assert result.exit_code == 0, result.output
        assert "12\tstage_id\tStage" in result.output

    def test_create_from_file(self, runner, tmp_path: Path):
        conditions = tmp_path / "conditions.json"
        conditions.write_text(json.dumps([{"field_id": "status", "operator": "=", "value": "open"}]))

        result = invoke(runner, ["filters", "--demo", "create", "Open deals", "--conditions", str(conditions)])
        assert result.exit_code == 0, result.output
        assert "✅ Created filter Open deals (id=104, type=deals)" in result.output

    def test_create_from_stdin(self, runner):
        tree = json.dumps({"glue": "and", "conditions": [{"field_id": "due_date", "operator": "<", "value": "today"}]})
        result = invoke(
            runner,
            ["filters", "--demo", "create", "Late", "--type", "activity", "--conditions", "-"],
            input=tree,
        )
        assert result.exit_code == 0, result.output
        assert "type=activity" in result.output

    def test_create_unknown_field(self, runner):
        result = invoke(
            runner,
            ["filters", "--demo", "create", "Bad", "-c", "-"],
            input='[{"field_id": "probability", "operator": ">"}]',
        )
        assert result.exit_code == 1
        assert "Unknown field 'probability' for object type 'deal'" in result.output

    def test_create_invalid_json(self, runner):
        result = invoke(runner, ["filters", "--demo", "create", "Bad", "-c", "-"], input="{not json")
        assert result.exit_code == 1
        assert "Cannot read conditions" in result.output


class TestServeCommand:
    """`salesqueue serve`."""

    def test_requires_token(self, runner):
        result = invoke(runner, ["serve"])
        assert result.exit_code == 1
        assert "PIPEDRIVE_API_TOKEN" in result.output

    def test_runs_server(self, runner):
        with patch("salesqueue.server.run") as run:
            result = invoke(runner, ["serve", "--demo"])
        assert result.exit_code == 0, result.output
        service, cfg = run.call_args.args
        assert cfg.require_filter_ids() == {"overdue": "101", "today": "102", "missing": "103"}
