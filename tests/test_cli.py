import json

import pytest
from typer.testing import CliRunner

from catrep.cli.cli import app
from catrep.core.models import Database
from fakes import SOURCE, TARGET, make_context, sqs_event

runner = CliRunner()


@pytest.fixture
def fake_ctx(monkeypatch):
    fake = make_context()
    monkeypatch.setattr(
        "catrep.cli.common.context.build_context", lambda config, profile=None: fake
    )
    return fake


def test_config_shows_effective_configuration(monkeypatch):
    monkeypatch.setenv("source_glue_catalog_id", "123456789012")

    result = runner.invoke(app, ["--region", "eu-west-1", "config"])

    assert result.exit_code == 0, result.output
    assert "eu-west-1" in result.output
    assert "123456789012" in result.output


def test_plan_dry_run_lists_databases_without_publishing(fake_ctx):
    fake_ctx.catalog.add_database(SOURCE, "sales_eu")
    fake_ctx.catalog.add_database(SOURCE, "hr")

    result = runner.invoke(app, ["plan", "--dry-run", "--prefix", "sales"])

    assert result.exit_code == 0, result.output
    assert "sales_eu" in result.output
    assert fake_ctx.messaging.published == []


def test_plan_publishes(fake_ctx):
    fake_ctx.catalog.add_database(SOURCE, "sales_eu")

    result = runner.invoke(app, ["plan"])

    assert result.exit_code == 0, result.output
    assert len(fake_ctx.messaging.published) == 1


def test_invoke_runs_stage_against_event_file(fake_ctx, tmp_path):
    event = tmp_path / "event.json"
    event.write_text(json.dumps(sqs_event(("database", Database(name="sales").to_json()))))

    result = runner.invoke(app, ["invoke", "import", str(event)])

    assert result.exit_code == 0, result.output
    assert fake_ctx.catalog.get_database(TARGET, "sales").name == "sales"


def test_invoke_rejects_unknown_stage(fake_ctx, tmp_path):
    event = tmp_path / "event.json"
    event.write_text("{}")

    result = runner.invoke(app, ["invoke", "replicate", str(event)])

    assert result.exit_code == 2


def test_invoke_rejects_malformed_event(fake_ctx, tmp_path):
    event = tmp_path / "event.json"
    event.write_text("not json")

    result = runner.invoke(app, ["invoke", "export", str(event)])

    assert result.exit_code == 2
