"""Tests for CLI module.

Tests are organized into groups:
1. Pure function tests (resolve_settings, setup_logging), no Typer
2. Typer CLI tests (--version, resolve, merge, evaluate, validate, serve), using CliRunner
"""

import json
import logging
from logging.handlers import RotatingFileHandler

import pytest
from typer.testing import CliRunner

from formengine.cli import app, resolve_settings, setup_logging
from formengine.http import HttpAppFactory, create_app

runner = CliRunner()

DESCRIPTOR = {
    "id": "onboarding",
    "blocks": [
        {
            "id": "address-template",
            "title": "Address",
            "fields": [{"id": "city", "type": "text", "label": "City"}],
        },
        {
            "id": "addresses-block",
            "title": "Addresses",
            "repeatable": True,
            "repeatableBlockRef": "address-template",
        },
        {
            "id": "contact",
            "title": "Contact",
            "fields": [
                {
                    "id": "phone",
                    "type": "text",
                    "label": "Phone",
                    "validation": [{"type": "required", "message": "Phone is required"}],
                }
            ],
        },
    ],
    "submission": {"url": "https://backend.test/submit", "method": "POST"},
}

PHONE_RULES = {
    "fields": [
        {
            "id": "phone",
            "validation": [
                {"type": "pattern", "value": r"^\(\d{3}\) \d{3}-\d{4}$", "message": "Invalid phone"}
            ],
        }
    ]
}


@pytest.fixture(autouse=True)
def clean_root_logger():
    """Remove all handlers from root logger after test.

    setup_logging() modifies global state (root logger). This fixture ensures
    tests don't leak handlers between test runs.
    """
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


@pytest.fixture
def write_json(tmp_path):
    """Write a JSON document to tmp_path and return its path."""

    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return path

    return _write


# === Pure function tests: resolve_settings() ===


def test_resolve_settings_flag_takes_priority(monkeypatch):
    """CLI flag overrides FORMENGINE_REQUEST_TIMEOUT."""
    monkeypatch.setenv("FORMENGINE_REQUEST_TIMEOUT", "30")
    assert resolve_settings(2.5).timeouts.request_timeout == 2.5


def test_resolve_settings_env_var_fallback(monkeypatch):
    """Env var used when no flag provided."""
    monkeypatch.setenv("FORMENGINE_REQUEST_TIMEOUT", "30")
    monkeypatch.setenv("FORMENGINE_RULES_URL", "/v2/rules")
    settings = resolve_settings(None)
    assert settings.timeouts.request_timeout == 30.0
    assert settings.rules_url == "/v2/rules"


def test_resolve_settings_default(monkeypatch):
    """Defaults apply when nothing is set."""
    monkeypatch.delenv("FORMENGINE_REQUEST_TIMEOUT", raising=False)
    assert resolve_settings(None).timeouts.request_timeout == 10.0


# === Pure function tests: setup_logging() ===


def test_setup_logging_creates_directory(tmp_path):
    """setup_logging() creates log directory if missing."""
    log_dir = tmp_path / "logs"
    setup_logging(log_dir, "info")
    assert log_dir.exists()
    assert (log_dir / "formengine.log").exists()


def test_setup_logging_configures_handlers(tmp_path):
    """Root logger gets a RotatingFileHandler and a critical-only stderr handler."""
    setup_logging(tmp_path / "logs", "debug")

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == 10 * 1024 * 1024
    stream_handlers = [h for h in root.handlers if not isinstance(h, RotatingFileHandler)]
    assert [h.level for h in stream_handlers] == [logging.CRITICAL]


def test_setup_logging_clears_existing_handlers(tmp_path):
    """Calling setup_logging twice does not duplicate handlers."""
    setup_logging(tmp_path / "logs", "info")
    setup_logging(tmp_path / "logs", "info")
    assert len(logging.getLogger().handlers) == 2


# === Typer CLI tests ===


def test_cli_version():
    """--version prints version and exits."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "formengine 0.1.0" in result.stdout


def test_cli_without_command_prints_help():
    result = runner.invoke(app, [])
    assert result.exit_code == 0
    assert "resolve" in result.stdout
    assert "validate" in result.stdout


def test_cli_resolve(write_json):
    """resolve prints the descriptor with repeatable references expanded."""
    path = write_json("descriptor.json", DESCRIPTOR)
    result = runner.invoke(app, ["resolve", str(path)])
    assert result.exit_code == 0
    resolved = json.loads(result.stdout)
    fields = resolved["blocks"][1]["fields"]
    assert fields[0]["id"] == "addresses.city"
    assert fields[0]["repeatableGroupId"] == "addresses"
    assert "repeatableBlockRef" not in resolved["blocks"][1]


def test_cli_resolve_with_sub_forms(write_json):
    """Sub-forms given as an object keyed by id are composed first."""
    descriptor = {
        "blocks": [{"id": "addr", "title": "Address", "subFormRef": "address"}],
        "submission": {"url": "/submit", "method": "POST"},
    }
    sub_forms = {
        "address": {
            "id": "address",
            "title": "Address",
            "version": "1.0.0",
            "blocks": [{"id": "main", "title": "Main"}],
        }
    }
    result = runner.invoke(
        app,
        [
            "resolve",
            str(write_json("d.json", descriptor)),
            "--sub-forms",
            str(write_json("s.json", sub_forms)),
        ],
    )
    assert result.exit_code == 0
    assert [block["id"] for block in json.loads(result.stdout)["blocks"]] == ["address_main"]


def test_cli_resolve_reports_cycles(write_json):
    """Resolution errors exit 1 with a message on stderr."""
    descriptor = {
        "blocks": [{"id": "loop", "title": "L", "repeatable": True, "repeatableBlockRef": "loop"}],
        "submission": {"url": "/submit", "method": "POST"},
    }
    result = runner.invoke(app, ["resolve", str(write_json("d.json", descriptor))])
    assert result.exit_code == 1
    assert "references itself" in result.stderr


def test_cli_missing_file(tmp_path):
    result = runner.invoke(app, ["resolve", str(tmp_path / "missing.json")])
    assert result.exit_code == 1
    assert "Error: cannot read" in result.stderr


def test_cli_invalid_descriptor(write_json):
    result = runner.invoke(app, ["resolve", str(write_json("d.json", {"blocks": []}))])
    assert result.exit_code == 1
    assert "is not a valid form descriptor" in result.stderr


def test_cli_merge(write_json):
    """merge appends the rules' validation to the descriptor."""
    result = runner.invoke(
        app,
        [
            "merge",
            str(write_json("d.json", DESCRIPTOR)),
            str(write_json("r.json", PHONE_RULES)),
        ],
    )
    assert result.exit_code == 0
    merged = json.loads(result.stdout)
    phone = merged["blocks"][2]["fields"][0]
    assert [rule["type"] for rule in phone["validation"]] == ["required", "pattern"]


def test_cli_evaluate(write_json):
    context = write_json("ctx.json", {"person": {"name": "Ada"}})
    result = runner.invoke(app, ["evaluate", "Hello {{person.name}}", "--context", str(context)])
    assert result.exit_code == 0
    assert result.stdout == "Hello Ada\n"


def test_cli_evaluate_rejects_non_object_context(write_json):
    result = runner.invoke(
        app, ["evaluate", "{{a}}", "--context", str(write_json("ctx.json", [1]))]
    )
    assert result.exit_code == 1
    assert "must be a JSON object" in result.stderr


def test_cli_validate_reports_errors(write_json):
    """validate exits 1 and prints the errors when values are invalid."""
    result = runner.invoke(
        app,
        [
            "validate",
            str(write_json("d.json", DESCRIPTOR)),
            str(write_json("v.json", {"phone": "123"})),
            "--rules",
            str(write_json("r.json", PHONE_RULES)),
        ],
    )
    assert result.exit_code == 1
    assert json.loads(result.stdout) == {
        "errors": [{"field": "phone", "message": "Invalid phone"}]
    }


def test_cli_validate_success(write_json):
    result = runner.invoke(
        app,
        [
            "validate",
            str(write_json("d.json", DESCRIPTOR)),
            str(write_json("v.json", {"phone": "(123) 456-7890"})),
        ],
    )
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"errors": []}


def test_cli_serve_starts_http(monkeypatch, tmp_path, write_json):
    """serve hands the app factory and its collaborators to run_http."""
    captured = {}

    async def fake_run_http(factory, **kwargs):
        captured.update(factory=factory, **kwargs)

    monkeypatch.setattr("formengine.cli.run_http", fake_run_http)
    monkeypatch.setenv("FORMENGINE_REQUEST_TIMEOUT", "4")
    rules_table = write_json("table.json", [{"when": "true", "rules": PHONE_RULES}])
    result = runner.invoke(
        app,
        [
            "serve",
            "--port",
            "9000",
            "--descriptor",
            str(write_json("d.json", DESCRIPTOR)),
            "--rules-table",
            str(rules_table),
            "--log-dir",
            str(tmp_path / "logs"),
        ],
    )
    assert result.exit_code == 0
    assert "Starting formengine service" in result.stdout
    assert "Rule table: 1 entries" in result.stdout
    assert captured["factory"] is create_app
    assert isinstance(captured["factory"], HttpAppFactory)
    assert len(captured["rules_provider"].entries) == 1
    assert captured["descriptor"].field_by_id("phone") is not None
    assert captured["settings"].timeouts.request_timeout == 4.0
    assert captured["host"] == "127.0.0.1"
    assert captured["port"] == 9000
    assert captured["log_level"] == "info"
    assert (tmp_path / "logs" / "formengine.log").exists()


def test_cli_serve_rejects_invalid_rule_table(monkeypatch, tmp_path, write_json):
    async def fake_run_http(factory, **kwargs):
        raise AssertionError("server must not start")

    monkeypatch.setattr("formengine.cli.run_http", fake_run_http)
    rules_table = write_json("table.json", [{"when": "true", "rules": {"fields": "nope"}}])
    result = runner.invoke(
        app, ["serve", "--rules-table", str(rules_table), "--log-dir", str(tmp_path / "logs")]
    )
    assert result.exit_code == 1
    assert "is not a valid rule table" in result.stderr
