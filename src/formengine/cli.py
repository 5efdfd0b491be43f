"""Typer-based CLI for the form engine.

JSON results go to stdout; errors go to stderr with exit code 1. The
``serve`` command logs to files (~/.formengine/logs/formengine.log).
"""

import asyncio
import dataclasses
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from formengine import __version__
from formengine.config import EngineSettings
from formengine.descriptor.merge import merge_descriptor_with_rules
from formengine.descriptor.models import GlobalFormDescriptor, RulesObject, SubFormDescriptor
from formengine.descriptor.repeatable import resolve_repeatable_blocks
from formengine.descriptor.subforms import resolve_sub_forms
from formengine.errors import FormEngineError
from formengine.http.app import create_app
from formengine.http.runner import run_http
from formengine.http.types import Host, HttpAppFactory, Port
from formengine.rules.provider import RuleTableProvider
from formengine.templates import evaluate_template
from formengine.validation.form_validator import validate_form_values

app = typer.Typer(
    name="formengine",
    help="Dynamic form descriptor engine: resolve, merge, evaluate and validate form descriptors",
    add_completion=False,
)

logger = logging.getLogger(__name__)


def setup_logging(log_dir: Path, log_level: str) -> None:
    """Configure file logging with RotatingFileHandler.

    Args:
        log_dir: Directory for log files (created if missing)
        log_level: Logging level (info, debug, warning, error, critical)
    """
    log_dir = log_dir.expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level.upper())

    # Clear existing handlers to prevent duplicates
    root_logger.handlers.clear()

    # File handler with rotation (10MB max, 3 backups)
    file_handler = RotatingFileHandler(
        log_dir / "formengine.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=3,
    )
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        ),
    )
    root_logger.addHandler(file_handler)

    # Stderr handler for critical errors only (stdout carries JSON output)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.CRITICAL)
    stderr_handler.setFormatter(
        logging.Formatter("%(levelname)s: %(message)s"),
    )
    root_logger.addHandler(stderr_handler)


def resolve_settings(request_timeout: float | None) -> EngineSettings:
    """Build settings from the environment, then apply CLI flags.

    Priority: CLI flag > FORMENGINE_* env vars > defaults.
    """
    settings = EngineSettings.from_env()
    if request_timeout is not None:
        timeouts = dataclasses.replace(settings.timeouts, request_timeout=request_timeout)
        settings = dataclasses.replace(settings, timeouts=timeouts)
    return settings


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise _fail(f"cannot read {path}: {exc.strerror}") from exc
    except ValueError as exc:
        raise _fail(f"{path} is not valid JSON: {exc}") from exc


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


def load_descriptor(path: Path) -> GlobalFormDescriptor:
    try:
        return GlobalFormDescriptor.model_validate(_read_json(path))
    except ValidationError as exc:
        raise _fail(f"{path} is not a valid form descriptor:\n{exc}") from exc


def load_sub_forms(path: Path) -> dict[str, SubFormDescriptor]:
    """Load sub-forms from a JSON list, or an object keyed by sub-form id."""
    data = _read_json(path)
    entries = data.values() if isinstance(data, dict) else data
    try:
        sub_forms = [SubFormDescriptor.model_validate(entry) for entry in entries]
    except ValidationError as exc:
        raise _fail(f"{path} contains an invalid sub-form:\n{exc}") from exc
    return {sub_form.id: sub_form for sub_form in sub_forms}


def load_rules(path: Path) -> RulesObject:
    try:
        return RulesObject.model_validate(_read_json(path))
    except ValidationError as exc:
        raise _fail(f"{path} is not a valid rules document:\n{exc}") from exc


def resolve_descriptor(
    descriptor: GlobalFormDescriptor, sub_forms: dict[str, SubFormDescriptor] | None = None
) -> GlobalFormDescriptor:
    """Compose sub-forms, then resolve repeatable block references."""
    try:
        if sub_forms is not None:
            descriptor = resolve_sub_forms(descriptor, sub_forms)
        return resolve_repeatable_blocks(descriptor)
    except FormEngineError as exc:
        raise _fail(str(exc)) from exc


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        help="Print version and exit",
    ),
) -> None:
    """Dynamic form descriptor engine."""
    if version:
        typer.echo(f"formengine {__version__}")
        raise typer.Exit(0)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


@app.command()
def resolve(
    descriptor: Path = typer.Argument(..., help="Global form descriptor (JSON)"),
    sub_forms: Path | None = typer.Option(
        None,
        "--sub-forms",
        help="Sub-form descriptors (JSON list or object keyed by id)",
    ),
) -> None:
    """Resolve sub-forms and repeatable block references."""
    loaded = load_descriptor(descriptor)
    fragments = load_sub_forms(sub_forms) if sub_forms is not None else None
    _echo_json(resolve_descriptor(loaded, fragments).to_json_dict())


@app.command()
def merge(
    descriptor: Path = typer.Argument(..., help="Global form descriptor (JSON)"),
    rules: Path = typer.Argument(..., help="Rules object (JSON)"),
) -> None:
    """Merge a rules object into a descriptor."""
    merged = merge_descriptor_with_rules(load_descriptor(descriptor), load_rules(rules))
    _echo_json(merged.to_json_dict())


@app.command()
def evaluate(
    template: str = typer.Argument(..., help="Template to evaluate"),
    context: Path | None = typer.Option(
        None,
        "--context",
        help="Form context (JSON object)",
    ),
) -> None:
    """Evaluate a template against a form context."""
    form_context = _read_json(context) if context is not None else {}
    if not isinstance(form_context, dict):
        raise _fail("the form context must be a JSON object")
    typer.echo(evaluate_template(template, form_context))


@app.command()
def validate(
    descriptor: Path = typer.Argument(..., help="Global form descriptor (JSON)"),
    values: Path = typer.Argument(..., help="Form values (JSON object keyed by field id)"),
    rules: Path | None = typer.Option(
        None,
        "--rules",
        help="Rules object merged into the descriptor before validating",
    ),
) -> None:
    """Validate form values; exits 1 when any field is invalid."""
    loaded = resolve_descriptor(load_descriptor(descriptor))
    if rules is not None:
        loaded = merge_descriptor_with_rules(loaded, load_rules(rules))
    form_values = _read_json(values)
    if not isinstance(form_values, dict):
        raise _fail("form values must be a JSON object")

    errors = asyncio.run(validate_form_values(loaded, form_values))
    _echo_json({"errors": [error.to_dict() for error in errors]})
    if errors:
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option(
        "127.0.0.1",
        "--host",
        help="HTTP server bind address",
    ),
    port: int = typer.Option(
        8000,
        "--port",
        help="HTTP server port",
    ),
    descriptor: Path | None = typer.Option(
        None,
        "--descriptor",
        help="Global form descriptor served to /api/form/validate",
    ),
    rules_table: Path | None = typer.Option(
        None,
        "--rules-table",
        help='Rule table (JSON list of {"when": template, "rules": RulesObject})',
    ),
    request_timeout: float | None = typer.Option(
        None,
        "--request-timeout",
        help="Upstream fetch timeout in seconds (overrides FORMENGINE_REQUEST_TIMEOUT)",
    ),
    log_dir: Path = typer.Option(
        Path("~/.formengine/logs"),
        "--log-dir",
        help="Directory for log files",
    ),
    log_level: str = typer.Option(
        "info",
        "--log-level",
        help="Logging level (debug, info, warning, error, critical)",
    ),
) -> None:
    """Run the HTTP service.

    Endpoints: /health, /api/data-sources/proxy,
    /api/data-sources/popin-load-proxy, /api/rules/context, /api/form/validate
    """
    setup_logging(log_dir, log_level)

    loaded = resolve_descriptor(load_descriptor(descriptor)) if descriptor else None
    if rules_table is not None:
        try:
            provider = RuleTableProvider.from_json(_read_json(rules_table))
        except (ValidationError, AttributeError, TypeError) as exc:
            raise _fail(f"{rules_table} is not a valid rule table: {exc}") from exc
    else:
        provider = RuleTableProvider()

    factory: HttpAppFactory = create_app
    typer.echo("Starting formengine service")
    typer.echo(f"  HTTP: http://{host}:{port}")
    typer.echo(f"  Rule table: {len(provider.entries)} entries")
    typer.echo(f"  Logs: {log_dir.expanduser() / 'formengine.log'}")

    asyncio.run(
        run_http(
            factory,
            descriptor=loaded,
            rules_provider=provider,
            settings=resolve_settings(request_timeout),
            host=Host(host),
            port=Port(port),
            log_level=log_level,
        )
    )
