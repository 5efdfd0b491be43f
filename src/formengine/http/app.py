"""HTTP application endpoints for the form engine.

The service hosts the server half of the engine:

- ``GET /health``
- ``POST /api/data-sources/proxy``: trusted data-source proxy
- ``POST /api/data-sources/popin-load-proxy``: trusted popin-load proxy
- ``POST /api/rules/context``: rules re-hydration
- ``POST /api/form/validate``: server-side validation of a whole form
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from formengine.config import DEFAULT_SETTINGS, EngineSettings
from formengine.context.extractor import get_discriminant_fields, update_case_context
from formengine.datasources.auth import auth_headers
from formengine.datasources.credentials import CredentialStore
from formengine.datasources.loader import fetch_json
from formengine.datasources.transformer import transform_response
from formengine.descriptor.merge import merge_descriptor_with_rules
from formengine.descriptor.models import DataSourceConfig, GlobalFormDescriptor
from formengine.errors import DataSourceError
from formengine.rules.provider import RulesProvider, RuleTableProvider, validate_case_context
from formengine.templates import evaluate_template
from formengine.validation.form_validator import validate_form_values

__all__ = ["create_app"]

logger = logging.getLogger(__name__)


class BadRequest(Exception):
    """Request body rejected; rendered as a 400 with ``{"error": message}``."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


async def _json_object(request: Request, expected: str) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise BadRequest("Invalid JSON in request body") from exc
    if not isinstance(body, dict):
        raise BadRequest(f"Invalid request body. Expected {expected}.")
    return body


def _require_str(body: Mapping[str, Any], key: str) -> str:
    value = body.get(key)
    if not value or not isinstance(value, str):
        raise BadRequest(f"Invalid request body. {key} is required and must be a string.")
    return value


def _require_object(body: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = body.get(key)
    if not isinstance(value, dict):
        raise BadRequest(f"Invalid request body. {key} is required and must be an object.")
    return value


async def health(request: Request) -> JSONResponse:
    """Health check endpoint.

    Returns:
        JSON response with status "ok" and 200 status code.
    """
    return JSONResponse({"status": "ok"})


def create_app(
    *,
    descriptor: GlobalFormDescriptor | None = None,
    rules_provider: RulesProvider | None = None,
    credentials: CredentialStore | None = None,
    client: httpx.AsyncClient | None = None,
    settings: EngineSettings | None = None,
) -> Starlette:
    """Create and configure the HTTP application.

    Args:
        descriptor: Base descriptor used by ``/api/form/validate``
        rules_provider: Produces rules for ``/api/rules/context``; an empty
            rule table by default
        credentials: Server-side credentials for the proxies; seeded from
            the environment by default
        client: Outbound HTTP client for upstream fetches; one is created
            (and closed) with the application when omitted
        settings: Timeouts for upstream fetches

    Returns:
        Configured Starlette application.
    """
    settings = settings or DEFAULT_SETTINGS
    provider: RulesProvider = rules_provider or RuleTableProvider()
    store = credentials or CredentialStore.from_env()
    state: dict[str, httpx.AsyncClient | None] = {"client": client}

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        if client is not None:
            yield
            return
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(
                settings.timeouts.request_timeout,
                connect=settings.timeouts.connect_timeout,
            )
        ) as owned:
            state["client"] = owned
            yield
            state["client"] = None

    def upstream() -> httpx.AsyncClient:
        current = state["client"]
        if current is None:
            raise RuntimeError("HTTP client is not available outside the app lifespan")
        return current

    async def data_source_proxy(request: Request) -> JSONResponse:
        """Fetch a data source with server-side credentials and transform it."""
        try:
            body = await _json_object(
                request,
                "object with fieldId, dataSourceId, urlTemplate, itemsTemplate, "
                "and formContext",
            )
            data_source_id = _require_str(body, "dataSourceId")
            url_template = _require_str(body, "urlTemplate")
            items_template = _require_str(body, "itemsTemplate")
            form_context = _require_object(body, "formContext")
        except BadRequest as exc:
            return _error(exc.message, exc.status_code)

        auth = store.get(data_source_id)
        if auth is None:
            return _error(
                "Data source configuration is incomplete: credentials not found "
                f'for dataSourceId "{data_source_id}"',
                400,
            )

        iterator = body.get("iteratorTemplate")
        config = DataSourceConfig(
            url=url_template,
            items_template=items_template,
            iterator_template=iterator if isinstance(iterator, str) else None,
        )
        url = evaluate_template(url_template, form_context)
        try:
            data = await fetch_json(
                upstream(), url, auth_headers(auth), settings.timeouts.request_timeout
            )
        except DataSourceError as exc:
            logger.error("Proxy load of %s failed: %s", data_source_id, exc)
            return _error(str(exc), 500)

        items = transform_response(data, config, form_context)
        return JSONResponse({"items": [item.to_json_dict() for item in items]})

    async def popin_load_proxy(request: Request) -> JSONResponse:
        """Fetch a popin pre-fill object with server-side credentials."""
        try:
            body = await _json_object(
                request,
                "object with blockId, dataSourceId, urlTemplate, and formContext",
            )
            data_source_id = _require_str(body, "dataSourceId")
            url_template = _require_str(body, "urlTemplate")
            _require_str(body, "blockId")
            form_context = _require_object(body, "formContext")
        except BadRequest as exc:
            return _error(exc.message, exc.status_code)

        auth = store.get(data_source_id)
        if auth is None:
            return _error(f"No credentials found for dataSourceId: {data_source_id}", 404)

        evaluated = body.get("evaluatedUrl")
        url = (
            evaluated
            if isinstance(evaluated, str) and evaluated
            else evaluate_template(url_template, form_context)
        )
        try:
            data = await fetch_json(
                upstream(),
                url,
                auth_headers(auth),
                settings.timeouts.request_timeout,
                failure="Failed to load popin data",
            )
        except DataSourceError as exc:
            logger.error("Popin load of %s failed: %s", data_source_id, exc)
            return _error(str(exc), 500)

        if isinstance(data, list):
            return _error("Popin load response must be an object, not an array", 500)
        if not isinstance(data, dict):
            return _error("Popin load response must be an object", 500)
        return JSONResponse(data)

    async def rules_context(request: Request) -> JSONResponse:
        """Return the RulesObject for a CaseContext."""
        try:
            context = await _json_object(request, "CaseContext object")
        except BadRequest as exc:
            return _error(exc.message, exc.status_code)

        errors = validate_case_context(context)
        if errors:
            return _error(
                "Validation failed", 400, errors=[error.to_dict() for error in errors]
            )

        rules = provider.rules_for(context)
        return JSONResponse(rules.to_json_dict())

    async def validate_form(request: Request) -> JSONResponse:
        """Validate form values against the descriptor merged with current rules."""
        try:
            body = await _json_object(request, "object with caseId and formValues")
            case_id = _require_str(body, "caseId")
            form_values = _require_object(body, "formValues")
        except BadRequest as exc:
            return _error(exc.message, exc.status_code)

        if descriptor is None:
            return _error("No form descriptor configured", 500)

        context = update_case_context({}, form_values, get_discriminant_fields(descriptor))
        merged = merge_descriptor_with_rules(descriptor, provider.rules_for(context))
        errors = await validate_form_values(merged, form_values, context=context)
        logger.info("Validated case %s: %d error(s)", case_id, len(errors))
        return JSONResponse({"errors": [error.to_dict() for error in errors]})

    return Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/api/data-sources/proxy", data_source_proxy, methods=["POST"]),
            Route(
                "/api/data-sources/popin-load-proxy", popin_load_proxy, methods=["POST"]
            ),
            Route("/api/rules/context", rules_context, methods=["POST"]),
            Route("/api/form/validate", validate_form, methods=["POST"]),
        ],
        lifespan=lifespan,
    )
