"""Client side of the trusted data-source proxy.

Proxied data sources carry a ``dataSourceId`` instead of credentials; the
proxy looks the credentials up server-side, fetches the upstream URL and
returns transformed items (or, for popins, the raw object).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from formengine.config import DEFAULT_SETTINGS, EngineSettings
from formengine.descriptor.models import DataSourceConfig, FieldItem, PopinLoadConfig
from formengine.errors import DataSourceConfigError, DataSourceError
from formengine.templates import evaluate_template

__all__ = ["DataSourceProxyClient"]

logger = logging.getLogger(__name__)

_ITEMS = TypeAdapter(list[FieldItem])


async def _post(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    timeout: float,
    failure: str,
) -> Any:
    try:
        response = await client.post(url, json=payload, timeout=timeout)
    except httpx.HTTPError as exc:
        raise DataSourceError(f"{failure}: {exc}", reason=type(exc).__name__) from exc

    if not response.is_success:
        message = f"{failure}: {response.status_code} {response.reason_phrase}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, Mapping) and body.get("error"):
            message = str(body["error"])
        raise DataSourceError(
            message, status_code=response.status_code, reason=response.reason_phrase
        )

    try:
        return response.json()
    except ValueError as exc:
        raise DataSourceError(
            f"{failure}: response is not valid JSON",
            status_code=response.status_code,
            reason="invalid body",
        ) from exc


class DataSourceProxyClient:
    """Loads data sources and popin data through the trusted proxy endpoints."""

    def __init__(
        self, client: httpx.AsyncClient, settings: EngineSettings | None = None
    ) -> None:
        self.client = client
        self.settings = settings or DEFAULT_SETTINGS

    async def load_items(
        self,
        field_id: str,
        config: DataSourceConfig,
        form_context: Mapping[str, Any],
    ) -> list[FieldItem]:
        """POST ``{fieldId, dataSourceId, urlTemplate, itemsTemplate, formContext}``.

        Raises:
            DataSourceConfigError: ``config`` has no dataSourceId
            DataSourceError: The proxy failed or returned malformed items
        """
        if not config.data_source_id:
            raise DataSourceConfigError(
                "Data source configuration is incomplete: dataSourceId is required "
                f'for field "{field_id}"'
            )
        payload: dict[str, Any] = {
            "fieldId": field_id,
            "dataSourceId": config.data_source_id,
            "urlTemplate": config.url,
            "itemsTemplate": config.items_template,
            "formContext": dict(form_context),
        }
        if config.iterator_template:
            payload["iteratorTemplate"] = config.iterator_template

        logger.debug("Proxy load %s for field %s", config.data_source_id, field_id)
        body = await _post(
            self.client,
            self.settings.proxy_url,
            payload,
            self.settings.timeouts.request_timeout,
            "Failed to load data source",
        )
        if not isinstance(body, Mapping) or "items" not in body:
            raise DataSourceError("Proxy response is missing items", reason="invalid body")
        try:
            return _ITEMS.validate_python(body["items"])
        except ValidationError as exc:
            raise DataSourceError(
                f"Proxy returned malformed items: {exc}", reason="invalid body"
            ) from exc

    async def load_popin(
        self,
        block_id: str,
        config: PopinLoadConfig,
        form_context: Mapping[str, Any],
    ) -> dict[str, Any]:
        """POST ``{blockId, dataSourceId, urlTemplate, evaluatedUrl, formContext}``.

        Raises:
            DataSourceConfigError: ``config`` has no dataSourceId
            DataSourceError: The proxy failed or did not return an object
        """
        if not config.data_source_id:
            raise DataSourceConfigError(
                "Popin load configuration is incomplete: dataSourceId is required "
                f'for block "{block_id}"'
            )
        payload = {
            "blockId": block_id,
            "dataSourceId": config.data_source_id,
            "urlTemplate": config.url,
            "evaluatedUrl": evaluate_template(config.url, form_context),
            "formContext": dict(form_context),
        }
        body = await _post(
            self.client,
            self.settings.popin_proxy_url,
            payload,
            self.settings.timeouts.request_timeout,
            "Failed to load popin data",
        )
        if not isinstance(body, dict):
            raise DataSourceError("Popin load response must be an object", reason="invalid body")
        return body
