"""Load field options from remote data sources.

``DataSourceLoader.load`` evaluates the URL template, consults the response
cache, and on a miss fetches either through the trusted proxy (when the
configuration carries a ``dataSourceId``) or directly with the inline
credentials. Concurrent loads of the same cache key share one request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from formengine.config import DEFAULT_SETTINGS, EngineSettings
from formengine.datasources.auth import auth_cache_key, auth_headers
from formengine.datasources.cache import ResponseCache
from formengine.datasources.proxy import DataSourceProxyClient
from formengine.datasources.transformer import transform_response
from formengine.descriptor.models import DataSourceConfig, FieldItem
from formengine.errors import DataSourceConfigError, DataSourceError
from formengine.templates import evaluate_template

__all__ = ["DataSourceLoader", "data_source_cache_key", "fetch_json"]

logger = logging.getLogger(__name__)


def data_source_cache_key(url: str, config: DataSourceConfig) -> str:
    """Cache key for an evaluated URL and the config's credentials.

    >>> from formengine.descriptor.models import DataSourceConfig
    >>> data_source_cache_key("/api/states", DataSourceConfig(url="", items_template=""))
    '/api/states::no-auth'
    """
    key = f"{url}::{auth_cache_key(config.auth)}"
    if config.data_source_id:
        key += f"::proxy:{config.data_source_id}"
    return key


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    headers: Mapping[str, str],
    timeout: float,
    failure: str = "Failed to load data source",
) -> Any:
    """GET ``url`` and decode its JSON body.

    Raises:
        DataSourceError: On transport failure, a non-2xx status or a body
            that is not JSON
    """
    try:
        response = await client.get(url, headers=dict(headers), timeout=timeout)
    except httpx.HTTPError as exc:
        raise DataSourceError(f"{failure}: {exc}", reason=type(exc).__name__) from exc

    if not response.is_success:
        raise DataSourceError(
            f"{failure}: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            reason=response.reason_phrase,
        )
    try:
        return response.json()
    except ValueError as exc:
        raise DataSourceError(
            f"{failure}: response is not valid JSON",
            status_code=response.status_code,
            reason="invalid body",
        ) from exc


class DataSourceLoader:
    """Loads and caches the items of dynamic dropdowns and autocompletes.

    Args:
        client: HTTP client used for direct fetches and proxy calls
        settings: Endpoints, timeouts and the require-proxy policy
        cache: Response cache; a private one is created if omitted
        proxy: Proxy client; built from ``client`` and ``settings`` if omitted
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: EngineSettings | None = None,
        cache: ResponseCache[list[FieldItem]] | None = None,
        proxy: DataSourceProxyClient | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or DEFAULT_SETTINGS
        self.cache: ResponseCache[list[FieldItem]] = (
            cache if cache is not None else ResponseCache()
        )
        self.proxy = proxy or DataSourceProxyClient(client, self.settings)
        self._in_flight: dict[str, asyncio.Task[list[FieldItem]]] = {}

    async def load(
        self,
        config: DataSourceConfig,
        context: Mapping[str, Any],
        field_id: str | None = None,
    ) -> list[FieldItem]:
        """Return the items of ``config`` for ``context``.

        Raises:
            DataSourceConfigError: The proxy is required but ``config`` has
                no dataSourceId
            DataSourceError: The upstream or proxy request failed
        """
        if self.settings.require_proxy and not config.data_source_id:
            raise DataSourceConfigError(
                "Data source configuration is incomplete: dataSourceId is required "
                f'for field "{field_id or ""}"'
            )

        url = evaluate_template(config.url, context)
        key = data_source_cache_key(url, config)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key, url, config, context, field_id))
            self._in_flight[key] = task
            task.add_done_callback(lambda _: self._in_flight.pop(key, None))
        else:
            logger.debug("Joining in-flight load for %s", key)

        items = await asyncio.shield(task)
        return list(items)

    async def _fetch(
        self,
        key: str,
        url: str,
        config: DataSourceConfig,
        context: Mapping[str, Any],
        field_id: str | None,
    ) -> list[FieldItem]:
        if config.data_source_id:
            items = await self.proxy.load_items(field_id or "", config, context)
        else:
            logger.debug("Direct load %s", url)
            body = await fetch_json(
                self.client,
                url,
                auth_headers(config.auth),
                self.settings.timeouts.request_timeout,
            )
            items = transform_response(body, config, context)
        self.cache.set(key, items)
        logger.info("Loaded %d item(s) for %s", len(items), field_id or url)
        return items

    def clear_cache(self) -> None:
        self.cache.clear()
