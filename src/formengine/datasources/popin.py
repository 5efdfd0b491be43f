"""Load the object a popin is pre-filled with when it opens."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from formengine.config import DEFAULT_SETTINGS, EngineSettings
from formengine.datasources.auth import auth_cache_key, auth_headers
from formengine.datasources.cache import ResponseCache
from formengine.datasources.loader import fetch_json
from formengine.datasources.proxy import DataSourceProxyClient
from formengine.descriptor.models import PopinLoadConfig
from formengine.errors import DataSourceError
from formengine.templates import evaluate_template

__all__ = ["PopinLoader", "popin_cache_key"]

logger = logging.getLogger(__name__)


def popin_cache_key(block_id: str, url: str, config: PopinLoadConfig) -> str:
    if config.data_source_id:
        credentials = f"proxy:{config.data_source_id}"
    else:
        credentials = auth_cache_key(config.auth)
    return f"{block_id}:{url}:{credentials}"


class PopinLoader:
    """Fetches and caches popin pre-fill data, per block, URL and credentials."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: EngineSettings | None = None,
        cache: ResponseCache[dict[str, Any]] | None = None,
        proxy: DataSourceProxyClient | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or DEFAULT_SETTINGS
        self.cache: ResponseCache[dict[str, Any]] = (
            cache if cache is not None else ResponseCache()
        )
        self.proxy = proxy or DataSourceProxyClient(client, self.settings)

    async def load(
        self,
        block_id: str,
        config: PopinLoadConfig,
        form_context: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Return the pre-fill object for ``block_id``.

        Raises:
            DataSourceError: The request failed or the response is not an object
        """
        url = evaluate_template(config.url, form_context)
        key = popin_cache_key(block_id, url, config)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if config.data_source_id:
            data = await self.proxy.load_popin(block_id, config, form_context)
        else:
            data = await fetch_json(
                self.client,
                url,
                auth_headers(config.auth),
                self.settings.timeouts.request_timeout,
                failure="Failed to load popin data",
            )
            if not isinstance(data, dict):
                raise DataSourceError(
                    "Popin load response must be an object", reason="invalid body"
                )

        self.cache.set(key, data)
        logger.debug("Loaded popin data for block %s", block_id)
        return dict(data)

    def clear_cache(self) -> None:
        self.cache.clear()
