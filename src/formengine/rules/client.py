"""HTTP client for the rules re-hydration endpoint."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from formengine.config import DEFAULT_SETTINGS, EngineSettings
from formengine.descriptor.models import RulesObject
from formengine.errors import RulesServiceError

__all__ = ["RulesClient"]

logger = logging.getLogger(__name__)


class RulesClient:
    """POSTs a case context and parses the returned RulesObject.

    The ``httpx.AsyncClient`` is injected so hosts decide the base URL and
    transport; tests pass one built on ``httpx.MockTransport``.
    """

    def __init__(
        self, client: httpx.AsyncClient, settings: EngineSettings | None = None
    ) -> None:
        self.client = client
        self.settings = settings or DEFAULT_SETTINGS

    async def fetch_rules(self, context: Mapping[str, Any]) -> RulesObject:
        """Fetch the rules matching ``context``.

        Raises:
            RulesServiceError: On transport failure, a non-2xx status or a
                body that is not a RulesObject
        """
        url = self.settings.rules_url
        try:
            response = await self.client.post(
                url,
                json=dict(context),
                timeout=self.settings.timeouts.request_timeout,
            )
        except httpx.HTTPError as exc:
            raise RulesServiceError(
                f"Failed to fetch rules: {exc}", reason=type(exc).__name__
            ) from exc

        if not response.is_success:
            raise RulesServiceError(
                f"Failed to fetch rules: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                reason=response.reason_phrase,
            )

        try:
            rules = RulesObject.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise RulesServiceError(
                f"Invalid rules response: {exc}",
                status_code=response.status_code,
                reason="invalid body",
            ) from exc

        logger.debug(
            "Received rules: %d block update(s), %d field update(s)",
            len(rules.blocks or []),
            len(rules.fields or []),
        )
        return rules
