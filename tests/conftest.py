"""Pytest configuration and fixtures."""

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from formengine.descriptor.models import GlobalFormDescriptor

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def make_descriptor() -> Callable[..., GlobalFormDescriptor]:
    """Factory building a GlobalFormDescriptor from plain block dicts.

    Args:
        blocks: Block documents (camelCase keys, as sent over the wire)
        **extra: Additional top-level keys (id, title, submission, ...)
    """

    def _make(blocks: list[dict[str, Any]], **extra: Any) -> GlobalFormDescriptor:
        document: dict[str, Any] = {
            "id": "onboarding",
            "blocks": blocks,
            "submission": {"url": "https://backend.test/submit", "method": "POST"},
        }
        document.update(extra)
        return GlobalFormDescriptor.model_validate(document)

    return _make


@pytest.fixture
def mock_client() -> Callable[[Handler], httpx.AsyncClient]:
    """Factory returning an AsyncClient whose requests go to ``handler``.

    Relative URLs (the engine's default endpoints) resolve against
    http://testserver.
    """

    def _client(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://testserver"
        )

    return _client
