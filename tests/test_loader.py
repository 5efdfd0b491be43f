"""Tests for data-source and popin loading.

Upstream APIs and the trusted proxy are faked with httpx.MockTransport.
"""

import asyncio
import json

import httpx
import pytest

from formengine.config import EngineSettings
from formengine.datasources import (
    DataSourceLoader,
    DataSourceProxyClient,
    PopinLoader,
    ResponseCache,
)
from formengine.descriptor.models import (
    AuthConfig,
    DataSourceConfig,
    FieldItem,
    PopinLoadConfig,
)
from formengine.errors import DataSourceConfigError, DataSourceError

CITIES = DataSourceConfig(
    url="https://api.test/cities?country={{country}}",
    items_template="{{item.name}}",
    iterator_template="cities",
    auth=AuthConfig(type="bearer", token="secret"),
)

PROXIED = DataSourceConfig(
    url="https://api.test/states",
    items_template="{{item.name}}",
    data_source_id="states-api",
)


def cities_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        country = request.url.params["country"]
        names = {"FR": ["Paris", "Lyon"], "DE": ["Berlin"]}[country]
        return httpx.Response(200, json={"cities": [{"name": name} for name in names]})

    return handler


# === Direct loads ===


@pytest.mark.asyncio
async def test_direct_load_transforms_response(mock_client) -> None:
    """The URL is evaluated, credentials sent and the body transformed."""
    requests = []
    async with mock_client(cities_handler(requests)) as client:
        items = await DataSourceLoader(client).load(CITIES, {"country": "FR"})

    assert [item.label for item in items] == ["Paris", "Lyon"]
    assert str(requests[0].url) == "https://api.test/cities?country=FR"
    assert requests[0].headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_loads_are_cached_per_url(mock_client) -> None:
    """Same URL hits the cache; another URL fetches again."""
    requests = []
    async with mock_client(cities_handler(requests)) as client:
        loader = DataSourceLoader(client)
        await loader.load(CITIES, {"country": "FR"})
        again = await loader.load(CITIES, {"country": "FR"})
        await loader.load(CITIES, {"country": "DE"})

    assert [item.label for item in again] == ["Paris", "Lyon"]
    assert len(requests) == 2
    assert len(loader.cache) == 2


@pytest.mark.asyncio
async def test_clear_cache_forces_refetch(mock_client) -> None:
    requests = []
    async with mock_client(cities_handler(requests)) as client:
        loader = DataSourceLoader(client)
        await loader.load(CITIES, {"country": "FR"})
        loader.clear_cache()
        await loader.load(CITIES, {"country": "FR"})

    assert len(requests) == 2


@pytest.mark.asyncio
async def test_shared_cache_between_loaders(mock_client) -> None:
    """An injected cache is shared by every loader using it."""
    requests = []
    cache: ResponseCache[list[FieldItem]] = ResponseCache()
    async with mock_client(cities_handler(requests)) as client:
        await DataSourceLoader(client, cache=cache).load(CITIES, {"country": "FR"})
        await DataSourceLoader(client, cache=cache).load(CITIES, {"country": "FR"})

    assert len(requests) == 1


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_request(mock_client) -> None:
    """Identical in-flight loads are collapsed."""
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.05)
        return httpx.Response(200, json={"cities": [{"name": "Paris"}]})

    async with mock_client(handler) as client:
        loader = DataSourceLoader(client)
        first, second = await asyncio.gather(
            loader.load(CITIES, {"country": "FR"}),
            loader.load(CITIES, {"country": "FR"}),
        )

    assert calls == 1
    assert first == second == [FieldItem(label="Paris", value="Paris")]


@pytest.mark.asyncio
async def test_returned_lists_are_independent(mock_client) -> None:
    """Callers may mutate the list they get back."""
    async with mock_client(cities_handler([])) as client:
        loader = DataSourceLoader(client)
        items = await loader.load(CITIES, {"country": "FR"})
        items.clear()
        assert len(await loader.load(CITIES, {"country": "FR"})) == 2


@pytest.mark.asyncio
async def test_upstream_error_raises(mock_client) -> None:
    """Non-2xx responses raise DataSourceError with the status."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async with mock_client(handler) as client:
        loader = DataSourceLoader(client)
        with pytest.raises(DataSourceError) as exc_info:
            await loader.load(CITIES, {"country": "FR"})

    assert exc_info.value.status_code == 404
    assert str(exc_info.value) == "Failed to load data source: 404 Not Found"
    assert len(loader.cache) == 0


@pytest.mark.asyncio
async def test_invalid_json_raises(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"not json")

    async with mock_client(handler) as client:
        with pytest.raises(DataSourceError, match="not valid JSON"):
            await DataSourceLoader(client).load(CITIES, {"country": "FR"})


@pytest.mark.asyncio
async def test_require_proxy_rejects_direct_configs(mock_client) -> None:
    """With require_proxy, configs without dataSourceId are refused."""
    requests = []
    async with mock_client(cities_handler(requests)) as client:
        loader = DataSourceLoader(client, EngineSettings(require_proxy=True))
        with pytest.raises(DataSourceConfigError, match="dataSourceId is required"):
            await loader.load(CITIES, {"country": "FR"}, field_id="city")

    assert requests == []


# === Proxied loads ===


@pytest.mark.asyncio
async def test_proxied_load_posts_to_proxy(mock_client) -> None:
    """Configs with a dataSourceId go through the proxy."""
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/api/data-sources/proxy"
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"items": [{"label": "Texas", "value": "TX"}]})

    async with mock_client(handler) as client:
        items = await DataSourceLoader(client).load(PROXIED, {"country": "US"}, field_id="state")

    assert items == [FieldItem(label="Texas", value="TX")]
    assert payloads == [
        {
            "fieldId": "state",
            "dataSourceId": "states-api",
            "urlTemplate": "https://api.test/states",
            "itemsTemplate": "{{item.name}}",
            "formContext": {"country": "US"},
        }
    ]


@pytest.mark.asyncio
async def test_proxy_error_message_is_surfaced(mock_client) -> None:
    """The proxy's error message becomes the exception message."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "credentials not found"})

    async with mock_client(handler) as client:
        with pytest.raises(DataSourceError, match="credentials not found") as exc_info:
            await DataSourceLoader(client).load(PROXIED, {})

    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_proxy_malformed_items(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": [{"label": "no value"}]})

    async with mock_client(handler) as client:
        with pytest.raises(DataSourceError, match="malformed items"):
            await DataSourceLoader(client).load(PROXIED, {})


@pytest.mark.asyncio
async def test_proxy_client_requires_data_source_id(mock_client) -> None:
    async with mock_client(cities_handler([])) as client:
        proxy = DataSourceProxyClient(client)
        with pytest.raises(DataSourceConfigError):
            await proxy.load_items("city", CITIES, {})


@pytest.mark.asyncio
async def test_proxy_payload_includes_iterator(mock_client) -> None:
    """The iterator template is forwarded when configured."""
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"items": []})

    config = PROXIED.model_copy(update={"iterator_template": "data.states"})
    async with mock_client(handler) as client:
        assert await DataSourceProxyClient(client).load_items("state", config, {}) == []

    assert payloads[0]["iteratorTemplate"] == "data.states"


# === Popin loads ===


@pytest.mark.asyncio
async def test_popin_direct_load(mock_client) -> None:
    """Direct popin loads return the object and cache a copy."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"firstName": "Ada"})

    config = PopinLoadConfig(url="https://crm.test/people/{{personId}}")
    async with mock_client(handler) as client:
        loader = PopinLoader(client)
        data = await loader.load("person-popin", config, {"personId": 7})
        data["firstName"] = "changed"
        again = await loader.load("person-popin", config, {"personId": 7})

    assert again == {"firstName": "Ada"}
    assert len(requests) == 1
    assert str(requests[0].url) == "https://crm.test/people/7"


@pytest.mark.asyncio
async def test_popin_array_response_is_rejected(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"a": 1}])

    async with mock_client(handler) as client:
        with pytest.raises(DataSourceError, match="must be an object"):
            await PopinLoader(client).load("b", PopinLoadConfig(url="https://crm.test/x"), {})


@pytest.mark.asyncio
async def test_popin_proxied_load(mock_client) -> None:
    """Popins with a dataSourceId post the evaluated URL to the popin proxy."""
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/data-sources/popin-load-proxy"
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"name": "Acme"})

    config = PopinLoadConfig(url="https://crm.test/companies/{{id}}", data_source_id="crm")
    async with mock_client(handler) as client:
        data = await PopinLoader(client).load("company-popin", config, {"id": "c1"})

    assert data == {"name": "Acme"}
    assert payloads[0]["blockId"] == "company-popin"
    assert payloads[0]["evaluatedUrl"] == "https://crm.test/companies/c1"
    assert payloads[0]["urlTemplate"] == "https://crm.test/companies/{{id}}"
