"""Tests for the rules client and the rule table provider."""

import json

import httpx
import pytest

from formengine.config import EngineSettings
from formengine.descriptor.models import RulesObject
from formengine.errors import RulesServiceError
from formengine.rules import (
    RuleEntry,
    RulesProvider,
    RuleTableProvider,
    RulesClient,
    validate_case_context,
)

# === RulesClient ===


@pytest.mark.asyncio
async def test_fetch_rules_posts_context(mock_client) -> None:
    """The context is POSTed as JSON and the body parsed as a RulesObject."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"blocks": [{"id": "tax", "status": {"hidden": "true"}}]})

    async with mock_client(handler) as client:
        rules = await RulesClient(client).fetch_rules({"country": "US"})

    assert seen == {"method": "POST", "path": "/api/rules/context", "body": {"country": "US"}}
    assert rules.blocks[0].id == "tax"
    assert rules.fields is None


@pytest.mark.asyncio
async def test_fetch_rules_uses_configured_url(mock_client) -> None:
    """rules_url comes from the settings."""
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={})

    async with mock_client(handler) as client:
        await RulesClient(client, EngineSettings(rules_url="/v2/rules")).fetch_rules({})

    assert paths == ["/v2/rules"]


@pytest.mark.asyncio
async def test_fetch_rules_non_success_status(mock_client) -> None:
    """Non-2xx responses raise with status and reason."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async with mock_client(handler) as client:
        with pytest.raises(RulesServiceError) as exc_info:
            await RulesClient(client).fetch_rules({})

    assert exc_info.value.status_code == 503
    assert exc_info.value.reason == "Service Unavailable"
    assert str(exc_info.value) == "Failed to fetch rules: 503 Service Unavailable"


@pytest.mark.asyncio
async def test_fetch_rules_invalid_body(mock_client) -> None:
    """Bodies that are not RulesObjects raise."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>")

    async with mock_client(handler) as client:
        with pytest.raises(RulesServiceError) as exc_info:
            await RulesClient(client).fetch_rules({})

    assert exc_info.value.reason == "invalid body"


@pytest.mark.asyncio
async def test_fetch_rules_transport_error(mock_client) -> None:
    """Connection failures are wrapped."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(RulesServiceError, match="connection refused"):
            await RulesClient(client).fetch_rules({})


# === RuleTableProvider ===


@pytest.fixture
def provider():
    return RuleTableProvider.from_json(
        [
            {
                "when": '{{eq country "US"}}',
                "rules": {
                    "fields": [
                        {
                            "id": "phone",
                            "validation": [
                                {"type": "pattern", "value": "^\\d+$", "message": "Digits"}
                            ],
                        }
                    ]
                },
            },
            {
                "when": "{{contains onboardingCountries 'DE'}}",
                "rules": {"blocks": [{"id": "german-tax", "status": {"hidden": "false"}}]},
            },
            {"rules": {"fields": [{"id": "name", "status": {"readonly": "false"}}]}},
        ]
    )


def test_provider_satisfies_protocol(provider) -> None:
    """RuleTableProvider is a RulesProvider."""
    assert isinstance(provider, RulesProvider)


def test_matching_entries_are_concatenated(provider) -> None:
    """Updates from every matching entry are combined in table order."""
    rules = provider.rules_for({"country": "US", "onboardingCountries": ["FR", "DE"]})
    assert [field.id for field in rules.fields] == ["phone", "name"]
    assert [block.id for block in rules.blocks] == ["german-tax"]


def test_unconditional_entry_always_applies(provider) -> None:
    """An entry without a condition matches any context."""
    rules = provider.rules_for({})
    assert [field.id for field in rules.fields] == ["name"]
    assert rules.blocks == []


def test_empty_table_returns_empty_rules() -> None:
    """No entries means an empty update."""
    assert RuleTableProvider().rules_for({"a": 1}) == RulesObject(blocks=[], fields=[])


def test_rule_entry_from_dict() -> None:
    """Missing keys default to an unconditional, empty entry."""
    entry = RuleEntry.from_dict({})
    assert entry.when == ""
    assert entry.applies({}) is True
    assert entry.rules == RulesObject()


def test_provider_from_file(tmp_path) -> None:
    """Rule tables load from JSON files."""
    path = tmp_path / "rules.json"
    path.write_text(json.dumps([{"when": "true", "rules": {"fields": [{"id": "a"}]}}]))
    provider = RuleTableProvider.from_file(path)
    assert len(provider.entries) == 1
    assert provider.rules_for({}).fields[0].id == "a"


# === validate_case_context ===


def test_valid_case_context() -> None:
    """Scalars, null and string arrays are accepted."""
    context = {"a": "x", "b": 1, "c": 1.5, "d": True, "e": None, "f": ["x", "y"]}
    assert validate_case_context(context) == []


def test_invalid_case_context() -> None:
    """Objects and non-string array elements are rejected with codes."""
    errors = validate_case_context({"obj": {"x": 1}, "arr": ["x", 2]})
    assert [(error.field, error.code) for error in errors] == [
        ("obj", "INVALID_TYPE"),
        ("arr", "INVALID_ARRAY_ELEMENT"),
    ]
