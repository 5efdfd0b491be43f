"""Tests for building and sending form submissions."""

import json

import httpx
import pytest

from formengine.descriptor.models import SubmissionConfig
from formengine.errors import SubmissionError
from formengine.submission import (
    FieldErrorReport,
    SubmissionRequest,
    build_submission_request,
    evaluate_payload_template,
    submit_form,
)

VALUES = {"name": "Acme", "country": "FR"}


def test_payload_without_template_is_values() -> None:
    assert evaluate_payload_template(None, VALUES) == VALUES
    assert evaluate_payload_template("   ", VALUES) == VALUES


def test_payload_template_json_is_parsed() -> None:
    """JSON output is decoded; values are reachable directly and via formData."""
    template = '{"company": "{{name}}", "where": "{{formData.country}}"}'
    assert evaluate_payload_template(template, VALUES) == {"company": "Acme", "where": "FR"}


def test_payload_template_text_is_returned_as_is() -> None:
    assert evaluate_payload_template("name={{name}}", VALUES) == "name=Acme"


def test_payload_template_empty_result_falls_back_to_values() -> None:
    assert evaluate_payload_template("{{missing}}", VALUES) == VALUES


def test_build_request_merges_headers_and_auth() -> None:
    """Custom headers and auth headers are combined."""
    config = SubmissionConfig.model_validate(
        {
            "url": "https://backend.test/cases",
            "method": "PUT",
            "headers": {"X-Tenant": "t1"},
            "auth": {"type": "bearer", "token": "tok"},
        }
    )
    request = build_submission_request(config, VALUES)
    assert request.method == "PUT"
    assert request.headers == {
        "X-Tenant": "t1",
        "Content-Type": "application/json",
        "Authorization": "Bearer tok",
    }
    assert json.loads(request.content()) == VALUES


def test_get_requests_have_no_body() -> None:
    config = SubmissionConfig(url="https://backend.test/cases", method="GET")
    request = build_submission_request(config, VALUES)
    assert request.body is None
    assert request.content() is None


def test_string_body_is_sent_raw() -> None:
    request = SubmissionRequest(method="POST", url="/x", headers={}, body="a=b")
    assert request.content() == b"a=b"


@pytest.mark.asyncio
async def test_submit_success(make_descriptor, mock_client) -> None:
    """Accepted submissions return the decoded body."""
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(201, json={"id": "case-1"})

    descriptor = make_descriptor([])
    async with mock_client(handler) as client:
        result = await submit_form(client, descriptor, VALUES)

    assert result.ok is True
    assert result.status_code == 201
    assert result.data == {"id": "case-1"}
    assert received == [VALUES]


@pytest.mark.asyncio
async def test_submit_maps_field_errors(make_descriptor, mock_client) -> None:
    """Backend field errors are attached to form fields."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            422,
            json={
                "error": "Validation failed",
                "errors": [
                    {"field": "name", "message": "Already taken"},
                    {"field": "country"},
                    {"message": "no field"},
                ],
            },
        )

    async with mock_client(handler) as client:
        result = await submit_form(client, make_descriptor([]), VALUES)

    assert result.ok is False
    assert result.status_code == 422
    assert result.error == "Validation failed"
    assert result.field_errors == [
        FieldErrorReport(field="name", message="Already taken"),
        FieldErrorReport(field="country", message="Validation error"),
    ]
    assert result.field_errors[0].type == "server"


@pytest.mark.asyncio
async def test_submit_failure_without_json(make_descriptor, mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, content=b"Bad gateway")

    async with mock_client(handler) as client:
        result = await submit_form(client, make_descriptor([]), VALUES)

    assert result.ok is False
    assert result.error == "Submission failed with status 502"
    assert result.field_errors == []


@pytest.mark.asyncio
async def test_submit_transport_error(make_descriptor, mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(SubmissionError, match="timed out"):
            await submit_form(client, make_descriptor([]), VALUES)
