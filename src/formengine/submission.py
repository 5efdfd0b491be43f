"""Build and send the final form submission.

The submission payload is either the raw form values or the output of the
descriptor's ``payloadTemplate``. Field errors returned by the backend are
mapped back onto form fields.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from formengine.datasources.auth import auth_headers
from formengine.descriptor.models import GlobalFormDescriptor, SubmissionConfig
from formengine.errors import SubmissionError
from formengine.templates import evaluate_template

__all__ = [
    "FieldErrorReport",
    "SubmissionRequest",
    "SubmissionResult",
    "build_submission_request",
    "evaluate_payload_template",
    "submit_form",
]

logger = logging.getLogger(__name__)


def evaluate_payload_template(
    template: str | None, form_values: Mapping[str, Any]
) -> Any:
    """Render the payload for ``form_values``.

    Without a template (or with an empty result) the form values are used
    as is. A JSON result is parsed; anything else is sent as a string.
    Form values are available both directly and under ``formData``.
    """
    if not template or not template.strip():
        return dict(form_values)
    evaluated = evaluate_template(template, {"formData": dict(form_values), **form_values})
    if not evaluated.strip():
        return dict(form_values)
    try:
        return json.loads(evaluated)
    except ValueError:
        return evaluated


@dataclass(frozen=True)
class SubmissionRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: Any = None

    def content(self) -> bytes | None:
        """Serialized body: JSON for structured payloads, raw text for strings."""
        if self.body is None:
            return None
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return json.dumps(self.body).encode("utf-8")


def build_submission_request(
    config: SubmissionConfig, form_values: Mapping[str, Any]
) -> SubmissionRequest:
    """Assemble method, URL, headers and body; GET requests carry no body."""
    headers = dict(config.headers or {})
    headers.update(auth_headers(config.auth))
    body = None
    if config.method != "GET":
        body = evaluate_payload_template(config.payload_template, form_values)
    return SubmissionRequest(method=config.method, url=config.url, headers=headers, body=body)


@dataclass(frozen=True)
class FieldErrorReport:
    """A backend error attached to a form field."""

    field: str
    message: str
    type: str = "server"


@dataclass
class SubmissionResult:
    """Outcome of a submission.

    Attributes:
        ok: True when the backend accepted the submission
        status_code: HTTP status returned by the backend
        data: Decoded success body (or error body)
        error: Top-level error message, if any
        field_errors: Backend field errors mapped to form fields
    """

    ok: bool
    status_code: int
    data: Any = None
    error: str | None = None
    field_errors: list[FieldErrorReport] = field(default_factory=list)


def _field_errors(body: Any) -> list[FieldErrorReport]:
    if not isinstance(body, Mapping) or not isinstance(body.get("errors"), list):
        return []
    reports = []
    for entry in body["errors"]:
        if isinstance(entry, Mapping) and entry.get("field"):
            reports.append(
                FieldErrorReport(
                    field=str(entry["field"]),
                    message=str(entry.get("message") or "Validation error"),
                )
            )
    return reports


async def submit_form(
    client: httpx.AsyncClient,
    descriptor: GlobalFormDescriptor,
    form_values: Mapping[str, Any],
) -> SubmissionResult:
    """Send the form to the descriptor's submission endpoint.

    Raises:
        SubmissionError: The endpoint could not be reached, or a success
            response is not JSON
    """
    request = build_submission_request(descriptor.submission, form_values)
    try:
        response = await client.request(
            request.method, request.url, headers=request.headers, content=request.content()
        )
    except httpx.HTTPError as exc:
        raise SubmissionError(
            f"Submission failed: {exc}", reason=type(exc).__name__
        ) from exc

    if response.is_success:
        try:
            data = response.json()
        except ValueError as exc:
            raise SubmissionError(
                "Submission response is not valid JSON",
                status_code=response.status_code,
                reason="invalid body",
            ) from exc
        logger.info("Submission accepted (%d)", response.status_code)
        return SubmissionResult(ok=True, status_code=response.status_code, data=data)

    try:
        body = response.json()
    except ValueError:
        body = {"error": f"Submission failed with status {response.status_code}"}
    error = body.get("error") if isinstance(body, Mapping) else None
    field_errors = _field_errors(body)
    logger.warning(
        "Submission rejected (%d) with %d field error(s)",
        response.status_code,
        len(field_errors),
    )
    return SubmissionResult(
        ok=False,
        status_code=response.status_code,
        data=body,
        error=error,
        field_errors=field_errors,
    )
