"""Authentication headers and cache keys for outbound data requests."""

from __future__ import annotations

import base64

from formengine.descriptor.models import AuthConfig

__all__ = ["auth_cache_key", "auth_headers"]


def auth_headers(auth: AuthConfig | None) -> dict[str, str]:
    """Build request headers for ``auth``.

    Incomplete configurations (a bearer without token, an API key without
    header name, basic without username or password) add no header.
    """
    headers = {"Content-Type": "application/json"}
    if auth is None:
        return headers
    if auth.type == "bearer" and auth.token:
        headers["Authorization"] = f"Bearer {auth.token}"
    elif auth.type == "apikey" and auth.token and auth.header_name:
        headers[auth.header_name] = auth.token
    elif auth.type == "basic" and auth.username and auth.password:
        credentials = f"{auth.username}:{auth.password}".encode()
        headers["Authorization"] = "Basic " + base64.b64encode(credentials).decode("ascii")
    return headers


def auth_cache_key(auth: AuthConfig | None) -> str:
    """Canonical string identifying the credentials part of a cache key.

    >>> from formengine.descriptor.models import AuthConfig
    >>> auth_cache_key(None)
    'no-auth'
    >>> auth_cache_key(AuthConfig(type="apikey", token="k", header_name="X-API-Key"))
    'apikey:X-API-Key:k'
    """
    if auth is None:
        return "no-auth"
    if auth.type == "bearer":
        return f"bearer:{auth.token or ''}"
    if auth.type == "apikey":
        return f"apikey:{auth.header_name or ''}:{auth.token or ''}"
    return f"basic:{auth.username or ''}:{auth.password or ''}"
