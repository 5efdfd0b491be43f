"""Server-side credentials for proxied data sources.

Descriptors sent to the browser only carry a ``dataSourceId``; the proxy
resolves it to an AuthConfig here. The default store is seeded from
environment variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from formengine.descriptor.models import AuthConfig

__all__ = ["CredentialStore"]

logger = logging.getLogger(__name__)


class CredentialStore:
    """dataSourceId -> AuthConfig."""

    def __init__(self, credentials: Mapping[str, AuthConfig] | None = None) -> None:
        self._credentials: dict[str, AuthConfig] = dict(credentials or {})

    def __contains__(self, data_source_id: object) -> bool:
        return data_source_id in self._credentials

    def get(self, data_source_id: str) -> AuthConfig | None:
        return self._credentials.get(data_source_id)

    def set(self, data_source_id: str, auth: AuthConfig) -> None:
        logger.debug("Registering credentials for %s (%s)", data_source_id, auth.type)
        self._credentials[data_source_id] = auth

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CredentialStore:
        """Seed the demo data sources from the environment.

        - ``states-api``: bearer ``STATES_API_TOKEN``
        - ``cities-api``: ``X-API-Key`` header with ``CITIES_API_KEY``
        - ``basic-auth-api``: ``BASIC_AUTH_USERNAME`` / ``BASIC_AUTH_PASSWORD``
        """
        env = os.environ if environ is None else environ
        return cls(
            {
                "states-api": AuthConfig(
                    type="bearer", token=env.get("STATES_API_TOKEN", "default-token")
                ),
                "cities-api": AuthConfig(
                    type="apikey",
                    token=env.get("CITIES_API_KEY", "default-key"),
                    header_name="X-API-Key",
                ),
                "basic-auth-api": AuthConfig(
                    type="basic",
                    username=env.get("BASIC_AUTH_USERNAME", "default-username"),
                    password=env.get("BASIC_AUTH_PASSWORD", "default-password"),
                ),
            }
        )
