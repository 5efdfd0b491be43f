"""Types shared by the HTTP service entry points."""

from typing import TYPE_CHECKING, NewType, Protocol, runtime_checkable

if TYPE_CHECKING:
    import httpx
    from starlette.applications import Starlette

    from formengine.config import EngineSettings
    from formengine.datasources import CredentialStore
    from formengine.descriptor.models import GlobalFormDescriptor
    from formengine.rules.provider import RulesProvider

Host = NewType("Host", str)
"""Bind address (IP or hostname)."""

Port = NewType("Port", int)

__all__ = ["Host", "HttpAppFactory", "Port"]


@runtime_checkable
class HttpAppFactory(Protocol):
    """Builds the engine's ASGI application from its collaborators.

    ``run_http`` calls the factory once, after logging is configured, so
    the credential store and rule table are read at startup.
    """

    def __call__(
        self,
        *,
        descriptor: "GlobalFormDescriptor | None" = None,
        rules_provider: "RulesProvider | None" = None,
        credentials: "CredentialStore | None" = None,
        client: "httpx.AsyncClient | None" = None,
        settings: "EngineSettings | None" = None,
    ) -> "Starlette": ...
