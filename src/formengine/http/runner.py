"""Run the form engine service under uvicorn."""

import logging

import uvicorn

from formengine.config import DEFAULT_SETTINGS, EngineSettings
from formengine.descriptor.models import GlobalFormDescriptor
from formengine.http.types import Host, HttpAppFactory, Port
from formengine.rules.provider import RulesProvider

__all__ = ["run_http"]

logger = logging.getLogger(__name__)


async def run_http(
    factory: HttpAppFactory,
    *,
    descriptor: GlobalFormDescriptor | None = None,
    rules_provider: RulesProvider | None = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
    host: Host = Host("127.0.0.1"),
    port: Port = Port(8000),
    log_level: str = "info",
) -> None:
    """Build the service with ``factory`` and serve it until cancelled.

    The upstream client is left to the factory, so it lives for the
    application's lifespan and uses the timeouts from ``settings``.

    Example:
        from formengine.http import create_app, run_http

        await run_http(create_app, descriptor=descriptor, port=Port(8080))
    """
    app = factory(descriptor=descriptor, rules_provider=rules_provider, settings=settings)
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level, access_log=False)
    server = uvicorn.Server(config)

    logger.info(
        "Serving formengine on %s:%s (descriptor: %s, upstream timeout: %ss)",
        host,
        port,
        descriptor.id if descriptor is not None else "none",
        settings.timeouts.request_timeout,
    )
    try:
        await server.serve()
    except Exception:
        logger.exception("formengine service stopped with an error")
        raise
    finally:
        logger.info("formengine service on %s:%s shut down", host, port)
