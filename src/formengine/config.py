"""Centralized configuration for the form engine.

All tunables used by the loaders, the rules client and the re-hydration
scheduler live here. Import from this module instead of hardcoding values
in individual files.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

__all__ = [
    "DEFAULT_SETTINGS",
    "EngineSettings",
    "RehydrationConfig",
    "Timeouts",
]


@dataclass(frozen=True)
class Timeouts:
    """Timeout values (seconds) for outbound HTTP calls.

    Attributes:
        connect_timeout: TCP connection establishment timeout.
        request_timeout: Whole request/response cycle.
    """

    connect_timeout: float = 5.0
    request_timeout: float = 10.0


@dataclass(frozen=True)
class RehydrationConfig:
    """Debounce behavior for rules re-hydration.

    Attributes:
        quiet_period: Seconds without a new context before the rules
            endpoint is called.
    """

    quiet_period: float = 0.5


@dataclass(frozen=True)
class EngineSettings:
    """Endpoints and policies shared by the engine's network collaborators.

    Attributes:
        rules_url: Rules re-hydration endpoint (POST CaseContext).
        proxy_url: Trusted data-source proxy endpoint.
        popin_proxy_url: Trusted popin-load proxy endpoint.
        require_proxy: If True, data sources without a dataSourceId are
            rejected instead of being fetched directly.
    """

    rules_url: str = "/api/rules/context"
    proxy_url: str = "/api/data-sources/proxy"
    popin_proxy_url: str = "/api/data-sources/popin-load-proxy"
    require_proxy: bool = False
    timeouts: Timeouts = field(default_factory=Timeouts)
    rehydration: RehydrationConfig = field(default_factory=RehydrationConfig)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> EngineSettings:
        """Build settings from FORMENGINE_* environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        timeouts = Timeouts(
            connect_timeout=defaults.timeouts.connect_timeout,
            request_timeout=float(
                env.get(
                    "FORMENGINE_REQUEST_TIMEOUT", defaults.timeouts.request_timeout
                )
            ),
        )
        rehydration = RehydrationConfig(
            quiet_period=float(
                env.get("FORMENGINE_QUIET_PERIOD", defaults.rehydration.quiet_period)
            )
        )
        return cls(
            rules_url=env.get("FORMENGINE_RULES_URL", defaults.rules_url),
            proxy_url=env.get("FORMENGINE_PROXY_URL", defaults.proxy_url),
            popin_proxy_url=env.get(
                "FORMENGINE_POPIN_PROXY_URL", defaults.popin_proxy_url
            ),
            require_proxy=env.get("FORMENGINE_REQUIRE_PROXY", "0") == "1",
            timeouts=timeouts,
            rehydration=rehydration,
        )


#: Default settings used when none are specified.
DEFAULT_SETTINGS = EngineSettings()
