"""Debounced scheduling of rules re-hydration calls.

The scheduler is a small state machine::

    IDLE --propose--> SCHEDULED --timer--> IN_FLIGHT --done--> IDLE
                          ^    |
                          +----+ propose (timer reset)

A proposal is ignored when its context equals the last one sent or the one
already pending. Otherwise the pending timer is replaced, so a burst of edits
produces a single call carrying the final context. In-flight calls are never
cancelled; each dispatch bumps a generation counter and callers use
``is_current`` to drop responses that were superseded.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any

from formengine.config import RehydrationConfig
from formengine.context.extractor import canonical_context

__all__ = ["LoadingIndicator", "RehydrationCall", "RehydrationScheduler", "RehydrationState"]

logger = logging.getLogger(__name__)

#: Callback invoked with the context once the quiet period has elapsed.
RehydrationCall = Callable[[dict[str, Any]], Awaitable[Any] | Any]


class RehydrationState(str, Enum):
    """Lifecycle of the scheduler."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    IN_FLIGHT = "in_flight"


class RehydrationScheduler:
    """Debounce context proposals into rules calls.

    Must be used from within a running event loop.

    Example:
        scheduler = RehydrationScheduler(RehydrationConfig(quiet_period=0.5))
        scheduler.propose({"country": "FR"}, call_rules)
        await scheduler.wait_idle()
    """

    def __init__(self, config: RehydrationConfig | None = None) -> None:
        self.config = config or RehydrationConfig()
        self._timer: asyncio.TimerHandle | None = None
        self._call: RehydrationCall | None = None
        self._latest: dict[str, Any] | None = None
        self._pending_key: str | None = None
        self._last_sent_key: str | None = None
        self._generation = 0
        self._in_flight: set[asyncio.Task[Any]] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> RehydrationState:
        if self._timer is not None:
            return RehydrationState.SCHEDULED
        if self._in_flight:
            return RehydrationState.IN_FLIGHT
        return RehydrationState.IDLE

    @property
    def generation(self) -> int:
        """Number of calls dispatched so far."""
        return self._generation

    @property
    def last_sent(self) -> str | None:
        """Canonical serialization of the last context dispatched."""
        return self._last_sent_key

    def is_current(self, generation: int) -> bool:
        """True if no call was dispatched after ``generation``."""
        return generation == self._generation

    def propose(self, context: Mapping[str, Any], call: RehydrationCall) -> bool:
        """Offer a new context; return True if a call was (re)scheduled."""
        snapshot = dict(context)
        key = canonical_context(snapshot)
        self._latest = snapshot
        self._call = call

        if key == self._last_sent_key or key == self._pending_key:
            logger.debug("Context unchanged, skipping re-hydration")
            return False

        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._pending_key = key
        self._timer = loop.call_later(self.config.quiet_period, self._fire)
        self._idle.clear()
        logger.debug("Re-hydration scheduled in %.3fs", self.config.quiet_period)
        return True

    def cancel(self) -> None:
        """Drop the pending timer. In-flight calls keep running."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending_key = None
        self._refresh_idle()

    async def wait_idle(self) -> None:
        """Wait until no timer is pending and no call is in flight."""
        await self._idle.wait()

    def _fire(self) -> None:
        self._timer = None
        self._pending_key = None
        context = self._latest
        call = self._call
        if context is None or call is None:
            self._refresh_idle()
            return

        key = canonical_context(context)
        if key == self._last_sent_key:
            logger.debug("Latest context already sent, nothing to do")
            self._refresh_idle()
            return

        self._last_sent_key = key
        self._generation += 1
        logger.info("Dispatching re-hydration (generation %d)", self._generation)

        try:
            result = call(context)
        except Exception:
            logger.exception("Re-hydration call failed")
            self._refresh_idle()
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._in_flight.add(task)
            task.add_done_callback(self._on_done)
        else:
            self._refresh_idle()

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._in_flight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Re-hydration call failed: %s", task.exception())
        self._refresh_idle()

    def _refresh_idle(self) -> None:
        if self.state is RehydrationState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()


class LoadingIndicator:
    """Brackets each re-hydration request with loading notifications.

    Every ``start()`` reports True at dispatch and every matching
    ``complete()`` reports False at completion, whether the request
    succeeded or not. Overlapping requests each get their own pair;
    ``is_loading`` stays True until the last one completes.
    """

    def __init__(self, on_change: Callable[[bool], None] | None = None) -> None:
        self.on_change = on_change
        self._active = 0

    @property
    def is_loading(self) -> bool:
        return self._active > 0

    def start(self) -> None:
        self._active += 1
        if self.on_change is not None:
            self.on_change(True)

    def complete(self) -> None:
        # Unmatched completions are ignored
        if self._active == 0:
            return
        self._active -= 1
        if self.on_change is not None:
            self.on_change(False)

    def __enter__(self) -> LoadingIndicator:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.complete()
