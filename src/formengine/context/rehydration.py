"""Glue between context extraction, the rules client and the merge engine.

``RehydrationOrchestrator`` owns the base descriptor (as loaded) and the
working descriptor (base merged with the latest rules). Every field edit goes
through ``on_values_changed``; when the discriminant context changes a
debounced call to the rules service is scheduled, and its response is merged
into the *base* descriptor so that updates never accumulate across calls.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from formengine.context.extractor import (
    get_discriminant_fields,
    has_context_changed,
    update_case_context,
)
from formengine.context.scheduler import LoadingIndicator, RehydrationScheduler
from formengine.descriptor.merge import merge_descriptor_with_rules
from formengine.descriptor.models import CaseContext, GlobalFormDescriptor, RulesObject
from formengine.errors import RulesServiceError
from formengine.rules.client import RulesClient

__all__ = ["RehydrationOrchestrator", "merge_rules_and_reevaluate"]

logger = logging.getLogger(__name__)

DescriptorListener = Callable[[GlobalFormDescriptor], None]
ErrorListener = Callable[[Exception], None]


def merge_rules_and_reevaluate(
    descriptor: GlobalFormDescriptor,
    rules: RulesObject,
    form_context: Mapping[str, Any],
) -> GlobalFormDescriptor:
    """Merge ``rules`` into ``descriptor``.

    Status templates are merged, not evaluated: evaluation happens when the
    descriptor is rendered against the current form context.
    """
    return merge_descriptor_with_rules(descriptor, rules)


class RehydrationOrchestrator:
    """Keeps a working descriptor in sync with the rules service.

    Args:
        descriptor: Base descriptor, already resolved
        rules_client: Client for the rules endpoint
        case_context: Initial context (usually from ``initialize_case_context``)
        scheduler: Debounce scheduler; a default one is created if omitted
        indicator: Loading indicator bracketing each rules request
        on_descriptor: Called with each new working descriptor
        on_error: Called when the rules service fails
    """

    def __init__(
        self,
        descriptor: GlobalFormDescriptor,
        rules_client: RulesClient,
        case_context: CaseContext | None = None,
        *,
        scheduler: RehydrationScheduler | None = None,
        indicator: LoadingIndicator | None = None,
        on_descriptor: DescriptorListener | None = None,
        on_error: ErrorListener | None = None,
    ) -> None:
        self.rules_client = rules_client
        self.scheduler = scheduler or RehydrationScheduler(
            rules_client.settings.rehydration
        )
        self.indicator = indicator or LoadingIndicator()
        self.on_descriptor = on_descriptor
        self.on_error = on_error
        self.case_context: CaseContext = dict(case_context or {})
        self.form_context: dict[str, Any] = {}
        self.base_descriptor = descriptor
        self.descriptor = descriptor
        self.discriminant_fields = get_discriminant_fields(descriptor)

    def set_base_descriptor(self, descriptor: GlobalFormDescriptor) -> None:
        """Replace the base (and working) descriptor, e.g. after a reload."""
        self.base_descriptor = descriptor
        self.descriptor = descriptor
        self.discriminant_fields = get_discriminant_fields(descriptor)

    def on_values_changed(self, form_values: Mapping[str, Any]) -> bool:
        """Update the case context; return True if a re-hydration was scheduled."""
        self.form_context = {**self.case_context, **form_values}
        new_context = update_case_context(
            self.case_context, form_values, self.discriminant_fields
        )
        if not has_context_changed(self.case_context, new_context):
            return False
        self.case_context = new_context
        return self.scheduler.propose(new_context, self._rehydrate)

    async def wait_idle(self) -> None:
        """Wait for pending and in-flight re-hydrations to finish."""
        await self.scheduler.wait_idle()

    def cancel(self) -> None:
        self.scheduler.cancel()

    async def _rehydrate(self, context: CaseContext) -> None:
        generation = self.scheduler.generation
        self.indicator.start()
        try:
            rules = await self.rules_client.fetch_rules(context)
        except RulesServiceError as exc:
            logger.error("Rules re-hydration failed: %s", exc)
            if self.on_error is not None:
                self.on_error(exc)
            return
        finally:
            self.indicator.complete()

        if not self.scheduler.is_current(generation):
            logger.debug("Dropping stale rules response (generation %d)", generation)
            return

        self.descriptor = merge_rules_and_reevaluate(
            self.base_descriptor, rules, self.form_context
        )
        logger.info("Descriptor re-hydrated (generation %d)", generation)
        if self.on_descriptor is not None:
            self.on_descriptor(self.descriptor)
