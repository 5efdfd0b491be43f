"""Case context extraction and debounced rules re-hydration."""

from formengine.context.extractor import (
    canonical_context,
    get_discriminant_fields,
    has_context_changed,
    identify_discriminant_fields,
    initialize_case_context,
    update_case_context,
)
from formengine.context.rehydration import (
    RehydrationOrchestrator,
    merge_rules_and_reevaluate,
)
from formengine.context.scheduler import (
    LoadingIndicator,
    RehydrationScheduler,
    RehydrationState,
)

__all__ = [
    "LoadingIndicator",
    "RehydrationOrchestrator",
    "RehydrationScheduler",
    "RehydrationState",
    "canonical_context",
    "get_discriminant_fields",
    "has_context_changed",
    "identify_discriminant_fields",
    "initialize_case_context",
    "merge_rules_and_reevaluate",
    "update_case_context",
]
