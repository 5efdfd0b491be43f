"""formengine: dynamic, server-describable forms.

This package provides:
- Descriptor models, merge and block resolution
- Template evaluation for status conditions, URLs and option items
- Validation rule translation and whole-form validation
- Case context extraction with debounced rules re-hydration
- Data source loading, transformation and caching
- An HTTP service hosting the trusted proxies and the rules endpoint
"""

from formengine.context import (
    RehydrationOrchestrator,
    RehydrationScheduler,
    has_context_changed,
    initialize_case_context,
    update_case_context,
)
from formengine.datasources import DataSourceLoader, PopinLoader, ResponseCache
from formengine.descriptor import (
    GlobalFormDescriptor,
    RulesObject,
    extract_default_values,
    merge_descriptor_with_rules,
    resolve_repeatable_blocks,
    resolve_sub_forms,
)
from formengine.http import create_app
from formengine.rules import RulesClient, RuleTableProvider
from formengine.templates import evaluate_template
from formengine.validation import to_validator, validate_form_values

__all__ = [
    # Descriptor
    "GlobalFormDescriptor",
    "RulesObject",
    "extract_default_values",
    "merge_descriptor_with_rules",
    "resolve_repeatable_blocks",
    "resolve_sub_forms",
    # Templates and validation
    "evaluate_template",
    "to_validator",
    "validate_form_values",
    # Context and re-hydration
    "RehydrationOrchestrator",
    "RehydrationScheduler",
    "RulesClient",
    "RuleTableProvider",
    "has_context_changed",
    "initialize_case_context",
    "update_case_context",
    # Data sources
    "DataSourceLoader",
    "PopinLoader",
    "ResponseCache",
    # HTTP service
    "create_app",
]
__version__ = "0.1.0"
