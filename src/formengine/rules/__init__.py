"""Rules service: the re-hydration client and server-side rule providers."""

from formengine.rules.client import RulesClient
from formengine.rules.provider import (
    RuleEntry,
    RuleTableProvider,
    RulesProvider,
    validate_case_context,
)

__all__ = [
    "RuleEntry",
    "RuleTableProvider",
    "RulesClient",
    "RulesProvider",
    "validate_case_context",
]
