"""Template evaluation for status conditions, URLs and item transformations."""

from formengine.templates.evaluator import (
    TemplateEvaluator,
    evaluate_disabled_status,
    evaluate_hidden_status,
    evaluate_readonly_status,
    evaluate_template,
    has_placeholders,
    parse_boolean_result,
)
from formengine.templates.helpers import HELPERS, to_display

__all__ = [
    "HELPERS",
    "TemplateEvaluator",
    "evaluate_disabled_status",
    "evaluate_hidden_status",
    "evaluate_readonly_status",
    "evaluate_template",
    "has_placeholders",
    "parse_boolean_result",
    "to_display",
]
