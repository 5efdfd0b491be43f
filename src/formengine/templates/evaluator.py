"""Template evaluation against a form context.

Templates use Handlebars syntax and are translated to Jinja2 source (see
:mod:`formengine.templates.handlebars`), then rendered in a sandbox:

- ``{{person.address.city}}`` / ``{{addresses.0.street}}`` dotted paths
  (mapping keys win over attributes, missing paths render as "")
- ``{{#if (eq country "FR")}}true{{else}}false{{/if}}`` conditional blocks
- helpers from :mod:`formengine.templates.helpers`

Evaluation never raises: compilation or render errors are logged and the
result degrades to an empty string.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

from jinja2 import ChainableUndefined, Template, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from formengine.templates.handlebars import ROOT, translate
from formengine.templates.helpers import HELPERS, to_display

__all__ = [
    "TemplateEvaluator",
    "evaluate_disabled_status",
    "evaluate_hidden_status",
    "evaluate_readonly_status",
    "evaluate_template",
    "has_placeholders",
    "parse_boolean_result",
]

logger = logging.getLogger(__name__)


class _HasStatus(Protocol):
    """Anything carrying optional status templates (blocks, fields, menu items)."""

    @property
    def status(self) -> Any: ...


class FormTemplateEnvironment(SandboxedEnvironment):
    """Sandboxed environment where document keys shadow Python attributes.

    Without this, ``{{data.items}}`` would resolve to ``dict.items``. Arrays
    and strings expose ``length`` as in the form front-ends.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        return self.getitem(obj, attribute)

    def getitem(self, obj: Any, argument: Any) -> Any:
        if isinstance(obj, Mapping):
            if argument in obj:
                return obj[argument]
            if not isinstance(argument, str) and str(argument) in obj:
                return obj[str(argument)]
            return self.undefined(obj=obj, name=argument)
        if argument == "length" and isinstance(obj, (list, tuple, str)):
            return len(obj)
        return super().getitem(obj, argument)


class TemplateEvaluator:
    """Compiles and renders templates, caching compiled templates by source."""

    def __init__(self) -> None:
        self.environment = FormTemplateEnvironment(
            autoescape=False,
            undefined=ChainableUndefined,
            finalize=to_display,
            keep_trailing_newline=True,
        )
        self.environment.globals.update(HELPERS)
        self._compiled: dict[str, Template] = {}

    def compile(self, template: str) -> Template:
        """Compile a template, reusing a cached compilation when available.

        Raises:
            jinja2.TemplateSyntaxError: If the template does not parse
        """
        compiled = self._compiled.get(template)
        if compiled is None:
            compiled = self.environment.from_string(translate(template))
            self._compiled[template] = compiled
        return compiled

    def evaluate(self, template: str | None, context: Mapping[str, Any]) -> str:
        """Evaluate a template; undefined or empty templates yield ""."""
        if not template:
            return ""
        try:
            return self.compile(template).render({ROOT: dict(context)})
        except (TemplateError, TypeError, ValueError, ArithmeticError, LookupError) as exc:
            logger.warning("Error evaluating template %r: %s", template, exc)
            return ""

    def clear(self) -> None:
        """Drop all cached compilations."""
        self._compiled.clear()


#: Process-wide evaluator used by the module-level helpers.
default_evaluator = TemplateEvaluator()


def evaluate_template(template: str | None, context: Mapping[str, Any]) -> str:
    """Evaluate ``template`` against ``context`` with the default evaluator."""
    return default_evaluator.evaluate(template, context)


def has_placeholders(text: str) -> bool:
    """Report whether a string contains a mustache."""
    return "{{" in text and "}}" in text


def parse_boolean_result(result: str) -> bool:
    """Trimmed, case-insensitive: true iff "true" or "1"."""
    normalized = result.strip().lower()
    return normalized in ("true", "1")


def _evaluate_status(descriptor: _HasStatus, name: str, context: Mapping[str, Any]) -> bool:
    status = descriptor.status
    template = getattr(status, name, None) if status is not None else None
    if not template:
        return False
    return parse_boolean_result(evaluate_template(template, context))


def evaluate_hidden_status(descriptor: _HasStatus, context: Mapping[str, Any]) -> bool:
    """True if the descriptor's hidden template evaluates truthy (visible by default)."""
    return _evaluate_status(descriptor, "hidden", context)


def evaluate_disabled_status(descriptor: _HasStatus, context: Mapping[str, Any]) -> bool:
    """True if the descriptor's disabled template evaluates truthy (enabled by default)."""
    return _evaluate_status(descriptor, "disabled", context)


def evaluate_readonly_status(descriptor: _HasStatus, context: Mapping[str, Any]) -> bool:
    """True if the descriptor's readonly template evaluates truthy (editable by default)."""
    return _evaluate_status(descriptor, "readonly", context)
