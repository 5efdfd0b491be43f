"""Turn a raw data-source response into field items.

Two templates drive the transformation:

- ``iteratorTemplate`` locates the array of elements in the response. It is
  either a plain dotted path (``results``, ``data.cities``) or a template
  whose output is a dotted path or a JSON array
  (``{{json data.results}}``). Without one, an array body is used as is
  and any other body becomes a single element.
- ``itemsTemplate`` renders one element. The element is bound as ``item``
  and, when it is an object, its keys are also available directly. A JSON
  object output with ``label`` and ``value`` is used verbatim; any other
  output becomes the label.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from formengine.descriptor.models import DataSourceConfig, FieldItem
from formengine.templates import evaluate_template, has_placeholders, to_display

__all__ = ["lookup_path", "transform_item", "transform_response"]

logger = logging.getLogger(__name__)

_MISSING = object()


def lookup_path(obj: Any, path: str, default: Any = None) -> Any:
    """Follow a dotted path through mappings and lists.

    Returns ``default`` when any segment is absent.

    >>> lookup_path({"data": {"cities": ["Paris"]}}, "data.cities.0")
    'Paris'
    """
    current = obj
    for part in path.strip().split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current


def _resolve_elements(body: Any, path: str) -> list[Any] | None:
    if not path.strip():
        return None
    for root in (body, {"data": body, "response": body}):
        found = lookup_path(root, path, _MISSING)
        if isinstance(found, list):
            return found
    return None


def _iterate(body: Any, iterator_template: str, context: Mapping[str, Any]) -> list[Any] | None:
    if not has_placeholders(iterator_template):
        return _resolve_elements(body, iterator_template)

    result = evaluate_template(
        iterator_template, {**context, "data": body, "response": body}
    ).strip()
    if not result:
        return None
    try:
        parsed = json.loads(result)
    except ValueError:
        return _resolve_elements(body, result)
    return parsed if isinstance(parsed, list) else None


def transform_response(
    body: Any, config: DataSourceConfig, context: Mapping[str, Any]
) -> list[FieldItem]:
    """Transform a response body into field items.

    When the iterator does not yield an array the body itself is used
    (an array body as is, anything else as a single element).
    """
    elements: list[Any] | None = None
    if config.iterator_template:
        elements = _iterate(body, config.iterator_template, context)
        if elements is None:
            logger.debug(
                "Iterator %r did not yield an array, using the response body",
                config.iterator_template,
            )
    if elements is None:
        elements = body if isinstance(body, list) else [body]
    return [transform_item(element, config.items_template, context) for element in elements]


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def transform_item(item: Any, items_template: str, context: Mapping[str, Any]) -> FieldItem:
    """Render one response element into a FieldItem."""
    item_context = {**context, "item": item}
    if isinstance(item, Mapping):
        item_context.update(item)
    result = evaluate_template(items_template, item_context)

    try:
        parsed = json.loads(result)
    except ValueError:
        parsed = None
    if (
        isinstance(parsed, Mapping)
        and parsed.get("label")
        and _is_scalar(parsed.get("value"))
    ):
        return FieldItem(label=to_display(parsed["label"]), value=parsed["value"])

    if isinstance(item, Mapping):
        fallback_label = item.get("label") or item.get("name") or ""
        value = item.get("value")
        return FieldItem(
            label=result or to_display(fallback_label),
            value=value if _is_scalar(value) else result,
        )

    return FieldItem(
        label=result or to_display(item),
        value=item if _is_scalar(item) else to_display(item),
    )
