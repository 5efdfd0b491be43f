"""Pydantic models for form descriptors.

The hierarchy is GlobalFormDescriptor -> BlockDescriptor -> FieldDescriptor,
with SubFormDescriptor fragments composed in via subFormRef. RulesObject is
the partial update document returned by the rules service, and CaseContext
is the flat discriminant map sent to it.

JSON documents use camelCase keys; Python code uses snake_case attributes.
Models are frozen: every transformation returns a new document through
``model_copy(update=...)``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from enum import Enum
from typing import Annotated, Any, Literal, Protocol, Union, runtime_checkable

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

__all__ = [
    "AuthConfig",
    "BlockDescriptor",
    "BlockRules",
    "ButtonConfig",
    "ButtonMenuItem",
    "CaseContext",
    "CasePrefill",
    "ContextValue",
    "CustomRule",
    "DataSourceConfig",
    "FieldDescriptor",
    "FieldItem",
    "FieldRules",
    "FieldType",
    "FormContext",
    "GlobalFormDescriptor",
    "MaxLengthRule",
    "MinLengthRule",
    "PatternRule",
    "PopinLoadConfig",
    "PopinSubmitConfig",
    "Predicate",
    "RequiredRule",
    "RulesObject",
    "StatusTemplates",
    "SubFormDescriptor",
    "SubmissionConfig",
    "ValidationRule",
]

#: A single value in a CaseContext.
ContextValue = Union[str, int, float, bool, None, list[Any]]

#: Flat discriminant map sent to the rules service.
CaseContext = dict[str, ContextValue]

#: Template evaluation environment (field values, case context, helpers).
FormContext = dict[str, Any]


class FieldType(str, Enum):
    """Field types supported by the form engine."""

    TEXT = "text"
    DROPDOWN = "dropdown"
    AUTOCOMPLETE = "autocomplete"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"
    FILE = "file"
    NUMBER = "number"
    BUTTON = "button"


class DescriptorModel(BaseModel):
    """Shared configuration for all descriptor documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        arbitrary_types_allowed=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict with camelCase keys, omitting None."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FieldItem(DescriptorModel):
    """One option of a dropdown, radio or autocomplete field."""

    label: str
    value: Union[bool, int, float, str]


class AuthConfig(DescriptorModel):
    """Authentication descriptor shared by data sources, popins and submission."""

    type: Literal["bearer", "apikey", "basic"]
    token: str | None = None
    header_name: str | None = None
    username: str | None = None
    password: str | None = None


class DataSourceConfig(DescriptorModel):
    """Dynamic option source for a field.

    Attributes:
        url: URL template evaluated against the form context
        items_template: Template turning one response element into an item
        iterator_template: Dotted path (or template) locating the array
        data_source_id: Trusted-proxy identifier; credentials stay server-side
        auth: Inline credentials for direct fetches
    """

    url: str
    items_template: str
    iterator_template: str | None = None
    data_source_id: str | None = None
    auth: AuthConfig | None = None


class StatusTemplates(DescriptorModel):
    """Templates deciding hidden/disabled/readonly state."""

    hidden: str | None = None
    disabled: str | None = None
    readonly: str | None = None


class ButtonMenuItem(DescriptorModel):
    label: str
    popin_block_id: str
    status: StatusTemplates | None = None


class ButtonConfig(DescriptorModel):
    variant: Literal["single", "menu", "link"]
    popin_block_id: str | None = None
    items: list[ButtonMenuItem] | None = None


@runtime_checkable
class Predicate(Protocol):
    """Capability carried by a custom validation rule.

    ``check`` returns True to pass, False to fail with the rule message, or
    a string to fail with that string as the message.
    """

    def check(self, value: Any) -> bool | str: ...


class _CallablePredicate:
    """Adapts a plain function to the Predicate protocol."""

    def __init__(self, func: Callable[[Any], bool | str]) -> None:
        self.func = func

    def check(self, value: Any) -> bool | str:
        return self.func(value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _CallablePredicate) and other.func is self.func

    def __hash__(self) -> int:
        return hash(self.func)

    def __repr__(self) -> str:
        return f"_CallablePredicate({self.func!r})"


class RequiredRule(DescriptorModel):
    type: Literal["required"] = "required"
    message: str


class MinLengthRule(DescriptorModel):
    type: Literal["minLength"] = "minLength"
    value: int
    message: str


class MaxLengthRule(DescriptorModel):
    type: Literal["maxLength"] = "maxLength"
    value: int
    message: str


class PatternRule(DescriptorModel):
    """Regex rule; ``value`` is a compiled pattern or a regex source string."""

    type: Literal["pattern"] = "pattern"
    value: Annotated[
        Union[str, re.Pattern],
        PlainSerializer(
            lambda v: v.pattern if isinstance(v, re.Pattern) else v, return_type=str
        ),
    ]
    message: str


class CustomRule(DescriptorModel):
    """Rule backed by an injected predicate; never serialized."""

    type: Literal["custom"] = "custom"
    value: Annotated[Predicate, Field(exclude=True)]
    message: str

    @field_validator("value", mode="before")
    @classmethod
    def _wrap_callable(cls, value: Any) -> Any:
        if isinstance(value, Predicate):
            return value
        if callable(value):
            return _CallablePredicate(value)
        raise ValueError("custom rule value must be callable or provide check()")


ValidationRule = Annotated[
    Union[RequiredRule, MinLengthRule, MaxLengthRule, PatternRule, CustomRule],
    Field(discriminator="type"),
]


class FieldDescriptor(DescriptorModel):
    """A single form field.

    Invariants: ``items`` and ``data_source`` are mutually exclusive, and
    ``button`` only appears on button fields.
    """

    id: str
    type: FieldType
    label: str
    description: str | None = None
    default_value: Union[bool, int, float, str, None] = None
    items: list[FieldItem] | None = None
    data_source: DataSourceConfig | None = None
    validation: list[ValidationRule] = Field(default_factory=list)
    is_discriminant: bool | None = None
    status: StatusTemplates | None = None
    button: ButtonConfig | None = None
    repeatable_group_id: str | None = None

    @model_validator(mode="after")
    def _check_exclusive_options(self) -> FieldDescriptor:
        if self.items is not None and self.data_source is not None:
            raise ValueError(
                f'Field "{self.id}" cannot declare both items and dataSource'
            )
        if self.button is not None and self.type is not FieldType.BUTTON:
            raise ValueError(
                f'Field "{self.id}" has button configuration but type "{self.type.value}"'
            )
        return self


class PopinLoadConfig(DescriptorModel):
    """Object data loaded when a popin opens, merged into the form context."""

    url: str
    data_source_id: str | None = None
    auth: AuthConfig | None = None


class PopinSubmitConfig(DescriptorModel):
    url: str
    method: Literal["POST", "PUT", "PATCH"]
    payload_template: str | None = None
    auth: AuthConfig | None = None


class BlockDescriptor(DescriptorModel):
    """A titled group of fields.

    Repeatable-reference invariants (``repeatable_block_ref`` requires
    ``repeatable``; the target is neither repeatable nor part of a cycle) are
    checked by the repeatable resolver so that invalid documents still load.
    """

    id: str
    title: str
    description: str | None = None
    fields: list[FieldDescriptor] = Field(default_factory=list)
    status: StatusTemplates | None = None
    sub_form_ref: str | None = None
    sub_form_instance_id: str | None = None
    popin: bool | None = None
    popin_load: PopinLoadConfig | None = None
    popin_submit: PopinSubmitConfig | None = None
    repeatable: bool | None = None
    min_instances: int | None = None
    max_instances: int | None = None
    repeatable_block_ref: str | None = None


class SubmissionConfig(DescriptorModel):
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH"]
    payload_template: str | None = None
    headers: dict[str, str] | None = None
    auth: AuthConfig | None = None


class GlobalFormDescriptor(DescriptorModel):
    """Root descriptor: all blocks plus the submission configuration."""

    id: str | None = None
    title: str | None = None
    version: str | None = None
    blocks: list[BlockDescriptor]
    submission: SubmissionConfig

    def iter_fields(self) -> Iterator[FieldDescriptor]:
        """Yield every field of every block, in document order."""
        for block in self.blocks:
            yield from block.fields

    def field_by_id(self, field_id: str) -> FieldDescriptor | None:
        """Return the first field with the given id, or None."""
        return next((f for f in self.iter_fields() if f.id == field_id), None)


class SubFormDescriptor(DescriptorModel):
    """Reusable fragment composed into a GlobalFormDescriptor via subFormRef."""

    id: str
    title: str
    version: str
    blocks: list[BlockDescriptor]
    submission: SubmissionConfig | None = None


class BlockRules(DescriptorModel):
    id: str
    status: StatusTemplates | None = None


class FieldRules(DescriptorModel):
    id: str
    validation: list[ValidationRule] | None = None
    status: StatusTemplates | None = None


class RulesObject(DescriptorModel):
    """Partial update document from the rules service, merged by id."""

    blocks: list[BlockRules] | None = None
    fields: list[FieldRules] | None = None


class CasePrefill(DescriptorModel):
    """Initial case data provided when the case is created."""

    incorporation_country: str | None = None
    onboarding_countries: list[str] | None = None
    process_type: str | None = None
    need_signature: bool | None = None
    addresses: list[dict[str, Any]] | None = None
