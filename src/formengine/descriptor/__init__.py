"""Descriptor data model and the pure transformations applied to it.

This package provides:
- Pydantic models for descriptors, rules updates and case context
- Merge of rules updates into a descriptor
- Repeatable block reference and sub-form resolution
- Block lookup and default value derivation
"""

from formengine.descriptor.blocks import BlockLookupCache, ResolvedBlock
from formengine.descriptor.defaults import (
    evaluate_default_value,
    extract_default_values,
    fields_with_template_defaults,
)
from formengine.descriptor.merge import merge_descriptor_with_rules
from formengine.descriptor.models import (
    AuthConfig,
    BlockDescriptor,
    BlockRules,
    ButtonConfig,
    ButtonMenuItem,
    CaseContext,
    CasePrefill,
    ContextValue,
    CustomRule,
    DataSourceConfig,
    FieldDescriptor,
    FieldItem,
    FieldRules,
    FieldType,
    FormContext,
    GlobalFormDescriptor,
    MaxLengthRule,
    MinLengthRule,
    PatternRule,
    PopinLoadConfig,
    PopinSubmitConfig,
    Predicate,
    RequiredRule,
    RulesObject,
    StatusTemplates,
    SubFormDescriptor,
    SubmissionConfig,
    ValidationRule,
)
from formengine.descriptor.repeatable import (
    repeatable_group_id,
    resolve_repeatable_blocks,
)
from formengine.descriptor.subforms import resolve_sub_forms

__all__ = [
    # Models
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
    # Transformations
    "BlockLookupCache",
    "ResolvedBlock",
    "evaluate_default_value",
    "extract_default_values",
    "fields_with_template_defaults",
    "merge_descriptor_with_rules",
    "repeatable_group_id",
    "resolve_repeatable_blocks",
    "resolve_sub_forms",
]
