"""Template inheritance resolution for backup/restore configurations.

Resolve a declarative template (shared baseline, machine-specific overlays,
inheritance rules, conditional sections) into one flat, provenance-tagged
execution plan for the machine described by a :class:`MachineContext`.

>>> from lib_template_inheritance import resolve
>>> from lib_template_inheritance.testing import make_context
>>> resolved = resolve({"metadata": {"name": "Demo"}, "shared": {"files": [{"name": "A", "path": "/a"}]}}, make_context())
>>> resolved.find("files", "A")["inheritance_source"]
'shared'
"""

from __future__ import annotations

from .adapters.context.default import DefaultContextCollector, collect_context
from .application.conditions import ConditionEvaluator, PredicateRegistry
from .application.validation import SchemaRule, ValidationReport, ValidationSchema, validate
from .core import TemplateLoadError, load_template, resolve, resolve_file
from .domain.context import MachineContext
from .domain.errors import (
    ConditionEvaluationError,
    InvalidFormat,
    MergeTypeConflict,
    NotFound,
    SelectorEvaluationError,
    TemplateError,
    ValidationError,
)
from .domain.resolved import Contribution, Provenance, ResolvedConfig
from .domain.template import Template, parse_template
from .observability import bind_trace_id, get_logger, trace_scope

__all__ = [
    "ConditionEvaluationError",
    "ConditionEvaluator",
    "Contribution",
    "DefaultContextCollector",
    "InvalidFormat",
    "MachineContext",
    "MergeTypeConflict",
    "NotFound",
    "PredicateRegistry",
    "Provenance",
    "ResolvedConfig",
    "SchemaRule",
    "SelectorEvaluationError",
    "Template",
    "TemplateError",
    "TemplateLoadError",
    "ValidationError",
    "ValidationReport",
    "ValidationSchema",
    "bind_trace_id",
    "collect_context",
    "get_logger",
    "load_template",
    "parse_template",
    "resolve",
    "resolve_file",
    "trace_scope",
    "validate",
]
