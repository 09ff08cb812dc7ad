"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by the resolution passes, the template
loaders, the composition root, and consuming applications. The hierarchy lives
in the domain layer so outer layers may depend on it without creating cycles.

Contents
--------
* :class:`TemplateError` – umbrella base class for all template issues.
* :class:`InvalidFormat` – unparseable template files or structurally wrong
  template shapes.
* :class:`NotFound` – a template file that does not exist.
* :class:`SelectorEvaluationError` – a selector that cannot be evaluated.
* :class:`ConditionEvaluationError` – a condition that failed or timed out.
* :class:`MergeTypeConflict` – scalar vs. composite mismatch during a merge.
* :class:`ValidationError` – strict-mode validation failures.

System Role
-----------
Only :class:`ValidationError`, :class:`InvalidFormat` and :class:`NotFound`
ever leave the library. Selector, condition, and merge errors are raised by
low-level helpers and caught at the boundary of their pass, where they degrade
into ``False`` results or override-wins merges plus a log entry. Callers catch
:class:`TemplateError` to handle all library failures uniformly.
"""

from __future__ import annotations


class TemplateError(Exception):
    """Base type for all exceptions emitted by ``lib_template_inheritance``."""


class InvalidFormat(TemplateError):
    """Raised when a template cannot be parsed or has the wrong shape.

    Typical Sources
    ---------------
    Structured file loaders (:mod:`tomllib`, :mod:`json`, :mod:`yaml`) and the
    template model when, for example, ``machine_specific`` is not a list.
    """


class NotFound(TemplateError):
    """Represents a template file that does not exist."""


class SelectorEvaluationError(TemplateError):
    """A selector has an unknown type/operator or an invalid regular expression.

    Never fatal: the selector evaluates to ``False`` and the overlay it guards
    is skipped.
    """


class ConditionEvaluationError(TemplateError):
    """A condition could not be evaluated (unknown type, predicate error, timeout).

    Never fatal: the condition evaluates to ``False``.
    """


class MergeTypeConflict(TemplateError):
    """A merge met a list or mapping on one side and a scalar on the other.

    Resolved by atomic replacement with the incoming value; logged at info
    level.
    """

    def __init__(self, field: str, existing: object, incoming: object) -> None:
        self.field = field
        self.existing_type = type(existing).__name__
        self.incoming_type = type(incoming).__name__
        super().__init__(
            f"Type conflict on field '{field}': {self.existing_type} replaced by {self.incoming_type}"
        )


class ValidationError(TemplateError):
    """A resolved configuration failed strict validation.

    The message names the offending rule, field, or duplicate key. The caller
    decides whether to abort the whole backup/restore or skip the template.
    """
