"""Composition error taxonomy.

Every error raised while resolving a workload is a configuration-time error.
None of them is retryable: resolution aborts before any plan is produced.

Hierarchy:
    CompositionError
    ├── TemplateDefinitionError      malformed module/workload document
    ├── UndefinedReferenceError      reference to a parameter/output/module that does not exist
    │   └── MissingParameterError    required parameter without value or default
    ├── ConstraintViolationError     value fails a type/range/allowed-set constraint
    │   └── ExpressionEvaluationError  predicate or operator applied to the wrong types
    ├── CyclicDependencyError        module graph contains a cycle
    └── ExclusionInconsistencyError  included module consumes a real output of an excluded one
"""

from typing import Any


class CompositionError(Exception):
    """Base class for all resolution errors.

    Messages are formatted as ``[module-id] field: detail`` so the offending
    declaration can be located without a stack trace.
    """

    def __init__(self, detail: str, module_id: str | None = None, field: str | None = None):
        self.detail = detail
        self.module_id = module_id
        self.field = field
        super().__init__(self._format())

    def _format(self) -> str:
        prefix = f"[{self.module_id}] " if self.module_id else ""
        location = f"{self.field}: " if self.field else ""
        return f"{prefix}{location}{self.detail}"

    def locate(self, module_id: str | None, field: str | None) -> "CompositionError":
        """Fill in module id and field if the raising code did not know them."""
        if self.module_id is None:
            self.module_id = module_id
        if self.field is None:
            self.field = field
        self.args = (self._format(),)
        return self


class TemplateDefinitionError(CompositionError):
    """Raised when a module template or workload document is malformed."""

    pass


class UndefinedReferenceError(CompositionError):
    """Raised when a predicate or binding references something that does not exist."""

    def __init__(
        self,
        detail: str,
        module_id: str | None = None,
        field: str | None = None,
        reference: str | None = None,
    ):
        self.reference = reference
        super().__init__(detail, module_id=module_id, field=field)


class MissingParameterError(UndefinedReferenceError):
    """Raised when a required parameter has no supplied value and no default."""

    def __init__(self, parameter: str, module_id: str | None = None, field: str | None = None):
        self.parameter = parameter
        super().__init__(
            f"missing required parameter '{parameter}' (no value supplied and no default)",
            module_id=module_id,
            field=field or f"params.{parameter}",
            reference=parameter,
        )


class ConstraintViolationError(CompositionError):
    """Raised when a supplied value violates a declared constraint."""

    def __init__(
        self,
        parameter: str,
        value: Any,
        constraint: str,
        module_id: str | None = None,
        field: str | None = None,
        display_value: str | None = None,
    ):
        self.parameter = parameter
        self.value = value
        self.constraint = constraint
        shown = display_value if display_value is not None else repr(value)
        super().__init__(
            f"value {shown} violates constraint {constraint}",
            module_id=module_id,
            field=field or f"params.{parameter}",
        )


class CyclicDependencyError(CompositionError):
    """Raised when the module dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        path = " -> ".join([*cycle, cycle[0]]) if cycle else ""
        super().__init__(
            f"cyclic dependency between modules: {path}",
            module_id=cycle[0] if cycle else None,
            field="depends_on",
        )


class ExclusionInconsistencyError(CompositionError):
    """Raised when an included module consumes a real output of an excluded module."""

    def __init__(self, module_id: str, field: str, producer: str, output: str):
        self.producer = producer
        self.output = output
        super().__init__(
            f"consumes output '{producer}.{output}' but module '{producer}' is excluded; "
            "declare 'optional: true' or a 'fallback' value on the binding",
            module_id=module_id,
            field=field,
        )


__all__ = [
    "CompositionError",
    "ConstraintViolationError",
    "CyclicDependencyError",
    "ExclusionInconsistencyError",
    "MissingParameterError",
    "TemplateDefinitionError",
    "UndefinedReferenceError",
]
