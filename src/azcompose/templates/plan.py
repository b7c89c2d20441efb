"""Realization plan: the output of composition resolution.

The plan lists the included module instances in dependency order with their
validated, defaulted inputs. Values that only exist after realization (module
outputs) appear as OutputReference placeholders. Excluded modules and every
sentinel/fallback substitution are recorded so the plan explains itself.
"""

import copy
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from azcompose.log_sanitizer import LogSanitizer
from azcompose.templates.bundles import SecretReference
from azcompose.templates.schema import ParameterType


@dataclass(frozen=True)
class OutputReference:
    """Deferred value: an output of an included module, known only after realization."""

    module: str
    output: str
    type: ParameterType

    @property
    def ref(self) -> str:
        return f"{self.module}.{self.output}"

    def to_dict(self) -> dict[str, str]:
        return {"$output": self.ref}

    def __str__(self) -> str:
        return f"{self.module}.outputs.{self.output}"


@dataclass(frozen=True)
class Substitution:
    """A binding to an excluded module's output, replaced by a sentinel or fallback."""

    module_id: str
    field: str
    producer: str
    output: str
    value: Any
    reason: str  # "sentinel" or "fallback"

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module_id,
            "field": self.field,
            "producer": f"{self.producer}.{self.output}",
            "value": copy.deepcopy(self.value),
            "reason": self.reason,
        }


def render_value(value: Any) -> Any:
    """Convert plan values (including placeholders) into JSON-compatible data."""
    if isinstance(value, (OutputReference, SecretReference)):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: render_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [render_value(v) for v in value]
    return value


@dataclass
class PlannedModule:
    """One step of the realization plan."""

    id: str
    template: str
    version: str
    inputs: dict[str, Any] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)
    secure_inputs: set[str] = field(default_factory=set)

    @property
    def ref(self) -> str:
        return f"{self.template}@{self.version}"

    def to_dict(self, redact: bool = True) -> dict[str, Any]:
        inputs = render_value(self.inputs)
        if redact:
            inputs = LogSanitizer.redact_parameters(inputs, self.secure_inputs)
        return {
            "id": self.id,
            "template": self.ref,
            "depends_on": list(self.depends_on),
            "inputs": inputs,
        }


@dataclass
class RealizationPlan:
    """Ordered, validated plan for realizing one workload."""

    workload: str
    target_scope: str
    steps: list[PlannedModule] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
    substitutions: list[Substitution] = field(default_factory=list)
    parameters: dict[str, Any] = field(default_factory=dict)
    secure_parameters: set[str] = field(default_factory=set)
    outputs: dict[str, Any] = field(default_factory=dict)
    secure_outputs: set[str] = field(default_factory=set)
    warnings: list[str] = field(default_factory=list)
    scope_id: str | None = None
    tenant: str | None = None
    environment: str | None = None

    @property
    def order(self) -> list[str]:
        """Module ids in realization order."""
        return [step.id for step in self.steps]

    def step(self, module_id: str) -> PlannedModule | None:
        return next((s for s in self.steps if s.id == module_id), None)

    def is_included(self, module_id: str) -> bool:
        return self.step(module_id) is not None

    def to_dict(self, redact: bool = True) -> dict[str, Any]:
        parameters = render_value(self.parameters)
        outputs = render_value(self.outputs)
        if redact:
            parameters = LogSanitizer.redact_parameters(parameters, self.secure_parameters)
            outputs = LogSanitizer.redact_parameters(outputs, self.secure_outputs)
        return {
            "workload": self.workload,
            "target_scope": self.target_scope,
            "scope_id": self.scope_id,
            "tenant": self.tenant,
            "environment": self.environment,
            "parameters": parameters,
            "steps": [step.to_dict(redact=redact) for step in self.steps],
            "excluded": list(self.excluded),
            "substitutions": [s.to_dict() for s in self.substitutions],
            "outputs": outputs,
            "warnings": list(self.warnings),
        }

    def to_json(self, indent: int | None = 2, redact: bool = True) -> str:
        return json.dumps(self.to_dict(redact=redact), indent=indent)

    @property
    def digest(self) -> str:
        """Stable content hash of the (redacted) plan.

        Identical inputs produce identical digests, so two plans can be
        compared without diffing them.
        """
        canonical = json.dumps(self.to_dict(redact=True), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


__all__ = ["OutputReference", "PlannedModule", "RealizationPlan", "Substitution", "render_value"]
