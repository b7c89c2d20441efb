"""Composition resolver: workload + catalog + bundle -> realization plan.

Resolution is a pure function of its inputs. The pipeline runs every check
before any plan is produced:

1. Static analysis: template lookup, reference checks, cycle check, lint
2. Target scope check (when a scope id is supplied)
3. Workload parameter validation and defaulting
4. Variable evaluation
5. Conditional inclusion
6. Output wiring (sentinel/fallback substitution for excluded producers)
7. Per-module parameter validation
8. Ordering of the included modules
9. Workload outputs

Any failure raises a CompositionError subclass and no plan is returned.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from azcompose.templates.bundles import ParameterBundle
from azcompose.templates.composition import (
    DependencyGraph,
    InclusionEvaluator,
    InclusionResult,
    ParameterBinding,
    WiringResolver,
    Workload,
    iter_bindings,
)
from azcompose.templates.errors import CompositionError, ConstraintViolationError
from azcompose.templates.lint import CompositionLinter
from azcompose.templates.plan import OutputReference, PlannedModule, RealizationPlan, Substitution
from azcompose.templates.registry import TemplateRegistry
from azcompose.templates.schema import ModuleTemplate
from azcompose.templates.validation import ParameterValidator, ValidationResult, check_defaults

logger = logging.getLogger(__name__)

_GUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

SCOPE_PATTERNS: dict[str, re.Pattern] = {
    "resourceGroup": re.compile(rf"^/subscriptions/{_GUID}/resourceGroups/[-\w.()]{{1,90}}$", re.IGNORECASE),
    "subscription": re.compile(rf"^/subscriptions/{_GUID}$", re.IGNORECASE),
    "managementGroup": re.compile(
        r"^/providers/Microsoft\.Management/managementGroups/[-\w.()]{1,90}$", re.IGNORECASE
    ),
    "tenant": re.compile(r"^/$"),
}

_SCOPE_SHAPES = {
    "resourceGroup": "/subscriptions/<guid>/resourceGroups/<name>",
    "subscription": "/subscriptions/<guid>",
    "managementGroup": "/providers/Microsoft.Management/managementGroups/<name>",
    "tenant": "/",
}


@dataclass
class StaticAnalysis:
    """Everything that can be decided about a workload without parameter values."""

    templates: dict[str, ModuleTemplate]
    graph: DependencyGraph
    order: list[str]
    lint: ValidationResult


def check_target_scope(workload: Workload, scope_id: str | None) -> None:
    """Check that a deployment scope id has the shape the workload targets.

    Raises:
        ConstraintViolationError: If the scope id does not match the target scope
    """
    if scope_id is None:
        return
    if not SCOPE_PATTERNS[workload.target_scope].match(scope_id):
        raise ConstraintViolationError(
            "scope",
            scope_id,
            f"target_scope {workload.target_scope} ({_SCOPE_SHAPES[workload.target_scope]})",
            module_id=workload.name,
            field="target_scope",
        )


def secret_names(workload: Workload) -> set[str]:
    """Return the secure workload parameters plus every variable computed from one."""
    tainted = {name for name, spec in workload.parameters.items() if spec.secure}
    for name, expression in workload.variables.items():
        if expression.references & tainted:
            tainted.add(name)
    return tainted


def _carries_secret(value: Any, tainted: set[str]) -> bool:
    return any(
        isinstance(binding, ParameterBinding) and binding.name in tainted
        for _, binding in iter_bindings(value, "")
    )


class CompositionResolver:
    """Compute realization plans for workloads against a template registry.

    Example:
        >>> resolver = CompositionResolver(registry)
        >>> plan = resolver.resolve(workload, {"deployKeyVault": False})
        >>> plan.order
        ['network']
    """

    def __init__(self, registry: TemplateRegistry, allow_unknown_parameters: bool = False):
        self.registry = registry
        self.allow_unknown_parameters = allow_unknown_parameters
        self.validator = ParameterValidator()

    def analyze(self, workload: Workload) -> StaticAnalysis:
        """Run every check that does not need parameter values.

        Raises:
            UndefinedReferenceError: For unknown templates, modules, outputs or parameters
            MissingParameterError: For predicates naming an undeclared parameter
            TemplateDefinitionError: For invalid workload defaults or fallbacks
            CyclicDependencyError: If the declared module graph has a cycle
        """
        wiring = WiringResolver(workload, self.registry)
        templates = wiring.resolve_templates()
        wiring.check_references(templates)
        InclusionEvaluator(workload).check_references()
        check_defaults(workload.name, workload.parameters)

        graph = wiring.build_graph()
        order = graph.topological_order()

        lint = CompositionLinter(workload, templates).lint()
        for warning in lint.warnings:
            logger.warning(f"Lint: {warning}")

        return StaticAnalysis(templates=templates, graph=graph, order=order, lint=lint)

    def validate(self, workload: Workload, strict: bool = False) -> ValidationResult:
        """Statically validate a workload without resolving it.

        Args:
            workload: Workload to check
            strict: Report lint warnings as errors

        Returns:
            ValidationResult; is_valid is False on the first composition error
        """
        try:
            analysis = self.analyze(workload)
        except CompositionError as e:
            return ValidationResult(is_valid=False, errors=[str(e)])

        if strict and analysis.lint.warnings:
            return ValidationResult(
                is_valid=False,
                errors=list(analysis.lint.warnings),
                issues_detailed=analysis.lint.issues_detailed,
            )
        return analysis.lint

    def resolve(
        self,
        workload: Workload,
        bundle: ParameterBundle | Mapping[str, Any] | None = None,
        scope_id: str | None = None,
    ) -> RealizationPlan:
        """Resolve a workload into a realization plan.

        Args:
            workload: Workload to resolve
            bundle: Parameter values (bundle or plain mapping); None means defaults only
            scope_id: Optional deployment scope id checked against the target scope

        Returns:
            RealizationPlan

        Raises:
            CompositionError: Any composition error; no partial plan is produced
        """
        if not isinstance(bundle, ParameterBundle):
            bundle = ParameterBundle(values=dict(bundle or {}))

        analysis = self.analyze(workload)
        check_target_scope(workload, scope_id)

        warnings = list(analysis.lint.warnings)
        parameters = self.validator.validate(
            workload.name,
            workload.parameters,
            bundle.values,
            allow_unknown=self.allow_unknown_parameters,
            warnings=warnings,
            field_prefix="parameters",
        )

        evaluator = InclusionEvaluator(workload)
        scope = evaluator.build_scope(parameters)
        inclusion = evaluator.evaluate(scope, analysis.order)

        wiring = WiringResolver(workload, self.registry)
        wired, substitutions = wiring.wire(analysis.templates, inclusion, scope)

        records = {
            module_id: self.validator.validate(module_id, analysis.templates[module_id].parameters, values)
            for module_id, values in wired.items()
        }

        order = analysis.graph.subgraph(inclusion.included).topological_order()
        tainted = secret_names(workload)
        outputs = self._resolve_outputs(workload, wiring, analysis, inclusion, scope, substitutions)

        steps = []
        for module_id in order:
            template = analysis.templates[module_id]
            steps.append(
                PlannedModule(
                    id=module_id,
                    template=template.name,
                    version=str(template.version),
                    inputs=records[module_id],
                    depends_on=sorted(analysis.graph.upstream[module_id] & inclusion.included),
                    secure_inputs=self._secure_inputs(workload.module(module_id).params, template, tainted),
                )
            )

        plan = RealizationPlan(
            workload=workload.name,
            target_scope=workload.target_scope,
            steps=steps,
            excluded=sorted(inclusion.excluded),
            substitutions=substitutions,
            parameters=parameters,
            secure_parameters={name for name, spec in workload.parameters.items() if spec.secure},
            outputs=outputs,
            secure_outputs={
                name
                for name, output in workload.outputs.items()
                if output.type.is_secure or _carries_secret(output.value, tainted)
            },
            warnings=warnings,
            scope_id=scope_id,
            tenant=bundle.tenant,
            environment=bundle.environment,
        )

        logger.info(
            f"Resolved workload '{workload.name}' ({bundle.label}): "
            f"{len(plan.steps)} modules included, {len(plan.excluded)} excluded, "
            f"{len(plan.substitutions)} substitutions"
        )
        return plan

    def _secure_inputs(self, params: Mapping[str, Any], template: ModuleTemplate, tainted: set[str]) -> set[str]:
        secure = {name for name, spec in template.parameters.items() if spec.secure}
        secure.update(name for name, value in params.items() if _carries_secret(value, tainted))
        return secure

    def _resolve_outputs(
        self,
        workload: Workload,
        wiring: WiringResolver,
        analysis: StaticAnalysis,
        inclusion: InclusionResult,
        scope: Mapping[str, Any],
        substitutions: list[Substitution],
    ) -> dict[str, Any]:
        outputs = {}
        for name, output in workload.outputs.items():
            location = f"outputs.{name}.value"
            value = wiring.resolve_value(
                output.value, workload.name, location, analysis.templates, inclusion, scope, substitutions
            )
            if isinstance(value, OutputReference):
                matches = output.type.compatible_with(value.type)
            else:
                matches = output.type.accepts(value)
            if not matches:
                raise ConstraintViolationError(
                    name, value, f"type {output.type.value}", module_id=workload.name, field=location
                )
            outputs[name] = value
        return outputs


__all__ = ["CompositionResolver", "SCOPE_PATTERNS", "StaticAnalysis", "check_target_scope", "secret_names"]
