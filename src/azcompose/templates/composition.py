"""Workload composition: conditional inclusion and output wiring.

Provides:
- Workload / ModuleInstance: the declarative composition model
- ParameterBinding / OutputBinding: typed edges between module instances
- DependencyGraph: deterministic topological ordering and cycle detection
- InclusionEvaluator: decides which module instances are realized
- WiringResolver: resolves bindings, substituting sentinels for excluded producers

A workload document looks like:

    name: data-platform
    target_scope: resourceGroup
    parameters:
      location:       {type: string, default: westeurope}
      deployKeyVault: {type: bool, default: true}
    variables:
      isProd: "environment == 'prod'"
    modules:
      - id: network
        template: network@>=1.0.0
        params:
          location: {param: location}
      - id: keyvault
        template: keyvault
        condition: deployKeyVault
        params:
          subnetId: {output: network.subnetId}
    outputs:
      vaultUri:
        type: string
        value: {output: keyvault.vaultUri, optional: true}

Philosophy:
- Exclusion is explicit: a consumer of a conditional module must say what it
  receives when the producer is absent (`optional: true` or `fallback:`)
- Everything is decided before any external call is made
"""

import copy
import heapq
import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from azcompose.templates.errors import (
    CompositionError,
    CyclicDependencyError,
    ExclusionInconsistencyError,
    MissingParameterError,
    TemplateDefinitionError,
    UndefinedReferenceError,
)
from azcompose.templates.expressions import Expression
from azcompose.templates.plan import OutputReference, Substitution
from azcompose.templates.registry import TemplateRegistry
from azcompose.templates.schema import ModuleTemplate, ParameterSpec, ParameterType
from azcompose.templates.versioning import parse_template_ref, validate_constraint

logger = logging.getLogger(__name__)

ID_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]*$")
TARGET_SCOPES = ("resourceGroup", "subscription", "managementGroup", "tenant")

_MODULE_KEYS = {"id", "template", "version", "condition", "params", "depends_on", "cascade", "description"}
_WORKLOAD_KEYS = {"name", "description", "target_scope", "parameters", "variables", "modules", "outputs"}


# ============================================================================
# BINDINGS
# ============================================================================


@dataclass(frozen=True)
class ParameterBinding:
    """Input bound to a workload parameter or variable: ``{param: location}``."""

    name: str


@dataclass(frozen=True)
class OutputBinding:
    """Input bound to another module's output: ``{output: network.subnetId}``.

    A strict binding (neither optional nor fallback) requires the producer to
    be included whenever the consumer is.
    """

    module: str
    output: str
    optional: bool = False
    fallback: Any = None
    has_fallback: bool = False

    @property
    def ref(self) -> str:
        return f"{self.module}.{self.output}"

    @property
    def strict(self) -> bool:
        return not self.optional and not self.has_fallback


def parse_binding(raw: Any, owner: str, path: str) -> Any:
    """Parse a raw parameter value, turning binding mappings into binding objects.

    Bindings may be nested anywhere inside lists and mappings.

    Raises:
        TemplateDefinitionError: If a binding mapping is malformed
    """
    if isinstance(raw, list):
        return [parse_binding(item, owner, f"{path}[{i}]") for i, item in enumerate(raw)]

    if not isinstance(raw, dict):
        return raw

    if "literal" in raw:
        if len(raw) != 1:
            raise TemplateDefinitionError("'literal' must be the only key", owner, path)
        return copy.deepcopy(raw["literal"])

    if "param" in raw:
        if len(raw) != 1 or not isinstance(raw["param"], str):
            raise TemplateDefinitionError(
                "parameter binding must be {param: <name>} (use {literal: ...} for plain objects)",
                owner,
                path,
            )
        return ParameterBinding(raw["param"])

    if "output" in raw:
        unknown = sorted(set(raw) - {"output", "optional", "fallback"})
        if unknown:
            raise TemplateDefinitionError(
                f"unknown keys in output binding: {', '.join(unknown)} "
                "(use {literal: ...} for plain objects)",
                owner,
                path,
            )
        ref = raw["output"]
        if not isinstance(ref, str) or ref.count(".") != 1 or not all(ref.split(".")):
            raise TemplateDefinitionError(
                f"output reference must look like '<module>.<output>', got {ref!r}", owner, path
            )
        optional = raw.get("optional", False)
        if not isinstance(optional, bool):
            raise TemplateDefinitionError("'optional' must be a boolean", owner, path)
        if optional and "fallback" in raw:
            raise TemplateDefinitionError("use either 'optional' or 'fallback', not both", owner, path)
        module, output = ref.split(".")
        return OutputBinding(
            module=module,
            output=output,
            optional=optional,
            fallback=copy.deepcopy(raw.get("fallback")),
            has_fallback="fallback" in raw,
        )

    return {key: parse_binding(value, owner, f"{path}.{key}") for key, value in raw.items()}


def iter_bindings(value: Any, path: str) -> Iterator[tuple[str, Any]]:
    """Yield (field path, binding) for every binding inside a parsed value."""
    if isinstance(value, (ParameterBinding, OutputBinding)):
        yield path, value
    elif isinstance(value, list):
        for i, item in enumerate(value):
            yield from iter_bindings(item, f"{path}[{i}]")
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from iter_bindings(item, f"{path}.{key}")


# ============================================================================
# MODEL
# ============================================================================


@dataclass
class ModuleInstance:
    """One instantiation of a module template inside a workload."""

    id: str
    template: str
    version: str | None = None
    condition: Expression | None = None
    params: dict[str, Any] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)
    cascade: bool = False
    description: str = ""

    def bindings(self) -> Iterator[tuple[str, Any]]:
        for name, value in self.params.items():
            yield from iter_bindings(value, f"params.{name}")

    def output_bindings(self) -> list[tuple[str, OutputBinding]]:
        return [(path, b) for path, b in self.bindings() if isinstance(b, OutputBinding)]

    def producers(self) -> set[str]:
        """Modules whose outputs this instance consumes."""
        return {b.module for _, b in self.output_bindings()}

    def upstream(self) -> set[str]:
        """All modules this instance must be realized after."""
        return self.producers() | set(self.depends_on)

    @classmethod
    def from_dict(cls, data: Any, index: int) -> "ModuleInstance":
        """Deserialize a module instance declaration.

        Raises:
            TemplateDefinitionError: If the declaration is malformed
        """
        location = f"modules[{index}]"
        if not isinstance(data, dict):
            raise TemplateDefinitionError("module declaration must be a mapping", None, location)

        module_id = data.get("id")
        if not isinstance(module_id, str) or not ID_PATTERN.match(module_id):
            raise TemplateDefinitionError(
                f"invalid module id {module_id!r} (alphanumeric, hyphens, underscores)", None, location
            )

        unknown = sorted(set(data) - _MODULE_KEYS)
        if unknown:
            raise TemplateDefinitionError(f"unknown keys: {', '.join(unknown)}", module_id, location)

        template_ref = data.get("template")
        if not isinstance(template_ref, str) or not template_ref:
            raise TemplateDefinitionError("missing 'template'", module_id, "template")
        template_name, constraint = parse_template_ref(template_ref)
        if "version" in data:
            if constraint:
                raise TemplateDefinitionError(
                    "version given both in 'template' and 'version'", module_id, "version"
                )
            constraint = str(data["version"])
        if constraint:
            try:
                validate_constraint(constraint)
            except ValueError as e:
                raise TemplateDefinitionError(str(e), module_id, "version") from e

        condition = None
        if data.get("condition") is not None:
            try:
                condition = Expression.parse(data["condition"])
            except TemplateDefinitionError as e:
                raise e.locate(module_id, "condition")

        params = data.get("params") or {}
        if not isinstance(params, dict):
            raise TemplateDefinitionError("'params' must be a mapping", module_id, "params")

        depends_on = data.get("depends_on") or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]
        if not isinstance(depends_on, list) or not all(isinstance(d, str) for d in depends_on):
            raise TemplateDefinitionError("'depends_on' must be a list of module ids", module_id, "depends_on")

        cascade = data.get("cascade", False)
        if not isinstance(cascade, bool):
            raise TemplateDefinitionError("'cascade' must be a boolean", module_id, "cascade")

        return cls(
            id=module_id,
            template=template_name,
            version=constraint,
            condition=condition,
            params={
                str(name): parse_binding(value, module_id, f"params.{name}")
                for name, value in params.items()
            },
            depends_on=list(depends_on),
            cascade=cascade,
            description=data.get("description", ""),
        )


@dataclass
class WorkloadOutput:
    """Value a workload exposes to downstream compositions or automation."""

    name: str
    type: ParameterType
    value: Any
    description: str = ""


@dataclass
class Workload:
    """Top-level composition wiring module instances together."""

    name: str
    description: str = ""
    target_scope: str = "resourceGroup"
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)
    variables: dict[str, Expression] = field(default_factory=dict)
    modules: list[ModuleInstance] = field(default_factory=list)
    outputs: dict[str, WorkloadOutput] = field(default_factory=dict)

    @property
    def module_ids(self) -> list[str]:
        return [m.id for m in self.modules]

    def module(self, module_id: str) -> ModuleInstance | None:
        return next((m for m in self.modules if m.id == module_id), None)

    def output_bindings(self) -> list[tuple[str, OutputBinding]]:
        """Output bindings used by the workload's own outputs."""
        found = []
        for name, output in self.outputs.items():
            for path, binding in iter_bindings(output.value, f"outputs.{name}.value"):
                if isinstance(binding, OutputBinding):
                    found.append((path, binding))
        return found

    @classmethod
    def from_dict(cls, data: Any) -> "Workload":
        """Deserialize a workload document.

        Raises:
            TemplateDefinitionError: If the document is malformed
        """
        if not isinstance(data, dict):
            raise TemplateDefinitionError("workload must be a mapping")

        name = data.get("name")
        if not isinstance(name, str) or not ID_PATTERN.match(name):
            raise TemplateDefinitionError(f"invalid workload name {name!r}")

        unknown = sorted(set(data) - _WORKLOAD_KEYS)
        if unknown:
            raise TemplateDefinitionError(f"unknown keys: {', '.join(unknown)}", name)

        target_scope = data.get("target_scope", "resourceGroup")
        if target_scope not in TARGET_SCOPES:
            raise TemplateDefinitionError(
                f"target_scope must be one of: {', '.join(TARGET_SCOPES)}", name, "target_scope"
            )

        raw_parameters = data.get("parameters") or {}
        raw_variables = data.get("variables") or {}
        raw_modules = data.get("modules") or []
        raw_outputs = data.get("outputs") or {}

        if not isinstance(raw_parameters, dict):
            raise TemplateDefinitionError("'parameters' must be a mapping", name, "parameters")
        if not isinstance(raw_variables, dict):
            raise TemplateDefinitionError("'variables' must be a mapping", name, "variables")
        if not isinstance(raw_modules, list):
            raise TemplateDefinitionError("'modules' must be a list", name, "modules")
        if not isinstance(raw_outputs, dict):
            raise TemplateDefinitionError("'outputs' must be a mapping", name, "outputs")

        parameters = {
            str(p): ParameterSpec.from_dict(str(p), spec, owner=name) for p, spec in raw_parameters.items()
        }

        variables: dict[str, Expression] = {}
        for var_name, source in raw_variables.items():
            var_name = str(var_name)
            if var_name in parameters:
                raise TemplateDefinitionError(
                    f"variable '{var_name}' shadows a parameter", name, f"variables.{var_name}"
                )
            try:
                variables[var_name] = Expression.parse(source)
            except TemplateDefinitionError as e:
                raise e.locate(name, f"variables.{var_name}")

        modules = [ModuleInstance.from_dict(entry, i) for i, entry in enumerate(raw_modules)]
        seen: set[str] = set()
        for module in modules:
            if module.id in seen:
                raise TemplateDefinitionError("duplicate module id", module.id, "id")
            seen.add(module.id)

        outputs = {}
        for out_name, spec in raw_outputs.items():
            out_name = str(out_name)
            location = f"outputs.{out_name}"
            if not isinstance(spec, dict) or "type" not in spec or "value" not in spec:
                raise TemplateDefinitionError("output needs 'type' and 'value'", name, location)
            try:
                out_type = ParameterType.from_string(spec["type"])
            except TemplateDefinitionError as e:
                raise TemplateDefinitionError(e.detail, name, location) from e
            outputs[out_name] = WorkloadOutput(
                name=out_name,
                type=out_type,
                value=parse_binding(spec["value"], name, f"{location}.value"),
                description=spec.get("description", ""),
            )

        return cls(
            name=name,
            description=data.get("description", ""),
            target_scope=target_scope,
            parameters=parameters,
            variables=variables,
            modules=modules,
            outputs=outputs,
        )


# ============================================================================
# DEPENDENCY GRAPH
# ============================================================================


class DependencyGraph:
    """Directed graph of module ids; edges point from a module to its upstream modules."""

    def __init__(self, edges: Mapping[str, Iterable[str]]):
        self.nodes = sorted(edges)
        node_set = set(self.nodes)
        self.upstream: dict[str, set[str]] = {
            node: {u for u in edges[node] if u in node_set} for node in self.nodes
        }
        self.downstream: dict[str, set[str]] = {node: set() for node in self.nodes}
        for node, ups in self.upstream.items():
            for up in ups:
                self.downstream[up].add(node)

    def subgraph(self, nodes: Iterable[str]) -> "DependencyGraph":
        """Graph restricted to ``nodes``; edges to other nodes are dropped."""
        keep = set(nodes)
        return DependencyGraph({n: self.upstream[n] & keep for n in self.nodes if n in keep})

    def topological_order(self) -> list[str]:
        """Kahn's algorithm; ties broken by module-id lexical order.

        Raises:
            CyclicDependencyError: If the graph contains a cycle
        """
        in_degree = {node: len(ups) for node, ups in self.upstream.items()}
        ready = [node for node, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        order = []

        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for dependent in self.downstream[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(order) < len(self.nodes):
            done = set(order)
            remaining = {n for n in self.nodes if n not in done}
            raise CyclicDependencyError(self.find_cycle(remaining))

        return order

    def find_cycle(self, candidates: set[str]) -> list[str]:
        """Find one cycle among nodes left over by Kahn's algorithm.

        Every leftover node has an upstream edge to another leftover node, so
        walking upstream edges must revisit a node.
        """
        path: list[str] = []
        position: dict[str, int] = {}
        node = min(candidates)
        while node not in position:
            position[node] = len(path)
            path.append(node)
            node = min(self.upstream[node] & candidates)
        cycle = path[position[node] :]

        # Rotate so the cycle starts at its smallest id
        start = cycle.index(min(cycle))
        return cycle[start:] + cycle[:start]


# ============================================================================
# CONDITIONAL INCLUSION
# ============================================================================


@dataclass
class InclusionResult:
    """Which module instances are realized, and why the others are not."""

    included: set[str] = field(default_factory=set)
    excluded: dict[str, str] = field(default_factory=dict)  # module id -> reason

    def is_included(self, module_id: str) -> bool:
        return module_id in self.included


class InclusionEvaluator:
    """Evaluate inclusion predicates over resolved workload parameters."""

    def __init__(self, workload: Workload):
        self.workload = workload

    def check_references(self) -> None:
        """Statically check variables and predicates for undefined names.

        Variables may use parameters and earlier variables. Predicates may use
        parameters and any variable.

        Raises:
            UndefinedReferenceError: For undefined or forward references
            MissingParameterError: For predicates naming an undeclared parameter
        """
        known = set(self.workload.parameters)
        variable_names = list(self.workload.variables)

        for index, (var_name, expression) in enumerate(self.workload.variables.items()):
            for ref in sorted(expression.references - known):
                if ref in variable_names[index:]:
                    detail = f"forward reference to variable '{ref}' (declare it earlier)"
                else:
                    detail = f"references undefined name '{ref}'"
                raise UndefinedReferenceError(
                    detail, module_id=self.workload.name, field=f"variables.{var_name}", reference=ref
                )
            known.add(var_name)

        for module in self.workload.modules:
            if module.condition is None:
                continue
            undefined = sorted(module.condition.references - known)
            if undefined:
                raise MissingParameterError(undefined[0], module_id=module.id, field="condition")

    def build_scope(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        """Evaluate variables in declaration order on top of validated parameters."""
        scope = dict(parameters)
        for var_name, expression in self.workload.variables.items():
            try:
                scope[var_name] = expression.evaluate(scope)
            except CompositionError as e:
                raise e.locate(self.workload.name, f"variables.{var_name}")
        return scope

    def evaluate(self, scope: Mapping[str, Any], order: list[str]) -> InclusionResult:
        """Decide inclusion for every module instance.

        Args:
            scope: Workload parameters and variables
            order: Topological order of the full module graph (for cascades)

        Returns:
            InclusionResult
        """
        result = InclusionResult()
        decided: dict[str, bool] = {}

        for module in self.workload.modules:
            if module.condition is None:
                decided[module.id] = True
                continue
            try:
                decided[module.id] = module.condition.evaluate_bool(scope)
            except CompositionError as e:
                raise e.locate(module.id, "condition")
            if not decided[module.id]:
                result.excluded[module.id] = f"condition {module.condition.source!r} is false"

        # Cascading exclusion follows dependency order so chains collapse in one pass
        for module_id in order:
            module = self.workload.module(module_id)
            if module is None or not module.cascade or not decided[module_id]:
                continue
            for _, binding in module.output_bindings():
                if binding.strict and not decided.get(binding.module, False):
                    decided[module_id] = False
                    result.excluded[module_id] = f"upstream module '{binding.module}' is excluded"
                    break

        result.included = {module_id for module_id, included in decided.items() if included}
        for module_id in sorted(result.excluded):
            logger.debug(f"Excluding module '{module_id}': {result.excluded[module_id]}")
        return result


# ============================================================================
# OUTPUT WIRING
# ============================================================================


class WiringResolver:
    """Resolve module references, build the dependency graph and wire values."""

    def __init__(self, workload: Workload, registry: TemplateRegistry):
        self.workload = workload
        self.registry = registry

    def resolve_templates(self) -> dict[str, ModuleTemplate]:
        """Look up the template version used by each module instance.

        Raises:
            UndefinedReferenceError: If a template is unknown or no version satisfies the constraint
        """
        templates = {}
        for module in self.workload.modules:
            template = self.registry.get(module.template, module.version)
            if template is None:
                if self.registry.exists(module.template):
                    available = ", ".join(str(v) for v in self.registry.versions(module.template))
                    detail = (
                        f"no version of template '{module.template}' satisfies "
                        f"'{module.version}' (available: {available})"
                    )
                else:
                    detail = f"unknown template '{module.template}'"
                raise UndefinedReferenceError(
                    detail, module_id=module.id, field="template", reference=module.template
                )
            templates[module.id] = template
        return templates

    def check_references(self, templates: Mapping[str, ModuleTemplate]) -> None:
        """Statically validate every binding and depends_on edge.

        Raises:
            UndefinedReferenceError: For unknown parameters, modules or outputs
            TemplateDefinitionError: For fallback values of the wrong type
        """
        for module in self.workload.modules:
            template = templates[module.id]
            for name in module.params:
                if name not in template.parameters:
                    raise UndefinedReferenceError(
                        f"template '{template.ref}' declares no parameter '{name}'",
                        module_id=module.id,
                        field=f"params.{name}",
                        reference=name,
                    )

            for path, binding in module.bindings():
                self._check_binding(module.id, path, binding, templates)

            for upstream in module.depends_on:
                if self.workload.module(upstream) is None:
                    raise UndefinedReferenceError(
                        f"depends on unknown module '{upstream}'",
                        module_id=module.id,
                        field="depends_on",
                        reference=upstream,
                    )

        for name, output in self.workload.outputs.items():
            for path, binding in iter_bindings(output.value, f"outputs.{name}.value"):
                self._check_binding(self.workload.name, path, binding, templates)

    def _check_binding(
        self, owner: str, path: str, binding: Any, templates: Mapping[str, ModuleTemplate]
    ) -> None:
        if isinstance(binding, ParameterBinding):
            if binding.name not in self.workload.parameters and binding.name not in self.workload.variables:
                raise UndefinedReferenceError(
                    f"references undefined parameter '{binding.name}'",
                    module_id=owner,
                    field=path,
                    reference=binding.name,
                )
            return

        if binding.module not in templates:
            raise UndefinedReferenceError(
                f"references output of unknown module '{binding.module}'",
                module_id=owner,
                field=path,
                reference=binding.ref,
            )
        producer = templates[binding.module]
        if binding.output not in producer.outputs:
            raise UndefinedReferenceError(
                f"module '{binding.module}' ({producer.ref}) has no output '{binding.output}'",
                module_id=owner,
                field=path,
                reference=binding.ref,
            )
        output_type = producer.outputs[binding.output].type
        if binding.has_fallback and not output_type.accepts(binding.fallback):
            raise TemplateDefinitionError(
                f"fallback {binding.fallback!r} does not match output type '{output_type.value}'",
                owner,
                path,
            )

    def build_graph(self) -> DependencyGraph:
        return DependencyGraph({m.id: m.upstream() for m in self.workload.modules})

    def wire(
        self,
        templates: Mapping[str, ModuleTemplate],
        inclusion: InclusionResult,
        scope: Mapping[str, Any],
    ) -> tuple[dict[str, dict[str, Any]], list[Substitution]]:
        """Resolve the inputs of every included module.

        Returns:
            Tuple of (module id -> resolved params, substitutions made)

        Raises:
            ExclusionInconsistencyError: If an included module strictly consumes an excluded one
        """
        substitutions: list[Substitution] = []
        wired = {}
        for module in self.workload.modules:
            if not inclusion.is_included(module.id):
                continue
            wired[module.id] = {
                name: self.resolve_value(
                    value, module.id, f"params.{name}", templates, inclusion, scope, substitutions
                )
                for name, value in module.params.items()
            }
        return wired, substitutions

    def resolve_value(
        self,
        value: Any,
        owner: str,
        path: str,
        templates: Mapping[str, ModuleTemplate],
        inclusion: InclusionResult,
        scope: Mapping[str, Any],
        substitutions: list[Substitution],
    ) -> Any:
        """Replace bindings inside ``value`` with concrete values or placeholders."""
        if isinstance(value, ParameterBinding):
            return copy.deepcopy(scope[value.name])

        if isinstance(value, OutputBinding):
            output_spec = templates[value.module].outputs[value.output]
            if inclusion.is_included(value.module):
                return OutputReference(value.module, value.output, output_spec.type)
            if value.strict:
                raise ExclusionInconsistencyError(owner, path, value.module, value.output)

            if value.has_fallback:
                substituted, reason = copy.deepcopy(value.fallback), "fallback"
            else:
                substituted, reason = output_spec.sentinel_value(), "sentinel"
            substitutions.append(
                Substitution(owner, path, value.module, value.output, substituted, reason)
            )
            logger.debug(f"[{owner}] {path}: '{value.ref}' excluded, using {reason} {substituted!r}")
            return substituted

        if isinstance(value, list):
            return [
                self.resolve_value(item, owner, f"{path}[{i}]", templates, inclusion, scope, substitutions)
                for i, item in enumerate(value)
            ]

        if isinstance(value, dict):
            return {
                key: self.resolve_value(item, owner, f"{path}.{key}", templates, inclusion, scope, substitutions)
                for key, item in value.items()
            }

        return copy.deepcopy(value)


__all__ = [
    "DependencyGraph",
    "ID_PATTERN",
    "InclusionEvaluator",
    "InclusionResult",
    "ModuleInstance",
    "OutputBinding",
    "ParameterBinding",
    "TARGET_SCOPES",
    "WiringResolver",
    "Workload",
    "WorkloadOutput",
    "iter_bindings",
    "parse_binding",
]
