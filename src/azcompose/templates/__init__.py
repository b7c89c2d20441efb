"""Template composition system - Schema, Versioning, Registry, Composition, Validation.

This package resolves declarative workloads into realization plans:
- Schema: Typed module template parameters and outputs
- Versioning: Semantic versions and constraint matching
- Registry: Template lookup and discovery
- Composition: Conditional inclusion and output wiring
- Validation: Parameter validation, defaulting and linting

Philosophy:
- Fail fast: every error is raised before a plan exists
- Deterministic: identical inputs give identical plans
- Pure: no cloud calls, no I/O outside bundle loading

Public API:
"""

from azcompose.templates.bundles import (
    BundleError,
    ParameterBundle,
    SecretReference,
)

from azcompose.templates.errors import (
    CompositionError,
    ConstraintViolationError,
    CyclicDependencyError,
    ExclusionInconsistencyError,
    MissingParameterError,
    TemplateDefinitionError,
    UndefinedReferenceError,
)

from azcompose.templates.expressions import (
    Expression,
    ExpressionEvaluationError,
)

from azcompose.templates.schema import (
    ModuleTemplate,
    OutputSpec,
    ParameterSpec,
    ParameterType,
)

from azcompose.templates.versioning import (
    TemplateVersion,
)

from azcompose.templates.registry import (
    TemplateRegistry,
)

from azcompose.templates.composition import (
    DependencyGraph,
    InclusionEvaluator,
    ModuleInstance,
    WiringResolver,
    Workload,
)

from azcompose.templates.validation import (
    LintIssue,
    ParameterValidator,
    ValidationResult,
)

from azcompose.templates.lint import (
    CompositionLinter,
)

from azcompose.templates.plan import (
    OutputReference,
    PlannedModule,
    RealizationPlan,
    Substitution,
)

from azcompose.templates.resolver import (
    CompositionResolver,
)

__all__ = [
    # Bundles
    "BundleError",
    "ParameterBundle",
    "SecretReference",
    # Errors
    "CompositionError",
    "ConstraintViolationError",
    "CyclicDependencyError",
    "ExclusionInconsistencyError",
    "MissingParameterError",
    "TemplateDefinitionError",
    "UndefinedReferenceError",
    # Expressions
    "Expression",
    "ExpressionEvaluationError",
    # Schema
    "ModuleTemplate",
    "OutputSpec",
    "ParameterSpec",
    "ParameterType",
    # Versioning
    "TemplateVersion",
    # Registry
    "TemplateRegistry",
    # Composition
    "DependencyGraph",
    "InclusionEvaluator",
    "ModuleInstance",
    "WiringResolver",
    "Workload",
    # Validation
    "CompositionLinter",
    "LintIssue",
    "ParameterValidator",
    "ValidationResult",
    # Plan
    "CompositionResolver",
    "OutputReference",
    "PlannedModule",
    "RealizationPlan",
    "Substitution",
]
