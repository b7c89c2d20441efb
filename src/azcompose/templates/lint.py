"""Static composition linting.

Findings here never block resolution on their own. They flag declarations
that resolve today but will break for some other parameter bundle, or that
are likely mistakes:

- Unguarded references: a strict output binding to a conditional module,
  where the consumer is not guarded by the same predicate and does not cascade
- Unused workload parameters
- Literal values bound to secure module parameters (hardcoded secrets)
"""

from collections.abc import Mapping

from azcompose.templates.composition import (
    OutputBinding,
    ParameterBinding,
    Workload,
    iter_bindings,
)
from azcompose.templates.expressions import Expression
from azcompose.templates.schema import ModuleTemplate
from azcompose.templates.validation import LintIssue, ValidationResult


def _has_literal(value) -> bool:
    if isinstance(value, (ParameterBinding, OutputBinding)):
        return False
    if isinstance(value, list):
        return any(_has_literal(v) for v in value)
    if isinstance(value, dict):
        return any(_has_literal(v) for v in value.values())
    return value not in ("", None)


class CompositionLinter:
    """Workload linter for exclusion safety and best practices."""

    def __init__(self, workload: Workload, templates: Mapping[str, ModuleTemplate]):
        self.workload = workload
        self.templates = templates

    def _check_unguarded_references(self) -> list[LintIssue]:
        issues = []
        for consumer in self.workload.modules:
            for path, binding in consumer.output_bindings():
                issue = self._unguarded(consumer.id, path, binding, consumer.condition, consumer.cascade)
                if issue:
                    issues.append(issue)

        for path, binding in self.workload.output_bindings():
            issue = self._unguarded(self.workload.name, path, binding, None, False)
            if issue:
                issues.append(issue)
        return issues

    def _unguarded(
        self,
        owner: str,
        path: str,
        binding: OutputBinding,
        condition: Expression | None,
        cascade: bool,
    ) -> LintIssue | None:
        producer = self.workload.module(binding.module)
        if not binding.strict or producer is None or producer.condition is None or cascade:
            return None
        if condition is not None and condition == producer.condition:
            return None
        return LintIssue(
            message=(
                f"consumes '{binding.ref}' from conditional module '{producer.id}' "
                f"(condition {producer.condition.source!r}) without 'optional' or 'fallback'"
            ),
            severity="warning",
            location=f"{owner}.{path}",
        )

    def _check_unused_parameters(self) -> list[LintIssue]:
        used: set[str] = set()
        for expression in self.workload.variables.values():
            used |= expression.references
        for module in self.workload.modules:
            if module.condition is not None:
                used |= module.condition.references
            used |= {b.name for _, b in module.bindings() if isinstance(b, ParameterBinding)}
        for name, output in self.workload.outputs.items():
            used |= {
                b.name
                for _, b in iter_bindings(output.value, f"outputs.{name}")
                if isinstance(b, ParameterBinding)
            }

        return [
            LintIssue(
                message=f"parameter '{name}' is never used",
                severity="warning",
                location=f"{self.workload.name}.parameters.{name}",
            )
            for name in self.workload.parameters
            if name not in used
        ]

    def _check_hardcoded_secrets(self) -> list[LintIssue]:
        issues = []
        for module in self.workload.modules:
            template = self.templates.get(module.id)
            if template is None:
                continue
            for name, value in module.params.items():
                spec = template.parameters.get(name)
                if spec is None or not spec.secure:
                    continue
                if not _has_literal(value):
                    continue
                issues.append(
                    LintIssue(
                        message=f"secure parameter '{name}' is bound to a literal value",
                        severity="critical",
                        location=f"{module.id}.params.{name}",
                    )
                )
        return issues

    def lint(self) -> ValidationResult:
        """Run all lint checks.

        Returns:
            ValidationResult with lint issues as warnings
        """
        all_issues = []
        all_issues.extend(self._check_unguarded_references())
        all_issues.extend(self._check_unused_parameters())
        all_issues.extend(self._check_hardcoded_secrets())

        return ValidationResult(
            is_valid=True,  # Linting doesn't affect validity
            warnings=[str(issue) for issue in all_issues],
            issues_detailed=all_issues,
        )


__all__ = ["CompositionLinter"]
