"""Parameter validation and defaulting.

Provides:
- ValidationResult / LintIssue: Aggregated findings for reporting
- ParameterValidator: Type, allowed-set, range and length checks plus defaults
- check_defaults: Validate declared defaults against their own constraints

Philosophy:
- Fail fast: the first violation aborts resolution
- Pure: no I/O, operates on already-resolved values
- Clear error messages naming module, parameter, value and constraint
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from azcompose.log_sanitizer import LogSanitizer
from azcompose.templates.bundles import SecretReference
from azcompose.templates.errors import (
    ConstraintViolationError,
    MissingParameterError,
    TemplateDefinitionError,
    UndefinedReferenceError,
)
from azcompose.templates.plan import OutputReference
from azcompose.templates.schema import ParameterSpec

logger = logging.getLogger(__name__)


@dataclass
class LintIssue:
    """Individual lint issue with severity."""

    message: str
    severity: str  # "critical", "warning", "info"
    location: str | None = None

    def __str__(self) -> str:
        prefix = f"[{self.location}] " if self.location else ""
        return f"{prefix}{self.message}"


@dataclass
class ValidationResult:
    """Result of workload validation."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    issues_detailed: list[LintIssue] = field(default_factory=list)

    def get_summary(self) -> str:
        """Generate human-readable summary.

        Returns:
            Summary string with error and warning counts
        """
        lines = []

        if not self.is_valid:
            lines.append(f"Validation FAILED with {len(self.errors)} errors")
            for i, error in enumerate(self.errors, 1):
                lines.append(f"  {i}. {error}")
        else:
            lines.append("Validation PASSED")

        if self.warnings:
            lines.append(f"\n{len(self.warnings)} warnings:")
            for i, warning in enumerate(self.warnings, 1):
                lines.append(f"  {i}. {warning}")

        return "\n".join(lines)

    def to_json(self) -> dict:
        """Export result to JSON format.

        Returns:
            Dictionary representation
        """
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
        }


def _contains_deferred(value: Any) -> bool:
    if isinstance(value, OutputReference):
        return True
    if isinstance(value, list):
        return any(_contains_deferred(v) for v in value)
    if isinstance(value, dict):
        return any(_contains_deferred(v) for v in value.values())
    return False


def _same_value(left: Any, right: Any) -> bool:
    return type(left) is type(right) and left == right


class ParameterValidator:
    """Validate supplied values against a parameter schema and apply defaults."""

    def validate(
        self,
        owner: str,
        specs: Mapping[str, ParameterSpec],
        supplied: Mapping[str, Any],
        allow_unknown: bool = False,
        warnings: list[str] | None = None,
        field_prefix: str = "params",
    ) -> dict[str, Any]:
        """Produce the validated, defaulted parameter record.

        Args:
            owner: Module id (or workload name) for error messages
            specs: Declared parameters, in declaration order
            supplied: Values supplied by bindings or a bundle
            allow_unknown: Downgrade undeclared values to warnings
            warnings: List that receives warnings when allow_unknown is set
            field_prefix: Field path prefix used in error messages

        Returns:
            Parameter name -> value, in declaration order

        Raises:
            UndefinedReferenceError: If an undeclared parameter is supplied
            MissingParameterError: If a required parameter has no value
            ConstraintViolationError: If a value violates a constraint
        """
        for name in sorted(set(supplied) - set(specs)):
            detail = f"parameter '{name}' is not declared"
            if not allow_unknown:
                raise UndefinedReferenceError(
                    detail, module_id=owner, field=f"{field_prefix}.{name}", reference=name
                )
            message = f"[{owner}] {field_prefix}.{name}: {detail}; value ignored"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)

        record: dict[str, Any] = {}
        for name, spec in specs.items():
            location = f"{field_prefix}.{name}"
            if name in supplied:
                self.check_value(owner, spec, supplied[name], location)
                record[name] = supplied[name]
            elif spec.has_default:
                record[name] = spec.default_value()
            else:
                raise MissingParameterError(name, module_id=owner, field=location)

        return record

    def check_value(self, owner: str, spec: ParameterSpec, value: Any, location: str | None = None) -> None:
        """Check one value against its declaration.

        A bare output placeholder is only checked for type compatibility, since
        its concrete value does not exist before realization. Containers that
        hold placeholders skip the allowed-set check but keep their length bounds.

        Raises:
            ConstraintViolationError: On the first violated constraint
        """
        location = location or f"params.{spec.name}"
        shown = LogSanitizer.display_value(value, spec.secure)

        def violation(constraint: str) -> ConstraintViolationError:
            return ConstraintViolationError(
                spec.name, value, constraint, module_id=owner, field=location, display_value=shown
            )

        if isinstance(value, SecretReference):
            if not spec.secure:
                raise violation(
                    f"type {spec.type.value} (Key Vault references need a secure parameter)"
                )
            return

        if isinstance(value, OutputReference):
            if not spec.type.compatible_with(value.type):
                raise violation(
                    f"type {spec.type.value} (output '{value.ref}' is {value.type.value})"
                )
            return

        if not spec.type.accepts(value):
            raise violation(f"type {spec.type.value}")

        # Containers holding output placeholders still have a known length
        deferred = _contains_deferred(value)

        if spec.allowed is not None and not deferred and not any(_same_value(value, a) for a in spec.allowed):
            allowed = LogSanitizer.REDACTED if spec.secure else repr(spec.allowed)
            raise violation(f"allowed {allowed}")

        if spec.min_value is not None and value < spec.min_value:
            raise violation(f"min {spec.min_value}")

        if spec.max_value is not None and value > spec.max_value:
            raise violation(f"max {spec.max_value}")

        if spec.min_length is not None and len(value) < spec.min_length:
            raise violation(f"min_length {spec.min_length}")

        if spec.max_length is not None and len(value) > spec.max_length:
            raise violation(f"max_length {spec.max_length}")


def check_defaults(owner: str, specs: Mapping[str, ParameterSpec], field_prefix: str = "parameters") -> None:
    """Validate declared default values against their own constraints.

    Raises:
        TemplateDefinitionError: If a default violates its declaration
    """
    validator = ParameterValidator()
    for name, spec in specs.items():
        if not spec.has_default:
            continue
        try:
            validator.check_value(owner, spec, spec.default, f"{field_prefix}.{name}")
        except ConstraintViolationError as e:
            raise TemplateDefinitionError(
                f"default {e.detail}", module_id=owner, field=f"{field_prefix}.{name}"
            ) from e


__all__ = [
    "LintIssue",
    "ParameterValidator",
    "ValidationResult",
    "check_defaults",
]
