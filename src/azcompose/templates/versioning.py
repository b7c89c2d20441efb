"""Semantic versioning for module templates.

Provides:
- TemplateVersion: Semantic versioning (major.minor.patch)
- parse_template_ref: Split ``name@constraint`` module references
- TemplateVersion.satisfies: Version constraint matching

Constraint syntax:
    "*"                  any version
    "1.2.0"              exact match (same as "==1.2.0")
    ">=1.0.0"            comparison operators: >=, >, <=, <, ==
    ">=1.0.0,<2.0.0"     comma-separated constraints must all hold
"""

import re
from dataclasses import dataclass

_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
_OPERATORS = (">=", "<=", "==", ">", "<")


@dataclass(frozen=True)
class TemplateVersion:
    """Semantic version for templates (major.minor.patch)."""

    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        """Return version as string in format 'major.minor.patch'."""
        return f"{self.major}.{self.minor}.{self.patch}"

    def _key(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: "TemplateVersion") -> bool:
        """Compare versions (less than)."""
        return self._key() < other._key()

    def __le__(self, other: "TemplateVersion") -> bool:
        """Compare versions (less than or equal)."""
        return self._key() <= other._key()

    def __gt__(self, other: "TemplateVersion") -> bool:
        """Compare versions (greater than)."""
        return self._key() > other._key()

    def __ge__(self, other: "TemplateVersion") -> bool:
        """Compare versions (greater than or equal)."""
        return self._key() >= other._key()

    @classmethod
    def from_string(cls, version_str: str) -> "TemplateVersion":
        """Parse version from string format 'major.minor.patch'.

        Args:
            version_str: Version string (e.g., "1.2.3")

        Returns:
            TemplateVersion instance

        Raises:
            ValueError: If version string is invalid
        """
        match = _VERSION_PATTERN.match(str(version_str).strip())

        if not match:
            raise ValueError(f"Invalid version format: {version_str}. Expected 'major.minor.patch'")

        major, minor, patch = match.groups()
        return cls(int(major), int(minor), int(patch))

    def satisfies(self, constraint: str | None) -> bool:
        """Check if this version satisfies a constraint expression.

        Args:
            constraint: Constraint string (e.g., ">=1.0.0,<2.0.0"); None or "*" matches anything

        Returns:
            True if every comma-separated clause holds

        Raises:
            ValueError: If a clause cannot be parsed
        """
        if constraint is None:
            return True

        for clause in constraint.split(","):
            clause = clause.strip()
            if not clause or clause == "*":
                continue

            operator = next((op for op in _OPERATORS if clause.startswith(op)), None)
            required = TemplateVersion.from_string(clause[len(operator) :] if operator else clause)
            operator = operator or "=="

            if operator == ">=" and not self >= required:
                return False
            if operator == ">" and not self > required:
                return False
            if operator == "<=" and not self <= required:
                return False
            if operator == "<" and not self < required:
                return False
            if operator == "==" and self != required:
                return False

        return True


def validate_constraint(constraint: str) -> None:
    """Raise ValueError if a constraint string is malformed."""
    TemplateVersion(0, 0, 0).satisfies(constraint)


def parse_template_ref(ref: str) -> tuple[str, str | None]:
    """Split a module reference of the form ``name`` or ``name@constraint``.

    Args:
        ref: Template reference (e.g., "keyvault@>=1.0.0")

    Returns:
        Tuple of (template name, constraint or None)
    """
    name, sep, constraint = ref.partition("@")
    return name.strip(), (constraint.strip() or None) if sep else None


__all__ = ["TemplateVersion", "parse_template_ref", "validate_constraint"]
