"""Module template registry for lookup and discovery.

Provides:
- TemplateRegistry: Register, look up and search module templates
- Several versions per template; lookups pick the highest version that
  satisfies a constraint
- Template search by name pattern and tags

Philosophy:
- In-memory storage; the catalog manager fills it from disk
- Templates are validated once, on registration
"""

import fnmatch
import logging

from azcompose.templates.schema import ModuleTemplate
from azcompose.templates.validation import check_defaults
from azcompose.templates.versioning import TemplateVersion

logger = logging.getLogger(__name__)


class TemplateRegistry:
    """Registry of module templates keyed by name and version."""

    def __init__(self):
        """Initialize empty registry."""
        self._templates: dict[str, dict[TemplateVersion, ModuleTemplate]] = {}

    def count(self) -> int:
        """Return number of registered template versions."""
        return sum(len(versions) for versions in self._templates.values())

    def exists(self, name: str) -> bool:
        """Check if any version of a template is registered."""
        return name in self._templates

    def register(self, template: ModuleTemplate) -> None:
        """Register a template version.

        Args:
            template: Template to register

        Raises:
            ValueError: If this name and version is already registered
            TemplateDefinitionError: If a declared default violates its own constraints
        """
        versions = self._templates.setdefault(template.name, {})
        if template.version in versions:
            raise ValueError(f"Template '{template.ref}' already registered")

        check_defaults(template.name, template.parameters)
        versions[template.version] = template
        logger.debug(f"Registered template {template.ref}")

    def get(self, name: str, constraint: str | None = None) -> ModuleTemplate | None:
        """Retrieve the highest template version satisfying a constraint.

        Args:
            name: Template name
            constraint: Version constraint (e.g., ">=1.0.0,<2.0.0"); None means latest

        Returns:
            Template if found, None otherwise
        """
        versions = self._templates.get(name, {})
        matching = [v for v in versions if v.satisfies(constraint)]
        if not matching:
            return None
        return versions[max(matching)]

    def versions(self, name: str) -> list[TemplateVersion]:
        """List registered versions of a template, oldest first."""
        return sorted(self._templates.get(name, {}))

    def list_all(self) -> list[ModuleTemplate]:
        """List the latest version of every template, sorted by name."""
        return [self._templates[name][max(self._templates[name])] for name in sorted(self._templates)]

    def search(self, name_pattern: str | None = None, tags: list[str] | None = None) -> list[ModuleTemplate]:
        """Search templates by criteria.

        Args:
            name_pattern: Glob pattern for name (e.g., "key*")
            tags: List of tags to match (any tag matches)

        Returns:
            Latest version of every matching template
        """
        results = []

        for template in self.list_all():
            # Check name pattern
            if name_pattern and not fnmatch.fnmatch(template.name, name_pattern):
                continue

            # Check tags (any tag match)
            if tags and not any(tag in template.tags for tag in tags):
                continue

            results.append(template)

        return results


__all__ = ["TemplateRegistry"]
