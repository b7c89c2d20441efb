"""Catalog management module.

This module loads module templates, workloads and parameter bundles from a
catalog directory on disk:

    <catalog>/modules/**/*.yaml                                one module template per file
    <catalog>/workloads/<name>.yaml                            one workload per file
    <catalog>/parameters/<workload>/<tenant>.<environment>.json

Security:
- Name validation (no path traversal)
- YAML loaded with safe_load only
- Bundles are read, never written

Malformed documents raise TemplateDefinitionError from the template layer;
missing files and unreadable YAML raise CatalogError.
"""

import logging
import re
from pathlib import Path
from typing import Any

try:
    import yaml
except ImportError:
    raise ImportError("PyYAML not available. Install with: pip install pyyaml")

from azcompose.templates.bundles import BundleError, ParameterBundle, parse_bundle_name
from azcompose.templates.composition import Workload
from azcompose.templates.errors import TemplateDefinitionError
from azcompose.templates.registry import TemplateRegistry
from azcompose.templates.schema import ModuleTemplate

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Raised when catalog operations fail."""

    pass


class CatalogManager:
    """Read module templates, workloads and parameter bundles from a catalog directory."""

    MAX_NAME_LENGTH = 128
    NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]*$")

    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser()

    @property
    def modules_dir(self) -> Path:
        return self.root / "modules"

    @property
    def workloads_dir(self) -> Path:
        return self.root / "workloads"

    @property
    def parameters_dir(self) -> Path:
        return self.root / "parameters"

    @classmethod
    def validate_name(cls, name: str) -> bool:
        """Validate a workload, tenant or environment name.

        Names must:
        - Start with alphanumeric character
        - Contain only alphanumeric, hyphens, and underscores
        - Not contain path separators
        - Be <= MAX_NAME_LENGTH characters

        Args:
            name: Name to validate

        Returns:
            True if valid, False otherwise
        """
        if not name or len(name) > cls.MAX_NAME_LENGTH:
            return False

        # Check for path traversal attempts
        if "/" in name or "\\" in name or ".." in name:
            return False

        # Check pattern
        return bool(cls.NAME_PATTERN.match(name))

    def _require_name(self, kind: str, name: str) -> None:
        if not self.validate_name(name):
            raise CatalogError(f"Invalid {kind} name: {name!r}")

    def _load_yaml(self, path: Path) -> Any:
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise CatalogError(f"Invalid YAML in {path}: {e}") from e
        except (UnicodeDecodeError, OSError) as e:
            raise CatalogError(f"Failed to read {path}: {e}") from e

        if data is None:
            raise CatalogError(f"Invalid YAML: {path} is empty")
        return data

    def load_registry(self) -> TemplateRegistry:
        """Load every module template under ``modules/`` into a registry.

        Returns:
            TemplateRegistry holding all template versions

        Raises:
            CatalogError: If the modules directory is missing, a file is unreadable,
                or a template version is defined twice
            TemplateDefinitionError: If a template document is malformed
        """
        if not self.modules_dir.is_dir():
            raise CatalogError(f"Module directory not found: {self.modules_dir}")

        registry = TemplateRegistry()
        for path in sorted(self.modules_dir.rglob("*.yaml")):
            try:
                template = ModuleTemplate.from_dict(self._load_yaml(path))
            except TemplateDefinitionError as e:
                raise e.locate(path.stem, None)
            try:
                registry.register(template)
            except ValueError as e:
                raise CatalogError(f"{e} (while loading {path})") from e

        logger.debug(f"Loaded {registry.count()} module template versions from {self.modules_dir}")
        return registry

    def list_workloads(self) -> list[str]:
        """List workload names, sorted alphabetically."""
        if not self.workloads_dir.is_dir():
            return []
        return sorted(p.stem for p in self.workloads_dir.glob("*.yaml"))

    def workload_path(self, name: str) -> Path:
        self._require_name("workload", name)
        return self.workloads_dir / f"{name}.yaml"

    def load_workload(self, name: str) -> Workload:
        """Load a workload by name.

        Raises:
            CatalogError: If the workload does not exist or cannot be read
            TemplateDefinitionError: If the workload document is malformed
        """
        path = self.workload_path(name)
        if not path.exists():
            raise CatalogError(f"Workload '{name}' not found in {self.workloads_dir}")

        workload = Workload.from_dict(self._load_yaml(path))
        if workload.name != name:
            raise CatalogError(f"Workload file {path.name} declares name '{workload.name}'")
        return workload

    def bundle_path(self, workload: str, tenant: str, environment: str) -> Path:
        for kind, value in (("workload", workload), ("tenant", tenant), ("environment", environment)):
            self._require_name(kind, value)
        return self.parameters_dir / workload / f"{tenant}.{environment}.json"

    def load_bundle(self, workload: str, tenant: str, environment: str) -> ParameterBundle:
        """Load the parameter bundle for one (tenant, environment) pair.

        Raises:
            CatalogError: If the bundle does not exist or is not valid JSON
        """
        path = self.bundle_path(workload, tenant, environment)
        if not path.exists():
            raise CatalogError(
                f"No parameter bundle for workload '{workload}', tenant '{tenant}', "
                f"environment '{environment}' (expected {path})"
            )
        return self.load_bundle_file(path)

    def load_bundle_file(self, path: Path | str) -> ParameterBundle:
        """Load a parameter bundle from an explicit path.

        Raises:
            CatalogError: If the file is missing or malformed
        """
        try:
            return ParameterBundle.from_file(Path(path).expanduser())
        except BundleError as e:
            raise CatalogError(str(e)) from e

    def list_bundles(self, workload: str) -> list[tuple[str, str]]:
        """List (tenant, environment) pairs that have a bundle for a workload."""
        self._require_name("workload", workload)
        directory = self.parameters_dir / workload
        if not directory.is_dir():
            return []

        pairs = []
        for path in sorted(directory.glob("*.json")):
            tenant, environment = parse_bundle_name(path.name)
            if tenant and environment and self.validate_name(tenant) and self.validate_name(environment):
                pairs.append((tenant, environment))
            else:
                logger.warning(f"Skipping bundle with unexpected name: {path.name}")
        return pairs


__all__ = ["CatalogError", "CatalogManager"]
