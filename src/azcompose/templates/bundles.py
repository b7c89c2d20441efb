"""Parameter-value bundles.

A bundle binds concrete values to a workload's parameter schema for one
(tenant, environment) pair. Two JSON layouts are accepted:

Flat:
    {"location": "westeurope", "deployKeyVault": true}

ARM deployment parameters:
    {
      "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentParameters.json#",
      "contentVersion": "1.0.0.0",
      "parameters": {
        "location": {"value": "westeurope"},
        "sqlAdminPassword": {
          "reference": {
            "keyVault": {"id": "/subscriptions/.../vaults/kv-shared"},
            "secretName": "sql-admin"
          }
        }
      }
    }

Key Vault references stay opaque: the secret store is resolved by the
deployment engine, never by this package.

Bundles are consumed as-is and never mutated by the resolver.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_ARM_METADATA_KEYS = {"$schema", "contentVersion"}


class BundleError(Exception):
    """Raised when a parameter bundle cannot be read or understood."""

    pass


@dataclass(frozen=True)
class SecretReference:
    """Opaque pointer to a Key Vault secret."""

    key_vault_id: str
    secret_name: str
    secret_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        reference: dict[str, Any] = {
            "keyVault": {"id": self.key_vault_id},
            "secretName": self.secret_name,
        }
        if self.secret_version:
            reference["secretVersion"] = self.secret_version
        return {"reference": reference}

    def __str__(self) -> str:
        return f"<secret {self.secret_name}>"


@dataclass
class ParameterBundle:
    """Concrete parameter values for one deployment context."""

    values: dict[str, Any] = field(default_factory=dict)
    tenant: str | None = None
    environment: str | None = None
    source: Path | None = None

    @property
    def label(self) -> str:
        if self.tenant and self.environment:
            return f"{self.tenant}.{self.environment}"
        if self.source:
            return self.source.name
        return "<inline>"

    @classmethod
    def from_dict(cls, data: Any, **context: Any) -> "ParameterBundle":
        """Build a bundle from a flat or ARM-style document.

        Raises:
            BundleError: If the document is not a JSON object or an entry is malformed
        """
        if not isinstance(data, dict):
            raise BundleError("parameter bundle must be a JSON object")

        if _is_arm_document(data):
            values = {
                name: _parse_arm_entry(name, entry) for name, entry in data["parameters"].items()
            }
        else:
            values = {k: v for k, v in data.items() if k not in _ARM_METADATA_KEYS}

        return cls(values=values, **context)

    @classmethod
    def from_file(cls, path: Path) -> "ParameterBundle":
        """Load a bundle from a JSON file.

        Files named ``<tenant>.<environment>.json`` carry their deployment
        context in the file name.

        Raises:
            BundleError: If the file is missing, unreadable or not valid JSON
        """
        if not path.exists():
            raise BundleError(f"Parameter bundle not found: {path}")

        try:
            with path.open(encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise BundleError(f"Invalid JSON in parameter bundle {path}: {e}") from e
        except (UnicodeDecodeError, OSError) as e:
            raise BundleError(f"Failed to read parameter bundle {path}: {e}") from e

        tenant, environment = parse_bundle_name(path.name)
        bundle = cls.from_dict(data, tenant=tenant, environment=environment, source=path)
        logger.debug(f"Loaded parameter bundle {bundle.label} ({len(bundle.values)} values)")
        return bundle


def parse_bundle_name(filename: str) -> tuple[str | None, str | None]:
    """Extract (tenant, environment) from ``<tenant>.<environment>.json``."""
    stem = filename[: -len(".json")] if filename.endswith(".json") else filename
    parts = stem.split(".")
    if len(parts) == 2 and all(parts):
        return parts[0], parts[1]
    return None, None


def _is_arm_document(data: dict) -> bool:
    parameters = data.get("parameters")
    if not isinstance(parameters, dict):
        return False
    if "$schema" in data or "contentVersion" in data:
        return True
    # Without metadata, treat as ARM only when every entry is a {value|reference} wrapper
    return bool(parameters) and all(
        isinstance(entry, dict) and len(entry) == 1 and ("value" in entry or "reference" in entry)
        for entry in parameters.values()
    )


def _parse_arm_entry(name: str, entry: Any) -> Any:
    if not isinstance(entry, dict):
        raise BundleError(f"Parameter '{name}' must be an object with 'value' or 'reference'")

    if "value" in entry:
        return entry["value"]

    if "reference" in entry:
        reference = entry["reference"]
        try:
            return SecretReference(
                key_vault_id=reference["keyVault"]["id"],
                secret_name=reference["secretName"],
                secret_version=reference.get("secretVersion"),
            )
        except (KeyError, TypeError) as e:
            raise BundleError(
                f"Parameter '{name}' has a malformed Key Vault reference (missing {e})"
            ) from e

    raise BundleError(f"Parameter '{name}' must be an object with 'value' or 'reference'")


__all__ = ["BundleError", "ParameterBundle", "SecretReference", "parse_bundle_name"]
