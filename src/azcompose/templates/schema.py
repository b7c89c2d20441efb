"""Module template interface: typed parameters and outputs.

A module template is the contract between module authors and workload
authors. It declares:

    name: keyvault
    version: 1.2.0
    description: Key Vault with private endpoint
    tags: [security]
    parameters:
      name:     {type: string, min_length: 3, max_length: 24}
      sku:      {type: string, allowed: [standard, premium], default: standard}
      subnetId: {type: string, default: ""}
    outputs:
      vaultId:  {type: string}
      vaultUri: {type: string}
    resources:
      - type: Microsoft.KeyVault/vaults

Parameters without a default are required. Every output carries a sentinel
value that consumers receive when the producing module is excluded.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from azcompose.templates.errors import TemplateDefinitionError
from azcompose.templates.versioning import TemplateVersion


class ParameterType(str, Enum):
    """Declarable parameter/output types."""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    OBJECT = "object"
    ARRAY = "array"
    SECURE_STRING = "securestring"
    SECURE_OBJECT = "secureobject"

    @classmethod
    def from_string(cls, value: str) -> "ParameterType":
        aliases = {"integer": "int", "boolean": "bool", "str": "string", "list": "array"}
        normalized = str(value).strip().lower()
        normalized = aliases.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise TemplateDefinitionError(f"unknown type '{value}' (expected one of: {valid})") from None

    @property
    def is_secure(self) -> bool:
        return self in (ParameterType.SECURE_STRING, ParameterType.SECURE_OBJECT)

    @property
    def base(self) -> "ParameterType":
        """Underlying non-secure type."""
        if self is ParameterType.SECURE_STRING:
            return ParameterType.STRING
        if self is ParameterType.SECURE_OBJECT:
            return ParameterType.OBJECT
        return self

    def accepts(self, value: Any) -> bool:
        """Check whether a concrete value has this type."""
        base = self.base
        if base is ParameterType.STRING:
            return isinstance(value, str)
        if base is ParameterType.INT:
            return isinstance(value, int) and not isinstance(value, bool)
        if base is ParameterType.BOOL:
            return isinstance(value, bool)
        if base is ParameterType.OBJECT:
            return isinstance(value, dict)
        return isinstance(value, list)

    def compatible_with(self, other: "ParameterType") -> bool:
        """Check whether a value of type ``other`` may be bound to this type."""
        return self.base is other.base

    def sentinel(self) -> Any:
        """Empty value used when an output cannot be produced."""
        base = self.base
        if base is ParameterType.STRING:
            return ""
        if base is ParameterType.INT:
            return 0
        if base is ParameterType.BOOL:
            return False
        if base is ParameterType.OBJECT:
            return {}
        return []


_PARAMETER_KEYS = {
    "type",
    "description",
    "default",
    "allowed",
    "allowedValues",
    "min",
    "minValue",
    "max",
    "maxValue",
    "min_length",
    "minLength",
    "max_length",
    "maxLength",
}


def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


@dataclass
class ParameterSpec:
    """Declared parameter of a module template or workload."""

    name: str
    type: ParameterType
    description: str = ""
    default: Any = None
    has_default: bool = False
    allowed: list[Any] | None = None
    min_value: int | None = None
    max_value: int | None = None
    min_length: int | None = None
    max_length: int | None = None

    @property
    def required(self) -> bool:
        return not self.has_default

    @property
    def secure(self) -> bool:
        return self.type.is_secure

    def default_value(self) -> Any:
        """Return a private copy of the default value."""
        return copy.deepcopy(self.default)

    def constraints(self) -> dict[str, Any]:
        """Return the declared constraints (used for display)."""
        found = {
            "allowed": self.allowed,
            "min": self.min_value,
            "max": self.max_value,
            "min_length": self.min_length,
            "max_length": self.max_length,
        }
        return {k: v for k, v in found.items() if v is not None}

    @classmethod
    def from_dict(cls, name: str, data: Any, owner: str | None = None) -> "ParameterSpec":
        """Create a parameter spec from its declaration.

        A bare string is shorthand for ``{type: <string>}``.

        Raises:
            TemplateDefinitionError: If the declaration is malformed
        """
        location = f"parameters.{name}"
        if isinstance(data, str):
            data = {"type": data}
        if not isinstance(data, dict):
            raise TemplateDefinitionError("parameter declaration must be a mapping", owner, location)

        unknown = sorted(set(data) - _PARAMETER_KEYS)
        if unknown:
            raise TemplateDefinitionError(f"unknown keys: {', '.join(unknown)}", owner, location)
        if "type" not in data:
            raise TemplateDefinitionError("missing 'type'", owner, location)

        try:
            param_type = ParameterType.from_string(data["type"])
        except TemplateDefinitionError as e:
            raise TemplateDefinitionError(e.detail, owner, location) from e

        spec = cls(
            name=name,
            type=param_type,
            description=data.get("description", ""),
            default=data.get("default"),
            has_default="default" in data,
            allowed=_first(data, "allowed", "allowedValues"),
            min_value=_first(data, "min", "minValue"),
            max_value=_first(data, "max", "maxValue"),
            min_length=_first(data, "min_length", "minLength"),
            max_length=_first(data, "max_length", "maxLength"),
        )
        spec._check(owner, location)
        return spec

    def _check(self, owner: str | None, location: str) -> None:
        if self.allowed is not None and (not isinstance(self.allowed, list) or not self.allowed):
            raise TemplateDefinitionError("'allowed' must be a non-empty list", owner, location)

        for label, bound in (
            ("min", self.min_value),
            ("max", self.max_value),
            ("min_length", self.min_length),
            ("max_length", self.max_length),
        ):
            if bound is not None and (isinstance(bound, bool) or not isinstance(bound, int)):
                raise TemplateDefinitionError(f"'{label}' must be an integer", owner, location)

        if (self.min_value is not None or self.max_value is not None) and (
            self.type.base is not ParameterType.INT
        ):
            raise TemplateDefinitionError("'min'/'max' only apply to int parameters", owner, location)

        if (self.min_length is not None or self.max_length is not None) and self.type.base not in (
            ParameterType.STRING,
            ParameterType.ARRAY,
        ):
            raise TemplateDefinitionError(
                "'min_length'/'max_length' only apply to string and array parameters", owner, location
            )

        if self.min_value is not None and self.max_value is not None and self.min_value > self.max_value:
            raise TemplateDefinitionError("'min' is greater than 'max'", owner, location)

        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise TemplateDefinitionError("'min_length' is greater than 'max_length'", owner, location)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        if self.description:
            data["description"] = self.description
        if self.has_default:
            data["default"] = copy.deepcopy(self.default)
        data.update(self.constraints())
        return data


@dataclass
class OutputSpec:
    """Declared output of a module template."""

    name: str
    type: ParameterType
    description: str = ""
    sentinel: Any = None

    @classmethod
    def from_dict(cls, name: str, data: Any, owner: str | None = None) -> "OutputSpec":
        location = f"outputs.{name}"
        if isinstance(data, str):
            data = {"type": data}
        if not isinstance(data, dict) or "type" not in data:
            raise TemplateDefinitionError("output declaration must be a mapping with 'type'", owner, location)

        try:
            output_type = ParameterType.from_string(data["type"])
        except TemplateDefinitionError as e:
            raise TemplateDefinitionError(e.detail, owner, location) from e

        sentinel = data["sentinel"] if "sentinel" in data else output_type.sentinel()
        if not output_type.accepts(sentinel):
            raise TemplateDefinitionError(
                f"sentinel {sentinel!r} does not match output type '{output_type.value}'", owner, location
            )

        return cls(
            name=name,
            type=output_type,
            description=data.get("description", ""),
            sentinel=sentinel,
        )

    def sentinel_value(self) -> Any:
        return copy.deepcopy(self.sentinel)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "sentinel": copy.deepcopy(self.sentinel)}
        if self.description:
            data["description"] = self.description
        return data


@dataclass
class ModuleTemplate:
    """Reusable declaration of target resources plus its parameter/output contract."""

    name: str
    version: TemplateVersion
    description: str = ""
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)
    outputs: dict[str, OutputSpec] = field(default_factory=dict)
    resources: list[dict[str, Any]] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    @property
    def ref(self) -> str:
        return f"{self.name}@{self.version}"

    @classmethod
    def from_dict(cls, data: Any) -> "ModuleTemplate":
        """Deserialize a module template.

        Raises:
            TemplateDefinitionError: If the document is malformed
        """
        if not isinstance(data, dict):
            raise TemplateDefinitionError("module template must be a mapping")

        name = data.get("name")
        if not name or not isinstance(name, str):
            raise TemplateDefinitionError("module template requires a string 'name'")

        try:
            version = TemplateVersion.from_string(str(data.get("version", "")))
        except ValueError as e:
            raise TemplateDefinitionError(str(e), name, "version") from e

        parameters = data.get("parameters") or {}
        outputs = data.get("outputs") or {}
        resources = data.get("resources") or []
        tags = data.get("tags") or []

        if not isinstance(parameters, dict):
            raise TemplateDefinitionError("'parameters' must be a mapping", name, "parameters")
        if not isinstance(outputs, dict):
            raise TemplateDefinitionError("'outputs' must be a mapping", name, "outputs")
        if not isinstance(resources, list):
            raise TemplateDefinitionError("'resources' must be an array", name, "resources")
        if not isinstance(tags, list):
            raise TemplateDefinitionError("'tags' must be an array", name, "tags")

        return cls(
            name=name,
            version=version,
            description=data.get("description", ""),
            parameters={
                str(p): ParameterSpec.from_dict(str(p), spec, owner=name) for p, spec in parameters.items()
            },
            outputs={str(o): OutputSpec.from_dict(str(o), spec, owner=name) for o, spec in outputs.items()},
            resources=resources,
            tags=[str(t) for t in tags],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": str(self.version),
            "description": self.description,
            "tags": list(self.tags),
            "parameters": {name: spec.to_dict() for name, spec in self.parameters.items()},
            "outputs": {name: spec.to_dict() for name, spec in self.outputs.items()},
            "resources": copy.deepcopy(self.resources),
        }


__all__ = ["ModuleTemplate", "OutputSpec", "ParameterSpec", "ParameterType"]
