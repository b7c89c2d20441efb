"""Unit tests for the module template registry."""

import pytest


def _template(name, version, tags=None, parameters=None):
    from azcompose.templates.schema import ModuleTemplate

    return ModuleTemplate.from_dict(
        {"name": name, "version": version, "tags": tags or [], "parameters": parameters or {}}
    )


class TestTemplateRegistry:
    """Test registration and lookup."""

    def test_register_and_get_latest(self):
        from azcompose.templates.registry import TemplateRegistry

        registry = TemplateRegistry()
        registry.register(_template("network", "1.0.0"))
        registry.register(_template("network", "1.2.0"))
        registry.register(_template("network", "2.0.0"))

        assert str(registry.get("network").version) == "2.0.0"
        assert registry.count() == 3
        assert [str(v) for v in registry.versions("network")] == ["1.0.0", "1.2.0", "2.0.0"]

    def test_get_with_constraint_picks_highest_match(self):
        from azcompose.templates.registry import TemplateRegistry

        registry = TemplateRegistry()
        for version in ("1.0.0", "1.2.0", "2.0.0"):
            registry.register(_template("network", version))

        assert str(registry.get("network", ">=1.0.0,<2.0.0").version) == "1.2.0"
        assert registry.get("network", ">=3.0.0") is None
        assert registry.get("missing") is None

    def test_duplicate_version_rejected(self):
        from azcompose.templates.registry import TemplateRegistry

        registry = TemplateRegistry()
        registry.register(_template("network", "1.0.0"))

        with pytest.raises(ValueError, match="already registered"):
            registry.register(_template("network", "1.0.0"))

    def test_invalid_default_rejected_on_register(self):
        """Test defaults are validated against their own constraints."""
        from azcompose.templates.errors import TemplateDefinitionError
        from azcompose.templates.registry import TemplateRegistry

        template = _template(
            "keyvault",
            "1.0.0",
            parameters={"sku": {"type": "string", "allowed": ["standard", "premium"], "default": "basic"}},
        )

        with pytest.raises(TemplateDefinitionError, match=r"\[keyvault\] parameters.sku: default"):
            TemplateRegistry().register(template)

    def test_search_by_pattern_and_tag(self):
        from azcompose.templates.registry import TemplateRegistry

        registry = TemplateRegistry()
        registry.register(_template("keyvault", "1.0.0", tags=["security"]))
        registry.register(_template("network", "1.0.0", tags=["networking"]))
        registry.register(_template("nsg", "1.0.0", tags=["networking", "security"]))

        assert [t.name for t in registry.search(name_pattern="n*")] == ["network", "nsg"]
        assert [t.name for t in registry.search(tags=["security"])] == ["keyvault", "nsg"]
        assert [t.name for t in registry.search(name_pattern="n*", tags=["security"])] == ["nsg"]
        assert registry.list_all()[0].name == "keyvault"
