"""Unit tests for catalog_manager module.

Test coverage: loading templates, workloads and bundles from disk, name
validation and error reporting for missing or malformed files.
"""

import json

import pytest

from azcompose.catalog_manager import CatalogError, CatalogManager

# ============================================================================
# NAME VALIDATION TESTS
# ============================================================================


class TestNameValidation:
    """Test workload, tenant and environment name validation."""

    @pytest.mark.parametrize("name", ["data-platform", "contoso", "prod_eu", "a1"])
    def test_valid_names(self, name):
        assert CatalogManager.validate_name(name)

    @pytest.mark.parametrize("name", ["", "../etc", "a/b", "a\\b", "-lead", "has space", "x" * 129])
    def test_invalid_names(self, name):
        assert not CatalogManager.validate_name(name)

    def test_path_traversal_rejected(self, catalog_dir):
        with pytest.raises(CatalogError, match="Invalid workload name"):
            CatalogManager(catalog_dir).load_workload("../secrets")


# ============================================================================
# TEMPLATE LOADING TESTS
# ============================================================================


class TestLoadRegistry:
    """Test loading module templates."""

    def test_loads_every_version(self, catalog_dir):
        registry = CatalogManager(catalog_dir).load_registry()

        assert [str(v) for v in registry.versions("network")] == ["1.0.0", "1.1.0"]
        assert [t.name for t in registry.list_all()] == ["backup", "keyvault", "network", "sql", "storage"]

    def test_missing_modules_directory(self, tmp_path):
        with pytest.raises(CatalogError, match="Module directory not found"):
            CatalogManager(tmp_path).load_registry()

    def test_duplicate_version(self, catalog_dir):
        source = catalog_dir / "modules" / "network" / "network-1.0.0.yaml"
        (catalog_dir / "modules" / "network-copy.yaml").write_text(source.read_text())

        with pytest.raises(CatalogError, match="already registered"):
            CatalogManager(catalog_dir).load_registry()

    def test_invalid_yaml(self, catalog_dir):
        (catalog_dir / "modules" / "broken.yaml").write_text("name: [unclosed\n")

        with pytest.raises(CatalogError, match="Invalid YAML"):
            CatalogManager(catalog_dir).load_registry()

    def test_undecodable_file(self, catalog_dir):
        (catalog_dir / "modules" / "latin1.yaml").write_bytes(b"name: r\xe9seau\n")

        with pytest.raises(CatalogError, match="Failed to read"):
            CatalogManager(catalog_dir).load_registry()

    def test_empty_file(self, catalog_dir):
        (catalog_dir / "modules" / "empty.yaml").write_text("")

        with pytest.raises(CatalogError, match="is empty"):
            CatalogManager(catalog_dir).load_registry()

    def test_malformed_template_names_file(self, catalog_dir):
        from azcompose.templates.errors import TemplateDefinitionError

        (catalog_dir / "modules" / "dns.yaml").write_text("name: dns\nversion: latest\n")

        with pytest.raises(TemplateDefinitionError, match=r"\[dns\] version: Invalid version format"):
            CatalogManager(catalog_dir).load_registry()


# ============================================================================
# WORKLOAD LOADING TESTS
# ============================================================================


class TestLoadWorkload:
    """Test loading workloads."""

    def test_list_workloads(self, catalog_dir):
        assert CatalogManager(catalog_dir).list_workloads() == ["data-platform"]

    def test_list_workloads_without_directory(self, tmp_path):
        assert CatalogManager(tmp_path).list_workloads() == []

    def test_load_workload(self, catalog_dir):
        workload = CatalogManager(catalog_dir).load_workload("data-platform")

        assert workload.name == "data-platform"
        assert workload.module_ids == ["network", "keyvault", "sql", "storage", "backup"]
        assert workload.target_scope == "resourceGroup"

    def test_workload_not_found(self, catalog_dir):
        with pytest.raises(CatalogError, match="Workload 'analytics' not found"):
            CatalogManager(catalog_dir).load_workload("analytics")

    def test_name_mismatch(self, catalog_dir):
        (catalog_dir / "workloads" / "analytics.yaml").write_text("name: reporting\n")

        with pytest.raises(CatalogError, match="declares name 'reporting'"):
            CatalogManager(catalog_dir).load_workload("analytics")


# ============================================================================
# BUNDLE LOADING TESTS
# ============================================================================


class TestBundles:
    """Test loading parameter bundles."""

    def test_list_bundles(self, catalog_dir):
        assert CatalogManager(catalog_dir).list_bundles("data-platform") == [("contoso", "dev"), ("contoso", "prod")]

    def test_list_bundles_skips_unexpected_names(self, catalog_dir):
        (catalog_dir / "parameters" / "data-platform" / "notes.json").write_text("{}")

        assert CatalogManager(catalog_dir).list_bundles("data-platform") == [("contoso", "dev"), ("contoso", "prod")]

    def test_list_bundles_for_workload_without_bundles(self, catalog_dir):
        assert CatalogManager(catalog_dir).list_bundles("analytics") == []

    def test_load_flat_bundle(self, catalog_dir):
        bundle = CatalogManager(catalog_dir).load_bundle("data-platform", "contoso", "dev")

        assert bundle.values == {"environment": "dev", "deployKeyVault": False}
        assert bundle.label == "contoso.dev"

    def test_load_arm_bundle(self, catalog_dir):
        from azcompose.templates.bundles import SecretReference

        bundle = CatalogManager(catalog_dir).load_bundle("data-platform", "contoso", "prod")

        assert bundle.values["environment"] == "prod"
        assert isinstance(bundle.values["sqlAdminPassword"], SecretReference)

    def test_missing_bundle(self, catalog_dir):
        with pytest.raises(CatalogError, match="No parameter bundle for workload 'data-platform', tenant 'fabrikam'"):
            CatalogManager(catalog_dir).load_bundle("data-platform", "fabrikam", "dev")

    def test_load_bundle_file(self, tmp_path, catalog_dir):
        path = tmp_path / "values.json"
        path.write_text(json.dumps({"environment": "test"}))

        bundle = CatalogManager(catalog_dir).load_bundle_file(path)

        assert bundle.values == {"environment": "test"}
        assert bundle.tenant is None

    def test_invalid_bundle_json(self, tmp_path, catalog_dir):
        path = tmp_path / "values.json"
        path.write_text("{not json")

        with pytest.raises(CatalogError, match="Invalid JSON in parameter bundle"):
            CatalogManager(catalog_dir).load_bundle_file(path)

    def test_undecodable_bundle(self, tmp_path, catalog_dir):
        path = tmp_path / "values.json"
        path.write_bytes(b'{"adminPassword": "\xff\xfe"}')

        with pytest.raises(CatalogError, match="Failed to read parameter bundle"):
            CatalogManager(catalog_dir).load_bundle_file(path)
