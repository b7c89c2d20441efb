"""Unit tests for parameter-value bundles."""

import json

import pytest


class TestParameterBundle:
    """Test flat and ARM bundle layouts."""

    def test_flat_bundle(self):
        from azcompose.templates.bundles import ParameterBundle

        bundle = ParameterBundle.from_dict({"location": "westeurope", "deployKeyVault": False})

        assert bundle.values == {"location": "westeurope", "deployKeyVault": False}
        assert bundle.label == "<inline>"

    def test_arm_bundle_with_key_vault_reference(self):
        from azcompose.templates.bundles import ParameterBundle, SecretReference

        bundle = ParameterBundle.from_dict(
            {
                "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentParameters.json#",
                "contentVersion": "1.0.0.0",
                "parameters": {
                    "location": {"value": "northeurope"},
                    "sqlAdminPassword": {
                        "reference": {
                            "keyVault": {"id": "/subscriptions/x/vaults/kv"},
                            "secretName": "sql-admin",
                            "secretVersion": "abc123",
                        }
                    },
                },
            }
        )

        assert bundle.values["location"] == "northeurope"
        secret = bundle.values["sqlAdminPassword"]
        assert isinstance(secret, SecretReference)
        assert secret.secret_name == "sql-admin"
        assert secret.to_dict()["reference"]["secretVersion"] == "abc123"

    def test_parameters_key_alone_is_not_arm(self):
        """Test a flat bundle may declare a parameter literally named 'parameters'."""
        from azcompose.templates.bundles import ParameterBundle

        bundle = ParameterBundle.from_dict({"parameters": {"retention": 7}})

        assert bundle.values == {"parameters": {"retention": 7}}

    def test_malformed_reference(self):
        from azcompose.templates.bundles import BundleError, ParameterBundle

        with pytest.raises(BundleError, match="malformed Key Vault reference"):
            ParameterBundle.from_dict(
                {"contentVersion": "1.0.0.0", "parameters": {"pwd": {"reference": {"secretName": "x"}}}}
            )

    def test_not_an_object(self):
        from azcompose.templates.bundles import BundleError, ParameterBundle

        with pytest.raises(BundleError, match="must be a JSON object"):
            ParameterBundle.from_dict(["location"])

    def test_from_file_infers_tenant_and_environment(self, tmp_path):
        from azcompose.templates.bundles import ParameterBundle

        path = tmp_path / "contoso.prod.json"
        path.write_text(json.dumps({"location": "westeurope"}))

        bundle = ParameterBundle.from_file(path)

        assert (bundle.tenant, bundle.environment) == ("contoso", "prod")
        assert bundle.label == "contoso.prod"
        assert bundle.source == path

    def test_from_file_invalid_json(self, tmp_path):
        from azcompose.templates.bundles import BundleError, ParameterBundle

        path = tmp_path / "values.json"
        path.write_text("{not json")

        with pytest.raises(BundleError, match="Invalid JSON"):
            ParameterBundle.from_file(path)

    def test_from_file_not_utf8(self, tmp_path):
        from azcompose.templates.bundles import BundleError, ParameterBundle

        path = tmp_path / "values.json"
        path.write_bytes(b'{"location": "\xff\xfe"}')

        with pytest.raises(BundleError, match="Failed to read parameter bundle"):
            ParameterBundle.from_file(path)

    def test_from_file_directory(self, tmp_path):
        from azcompose.templates.bundles import BundleError, ParameterBundle

        path = tmp_path / "contoso.dev.json"
        path.mkdir()

        with pytest.raises(BundleError, match="Failed to read parameter bundle"):
            ParameterBundle.from_file(path)

    def test_from_file_missing(self, tmp_path):
        from azcompose.templates.bundles import BundleError, ParameterBundle

        with pytest.raises(BundleError, match="not found"):
            ParameterBundle.from_file(tmp_path / "absent.json")

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("contoso.prod.json", ("contoso", "prod")),
            ("values.json", (None, None)),
            ("a.b.c.json", (None, None)),
        ],
    )
    def test_parse_bundle_name(self, filename, expected):
        from azcompose.templates.bundles import parse_bundle_name

        assert parse_bundle_name(filename) == expected
