"""Unit tests for parameter validation and defaulting.

Test coverage: type checks, allowed sets, ranges, lengths, defaults,
secure-value redaction, deferred output references.
"""

import pytest


def _specs(declarations):
    from azcompose.templates.schema import ParameterSpec

    return {name: ParameterSpec.from_dict(name, decl, owner="test") for name, decl in declarations.items()}


class TestParameterValidator:
    """Test the validated, defaulted parameter record."""

    def test_applies_defaults(self):
        from azcompose.templates.validation import ParameterValidator

        specs = _specs({"name": "string", "sku": {"type": "string", "default": "standard"}})

        record = ParameterValidator().validate("keyvault", specs, {"name": "kv-prod"})

        assert record == {"name": "kv-prod", "sku": "standard"}

    def test_default_objects_are_not_shared(self):
        from azcompose.templates.validation import ParameterValidator

        specs = _specs({"tags": {"type": "object", "default": {"owner": "data"}}})
        validator = ParameterValidator()

        first = validator.validate("m", specs, {})
        first["tags"]["owner"] = "changed"
        second = validator.validate("m", specs, {})

        assert second["tags"] == {"owner": "data"}

    def test_missing_required_parameter(self):
        from azcompose.templates.errors import MissingParameterError
        from azcompose.templates.validation import ParameterValidator

        specs = _specs({"name": "string"})

        with pytest.raises(MissingParameterError) as exc_info:
            ParameterValidator().validate("keyvault", specs, {})

        assert exc_info.value.parameter == "name"
        assert exc_info.value.module_id == "keyvault"
        assert str(exc_info.value).startswith("[keyvault] params.name: missing required parameter 'name'")

    def test_unknown_parameter_rejected(self):
        from azcompose.templates.errors import UndefinedReferenceError
        from azcompose.templates.validation import ParameterValidator

        with pytest.raises(UndefinedReferenceError, match="parameter 'colour' is not declared"):
            ParameterValidator().validate("keyvault", _specs({}), {"colour": "red"})

    def test_unknown_parameter_allowed_becomes_warning(self):
        from azcompose.templates.validation import ParameterValidator

        warnings = []
        record = ParameterValidator().validate(
            "workload", _specs({}), {"colour": "red"}, allow_unknown=True, warnings=warnings, field_prefix="parameters"
        )

        assert record == {}
        assert warnings == ["[workload] parameters.colour: parameter 'colour' is not declared; value ignored"]

    @pytest.mark.parametrize(
        "declaration,value,constraint",
        [
            ({"type": "int"}, True, "type int"),
            ({"type": "bool"}, 1, "type bool"),
            ({"type": "string"}, 5, "type string"),
            ({"type": "array"}, {"a": 1}, "type array"),
            ({"type": "string", "allowed": ["standard", "premium"]}, "basic", "allowed"),
            ({"type": "int", "min": 1, "max": 35}, 0, "min 1"),
            ({"type": "int", "min": 1, "max": 35}, 36, "max 35"),
            ({"type": "string", "min_length": 3}, "kv", "min_length 3"),
            ({"type": "array", "max_length": 1}, ["a", "b"], "max_length 1"),
        ],
    )
    def test_constraint_violations(self, declaration, value, constraint):
        from azcompose.templates.errors import ConstraintViolationError
        from azcompose.templates.validation import ParameterValidator

        with pytest.raises(ConstraintViolationError) as exc_info:
            ParameterValidator().validate("module", _specs({"p": declaration}), {"p": value})

        error = exc_info.value
        assert error.parameter == "p"
        assert error.value == value
        assert error.constraint.startswith(constraint)
        assert error.module_id == "module"

    def test_allowed_object_values(self):
        """Test allowed sets compare whole objects."""
        from azcompose.templates.errors import ConstraintViolationError
        from azcompose.templates.validation import ParameterValidator

        specs = _specs({"p": {"type": "object", "allowed": [{"tier": 1}, {"tier": 2}]}})
        validator = ParameterValidator()

        assert validator.validate("m", specs, {"p": {"tier": 2}}) == {"p": {"tier": 2}}
        with pytest.raises(ConstraintViolationError, match="allowed"):
            validator.validate("m", specs, {"p": {"tier": 3}})

    def test_secure_value_redacted_in_error(self):
        from azcompose.templates.errors import ConstraintViolationError
        from azcompose.templates.validation import ParameterValidator

        specs = _specs({"adminPassword": {"type": "securestring", "min_length": 12}})

        with pytest.raises(ConstraintViolationError) as exc_info:
            ParameterValidator().validate("sql", specs, {"adminPassword": "hunter2"})

        assert "hunter2" not in str(exc_info.value)
        assert "[REDACTED]" in str(exc_info.value)

    def test_key_vault_reference_requires_secure_parameter(self):
        from azcompose.templates.bundles import SecretReference
        from azcompose.templates.errors import ConstraintViolationError
        from azcompose.templates.validation import ParameterValidator

        secret = SecretReference("/subscriptions/x/vaults/kv", "sql-admin")
        validator = ParameterValidator()

        record = validator.validate("sql", _specs({"pwd": {"type": "securestring", "min_length": 12}}), {"pwd": secret})
        assert record["pwd"] is secret

        with pytest.raises(ConstraintViolationError, match="Key Vault references need a secure parameter"):
            validator.validate("sql", _specs({"pwd": "string"}), {"pwd": secret})

    def test_output_reference_checked_for_type_only(self):
        from azcompose.templates.errors import ConstraintViolationError
        from azcompose.templates.plan import OutputReference
        from azcompose.templates.schema import ParameterType
        from azcompose.templates.validation import ParameterValidator

        reference = OutputReference("network", "subnetId", ParameterType.STRING)
        validator = ParameterValidator()

        # min_length cannot be checked before realization
        specs = _specs({"subnetId": {"type": "string", "min_length": 10}})
        assert validator.validate("kv", specs, {"subnetId": reference}) == {"subnetId": reference}

        with pytest.raises(ConstraintViolationError, match="output 'network.subnetId' is string"):
            validator.validate("kv", _specs({"subnetId": "int"}), {"subnetId": reference})

    def test_nested_output_reference_skips_allowed_set(self):
        from azcompose.templates.plan import OutputReference
        from azcompose.templates.schema import ParameterType
        from azcompose.templates.validation import ParameterValidator

        reference = OutputReference("network", "subnetId", ParameterType.STRING)
        specs = _specs({"subnets": {"type": "array", "max_length": 5, "allowed": [["snet-a"]]}})

        record = ParameterValidator().validate("kv", specs, {"subnets": [reference]})

        assert record["subnets"] == [reference]

    def test_nested_output_reference_keeps_length_bounds(self):
        from azcompose.templates.errors import ConstraintViolationError
        from azcompose.templates.plan import OutputReference
        from azcompose.templates.schema import ParameterType
        from azcompose.templates.validation import ParameterValidator

        reference = OutputReference("network", "subnetId", ParameterType.STRING)
        validator = ParameterValidator()

        with pytest.raises(ConstraintViolationError, match="max_length 2"):
            validator.validate("kv", _specs({"subnets": {"type": "array", "max_length": 2}}), {"subnets": ["a", "b", reference]})

        with pytest.raises(ConstraintViolationError, match="min_length 2"):
            validator.validate("kv", _specs({"subnets": {"type": "array", "min_length": 2}}), {"subnets": [reference]})


class TestValidationResult:
    """Test result reporting."""

    def test_summary(self):
        from azcompose.templates.validation import ValidationResult

        result = ValidationResult(is_valid=False, errors=["bad"], warnings=["careful"])

        summary = result.get_summary()
        assert "Validation FAILED with 1 errors" in summary
        assert "1 warnings" in summary
        assert result.to_json()["error_count"] == 1
