"""Unit tests for template versioning and constraint matching."""

import pytest


class TestTemplateVersion:
    """Test semantic version parsing and ordering."""

    def test_parse_version(self):
        from azcompose.templates.versioning import TemplateVersion

        version = TemplateVersion.from_string("1.2.3")

        assert (version.major, version.minor, version.patch) == (1, 2, 3)
        assert str(version) == "1.2.3"

    @pytest.mark.parametrize("invalid", ["1.2", "1.2.3.4", "v1.2.3", "", "1.x.0"])
    def test_invalid_version(self, invalid):
        from azcompose.templates.versioning import TemplateVersion

        with pytest.raises(ValueError, match="Invalid version format"):
            TemplateVersion.from_string(invalid)

    def test_ordering_is_numeric(self):
        """Test 1.10.0 sorts after 1.9.0."""
        from azcompose.templates.versioning import TemplateVersion

        versions = [TemplateVersion.from_string(v) for v in ["1.10.0", "1.9.0", "0.1.0", "2.0.0"]]

        assert [str(v) for v in sorted(versions)] == ["0.1.0", "1.9.0", "1.10.0", "2.0.0"]
        assert max(versions) == TemplateVersion(2, 0, 0)


class TestVersionConstraints:
    """Test constraint matching."""

    @pytest.mark.parametrize(
        "version,constraint,expected",
        [
            ("1.2.0", None, True),
            ("1.2.0", "*", True),
            ("1.2.0", "1.2.0", True),
            ("1.2.1", "1.2.0", False),
            ("1.2.0", "==1.2.0", True),
            ("1.5.0", ">=1.0.0,<2.0.0", True),
            ("2.0.0", ">=1.0.0,<2.0.0", False),
            ("1.0.0", ">1.0.0", False),
            ("1.0.0", "<=1.0.0", True),
            ("0.9.9", ">= 1.0.0", False),
        ],
    )
    def test_satisfies(self, version, constraint, expected):
        from azcompose.templates.versioning import TemplateVersion

        assert TemplateVersion.from_string(version).satisfies(constraint) is expected

    def test_malformed_constraint(self):
        from azcompose.templates.versioning import validate_constraint

        with pytest.raises(ValueError):
            validate_constraint(">=one")

    def test_parse_template_ref(self):
        from azcompose.templates.versioning import parse_template_ref

        assert parse_template_ref("keyvault") == ("keyvault", None)
        assert parse_template_ref("keyvault@>=1.0.0") == ("keyvault", ">=1.0.0")
        assert parse_template_ref("keyvault@") == ("keyvault", None)
