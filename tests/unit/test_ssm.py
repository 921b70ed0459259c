"""
Unit tests for the ssm_parameters module.
"""

import pytest
from pydantic import ValidationError

from infra_modules.logic.ssm import render_ssm_parameters
from infra_modules.models.ssm import SsmParametersConfig


def parameters(*items) -> SsmParametersConfig:
    return SsmParametersConfig(parameters=list(items))


class TestParameterNames:
    @pytest.mark.parametrize("name, message", [
        ("/app/db host", "may only contain"),
        ("/aws/app/db", "must not start with aws or ssm"),
        ("ssm-settings", "must not start with aws or ssm"),
        ("app/db/host", "must start with '/'"),
        ("/app//host", "empty hierarchy level"),
        ("/" + "/".join(["level"] * 16), "exceeds 15 hierarchy levels"),
    ])
    def test_invalid_names(self, name, message):
        with pytest.raises(ValidationError) as exc_info:
            parameters({"name": name, "value": "x"})

        assert message in str(exc_info.value)

    def test_flat_name(self):
        assert parameters({"name": "feature-flags", "value": "on"}).parameters[0].name == "feature-flags"

    def test_duplicates(self):
        with pytest.raises(ValidationError):
            parameters({"name": "/app/a", "value": "1"}, {"name": "/app/a", "value": "2"})

    def test_at_least_one_parameter(self):
        with pytest.raises(ValidationError):
            SsmParametersConfig(parameters=[])


class TestParameterValues:
    """Size, pattern and type checks on values."""

    def test_standard_tier_limit(self):
        with pytest.raises(ValidationError) as exc_info:
            parameters({"name": "/app/blob", "value": "x" * 4097})

        assert "exceeds the Standard limit of 4096" in str(exc_info.value)

    def test_advanced_tier_allows_larger_values(self):
        config = parameters({"name": "/app/blob", "value": "x" * 8000, "tier": "Advanced"})

        assert config.parameters[0].tier == "Advanced"

    def test_size_counts_bytes(self):
        """Multi-byte characters count against the limit by encoded size."""
        with pytest.raises(ValidationError):
            parameters({"name": "/app/blob", "value": "é" * 2049})

    def test_allowed_pattern(self):
        with pytest.raises(ValidationError) as exc_info:
            parameters({"name": "/app/port", "value": "http", "allowed_pattern": r"^\d+$"})

        assert "does not match allowed_pattern" in str(exc_info.value)

    def test_allowed_pattern_skips_references(self):
        config = parameters({"name": "/app/port", "value": "${module.db.port}", "allowed_pattern": r"^\d+$"})

        assert config.parameters[0].value == "${module.db.port}"

    def test_key_id_requires_secure_string(self):
        with pytest.raises(ValidationError):
            parameters({"name": "/app/token", "value": "x", "key_id": "alias/app"})

    def test_string_list_items(self):
        with pytest.raises(ValidationError):
            parameters({"name": "/app/hosts", "type": "StringList", "value": "a,,b"})

    def test_image_data_type(self):
        with pytest.raises(ValidationError) as exc_info:
            parameters({"name": "/app/ami", "value": "ubuntu", "data_type": "aws:ec2:image"})

        assert "must be an ami- id" in str(exc_info.value)


class TestRenderSsmParameters:
    def test_declarations_and_arns(self, aws_context):
        config = parameters(
            {"name": "/app/db/host", "value": "db.internal"},
            {"name": "/app/db/password", "type": "SecureString", "value": "secret", "key_id": "alias/app"},
            {"name": "feature-flags", "value": "on"},
        )
        rendered = render_ssm_parameters(config, aws_context)

        assert [resource.name for resource in rendered.resources] == ["app_db_host", "app_db_password", "feature-flags"]
        password = rendered.resource("aws_ssm_parameter", "app_db_password")
        assert password.arguments["key_id"] == "alias/app"
        assert password.arguments["tags"] == {"Environment": "test"}
        assert "overwrite" not in password.arguments
        assert rendered.outputs["parameter_arns"] == {
            "/app/db/host": "arn:aws:ssm:us-east-1:123456789012:parameter/app/db/host",
            "/app/db/password": "arn:aws:ssm:us-east-1:123456789012:parameter/app/db/password",
            "feature-flags": "arn:aws:ssm:us-east-1:123456789012:parameter/feature-flags",
        }

    def test_colliding_local_names(self, aws_context):
        """Names that sanitize to the same local name stay distinct."""
        rendered = render_ssm_parameters(
            parameters({"name": "/app/db.host", "value": "a"}, {"name": "/app/db_host", "value": "b"}),
            aws_context,
        )

        assert [resource.name for resource in rendered.resources] == ["app_db_host", "app_db_host_1"]
