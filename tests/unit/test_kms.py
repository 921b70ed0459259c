"""
Unit tests for the kms_key module.
"""

import pytest
from pydantic import ValidationError

from infra_modules.logic.kms import key_policy, render_kms_key
from infra_modules.models.kms import KmsKeyConfig

ADMIN_ROLE = "arn:aws:iam::123456789012:role/platform-admin"
APP_ROLE = "arn:aws:iam::123456789012:role/orders-api"


class TestKeySpec:
    """Usage, spec and rotation rules."""

    def test_symmetric_key_rotates_by_default(self):
        assert KmsKeyConfig().rotation_enabled is True

    def test_asymmetric_key_does_not_rotate(self):
        config = KmsKeyConfig(key_usage="SIGN_VERIFY", customer_master_key_spec="ECC_NIST_P256")

        assert config.rotation_enabled is False

    @pytest.mark.parametrize("key_usage, key_spec", [
        ("SIGN_VERIFY", "SYMMETRIC_DEFAULT"),
        ("ENCRYPT_DECRYPT", "HMAC_256"),
        ("ENCRYPT_DECRYPT", "ECC_NIST_P384"),
    ])
    def test_usage_must_suit_spec(self, key_usage, key_spec):
        with pytest.raises(ValidationError) as exc_info:
            KmsKeyConfig(key_usage=key_usage, customer_master_key_spec=key_spec)

        assert f"{key_spec} keys support" in str(exc_info.value)

    def test_rotation_on_asymmetric_key(self):
        with pytest.raises(ValidationError) as exc_info:
            KmsKeyConfig(key_usage="SIGN_VERIFY", customer_master_key_spec="RSA_2048", enable_key_rotation=True)

        assert "only supported for SYMMETRIC_DEFAULT keys" in str(exc_info.value)

    def test_rotation_period_requires_rotation(self):
        with pytest.raises(ValidationError):
            KmsKeyConfig(enable_key_rotation=False, rotation_period_in_days=180)

    @pytest.mark.parametrize("alias", ["orders", "alias/aws/orders", "alias/orders key"])
    def test_invalid_aliases(self, alias):
        with pytest.raises(ValidationError):
            KmsKeyConfig(aliases=[alias])

    def test_principals_must_be_iam(self):
        with pytest.raises(ValidationError):
            KmsKeyConfig(key_users=["arn:aws:lambda:us-east-1:123456789012:function:orders"])


class TestKeyPolicy:
    def test_root_only(self, aws_context):
        policy = key_policy(KmsKeyConfig(), aws_context)

        assert policy.sids == ["EnableRootAccountPermissions"]
        assert policy.get("EnableRootAccountPermissions").principals == {"AWS": "arn:aws:iam::123456789012:root"}

    def test_administrators_users_and_services(self, aws_context):
        config = KmsKeyConfig(
            key_administrators=[ADMIN_ROLE],
            key_users=[APP_ROLE],
            key_service_principals=["logs.amazonaws.com"],
        )
        policy = key_policy(config, aws_context)

        assert policy.sids == [
            "EnableRootAccountPermissions", "KeyAdministrators", "KeyUsers", "KeyUsersGrants", "ServicePrincipals",
        ]
        assert "kms:GenerateDataKey*" in policy.get("KeyUsers").actions
        assert policy.get("KeyUsersGrants").conditions == {"Bool": {"kms:GrantIsForAWSResource": "true"}}
        assert policy.get("ServicePrincipals").principals == {"Service": ["logs.amazonaws.com"]}

    def test_signing_key_users(self, aws_context):
        config = KmsKeyConfig(key_usage="SIGN_VERIFY", customer_master_key_spec="RSA_2048", key_users=[APP_ROLE])

        assert "kms:Sign" in key_policy(config, aws_context).get("KeyUsers").actions


class TestRenderKmsKey:
    def test_key_and_aliases(self, aws_context):
        rendered = render_kms_key(KmsKeyConfig(aliases=["alias/orders", "alias/orders/backup"]), aws_context)

        key = rendered.resource("aws_kms_key")
        assert key.arguments["enable_key_rotation"] is True
        assert key.arguments["deletion_window_in_days"] == 30
        assert "rotation_period_in_days" not in key.arguments
        assert rendered.resource("aws_kms_alias", "orders_backup").arguments["target_key_id"] == (
            "${aws_kms_key.this.key_id}"
        )
        assert rendered.outputs["alias_arns"]["alias/orders"] == "arn:aws:kms:us-east-1:123456789012:alias/orders"
        assert rendered.name == "orders"

    def test_unnamed_key(self, aws_context):
        rendered = render_kms_key(KmsKeyConfig(), aws_context)

        assert rendered.name == "kms-key"
        assert rendered.outputs["alias_names"] == []
