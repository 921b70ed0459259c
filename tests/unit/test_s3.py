"""
Unit tests for the s3_bucket module.
"""

import pytest
from pydantic import ValidationError

from infra_modules.logic.s3 import bucket_policy, render_s3_bucket
from infra_modules.models.s3 import S3BucketConfig


class TestBucketName:
    """S3 naming rules."""

    @pytest.mark.parametrize("bucket", [
        "ab",
        "My-Bucket",
        "bucket..name",
        "bucket.-name",
        "192.168.1.10",
        "xn--bucket",
        "sthree-bucket",
        "bucket-s3alias",
        "bucket--ol-s3",
        "-bucket",
    ])
    def test_invalid_names(self, bucket):
        """Names breaking the S3 rules are rejected."""
        with pytest.raises(ValidationError):
            S3BucketConfig(bucket=bucket)

    def test_valid_name(self):
        config = S3BucketConfig(bucket="my.artifacts-bucket")

        assert config.versioning_enabled is True
        assert config.block_public_access.block_public_acls is True


class TestLifecycleRules:
    """Lifecycle rule ordering."""

    def test_increasing_transitions(self):
        """Transitions must move forward in time."""
        with pytest.raises(ValidationError) as exc_info:
            S3BucketConfig(bucket="logs-bucket", lifecycle_rules=[{
                "id": "archive",
                "transitions": [
                    {"days": 90, "storage_class": "GLACIER"},
                    {"days": 60, "storage_class": "DEEP_ARCHIVE"},
                ],
            }])

        assert "strictly increasing days" in str(exc_info.value)

    def test_infrequent_access_minimum(self):
        """IA classes need 30 days."""
        with pytest.raises(ValidationError):
            S3BucketConfig(bucket="logs-bucket", lifecycle_rules=[{
                "id": "ia", "transitions": [{"days": 7, "storage_class": "STANDARD_IA"}],
            }])

    def test_expiration_after_transitions(self):
        """Expiration comes after the last transition."""
        with pytest.raises(ValidationError):
            S3BucketConfig(bucket="logs-bucket", lifecycle_rules=[{
                "id": "archive",
                "transitions": [{"days": 90, "storage_class": "GLACIER"}],
                "expiration_days": 30,
            }])

    def test_rule_without_action(self):
        with pytest.raises(ValidationError):
            S3BucketConfig(bucket="logs-bucket", lifecycle_rules=[{"id": "noop"}])

    def test_duplicate_rule_ids(self):
        with pytest.raises(ValidationError):
            S3BucketConfig(bucket="logs-bucket", lifecycle_rules=[
                {"id": "expire", "expiration_days": 30},
                {"id": "expire", "expiration_days": 60},
            ])


class TestBucketSettings:
    """Encryption, website and policy rules."""

    def test_kms_key_requires_kms_algorithm(self):
        with pytest.raises(ValidationError):
            S3BucketConfig(bucket="data-bucket", encryption={"kms_key_arn": "arn:aws:kms:us-east-1:123456789012:key/abc"})

    def test_website_requires_public_policy(self):
        """Website hosting needs a bucket policy that can be public."""
        with pytest.raises(ValidationError):
            S3BucketConfig(bucket="site-bucket", website={})

        config = S3BucketConfig(
            bucket="site-bucket",
            website={"error_document": "404.html"},
            block_public_access={"block_public_policy": False, "restrict_public_buckets": False},
        )
        assert config.website.index_document == "index.html"

    def test_policy_statement_shape(self):
        """Extra statements need Effect and Action."""
        with pytest.raises(ValidationError):
            S3BucketConfig(bucket="data-bucket", policy_statements=[{"Effect": "Allow"}])


class TestRenderS3Bucket:
    """Rendering of the bucket and its companion resources."""

    def test_default_resources(self, aws_context):
        """A bucket renders with access block, ownership, versioning, encryption and TLS policy."""
        rendered = render_s3_bucket(S3BucketConfig(bucket="data-bucket"), aws_context)

        assert [resource.type for resource in rendered.resources] == [
            "aws_s3_bucket",
            "aws_s3_bucket_public_access_block",
            "aws_s3_bucket_ownership_controls",
            "aws_s3_bucket_versioning",
            "aws_s3_bucket_server_side_encryption_configuration",
            "aws_s3_bucket_policy",
        ]
        assert rendered.outputs["bucket_arn"] == "arn:aws:s3:::data-bucket"
        assert rendered.resource("aws_s3_bucket_policy").depends_on == ["aws_s3_bucket_public_access_block.this"]

    def test_aes256_has_no_bucket_key(self, aws_context):
        """The bucket key setting only applies to KMS encryption."""
        rendered = render_s3_bucket(S3BucketConfig(bucket="data-bucket"), aws_context)
        rule = rendered.resource("aws_s3_bucket_server_side_encryption_configuration").arguments["rule"]

        assert rule == {"apply_server_side_encryption_by_default": {"sse_algorithm": "AES256"}}

    def test_no_policy_without_statements(self, aws_context):
        """Without TLS enforcement or statements no policy is declared."""
        config = S3BucketConfig(bucket="data-bucket", enforce_tls=False)

        assert bucket_policy(config, aws_context) is None
        assert render_s3_bucket(config, aws_context).resources_of_type("aws_s3_bucket_policy") == []

    def test_policy_appends_statements(self, aws_context):
        """Caller statements follow the TLS statement."""
        statement = {"Effect": "Allow", "Action": "s3:GetObject", "Principal": {"Service": "cloudfront.amazonaws.com"}}
        policy = bucket_policy(S3BucketConfig(bucket="data-bucket", policy_statements=[statement]), aws_context)

        assert [item.get("Sid") for item in policy["Statement"]] == ["DenyInsecureTransport", None]
        assert policy["Statement"][0]["Resource"] == ["arn:aws:s3:::data-bucket", "arn:aws:s3:::data-bucket/*"]

    def test_lifecycle_depends_on_versioning(self, aws_context):
        config = S3BucketConfig(bucket="logs-bucket", lifecycle_rules=[{"id": "expire", "expiration_days": 30}])
        lifecycle = render_s3_bucket(config, aws_context).resource("aws_s3_bucket_lifecycle_configuration")

        assert lifecycle.depends_on == ["aws_s3_bucket_versioning.this"]
        assert lifecycle.arguments["rule"][0]["expiration"] == {"days": 30}
        assert lifecycle.arguments["rule"][0]["transition"] == []

    def test_website_output(self, aws_context):
        config = S3BucketConfig(
            bucket="site-bucket",
            website={},
            block_public_access={"block_public_policy": False},
        )
        rendered = render_s3_bucket(config, aws_context)

        assert rendered.outputs["website_endpoint"] == "${aws_s3_bucket_website_configuration.this.website_endpoint}"
