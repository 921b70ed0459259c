"""
Unit tests for the cloudfront_distribution module.
"""

import pytest
from pydantic import ValidationError

from infra_modules.logic.cloudfront import CLOUDFRONT_HOSTED_ZONE_ID, render_cloudfront_distribution
from infra_modules.models.cloudfront import CloudFrontDistributionConfig, Origin

BUCKET_DOMAIN = "site-assets.s3.us-east-1.amazonaws.com"
CERTIFICATE_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/abc"


def distribution_config(**overrides) -> dict:
    config = {
        "name": "site",
        "origins": [{
            "origin_id": "assets",
            "domain_name": BUCKET_DOMAIN,
            "origin_type": "s3",
            "is_private_origin": True,
        }],
        "default_cache_behavior": {"target_origin_id": "assets"},
    }
    config.update(overrides)
    return config


class TestPrivateOrigins:
    """Private origins are always S3 origins."""

    def test_private_origin_must_be_s3(self):
        """A private custom origin is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            Origin(origin_id="api", domain_name="api.example.com", origin_type="custom", is_private_origin=True)

        assert "must have origin_type 's3'" in str(exc_info.value)

    def test_private_s3_origin(self):
        origin = Origin(origin_id="assets", domain_name=BUCKET_DOMAIN, origin_type="s3", is_private_origin=True)

        assert origin.bucket_name == "site-assets"
        assert origin.custom_origin_config is None

    def test_s3_origin_domain(self):
        """S3 origins need an S3 bucket domain."""
        with pytest.raises(ValidationError):
            Origin(origin_id="assets", domain_name="assets.example.com", origin_type="s3")

    def test_referenced_domain_requires_bucket_arn(self):
        """Private origins with a referenced domain name the bucket explicitly."""
        with pytest.raises(ValidationError):
            Origin(
                origin_id="assets",
                domain_name="${module.assets.bucket_regional_domain_name}",
                origin_type="s3",
                is_private_origin=True,
            )

        origin = Origin(
            origin_id="assets",
            domain_name="${module.assets.bucket_regional_domain_name}",
            origin_type="s3",
            is_private_origin=True,
            bucket_arn="${module.assets.bucket_arn}",
        )
        assert origin.bucket_arn == "${module.assets.bucket_arn}"

    def test_custom_origin_defaults(self):
        """Custom origins get connection defaults."""
        origin = Origin(origin_id="api", domain_name="api.example.com")

        assert origin.custom_origin_config.origin_protocol_policy == "https-only"


class TestCacheBehaviors:
    """Behaviour rules."""

    def test_unknown_target_origin(self):
        with pytest.raises(ValidationError) as exc_info:
            CloudFrontDistributionConfig(**distribution_config(default_cache_behavior={"target_origin_id": "missing"}))

        assert "targets unknown origin 'missing'" in str(exc_info.value)

    @pytest.mark.parametrize("behavior", [
        {"allowed_methods": ["GET", "POST"]},
        {"allowed_methods": ["GET", "HEAD"], "cached_methods": ["GET", "HEAD", "OPTIONS"]},
        {"min_ttl": 100, "default_ttl": 10},
        {"cache_policy_id": "658327ea", "default_ttl": 10},
    ])
    def test_invalid_behaviors(self, behavior):
        with pytest.raises(ValidationError):
            CloudFrontDistributionConfig(**distribution_config(
                default_cache_behavior={"target_origin_id": "assets", **behavior},
            ))

    def test_one_function_per_event(self):
        with pytest.raises(ValidationError):
            CloudFrontDistributionConfig(**distribution_config(default_cache_behavior={
                "target_origin_id": "assets",
                "function_associations": [
                    {"event_type": "viewer-request", "function_arn": "arn:aws:cloudfront::123456789012:function/a"},
                ],
                "lambda_function_associations": [
                    {"event_type": "viewer-request", "lambda_arn": "arn:aws:lambda:us-east-1:123456789012:function:edge:3"},
                ],
            }))

    @pytest.mark.parametrize("lambda_arn", [
        "arn:aws:lambda:us-east-1:123456789012:function:edge",
        "arn:aws:lambda:eu-west-1:123456789012:function:edge:3",
    ])
    def test_edge_function_arn(self, lambda_arn):
        """Lambda@Edge needs a published version in us-east-1."""
        with pytest.raises(ValidationError):
            CloudFrontDistributionConfig(**distribution_config(default_cache_behavior={
                "target_origin_id": "assets",
                "lambda_function_associations": [{"event_type": "origin-request", "lambda_arn": lambda_arn}],
            }))

    def test_duplicate_path_patterns(self):
        with pytest.raises(ValidationError):
            CloudFrontDistributionConfig(**distribution_config(ordered_cache_behaviors=[
                {"path_pattern": "/img/*", "target_origin_id": "assets"},
                {"path_pattern": "/img/*", "target_origin_id": "assets"},
            ]))


class TestCertificate:
    """Alias and certificate rules."""

    def test_aliases_require_certificate(self):
        with pytest.raises(ValidationError):
            CloudFrontDistributionConfig(**distribution_config(aliases=["www.example.com"]))

    def test_certificate_region(self):
        with pytest.raises(ValidationError) as exc_info:
            CloudFrontDistributionConfig(**distribution_config(
                aliases=["www.example.com"],
                acm_certificate_arn="arn:aws:acm:eu-west-1:123456789012:certificate/abc",
            ))

        assert "must be in us-east-1" in str(exc_info.value)

    def test_error_responses(self):
        with pytest.raises(ValidationError):
            CloudFrontDistributionConfig(**distribution_config(custom_error_responses=[{"error_code": 302}]))
        with pytest.raises(ValidationError):
            CloudFrontDistributionConfig(**distribution_config(custom_error_responses=[
                {"error_code": 404, "response_code": 200},
            ]))


class TestRenderCloudFront:
    """Rendering of the distribution, access controls and bucket grants."""

    def test_private_origin_access_control(self, aws_context):
        """Private origins get an origin access control wired into the distribution."""
        rendered = render_cloudfront_distribution(CloudFrontDistributionConfig(**distribution_config()), aws_context)
        distribution = rendered.resource("aws_cloudfront_distribution")

        assert rendered.resource("aws_cloudfront_origin_access_control", "assets").arguments["name"] == "site-assets"
        assert distribution.arguments["origin"][0]["origin_access_control_id"] == (
            "${aws_cloudfront_origin_access_control.assets.id}"
        )
        assert distribution.depends_on == ["aws_cloudfront_origin_access_control.assets"]

    def test_bucket_policy_statement(self, aws_context):
        """Each private bucket gets a read grant scoped to the distribution."""
        rendered = render_cloudfront_distribution(CloudFrontDistributionConfig(**distribution_config()), aws_context)
        statement = rendered.outputs["s3_bucket_policy_statements"]["assets"]

        assert statement["Resource"] == ["arn:aws:s3:::site-assets/*"]
        assert statement["Action"] == ["s3:GetObject"]
        assert statement["Condition"] == {
            "StringEquals": {"AWS:SourceArn": "${aws_cloudfront_distribution.this.arn}"},
        }

    def test_default_certificate(self, aws_context):
        rendered = render_cloudfront_distribution(CloudFrontDistributionConfig(**distribution_config()), aws_context)

        assert rendered.resource("aws_cloudfront_distribution").arguments["viewer_certificate"] == {
            "cloudfront_default_certificate": True,
        }
        assert rendered.outputs["hosted_zone_id"] == CLOUDFRONT_HOSTED_ZONE_ID

    def test_alias_certificate(self, aws_context):
        config = CloudFrontDistributionConfig(**distribution_config(
            aliases=["www.example.com"], acm_certificate_arn=CERTIFICATE_ARN,
        ))
        certificate = render_cloudfront_distribution(config, aws_context).resource(
            "aws_cloudfront_distribution"
        ).arguments["viewer_certificate"]

        assert certificate["ssl_support_method"] == "sni-only"
        assert certificate["minimum_protocol_version"] == "TLSv1.2_2021"

    def test_legacy_ttls(self, aws_context):
        """Behaviours without a cache policy carry TTL defaults."""
        behavior = render_cloudfront_distribution(
            CloudFrontDistributionConfig(**distribution_config()), aws_context
        ).resource("aws_cloudfront_distribution").arguments["default_cache_behavior"]

        assert (behavior["min_ttl"], behavior["default_ttl"], behavior["max_ttl"]) == (0, 86400, 31536000)

    def test_origin_ids_with_the_same_local_name(self, aws_context):
        """Origin ids that normalize alike get distinct access controls and statement ids."""
        origin = {"domain_name": BUCKET_DOMAIN, "origin_type": "s3", "is_private_origin": True}
        config = CloudFrontDistributionConfig(**distribution_config(
            origins=[{**origin, "origin_id": "site.assets"}, {**origin, "origin_id": "site_assets"}],
            default_cache_behavior={"target_origin_id": "site.assets"},
        ))
        rendered = render_cloudfront_distribution(config, aws_context)

        access_controls = rendered.resources_of_type("aws_cloudfront_origin_access_control")
        assert [access_control.name for access_control in access_controls] == ["site_assets", "site_assets_1"]
        statements = rendered.outputs["s3_bucket_policy_statements"]
        assert statements["site.assets"]["Sid"] == "AllowCloudFrontsiteassets"
        assert statements["site_assets"]["Sid"] == "AllowCloudFrontsiteassets1"
