"""
Unit tests for the codebuild_project module.
"""

import pytest
from pydantic import ValidationError

from infra_modules.logic.codebuild import render_codebuild_project, service_role_policy
from infra_modules.models.codebuild import CodeBuildProjectConfig

ECR_IMAGE = "123456789012.dkr.ecr.us-east-1.amazonaws.com/build-images/python:3.12"
CODECOMMIT_URL = "https://git-codecommit.us-east-1.amazonaws.com/v1/repos/orders-service"


def s3_project(**overrides) -> dict:
    config = {
        "name": "orders-build",
        "source_config": {"type": "S3", "location": "source-bucket/orders/source.zip"},
        "artifacts_config": {"type": "S3", "location": "artifact-bucket"},
        "cache_config": {"type": "S3", "location": "cache-bucket/orders"},
    }
    config.update(overrides)
    return config


class TestS3SourcePolicy:
    """Projects building from S3 only get S3 grants for their buckets."""

    def test_read_write_scoped_to_artifact_and_cache_buckets(self, aws_context):
        """S3ReadWrite covers the artifact and cache buckets and nothing else."""
        policy = service_role_policy(CodeBuildProjectConfig(**s3_project()), aws_context)

        assert policy.get("S3ReadWrite").resources == [
            "arn:aws:s3:::artifact-bucket",
            "arn:aws:s3:::artifact-bucket/*",
            "arn:aws:s3:::cache-bucket",
            "arn:aws:s3:::cache-bucket/*",
        ]
        assert "s3:PutObject" in policy.get("S3ReadWrite").actions
        assert policy.get("S3SourceRead").resources == ["arn:aws:s3:::source-bucket", "arn:aws:s3:::source-bucket/*"]

    def test_no_codecommit_or_ecr_statements(self, aws_context):
        """No CodeCommit or ECR grants without those providers."""
        policy = service_role_policy(CodeBuildProjectConfig(**s3_project()), aws_context)

        assert not any(action.startswith(("codecommit:", "ecr:")) for action in policy.actions())
        assert policy.sids == ["CloudWatchLogs", "CodeBuildReports", "S3ReadWrite", "S3SourceRead"]

    def test_read_write_falls_back_to_source_bucket(self, aws_context):
        """Without S3 artifacts or cache the source bucket gets read/write."""
        config = CodeBuildProjectConfig(**s3_project(artifacts_config={"type": "NO_ARTIFACTS"}, cache_config={}))
        policy = service_role_policy(config, aws_context)

        assert policy.get("S3ReadWrite").resources == ["arn:aws:s3:::source-bucket", "arn:aws:s3:::source-bucket/*"]

    def test_ecr_statements_when_image_is_ecr(self, aws_context):
        """An ECR build image adds pull grants on its repository."""
        config = CodeBuildProjectConfig(**s3_project(environment={"image": ECR_IMAGE}))
        policy = service_role_policy(config, aws_context)

        assert policy.has_statement("EcrAuth")
        assert policy.get("EcrPull").resources == [
            "arn:aws:ecr:us-east-1:123456789012:repository/build-images/python",
        ]
        assert not policy.has_statement("CodeCommitPull")


class TestSourcePolicies:
    """Statements derived from other providers."""

    def test_codecommit_pull(self, aws_context):
        config = CodeBuildProjectConfig(name="orders-build", source_config={"type": "CODECOMMIT", "location": CODECOMMIT_URL})
        policy = service_role_policy(config, aws_context)

        assert policy.get("CodeCommitPull").resources == ["arn:aws:codecommit:us-east-1:123456789012:orders-service"]
        assert not policy.has_statement("S3ReadWrite")

    def test_ecr_push(self, aws_context):
        """Pushing to ECR needs authorization and push grants."""
        repository = "arn:aws:ecr:us-east-1:123456789012:repository/orders"
        config = CodeBuildProjectConfig(**s3_project(ecr_push_repository_arns=[repository]))
        policy = service_role_policy(config, aws_context)

        assert policy.has_statement("EcrAuth")
        assert policy.get("EcrPush").resources == [repository]
        assert not policy.has_statement("EcrPull")

    def test_environment_secrets(self, aws_context):
        """Parameter Store and Secrets Manager variables are granted by name."""
        config = CodeBuildProjectConfig(**s3_project(environment={"variables": [
            {"name": "DB_URL", "value": "/orders/db-url", "type": "PARAMETER_STORE"},
            {"name": "TOKEN", "value": "orders/token:api_key", "type": "SECRETS_MANAGER"},
        ]}))
        policy = service_role_policy(config, aws_context)

        assert policy.get("SsmParameters").resources == ["arn:aws:ssm:us-east-1:123456789012:parameter/orders/db-url"]
        assert policy.get("SecretsManager").resources == [
            "arn:aws:secretsmanager:us-east-1:123456789012:secret:orders/token-*",
        ]

    def test_vpc_statements(self, aws_context):
        config = CodeBuildProjectConfig(**s3_project(vpc_config={
            "vpc_id": "vpc-123", "subnets": ["subnet-1"], "security_group_ids": ["sg-1"],
        }))
        policy = service_role_policy(config, aws_context)

        condition = policy.get("VpcNetworkInterfacePermission").conditions
        assert condition["ArnEquals"]["ec2:Subnet"] == ["arn:aws:ec2:us-east-1:123456789012:subnet/subnet-1"]


class TestProjectRules:
    """Cross-field configuration rules."""

    @pytest.mark.parametrize("source", [
        {"type": "S3"},
        {"type": "S3", "location": "bucket-only"},
        {"type": "CODECOMMIT", "location": "https://github.com/org/repo"},
        {"type": "NO_SOURCE"},
        {"type": "CODEPIPELINE", "location": "bucket/key"},
        {"type": "S3", "location": "bucket/key", "git_clone_depth": 1},
    ])
    def test_invalid_sources(self, source):
        with pytest.raises(ValidationError):
            CodeBuildProjectConfig(name="orders-build", source_config=source)

    def test_pipeline_source_requires_pipeline_artifacts(self):
        with pytest.raises(ValidationError) as exc_info:
            CodeBuildProjectConfig(name="orders-build", source_config={"type": "CODEPIPELINE"})

        assert "must be used together" in str(exc_info.value)

        config = CodeBuildProjectConfig(
            name="orders-build",
            source_config={"type": "CODEPIPELINE"},
            artifacts_config={"type": "CODEPIPELINE"},
        )
        assert config.uses_s3 is False

    def test_lambda_compute_rules(self):
        """Lambda compute needs a Lambda container and rejects VPC and local cache."""
        with pytest.raises(ValidationError):
            CodeBuildProjectConfig(**s3_project(environment={"compute_type": "BUILD_LAMBDA_1GB"}))
        with pytest.raises(ValidationError):
            CodeBuildProjectConfig(**s3_project(
                environment={"compute_type": "BUILD_LAMBDA_1GB", "type": "LINUX_LAMBDA_CONTAINER"},
                vpc_config={"vpc_id": "vpc-123", "subnets": ["subnet-1"], "security_group_ids": ["sg-1"]},
            ))

    def test_cache_modes(self):
        with pytest.raises(ValidationError):
            CodeBuildProjectConfig(**s3_project(cache_config={"type": "LOCAL"}))

    def test_s3_logs_location(self):
        with pytest.raises(ValidationError):
            CodeBuildProjectConfig(**s3_project(logs_config={"s3_enabled": True}))

    def test_badge_unsupported_for_s3(self):
        with pytest.raises(ValidationError):
            CodeBuildProjectConfig(**s3_project(badge_enabled=True))


class TestRenderCodeBuild:
    """Rendering of the project and its role."""

    def test_project_with_created_role(self, aws_context):
        rendered = render_codebuild_project(CodeBuildProjectConfig(**s3_project()), aws_context)
        project = rendered.resource("aws_codebuild_project")

        assert rendered.resource("aws_iam_role").arguments["name"] == "orders-build-codebuild"
        assert project.arguments["service_role"] == "${aws_iam_role.this.arn}"
        assert project.arguments["logs_config"]["cloudwatch_logs"]["group_name"] == "/aws/codebuild/orders-build"
        assert project.arguments["artifacts"]["packaging"] == "NONE"

    def test_existing_role(self, aws_context):
        role = "arn:aws:iam::123456789012:role/build"
        rendered = render_codebuild_project(CodeBuildProjectConfig(**s3_project(service_role_arn=role)), aws_context)

        assert rendered.resources_of_type("aws_iam_role") == []
        assert rendered.outputs["role_arn"] == role
        assert rendered.outputs["badge_url"] is None

    def test_connection_auth(self, aws_context):
        connection = "arn:aws:codestar-connections:us-east-1:123456789012:connection/abc"
        config = CodeBuildProjectConfig(name="orders-build", source_config={
            "type": "GITHUB",
            "location": "https://github.com/org/orders.git",
            "connection_arn": connection,
        })
        rendered = render_codebuild_project(config, aws_context)

        assert rendered.resource("aws_codebuild_project").arguments["source"]["auth"] == {
            "type": "CODECONNECTIONS", "resource": connection,
        }
        assert rendered.resource("aws_iam_role_policy").arguments["policy"]["Statement"][-1]["Sid"] == "CodeStarConnection"
