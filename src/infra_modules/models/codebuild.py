"""
Input model for the codebuild_project module.
"""

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import check_arn, is_reference
from infra_modules.models.common import ModuleConfig, find_duplicates

SourceType = Literal['CODECOMMIT', 'CODEPIPELINE', 'GITHUB', 'GITHUB_ENTERPRISE', 'BITBUCKET', 'S3', 'NO_SOURCE']

LOCATED_SOURCES = ('CODECOMMIT', 'GITHUB', 'GITHUB_ENTERPRISE', 'BITBUCKET', 'S3')

CONNECTION_SOURCES = ('GITHUB', 'GITHUB_ENTERPRISE', 'BITBUCKET')

LAMBDA_COMPUTE_TYPES = ('BUILD_LAMBDA_1GB', 'BUILD_LAMBDA_2GB', 'BUILD_LAMBDA_4GB', 'BUILD_LAMBDA_8GB', 'BUILD_LAMBDA_10GB')

LAMBDA_CONTAINER_TYPES = ('LINUX_LAMBDA_CONTAINER', 'ARM_LAMBDA_CONTAINER')

PRIVILEGED_CONTAINER_TYPES = ('LINUX_CONTAINER', 'LINUX_GPU_CONTAINER', 'ARM_CONTAINER')

ECR_IMAGE_PATTERN = re.compile(
    r'^(?P<account>\d{12})\.dkr\.ecr\.(?P<region>[a-z0-9-]+)\.amazonaws\.com(?:\.cn)?/'
    r'(?P<repository>[a-z0-9._/-]+?)(?::[\w.-]+|@sha256:[a-f0-9]{64})?$'
)

CODECOMMIT_URL_PATTERN = re.compile(
    r'^https://git-codecommit\.(?P<region>[a-z0-9-]+)\.amazonaws\.com(?:\.cn)?/v1/repos/(?P<repository>[\w.-]+)$'
)


def bucket_of(location: str) -> str:
    """Bucket part of an S3 location of the form ``bucket[/key]``."""
    return location.split('/', 1)[0]


class SourceConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    type: SourceType

    location: str | None = None

    buildspec: Annotated[str | None, Field(
        default=None,
        description='Inline buildspec or path to a buildspec file in the source'
    )] = None

    git_clone_depth: Annotated[int | None, Field(default=None, ge=0)] = None

    connection_arn: Annotated[str | None, Field(
        default=None,
        description='CodeStar connection used to access GitHub or Bitbucket'
    )] = None

    report_build_status: bool = False

    @field_validator('connection_arn')
    @classmethod
    def validate_connection_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'codestar-connections', 'codeconnections') if v is not None else v

    @model_validator(mode='after')
    def check_location(self) -> 'SourceConfig':
        if self.type == 'NO_SOURCE' and not self.buildspec:
            raise ValueError('NO_SOURCE projects require an inline buildspec')
        if self.type in LOCATED_SOURCES and not self.location:
            raise ValueError(f'{self.type} sources require a location')
        if self.type in ('CODEPIPELINE', 'NO_SOURCE') and self.location is not None:
            raise ValueError(f'{self.type} sources must not set a location')
        if self.type == 'S3' and not is_reference(self.location):
            bucket, _, key = self.location.partition('/')
            if not bucket or not key:
                raise ValueError(f"S3 source location '{self.location}' must have the form 'bucket/key'")
        if self.type == 'CODECOMMIT' and not is_reference(self.location):
            if not CODECOMMIT_URL_PATTERN.match(self.location):
                raise ValueError(f"'{self.location}' is not a CodeCommit clone URL")
        if self.connection_arn is not None and self.type not in CONNECTION_SOURCES:
            raise ValueError(f'connection_arn is not supported for {self.type} sources')
        if self.git_clone_depth is not None and self.type not in (*CONNECTION_SOURCES, 'CODECOMMIT'):
            raise ValueError(f'git_clone_depth is not supported for {self.type} sources')
        if self.report_build_status and self.type not in CONNECTION_SOURCES:
            raise ValueError(f'report_build_status is not supported for {self.type} sources')
        return self

    @property
    def codecommit_repository(self) -> str | None:
        """Repository name parsed from a CodeCommit clone URL."""
        if self.type != 'CODECOMMIT' or self.location is None:
            return None
        match = CODECOMMIT_URL_PATTERN.match(self.location)
        return match.group('repository') if match else None


class ArtifactsConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    type: Literal['CODEPIPELINE', 'NO_ARTIFACTS', 'S3'] = 'NO_ARTIFACTS'

    location: Annotated[str | None, Field(default=None, description='Artifact bucket name')] = None

    path: str | None = None

    name: str | None = None

    packaging: Literal['NONE', 'ZIP'] = 'NONE'

    encryption_disabled: bool = False

    @model_validator(mode='after')
    def check_location(self) -> 'ArtifactsConfig':
        if self.type == 'S3' and not self.location:
            raise ValueError('S3 artifacts require a location')
        if self.type != 'S3' and (self.location or self.path or self.name):
            raise ValueError(f'{self.type} artifacts take no location, path or name')
        return self


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    type: Literal['NO_CACHE', 'S3', 'LOCAL'] = 'NO_CACHE'

    location: Annotated[str | None, Field(default=None, description='Cache bucket, optionally with a prefix')] = None

    modes: list[Literal['LOCAL_DOCKER_LAYER_CACHE', 'LOCAL_SOURCE_CACHE', 'LOCAL_CUSTOM_CACHE']] = Field(
        default_factory=list
    )

    @model_validator(mode='after')
    def check_type(self) -> 'CacheConfig':
        if self.type == 'S3' and not self.location:
            raise ValueError('S3 cache requires a location')
        if self.type != 'S3' and self.location is not None:
            raise ValueError(f'{self.type} cache takes no location')
        if self.modes and self.type != 'LOCAL':
            raise ValueError('cache modes require the LOCAL cache type')
        if self.type == 'LOCAL' and not self.modes:
            raise ValueError('LOCAL cache requires at least one mode')
        return self


class EnvironmentVariable(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, pattern=r'^[A-Za-z_][A-Za-z0-9_]*$')]

    value: str

    type: Literal['PLAINTEXT', 'PARAMETER_STORE', 'SECRETS_MANAGER'] = 'PLAINTEXT'


class BuildEnvironment(BaseModel):
    model_config = ConfigDict(extra='forbid')

    compute_type: Literal[
        'BUILD_GENERAL1_SMALL', 'BUILD_GENERAL1_MEDIUM', 'BUILD_GENERAL1_LARGE',
        'BUILD_GENERAL1_XLARGE', 'BUILD_GENERAL1_2XLARGE',
        'BUILD_LAMBDA_1GB', 'BUILD_LAMBDA_2GB', 'BUILD_LAMBDA_4GB', 'BUILD_LAMBDA_8GB', 'BUILD_LAMBDA_10GB',
    ] = 'BUILD_GENERAL1_SMALL'

    image: Annotated[str, Field(
        default='aws/codebuild/amazonlinux2-x86_64-standard:5.0',
        min_length=1
    )] = 'aws/codebuild/amazonlinux2-x86_64-standard:5.0'

    type: Literal[
        'LINUX_CONTAINER', 'LINUX_GPU_CONTAINER', 'ARM_CONTAINER',
        'WINDOWS_SERVER_2019_CONTAINER', 'WINDOWS_SERVER_2022_CONTAINER',
        'LINUX_LAMBDA_CONTAINER', 'ARM_LAMBDA_CONTAINER',
    ] = 'LINUX_CONTAINER'

    privileged_mode: bool = False

    image_pull_credentials_type: Literal['CODEBUILD', 'SERVICE_ROLE'] = 'CODEBUILD'

    variables: list[EnvironmentVariable] = Field(default_factory=list)

    @field_validator('variables')
    @classmethod
    def validate_variables(cls, v: list[EnvironmentVariable]) -> list[EnvironmentVariable]:
        duplicates = find_duplicates([variable.name for variable in v])
        if duplicates:
            raise ValueError(f"duplicate environment variables: {', '.join(duplicates)}")
        return v

    @model_validator(mode='after')
    def check_container(self) -> 'BuildEnvironment':
        lambda_compute = self.compute_type in LAMBDA_COMPUTE_TYPES
        lambda_container = self.type in LAMBDA_CONTAINER_TYPES
        if lambda_compute != lambda_container:
            raise ValueError('Lambda compute types require a Lambda container type and vice versa')
        if self.privileged_mode and self.type not in PRIVILEGED_CONTAINER_TYPES:
            raise ValueError(f'privileged_mode is only supported on Linux containers, not {self.type}')
        if self.image_pull_credentials_type == 'SERVICE_ROLE' and self.ecr_image is None and not is_reference(self.image):
            raise ValueError('SERVICE_ROLE image pull credentials require an ECR image')
        return self

    @property
    def ecr_image(self) -> re.Match | None:
        return ECR_IMAGE_PATTERN.match(self.image)

    @property
    def is_lambda(self) -> bool:
        return self.type in LAMBDA_CONTAINER_TYPES


class LogsConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    cloudwatch_enabled: bool = True

    group_name: str | None = None

    stream_name: str | None = None

    s3_enabled: bool = False

    s3_location: Annotated[str | None, Field(default=None, description='Bucket and prefix, e.g. my-bucket/build-logs')] = None

    @model_validator(mode='after')
    def check_s3(self) -> 'LogsConfig':
        if self.s3_enabled != (self.s3_location is not None):
            raise ValueError('s3_location must be set exactly when s3_enabled is true')
        return self


class BuildVpcConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    vpc_id: str

    subnets: Annotated[list[str], Field(min_length=1, max_length=16)]

    security_group_ids: Annotated[list[str], Field(min_length=1, max_length=5)]


class CodeBuildProjectConfig(ModuleConfig):
    """Input schema for the codebuild_project module."""

    name: Annotated[str, Field(min_length=2, max_length=150, pattern=r'^[A-Za-z0-9][A-Za-z0-9_-]+$')]

    description: Annotated[str, Field(default='', max_length=255)] = ''

    source_config: SourceConfig

    artifacts_config: ArtifactsConfig = Field(default_factory=ArtifactsConfig)

    cache_config: CacheConfig = Field(default_factory=CacheConfig)

    environment: BuildEnvironment = Field(default_factory=BuildEnvironment)

    build_timeout: Annotated[int, Field(default=60, ge=5, le=2160, description='Minutes')] = 60

    queued_timeout: Annotated[int, Field(default=480, ge=5, le=480, description='Minutes')] = 480

    vpc_config: BuildVpcConfig | None = None

    encryption_key_arn: str | None = None

    service_role_arn: Annotated[str | None, Field(
        default=None,
        description='Existing service role; a role is created when unset'
    )] = None

    ecr_push_repository_arns: list[str] = Field(default_factory=list)

    logs_config: LogsConfig = Field(default_factory=LogsConfig)

    badge_enabled: bool = False

    @field_validator('encryption_key_arn')
    @classmethod
    def validate_encryption_key_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'kms') if v is not None else v

    @field_validator('service_role_arn')
    @classmethod
    def validate_service_role_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'iam') if v is not None else v

    @field_validator('ecr_push_repository_arns')
    @classmethod
    def validate_ecr_push_repository_arns(cls, v: list[str]) -> list[str]:
        return [check_arn(arn, 'ecr') for arn in v]

    @model_validator(mode='after')
    def check_pipeline(self) -> 'CodeBuildProjectConfig':
        """CODEPIPELINE sources and artifacts go together."""
        pipeline_source = self.source_config.type == 'CODEPIPELINE'
        pipeline_artifacts = self.artifacts_config.type == 'CODEPIPELINE'
        if pipeline_source != pipeline_artifacts:
            raise ValueError('CODEPIPELINE source and CODEPIPELINE artifacts must be used together')
        if self.badge_enabled and self.source_config.type in ('CODEPIPELINE', 'NO_SOURCE', 'S3'):
            raise ValueError(f'build badges are not supported for {self.source_config.type} sources')
        return self

    @model_validator(mode='after')
    def check_lambda_compute(self) -> 'CodeBuildProjectConfig':
        """Lambda compute runs without VPC access or local caching."""
        if self.environment.is_lambda:
            if self.vpc_config is not None:
                raise ValueError('Lambda compute does not support vpc_config')
            if self.cache_config.type == 'LOCAL':
                raise ValueError('Lambda compute does not support LOCAL cache')
        return self

    @property
    def uses_s3(self) -> bool:
        return (
            self.source_config.type == 'S3'
            or self.artifacts_config.type == 'S3'
            or self.cache_config.type == 'S3'
        )
