"""
Input model for the Lambda function module.
"""

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.alarms import AlarmsConfig, check_alarm_overrides
from infra_modules.models.arns import check_arn, is_reference, parse_arn
from infra_modules.models.common import ModuleConfig, find_duplicates

Runtime = Literal[
    'python3.9', 'python3.10', 'python3.11', 'python3.12', 'python3.13',
    'nodejs18.x', 'nodejs20.x', 'nodejs22.x',
    'java11', 'java17', 'java21',
    'dotnet8',
    'ruby3.2', 'ruby3.3',
    'provided.al2', 'provided.al2023',
]

LOG_RETENTION_DAYS = (
    0, 1, 3, 5, 7, 14, 30, 60, 90, 120, 150, 180, 365, 400, 545,
    731, 1096, 1827, 2192, 2557, 2922, 3288, 3653,
)

RESERVED_ENVIRONMENT_KEYS = frozenset({
    '_HANDLER', '_X_AMZN_TRACE_ID', 'AWS_DEFAULT_REGION', 'AWS_REGION', 'AWS_EXECUTION_ENV',
    'AWS_LAMBDA_FUNCTION_NAME', 'AWS_LAMBDA_FUNCTION_MEMORY_SIZE', 'AWS_LAMBDA_FUNCTION_VERSION',
    'AWS_LAMBDA_INITIALIZATION_TYPE', 'AWS_LAMBDA_LOG_GROUP_NAME', 'AWS_LAMBDA_LOG_STREAM_NAME',
    'AWS_ACCESS_KEY', 'AWS_ACCESS_KEY_ID', 'AWS_SECRET_ACCESS_KEY', 'AWS_SESSION_TOKEN',
    'AWS_LAMBDA_RUNTIME_API', 'LAMBDA_TASK_ROOT', 'LAMBDA_RUNTIME_DIR',
})

DEFAULT_ALARM_NAMES = ('Errors', 'Throttles', 'Duration')

MAX_LAYERS = 5


class VpcConfig(BaseModel):
    """Subnets and security groups the function attaches to."""

    model_config = ConfigDict(extra='forbid')

    subnet_ids: Annotated[list[str], Field(min_length=1)]

    security_group_ids: Annotated[list[str], Field(min_length=1)]


class LambdaAlias(BaseModel):
    """Alias pointing at a published version."""

    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(
        min_length=1,
        max_length=128,
        pattern=r'^[a-zA-Z0-9_-]+$',
        examples=['live']
    )]

    function_version: Annotated[str | None, Field(
        default=None,
        pattern=r'^(\$LATEST|\d+|\$\{[^{}]+\})$',
        description='Version the alias points at; defaults to the version published by this module'
    )] = None

    description: str | None = None

    routing_additional_version_weights: Annotated[dict[str, float], Field(
        default_factory=dict,
        description='Weighted traffic shifting to another version, e.g. {"2": 0.1}'
    )]

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if v.isdigit():
            raise ValueError('alias name must not be purely numeric')
        return v

    @model_validator(mode='after')
    def check_routing(self) -> 'LambdaAlias':
        for version, weight in self.routing_additional_version_weights.items():
            if not version.isdigit():
                raise ValueError(f"routing version '{version}' must be a published version number")
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"routing weight for version {version} must be between 0 and 1")
        if self.routing_additional_version_weights and self.function_version == '$LATEST':
            raise ValueError('weighted routing is not supported for aliases pointing at $LATEST')
        return self


class LambdaFunctionConfig(ModuleConfig):
    """Input schema for the lambda_function module."""

    function_name: Annotated[str, Field(
        min_length=1,
        max_length=64,
        pattern=r'^[a-zA-Z0-9_-]+$',
        examples=['orders-api']
    )]

    description: Annotated[str, Field(default='', max_length=256)] = ''

    runtime: Runtime | None = None

    handler: Annotated[str | None, Field(default=None, max_length=128, examples=['app.handler'])] = None

    package_type: Literal['Zip', 'Image'] = 'Zip'

    filename: str | None = None

    s3_bucket: str | None = None

    s3_key: str | None = None

    image_uri: str | None = None

    memory_size: Annotated[int, Field(default=128, ge=128, le=10240)] = 128

    timeout: Annotated[int, Field(default=3, ge=1, le=900, description='Timeout in seconds')] = 3

    environment_variables: dict[str, str] = Field(default_factory=dict)

    role_arn: Annotated[str | None, Field(
        default=None,
        description='Existing execution role; a role is created when unset'
    )] = None

    dead_letter_target_arn: str | None = None

    dead_letter_target_type: Annotated[Literal['sqs', 'sns'] | None, Field(
        default=None,
        description='Required when dead_letter_target_arn is a reference'
    )] = None

    tracing_mode: Literal['PassThrough', 'Active'] = 'PassThrough'

    layers: list[str] = Field(default_factory=list)

    vpc_config: VpcConfig | None = None

    reserved_concurrent_executions: Annotated[int, Field(default=-1, ge=-1)] = -1

    publish: bool = False

    aliases: list[LambdaAlias] = Field(default_factory=list)

    log_retention_in_days: int = 14

    kms_key_arn: str | None = None

    architectures: list[Literal['x86_64', 'arm64']] = Field(default_factory=lambda: ['x86_64'], min_length=1, max_length=1)

    alarms: AlarmsConfig | None = None

    @field_validator('environment_variables')
    @classmethod
    def validate_environment(cls, v: dict[str, str]) -> dict[str, str]:
        for key in v:
            if not re.fullmatch(r'[a-zA-Z]\w*', key):
                raise ValueError(f"environment variable name '{key}' is invalid")
            if key in RESERVED_ENVIRONMENT_KEYS:
                raise ValueError(f"environment variable '{key}' is reserved by the Lambda runtime")
        return v

    @field_validator('role_arn')
    @classmethod
    def validate_role_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'iam') if v is not None else v

    @field_validator('kms_key_arn')
    @classmethod
    def validate_kms_key_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'kms') if v is not None else v

    @field_validator('layers')
    @classmethod
    def validate_layers(cls, v: list[str]) -> list[str]:
        if len(v) > MAX_LAYERS:
            raise ValueError(f'at most {MAX_LAYERS} layers are allowed')
        for layer in v:
            check_arn(layer, 'lambda')
            if not is_reference(layer) and not re.search(r':layer:[a-zA-Z0-9_-]+:\d+$', layer):
                raise ValueError(f"layer '{layer}' must be a versioned layer ARN")
        return v

    @field_validator('log_retention_in_days')
    @classmethod
    def validate_log_retention(cls, v: int) -> int:
        if v not in LOG_RETENTION_DAYS:
            raise ValueError(f'log_retention_in_days must be one of {", ".join(map(str, LOG_RETENTION_DAYS))}')
        return v

    @model_validator(mode='after')
    def check_package(self) -> 'LambdaFunctionConfig':
        """Exactly one code source, consistent with the package type."""
        sources = [
            name for name, present in (
                ('filename', self.filename is not None),
                ('s3_bucket', self.s3_bucket is not None or self.s3_key is not None),
                ('image_uri', self.image_uri is not None),
            ) if present
        ]
        if len(sources) != 1:
            raise ValueError('exactly one of filename, s3_bucket/s3_key or image_uri must be set')
        if (self.s3_bucket is None) != (self.s3_key is None):
            raise ValueError('s3_bucket and s3_key must be set together')
        if self.package_type == 'Image':
            if self.image_uri is None:
                raise ValueError('package_type Image requires image_uri')
            if self.runtime is not None or self.handler is not None:
                raise ValueError('runtime and handler must not be set for package_type Image')
        else:
            if self.image_uri is not None:
                raise ValueError('image_uri requires package_type Image')
            if self.runtime is None or self.handler is None:
                raise ValueError('runtime and handler are required for package_type Zip')
        return self

    @model_validator(mode='after')
    def check_dead_letter_target(self) -> 'LambdaFunctionConfig':
        """The dead letter target must be an SQS queue or an SNS topic."""
        if self.dead_letter_target_arn is None:
            if self.dead_letter_target_type is not None:
                raise ValueError('dead_letter_target_type requires dead_letter_target_arn')
            return self
        if is_reference(self.dead_letter_target_arn):
            if self.dead_letter_target_type is None:
                raise ValueError('dead_letter_target_type is required when dead_letter_target_arn is a reference')
            return self
        service = parse_arn(self.dead_letter_target_arn).service
        if service not in ('sqs', 'sns'):
            raise ValueError(f'dead_letter_target_arn must be an SQS queue or SNS topic ARN, got a {service} ARN')
        if self.dead_letter_target_type is not None and self.dead_letter_target_type != service:
            raise ValueError(f'dead_letter_target_type {self.dead_letter_target_type} does not match the {service} ARN')
        return self

    @model_validator(mode='after')
    def check_aliases(self) -> 'LambdaFunctionConfig':
        """Without publishing, every alias must pin an explicit version."""
        duplicates = find_duplicates([alias.name for alias in self.aliases])
        if duplicates:
            raise ValueError(f"duplicate alias names: {', '.join(duplicates)}")
        if not self.publish:
            unpinned = [alias.name for alias in self.aliases if alias.function_version is None]
            if unpinned:
                raise ValueError(
                    f"aliases {', '.join(unpinned)} must set function_version when publish is false"
                )
        return self

    @model_validator(mode='after')
    def check_alarms(self) -> 'LambdaFunctionConfig':
        check_alarm_overrides(self.alarms, DEFAULT_ALARM_NAMES)
        return self

    @property
    def dead_letter_service(self) -> str | None:
        """Service of the dead letter target, parsed from the ARN when literal."""
        if self.dead_letter_target_arn is None:
            return None
        if self.dead_letter_target_type is not None:
            return self.dead_letter_target_type
        return parse_arn(self.dead_letter_target_arn).service
