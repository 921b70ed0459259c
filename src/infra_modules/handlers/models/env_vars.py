"""
Environment variable models for type-safe configuration.

This module defines the Pydantic model for environment variables read by the
module contracts service, and the helper that turns them into the AWS context
used for ARN derivation.
"""

import json
from typing import Annotated, Any

from aws_lambda_env_modeler import get_environment_variables
from pydantic import BaseModel, Field, field_validator

from infra_modules.models.common import AwsContext


class ModuleServiceEnvVars(BaseModel):
    """Environment variables for the module contracts service."""

    # Account the rendered declarations target
    TARGET_ACCOUNT_ID: Annotated[str, Field(
        description='AWS account id used for derived ARNs',
        pattern=r'^\d{12}$'
    )]

    # AWS region
    AWS_REGION: Annotated[str, Field(
        default='us-east-1',
        description='AWS region used for derived ARNs',
        pattern=r'^[a-z]{2}(-gov)?-[a-z]+-\d$'
    )] = 'us-east-1'

    TARGET_PARTITION: Annotated[str, Field(
        default='aws',
        description='AWS partition used for derived ARNs',
        pattern=r'^(aws|aws-cn|aws-us-gov)$'
    )] = 'aws'

    # JSON object merged into every module's tags
    DEFAULT_TAGS: Annotated[str, Field(
        default='{}',
        description='JSON object of tags applied to every taggable resource'
    )] = '{}'

    # Environment name (dev, staging, prod)
    ENVIRONMENT: Annotated[str, Field(
        default='dev',
        description='Deployment environment name',
        pattern=r'^(dev|staging|prod|test)$'
    )] = 'dev'

    # Service name for observability
    POWERTOOLS_SERVICE_NAME: Annotated[str, Field(
        default='infra-module-contracts',
        description='Service name for AWS Powertools'
    )] = 'infra-module-contracts'

    # Log level for AWS Powertools Logger
    LOG_LEVEL: Annotated[str, Field(
        default='INFO',
        description='Log level for application logging',
        pattern=r'^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$'
    )] = 'INFO'

    MAX_REQUEST_SIZE_KB: Annotated[int, Field(
        default=256,
        description='Maximum request size in kilobytes',
        ge=1,
        le=10240
    )] = 256

    @field_validator('DEFAULT_TAGS')
    @classmethod
    def validate_default_tags(cls, v: str) -> str:
        """Validate that default tags are a JSON object of strings."""
        try:
            parsed = json.loads(v)
        except json.JSONDecodeError as exc:
            raise ValueError(f'DEFAULT_TAGS must be valid JSON: {exc.msg}') from exc
        if not isinstance(parsed, dict) or not all(isinstance(val, str) for val in parsed.values()):
            raise ValueError('DEFAULT_TAGS must be a JSON object with string values')
        return v

    @property
    def default_tags(self) -> dict[str, str]:
        """Parsed default tags."""
        return json.loads(self.DEFAULT_TAGS)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == 'prod'


def get_service_env_vars() -> ModuleServiceEnvVars:
    """
    Get typed environment variables for the service.

    Returns:
        Validated environment variables model instance
    """
    return get_environment_variables(model=ModuleServiceEnvVars)


def build_aws_context(env: ModuleServiceEnvVars, overrides: dict[str, Any] | None = None) -> AwsContext:
    """
    Build the AWS context for a render request.

    Args:
        env: Validated environment variables
        overrides: Optional context fields supplied by the caller

    Returns:
        AWS context with caller overrides applied over environment defaults
    """
    values: dict[str, Any] = {
        'region': env.AWS_REGION,
        'account_id': env.TARGET_ACCOUNT_ID,
        'partition': env.TARGET_PARTITION,
        'default_tags': env.default_tags,
    }
    values.update(overrides or {})
    return AwsContext.model_validate(values)
