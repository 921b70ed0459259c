"""
Registry of module types.

Maps each module type to its input model, renderer and a short description,
and offers validation, rendering and JSON schema lookup by module type.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from infra_modules.handlers.utils.errors import UnknownModuleError
from infra_modules.handlers.utils.observability import logger, tracer
from infra_modules.logic import (
    api_gateway,
    cloudfront,
    codebuild,
    codedeploy,
    codepipeline,
    cognito,
    dynamodb,
    eventbridge,
    kms,
    lambda_function,
    route53,
    s3,
    ses,
    sns,
    ssm,
    step_functions,
)
from infra_modules.models.api_gateway import ApiGatewayRestApiConfig
from infra_modules.models.cloudfront import CloudFrontDistributionConfig
from infra_modules.models.codebuild import CodeBuildProjectConfig
from infra_modules.models.codedeploy import CodeDeployApplicationConfig
from infra_modules.models.codepipeline import CodePipelineConfig
from infra_modules.models.cognito import CognitoUserPoolConfig
from infra_modules.models.common import AwsContext, ModuleConfig, RenderedModule
from infra_modules.models.dynamodb import DynamoDbTableConfig
from infra_modules.models.eventbridge import EventBridgeRuleConfig
from infra_modules.models.kms import KmsKeyConfig
from infra_modules.models.lambda_function import LambdaFunctionConfig
from infra_modules.models.route53 import Route53RecordsConfig, Route53ZoneConfig
from infra_modules.models.s3 import S3BucketConfig
from infra_modules.models.ses import SesDomainIdentityConfig
from infra_modules.models.sns import SnsTopicConfig
from infra_modules.models.ssm import SsmParametersConfig
from infra_modules.models.step_functions import StepFunctionsStateMachineConfig


@dataclass(frozen=True)
class ModuleDefinition:
    """A registered module type."""

    name: str
    config_model: Type[ModuleConfig]
    renderer: Callable[[Any, AwsContext], RenderedModule]
    description: str

    def summary(self) -> Dict[str, str]:
        return {'module': self.name, 'description': self.description}


_DEFINITIONS = [
    ModuleDefinition(
        api_gateway.MODULE_NAME, ApiGatewayRestApiConfig, api_gateway.render_api_gateway_rest_api,
        'REST API with Lambda or HTTP integrations, authorizers, stage, custom domain and alarms',
    ),
    ModuleDefinition(
        cloudfront.MODULE_NAME, CloudFrontDistributionConfig, cloudfront.render_cloudfront_distribution,
        'CloudFront distribution with origins, cache behaviors and origin access control',
    ),
    ModuleDefinition(
        codebuild.MODULE_NAME, CodeBuildProjectConfig, codebuild.render_codebuild_project,
        'CodeBuild project with a service role derived from its sources, artifacts and features',
    ),
    ModuleDefinition(
        codedeploy.MODULE_NAME, CodeDeployApplicationConfig, codedeploy.render_codedeploy_application,
        'CodeDeploy application with deployment groups for Server, Lambda or ECS',
    ),
    ModuleDefinition(
        codepipeline.MODULE_NAME, CodePipelineConfig, codepipeline.render_codepipeline,
        'CodePipeline with stage and artifact validation and a provider-derived role',
    ),
    ModuleDefinition(
        cognito.MODULE_NAME, CognitoUserPoolConfig, cognito.render_cognito_user_pool,
        'Cognito user pool with clients, resource servers, domain and Lambda triggers',
    ),
    ModuleDefinition(
        dynamodb.MODULE_NAME, DynamoDbTableConfig, dynamodb.render_dynamodb_table,
        'DynamoDB table with indexes, streams, encryption and alarms',
    ),
    ModuleDefinition(
        eventbridge.MODULE_NAME, EventBridgeRuleConfig, eventbridge.render_eventbridge_rule,
        'EventBridge rule on a schedule or event pattern with up to five targets',
    ),
    ModuleDefinition(
        kms.MODULE_NAME, KmsKeyConfig, kms.render_kms_key,
        'KMS key with a derived key policy and aliases',
    ),
    ModuleDefinition(
        lambda_function.MODULE_NAME, LambdaFunctionConfig, lambda_function.render_lambda_function,
        'Lambda function with execution role, log group, aliases and alarms',
    ),
    ModuleDefinition(
        route53.ZONE_MODULE_NAME, Route53ZoneConfig, route53.render_route53_zone,
        'Route53 public or private hosted zone',
    ),
    ModuleDefinition(
        route53.RECORDS_MODULE_NAME, Route53RecordsConfig, route53.render_route53_records,
        'Route53 records for an existing zone',
    ),
    ModuleDefinition(
        s3.MODULE_NAME, S3BucketConfig, s3.render_s3_bucket,
        'S3 bucket with encryption, versioning, lifecycle rules and access controls',
    ),
    ModuleDefinition(
        ses.MODULE_NAME, SesDomainIdentityConfig, ses.render_ses_domain_identity,
        'SES domain identity with DKIM, MAIL FROM and verification records',
    ),
    ModuleDefinition(
        sns.MODULE_NAME, SnsTopicConfig, sns.render_sns_topic,
        'SNS topic with policy and subscriptions',
    ),
    ModuleDefinition(
        ssm.MODULE_NAME, SsmParametersConfig, ssm.render_ssm_parameters,
        'SSM parameters',
    ),
    ModuleDefinition(
        step_functions.MODULE_NAME, StepFunctionsStateMachineConfig, step_functions.render_step_functions_state_machine,
        'Step Functions state machine with an execution role derived from its definition',
    ),
]

REGISTRY: Dict[str, ModuleDefinition] = {definition.name: definition for definition in _DEFINITIONS}


def list_modules() -> List[Dict[str, str]]:
    """Registered modules sorted by name."""
    return [REGISTRY[name].summary() for name in sorted(REGISTRY)]


def get_module(name: str) -> ModuleDefinition:
    """
    Look up a module type.

    Raises:
        UnknownModuleError: If the module type is not registered
    """
    definition = REGISTRY.get(name)
    if definition is None:
        raise UnknownModuleError(name)
    return definition


@tracer.capture_method
def validate_module(name: str, payload: Dict[str, Any]) -> ModuleConfig:
    """
    Validate a module configuration.

    Args:
        name: Module type
        payload: Raw configuration

    Returns:
        Validated configuration model

    Raises:
        UnknownModuleError: If the module type is not registered
        pydantic.ValidationError: If a precondition fails
    """
    definition = get_module(name)
    config = definition.config_model.model_validate(payload)
    logger.info('Module configuration is valid', extra={'module_type': name})
    return config


@tracer.capture_method
def render_module(
    name: str,
    payload: Dict[str, Any],
    context: AwsContext,
    instance_name: Optional[str] = None,
) -> RenderedModule:
    """
    Validate and render a module configuration.

    Args:
        name: Module type
        payload: Raw configuration
        context: Target account and region
        instance_name: Overrides the instance name chosen by the renderer

    Returns:
        Rendered module

    Raises:
        UnknownModuleError: If the module type is not registered
        pydantic.ValidationError: If a precondition fails
    """
    definition = get_module(name)
    config = definition.config_model.model_validate(payload)
    rendered = definition.renderer(config, context)
    if instance_name is not None:
        rendered = rendered.model_copy(update={'name': instance_name})
    logger.info('Module rendered', extra={
        'module_type': name,
        'instance': rendered.name,
        'resource_count': len(rendered.resources),
        'output_count': len(rendered.outputs),
    })
    return rendered


def module_schema(name: str) -> Dict[str, Any]:
    """JSON schema of a module's input model."""
    return get_module(name).config_model.model_json_schema()

