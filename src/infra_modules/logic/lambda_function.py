"""
Renderer for the lambda_function module.

When no execution role is supplied the module creates one, and the policy is
assembled from the features the function uses: logging always, the dead
letter target by its parsed service, VPC networking, X-Ray and KMS.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.alarms import alarm_declarations
from infra_modules.logic.iam import PolicyDocument, PolicyStatement, role_declarations
from infra_modules.models.alarms import AlarmDefinition
from infra_modules.models.arns import log_group_arn
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact, unique_local_name
from infra_modules.models.lambda_function import LambdaFunctionConfig

MODULE_NAME = 'lambda_function'

DEAD_LETTER_ACTIONS = {
    'sqs': 'sqs:SendMessage',
    'sns': 'sns:Publish',
}

VPC_ACTIONS = [
    'ec2:CreateNetworkInterface',
    'ec2:DescribeNetworkInterfaces',
    'ec2:DeleteNetworkInterface',
    'ec2:AssignPrivateIpAddresses',
    'ec2:UnassignPrivateIpAddresses',
]


def default_alarms(config: LambdaFunctionConfig) -> dict[str, AlarmDefinition]:
    return {
        'Errors': AlarmDefinition(namespace='AWS/Lambda', metric_name='Errors', threshold=1),
        'Throttles': AlarmDefinition(namespace='AWS/Lambda', metric_name='Throttles', threshold=1),
        # 80% of the configured timeout, in milliseconds
        'Duration': AlarmDefinition(
            namespace='AWS/Lambda',
            metric_name='Duration',
            statistic='Maximum',
            threshold=config.timeout * 1000 * 0.8,
        ),
    }


def execution_policy(config: LambdaFunctionConfig, context: AwsContext) -> PolicyDocument:
    """
    Build the inline policy for a module-created execution role.

    Args:
        config: Validated function configuration
        context: Target account and region

    Returns:
        Policy document
    """
    log_group = log_group_arn(context.partition, context.region, context.account_id, f'/aws/lambda/{config.function_name}')
    policy = PolicyDocument()
    policy.add(PolicyStatement(
        sid='CloudWatchLogs',
        actions=['logs:CreateLogStream', 'logs:PutLogEvents'],
        resources=[log_group, f'{log_group}:*'],
    ))

    dead_letter_service = config.dead_letter_service
    if dead_letter_service is not None:
        policy.add(PolicyStatement(
            sid='DeadLetterTarget',
            actions=[DEAD_LETTER_ACTIONS[dead_letter_service]],
            resources=[config.dead_letter_target_arn],
        ))

    if config.vpc_config is not None:
        policy.add(PolicyStatement(sid='VpcNetworkInterfaces', actions=VPC_ACTIONS))

    if config.tracing_mode == 'Active':
        policy.add(PolicyStatement(
            sid='XRayTracing',
            actions=['xray:PutTraceSegments', 'xray:PutTelemetryRecords'],
        ))

    if config.kms_key_arn is not None:
        policy.add(PolicyStatement(sid='KmsDecrypt', actions=['kms:Decrypt'], resources=[config.kms_key_arn]))
    return policy


def render_lambda_function(config: LambdaFunctionConfig, context: AwsContext) -> RenderedModule:
    """
    Render a Lambda function, its log group, optional role, aliases and alarms.

    Args:
        config: Validated function configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    resources: list[ResourceDeclaration] = []

    role_arn = config.role_arn
    if role_arn is None:
        role_resources = role_declarations(
            role_name=f'{config.function_name}-role'[:64],
            services=['lambda.amazonaws.com'],
            policy=execution_policy(config, context),
            tags=tags,
        )
        resources += role_resources
        role_arn = role_resources[0].ref('arn')

    log_group = ResourceDeclaration(
        type='aws_cloudwatch_log_group',
        name='this',
        arguments={
            'name': f'/aws/lambda/{config.function_name}',
            'retention_in_days': config.log_retention_in_days,
            'tags': tags,
        },
    )
    resources.append(log_group)

    arguments = {
        'function_name': config.function_name,
        'description': config.description,
        'role': role_arn,
        'package_type': config.package_type,
        'runtime': config.runtime,
        'handler': config.handler,
        'filename': config.filename,
        's3_bucket': config.s3_bucket,
        's3_key': config.s3_key,
        'image_uri': config.image_uri,
        'memory_size': config.memory_size,
        'timeout': config.timeout,
        'publish': config.publish,
        'architectures': config.architectures,
        'layers': config.layers,
        'kms_key_arn': config.kms_key_arn,
        'reserved_concurrent_executions': config.reserved_concurrent_executions,
        'tracing_config': {'mode': config.tracing_mode},
        'tags': tags,
    }
    if config.environment_variables:
        arguments['environment'] = {'variables': config.environment_variables}
    if config.dead_letter_target_arn is not None:
        arguments['dead_letter_config'] = {'target_arn': config.dead_letter_target_arn}
    if config.vpc_config is not None:
        arguments['vpc_config'] = config.vpc_config.model_dump()

    function = ResourceDeclaration(
        type='aws_lambda_function',
        name='this',
        arguments=compact(arguments),
        depends_on=[log_group.address],
    )
    resources.append(function)

    alias_arns = {}
    alias_names: set[str] = set()
    for alias in config.aliases:
        alias_arguments = {
            'name': alias.name,
            'description': alias.description,
            'function_name': function.ref('function_name'),
            'function_version': alias.function_version or function.ref('version'),
        }
        if alias.routing_additional_version_weights:
            alias_arguments['routing_config'] = {
                'additional_version_weights': alias.routing_additional_version_weights,
            }
        declaration = ResourceDeclaration(
            type='aws_lambda_alias',
            name=unique_local_name(alias.name, alias_names),
            arguments=compact(alias_arguments),
        )
        resources.append(declaration)
        alias_arns[alias.name] = declaration.ref('arn')

    resources += alarm_declarations(
        prefix=config.function_name,
        config=config.alarms,
        defaults=default_alarms(config),
        dimensions={'FunctionName': config.function_name},
        tags=tags,
    )

    outputs = {
        'function_name': function.ref('function_name'),
        'function_arn': function.ref('arn'),
        'invoke_arn': function.ref('invoke_arn'),
        'qualified_arn': function.ref('qualified_arn'),
        'version': function.ref('version'),
        'role_arn': role_arn,
        'log_group_name': log_group.ref('name'),
        'alias_arns': alias_arns,
    }

    logger.debug('Rendered Lambda function', extra={
        'function_name': config.function_name,
        'creates_role': config.role_arn is None,
        'alias_count': len(config.aliases),
    })
    return RenderedModule(module=MODULE_NAME, name=config.function_name, resources=resources, outputs=outputs)
