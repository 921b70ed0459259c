"""
Renderer for the step_functions_state_machine module.

The execution role policy is derived from the Task states of the definition:
direct Lambda ARNs and optimized service integrations each map to the
narrowest actions and resources that integration needs.
"""

import json
import re
from typing import Any

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.alarms import alarm_declarations
from infra_modules.logic.iam import PolicyDocument, PolicyStatement, role_declarations
from infra_modules.models.alarms import AlarmDefinition
from infra_modules.models.arns import (
    build_arn,
    dynamodb_table_arn,
    is_reference,
    lambda_function_arn,
    parse_arn,
    sqs_queue_arn_from_url,
)
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration
from infra_modules.models.step_functions import StepFunctionsStateMachineConfig, task_states

MODULE_NAME = 'step_functions_state_machine'

INTEGRATION_PATTERN = re.compile(r'^arn:[a-z-]+:states:::(?P<service>[a-z0-9-]+):(?P<action>[A-Za-z]+)(?P<pattern>\.[A-Za-z:0-9]+)?$')

DYNAMODB_ACTIONS = {
    'getItem': 'dynamodb:GetItem',
    'putItem': 'dynamodb:PutItem',
    'updateItem': 'dynamodb:UpdateItem',
    'deleteItem': 'dynamodb:DeleteItem',
}

LOG_DELIVERY_ACTIONS = [
    'logs:CreateLogDelivery',
    'logs:GetLogDelivery',
    'logs:UpdateLogDelivery',
    'logs:DeleteLogDelivery',
    'logs:ListLogDeliveries',
    'logs:PutResourcePolicy',
    'logs:DescribeResourcePolicies',
    'logs:DescribeLogGroups',
]

SYNC_EVENTS_RULE = 'rule/StepFunctionsGetEventsForStepFunctionsExecutionRule'


def default_alarms() -> dict[str, AlarmDefinition]:
    return {
        'ExecutionsFailed': AlarmDefinition(namespace='AWS/States', metric_name='ExecutionsFailed', threshold=1),
        'ExecutionsTimedOut': AlarmDefinition(namespace='AWS/States', metric_name='ExecutionsTimedOut', threshold=1),
    }


def _parameter(state: dict[str, Any], key: str) -> str | None:
    """Static parameter value, or None when the value is resolved at runtime (``Key.$``)."""
    parameters = state.get('Parameters') or state.get('Arguments') or {}
    value = parameters.get(key)
    return value if isinstance(value, str) else None


def _execution_arn(state_machine_arn: str) -> str:
    return state_machine_arn.replace(':stateMachine:', ':execution:') + ':*'


def execution_policy(config: StepFunctionsStateMachineConfig, context: AwsContext) -> PolicyDocument:
    """
    Derive the execution role policy from the definition's Task states.

    Args:
        config: Validated state machine configuration
        context: Target account and region

    Returns:
        Policy document
    """
    partition, region, account = context.partition, context.region, context.account_id
    lambda_functions: list[str] = []
    statements: dict[str, PolicyStatement] = {}

    def grant(sid: str, actions: list[str], resources: list[str]) -> None:
        statement = statements.get(sid)
        if statement is None:
            statements[sid] = PolicyStatement(sid=sid, actions=list(actions), resources=list(resources))
        else:
            statement.actions += [action for action in actions if action not in statement.actions]
            statement.resources += [resource for resource in resources if resource not in statement.resources]

    for state in task_states(config.definition):
        resource = state['Resource']
        if not is_reference(resource) and resource.startswith('arn:') and parse_arn(resource).service == 'lambda':
            lambda_functions.append(resource)
            continue
        match = INTEGRATION_PATTERN.match(resource)
        if match is None:
            continue
        service, action, pattern = match.group('service'), match.group('action'), match.group('pattern') or ''

        if service == 'lambda' and action == 'invoke':
            function_name = _parameter(state, 'FunctionName')
            lambda_functions.append(
                lambda_function_arn(partition, region, account, function_name) if function_name else '*'
            )
        elif service == 'states' and action == 'startExecution':
            state_machine_arn = _parameter(state, 'StateMachineArn') or '*'
            grant('StepFunctionsStartExecution', ['states:StartExecution'], [state_machine_arn])
            if pattern.startswith('.sync'):
                execution = '*' if state_machine_arn == '*' or is_reference(state_machine_arn) else _execution_arn(state_machine_arn)
                grant('StepFunctionsSyncExecution', ['states:DescribeExecution', 'states:StopExecution'], [execution])
                grant(
                    'StepFunctionsSyncEvents',
                    ['events:PutTargets', 'events:PutRule', 'events:DescribeRule'],
                    [build_arn(partition, 'events', region, account, SYNC_EVENTS_RULE)],
                )
        elif service == 'sns' and action == 'publish':
            grant('SnsPublish', ['sns:Publish'], [_parameter(state, 'TopicArn') or '*'])
        elif service == 'sqs' and action == 'sendMessage':
            queue_url = _parameter(state, 'QueueUrl')
            if queue_url is None or is_reference(queue_url):
                queue_arn = '*'
            else:
                queue_arn = sqs_queue_arn_from_url(partition, queue_url)
            grant('SqsSendMessage', ['sqs:SendMessage'], [queue_arn])
        elif service == 'dynamodb' and action in DYNAMODB_ACTIONS:
            table = _parameter(state, 'TableName')
            table_arn = dynamodb_table_arn(partition, region, account, table) if table else '*'
            if table and table.startswith('arn:'):
                table_arn = table
            grant('DynamoDb', [DYNAMODB_ACTIONS[action]], [table_arn])
        elif service == 'events' and action == 'putEvents':
            entries = (state.get('Parameters') or {}).get('Entries') or [{}]
            buses = []
            for entry in entries if isinstance(entries, list) else [{}]:
                bus = entry.get('EventBusName', 'default') if isinstance(entry, dict) else 'default'
                buses.append(bus if bus.startswith('arn:') else build_arn(partition, 'events', region, account, f'event-bus/{bus}'))
            grant('EventBridgePutEvents', ['events:PutEvents'], buses)

    policy = PolicyDocument()
    if lambda_functions:
        resources = []
        for arn in dict.fromkeys(lambda_functions):
            resources.append(arn)
            if arn != '*':
                resources.append(f'{arn}:*')
        policy.add(PolicyStatement(sid='LambdaInvoke', actions=['lambda:InvokeFunction'], resources=resources))
    for statement in statements.values():
        policy.add(statement)

    if config.logging_enabled:
        policy.add(PolicyStatement(sid='CloudWatchLogsDelivery', actions=LOG_DELIVERY_ACTIONS))
    if config.tracing_enabled:
        policy.add(PolicyStatement(
            sid='XRayTracing',
            actions=['xray:PutTraceSegments', 'xray:PutTelemetryRecords', 'xray:GetSamplingRules', 'xray:GetSamplingTargets'],
        ))
    return policy


def render_step_functions_state_machine(config: StepFunctionsStateMachineConfig, context: AwsContext) -> RenderedModule:
    """
    Render a state machine with its role, log group and alarms.

    Args:
        config: Validated state machine configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    resources: list[ResourceDeclaration] = []

    role_arn = config.role_arn
    if role_arn is None:
        role_resources = role_declarations(
            role_name=f'{config.name}-sfn'[:64],
            services=['states.amazonaws.com'],
            policy=execution_policy(config, context),
            tags=tags,
        )
        resources += role_resources
        role_arn = role_resources[0].ref('arn')

    log_group_name = None
    logging_configuration = None
    if config.logging_enabled:
        log_group_arn = config.logging.log_group_arn
        if log_group_arn is None:
            log_group = ResourceDeclaration(
                type='aws_cloudwatch_log_group',
                name='this',
                arguments={
                    'name': f'/aws/vendedlogs/states/{config.name}',
                    'retention_in_days': config.logging.retention_in_days,
                    'tags': tags,
                },
            )
            resources.append(log_group)
            log_group_name = log_group.ref('name')
            log_group_arn = log_group.ref('arn')
        elif not is_reference(log_group_arn):
            log_group_name = parse_arn(log_group_arn).resource_id.removesuffix(':*')
        logging_configuration = {
            'log_destination': log_group_arn if log_group_arn.endswith(':*') else f'{log_group_arn}:*',
            'include_execution_data': config.logging.include_execution_data,
            'level': config.logging.level,
        }

    arguments = {
        'name': config.name,
        'type': config.type,
        'role_arn': role_arn,
        'definition': json.dumps(config.definition, sort_keys=True),
        'tracing_configuration': {'enabled': config.tracing_enabled},
        'tags': tags,
    }
    if logging_configuration is not None:
        arguments['logging_configuration'] = logging_configuration
    state_machine = ResourceDeclaration(type='aws_sfn_state_machine', name='this', arguments=arguments)
    resources.append(state_machine)

    resources += alarm_declarations(
        prefix=config.name,
        config=config.alarms,
        defaults=default_alarms(),
        dimensions={'StateMachineArn': state_machine.ref('arn')},
        tags=tags,
    )

    outputs = {
        'state_machine_arn': state_machine.ref('arn'),
        'state_machine_name': state_machine.ref('name'),
        'role_arn': role_arn,
        'log_group_name': log_group_name,
    }
    logger.debug('Rendered state machine', extra={
        'state_machine': config.name,
        'type': config.type,
        'logging': config.logging.level,
    })
    return RenderedModule(module=MODULE_NAME, name=config.name, resources=resources, outputs=outputs)
