"""
Renderer for the eventbridge_rule module.
"""

import json

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.iam import PolicyDocument, PolicyStatement, role_declarations
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact, unique_local_name
from infra_modules.models.eventbridge import EventBridgeRuleConfig, RuleTarget

MODULE_NAME = 'eventbridge_rule'

# sid and actions granted on targets reached through the shared role
TARGET_ROLE_ACTIONS = {
    'states': ('StepFunctionsStartExecution', ['states:StartExecution']),
    'kinesis': ('KinesisPutRecords', ['kinesis:PutRecord', 'kinesis:PutRecords']),
    'firehose': ('FirehosePutRecords', ['firehose:PutRecord', 'firehose:PutRecordBatch']),
    'events': ('EventBusPutEvents', ['events:PutEvents']),
    'codebuild': ('CodeBuildStartBuild', ['codebuild:StartBuild']),
    'codepipeline': ('CodePipelineStartExecution', ['codepipeline:StartPipelineExecution']),
}


def target_role_policy(targets: list[RuleTarget]) -> PolicyDocument:
    policy = PolicyDocument()
    for target in targets:
        sid, actions = TARGET_ROLE_ACTIONS[target.target_service]
        policy.add(PolicyStatement(sid=sid, actions=actions, resources=[target.arn]))
    return policy


def _target_arguments(target: RuleTarget, rule: ResourceDeclaration, config: EventBridgeRuleConfig, role_arn: str | None) -> dict:
    arguments = {
        'rule': rule.ref('name'),
        'event_bus_name': config.event_bus_name,
        'target_id': target.target_id,
        'arn': target.arn,
        'input': target.input,
        'input_path': target.input_path,
        'role_arn': target.role_arn or (role_arn if target.needs_role else None),
    }
    if target.input_transformer is not None:
        arguments['input_transformer'] = {
            'input_paths': target.input_transformer.input_paths,
            'input_template': target.input_transformer.input_template,
        }
    if target.dead_letter_arn is not None:
        arguments['dead_letter_config'] = {'arn': target.dead_letter_arn}
    if target.retry_policy is not None:
        arguments['retry_policy'] = target.retry_policy.model_dump()
    return compact(arguments)


def render_eventbridge_rule(config: EventBridgeRuleConfig, context: AwsContext) -> RenderedModule:
    """
    Render a rule, its targets, invoke permissions and the shared target role.

    Args:
        config: Validated rule configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    rule = ResourceDeclaration(
        type='aws_cloudwatch_event_rule',
        name='this',
        arguments=compact({
            'name': config.name,
            'description': config.description,
            'event_bus_name': config.event_bus_name,
            'schedule_expression': config.schedule_expression,
            'event_pattern': json.dumps(config.event_pattern) if config.event_pattern is not None else None,
            'state': config.state,
            'tags': tags,
        }),
    )
    resources = [rule]

    role_arn = config.role_arn
    needing_role = config.targets_needing_role()
    if needing_role:
        role_resources = role_declarations(
            role_name=f'{config.name[:57]}-events',
            services=['events.amazonaws.com'],
            policy=target_role_policy(needing_role),
            tags=tags,
        )
        resources.extend(role_resources)
        role_arn = role_resources[0].ref('arn')

    target_names: set[str] = set()
    for target in config.targets:
        name = unique_local_name(target.target_id, target_names)
        resources.append(ResourceDeclaration(
            type='aws_cloudwatch_event_target',
            name=name,
            arguments=_target_arguments(target, rule, config, role_arn),
        ))
        if target.target_service == 'lambda':
            resources.append(ResourceDeclaration(
                type='aws_lambda_permission',
                name=name,
                arguments={
                    'statement_id': f'AllowEventBridge-{config.name}'[:100],
                    'action': 'lambda:InvokeFunction',
                    'function_name': target.arn,
                    'principal': 'events.amazonaws.com',
                    'source_arn': rule.ref('arn'),
                },
            ))

    outputs = {
        'rule_name': config.name,
        'rule_arn': rule.ref('arn'),
        'role_arn': role_arn,
    }
    logger.debug('Rendered EventBridge rule', extra={
        'rule': config.name,
        'scheduled': config.is_scheduled,
        'target_count': len(config.targets),
        'shared_role': bool(needing_role),
    })
    return RenderedModule(module=MODULE_NAME, name=config.name, resources=resources, outputs=outputs)
