"""
Renderer for the sns_topic module.

Queue subscribers need a queue policy that lets the topic deliver to them.
The queue belongs to another module, so the statements are emitted as an
output for the queue owner to attach.
"""

import json
import re

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.iam import PolicyDocument, PolicyStatement
from infra_modules.models.arns import build_arn
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact
from infra_modules.models.sns import SnsTopicConfig

MODULE_NAME = 'sns_topic'

OWNER_ACTIONS = [
    'SNS:GetTopicAttributes',
    'SNS:SetTopicAttributes',
    'SNS:AddPermission',
    'SNS:RemovePermission',
    'SNS:DeleteTopic',
    'SNS:Subscribe',
    'SNS:ListSubscriptionsByTopic',
    'SNS:Publish',
]


def topic_arn(config: SnsTopicConfig, context: AwsContext) -> str:
    return build_arn(context.partition, 'sns', context.region, context.account_id, config.name)


def _service_sid(service: str) -> str:
    return 'Allow' + ''.join(part.title() for part in re.split(r'[.-]', service.removesuffix('.amazonaws.com'))) + 'Publish'


def topic_policy(config: SnsTopicConfig, context: AwsContext) -> PolicyDocument:
    """
    Topic policy granting the owner account full control plus publisher grants.

    Args:
        config: Validated topic configuration
        context: Target account and region

    Returns:
        Policy document
    """
    arn = topic_arn(config, context)
    policy = PolicyDocument()
    policy.add(PolicyStatement(
        sid='AllowOwnerAccount',
        principals={'AWS': f'arn:{context.partition}:iam::{context.account_id}:root'},
        actions=OWNER_ACTIONS,
        resources=[arn],
        conditions={'StringEquals': {'AWS:SourceOwner': context.account_id}},
    ))
    for service in config.allowed_publisher_services:
        policy.add(PolicyStatement(
            sid=_service_sid(service),
            principals={'Service': service},
            actions=['sns:Publish'],
            resources=[arn],
            conditions={'StringEquals': {'aws:SourceAccount': context.account_id}},
        ))
    if config.allowed_publisher_account_ids:
        policy.add(PolicyStatement(
            sid='AllowCrossAccountPublish',
            principals={'AWS': [
                f'arn:{context.partition}:iam::{account}:root' for account in config.allowed_publisher_account_ids
            ]},
            actions=['sns:Publish'],
            resources=[arn],
        ))
    return policy


def render_sns_topic(config: SnsTopicConfig, context: AwsContext) -> RenderedModule:
    """
    Render a topic with its policy, subscriptions and subscriber permissions.

    Args:
        config: Validated topic configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    topic = ResourceDeclaration(
        type='aws_sns_topic',
        name='this',
        arguments=compact({
            'name': config.name,
            'display_name': config.display_name,
            'fifo_topic': config.fifo_topic or None,
            'content_based_deduplication': config.content_based_deduplication or None,
            'kms_master_key_id': config.kms_master_key_id,
            'tags': tags,
        }),
    )
    resources = [topic]
    resources.append(ResourceDeclaration(
        type='aws_sns_topic_policy',
        name='this',
        arguments={'arn': topic.ref('arn'), 'policy': topic_policy(config, context).to_dict()},
    ))

    subscription_arns = {}
    queue_statements = {}
    for index, subscription in enumerate(config.subscriptions):
        key = f'{subscription.protocol.replace("-", "_")}_{index}'
        declaration = ResourceDeclaration(
            type='aws_sns_topic_subscription',
            name=key,
            arguments=compact({
                'topic_arn': topic.ref('arn'),
                'protocol': subscription.protocol,
                'endpoint': subscription.endpoint,
                'raw_message_delivery': subscription.raw_message_delivery or None,
                'filter_policy': json.dumps(subscription.filter_policy) if subscription.filter_policy else None,
                'filter_policy_scope': subscription.filter_policy_scope,
                'subscription_role_arn': subscription.subscription_role_arn,
            }),
        )
        resources.append(declaration)
        subscription_arns[key] = declaration.ref('arn')

        if subscription.protocol == 'lambda':
            resources.append(ResourceDeclaration(
                type='aws_lambda_permission',
                name=key,
                arguments={
                    'statement_id': 'AllowSnsInvoke',
                    'action': 'lambda:InvokeFunction',
                    'function_name': subscription.endpoint,
                    'principal': 'sns.amazonaws.com',
                    'source_arn': topic.ref('arn'),
                },
            ))
        elif subscription.protocol == 'sqs':
            queue_statements[subscription.endpoint] = PolicyStatement(
                sid='AllowSnsTopicDelivery',
                principals={'Service': 'sns.amazonaws.com'},
                actions=['sqs:SendMessage'],
                resources=[subscription.endpoint],
                conditions={'ArnEquals': {'aws:SourceArn': topic_arn(config, context)}},
            ).to_dict()

    outputs = {
        'topic_arn': topic.ref('arn'),
        'topic_name': config.name,
        'subscription_arns': subscription_arns,
        'sqs_queue_policy_statements': queue_statements,
    }
    logger.debug('Rendered SNS topic', extra={
        'topic': config.name,
        'subscription_count': len(config.subscriptions),
        'fifo': config.fifo_topic,
    })
    return RenderedModule(module=MODULE_NAME, name=config.name, resources=resources, outputs=outputs)
