"""
Renderer for the kms_key module.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.iam import PolicyDocument, PolicyStatement
from infra_modules.models.arns import build_arn
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact, unique_local_name
from infra_modules.models.kms import KmsKeyConfig

MODULE_NAME = 'kms_key'

ADMIN_ACTIONS = [
    'kms:Create*', 'kms:Describe*', 'kms:Enable*', 'kms:List*', 'kms:Put*', 'kms:Update*',
    'kms:Revoke*', 'kms:Disable*', 'kms:Get*', 'kms:Delete*', 'kms:TagResource', 'kms:UntagResource',
    'kms:ScheduleKeyDeletion', 'kms:CancelKeyDeletion', 'kms:RotateKeyOnDemand',
]

SYMMETRIC_USAGE_ACTIONS = ['kms:Encrypt', 'kms:Decrypt', 'kms:ReEncrypt*', 'kms:GenerateDataKey*', 'kms:DescribeKey']

USAGE_ACTIONS = {
    'ENCRYPT_DECRYPT': ['kms:Encrypt', 'kms:Decrypt', 'kms:ReEncrypt*', 'kms:DescribeKey', 'kms:GetPublicKey'],
    'SIGN_VERIFY': ['kms:Sign', 'kms:Verify', 'kms:GetPublicKey', 'kms:DescribeKey'],
    'GENERATE_VERIFY_MAC': ['kms:GenerateMac', 'kms:VerifyMac', 'kms:DescribeKey'],
    'KEY_AGREEMENT': ['kms:DeriveSharedSecret', 'kms:GetPublicKey', 'kms:DescribeKey'],
}


def usage_actions(config: KmsKeyConfig) -> list[str]:
    """Cryptographic actions for the key's usage and spec."""
    if config.customer_master_key_spec == 'SYMMETRIC_DEFAULT':
        return list(SYMMETRIC_USAGE_ACTIONS)
    return list(USAGE_ACTIONS[config.key_usage])


def key_policy(config: KmsKeyConfig, context: AwsContext) -> PolicyDocument:
    """
    Key policy with account root access, administrators, users and service principals.

    Args:
        config: Validated key configuration
        context: Target account and region

    Returns:
        Policy document
    """
    policy = PolicyDocument()
    policy.add(PolicyStatement(
        sid='EnableRootAccountPermissions',
        principals={'AWS': f'arn:{context.partition}:iam::{context.account_id}:root'},
        actions=['kms:*'],
    ))
    if config.key_administrators:
        policy.add(PolicyStatement(
            sid='KeyAdministrators',
            principals={'AWS': list(config.key_administrators)},
            actions=ADMIN_ACTIONS,
        ))
    if config.key_users:
        policy.add(PolicyStatement(
            sid='KeyUsers',
            principals={'AWS': list(config.key_users)},
            actions=usage_actions(config),
        ))
        policy.add(PolicyStatement(
            sid='KeyUsersGrants',
            principals={'AWS': list(config.key_users)},
            actions=['kms:CreateGrant', 'kms:ListGrants', 'kms:RevokeGrant'],
            conditions={'Bool': {'kms:GrantIsForAWSResource': 'true'}},
        ))
    if config.key_service_principals:
        policy.add(PolicyStatement(
            sid='ServicePrincipals',
            principals={'Service': list(config.key_service_principals)},
            actions=usage_actions(config),
            conditions={'StringEquals': {'aws:SourceAccount': context.account_id}},
        ))
    return policy


def render_kms_key(config: KmsKeyConfig, context: AwsContext) -> RenderedModule:
    """
    Render a key with its policy and aliases.

    Args:
        config: Validated key configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    key = ResourceDeclaration(
        type='aws_kms_key',
        name='this',
        arguments=compact({
            'description': config.description,
            'key_usage': config.key_usage,
            'customer_master_key_spec': config.customer_master_key_spec,
            'enable_key_rotation': config.rotation_enabled,
            'rotation_period_in_days': config.rotation_period_in_days,
            'deletion_window_in_days': config.deletion_window_in_days,
            'multi_region': config.multi_region,
            'policy': key_policy(config, context).to_dict(),
            'tags': tags,
        }),
    )
    resources = [key]

    alias_arns = {}
    alias_names: set[str] = set()
    for alias in config.aliases:
        resources.append(ResourceDeclaration(
            type='aws_kms_alias',
            name=unique_local_name(alias.removeprefix('alias/'), alias_names),
            arguments={'name': alias, 'target_key_id': key.ref('key_id')},
        ))
        alias_arns[alias] = build_arn(context.partition, 'kms', context.region, context.account_id, alias)

    outputs = {
        'key_id': key.ref('key_id'),
        'key_arn': key.ref('arn'),
        'alias_names': list(config.aliases),
        'alias_arns': alias_arns,
    }
    logger.debug('Rendered KMS key', extra={
        'key_spec': config.customer_master_key_spec,
        'key_usage': config.key_usage,
        'alias_count': len(config.aliases),
    })
    name = config.aliases[0].removeprefix('alias/') if config.aliases else 'kms-key'
    return RenderedModule(module=MODULE_NAME, name=name, resources=resources, outputs=outputs)
