"""
Renderer for the s3_bucket module.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.iam import PolicyDocument, PolicyStatement
from infra_modules.models.arns import s3_bucket_arn, s3_objects_arn
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact
from infra_modules.models.s3 import S3BucketConfig

MODULE_NAME = 's3_bucket'


def bucket_policy(config: S3BucketConfig, context: AwsContext) -> dict | None:
    """
    Assemble the bucket policy from TLS enforcement and caller statements.

    Returns:
        Policy document, or None when there is nothing to grant or deny
    """
    bucket_arn = s3_bucket_arn(context.partition, config.bucket)
    document = PolicyDocument()
    if config.enforce_tls:
        document.add(PolicyStatement(
            sid='DenyInsecureTransport',
            effect='Deny',
            principals={'AWS': '*'},
            actions=['s3:*'],
            resources=[bucket_arn, s3_objects_arn(context.partition, config.bucket)],
            conditions={'Bool': {'aws:SecureTransport': 'false'}},
        ))
    if not document and not config.policy_statements:
        return None
    policy = document.to_dict()
    policy['Statement'].extend(config.policy_statements)
    return policy


def render_s3_bucket(config: S3BucketConfig, context: AwsContext) -> RenderedModule:
    """
    Render a bucket and its companion configuration resources.

    Args:
        config: Validated bucket configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    bucket = ResourceDeclaration(
        type='aws_s3_bucket',
        name='this',
        arguments={'bucket': config.bucket, 'force_destroy': config.force_destroy, 'tags': tags},
    )
    bucket_id = bucket.ref('id')
    resources = [bucket]

    public_access = ResourceDeclaration(
        type='aws_s3_bucket_public_access_block',
        name='this',
        arguments={'bucket': bucket_id, **config.block_public_access.model_dump()},
    )
    resources.append(public_access)

    resources.append(ResourceDeclaration(
        type='aws_s3_bucket_ownership_controls',
        name='this',
        arguments={'bucket': bucket_id, 'rule': {'object_ownership': config.object_ownership}},
    ))

    resources.append(ResourceDeclaration(
        type='aws_s3_bucket_versioning',
        name='this',
        arguments={
            'bucket': bucket_id,
            'versioning_configuration': {'status': 'Enabled' if config.versioning_enabled else 'Suspended'},
        },
    ))

    resources.append(ResourceDeclaration(
        type='aws_s3_bucket_server_side_encryption_configuration',
        name='this',
        arguments=compact({
            'bucket': bucket_id,
            'rule': {
                'apply_server_side_encryption_by_default': {
                    'sse_algorithm': config.encryption.sse_algorithm,
                    'kms_master_key_id': config.encryption.kms_key_arn,
                },
                'bucket_key_enabled': config.encryption.bucket_key_enabled if config.encryption.sse_algorithm != 'AES256' else None,
            },
        }),
    ))

    if config.lifecycle_rules:
        resources.append(ResourceDeclaration(
            type='aws_s3_bucket_lifecycle_configuration',
            name='this',
            arguments={
                'bucket': bucket_id,
                'rule': [
                    compact({
                        'id': rule.id,
                        'status': 'Enabled' if rule.enabled else 'Disabled',
                        'filter': {'prefix': rule.prefix},
                        'transition': [transition.model_dump() for transition in rule.transitions],
                        'expiration': {'days': rule.expiration_days} if rule.expiration_days else None,
                        'noncurrent_version_expiration': (
                            {'noncurrent_days': rule.noncurrent_version_expiration_days}
                            if rule.noncurrent_version_expiration_days else None
                        ),
                        'abort_incomplete_multipart_upload': (
                            {'days_after_initiation': rule.abort_incomplete_multipart_upload_days}
                            if rule.abort_incomplete_multipart_upload_days else None
                        ),
                    })
                    for rule in config.lifecycle_rules
                ],
            },
            depends_on=['aws_s3_bucket_versioning.this'],
        ))

    website = None
    if config.website is not None:
        website = ResourceDeclaration(
            type='aws_s3_bucket_website_configuration',
            name='this',
            arguments=compact({
                'bucket': bucket_id,
                'index_document': {'suffix': config.website.index_document},
                'error_document': {'key': config.website.error_document} if config.website.error_document else None,
            }),
        )
        resources.append(website)

    if config.cors_rules:
        resources.append(ResourceDeclaration(
            type='aws_s3_bucket_cors_configuration',
            name='this',
            arguments={
                'bucket': bucket_id,
                'cors_rule': [compact(rule.model_dump()) for rule in config.cors_rules],
            },
        ))

    policy = bucket_policy(config, context)
    if policy is not None:
        resources.append(ResourceDeclaration(
            type='aws_s3_bucket_policy',
            name='this',
            arguments={'bucket': bucket_id, 'policy': policy},
            depends_on=[public_access.address],
        ))

    outputs = {
        'bucket_id': bucket_id,
        'bucket_arn': s3_bucket_arn(context.partition, config.bucket),
        'bucket_domain_name': bucket.ref('bucket_domain_name'),
        'bucket_regional_domain_name': bucket.ref('bucket_regional_domain_name'),
    }
    if website is not None:
        outputs['website_endpoint'] = website.ref('website_endpoint')

    logger.debug('Rendered S3 bucket', extra={'bucket': config.bucket, 'resource_count': len(resources)})
    return RenderedModule(module=MODULE_NAME, name=config.bucket, resources=resources, outputs=outputs)
