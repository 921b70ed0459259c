"""
Renderer for the cloudfront_distribution module.

Private S3 origins get an origin access control, and the module emits the
bucket policy statement each bucket needs so the bucket module can consume it
without referencing the distribution's inputs.
"""

import re
from typing import Any

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.iam import PolicyStatement
from infra_modules.models.arns import s3_bucket_arn
from infra_modules.models.cloudfront import CacheBehavior, CloudFrontDistributionConfig, Origin
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact, unique_local_name

MODULE_NAME = 'cloudfront_distribution'

# Hosted zone id of every CloudFront distribution, used for Route53 alias records
CLOUDFRONT_HOSTED_ZONE_ID = 'Z2FDTNDATAQYW2'


def _behavior_arguments(behavior: CacheBehavior) -> dict[str, Any]:
    arguments: dict[str, Any] = {
        'target_origin_id': behavior.target_origin_id,
        'viewer_protocol_policy': behavior.viewer_protocol_policy,
        'allowed_methods': behavior.allowed_methods,
        'cached_methods': behavior.cached_methods,
        'compress': behavior.compress,
        'cache_policy_id': behavior.cache_policy_id,
        'origin_request_policy_id': behavior.origin_request_policy_id,
        'response_headers_policy_id': behavior.response_headers_policy_id,
        'function_association': [association.model_dump() for association in behavior.function_associations],
        'lambda_function_association': [
            association.model_dump() for association in behavior.lambda_function_associations
        ],
    }
    if behavior.cache_policy_id is None:
        arguments.update({
            'min_ttl': behavior.min_ttl or 0,
            'default_ttl': behavior.default_ttl if behavior.default_ttl is not None else 86400,
            'max_ttl': behavior.max_ttl if behavior.max_ttl is not None else 31536000,
            'forwarded_values': {'query_string': False, 'cookies': {'forward': 'none'}},
        })
    return arguments


def _origin_arguments(origin: Origin, access_control: ResourceDeclaration | None) -> dict[str, Any]:
    arguments: dict[str, Any] = {
        'origin_id': origin.origin_id,
        'domain_name': origin.domain_name,
        'origin_path': origin.origin_path,
        'custom_header': [{'name': name, 'value': value} for name, value in origin.custom_headers.items()],
    }
    if access_control is not None:
        arguments['origin_access_control_id'] = access_control.ref('id')
    if origin.custom_origin_config is not None:
        arguments['custom_origin_config'] = origin.custom_origin_config.model_dump()
    return arguments


def origin_bucket_arn(origin: Origin, context: AwsContext) -> str:
    """Bucket ARN of a private origin, explicit or derived from its domain."""
    if origin.bucket_arn is not None:
        return origin.bucket_arn
    return s3_bucket_arn(context.partition, origin.bucket_name)


def render_cloudfront_distribution(config: CloudFrontDistributionConfig, context: AwsContext) -> RenderedModule:
    """
    Render a distribution, origin access controls for private origins, and bucket grants.

    Args:
        config: Validated distribution configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    resources = []

    access_controls: dict[str, ResourceDeclaration] = {}
    access_control_names: set[str] = set()
    for origin in config.origins:
        if not origin.is_private_origin:
            continue
        access_control = ResourceDeclaration(
            type='aws_cloudfront_origin_access_control',
            name=unique_local_name(origin.origin_id, access_control_names),
            arguments={
                'name': f'{config.name}-{origin.origin_id}'[:64],
                'description': f'Access to {origin.origin_id} for {config.name}',
                'origin_access_control_origin_type': 's3',
                'signing_behavior': 'always',
                'signing_protocol': 'sigv4',
            },
        )
        access_controls[origin.origin_id] = access_control
        resources.append(access_control)

    if config.acm_certificate_arn is not None:
        viewer_certificate = {
            'acm_certificate_arn': config.acm_certificate_arn,
            'ssl_support_method': 'sni-only',
            'minimum_protocol_version': config.minimum_protocol_version,
        }
    else:
        viewer_certificate = {'cloudfront_default_certificate': True}

    arguments = {
        'comment': config.comment,
        'enabled': config.enabled,
        'is_ipv6_enabled': config.is_ipv6_enabled,
        'http_version': config.http_version,
        'price_class': config.price_class,
        'aliases': config.aliases,
        'default_root_object': config.default_root_object,
        'web_acl_id': config.web_acl_id,
        'origin': [_origin_arguments(origin, access_controls.get(origin.origin_id)) for origin in config.origins],
        'default_cache_behavior': _behavior_arguments(config.default_cache_behavior),
        'ordered_cache_behavior': [
            {'path_pattern': behavior.path_pattern, **_behavior_arguments(behavior)}
            for behavior in config.ordered_cache_behaviors
        ],
        'custom_error_response': [response.model_dump() for response in config.custom_error_responses],
        'restrictions': {'geo_restriction': config.geo_restriction.model_dump()},
        'viewer_certificate': viewer_certificate,
        'logging_config': config.logging.model_dump() if config.logging else None,
        'tags': tags,
    }
    distribution = ResourceDeclaration(
        type='aws_cloudfront_distribution',
        name='this',
        arguments=compact(arguments),
        depends_on=[access_control.address for access_control in access_controls.values()],
    )
    resources.append(distribution)

    bucket_statements = {}
    for origin in config.origins:
        if not origin.is_private_origin:
            continue
        bucket_arn = origin_bucket_arn(origin, context)
        bucket_statements[origin.origin_id] = PolicyStatement(
            sid=f'AllowCloudFront{re.sub(r"[^A-Za-z0-9]", "", access_controls[origin.origin_id].name)}',
            principals={'Service': 'cloudfront.amazonaws.com'},
            actions=['s3:GetObject'],
            resources=[f'{bucket_arn}/*'],
            conditions={'StringEquals': {'AWS:SourceArn': distribution.ref('arn')}},
        ).to_dict()

    outputs = {
        'distribution_id': distribution.ref('id'),
        'distribution_arn': distribution.ref('arn'),
        'domain_name': distribution.ref('domain_name'),
        'hosted_zone_id': CLOUDFRONT_HOSTED_ZONE_ID,
        'origin_access_control_ids': {
            origin_id: access_control.ref('id') for origin_id, access_control in access_controls.items()
        },
        's3_bucket_policy_statements': bucket_statements,
    }

    logger.debug('Rendered CloudFront distribution', extra={
        'distribution': config.name,
        'origin_count': len(config.origins),
        'private_origin_count': len(access_controls),
    })
    return RenderedModule(module=MODULE_NAME, name=config.name, resources=resources, outputs=outputs)
