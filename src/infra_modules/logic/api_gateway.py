"""
Renderer for the api_gateway_rest_api module.

Routes are expanded into a resource tree with one resource per path prefix,
a method and integration per route, and a Lambda permission per function
and invoking source (authorizer or method). The deployment is re-created
whenever the route table changes through a sha1 trigger over the routes and
authorizers.
"""

import hashlib
import json

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.alarms import alarm_declarations
from infra_modules.logic.iam import PolicyDocument, PolicyStatement
from infra_modules.models.alarms import AlarmDefinition
from infra_modules.models.api_gateway import ApiGatewayRestApiConfig, path_segments
from infra_modules.models.arns import is_reference, parse_arn
from infra_modules.models.common import (
    AwsContext,
    RenderedModule,
    ResourceDeclaration,
    compact,
    local_name,
    unique_local_name,
)

MODULE_NAME = 'api_gateway_rest_api'

ACCESS_LOG_FORMAT = {
    'requestId': '$context.requestId',
    'ip': '$context.identity.sourceIp',
    'requestTime': '$context.requestTime',
    'httpMethod': '$context.httpMethod',
    'resourcePath': '$context.resourcePath',
    'status': '$context.status',
    'responseLength': '$context.responseLength',
    'integrationLatency': '$context.integrationLatency',
}


def default_alarms() -> dict[str, AlarmDefinition]:
    return {
        '5XXError': AlarmDefinition(namespace='AWS/ApiGateway', metric_name='5XXError', threshold=1),
        'Latency': AlarmDefinition(
            namespace='AWS/ApiGateway',
            metric_name='Latency',
            statistic='Average',
            threshold=5000,
        ),
    }


def lambda_invoke_uri(function_arn: str, context: AwsContext) -> str:
    """API Gateway invocation URI of a Lambda function."""
    region = context.region
    if not is_reference(function_arn):
        region = parse_arn(function_arn).region or region
    return f'arn:{context.partition}:apigateway:{region}:lambda:path/2015-03-31/functions/{function_arn}/invocations'


def resource_key(path: str) -> str:
    """Local name for the resource at a path."""
    if path == '/':
        return 'root'
    parts = []
    for segment in path_segments(path):
        if segment.startswith('{'):
            segment = 'p_' + segment.strip('{}').replace('+', '_greedy')
        parts.append(segment.replace('.', '_').replace('~', '_'))
    return local_name('__'.join(parts))


def path_keys(config: ApiGatewayRestApiConfig) -> dict[str, str]:
    """Unique local name per resource path, including '/' when a route targets the root."""
    taken: set[str] = set()
    keys: dict[str, str] = {}
    for route in config.routes:
        segments = path_segments(route.path)
        prefixes = ['/' + '/'.join(segments[:depth]) for depth in range(1, len(segments) + 1)] or ['/']
        for prefix in prefixes:
            if prefix not in keys:
                keys[prefix] = unique_local_name(resource_key(prefix), taken)
    return keys


def deployment_trigger(config: ApiGatewayRestApiConfig) -> str:
    """Hash over routes and authorizers; a change forces a new deployment."""
    payload = {
        'routes': [route.model_dump(mode='json') for route in config.routes],
        'authorizers': [authorizer.model_dump(mode='json') for authorizer in config.authorizers],
    }
    return hashlib.sha1(json.dumps(payload, sort_keys=True).encode('utf-8')).hexdigest()


def private_api_policy(config: ApiGatewayRestApiConfig, context: AwsContext) -> dict:
    """Resource policy restricting a private API to its VPC endpoints."""
    execute_api = f'arn:{context.partition}:execute-api:{context.region}:{context.account_id}:*/*'
    policy = PolicyDocument()
    policy.add(PolicyStatement(
        sid='DenyOutsideVpcEndpoints',
        effect='Deny',
        principals={'AWS': '*'},
        actions=['execute-api:Invoke'],
        resources=[execute_api],
        conditions={'StringNotEquals': {'aws:SourceVpce': list(config.vpc_endpoint_ids)}},
    ))
    policy.add(PolicyStatement(
        sid='AllowVpcEndpoints',
        principals={'AWS': '*'},
        actions=['execute-api:Invoke'],
        resources=[execute_api],
    ))
    return policy.to_dict()


def render_api_gateway_rest_api(config: ApiGatewayRestApiConfig, context: AwsContext) -> RenderedModule:
    """
    Render a REST API with its resource tree, stage and permissions.

    Args:
        config: Validated API configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    rest_api = ResourceDeclaration(
        type='aws_api_gateway_rest_api',
        name='this',
        arguments=compact({
            'name': config.name,
            'description': config.description,
            'endpoint_configuration': {
                'types': [config.endpoint_type],
                'vpc_endpoint_ids': config.vpc_endpoint_ids or None,
            },
            'policy': private_api_policy(config, context) if config.endpoint_type == 'PRIVATE' else None,
            'tags': tags,
        }),
    )
    rest_api_id = rest_api.ref('id')
    execution_arn = rest_api.ref('execution_arn')
    resources = [rest_api]

    # Resource tree; parents are always declared before their children
    keys = path_keys(config)
    path_resources: dict[str, ResourceDeclaration] = {}
    for route in config.routes:
        segments = path_segments(route.path)
        for depth in range(1, len(segments) + 1):
            prefix = '/' + '/'.join(segments[:depth])
            if prefix in path_resources:
                continue
            parent_path = '/' + '/'.join(segments[:depth - 1])
            parent_id = (
                path_resources[parent_path].ref('id') if depth > 1 else rest_api.ref('root_resource_id')
            )
            declaration = ResourceDeclaration(
                type='aws_api_gateway_resource',
                name=keys[prefix],
                arguments={'rest_api_id': rest_api_id, 'parent_id': parent_id, 'path_part': segments[depth - 1]},
            )
            path_resources[prefix] = declaration
            resources.append(declaration)

    authorizer_ids: dict[str, str] = {}
    authorizer_names: set[str] = set()
    # (function ARN, source ARN) -> statement id
    lambda_permissions: dict[tuple[str, str], str] = {}
    for authorizer in config.authorizers:
        declaration = ResourceDeclaration(
            type='aws_api_gateway_authorizer',
            name=unique_local_name(authorizer.name, authorizer_names),
            arguments=compact({
                'name': authorizer.name,
                'rest_api_id': rest_api_id,
                'type': authorizer.type,
                'provider_arns': authorizer.provider_arns or None,
                'authorizer_uri': (
                    lambda_invoke_uri(authorizer.authorizer_lambda_arn, context)
                    if authorizer.authorizer_lambda_arn else None
                ),
                'identity_source': authorizer.identity_source,
                'authorizer_result_ttl_in_seconds': authorizer.result_ttl_in_seconds,
            }),
        )
        resources.append(declaration)
        authorizer_ids[authorizer.name] = declaration.ref('id')
        if authorizer.authorizer_lambda_arn is not None:
            lambda_permissions.setdefault(
                (authorizer.authorizer_lambda_arn, f'{execution_arn}/authorizers/*'),
                'AllowApiGatewayAuthorizerInvoke',
            )

    method_addresses: list[str] = []
    for route in config.routes:
        resource_id = path_resources[route.path].ref('id') if route.path != '/' else rest_api.ref('root_resource_id')
        key = f'{keys[route.path]}_{route.http_method.lower()}'
        method = ResourceDeclaration(
            type='aws_api_gateway_method',
            name=key,
            arguments=compact({
                'rest_api_id': rest_api_id,
                'resource_id': resource_id,
                'http_method': route.http_method,
                'authorization': route.authorization,
                'authorizer_id': authorizer_ids.get(route.authorizer) if route.authorizer else None,
                'authorization_scopes': route.authorization_scopes or None,
                'api_key_required': route.api_key_required,
            }),
        )
        integration = route.integration
        if integration.type == 'AWS_PROXY':
            uri = lambda_invoke_uri(integration.lambda_function_arn, context)
            integration_http_method = 'POST'
            lambda_permissions.setdefault(
                (integration.lambda_function_arn, f'{execution_arn}/*/*'),
                'AllowApiGatewayInvoke',
            )
        elif integration.type == 'HTTP_PROXY':
            uri = integration.uri
            integration_http_method = integration.http_method or route.http_method
        else:
            uri = None
            integration_http_method = None
        integration_declaration = ResourceDeclaration(
            type='aws_api_gateway_integration',
            name=key,
            arguments=compact({
                'rest_api_id': rest_api_id,
                'resource_id': resource_id,
                'http_method': method.ref('http_method'),
                'type': integration.type,
                'integration_http_method': integration_http_method,
                'uri': uri,
                'timeout_milliseconds': integration.timeout_milliseconds,
                'request_templates': {'application/json': '{"statusCode": 200}'} if integration.type == 'MOCK' else None,
            }),
        )
        resources += [method, integration_declaration]
        method_addresses += [method.address, integration_declaration.address]

    for index, ((function_arn, source_arn), statement_id) in enumerate(lambda_permissions.items()):
        resources.append(ResourceDeclaration(
            type='aws_lambda_permission',
            name=f'invoke_{index}',
            arguments={
                'statement_id': statement_id,
                'action': 'lambda:InvokeFunction',
                'function_name': function_arn,
                'principal': 'apigateway.amazonaws.com',
                'source_arn': source_arn,
            },
        ))

    deployment = ResourceDeclaration(
        type='aws_api_gateway_deployment',
        name='this',
        arguments={
            'rest_api_id': rest_api_id,
            'triggers': {'redeployment': deployment_trigger(config)},
            'lifecycle': {'create_before_destroy': True},
        },
        depends_on=method_addresses,
    )
    stage = ResourceDeclaration(
        type='aws_api_gateway_stage',
        name='this',
        arguments=compact({
            'rest_api_id': rest_api_id,
            'deployment_id': deployment.ref('id'),
            'stage_name': config.stage_name,
            'xray_tracing_enabled': config.xray_tracing_enabled,
            'access_log_settings': {
                'destination_arn': config.access_log_destination_arn,
                'format': json.dumps(ACCESS_LOG_FORMAT),
            } if config.access_log_destination_arn else None,
            'tags': tags,
        }),
    )
    resources += [deployment, stage]

    if config.throttling is not None:
        resources.append(ResourceDeclaration(
            type='aws_api_gateway_method_settings',
            name='this',
            arguments={
                'rest_api_id': rest_api_id,
                'stage_name': stage.ref('stage_name'),
                'method_path': '*/*',
                'settings': {
                    'metrics_enabled': True,
                    'throttling_burst_limit': config.throttling.burst_limit,
                    'throttling_rate_limit': config.throttling.rate_limit,
                },
            },
        ))

    outputs = {
        'rest_api_id': rest_api_id,
        'root_resource_id': rest_api.ref('root_resource_id'),
        'execution_arn': execution_arn,
        'invoke_url': stage.ref('invoke_url'),
        'stage_name': config.stage_name,
        'stage_arn': stage.ref('arn'),
    }

    if config.custom_domain is not None:
        domain = config.custom_domain
        edge = config.endpoint_type == 'EDGE'
        domain_declaration = ResourceDeclaration(
            type='aws_api_gateway_domain_name',
            name='this',
            arguments={
                'domain_name': domain.domain_name,
                'certificate_arn' if edge else 'regional_certificate_arn': domain.certificate_arn,
                'endpoint_configuration': {'types': [config.endpoint_type]},
                'security_policy': 'TLS_1_2',
                'tags': tags,
            },
        )
        resources.append(domain_declaration)
        resources.append(ResourceDeclaration(
            type='aws_api_gateway_base_path_mapping',
            name='this',
            arguments=compact({
                'api_id': rest_api_id,
                'stage_name': stage.ref('stage_name'),
                'domain_name': domain_declaration.ref('domain_name'),
                'base_path': domain.base_path,
            }),
        ))
        outputs['domain_name'] = domain.domain_name
        if edge:
            outputs['domain_target_name'] = domain_declaration.ref('cloudfront_domain_name')
            outputs['domain_target_zone_id'] = domain_declaration.ref('cloudfront_zone_id')
        else:
            outputs['domain_target_name'] = domain_declaration.ref('regional_domain_name')
            outputs['domain_target_zone_id'] = domain_declaration.ref('regional_zone_id')

    resources += alarm_declarations(
        prefix=f'{config.name}-{config.stage_name}',
        config=config.alarms,
        defaults=default_alarms(),
        dimensions={'ApiName': config.name, 'Stage': config.stage_name},
        tags=tags,
    )

    logger.debug('Rendered REST API', extra={
        'api_name': config.name,
        'route_count': len(config.routes),
        'resource_count': len(path_resources),
        'lambda_permission_count': len(lambda_permissions),
    })
    return RenderedModule(module=MODULE_NAME, name=config.name, resources=resources, outputs=outputs)
