"""
Renderer for the cognito_user_pool module.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.models.cognito import CognitoUserPoolConfig, UserPoolClient
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact, unique_local_name

MODULE_NAME = 'cognito_user_pool'


def _client_arguments(client: UserPoolClient, user_pool_id: str) -> dict:
    oauth = bool(client.allowed_oauth_flows)
    return compact({
        'name': client.name,
        'user_pool_id': user_pool_id,
        'generate_secret': client.generate_secret,
        'allowed_oauth_flows_user_pool_client': oauth,
        'allowed_oauth_flows': client.allowed_oauth_flows or None,
        'allowed_oauth_scopes': client.allowed_oauth_scopes or None,
        'callback_urls': client.callback_urls or None,
        'logout_urls': client.logout_urls or None,
        'default_redirect_uri': client.default_redirect_uri,
        'supported_identity_providers': client.supported_identity_providers,
        'explicit_auth_flows': client.explicit_auth_flows,
        'access_token_validity': client.access_token_validity,
        'id_token_validity': client.id_token_validity,
        'refresh_token_validity': client.refresh_token_validity,
        'token_validity_units': client.token_validity_units.model_dump(),
        'prevent_user_existence_errors': 'ENABLED' if client.prevent_user_existence_errors else 'LEGACY',
        'enable_token_revocation': client.enable_token_revocation,
    })


def render_cognito_user_pool(config: CognitoUserPoolConfig, context: AwsContext) -> RenderedModule:
    """
    Render a user pool with its domain, resource servers, clients and trigger permissions.

    Args:
        config: Validated user pool configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    policy = config.password_policy
    email = config.email_configuration
    triggers = config.lambda_triggers.configured()

    arguments = {
        'name': config.name,
        'username_attributes': config.username_attributes or None,
        'auto_verified_attributes': config.auto_verified_attributes or None,
        'mfa_configuration': config.mfa_configuration,
        'deletion_protection': 'ACTIVE' if config.deletion_protection else 'INACTIVE',
        'password_policy': policy.model_dump(),
        'email_configuration': compact(email.model_dump()),
        'sms_configuration': compact(config.sms_configuration.model_dump()) if config.sms_configuration else None,
        'software_token_mfa_configuration': (
            {'enabled': True} if config.software_token_mfa_enabled else None
        ),
        'lambda_config': triggers or None,
        'account_recovery_setting': {
            'recovery_mechanism': [{'name': 'verified_email', 'priority': 1}]
            if 'email' in config.auto_verified_attributes
            else [{'name': 'admin_only', 'priority': 1}],
        },
        'tags': tags,
    }
    user_pool = ResourceDeclaration(type='aws_cognito_user_pool', name='this', arguments=compact(arguments))
    user_pool_id = user_pool.ref('id')
    resources = [user_pool]

    domain = config.domain
    hosted_ui_url = None
    if domain is not None:
        resources.append(ResourceDeclaration(
            type='aws_cognito_user_pool_domain',
            name='this',
            arguments=compact({
                'domain': domain,
                'user_pool_id': user_pool_id,
                'certificate_arn': config.certificate_arn,
            }),
        ))
        if config.custom_domain is not None:
            hosted_ui_url = f'https://{config.custom_domain}'
        else:
            hosted_ui_url = f'https://{domain}.auth.{context.region}.amazoncognito.com'

    server_names: set[str] = set()
    server_addresses = []
    for server in config.resource_servers:
        declaration = ResourceDeclaration(
            type='aws_cognito_resource_server',
            name=unique_local_name(server.name, server_names),
            arguments={
                'identifier': server.identifier,
                'name': server.name,
                'user_pool_id': user_pool_id,
                'scope': [{'scope_name': scope.name, 'scope_description': scope.description} for scope in server.scopes],
            },
        )
        resources.append(declaration)
        server_addresses.append(declaration.address)

    client_names: set[str] = set()
    client_ids = {}
    client_secrets = {}
    for client in config.clients:
        declaration = ResourceDeclaration(
            type='aws_cognito_user_pool_client',
            name=unique_local_name(client.name, client_names),
            arguments=_client_arguments(client, user_pool_id),
            depends_on=list(server_addresses),
        )
        resources.append(declaration)
        client_ids[client.name] = declaration.ref('id')
        if client.generate_secret:
            client_secrets[client.name] = declaration.ref('client_secret')

    for trigger, function_arn in triggers.items():
        resources.append(ResourceDeclaration(
            type='aws_lambda_permission',
            name=f'trigger_{trigger}',
            arguments={
                'statement_id': f'AllowCognito{trigger.title().replace("_", "")}',
                'action': 'lambda:InvokeFunction',
                'function_name': function_arn,
                'principal': 'cognito-idp.amazonaws.com',
                'source_arn': user_pool.ref('arn'),
            },
        ))

    outputs = {
        'user_pool_id': user_pool_id,
        'user_pool_arn': user_pool.ref('arn'),
        'user_pool_endpoint': user_pool.ref('endpoint'),
        'issuer_url': f'https://cognito-idp.{context.region}.{context.dns_suffix}/{user_pool_id}',
        'client_ids': client_ids,
        'client_secrets': client_secrets,
        'domain': domain,
        'hosted_ui_url': hosted_ui_url,
    }
    logger.debug('Rendered Cognito user pool', extra={
        'user_pool': config.name,
        'client_count': len(config.clients),
        'trigger_count': len(triggers),
    })
    return RenderedModule(module=MODULE_NAME, name=config.name, resources=resources, outputs=outputs)
