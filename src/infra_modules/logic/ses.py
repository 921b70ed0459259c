"""
Renderer for the ses_domain_identity module.

The DNS records SES needs for verification, DKIM and MAIL FROM are always
reported in the ``dns_records`` output. They are declared as Route53 records
only when a zone id is given.
"""

from typing import Any

from infra_modules.handlers.utils.observability import logger
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, unique_local_name
from infra_modules.models.ses import SesDomainIdentityConfig

MODULE_NAME = 'ses_domain_identity'

DKIM_TOKEN_COUNT = 3

SPF_RECORD = 'v=spf1 include:amazonses.com ~all'


def dns_records(
    config: SesDomainIdentityConfig,
    context: AwsContext,
    identity: ResourceDeclaration,
    dkim: ResourceDeclaration | None,
) -> list[dict[str, Any]]:
    """DNS records required by the identity, in declaration order."""
    records = [{
        'key': 'verification',
        'name': f'_amazonses.{config.domain}',
        'type': 'TXT',
        'ttl': config.record_ttl,
        'records': [identity.ref('verification_token')],
    }]
    if dkim is not None:
        for index in range(DKIM_TOKEN_COUNT):
            token = dkim.ref(f'dkim_tokens[{index}]')
            records.append({
                'key': f'dkim_{index}',
                'name': f'{token}._domainkey.{config.domain}',
                'type': 'CNAME',
                'ttl': config.record_ttl,
                'records': [f'{token}.dkim.amazonses.com'],
            })
    if config.mail_from_domain is not None:
        records.append({
            'key': 'mail_from_mx',
            'name': config.mail_from_domain,
            'type': 'MX',
            'ttl': config.record_ttl,
            'records': [f'10 feedback-smtp.{context.region}.amazonses.com'],
        })
        records.append({
            'key': 'mail_from_spf',
            'name': config.mail_from_domain,
            'type': 'TXT',
            'ttl': config.record_ttl,
            'records': [SPF_RECORD],
        })
    return records


def render_ses_domain_identity(config: SesDomainIdentityConfig, context: AwsContext) -> RenderedModule:
    """
    Render a domain identity with DKIM, MAIL FROM, optional DNS records and email identities.

    Args:
        config: Validated identity configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    identity = ResourceDeclaration(type='aws_ses_domain_identity', name='this', arguments={'domain': config.domain})
    resources = [identity]

    dkim = None
    if config.dkim_enabled:
        dkim = ResourceDeclaration(type='aws_ses_domain_dkim', name='this', arguments={'domain': identity.ref('domain')})
        resources.append(dkim)

    if config.mail_from_domain is not None:
        resources.append(ResourceDeclaration(
            type='aws_ses_domain_mail_from',
            name='this',
            arguments={
                'domain': identity.ref('domain'),
                'mail_from_domain': config.mail_from_domain,
                'behavior_on_mx_failure': config.mail_from_behavior_on_mx_failure,
            },
        ))

    records = dns_records(config, context, identity, dkim)
    if config.route53_zone_id is not None:
        verification_record = None
        for record in records:
            declaration = ResourceDeclaration(
                type='aws_route53_record',
                name=record['key'],
                arguments={
                    'zone_id': config.route53_zone_id,
                    'name': record['name'],
                    'type': record['type'],
                    'ttl': record['ttl'],
                    'records': record['records'],
                },
            )
            resources.append(declaration)
            if record['key'] == 'verification':
                verification_record = declaration
        resources.append(ResourceDeclaration(
            type='aws_ses_domain_identity_verification',
            name='this',
            arguments={'domain': identity.ref('id')},
            depends_on=[verification_record.address],
        ))

    email_identity_arns = {}
    email_names: set[str] = set()
    for email in config.email_identities:
        declaration = ResourceDeclaration(type='aws_ses_email_identity', name=unique_local_name(email, email_names), arguments={'email': email})
        resources.append(declaration)
        email_identity_arns[email] = declaration.ref('arn')

    configuration_set_name = None
    if config.configuration_set is not None:
        configuration_set = ResourceDeclaration(
            type='aws_ses_configuration_set',
            name='this',
            arguments={'name': config.configuration_set},
        )
        resources.append(configuration_set)
        configuration_set_name = configuration_set.ref('name')

    outputs = {
        'identity_arn': identity.ref('arn'),
        'domain': config.domain,
        'verification_token': identity.ref('verification_token'),
        'dkim_tokens': dkim.ref('dkim_tokens') if dkim is not None else [],
        'dns_records': [{key: value for key, value in record.items() if key != 'key'} for record in records],
        'email_identity_arns': email_identity_arns,
        'configuration_set_name': configuration_set_name,
    }
    logger.debug('Rendered SES domain identity', extra={
        'domain': config.domain,
        'manages_records': config.route53_zone_id is not None,
        'record_count': len(records),
    })
    return RenderedModule(module=MODULE_NAME, name=config.domain, resources=resources, outputs=outputs)
