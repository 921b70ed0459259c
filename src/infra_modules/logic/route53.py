"""
Renderers for the route53_zone and route53_records modules.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.models.arns import is_reference
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact, unique_local_name
from infra_modules.models.route53 import RecordSet, Route53RecordsConfig, Route53ZoneConfig

ZONE_MODULE_NAME = 'route53_zone'
RECORDS_MODULE_NAME = 'route53_records'

TXT_CHUNK_SIZE = 255


def split_txt_value(value: str) -> str:
    """
    Split a TXT value into quoted 255 character strings.

    Route53 rejects single TXT strings longer than 255 characters; long values
    such as DKIM keys are stored as several adjacent quoted strings.
    """
    if is_reference(value) or len(value) <= TXT_CHUNK_SIZE:
        return value
    chunks = [value[start:start + TXT_CHUNK_SIZE] for start in range(0, len(value), TXT_CHUNK_SIZE)]
    return '""'.join(chunks)


def render_route53_zone(config: Route53ZoneConfig, context: AwsContext) -> RenderedModule:
    """Render a public or private hosted zone."""
    zone = ResourceDeclaration(
        type='aws_route53_zone',
        name='this',
        arguments=compact({
            'name': config.name,
            'comment': config.comment,
            'force_destroy': config.force_destroy,
            'delegation_set_id': config.delegation_set_id,
            'vpc': [
                compact({'vpc_id': vpc.vpc_id, 'vpc_region': vpc.vpc_region or context.region})
                for vpc in config.vpcs
            ],
            'tags': config.merged_tags(context),
        }),
    )
    outputs = {
        'zone_id': zone.ref('zone_id'),
        'zone_arn': zone.ref('arn'),
        'name_servers': zone.ref('name_servers'),
        'name': config.name,
        'private': config.is_private,
    }
    logger.debug('Rendered Route53 zone', extra={'zone': config.name, 'private': config.is_private})
    return RenderedModule(module=ZONE_MODULE_NAME, name=config.name, resources=[zone], outputs=outputs)


def _record_key(fqdn: str, record: RecordSet, taken: set[str]) -> str:
    parts = [fqdn.replace('*', 'wildcard'), record.type.lower()]
    if record.set_identifier:
        parts.append(record.set_identifier)
    return unique_local_name('_'.join(parts), taken)


def render_route53_records(config: Route53RecordsConfig, context: AwsContext) -> RenderedModule:
    """
    Render record sets into an existing zone.

    Args:
        config: Validated records configuration
        context: Target account and region

    Returns:
        Rendered module; outputs map record keys to fully qualified names
    """
    resources = []
    record_names = {}
    record_keys: set[str] = set()
    for record in config.records:
        fqdn = config.fqdn(record)
        values = record.values
        if record.type == 'TXT':
            values = [split_txt_value(value) for value in values]
        arguments = {
            'zone_id': config.zone_id,
            'name': fqdn,
            'type': record.type,
            'ttl': record.ttl,
            'records': values or None,
            'set_identifier': record.set_identifier,
            'weighted_routing_policy': {'weight': record.weight} if record.weight is not None else None,
            'alias': record.alias.model_dump() if record.alias else None,
        }
        key = _record_key(fqdn, record, record_keys)
        resources.append(ResourceDeclaration(type='aws_route53_record', name=key, arguments=compact(arguments)))
        record_names[key] = fqdn

    logger.debug('Rendered Route53 records', extra={'zone_id': config.zone_id, 'record_count': len(resources)})
    return RenderedModule(
        module=RECORDS_MODULE_NAME,
        name=config.zone_name or 'records',
        resources=resources,
        outputs={'record_names': record_names},
    )
