"""
Renderer for the dynamodb_table module.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.alarms import alarm_declarations
from infra_modules.models.alarms import AlarmDefinition
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact
from infra_modules.models.dynamodb import DynamoDbTableConfig

MODULE_NAME = 'dynamodb_table'


def default_alarms() -> dict[str, AlarmDefinition]:
    return {
        'ReadThrottleEvents': AlarmDefinition(
            namespace='AWS/DynamoDB', metric_name='ReadThrottleEvents', threshold=1,
        ),
        'WriteThrottleEvents': AlarmDefinition(
            namespace='AWS/DynamoDB', metric_name='WriteThrottleEvents', threshold=1,
        ),
        'SystemErrors': AlarmDefinition(
            namespace='AWS/DynamoDB', metric_name='SystemErrors', threshold=1,
        ),
    }


def render_dynamodb_table(config: DynamoDbTableConfig, context: AwsContext) -> RenderedModule:
    """
    Render a DynamoDB table and its optional alarms.

    Args:
        config: Validated table configuration
        context: Target account and region

    Returns:
        Rendered module with the table declaration and its outputs
    """
    tags = config.merged_tags(context)
    provisioned = config.billing_mode == 'PROVISIONED'

    arguments = {
        'name': config.name,
        'billing_mode': config.billing_mode,
        'hash_key': config.hash_key,
        'range_key': config.range_key,
        'read_capacity': config.read_capacity if provisioned else None,
        'write_capacity': config.write_capacity if provisioned else None,
        'table_class': config.table_class,
        'deletion_protection_enabled': config.deletion_protection,
        'attribute': [{'name': attribute.name, 'type': attribute.type} for attribute in config.attributes],
        'global_secondary_index': [
            {
                'name': index.name,
                'hash_key': index.hash_key,
                'range_key': index.range_key,
                'projection_type': index.projection_type,
                'non_key_attributes': index.non_key_attributes or None,
                'read_capacity': index.read_capacity,
                'write_capacity': index.write_capacity,
            }
            for index in config.global_secondary_indexes
        ],
        'local_secondary_index': [
            {
                'name': index.name,
                'range_key': index.range_key,
                'projection_type': index.projection_type,
                'non_key_attributes': index.non_key_attributes or None,
            }
            for index in config.local_secondary_indexes
        ],
        'stream_enabled': config.stream_enabled,
        'stream_view_type': config.stream_view_type,
        'point_in_time_recovery': {'enabled': config.point_in_time_recovery},
        'server_side_encryption': {
            'enabled': config.server_side_encryption.enabled,
            'kms_key_arn': config.server_side_encryption.kms_key_arn,
        },
        'tags': tags,
    }
    if config.ttl_attribute:
        arguments['ttl'] = {'attribute_name': config.ttl_attribute, 'enabled': True}

    table = ResourceDeclaration(type='aws_dynamodb_table', name='this', arguments=compact(arguments))
    resources = [table]
    resources += alarm_declarations(
        prefix=config.name,
        config=config.alarms,
        defaults=default_alarms(),
        dimensions={'TableName': config.name},
        tags=tags,
    )

    outputs = {
        'table_name': table.ref('name'),
        'table_id': table.ref('id'),
        'table_arn': table.ref('arn'),
        'global_secondary_index_names': [index.name for index in config.global_secondary_indexes],
    }
    if config.stream_enabled:
        outputs['table_stream_arn'] = table.ref('stream_arn')
        outputs['table_stream_label'] = table.ref('stream_label')

    logger.debug('Rendered DynamoDB table', extra={
        'table_name': config.name,
        'billing_mode': config.billing_mode,
        'resource_count': len(resources),
    })
    return RenderedModule(module=MODULE_NAME, name=config.name, resources=resources, outputs=outputs)
