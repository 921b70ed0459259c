"""
Renderer for the ssm_parameters module.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.models.arns import ssm_parameter_arn
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact, unique_local_name
from infra_modules.models.ssm import SsmParametersConfig

MODULE_NAME = 'ssm_parameters'


def render_ssm_parameters(config: SsmParametersConfig, context: AwsContext) -> RenderedModule:
    """
    Render one parameter resource per configured parameter.

    Args:
        config: Validated parameters configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    resources = []
    parameter_arns = {}
    used_names: set[str] = set()
    for parameter in config.parameters:
        name = unique_local_name(parameter.name.strip('/').replace('/', '_'), used_names)
        resources.append(ResourceDeclaration(
            type='aws_ssm_parameter',
            name=name,
            arguments=compact({
                'name': parameter.name,
                'description': parameter.description,
                'type': parameter.type,
                'value': parameter.value,
                'key_id': parameter.key_id,
                'tier': parameter.tier,
                'allowed_pattern': parameter.allowed_pattern,
                'data_type': parameter.data_type,
                'overwrite': parameter.overwrite or None,
                'tags': tags,
            }),
        ))
        parameter_arns[parameter.name] = ssm_parameter_arn(
            context.partition, context.region, context.account_id, parameter.name
        )

    outputs = {
        'parameter_names': [parameter.name for parameter in config.parameters],
        'parameter_arns': parameter_arns,
    }
    logger.debug('Rendered SSM parameters', extra={
        'parameter_count': len(config.parameters),
        'secure_count': sum(1 for parameter in config.parameters if parameter.type == 'SecureString'),
    })
    return RenderedModule(module=MODULE_NAME, name='ssm-parameters', resources=resources, outputs=outputs)
