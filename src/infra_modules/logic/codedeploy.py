"""
Renderer for the codedeploy_application module.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.iam import PolicyDocument, role_declarations
from infra_modules.models.codedeploy import SERVICE_ROLE_POLICIES, CodeDeployApplicationConfig, DeploymentGroup
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact, unique_local_name

MODULE_NAME = 'codedeploy_application'


def _group_arguments(
    config: CodeDeployApplicationConfig,
    group: DeploymentGroup,
    application: ResourceDeclaration,
    role_arn: str,
) -> dict:
    style = config.deployment_style(group)
    arguments = {
        'app_name': application.ref('name'),
        'deployment_group_name': group.name,
        'service_role_arn': role_arn,
        'deployment_config_name': config.deployment_config(group),
        'deployment_style': style.model_dump(),
        'autoscaling_groups': group.autoscaling_groups or None,
        'ec2_tag_filter': [compact(tag.model_dump()) for tag in group.ec2_tag_filters] or None,
        'alarm_configuration': {'alarms': group.alarm_names, 'enabled': True} if group.alarm_names else None,
        'auto_rollback_configuration': group.auto_rollback.model_dump() if group.auto_rollback else None,
        'ecs_service': group.ecs_service.model_dump() if group.ecs_service else None,
    }
    if group.target_group_names:
        if config.compute_platform == 'ECS':
            arguments['load_balancer_info'] = {
                'target_group_pair_info': {
                    'target_group': [{'name': name} for name in group.target_group_names],
                },
            }
        else:
            arguments['load_balancer_info'] = {
                'target_group_info': [{'name': name} for name in group.target_group_names],
            }
    if style.deployment_type == 'BLUE_GREEN':
        blue_green = group.blue_green
        settings = {}
        if blue_green is not None:
            settings['deployment_ready_option'] = compact({
                'action_on_timeout': blue_green.deployment_ready_action,
                'wait_time_in_minutes': blue_green.wait_time_in_minutes,
            })
            settings['terminate_blue_instances_on_deployment_success'] = {
                'action': 'TERMINATE' if blue_green.terminate_blue_instances else 'KEEP_ALIVE',
                'termination_wait_time_in_minutes': blue_green.termination_wait_time_in_minutes,
            }
        if config.compute_platform == 'Server':
            settings['green_fleet_provisioning_option'] = {'action': 'COPY_AUTO_SCALING_GROUP'}
        if settings:
            arguments['blue_green_deployment_config'] = settings
    return compact(arguments)


def render_codedeploy_application(config: CodeDeployApplicationConfig, context: AwsContext) -> RenderedModule:
    """
    Render a CodeDeploy application, its deployment groups and an optional shared service role.

    Args:
        config: Validated application configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    resources: list[ResourceDeclaration] = []

    created_role_arn = None
    if config.needs_service_role:
        managed_policy = f'arn:{context.partition}:iam::aws:{SERVICE_ROLE_POLICIES[config.compute_platform]}'
        role_resources = role_declarations(
            role_name=f'{config.application_name}-codedeploy'[:64],
            services=['codedeploy.amazonaws.com'],
            policy=PolicyDocument(),
            tags=tags,
            managed_policy_arns=[managed_policy],
        )
        resources += role_resources
        created_role_arn = role_resources[0].ref('arn')

    application = ResourceDeclaration(
        type='aws_codedeploy_app',
        name='this',
        arguments={
            'name': config.application_name,
            'compute_platform': config.compute_platform,
            'tags': tags,
        },
    )
    resources.append(application)

    group_arns = {}
    group_names: set[str] = set()
    for group in config.deployment_groups:
        declaration = ResourceDeclaration(
            type='aws_codedeploy_deployment_group',
            name=unique_local_name(group.name, group_names),
            arguments={
                **_group_arguments(config, group, application, group.service_role_arn or created_role_arn),
                'tags': tags,
            },
        )
        resources.append(declaration)
        group_arns[group.name] = declaration.ref('arn')

    outputs = {
        'application_name': application.ref('name'),
        'application_arn': application.ref('arn'),
        'deployment_group_arns': group_arns,
        'service_role_arn': created_role_arn,
    }
    logger.debug('Rendered CodeDeploy application', extra={
        'application': config.application_name,
        'platform': config.compute_platform,
        'group_count': len(config.deployment_groups),
    })
    return RenderedModule(
        module=MODULE_NAME, name=config.application_name, resources=resources, outputs=outputs,
    )
