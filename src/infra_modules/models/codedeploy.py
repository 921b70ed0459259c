"""
Input model for the codedeploy_application module.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import check_arn
from infra_modules.models.common import ModuleConfig, find_duplicates

ComputePlatform = Literal['Server', 'Lambda', 'ECS']

BUILTIN_DEPLOYMENT_PREFIX = 'CodeDeployDefault.'

BUILTIN_DEPLOYMENT_CONFIGS: dict[str, tuple[str, ...]] = {
    'Server': (
        'CodeDeployDefault.OneAtATime',
        'CodeDeployDefault.HalfAtATime',
        'CodeDeployDefault.AllAtOnce',
    ),
    'Lambda': (
        'CodeDeployDefault.LambdaAllAtOnce',
        'CodeDeployDefault.LambdaCanary10Percent5Minutes',
        'CodeDeployDefault.LambdaCanary10Percent10Minutes',
        'CodeDeployDefault.LambdaCanary10Percent15Minutes',
        'CodeDeployDefault.LambdaCanary10Percent30Minutes',
        'CodeDeployDefault.LambdaLinear10PercentEvery1Minute',
        'CodeDeployDefault.LambdaLinear10PercentEvery2Minutes',
        'CodeDeployDefault.LambdaLinear10PercentEvery3Minutes',
        'CodeDeployDefault.LambdaLinear10PercentEvery10Minutes',
    ),
    'ECS': (
        'CodeDeployDefault.ECSAllAtOnce',
        'CodeDeployDefault.ECSLinear10PercentEvery1Minutes',
        'CodeDeployDefault.ECSLinear10PercentEvery3Minutes',
        'CodeDeployDefault.ECSCanary10Percent5Minutes',
        'CodeDeployDefault.ECSCanary10Percent15Minutes',
    ),
}

DEFAULT_DEPLOYMENT_CONFIGS = {
    'Server': 'CodeDeployDefault.OneAtATime',
    'Lambda': 'CodeDeployDefault.LambdaAllAtOnce',
    'ECS': 'CodeDeployDefault.ECSAllAtOnce',
}

# Managed policy attached to a module-created service role, by platform
SERVICE_ROLE_POLICIES = {
    'Server': 'policy/service-role/AWSCodeDeployRole',
    'Lambda': 'policy/service-role/AWSCodeDeployRoleForLambda',
    'ECS': 'policy/AWSCodeDeployRoleForECS',
}


class DeploymentStyle(BaseModel):
    model_config = ConfigDict(extra='forbid')

    deployment_type: Literal['IN_PLACE', 'BLUE_GREEN'] = 'IN_PLACE'

    deployment_option: Literal['WITH_TRAFFIC_CONTROL', 'WITHOUT_TRAFFIC_CONTROL'] = 'WITHOUT_TRAFFIC_CONTROL'


class AutoRollback(BaseModel):
    model_config = ConfigDict(extra='forbid')

    enabled: bool = True

    events: list[Literal['DEPLOYMENT_FAILURE', 'DEPLOYMENT_STOP_ON_ALARM', 'DEPLOYMENT_STOP_ON_REQUEST']] = Field(
        default_factory=lambda: ['DEPLOYMENT_FAILURE']
    )

    @model_validator(mode='after')
    def check_events(self) -> 'AutoRollback':
        if self.enabled and not self.events:
            raise ValueError('enabled auto rollback requires at least one event')
        return self


class Ec2TagFilter(BaseModel):
    model_config = ConfigDict(extra='forbid')

    key: str | None = None

    value: str | None = None

    type: Literal['KEY_ONLY', 'VALUE_ONLY', 'KEY_AND_VALUE'] = 'KEY_AND_VALUE'


class EcsService(BaseModel):
    model_config = ConfigDict(extra='forbid')

    cluster_name: Annotated[str, Field(min_length=1)]

    service_name: Annotated[str, Field(min_length=1)]


class BlueGreenConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    deployment_ready_action: Literal['CONTINUE_DEPLOYMENT', 'STOP_DEPLOYMENT'] = 'CONTINUE_DEPLOYMENT'

    wait_time_in_minutes: Annotated[int | None, Field(default=None, ge=0, le=2880)] = None

    terminate_blue_instances: bool = True

    termination_wait_time_in_minutes: Annotated[int, Field(default=5, ge=0, le=2880)] = 5

    @model_validator(mode='after')
    def check_wait(self) -> 'BlueGreenConfig':
        if self.deployment_ready_action == 'STOP_DEPLOYMENT' and self.wait_time_in_minutes is None:
            raise ValueError('STOP_DEPLOYMENT requires wait_time_in_minutes')
        return self


class DeploymentGroup(BaseModel):
    """A deployment group; platform specific rules are checked by the application."""

    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, max_length=100)]

    service_role_arn: str | None = None

    deployment_config_name: str | None = None

    auto_rollback: AutoRollback | None = None

    alarm_names: Annotated[list[str], Field(default_factory=list, max_length=10)]

    ec2_tag_filters: list[Ec2TagFilter] = Field(default_factory=list)

    autoscaling_groups: list[str] = Field(default_factory=list)

    deployment_style: DeploymentStyle | None = None

    target_group_names: list[str] = Field(default_factory=list)

    ecs_service: EcsService | None = None

    blue_green: BlueGreenConfig | None = None

    @field_validator('service_role_arn')
    @classmethod
    def validate_service_role_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'iam') if v is not None else v

    @model_validator(mode='after')
    def check_rollback(self) -> 'DeploymentGroup':
        rollback = self.auto_rollback
        if rollback is not None and 'DEPLOYMENT_STOP_ON_ALARM' in rollback.events and not self.alarm_names:
            raise ValueError(f"deployment group '{self.name}': DEPLOYMENT_STOP_ON_ALARM requires alarm_names")
        return self


class CodeDeployApplicationConfig(ModuleConfig):
    """Input schema for the codedeploy_application module."""

    application_name: Annotated[str, Field(min_length=1, max_length=100)]

    compute_platform: ComputePlatform = 'Server'

    deployment_groups: list[DeploymentGroup] = Field(default_factory=list)

    def deployment_style(self, group: DeploymentGroup) -> DeploymentStyle:
        """Style of a group, defaulting to blue/green traffic shifting for Lambda and ECS."""
        if group.deployment_style is not None:
            return group.deployment_style
        if self.compute_platform == 'Server':
            return DeploymentStyle()
        return DeploymentStyle(deployment_type='BLUE_GREEN', deployment_option='WITH_TRAFFIC_CONTROL')

    def deployment_config(self, group: DeploymentGroup) -> str:
        return group.deployment_config_name or DEFAULT_DEPLOYMENT_CONFIGS[self.compute_platform]

    @model_validator(mode='after')
    def check_groups(self) -> 'CodeDeployApplicationConfig':
        duplicates = find_duplicates([group.name for group in self.deployment_groups])
        if duplicates:
            raise ValueError(f"duplicate deployment groups: {', '.join(duplicates)}")

        platform = self.compute_platform
        for group in self.deployment_groups:
            label = f"deployment group '{group.name}'"
            config_name = group.deployment_config_name
            if config_name and config_name.startswith(BUILTIN_DEPLOYMENT_PREFIX):
                if config_name not in BUILTIN_DEPLOYMENT_CONFIGS[platform]:
                    raise ValueError(f'{label}: {config_name} is not a {platform} deployment config')

            style = self.deployment_style(group)
            if platform in ('Lambda', 'ECS'):
                if style.deployment_type != 'BLUE_GREEN' or style.deployment_option != 'WITH_TRAFFIC_CONTROL':
                    raise ValueError(f'{label}: {platform} deployments require BLUE_GREEN with traffic control')
                if group.ec2_tag_filters or group.autoscaling_groups:
                    raise ValueError(f'{label}: {platform} deployments do not support EC2 tags or Auto Scaling groups')
            if platform == 'ECS':
                if group.ecs_service is None:
                    raise ValueError(f'{label}: ECS deployments require ecs_service')
                if len(group.target_group_names) != 2:
                    raise ValueError(f'{label}: ECS deployments require exactly two target groups')
            elif group.ecs_service is not None:
                raise ValueError(f'{label}: ecs_service is only valid for ECS deployments')
            if platform == 'Lambda' and group.target_group_names:
                raise ValueError(f'{label}: Lambda deployments do not use target groups')
            if platform == 'Server':
                if style.deployment_type == 'BLUE_GREEN' and not group.target_group_names:
                    raise ValueError(f'{label}: BLUE_GREEN server deployments require target groups')
                if style.deployment_option == 'WITH_TRAFFIC_CONTROL' and not group.target_group_names:
                    raise ValueError(f'{label}: traffic control requires target groups')
            if group.blue_green is not None and style.deployment_type != 'BLUE_GREEN':
                raise ValueError(f'{label}: blue_green settings require the BLUE_GREEN deployment type')
        return self

    @property
    def needs_service_role(self) -> bool:
        return any(group.service_role_arn is None for group in self.deployment_groups)
