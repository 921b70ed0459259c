"""
Default alarm merging and alarm declaration rendering.
"""

from pydantic import ValidationError

from infra_modules.models.alarms import AlarmDefinition, AlarmOverride, AlarmsConfig
from infra_modules.models.common import ResourceDeclaration, local_name


def merge_alarms(
    defaults: dict[str, AlarmDefinition],
    overrides: dict[str, AlarmOverride],
) -> dict[str, AlarmDefinition]:
    """
    Merge default alarms with caller overrides.

    An override patches only the fields it sets. ``enabled: false`` drops the
    alarm. An override for a name without a default must be a complete
    definition.

    Args:
        defaults: Default alarms keyed by name
        overrides: Overrides keyed by name

    Returns:
        Effective alarms keyed by name, defaults first

    Raises:
        ValueError: If an unknown alarm name is not a complete definition
    """
    merged: dict[str, AlarmDefinition] = {}
    for name, default in defaults.items():
        override = overrides.get(name)
        if override is None:
            merged[name] = default
            continue
        if not override.enabled:
            continue
        patch = override.model_dump(exclude={'enabled'}, exclude_none=True)
        merged[name] = default.model_copy(update=patch)

    for name, override in overrides.items():
        if name in defaults or not override.enabled:
            continue
        try:
            merged[name] = AlarmDefinition.model_validate(override.model_dump(exclude={'enabled'}, exclude_none=True))
        except ValidationError as exc:
            missing = sorted(str(error['loc'][0]) for error in exc.errors() if error['type'] == 'missing')
            raise ValueError(f"alarm '{name}' has no default and is missing {', '.join(missing)}") from exc
    return merged


def alarm_declarations(
    prefix: str,
    config: AlarmsConfig | None,
    defaults: dict[str, AlarmDefinition],
    dimensions: dict[str, str],
    tags: dict[str, str],
) -> list[ResourceDeclaration]:
    """
    Render ``aws_cloudwatch_metric_alarm`` declarations.

    Args:
        prefix: Alarm name prefix, usually the primary resource name
        config: Alarm settings from the module input; nothing is rendered when unset or disabled
        defaults: Module default alarms
        dimensions: Metric dimensions shared by all alarms
        tags: Tags for the alarms

    Returns:
        Alarm declarations in merge order
    """
    if config is None or not config.enabled:
        return []
    declarations = []
    for name, alarm in merge_alarms(defaults, config.overrides).items():
        declarations.append(ResourceDeclaration(
            type='aws_cloudwatch_metric_alarm',
            name=local_name(name),
            arguments={
                'alarm_name': f'{prefix}-{name}',
                'alarm_description': alarm.description or f'{alarm.metric_name} alarm for {prefix}',
                'namespace': alarm.namespace,
                'metric_name': alarm.metric_name,
                'statistic': alarm.statistic,
                'comparison_operator': alarm.comparison_operator,
                'threshold': alarm.threshold,
                'evaluation_periods': alarm.evaluation_periods,
                'period': alarm.period,
                'treat_missing_data': alarm.treat_missing_data,
                'dimensions': dict(dimensions),
                'alarm_actions': list(config.alarm_actions),
                'ok_actions': list(config.ok_actions),
                'tags': tags,
            },
        ))
    return declarations
