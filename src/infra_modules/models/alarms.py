"""
CloudWatch alarm models shared by modules that ship default alarms.

Modules declare a set of default alarms; callers patch them with overrides,
disable individual alarms, or add complete definitions of their own.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

ComparisonOperator = Literal[
    'GreaterThanOrEqualToThreshold',
    'GreaterThanThreshold',
    'LessThanThreshold',
    'LessThanOrEqualToThreshold',
]

Statistic = Literal['SampleCount', 'Average', 'Sum', 'Minimum', 'Maximum']

MissingData = Literal['breaching', 'notBreaching', 'ignore', 'missing']


class AlarmDefinition(BaseModel):
    """A complete CloudWatch metric alarm definition."""

    model_config = ConfigDict(extra='forbid')

    metric_name: Annotated[str, Field(min_length=1, max_length=255)]

    namespace: Annotated[str, Field(min_length=1, max_length=255, examples=['AWS/Lambda'])]

    statistic: Statistic = 'Sum'

    comparison_operator: ComparisonOperator = 'GreaterThanOrEqualToThreshold'

    threshold: float

    evaluation_periods: Annotated[int, Field(default=1, ge=1)] = 1

    period: Annotated[int, Field(
        default=300,
        description='Period in seconds; 10, 30 or a multiple of 60',
        ge=10,
        le=86400
    )] = 300

    treat_missing_data: MissingData = 'notBreaching'

    description: str | None = None


class AlarmOverride(BaseModel):
    """Partial alarm definition patched over a default."""

    model_config = ConfigDict(extra='forbid')

    enabled: bool = True

    metric_name: str | None = None

    namespace: str | None = None

    statistic: Statistic | None = None

    comparison_operator: ComparisonOperator | None = None

    threshold: float | None = None

    evaluation_periods: Annotated[int | None, Field(default=None, ge=1)] = None

    period: Annotated[int | None, Field(default=None, ge=10, le=86400)] = None

    treat_missing_data: MissingData | None = None

    description: str | None = None


class AlarmsConfig(BaseModel):
    """Alarm settings accepted by modules with default alarms."""

    model_config = ConfigDict(extra='forbid')

    enabled: Annotated[bool, Field(
        default=False,
        description='Render the default alarms merged with overrides'
    )] = False

    alarm_actions: Annotated[list[str], Field(
        default_factory=list,
        description='ARNs notified when an alarm fires, usually SNS topics'
    )]

    ok_actions: Annotated[list[str], Field(default_factory=list)]

    overrides: Annotated[dict[str, AlarmOverride], Field(
        default_factory=dict,
        description='Overrides keyed by alarm name; unknown names must be complete definitions'
    )]


REQUIRED_DEFINITION_FIELDS = ('metric_name', 'namespace', 'threshold')


def check_alarm_overrides(config: AlarmsConfig | None, default_names: tuple[str, ...]) -> None:
    """
    Validate that overrides for alarms without a default are complete definitions.

    Raises:
        ValueError: If an added alarm is missing a required field
    """
    if config is None:
        return
    for name, override in config.overrides.items():
        if name in default_names or not override.enabled:
            continue
        missing = [field for field in REQUIRED_DEFINITION_FIELDS if getattr(override, field) is None]
        if missing:
            raise ValueError(f"alarm '{name}' has no default and is missing {', '.join(missing)}")
