"""
Input model for the eventbridge_rule module.
"""

import json
import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import check_arn, is_reference, parse_arn
from infra_modules.models.common import ModuleConfig, find_duplicates

NAME_PATTERN = r'^[\.\-_A-Za-z0-9]{1,64}$'

MAX_TARGETS = 5

RATE_PATTERN = re.compile(r'^rate\((\d+) (minute|minutes|hour|hours|day|days)\)$')
CRON_PATTERN = re.compile(r'^cron\((.+)\)$')

# Target services EventBridge can only reach through an IAM role
ROLE_REQUIRED_SERVICES = ('states', 'kinesis', 'firehose', 'events', 'codebuild', 'codepipeline')

TargetService = Literal['lambda', 'sqs', 'sns', 'logs', 'states', 'kinesis', 'firehose', 'events', 'codebuild', 'codepipeline']


def check_schedule_expression(expression: str) -> str:
    """
    Validate a rate() or cron() schedule expression.

    Raises:
        ValueError: If the expression is malformed
    """
    rate = RATE_PATTERN.match(expression)
    if rate is not None:
        value, unit = int(rate.group(1)), rate.group(2)
        if value < 1:
            raise ValueError(f"'{expression}' must use a positive rate")
        if value == 1 and unit.endswith('s'):
            raise ValueError(f"'{expression}' must use the singular unit {unit[:-1]}")
        if value > 1 and not unit.endswith('s'):
            raise ValueError(f"'{expression}' must use the plural unit {unit}s")
        return expression
    cron = CRON_PATTERN.match(expression)
    if cron is not None:
        fields = cron.group(1).split()
        if len(fields) != 6:
            raise ValueError(f"'{expression}' must have 6 fields, got {len(fields)}")
        return expression
    raise ValueError(f"'{expression}' must be a rate() or cron() expression")


def check_event_pattern(pattern: dict[str, Any], path: str = '') -> None:
    """Every leaf of an event pattern must be a list of match values."""
    for key, value in pattern.items():
        location = f'{path}.{key}' if path else key
        if isinstance(value, dict):
            if not value:
                raise ValueError(f"event_pattern field '{location}' is empty")
            check_event_pattern(value, location)
        elif not isinstance(value, list):
            raise ValueError(f"event_pattern field '{location}' must be a list of values")
        elif not value:
            raise ValueError(f"event_pattern field '{location}' must not be an empty list")


class InputTransformer(BaseModel):
    model_config = ConfigDict(extra='forbid')

    input_paths: Annotated[dict[str, str], Field(default_factory=dict, max_length=100)]

    input_template: Annotated[str, Field(min_length=1, max_length=8192)]


class RetryPolicy(BaseModel):
    model_config = ConfigDict(extra='forbid')

    maximum_retry_attempts: Annotated[int, Field(default=185, ge=0, le=185)] = 185

    maximum_event_age_in_seconds: Annotated[int, Field(default=86400, ge=60, le=86400)] = 86400


class RuleTarget(BaseModel):
    """A rule target."""

    model_config = ConfigDict(extra='forbid')

    target_id: Annotated[str, Field(pattern=NAME_PATTERN)]

    arn: Annotated[str, Field(min_length=1)]

    service: Annotated[TargetService | None, Field(
        default=None,
        description='Target service; only needed when arn is a reference'
    )] = None

    input: Annotated[str | None, Field(default=None, description='Constant JSON text passed to the target')] = None

    input_path: str | None = None

    input_transformer: InputTransformer | None = None

    role_arn: str | None = None

    dead_letter_arn: str | None = None

    retry_policy: RetryPolicy | None = None

    @field_validator('arn')
    @classmethod
    def validate_arn(cls, v: str) -> str:
        return check_arn(v)

    @field_validator('role_arn')
    @classmethod
    def validate_role_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'iam') if v is not None else v

    @field_validator('dead_letter_arn')
    @classmethod
    def validate_dead_letter_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'sqs') if v is not None else v

    @field_validator('input')
    @classmethod
    def validate_input(cls, v: str | None) -> str | None:
        if v is not None:
            try:
                json.loads(v)
            except json.JSONDecodeError as exc:
                raise ValueError(f'input is not valid JSON: {exc.msg}') from exc
        return v

    @model_validator(mode='after')
    def check_input(self) -> 'RuleTarget':
        given = [name for name in ('input', 'input_path', 'input_transformer') if getattr(self, name) is not None]
        if len(given) > 1:
            raise ValueError(f"target '{self.target_id}' sets {' and '.join(given)}; only one is allowed")
        return self

    @model_validator(mode='after')
    def check_service(self) -> 'RuleTarget':
        if self.service is not None and not is_reference(self.arn) and parse_arn(self.arn).service != self.service:
            raise ValueError(f"target '{self.target_id}' arn is not a {self.service} ARN")
        return self

    @property
    def target_service(self) -> str | None:
        if self.service is not None:
            return self.service
        if is_reference(self.arn):
            return None
        return parse_arn(self.arn).service

    @property
    def needs_role(self) -> bool:
        return self.target_service in ROLE_REQUIRED_SERVICES


class EventBridgeRuleConfig(ModuleConfig):
    """Input schema for the eventbridge_rule module."""

    name: Annotated[str, Field(pattern=NAME_PATTERN, examples=['nightly-report'])]

    description: Annotated[str | None, Field(default=None, max_length=512)] = None

    event_bus_name: Annotated[str, Field(default='default', min_length=1, max_length=1600)] = 'default'

    schedule_expression: str | None = None

    event_pattern: dict[str, Any] | None = None

    state: Literal['ENABLED', 'DISABLED', 'ENABLED_WITH_ALL_CLOUDTRAIL_MANAGEMENT_EVENTS'] = 'ENABLED'

    targets: Annotated[list[RuleTarget], Field(default_factory=list, max_length=MAX_TARGETS)]

    role_arn: Annotated[str | None, Field(
        default=None,
        description='Role used by targets that need one and do not set their own'
    )] = None

    @field_validator('schedule_expression')
    @classmethod
    def validate_schedule_expression(cls, v: str | None) -> str | None:
        return check_schedule_expression(v) if v is not None else v

    @field_validator('event_pattern', mode='before')
    @classmethod
    def parse_event_pattern(cls, v: Any) -> Any:
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError as exc:
                raise ValueError(f'event_pattern is not valid JSON: {exc.msg}') from exc
        return v

    @field_validator('event_pattern')
    @classmethod
    def validate_event_pattern(cls, v: dict[str, Any] | None) -> dict[str, Any] | None:
        if v is not None:
            if not v:
                raise ValueError('event_pattern must not be empty')
            check_event_pattern(v)
        return v

    @field_validator('role_arn')
    @classmethod
    def validate_role_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'iam') if v is not None else v

    @field_validator('targets')
    @classmethod
    def validate_targets(cls, v: list[RuleTarget]) -> list[RuleTarget]:
        duplicates = find_duplicates([target.target_id for target in v])
        if duplicates:
            raise ValueError(f"duplicate target ids: {', '.join(duplicates)}")
        return v

    @model_validator(mode='after')
    def check_trigger(self) -> 'EventBridgeRuleConfig':
        """Exactly one of schedule_expression and event_pattern; schedules only on the default bus."""
        if (self.schedule_expression is None) == (self.event_pattern is None):
            raise ValueError('exactly one of schedule_expression and event_pattern must be set')
        if self.schedule_expression is not None and self.event_bus_name != 'default':
            raise ValueError('schedule_expression rules can only run on the default event bus')
        return self

    @property
    def is_scheduled(self) -> bool:
        return self.schedule_expression is not None

    def targets_needing_role(self) -> list[RuleTarget]:
        """Role-requiring targets without a role of their own or a rule-level role."""
        if self.role_arn is not None:
            return []
        return [target for target in self.targets if target.needs_role and target.role_arn is None]
