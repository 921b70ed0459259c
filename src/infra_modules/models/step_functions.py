"""
Input model for the step_functions_state_machine module.

The definition is analysed statically: state types, transitions, terminal
states and reachability are checked for the top-level machine and for every
Parallel branch and Map processor.
"""

import json
import re
from typing import Annotated, Any, Iterator, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.alarms import AlarmsConfig, check_alarm_overrides
from infra_modules.models.arns import check_arn
from infra_modules.models.common import ModuleConfig

STATE_TYPES = ('Task', 'Pass', 'Wait', 'Choice', 'Parallel', 'Map', 'Succeed', 'Fail')

# States that continue with Next or finish with End
FLOW_STATE_TYPES = ('Task', 'Pass', 'Wait', 'Parallel', 'Map')

DEFAULT_ALARM_NAMES = ('ExecutionsFailed', 'ExecutionsTimedOut')

WAIT_FOR_COMPLETION_PATTERN = re.compile(r'\.(sync(:2)?|waitForTaskToken)$')


def state_containers(definition: dict[str, Any]) -> Iterator[tuple[str, dict[str, Any]]]:
    """
    Yield every state container in a definition with a path for messages.

    The top-level machine comes first, followed by Parallel branches and Map
    processors in document order.
    """
    pending = [('', definition)]
    while pending:
        path, container = pending.pop(0)
        yield path, container
        states = container.get('States')
        if not isinstance(states, dict):
            continue
        for name, state in states.items():
            if not isinstance(state, dict):
                continue
            if state.get('Type') == 'Parallel':
                for index, branch in enumerate(state.get('Branches') or []):
                    if isinstance(branch, dict):
                        pending.append((f'{path}{name}.Branches[{index}].', branch))
            elif state.get('Type') == 'Map':
                processor = state.get('ItemProcessor') or state.get('Iterator')
                if isinstance(processor, dict):
                    pending.append((f'{path}{name}.ItemProcessor.', processor))


def task_states(definition: dict[str, Any]) -> Iterator[dict[str, Any]]:
    """Yield every Task state, including those nested in branches and processors."""
    for _, container in state_containers(definition):
        for state in container['States'].values():
            if isinstance(state, dict) and state.get('Type') == 'Task':
                yield state


def _transitions(state: dict[str, Any]) -> list[str]:
    targets = []
    if 'Next' in state:
        targets.append(state['Next'])
    if 'Default' in state:
        targets.append(state['Default'])
    for rule in state.get('Choices') or []:
        if isinstance(rule, dict) and 'Next' in rule:
            targets.append(rule['Next'])
    for catcher in state.get('Catch') or []:
        if isinstance(catcher, dict) and 'Next' in catcher:
            targets.append(catcher['Next'])
    return targets


def check_states(path: str, container: dict[str, Any]) -> None:
    """
    Validate one state container.

    Raises:
        ValueError: On the first structural problem found
    """
    states = container.get('States')
    if not isinstance(states, dict) or not states:
        raise ValueError(f'{path}States must be a non-empty object')
    start_at = container.get('StartAt')
    if not isinstance(start_at, str):
        raise ValueError(f'{path}StartAt must be a state name')
    if start_at not in states:
        raise ValueError(f"{path}StartAt '{start_at}' does not name a state")

    for name, state in states.items():
        label = f"state '{path}{name}'"
        if not isinstance(state, dict):
            raise ValueError(f'{label} must be an object')
        state_type = state.get('Type')
        if state_type not in STATE_TYPES:
            raise ValueError(f"{label} has unknown type '{state_type}'")
        if state_type in FLOW_STATE_TYPES:
            has_next = 'Next' in state
            has_end = state.get('End') is True
            if has_next == has_end:
                raise ValueError(f'{label} must have exactly one of Next or End')
        elif state_type == 'Choice':
            choices = state.get('Choices')
            if not isinstance(choices, list) or not choices:
                raise ValueError(f'{label} must have a non-empty Choices list')
            for rule in choices:
                if not isinstance(rule, dict) or 'Next' not in rule:
                    raise ValueError(f'{label} has a choice rule without Next')
            if 'Next' in state or 'End' in state:
                raise ValueError(f'{label} must not set Next or End')
        elif 'Next' in state or 'End' in state:
            raise ValueError(f'{label} is terminal and must not set Next or End')
        if state_type == 'Parallel' and not state.get('Branches'):
            raise ValueError(f'{label} must have at least one branch')
        if state_type == 'Map' and not isinstance(state.get('ItemProcessor') or state.get('Iterator'), dict):
            raise ValueError(f'{label} must define an ItemProcessor')
        if state_type == 'Task' and not isinstance(state.get('Resource'), str):
            raise ValueError(f'{label} must name a Resource')
        for target in _transitions(state):
            if not isinstance(target, str):
                raise ValueError(f'{label} has a transition that is not a state name')
            if target not in states:
                raise ValueError(f"{label} transitions to unknown state '{target}'")

    reachable = {start_at}
    frontier = [start_at]
    while frontier:
        for target in _transitions(states[frontier.pop()]):
            if target not in reachable:
                reachable.add(target)
                frontier.append(target)
    unreachable = [name for name in states if name not in reachable]
    if unreachable:
        raise ValueError(f"{path}states are unreachable from StartAt: {', '.join(unreachable)}")


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    level: Literal['ALL', 'ERROR', 'FATAL', 'OFF'] = 'OFF'

    include_execution_data: bool = False

    log_group_arn: Annotated[str | None, Field(
        default=None,
        description='Existing log group; one is created when logging is on and this is unset'
    )] = None

    retention_in_days: Annotated[int, Field(default=30, ge=1)] = 30

    @field_validator('log_group_arn')
    @classmethod
    def validate_log_group_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'logs') if v is not None else v


class StepFunctionsStateMachineConfig(ModuleConfig):
    """Input schema for the step_functions_state_machine module."""

    name: Annotated[str, Field(min_length=1, max_length=80, pattern=r'^[a-zA-Z0-9_-]+$')]

    type: Literal['STANDARD', 'EXPRESS'] = 'STANDARD'

    definition: Annotated[dict[str, Any], Field(
        description='Amazon States Language definition, as an object or a JSON string'
    )]

    role_arn: Annotated[str | None, Field(
        default=None,
        description='Existing execution role; a role is created when unset'
    )] = None

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    tracing_enabled: bool = False

    alarms: AlarmsConfig | None = None

    @field_validator('definition', mode='before')
    @classmethod
    def parse_definition(cls, v: Any) -> Any:
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError as exc:
                raise ValueError(f'definition is not valid JSON: {exc.msg}') from exc
        return v

    @field_validator('definition')
    @classmethod
    def validate_definition(cls, v: dict[str, Any]) -> dict[str, Any]:
        for path, container in state_containers(v):
            check_states(path, container)
        return v

    @field_validator('role_arn')
    @classmethod
    def validate_role_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'iam') if v is not None else v

    @model_validator(mode='after')
    def check_express(self) -> 'StepFunctionsStateMachineConfig':
        """Express workflows cannot wait for job completion or task tokens."""
        if self.type == 'EXPRESS':
            for state in task_states(self.definition):
                if WAIT_FOR_COMPLETION_PATTERN.search(state['Resource']):
                    raise ValueError(f"EXPRESS state machines cannot use the {state['Resource']} integration pattern")
        return self

    @model_validator(mode='after')
    def check_alarms(self) -> 'StepFunctionsStateMachineConfig':
        check_alarm_overrides(self.alarms, DEFAULT_ALARM_NAMES)
        return self

    @property
    def logging_enabled(self) -> bool:
        return self.logging.level != 'OFF'
