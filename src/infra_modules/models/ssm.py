"""
Input model for the ssm_parameters module.
"""

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import is_reference
from infra_modules.models.common import ModuleConfig, find_duplicates

NAME_PATTERN = re.compile(r'^[a-zA-Z0-9_.\-/]+$')

MAX_HIERARCHY_LEVELS = 15

MAX_VALUE_BYTES = {'Standard': 4096, 'Advanced': 8192, 'Intelligent-Tiering': 8192}


class Parameter(BaseModel):
    """A single parameter."""

    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, max_length=1011, examples=['/app/prod/db/host'])]

    description: Annotated[str | None, Field(default=None, max_length=1024)] = None

    type: Literal['String', 'StringList', 'SecureString'] = 'String'

    value: str

    key_id: Annotated[str | None, Field(default=None, description='KMS key for SecureString values')] = None

    tier: Literal['Standard', 'Advanced', 'Intelligent-Tiering'] = 'Standard'

    allowed_pattern: str | None = None

    data_type: Literal['text', 'aws:ec2:image', 'aws:ssm:integration'] = 'text'

    overwrite: bool = False

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not NAME_PATTERN.match(v):
            raise ValueError(f"parameter name '{v}' may only contain letters, digits and _.-/")
        first_segment = v.lstrip('/').split('/', 1)[0].lower()
        if first_segment.startswith(('aws', 'ssm')):
            raise ValueError(f"parameter name '{v}' must not start with aws or ssm")
        if '/' in v:
            if not v.startswith('/'):
                raise ValueError(f"hierarchical parameter name '{v}' must start with '/'")
            levels = v.strip('/').split('/')
            if any(not level for level in levels):
                raise ValueError(f"parameter name '{v}' has an empty hierarchy level")
            if len(levels) > MAX_HIERARCHY_LEVELS:
                raise ValueError(f"parameter name '{v}' exceeds {MAX_HIERARCHY_LEVELS} hierarchy levels")
        return v

    @field_validator('allowed_pattern')
    @classmethod
    def validate_allowed_pattern(cls, v: str | None) -> str | None:
        if v is not None:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"allowed_pattern is not a valid regular expression: {exc}") from exc
        return v

    @model_validator(mode='after')
    def check_value(self) -> 'Parameter':
        """Value size, pattern and type rules."""
        if self.key_id is not None and self.type != 'SecureString':
            raise ValueError(f"parameter '{self.name}': key_id is only valid for SecureString parameters")
        limit = MAX_VALUE_BYTES[self.tier]
        size = len(self.value.encode('utf-8'))
        if size > limit:
            raise ValueError(f"parameter '{self.name}': value of {size} bytes exceeds the {self.tier} limit of {limit}")
        if not self.value:
            raise ValueError(f"parameter '{self.name}': value must not be empty")
        if self.allowed_pattern is not None and not is_reference(self.value):
            if re.fullmatch(self.allowed_pattern, self.value) is None:
                raise ValueError(f"parameter '{self.name}': value does not match allowed_pattern")
        if self.type == 'StringList' and any(not item.strip() for item in self.value.split(',')):
            raise ValueError(f"parameter '{self.name}': StringList items must not be empty")
        if self.data_type == 'aws:ec2:image':
            if self.type != 'String':
                raise ValueError(f"parameter '{self.name}': aws:ec2:image parameters must be String")
            if not is_reference(self.value) and not self.value.startswith('ami-'):
                raise ValueError(f"parameter '{self.name}': aws:ec2:image value must be an ami- id")
        return self


class SsmParametersConfig(ModuleConfig):
    """Input schema for the ssm_parameters module."""

    parameters: Annotated[list[Parameter], Field(min_length=1)]

    @field_validator('parameters')
    @classmethod
    def validate_parameters(cls, v: list[Parameter]) -> list[Parameter]:
        duplicates = find_duplicates([parameter.name for parameter in v])
        if duplicates:
            raise ValueError(f"duplicate parameter names: {', '.join(duplicates)}")
        return v
