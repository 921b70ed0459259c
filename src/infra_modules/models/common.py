"""
Shared models for module inputs and rendered declarations.

Every module accepts a ``ModuleConfig`` subclass and renders to a
``RenderedModule``: an ordered list of resource declarations plus a map of
outputs. Outputs are either literal values derived at render time or
reference tokens pointing at attributes only the executor can resolve.
"""

import re
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

RESOURCE_NAME_PATTERN = r'^[a-zA-Z_][a-zA-Z0-9_-]*$'

MAX_TAGS = 50


class AwsContext(BaseModel):
    """Account, region and partition that rendered declarations target."""

    model_config = ConfigDict(frozen=True)

    region: Annotated[str, Field(
        default='us-east-1',
        pattern=r'^[a-z]{2}(-gov)?-[a-z]+-\d$',
        description='AWS region',
        examples=['us-east-1', 'eu-west-1']
    )] = 'us-east-1'

    account_id: Annotated[str, Field(
        pattern=r'^\d{12}$',
        description='AWS account id',
        examples=['123456789012']
    )]

    partition: Annotated[str, Field(
        default='aws',
        pattern=r'^(aws|aws-cn|aws-us-gov)$',
        description='AWS partition'
    )] = 'aws'

    default_tags: Annotated[dict[str, str], Field(
        default_factory=dict,
        description='Tags applied to every taggable resource'
    )]

    @property
    def dns_suffix(self) -> str:
        """DNS suffix for service endpoints in this partition."""
        return 'amazonaws.com.cn' if self.partition == 'aws-cn' else 'amazonaws.com'


class ResourceDeclaration(BaseModel):
    """A single declared cloud resource."""

    type: Annotated[str, Field(
        pattern=r'^aws_[a-z0-9_]+$',
        description='Provider resource type',
        examples=['aws_dynamodb_table']
    )]

    name: Annotated[str, Field(
        pattern=RESOURCE_NAME_PATTERN,
        description='Local name of the resource within its module',
        examples=['this']
    )]

    arguments: Annotated[dict[str, Any], Field(
        default_factory=dict,
        description='Resource arguments'
    )]

    depends_on: Annotated[list[str], Field(
        default_factory=list,
        description='Addresses of resources that must exist first'
    )]

    @property
    def address(self) -> str:
        return f'{self.type}.{self.name}'

    def ref(self, attribute: str) -> str:
        """Reference token for an attribute of this resource."""
        return '${' + f'{self.address}.{attribute}' + '}'


class RenderedModule(BaseModel):
    """Resource declarations and outputs produced by one module."""

    module: Annotated[str, Field(description='Module type')]

    name: Annotated[str, Field(description='Module instance name')]

    resources: Annotated[list[ResourceDeclaration], Field(default_factory=list)]

    outputs: Annotated[dict[str, Any], Field(default_factory=dict)]

    def resource(self, type_: str, name: str = 'this') -> ResourceDeclaration:
        """
        Look up a declared resource.

        Raises:
            KeyError: If no resource with that type and name was declared
        """
        for declaration in self.resources:
            if declaration.type == type_ and declaration.name == name:
                return declaration
        raise KeyError(f'{type_}.{name}')

    def resources_of_type(self, type_: str) -> list[ResourceDeclaration]:
        return [declaration for declaration in self.resources if declaration.type == type_]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode='json')


class ModuleConfig(BaseModel):
    """Base model for module inputs."""

    model_config = ConfigDict(extra='forbid')

    tags: Annotated[dict[str, str], Field(
        default_factory=dict,
        description='Tags applied to taggable resources of this module'
    )]

    @field_validator('tags')
    @classmethod
    def validate_tags(cls, v: dict[str, str]) -> dict[str, str]:
        """Validate tag count, key and value lengths."""
        if len(v) > MAX_TAGS:
            raise ValueError(f'at most {MAX_TAGS} tags are allowed, got {len(v)}')
        for key, value in v.items():
            if not 1 <= len(key) <= 128:
                raise ValueError(f"tag key '{key}' must be 1-128 characters")
            if key.lower().startswith('aws:'):
                raise ValueError(f"tag key '{key}' uses the reserved 'aws:' prefix")
            if len(value) > 256:
                raise ValueError(f"tag '{key}' value exceeds 256 characters")
        return v

    def merged_tags(self, context: AwsContext) -> dict[str, str]:
        """Context default tags overridden by this module's tags."""
        return {**context.default_tags, **self.tags}


def compact(value: Any) -> Any:
    """Drop None entries from nested dictionaries and lists."""
    if isinstance(value, dict):
        return {key: compact(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [compact(item) for item in value if item is not None]
    return value


def find_duplicates(values: list[str]) -> list[str]:
    """Return values that occur more than once, in first-seen order."""
    seen: set[str] = set()
    duplicates: list[str] = []
    for value in values:
        if value in seen and value not in duplicates:
            duplicates.append(value)
        seen.add(value)
    return duplicates


def local_name(value: str) -> str:
    """Turn an arbitrary identifier into a valid resource local name."""
    name = re.sub(r'[^a-zA-Z0-9_-]', '_', value).strip('_-') or 'this'
    if not re.match(r'^[a-zA-Z_]', name):
        name = f'_{name}'
    return name


def unique_local_name(value: str, taken: set[str]) -> str:
    """
    ``local_name(value)``, suffixed with ``_1``, ``_2``... while already in ``taken``.

    The returned name is added to ``taken``, so identifiers that normalize to
    the same local name (``site.assets`` and ``site_assets``) still get
    distinct resource addresses.
    """
    base = local_name(value)
    name = base
    index = 1
    while name in taken:
        name = f'{base}_{index}'
        index += 1
    taken.add(name)
    return name
