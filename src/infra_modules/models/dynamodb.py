"""
Input model for the DynamoDB table module.

The model enforces the key, index and capacity consistency rules DynamoDB
applies at table creation, so invalid tables are rejected before apply.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.alarms import AlarmsConfig, check_alarm_overrides
from infra_modules.models.arns import check_arn
from infra_modules.models.common import ModuleConfig, find_duplicates

BillingMode = Literal['PROVISIONED', 'PAY_PER_REQUEST']
ProjectionType = Literal['ALL', 'KEYS_ONLY', 'INCLUDE']
StreamViewType = Literal['KEYS_ONLY', 'NEW_IMAGE', 'OLD_IMAGE', 'NEW_AND_OLD_IMAGES']

MAX_GLOBAL_SECONDARY_INDEXES = 20
MAX_LOCAL_SECONDARY_INDEXES = 5
MAX_PROJECTED_ATTRIBUTES = 100

DEFAULT_ALARM_NAMES = ('ReadThrottleEvents', 'WriteThrottleEvents', 'SystemErrors')


class TableAttribute(BaseModel):
    """Attribute definition used by a table or index key."""

    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, max_length=255)]

    type: Literal['S', 'N', 'B']


class GlobalSecondaryIndex(BaseModel):
    """Global secondary index definition."""

    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=3, max_length=255, pattern=r'^[a-zA-Z0-9_.-]+$')]

    hash_key: str

    range_key: str | None = None

    projection_type: ProjectionType = 'ALL'

    non_key_attributes: list[str] = Field(default_factory=list)

    read_capacity: Annotated[int | None, Field(default=None, ge=1)] = None

    write_capacity: Annotated[int | None, Field(default=None, ge=1)] = None


class LocalSecondaryIndex(BaseModel):
    """Local secondary index definition; shares the table hash key."""

    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=3, max_length=255, pattern=r'^[a-zA-Z0-9_.-]+$')]

    range_key: str

    projection_type: ProjectionType = 'ALL'

    non_key_attributes: list[str] = Field(default_factory=list)


class ServerSideEncryption(BaseModel):
    """Server-side encryption settings."""

    model_config = ConfigDict(extra='forbid')

    enabled: bool = True

    kms_key_arn: str | None = None

    @field_validator('kms_key_arn')
    @classmethod
    def validate_kms_key_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'kms') if v is not None else v

    @model_validator(mode='after')
    def check_key_requires_encryption(self) -> 'ServerSideEncryption':
        if self.kms_key_arn is not None and not self.enabled:
            raise ValueError('kms_key_arn requires server-side encryption to be enabled')
        return self


class DynamoDbTableConfig(ModuleConfig):
    """Input schema for the dynamodb_table module."""

    name: Annotated[str, Field(
        min_length=3,
        max_length=255,
        pattern=r'^[a-zA-Z0-9_.-]+$',
        description='Table name',
        examples=['orders']
    )]

    hash_key: Annotated[str, Field(min_length=1, description='Partition key attribute name')]

    range_key: Annotated[str | None, Field(default=None, description='Sort key attribute name')] = None

    attributes: Annotated[list[TableAttribute], Field(
        min_length=1,
        description='Attribute definitions for every key attribute of the table and its indexes'
    )]

    billing_mode: BillingMode = 'PAY_PER_REQUEST'

    read_capacity: Annotated[int | None, Field(default=None, ge=1)] = None

    write_capacity: Annotated[int | None, Field(default=None, ge=1)] = None

    global_secondary_indexes: list[GlobalSecondaryIndex] = Field(default_factory=list)

    local_secondary_indexes: list[LocalSecondaryIndex] = Field(default_factory=list)

    stream_enabled: bool = False

    stream_view_type: StreamViewType | None = None

    ttl_attribute: Annotated[str | None, Field(
        default=None,
        description='Attribute holding the expiry epoch; enables TTL when set'
    )] = None

    point_in_time_recovery: bool = True

    server_side_encryption: ServerSideEncryption = Field(default_factory=ServerSideEncryption)

    deletion_protection: bool = False

    table_class: Literal['STANDARD', 'STANDARD_INFREQUENT_ACCESS'] = 'STANDARD'

    alarms: AlarmsConfig | None = None

    @model_validator(mode='after')
    def check_capacity(self) -> 'DynamoDbTableConfig':
        """Capacity must be set for provisioned tables and unset for on-demand tables."""
        if self.billing_mode == 'PROVISIONED':
            if self.read_capacity is None or self.write_capacity is None:
                raise ValueError('read_capacity and write_capacity are required when billing_mode is PROVISIONED')
            for index in self.global_secondary_indexes:
                if index.read_capacity is None or index.write_capacity is None:
                    raise ValueError(
                        f"global secondary index '{index.name}' requires read_capacity and write_capacity "
                        'when billing_mode is PROVISIONED'
                    )
        else:
            if self.read_capacity is not None or self.write_capacity is not None:
                raise ValueError('read_capacity and write_capacity must not be set when billing_mode is PAY_PER_REQUEST')
            for index in self.global_secondary_indexes:
                if index.read_capacity is not None or index.write_capacity is not None:
                    raise ValueError(
                        f"global secondary index '{index.name}' must not set capacity when billing_mode is PAY_PER_REQUEST"
                    )
        return self

    @model_validator(mode='after')
    def check_stream(self) -> 'DynamoDbTableConfig':
        """stream_view_type is required exactly when streaming is enabled."""
        if self.stream_enabled and self.stream_view_type is None:
            raise ValueError('stream_view_type is required when stream_enabled is true')
        if not self.stream_enabled and self.stream_view_type is not None:
            raise ValueError('stream_view_type must not be set when stream_enabled is false')
        return self

    @model_validator(mode='after')
    def check_keys(self) -> 'DynamoDbTableConfig':
        """Every key attribute is declared and every declared attribute is a key."""
        declared = [attribute.name for attribute in self.attributes]
        duplicates = find_duplicates(declared)
        if duplicates:
            raise ValueError(f"duplicate attribute definitions: {', '.join(duplicates)}")

        if self.range_key is not None and self.range_key == self.hash_key:
            raise ValueError('range_key must differ from hash_key')

        used = {self.hash_key}
        if self.range_key:
            used.add(self.range_key)
        for index in self.global_secondary_indexes:
            used.add(index.hash_key)
            if index.range_key:
                used.add(index.range_key)
        for local_index in self.local_secondary_indexes:
            used.add(local_index.range_key)

        undeclared = sorted(used - set(declared))
        if undeclared:
            raise ValueError(f"key attributes missing from attributes: {', '.join(undeclared)}")
        unused = [name for name in declared if name not in used]
        if unused:
            raise ValueError(f"attributes not used by any key or index: {', '.join(unused)}")
        return self

    @model_validator(mode='after')
    def check_indexes(self) -> 'DynamoDbTableConfig':
        """Index limits, naming and projection rules."""
        if len(self.global_secondary_indexes) > MAX_GLOBAL_SECONDARY_INDEXES:
            raise ValueError(f'at most {MAX_GLOBAL_SECONDARY_INDEXES} global secondary indexes are allowed')
        if len(self.local_secondary_indexes) > MAX_LOCAL_SECONDARY_INDEXES:
            raise ValueError(f'at most {MAX_LOCAL_SECONDARY_INDEXES} local secondary indexes are allowed')

        names = [index.name for index in self.global_secondary_indexes]
        names += [index.name for index in self.local_secondary_indexes]
        duplicates = find_duplicates(names)
        if duplicates:
            raise ValueError(f"duplicate index names: {', '.join(duplicates)}")

        if self.local_secondary_indexes and self.range_key is None:
            raise ValueError('local secondary indexes require the table to have a range_key')
        for local_index in self.local_secondary_indexes:
            if local_index.range_key == self.range_key:
                raise ValueError(f"local secondary index '{local_index.name}' must use a range_key other than the table's")

        projected = 0
        for index in [*self.global_secondary_indexes, *self.local_secondary_indexes]:
            if index.projection_type == 'INCLUDE' and not index.non_key_attributes:
                raise ValueError(f"index '{index.name}' uses INCLUDE projection and requires non_key_attributes")
            if index.projection_type != 'INCLUDE' and index.non_key_attributes:
                raise ValueError(f"index '{index.name}' may only set non_key_attributes with INCLUDE projection")
            projected += len(index.non_key_attributes)
        if projected > MAX_PROJECTED_ATTRIBUTES:
            raise ValueError(f'at most {MAX_PROJECTED_ATTRIBUTES} non-key attributes may be projected across all indexes')
        return self

    @model_validator(mode='after')
    def check_alarms(self) -> 'DynamoDbTableConfig':
        check_alarm_overrides(self.alarms, DEFAULT_ALARM_NAMES)
        return self
