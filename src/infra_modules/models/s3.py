"""
Input model for the S3 bucket module.
"""

import ipaddress
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import check_arn
from infra_modules.models.common import ModuleConfig, find_duplicates

StorageClass = Literal[
    'STANDARD_IA', 'ONEZONE_IA', 'INTELLIGENT_TIERING', 'GLACIER', 'GLACIER_IR', 'DEEP_ARCHIVE',
]

# Storage classes with a 30 day minimum before transition
INFREQUENT_ACCESS_CLASSES = ('STANDARD_IA', 'ONEZONE_IA')


class Encryption(BaseModel):
    """Default bucket encryption."""

    model_config = ConfigDict(extra='forbid')

    sse_algorithm: Literal['AES256', 'aws:kms', 'aws:kms:dsse'] = 'AES256'

    kms_key_arn: str | None = None

    bucket_key_enabled: bool = True

    @field_validator('kms_key_arn')
    @classmethod
    def validate_kms_key_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'kms') if v is not None else v

    @model_validator(mode='after')
    def check_key_algorithm(self) -> 'Encryption':
        if self.kms_key_arn is not None and self.sse_algorithm == 'AES256':
            raise ValueError('kms_key_arn requires sse_algorithm aws:kms or aws:kms:dsse')
        return self


class BlockPublicAccess(BaseModel):
    """Public access block settings; everything blocked by default."""

    model_config = ConfigDict(extra='forbid')

    block_public_acls: bool = True

    block_public_policy: bool = True

    ignore_public_acls: bool = True

    restrict_public_buckets: bool = True


class Transition(BaseModel):
    model_config = ConfigDict(extra='forbid')

    days: Annotated[int, Field(ge=0)]

    storage_class: StorageClass


class LifecycleRule(BaseModel):
    """Lifecycle rule with transitions and expirations."""

    model_config = ConfigDict(extra='forbid')

    id: Annotated[str, Field(min_length=1, max_length=255)]

    enabled: bool = True

    prefix: str = ''

    transitions: list[Transition] = Field(default_factory=list)

    expiration_days: Annotated[int | None, Field(default=None, ge=1)] = None

    noncurrent_version_expiration_days: Annotated[int | None, Field(default=None, ge=1)] = None

    abort_incomplete_multipart_upload_days: Annotated[int | None, Field(default=None, ge=1)] = None

    @model_validator(mode='after')
    def check_transitions(self) -> 'LifecycleRule':
        """Transition days strictly increase and expiration comes last."""
        if not (self.transitions or self.expiration_days or self.noncurrent_version_expiration_days
                or self.abort_incomplete_multipart_upload_days):
            raise ValueError(f"lifecycle rule '{self.id}' has no action")
        previous = -1
        for transition in self.transitions:
            if transition.days <= previous:
                raise ValueError(f"lifecycle rule '{self.id}' transitions must have strictly increasing days")
            if transition.storage_class in INFREQUENT_ACCESS_CLASSES and transition.days < 30:
                raise ValueError(
                    f"lifecycle rule '{self.id}' cannot transition to {transition.storage_class} before 30 days"
                )
            previous = transition.days
        if self.expiration_days is not None and self.transitions and self.expiration_days <= previous:
            raise ValueError(f"lifecycle rule '{self.id}' expiration must come after the last transition")
        return self


class Website(BaseModel):
    model_config = ConfigDict(extra='forbid')

    index_document: Annotated[str, Field(min_length=1)] = 'index.html'

    error_document: str | None = None


class CorsRule(BaseModel):
    model_config = ConfigDict(extra='forbid')

    allowed_methods: Annotated[list[Literal['GET', 'PUT', 'POST', 'DELETE', 'HEAD']], Field(min_length=1)]

    allowed_origins: Annotated[list[str], Field(min_length=1)]

    allowed_headers: list[str] = Field(default_factory=list)

    expose_headers: list[str] = Field(default_factory=list)

    max_age_seconds: Annotated[int | None, Field(default=None, ge=0)] = None


class S3BucketConfig(ModuleConfig):
    """Input schema for the s3_bucket module."""

    bucket: Annotated[str, Field(
        min_length=3,
        max_length=63,
        pattern=r'^[a-z0-9][a-z0-9.-]*[a-z0-9]$',
        examples=['my-artifacts-bucket']
    )]

    force_destroy: bool = False

    versioning_enabled: bool = True

    encryption: Encryption = Field(default_factory=Encryption)

    block_public_access: BlockPublicAccess = Field(default_factory=BlockPublicAccess)

    object_ownership: Literal['BucketOwnerEnforced', 'BucketOwnerPreferred', 'ObjectWriter'] = 'BucketOwnerEnforced'

    lifecycle_rules: list[LifecycleRule] = Field(default_factory=list)

    website: Website | None = None

    cors_rules: list[CorsRule] = Field(default_factory=list)

    enforce_tls: bool = True

    policy_statements: Annotated[list[dict[str, Any]], Field(
        default_factory=list,
        description='Additional bucket policy statements, e.g. a CloudFront origin access grant'
    )]

    @field_validator('bucket')
    @classmethod
    def validate_bucket_name(cls, v: str) -> str:
        """Apply the S3 naming rules the pattern cannot express."""
        if '..' in v or '.-' in v or '-.' in v:
            raise ValueError('bucket name must not contain adjacent periods or period-hyphen pairs')
        try:
            ipaddress.IPv4Address(v)
        except ValueError:
            pass
        else:
            raise ValueError('bucket name must not be formatted as an IP address')
        if v.startswith('xn--') or v.startswith('sthree-'):
            raise ValueError('bucket name must not start with a reserved prefix')
        if v.endswith('-s3alias') or v.endswith('--ol-s3'):
            raise ValueError('bucket name must not end with a reserved suffix')
        return v

    @field_validator('policy_statements')
    @classmethod
    def validate_policy_statements(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for statement in v:
            missing = [key for key in ('Effect', 'Action') if key not in statement]
            if missing:
                raise ValueError(f"policy statement is missing {', '.join(missing)}")
        return v

    @model_validator(mode='after')
    def check_lifecycle_ids(self) -> 'S3BucketConfig':
        duplicates = find_duplicates([rule.id for rule in self.lifecycle_rules])
        if duplicates:
            raise ValueError(f"duplicate lifecycle rule ids: {', '.join(duplicates)}")
        return self

    @model_validator(mode='after')
    def check_website_access(self) -> 'S3BucketConfig':
        if self.website is not None and self.block_public_access.block_public_policy:
            raise ValueError('website hosting requires block_public_access.block_public_policy to be false')
        return self
