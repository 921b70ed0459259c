"""
Input model for the kms_key module.
"""

import re
from typing import Annotated, Literal

from pydantic import Field, field_validator, model_validator

from infra_modules.models.arns import check_arn
from infra_modules.models.common import ModuleConfig, find_duplicates

KeyUsage = Literal['ENCRYPT_DECRYPT', 'SIGN_VERIFY', 'GENERATE_VERIFY_MAC', 'KEY_AGREEMENT']

KeySpec = Literal[
    'SYMMETRIC_DEFAULT',
    'RSA_2048', 'RSA_3072', 'RSA_4096',
    'ECC_NIST_P256', 'ECC_NIST_P384', 'ECC_NIST_P521', 'ECC_SECG_P256K1',
    'HMAC_224', 'HMAC_256', 'HMAC_384', 'HMAC_512',
    'SM2',
]

ALIAS_PATTERN = re.compile(r'^alias/[a-zA-Z0-9/_-]+$')


def allowed_usages(key_spec: str) -> tuple[str, ...]:
    """Key usages a key spec supports."""
    if key_spec == 'SYMMETRIC_DEFAULT':
        return ('ENCRYPT_DECRYPT',)
    if key_spec.startswith('RSA_'):
        return ('ENCRYPT_DECRYPT', 'SIGN_VERIFY')
    if key_spec.startswith('ECC_NIST_'):
        return ('SIGN_VERIFY', 'KEY_AGREEMENT')
    if key_spec == 'ECC_SECG_P256K1':
        return ('SIGN_VERIFY',)
    if key_spec.startswith('HMAC_'):
        return ('GENERATE_VERIFY_MAC',)
    return ('ENCRYPT_DECRYPT', 'SIGN_VERIFY', 'KEY_AGREEMENT')


class KmsKeyConfig(ModuleConfig):
    """Input schema for the kms_key module."""

    description: Annotated[str, Field(default='', max_length=8192)] = ''

    key_usage: KeyUsage = 'ENCRYPT_DECRYPT'

    customer_master_key_spec: KeySpec = 'SYMMETRIC_DEFAULT'

    enable_key_rotation: Annotated[bool | None, Field(
        default=None,
        description='Defaults to true for symmetric encryption keys'
    )] = None

    rotation_period_in_days: Annotated[int | None, Field(default=None, ge=90, le=2560)] = None

    deletion_window_in_days: Annotated[int, Field(default=30, ge=7, le=30)] = 30

    multi_region: bool = False

    aliases: list[str] = Field(default_factory=list)

    key_administrators: list[str] = Field(default_factory=list)

    key_users: list[str] = Field(default_factory=list)

    key_service_principals: list[Annotated[str, Field(pattern=r'^[a-z0-9.-]+\.amazonaws\.com(\.cn)?$')]] = Field(
        default_factory=list,
        examples=[['logs.amazonaws.com']]
    )

    @field_validator('aliases')
    @classmethod
    def validate_aliases(cls, v: list[str]) -> list[str]:
        for alias in v:
            if not ALIAS_PATTERN.match(alias):
                raise ValueError(f"alias '{alias}' must match alias/<name>")
            if alias.startswith('alias/aws/'):
                raise ValueError(f"alias '{alias}' uses the reserved alias/aws/ prefix")
        duplicates = find_duplicates(v)
        if duplicates:
            raise ValueError(f"duplicate aliases: {', '.join(duplicates)}")
        return v

    @field_validator('key_administrators', 'key_users')
    @classmethod
    def validate_principals(cls, v: list[str]) -> list[str]:
        return [check_arn(principal, 'iam') for principal in v]

    @model_validator(mode='after')
    def check_key_spec(self) -> 'KmsKeyConfig':
        """Usage must suit the key spec, and only symmetric encryption keys rotate."""
        usages = allowed_usages(self.customer_master_key_spec)
        if self.key_usage not in usages:
            raise ValueError(
                f'{self.customer_master_key_spec} keys support {", ".join(usages)}, not {self.key_usage}'
            )
        if self.enable_key_rotation and self.customer_master_key_spec != 'SYMMETRIC_DEFAULT':
            raise ValueError('key rotation is only supported for SYMMETRIC_DEFAULT keys')
        if self.rotation_period_in_days is not None and not self.rotation_enabled:
            raise ValueError('rotation_period_in_days requires key rotation')
        return self

    @property
    def rotation_enabled(self) -> bool:
        if self.enable_key_rotation is None:
            return self.customer_master_key_spec == 'SYMMETRIC_DEFAULT'
        return self.enable_key_rotation
