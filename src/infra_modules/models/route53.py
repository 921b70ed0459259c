"""
Input models for the Route53 zone and record modules.

Zones and records are separate modules so that records can point at
resources which themselves depend on the zone (for example a certificate
validated through it) without forming a cycle.
"""

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import is_reference
from infra_modules.models.common import ModuleConfig

DOMAIN_PATTERN = re.compile(r'^(\*\.)?([a-z0-9_]([a-z0-9_-]{0,61}[a-z0-9_])?\.)*[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$')

RecordType = Literal['A', 'AAAA', 'CAA', 'CNAME', 'DS', 'MX', 'NAPTR', 'NS', 'PTR', 'SOA', 'SPF', 'SRV', 'TXT']

ALIAS_RECORD_TYPES = ('A', 'AAAA')

DEFAULT_TTL = 300


def normalize_domain(value: str) -> str:
    """Lowercase a domain and drop the trailing dot."""
    return value.rstrip('.').lower()


class ZoneVpc(BaseModel):
    model_config = ConfigDict(extra='forbid')

    vpc_id: Annotated[str, Field(pattern=r'^(vpc-[a-f0-9]{8,17}|\$\{[^{}]+\})$')]

    vpc_region: str | None = None


class Route53ZoneConfig(ModuleConfig):
    """Input schema for the route53_zone module."""

    name: Annotated[str, Field(min_length=1, max_length=253, examples=['example.com'])]

    comment: Annotated[str, Field(default='Managed by infra-module-contracts', max_length=256)] = (
        'Managed by infra-module-contracts'
    )

    vpcs: Annotated[list[ZoneVpc], Field(
        default_factory=list,
        description='Associating VPCs makes the zone private'
    )]

    delegation_set_id: str | None = None

    force_destroy: bool = False

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = normalize_domain(v)
        if not DOMAIN_PATTERN.match(v) or v.startswith('*.'):
            raise ValueError(f"'{v}' is not a valid zone name")
        return v

    @model_validator(mode='after')
    def check_delegation_set(self) -> 'Route53ZoneConfig':
        if self.vpcs and self.delegation_set_id is not None:
            raise ValueError('delegation_set_id is only valid for public zones')
        return self

    @property
    def is_private(self) -> bool:
        return bool(self.vpcs)


class AliasTarget(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1)]

    zone_id: Annotated[str, Field(min_length=1)]

    evaluate_target_health: bool = False


class RecordSet(BaseModel):
    """A record set; either plain values with a TTL or an alias."""

    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(
        description='Record name; relative names are qualified with zone_name when given',
        examples=['www', 'api.example.com']
    )]

    type: RecordType

    ttl: Annotated[int | None, Field(default=None, ge=0, le=2147483647)] = None

    values: list[str] = Field(default_factory=list)

    alias: AliasTarget | None = None

    set_identifier: Annotated[str | None, Field(default=None, min_length=1, max_length=128)] = None

    weight: Annotated[int | None, Field(default=None, ge=0, le=255)] = None

    @model_validator(mode='after')
    def check_target(self) -> 'RecordSet':
        """Records carry either an alias or values, never both."""
        if self.alias is not None:
            if self.values:
                raise ValueError(f"record '{self.name}' must not set both alias and values")
            if self.ttl is not None:
                raise ValueError(f"alias record '{self.name}' must not set ttl")
            if self.type not in ALIAS_RECORD_TYPES:
                raise ValueError(f"alias record '{self.name}' must be of type A or AAAA")
        else:
            if not self.values:
                raise ValueError(f"record '{self.name}' requires values or an alias")
            if self.ttl is None:
                self.ttl = DEFAULT_TTL
        if self.type == 'CNAME' and len(self.values) > 1:
            raise ValueError(f"CNAME record '{self.name}' must have exactly one value")
        if self.type == 'MX':
            for value in self.values:
                if not is_reference(value) and not re.fullmatch(r'\d{1,5} \S+', value):
                    raise ValueError(f"MX value '{value}' must have the form '<priority> <host>'")
        if self.weight is not None and self.set_identifier is None:
            raise ValueError(f"weighted record '{self.name}' requires set_identifier")
        if self.set_identifier is not None and self.weight is None:
            raise ValueError(f"record '{self.name}' sets set_identifier without a routing policy")
        return self


class Route53RecordsConfig(ModuleConfig):
    """Input schema for the route53_records module."""

    zone_id: Annotated[str, Field(
        pattern=r'^(Z[A-Z0-9]{1,31}|\$\{[^{}]+\})$',
        description='Hosted zone id or a reference to a route53_zone output'
    )]

    zone_name: Annotated[str | None, Field(
        default=None,
        description='Zone name used to qualify relative record names and detect apex records'
    )] = None

    records: Annotated[list[RecordSet], Field(min_length=1)]

    @field_validator('zone_name')
    @classmethod
    def validate_zone_name(cls, v: str | None) -> str | None:
        return normalize_domain(v) if v is not None else v

    def fqdn(self, record: RecordSet) -> str:
        """Fully qualified record name."""
        name = normalize_domain(record.name) if record.name not in ('', '@') else ''
        if self.zone_name is None:
            return name
        if not name:
            return self.zone_name
        if name == self.zone_name or name.endswith(f'.{self.zone_name}'):
            return name
        return f'{name}.{self.zone_name}'

    @model_validator(mode='after')
    def check_records(self) -> 'Route53RecordsConfig':
        seen = set()
        for record in self.records:
            fqdn = self.fqdn(record)
            if not fqdn:
                raise ValueError('apex records require zone_name')
            if not DOMAIN_PATTERN.match(fqdn):
                raise ValueError(f"'{fqdn}' is not a valid record name")
            key = (fqdn, record.type, record.set_identifier)
            if key in seen:
                raise ValueError(f"duplicate record {fqdn} {record.type}")
            seen.add(key)
            if record.type == 'CNAME' and self.zone_name is not None and fqdn == self.zone_name:
                raise ValueError(f"CNAME record is not allowed at the zone apex '{fqdn}'")
        return self
