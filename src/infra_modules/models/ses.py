"""
Input model for the ses_domain_identity module.
"""

import re
from typing import Annotated, Literal

from pydantic import Field, field_validator

from infra_modules.models.common import ModuleConfig, find_duplicates
from infra_modules.models.route53 import DOMAIN_PATTERN, normalize_domain
from infra_modules.models.sns import EMAIL_PATTERN

LABEL_PATTERN = re.compile(r'^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$')


class SesDomainIdentityConfig(ModuleConfig):
    """Input schema for the ses_domain_identity module."""

    domain: Annotated[str, Field(min_length=1, max_length=253, examples=['example.com'])]

    dkim_enabled: bool = True

    mail_from_subdomain: Annotated[str | None, Field(
        default=None,
        description='Label of the custom MAIL FROM domain, e.g. "mail" for mail.example.com'
    )] = None

    mail_from_behavior_on_mx_failure: Literal['UseDefaultValue', 'RejectMessage'] = 'UseDefaultValue'

    route53_zone_id: Annotated[str | None, Field(
        default=None,
        pattern=r'^(Z[A-Z0-9]{1,31}|\$\{[^{}]+\})$',
        description='Zone in which verification records are created; records are only reported when unset'
    )] = None

    email_identities: list[str] = Field(default_factory=list)

    configuration_set: Annotated[str | None, Field(default=None, pattern=r'^[a-zA-Z0-9_-]{1,64}$')] = None

    record_ttl: Annotated[int, Field(default=600, ge=60)] = 600

    @field_validator('domain')
    @classmethod
    def validate_domain(cls, v: str) -> str:
        v = normalize_domain(v)
        if v.startswith('*.') or not DOMAIN_PATTERN.match(v) or '.' not in v:
            raise ValueError(f"'{v}' is not a valid domain")
        return v

    @field_validator('mail_from_subdomain')
    @classmethod
    def validate_mail_from_subdomain(cls, v: str | None) -> str | None:
        if v is not None and not LABEL_PATTERN.match(v):
            raise ValueError(f"mail_from_subdomain '{v}' must be a single DNS label")
        return v

    @field_validator('email_identities')
    @classmethod
    def validate_email_identities(cls, v: list[str]) -> list[str]:
        for email in v:
            if not EMAIL_PATTERN.match(email):
                raise ValueError(f"'{email}' is not an email address")
        duplicates = find_duplicates([email.lower() for email in v])
        if duplicates:
            raise ValueError(f"duplicate email identities: {', '.join(duplicates)}")
        return v

    @property
    def mail_from_domain(self) -> str | None:
        return f'{self.mail_from_subdomain}.{self.domain}' if self.mail_from_subdomain else None
