"""
Input model for the cognito_user_pool module.
"""

import re
from typing import Annotated, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import check_arn, is_reference, parse_arn
from infra_modules.models.common import ModuleConfig, find_duplicates
from infra_modules.models.route53 import DOMAIN_PATTERN

DOMAIN_PREFIX_PATTERN = re.compile(r'^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$')

RESERVED_PREFIX_WORDS = ('aws', 'amazon', 'cognito')

STANDARD_SCOPES = ('phone', 'email', 'openid', 'profile', 'aws.cognito.signin.user.admin')

LOCAL_HOSTS = ('localhost', '127.0.0.1')

VerifiableAttribute = Literal['email', 'phone_number']

TokenUnit = Literal['seconds', 'minutes', 'hours', 'days']

UNIT_SECONDS = {'seconds': 1, 'minutes': 60, 'hours': 3600, 'days': 86400}

# Allowed token lifetimes in seconds, inclusive
TOKEN_VALIDITY_RANGES = {
    'access_token': (5 * 60, 86400),
    'id_token': (5 * 60, 86400),
    'refresh_token': (60 * 60, 3650 * 86400),
}


def check_domain_prefix(prefix: str | None) -> str:
    """
    Validate a Cognito hosted UI domain prefix.

    Raises:
        ValueError: If the prefix is empty, malformed or uses a reserved word
    """
    if not prefix:
        raise ValueError('create_domain requires a non-empty domain_prefix')
    if not DOMAIN_PREFIX_PATTERN.match(prefix):
        raise ValueError(f"domain_prefix '{prefix}' must be lowercase letters, digits and hyphens, not starting or ending with a hyphen")
    for word in RESERVED_PREFIX_WORDS:
        if word in prefix:
            raise ValueError(f"domain_prefix '{prefix}' must not contain the reserved word '{word}'")
    return prefix


def check_redirect_url(url: str) -> str:
    """HTTPS anywhere, HTTP only for localhost, or a custom app scheme; never a fragment."""
    if is_reference(url):
        return url
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc and parts.scheme in ('http', 'https'):
        raise ValueError(f"'{url}' is not an absolute URL")
    if parts.fragment or '#' in url:
        raise ValueError(f"'{url}' must not contain a fragment")
    if parts.scheme == 'http' and parts.hostname not in LOCAL_HOSTS:
        raise ValueError(f"'{url}' must use https; http is only allowed for localhost")
    if parts.scheme not in ('http', 'https') and not re.fullmatch(r'[a-z][a-z0-9+.-]*', parts.scheme):
        raise ValueError(f"'{url}' has an invalid scheme")
    return url


class PasswordPolicy(BaseModel):
    model_config = ConfigDict(extra='forbid')

    minimum_length: Annotated[int, Field(default=8, ge=6, le=99)] = 8

    require_lowercase: bool = True

    require_uppercase: bool = True

    require_numbers: bool = True

    require_symbols: bool = True

    temporary_password_validity_days: Annotated[int, Field(default=7, ge=0, le=365)] = 7


class SmsConfiguration(BaseModel):
    model_config = ConfigDict(extra='forbid')

    external_id: Annotated[str, Field(min_length=1)]

    sns_caller_arn: str

    sns_region: str | None = None

    @field_validator('sns_caller_arn')
    @classmethod
    def validate_sns_caller_arn(cls, v: str) -> str:
        return check_arn(v, 'iam')


class EmailConfiguration(BaseModel):
    model_config = ConfigDict(extra='forbid')

    email_sending_account: Literal['COGNITO_DEFAULT', 'DEVELOPER'] = 'COGNITO_DEFAULT'

    source_arn: str | None = None

    from_email_address: str | None = None

    reply_to_email_address: str | None = None

    configuration_set: str | None = None

    @field_validator('source_arn')
    @classmethod
    def validate_source_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'ses') if v is not None else v

    @model_validator(mode='after')
    def check_account(self) -> 'EmailConfiguration':
        if self.email_sending_account == 'DEVELOPER':
            if self.source_arn is None:
                raise ValueError('DEVELOPER email sending requires source_arn')
        elif self.source_arn is not None or self.from_email_address is not None or self.configuration_set is not None:
            raise ValueError('source_arn, from_email_address and configuration_set require DEVELOPER email sending')
        return self


class TokenValidityUnits(BaseModel):
    model_config = ConfigDict(extra='forbid')

    access_token: TokenUnit = 'hours'

    id_token: TokenUnit = 'hours'

    refresh_token: TokenUnit = 'days'


class UserPoolClient(BaseModel):
    """An app client of the user pool."""

    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, max_length=128, pattern=r'^[\w\s+=,.@-]+$')]

    generate_secret: bool = False

    allowed_oauth_flows: list[Literal['code', 'implicit', 'client_credentials']] = Field(default_factory=list)

    allowed_oauth_scopes: list[str] = Field(default_factory=list)

    callback_urls: list[str] = Field(default_factory=list)

    logout_urls: list[str] = Field(default_factory=list)

    default_redirect_uri: str | None = None

    supported_identity_providers: list[str] = Field(default_factory=lambda: ['COGNITO'])

    explicit_auth_flows: list[Literal[
        'ALLOW_USER_SRP_AUTH', 'ALLOW_REFRESH_TOKEN_AUTH', 'ALLOW_CUSTOM_AUTH',
        'ALLOW_USER_PASSWORD_AUTH', 'ALLOW_ADMIN_USER_PASSWORD_AUTH', 'ALLOW_USER_AUTH',
    ]] = Field(default_factory=lambda: ['ALLOW_USER_SRP_AUTH', 'ALLOW_REFRESH_TOKEN_AUTH'])

    access_token_validity: Annotated[int, Field(default=1, ge=1)] = 1

    id_token_validity: Annotated[int, Field(default=1, ge=1)] = 1

    refresh_token_validity: Annotated[int, Field(default=30, ge=1)] = 30

    token_validity_units: TokenValidityUnits = Field(default_factory=TokenValidityUnits)

    prevent_user_existence_errors: bool = True

    enable_token_revocation: bool = True

    @field_validator('callback_urls', 'logout_urls')
    @classmethod
    def validate_urls(cls, v: list[str]) -> list[str]:
        return [check_redirect_url(url) for url in v]

    @model_validator(mode='after')
    def check_oauth(self) -> 'UserPoolClient':
        """OAuth flows, redirect URLs and scopes must agree."""
        label = f"client '{self.name}'"
        flows = set(self.allowed_oauth_flows)
        if 'client_credentials' in flows:
            if flows & {'code', 'implicit'}:
                raise ValueError(f'{label}: client_credentials cannot be combined with code or implicit flows')
            if not self.generate_secret:
                raise ValueError(f'{label}: client_credentials requires generate_secret')
            if not self.allowed_oauth_scopes:
                raise ValueError(f'{label}: client_credentials requires allowed_oauth_scopes')
        if flows & {'code', 'implicit'}:
            if not self.callback_urls:
                raise ValueError(f'{label}: code and implicit flows require callback_urls')
            if not self.allowed_oauth_scopes:
                raise ValueError(f'{label}: code and implicit flows require allowed_oauth_scopes')
        if self.allowed_oauth_scopes and not flows:
            raise ValueError(f'{label}: allowed_oauth_scopes require allowed_oauth_flows')
        if self.default_redirect_uri is not None and self.default_redirect_uri not in self.callback_urls:
            raise ValueError(f'{label}: default_redirect_uri must be one of the callback_urls')
        return self

    @model_validator(mode='after')
    def check_token_validity(self) -> 'UserPoolClient':
        units = self.token_validity_units
        for token, value, unit in (
            ('access_token', self.access_token_validity, units.access_token),
            ('id_token', self.id_token_validity, units.id_token),
            ('refresh_token', self.refresh_token_validity, units.refresh_token),
        ):
            low, high = TOKEN_VALIDITY_RANGES[token]
            seconds = value * UNIT_SECONDS[unit]
            if not low <= seconds <= high:
                raise ValueError(
                    f"client '{self.name}': {token} validity of {value} {unit} is outside "
                    f"the allowed range of {low} to {high} seconds"
                )
        return self


class ResourceServerScope(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, max_length=256, pattern=r'^[\x21\x23-\x2E\x30-\x5B\x5D-\x7E]+$')]

    description: Annotated[str, Field(min_length=1, max_length=256)]


class ResourceServer(BaseModel):
    model_config = ConfigDict(extra='forbid')

    identifier: Annotated[str, Field(min_length=1, max_length=256, examples=['https://api.example.com'])]

    name: Annotated[str, Field(min_length=1, max_length=256)]

    scopes: list[ResourceServerScope] = Field(default_factory=list)

    @field_validator('scopes')
    @classmethod
    def validate_scopes(cls, v: list[ResourceServerScope]) -> list[ResourceServerScope]:
        duplicates = find_duplicates([scope.name for scope in v])
        if duplicates:
            raise ValueError(f"duplicate scopes: {', '.join(duplicates)}")
        return v


class LambdaTriggers(BaseModel):
    """Lambda functions invoked by user pool events."""

    model_config = ConfigDict(extra='forbid')

    pre_sign_up: str | None = None
    custom_message: str | None = None
    post_confirmation: str | None = None
    pre_authentication: str | None = None
    post_authentication: str | None = None
    define_auth_challenge: str | None = None
    create_auth_challenge: str | None = None
    verify_auth_challenge_response: str | None = None
    pre_token_generation: str | None = None
    user_migration: str | None = None

    @field_validator('*')
    @classmethod
    def validate_function_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'lambda') if v is not None else v

    def configured(self) -> dict[str, str]:
        return self.model_dump(exclude_none=True)


class CognitoUserPoolConfig(ModuleConfig):
    """Input schema for the cognito_user_pool module."""

    name: Annotated[str, Field(min_length=1, max_length=128, pattern=r'^[\w\s+=,.@-]+$')]

    username_attributes: list[VerifiableAttribute] = Field(default_factory=list)

    auto_verified_attributes: list[VerifiableAttribute] = Field(default_factory=lambda: ['email'])

    password_policy: PasswordPolicy = Field(default_factory=PasswordPolicy)

    mfa_configuration: Literal['OFF', 'ON', 'OPTIONAL'] = 'OFF'

    software_token_mfa_enabled: bool = False

    sms_configuration: SmsConfiguration | None = None

    email_configuration: EmailConfiguration = Field(default_factory=EmailConfiguration)

    deletion_protection: bool = True

    create_domain: bool = False

    domain_prefix: str | None = None

    custom_domain: str | None = None

    certificate_arn: str | None = None

    clients: list[UserPoolClient] = Field(default_factory=list)

    resource_servers: list[ResourceServer] = Field(default_factory=list)

    lambda_triggers: LambdaTriggers = Field(default_factory=LambdaTriggers)

    @field_validator('certificate_arn')
    @classmethod
    def validate_certificate_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'acm') if v is not None else v

    @model_validator(mode='after')
    def check_mfa(self) -> 'CognitoUserPoolConfig':
        if self.mfa_configuration != 'OFF' and self.sms_configuration is None and not self.software_token_mfa_enabled:
            raise ValueError(f'mfa_configuration {self.mfa_configuration} requires sms_configuration or software_token_mfa_enabled')
        if 'phone_number' in self.auto_verified_attributes and self.sms_configuration is None:
            raise ValueError('verifying phone numbers requires sms_configuration')
        return self

    @model_validator(mode='after')
    def check_domain(self) -> 'CognitoUserPoolConfig':
        """A hosted UI domain is either a Cognito prefix or a custom domain with a us-east-1 certificate."""
        if self.create_domain:
            check_domain_prefix(self.domain_prefix)
        elif self.domain_prefix is not None:
            raise ValueError('domain_prefix requires create_domain')
        if self.custom_domain is not None:
            if self.domain_prefix is not None:
                raise ValueError('domain_prefix and custom_domain are mutually exclusive')
            if not DOMAIN_PATTERN.match(self.custom_domain.lower()):
                raise ValueError(f"custom_domain '{self.custom_domain}' is not a valid domain name")
            if self.certificate_arn is None:
                raise ValueError('custom_domain requires certificate_arn')
            if not is_reference(self.certificate_arn):
                region = parse_arn(self.certificate_arn).region
                if region != 'us-east-1':
                    raise ValueError(f'custom domain certificates must be in us-east-1, got {region}')
        elif self.certificate_arn is not None:
            raise ValueError('certificate_arn requires custom_domain')
        return self

    @model_validator(mode='after')
    def check_clients(self) -> 'CognitoUserPoolConfig':
        duplicates = find_duplicates([client.name for client in self.clients])
        if duplicates:
            raise ValueError(f"duplicate client names: {', '.join(duplicates)}")
        duplicates = find_duplicates([server.identifier for server in self.resource_servers])
        if duplicates:
            raise ValueError(f"duplicate resource servers: {', '.join(duplicates)}")

        custom_scopes = {
            f'{server.identifier}/{scope.name}' for server in self.resource_servers for scope in server.scopes
        }
        for client in self.clients:
            for scope in client.allowed_oauth_scopes:
                if scope in STANDARD_SCOPES:
                    continue
                if scope not in custom_scopes:
                    raise ValueError(f"client '{client.name}': scope '{scope}' is not declared by any resource server")
        return self

    @property
    def domain(self) -> str | None:
        return self.custom_domain or (self.domain_prefix if self.create_domain else None)
