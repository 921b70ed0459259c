"""
Input model for the api_gateway_rest_api module.
"""

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.alarms import AlarmsConfig, check_alarm_overrides
from infra_modules.models.arns import check_arn, is_reference, parse_arn
from infra_modules.models.common import ModuleConfig

HttpMethod = Literal['ANY', 'DELETE', 'GET', 'HEAD', 'OPTIONS', 'PATCH', 'POST', 'PUT']

Authorization = Literal['NONE', 'AWS_IAM', 'COGNITO_USER_POOLS', 'CUSTOM']

DEFAULT_ALARM_NAMES = ('5XXError', 'Latency')

PATH_SEGMENT_PATTERN = re.compile(r'^([a-zA-Z0-9._~-]+|\{[a-zA-Z0-9_]+\+?\})$')

# Authorization type each authorizer kind serves
AUTHORIZER_AUTHORIZATION = {
    'COGNITO_USER_POOLS': 'COGNITO_USER_POOLS',
    'TOKEN': 'CUSTOM',
    'REQUEST': 'CUSTOM',
}


def path_segments(path: str) -> list[str]:
    """Segments of a resource path; the root path has none."""
    return [segment for segment in path.split('/') if segment]


class ApiIntegration(BaseModel):
    """Backend a route forwards to."""

    model_config = ConfigDict(extra='forbid')

    type: Literal['AWS_PROXY', 'HTTP_PROXY', 'MOCK'] = 'AWS_PROXY'

    lambda_function_arn: str | None = None

    uri: str | None = None

    http_method: Annotated[HttpMethod | None, Field(
        default=None,
        description='Method used towards an HTTP backend; defaults to the route method'
    )] = None

    timeout_milliseconds: Annotated[int, Field(default=29000, ge=50, le=29000)] = 29000

    @field_validator('lambda_function_arn')
    @classmethod
    def validate_lambda_function_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'lambda') if v is not None else v

    @model_validator(mode='after')
    def check_fields(self) -> 'ApiIntegration':
        """Only the fields of the chosen integration type may be set."""
        if self.type == 'AWS_PROXY':
            if self.lambda_function_arn is None:
                raise ValueError('AWS_PROXY integrations require lambda_function_arn')
            if self.uri is not None or self.http_method is not None:
                raise ValueError('AWS_PROXY integrations must not set uri or http_method')
        elif self.type == 'HTTP_PROXY':
            if self.uri is None:
                raise ValueError('HTTP_PROXY integrations require uri')
            if not is_reference(self.uri) and not re.match(r'^https?://', self.uri):
                raise ValueError(f"integration uri '{self.uri}' must be an http or https URL")
            if self.lambda_function_arn is not None:
                raise ValueError('HTTP_PROXY integrations must not set lambda_function_arn')
        else:
            if self.uri is not None or self.lambda_function_arn is not None or self.http_method is not None:
                raise ValueError('MOCK integrations take no backend settings')
        return self


class ApiRoute(BaseModel):
    """A method on a resource path."""

    model_config = ConfigDict(extra='forbid')

    path: Annotated[str, Field(examples=['/orders/{order_id}'])]

    http_method: HttpMethod

    authorization: Authorization = 'NONE'

    authorizer: Annotated[str | None, Field(
        default=None,
        description='Name of a declared authorizer'
    )] = None

    authorization_scopes: list[str] = Field(default_factory=list)

    api_key_required: bool = False

    integration: ApiIntegration

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Paths start with a slash, have no empty segments and end in at most one greedy segment."""
        if not v.startswith('/'):
            raise ValueError(f"path '{v}' must start with '/'")
        if v == '/':
            return v
        if v.endswith('/') or '//' in v:
            raise ValueError(f"path '{v}' must not contain empty segments")
        segments = path_segments(v)
        for index, segment in enumerate(segments):
            if not PATH_SEGMENT_PATTERN.match(segment):
                raise ValueError(f"path segment '{segment}' in '{v}' is invalid")
            if segment.endswith('+}') and index != len(segments) - 1:
                raise ValueError(f"greedy segment '{segment}' must be the last segment of '{v}'")
        return v

    @model_validator(mode='after')
    def check_authorization(self) -> 'ApiRoute':
        if self.authorization in ('NONE', 'AWS_IAM') and self.authorizer is not None:
            raise ValueError(f'{self.http_method} {self.path}: {self.authorization} routes must not name an authorizer')
        if self.authorization in ('COGNITO_USER_POOLS', 'CUSTOM') and self.authorizer is None:
            raise ValueError(f'{self.http_method} {self.path}: {self.authorization} routes require an authorizer')
        if self.authorization_scopes and self.authorization != 'COGNITO_USER_POOLS':
            raise ValueError(f'{self.http_method} {self.path}: authorization_scopes require COGNITO_USER_POOLS')
        return self


class ApiAuthorizer(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, max_length=128, pattern=r'^[a-zA-Z0-9_-]+$')]

    type: Literal['COGNITO_USER_POOLS', 'TOKEN', 'REQUEST']

    provider_arns: list[str] = Field(default_factory=list)

    authorizer_lambda_arn: str | None = None

    identity_source: str = 'method.request.header.Authorization'

    result_ttl_in_seconds: Annotated[int, Field(default=300, ge=0, le=3600)] = 300

    @field_validator('provider_arns')
    @classmethod
    def validate_provider_arns(cls, v: list[str]) -> list[str]:
        return [check_arn(arn, 'cognito-idp') for arn in v]

    @field_validator('authorizer_lambda_arn')
    @classmethod
    def validate_authorizer_lambda_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'lambda') if v is not None else v

    @model_validator(mode='after')
    def check_fields(self) -> 'ApiAuthorizer':
        if self.type == 'COGNITO_USER_POOLS':
            if not self.provider_arns:
                raise ValueError(f"authorizer '{self.name}' requires provider_arns")
            if self.authorizer_lambda_arn is not None:
                raise ValueError(f"authorizer '{self.name}' must not set authorizer_lambda_arn")
        else:
            if self.authorizer_lambda_arn is None:
                raise ValueError(f"authorizer '{self.name}' requires authorizer_lambda_arn")
            if self.provider_arns:
                raise ValueError(f"authorizer '{self.name}' must not set provider_arns")
        for source in self.identity_source.split(','):
            if not re.fullmatch(r'\s*(method\.request\.(header|querystring)\.[\w-]+|context\.[\w.]+|stageVariables\.\w+)\s*', source):
                raise ValueError(f"authorizer '{self.name}' has an invalid identity source '{source.strip()}'")
        if self.type == 'TOKEN' and ',' in self.identity_source:
            raise ValueError(f"TOKEN authorizer '{self.name}' takes a single identity source")
        return self


class ThrottlingConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    burst_limit: Annotated[int, Field(ge=0, le=5000)]

    rate_limit: Annotated[float, Field(ge=0, le=10000)]


class CustomDomain(BaseModel):
    model_config = ConfigDict(extra='forbid')

    domain_name: Annotated[str, Field(min_length=1, max_length=253, examples=['api.example.com'])]

    certificate_arn: str

    base_path: Annotated[str | None, Field(default=None, pattern=r'^[a-zA-Z0-9._-]+$')] = None

    @field_validator('certificate_arn')
    @classmethod
    def validate_certificate_arn(cls, v: str) -> str:
        return check_arn(v, 'acm')


class ApiGatewayRestApiConfig(ModuleConfig):
    """Input schema for the api_gateway_rest_api module."""

    name: Annotated[str, Field(min_length=1, max_length=1024, examples=['orders-api'])]

    description: str = ''

    endpoint_type: Literal['EDGE', 'REGIONAL', 'PRIVATE'] = 'REGIONAL'

    vpc_endpoint_ids: list[str] = Field(default_factory=list)

    stage_name: Annotated[str, Field(default='v1', min_length=1, max_length=128, pattern=r'^[a-zA-Z0-9_-]+$')] = 'v1'

    routes: Annotated[list[ApiRoute], Field(min_length=1)]

    authorizers: list[ApiAuthorizer] = Field(default_factory=list)

    xray_tracing_enabled: bool = False

    throttling: ThrottlingConfig | None = None

    access_log_destination_arn: Annotated[str | None, Field(
        default=None,
        description='CloudWatch log group or Firehose stream receiving access logs'
    )] = None

    custom_domain: CustomDomain | None = None

    alarms: AlarmsConfig | None = None

    @field_validator('access_log_destination_arn')
    @classmethod
    def validate_access_log_destination_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'logs', 'firehose') if v is not None else v

    @model_validator(mode='after')
    def check_endpoint(self) -> 'ApiGatewayRestApiConfig':
        """Private APIs and only private APIs are bound to VPC endpoints."""
        if self.endpoint_type == 'PRIVATE' and not self.vpc_endpoint_ids:
            raise ValueError('PRIVATE endpoints require vpc_endpoint_ids')
        if self.endpoint_type != 'PRIVATE' and self.vpc_endpoint_ids:
            raise ValueError('vpc_endpoint_ids are only valid for PRIVATE endpoints')
        if self.custom_domain is not None:
            if self.endpoint_type == 'PRIVATE':
                raise ValueError('custom_domain is not supported for PRIVATE endpoints')
            certificate = self.custom_domain.certificate_arn
            if self.endpoint_type == 'EDGE' and not is_reference(certificate):
                region = parse_arn(certificate).region
                if region != 'us-east-1':
                    raise ValueError(f'EDGE custom domain certificates must be in us-east-1, got {region}')
        return self

    @model_validator(mode='after')
    def check_routes(self) -> 'ApiGatewayRestApiConfig':
        seen = set()
        for route in self.routes:
            key = (route.path, route.http_method)
            if key in seen:
                raise ValueError(f'duplicate route {route.http_method} {route.path}')
            seen.add(key)

        authorizers = {}
        for authorizer in self.authorizers:
            if authorizer.name in authorizers:
                raise ValueError(f"duplicate authorizer '{authorizer.name}'")
            authorizers[authorizer.name] = authorizer

        for route in self.routes:
            if route.authorizer is None:
                continue
            authorizer = authorizers.get(route.authorizer)
            if authorizer is None:
                raise ValueError(f"{route.http_method} {route.path}: authorizer '{route.authorizer}' is not declared")
            if AUTHORIZER_AUTHORIZATION[authorizer.type] != route.authorization:
                raise ValueError(
                    f"{route.http_method} {route.path}: authorizer '{authorizer.name}' of type {authorizer.type} "
                    f"cannot serve {route.authorization} routes"
                )
        return self

    @model_validator(mode='after')
    def check_alarms(self) -> 'ApiGatewayRestApiConfig':
        check_alarm_overrides(self.alarms, DEFAULT_ALARM_NAMES)
        return self
