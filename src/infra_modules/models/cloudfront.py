"""
Input model for the CloudFront distribution module.

Cache behaviours reference origins by id, so most of the rules here are
cross-references between the two lists.
"""

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import check_arn, is_reference, parse_arn
from infra_modules.models.common import ModuleConfig, find_duplicates

ALLOWED_METHOD_SETS = (
    frozenset({'GET', 'HEAD'}),
    frozenset({'GET', 'HEAD', 'OPTIONS'}),
    frozenset({'DELETE', 'GET', 'HEAD', 'OPTIONS', 'PATCH', 'POST', 'PUT'}),
)

CACHEABLE_ERROR_CODES = (400, 403, 404, 405, 414, 416, 500, 501, 502, 503, 504)

S3_DOMAIN_PATTERN = re.compile(r'^(?P<bucket>[a-z0-9][a-z0-9.-]*[a-z0-9])\.s3(?:[.-][a-z0-9-]+)?\.amazonaws\.com(?:\.cn)?$')

CLOUDFRONT_CERTIFICATE_REGION = 'us-east-1'


class CustomOriginConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    http_port: Annotated[int, Field(default=80, ge=1, le=65535)] = 80

    https_port: Annotated[int, Field(default=443, ge=1, le=65535)] = 443

    origin_protocol_policy: Literal['http-only', 'https-only', 'match-viewer'] = 'https-only'

    origin_ssl_protocols: list[Literal['SSLv3', 'TLSv1', 'TLSv1.1', 'TLSv1.2']] = Field(
        default_factory=lambda: ['TLSv1.2'], min_length=1
    )

    origin_read_timeout: Annotated[int, Field(default=30, ge=1, le=180)] = 30

    origin_keepalive_timeout: Annotated[int, Field(default=5, ge=1, le=180)] = 5


class Origin(BaseModel):
    """Origin served by the distribution."""

    model_config = ConfigDict(extra='forbid')

    origin_id: Annotated[str, Field(min_length=1, max_length=128)]

    domain_name: Annotated[str, Field(min_length=1)]

    origin_type: Literal['s3', 'custom'] = 'custom'

    is_private_origin: Annotated[bool, Field(
        default=False,
        description='Serve a private S3 bucket through an origin access control'
    )] = False

    bucket_arn: Annotated[str | None, Field(
        default=None,
        description='Bucket ARN for private origins whose domain is a reference'
    )] = None

    origin_path: str | None = None

    custom_origin_config: CustomOriginConfig | None = None

    custom_headers: dict[str, str] = Field(default_factory=dict)

    @field_validator('origin_path')
    @classmethod
    def validate_origin_path(cls, v: str | None) -> str | None:
        if v is not None and (not v.startswith('/') or v.endswith('/')):
            raise ValueError("origin_path must start with '/' and must not end with '/'")
        return v

    @model_validator(mode='after')
    def check_origin_type(self) -> 'Origin':
        """Private origins are S3 buckets; custom origins carry connection settings."""
        if self.is_private_origin and self.origin_type != 's3':
            raise ValueError(f"origin '{self.origin_id}' is private and must have origin_type 's3'")
        if self.origin_type == 's3' and self.custom_origin_config is not None:
            raise ValueError(f"origin '{self.origin_id}' is an s3 origin and must not set custom_origin_config")
        if self.origin_type == 'custom' and self.custom_origin_config is None:
            self.custom_origin_config = CustomOriginConfig()
        if self.origin_type == 's3' and not is_reference(self.domain_name) and not S3_DOMAIN_PATTERN.match(self.domain_name):
            raise ValueError(f"origin '{self.origin_id}' domain_name is not an S3 bucket domain")
        if self.is_private_origin and is_reference(self.domain_name) and self.bucket_arn is None:
            raise ValueError(f"private origin '{self.origin_id}' with a referenced domain_name requires bucket_arn")
        if self.bucket_arn is not None:
            check_arn(self.bucket_arn, 's3')
        return self

    @property
    def bucket_name(self) -> str | None:
        """Bucket name derived from the origin domain when it is literal."""
        match = S3_DOMAIN_PATTERN.match(self.domain_name)
        return match.group('bucket') if match else None


class FunctionAssociation(BaseModel):
    model_config = ConfigDict(extra='forbid')

    event_type: Literal['viewer-request', 'viewer-response']

    function_arn: str

    @field_validator('function_arn')
    @classmethod
    def validate_function_arn(cls, v: str) -> str:
        return check_arn(v, 'cloudfront')


class LambdaFunctionAssociation(BaseModel):
    model_config = ConfigDict(extra='forbid')

    event_type: Literal['viewer-request', 'viewer-response', 'origin-request', 'origin-response']

    lambda_arn: str

    include_body: bool = False

    @field_validator('lambda_arn')
    @classmethod
    def validate_lambda_arn(cls, v: str) -> str:
        """Lambda@Edge requires a version-qualified function in us-east-1."""
        check_arn(v, 'lambda')
        if is_reference(v):
            return v
        if not re.search(r':function:[a-zA-Z0-9_-]+:\d+$', v):
            raise ValueError(f"Lambda@Edge ARN '{v}' must be qualified with a published version")
        if parse_arn(v).region != CLOUDFRONT_CERTIFICATE_REGION:
            raise ValueError(f"Lambda@Edge ARN '{v}' must be in {CLOUDFRONT_CERTIFICATE_REGION}")
        return v


class CacheBehavior(BaseModel):
    """Default cache behaviour; ordered behaviours add a path pattern."""

    model_config = ConfigDict(extra='forbid')

    target_origin_id: str

    viewer_protocol_policy: Literal['allow-all', 'https-only', 'redirect-to-https'] = 'redirect-to-https'

    allowed_methods: list[str] = Field(default_factory=lambda: ['GET', 'HEAD'])

    cached_methods: list[str] = Field(default_factory=lambda: ['GET', 'HEAD'])

    compress: bool = True

    cache_policy_id: str | None = None

    origin_request_policy_id: str | None = None

    response_headers_policy_id: str | None = None

    min_ttl: Annotated[int | None, Field(default=None, ge=0)] = None

    default_ttl: Annotated[int | None, Field(default=None, ge=0)] = None

    max_ttl: Annotated[int | None, Field(default=None, ge=0)] = None

    function_associations: list[FunctionAssociation] = Field(default_factory=list)

    lambda_function_associations: list[LambdaFunctionAssociation] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_methods(self) -> 'CacheBehavior':
        allowed = frozenset(self.allowed_methods)
        if allowed not in ALLOWED_METHOD_SETS or len(allowed) != len(self.allowed_methods):
            raise ValueError(
                'allowed_methods must be one of [GET, HEAD], [GET, HEAD, OPTIONS] '
                'or [DELETE, GET, HEAD, OPTIONS, PATCH, POST, PUT]'
            )
        cached = frozenset(self.cached_methods)
        if cached not in ALLOWED_METHOD_SETS[:2]:
            raise ValueError('cached_methods must be [GET, HEAD] or [GET, HEAD, OPTIONS]')
        if not cached <= allowed:
            raise ValueError('cached_methods must be a subset of allowed_methods')
        return self

    @model_validator(mode='after')
    def check_ttls(self) -> 'CacheBehavior':
        ttls = (self.min_ttl, self.default_ttl, self.max_ttl)
        if self.cache_policy_id is not None:
            if any(ttl is not None for ttl in ttls):
                raise ValueError('TTL settings must not be set when cache_policy_id is used')
            return self
        min_ttl = self.min_ttl or 0
        default_ttl = self.default_ttl if self.default_ttl is not None else 86400
        max_ttl = self.max_ttl if self.max_ttl is not None else 31536000
        if not min_ttl <= default_ttl <= max_ttl:
            raise ValueError('TTLs must satisfy min_ttl <= default_ttl <= max_ttl')
        return self

    @model_validator(mode='after')
    def check_associations(self) -> 'CacheBehavior':
        events = [association.event_type for association in self.function_associations]
        events += [association.event_type for association in self.lambda_function_associations]
        duplicates = find_duplicates(events)
        if duplicates:
            raise ValueError(f"only one function may be associated per event type: {', '.join(duplicates)}")
        return self


class OrderedCacheBehavior(CacheBehavior):
    path_pattern: Annotated[str, Field(min_length=1, max_length=255)]


class CustomErrorResponse(BaseModel):
    model_config = ConfigDict(extra='forbid')

    error_code: int

    response_code: int | None = None

    response_page_path: str | None = None

    error_caching_min_ttl: Annotated[int | None, Field(default=None, ge=0)] = None

    @field_validator('error_code')
    @classmethod
    def validate_error_code(cls, v: int) -> int:
        if v not in CACHEABLE_ERROR_CODES:
            raise ValueError(f'error_code must be one of {", ".join(map(str, CACHEABLE_ERROR_CODES))}')
        return v

    @model_validator(mode='after')
    def check_response(self) -> 'CustomErrorResponse':
        if (self.response_code is None) != (self.response_page_path is None):
            raise ValueError('response_code and response_page_path must be set together')
        if self.response_page_path is not None and not self.response_page_path.startswith('/'):
            raise ValueError("response_page_path must start with '/'")
        return self


class GeoRestriction(BaseModel):
    model_config = ConfigDict(extra='forbid')

    restriction_type: Literal['none', 'whitelist', 'blacklist'] = 'none'

    locations: list[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_locations(self) -> 'GeoRestriction':
        if self.restriction_type == 'none' and self.locations:
            raise ValueError("locations must be empty when restriction_type is 'none'")
        if self.restriction_type != 'none' and not self.locations:
            raise ValueError(f"restriction_type '{self.restriction_type}' requires locations")
        for location in self.locations:
            if not re.fullmatch(r'[A-Z]{2}', location):
                raise ValueError(f"location '{location}' must be an ISO 3166-1 alpha-2 code")
        return self


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    bucket: Annotated[str, Field(description='Bucket domain name, e.g. logs.s3.amazonaws.com')]

    prefix: str = ''

    include_cookies: bool = False


class CloudFrontDistributionConfig(ModuleConfig):
    """Input schema for the cloudfront_distribution module."""

    name: Annotated[str, Field(
        min_length=1,
        max_length=64,
        pattern=r'^[a-zA-Z0-9_-]+$',
        description='Name used for origin access controls and outputs'
    )]

    comment: Annotated[str, Field(default='', max_length=128)] = ''

    enabled: bool = True

    is_ipv6_enabled: bool = True

    http_version: Literal['http1.1', 'http2', 'http2and3', 'http3'] = 'http2'

    price_class: Literal['PriceClass_All', 'PriceClass_200', 'PriceClass_100'] = 'PriceClass_100'

    aliases: list[str] = Field(default_factory=list)

    acm_certificate_arn: str | None = None

    minimum_protocol_version: Literal['TLSv1.2_2019', 'TLSv1.2_2021', 'TLSv1.2_2018', 'TLSv1.1_2016'] = 'TLSv1.2_2021'

    default_root_object: str | None = None

    web_acl_id: str | None = None

    origins: Annotated[list[Origin], Field(min_length=1)]

    default_cache_behavior: CacheBehavior

    ordered_cache_behaviors: list[OrderedCacheBehavior] = Field(default_factory=list)

    custom_error_responses: list[CustomErrorResponse] = Field(default_factory=list)

    geo_restriction: GeoRestriction = Field(default_factory=GeoRestriction)

    logging: LoggingConfig | None = None

    @field_validator('default_root_object')
    @classmethod
    def validate_default_root_object(cls, v: str | None) -> str | None:
        if v is not None and v.startswith('/'):
            raise ValueError("default_root_object must not start with '/'")
        return v

    @model_validator(mode='after')
    def check_origins(self) -> 'CloudFrontDistributionConfig':
        """Origin ids are unique and every behaviour targets a declared origin."""
        origin_ids = [origin.origin_id for origin in self.origins]
        duplicates = find_duplicates(origin_ids)
        if duplicates:
            raise ValueError(f"duplicate origin ids: {', '.join(duplicates)}")
        behaviors = [('default_cache_behavior', self.default_cache_behavior)]
        behaviors += [(f"ordered_cache_behavior '{b.path_pattern}'", b) for b in self.ordered_cache_behaviors]
        for label, behavior in behaviors:
            if behavior.target_origin_id not in origin_ids:
                raise ValueError(f"{label} targets unknown origin '{behavior.target_origin_id}'")
        patterns = find_duplicates([behavior.path_pattern for behavior in self.ordered_cache_behaviors])
        if patterns:
            raise ValueError(f"duplicate cache behavior path patterns: {', '.join(patterns)}")
        return self

    @model_validator(mode='after')
    def check_certificate(self) -> 'CloudFrontDistributionConfig':
        """Aliases require an ACM certificate in us-east-1."""
        if self.aliases and self.acm_certificate_arn is None:
            raise ValueError('aliases require acm_certificate_arn')
        if self.acm_certificate_arn is not None:
            if not self.aliases:
                raise ValueError('acm_certificate_arn requires at least one alias')
            check_arn(self.acm_certificate_arn, 'acm')
            if not is_reference(self.acm_certificate_arn):
                region = parse_arn(self.acm_certificate_arn).region
                if region != CLOUDFRONT_CERTIFICATE_REGION:
                    raise ValueError(
                        f'acm_certificate_arn must be in {CLOUDFRONT_CERTIFICATE_REGION}, got {region}'
                    )
        duplicates = find_duplicates(self.aliases)
        if duplicates:
            raise ValueError(f"duplicate aliases: {', '.join(duplicates)}")
        return self

    @model_validator(mode='after')
    def check_error_responses(self) -> 'CloudFrontDistributionConfig':
        duplicates = find_duplicates([str(response.error_code) for response in self.custom_error_responses])
        if duplicates:
            raise ValueError(f"duplicate custom error response codes: {', '.join(duplicates)}")
        return self
