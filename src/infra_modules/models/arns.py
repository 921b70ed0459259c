"""
Amazon Resource Name parsing and construction.

Module inputs accept ARNs either as literals or as reference tokens. Literal
ARNs are parsed to check their service and to derive IAM scopes; reference
tokens are passed through untouched.
"""

import re
from dataclasses import dataclass

REFERENCE_PATTERN = re.compile(r'\$\{[^{}]+\}')
MODULE_REFERENCE_PATTERN = re.compile(r'\$\{module\.([A-Za-z0-9_-]+)\.([A-Za-z0-9_]+)\}')

PARTITIONS = ('aws', 'aws-cn', 'aws-us-gov')


def is_reference(value: object) -> bool:
    """Return True if the value contains a reference token."""
    return isinstance(value, str) and REFERENCE_PATTERN.search(value) is not None


@dataclass(frozen=True)
class Arn:
    """A parsed ARN."""

    partition: str
    service: str
    region: str
    account: str
    resource: str

    def __str__(self) -> str:
        return f'arn:{self.partition}:{self.service}:{self.region}:{self.account}:{self.resource}'

    def _split(self) -> list[str]:
        match = re.search(r'[/:]', self.resource)
        if match is None:
            return [self.resource]
        return [self.resource[:match.start()], self.resource[match.end():]]

    @property
    def resource_type(self) -> str | None:
        """Resource type prefix, e.g. ``function`` or ``table``."""
        parts = self._split()
        return parts[0] if len(parts) == 2 else None

    @property
    def resource_id(self) -> str:
        """Resource id with any type prefix removed."""
        return self._split()[-1]


def parse_arn(value: str) -> Arn:
    """
    Parse an ARN string.

    Args:
        value: ARN to parse

    Returns:
        Parsed Arn

    Raises:
        ValueError: If the value is not a well formed ARN
    """
    parts = value.split(':', 5)
    if len(parts) != 6 or parts[0] != 'arn':
        raise ValueError(f"'{value}' is not a valid ARN")
    _, partition, service, region, account, resource = parts
    if partition not in PARTITIONS:
        raise ValueError(f"'{value}' has unknown partition '{partition}'")
    if not service or not resource:
        raise ValueError(f"'{value}' must include a service and a resource")
    if account and not re.fullmatch(r'\d{12}|aws', account):
        raise ValueError(f"'{value}' has an invalid account id '{account}'")
    return Arn(partition=partition, service=service, region=region, account=account, resource=resource)


def build_arn(partition: str, service: str, region: str, account: str, resource: str) -> str:
    """Build an ARN string from its parts."""
    return str(Arn(partition=partition, service=service, region=region, account=account, resource=resource))


def service_of(value: str) -> str:
    """Return the service of a literal ARN."""
    return parse_arn(value).service


def check_arn(value: str, *services: str) -> str:
    """
    Validate a literal ARN, optionally restricting its service.

    Reference tokens are accepted as-is since their value is only known to the
    executor.

    Raises:
        ValueError: If the ARN is malformed or belongs to another service
    """
    if is_reference(value):
        return value
    arn = parse_arn(value)
    if services and arn.service not in services:
        expected = ' or '.join(services)
        raise ValueError(f"'{value}' must be a {expected} ARN, got a {arn.service} ARN")
    return value


def s3_bucket_arn(partition: str, bucket: str) -> str:
    return f'arn:{partition}:s3:::{bucket}'


def s3_objects_arn(partition: str, bucket: str, prefix: str = '') -> str:
    prefix = prefix.strip('/')
    return f'arn:{partition}:s3:::{bucket}/{prefix + "/" if prefix else ""}*'


def log_group_arn(partition: str, region: str, account: str, log_group: str) -> str:
    return build_arn(partition, 'logs', region, account, f'log-group:{log_group}')


def ssm_parameter_arn(partition: str, region: str, account: str, name: str) -> str:
    return build_arn(partition, 'ssm', region, account, f'parameter/{name.lstrip("/")}')


def dynamodb_table_arn(partition: str, region: str, account: str, table: str) -> str:
    return build_arn(partition, 'dynamodb', region, account, f'table/{table}')


def lambda_function_arn(partition: str, region: str, account: str, function_name: str) -> str:
    if function_name.startswith('arn:') or is_reference(function_name):
        return function_name
    return build_arn(partition, 'lambda', region, account, f'function:{function_name}')


def sqs_queue_arn_from_url(partition: str, queue_url: str) -> str:
    """
    Derive a queue ARN from an SQS queue URL.

    Raises:
        ValueError: If the URL is not an SQS queue URL
    """
    match = re.fullmatch(r'https://sqs\.([a-z0-9-]+)\.amazonaws\.com(?:\.cn)?/(\d{12})/([A-Za-z0-9_-]+(?:\.fifo)?)', queue_url)
    if match is None:
        raise ValueError(f"'{queue_url}' is not an SQS queue URL")
    region, account, name = match.groups()
    return build_arn(partition, 'sqs', region, account, name)
