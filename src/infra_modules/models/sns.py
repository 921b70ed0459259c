"""
Input model for the sns_topic module.
"""

import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import check_arn, is_reference
from infra_modules.models.common import ModuleConfig

Protocol = Literal['sqs', 'lambda', 'firehose', 'application', 'http', 'https', 'email', 'email-json', 'sms']

# Service of the ARN endpoint each ARN-based protocol expects
ARN_PROTOCOL_SERVICES = {
    'sqs': 'sqs',
    'lambda': 'lambda',
    'firehose': 'firehose',
    'application': 'sns',
}

RAW_DELIVERY_PROTOCOLS = ('sqs', 'http', 'https', 'firehose')

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

PHONE_PATTERN = re.compile(r'^\+[1-9]\d{1,14}$')


class Subscription(BaseModel):
    model_config = ConfigDict(extra='forbid')

    protocol: Protocol

    endpoint: Annotated[str, Field(min_length=1)]

    raw_message_delivery: bool = False

    filter_policy: dict[str, Any] | None = None

    filter_policy_scope: Literal['MessageAttributes', 'MessageBody'] | None = None

    subscription_role_arn: str | None = None

    @field_validator('subscription_role_arn')
    @classmethod
    def validate_subscription_role_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'iam') if v is not None else v

    @model_validator(mode='after')
    def check_endpoint(self) -> 'Subscription':
        """The endpoint format depends on the protocol."""
        endpoint = self.endpoint
        if self.protocol in ARN_PROTOCOL_SERVICES:
            check_arn(endpoint, ARN_PROTOCOL_SERVICES[self.protocol])
        elif is_reference(endpoint):
            pass
        elif self.protocol in ('http', 'https'):
            if not endpoint.startswith(f'{self.protocol}://'):
                raise ValueError(f"{self.protocol} endpoint '{endpoint}' must start with {self.protocol}://")
        elif self.protocol in ('email', 'email-json'):
            if not EMAIL_PATTERN.match(endpoint):
                raise ValueError(f"'{endpoint}' is not an email address")
        elif not PHONE_PATTERN.match(endpoint):
            raise ValueError(f"sms endpoint '{endpoint}' must be an E.164 phone number")
        return self

    @model_validator(mode='after')
    def check_options(self) -> 'Subscription':
        if self.raw_message_delivery and self.protocol not in RAW_DELIVERY_PROTOCOLS:
            raise ValueError(f'raw_message_delivery is not supported for {self.protocol} subscriptions')
        if self.filter_policy_scope is not None and self.filter_policy is None:
            raise ValueError('filter_policy_scope requires filter_policy')
        if self.protocol == 'firehose' and self.subscription_role_arn is None:
            raise ValueError('firehose subscriptions require subscription_role_arn')
        if self.protocol != 'firehose' and self.subscription_role_arn is not None:
            raise ValueError('subscription_role_arn is only valid for firehose subscriptions')
        return self


class SnsTopicConfig(ModuleConfig):
    """Input schema for the sns_topic module."""

    name: Annotated[str, Field(
        min_length=1,
        max_length=256,
        pattern=r'^[A-Za-z0-9_-]+(\.fifo)?$',
        examples=['order-events', 'order-events.fifo']
    )]

    display_name: Annotated[str | None, Field(default=None, max_length=100)] = None

    fifo_topic: bool = False

    content_based_deduplication: bool = False

    kms_master_key_id: Annotated[str | None, Field(
        default=None,
        description='KMS key id, ARN or alias, e.g. alias/aws/sns'
    )] = None

    subscriptions: list[Subscription] = Field(default_factory=list)

    allowed_publisher_services: list[Annotated[str, Field(pattern=r'^[a-z0-9.-]+\.amazonaws\.com$')]] = Field(
        default_factory=list,
        examples=[['events.amazonaws.com']]
    )

    allowed_publisher_account_ids: list[Annotated[str, Field(pattern=r'^\d{12}$')]] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_fifo(self) -> 'SnsTopicConfig':
        """FIFO topics carry the .fifo suffix and deliver to SQS only."""
        if self.fifo_topic != self.name.endswith('.fifo'):
            raise ValueError('fifo_topic must be set exactly when the name ends with .fifo')
        if self.content_based_deduplication and not self.fifo_topic:
            raise ValueError('content_based_deduplication requires a FIFO topic')
        if self.fifo_topic:
            for subscription in self.subscriptions:
                if subscription.protocol != 'sqs':
                    raise ValueError(f'FIFO topics only support sqs subscriptions, got {subscription.protocol}')
        return self
