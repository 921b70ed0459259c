"""
Unit tests for the sns_topic module.
"""

import json

import pytest
from pydantic import ValidationError

from infra_modules.logic.sns import render_sns_topic, topic_policy
from infra_modules.models.sns import SnsTopicConfig

QUEUE_ARN = "arn:aws:sqs:us-east-1:123456789012:order-events"
FUNCTION_ARN = "arn:aws:lambda:us-east-1:123456789012:function:notify"
TOPIC_ARN = "arn:aws:sns:us-east-1:123456789012:order-events"


class TestSubscriptions:
    """Endpoint formats and delivery options per protocol."""

    @pytest.mark.parametrize("subscription, message", [
        ({"protocol": "sqs", "endpoint": FUNCTION_ARN}, "must be a sqs ARN, got a lambda ARN"),
        ({"protocol": "https", "endpoint": "http://hooks.example.com"}, "must start with https://"),
        ({"protocol": "email", "endpoint": "ops.example.com"}, "is not an email address"),
        ({"protocol": "sms", "endpoint": "555-0100"}, "E.164 phone number"),
        ({"protocol": "email", "endpoint": "ops@example.com", "raw_message_delivery": True}, "not supported for email"),
        ({"protocol": "firehose", "endpoint": "arn:aws:firehose:us-east-1:123456789012:deliverystream/orders"}, "require subscription_role_arn"),
    ])
    def test_invalid_subscriptions(self, subscription, message):
        with pytest.raises(ValidationError) as exc_info:
            SnsTopicConfig(name="order-events", subscriptions=[subscription])

        assert message in str(exc_info.value)

    def test_referenced_endpoint(self):
        config = SnsTopicConfig(name="order-events", subscriptions=[
            {"protocol": "sqs", "endpoint": "${module.queue.queue_arn}"},
        ])

        assert config.subscriptions[0].endpoint == "${module.queue.queue_arn}"


class TestFifoTopics:
    def test_name_and_flag_must_agree(self):
        with pytest.raises(ValidationError):
            SnsTopicConfig(name="order-events.fifo")
        with pytest.raises(ValidationError):
            SnsTopicConfig(name="order-events", fifo_topic=True)

    def test_fifo_delivers_to_sqs_only(self):
        with pytest.raises(ValidationError) as exc_info:
            SnsTopicConfig(name="order-events.fifo", fifo_topic=True, subscriptions=[
                {"protocol": "lambda", "endpoint": FUNCTION_ARN},
            ])

        assert "only support sqs subscriptions" in str(exc_info.value)

    def test_content_based_deduplication_requires_fifo(self):
        with pytest.raises(ValidationError):
            SnsTopicConfig(name="order-events", content_based_deduplication=True)


class TestTopicPolicy:
    def test_owner_and_publishers(self, aws_context):
        config = SnsTopicConfig(
            name="order-events",
            allowed_publisher_services=["events.amazonaws.com", "s3.amazonaws.com"],
            allowed_publisher_account_ids=["210987654321"],
        )
        policy = topic_policy(config, aws_context)

        assert policy.sids == ["AllowOwnerAccount", "AllowEventsPublish", "AllowS3Publish", "AllowCrossAccountPublish"]
        assert policy.get("AllowOwnerAccount").conditions == {"StringEquals": {"AWS:SourceOwner": "123456789012"}}
        assert policy.get("AllowCrossAccountPublish").principals == {"AWS": ["arn:aws:iam::210987654321:root"]}
        assert policy.get("AllowEventsPublish").resources == [TOPIC_ARN]


class TestRenderSnsTopic:
    def test_subscriptions_and_permissions(self, aws_context):
        config = SnsTopicConfig(name="order-events", subscriptions=[
            {"protocol": "sqs", "endpoint": QUEUE_ARN, "raw_message_delivery": True},
            {"protocol": "lambda", "endpoint": FUNCTION_ARN, "filter_policy": {"status": ["shipped"]}},
            {"protocol": "email-json", "endpoint": "ops@example.com"},
        ])
        rendered = render_sns_topic(config, aws_context)

        assert [resource.address for resource in rendered.resources] == [
            "aws_sns_topic.this",
            "aws_sns_topic_policy.this",
            "aws_sns_topic_subscription.sqs_0",
            "aws_sns_topic_subscription.lambda_1",
            "aws_lambda_permission.lambda_1",
            "aws_sns_topic_subscription.email_json_2",
        ]
        subscription = rendered.resource("aws_sns_topic_subscription", "lambda_1")
        assert json.loads(subscription.arguments["filter_policy"]) == {"status": ["shipped"]}
        assert rendered.resource("aws_lambda_permission", "lambda_1").arguments["source_arn"] == "${aws_sns_topic.this.arn}"

    def test_queue_policy_statements_output(self, aws_context):
        """Queue owners receive the statement letting the topic deliver."""
        config = SnsTopicConfig(name="order-events", subscriptions=[{"protocol": "sqs", "endpoint": QUEUE_ARN}])
        statement = render_sns_topic(config, aws_context).outputs["sqs_queue_policy_statements"][QUEUE_ARN]

        assert statement == {
            "Sid": "AllowSnsTopicDelivery",
            "Effect": "Allow",
            "Principal": {"Service": "sns.amazonaws.com"},
            "Action": ["sqs:SendMessage"],
            "Resource": [QUEUE_ARN],
            "Condition": {"ArnEquals": {"aws:SourceArn": TOPIC_ARN}},
        }

    def test_fifo_arguments(self, aws_context):
        config = SnsTopicConfig(name="order-events.fifo", fifo_topic=True, content_based_deduplication=True)
        topic = render_sns_topic(config, aws_context).resource("aws_sns_topic")

        assert topic.arguments["fifo_topic"] is True
        assert topic.arguments["content_based_deduplication"] is True
        assert "kms_master_key_id" not in topic.arguments
