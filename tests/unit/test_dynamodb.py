"""
Unit tests for the dynamodb_table module.
"""

import pytest
from pydantic import ValidationError

from infra_modules.logic.dynamodb import render_dynamodb_table
from infra_modules.models.dynamodb import DynamoDbTableConfig


def table_config(**overrides) -> dict:
    config = {
        "name": "orders",
        "hash_key": "pk",
        "range_key": "sk",
        "attributes": [{"name": "pk", "type": "S"}, {"name": "sk", "type": "S"}],
    }
    config.update(overrides)
    return config


class TestBillingModeCapacity:
    """Provisioned tables need capacity; on-demand tables must not set it."""

    def test_provisioned_with_capacity(self):
        """Provisioned tables accept both capacities."""
        config = DynamoDbTableConfig(**table_config(billing_mode="PROVISIONED", read_capacity=5, write_capacity=5))

        assert config.read_capacity == 5

    @pytest.mark.parametrize("capacity", [{}, {"read_capacity": 5}, {"write_capacity": 5}])
    def test_provisioned_without_capacity(self, capacity):
        """Provisioned tables reject missing capacity."""
        with pytest.raises(ValidationError) as exc_info:
            DynamoDbTableConfig(**table_config(billing_mode="PROVISIONED", **capacity))

        assert "required when billing_mode is PROVISIONED" in str(exc_info.value)

    @pytest.mark.parametrize("capacity", [{"read_capacity": 5}, {"write_capacity": 5}])
    def test_pay_per_request_with_capacity(self, capacity):
        """On-demand tables reject any capacity."""
        with pytest.raises(ValidationError) as exc_info:
            DynamoDbTableConfig(**table_config(**capacity))

        assert "must not be set when billing_mode is PAY_PER_REQUEST" in str(exc_info.value)

    def test_rule_applies_to_global_indexes(self):
        """Global secondary indexes follow the table's billing mode."""
        index = {"name": "by-status", "hash_key": "status"}
        attributes = [{"name": "pk", "type": "S"}, {"name": "sk", "type": "S"}, {"name": "status", "type": "S"}]

        with pytest.raises(ValidationError) as exc_info:
            DynamoDbTableConfig(**table_config(
                billing_mode="PROVISIONED", read_capacity=5, write_capacity=5,
                attributes=attributes, global_secondary_indexes=[index],
            ))
        assert "by-status" in str(exc_info.value)

        with pytest.raises(ValidationError):
            DynamoDbTableConfig(**table_config(
                attributes=attributes,
                global_secondary_indexes=[{**index, "read_capacity": 1, "write_capacity": 1}],
            ))


class TestTableKeys:
    """Key attribute and index rules."""

    def test_undeclared_key_attribute(self):
        """Every key attribute must be declared."""
        with pytest.raises(ValidationError) as exc_info:
            DynamoDbTableConfig(**table_config(attributes=[{"name": "pk", "type": "S"}]))

        assert "missing from attributes: sk" in str(exc_info.value)

    def test_unused_attribute(self):
        """Every declared attribute must be used by a key."""
        attributes = [{"name": "pk", "type": "S"}, {"name": "sk", "type": "S"}, {"name": "email", "type": "S"}]

        with pytest.raises(ValidationError) as exc_info:
            DynamoDbTableConfig(**table_config(attributes=attributes))

        assert "not used by any key or index: email" in str(exc_info.value)

    def test_range_key_differs_from_hash_key(self):
        """The sort key cannot repeat the partition key."""
        with pytest.raises(ValidationError):
            DynamoDbTableConfig(**table_config(range_key="pk", attributes=[{"name": "pk", "type": "S"}]))

    def test_local_index_requires_table_range_key(self):
        """LSIs need a table sort key."""
        with pytest.raises(ValidationError) as exc_info:
            DynamoDbTableConfig(**table_config(
                range_key=None,
                attributes=[{"name": "pk", "type": "S"}, {"name": "created", "type": "N"}],
                local_secondary_indexes=[{"name": "by-created", "range_key": "created"}],
            ))

        assert "require the table to have a range_key" in str(exc_info.value)

    def test_local_index_range_key_differs(self):
        """An LSI cannot reuse the table sort key."""
        with pytest.raises(ValidationError):
            DynamoDbTableConfig(**table_config(local_secondary_indexes=[{"name": "by-sk", "range_key": "sk"}]))

    def test_duplicate_index_names(self):
        """Index names are unique across GSIs and LSIs."""
        attributes = [
            {"name": "pk", "type": "S"}, {"name": "sk", "type": "S"},
            {"name": "status", "type": "S"}, {"name": "created", "type": "N"},
        ]
        with pytest.raises(ValidationError) as exc_info:
            DynamoDbTableConfig(**table_config(
                attributes=attributes,
                global_secondary_indexes=[{"name": "idx", "hash_key": "status"}],
                local_secondary_indexes=[{"name": "idx", "range_key": "created"}],
            ))

        assert "duplicate index names: idx" in str(exc_info.value)

    def test_include_projection_requires_attributes(self):
        """INCLUDE projection needs non-key attributes, other projections reject them."""
        attributes = [{"name": "pk", "type": "S"}, {"name": "sk", "type": "S"}, {"name": "status", "type": "S"}]
        with pytest.raises(ValidationError):
            DynamoDbTableConfig(**table_config(
                attributes=attributes,
                global_secondary_indexes=[{"name": "by-status", "hash_key": "status", "projection_type": "INCLUDE"}],
            ))
        with pytest.raises(ValidationError):
            DynamoDbTableConfig(**table_config(
                attributes=attributes,
                global_secondary_indexes=[{"name": "by-status", "hash_key": "status", "non_key_attributes": ["total"]}],
            ))


class TestStreamsAndEncryption:
    """Stream and encryption consistency rules."""

    def test_stream_requires_view_type(self):
        """stream_view_type is required when streaming."""
        with pytest.raises(ValidationError):
            DynamoDbTableConfig(**table_config(stream_enabled=True))

    def test_view_type_requires_stream(self):
        """stream_view_type is rejected without streaming."""
        with pytest.raises(ValidationError):
            DynamoDbTableConfig(**table_config(stream_view_type="NEW_IMAGE"))

    def test_kms_key_requires_encryption(self):
        """A customer key needs encryption enabled."""
        with pytest.raises(ValidationError):
            DynamoDbTableConfig(**table_config(server_side_encryption={
                "enabled": False,
                "kms_key_arn": "arn:aws:kms:us-east-1:123456789012:key/abc",
            }))

    def test_kms_key_must_be_kms_arn(self):
        """The encryption key must be a KMS ARN."""
        with pytest.raises(ValidationError):
            DynamoDbTableConfig(**table_config(server_side_encryption={
                "kms_key_arn": "arn:aws:sqs:us-east-1:123456789012:queue",
            }))


class TestRenderDynamoDbTable:
    """Rendering of the table declaration and outputs."""

    def test_on_demand_table(self, aws_context):
        """On-demand tables render without capacity and with default tags."""
        rendered = render_dynamodb_table(DynamoDbTableConfig(**table_config(tags={"Team": "orders"})), aws_context)
        table = rendered.resource("aws_dynamodb_table")

        assert rendered.name == "orders"
        assert "read_capacity" not in table.arguments
        assert table.arguments["tags"] == {"Environment": "test", "Team": "orders"}
        assert table.arguments["point_in_time_recovery"] == {"enabled": True}
        assert rendered.outputs["table_arn"] == "${aws_dynamodb_table.this.arn}"
        assert "table_stream_arn" not in rendered.outputs

    def test_stream_outputs(self, aws_context):
        """Stream outputs are only present when streaming."""
        config = DynamoDbTableConfig(**table_config(stream_enabled=True, stream_view_type="NEW_AND_OLD_IMAGES"))
        rendered = render_dynamodb_table(config, aws_context)

        assert rendered.outputs["table_stream_arn"] == "${aws_dynamodb_table.this.stream_arn}"
        assert rendered.resource("aws_dynamodb_table").arguments["stream_view_type"] == "NEW_AND_OLD_IMAGES"

    def test_ttl_and_indexes(self, aws_context):
        """TTL and index declarations follow the configuration."""
        config = DynamoDbTableConfig(**table_config(
            ttl_attribute="expires_at",
            attributes=[{"name": "pk", "type": "S"}, {"name": "sk", "type": "S"}, {"name": "status", "type": "S"}],
            global_secondary_indexes=[{"name": "by-status", "hash_key": "status"}],
        ))
        rendered = render_dynamodb_table(config, aws_context)
        table = rendered.resource("aws_dynamodb_table")

        assert table.arguments["ttl"] == {"attribute_name": "expires_at", "enabled": True}
        assert table.arguments["global_secondary_index"][0]["name"] == "by-status"
        assert rendered.outputs["global_secondary_index_names"] == ["by-status"]

    def test_alarms(self, aws_context):
        """Default alarms are keyed on the table name."""
        config = DynamoDbTableConfig(**table_config(alarms={
            "enabled": True,
            "overrides": {"SystemErrors": {"enabled": False}},
        }))
        alarms = render_dynamodb_table(config, aws_context).resources_of_type("aws_cloudwatch_metric_alarm")

        assert [alarm.name for alarm in alarms] == ["ReadThrottleEvents", "WriteThrottleEvents"]
        assert alarms[0].arguments["dimensions"] == {"TableName": "orders"}

    def test_render_does_not_mutate_config(self, aws_context):
        """Rendering leaves the input untouched."""
        config = DynamoDbTableConfig(**table_config())
        before = config.model_dump()
        render_dynamodb_table(config, aws_context)

        assert config.model_dump() == before
