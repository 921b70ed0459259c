"""
Unit tests for the shared declaration model, ARN helpers, IAM documents and alarms.
"""

import pytest
from pydantic import ValidationError

from infra_modules.logic.alarms import alarm_declarations, merge_alarms
from infra_modules.logic.iam import PolicyDocument, PolicyStatement, assume_role_policy, role_declarations
from infra_modules.models.alarms import AlarmDefinition, AlarmOverride, AlarmsConfig, check_alarm_overrides
from infra_modules.models.arns import (
    build_arn,
    check_arn,
    is_reference,
    lambda_function_arn,
    parse_arn,
    s3_objects_arn,
    sqs_queue_arn_from_url,
    ssm_parameter_arn,
)
from infra_modules.models.common import (
    AwsContext,
    ModuleConfig,
    RenderedModule,
    ResourceDeclaration,
    compact,
    find_duplicates,
    local_name,
    unique_local_name,
)


class TestAwsContext:
    """Test cases for AwsContext."""

    def test_defaults(self):
        """Region and partition have defaults."""
        context = AwsContext(account_id="123456789012")

        assert context.region == "us-east-1"
        assert context.partition == "aws"
        assert context.dns_suffix == "amazonaws.com"

    def test_invalid_account_id(self):
        """Account ids are 12 digits."""
        with pytest.raises(ValidationError):
            AwsContext(account_id="12345")

    def test_invalid_region(self):
        """Regions follow the AWS naming scheme."""
        with pytest.raises(ValidationError):
            AwsContext(account_id="123456789012", region="moon-1")

    def test_china_dns_suffix(self):
        """The aws-cn partition uses the .cn suffix."""
        context = AwsContext(account_id="123456789012", region="cn-north-1", partition="aws-cn")

        assert context.dns_suffix == "amazonaws.com.cn"


class TestResourceDeclaration:
    """Test cases for ResourceDeclaration and RenderedModule."""

    def test_address_and_ref(self):
        """References point at an attribute of the declared resource."""
        table = ResourceDeclaration(type="aws_dynamodb_table", name="this")

        assert table.address == "aws_dynamodb_table.this"
        assert table.ref("arn") == "${aws_dynamodb_table.this.arn}"

    def test_invalid_local_name(self):
        """Local names cannot start with a digit."""
        with pytest.raises(ValidationError):
            ResourceDeclaration(type="aws_dynamodb_table", name="1table")

    def test_resource_lookup(self):
        """Rendered modules look up resources by type and name."""
        table = ResourceDeclaration(type="aws_dynamodb_table", name="this")
        rendered = RenderedModule(module="dynamodb_table", name="orders", resources=[table])

        assert rendered.resource("aws_dynamodb_table") is table
        assert rendered.resources_of_type("aws_dynamodb_table") == [table]
        with pytest.raises(KeyError):
            rendered.resource("aws_iam_role")

    def test_to_dict(self):
        """Rendered modules serialize to plain dictionaries."""
        rendered = RenderedModule(module="kms_key", name="key", outputs={"key_id": "${aws_kms_key.this.key_id}"})

        assert rendered.to_dict()["outputs"] == {"key_id": "${aws_kms_key.this.key_id}"}


class TestModuleConfig:
    """Test cases for the tag rules shared by every module."""

    def test_module_tags_override_defaults(self, aws_context):
        """Module tags win over context default tags."""
        config = ModuleConfig(tags={"Environment": "prod", "Team": "payments"})

        assert config.merged_tags(aws_context) == {"Environment": "prod", "Team": "payments"}

    def test_reserved_tag_prefix(self):
        """Tag keys cannot use the aws: prefix."""
        with pytest.raises(ValidationError) as exc_info:
            ModuleConfig(tags={"aws:owner": "me"})

        assert "reserved" in str(exc_info.value)

    def test_too_many_tags(self):
        """At most 50 tags are allowed."""
        with pytest.raises(ValidationError):
            ModuleConfig(tags={f"key{i}": "value" for i in range(51)})

    def test_long_tag_value(self):
        """Tag values are limited to 256 characters."""
        with pytest.raises(ValidationError):
            ModuleConfig(tags={"key": "v" * 257})

    def test_unknown_fields_rejected(self):
        """Module inputs reject unknown fields."""
        with pytest.raises(ValidationError):
            ModuleConfig(unknown=True)


class TestHelpers:
    """Test cases for the small helpers used by renderers."""

    def test_compact_drops_none(self):
        """None values disappear from nested dictionaries and lists."""
        assert compact({"a": None, "b": {"c": None, "d": 1}, "e": [None, 2]}) == {"b": {"d": 1}, "e": [2]}

    def test_find_duplicates(self):
        """Duplicates are reported once, in first-seen order."""
        assert find_duplicates(["a", "b", "a", "c", "b", "a"]) == ["a", "b"]

    def test_local_name(self):
        """Arbitrary identifiers become valid local names."""
        assert local_name("alias/my.key") == "alias_my_key"
        assert local_name("2fa") == "_2fa"
        assert local_name("***") == "this"

    def test_unique_local_name(self):
        """Identifiers that normalize to the same local name are suffixed."""
        taken: set[str] = set()

        names = [unique_local_name(value, taken) for value in ["site.assets", "site_assets", "site-assets", "site.assets"]]

        assert names == ["site_assets", "site_assets_1", "site-assets", "site_assets_2"]
        assert taken == {"site_assets", "site_assets_1", "site-assets", "site_assets_2"}


class TestArns:
    """Test cases for ARN parsing and construction."""

    def test_parse_arn(self):
        """ARNs split into their parts."""
        arn = parse_arn("arn:aws:lambda:us-east-1:123456789012:function:my-function")

        assert arn.service == "lambda"
        assert arn.region == "us-east-1"
        assert arn.account == "123456789012"
        assert arn.resource_type == "function"
        assert arn.resource_id == "my-function"
        assert str(arn) == "arn:aws:lambda:us-east-1:123456789012:function:my-function"

    def test_parse_s3_arn_without_region_or_account(self):
        """Global ARNs have empty region and account."""
        arn = parse_arn("arn:aws:s3:::my-bucket")

        assert arn.region == ""
        assert arn.account == ""
        assert arn.resource_type is None

    @pytest.mark.parametrize("value", [
        "not-an-arn",
        "arn:aws:sqs:us-east-1",
        "arn:azure:sqs:us-east-1:123456789012:queue",
        "arn:aws:sqs:us-east-1:1234:queue",
        "arn:aws::us-east-1:123456789012:queue",
    ])
    def test_malformed_arns(self, value):
        """Malformed ARNs raise ValueError."""
        with pytest.raises(ValueError):
            parse_arn(value)

    def test_check_arn_service(self):
        """check_arn restricts the service."""
        assert check_arn("arn:aws:sqs:us-east-1:123456789012:dlq", "sqs", "sns")
        with pytest.raises(ValueError) as exc_info:
            check_arn("arn:aws:s3:::bucket", "sqs")

        assert "must be a sqs ARN" in str(exc_info.value)

    def test_check_arn_skips_references(self):
        """Reference tokens are accepted without parsing."""
        token = "${module.queue.queue_arn}"

        assert is_reference(token)
        assert check_arn(token, "sqs") == token

    def test_builders(self):
        """Service-specific builders produce literal ARNs."""
        assert build_arn("aws", "kms", "us-east-1", "123456789012", "alias/app") == (
            "arn:aws:kms:us-east-1:123456789012:alias/app"
        )
        assert s3_objects_arn("aws", "bucket", "/builds/") == "arn:aws:s3:::bucket/builds/*"
        assert s3_objects_arn("aws", "bucket") == "arn:aws:s3:::bucket/*"
        assert ssm_parameter_arn("aws", "us-east-1", "123456789012", "/app/db") == (
            "arn:aws:ssm:us-east-1:123456789012:parameter/app/db"
        )
        assert lambda_function_arn("aws", "us-east-1", "123456789012", "fn") == (
            "arn:aws:lambda:us-east-1:123456789012:function:fn"
        )

    def test_sqs_queue_arn_from_url(self):
        """Queue URLs convert to queue ARNs."""
        url = "https://sqs.eu-west-1.amazonaws.com/123456789012/jobs.fifo"

        assert sqs_queue_arn_from_url("aws", url) == "arn:aws:sqs:eu-west-1:123456789012:jobs.fifo"
        with pytest.raises(ValueError):
            sqs_queue_arn_from_url("aws", "https://example.com/queue")


class TestPolicyDocument:
    """Test cases for IAM policy assembly."""

    def test_statements_merge_by_sid(self):
        """Adding a statement with an existing sid merges actions and resources."""
        policy = PolicyDocument()
        policy.add(PolicyStatement(sid="S3", actions=["s3:GetObject"], resources=["arn:aws:s3:::a/*"]))
        policy.add(PolicyStatement(sid="S3", actions=["s3:PutObject", "s3:GetObject"], resources=["arn:aws:s3:::b/*"]))

        statement = policy.to_dict()["Statement"][0]
        assert len(policy.statements) == 1
        assert statement["Action"] == ["s3:GetObject", "s3:PutObject"]
        assert statement["Resource"] == ["arn:aws:s3:::a/*", "arn:aws:s3:::b/*"]

    def test_document_shape(self):
        """Documents carry the policy language version."""
        policy = PolicyDocument().add(PolicyStatement(
            sid="Logs",
            actions=["logs:PutLogEvents"],
            conditions={"StringEquals": {"aws:SourceAccount": "123456789012"}},
        ))
        document = policy.to_dict()

        assert document["Version"] == "2012-10-17"
        assert document["Statement"][0]["Resource"] == ["*"]
        assert document["Statement"][0]["Condition"] == {"StringEquals": {"aws:SourceAccount": "123456789012"}}
        assert policy.has_statement("Logs")
        assert policy.get("Missing") is None
        assert policy.sids == ["Logs"]

    def test_empty_document_is_falsy(self):
        """An empty document evaluates false."""
        assert not PolicyDocument()

    def test_assume_role_policy(self):
        """Trust policies name the service principals."""
        single = assume_role_policy("lambda.amazonaws.com")
        multiple = assume_role_policy("lambda.amazonaws.com", "edgelambda.amazonaws.com")

        assert single["Statement"][0]["Principal"] == {"Service": "lambda.amazonaws.com"}
        assert multiple["Statement"][0]["Principal"]["Service"] == ["lambda.amazonaws.com", "edgelambda.amazonaws.com"]

    def test_role_declarations_skip_empty_policy(self):
        """No inline policy is declared for an empty document."""
        declarations = role_declarations(
            "deployer", ["codedeploy.amazonaws.com"], PolicyDocument(), {},
            managed_policy_arns=["arn:aws:iam::aws:policy/service-role/AWSCodeDeployRole"],
        )

        assert [declaration.type for declaration in declarations] == ["aws_iam_role", "aws_iam_role_policy_attachment"]
        assert declarations[1].name == "this_0"


class TestAlarms:
    """Test cases for default alarm merging."""

    @pytest.fixture
    def defaults(self):
        return {
            "Errors": AlarmDefinition(namespace="AWS/Lambda", metric_name="Errors", threshold=1),
            "Throttles": AlarmDefinition(namespace="AWS/Lambda", metric_name="Throttles", threshold=1),
        }

    def test_override_patches_fields(self, defaults):
        """Overrides patch only the fields they set."""
        merged = merge_alarms(defaults, {"Errors": AlarmOverride(threshold=5, evaluation_periods=3)})

        assert merged["Errors"].threshold == 5
        assert merged["Errors"].evaluation_periods == 3
        assert merged["Errors"].metric_name == "Errors"
        assert merged["Throttles"] == defaults["Throttles"]

    def test_disabled_override_removes_alarm(self, defaults):
        """enabled=false drops a default alarm."""
        merged = merge_alarms(defaults, {"Throttles": AlarmOverride(enabled=False)})

        assert list(merged) == ["Errors"]

    def test_new_alarm_requires_complete_definition(self, defaults):
        """Alarms without a default must be complete."""
        with pytest.raises(ValueError) as exc_info:
            merge_alarms(defaults, {"Custom": AlarmOverride(threshold=3)})

        assert "Custom" in str(exc_info.value)

        merged = merge_alarms(defaults, {"Custom": AlarmOverride(namespace="App", metric_name="Failures", threshold=3)})
        assert list(merged) == ["Errors", "Throttles", "Custom"]

    def test_check_alarm_overrides(self):
        """Incomplete added alarms fail model validation."""
        config = AlarmsConfig(enabled=True, overrides={"Custom": AlarmOverride(threshold=1)})

        with pytest.raises(ValueError):
            check_alarm_overrides(config, ("Errors",))
        check_alarm_overrides(config, ("Custom",))

    def test_alarm_declarations(self, defaults):
        """Enabled alarms render one metric alarm per merged alarm."""
        config = AlarmsConfig(enabled=True, alarm_actions=["arn:aws:sns:us-east-1:123456789012:alerts"])
        declarations = alarm_declarations("orders", config, defaults, {"FunctionName": "orders"}, {})

        assert [declaration.name for declaration in declarations] == ["Errors", "Throttles"]
        assert declarations[0].arguments["alarm_name"] == "orders-Errors"
        assert declarations[0].arguments["dimensions"] == {"FunctionName": "orders"}
        assert declarations[0].arguments["alarm_actions"] == ["arn:aws:sns:us-east-1:123456789012:alerts"]

    def test_disabled_alarms_render_nothing(self, defaults):
        """Nothing is rendered unless alarms are enabled."""
        assert alarm_declarations("orders", None, defaults, {}, {}) == []
        assert alarm_declarations("orders", AlarmsConfig(), defaults, {}, {}) == []
