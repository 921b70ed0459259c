"""
Unit tests for the module registry and composition rendering.
"""

import pytest
from pydantic import ValidationError

from infra_modules.handlers.utils.errors import CompositionError, UnknownModuleError
from infra_modules.logic import registry
from infra_modules.logic.composition import (
    CompositionConfig,
    dependency_order,
    module_references,
    render_composition,
)

TOPIC = {"name": "events", "module": "sns_topic", "config": {"name": "order-events"}}


def parameter_instance(name: str, value: str) -> dict:
    return {
        "name": name,
        "module": "ssm_parameters",
        "config": {"parameters": [{"name": f"/app/{name}", "value": value}]},
    }


class TestRegistry:
    """Module lookup, validation and rendering by module type."""

    def test_all_module_types_registered(self):
        assert [module["module"] for module in registry.list_modules()] == [
            "api_gateway_rest_api",
            "cloudfront_distribution",
            "codebuild_project",
            "codedeploy_application",
            "codepipeline",
            "cognito_user_pool",
            "dynamodb_table",
            "eventbridge_rule",
            "kms_key",
            "lambda_function",
            "route53_records",
            "route53_zone",
            "s3_bucket",
            "ses_domain_identity",
            "sns_topic",
            "ssm_parameters",
            "step_functions_state_machine",
        ]

    def test_unknown_module(self):
        with pytest.raises(UnknownModuleError) as exc_info:
            registry.get_module("ec2_instance")

        assert exc_info.value.error_code == "MODULE_NOT_FOUND"
        assert exc_info.value.module_name == "ec2_instance"

    def test_validate_module_raises_pydantic_errors(self):
        with pytest.raises(ValidationError):
            registry.validate_module("sns_topic", {"name": "bad name"})

    def test_render_module_with_instance_name(self, aws_context):
        rendered = registry.render_module("sns_topic", {"name": "order-events"}, aws_context, instance_name="events")

        assert rendered.name == "events"
        assert rendered.module == "sns_topic"

    def test_logs_at_info_level(self, aws_context):
        """Validation and rendering emit their INFO records without clashing with log record fields."""
        level = registry.logger.log_level
        registry.logger.setLevel("INFO")
        try:
            config = registry.validate_module("sns_topic", {"name": "order-events"})
            rendered = registry.render_module("sns_topic", {"name": "order-events"}, aws_context)
        finally:
            registry.logger.setLevel(level)

        assert config.name == "order-events"
        assert rendered.module == "sns_topic"

    def test_module_schema(self):
        schema = registry.module_schema("kms_key")

        assert schema["additionalProperties"] is False
        assert "aliases" in schema["properties"]


class TestDependencyOrder:
    """Ordering and reference checks."""

    def test_references_are_collected_from_nested_values(self):
        config = {"a": ["${module.x.arn}", {"b": "prefix-${module.y.name}"}], "c": 1}

        assert module_references(config) == [("x", "arn"), ("y", "name")]

    def test_instances_follow_their_dependencies(self):
        composition = CompositionConfig(modules=[
            parameter_instance("consumer", "${module.events.topic_name}"),
            TOPIC,
            parameter_instance("standalone", "plain"),
        ])

        assert dependency_order(composition) == ["events", "consumer", "standalone"]

    def test_unknown_module_reference(self):
        composition = CompositionConfig(modules=[parameter_instance("consumer", "${module.missing.topic_arn}")])

        with pytest.raises(CompositionError) as exc_info:
            dependency_order(composition)

        assert "references unknown module 'missing'" in exc_info.value.message

    def test_self_reference(self):
        composition = CompositionConfig(modules=[parameter_instance("consumer", "${module.consumer.parameter_names}")])

        with pytest.raises(CompositionError) as exc_info:
            dependency_order(composition)

        assert "references its own output" in exc_info.value.message

    def test_cycle(self):
        composition = CompositionConfig(modules=[
            parameter_instance("a", "${module.b.parameter_names}"),
            parameter_instance("b", "${module.a.parameter_names}"),
        ])

        with pytest.raises(CompositionError) as exc_info:
            dependency_order(composition)

        assert "reference cycle between modules: a -> b -> a" in exc_info.value.message

    def test_duplicate_instance_names(self):
        with pytest.raises(ValidationError):
            CompositionConfig(modules=[TOPIC, TOPIC])


class TestRenderComposition:
    """Rendering with reference substitution."""

    def test_literal_outputs_are_substituted(self, aws_context):
        composition = CompositionConfig(modules=[
            TOPIC,
            parameter_instance("consumer", "topic=${module.events.topic_name}"),
            parameter_instance("exact", "${module.events.topic_name}"),
        ])
        rendered = render_composition(composition, aws_context)

        consumer = rendered.module("consumer").resource("aws_ssm_parameter", "app_consumer")
        assert consumer.arguments["value"] == "topic=order-events"
        exact = rendered.module("exact").resource("aws_ssm_parameter", "app_exact")
        assert exact.arguments["value"] == "order-events"
        assert rendered.order == ["events", "consumer", "exact"]

    def test_executor_outputs_stay_tokens(self, aws_context):
        """Outputs only known at apply time are passed through as references."""
        composition = CompositionConfig(modules=[TOPIC, parameter_instance("consumer", "${module.events.topic_arn}")])
        rendered = render_composition(composition, aws_context)

        parameter = rendered.module("consumer").resource("aws_ssm_parameter", "app_consumer")
        assert parameter.arguments["value"] == "${module.events.topic_arn}"

    def test_undeclared_output(self, aws_context):
        composition = CompositionConfig(modules=[TOPIC, parameter_instance("consumer", "${module.events.queue_url}")])

        with pytest.raises(CompositionError) as exc_info:
            render_composition(composition, aws_context)

        assert "undeclared output 'queue_url' of module 'events'" in exc_info.value.message

    def test_invalid_instance_is_reported_with_its_name(self, aws_context):
        composition = CompositionConfig(modules=[TOPIC, {"name": "broken", "module": "kms_key", "config": {"aliases": ["bad"]}}])

        with pytest.raises(CompositionError) as exc_info:
            render_composition(composition, aws_context)

        assert exc_info.value.module_name == "broken"
        assert exc_info.value.field_errors[0]["field"] == "broken.aliases"

    def test_unknown_module_type(self, aws_context):
        composition = CompositionConfig(modules=[{"name": "vm", "module": "ec2_instance"}])

        with pytest.raises(UnknownModuleError):
            render_composition(composition, aws_context)

    def test_to_dict(self, aws_context):
        rendered = render_composition(CompositionConfig(modules=[TOPIC]), aws_context)
        document = rendered.to_dict()

        assert document["order"] == ["events"]
        assert document["modules"][0]["outputs"]["topic_name"] == "order-events"
