"""
Performance benchmarks for module validation and rendering.

Guards against regressions in the hot paths of the API: validating a module
configuration, rendering it, and rendering a composition with references.
"""

import pytest

from infra_modules.logic import registry
from infra_modules.logic.composition import CompositionConfig, render_composition

API_CONFIG = {
    "name": "orders-api",
    "routes": [
        {
            "path": f"/orders/{index}/items/{{item_id}}",
            "http_method": "GET",
            "integration": {"lambda_function_arn": "arn:aws:lambda:us-east-1:123456789012:function:orders"},
        }
        for index in range(25)
    ],
}

COMPOSITION = {
    "modules": [
        {"name": f"topic_{index}", "module": "sns_topic", "config": {"name": f"events-{index}"}}
        for index in range(20)
    ] + [
        {"name": "settings", "module": "ssm_parameters", "config": {"parameters": [
            {"name": f"/app/topic/{index}", "value": f"${{module.topic_{index}.topic_name}}"} for index in range(20)
        ]}},
    ],
}


@pytest.mark.benchmark
class TestModulePerformance:
    """Benchmarks for single modules."""

    def test_validate_api_performance(self, benchmark):
        """Benchmark validation of an API with many routes."""
        result = benchmark(registry.validate_module, "api_gateway_rest_api", API_CONFIG)

        assert len(result.routes) == 25

    def test_render_api_performance(self, benchmark, aws_context):
        """Benchmark rendering of an API with many routes."""
        result = benchmark(registry.render_module, "api_gateway_rest_api", API_CONFIG, aws_context)

        assert len(result.resources_of_type("aws_api_gateway_method")) == 25


@pytest.mark.benchmark
class TestCompositionPerformance:
    def test_render_composition_performance(self, benchmark, aws_context):
        """Benchmark ordering and substitution across many instances."""
        composition = CompositionConfig.model_validate(COMPOSITION)

        result = benchmark(render_composition, composition, aws_context)

        assert result.order[-1] == "settings"
        assert len(result.modules) == 21
