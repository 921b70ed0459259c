"""
Modules Handler - Lambda function for the module contracts API.

This module implements the handler layer over the module registry and the
composition renderer: request parsing, AWS context resolution, error mapping
and metrics.
"""

import functools
import json
from typing import Any, Callable, Dict

from aws_lambda_powertools.event_handler import Response, content_types
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import ValidationError

from infra_modules.handlers.models.env_vars import ModuleServiceEnvVars, build_aws_context, get_service_env_vars
from infra_modules.handlers.utils.errors import (
    BadRequestError,
    CompositionError,
    ConfigValidationError,
    ErrorContext,
    ModuleServiceError,
    PayloadTooLargeError,
    format_error_response,
    get_http_status_code,
    log_error_metrics,
)
from infra_modules.handlers.utils.observability import logger, metrics, tracer
from infra_modules.handlers.utils.rest_api_resolver import COMPOSITIONS_PATH, HEALTH_PATH, MODULES_PATH, app
from infra_modules.logic import registry
from infra_modules.logic.composition import CompositionConfig, render_composition
from infra_modules.models.common import AwsContext

SERVICE_VERSION = '1.0.0'


def json_response(status_code: int, body: Any) -> Response:
    return Response(
        status_code=status_code,
        content_type=content_types.APPLICATION_JSON,
        body=json.dumps(body),
    )


def _request_context(operation: str, module_name: str | None = None) -> ErrorContext:
    request_context = app.current_event.request_context
    request_id = request_context.request_id if request_context else 'unknown'
    return ErrorContext(request_id=request_id, operation=operation, module_name=module_name)


def handle_service_errors(func: Callable[..., Response]) -> Callable[..., Response]:
    """Decorator converting service and validation errors to HTTP responses."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Response:
        try:
            return func(*args, **kwargs)
        except ModuleServiceError as e:
            log_error_metrics(e)
            if isinstance(e, (ConfigValidationError, CompositionError)):
                metrics.add_metric(name='ModuleValidationFailed', unit=MetricUnit.Count, value=1)
            return json_response(
                get_http_status_code(e),
                format_error_response(e, include_details=not get_service_env_vars().is_production),
            )
        except ValidationError as e:
            # Pydantic errors raised outside the module registry, e.g. an invalid context override
            logger.warning('Request validation failed', extra={'error_count': e.error_count()})
            metrics.add_metric(name='ModuleValidationFailed', unit=MetricUnit.Count, value=1)
            validation_error = ConfigValidationError.from_pydantic(e, message='Request validation failed')
            return json_response(get_http_status_code(validation_error), format_error_response(validation_error))

    return wrapper


def parse_request(env: ModuleServiceEnvVars, context: ErrorContext) -> tuple[Dict[str, Any], AwsContext]:
    """
    Parse a ``{"config": {...}, "context": {...}}`` request body.

    Args:
        env: Service environment variables
        context: Error context for the request

    Returns:
        Raw configuration and the AWS context with caller overrides applied

    Raises:
        PayloadTooLargeError: If the body exceeds MAX_REQUEST_SIZE_KB
        BadRequestError: If the body is not a JSON object of the expected shape
    """
    raw_body = app.current_event.body or '{}'
    size_kb = len(raw_body.encode('utf-8')) / 1024
    if size_kb > env.MAX_REQUEST_SIZE_KB:
        raise PayloadTooLargeError(size_kb=size_kb, limit_kb=env.MAX_REQUEST_SIZE_KB, context=context)

    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise BadRequestError(message=f'Invalid JSON in request body: {e.msg}', context=context) from e
    if not isinstance(body, dict):
        raise BadRequestError(message='Request body must be a JSON object', context=context)

    config = body.get('config', {})
    overrides = body.get('context', {})
    if not isinstance(config, dict) or not isinstance(overrides, dict):
        raise BadRequestError(message="'config' and 'context' must be JSON objects", context=context)
    return config, build_aws_context(env, overrides)


def _validation_failed(module_name: str, error: ValidationError, context: ErrorContext) -> ConfigValidationError:
    return ConfigValidationError.from_pydantic(
        error,
        message=f"Configuration for module '{module_name}' failed validation",
        context=context,
    )


@app.get(HEALTH_PATH, tags=['Health'])
@tracer.capture_method
def health_check() -> Response:
    """Health check endpoint."""
    env = get_service_env_vars()
    return json_response(200, {
        'status': 'healthy',
        'version': SERVICE_VERSION,
        'environment': env.ENVIRONMENT,
        'module_count': len(registry.REGISTRY),
    })


@app.get(MODULES_PATH, tags=['Modules'])
@tracer.capture_method
def list_modules() -> Response:
    """List registered module types."""
    modules = registry.list_modules()
    logger.info('Modules listed', extra={'module_count': len(modules)})
    return json_response(200, {'modules': modules})


@app.get(f'{MODULES_PATH}/<module_name>/schema', tags=['Modules'])
@tracer.capture_method
@handle_service_errors
def get_module_schema(module_name: str) -> Response:
    """Return the JSON schema of a module's input."""
    tracer.put_annotation('module', module_name)
    return json_response(200, {'module': module_name, 'schema': registry.module_schema(module_name)})


@app.post(f'{MODULES_PATH}/<module_name>/validate', tags=['Modules'])
@tracer.capture_method
@handle_service_errors
def validate_module(module_name: str) -> Response:
    """Validate a module configuration without rendering it."""
    context = _request_context('validate_module', module_name)
    tracer.put_annotation('module', module_name)
    config, _ = parse_request(get_service_env_vars(), context)
    try:
        registry.validate_module(module_name, config)
    except ValidationError as e:
        raise _validation_failed(module_name, e, context) from e
    return json_response(200, {'valid': True, 'module': module_name})


@app.post(f'{MODULES_PATH}/<module_name>/render', tags=['Modules'])
@tracer.capture_method
@handle_service_errors
def render_module(module_name: str) -> Response:
    """Validate and render a module configuration."""
    context = _request_context('render_module', module_name)
    tracer.put_annotation('module', module_name)
    config, aws_context = parse_request(get_service_env_vars(), context)
    try:
        rendered = registry.render_module(module_name, config, aws_context)
    except ValidationError as e:
        raise _validation_failed(module_name, e, context) from e

    metrics.add_metric(name='ModuleRendered', unit=MetricUnit.Count, value=1)
    return json_response(200, rendered.to_dict())


@app.post(f'{COMPOSITIONS_PATH}/render', tags=['Compositions'])
@tracer.capture_method
@handle_service_errors
def render_composition_route() -> Response:
    """Render a composition of module instances."""
    context = _request_context('render_composition')
    config, aws_context = parse_request(get_service_env_vars(), context)
    try:
        composition = CompositionConfig.model_validate(config)
    except ValidationError as e:
        raise ConfigValidationError.from_pydantic(e, message='Composition failed validation', context=context) from e

    try:
        rendered = render_composition(composition, aws_context)
    except CompositionError as e:
        e.context = context
        raise

    metrics.add_metric(name='CompositionRendered', unit=MetricUnit.Count, value=1)
    metrics.add_metric(name='ModuleRendered', unit=MetricUnit.Count, value=len(rendered.modules))
    return json_response(200, rendered.to_dict())


@tracer.capture_lambda_handler
@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_REST)
@metrics.log_metrics(capture_cold_start_metric=True)
def lambda_handler(event: Dict[str, Any], context: LambdaContext) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Args:
        event: API Gateway REST event
        context: Lambda context object

    Returns:
        API Gateway response
    """
    metrics.add_metric(name='RequestCount', unit=MetricUnit.Count, value=1)
    return app.resolve(event, context)
