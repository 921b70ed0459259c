"""
Error types for the module contracts service.

Errors raised by the registry, the composition layer and the API handler all
derive from ModuleServiceError. Each type carries a stable code returned to API
callers and a category used for metrics; validation failures also carry the
offending fields.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from aws_lambda_powertools.metrics import MetricUnit
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from infra_modules.handlers.utils.observability import logger, metrics, tracer

FieldErrors = List[Dict[str, str]]


class ErrorCategory(str, Enum):
    """Metric category of an error."""
    REQUEST = "REQUEST"
    VALIDATION = "VALIDATION"
    COMPOSITION = "COMPOSITION"
    LOOKUP = "LOOKUP"


class ErrorContext(BaseModel):
    """The request and module an error belongs to."""

    request_id: str = Field(description="API Gateway request id")
    operation: str = Field(description="Handler operation, e.g. render_module")
    module_name: Optional[str] = Field(default=None, description="Module type or instance name")
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ModuleServiceError(Exception):
    """Base class for errors reported to API and CLI callers."""

    error_code = "SERVICE_ERROR"
    category = ErrorCategory.REQUEST

    def __init__(
        self,
        message: str,
        field_errors: Optional[FieldErrors] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors or []
        self.context = context
        self.error_id = str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_id": self.error_id,
            "error_code": self.error_code,
            "category": self.category.value,
            "message": self.message,
            "field_errors": self.field_errors,
            "context": self.context.model_dump(mode="json") if self.context else None,
        }


class BadRequestError(ModuleServiceError):
    """The request body cannot be parsed."""

    error_code = "BAD_REQUEST"


class PayloadTooLargeError(ModuleServiceError):
    """The request body exceeds MAX_REQUEST_SIZE_KB."""

    error_code = "PAYLOAD_TOO_LARGE"

    def __init__(self, size_kb: float, limit_kb: int, context: Optional[ErrorContext] = None):
        super().__init__(f"Request body of {size_kb:.1f} KB exceeds the {limit_kb} KB limit", context=context)
        self.size_kb = size_kb
        self.limit_kb = limit_kb


class ConfigValidationError(ModuleServiceError):
    """A module configuration, composition or context failed its preconditions."""

    error_code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION

    @classmethod
    def from_pydantic(
        cls,
        error: PydanticValidationError,
        message: str = "Module configuration failed validation",
        context: Optional[ErrorContext] = None,
    ) -> "ConfigValidationError":
        return cls(message, field_errors=field_errors_from(error), context=context)


class UnknownModuleError(ModuleServiceError):
    """The module type is not registered."""

    error_code = "MODULE_NOT_FOUND"
    category = ErrorCategory.LOOKUP

    def __init__(self, module_name: str, context: Optional[ErrorContext] = None):
        super().__init__(f"Module '{module_name}' not found", context=context)
        self.module_name = module_name


class CompositionError(ModuleServiceError):
    """Module references in a composition cannot be satisfied."""

    error_code = "COMPOSITION_ERROR"
    category = ErrorCategory.COMPOSITION

    def __init__(
        self,
        message: str,
        module_name: Optional[str] = None,
        field_errors: Optional[FieldErrors] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message, field_errors=field_errors, context=context)
        self.module_name = module_name


STATUS_CODES = {
    BadRequestError.error_code: 400,
    UnknownModuleError.error_code: 404,
    PayloadTooLargeError.error_code: 413,
    ConfigValidationError.error_code: 422,
    CompositionError.error_code: 422,
}


def field_errors_from(error: PydanticValidationError) -> FieldErrors:
    """Flatten pydantic errors into field/message/type dictionaries."""
    return [
        {
            "field": ".".join(str(part) for part in item["loc"]) or "__root__",
            "message": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]


@tracer.capture_method
def log_error_metrics(error: ModuleServiceError) -> None:
    """Count the error by category and log it with its context."""
    metrics.add_metric(name="ErrorCount", unit=MetricUnit.Count, value=1)
    metrics.add_metric(name=f"{error.category.value.title()}ErrorCount", unit=MetricUnit.Count, value=1)

    tracer.put_annotation("error_code", error.error_code)

    logger.warning("Request rejected", extra={
        "error_id": error.error_id,
        "error_code": error.error_code,
        "error_message": error.message,
        "field_error_count": len(error.field_errors),
        "context": error.context.model_dump(mode="json") if error.context else None,
    })


def format_error_response(error: ModuleServiceError, include_details: bool = False) -> Dict[str, Any]:
    """
    API response body for an error.

    Args:
        error: The error to report
        include_details: Add the operation and module from the error context

    Returns:
        Response body with an ``error`` object
    """
    body: Dict[str, Any] = {
        "code": error.error_code,
        "message": error.message,
        "error_id": error.error_id,
    }
    if include_details and error.context:
        body["details"] = {
            "operation": error.context.operation,
            "module": error.context.module_name,
        }
    if error.field_errors:
        body["validation_errors"] = error.field_errors
    return {"error": body}


def get_http_status_code(error: ModuleServiceError) -> int:
    return STATUS_CODES.get(error.error_code, 500)
