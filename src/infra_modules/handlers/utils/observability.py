"""
Shared Powertools instances for the module contracts service.

Renderers, the registry, the composition layer and the API handler all log,
trace and emit metrics through the objects defined here. Service name comes
from POWERTOOLS_SERVICE_NAME; tracing is switched off in tests with
POWERTOOLS_TRACE_DISABLED.
"""

from aws_lambda_powertools.logging import Logger
from aws_lambda_powertools.metrics import Metrics
from aws_lambda_powertools.tracing import Tracer

METRICS_NAMESPACE = 'InfraModuleContracts'

logger: Logger = Logger()
tracer: Tracer = Tracer()

# POWERTOOLS_METRICS_NAMESPACE overrides the namespace when set
metrics = Metrics(namespace=METRICS_NAMESPACE)
