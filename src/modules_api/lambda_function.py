"""
Entry point of the module contracts API function.

The deployed handler string is ``modules_api.lambda_function.lambda_handler``;
routing and error mapping live in ``infra_modules.handlers.modules_handler``.
"""

from typing import Any, Dict

from aws_lambda_powertools.utilities.typing import LambdaContext

from infra_modules.handlers.modules_handler import lambda_handler as modules_handler


def lambda_handler(event: Dict[str, Any], context: LambdaContext) -> Dict[str, Any]:
    return modules_handler(event, context)
