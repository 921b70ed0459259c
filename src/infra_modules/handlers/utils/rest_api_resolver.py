"""
API Gateway REST resolver for the module contracts API.

Holds the route prefixes used by the handler and the Swagger/OpenAPI setup
that ``scripts/generate_openapi.py`` reads back.
"""

from aws_lambda_powertools.event_handler import APIGatewayRestResolver, CORSConfig
from aws_lambda_powertools.event_handler.openapi.models import Tag

HEALTH_PATH = '/health'
MODULES_PATH = '/modules'
COMPOSITIONS_PATH = '/compositions'

API_TAGS = [
    Tag(name='Modules', description='Validate, describe and render single modules'),
    Tag(name='Compositions', description='Render module instances wired by ${module.<name>.<output>} references'),
    Tag(name='Health', description='Service status'),
]

app = APIGatewayRestResolver(
    cors=CORSConfig(allow_origin='*', allow_headers=['content-type', 'authorization'], max_age=600),
    enable_validation=True,
)

app.enable_swagger(
    path='/swagger',
    title='Infrastructure Module Contracts API',
    version='1.0.0',
    description='Validates module configurations and renders them to resource declarations',
    tags=API_TAGS,
)
