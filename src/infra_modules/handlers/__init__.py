"""
AWS Lambda Handlers Module.

The modules handler serves the REST API in front of the registry and the
composition renderer, using AWS Lambda Powertools for routing, structured
logging, tracing and metrics.
"""
