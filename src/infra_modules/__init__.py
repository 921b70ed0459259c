"""
Infrastructure module contracts.

Typed input schemas, preconditions and renderers for declarative AWS
infrastructure modules:

- models: input models and preconditions per module, plus shared types
- logic: renderers deriving resource declarations, IAM documents and outputs
- handlers: API Gateway handler exposing validation and rendering

Rendering is static: nothing here calls AWS. The declarations are consumed by
an infrastructure-as-code executor.
"""

__version__ = "1.0.0"
