"""
Rendering Logic Layer Module.

Each module has a pure renderer turning a validated input model into resource
declarations and outputs. The registry maps module types to their models and
renderers; the composition layer renders instances that reference each other.
"""
