"""
Module Models Package

This package contains the Pydantic input models for every module, with their
field and cross-field preconditions, and the shared declaration types.
"""

from .common import AwsContext, ModuleConfig, RenderedModule, ResourceDeclaration

__all__ = [
    'AwsContext',
    'ModuleConfig',
    'RenderedModule',
    'ResourceDeclaration',
]
