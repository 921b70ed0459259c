"""
Composition of module instances by reference.

A composition is a list of named module instances. An instance consumes another
instance's output through a ``${module.<instance>.<output>}`` token anywhere in
its configuration. Instances are rendered in dependency order; references to
literal outputs are substituted before validation, references to outputs only
known to the executor are kept as tokens.
"""

import re
from typing import Annotated, Any, Dict, List, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from infra_modules.handlers.utils.errors import CompositionError, field_errors_from
from infra_modules.handlers.utils.observability import logger, tracer
from infra_modules.logic import registry
from infra_modules.models.arns import MODULE_REFERENCE_PATTERN, is_reference
from infra_modules.models.common import AwsContext, RenderedModule, find_duplicates


class ModuleInstance(BaseModel):
    """A named instance of a module type."""

    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(
        pattern=r'^[A-Za-z0-9_-]+$',
        description='Instance name used in ${module.<name>.<output>} references',
        examples=['orders_table']
    )]

    module: Annotated[str, Field(description='Registered module type', examples=['dynamodb_table'])]

    config: Annotated[Dict[str, Any], Field(default_factory=dict, description='Module configuration')]


class CompositionConfig(BaseModel):
    """A set of module instances wired together by reference."""

    model_config = ConfigDict(extra='forbid')

    modules: Annotated[List[ModuleInstance], Field(min_length=1)]

    @field_validator('modules')
    @classmethod
    def validate_unique_names(cls, v: List[ModuleInstance]) -> List[ModuleInstance]:
        duplicates = find_duplicates([instance.name for instance in v])
        if duplicates:
            raise ValueError(f"duplicate module instance names: {', '.join(duplicates)}")
        return v

    def instance(self, name: str) -> ModuleInstance:
        for instance in self.modules:
            if instance.name == name:
                return instance
        raise KeyError(name)


class RenderedComposition(BaseModel):
    """Rendered module instances in dependency order."""

    modules: List[RenderedModule] = Field(default_factory=list)

    @property
    def order(self) -> List[str]:
        return [rendered.name for rendered in self.modules]

    def module(self, name: str) -> RenderedModule:
        """
        Look up a rendered instance.

        Raises:
            KeyError: If no instance has that name
        """
        for rendered in self.modules:
            if rendered.name == name:
                return rendered
        raise KeyError(name)

    def outputs(self, name: str) -> Dict[str, Any]:
        return self.module(name).outputs

    def to_dict(self) -> Dict[str, Any]:
        return {
            'order': self.order,
            'modules': [rendered.to_dict() for rendered in self.modules],
        }


def module_references(value: Any) -> List[Tuple[str, str]]:
    """(instance, output) pairs referenced anywhere in a nested value, in order of appearance."""
    if isinstance(value, str):
        return MODULE_REFERENCE_PATTERN.findall(value)
    if isinstance(value, dict):
        return [reference for item in value.values() for reference in module_references(item)]
    if isinstance(value, list):
        return [reference for item in value for reference in module_references(item)]
    return []


def _contains_reference(value: Any) -> bool:
    if isinstance(value, str):
        return is_reference(value)
    if isinstance(value, dict):
        return any(_contains_reference(item) for item in value.values())
    if isinstance(value, list):
        return any(_contains_reference(item) for item in value)
    return False


def _find_cycle(graph: Dict[str, List[str]], names: List[str]) -> List[str]:
    """Return one reference cycle as a closed path, or an empty list."""
    visiting: List[str] = []
    done: Set[str] = set()

    def visit(node: str) -> List[str]:
        if node in visiting:
            return visiting[visiting.index(node):] + [node]
        if node in done:
            return []
        visiting.append(node)
        for upstream in graph[node]:
            cycle = visit(upstream)
            if cycle:
                return cycle
        visiting.pop()
        done.add(node)
        return []

    for name in names:
        cycle = visit(name)
        if cycle:
            return cycle
    return []


def dependency_order(composition: CompositionConfig) -> List[str]:
    """
    Order instances so that every instance follows the instances it references.

    Ties are broken by declaration order, so the result is deterministic.

    Raises:
        CompositionError: If a reference names an unknown instance or itself, or references form a cycle
    """
    names = [instance.name for instance in composition.modules]
    graph: Dict[str, List[str]] = {}
    for instance in composition.modules:
        upstream: List[str] = []
        for target, output in module_references(instance.config):
            if target == instance.name:
                raise CompositionError(
                    f"module '{instance.name}' references its own output '{output}'",
                    module_name=instance.name,
                )
            if target not in names:
                raise CompositionError(
                    f"module '{instance.name}' references unknown module '{target}'",
                    module_name=instance.name,
                )
            if target not in upstream:
                upstream.append(target)
        graph[instance.name] = upstream

    order: List[str] = []
    remaining = list(names)
    while remaining:
        ready = [name for name in remaining if all(upstream in order for upstream in graph[name])]
        if not ready:
            cycle = _find_cycle(graph, remaining)
            raise CompositionError(f"reference cycle between modules: {' -> '.join(cycle)}")
        order.append(ready[0])
        remaining.remove(ready[0])
    return order


def resolve_references(value: Any, rendered: Dict[str, RenderedModule], instance_name: str) -> Any:
    """
    Substitute references to literal outputs of already rendered instances.

    A string that is exactly one token takes the output value as-is. Tokens
    embedded in a longer string are substituted only by scalar outputs.

    Raises:
        CompositionError: If a referenced output is not declared by its module
    """
    if isinstance(value, dict):
        return {key: resolve_references(item, rendered, instance_name) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_references(item, rendered, instance_name) for item in value]
    if not isinstance(value, str):
        return value

    def lookup(target: str, output: str) -> Any:
        outputs = rendered[target].outputs
        if output not in outputs:
            raise CompositionError(
                f"module '{instance_name}' references undeclared output '{output}' of module '{target}'",
                module_name=instance_name,
            )
        return outputs[output]

    whole = MODULE_REFERENCE_PATTERN.fullmatch(value)
    if whole is not None:
        resolved = lookup(*whole.groups())
        return value if resolved is None or _contains_reference(resolved) else resolved

    def substitute(match: re.Match) -> str:
        resolved = lookup(*match.groups())
        if isinstance(resolved, (str, int, float)) and not isinstance(resolved, bool) and not _contains_reference(resolved):
            return str(resolved)
        return match.group(0)

    return MODULE_REFERENCE_PATTERN.sub(substitute, value)


@tracer.capture_method
def render_composition(composition: CompositionConfig, context: AwsContext) -> RenderedComposition:
    """
    Validate and render every instance of a composition.

    Args:
        composition: Module instances to render
        context: Target account and region shared by all instances

    Returns:
        Rendered instances in dependency order

    Raises:
        UnknownModuleError: If an instance uses an unregistered module type
        CompositionError: If references cannot be satisfied or an instance fails validation
    """
    for instance in composition.modules:
        registry.get_module(instance.module)

    order = dependency_order(composition)
    rendered: Dict[str, RenderedModule] = {}
    for name in order:
        instance = composition.instance(name)
        config = resolve_references(instance.config, rendered, name)
        try:
            rendered[name] = registry.render_module(instance.module, config, context, instance_name=name)
        except PydanticValidationError as exc:
            raise CompositionError(
                f"module '{name}' ({instance.module}) failed validation",
                module_name=name,
                field_errors=[
                    {**error, 'field': f"{name}.{error['field']}"} for error in field_errors_from(exc)
                ],
            ) from exc

    logger.info('Composition rendered', extra={
        'module_count': len(order),
        'order': order,
        'resource_count': sum(len(module.resources) for module in rendered.values()),
    })
    return RenderedComposition(modules=[rendered[name] for name in order])
