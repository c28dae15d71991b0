import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from typesys.errors import RegistrationConflictError, RegistryFrozenError, UnknownResourceTypeError
from typesys.schema import Schema
from typesys.type_system import TypeRegistry

from .references import ComputedAttribute

logger = logging.getLogger(__name__)

# synthesize_fn(synthesizer, record) -> body
SynthesizeFn = Callable


@dataclass(frozen=True)
class ResourceDefinition:
    resource_type: str
    schema: Schema
    outputs: Tuple[str, ...] = ()
    computed: Tuple[ComputedAttribute, ...] = ()
    synthesize_fn: Optional[SynthesizeFn] = None
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "outputs", tuple(self.outputs))
        object.__setattr__(self, "computed", tuple(self.computed))


class ResourceRegistry:
    """Catalog of resource types and their validator/synthesizer pairs.

    Populated once at start-up and then frozen; sessions only read from it.
    """

    def __init__(self, type_registry: TypeRegistry):
        self.type_registry = type_registry
        self._definitions: Dict[str, ResourceDefinition] = {}
        self._frozen = False

    def register(self, definition: ResourceDefinition) -> ResourceDefinition:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register {definition.resource_type}: registry is frozen")

        existing = self._definitions.get(definition.resource_type)
        if existing is not None:
            if existing == definition:
                return existing
            raise RegistrationConflictError(
                f"Resource type {definition.resource_type} is already registered with a different schema"
            )

        # Undefined named types are a bug in the definition, so fail here rather than at validation
        self.type_registry.resolve_schema(definition.schema)
        self._definitions[definition.resource_type] = definition
        logger.debug("Registered resource type %s", definition.resource_type)
        return definition

    def register_schema(self, resource_type: str, schema: Schema, synthesize_fn: Optional[SynthesizeFn] = None,
                        outputs: Iterable[str] = (), computed: Iterable[ComputedAttribute] = (),
                        description: str = "") -> ResourceDefinition:
        return self.register(ResourceDefinition(
            resource_type=resource_type,
            schema=schema,
            outputs=tuple(outputs),
            computed=tuple(computed),
            synthesize_fn=synthesize_fn,
            description=description or schema.description,
        ))

    def lookup(self, resource_type: str) -> Optional[ResourceDefinition]:
        return self._definitions.get(resource_type)

    def get(self, resource_type: str) -> ResourceDefinition:
        definition = self.lookup(resource_type)
        if definition is None:
            raise UnknownResourceTypeError(resource_type, self.names())
        return definition

    def freeze(self) -> 'ResourceRegistry':
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> List[str]:
        return sorted(self._definitions)

    def __contains__(self, resource_type: str) -> bool:
        return resource_type in self._definitions

    def __iter__(self) -> Iterator[ResourceDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)
