import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from typesys.errors import ValidationFailed
from typesys.validator import SchemaValidator, ValidationResult

from .data_and_types import DuplicatePolicy, ResourceIdentity, TerraformDocument
from .references import ReferenceResolver, ResourceReference
from .registry import ResourceRegistry
from .terraform import DocumentSynthesizer

logger = logging.getLogger(__name__)


class SynthesisSession:
    """One synthesis run: validate, synthesize and resolve resources in declaration order.

    The registries are shared read-only; the document and the reference
    namespace belong to this session alone.
    """

    def __init__(self, registry: ResourceRegistry, duplicate_policy: DuplicatePolicy = DuplicatePolicy.ERROR):
        self.registry = registry
        self.duplicate_policy = DuplicatePolicy.parse(duplicate_policy)
        self.validator = SchemaValidator(registry.type_registry)
        self.synthesizer = DocumentSynthesizer(registry.type_registry)
        self.resolver = ReferenceResolver()
        self.document = TerraformDocument()
        self._references: Dict[ResourceIdentity, ResourceReference] = {}

    def validate(self, resource_type: str, attributes: Mapping[str, Any]) -> ValidationResult:
        definition = self.registry.get(resource_type)
        return self.validator.validate(definition.schema, attributes)

    def resource(self, resource_type: str, name: str, attributes: Optional[Mapping[str, Any]] = None) -> ResourceReference:
        definition = self.registry.get(resource_type)
        identity = ResourceIdentity(resource_type, str(name))

        result = self.validator.validate(definition.schema, attributes if attributes is not None else {})
        if not result.ok:
            raise ValidationFailed(identity.address, result.errors)

        self.synthesizer.synthesize(
            self.document, resource_type, identity.name, result.record,
            policy=self.duplicate_policy, synthesize_fn=definition.synthesize_fn,
        )
        reference = self.resolver.reference(identity, result.record, definition.outputs, definition.computed)
        self._references[identity] = reference
        return reference

    def reference(self, resource_type: str, name: str) -> Optional[ResourceReference]:
        return self._references.get(ResourceIdentity(resource_type, str(name)))

    @property
    def references(self) -> Mapping[ResourceIdentity, ResourceReference]:
        return MappingProxyType(self._references)

    def synthesis(self) -> Dict[str, Any]:
        return self.document.to_dict()

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.document.to_json(indent=indent)
