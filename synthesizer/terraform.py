import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional

from typesys.schema import ArrayMode, Attribute, Schema, is_set
from typesys.type_system import TypeDescriptor, TypeKind, TypeRegistry
from typesys.validator import ValidatedRecord, thaw

from .data_and_types import DuplicatePolicy, ResourceIdentity, TerraformDocument

logger = logging.getLogger(__name__)


def _shape(value: Any) -> str:
    if isinstance(value, Mapping):
        return "map"
    if isinstance(value, (list, tuple)):
        return "array"
    return "scalar"


class DocumentSynthesizer:
    """Renders validated records into Terraform JSON resource bodies.

    Each attribute is written by a renderer picked from a dispatch table
    keyed on the shape of its value (map, array or scalar). Nested schemas
    become blocks; arrays follow the attribute's declared ArrayMode.
    """

    def __init__(self, type_registry: TypeRegistry):
        self.type_registry = type_registry
        self._renderers: Dict[str, Callable[[Attribute, TypeDescriptor, Any], Any]] = {
            "map": self._render_map,
            "array": self._render_array,
            "scalar": self._render_scalar,
        }

    def render(self, schema: Schema, record: Mapping) -> Dict[str, Any]:
        """Build the attribute body for one resource (or one nested block)"""
        body: Dict[str, Any] = {}
        for attribute in schema.attributes:
            if attribute.name not in record:
                continue
            value = record[attribute.name]
            descriptor = self.type_registry.resolve(attribute.type).unwrap()
            rendered = self.render_value(attribute, descriptor, value)
            if not is_set(rendered) and not attribute.always_emit:
                continue
            body[attribute.output_key] = rendered

        if schema.allow_unknown:
            for key, value in record.items():
                if key not in schema and is_set(value):
                    body[key] = thaw(value)
        return body

    def render_value(self, attribute: Attribute, descriptor: TypeDescriptor, value: Any) -> Any:
        if value is None:
            return None
        return self._renderers[_shape(value)](attribute, descriptor, value)

    def _render_scalar(self, attribute: Attribute, descriptor: TypeDescriptor, value: Any) -> Any:
        return value

    def _render_map(self, attribute: Attribute, descriptor: TypeDescriptor, value: Mapping) -> Any:
        if descriptor.kind == TypeKind.NESTED:
            return self.render(descriptor.schema, value)
        element = descriptor.element.unwrap() if descriptor.element is not None else None
        if element is not None and element.kind == TypeKind.NESTED:
            return {key: self.render(element.schema, item) for key, item in value.items()}
        # free-form maps such as tags are written as-is
        return thaw(value)

    def _render_array(self, attribute: Attribute, descriptor: TypeDescriptor, value: Any) -> Any:
        element = descriptor.element.unwrap() if descriptor.element is not None else None
        if attribute.array_mode == ArrayMode.BLOCKS:
            blocks = []
            for item in value:
                if element is not None and element.kind == TypeKind.NESTED and isinstance(item, Mapping):
                    blocks.append(self.render(element.schema, item))
                else:
                    blocks.append(thaw(item))
            return [block for block in blocks if is_set(block)]
        return thaw(value)

    def synthesize(self, document: TerraformDocument, resource_type: str, name: str,
                   record: ValidatedRecord, policy: DuplicatePolicy = DuplicatePolicy.ERROR,
                   synthesize_fn: Optional[Callable] = None) -> Dict[str, Any]:
        """Render record and register it in document under (resource_type, name)"""
        if not isinstance(record, ValidatedRecord):
            raise TypeError("synthesize() needs a ValidatedRecord; run the SchemaValidator first")
        identity = ResourceIdentity(resource_type, str(name))
        if synthesize_fn is not None:
            body = synthesize_fn(self, record)
        else:
            body = self.render(record.schema, record)
        document.add_resource(identity, body, policy)
        logger.debug("Synthesized %s with %d attribute(s)", identity, len(body))
        return body
