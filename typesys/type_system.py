import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from . import constraints as c
from .constraints import Constraint
from .errors import FieldTypeError, SchemaDefinitionError

logger = logging.getLogger(__name__)

# ------------------------------
# Type Definitions
# ------------------------------

class TypeKind(Enum):
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOL = "bool"
    ENUM = "enum"
    ARRAY = "array"
    MAP = "map"
    NESTED = "nested"
    OPTIONAL = "optional"
    ANY = "any"


PRIMITIVE_KINDS = (TypeKind.STRING, TypeKind.INTEGER, TypeKind.FLOAT, TypeKind.BOOL, TypeKind.ANY)

# 'number' is accepted the way the HCL type names spell it
_PRIMITIVE_ALIASES = {
    "string": TypeKind.STRING,
    "str": TypeKind.STRING,
    "integer": TypeKind.INTEGER,
    "int": TypeKind.INTEGER,
    "float": TypeKind.FLOAT,
    "number": TypeKind.FLOAT,
    "bool": TypeKind.BOOL,
    "boolean": TypeKind.BOOL,
    "any": TypeKind.ANY,
}


@dataclass(frozen=True)
class TypeDescriptor:
    """Tagged variant describing the shape of an attribute value"""
    kind: TypeKind
    name: str = ""
    values: Tuple[Any, ...] = ()
    element: Optional['TypeDescriptor'] = None
    key: Optional['TypeDescriptor'] = None
    schema: Any = None  # typesys.schema.Schema for NESTED
    inner: Optional['TypeDescriptor'] = None
    constraints: Tuple[Constraint, ...] = ()

    def describe(self) -> str:
        if self.name:
            return self.name
        if self.kind == TypeKind.ENUM:
            return f"enum({', '.join(map(str, self.values))})"
        if self.kind == TypeKind.ARRAY:
            return f"array<{self.element.describe()}>"
        if self.kind == TypeKind.MAP:
            return f"map<{self.key.describe()}, {self.element.describe()}>"
        if self.kind == TypeKind.NESTED:
            return self.schema.name
        if self.kind == TypeKind.OPTIONAL:
            return f"optional<{self.inner.describe()}>"
        return self.kind.value

    @property
    def is_optional(self) -> bool:
        return self.kind == TypeKind.OPTIONAL

    def unwrap(self) -> 'TypeDescriptor':
        """Strip Optional wrappers"""
        descriptor = self
        while descriptor.kind == TypeKind.OPTIONAL:
            descriptor = descriptor.inner
        return descriptor


TypeRef = Union[TypeDescriptor, str]


def _python_type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "map"
    return type(value).__name__


def _join(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


class TypeRegistry:
    """Manages type descriptors, named type aliases and value checking"""

    def __init__(self):
        self.types: Dict[str, TypeDescriptor] = {}

    # -- construction ---------------------------------------------------

    def define_primitive(self, kind: Union[TypeKind, str]) -> TypeDescriptor:
        if isinstance(kind, str):
            if kind not in _PRIMITIVE_ALIASES:
                raise SchemaDefinitionError(f"Unknown primitive type: {kind}")
            kind = _PRIMITIVE_ALIASES[kind]
        if kind not in PRIMITIVE_KINDS:
            raise SchemaDefinitionError(f"{kind.value} is not a primitive type")
        return TypeDescriptor(kind)

    def enum(self, *values: Any) -> TypeDescriptor:
        if not values:
            raise SchemaDefinitionError("An enum needs at least one value")
        return TypeDescriptor(TypeKind.ENUM, values=tuple(values))

    def array(self, element: TypeRef) -> TypeDescriptor:
        return TypeDescriptor(TypeKind.ARRAY, element=self.resolve(element))

    def map(self, key: TypeRef, value: TypeRef) -> TypeDescriptor:
        return TypeDescriptor(TypeKind.MAP, key=self.resolve(key), element=self.resolve(value))

    def nested(self, schema) -> TypeDescriptor:
        return TypeDescriptor(TypeKind.NESTED, schema=schema)

    def optional(self, inner: TypeRef) -> TypeDescriptor:
        return TypeDescriptor(TypeKind.OPTIONAL, inner=self.resolve(inner))

    def constrain(self, descriptor: TypeRef, *constraints: Constraint) -> TypeDescriptor:
        """Return a copy of descriptor with extra constraints; the original is untouched"""
        base = self.resolve(descriptor)
        return replace(base, constraints=base.constraints + tuple(constraints))

    # -- named types ----------------------------------------------------

    def register_type(self, name: str, descriptor: TypeDescriptor) -> TypeDescriptor:
        """Register a named alias such as 'CidrBlock'"""
        named = replace(descriptor, name=name)
        existing = self.types.get(name)
        if existing is not None:
            if existing == named:
                return existing
            raise SchemaDefinitionError(f"Type {name} is already registered with a different definition")
        self.types[name] = named
        logger.debug("Registered type %s as %s", name, descriptor.describe())
        return named

    def get_type(self, name: str) -> TypeDescriptor:
        if name in self.types:
            return self.types[name]
        if name in _PRIMITIVE_ALIASES:
            return self.define_primitive(name)
        raise SchemaDefinitionError(f"Type {name} not found")

    def resolve(self, type_ref: TypeRef) -> TypeDescriptor:
        if isinstance(type_ref, TypeDescriptor):
            return type_ref
        if isinstance(type_ref, str):
            return self.get_type(type_ref)
        raise SchemaDefinitionError(f"Not a type reference: {type_ref!r}")

    def resolve_schema(self, schema) -> None:
        """Check that every type a schema refers to, directly or nested, is defined"""
        for attribute in schema.attributes:
            descriptor = self.resolve(attribute.type)
            self._resolve_descriptor(descriptor, _join(schema.name, attribute.name))

    def _resolve_descriptor(self, descriptor: TypeDescriptor, where: str) -> None:
        for child in (descriptor.element, descriptor.key, descriptor.inner):
            if child is not None:
                self._resolve_descriptor(child, where)
        if descriptor.kind == TypeKind.NESTED:
            if descriptor.schema is None:
                raise SchemaDefinitionError(f"{where}: nested type without a schema")
            self.resolve_schema(descriptor.schema)

    # -- checking -------------------------------------------------------

    def validate_value_against_type(self, value: Any, type_ref: TypeRef) -> bool:
        _, errors = self.check(type_ref, value)
        return not errors

    def check(self, type_ref: TypeRef, value: Any, path: str = "") -> Tuple[Any, List[FieldTypeError]]:
        """Recursively check value against a descriptor.

        Returns the normalized value and the list of problems found. The
        normalized value is only meaningful when the list is empty.
        """
        descriptor = self.resolve(type_ref)

        if descriptor.kind == TypeKind.OPTIONAL:
            if value is None:
                return None, []
            normalized, errors = self.check(descriptor.inner, value, path)
            if not errors:
                errors = self._apply_constraints(descriptor, normalized, path)
            return normalized, errors

        if value is None:
            return None, [self._mismatch(descriptor, value, path, "Value cannot be null")]

        handler = self._handlers[descriptor.kind]
        normalized, errors = handler(self, descriptor, value, path)
        if errors:
            return normalized, errors
        return normalized, self._apply_constraints(descriptor, normalized, path)

    def _apply_constraints(self, descriptor: TypeDescriptor, value: Any, path: str) -> List[FieldTypeError]:
        errors = []
        for constraint in descriptor.constraints:
            message = constraint.check(value)
            if message:
                errors.append(FieldTypeError(
                    path=path,
                    expected=f"{descriptor.describe()} ({constraint.name}: {constraint.description})",
                    actual=repr(value),
                    message=message,
                ))
        return errors

    def _mismatch(self, descriptor: TypeDescriptor, value: Any, path: str, message: Optional[str] = None) -> FieldTypeError:
        expected = descriptor.describe()
        actual = _python_type_name(value)
        return FieldTypeError(
            path=path,
            expected=expected,
            actual=actual,
            message=message or f"Value must be of type {expected}, got {actual}",
        )

    def _check_string(self, descriptor, value, path):
        if isinstance(value, str):
            return value, []
        return value, [self._mismatch(descriptor, value, path)]

    def _check_integer(self, descriptor, value, path):
        if isinstance(value, int) and not isinstance(value, bool):
            return value, []
        return value, [self._mismatch(descriptor, value, path)]

    def _check_float(self, descriptor, value, path):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value), []
        return value, [self._mismatch(descriptor, value, path)]

    def _check_bool(self, descriptor, value, path):
        if isinstance(value, bool):
            return value, []
        return value, [self._mismatch(descriptor, value, path)]

    def _check_any(self, descriptor, value, path):
        return value, []

    def _check_enum(self, descriptor, value, path):
        # bool is an int subclass, so True would otherwise match an enum value of 1
        for allowed in descriptor.values:
            if value == allowed and type(value) is type(allowed):
                return value, []
        return value, [self._mismatch(
            descriptor, value, path,
            f"Value must be one of: {', '.join(map(str, descriptor.values))}, got '{value}'",
        )]

    def _check_array(self, descriptor, value, path):
        if not isinstance(value, (list, tuple)):
            return value, [self._mismatch(descriptor, value, path)]
        normalized, errors = [], []
        for index, item in enumerate(value):
            item_value, item_errors = self.check(descriptor.element, item, f"{path}[{index}]")
            normalized.append(item_value)
            errors.extend(item_errors)
        return normalized, errors

    def _check_map(self, descriptor, value, path):
        if not isinstance(value, Mapping):
            return value, [self._mismatch(descriptor, value, path)]
        string_keys = descriptor.key.unwrap().kind == TypeKind.STRING
        normalized, errors = {}, []
        for key, item in value.items():
            item_path = _join(path, key)
            key_value, key_errors = self.check(descriptor.key, str(key) if string_keys else key, item_path)
            item_value, item_errors = self.check(descriptor.element, item, item_path)
            errors.extend(key_errors)
            errors.extend(item_errors)
            normalized[str(key_value)] = item_value
        return normalized, errors

    def _check_nested(self, descriptor, value, path):
        # HCL block syntax loads a single block as a one-element list
        if isinstance(value, (list, tuple)) and len(value) == 1 and isinstance(value[0], Mapping):
            value = value[0]
        if not isinstance(value, Mapping):
            return value, [self._mismatch(descriptor, value, path)]
        from .validator import SchemaValidator

        validator = SchemaValidator(self)
        normalized, problems = validator.check_fields(descriptor.schema, value, path)
        return normalized, [
            FieldTypeError(
                path=problem.path,
                expected=descriptor.describe(),
                actual="missing" if problem.kind == "missing" else _python_type_name(value),
                message=problem.message,
                kind=problem.kind,
                fields=problem.fields,
            )
            for problem in problems
        ]

    _handlers = {
        TypeKind.STRING: _check_string,
        TypeKind.INTEGER: _check_integer,
        TypeKind.FLOAT: _check_float,
        TypeKind.BOOL: _check_bool,
        TypeKind.ANY: _check_any,
        TypeKind.ENUM: _check_enum,
        TypeKind.ARRAY: _check_array,
        TypeKind.MAP: _check_map,
        TypeKind.NESTED: _check_nested,
    }


def default_registry() -> TypeRegistry:
    """A TypeRegistry preloaded with the shared cloud and network types"""
    registry = TypeRegistry()
    string = registry.define_primitive("string")
    integer = registry.define_primitive("integer")

    registry.register_type("CidrBlock", registry.constrain(string, c.cidr_block()))
    registry.register_type("Ipv6CidrBlock", registry.constrain(string, c.ipv6_cidr_block()))
    registry.register_type("Port", registry.constrain(integer, c.port()))
    registry.register_type("IpProtocol", registry.enum('tcp', 'udp', 'icmp', 'icmpv6', 'all', '-1'))
    registry.register_type("AwsRegion", registry.constrain(string, c.aws_region()))
    registry.register_type("AwsAvailabilityZone", registry.constrain(string, c.aws_availability_zone()))
    registry.register_type("AwsTags", registry.map(string, string))
    registry.register_type("Arn", registry.constrain(string, c.arn()))
    registry.register_type("DomainName", registry.constrain(string, c.domain_name()))
    registry.register_type("Email", registry.constrain(string, c.email()))
    registry.register_type("JsonDocument", registry.constrain(string, c.json_document()))
    registry.register_type("InstanceTenancy", registry.enum('default', 'dedicated', 'host'))
    registry.register_type("EbsVolumeType", registry.enum('gp2', 'gp3', 'io1', 'io2', 'st1', 'sc1', 'standard'))
    return registry
