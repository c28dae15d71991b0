import copy
import inspect
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple, Union

from .errors import SchemaDefinitionError
from .type_system import TypeDescriptor

# ------------------------------
# Attribute Declarations
# ------------------------------

class ArrayMode(Enum):
    """How an array-valued attribute is written to the Terraform JSON document"""
    LIST = "list"      # a plain JSON array value
    BLOCKS = "blocks"  # repeated nested blocks, each rendered like a sub-resource body


_MISSING = object()


@dataclass(frozen=True)
class Attribute:
    name: str
    type: Union[TypeDescriptor, str]
    required: bool = False
    default: Any = _MISSING
    always_emit: bool = False
    array_mode: ArrayMode = ArrayMode.LIST
    emit_as: Optional[str] = None
    description: str = ""

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING

    @property
    def output_key(self) -> str:
        return self.emit_as or self.name

    def default_value(self, record: Mapping) -> Any:
        """Evaluate the default; callables may take the record built so far"""
        default = self.default
        if callable(default):
            try:
                parameters = inspect.signature(default).parameters
            except (TypeError, ValueError):
                # some builtins such as dict have no introspectable signature
                return default()
            positional = [
                parameter for parameter in parameters.values()
                if parameter.kind in (parameter.POSITIONAL_ONLY, parameter.POSITIONAL_OR_KEYWORD)
                and parameter.default is parameter.empty
            ]
            return default(record) if positional else default()
        if isinstance(default, (dict, list)):
            # never hand out the shared default instance
            return copy.deepcopy(default)
        return default


def is_set(value: Any) -> bool:
    """A value counts as set when it is not None and not an empty string or collection"""
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value) > 0
    return True


# ------------------------------
# Cross-field Rules
# ------------------------------

@dataclass(frozen=True)
class CrossFieldRule:
    name: str
    fields: Tuple[str, ...]
    check: Callable[[Mapping], Optional[str]]
    description: str = ""


def rule(name: str, fields: Sequence[str], fn: Callable[[Mapping], Optional[str]], description: str = "") -> CrossFieldRule:
    return CrossFieldRule(name, tuple(fields), fn, description)


def _names(fields: Iterable[str]) -> str:
    return ", ".join(fields)


def mutually_exclusive(*fields: str) -> CrossFieldRule:
    def check(record):
        present = [name for name in fields if is_set(record.get(name))]
        if len(present) <= 1:
            return None
        if len(fields) == 2:
            return f"{fields[0]} and {fields[1]} cannot both be set"
        return f"only one of {_names(fields)} may be set (got {_names(present)})"
    return rule("mutually_exclusive", fields, check, f"at most one of {_names(fields)}")


def at_least_one_of(*fields: str) -> CrossFieldRule:
    def check(record):
        if any(is_set(record.get(name)) for name in fields):
            return None
        return f"at least one of {_names(fields)} must be set"
    return rule("at_least_one_of", fields, check, f"one or more of {_names(fields)}")


def exactly_one_of(*fields: str) -> CrossFieldRule:
    def check(record):
        present = [name for name in fields if is_set(record.get(name))]
        if len(present) == 1:
            return None
        got = _names(present) if present else "none"
        return f"exactly one of {_names(fields)} must be set (got {got})"
    return rule("exactly_one_of", fields, check, f"exactly one of {_names(fields)}")


def requires(field_name: str, *dependencies: str) -> CrossFieldRule:
    def check(record):
        if not is_set(record.get(field_name)):
            return None
        missing = [name for name in dependencies if not is_set(record.get(name))]
        if missing:
            return f"{field_name} requires {_names(missing)}"
        return None
    return rule("requires", (field_name,) + dependencies, check, f"{field_name} needs {_names(dependencies)}")


def ordered(lower: str, upper: str) -> CrossFieldRule:
    def check(record):
        low, high = record.get(lower), record.get(upper)
        if low is None or high is None:
            return None
        if low > high:
            return f"{lower} ({low}) cannot be greater than {upper} ({high})"
        return None
    return rule("ordered", (lower, upper), check, f"{lower} <= {upper}")


def within_range(field_name: str, lower: str, upper: str) -> CrossFieldRule:
    def check(record):
        value = record.get(field_name)
        if value is None:
            return None
        low, high = record.get(lower), record.get(upper)
        if (low is not None and value < low) or (high is not None and value > high):
            return f"{field_name} ({value}) must be between {lower} ({low}) and {upper} ({high})"
        return None
    return rule("within_range", (field_name, lower, upper), check, f"{lower} <= {field_name} <= {upper}")


def allowed_when(field_name: str, values: Iterable[Any], when: Tuple[str, Iterable[Any]]) -> CrossFieldRule:
    """Restrict field_name to `values` while another field holds one of the `when` values"""
    allowed = tuple(values)
    other, trigger_values = when[0], tuple(when[1])

    def check(record):
        if record.get(other) not in trigger_values:
            return None
        value = record.get(field_name)
        if value is None or value in allowed:
            return None
        return (f"when {other} is '{record.get(other)}', {field_name} must be one of: "
                f"{_names(map(str, allowed))} (got '{value}')")
    return rule("allowed_when", (field_name, other), check, f"{field_name} depends on {other}")


def pairs_with(field_name: str, mapping: Dict[Any, Any], other: str) -> CrossFieldRule:
    """A value of field_name dictates the value (or set of values) other must hold"""
    def check(record):
        value = record.get(field_name)
        if value not in mapping:
            return None
        expected = mapping[value]
        expected = tuple(expected) if isinstance(expected, (list, tuple, set, frozenset)) else (expected,)
        actual = record.get(other)
        if actual in expected:
            return None
        wanted = " or ".join(f"'{item}'" for item in expected)
        return f"{field_name} '{value}' requires {other} {wanted}, got '{actual}'"
    return rule("pairs_with", (field_name, other), check, f"{field_name} determines {other}")


# ------------------------------
# Schema
# ------------------------------

@dataclass(frozen=True)
class Schema:
    """A named, ordered set of attribute declarations plus cross-field rules.

    Schemas are declared once at start-up and never mutated; `extend`
    returns a new schema.
    """
    name: str
    attributes: Tuple[Attribute, ...] = ()
    rules: Tuple[CrossFieldRule, ...] = ()
    allow_unknown: bool = False
    description: str = ""
    _index: Dict[str, Attribute] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "attributes", tuple(self.attributes))
        object.__setattr__(self, "rules", tuple(self.rules))

        index: Dict[str, Attribute] = {}
        for attribute in self.attributes:
            if not isinstance(attribute, Attribute):
                raise SchemaDefinitionError(f"{self.name}: {attribute!r} is not an Attribute")
            if attribute.name in index:
                raise SchemaDefinitionError(f"{self.name}: attribute {attribute.name} declared twice")
            if attribute.required and attribute.has_default:
                raise SchemaDefinitionError(f"{self.name}: required attribute {attribute.name} cannot have a default")
            index[attribute.name] = attribute

        for cross_rule in self.rules:
            undeclared = [name for name in cross_rule.fields if name not in index]
            if undeclared:
                raise SchemaDefinitionError(
                    f"{self.name}: rule {cross_rule.name} refers to undeclared attribute(s) {_names(undeclared)}"
                )
        object.__setattr__(self, "_index", index)

    def attribute(self, name: str) -> Optional[Attribute]:
        return self._index.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._index

    @property
    def attribute_names(self) -> Tuple[str, ...]:
        return tuple(attribute.name for attribute in self.attributes)

    @property
    def required_names(self) -> Tuple[str, ...]:
        return tuple(attribute.name for attribute in self.attributes if attribute.required)

    def extend(self, name: str, attributes: Iterable[Attribute] = (), rules: Iterable[CrossFieldRule] = (),
               allow_unknown: Optional[bool] = None) -> 'Schema':
        """Derive a schema: base attributes first, same-named attributes overridden in place"""
        overrides = {attribute.name: attribute for attribute in attributes}
        merged = [overrides.pop(attribute.name, attribute) for attribute in self.attributes]
        merged.extend(overrides.values())
        return Schema(
            name=name,
            attributes=tuple(merged),
            rules=self.rules + tuple(rules),
            allow_unknown=self.allow_unknown if allow_unknown is None else allow_unknown,
            description=self.description,
        )
