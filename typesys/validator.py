import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import SchemaDefinitionError, ValidationError, ValidationFailed
from .schema import Schema
from .type_system import TypeRegistry

logger = logging.getLogger(__name__)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def freeze(value: Any) -> Any:
    """Deep read-only copy: dicts become mapping proxies, lists become tuples"""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze, producing plain dicts and lists"""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value


class ValidatedRecord(Mapping):
    """Immutable, normalized attribute record.

    Only SchemaValidator builds these. Every required attribute is present,
    every value matches its declared type and every cross-field rule held.
    """

    __slots__ = ("schema", "_data")

    def __init__(self, schema: Schema, data: Dict[str, Any]):
        self.schema = schema
        self._data = freeze(data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ValidatedRecord({self.schema.name}, {dict(self._data)!r})"

    def to_dict(self) -> Dict[str, Any]:
        return thaw(self._data)


@dataclass
class ValidationResult:
    record: Optional[ValidatedRecord] = None
    errors: List[ValidationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.record is not None and not self.errors

    def raise_for_errors(self, subject: str = "attributes") -> ValidatedRecord:
        if not self.ok:
            raise ValidationFailed(subject, self.errors)
        return self.record


class SchemaValidator:
    """Validates raw attribute maps against a Schema, collecting every problem in one pass"""

    def __init__(self, type_registry: TypeRegistry):
        self.type_registry = type_registry

    def validate(self, schema: Schema, raw: Any, path: str = "") -> ValidationResult:
        normalized, errors = self.check_fields(schema, raw, path)
        if errors:
            logger.debug("Schema %s rejected input with %d error(s)", schema.name, len(errors))
            return ValidationResult(errors=errors)
        return ValidationResult(record=ValidatedRecord(schema, normalized))

    def check_fields(self, schema: Schema, raw: Any, path: str = "") -> Tuple[Dict[str, Any], List[ValidationError]]:
        """Field checks, defaults and cross-field rules for one (possibly nested) schema.

        Returns a new normalized dict; `raw` is never modified.
        """
        if not isinstance(raw, Mapping):
            return {}, [ValidationError(path, f"Expected a map of attributes for {schema.name}, got {type(raw).__name__}")]

        supplied = {str(key): value for key, value in raw.items()}
        errors: List[ValidationError] = []
        record: Dict[str, Any] = {}
        pending_defaults = []

        for key in supplied:
            if key not in schema and not schema.allow_unknown:
                errors.append(ValidationError(_join(path, key), "unknown attribute", (key,), "unknown"))

        # 1-2: presence and type checks of supplied values
        for attribute in schema.attributes:
            value = supplied.get(attribute.name)
            attribute_path = _join(path, attribute.name)
            if value is None:
                if attribute.has_default:
                    pending_defaults.append(attribute)
                elif attribute.required:
                    errors.append(ValidationError(
                        attribute_path, "missing required attribute", (attribute.name,), "missing"
                    ))
                continue

            normalized, type_errors = self.type_registry.check(attribute.type, value, attribute_path)
            errors.extend(ValidationError.from_type_error(error) for error in type_errors)
            record[attribute.name] = normalized

        if errors:
            return {}, errors

        # Defaults are applied in declaration order so derived defaults see earlier ones
        for attribute in pending_defaults:
            value = attribute.default_value(MappingProxyType(record))
            if value is None:
                continue
            normalized, type_errors = self.type_registry.check(attribute.type, value, _join(path, attribute.name))
            if type_errors:
                raise SchemaDefinitionError(
                    f"{schema.name}.{attribute.name}: default value {value!r} is invalid: {type_errors[0].message}"
                )
            record[attribute.name] = normalized

        ordered = {attribute.name: record[attribute.name] for attribute in schema.attributes if attribute.name in record}
        if schema.allow_unknown:
            for key, value in supplied.items():
                if key not in schema and value is not None:
                    ordered[key] = value

        # 3: cross-field rules; later rules usually assume earlier ones held
        view = MappingProxyType(ordered)
        for cross_rule in schema.rules:
            message = cross_rule.check(view)
            if message:
                return {}, [ValidationError(
                    _join(path, cross_rule.fields[0]) if cross_rule.fields else path,
                    message,
                    cross_rule.fields,
                    "rule",
                )]
        return ordered, []
