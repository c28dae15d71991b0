from .errors import (
    ConfigError,
    DuplicateResourceError,
    FieldTypeError,
    RegistrationConflictError,
    RegistryFrozenError,
    SchemaDefinitionError,
    TemplateLoadError,
    TfSynthError,
    UnknownResourceTypeError,
    ValidationError,
    ValidationFailed,
)
from .schema import (
    ArrayMode,
    Attribute,
    CrossFieldRule,
    Schema,
    allowed_when,
    at_least_one_of,
    exactly_one_of,
    is_set,
    mutually_exclusive,
    ordered,
    pairs_with,
    requires,
    rule,
    within_range,
)
from .type_system import TypeDescriptor, TypeKind, TypeRegistry, default_registry
from .validator import SchemaValidator, ValidatedRecord, ValidationResult
