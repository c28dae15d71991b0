from dataclasses import dataclass
from typing import List, Sequence, Tuple


class TfSynthError(Exception):
    """Base class for all tfsynth errors"""
    pass


class SchemaDefinitionError(TfSynthError):
    """A schema or type was declared incorrectly (a bug in the definition, not user input)"""
    pass


class RegistrationConflictError(TfSynthError):
    """A different definition was registered under a name that is already taken"""
    pass


class RegistryFrozenError(TfSynthError):
    """Registration attempted after the registry was frozen"""
    pass


class UnknownResourceTypeError(TfSynthError):
    def __init__(self, resource_type: str, known: Sequence[str] = ()):
        self.resource_type = resource_type
        self.known = tuple(known)
        message = f"Unknown resource type: {resource_type}"
        if self.known:
            message += f" (registered: {', '.join(sorted(self.known))})"
        super().__init__(message)


class DuplicateResourceError(TfSynthError):
    def __init__(self, resource_type: str, name: str):
        self.resource_type = resource_type
        self.name = name
        super().__init__(f"Duplicate resource identity: {resource_type}.{name}")


class TemplateLoadError(TfSynthError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not load template file {path}: {reason}")


class ConfigError(TfSynthError):
    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for '{key}': {reason}")


# ------------------------------
# Structured validation problems
# ------------------------------

@dataclass(frozen=True)
class FieldTypeError:
    """A single value that does not conform to its declared type or constraint"""
    path: str
    expected: str
    actual: str
    message: str
    # set when the problem comes from a nested schema and keeps its own classification
    kind: str = ""
    fields: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.message}"


@dataclass(frozen=True)
class ValidationError:
    path: str
    message: str
    fields: Tuple[str, ...] = ()
    kind: str = "type"  # 'missing', 'type', 'unknown' or 'rule'

    @classmethod
    def from_type_error(cls, error: FieldTypeError) -> 'ValidationError':
        leaf = error.path.split('.')[-1].split('[')[0] if error.path else ''
        kind = error.kind or ("missing" if error.actual == "missing" else "type")
        fields = error.fields or ((leaf,) if leaf else ())
        return cls(path=error.path, message=error.message, fields=fields, kind=kind)

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.message}"


class ValidationFailed(TfSynthError):
    """Raised at the session boundary when a resource's attributes do not validate"""

    def __init__(self, subject: str, errors: List[ValidationError]):
        self.subject = subject
        self.errors = list(errors)
        lines = [f"Validation failed for {subject} ({len(self.errors)} error(s)):"]
        lines.extend(f"  - {error}" for error in self.errors)
        super().__init__("\n".join(lines))
