import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from typesys.errors import DuplicateResourceError, UnknownResourceTypeError, ValidationFailed

from .data_and_types import DuplicatePolicy
from .loaders import ResourceSpec, TemplateSpec, load_templates
from .registry import ResourceRegistry
from .session import SynthesisSession

logger = logging.getLogger(__name__)


@dataclass
class CompilationResult:
    template_name: str
    success: bool
    terraform_json: Optional[str] = None
    document: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    references: Dict[str, Dict[str, Any]] = field(default_factory=dict)


def _is_ref(value: Any) -> bool:
    return isinstance(value, dict) and list(value) == ['ref'] and isinstance(value['ref'], str)


class TemplateCompiler:
    """Compiles loaded templates into Terraform JSON, one fresh session per template"""

    def __init__(self, registry: ResourceRegistry, duplicate_policy: DuplicatePolicy = DuplicatePolicy.ERROR,
                 namespace: str = "default", backend: Optional[Dict[str, Any]] = None, json_indent: Optional[int] = 2):
        self.registry = registry
        self.duplicate_policy = DuplicatePolicy.parse(duplicate_policy)
        self.namespace = namespace
        self.backend = backend
        self.json_indent = json_indent

    @classmethod
    def from_settings(cls, registry: ResourceRegistry, settings) -> 'TemplateCompiler':
        return cls(
            registry,
            duplicate_policy=settings.duplicate_policy,
            namespace=settings.namespace,
            backend=settings.backend,
            json_indent=settings.json_indent,
        )

    def compile_file(self, path: str, template_name: Optional[str] = None) -> Dict[str, CompilationResult]:
        templates = load_templates(path)
        if template_name is not None:
            if template_name not in templates:
                return {template_name: CompilationResult(
                    template_name=template_name,
                    success=False,
                    errors=[f"Template '{template_name}' not found in {path}"],
                )}
            templates = {template_name: templates[template_name]}
        return {name: self.compile_template(spec) for name, spec in templates.items()}

    def compile_template(self, spec: TemplateSpec) -> CompilationResult:
        session = SynthesisSession(self.registry, self.duplicate_policy)
        result = CompilationResult(template_name=spec.name, success=False)

        for resource in spec.resources:
            self._compile_resource(session, resource, result)

        backend, backend_errors = self._backend(spec)
        result.errors.extend(backend_errors)
        session.document.backend = backend

        result.references = {
            str(identity): reference.to_dict() for identity, reference in session.references.items()
        }
        result.document = session.synthesis()
        result.success = not result.errors
        if result.success:
            result.terraform_json = session.to_json(indent=self.json_indent)
            logger.info("Compiled template %s: %d resource(s)", spec.name, session.document.resource_count)
        else:
            logger.info("Template %s failed with %d error(s)", spec.name, len(result.errors))
        return result

    def _compile_resource(self, session: SynthesisSession, resource: ResourceSpec, result: CompilationResult) -> None:
        address = resource.address
        attributes, ref_errors = self.resolve_refs(session, resource.attributes)
        if ref_errors:
            result.errors.extend(f"{address}: {error}" for error in ref_errors)
            return

        try:
            reference = session.resource(resource.resource_type, resource.name, attributes)
        except ValidationFailed as e:
            result.errors.extend(f"{address}: {error}" for error in e.errors)
            return
        except (UnknownResourceTypeError, DuplicateResourceError) as e:
            result.errors.append(f"{address}: <root>: {e}")
            return

        definition = self.registry.get(resource.resource_type)
        if "tags" in definition.schema and not reference.attributes.get("tags"):
            result.warnings.append(f"untagged resource {address}")

    def resolve_refs(self, session: SynthesisSession, value: Any, path: str = "") -> Tuple[Any, List[str]]:
        """Replace {ref: "type.name.attr"} markers with interpolation strings of earlier resources"""
        if _is_ref(value):
            target = value['ref']
            parts = target.split('.')
            reference = session.reference(parts[0], parts[1]) if len(parts) == 3 else None
            if reference is None:
                return value, [f"{path or '<root>'}: unknown reference '{target}'"]
            return reference.ref(parts[2]), []

        errors: List[str] = []
        if isinstance(value, dict):
            resolved = {}
            for key, item in value.items():
                resolved[key], item_errors = self.resolve_refs(session, item, f"{path}.{key}" if path else str(key))
                errors.extend(item_errors)
            return resolved, errors
        if isinstance(value, list):
            resolved_items = []
            for index, item in enumerate(value):
                resolved_item, item_errors = self.resolve_refs(session, item, f"{path}[{index}]")
                resolved_items.append(resolved_item)
                errors.extend(item_errors)
            return resolved_items, errors
        return value, errors

    def _backend(self, spec: TemplateSpec) -> Tuple[Optional[Dict[str, Any]], List[str]]:
        """S3 backend from settings overlaid with the template's own backend block"""
        if not self.backend and not spec.backend:
            return None, []

        settings: Dict[str, Any] = {}
        for source in (self.backend, spec.backend):
            if not source:
                continue
            # accept both {s3: {...}} and the bare S3 settings
            if list(source) == ['s3'] and isinstance(source['s3'], dict):
                source = source['s3']
            elif len(source) == 1 and isinstance(next(iter(source.values())), dict):
                backend_type = next(iter(source))
                return None, [f"backend: unsupported backend type '{backend_type}' (only s3 is supported)"]
            settings.update(source)

        missing = [key for key in ('bucket', 'region') if not settings.get(key)]
        if missing:
            return None, [f"backend: s3 backend requires {', '.join(missing)}"]

        settings.setdefault('key', f"{self.namespace}/{spec.name}/terraform.tfstate")
        settings.setdefault('encrypt', True)
        ordered = {key: settings[key] for key in ('bucket', 'key', 'region', 'dynamodb_table', 'encrypt') if key in settings}
        ordered.update({key: item for key, item in settings.items() if key not in ordered})
        return {"s3": ordered}, []

