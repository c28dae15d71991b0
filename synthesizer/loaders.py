import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import hcl2
import yaml

from typesys.errors import TemplateLoadError

logger = logging.getLogger(__name__)

YAML_SUFFIXES = ('.yaml', '.yml')
HCL_SUFFIXES = ('.tf', '.hcl')
JSON_SUFFIXES = ('.json',)


@dataclass
class ResourceSpec:
    resource_type: str
    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def address(self) -> str:
        return f"{self.resource_type}.{self.name}"


@dataclass
class TemplateSpec:
    name: str
    resources: List[ResourceSpec] = field(default_factory=list)
    backend: Optional[Dict[str, Any]] = None
    source: Optional[str] = None


def load_templates(path: str) -> Dict[str, TemplateSpec]:
    """Load every template declared in a YAML, JSON or HCL file, keyed by template name"""
    if not os.path.isfile(path):
        raise TemplateLoadError(path, "file does not exist")

    lowered = path.lower()
    if not lowered.endswith(YAML_SUFFIXES + JSON_SUFFIXES + HCL_SUFFIXES):
        raise TemplateLoadError(path, "unsupported file type (expected .yaml, .yml, .json, .tf or .hcl)")

    try:
        with open(path, 'r', encoding='utf-8') as template_file:
            if lowered.endswith(YAML_SUFFIXES):
                data = yaml.safe_load(template_file)
            elif lowered.endswith(JSON_SUFFIXES):
                data = json.load(template_file)
            else:
                data = _load_hcl(template_file, path)
    except yaml.YAMLError as e:
        raise TemplateLoadError(path, f"invalid YAML: {e}") from e
    except json.JSONDecodeError as e:
        raise TemplateLoadError(path, f"invalid JSON: {e}") from e
    except UnicodeDecodeError as e:
        raise TemplateLoadError(path, f"not valid UTF-8: {e}") from e
    except OSError as e:
        raise TemplateLoadError(path, str(e)) from e

    if lowered.endswith(HCL_SUFFIXES):
        templates = _templates_from_hcl(data, path)
    else:
        templates = _templates_from_mapping(data, path)

    logger.debug("Loaded %d template(s) from %s", len(templates), path)
    return templates


def _stem(path: str) -> str:
    name = os.path.basename(path)
    for suffix in YAML_SUFFIXES + JSON_SUFFIXES + HCL_SUFFIXES:
        if name.lower().endswith(suffix):
            return name[:-len(suffix)]
    return name


# ------------------------------
# YAML / JSON
# ------------------------------

def _templates_from_mapping(data: Any, path: str) -> Dict[str, TemplateSpec]:
    if not isinstance(data, dict):
        raise TemplateLoadError(path, "top level must be a mapping")

    if 'templates' in data:
        declared = data['templates']
        if not isinstance(declared, dict) or not declared:
            raise TemplateLoadError(path, "'templates' must be a non-empty mapping of template name to template")
        return {
            str(name): _template_from_mapping(str(name), body, path)
            for name, body in declared.items()
        }
    if 'resources' in data:
        name = str(data.get('name') or _stem(path))
        return {name: _template_from_mapping(name, data, path)}
    raise TemplateLoadError(path, "expected a 'templates' or 'resources' key")


def _template_from_mapping(name: str, body: Any, path: str) -> TemplateSpec:
    if not isinstance(body, dict):
        raise TemplateLoadError(path, f"template '{name}' must be a mapping")
    backend = body.get('backend')
    if backend is not None and not isinstance(backend, dict):
        raise TemplateLoadError(path, f"template '{name}': backend must be a mapping")
    return TemplateSpec(
        name=name,
        resources=_resources(name, body.get('resources') or [], path),
        backend=backend,
        source=path,
    )


def _resources(template: str, declared: Any, path: str) -> List[ResourceSpec]:
    """Resources as a list of {type, name, attributes} entries or a {type: {name: attributes}} mapping"""
    resources = []
    if isinstance(declared, dict):
        for resource_type, instances in declared.items():
            if not isinstance(instances, dict):
                raise TemplateLoadError(path, f"template '{template}': {resource_type} must map names to attributes")
            for name, attributes in instances.items():
                resources.append(_resource(template, resource_type, name, attributes, path))
        return resources

    if not isinstance(declared, list):
        raise TemplateLoadError(path, f"template '{template}': resources must be a list or a mapping")
    for index, entry in enumerate(declared):
        if not isinstance(entry, dict) or 'type' not in entry or 'name' not in entry:
            raise TemplateLoadError(path, f"template '{template}': resources[{index}] needs 'type' and 'name'")
        resources.append(_resource(template, entry['type'], entry['name'], entry.get('attributes'), path))
    return resources


def _resource(template: str, resource_type: Any, name: Any, attributes: Any, path: str) -> ResourceSpec:
    if attributes is None:
        attributes = {}
    if not isinstance(attributes, dict):
        raise TemplateLoadError(path, f"template '{template}': attributes of {resource_type}.{name} must be a mapping")
    return ResourceSpec(str(resource_type), str(name), attributes)


# ------------------------------
# HCL
# ------------------------------

def _unquote(value: Any) -> Any:
    """python-hcl2 may keep the quotes around string literals and block labels"""
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _clean_hcl(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            _unquote(key): _clean_hcl(item)
            for key, item in value.items()
            if not str(key).startswith('__')
        }
    if isinstance(value, list):
        return [_clean_hcl(item) for item in value]
    return _unquote(value)


def _load_hcl(template_file, path: str) -> Dict[str, Any]:
    try:
        return hcl2.load(template_file)
    except Exception as e:
        # python-hcl2 reports syntax errors as lark exceptions
        raise TemplateLoadError(path, f"invalid HCL: {e}") from e


def _templates_from_hcl(data: Dict[str, Any], path: str) -> Dict[str, TemplateSpec]:
    """One template per file, named after the file.

    `resource "type" "name" { ... }` blocks become resources. A single nested
    block such as `point_in_time_recovery { ... }` loads as a one-element list
    and is unwrapped when it is validated; repeated blocks such as `tag { ... }`
    stay lists.
    """
    data = _clean_hcl(data)
    name = _stem(path)
    resources = []
    for block in data.get('resource', []):
        for resource_type, instances in block.items():
            for resource_name, attributes in instances.items():
                resources.append(_resource(name, resource_type, resource_name, attributes, path))

    backend = None
    for block in data.get('terraform', []):
        for backend_block in block.get('backend', []):
            for backend_type, settings in backend_block.items():
                backend = {backend_type: settings}

    return {name: TemplateSpec(name=name, resources=resources, backend=backend, source=path)}
