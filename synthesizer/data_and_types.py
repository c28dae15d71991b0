import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from typesys.errors import DuplicateResourceError

logger = logging.getLogger(__name__)


class TerraformBlockType(Enum):
    TERRAFORM = "terraform"
    RESOURCE = "resource"
    OUTPUT = "output"


class DuplicatePolicy(Enum):
    """What to do when the same (type, name) is synthesized twice in one run"""
    ERROR = "error"
    REPLACE = "replace"
    IGNORE_IDENTICAL = "ignore_identical"

    @classmethod
    def parse(cls, value: Any) -> 'DuplicatePolicy':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(policy.value for policy in cls)
            raise ValueError(f"Unknown duplicate policy '{value}' (expected one of: {choices})") from None


@dataclass(frozen=True)
class ResourceIdentity:
    resource_type: str
    name: str

    @property
    def address(self) -> str:
        return f"{self.resource_type}.{self.name}"

    def __str__(self) -> str:
        return self.address


@dataclass
class TerraformDocument:
    """The Terraform JSON document built up during one synthesis run.

    Resources keep declaration order so identical input always serializes
    to identical bytes.
    """
    resources: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    outputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    backend: Optional[Dict[str, Any]] = None

    def get_resource(self, identity: ResourceIdentity) -> Optional[Dict[str, Any]]:
        return self.resources.get(identity.resource_type, {}).get(identity.name)

    def add_resource(self, identity: ResourceIdentity, body: Dict[str, Any],
                     policy: DuplicatePolicy = DuplicatePolicy.ERROR) -> None:
        existing = self.get_resource(identity)
        if existing is not None:
            if policy == DuplicatePolicy.ERROR:
                raise DuplicateResourceError(identity.resource_type, identity.name)
            if policy == DuplicatePolicy.IGNORE_IDENTICAL:
                if existing == body:
                    logger.debug("Identical re-declaration of %s ignored", identity)
                    return
                raise DuplicateResourceError(identity.resource_type, identity.name)
            logger.warning("Resource %s declared twice; keeping the last declaration", identity)
        self.resources.setdefault(identity.resource_type, {})[identity.name] = copy.deepcopy(body)

    def add_output(self, name: str, value: Any, description: str = "") -> None:
        entry = {"value": value}
        if description:
            entry["description"] = description
        self.outputs[name] = entry

    @property
    def resource_count(self) -> int:
        return sum(len(instances) for instances in self.resources.values())

    def to_dict(self) -> Dict[str, Any]:
        config_dict: Dict[str, Any] = {}
        if self.backend:
            config_dict[TerraformBlockType.TERRAFORM.value] = {"backend": copy.deepcopy(self.backend)}
        config_dict[TerraformBlockType.RESOURCE.value] = copy.deepcopy(self.resources)
        if self.outputs:
            config_dict[TerraformBlockType.OUTPUT.value] = copy.deepcopy(self.outputs)
        return config_dict

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)
