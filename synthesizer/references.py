import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence

from .data_and_types import ResourceIdentity

logger = logging.getLogger(__name__)

# Outputs every resource of a provider exposes, keyed by type-name prefix
COMMON_OUTPUTS: Dict[str, Sequence[str]] = {
    'aws': ('id', 'arn'),
    'cloudflare': ('id',),
    'hcloud': ('id',),
}

OUTPUT_PRESETS: Dict[str, Sequence[str]] = {
    # AWS
    'aws_vpc': ('id', 'arn', 'cidr_block', 'default_network_acl_id', 'default_route_table_id',
                'default_security_group_id', 'enable_dns_hostnames', 'enable_dns_support',
                'main_route_table_id'),
    'aws_subnet': ('id', 'arn', 'cidr_block', 'availability_zone', 'vpc_id'),
    'aws_security_group': ('id', 'arn', 'name', 'vpc_id', 'owner_id'),
    'aws_instance': ('id', 'arn', 'public_ip', 'private_ip', 'public_dns', 'private_dns'),
    'aws_s3_bucket': ('id', 'arn', 'bucket_domain_name', 'bucket_regional_domain_name', 'region'),
    'aws_iam_role': ('id', 'arn', 'name', 'unique_id'),
    'aws_lambda_function': ('id', 'arn', 'invoke_arn', 'qualified_arn', 'version'),
    # Cloudflare
    'cloudflare_zone': ('id', 'status', 'name_servers', 'vanity_name_servers', 'verification_key', 'meta'),
    'cloudflare_record': ('id', 'hostname', 'proxied', 'created_on', 'modified_on'),
    'cloudflare_worker_script': ('id',),
    'cloudflare_pages_project': ('id', 'subdomain', 'domains'),
    # Hetzner
    'hcloud_server': ('id', 'name', 'ipv4_address', 'ipv6_address', 'status'),
    'hcloud_network': ('id', 'name', 'ip_range'),
}


def interpolation(resource_type: str, name: str, attribute: str) -> str:
    """Terraform interpolation string, e.g. ${aws_vpc.main.id}"""
    return f"${{{resource_type}.{name}.{attribute}}}"


def detect_provider(resource_type: str) -> str:
    prefix = resource_type.split('_', 1)[0]
    return prefix if prefix in COMMON_OUTPUTS else 'unknown'


@dataclass(frozen=True)
class ComputedAttribute:
    """A plain value derived from validated input, e.g. whether a table is encrypted"""
    name: str
    compute: Callable[[Mapping], Any]
    description: str = ""


class ReferenceResolver:
    """Builds the symbolic output references for a synthesized resource"""

    def resolve(self, resource_type: str, name: str, output_names: Iterable[str]) -> Dict[str, str]:
        return {str(output): interpolation(resource_type, name, output) for output in output_names}

    def outputs_for(self, resource_type: str, name: str, extra: Iterable[str] = ()) -> Dict[str, str]:
        """Resolve `id`, the provider's common outputs, the type's preset and `extra`, in that order"""
        names: List[str] = ['id']
        names.extend(COMMON_OUTPUTS.get(detect_provider(resource_type), ()))
        names.extend(OUTPUT_PRESETS.get(resource_type, ()))
        names.extend(extra)
        # dict.fromkeys keeps first-seen order while dropping repeats
        return self.resolve(resource_type, name, dict.fromkeys(names))

    def compute(self, computed: Iterable[ComputedAttribute], record: Mapping) -> Dict[str, Any]:
        return {item.name: item.compute(record) for item in computed}

    def reference(self, identity: ResourceIdentity, record: Mapping, outputs: Iterable[str] = (),
                  computed: Iterable[ComputedAttribute] = ()) -> 'ResourceReference':
        resolved = self.outputs_for(identity.resource_type, identity.name, outputs)
        values = self.compute(computed, record)
        logger.debug("Resolved %d output(s) and %d computed value(s) for %s", len(resolved), len(values), identity)
        return ResourceReference(identity=identity, outputs=resolved, computed=values, attributes=record)


@dataclass(frozen=True)
class ResourceReference:
    """Handle returned after a resource is synthesized.

    `outputs` holds interpolation strings meant for wiring into other
    resources. `computed` holds plain values derived from the input and is
    kept apart so it is never mistaken for a wiring target.
    """
    identity: ResourceIdentity
    outputs: Mapping[str, str] = field(default_factory=dict)
    computed: Mapping[str, Any] = field(default_factory=dict)
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "outputs", MappingProxyType(dict(self.outputs)))
        object.__setattr__(self, "computed", MappingProxyType(dict(self.computed)))

    @property
    def type(self) -> str:
        return self.identity.resource_type

    @property
    def name(self) -> str:
        return self.identity.name

    def ref(self, attribute: str) -> str:
        """Interpolation for any attribute, declared output or not"""
        return self.outputs.get(str(attribute)) or interpolation(self.type, self.name, attribute)

    @property
    def id(self) -> str:
        return self.ref('id')

    @property
    def arn(self) -> str:
        return self.ref('arn')

    def __getitem__(self, output: str) -> str:
        return self.outputs[output]

    def __getattr__(self, output: str) -> str:
        # only reached for names that are not regular attributes
        if output.startswith('_'):
            raise AttributeError(output)
        outputs = self.__dict__.get('outputs', {})
        if output in outputs:
            return outputs[output]
        raise AttributeError(f"{self.identity} has no output '{output}'")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "outputs": dict(self.outputs),
            "computed": dict(self.computed),
        }
