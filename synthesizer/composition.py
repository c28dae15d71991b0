import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .references import ResourceReference
from .session import SynthesisSession

logger = logging.getLogger(__name__)


def subnet_prefix_for(vpc_cidr: str, subnet_count: int) -> int:
    """Smallest prefix length that splits vpc_cidr into at least subnet_count blocks"""
    network = ipaddress.ip_network(vpc_cidr, strict=False)
    prefix = network.prefixlen + max(subnet_count - 1, 0).bit_length()
    if prefix > network.max_prefixlen:
        raise ValueError(f"{network} cannot hold {subnet_count} subnets")
    return prefix


def calculate_subnet_cidr(vpc_cidr: str, index: int, new_prefix: int = 24) -> str:
    """The index-th /new_prefix block of vpc_cidr, e.g. ("10.0.0.0/16", 2) -> "10.0.2.0/24" """
    network = ipaddress.ip_network(vpc_cidr, strict=False)
    if not network.prefixlen <= new_prefix <= network.max_prefixlen:
        raise ValueError(f"/{new_prefix} subnets do not fit in {network}")
    count = 2 ** (new_prefix - network.prefixlen)
    if not 0 <= index < count:
        raise ValueError(f"{network} holds {count} /{new_prefix} subnet(s), index {index} is out of range")
    size = 2 ** (network.max_prefixlen - new_prefix)
    return f"{network.network_address + index * size}/{new_prefix}"


# ------------------------------
# Composite references
# ------------------------------

@dataclass
class CompositeVpcReference:
    """A VPC plus the public and private subnets created for it, one pair per AZ"""
    name_prefix: str
    vpc: Optional[ResourceReference] = None
    public_subnets: List[ResourceReference] = field(default_factory=list)
    private_subnets: List[ResourceReference] = field(default_factory=list)

    @property
    def public_subnet_ids(self) -> List[str]:
        return [subnet.id for subnet in self.public_subnets]

    @property
    def private_subnet_ids(self) -> List[str]:
        return [subnet.id for subnet in self.private_subnets]

    @property
    def all_subnet_ids(self) -> List[str]:
        return self.public_subnet_ids + self.private_subnet_ids

    @property
    def availability_zone_count(self) -> int:
        return len(self.public_subnets)

    def public_subnet_in_az(self, availability_zone: str) -> Optional[ResourceReference]:
        return _in_az(self.public_subnets, availability_zone)

    def private_subnet_in_az(self, availability_zone: str) -> Optional[ResourceReference]:
        return _in_az(self.private_subnets, availability_zone)

    @property
    def all_resources(self) -> List[ResourceReference]:
        resources = [self.vpc] if self.vpc else []
        return resources + self.public_subnets + self.private_subnets


@dataclass
class CompositeWebTierReference:
    name: str
    security_group: Optional[ResourceReference] = None
    auto_scaling_group: Optional[ResourceReference] = None

    @property
    def security_group_id(self) -> Optional[str]:
        return self.security_group.id if self.security_group else None

    @property
    def min_instances(self) -> Optional[int]:
        return self.auto_scaling_group.attributes.get("min_size") if self.auto_scaling_group else None

    @property
    def max_instances(self) -> Optional[int]:
        return self.auto_scaling_group.attributes.get("max_size") if self.auto_scaling_group else None

    @property
    def desired_instances(self) -> Optional[int]:
        return self.auto_scaling_group.attributes.get("desired_capacity") if self.auto_scaling_group else None

    @property
    def all_resources(self) -> List[ResourceReference]:
        return [resource for resource in (self.security_group, self.auto_scaling_group) if resource]


def _in_az(subnets: Sequence[ResourceReference], availability_zone: str) -> Optional[ResourceReference]:
    for subnet in subnets:
        if subnet.attributes.get("availability_zone") == availability_zone:
            return subnet
    return None


# ------------------------------
# Patterns
# ------------------------------

def vpc_with_subnets(session: SynthesisSession, name_prefix: str, vpc_cidr: str,
                     availability_zones: Sequence[str],
                     public_subnet_cidrs: Optional[Sequence[str]] = None,
                     private_subnet_cidrs: Optional[Sequence[str]] = None,
                     tags: Optional[Dict[str, str]] = None) -> CompositeVpcReference:
    """Create a VPC with one public and one private subnet in every availability zone.

    Subnet CIDRs not given explicitly are carved out of vpc_cidr: public
    subnets take blocks 0..n-1 and private subnets take blocks n..2n-1,
    sized so that all 2n blocks fit. Every resource goes through the
    session, so invalid input raises ValidationFailed like any other
    resource would.
    """
    if not availability_zones:
        raise ValueError("At least one availability zone must be specified")
    zones = list(availability_zones)
    public_cidrs = list(public_subnet_cidrs or [])
    private_cidrs = list(private_subnet_cidrs or [])
    tags = dict(tags or {})

    result = CompositeVpcReference(name_prefix)
    result.vpc = session.resource("aws_vpc", f"{name_prefix}_vpc", {
        "cidr_block": vpc_cidr,
        "enable_dns_hostnames": True,
        "enable_dns_support": True,
        "tags": {"Name": f"{name_prefix}-vpc", **tags},
    })

    prefix = None
    if len(public_cidrs) < len(zones) or len(private_cidrs) < len(zones):
        prefix = subnet_prefix_for(vpc_cidr, len(zones) * 2)

    for index, zone in enumerate(zones):
        public_cidr = public_cidrs[index] if index < len(public_cidrs) else calculate_subnet_cidr(
            vpc_cidr, index, prefix)
        result.public_subnets.append(session.resource("aws_subnet", f"{name_prefix}_public_subnet_{index}", {
            "vpc_id": result.vpc.id,
            "cidr_block": public_cidr,
            "availability_zone": zone,
            "map_public_ip_on_launch": True,
            "tags": {"Name": f"{name_prefix}-public-{index}", "Type": "public", **tags},
        }))

        private_cidr = private_cidrs[index] if index < len(private_cidrs) else calculate_subnet_cidr(
            vpc_cidr, index + len(zones), prefix)
        result.private_subnets.append(session.resource("aws_subnet", f"{name_prefix}_private_subnet_{index}", {
            "vpc_id": result.vpc.id,
            "cidr_block": private_cidr,
            "availability_zone": zone,
            "map_public_ip_on_launch": False,
            "tags": {"Name": f"{name_prefix}-private-{index}", "Type": "private", **tags},
        }))

    logger.debug("Composed %s across %d availability zone(s)", result.vpc.identity, len(zones))
    return result


def auto_scaling_web_tier(session: SynthesisSession, name: str, vpc: ResourceReference,
                          subnet_ids: Sequence[str], launch_template: Dict[str, Any],
                          min_size: int = 1, max_size: int = 10, desired_capacity: int = 2,
                          target_group_arns: Optional[Sequence[str]] = None,
                          tags: Optional[Dict[str, str]] = None) -> CompositeWebTierReference:
    """HTTP/HTTPS security group plus an Auto Scaling group spread over subnet_ids.

    launch_template is the group's launch_template block ({"id": ...} or
    {"name": ...}); target groups switch the health check to ELB.
    """
    tags = dict(tags or {})
    result = CompositeWebTierReference(name)

    result.security_group = session.resource("aws_security_group", f"{name}_sg", {
        "name_prefix": f"{name}-sg-",
        "vpc_id": vpc.id,
        "description": f"Security group for {name} auto scaling group",
        "ingress": [
            {"from_port": 80, "to_port": 80, "protocol": "tcp", "cidr_blocks": ["0.0.0.0/0"], "description": "HTTP"},
            {"from_port": 443, "to_port": 443, "protocol": "tcp", "cidr_blocks": ["0.0.0.0/0"],
             "description": "HTTPS"},
        ],
        "egress": [
            {"from_port": 0, "to_port": 0, "protocol": "-1", "cidr_blocks": ["0.0.0.0/0"],
             "description": "All outbound traffic"},
        ],
        "tags": {"Name": f"{name}-security-group", **tags},
    })

    group = {
        "min_size": min_size,
        "max_size": max_size,
        "desired_capacity": desired_capacity,
        "vpc_zone_identifier": list(subnet_ids),
        "launch_template": dict(launch_template),
        "health_check_type": "ELB" if target_group_arns else "EC2",
        "tag": [{"key": "Name", "value": f"{name}-instance", "propagate_at_launch": True}]
               + [{"key": str(key), "value": str(value), "propagate_at_launch": True} for key, value in tags.items()],
    }
    if target_group_arns:
        group["target_group_arns"] = list(target_group_arns)
    result.auto_scaling_group = session.resource("aws_autoscaling_group", f"{name}_asg", group)
    return result
