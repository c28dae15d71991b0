import logging
from typing import Any, Dict, Optional

from typesys import constraints as c
from typesys.schema import (
    ArrayMode,
    Attribute,
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
from typesys.type_system import TypeRegistry, default_registry

from .references import ComputedAttribute
from .registry import ResourceRegistry

logger = logging.getLogger(__name__)


# ------------------------------
# AWS networking
# ------------------------------

def _aws_vpc(types: TypeRegistry) -> Dict[str, Any]:
    schema = Schema(
        name="aws_vpc",
        description="Virtual private cloud",
        attributes=(
            Attribute("cidr_block", "CidrBlock"),
            Attribute("ipv6_cidr_block", "Ipv6CidrBlock"),
            Attribute("enable_dns_hostnames", "bool", default=True, always_emit=True),
            Attribute("enable_dns_support", "bool", default=True, always_emit=True),
            Attribute("instance_tenancy", "InstanceTenancy", default="default"),
            Attribute("tags", "AwsTags", default=dict),
        ),
        rules=(
            mutually_exclusive("cidr_block", "ipv6_cidr_block"),
            at_least_one_of("cidr_block", "ipv6_cidr_block"),
        ),
    )
    computed = (
        ComputedAttribute("is_ipv6", lambda record: is_set(record.get("ipv6_cidr_block"))),
        ComputedAttribute("dns_enabled",
                          lambda record: bool(record.get("enable_dns_support") and record.get("enable_dns_hostnames"))),
    )
    return dict(schema=schema, computed=computed)


def _aws_subnet(types: TypeRegistry) -> Dict[str, Any]:
    schema = Schema(
        name="aws_subnet",
        description="Subnet inside a VPC",
        attributes=(
            Attribute("vpc_id", "string", required=True),
            Attribute("cidr_block", "CidrBlock", required=True),
            Attribute("availability_zone", "AwsAvailabilityZone"),
            Attribute("map_public_ip_on_launch", "bool", default=False, always_emit=True),
            Attribute("tags", "AwsTags", default=dict),
        ),
    )
    computed = (
        ComputedAttribute("is_public", lambda record: bool(record.get("map_public_ip_on_launch"))),
    )
    return dict(schema=schema, computed=computed, outputs=("availability_zone_id",))


_SECURITY_GROUP_RULE_DEFAULTS = {
    "cidr_blocks": [],
    "ipv6_cidr_blocks": [],
    "prefix_list_ids": [],
    "security_groups": [],
    "self": False,
    "description": "",
}


def _security_group_rule_schema(types: TypeRegistry, direction: str) -> Schema:
    strings = types.array("string")
    return Schema(
        name=f"aws_security_group.{direction}",
        attributes=(
            Attribute("from_port", "Port", required=True),
            Attribute("to_port", "Port", required=True),
            Attribute("protocol", "IpProtocol", required=True),
            Attribute("cidr_blocks", types.array("CidrBlock")),
            Attribute("ipv6_cidr_blocks", types.array("Ipv6CidrBlock")),
            Attribute("prefix_list_ids", strings),
            Attribute("security_groups", strings),
            Attribute("self", "bool"),
            Attribute("description", "string"),
        ),
        rules=(ordered("from_port", "to_port"),),
    )


def _render_security_group(synthesizer, record) -> Dict[str, Any]:
    """Terraform JSON wants every rule argument present, even the unused ones"""
    body = synthesizer.render(record.schema, record)
    for direction in ("ingress", "egress"):
        for entry in body.get(direction, []):
            for key, default in _SECURITY_GROUP_RULE_DEFAULTS.items():
                entry.setdefault(key, list(default) if isinstance(default, list) else default)
    return body


def _aws_security_group(types: TypeRegistry) -> Dict[str, Any]:
    schema = Schema(
        name="aws_security_group",
        description="Security group with inline ingress and egress rules",
        attributes=(
            Attribute("name", types.constrain("string", c.length_between(1, 255))),
            Attribute("name_prefix", "string"),
            Attribute("description", "string", default="Managed by tfsynth"),
            Attribute("vpc_id", "string"),
            Attribute("ingress", types.array(types.nested(_security_group_rule_schema(types, "ingress")))),
            Attribute("egress", types.array(types.nested(_security_group_rule_schema(types, "egress")))),
            Attribute("revoke_rules_on_delete", "bool"),
            Attribute("tags", "AwsTags", default=dict),
        ),
        rules=(mutually_exclusive("name", "name_prefix"),),
    )
    computed = (
        ComputedAttribute("ingress_rule_count", lambda record: len(record.get("ingress") or ())),
        ComputedAttribute("egress_rule_count", lambda record: len(record.get("egress") or ())),
    )
    return dict(schema=schema, computed=computed, synthesize_fn=_render_security_group)


# ------------------------------
# AWS auto scaling
# ------------------------------

def _launch_template_schema() -> Schema:
    return Schema(
        name="aws_autoscaling_group.launch_template",
        attributes=(
            Attribute("id", "string"),
            Attribute("name", "string"),
            Attribute("version", "string", default="$Latest"),
        ),
        rules=(exactly_one_of("id", "name"),),
    )


def _aws_autoscaling_group(types: TypeRegistry) -> Dict[str, Any]:
    non_negative = types.constrain("integer", c.gteq(0))
    strings = types.array("string")
    tag = Schema(
        name="aws_autoscaling_group.tag",
        attributes=(
            Attribute("key", "string", required=True),
            Attribute("value", "string", required=True),
            Attribute("propagate_at_launch", "bool", default=True),
        ),
    )
    termination_policy = types.enum(
        'OldestInstance', 'NewestInstance', 'OldestLaunchConfiguration', 'OldestLaunchTemplate',
        'ClosestToNextInstanceHour', 'Default', 'AllocationStrategy',
    )
    schema = Schema(
        name="aws_autoscaling_group",
        description="Auto Scaling group",
        attributes=(
            Attribute("name", "string"),
            Attribute("min_size", non_negative, required=True),
            Attribute("max_size", non_negative, required=True),
            Attribute("desired_capacity", non_negative),
            Attribute("default_cooldown", "integer", default=300),
            Attribute("launch_configuration", "string"),
            Attribute("launch_template", types.nested(_launch_template_schema())),
            Attribute("mixed_instances_policy", types.map("string", "any")),
            Attribute("vpc_zone_identifier", strings),
            Attribute("availability_zones", types.array("AwsAvailabilityZone")),
            Attribute("health_check_type", types.enum('EC2', 'ELB'), default='EC2'),
            Attribute("health_check_grace_period", "integer", default=300),
            Attribute("termination_policies", types.array(termination_policy)),
            Attribute("target_group_arns", strings),
            Attribute("load_balancers", strings),
            Attribute("protect_from_scale_in", "bool", default=False),
            Attribute("capacity_rebalance", "bool", default=False),
            Attribute("wait_for_capacity_timeout", "string", default="10m"),
            Attribute("tag", types.array(types.nested(tag)), array_mode=ArrayMode.BLOCKS),
        ),
        rules=(
            ordered("min_size", "max_size"),
            within_range("desired_capacity", "min_size", "max_size"),
            exactly_one_of("launch_configuration", "launch_template", "mixed_instances_policy"),
            at_least_one_of("vpc_zone_identifier", "availability_zones"),
        ),
    )
    computed = (
        ComputedAttribute("uses_launch_template", lambda record: is_set(record.get("launch_template"))),
        ComputedAttribute("uses_mixed_instances", lambda record: is_set(record.get("mixed_instances_policy"))),
        ComputedAttribute("uses_target_groups", lambda record: is_set(record.get("target_group_arns"))),
    )
    return dict(schema=schema, computed=computed, outputs=("name", "min_size", "max_size", "desired_capacity"))


def _aws_autoscaling_lifecycle_hook(types: TypeRegistry) -> Dict[str, Any]:
    schema = Schema(
        name="aws_autoscaling_lifecycle_hook",
        description="Lifecycle hook that pauses instances on launch or termination",
        attributes=(
            Attribute("name", "string", required=True),
            Attribute("autoscaling_group_name", "string", required=True),
            Attribute("lifecycle_transition", types.enum(
                "autoscaling:EC2_INSTANCE_LAUNCHING", "autoscaling:EC2_INSTANCE_TERMINATING",
            ), required=True),
            Attribute("default_result", types.enum("CONTINUE", "ABANDON"), default="ABANDON"),
            Attribute("heartbeat_timeout", types.constrain("integer", c.between(30, 7200)), default=300),
            Attribute("notification_metadata", "string"),
            Attribute("notification_target_arn", "string"),
            Attribute("role_arn", "string"),
        ),
        rules=(
            requires("notification_target_arn", "role_arn"),
            requires("role_arn", "notification_target_arn"),
        ),
    )
    computed = (
        ComputedAttribute("is_launch_hook",
                          lambda record: record.get("lifecycle_transition") == "autoscaling:EC2_INSTANCE_LAUNCHING"),
    )
    return dict(schema=schema, computed=computed)


# ------------------------------
# AWS DynamoDB
# ------------------------------

def _billing_capacity(record) -> Any:
    capacity = [name for name in ("read_capacity", "write_capacity") if record.get(name) is not None]
    if record.get("billing_mode") == "PROVISIONED":
        if len(capacity) < 2:
            return "PROVISIONED billing_mode requires read_capacity and write_capacity"
        for index in record.get("global_secondary_index") or ():
            if index.get("read_capacity") is None or index.get("write_capacity") is None:
                return (f"global_secondary_index '{index['name']}' requires read_capacity and write_capacity "
                        f"for PROVISIONED billing_mode")
    elif capacity:
        return "PAY_PER_REQUEST billing_mode does not support read_capacity or write_capacity"
    return None


def _key_attributes_defined(record) -> Any:
    keys = [record.get("hash_key"), record.get("range_key")]
    for index in record.get("global_secondary_index") or ():
        keys.extend([index.get("hash_key"), index.get("range_key")])
    defined = {entry["name"] for entry in record.get("attribute") or ()}
    missing = [key for key in dict.fromkeys(keys) if key and key not in defined]
    if missing:
        return f"attribute is missing definitions for: {', '.join(missing)}"
    return None


def _projection(record) -> Any:
    included = is_set(record.get("non_key_attributes"))
    if record.get("projection_type") == "INCLUDE" and not included:
        return "INCLUDE projection_type requires non_key_attributes"
    if record.get("projection_type") != "INCLUDE" and included:
        return f"{record.get('projection_type')} projection_type cannot have non_key_attributes"
    return None


def _aws_dynamodb_table(types: TypeRegistry) -> Dict[str, Any]:
    capacity = types.constrain("integer", c.between(1, 40000))
    attribute_definition = Schema(
        name="aws_dynamodb_table.attribute",
        attributes=(
            Attribute("name", "string", required=True),
            Attribute("type", types.enum("S", "N", "B"), required=True),
        ),
    )
    projection = types.enum("ALL", "KEYS_ONLY", "INCLUDE")
    secondary_index = Schema(
        name="aws_dynamodb_table.global_secondary_index",
        attributes=(
            Attribute("name", "string", required=True),
            Attribute("hash_key", "string", required=True),
            Attribute("range_key", "string"),
            Attribute("projection_type", projection, required=True),
            Attribute("non_key_attributes", types.array("string")),
            Attribute("read_capacity", capacity),
            Attribute("write_capacity", capacity),
        ),
        rules=(rule("projection", ("projection_type", "non_key_attributes"), _projection),),
    )
    toggle = Schema(
        name="aws_dynamodb_table.toggle",
        attributes=(Attribute("enabled", "bool", default=False),),
    )
    encryption = Schema(
        name="aws_dynamodb_table.server_side_encryption",
        attributes=(
            Attribute("enabled", "bool", default=False),
            Attribute("kms_key_arn", "string"),
        ),
        rules=(requires("kms_key_arn", "enabled"),),
    )
    schema = Schema(
        name="aws_dynamodb_table",
        description="DynamoDB table",
        attributes=(
            Attribute("name", types.constrain("string", c.pattern(r"[a-zA-Z0-9_.-]{3,255}")), required=True),
            Attribute("billing_mode", types.enum("PAY_PER_REQUEST", "PROVISIONED"), default="PAY_PER_REQUEST"),
            Attribute("hash_key", "string", required=True),
            Attribute("range_key", "string"),
            Attribute("read_capacity", capacity),
            Attribute("write_capacity", capacity),
            Attribute("attribute", types.constrain(types.array(types.nested(attribute_definition)), c.min_items(1)),
                      required=True, array_mode=ArrayMode.BLOCKS),
            Attribute("global_secondary_index",
                      types.constrain(types.array(types.nested(secondary_index)), c.max_items(20)),
                      array_mode=ArrayMode.BLOCKS),
            Attribute("stream_enabled", "bool"),
            Attribute("stream_view_type", types.enum("KEYS_ONLY", "NEW_IMAGE", "OLD_IMAGE", "NEW_AND_OLD_IMAGES")),
            Attribute("point_in_time_recovery", types.nested(toggle)),
            Attribute("server_side_encryption", types.nested(encryption)),
            Attribute("deletion_protection_enabled", "bool", default=False),
            Attribute("table_class", types.enum("STANDARD", "STANDARD_INFREQUENT_ACCESS"), default="STANDARD"),
            Attribute("tags", "AwsTags", default=dict),
        ),
        rules=(
            rule("billing_capacity", ("billing_mode", "read_capacity", "write_capacity", "global_secondary_index"),
                 _billing_capacity),
            rule("stream_view_type", ("stream_enabled", "stream_view_type"),
                 lambda record: "stream_enabled requires stream_view_type"
                 if record.get("stream_enabled") and not record.get("stream_view_type") else None),
            rule("key_attributes", ("hash_key", "range_key", "attribute", "global_secondary_index"),
                 _key_attributes_defined),
        ),
    )
    computed = (
        ComputedAttribute("is_provisioned", lambda record: record.get("billing_mode") == "PROVISIONED"),
        ComputedAttribute("is_encrypted",
                          lambda record: bool((record.get("server_side_encryption") or {}).get("enabled"))),
        ComputedAttribute("has_range_key", lambda record: is_set(record.get("range_key"))),
        ComputedAttribute("has_stream", lambda record: bool(record.get("stream_enabled"))),
    )
    return dict(schema=schema, computed=computed, outputs=("stream_arn", "stream_label", "hash_key"))


# ------------------------------
# AWS Braket
# ------------------------------

_SIMULATOR_DEVICES = {
    "braket_sv": "braket_sv_v2",
    "braket_dm": "braket_dm_v2",
    "braket_tn": "braket_tn1",
}

_SIMULATOR_MIN_MEMORY_MB = {
    "braket_sv": 2048,
    "braket_dm": 4096,
    "braket_tn": 1024,
}


def _simulator_resources(record) -> Any:
    simulator = record.get("simulator_type")
    resources = (record.get("configuration") or {}).get("resource_configuration")
    if not resources:
        return None
    if simulator == "braket_tn" and (resources.get("gpu_count") or 0) > 0:
        return "simulator_type 'braket_tn' does not use GPU acceleration (configuration.resource_configuration.gpu_count)"
    minimum = _SIMULATOR_MIN_MEMORY_MB.get(simulator)
    if minimum and resources["memory_size_mb"] < minimum:
        return (f"simulator_type '{simulator}' requires at least {minimum} MB "
                f"(configuration.resource_configuration.memory_size_mb is {resources['memory_size_mb']})")
    return None


def _aws_braket_local_simulator(types: TypeRegistry) -> Dict[str, Any]:
    backend = Schema(
        name="backend_configuration",
        attributes=(
            Attribute("shots", types.constrain("integer", c.between(1, 100000))),
            Attribute("max_parallel_shots", types.constrain("integer", c.between(1, 10000))),
            Attribute("seed", "integer"),
        ),
    )
    resources = Schema(
        name="resource_configuration",
        attributes=(
            Attribute("cpu_count", types.constrain("integer", c.between(1, 96)), required=True),
            Attribute("memory_size_mb", types.constrain("integer", c.between(1024, 768000)), required=True),
            Attribute("gpu_count", types.constrain("integer", c.between(0, 8))),
        ),
    )
    advanced = Schema(
        name="advanced_configuration",
        attributes=(
            Attribute("enable_parallelization", "bool"),
            Attribute("optimization_level", types.constrain("integer", c.between(0, 3))),
            Attribute("precision", types.enum("single", "double")),
        ),
    )
    configuration = Schema(
        name="configuration",
        attributes=(
            Attribute("backend_configuration", types.nested(backend), required=True),
            Attribute("resource_configuration", types.nested(resources)),
            Attribute("advanced_configuration", types.nested(advanced)),
        ),
    )
    environment = Schema(
        name="execution_environment",
        attributes=(
            Attribute("docker_image", "string"),
            Attribute("python_version", types.enum("3.8", "3.9", "3.10", "3.11")),
            Attribute("environment_variables", types.map("string", "string")),
        ),
    )
    schema = Schema(
        name="aws_braket_local_simulator",
        description="Local Amazon Braket simulator",
        attributes=(
            Attribute("simulator_name", types.constrain("string", c.pattern(
                r"[a-zA-Z0-9\-_]{1,128}",
                "simulator_name must be 1-128 characters of letters, digits, hyphens and underscores",
            )), required=True),
            Attribute("simulator_type", types.enum(*_SIMULATOR_DEVICES), required=True),
            Attribute("device_name", types.enum(*_SIMULATOR_DEVICES.values()), required=True),
            Attribute("configuration", types.nested(configuration), required=True),
            Attribute("execution_environment", types.nested(environment)),
            Attribute("tags", "AwsTags", default=dict),
        ),
        rules=(
            pairs_with("simulator_type", _SIMULATOR_DEVICES, "device_name"),
            rule("simulator_resources", ("simulator_type", "configuration"), _simulator_resources),
        ),
    )
    computed = (
        ComputedAttribute("is_state_vector", lambda record: record.get("simulator_type") == "braket_sv"),
        ComputedAttribute("uses_gpu", lambda record: bool(
            ((record.get("configuration") or {}).get("resource_configuration") or {}).get("gpu_count")
        )),
    )
    return dict(schema=schema, computed=computed)


# ------------------------------
# Cloudflare / Hetzner
# ------------------------------

def _cloudflare_record(types: TypeRegistry) -> Dict[str, Any]:
    schema = Schema(
        name="cloudflare_record",
        description="DNS record in a Cloudflare zone",
        attributes=(
            Attribute("zone_id", types.constrain("string", c.hex_string(32)), required=True),
            Attribute("name", types.constrain("string", c.domain_name(allow_wildcard=True)), required=True),
            Attribute("type", types.enum("A", "AAAA", "CNAME", "MX", "TXT", "SRV", "NS", "CAA"), required=True),
            Attribute("content", "string", required=True),
            Attribute("ttl", types.constrain("integer", c.between(1, 86400)), default=1),
            Attribute("proxied", "bool", default=False),
            Attribute("priority", types.constrain("integer", c.between(0, 65535))),
            Attribute("comment", types.constrain("string", c.max_length(100))),
        ),
        rules=(
            allowed_when("proxied", (False,), when=("type", ("MX", "TXT", "SRV", "NS", "CAA"))),
            rule("mx_priority", ("type", "priority"),
                 lambda record: "MX records require priority"
                 if record.get("type") == "MX" and record.get("priority") is None else None),
        ),
    )
    computed = (
        ComputedAttribute("is_proxied", lambda record: bool(record.get("proxied"))),
    )
    return dict(schema=schema, computed=computed)


def _hcloud_server(types: TypeRegistry) -> Dict[str, Any]:
    schema = Schema(
        name="hcloud_server",
        description="Hetzner Cloud server",
        attributes=(
            Attribute("name", types.constrain("string", c.domain_name()), required=True),
            Attribute("server_type", "string", required=True),
            Attribute("image", "string", required=True),
            Attribute("location", types.enum("fsn1", "nbg1", "hel1", "ash", "hil", "sin")),
            Attribute("datacenter", "string"),
            Attribute("ssh_keys", types.array("string")),
            Attribute("user_data", "string"),
            Attribute("backups", "bool", default=False),
            Attribute("labels", types.map("string", "string"), default=dict),
        ),
        rules=(mutually_exclusive("location", "datacenter"),),
    )
    return dict(schema=schema, outputs=("ipv4_address", "ipv6_address"))


# Definition builders in registration order
BUILTIN_RESOURCES = {
    "aws_vpc": _aws_vpc,
    "aws_subnet": _aws_subnet,
    "aws_security_group": _aws_security_group,
    "aws_autoscaling_group": _aws_autoscaling_group,
    "aws_autoscaling_lifecycle_hook": _aws_autoscaling_lifecycle_hook,
    "aws_dynamodb_table": _aws_dynamodb_table,
    "aws_braket_local_simulator": _aws_braket_local_simulator,
    "cloudflare_record": _cloudflare_record,
    "hcloud_server": _hcloud_server,
}


def register_builtin_resources(registry: ResourceRegistry) -> ResourceRegistry:
    """Register the built-in resource definitions into registry"""
    for resource_type, build in BUILTIN_RESOURCES.items():
        definition = build(registry.type_registry)
        registry.register_schema(resource_type, **definition)
    logger.debug("Registered %d built-in resource types", len(BUILTIN_RESOURCES))
    return registry


def builtin_registry(type_registry: Optional[TypeRegistry] = None) -> ResourceRegistry:
    """A fresh, frozen registry holding the built-in resource types"""
    registry = ResourceRegistry(type_registry or default_registry())
    return register_builtin_resources(registry).freeze()
