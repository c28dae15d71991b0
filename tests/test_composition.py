import ipaddress

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from synthesizer.builtin_resources import builtin_registry
from synthesizer.composition import (
    auto_scaling_web_tier,
    calculate_subnet_cidr,
    subnet_prefix_for,
    vpc_with_subnets,
)
from synthesizer.session import SynthesisSession
from typesys.errors import ValidationFailed

ZONES = ["us-east-1a", "us-east-1b"]


@pytest.fixture
def session(registry):
    return SynthesisSession(registry)


@pytest.mark.parametrize("vpc_cidr, index, prefix, expected", [
    ("10.0.0.0/16", 0, 24, "10.0.0.0/24"),
    ("10.0.0.0/16", 2, 24, "10.0.2.0/24"),
    ("10.0.0.0/16", 3, 18, "10.0.192.0/18"),
    ("172.16.0.0/12", 1, 16, "172.17.0.0/16"),
])
def test_calculate_subnet_cidr(vpc_cidr, index, prefix, expected):
    assert calculate_subnet_cidr(vpc_cidr, index, prefix) == expected


@pytest.mark.parametrize("index, prefix", [(4, 18), (-1, 24), (0, 8)])
def test_calculate_subnet_cidr_out_of_range(index, prefix):
    with pytest.raises(ValueError):
        calculate_subnet_cidr("10.0.0.0/16", index, prefix)


def test_subnet_prefix_rounds_up_to_a_power_of_two():
    assert subnet_prefix_for("10.0.0.0/16", 2) == 17
    assert subnet_prefix_for("10.0.0.0/16", 4) == 18
    assert subnet_prefix_for("10.0.0.0/16", 6) == 19
    with pytest.raises(ValueError):
        subnet_prefix_for("10.0.0.0/30", 8)


def test_vpc_with_subnets_carves_cidrs(session):
    network = vpc_with_subnets(session, "core", "10.0.0.0/16", ZONES)

    resources = session.synthesis()["resource"]
    assert list(resources["aws_vpc"]) == ["core_vpc"]
    assert resources["aws_vpc"]["core_vpc"]["tags"] == {"Name": "core-vpc"}
    subnets = resources["aws_subnet"]
    assert [subnets[name]["cidr_block"] for name in (
        "core_public_subnet_0", "core_public_subnet_1", "core_private_subnet_0", "core_private_subnet_1",
    )] == ["10.0.0.0/18", "10.0.64.0/18", "10.0.128.0/18", "10.0.192.0/18"]
    assert subnets["core_public_subnet_0"]["map_public_ip_on_launch"] is True
    assert subnets["core_private_subnet_1"]["map_public_ip_on_launch"] is False
    assert subnets["core_private_subnet_1"]["vpc_id"] == "${aws_vpc.core_vpc.id}"
    assert subnets["core_private_subnet_1"]["tags"] == {"Name": "core-private-1", "Type": "private"}

    assert network.public_subnet_ids == [
        "${aws_subnet.core_public_subnet_0.id}", "${aws_subnet.core_public_subnet_1.id}",
    ]
    assert network.private_subnet_ids[0] == "${aws_subnet.core_private_subnet_0.id}"
    assert network.availability_zone_count == 2
    assert len(network.all_resources) == 5


def test_subnet_lookup_by_zone(session):
    network = vpc_with_subnets(session, "core", "10.0.0.0/16", ZONES)

    assert network.public_subnet_in_az("us-east-1b").name == "core_public_subnet_1"
    assert network.private_subnet_in_az("us-east-1a").name == "core_private_subnet_0"
    assert network.public_subnet_in_az("us-west-2a") is None


def test_explicit_cidrs_win(session):
    vpc_with_subnets(session, "core", "10.0.0.0/16", ZONES,
                     public_subnet_cidrs=["10.0.1.0/24", "10.0.2.0/24"],
                     private_subnet_cidrs=["10.0.101.0/24"],
                     tags={"Env": "prod"})

    subnets = session.synthesis()["resource"]["aws_subnet"]
    assert subnets["core_public_subnet_1"]["cidr_block"] == "10.0.2.0/24"
    assert subnets["core_private_subnet_0"]["cidr_block"] == "10.0.101.0/24"
    # the missing one is still carved from the VPC
    assert subnets["core_private_subnet_1"]["cidr_block"] == "10.0.192.0/18"
    assert subnets["core_public_subnet_0"]["tags"]["Env"] == "prod"


def test_no_zones_is_rejected(session):
    with pytest.raises(ValueError, match="availability zone"):
        vpc_with_subnets(session, "core", "10.0.0.0/16", [])

    assert session.document.resource_count == 0


def test_invalid_zone_fails_validation(session):
    with pytest.raises(ValidationFailed) as info:
        vpc_with_subnets(session, "core", "10.0.0.0/16", ["not a zone"])

    assert info.value.subject == "aws_subnet.core_public_subnet_0"


@settings(max_examples=25, deadline=None)
@given(zone_count=st.integers(min_value=1, max_value=8), vpc_prefix=st.integers(min_value=16, max_value=24))
def test_carved_subnets_fit_and_never_overlap(zone_count, vpc_prefix):
    session = SynthesisSession(builtin_registry())
    vpc_cidr = f"10.0.0.0/{vpc_prefix}"
    zones = [f"us-east-1{letter}" for letter in "abcdefgh"[:zone_count]]

    network = vpc_with_subnets(session, "net", vpc_cidr, zones)

    vpc = ipaddress.ip_network(vpc_cidr)
    blocks = [ipaddress.ip_network(subnet.attributes["cidr_block"])
              for subnet in network.public_subnets + network.private_subnets]
    assert len(blocks) == 2 * zone_count
    assert all(block.subnet_of(vpc) for block in blocks)
    assert all(not a.overlaps(b) for i, a in enumerate(blocks) for b in blocks[i + 1:])


def test_auto_scaling_web_tier(session):
    network = vpc_with_subnets(session, "core", "10.0.0.0/16", ZONES)

    tier = auto_scaling_web_tier(session, "web", network.vpc, network.private_subnet_ids, {"name": "web-lt"},
                                 min_size=2, max_size=6, desired_capacity=3,
                                 target_group_arns=["arn:aws:elasticloadbalancing:us-east-1:123456789012:targetgroup/web/1"],
                                 tags={"Team": "platform"})

    resources = session.synthesis()["resource"]
    group = resources["aws_autoscaling_group"]["web_asg"]
    assert group["vpc_zone_identifier"] == network.private_subnet_ids
    assert group["launch_template"] == {"name": "web-lt", "version": "$Latest"}
    assert group["health_check_type"] == "ELB"
    assert group["tag"][0] == {"key": "Name", "value": "web-instance", "propagate_at_launch": True}
    assert group["tag"][1]["key"] == "Team"

    security_group = resources["aws_security_group"]["web_sg"]
    assert security_group["vpc_id"] == "${aws_vpc.core_vpc.id}"
    assert [rule["from_port"] for rule in security_group["ingress"]] == [80, 443]
    assert security_group["egress"][0]["protocol"] == "-1"

    assert tier.security_group_id == "${aws_security_group.web_sg.id}"
    assert (tier.min_instances, tier.max_instances, tier.desired_instances) == (2, 6, 3)
    assert len(tier.all_resources) == 2


def test_web_tier_capacity_is_validated(session):
    network = vpc_with_subnets(session, "core", "10.0.0.0/16", ZONES)

    with pytest.raises(ValidationFailed, match="min_size"):
        auto_scaling_web_tier(session, "web", network.vpc, network.public_subnet_ids, {"name": "web-lt"},
                              min_size=5, max_size=2, desired_capacity=3)
