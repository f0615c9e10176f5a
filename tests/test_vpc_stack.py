import ipaddress
from collections import Counter

import aws_cdk as cdk
import pytest

from infra.vpc_stack import VpcStack
from src.aurora_infra.config import NetworkConfig
from src.aurora_infra.exceptions import ConfigurationError


def _tag(props, key):
    for tag in props.get("Tags", []):
        if tag.get("Key") == key:
            return tag.get("Value")
    return None


def test_vpc_properties(vpc_template):
    vpc_template.has_resource_properties("AWS::EC2::VPC", {
        "CidrBlock": "10.10.0.0/24",
        "EnableDnsHostnames": True,
        "EnableDnsSupport": True,
    })
    vpc_template.resource_count_is("AWS::EC2::VPC", 1)
    vpc_template.resource_count_is("AWS::EC2::NatGateway", 1)
    vpc_template.resource_count_is("AWS::EC2::InternetGateway", 1)


def test_two_azs_yield_six_slash_28_subnets(vpc_template):
    subnets = vpc_template.find_resources("AWS::EC2::Subnet")
    assert len(subnets) == 6

    cidrs = [s["Properties"]["CidrBlock"] for s in subnets.values()]
    assert all(c.endswith("/28") for c in cidrs)
    assert len(set(cidrs)) == 6

    network = ipaddress.ip_network("10.10.0.0/24")
    assert all(ipaddress.ip_network(c).subnet_of(network) for c in cidrs)


def test_three_tiers_in_each_az(vpc_template):
    subnets = vpc_template.find_resources("AWS::EC2::Subnet")

    names = Counter(_tag(s["Properties"], "aws-cdk:subnet-name") for s in subnets.values())
    assert names == {"Public": 2, "Private": 2, "Isolate": 2}

    types = Counter(_tag(s["Properties"], "aws-cdk:subnet-type") for s in subnets.values())
    assert types == {"Public": 2, "Private": 2, "Isolated": 2}


def test_only_public_tier_maps_public_ips(vpc_template):
    subnets = vpc_template.find_resources("AWS::EC2::Subnet")
    for s in subnets.values():
        props = s["Properties"]
        is_public = _tag(props, "aws-cdk:subnet-name") == "Public"
        assert bool(props.get("MapPublicIpOnLaunch", False)) is is_public


def test_tier_reachability(vpc_template):
    routes = vpc_template.find_resources("AWS::EC2::Route")
    assert routes, "No routes declared"

    for logical_id, route in routes.items():
        props = route["Properties"]
        table = props["RouteTableId"]["Ref"]
        # Isolated subnets must have no route out of the VPC
        assert "Isolate" not in table, f"Isolated route table has route {logical_id}"
        if "Public" in table:
            assert "GatewayId" in props
        if "Private" in table:
            assert "NatGatewayId" in props


def test_zone_count_above_availability_rejected():
    app = cdk.App()
    # Environment-agnostic stacks only see two availability zones
    with pytest.raises(ConfigurationError) as exc:
        VpcStack(app, "VpcStack", network=NetworkConfig(cidr="10.10.0.0/22", max_azs=3))
    assert exc.value.config_key == "network.max_azs"


def test_subnet_overflow_rejected():
    # 3 tiers x 2 AZs x 16 addresses do not fit in a /26
    with pytest.raises(ValueError):
        NetworkConfig(cidr="10.10.0.0/26", max_azs=2, subnet_cidr_mask=28)


def test_subnet_mask_must_be_longer_than_vpc_prefix():
    with pytest.raises(ValueError):
        NetworkConfig(cidr="10.10.0.0/28", subnet_cidr_mask=28)


@pytest.mark.parametrize("cidr", ["10.10.0.1/24", "not-a-cidr", "fd00::/56"])
def test_invalid_cidr_rejected(cidr):
    with pytest.raises(ValueError):
        NetworkConfig(cidr=cidr)
