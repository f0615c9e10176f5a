"""
CDK Stack for the network

One VPC partitioned into public, private (egress through a shared NAT
gateway) and isolated subnet tiers in every availability zone.
"""

import logging

from aws_cdk import Stack
from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from src.aurora_infra.config import NetworkConfig
from src.aurora_infra.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PUBLIC_SUBNET_NAME = "Public"
PRIVATE_SUBNET_NAME = "Private"
ISOLATED_SUBNET_NAME = "Isolate"


class VpcStack(Stack):
    """Network Topology stack exposing the VPC handle as ``self.vpc``."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        network: NetworkConfig | None = None,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.network = network or NetworkConfig()

        available = len(self.availability_zones)
        if self.network.max_azs > available:
            raise ConfigurationError(
                f"Requested {self.network.max_azs} availability zones but only {available} are available",
                config_key="network.max_azs",
            )

        self.vpc = self._create_vpc()

    def _create_vpc(self) -> ec2.Vpc:
        """Create the VPC with the three subnet tiers."""
        mask = self.network.subnet_cidr_mask
        vpc = ec2.Vpc(
            self, "Vpc",
            ip_addresses=ec2.IpAddresses.cidr(self.network.cidr),
            enable_dns_hostnames=self.network.enable_dns_hostnames,
            enable_dns_support=self.network.enable_dns_support,
            nat_gateways=self.network.nat_gateways,
            max_azs=self.network.max_azs,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name=PUBLIC_SUBNET_NAME,
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=mask
                ),
                ec2.SubnetConfiguration(
                    name=PRIVATE_SUBNET_NAME,
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=mask
                ),
                ec2.SubnetConfiguration(
                    name=ISOLATED_SUBNET_NAME,
                    subnet_type=ec2.SubnetType.PRIVATE_ISOLATED,
                    cidr_mask=mask
                )
            ]
        )

        logger.info(
            "Declared VPC %s across %d AZs with /%d subnets",
            self.network.cidr, self.network.max_azs, mask,
        )
        return vpc
