"""Configuration management for the Aurora infrastructure app.

Provides environment-specific configuration loading and validation for
the VPC and database stacks. Nothing in here talks to AWS.
"""

from __future__ import annotations

import ipaddress
import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# Characters that break PostgreSQL connection strings when they appear in a password
REQUIRED_EXCLUDED_CHARACTERS = ":@/\" '"

# Public, private-with-egress and isolated
SUBNET_TIERS = 3

ALLOWED_ENVIRONMENTS = ["dev", "staging", "prod"]

NAME_PREFIXES = {"prod": "prd", "staging": "stg", "dev": "dev"}

CONFIG_DIR = Path(__file__).parent.parent.parent / "config"


class NetworkConfig(BaseModel):
    """Configuration for the VPC and its subnet tiers."""

    cidr: str = Field("10.10.0.0/24", description="IPv4 CIDR block of the VPC")
    max_azs: int = Field(
        2, ge=2, description="Number of availability zones to spread subnets over, Aurora needs at least two"
    )
    nat_gateways: int = Field(1, ge=0, description="NAT gateways shared by the private tier")
    subnet_cidr_mask: int = Field(28, ge=16, le=28, description="Mask of every subnet in every tier")
    enable_dns_hostnames: bool = Field(True, description="Enable DNS hostnames in the VPC")
    enable_dns_support: bool = Field(True, description="Enable DNS resolution in the VPC")

    @field_validator("cidr")
    @classmethod
    def validate_cidr(cls, v: str) -> str:
        """Validate that the CIDR is a well formed IPv4 network address."""
        try:
            network = ipaddress.ip_network(v, strict=True)
        except ValueError as e:
            raise ValueError(f"Invalid VPC CIDR {v!r}: {e}") from e
        if network.version != 4:
            raise ValueError(f"VPC CIDR must be IPv4, got {v!r}")
        return v

    @model_validator(mode="after")
    def validate_subnet_capacity(self) -> "NetworkConfig":
        """Reject subnet layouts that do not fit in the VPC block."""
        network = ipaddress.ip_network(self.cidr)
        if self.subnet_cidr_mask <= network.prefixlen:
            raise ValueError(
                f"Subnet mask /{self.subnet_cidr_mask} must be longer than the VPC prefix /{network.prefixlen}"
            )
        required = SUBNET_TIERS * self.max_azs * 2 ** (32 - self.subnet_cidr_mask)
        if required > network.num_addresses:
            raise ValueError(
                f"{SUBNET_TIERS} tiers x {self.max_azs} AZs of /{self.subnet_cidr_mask} need "
                f"{required} addresses but {self.cidr} only has {network.num_addresses}"
            )
        return self


class PasswordPolicyConfig(BaseModel):
    """Generation policy for the administrative credential."""

    password_length: int = Field(32, ge=8, le=4096, description="Generated password length")
    exclude_characters: str = Field(
        REQUIRED_EXCLUDED_CHARACTERS, description="Characters never used in generated passwords"
    )
    require_each_included_type: bool = Field(True, description="Require one character of every included class")
    exclude_lowercase: bool = Field(False, description="Exclude lowercase letters")
    exclude_uppercase: bool = Field(False, description="Exclude uppercase letters")
    exclude_numbers: bool = Field(False, description="Exclude digits")
    exclude_punctuation: bool = Field(False, description="Exclude punctuation")

    @field_validator("exclude_characters")
    @classmethod
    def validate_exclude_characters(cls, v: str) -> str:
        """Connection-string breaking characters must always be excluded."""
        missing = [c for c in REQUIRED_EXCLUDED_CHARACTERS if c not in v]
        if missing:
            raise ValueError(f"exclude_characters must contain {REQUIRED_EXCLUDED_CHARACTERS!r}, missing {missing!r}")
        return v

    @model_validator(mode="after")
    def validate_classes(self) -> "PasswordPolicyConfig":
        if all([self.exclude_lowercase, self.exclude_uppercase, self.exclude_numbers, self.exclude_punctuation]):
            raise ValueError("Password policy excludes every character class")
        return self


class DatabaseConfig(BaseModel):
    """Configuration for the Aurora PostgreSQL cluster."""

    cluster_identifier: str | None = Field(None, description="Cluster identifier, defaults to <prefix>-db-cluster")
    engine_version: str = Field("13.4", description="Aurora PostgreSQL full engine version")
    engine_major_version: str = Field("13", description="Aurora PostgreSQL major engine version")
    port: int = Field(5432, description="Database port")
    instance_type: str = Field("t3.medium", description="EC2 instance type of each DB instance")
    instances: int = Field(1, ge=1, description="Number of DB instances (one writer, the rest readers)")
    default_database_name: str = Field("testDB", description="Database created with the cluster")
    admin_username: str = Field("postgresAdmin", description="Master user name")

    # Backups and maintenance
    backup_retention_days: int = Field(7, ge=1, le=35, description="Automated backup retention")
    preferred_backup_window: str = Field("16:00-16:30", description="Daily backup window (UTC)")
    preferred_maintenance_window: str = Field("Sat:17:00-Sat:17:30", description="Weekly maintenance window (UTC)")

    # Monitoring
    cloudwatch_logs_exports: list[str] = Field(
        default_factory=lambda: ["postgresql"], description="Log types exported to CloudWatch"
    )
    cloudwatch_logs_retention: str = Field("ONE_YEAR", description="aws_logs.RetentionDays member name")
    monitoring_interval_minutes: int = Field(1, ge=1, description="Enhanced monitoring interval")
    enable_performance_insights: bool = Field(True, description="Enable Performance Insights on instances")

    # Safety
    deletion_protection: bool = Field(True, description="Block cluster deletion")
    storage_encrypted: bool = Field(True, description="Encrypt cluster storage")

    # Engine parameters
    timezone: str = Field("Asia/Tokyo", description="Cluster timezone parameter")
    audit_parameters: dict[str, str] = Field(
        default_factory=lambda: {
            "pgaudit.log": "all",
            "pgaudit.role": "rds_pgaudit",
            "shared_preload_libraries": "pgaudit",
        },
        description="pgaudit parameters of the cluster parameter group",
    )

    password_policy: PasswordPolicyConfig = Field(default_factory=PasswordPolicyConfig)

    @property
    def parameter_group_family(self) -> str:
        return f"aurora-postgresql{self.engine_major_version}"

    def cluster_parameters(self) -> dict[str, str]:
        """Parameters of the cluster-level parameter group."""
        return {**self.audit_parameters, "timezone": self.timezone}


class RotationConfig(BaseModel):
    """Configuration for the secret rotation jobs."""

    automatically_after_days: int = Field(3, ge=1, le=1000, description="Rotation cadence in days")
    username: str = Field("rotationPasswordUser", description="Privileged user used for multi-user rotation")
    # Deployed in clear text and replaced by the first single-user rotation
    bootstrap_password: str = Field(
        "rotationPasswordUser_password", description="First-deploy password of the rotation user"
    )


class DbClientConfig(BaseModel):
    """Configuration for the administrative EC2 instance."""

    instance_type: str = Field("t3.micro", description="EC2 instance type")
    volume_device_name: str = Field("/dev/xvda", description="Root block device name")
    volume_size_gib: int = Field(8, ge=1, description="Root volume size in GiB")
    volume_type: str = Field("GP3", description="aws_ec2.EbsDeviceVolumeType member name")
    volume_encrypted: bool = Field(True, description="Encrypt the root volume")
    user_data_path: str = Field(
        "src/ec2/user_data_amazon_linux2.sh", description="Boot script, relative to the repository root"
    )
    user_data_shebang: str = Field("#!/bin/bash", description="Shebang prepended to the boot script")


class InfraConfig(BaseModel):
    """Main configuration class for the VPC and database stacks."""

    # Environment
    environment: str = Field(..., description="Deployment environment")
    aws_region: str | None = Field(None, description="AWS region, None for an environment-agnostic synth")
    aws_account_id: str | None = Field(None, description="AWS account ID")
    name_prefix: str = Field("", description="Prefix of physical resource names, derived from environment")

    # Stacks
    vpc_stack_name: str = Field("VpcStack", description="Name of the network stack")
    database_stack_name: str = Field("DatabaseStack", description="Name of the database stack")
    termination_protection: bool = Field(True, description="Enable stack termination protection")
    tags: dict[str, str] = Field(
        default_factory=lambda: {"Environment": "Production"}, description="Tags applied to both stacks"
    )

    # Sub-configurations
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    rotation: RotationConfig = Field(default_factory=RotationConfig)
    db_client: DbClientConfig = Field(default_factory=DbClientConfig)

    # Logging
    log_level: str = Field("INFO", description="Logging level")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment values."""
        if v not in ALLOWED_ENVIRONMENTS:
            raise ValueError(f"Environment must be one of: {ALLOWED_ENVIRONMENTS}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level values."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of: {allowed_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_protection(self) -> "InfraConfig":
        """Production must keep every deletion safeguard enabled."""
        if not self.name_prefix:
            self.name_prefix = NAME_PREFIXES[self.environment]
        if self.environment == "prod":
            if not self.database.deletion_protection:
                raise ValueError("Production clusters must keep deletion_protection enabled")
            if not self.termination_protection:
                raise ValueError("Production stacks must keep termination_protection enabled")
        bad = [c for c in self.rotation.bootstrap_password if c in self.database.password_policy.exclude_characters]
        if bad:
            raise ValueError(f"Rotation bootstrap password contains excluded characters {bad!r}")
        return self

    @property
    def cluster_identifier(self) -> str:
        return self.database.cluster_identifier or f"{self.name_prefix}-db-cluster"

    @property
    def admin_secret_name(self) -> str:
        return f"{self.cluster_identifier}/AdminLoginInfo"

    @property
    def rotation_secret_name(self) -> str:
        return f"{self.cluster_identifier}/rotationPasswordUserLoginInfo"

    def admin_secret_template(self) -> str:
        return json.dumps({"username": self.database.admin_username})

    def rotation_secret_string(self) -> str:
        return json.dumps({"username": self.rotation.username, "password": self.rotation.bootstrap_password})

    @classmethod
    def from_env(cls, environment: str | None = None) -> "InfraConfig":
        """Load configuration from environment variables on top of the defaults.

        Used when no YAML file exists for the environment.
        """
        environment = environment or os.environ.get("ENVIRONMENT", "prod")
        config_data = get_default_config(environment)

        config_data["aws_region"] = os.environ.get("AWS_REGION")
        config_data["aws_account_id"] = os.environ.get("AWS_ACCOUNT_ID")
        config_data["log_level"] = os.environ.get("LOG_LEVEL", "INFO")

        network = config_data.setdefault("network", {})
        network["cidr"] = os.environ.get("VPC_CIDR", "10.10.0.0/24")
        network["max_azs"] = int(os.environ.get("MAX_AZS", "2"))

        database = config_data.setdefault("database", {})
        database["instance_type"] = os.environ.get("DB_INSTANCE_TYPE", "t3.medium")

        return cls(**config_data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "InfraConfig":
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            InfraConfig instance loaded from the file, merged over the
            defaults of its environment
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        # Try to infer environment from filename if not provided
        if "environment" not in data:
            stem = config_path.stem.lower()
            if stem in ALLOWED_ENVIRONMENTS:
                data["environment"] = stem
            else:
                data["environment"] = os.environ.get("ENVIRONMENT", "prod")

        data.setdefault("aws_account_id", os.getenv("AWS_ACCOUNT_ID"))

        return cls(**_deep_merge(get_default_config(data["environment"]), data))


def load_config(environment: str, config_path: Path | None = None) -> InfraConfig:
    """Load configuration for the specified environment.

    Args:
        environment: Target environment (dev/staging/prod)
        config_path: Optional custom config file path

    Returns:
        Loaded configuration object

    Raises:
        FileNotFoundError: If config file is not found
        ValueError: If configuration is invalid
    """
    if config_path is None:
        config_path = CONFIG_DIR / f"{environment}.yml"

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    config_data["environment"] = environment

    if "aws_account_id" not in config_data:
        config_data["aws_account_id"] = os.getenv("AWS_ACCOUNT_ID")

    logger.debug("Loaded configuration for %s from %s", environment, config_path)
    return InfraConfig(**_deep_merge(get_default_config(environment), config_data))


def get_default_config(environment: str) -> dict[str, Any]:
    """Get default configuration for an environment.

    Args:
        environment: Target environment

    Returns:
        Default configuration dictionary
    """
    base_config: dict[str, Any] = {
        "environment": environment,
        "tags": {"Environment": "Production"},
        "termination_protection": True,
        "database": {"deletion_protection": True},
    }

    # Environment-specific overrides
    if environment == "staging":
        base_config["tags"] = {"Environment": "Staging"}
    elif environment == "dev":
        base_config["tags"] = {"Environment": "Development"}
        base_config["termination_protection"] = False  # Allow quick teardown in dev
        base_config["database"] = {"deletion_protection": False, "backup_retention_days": 1}

    return base_config


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
