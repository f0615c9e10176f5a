#!/usr/bin/env python3
"""
CDK Application for the Aurora PostgreSQL platform

Deploys the network stack and then the database stack on top of it.
Run from the repository root: ``cdk synth`` (see cdk.json) or
``python -m infra.app``.
"""

import logging
import os
from pathlib import Path

import aws_cdk as cdk

from infra.database_stack import DatabaseStack
from infra.vpc_stack import VpcStack
from src.aurora_infra.config import InfraConfig, load_config
from src.aurora_infra.user_data import ROOT

logger = logging.getLogger(__name__)


def build_app(
    config: InfraConfig,
    app: cdk.App | None = None,
    user_data_root: Path = ROOT,
) -> tuple[cdk.App, VpcStack, DatabaseStack]:
    """Instantiate both stacks in dependency order.

    Args:
        config: Validated configuration
        app: Existing CDK app, a new one is created when omitted
        user_data_root: Directory the boot script path is relative to

    Returns:
        The app, the network stack and the database stack
    """
    app = app or cdk.App()

    env = None
    if config.aws_account_id or config.aws_region:
        env = cdk.Environment(account=config.aws_account_id, region=config.aws_region)

    vpc_stack = VpcStack(
        app, config.vpc_stack_name,
        network=config.network,
        env=env,
        termination_protection=config.termination_protection,
        description=f"Network for the {config.environment} Aurora PostgreSQL cluster"
    )

    # The database stack can only be built once the VPC handle exists
    database_stack = DatabaseStack(
        app, config.database_stack_name,
        vpc=vpc_stack.vpc,
        config=config,
        user_data_root=user_data_root,
        env=env,
        termination_protection=config.termination_protection,
        description=f"Aurora PostgreSQL cluster {config.cluster_identifier}"
    )
    database_stack.add_dependency(vpc_stack)

    for key, value in config.tags.items():
        cdk.Tags.of(vpc_stack).add(key, value)
        cdk.Tags.of(database_stack).add(key, value)

    return app, vpc_stack, database_stack


def resolve_config(app: cdk.App) -> InfraConfig:
    """Load the config selected by ``-c environment=...`` or ``ENVIRONMENT``."""
    environment = app.node.try_get_context("environment") or os.environ.get("ENVIRONMENT", "prod")

    try:
        config = load_config(environment)
    except FileNotFoundError:
        logger.info("No config file for %s, reading environment variables over the defaults", environment)
        config = InfraConfig.from_env(environment)

    overrides = {
        "aws_account_id": app.node.try_get_context("account"),
        "aws_region": app.node.try_get_context("region"),
    }
    overrides = {k: v for k, v in overrides.items() if v}
    if overrides:
        config = config.model_copy(update=overrides)
    return config


def main():
    """Main CDK application entry point."""
    app = cdk.App()
    config = resolve_config(app)

    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("Synthesizing %s environment", config.environment)

    build_app(config, app)
    app.synth()


if __name__ == "__main__":
    main()
