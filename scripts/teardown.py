#!/usr/bin/env python3
"""Teardown script to destroy the Aurora stacks safely.

Refuses to call ``cdk destroy`` while the stack has termination
protection or the cluster it owns has deletion protection.
"""
from __future__ import annotations

import argparse
import subprocess
from pathlib import Path

from src.aurora_infra.config import load_config, InfraConfig
from src.aurora_infra.exceptions import DeletionProtectedError
from src.aurora_infra.guardrails import ensure_destroy_allowed

ROOT = Path(__file__).resolve().parents[1]


def run(cmd: list[str], cwd: Path | None = None) -> int:
    print(f"$ {' '.join(cmd)}")
    return subprocess.run(cmd, cwd=str(cwd) if cwd else None).returncode


def stacks_to_destroy(config: InfraConfig, which: str) -> list[str]:
    # Dependents first: the database stack imports the VPC exports
    if which == "database":
        return [config.database_stack_name]
    if which == "vpc":
        return [config.vpc_stack_name]
    return [config.database_stack_name, config.vpc_stack_name]


def main(argv: list[str] | None = None, cfn_client=None, rds_client=None) -> int:
    p = argparse.ArgumentParser(description="Destroy CDK stacks with confirmation")
    p.add_argument("--env", required=True, choices=["dev", "staging", "prod"], help="Target environment")
    p.add_argument("--stack", default="all", choices=["all", "database", "vpc"], help="Stacks to destroy")
    p.add_argument("--yes", action="store_true", help="Auto-confirm destroy")
    args = p.parse_args(argv)

    try:
        config = load_config(args.env)
    except FileNotFoundError:
        config = InfraConfig.from_env(args.env)

    stacks = stacks_to_destroy(config, args.stack)

    for stack in stacks:
        cluster = config.cluster_identifier if stack == config.database_stack_name else None
        try:
            ensure_destroy_allowed(stack, cfn_client=cfn_client, rds_client=rds_client, cluster_identifier=cluster)
        except DeletionProtectedError as e:
            print(f"🛑 {e}. Disable the protection explicitly before destroying.")
            return 3

    if not args.yes:
        print(f"⚠️  You are about to destroy stacks: {', '.join(stacks)}")
        return 2

    for stack in stacks:
        code = run(["cdk", "destroy", stack, "--force", "--context", f"environment={args.env}"], cwd=ROOT)
        if code != 0:
            return code
        print(f"🧹 Destroyed stack: {stack}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
