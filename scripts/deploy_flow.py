#!/usr/bin/env python3
"""Deployment flow: audit -> synth -> deploy with guardrails.

Guardrails:
- Prevent prod deploys from non-main/master unless --force
- Require confirmation for prod unless --yes
- Refuse to deploy templates that fail the guardrail audit
"""
from __future__ import annotations

import argparse
import os
import subprocess
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def run(cmd: list[str], cwd: Path | None = None, check: bool = True) -> int:
    print(f"$ {' '.join(cmd)}")
    return subprocess.run(cmd, cwd=str(cwd) if cwd else None, check=check).returncode


def get_branch() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=ROOT)
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return os.getenv("GITHUB_REF_NAME", "")


def audit(env: str) -> bool:
    """Synthesize in-process and return True when every guardrail passes."""
    from infra.app import build_app
    from src.aurora_infra.config import load_config
    from src.aurora_infra.guardrails import audit_assembly

    config = load_config(env)
    app, _, _ = build_app(config)
    results = audit_assembly(app.synth(), config)
    for stack, violations in results.items():
        for v in violations:
            print(f"❌ {stack}: [{v.rule}] {v.resource}: {v.message}")
    return not any(results.values())


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Audit and deploy both stacks with CDK")
    p.add_argument("--env", required=True, choices=["dev", "staging", "prod"], help="Target environment")
    p.add_argument("--yes", action="store_true", help="Auto-confirm prompts (required for prod)")
    p.add_argument("--force", action="store_true", help="Bypass branch guardrails for prod")
    args = p.parse_args(argv)

    # Guardrails
    branch = get_branch()
    if args.env == "prod" and not args.force:
        if branch not in {"main", "master"}:
            print(f"❌ Refusing to deploy prod from branch '{branch}'. Use --force to override.")
            return 2
        if not args.yes:
            print("❌ Production deploy requires --yes confirmation flag.")
            return 2

    # Step 1: Guardrail audit
    if not audit(args.env):
        print("❌ Guardrail audit failed, nothing deployed.")
        return 1

    context = ["--context", f"environment={args.env}"]

    # Step 2: CDK synth
    run(["cdk", "synth", "--all", *context], cwd=ROOT)

    # Step 3: CDK deploy (dependency order is resolved by CDK: VPC first)
    run(["cdk", "deploy", "--all", "--require-approval", "never", *context], cwd=ROOT)

    print(f"✅ Deployed VPC and database stacks to {args.env}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
