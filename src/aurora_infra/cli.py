"""Command-line interface for the Aurora infrastructure app.

Provides CLI commands for inspecting configuration, auditing the
synthesized templates and checking deletion safeguards before a
teardown.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .config import InfraConfig, load_config
from .exceptions import DeletionProtectedError, InfraError

app = typer.Typer(
    name="aurora-infra",
    help="Aurora Infra - VPC and Aurora PostgreSQL CDK toolkit",
    rich_markup_mode="rich",
)
console = Console()


def _load(env: str, config_path: Path | None) -> InfraConfig:
    config = load_config(env, config_path)
    logging.basicConfig(level=config.log_level)
    return config


@app.command("show-config")
def show_config(
    env: str = typer.Option("prod", help="Environment (dev/staging/prod)"),
    config_path: Path | None = typer.Option(None, help="Custom config file path"),
) -> None:
    """Show the effective configuration of both stacks."""
    try:
        config = _load(env, config_path)
    except (InfraError, ValueError, FileNotFoundError) as e:
        console.print(f"[bold red]❌ Invalid configuration: {e}[/bold red]")
        sys.exit(1)

    _display_config_table(config)


@app.command()
def audit(
    env: str = typer.Option("prod", help="Environment (dev/staging/prod)"),
    config_path: Path | None = typer.Option(None, help="Custom config file path"),
) -> None:
    """Synthesize both stacks in-process and check them against the guardrails."""
    console.print("[bold blue]🔍 Auditing synthesized templates...[/bold blue]")

    try:
        config = _load(env, config_path)

        from infra.app import build_app

        from .guardrails import audit_assembly

        cdk_app, _, _ = build_app(config)
        results = audit_assembly(cdk_app.synth(), config)
    except InfraError as e:
        console.print(f"[bold red]❌ Audit failed: {e}[/bold red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[bold red]💥 Unexpected error: {e}[/bold red]")
        sys.exit(1)

    _display_audit_results(results)

    if any(results.values()):
        console.print("[bold red]❌ Guardrail violations found![/bold red]")
        sys.exit(1)
    console.print("[bold green]✅ All guardrails passed![/bold green]")


@app.command("generate-password")
def generate_password_cmd(
    env: str = typer.Option("prod", help="Environment (dev/staging/prod)"),
    config_path: Path | None = typer.Option(None, help="Custom config file path"),
) -> None:
    """Print a password that satisfies the admin credential policy."""
    from .passwords import generate_password

    try:
        config = _load(env, config_path)
        typer.echo(generate_password(config.database.password_policy))
    except (InfraError, ValueError, FileNotFoundError) as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        sys.exit(1)


@app.command("check-destroy")
def check_destroy(
    stack: str = typer.Argument(..., help="CloudFormation stack name"),
    env: str = typer.Option("prod", help="Environment (dev/staging/prod)"),
    config_path: Path | None = typer.Option(None, help="Custom config file path"),
) -> None:
    """Fail if the stack (or the cluster it owns) is deletion protected."""
    from .guardrails import ensure_destroy_allowed

    try:
        config = _load(env, config_path)
        cluster = config.cluster_identifier if stack == config.database_stack_name else None
        ensure_destroy_allowed(stack, cluster_identifier=cluster)
    except DeletionProtectedError as e:
        console.print(f"[bold red]🛑 {e}[/bold red]")
        sys.exit(2)
    except InfraError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[bold red]💥 Unexpected error: {e}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ {stack} can be destroyed[/bold green]")


def _display_config_table(config: InfraConfig) -> None:
    """Display the configuration summary table."""
    table = Table(title=f"Configuration ({config.environment})")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    network = config.network
    db = config.database
    table.add_row("VPC CIDR", network.cidr)
    table.add_row("Availability zones", str(network.max_azs))
    table.add_row("Subnet mask", f"/{network.subnet_cidr_mask}")
    table.add_row("NAT gateways", str(network.nat_gateways))
    table.add_row("Cluster", config.cluster_identifier)
    table.add_row("Engine", f"aurora-postgresql {db.engine_version}")
    table.add_row("Instances", f"{db.instances} x db.{db.instance_type}")
    table.add_row("Backup retention", f"{db.backup_retention_days} days")
    table.add_row("Deletion protection", "✅" if db.deletion_protection else "❌")
    table.add_row("Termination protection", "✅" if config.termination_protection else "❌")
    table.add_row("Rotation", f"every {config.rotation.automatically_after_days} days")
    table.add_row("Tags", ", ".join(f"{k}={v}" for k, v in config.tags.items()))

    console.print(table)


def _display_audit_results(results: dict) -> None:
    """Display guardrail results table."""
    table = Table(title="Guardrail Audit")
    table.add_column("Stack", style="cyan")
    table.add_column("Rule", style="yellow")
    table.add_column("Resource", style="blue")
    table.add_column("Status", style="green")

    for stack_name, violations in results.items():
        if not violations:
            table.add_row(stack_name, "all", "", "✅ PASS")
        for v in violations:
            table.add_row(stack_name, v.rule, v.resource, f"❌ {v.message}")

    console.print(table)


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
