"""Guardrails for the synthesized templates and for stack teardown.

``audit_template``/``audit_assembly`` inspect CloudFormation output and
report broken invariants (open ingress, weak secret policy, secrets
without rotation, unprotected cluster or stack). ``ensure_destroy_allowed``
checks the live deletion safeguards before anything destructive is issued.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

import boto3
from botocore.exceptions import ClientError

from .config import REQUIRED_EXCLUDED_CHARACTERS, InfraConfig
from .exceptions import DeletionProtectedError, GuardrailViolation

logger = logging.getLogger(__name__)

OPEN_CIDRS = {"0.0.0.0/0", "::/0"}

RATE_EXPRESSION = re.compile(r"^rate\((\d+) days?\)$")


@dataclass(frozen=True)
class Violation:
    rule: str
    resource: str
    message: str


def _resources(template: dict[str, Any], resource_type: str) -> Iterable[tuple[str, dict[str, Any]]]:
    for logical_id, resource in template.get("Resources", {}).items():
        if resource.get("Type") == resource_type:
            yield logical_id, resource.get("Properties", {})


def _check_ingress_rule(rule: dict[str, Any], resource: str) -> Optional[Violation]:
    for key in ("CidrIp", "CidrIpv6"):
        if rule.get(key) in OPEN_CIDRS:
            return Violation("open-ingress", resource, f"Ingress from {rule[key]} is not allowed")
    if not any(rule.get(k) for k in ("SourceSecurityGroupId", "CidrIp", "CidrIpv6", "SourcePrefixListId")):
        return Violation("open-ingress", resource, "Ingress rule has no source")
    return None


def audit_ingress(template: dict[str, Any]) -> List[Violation]:
    """Every ingress rule must name a source group or a bounded range."""
    violations = []
    for logical_id, props in _resources(template, "AWS::EC2::SecurityGroup"):
        for rule in props.get("SecurityGroupIngress", []):
            violation = _check_ingress_rule(rule, logical_id)
            if violation:
                violations.append(violation)
    for logical_id, props in _resources(template, "AWS::EC2::SecurityGroupIngress"):
        violation = _check_ingress_rule(props, logical_id)
        if violation:
            violations.append(violation)
    return violations


def audit_secret_exclusions(template: dict[str, Any]) -> List[Violation]:
    violations = []
    for logical_id, props in _resources(template, "AWS::SecretsManager::Secret"):
        generator = props.get("GenerateSecretString")
        if not generator:
            continue
        excluded = generator.get("ExcludeCharacters", "")
        missing = [c for c in REQUIRED_EXCLUDED_CHARACTERS if c not in excluded]
        if missing:
            violations.append(
                Violation("secret-exclusions", logical_id, f"Generated secret may contain {missing!r}")
            )
    return violations


def audit_database(template: dict[str, Any], require_deletion_protection: bool = True) -> List[Violation]:
    violations = []
    if require_deletion_protection:
        for logical_id, props in _resources(template, "AWS::RDS::DBCluster"):
            if props.get("DeletionProtection") is not True:
                violations.append(
                    Violation("cluster-deletion-protection", logical_id, "DB cluster has no deletion protection")
                )
    for logical_id, props in _resources(template, "AWS::RDS::DBInstance"):
        if props.get("PubliclyAccessible") is True:
            violations.append(Violation("db-public", logical_id, "DB instance is publicly accessible"))
    return violations


def _rotation_days(rules: dict[str, Any]) -> Optional[int]:
    if "AutomaticallyAfterDays" in rules:
        return int(rules["AutomaticallyAfterDays"])
    match = RATE_EXPRESSION.match(str(rules.get("ScheduleExpression", "")))
    return int(match.group(1)) if match else None


def _ref(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("Ref")
    return None


def audit_rotation(template: dict[str, Any], automatically_after_days: int | None = None) -> List[Violation]:
    """Every secret must have a rotation schedule, at the expected cadence when one is given."""
    # Schedules may point at a target attachment instead of the secret itself
    attachments = {
        logical_id: _ref(props.get("SecretId"))
        for logical_id, props in _resources(template, "AWS::SecretsManager::SecretTargetAttachment")
    }

    violations = []
    rotated = set()
    for logical_id, props in _resources(template, "AWS::SecretsManager::RotationSchedule"):
        secret = _ref(props.get("SecretId"))
        rotated.add(attachments.get(secret) or secret)
        if automatically_after_days is None:
            continue
        days = _rotation_days(props.get("RotationRules", {}))
        if days != automatically_after_days:
            violations.append(Violation(
                "rotation-cadence", logical_id,
                f"Rotation runs every {days} days, expected {automatically_after_days}",
            ))

    for logical_id, _ in _resources(template, "AWS::SecretsManager::Secret"):
        if logical_id not in rotated:
            violations.append(Violation("rotation-missing", logical_id, "Secret has no rotation schedule"))
    return violations


def audit_template(template: dict[str, Any], require_deletion_protection: bool = True,
                   rotation_days: int | None = None) -> List[Violation]:
    """Run every template-level check and return the violations found."""
    return [
        *audit_ingress(template),
        *audit_secret_exclusions(template),
        *audit_database(template, require_deletion_protection),
        *audit_rotation(template, rotation_days),
    ]


def audit_assembly(assembly: Any, config: InfraConfig) -> dict[str, List[Violation]]:
    """Audit every stack of a synthesized cloud assembly.

    Args:
        assembly: ``cx_api.CloudAssembly`` returned by ``App.synth()``
        config: Configuration the app was built from

    Returns:
        Mapping of stack name to its violations
    """
    results = {}
    for artifact in assembly.stacks:
        violations = audit_template(
            artifact.template,
            config.database.deletion_protection,
            config.rotation.automatically_after_days,
        )
        if config.termination_protection and not artifact.termination_protection:
            violations.append(
                Violation("termination-protection", artifact.stack_name, "Stack termination protection is off")
            )
        for v in violations:
            logger.warning("%s: [%s] %s %s", artifact.stack_name, v.rule, v.resource, v.message)
        results[artifact.stack_name] = violations
    return results


def enforce(violations: Iterable[Violation]) -> None:
    """Raise on the first violation, if any."""
    for v in violations:
        raise GuardrailViolation(v.message, rule=v.rule, resource=v.resource)


def ensure_destroy_allowed(
    stack_name: str,
    cfn_client: Any | None = None,
    rds_client: Any | None = None,
    cluster_identifier: str | None = None,
) -> None:
    """Refuse to continue when a stack or cluster is deletion protected.

    Args:
        stack_name: CloudFormation stack about to be destroyed
        cfn_client: Optional boto3 CloudFormation client (for DI/testing)
        rds_client: Optional boto3 RDS client (for DI/testing)
        cluster_identifier: DB cluster owned by the stack, if any

    Raises:
        DeletionProtectedError: If termination or deletion protection is on
    """
    if cfn_client is None:
        cfn_client = boto3.client("cloudformation")

    try:
        resp = cfn_client.describe_stacks(StackName=stack_name)
    except ClientError as e:
        if "does not exist" in str(e):
            logger.info("Stack %s does not exist, nothing to protect", stack_name)
            return
        raise

    for stack in resp.get("Stacks", []):
        if stack.get("EnableTerminationProtection"):
            raise DeletionProtectedError(
                f"Stack {stack_name} has termination protection enabled",
                resource_type="AWS::CloudFormation::Stack",
                resource=stack_name,
            )

    if not cluster_identifier:
        return

    if rds_client is None:
        rds_client = boto3.client("rds")

    try:
        resp = rds_client.describe_db_clusters(DBClusterIdentifier=cluster_identifier)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "DBClusterNotFoundFault":
            logger.info("DB cluster %s does not exist", cluster_identifier)
            return
        raise

    for cluster in resp.get("DBClusters", []):
        if cluster.get("DeletionProtection"):
            raise DeletionProtectedError(
                f"DB cluster {cluster_identifier} has deletion protection enabled",
                resource_type="AWS::RDS::DBCluster",
                resource=cluster_identifier,
            )
