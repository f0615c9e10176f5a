"""
CDK Stack for the Aurora PostgreSQL cluster

Deploys the database into the isolated subnets of the network stack with
Secrets Manager credentials, automated multi-user rotation, a client IAM
role and an administrative EC2 instance.
"""

import logging
from pathlib import Path
from typing import List

from aws_cdk import (
    Stack,
    Duration,
    RemovalPolicy,
    SecretValue,
    CfnOutput
)
from aws_cdk import (
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_logs as logs,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager
)
from constructs import Construct

from src.aurora_infra.config import InfraConfig
from src.aurora_infra.exceptions import ConfigurationError
from src.aurora_infra.user_data import ROOT, build_linux_user_data

logger = logging.getLogger(__name__)


class DatabaseStack(Stack):
    """Data Cluster stack wired to an existing VPC."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        config: InfraConfig | None = None,
        user_data_root: Path = ROOT,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.vpc = vpc
        self.config = config or InfraConfig(environment="prod")
        self.user_data_root = user_data_root
        prefix = self.config.name_prefix
        db = self.config.database

        self.exclude_characters = db.password_policy.exclude_characters
        self.engine = rds.DatabaseClusterEngine.aurora_postgres(
            version=rds.AuroraPostgresEngineVersion.of(db.engine_version, db.engine_major_version)
        )

        # Security groups
        self.db_client_sg = self._create_security_group(
            "DbClientSg", f"{prefix}-db-client-sg", "DB clients"
        )
        self.rotation_sg = self._create_security_group(
            "RotateSecretsLambdaFunctionSg", f"{prefix}-rotate-secrets-lambda-sg",
            "Lambda functions that rotate the DB secrets"
        )
        self.db_sg = self._create_db_security_group(f"{prefix}-db-sg")

        # Credentials
        self.admin_secret = self._create_admin_secret()
        self.rotation_secret = self._create_rotation_user_secret()

        # Cluster
        self.cluster_parameter_group, self.instance_parameter_group = self._create_parameter_groups()
        self.isolated_subnets = self._select_isolated_subnets()
        self.subnet_group = self._create_subnet_group()
        self.cluster = self._create_cluster()

        # Rotation jobs
        self.rotations = self._create_rotations()

        # DB client
        self.db_client_role = self._create_db_client_role()
        self.db_client = self._create_db_client()

        self._create_outputs()

    def _create_security_group(self, construct_id: str, name: str, purpose: str) -> ec2.SecurityGroup:
        return ec2.SecurityGroup(
            self, construct_id,
            vpc=self.vpc,
            security_group_name=name,
            description=f"Security group for {purpose}",
            allow_all_outbound=True
        )

    def _create_db_security_group(self, name: str) -> ec2.SecurityGroup:
        """Security group for the DB.

        Only the DB clients and the rotation Lambda functions may connect.
        """
        sg = self._create_security_group("DbSg", name, "the Aurora PostgreSQL cluster")
        port = ec2.Port.tcp(self.config.database.port)
        sg.add_ingress_rule(
            ec2.Peer.security_group_id(self.rotation_sg.security_group_id),
            port,
            "Allow DB access from Lambda Functions that rotate Secrets"
        )
        sg.add_ingress_rule(
            ec2.Peer.security_group_id(self.db_client_sg.security_group_id),
            port,
            "Allow DB access from DB Client"
        )
        return sg

    def _create_admin_secret(self) -> secretsmanager.Secret:
        """Admin user secret, generated by Secrets Manager."""
        policy = self.config.database.password_policy
        return secretsmanager.Secret(
            self, "DbAdminSecret",
            secret_name=self.config.admin_secret_name,
            generate_secret_string=secretsmanager.SecretStringGenerator(
                exclude_characters=policy.exclude_characters,
                exclude_lowercase=policy.exclude_lowercase,
                exclude_uppercase=policy.exclude_uppercase,
                exclude_numbers=policy.exclude_numbers,
                exclude_punctuation=policy.exclude_punctuation,
                generate_string_key="password",
                password_length=policy.password_length,
                require_each_included_type=policy.require_each_included_type,
                secret_string_template=self.config.admin_secret_template()
            )
        )

    def _create_rotation_user_secret(self) -> secretsmanager.Secret:
        """Secret of the user that rotates the admin password.

        Starts from a known plaintext value; its own single-user rotation
        replaces it after the first deploy.
        """
        return secretsmanager.Secret(
            self, "DbRotationPasswordUserSecret",
            secret_name=self.config.rotation_secret_name,
            secret_string_value=SecretValue.unsafe_plain_text(self.config.rotation_secret_string())
        )

    def _create_parameter_groups(self) -> tuple[rds.ParameterGroup, rds.ParameterGroup]:
        db = self.config.database
        cluster_parameter_group = rds.ParameterGroup(
            self, "DbClusterParameterGroup",
            engine=self.engine,
            description=db.parameter_group_family,
            parameters=db.cluster_parameters()
        )
        instance_parameter_group = rds.ParameterGroup(
            self, "DbParameterGroup",
            engine=self.engine,
            description=db.parameter_group_family
        )
        return cluster_parameter_group, instance_parameter_group

    def _select_isolated_subnets(self) -> ec2.SelectedSubnets:
        """Pick one isolated subnet per AZ for the DB subnet group."""
        if not self.vpc.isolated_subnets:
            raise ConfigurationError(
                "DB subnet group must only contain isolated subnets, but the VPC has no isolated tier",
                config_key="network",
            )
        selected = self.vpc.select_subnets(one_per_az=True, subnet_type=ec2.SubnetType.PRIVATE_ISOLATED)
        logger.debug("DB subnet group uses %d isolated subnets", len(selected.subnets))
        return selected

    def _create_subnet_group(self) -> rds.SubnetGroup:
        return rds.SubnetGroup(
            self, "SubnetGroup",
            description=f"Isolated subnets of {self.config.cluster_identifier}",
            vpc=self.vpc,
            subnet_group_name="SubnetGroup",
            vpc_subnets=ec2.SubnetSelection(subnets=self.isolated_subnets.subnets)
        )

    def _create_instances(self) -> List[rds.IClusterInstance]:
        db = self.config.database
        base = f"{self.config.name_prefix}-db-instance"
        instances = []
        for index in range(1, db.instances + 1):
            instances.append(rds.ClusterInstance.provisioned(
                f"Instance{index}",
                instance_type=ec2.InstanceType(db.instance_type),
                instance_identifier=f"{base}{index}",
                parameter_group=self.instance_parameter_group,
                publicly_accessible=False,
                allow_major_version_upgrade=False,
                auto_minor_version_upgrade=True,
                enable_performance_insights=db.enable_performance_insights,
                performance_insight_retention=(
                    rds.PerformanceInsightRetention.DEFAULT if db.enable_performance_insights else None
                )
            ))
        return instances

    def _create_cluster(self) -> rds.DatabaseCluster:
        db = self.config.database
        try:
            log_retention = logs.RetentionDays[db.cloudwatch_logs_retention]
        except KeyError:
            raise ConfigurationError(
                f"Unknown log retention {db.cloudwatch_logs_retention!r}",
                config_key="database.cloudwatch_logs_retention",
            ) from None

        writer, *readers = self._create_instances()
        cluster = rds.DatabaseCluster(
            self, "DbCluster",
            engine=self.engine,
            writer=writer,
            readers=readers,
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnets=self.isolated_subnets.subnets),
            security_groups=[self.db_sg],
            subnet_group=self.subnet_group,
            port=db.port,
            backup=rds.BackupProps(
                retention=Duration.days(db.backup_retention_days),
                preferred_window=db.preferred_backup_window
            ),
            cloudwatch_logs_exports=db.cloudwatch_logs_exports,
            cloudwatch_logs_retention=log_retention,
            cluster_identifier=self.config.cluster_identifier,
            copy_tags_to_snapshot=True,
            credentials=rds.Credentials.from_secret(self.admin_secret),
            default_database_name=db.default_database_name,
            deletion_protection=db.deletion_protection,
            iam_authentication=False,
            monitoring_interval=Duration.minutes(db.monitoring_interval_minutes),
            parameter_group=self.cluster_parameter_group,
            preferred_maintenance_window=db.preferred_maintenance_window,
            storage_encrypted=db.storage_encrypted,
            removal_policy=self._removal_policy()
        )

        logger.info(
            "Declared cluster %s (aurora-postgresql %s, %d x %s)",
            self.config.cluster_identifier, db.engine_version, db.instances, db.instance_type,
        )
        return cluster

    def _create_rotations(self) -> List[secretsmanager.SecretRotation]:
        """Rotation jobs for both secrets, running in the egress-only tier."""
        every = Duration.days(self.config.rotation.automatically_after_days)
        egress_subnets = ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS)

        # Rotate DB Admin user secret
        admin_rotation = secretsmanager.SecretRotation(
            self, "DbAdminSecretRotationMultiUser",
            application=secretsmanager.SecretRotationApplication.POSTGRES_ROTATION_MULTI_USER,
            secret=self.admin_secret,
            target=self.cluster,
            vpc=self.vpc,
            automatically_after=every,
            exclude_characters=self.exclude_characters,
            master_secret=self.rotation_secret,
            security_group=self.rotation_sg,
            vpc_subnets=egress_subnets
        )

        # Rotate the rotation user's own secret
        rotation_user_rotation = secretsmanager.SecretRotation(
            self, "DbRotationPasswordUserSecretRotationSingleUser",
            application=secretsmanager.SecretRotationApplication.POSTGRES_ROTATION_SINGLE_USER,
            secret=self.rotation_secret,
            target=self.cluster,
            vpc=self.vpc,
            automatically_after=every,
            exclude_characters=self.exclude_characters,
            security_group=self.rotation_sg,
            vpc_subnets=egress_subnets
        )

        logger.info("Declared secret rotation every %d days", self.config.rotation.automatically_after_days)
        return [admin_rotation, rotation_user_rotation]

    def _create_db_client_role(self) -> iam.Role:
        """Instance role allowed to read the two DB secrets and use Session Manager."""
        return iam.Role(
            self, "DbClientIamRole",
            assumed_by=iam.ServicePrincipal("ec2.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonSSMManagedInstanceCore"),
                iam.ManagedPolicy(
                    self, "GetSecretValueIamPolicy",
                    statements=[
                        iam.PolicyStatement(
                            effect=iam.Effect.ALLOW,
                            resources=[
                                self.admin_secret.secret_arn,
                                self.rotation_secret.secret_arn
                            ],
                            actions=[
                                "secretsmanager:GetSecretValue",
                                "secretsmanager:ListSecretVersionIds"
                            ]
                        )
                    ]
                )
            ]
        )

    def _create_db_client(self) -> ec2.Instance:
        client = self.config.db_client
        try:
            volume_type = ec2.EbsDeviceVolumeType[client.volume_type]
        except KeyError:
            raise ConfigurationError(
                f"Unknown EBS volume type {client.volume_type!r}", config_key="db_client.volume_type"
            ) from None

        return ec2.Instance(
            self, "DbClient",
            instance_type=ec2.InstanceType(client.instance_type),
            machine_image=ec2.MachineImage.latest_amazon_linux2(),
            vpc=self.vpc,
            block_devices=[
                ec2.BlockDevice(
                    device_name=client.volume_device_name,
                    volume=ec2.BlockDeviceVolume.ebs(
                        client.volume_size_gib,
                        encrypted=client.volume_encrypted,
                        volume_type=volume_type
                    )
                )
            ],
            role=self.db_client_role,
            security_group=self.db_client_sg,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            user_data=build_linux_user_data(client, self.user_data_root)
        )

    def _removal_policy(self) -> RemovalPolicy:
        if self.config.database.deletion_protection:
            return RemovalPolicy.SNAPSHOT
        return RemovalPolicy.DESTROY

    def _create_outputs(self):
        CfnOutput(self, "ClusterEndpoint", value=self.cluster.cluster_endpoint.hostname,
                  description="Writer endpoint of the Aurora cluster")
        CfnOutput(self, "AdminSecretArn", value=self.admin_secret.secret_arn,
                  description="Secrets Manager ARN of the admin credentials")
        CfnOutput(self, "DbClientInstanceId", value=self.db_client.instance_id,
                  description="Administrative EC2 instance (connect with Session Manager)")
