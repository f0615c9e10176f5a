import json

import pytest
import yaml

from pathlib import Path

from src.aurora_infra.config import (
    InfraConfig,
    NetworkConfig,
    PasswordPolicyConfig,
    get_default_config,
    load_config,
)


def test_get_default_config_overrides():
    prod = get_default_config("prod")
    dev = get_default_config("dev")

    # Prod keeps every safeguard
    assert prod["termination_protection"] is True
    assert prod["database"]["deletion_protection"] is True
    assert prod["tags"] == {"Environment": "Production"}

    # Dev can be torn down quickly
    assert dev["termination_protection"] is False
    assert dev["database"]["deletion_protection"] is False


def test_defaults_match_production_layout(prod_config):
    assert prod_config.name_prefix == "prd"
    assert prod_config.cluster_identifier == "prd-db-cluster"
    assert prod_config.admin_secret_name == "prd-db-cluster/AdminLoginInfo"
    assert prod_config.rotation_secret_name == "prd-db-cluster/rotationPasswordUserLoginInfo"
    assert prod_config.network.cidr == "10.10.0.0/24"
    assert prod_config.network.max_azs == 2
    assert prod_config.database.parameter_group_family == "aurora-postgresql13"
    assert prod_config.database.cluster_parameters()["timezone"] == "Asia/Tokyo"
    assert prod_config.rotation.automatically_after_days == 3


def test_rotation_secret_string_is_bootstrap_plaintext(prod_config):
    assert json.loads(prod_config.rotation_secret_string()) == {
        "username": "rotationPasswordUser",
        "password": "rotationPasswordUser_password",
    }


def test_load_config_from_yaml(tmp_path: Path):
    p = tmp_path / "staging.yml"
    p.write_text(yaml.safe_dump({"network": {"cidr": "10.30.0.0/24"}, "database": {"instances": 2}}))

    cfg = load_config("staging", config_path=p)

    assert isinstance(cfg, InfraConfig)
    assert cfg.environment == "staging"
    assert cfg.name_prefix == "stg"
    assert cfg.network.cidr == "10.30.0.0/24"
    assert cfg.database.instances == 2
    # Values absent from the file fall back to the environment defaults
    assert cfg.database.deletion_protection is True
    assert cfg.tags == {"Environment": "Staging"}


def test_repository_config_files_load():
    prod = load_config("prod")
    dev = load_config("dev")

    assert prod.database.deletion_protection is True
    assert prod.termination_protection is True
    assert prod.db_client.volume_size_gib == 8
    assert dev.termination_protection is False
    assert dev.log_level == "DEBUG"


def test_missing_config_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config("prod", config_path=tmp_path / "nope.yml")


def test_from_yaml_infers_environment_from_filename(tmp_path: Path):
    p = tmp_path / "dev.yml"
    p.write_text(yaml.safe_dump({"log_level": "debug"}))

    cfg = InfraConfig.from_yaml(p)

    assert cfg.environment == "dev"
    assert cfg.log_level == "DEBUG"
    assert cfg.database.deletion_protection is False


def test_from_env_respects_env_vars(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "staging")
    monkeypatch.setenv("AWS_REGION", "ap-northeast-1")
    monkeypatch.setenv("VPC_CIDR", "10.40.0.0/24")
    monkeypatch.setenv("DB_INSTANCE_TYPE", "r6g.large")

    cfg = InfraConfig.from_env()

    assert cfg.environment == "staging"
    assert cfg.name_prefix == "stg"
    assert cfg.aws_region == "ap-northeast-1"
    assert cfg.network.cidr == "10.40.0.0/24"
    assert cfg.database.instance_type == "r6g.large"


def test_invalid_environment_raises():
    with pytest.raises(ValueError):
        InfraConfig(environment="not-a-real-env")


def test_invalid_log_level_raises():
    with pytest.raises(ValueError):
        InfraConfig(environment="dev", log_level="chatty")


@pytest.mark.parametrize("override", [
    {"database": {"deletion_protection": False}},
    {"termination_protection": False},
])
def test_prod_refuses_disabled_safeguards(override):
    data = get_default_config("prod")
    data.update(override)
    with pytest.raises(ValueError):
        InfraConfig(**data)


def test_dev_allows_disabled_safeguards():
    cfg = InfraConfig(environment="dev", termination_protection=False, database={"deletion_protection": False})
    assert cfg.termination_protection is False


def test_policy_must_exclude_connection_string_characters():
    with pytest.raises(ValueError):
        PasswordPolicyConfig(exclude_characters="@/")


def test_single_zone_rejected():
    # Aurora subnet groups need subnets in at least two zones
    with pytest.raises(ValueError):
        NetworkConfig(max_azs=1)


def test_bootstrap_password_cannot_contain_excluded_characters():
    with pytest.raises(ValueError):
        InfraConfig(environment="prod", rotation={"bootstrap_password": "pass@word"})
