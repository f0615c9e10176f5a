from pathlib import Path

import pytest

from src.aurora_infra.config import DbClientConfig
from src.aurora_infra.exceptions import ConfigurationError
from src.aurora_infra.user_data import (
    ROOT,
    build_linux_user_data,
    load_user_data_script,
    resolve_script_path,
)


def test_repository_boot_script_installs_client():
    script = load_user_data_script(DbClientConfig().user_data_path)
    assert "postgresql13" in script
    assert "amazon-ssm-agent" in script


def test_relative_paths_resolve_against_root(tmp_path: Path):
    assert resolve_script_path("a/b.sh", tmp_path) == tmp_path / "a" / "b.sh"
    assert resolve_script_path(tmp_path / "abs.sh") == tmp_path / "abs.sh"
    assert resolve_script_path("src/ec2/user_data_amazon_linux2.sh") == ROOT / "src/ec2/user_data_amazon_linux2.sh"


def test_missing_script_raises(tmp_path: Path):
    with pytest.raises(ConfigurationError) as exc:
        load_user_data_script("missing.sh", tmp_path)
    assert exc.value.config_key == "db_client.user_data_path"


def test_user_data_keeps_script_verbatim(tmp_path: Path):
    (tmp_path / "boot.sh").write_text("echo hello\necho world\n")
    config = DbClientConfig(user_data_path="boot.sh")

    rendered = build_linux_user_data(config, tmp_path).render()

    assert rendered.startswith("#!/bin/bash")
    assert "echo hello\necho world" in rendered
