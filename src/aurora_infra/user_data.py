"""Boot script loading for the administrative EC2 instance."""

from __future__ import annotations

import logging
from pathlib import Path

from aws_cdk import aws_ec2 as ec2

from .config import DbClientConfig
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[2]


def resolve_script_path(path: str | Path, root: Path = ROOT) -> Path:
    script_path = Path(path)
    if not script_path.is_absolute():
        script_path = root / script_path
    return script_path


def load_user_data_script(path: str | Path, root: Path = ROOT) -> str:
    """Read the boot script verbatim.

    Raises:
        ConfigurationError: If the file does not exist
    """
    script_path = resolve_script_path(path, root)
    if not script_path.is_file():
        raise ConfigurationError(
            f"User data script not found: {script_path}", config_key="db_client.user_data_path"
        )
    logger.debug("Loading user data from %s", script_path)
    return script_path.read_text(encoding="utf-8")


def build_linux_user_data(config: DbClientConfig, root: Path = ROOT) -> ec2.UserData:
    """Wrap the configured boot script in Linux user data."""
    user_data = ec2.UserData.for_linux(shebang=config.user_data_shebang)
    user_data.add_commands(load_user_data_script(config.user_data_path, root))
    return user_data
