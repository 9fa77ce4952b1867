"""Configuration loading for the shard migrator."""

import asyncio
import os
import re
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..constants import OLD_SHARD_DIR
from ..models.cluster import ClusterAdmin, ClusterConfiguration, DatabaseDescriptor
from .exceptions import ConfigurationError
from .settings import MigrationSettings

logger = structlog.get_logger()

DEFAULT_CONFIG_FILE = "config/migrator.yml"


class MigratorConfig(BaseModel):
    """Everything a migration run needs, frozen for the duration of the run."""

    model_config = ConfigDict(frozen=True)

    base_dir: Path
    shard_subdir: str = OLD_SHARD_DIR
    cluster: ClusterConfiguration = Field(default_factory=ClusterConfiguration)
    settings: MigrationSettings = Field(default_factory=MigrationSettings)
    config_file: str | None = None

    @property
    def shard_dir(self) -> Path:
        return self.base_dir / self.shard_subdir


def load_config(config_path: str | None = None, base_dir: str | None = None) -> MigratorConfig:
    """Load configuration (synchronous interface).

    Args:
        config_path: Optional path to YAML config file
        base_dir: Optional override of the data directory holding legacy shards

    Returns:
        Loaded configuration

    Note:
        Cannot be called from a running event loop; use load_config_async() there.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(load_config_async(config_path, base_dir))
    raise RuntimeError(
        "load_config() cannot be called from within an async context. "
        "Use 'await load_config_async()' instead."
    )


async def load_config_async(
    config_path: str | None = None, base_dir: str | None = None
) -> MigratorConfig:
    """Load configuration (async interface).

    Precedence: explicit arguments, then environment, then the YAML file.
    """
    load_dotenv()

    path = Path(config_path or os.getenv("MIGRATOR_CONFIG", DEFAULT_CONFIG_FILE))
    yaml_config: dict[str, Any] = {}
    if path.exists():
        yaml_config = await _load_yaml_config(path)
    elif config_path:
        raise ConfigurationError(f"Config file not found: {path}")

    return build_config(yaml_config, base_dir=base_dir, config_file=str(path))


def build_config(
    yaml_config: dict[str, Any],
    base_dir: str | None = None,
    config_file: str | None = None,
) -> MigratorConfig:
    """Build a MigratorConfig from already-parsed YAML data."""
    resolved_base_dir = base_dir or os.getenv("MIGRATOR_BASE_DIR") or yaml_config.get("base_dir")
    if not resolved_base_dir:
        raise ConfigurationError(
            "base_dir is required (config file, MIGRATOR_BASE_DIR or --base-dir)"
        )

    try:
        return MigratorConfig(
            base_dir=Path(resolved_base_dir),
            shard_subdir=yaml_config.get("shard_subdir", OLD_SHARD_DIR),
            cluster=_build_cluster_config(yaml_config.get("cluster") or {}),
            settings=_build_settings(yaml_config.get("storage") or {}),
            config_file=config_file,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _build_cluster_config(cluster_data: dict[str, Any]) -> ClusterConfiguration:
    """Apply cluster configuration from YAML data."""
    databases = [
        DatabaseDescriptor(name=entry) if isinstance(entry, str) else DatabaseDescriptor(**entry)
        for entry in cluster_data.get("databases") or []
    ]
    admins = [ClusterAdmin(**entry) for entry in cluster_data.get("cluster_admins") or []]

    kwargs: dict[str, Any] = {"databases": tuple(databases), "cluster_admins": tuple(admins)}
    url = os.getenv("MIGRATOR_CLUSTER_URL") or cluster_data.get("url")
    if url:
        kwargs["url"] = url.rstrip("/")
    return ClusterConfiguration(**kwargs)


def _build_settings(storage_data: dict[str, Any]) -> MigrationSettings:
    """Apply storage overrides from YAML; environment variables still win."""
    overrides = {
        key: value
        for key, value in storage_data.items()
        if key in MigrationSettings.model_fields
        and MigrationSettings.model_fields[key].alias not in os.environ
    }
    return MigrationSettings(**overrides)


async def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load YAML configuration file."""
    try:
        content = await asyncio.to_thread(config_path.read_text)
        content = _expand_yaml_config(content)
        loaded = yaml.safe_load(content)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config from {config_path}: {e}") from e
    # yaml.safe_load can return None, str, list, etc.
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _expand_yaml_config(content: str) -> str:
    """Expand ${VAR} references, restricted to an allowlist."""
    allowed_env_vars = {
        "HOME",
        "USER",
        "MIGRATOR_BASE_DIR",
        "MIGRATOR_CLUSTER_URL",
        "MIGRATOR_ADMIN_USER",
        "MIGRATOR_ADMIN_PASSWORD",
    }

    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)
        if var_name in allowed_env_vars:
            return os.getenv(var_name, match.group(0))  # Keep original if not found
        logger.warning(
            "Environment variable not in allowlist, skipping expansion",
            variable=var_name,
        )
        return match.group(0)

    return re.sub(r"\$\{([^}]+)\}", replace_var, content)
