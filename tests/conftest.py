"""Shared pytest fixtures for shard migrator tests."""

from pathlib import Path

import pytest

from shard_migrator.core.config_loader import MigratorConfig
from shard_migrator.core.settings import MigrationSettings
from shard_migrator.models import ClusterAdmin, ClusterConfiguration, DatabaseDescriptor


def make_shard_dir(base_dir: Path, *names: str) -> None:
    for name in names:
        (base_dir / "shard_db" / name).mkdir(parents=True)


@pytest.fixture
def admin() -> ClusterAdmin:
    return ClusterAdmin(name="root", password="secret")


@pytest.fixture
def cluster(admin: ClusterAdmin) -> ClusterConfiguration:
    return ClusterConfiguration(
        url="http://cluster.test:8086",
        databases=(DatabaseDescriptor(name="db_a"),),
        cluster_admins=(admin, ClusterAdmin(name="backup", password="other")),
    )


@pytest.fixture
def settings() -> MigrationSettings:
    return MigrationSettings(channel_capacity=4, max_points_per_response=2)


@pytest.fixture
def make_config(tmp_path: Path, cluster: ClusterConfiguration, settings: MigrationSettings):
    def _make(*shard_names: str, databases: tuple[str, ...] | None = None) -> MigratorConfig:
        make_shard_dir(tmp_path, *shard_names)
        cluster_config = cluster
        if databases is not None:
            cluster_config = cluster.model_copy(
                update={"databases": tuple(DatabaseDescriptor(name=name) for name in databases)}
            )
        return MigratorConfig(base_dir=tmp_path, cluster=cluster_config, settings=settings)

    return _make
