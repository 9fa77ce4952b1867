"""Cluster configuration snapshot models."""

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..core.exceptions import ConfigurationError


class ClusterAdmin(BaseModel):
    """Privileged identity used to authorize writes into the new cluster."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    password: SecretStr = SecretStr("")


class DatabaseDescriptor(BaseModel):
    """A database known to the new cluster."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    replication_factor: int = Field(default=1, ge=1)


class ClusterConfiguration(BaseModel):
    """Immutable view of the live cluster's databases and administrators."""

    model_config = ConfigDict(frozen=True)

    url: str = "http://localhost:8086"
    databases: tuple[DatabaseDescriptor, ...] = ()
    cluster_admins: tuple[ClusterAdmin, ...] = ()

    def get_databases(self) -> list[DatabaseDescriptor]:
        return list(self.databases)

    def get_cluster_admins(self) -> list[str]:
        return [admin.name for admin in self.cluster_admins]

    def get_cluster_admin(self, name: str) -> ClusterAdmin:
        for admin in self.cluster_admins:
            if admin.name == name:
                return admin
        raise ConfigurationError(f"Cluster admin '{name}' not found")

    def resolve_migration_admin(self) -> ClusterAdmin:
        """Resolve the first configured administrator."""
        names = self.get_cluster_admins()
        if not names:
            raise ConfigurationError("No cluster admins configured")
        return self.get_cluster_admin(names[0])
