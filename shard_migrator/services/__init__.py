"""Migration services."""

from .migrator import DataMigrator, list_shards
from .writer import ClusterWriter, MigrationWriter, SeriesWriter

__all__ = ["ClusterWriter", "DataMigrator", "MigrationWriter", "SeriesWriter", "list_shards"]
