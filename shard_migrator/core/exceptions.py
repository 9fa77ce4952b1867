"""Core exceptions for legacy shard migration."""


class MigratorError(Exception):
    """Base exception for shard migration operations."""


class ConfigurationError(MigratorError):
    """Configuration validation or loading failed."""


class EnumerationError(MigratorError):
    """The legacy shard directory could not be listed."""


class ShardOpenError(MigratorError):
    """A legacy shard store could not be opened."""


class QueryParseError(MigratorError):
    """A query string could not be parsed."""


class QueryExecutionError(MigratorError):
    """A query failed while running against a shard."""


class WriteError(MigratorError):
    """The cluster rejected or failed to accept a write."""


class DatabaseMigrationError(MigratorError):
    """Migrating one database of a shard failed."""
