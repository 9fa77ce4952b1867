"""Centralized constants for the shard migrator."""

# Subdirectory of the data dir holding the old engine's shards
OLD_SHARD_DIR = "shard_db"

# Cluster HTTP API
SERIES_WRITE_ENDPOINT = "/db/{database}/series"
TIME_PRECISION_MICROSECONDS = "u"
