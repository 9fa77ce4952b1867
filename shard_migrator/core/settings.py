"""Storage and streaming settings for shard migration.

Provides centralized tuning knobs using Pydantic BaseSettings
with environment variable support.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MigrationSettings(BaseSettings):
    """Resource bounds used while reading legacy shards."""

    lru_cache_size: int = Field(
        2000, alias="MIGRATOR_LRU_CACHE_SIZE", gt=0, description="LevelDB block cache capacity"
    )

    max_open_files: int = Field(
        1000, alias="MIGRATOR_MAX_OPEN_FILES", gt=0, description="LevelDB open file bound"
    )

    point_batch_size: int = Field(
        100, alias="MIGRATOR_POINT_BATCH_SIZE", gt=0, description="Rows per shard query chunk"
    )

    write_batch_size: int = Field(
        1000, alias="MIGRATOR_WRITE_BATCH_SIZE", gt=0, description="Points per shard write batch"
    )

    channel_capacity: int = Field(
        2000, alias="MIGRATOR_CHANNEL_CAPACITY", gt=0, description="Pending batches per series"
    )

    max_points_per_response: int = Field(
        2000,
        alias="MIGRATOR_MAX_POINTS_PER_RESPONSE",
        gt=0,
        description="Rows coalesced into one record batch",
    )

    query_timeout: float | None = Field(
        None,
        alias="MIGRATOR_QUERY_TIMEOUT",
        gt=0,
        description="Per-series timeout in seconds (None disables it)",
    )

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True, frozen=True
    )
