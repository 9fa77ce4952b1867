"""Legacy shard storage."""

from .shard import LevelDbShard, open_shard

__all__ = ["LevelDbShard", "open_shard"]
