"""Migrate series data from legacy LevelDB shards into a live cluster."""

__version__ = "0.1.0"
