"""Data models for shard migration."""

from .cluster import ClusterAdmin, ClusterConfiguration, DatabaseDescriptor
from .query import WILDCARD, Query, QuerySpec
from .series import FieldValue, Point, RecordBatch, ResponseType, Series

__all__ = [
    "ClusterAdmin",
    "ClusterConfiguration",
    "DatabaseDescriptor",
    "FieldValue",
    "Point",
    "Query",
    "QuerySpec",
    "RecordBatch",
    "ResponseType",
    "Series",
    "WILDCARD",
]
