"""Structured query models."""

from pydantic import BaseModel, ConfigDict, Field

from .cluster import ClusterAdmin

WILDCARD = "*"


class Query(BaseModel):
    """A parsed select query against a single series."""

    model_config = ConfigDict(frozen=True)

    series_name: str = Field(min_length=1)
    columns: tuple[str, ...] = (WILDCARD,)
    limit: int | None = Field(default=None, ge=0)
    ascending: bool = False

    @property
    def selects_all(self) -> bool:
        return WILDCARD in self.columns


class QuerySpec(BaseModel):
    """A query bound to the identity and database it runs under."""

    model_config = ConfigDict(frozen=True)

    user: ClusterAdmin
    database: str
    query: Query
