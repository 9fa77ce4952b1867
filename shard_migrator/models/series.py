"""Series data models reconstructed from legacy shards."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

FieldValue = str | int | float | bool | None


class ResponseType(str, Enum):
    """Kind of record batch travelling through a series channel."""

    DATA = "data"
    END_STREAM = "end_stream"


class Point(BaseModel):
    """One row of a series."""

    timestamp: int  # microseconds since epoch
    sequence_number: int
    values: list[FieldValue] = Field(default_factory=list)


class Series(BaseModel):
    """A chunk of rows belonging to one named series."""

    name: str
    columns: list[str] = Field(default_factory=list)
    points: list[Point] = Field(default_factory=list)

    def to_write_payload(self) -> dict[str, Any]:
        """Render the cluster's JSON write format with time precision in microseconds."""
        return {
            "name": self.name,
            "columns": ["time", "sequence_number", *self.columns],
            "points": [
                [point.timestamp, point.sequence_number, *point.values] for point in self.points
            ],
        }


class RecordBatch(BaseModel):
    """A data batch for one series, or the end-of-stream marker."""

    model_config = ConfigDict(frozen=True)

    type: ResponseType = ResponseType.DATA
    series: Series | None = None

    @classmethod
    def data(cls, series: Series) -> "RecordBatch":
        return cls(type=ResponseType.DATA, series=series)

    @classmethod
    def end_stream(cls) -> "RecordBatch":
        return cls(type=ResponseType.END_STREAM)

    @property
    def is_end_of_stream(self) -> bool:
        return self.type == ResponseType.END_STREAM
