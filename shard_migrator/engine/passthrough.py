"""Passthrough engine: re-emit every row of a query without transformation."""

from ..core.channel import BoundedChannel
from ..models.series import RecordBatch, Series
from .processor import QueryProcessor


class PassthroughEngine(QueryProcessor):
    """Forward shard query results onto a channel as data record batches.

    Consecutive chunks of the same series and columns are coalesced until
    ``max_points_per_response`` rows are buffered. ``close`` flushes the
    remainder; the end-of-stream marker is left to the owner of the channel.
    """

    def __init__(self, channel: BoundedChannel[RecordBatch], max_points_per_response: int = 2000):
        self.channel = channel
        self.max_points_per_response = max_points_per_response
        self._buffer: Series | None = None
        self._closed = False
        self.batches_sent = 0
        self.points_sent = 0

    async def yield_series(self, series: Series) -> bool:
        if self._closed:
            return False
        if not series.points:
            return True

        if self._buffer is not None and not self._can_merge(series):
            await self._flush()

        if self._buffer is None:
            self._buffer = Series(name=series.name, columns=list(series.columns), points=[])

        for point in series.points:
            self._buffer.points.append(point)
            if len(self._buffer.points) >= self.max_points_per_response:
                await self._flush()
                self._buffer = Series(name=series.name, columns=list(series.columns), points=[])
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._flush()

    def _can_merge(self, series: Series) -> bool:
        if self._buffer is None:
            return False
        return self._buffer.name == series.name and self._buffer.columns == series.columns

    async def _flush(self) -> None:
        if self._buffer is None or not self._buffer.points:
            self._buffer = None
            return
        point_count = len(self._buffer.points)
        batch = RecordBatch.data(self._buffer)
        self._buffer = None
        await self.channel.send(batch)
        self.batches_sent += 1
        self.points_sent += point_count
