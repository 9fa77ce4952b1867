"""LevelDB-backed legacy shard."""

import asyncio
import heapq
import itertools
from collections.abc import Iterator
from pathlib import Path

import plyvel
import structlog

from ..core.exceptions import QueryExecutionError, ShardOpenError
from ..engine.processor import QueryProcessor
from ..models.query import QuerySpec
from ..models.series import FieldValue, Point, Series
from . import keys

logger = structlog.get_logger()


class LevelDbShard:
    """A legacy shard: series index, column index and points in one LevelDB store.

    The shard owns its store handle. ``close`` releases it once; later calls
    are ignored.
    """

    def __init__(
        self,
        name: str,
        db: plyvel.DB,
        point_batch_size: int,
        write_batch_size: int,
    ):
        self.name = name
        self.point_batch_size = point_batch_size
        self.write_batch_size = write_batch_size
        self._db = db
        self._closed = False
        self.logger = logger.bind(component="leveldb_shard", shard=name)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._db.close()
        self.logger.debug("Shard closed")

    def list_series(self, database: str) -> set[str]:
        """Names of the series stored in this shard for a database.

        Suffixes still holding the separator belong to a longer database name.
        """
        prefix = keys.database_series_key(database)
        with self._db.iterator(prefix=prefix, include_value=False) as it:
            names = (key[len(prefix):].decode() for key in it)
            return {name for name in names if keys.SEPARATOR not in name}

    def get_columns(self, database: str, series: str) -> dict[str, int]:
        """Map column name to field id for one series.

        Suffixes still holding the separator belong to a longer series name.
        """
        prefix = keys.series_column_key(database, series)
        with self._db.iterator(prefix=prefix) as it:
            columns = ((key[len(prefix):].decode(), value) for key, value in it)
            return {
                column: keys.decode_id(value)
                for column, value in columns
                if keys.SEPARATOR not in column
            }

    async def query(self, spec: QuerySpec, processor: QueryProcessor) -> None:
        """Stream the rows selected by ``spec`` to ``processor`` in chunks.

        Store reads run in a worker thread, one chunk at a time.

        Raises:
            QueryExecutionError: If a column is unknown or the store fails
        """
        query = spec.query
        series = query.series_name
        try:
            fields = await asyncio.to_thread(
                self._resolve_fields, spec.database, series, query.columns, query.selects_all
            )
            if not fields:
                return

            columns = [column for column, _ in fields]
            points = self._iter_points(fields, query.ascending)
            emitted = 0
            while query.limit is None or emitted < query.limit:
                size = self.point_batch_size
                if query.limit is not None:
                    size = min(size, query.limit - emitted)
                chunk = await asyncio.to_thread(self._next_chunk, points, size)
                if not chunk:
                    return
                emitted += len(chunk)
                chunk_series = Series(name=series, columns=columns, points=chunk)
                if not await processor.yield_series(chunk_series):
                    return
        except (plyvel.Error, RuntimeError, ValueError) as e:
            raise QueryExecutionError(f"Query on series '{series}' failed: {e}") from e

    @staticmethod
    def _next_chunk(points: Iterator[Point], size: int) -> list[Point]:
        return list(itertools.islice(points, size))

    def _resolve_fields(
        self, database: str, series: str, columns: tuple[str, ...], select_all: bool
    ) -> list[tuple[str, int]]:
        available = self.get_columns(database, series)
        if not available:
            return []
        if select_all:
            return sorted(available.items())

        missing = [column for column in columns if column not in available]
        if missing:
            raise QueryExecutionError(
                f"Field(s) {', '.join(missing)} don't exist in series '{series}'"
            )
        return [(column, available[column]) for column in columns]

    def _iter_points(self, fields: list[tuple[str, int]], ascending: bool) -> Iterator[Point]:
        """Merge the per-column streams into rows ordered by (timestamp, sequence number)."""
        streams = [
            self._iter_column(index, field_id, ascending)
            for index, (_, field_id) in enumerate(fields)
        ]
        merged = heapq.merge(*streams, key=lambda item: (item[0], item[1]), reverse=not ascending)

        current: tuple[int, int] | None = None
        values: list[FieldValue] = []
        for timestamp, sequence_number, index, value in merged:
            if (timestamp, sequence_number) != current:
                if current is not None:
                    yield Point(timestamp=current[0], sequence_number=current[1], values=values)
                current = (timestamp, sequence_number)
                values = [None] * len(fields)
            values[index] = value
        if current is not None:
            yield Point(timestamp=current[0], sequence_number=current[1], values=values)

    def _iter_column(
        self, index: int, field_id: int, ascending: bool
    ) -> Iterator[tuple[int, int, int, FieldValue]]:
        with self._db.iterator(prefix=keys.encode_id(field_id), reverse=not ascending) as it:
            for key, raw in it:
                _, timestamp, sequence_number = keys.decode_point_key(key)
                yield timestamp, sequence_number, index, keys.decode_value(raw)

    def write(self, database: str, series_list: list[Series]) -> int:
        """Store series in the legacy layout.

        Returns:
            Number of values written

        Raises:
            ValueError: If a database, series or column name contains the key separator
        """
        for series in series_list:
            names = [database, series.name, *series.columns]
            if any(keys.SEPARATOR in name for name in names):
                raise ValueError(f"Names may not contain '{keys.SEPARATOR}': {names}")

        written = 0
        pending = 0
        batch = self._db.write_batch()
        for series in series_list:
            batch.put(keys.database_series_key(database, series.name), b"")
            field_ids = [
                self._get_or_create_field(database, series.name, column)
                for column in series.columns
            ]
            for point in series.points:
                for field_id, value in zip(field_ids, point.values):
                    if value is None:
                        continue
                    batch.put(
                        keys.point_key(field_id, point.timestamp, point.sequence_number),
                        keys.encode_value(value),
                    )
                    written += 1
                    pending += 1
                    if pending >= self.write_batch_size:
                        batch.write()
                        batch = self._db.write_batch()
                        pending = 0
        batch.write()
        return written

    def _get_or_create_field(self, database: str, series: str, column: str) -> int:
        column_key = keys.series_column_key(database, series, column)
        existing = self._db.get(column_key)
        if existing is not None:
            return keys.decode_id(existing)

        raw_next = self._db.get(keys.NEXT_ID_KEY)
        field_id = keys.decode_id(raw_next) if raw_next is not None else 1
        with self._db.write_batch(sync=True) as batch:
            batch.put(keys.NEXT_ID_KEY, keys.encode_id(field_id + 1))
            batch.put(column_key, keys.encode_id(field_id))
        return field_id


def open_shard(
    base_dir: Path | str,
    name: str,
    cache_size: int,
    max_open_files: int,
    point_batch_size: int,
    write_batch_size: int,
) -> LevelDbShard:
    """Open one legacy shard directory, creating it empty if missing.

    Raises:
        ShardOpenError: If the store cannot be opened
    """
    path = Path(base_dir) / name
    try:
        db = plyvel.DB(
            str(path),
            create_if_missing=True,
            lru_cache_size=cache_size,
            max_open_files=max_open_files,
        )
    except (plyvel.Error, OSError) as e:
        raise ShardOpenError(f"Failed to open shard {path}: {e}") from e
    return LevelDbShard(name, db, point_batch_size, write_batch_size)
