"""Legacy shard migration orchestrator."""

import asyncio
import contextlib
import os
from collections.abc import Callable
from pathlib import Path

import structlog
from structlog.stdlib import BoundLogger

from ..core.channel import BoundedChannel
from ..core.config_loader import MigratorConfig
from ..core.exceptions import (
    DatabaseMigrationError,
    EnumerationError,
    QueryParseError,
    ShardOpenError,
)
from ..datastore.shard import LevelDbShard, open_shard
from ..engine.parser import parse_query, select_all_query
from ..engine.passthrough import PassthroughEngine
from ..models.query import QuerySpec
from ..models.series import RecordBatch
from .writer import MigrationWriter, SeriesWriter

logger = structlog.get_logger()

ShardOpener = Callable[[Path, str, int, int, int, int], LevelDbShard]


def list_shards(shard_dir: Path | str) -> list[str]:
    """Shard directory names, most recently created first.

    Raises:
        EnumerationError: If the directory cannot be read
    """
    try:
        with os.scandir(shard_dir) as entries:
            names = sorted(entry.name for entry in entries if entry.is_dir())
    except OSError as e:
        raise EnumerationError(f"Cannot read shard directory {shard_dir}: {e}") from e
    names.reverse()
    return names


class DataMigrator:
    """Moves series data from legacy shards into the new cluster.

    Shards are processed newest first, then every configured database, then
    every series found for that database, strictly one at a time. Failures are
    contained at the level they happen: a shard that cannot be opened is
    skipped, a failing database ends the current shard, a failing series or
    batch is logged and skipped.
    """

    def __init__(
        self,
        config: MigratorConfig,
        writer: SeriesWriter,
        shard_opener: ShardOpener = open_shard,
        dry_run: bool = False,
    ):
        self.config = config
        self.settings = config.settings
        self.databases = config.cluster.get_databases()
        self.admin = config.cluster.resolve_migration_admin()
        self.writer = MigrationWriter(writer)
        self.open_shard = shard_opener
        self.dry_run = dry_run
        self.logger: BoundLogger = logger.bind(component="data_migrator")

    async def migrate(self) -> None:
        """Migrate every shard under the legacy shard directory.

        Raises:
            EnumerationError: If the shard directory cannot be listed
        """
        shard_dir = self.config.shard_dir
        self.logger.info("Migrating from dir", path=str(shard_dir), dry_run=self.dry_run)
        try:
            shard_names = list_shards(shard_dir)
        except EnumerationError as e:
            self.logger.error("Error migrating", error=str(e))
            raise

        failed_shards = 0
        for name in shard_names:
            if not await self.migrate_shard(name):
                failed_shards += 1

        self.logger.info(
            "Migration finished",
            shards=len(shard_names),
            failed_shards=failed_shards,
            batches_written=self.writer.batches_written,
            points_written=self.writer.points_written,
            failed_batches=self.writer.failed_batches,
        )

    async def migrate_shard(self, name: str) -> bool:
        """Migrate all databases of one shard. The shard is always closed afterwards."""
        log = self.logger.bind(shard=name)
        log.info("Migrating shard")
        try:
            shard = await asyncio.to_thread(
                self.open_shard,
                self.config.shard_dir,
                name,
                self.settings.lru_cache_size,
                self.settings.max_open_files,
                self.settings.point_batch_size,
                self.settings.write_batch_size,
            )
        except ShardOpenError as e:
            log.error("Error opening shard", error=str(e))
            return False

        try:
            for database in self.databases:
                try:
                    await self.migrate_database_in_shard(database.name, shard)
                except DatabaseMigrationError as e:
                    log.error("Error migrating database", database=database.name, error=str(e))
                    return False
            return True
        finally:
            shard.close()

    async def migrate_database_in_shard(self, database: str, shard: LevelDbShard) -> None:
        """Migrate every series of a database found in the shard.

        Raises:
            DatabaseMigrationError: On any failure not contained to a single series
        """
        log = self.logger.bind(shard=shard.name, database=database)
        log.info("Migrating database for shard")
        try:
            series_names = sorted(shard.list_series(database))
            log.info("Migrating series", count=len(series_names))

            for series in series_names:
                if self.dry_run:
                    log.info("Would migrate series", series=series)
                    continue
                await self.migrate_series(database, series, shard)
        except DatabaseMigrationError:
            raise
        except Exception as e:
            raise DatabaseMigrationError(
                f"Migrating database '{database}' in shard '{shard.name}' failed: {e}"
            ) from e

    async def migrate_series(self, database: str, series: str, shard: LevelDbShard) -> bool:
        """Stream one series from the shard to the cluster.

        A producer task runs the full-scan query into a bounded channel while
        this coroutine drains it into the writer. The channel always ends with
        exactly one end-of-stream marker.

        Returns:
            True if the series was read completely
        """
        log = self.logger.bind(shard=shard.name, database=database, series=series)
        try:
            query = parse_query(select_all_query(series))[0]
        except QueryParseError as e:
            log.error("Problem migrating series", error=str(e))
            return False

        spec = QuerySpec(user=self.admin, database=database, query=query)
        end_stream = RecordBatch.end_stream()
        channel: BoundedChannel[RecordBatch] = BoundedChannel(
            self.settings.channel_capacity, end_stream, lambda batch: batch.is_end_of_stream
        )
        engine = PassthroughEngine(channel, self.settings.max_points_per_response)
        producer = asyncio.create_task(self._produce(shard, spec, engine, channel, log))

        deadline = asyncio.timeout(self.settings.query_timeout)
        try:
            async with deadline:
                async for batch in channel:
                    await self.writer.write(self.admin, database, batch)
        except TimeoutError:
            await self._cancel(producer)
            if not deadline.expired():
                raise
            log.error("Series query timed out", timeout=self.settings.query_timeout)
            return False
        except BaseException:
            await self._cancel(producer)
            raise

        completed = await producer
        log.debug("Series migrated", batches=engine.batches_sent, points=engine.points_sent)
        return completed

    async def _produce(
        self,
        shard: LevelDbShard,
        spec: QuerySpec,
        engine: PassthroughEngine,
        channel: BoundedChannel[RecordBatch],
        log: BoundLogger,
    ) -> bool:
        completed = True
        try:
            await shard.query(spec, engine)
        except Exception as e:
            completed = False
            log.error("Error querying series", error=str(e), error_type=type(e).__name__)
        await engine.close()
        await channel.close()
        return completed

    @staticmethod
    async def _cancel(task: asyncio.Task) -> None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
