"""Tests for the legacy shard migration orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from shard_migrator.core.config_loader import MigratorConfig
from shard_migrator.core.exceptions import (
    ConfigurationError,
    DatabaseMigrationError,
    EnumerationError,
)
from shard_migrator.core.settings import MigrationSettings
from shard_migrator.models import ClusterConfiguration, QuerySpec
from shard_migrator.services.migrator import DataMigrator, list_shards
from shard_migrator.services.writer import ClusterWriter
from tests.fakes import FakeOpener, FakeShard, FakeWriter, make_points


class TestListShards:
    """Shard enumeration."""

    def test_newest_first(self, tmp_path):
        for name in ["shard_1", "shard_3", "shard_2"]:
            (tmp_path / name).mkdir()

        assert list_shards(tmp_path) == ["shard_3", "shard_2", "shard_1"]

    def test_ignores_files(self, tmp_path):
        (tmp_path / "shard_1").mkdir()
        (tmp_path / "LOCK").write_text("")

        assert list_shards(tmp_path) == ["shard_1"]

    def test_unreadable_directory(self, tmp_path):
        with pytest.raises(EnumerationError, match="Cannot read shard directory"):
            list_shards(tmp_path / "missing")


class TestDataMigrator:
    """End to end orchestration with fake shards and writer."""

    @pytest.mark.asyncio
    async def test_enumeration_failure_aborts_run(self, tmp_path, cluster):
        config = MigratorConfig(base_dir=tmp_path, cluster=cluster)
        opener = FakeOpener({})
        migrator = DataMigrator(config, FakeWriter(), shard_opener=opener)

        with pytest.raises(EnumerationError):
            await migrator.migrate()
        assert opener.opened == []

    @pytest.mark.asyncio
    async def test_newest_shard_fully_migrated_before_older_opened(self, make_config):
        config = make_config("shard_1", "shard_2")
        shard_1 = FakeShard("shard_1", {"db_a": {"temp": make_points(2, start=100)}})
        shard_2 = FakeShard("shard_2", {"db_a": {"temp": make_points(3)}})
        opener = FakeOpener({"shard_1": shard_1, "shard_2": shard_2})
        writer = FakeWriter()
        writer.events = opener.events

        await DataMigrator(config, writer, shard_opener=opener).migrate()

        assert opener.opened == ["shard_2", "shard_1"]
        assert opener.events.index("open:shard_1") > opener.events.index("close:shard_2")
        before_shard_1 = opener.events[: opener.events.index("open:shard_1")]
        shard_2_writes = [event for event in before_shard_1 if event.startswith("write:")]
        assert shard_2_writes and all(event == "write:db_a/temp" for event in shard_2_writes)
        rows = writer.points_for("db_a", "temp")
        assert [point.timestamp for point in rows[:3]] == [0, 1_000_000, 2_000_000]
        assert len(rows) == 5

    @pytest.mark.asyncio
    async def test_shard_open_error_does_not_stop_next_shard(self, make_config):
        config = make_config("shard_1", "shard_2")
        shard_1 = FakeShard("shard_1", {"db_a": {"temp": make_points(3)}})
        shard_2 = FakeShard("shard_2", {"db_a": {"temp": make_points(1)}})
        opener = FakeOpener({"shard_1": shard_1, "shard_2": shard_2}, failing={"shard_2"})
        writer = FakeWriter()

        await DataMigrator(config, writer, shard_opener=opener).migrate()

        assert opener.opened == ["shard_2", "shard_1"]
        assert shard_2.close_count == 0
        assert shard_1.close_count == 1
        assert len(writer.points_for("db_a", "temp")) == 3

    @pytest.mark.asyncio
    async def test_oldest_shard_open_error(self, make_config):
        config = make_config("shard_1", "shard_2")
        shard_2 = FakeShard("shard_2", {"db_a": {"temp": make_points(3)}})
        opener = FakeOpener({"shard_2": shard_2}, failing={"shard_1"})
        writer = FakeWriter()

        await DataMigrator(config, writer, shard_opener=opener).migrate()

        assert opener.opened == ["shard_2", "shard_1"]
        assert len(writer.points_for("db_a", "temp")) == 3

    @pytest.mark.asyncio
    async def test_database_error_skips_remaining_databases_for_shard_only(self, make_config):
        config = make_config("shard_1", "shard_2", databases=("db_a", "db_b"))
        shard_2 = FakeShard(
            "shard_2",
            {
                "db_a": {"cpu": make_points(2), "mem": make_points(2)},
                "db_b": {"disk": make_points(2)},
            },
        )
        shard_1 = FakeShard("shard_1", {"db_b": {"disk": make_points(1)}})
        opener = FakeOpener({"shard_1": shard_1, "shard_2": shard_2})
        # first series of db_a succeeds, the second write crashes
        writer = FakeWriter(crash_on_call=2)

        await DataMigrator(config, writer, shard_opener=opener).migrate()

        assert [(db, series.name) for _, db, series in writer.writes] == [("db_a", "cpu")]
        assert {spec.database for spec in shard_2.queries} == {"db_a"}
        assert shard_2.close_count == 1
        assert opener.opened == ["shard_2", "shard_1"]
        assert shard_1.close_count == 1

    @pytest.mark.asyncio
    async def test_series_listing_failure_is_database_error(self, make_config):
        config = make_config("shard_1", databases=("db_a", "db_b"))
        shard = FakeShard(
            "shard_1", {"db_b": {"disk": make_points(1)}}, failing_databases={"db_a"}
        )
        opener = FakeOpener({"shard_1": shard})
        writer = FakeWriter()

        await DataMigrator(config, writer, shard_opener=opener).migrate()

        assert writer.writes == []
        assert shard.close_count == 1

    @pytest.mark.asyncio
    async def test_query_failure_skips_only_that_series(self, make_config):
        config = make_config("shard_1")
        shard = FakeShard(
            "shard_1",
            {"db_a": {"broken": make_points(6), "healthy": make_points(3)}},
            failing_series={"broken"},
        )
        opener = FakeOpener({"shard_1": shard})
        writer = FakeWriter()

        await DataMigrator(config, writer, shard_opener=opener).migrate()

        # rows produced before the failure are still flushed
        assert len(writer.points_for("db_a", "broken")) == 2
        assert len(writer.points_for("db_a", "healthy")) == 3
        assert shard.close_count == 1

    @pytest.mark.asyncio
    async def test_write_failure_continues_with_next_series(self, make_config):
        config = make_config("shard_1")
        shard = FakeShard("shard_1", {"db_a": {"a": make_points(4), "b": make_points(2)}})
        opener = FakeOpener({"shard_1": shard})
        writer = FakeWriter(fail_series={"a"})
        migrator = DataMigrator(config, writer, shard_opener=opener)

        await migrator.migrate()

        assert len(writer.points_for("db_a", "b")) == 2
        assert migrator.writer.failed_batches == 2
        assert migrator.writer.batches_written == 1

    @pytest.mark.asyncio
    async def test_unparseable_series_name_is_skipped(self, make_config):
        config = make_config("shard_1")
        shard = FakeShard("shard_1", {"db_a": {"": make_points(1), "ok": make_points(1)}})
        opener = FakeOpener({"shard_1": shard})
        writer = FakeWriter()

        await DataMigrator(config, writer, shard_opener=opener).migrate()

        assert [spec.query.series_name for spec in shard.queries] == ["ok"]
        assert len(writer.points_for("db_a", "ok")) == 1

    @pytest.mark.asyncio
    async def test_writes_use_first_admin(self, make_config):
        config = make_config("shard_1")
        shard = FakeShard("shard_1", {"db_a": {"temp": make_points(1)}})
        writer = FakeWriter()

        migrator = DataMigrator(config, writer, shard_opener=FakeOpener({"shard_1": shard}))
        await migrator.migrate()

        assert migrator.admin.name == "root"
        assert {user for user, _, _ in writer.writes} == {"root"}
        assert all(spec.user.name == "root" for spec in shard.queries)

    def test_no_admins_is_configuration_error(self, tmp_path):
        config = MigratorConfig(base_dir=tmp_path, cluster=ClusterConfiguration())

        with pytest.raises(ConfigurationError, match="No cluster admins"):
            DataMigrator(config, FakeWriter())

    @pytest.mark.asyncio
    async def test_dry_run_does_not_query_or_write(self, make_config):
        config = make_config("shard_1")
        shard = FakeShard("shard_1", {"db_a": {"temp": make_points(3)}})
        writer = FakeWriter()

        opener = FakeOpener({"shard_1": shard})
        await DataMigrator(config, writer, shard_opener=opener, dry_run=True).migrate()

        assert shard.queries == []
        assert writer.writes == []
        assert shard.close_count == 1


class HangingShard(FakeShard):
    """A shard whose query for one series never finishes."""

    def __init__(self, *args, hanging_series: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.hanging_series = hanging_series

    async def query(self, spec: QuerySpec, processor) -> None:
        if spec.query.series_name == self.hanging_series:
            self.queries.append(spec)
            await asyncio.Event().wait()
        await super().query(spec, processor)


class TestSeriesStreaming:
    """Per-series producer/consumer behaviour."""

    @pytest.mark.asyncio
    async def test_batches_forwarded_in_production_order(self, make_config):
        config = make_config("shard_1")
        points = make_points(7)
        shard = FakeShard("shard_1", {"db_a": {"temp": points}}, point_batch_size=3)
        writer = FakeWriter()
        migrator = DataMigrator(config, writer, shard_opener=FakeOpener({"shard_1": shard}))

        completed = await migrator.migrate_series("db_a", "temp", shard)

        assert completed is True
        assert writer.points_for("db_a", "temp") == points
        # max_points_per_response=2 in the test settings
        assert [len(series.points) for _, _, series in writer.writes] == [2, 2, 2, 1]

    @pytest.mark.asyncio
    async def test_query_failure_reports_incomplete(self, make_config):
        config = make_config("shard_1")
        shard = FakeShard("shard_1", {"db_a": {"temp": make_points(4)}}, failing_series={"temp"})
        migrator = DataMigrator(config, FakeWriter(), shard_opener=FakeOpener({"shard_1": shard}))

        assert await migrator.migrate_series("db_a", "temp", shard) is False

    @pytest.mark.asyncio
    async def test_timeout_skips_hung_series(self, tmp_path, cluster):
        (tmp_path / "shard_db" / "shard_1").mkdir(parents=True)
        settings = MigrationSettings(query_timeout=0.05)
        config = MigratorConfig(base_dir=tmp_path, cluster=cluster, settings=settings)
        shard = HangingShard(
            "shard_1",
            {"db_a": {"a_hung": make_points(1), "b_fine": make_points(2)}},
            hanging_series="a_hung",
        )
        writer = FakeWriter()

        await DataMigrator(config, writer, shard_opener=FakeOpener({"shard_1": shard})).migrate()

        assert writer.points_for("db_a", "a_hung") == []
        assert len(writer.points_for("db_a", "b_fine")) == 2
        assert shard.close_count == 1


def accepted_post() -> MagicMock:
    response = MagicMock()
    response.status = 204
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


class TestWriteTimeouts:
    """Cluster write timeouts stay contained to their batch."""

    @pytest.mark.asyncio
    async def test_timed_out_write_skips_only_that_batch(self, make_config):
        config = make_config("shard_1")
        shard = FakeShard("shard_1", {"db_a": {"temp": make_points(6)}})
        cluster_writer = ClusterWriter(config.cluster.url, timeout=0.2)
        cluster_writer._session = MagicMock()
        cluster_writer._session.post = MagicMock(
            side_effect=[TimeoutError(), accepted_post(), accepted_post()]
        )
        migrator = DataMigrator(config, cluster_writer, shard_opener=FakeOpener({"shard_1": shard}))

        completed = await migrator.migrate_series("db_a", "temp", shard)

        assert completed is True
        assert cluster_writer._session.post.call_count == 3
        assert migrator.writer.failed_batches == 1
        assert migrator.writer.batches_written == 2
        assert migrator.writer.points_written == 4

    @pytest.mark.asyncio
    async def test_stray_timeout_is_not_mistaken_for_series_deadline(self, make_config):
        config = make_config("shard_1")
        shard = FakeShard("shard_1", {"db_a": {"temp": make_points(4)}})

        class TimingOutWriter(FakeWriter):
            async def write_series_data(self, user, database, series_list):
                raise TimeoutError()

        migrator = DataMigrator(
            config, TimingOutWriter(), shard_opener=FakeOpener({"shard_1": shard})
        )

        with pytest.raises(TimeoutError):
            await migrator.migrate_series("db_a", "temp", shard)

        with pytest.raises(DatabaseMigrationError, match="db_a"):
            await migrator.migrate_database_in_shard("db_a", shard)
