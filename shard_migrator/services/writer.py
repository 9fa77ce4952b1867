"""Write path into the new cluster."""

import json
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any

import aiohttp
import structlog

from ..constants import SERIES_WRITE_ENDPOINT, TIME_PRECISION_MICROSECONDS
from ..core.exceptions import WriteError
from ..models.cluster import ClusterAdmin
from ..models.series import RecordBatch, Series

logger = structlog.get_logger()


class SeriesWriter(ABC):
    """Cluster write path as seen by the migrator."""

    @abstractmethod
    async def write_series_data(
        self, user: ClusterAdmin, database: str, series_list: list[Series]
    ) -> None:
        """Durably apply series data to a database.

        Raises:
            WriteError: If the cluster did not accept the data
        """


class ClusterWriter(SeriesWriter):
    """Writes series through the cluster's HTTP API."""

    def __init__(self, url: str, timeout: float = 60.0, max_connections: int = 4):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.max_connections = max_connections
        self._session: aiohttp.ClientSession | None = None
        self.logger = logger.bind(component="cluster_writer", url=self.url)

    async def __aenter__(self) -> "ClusterWriter":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                connector=aiohttp.TCPConnector(limit=self.max_connections),
            )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def write_series_data(
        self, user: ClusterAdmin, database: str, series_list: list[Series]
    ) -> None:
        if not self._session:
            raise WriteError("Cluster writer is not connected")

        url = self.url + SERIES_WRITE_ENDPOINT.format(database=database)
        params = {
            "u": user.name,
            "p": user.password.get_secret_value(),
            "time_precision": TIME_PRECISION_MICROSECONDS,
        }
        payload: list[dict[str, Any]] = [series.to_write_payload() for series in series_list]

        try:
            async with self._session.post(
                url,
                params=params,
                data=json.dumps(payload),
                headers={"Content-Type": "application/json"},
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise WriteError(
                        f"Cluster rejected write to '{database}' "
                        f"({response.status}): {body.strip()}"
                    )
        except (aiohttp.ClientError, TimeoutError) as e:
            raise WriteError(f"Write to '{database}' failed: {e}") from e


class MigrationWriter:
    """Forwards reconstructed batches to the cluster, logging and skipping failures."""

    def __init__(self, writer: SeriesWriter):
        self.writer = writer
        self.logger = logger.bind(component="migration_writer")
        self.batches_written = 0
        self.points_written = 0
        self.failed_batches = 0

    async def write(self, admin: ClusterAdmin, database: str, batch: RecordBatch) -> bool:
        """Write one data batch.

        Returns:
            True if the cluster accepted the batch
        """
        if batch.series is None:
            return False

        series = batch.series
        try:
            await self.writer.write_series_data(admin, database, [series])
        except WriteError as e:
            self.failed_batches += 1
            self.logger.error(
                "Writing series data failed",
                database=database,
                series=series.name,
                points=len(series.points),
                error=str(e),
            )
            return False

        self.batches_written += 1
        self.points_written += len(series.points)
        return True
