"""Abstract base class for query result processors."""

from abc import ABC, abstractmethod

from ..models.series import Series


class QueryProcessor(ABC):
    """Consumer side of a shard query."""

    @abstractmethod
    async def yield_series(self, series: Series) -> bool:
        """Accept a chunk of rows.

        Returns:
            False when the processor wants no more rows
        """

    @abstractmethod
    async def close(self) -> None:
        """Flush anything buffered. Called once the shard stops producing."""
