"""Indexer process orchestration."""

import asyncio
import logging
from typing import Optional

from . import metrics
from .beacon import BeaconClient, RemoteBeaconClient
from .config import Config
from .indexer import BackfillIndexer, CommitteeResolver, LiveIndexer
from .store import Database

logger = logging.getLogger(__name__)


class IndexerNode:
    """Wires the beacon client, store and indexing loops together.

    In bounded mode only the backfill runs. In unbounded mode the backfill
    and, if enabled, the live ingestion loop run side by side; either one
    failing stops the node.
    """

    def __init__(
        self,
        config: Config,
        client: Optional[BeaconClient] = None,
        database: Optional[Database] = None,
    ):
        self.config = config
        self.client = client or RemoteBeaconClient(config.beacon_url, timeout=config.request_timeout)
        self.database = database or Database(config.db_path)
        self.repos = self.database.repositories()
        self.resolver = CommitteeResolver(self.client, self.repos.committees)
        self.backfill = BackfillIndexer(
            self.client,
            self.repos,
            self.resolver,
            poll_interval=config.poll_interval,
            batch_size=config.batch_size,
        )
        self.live = LiveIndexer(
            self.client,
            self.repos,
            self.resolver,
            max_in_flight=config.max_in_flight,
        )
        self._tasks: list[asyncio.Task] = []

    async def start_epoch(self) -> int:
        """Epoch to start backfilling from."""
        if self.config.from_epoch is not None:
            return self.config.from_epoch
        if self.config.resume:
            latest = await self.repos.epochs.latest()
            if latest is not None:
                logger.info(f"Resuming backfill at stored epoch {latest}")
                return latest
        return 0

    async def run(self) -> None:
        """Run until the backfill completes (bounded) or a loop fails."""
        version = await self.client.get_version()
        logger.info(f"Connected to beacon node: {version}")

        from_epoch = await self.start_epoch()

        if self.config.bounded:
            await self.backfill.run(from_epoch, self.config.max_epoch)
            return

        self._tasks = [asyncio.create_task(self.backfill.run(from_epoch), name="backfill")]
        if self.config.live:
            self._tasks.append(asyncio.create_task(self.live.run(), name="live"))

        done, _ = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in done:
            if task.exception() is not None:
                logger.error(f"{task.get_name()} loop failed: {task.exception()}")
                raise task.exception()

    async def stop(self) -> None:
        """Cancel running loops and release resources."""
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.live.stop()
        await self.client.close()
        self.database.close()
        logger.info(
            f"Indexer stopped: {self.backfill.stats.epochs_processed} epochs backfilled, "
            f"{self.live.stats.events_received} live events received"
        )


async def run_indexer(config: Config) -> None:
    """Run the indexer until completion or failure."""
    if config.metrics_port:
        metrics.start_metrics_server(config.metrics_port)

    node = IndexerNode(config)
    try:
        await node.run()
    finally:
        await node.stop()


async def run_query_api(config: Config) -> None:
    """Serve participation queries until cancelled."""
    from .api import QueryAPI
    from .service import ParticipationService

    database = Database(config.db_path)
    api = QueryAPI(ParticipationService(database.repositories()), config.api_host, config.api_port)
    await api.start()
    try:
        await asyncio.Event().wait()
    finally:
        await api.stop()
        database.close()
