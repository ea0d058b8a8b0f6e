"""Live attestation ingestion from the beacon node event stream."""

import asyncio
import logging

from .. import metrics
from ..beacon import BeaconClient
from ..exceptions import ConsistencyError
from ..store import Repositories
from ..types import Attestation, IndexerStats
from .committees import CommitteeResolver
from .decoder import build_records, merge_records

logger = logging.getLogger(__name__)

DEFAULT_MAX_IN_FLIGHT = 64


class LiveIndexer:
    """Consumes attestation events and processes each in its own task.

    At most max_in_flight tasks run at once; when the cap is reached the
    stream consumer waits for a slot before reading further. A failing
    event or task is logged and does not affect the others.
    """

    def __init__(
        self,
        client: BeaconClient,
        repos: Repositories,
        resolver: CommitteeResolver,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
    ):
        if max_in_flight < 1:
            raise ValueError(f"max_in_flight must be positive, got {max_in_flight}")
        self.client = client
        self.repos = repos
        self.resolver = resolver
        self.max_in_flight = max_in_flight
        self.stats = IndexerStats()
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        """Consume the subscription until it ends."""
        logger.info(f"Subscribing to attestation events (max {self.max_in_flight} in flight)")
        async for item in self.client.subscribe_attestations():
            if isinstance(item, Exception):
                self.stats.events_failed += 1
                metrics.record_live_failure("receive")
                logger.error(f"Error receiving attestation: {item}")
                continue

            self.stats.events_received += 1
            metrics.record_live_event()

            await self._semaphore.acquire()
            task = asyncio.create_task(self._process_isolated(item))
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)
            metrics.update_live_in_flight(self.in_flight)

        logger.info("Attestation stream ended, waiting for in-flight tasks")
        await self.drain()

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._semaphore.release()
        metrics.update_live_in_flight(self.in_flight)

    async def _process_isolated(self, attestation: Attestation) -> None:
        try:
            await self.process_attestation(attestation)
        except Exception as e:
            self.stats.events_failed += 1
            metrics.record_live_failure("process")
            logger.error(
                f"Error processing attestation slot={attestation.data.slot}, "
                f"index={attestation.data.index}: {e}"
            )

    async def process_attestation(self, attestation: Attestation) -> int:
        """Resolve, decode and store one attestation. Returns records written."""
        data = attestation.data
        logger.debug(f"Processing attestation at slot {data.slot} and index {data.index}")

        committee = await self.resolver.resolve(data.slot, data.index)
        if committee is None:
            raise ConsistencyError(f"Committee not found for slot {data.slot} and index {data.index}")

        records = merge_records(build_records(attestation, committee))
        await self.repos.attestations.upsert_many(records)

        self.stats.attestations_written += len(records)
        metrics.record_attestations_written("live", len(records))
        return len(records)

    async def drain(self) -> None:
        """Wait for all in-flight tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        """Cancel in-flight tasks."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
