"""Epoch-by-epoch historical indexing."""

import asyncio
import logging
import time
from typing import Iterator, Optional, Sequence, TypeVar

from .. import metrics
from ..beacon import BeaconClient
from ..constants import BATCH_SIZE, SLOTS_PER_EPOCH, compute_start_slot_at_epoch
from ..exceptions import ConsistencyError
from ..store import Repositories
from ..types import Attestation, Committee, IndexerStats
from .committees import CommitteeResolver
from .decoder import build_records, merge_records

logger = logging.getLogger(__name__)

T = TypeVar("T")

CommitteeMap = dict[tuple[int, int], Committee]


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BackfillIndexer:
    """Imports validators, committees, proposers and attestations per epoch.

    Every step is an idempotent upsert, so an epoch that failed halfway can
    simply be run again. Errors are not caught here: a failed step aborts
    the epoch and propagates to the caller.
    """

    def __init__(
        self,
        client: BeaconClient,
        repos: Repositories,
        resolver: CommitteeResolver,
        poll_interval: float = 12.0,
        batch_size: int = BATCH_SIZE,
    ):
        self.client = client
        self.repos = repos
        self.resolver = resolver
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.stats = IndexerStats()
        # Committee maps keyed by epoch; holds the current and previous epoch
        self._committee_maps: dict[int, CommitteeMap] = {}

    async def run(self, from_epoch: Optional[int] = None, max_epoch: Optional[int] = None) -> None:
        """Backfill from from_epoch (default 0).

        With max_epoch, stop after that epoch. Without it, catch up to the
        chain's current justified epoch and then keep following the chain
        one epoch at a time.
        """
        checkpoints = await self.client.finality_checkpoints("head")
        justified = checkpoints.current_justified.epoch
        metrics.update_justified_epoch(justified)

        epoch = from_epoch or 0
        last = max_epoch if max_epoch is not None else justified
        logger.info(
            f"Starting backfill at epoch {epoch}, "
            f"{'stopping at' if max_epoch is not None else 'catching up to'} epoch {last}"
        )

        while epoch <= last:
            await self.run_for_epoch(epoch)
            epoch += 1

        if max_epoch is not None:
            logger.info(f"Backfill complete through epoch {max_epoch}")
            return

        while True:
            await self._wait_for_epoch(epoch)
            await self.run_for_epoch(epoch)
            epoch += 1

    async def _wait_for_epoch(self, epoch: int) -> None:
        """Block until the chain's justified epoch has reached epoch."""
        while True:
            checkpoints = await self.client.finality_checkpoints("head")
            justified = checkpoints.current_justified.epoch
            metrics.update_justified_epoch(justified)
            if justified >= epoch:
                return
            logger.debug(f"Waiting for epoch {epoch} to be justified (justified={justified})")
            await asyncio.sleep(self.poll_interval)

    async def run_for_epoch(self, epoch: int) -> None:
        """Index one epoch. Safe to re-run."""
        logger.info(f"Processing epoch {epoch}")
        start_time = time.time()
        metrics.update_backfill_epoch(epoch)

        await self.index_validators()
        await self.create_epoch(epoch)
        if epoch > 0:
            await self.create_epoch(epoch - 1)

        current = await self.index_committees(epoch)
        maps = {epoch: current}
        if epoch > 0:
            previous = self._committee_maps.get(epoch - 1)
            if previous is None:
                logger.info(f"No committee map for epoch {epoch - 1} in memory, importing it")
                previous = await self.index_committees(epoch - 1)
            maps[epoch - 1] = previous
        self._committee_maps = maps

        start_slot = compute_start_slot_at_epoch(epoch)
        for slot in range(start_slot, start_slot + SLOTS_PER_EPOCH):
            await self.index_slot(slot, epoch)

        duration = time.time() - start_time
        self.stats.epochs_processed += 1
        self.stats.last_epoch = epoch
        metrics.record_epoch_processed(duration)
        logger.info(f"Epoch {epoch} indexed in {duration:.1f}s")

    async def index_validators(self) -> None:
        """Snapshot the head validator set into the store."""
        snapshots = await self.client.validators_for_state("head")
        total = len(snapshots)
        logger.info(f"Adding {total} validators")
        added = 0
        for chunk in chunked(snapshots, self.batch_size):
            await self.repos.validators.upsert_many(s.to_validator() for s in chunk)
            added += len(chunk)
            logger.debug(f"Added {added}/{total} validators")

    async def create_epoch(self, epoch: int) -> None:
        active = await self.repos.validators.active_count(epoch)
        total = await self.repos.validators.total_count(epoch)
        logger.debug(
            f"Creating epoch {epoch} with {active} active validators "
            f"and {total} total validators"
        )
        await self.repos.epochs.create(epoch, active, total)

    async def index_committees(self, epoch: int) -> CommitteeMap:
        """Import all committees of an epoch and return them by (slot, index)."""
        committees = await self.client.committees_for_state(
            compute_start_slot_at_epoch(epoch), epoch=epoch
        )
        total = len(committees)
        logger.info(f"Adding {total} committees for epoch {epoch}")
        for chunk in chunked(committees, self.batch_size):
            await self.repos.committees.upsert_many(chunk)
        return {c.key: c for c in committees}

    async def index_slot(self, slot: int, epoch: int) -> None:
        """Record the slot's proposer and its included attestations."""
        # Header lookup rather than proposer duties: duties misreport the genesis proposer
        header = await self.client.header_for_block(slot)
        if header is not None:
            await self.repos.proposers.create(slot, header.proposer_index)

        attestations = await self.client.attestations_for_block(slot)
        self.stats.slots_processed += 1
        if attestations is None:
            logger.debug(f"Slot {slot} is empty")
            self.stats.empty_slots += 1
            metrics.record_slot_processed(empty=True)
            return

        records = []
        for attestation in attestations:
            logger.debug(
                f"Processing attestation slot={attestation.data.slot}, "
                f"index={attestation.data.index}, target={attestation.data.target.epoch}"
            )
            committee = await self.committee_for(attestation, epoch)
            records.extend(build_records(attestation, committee))

        batch = merge_records(records)
        for chunk in chunked(batch, self.batch_size):
            await self.repos.attestations.upsert_many(chunk)

        self.stats.attestations_written += len(batch)
        metrics.record_slot_processed(empty=False)
        metrics.record_attestations_written("backfill", len(batch))
        logger.debug(f"Slot {slot}: {len(attestations)} attestations, {len(batch)} records")

    async def committee_for(self, attestation: Attestation, epoch: int) -> Committee:
        """Find the committee an attestation's bits refer to.

        Attestations targeting an earlier epoch are resolved only against
        that epoch's committee map, never the current one.
        """
        data = attestation.data
        key = (data.slot, data.index)

        if data.target.epoch < epoch:
            previous = self._committee_maps.get(epoch - 1)
            if data.target.epoch != epoch - 1 or previous is None:
                raise ConsistencyError(
                    f"No committee map for target epoch {data.target.epoch} "
                    f"while processing epoch {epoch}"
                )
            committee = previous.get(key)
            if committee is None:
                raise ConsistencyError(
                    f"Committee slot={data.slot}, index={data.index} missing from "
                    f"epoch {epoch - 1} committee map"
                )
            return committee

        committee = self._committee_maps.get(epoch, {}).get(key)
        if committee is None:
            committee = await self.resolver.resolve(data.slot, data.index)
        if committee is None:
            raise ConsistencyError(f"Committee not found for slot {data.slot} and index {data.index}")
        return committee
