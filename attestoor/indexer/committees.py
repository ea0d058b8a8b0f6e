"""Cache-first committee resolution."""

import logging
from typing import Optional

from .. import metrics
from ..beacon import BeaconClient
from ..store import CommitteeRepository
from ..types import Committee

logger = logging.getLogger(__name__)


class CommitteeResolver:
    """Look up committees in the store, falling back to the beacon node.

    Committee composition for a slot never changes once published, so a
    stored committee is returned without re-validation. A committee fetched
    from the beacon node is persisted before it is returned.
    """

    def __init__(self, client: BeaconClient, committees: CommitteeRepository):
        self.client = client
        self.committees = committees

    async def resolve(self, slot: int, index: int) -> Optional[Committee]:
        """Return the committee for (slot, index), or None if the node has none."""
        committee = await self.committees.get(slot, index)
        if committee is not None:
            metrics.record_committee_lookup("hit")
            return committee

        logger.debug(f"Committee slot={slot}, index={index} not stored, fetching")
        fetched = await self.client.committees_for_state(slot, index=index, slot=slot)
        matches = [c for c in fetched if c.slot == slot and c.index == index]
        if not matches:
            metrics.record_committee_lookup("missing")
            logger.warning(f"Beacon node has no committee for slot={slot}, index={index}")
            return None

        committee = matches[0]
        await self.committees.upsert(committee)
        metrics.record_committee_lookup("fetched")
        return committee
