"""Fake beacon node and payload builders shared by the tests."""

from collections import Counter
from typing import Optional

from attestoor.beacon import BeaconClient
from attestoor.constants import FAR_FUTURE_EPOCH, compute_epoch_at_slot
from attestoor.exceptions import NetworkError
from attestoor.types import (
    Attestation,
    AttestationData,
    BlockHeader,
    Checkpoint,
    Committee,
    FinalityCheckpoints,
    ValidatorSnapshot,
)

ROOT = "0x" + "00" * 32


def make_attestation(slot: int, index: int, bits: str, target_epoch: Optional[int] = None) -> Attestation:
    if target_epoch is None:
        target_epoch = compute_epoch_at_slot(slot)
    return Attestation(
        aggregation_bits=bits,
        data=AttestationData(
            slot=slot,
            index=index,
            beacon_block_root=ROOT,
            source=Checkpoint(epoch=max(target_epoch - 1, 0), root=ROOT),
            target=Checkpoint(epoch=target_epoch, root=ROOT),
        ),
    )


def make_header(slot: int, proposer_index: int) -> BlockHeader:
    return BlockHeader(
        root=ROOT,
        slot=slot,
        proposer_index=proposer_index,
        parent_root=ROOT,
        state_root=ROOT,
        body_root=ROOT,
    )


def make_snapshot(index: int, activation_epoch: int = 0, exit_epoch: int = FAR_FUTURE_EPOCH) -> ValidatorSnapshot:
    return ValidatorSnapshot(
        index=index,
        pubkey="0x" + f"{index:02x}" * 48,
        status="active_ongoing",
        balance=32_000_000_000,
        slashed=False,
        activation_eligibility_epoch=0,
        activation_epoch=activation_epoch,
        exit_epoch=exit_epoch,
        withdrawable_epoch=FAR_FUTURE_EPOCH,
    )


class FakeBeaconClient(BeaconClient):
    """In-memory beacon node with per-method call counts."""

    def __init__(self):
        self.headers: dict[int, BlockHeader] = {}
        self.blocks: dict[int, list[Attestation]] = {}
        self.committees: list[Committee] = []
        self.validators: list[ValidatorSnapshot] = []
        # Successive justified epochs; the last one repeats
        self.justified: list[int] = [0]
        self.events: list = []
        self.failing_blocks: set[int] = set()
        self.calls: Counter = Counter()
        self.closed = False

    async def header_for_block(self, block_id):
        self.calls["header_for_block"] += 1
        return self.headers.get(block_id)

    async def attestations_for_block(self, block_id):
        self.calls["attestations_for_block"] += 1
        if block_id in self.failing_blocks:
            raise NetworkError(500, f"block {block_id} unavailable")
        return self.blocks.get(block_id)

    async def committees_for_state(self, state_id, epoch=None, index=None, slot=None):
        self.calls["committees_for_state"] += 1
        return [
            c for c in self.committees
            if (epoch is None or compute_epoch_at_slot(c.slot) == epoch)
            and (index is None or c.index == index)
            and (slot is None or c.slot == slot)
        ]

    async def validators_for_state(self, state_id, ids=(), status=None):
        self.calls["validators_for_state"] += 1
        return list(self.validators)

    async def finality_checkpoints(self, state_id):
        self.calls["finality_checkpoints"] += 1
        epoch = self.justified.pop(0) if len(self.justified) > 1 else self.justified[0]
        checkpoint = Checkpoint(epoch=epoch, root=ROOT)
        return FinalityCheckpoints(
            previous_justified=Checkpoint(epoch=max(epoch - 1, 0), root=ROOT),
            current_justified=checkpoint,
            finalized=Checkpoint(epoch=max(epoch - 1, 0), root=ROOT),
        )

    async def subscribe_attestations(self):
        for item in self.events:
            yield item

    async def close(self):
        self.closed = True
