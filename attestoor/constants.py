"""Chain and indexing constants."""

from typing import Final

GENESIS_SLOT: Final[int] = 0
GENESIS_EPOCH: Final[int] = 0
SLOTS_PER_EPOCH: Final[int] = 32
FAR_FUTURE_EPOCH: Final[int] = 2**64 - 1

# Rows per batched store write
BATCH_SIZE: Final[int] = 1000

# Named block/state references understood by the beacon API
NAMED_REFS: Final[tuple[str, ...]] = ("head", "genesis", "finalized", "justified")


def compute_epoch_at_slot(slot: int) -> int:
    """Return the epoch containing the given slot."""
    return slot // SLOTS_PER_EPOCH


def compute_start_slot_at_epoch(epoch: int) -> int:
    """Return the first slot of an epoch."""
    return epoch * SLOTS_PER_EPOCH
