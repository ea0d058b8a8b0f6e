"""Interface the indexer expects from a beacon node."""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Sequence, Union

from ..exceptions import FormatError
from ..types import (
    Attestation,
    BlockHeader,
    Committee,
    FinalityCheckpoints,
    ValidatorSnapshot,
    ValidatorStatus,
)

# "head", "genesis", "finalized", "justified", a slot number or a 0x root
BlockRef = Union[str, int]
StateRef = Union[str, int]


class BeaconClient(ABC):
    """Typed accessor over a beacon node's query and event surface."""

    @abstractmethod
    async def header_for_block(self, block_id: BlockRef) -> Optional[BlockHeader]:
        """Return the block header, or None if there is no block."""

    @abstractmethod
    async def attestations_for_block(self, block_id: BlockRef) -> Optional[list[Attestation]]:
        """Return the block's attestations, or None if the slot was empty."""

    @abstractmethod
    async def committees_for_state(
        self,
        state_id: StateRef,
        epoch: Optional[int] = None,
        index: Optional[int] = None,
        slot: Optional[int] = None,
    ) -> list[Committee]:
        """Return the beacon committees matching the filters."""

    @abstractmethod
    async def validators_for_state(
        self,
        state_id: StateRef,
        ids: Sequence[Union[int, str]] = (),
        status: Optional[ValidatorStatus] = None,
    ) -> list[ValidatorSnapshot]:
        """Return validators from the state's registry."""

    @abstractmethod
    async def finality_checkpoints(self, state_id: StateRef) -> FinalityCheckpoints:
        """Return the justified and finalized checkpoints of a state."""

    @abstractmethod
    def subscribe_attestations(self) -> AsyncIterator[Union[Attestation, FormatError]]:
        """Stream attestations pushed by the node.

        A malformed event is yielded as a FormatError instance instead of
        being raised, so one bad item does not end the subscription.
        """

    async def get_version(self) -> str:
        return "unknown"

    async def close(self) -> None:
        """Release network resources."""
