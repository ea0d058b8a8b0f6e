"""Repository interfaces for indexed chain data."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

from ..types import AttestationRecord, Committee, Epoch, ProposerDuty, Validator


class EpochRepository(ABC):
    @abstractmethod
    async def get(self, epoch: int) -> Optional[Epoch]:
        """Return the epoch with its derived attestation count."""

    @abstractmethod
    async def create(self, epoch: int, active_validators: int, total_validators: int) -> None:
        """Create the epoch record; no-op if it already exists."""

    @abstractmethod
    async def latest(self) -> Optional[int]:
        """Return the highest stored epoch index."""


class ValidatorRepository(ABC):
    @abstractmethod
    async def get(self, index: int) -> Optional[Validator]:
        """Return the validator with its derived attestation count."""

    @abstractmethod
    async def get_active(self, epoch: int) -> list[Validator]:
        ...

    @abstractmethod
    async def active_count(self, epoch: int) -> int:
        ...

    @abstractmethod
    async def total_count(self, epoch: int) -> int:
        """Count validators activated at or before the epoch, exited or not."""

    @abstractmethod
    async def upsert(self, validator: Validator) -> None:
        ...

    @abstractmethod
    async def upsert_many(self, validators: Iterable[Validator]) -> None:
        """Insert or overwrite validators; last write wins."""


class CommitteeRepository(ABC):
    @abstractmethod
    async def get(self, slot: int, index: int) -> Optional[Committee]:
        ...

    @abstractmethod
    async def get_many(self, keys: Iterable[tuple[int, int]]) -> dict[tuple[int, int], Committee]:
        """Return the stored committees among the (slot, index) keys."""

    @abstractmethod
    async def upsert(self, committee: Committee) -> None:
        ...

    @abstractmethod
    async def upsert_many(self, committees: Iterable[Committee]) -> None:
        """Insert committees, overwriting the validator list on conflict."""


class AttestationRepository(ABC):
    @abstractmethod
    async def get(self, epoch: int, validator: int) -> Optional[AttestationRecord]:
        ...

    @abstractmethod
    async def get_many(
        self, keys: Iterable[tuple[int, int]]
    ) -> dict[tuple[int, int], AttestationRecord]:
        """Return the stored records among the (epoch, validator) keys."""

    @abstractmethod
    async def upsert(self, record: AttestationRecord) -> None:
        ...

    @abstractmethod
    async def upsert_many(self, records: Iterable[AttestationRecord]) -> None:
        """Insert records; a stored true flag is never replaced by false."""


class ProposerRepository(ABC):
    @abstractmethod
    async def create(self, slot: int, validator_index: int) -> None:
        """Record the slot's proposer; no-op if the slot already has one."""

    @abstractmethod
    async def get(self, slot: int) -> Optional[ProposerDuty]:
        ...


@dataclass(frozen=True)
class Repositories:
    """The repositories shared by the indexer, the service and the API."""

    epochs: EpochRepository
    validators: ValidatorRepository
    committees: CommitteeRepository
    attestations: AttestationRepository
    proposers: ProposerRepository
