"""Tests for participation rate queries."""

import pytest

from attestoor.exceptions import DivisionError, NotFoundError, StoreError
from attestoor.service import ParticipationService
from attestoor.types import AttestationRecord, Validator


@pytest.fixture
def service(repos):
    return ParticipationService(repos)


def record(epoch: int, validator: int, attested: bool) -> AttestationRecord:
    return AttestationRecord(epoch=epoch, validator=validator, slot=epoch * 32, committee_index=0, attested=attested)


class TestEpochParticipation:
    @pytest.mark.asyncio
    async def test_rate(self, repos, service):
        await repos.epochs.create(3, 100, 100)
        await repos.attestations.upsert_many(record(3, v, v < 42) for v in range(100))

        assert await service.participation_rate_for_epoch(3) == pytest.approx(0.42)

    @pytest.mark.asyncio
    async def test_zero_active_validators(self, repos, service):
        await repos.epochs.create(0, 0, 0)

        with pytest.raises(DivisionError):
            await service.participation_rate_for_epoch(0)

    @pytest.mark.asyncio
    async def test_unknown_epoch(self, service):
        with pytest.raises(NotFoundError):
            await service.participation_rate_for_epoch(9)

    @pytest.mark.asyncio
    async def test_epoch_beyond_storage_range(self, service):
        with pytest.raises(StoreError):
            await service.participation_rate_for_epoch(2**70)


class TestValidatorParticipation:
    @pytest.mark.asyncio
    async def test_rate(self, repos, service):
        await repos.validators.upsert(Validator(index=1, pubkey="0x01", activation_epoch=0))
        await repos.epochs.create(10, 1, 1)
        await repos.attestations.upsert_many(record(e, 1, True) for e in range(5))

        assert await service.participation_rate_for_validator(1) == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_exited_validator_capped_at_exit(self, repos, service):
        await repos.validators.upsert(Validator(index=1, pubkey="0x01", activation_epoch=2, exit_epoch=6))
        await repos.epochs.create(10, 1, 1)
        await repos.attestations.upsert_many(record(e, 1, True) for e in (2, 3))

        assert await service.participation_rate_for_validator(1) == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_no_active_epochs(self, repos, service):
        await repos.validators.upsert(Validator(index=1, pubkey="0x01", activation_epoch=10))
        await repos.epochs.create(10, 1, 1)

        with pytest.raises(DivisionError):
            await service.participation_rate_for_validator(1)

    @pytest.mark.asyncio
    async def test_unknown_validator(self, repos, service):
        await repos.epochs.create(10, 1, 1)

        with pytest.raises(NotFoundError):
            await service.participation_rate_for_validator(1)

    @pytest.mark.asyncio
    async def test_nothing_indexed(self, repos, service):
        await repos.validators.upsert(Validator(index=1, pubkey="0x01", activation_epoch=0))

        with pytest.raises(NotFoundError):
            await service.participation_rate_for_validator(1)
