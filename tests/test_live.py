"""Tests for live attestation ingestion."""

import asyncio

import pytest

from attestoor.exceptions import ConsistencyError, FormatError
from attestoor.indexer import CommitteeResolver, LiveIndexer
from attestoor.types import Committee

from helpers import FakeBeaconClient, make_attestation


class SlowBeaconClient(FakeBeaconClient):
    """Tracks how many committee fetches overlap."""

    def __init__(self):
        super().__init__()
        self.active = 0
        self.peak = 0

    async def committees_for_state(self, state_id, epoch=None, index=None, slot=None):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return await super().committees_for_state(state_id, epoch=epoch, index=index, slot=slot)


@pytest.fixture
def live(client, repos, resolver):
    return LiveIndexer(client, repos, resolver, max_in_flight=4)


class TestLiveIndexer:
    def test_rejects_non_positive_cap(self, client, repos, resolver):
        with pytest.raises(ValueError):
            LiveIndexer(client, repos, resolver, max_in_flight=0)

    @pytest.mark.asyncio
    async def test_process_attestation(self, client, repos, live):
        client.committees = [Committee(slot=100, index=1, validators=(10, 11, 12))]

        written = await live.process_attestation(make_attestation(100, 1, "0x40"))

        assert written == 3
        assert (await repos.attestations.get(3, 11)).attested
        assert not (await repos.attestations.get(3, 10)).attested

    @pytest.mark.asyncio
    async def test_late_attestation_resolves_by_its_own_slot(self, client, repos, live):
        # Arrives after the epoch boundary but still targets epoch 2
        client.committees = [Committee(slot=95, index=0, validators=(1, 2))]

        await live.process_attestation(make_attestation(95, 0, "0x80", target_epoch=2))

        assert (await repos.attestations.get(2, 1)).attested
        assert await repos.attestations.get(3, 1) is None

    @pytest.mark.asyncio
    async def test_unknown_committee_raises(self, live):
        with pytest.raises(ConsistencyError):
            await live.process_attestation(make_attestation(100, 7, "0x80"))

    @pytest.mark.asyncio
    async def test_error_items_are_skipped(self, client, repos, live):
        client.committees = [Committee(slot=100, index=0, validators=(1, 2))]
        client.events = [
            FormatError("bad event"),
            make_attestation(100, 0, "0x80"),
            FormatError("another bad event"),
        ]

        await live.run()

        assert live.stats.events_received == 1
        assert live.stats.events_failed == 2
        assert (await repos.attestations.get(3, 1)).attested

    @pytest.mark.asyncio
    async def test_failed_task_does_not_affect_others(self, client, repos, live):
        client.committees = [Committee(slot=100, index=0, validators=(1, 2))]
        client.events = [
            make_attestation(100, 5, "0x80"),
            make_attestation(100, 0, "0x40"),
        ]

        await live.run()

        assert live.stats.events_received == 2
        assert live.stats.events_failed == 1
        assert (await repos.attestations.get(3, 2)).attested
        assert live.in_flight == 0

    @pytest.mark.asyncio
    async def test_in_flight_tasks_are_capped(self, repos):
        client = SlowBeaconClient()
        client.committees = [Committee(slot=s, index=0, validators=(s,)) for s in range(100, 110)]
        client.events = [make_attestation(s, 0, "0x80") for s in range(100, 110)]
        live = LiveIndexer(client, repos, CommitteeResolver(client, repos.committees), max_in_flight=3)

        await live.run()

        assert client.peak <= 3
        assert live.in_flight == 0
        assert live.stats.events_failed == 0
        for s in range(100, 110):
            assert (await repos.attestations.get(3, s)).attested

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_tasks(self, repos):
        client = SlowBeaconClient()
        live = LiveIndexer(client, repos, CommitteeResolver(client, repos.committees), max_in_flight=2)
        client.events = [make_attestation(100, 0, "0x80")]

        consumer = asyncio.create_task(live.run())
        await asyncio.sleep(0)
        await live.stop()
        await consumer

        assert live.in_flight == 0
