"""Tests for the participation query API."""

import pytest
import pytest_asyncio
from aiohttp import test_utils

from attestoor.api import QueryAPI
from attestoor.service import ParticipationService
from attestoor.types import AttestationRecord, Validator


@pytest_asyncio.fixture
async def http(repos):
    api = QueryAPI(ParticipationService(repos))
    client = test_utils.TestClient(test_utils.TestServer(api.app))
    await client.start_server()
    yield client
    await client.close()


class TestQueryAPI:
    @pytest.mark.asyncio
    async def test_health(self, http):
        resp = await http.get("/health")
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_epoch_participation(self, repos, http):
        await repos.epochs.create(4, 4, 4)
        await repos.attestations.upsert(
            AttestationRecord(epoch=4, validator=0, slot=128, committee_index=0, attested=True)
        )

        resp = await http.get("/participation/epoch/4")

        assert resp.status == 200
        body = await resp.json()
        assert body == {"data": {"epoch": "4", "participation_rate": 0.25}}

    @pytest.mark.asyncio
    async def test_epoch_not_found(self, http):
        resp = await http.get("/participation/epoch/4")
        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_epoch_without_active_validators(self, repos, http):
        await repos.epochs.create(0, 0, 0)

        resp = await http.get("/participation/epoch/0")

        assert resp.status == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize("epoch", ["abc", "-1", "99999999999999999999"])
    async def test_invalid_epoch(self, http, epoch):
        resp = await http.get(f"/participation/epoch/{epoch}")
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_validator_participation(self, repos, http):
        await repos.validators.upsert(Validator(index=3, pubkey="0x03", activation_epoch=0))
        await repos.epochs.create(2, 1, 1)
        await repos.attestations.upsert(
            AttestationRecord(epoch=1, validator=3, slot=32, committee_index=0, attested=True)
        )

        resp = await http.get("/participation/validator/3")

        assert resp.status == 200
        body = await resp.json()
        assert body["data"] == {"validator": "3", "participation_rate": 0.5}

    @pytest.mark.asyncio
    async def test_unknown_validator(self, http):
        resp = await http.get("/participation/validator/3")
        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_validator_index_beyond_storage_range(self, http):
        resp = await http.get(f"/participation/validator/{2**63}")
        assert resp.status == 400
