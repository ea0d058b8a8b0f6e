"""Shared fixtures for attestoor tests."""

import pytest

from attestoor.indexer import CommitteeResolver
from attestoor.store import Database

from helpers import FakeBeaconClient


@pytest.fixture
def database():
    db = Database(":memory:")
    yield db
    db.close()


@pytest.fixture
def repos(database):
    return database.repositories()


@pytest.fixture
def client():
    return FakeBeaconClient()


@pytest.fixture
def resolver(client, repos):
    return CommitteeResolver(client, repos.committees)


@pytest.fixture
def count_rows(database):
    """Return an async counter of rows in a table."""

    async def count(table: str) -> int:
        return await database.run(lambda conn: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])

    return count
