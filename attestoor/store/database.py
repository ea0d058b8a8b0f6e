"""SQLite database shared by the repositories."""

import asyncio
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from ..exceptions import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS epochs (
        epoch INTEGER PRIMARY KEY,
        active_validators INTEGER NOT NULL,
        total_validators INTEGER NOT NULL
    );
    CREATE TABLE IF NOT EXISTS validators (
        validator_index INTEGER PRIMARY KEY,
        pubkey TEXT NOT NULL,
        activation_epoch INTEGER,
        exit_epoch INTEGER
    );
    CREATE TABLE IF NOT EXISTS committees (
        slot INTEGER NOT NULL,
        committee_index INTEGER NOT NULL,
        validators TEXT NOT NULL,
        PRIMARY KEY (slot, committee_index)
    );
    CREATE TABLE IF NOT EXISTS attestations (
        epoch INTEGER NOT NULL,
        validator_index INTEGER NOT NULL,
        slot INTEGER NOT NULL,
        committee_index INTEGER NOT NULL,
        attested INTEGER NOT NULL,
        PRIMARY KEY (epoch, validator_index)
    );
    CREATE TABLE IF NOT EXISTS proposers (
        slot INTEGER PRIMARY KEY,
        validator_index INTEGER NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_attestations_validator ON attestations(validator_index);
    CREATE INDEX IF NOT EXISTS idx_validators_activation ON validators(activation_epoch);
"""


class Database:
    """SQLite connection with statements run off the event loop.

    Every call runs in a worker thread via asyncio.to_thread. A thread lock
    serializes access to the single connection; it is only held inside the
    worker thread, never across an await.
    """

    def __init__(self, path: str = ":memory:"):
        self.path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Open the connection and create tables."""
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            if self.path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open database at {self.path}: {e}") from e
        logger.info(f"SQLite store initialized at {self.path}")

    def _run_locked(self, fn: Callable[..., T], *args: Any) -> T:
        if self._conn is None:
            raise StoreError("Database is closed")
        with self._lock:
            try:
                result = fn(self._conn, *args)
                self._conn.commit()
                return result
            except (sqlite3.Error, OverflowError) as e:
                # OverflowError: an integer outside SQLite's signed 64-bit range
                self._conn.rollback()
                raise StoreError(str(e)) from e

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run fn(connection, *args) in a worker thread inside a transaction."""
        return await asyncio.to_thread(self._run_locked, fn, *args)

    def repositories(self):
        """Build the SQLite-backed repository set over this database."""
        from .base import Repositories
        from .repositories import (
            SqliteAttestationRepository,
            SqliteCommitteeRepository,
            SqliteEpochRepository,
            SqliteProposerRepository,
            SqliteValidatorRepository,
        )

        return Repositories(
            epochs=SqliteEpochRepository(self),
            validators=SqliteValidatorRepository(self),
            committees=SqliteCommitteeRepository(self),
            attestations=SqliteAttestationRepository(self),
            proposers=SqliteProposerRepository(self),
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("SQLite store closed")
