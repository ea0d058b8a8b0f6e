"""SQLite implementations of the repository interfaces."""

import json
import logging
import sqlite3
from typing import Iterable, Optional

from ..constants import FAR_FUTURE_EPOCH
from ..types import AttestationRecord, Committee, Epoch, ProposerDuty, Validator
from .base import (
    AttestationRepository,
    CommitteeRepository,
    EpochRepository,
    ProposerRepository,
    ValidatorRepository,
)
from .database import Database

logger = logging.getLogger(__name__)


# FAR_FUTURE_EPOCH does not fit a signed 64-bit column, so it is stored as NULL
def _epoch_to_db(epoch: int) -> Optional[int]:
    return None if epoch == FAR_FUTURE_EPOCH else epoch


def _epoch_from_db(value: Optional[int]) -> int:
    return FAR_FUTURE_EPOCH if value is None else value


class SqliteEpochRepository(EpochRepository):
    def __init__(self, db: Database):
        self.db = db

    async def get(self, epoch: int) -> Optional[Epoch]:
        def query(conn: sqlite3.Connection) -> Optional[Epoch]:
            row = conn.execute(
                """
                SELECT e.epoch, e.active_validators, e.total_validators,
                       (SELECT COUNT(*) FROM attestations a
                        WHERE a.epoch = e.epoch AND a.attested = 1)
                FROM epochs e
                WHERE e.epoch = ?
                """,
                (epoch,),
            ).fetchone()
            if row is None:
                return None
            return Epoch(
                index=row[0],
                active_validators=row[1],
                total_validators=row[2],
                attestations=row[3],
            )

        return await self.db.run(query)

    async def create(self, epoch: int, active_validators: int, total_validators: int) -> None:
        def insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO epochs (epoch, active_validators, total_validators) "
                "VALUES (?, ?, ?) ON CONFLICT (epoch) DO NOTHING",
                (epoch, active_validators, total_validators),
            )

        await self.db.run(insert)

    async def latest(self) -> Optional[int]:
        def query(conn: sqlite3.Connection) -> Optional[int]:
            return conn.execute("SELECT MAX(epoch) FROM epochs").fetchone()[0]

        return await self.db.run(query)


_VALIDATOR_UPSERT = """
    INSERT INTO validators (validator_index, pubkey, activation_epoch, exit_epoch)
    VALUES (?, ?, ?, ?)
    ON CONFLICT (validator_index) DO UPDATE SET
        pubkey = excluded.pubkey,
        activation_epoch = excluded.activation_epoch,
        exit_epoch = excluded.exit_epoch
"""

_ACTIVE_AT = (
    "activation_epoch IS NOT NULL AND activation_epoch <= ? "
    "AND (exit_epoch IS NULL OR exit_epoch > ?)"
)


def _validator_row(validator: Validator) -> tuple:
    return (
        validator.index,
        validator.pubkey,
        _epoch_to_db(validator.activation_epoch),
        _epoch_to_db(validator.exit_epoch),
    )


class SqliteValidatorRepository(ValidatorRepository):
    def __init__(self, db: Database):
        self.db = db

    async def get(self, index: int) -> Optional[Validator]:
        def query(conn: sqlite3.Connection) -> Optional[Validator]:
            row = conn.execute(
                """
                SELECT v.validator_index, v.pubkey, v.activation_epoch, v.exit_epoch,
                       (SELECT COUNT(*) FROM attestations a
                        WHERE a.validator_index = v.validator_index AND a.attested = 1)
                FROM validators v
                WHERE v.validator_index = ?
                """,
                (index,),
            ).fetchone()
            if row is None:
                return None
            return Validator(
                index=row[0],
                pubkey=row[1],
                activation_epoch=_epoch_from_db(row[2]),
                exit_epoch=_epoch_from_db(row[3]),
                attestations=row[4],
            )

        return await self.db.run(query)

    async def get_active(self, epoch: int) -> list[Validator]:
        def query(conn: sqlite3.Connection) -> list[Validator]:
            rows = conn.execute(
                "SELECT validator_index, pubkey, activation_epoch, exit_epoch "
                f"FROM validators WHERE {_ACTIVE_AT} ORDER BY validator_index",
                (epoch, epoch),
            ).fetchall()
            return [
                Validator(
                    index=row[0],
                    pubkey=row[1],
                    activation_epoch=_epoch_from_db(row[2]),
                    exit_epoch=_epoch_from_db(row[3]),
                )
                for row in rows
            ]

        return await self.db.run(query)

    async def active_count(self, epoch: int) -> int:
        def query(conn: sqlite3.Connection) -> int:
            return conn.execute(
                f"SELECT COUNT(*) FROM validators WHERE {_ACTIVE_AT}",
                (epoch, epoch),
            ).fetchone()[0]

        return await self.db.run(query)

    async def total_count(self, epoch: int) -> int:
        def query(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "SELECT COUNT(*) FROM validators "
                "WHERE activation_epoch IS NOT NULL AND activation_epoch <= ?",
                (epoch,),
            ).fetchone()[0]

        return await self.db.run(query)

    async def upsert(self, validator: Validator) -> None:
        await self.upsert_many([validator])

    async def upsert_many(self, validators: Iterable[Validator]) -> None:
        rows = [_validator_row(v) for v in validators]
        if not rows:
            return

        def write(conn: sqlite3.Connection) -> None:
            conn.executemany(_VALIDATOR_UPSERT, rows)

        await self.db.run(write)


_COMMITTEE_UPSERT = """
    INSERT INTO committees (slot, committee_index, validators)
    VALUES (?, ?, ?)
    ON CONFLICT (slot, committee_index) DO UPDATE SET validators = excluded.validators
"""


def _committee_from_row(row: tuple) -> Committee:
    return Committee(slot=row[0], index=row[1], validators=tuple(json.loads(row[2])))


class SqliteCommitteeRepository(CommitteeRepository):
    def __init__(self, db: Database):
        self.db = db

    async def get(self, slot: int, index: int) -> Optional[Committee]:
        def query(conn: sqlite3.Connection) -> Optional[Committee]:
            row = conn.execute(
                "SELECT slot, committee_index, validators FROM committees "
                "WHERE slot = ? AND committee_index = ?",
                (slot, index),
            ).fetchone()
            return _committee_from_row(row) if row else None

        return await self.db.run(query)

    async def get_many(self, keys: Iterable[tuple[int, int]]) -> dict[tuple[int, int], Committee]:
        keys = list(keys)

        def query(conn: sqlite3.Connection) -> dict[tuple[int, int], Committee]:
            found = {}
            for slot, index in keys:
                row = conn.execute(
                    "SELECT slot, committee_index, validators FROM committees "
                    "WHERE slot = ? AND committee_index = ?",
                    (slot, index),
                ).fetchone()
                if row:
                    committee = _committee_from_row(row)
                    found[committee.key] = committee
            return found

        return await self.db.run(query)

    async def upsert(self, committee: Committee) -> None:
        await self.upsert_many([committee])
        logger.debug(f"Stored committee slot={committee.slot}, index={committee.index}")

    async def upsert_many(self, committees: Iterable[Committee]) -> None:
        rows = [(c.slot, c.index, json.dumps(list(c.validators))) for c in committees]
        if not rows:
            return

        def write(conn: sqlite3.Connection) -> None:
            conn.executemany(_COMMITTEE_UPSERT, rows)

        await self.db.run(write)


# A stored attested=1 row is left untouched; only false -> true moves forward
_ATTESTATION_UPSERT = """
    INSERT INTO attestations (epoch, validator_index, slot, committee_index, attested)
    VALUES (?, ?, ?, ?, ?)
    ON CONFLICT (epoch, validator_index) DO UPDATE SET
        slot = excluded.slot,
        committee_index = excluded.committee_index,
        attested = excluded.attested
    WHERE excluded.attested = 1 AND attestations.attested = 0
"""


def _attestation_from_row(row: tuple) -> AttestationRecord:
    return AttestationRecord(
        epoch=row[0],
        validator=row[1],
        slot=row[2],
        committee_index=row[3],
        attested=bool(row[4]),
    )


class SqliteAttestationRepository(AttestationRepository):
    def __init__(self, db: Database):
        self.db = db

    async def get(self, epoch: int, validator: int) -> Optional[AttestationRecord]:
        found = await self.get_many([(epoch, validator)])
        return found.get((epoch, validator))

    async def get_many(
        self, keys: Iterable[tuple[int, int]]
    ) -> dict[tuple[int, int], AttestationRecord]:
        keys = list(keys)

        def query(conn: sqlite3.Connection) -> dict[tuple[int, int], AttestationRecord]:
            found = {}
            for epoch, validator in keys:
                row = conn.execute(
                    "SELECT epoch, validator_index, slot, committee_index, attested "
                    "FROM attestations WHERE epoch = ? AND validator_index = ?",
                    (epoch, validator),
                ).fetchone()
                if row:
                    record = _attestation_from_row(row)
                    found[record.key] = record
            return found

        return await self.db.run(query)

    async def upsert(self, record: AttestationRecord) -> None:
        await self.upsert_many([record])

    async def upsert_many(self, records: Iterable[AttestationRecord]) -> None:
        rows = [
            (r.epoch, r.validator, r.slot, r.committee_index, int(r.attested))
            for r in records
        ]
        if not rows:
            return

        def write(conn: sqlite3.Connection) -> None:
            conn.executemany(_ATTESTATION_UPSERT, rows)

        await self.db.run(write)


class SqliteProposerRepository(ProposerRepository):
    def __init__(self, db: Database):
        self.db = db

    async def create(self, slot: int, validator_index: int) -> None:
        def insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO proposers (slot, validator_index) VALUES (?, ?) "
                "ON CONFLICT (slot) DO NOTHING",
                (slot, validator_index),
            )

        await self.db.run(insert)

    async def get(self, slot: int) -> Optional[ProposerDuty]:
        def query(conn: sqlite3.Connection) -> Optional[ProposerDuty]:
            row = conn.execute(
                "SELECT slot, validator_index FROM proposers WHERE slot = ?",
                (slot,),
            ).fetchone()
            return ProposerDuty(slot=row[0], validator_index=row[1]) if row else None

        return await self.db.run(query)
