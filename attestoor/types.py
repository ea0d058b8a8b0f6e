"""Data types for indexed chain data and beacon API payloads."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .constants import FAR_FUTURE_EPOCH
from .exceptions import FormatError


def _parse_int(data: dict, key: str) -> int:
    """Read a decimal-string (or int) field from a beacon API payload."""
    try:
        return int(data[key])
    except KeyError:
        raise FormatError(f"Missing field: {key}") from None
    except (TypeError, ValueError):
        raise FormatError(f"Invalid integer for {key}: {data[key]!r}") from None


def _parse_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise FormatError(f"Missing or invalid field: {key}")
    return value


def _parse_dict(data: Any, key: str) -> dict:
    value = data.get(key) if isinstance(data, dict) else None
    if not isinstance(value, dict):
        raise FormatError(f"Missing or invalid object: {key}")
    return value


class ValidatorStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    EXITED = "exited"
    WITHDRAWAL = "withdrawal"
    PENDING_INITIALIZED = "pending_initialized"
    PENDING_QUEUED = "pending_queued"
    ACTIVE_ONGOING = "active_ongoing"
    ACTIVE_EXITING = "active_exiting"
    ACTIVE_SLASHED = "active_slashed"
    EXITED_UNSLASHED = "exited_unslashed"
    EXITED_SLASHED = "exited_slashed"
    WITHDRAWAL_POSSIBLE = "withdrawal_possible"
    WITHDRAWAL_DONE = "withdrawal_done"


# =============================================================================
# Beacon API payloads
# =============================================================================


@dataclass(frozen=True)
class Checkpoint:
    epoch: int
    root: str

    @classmethod
    def from_dict(cls, data: dict) -> "Checkpoint":
        return cls(epoch=_parse_int(data, "epoch"), root=_parse_str(data, "root"))


@dataclass(frozen=True)
class FinalityCheckpoints:
    """Response from /eth/v1/beacon/states/{state_id}/finality_checkpoints."""

    previous_justified: Checkpoint
    current_justified: Checkpoint
    finalized: Checkpoint

    @classmethod
    def from_dict(cls, data: dict) -> "FinalityCheckpoints":
        return cls(
            previous_justified=Checkpoint.from_dict(_parse_dict(data, "previous_justified")),
            current_justified=Checkpoint.from_dict(_parse_dict(data, "current_justified")),
            finalized=Checkpoint.from_dict(_parse_dict(data, "finalized")),
        )


@dataclass(frozen=True)
class BlockHeader:
    """Signed block header message plus the block root."""

    root: str
    slot: int
    proposer_index: int
    parent_root: str
    state_root: str
    body_root: str

    @classmethod
    def from_dict(cls, data: dict) -> "BlockHeader":
        message = _parse_dict(_parse_dict(data, "header"), "message")
        return cls(
            root=data.get("root", ""),
            slot=_parse_int(message, "slot"),
            proposer_index=_parse_int(message, "proposer_index"),
            parent_root=message.get("parent_root", ""),
            state_root=message.get("state_root", ""),
            body_root=message.get("body_root", ""),
        )


@dataclass(frozen=True)
class AttestationData:
    slot: int
    index: int
    beacon_block_root: str
    source: Checkpoint
    target: Checkpoint

    @classmethod
    def from_dict(cls, data: dict) -> "AttestationData":
        return cls(
            slot=_parse_int(data, "slot"),
            index=_parse_int(data, "index"),
            beacon_block_root=data.get("beacon_block_root", ""),
            source=Checkpoint.from_dict(_parse_dict(data, "source")),
            target=Checkpoint.from_dict(_parse_dict(data, "target")),
        )


@dataclass(frozen=True)
class Attestation:
    """An aggregate attestation as served by the beacon API."""

    aggregation_bits: str
    data: AttestationData
    signature: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Attestation":
        if not isinstance(data, dict):
            raise FormatError(f"Attestation must be an object, got {type(data).__name__}")
        return cls(
            aggregation_bits=_parse_str(data, "aggregation_bits"),
            data=AttestationData.from_dict(_parse_dict(data, "data")),
            signature=data.get("signature", ""),
        )


@dataclass(frozen=True)
class ValidatorSnapshot:
    """One row from /eth/v1/beacon/states/{state_id}/validators."""

    index: int
    pubkey: str
    status: str
    balance: int
    slashed: bool
    activation_eligibility_epoch: int
    activation_epoch: int
    exit_epoch: int
    withdrawable_epoch: int

    @classmethod
    def from_dict(cls, data: dict) -> "ValidatorSnapshot":
        validator = _parse_dict(data, "validator")
        return cls(
            index=_parse_int(data, "index"),
            pubkey=_parse_str(validator, "pubkey"),
            status=data.get("status", ""),
            balance=_parse_int(data, "balance") if "balance" in data else 0,
            slashed=bool(validator.get("slashed", False)),
            activation_eligibility_epoch=_parse_int(validator, "activation_eligibility_epoch"),
            activation_epoch=_parse_int(validator, "activation_epoch"),
            exit_epoch=_parse_int(validator, "exit_epoch"),
            withdrawable_epoch=_parse_int(validator, "withdrawable_epoch"),
        )

    def to_validator(self) -> "Validator":
        return Validator(
            index=self.index,
            pubkey=self.pubkey,
            activation_epoch=self.activation_epoch,
            exit_epoch=self.exit_epoch,
        )


# =============================================================================
# Indexed records
# =============================================================================


@dataclass(frozen=True)
class Committee:
    """Validators assigned to attest at (slot, index), in bit order."""

    slot: int
    index: int
    validators: tuple[int, ...]

    @classmethod
    def from_dict(cls, data: dict) -> "Committee":
        raw = data.get("validators")
        if not isinstance(raw, list):
            raise FormatError("Missing or invalid field: validators")
        try:
            validators = tuple(int(v) for v in raw)
        except (TypeError, ValueError):
            raise FormatError(f"Invalid committee validator list: {raw!r}") from None
        return cls(
            slot=_parse_int(data, "slot"),
            index=_parse_int(data, "index"),
            validators=validators,
        )

    @property
    def key(self) -> tuple[int, int]:
        return (self.slot, self.index)


@dataclass
class Epoch:
    index: int
    active_validators: int
    total_validators: int
    attestations: int = 0


@dataclass
class Validator:
    index: int
    pubkey: str
    activation_epoch: int
    exit_epoch: int = FAR_FUTURE_EPOCH
    attestations: int = 0

    @property
    def has_exited(self) -> bool:
        return self.exit_epoch != FAR_FUTURE_EPOCH


@dataclass(frozen=True)
class AttestationRecord:
    """Whether a validator attested in an epoch.

    Keyed by (epoch, validator). The attested flag is monotonic in the
    store: once true it is never written back to false.
    """

    epoch: int
    validator: int
    slot: int
    committee_index: int
    attested: bool

    @property
    def key(self) -> tuple[int, int]:
        return (self.epoch, self.validator)


@dataclass(frozen=True)
class ProposerDuty:
    slot: int
    validator_index: int


@dataclass
class IndexerStats:
    """Counters reported by the backfill and live loops."""

    epochs_processed: int = 0
    slots_processed: int = 0
    empty_slots: int = 0
    attestations_written: int = 0
    events_received: int = 0
    events_failed: int = 0
    last_epoch: Optional[int] = None
