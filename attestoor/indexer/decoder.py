"""Aggregation bitfield decoding."""

import re
from typing import Iterable

from ..exceptions import ConsistencyError, FormatError
from ..types import Attestation, AttestationRecord, Committee

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


def parse_bitfield(bits_hex: str) -> bytes:
    """Parse an optionally 0x-prefixed hex string into bytes."""
    if not isinstance(bits_hex, str):
        raise FormatError(f"Bitfield must be a hex string, got {type(bits_hex).__name__}")
    digits = bits_hex[2:] if bits_hex[:2] in ("0x", "0X") else bits_hex
    if len(digits) % 2 != 0:
        raise FormatError(f"Bitfield has odd length: {bits_hex!r}")
    if not _HEX_RE.fullmatch(digits):
        raise FormatError(f"Bitfield is not valid hex: {bits_hex!r}")
    return bytes.fromhex(digits)


def decode_aggregation_bits(bits_hex: str, committee: Committee) -> list[tuple[int, bool]]:
    """Map each committee member to whether its bit is set.

    Bits are read most significant first within each byte, so bit i is
    ``(data[i // 8] >> (7 - i % 8)) & 1`` and belongs to the validator at
    position i of the committee. Padding bits past the committee size are
    ignored; a committee larger than the bitfield is an error.
    """
    data = parse_bitfield(bits_hex)
    size = len(committee.validators)
    if size > len(data) * 8:
        raise ConsistencyError(
            f"Committee slot={committee.slot} index={committee.index} has {size} members "
            f"but bitfield only has {len(data) * 8} bits"
        )

    return [
        (validator, bool((data[i // 8] >> (7 - i % 8)) & 1))
        for i, validator in enumerate(committee.validators)
    ]


def build_records(attestation: Attestation, committee: Committee) -> list[AttestationRecord]:
    """Expand an aggregate attestation into one record per committee member.

    Records are credited to the attestation's target epoch, which can be
    earlier than the epoch of the block that included it.
    """
    data = attestation.data
    return [
        AttestationRecord(
            epoch=data.target.epoch,
            validator=validator,
            slot=data.slot,
            committee_index=data.index,
            attested=attested,
        )
        for validator, attested in decode_aggregation_bits(attestation.aggregation_bits, committee)
    ]


def merge_records(records: Iterable[AttestationRecord]) -> list[AttestationRecord]:
    """Collapse duplicate (epoch, validator) keys, keeping any attested record."""
    merged: dict[tuple[int, int], AttestationRecord] = {}
    for record in records:
        existing = merged.get(record.key)
        if existing is None or (record.attested and not existing.attested):
            merged[record.key] = record
    return list(merged.values())
