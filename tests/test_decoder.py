"""Tests for aggregation bitfield decoding."""

import pytest

from attestoor.exceptions import ConsistencyError, FormatError
from attestoor.indexer import build_records, decode_aggregation_bits, merge_records, parse_bitfield
from attestoor.types import AttestationRecord, Committee

from helpers import make_attestation


def committee_of(size: int, slot: int = 10, index: int = 0) -> Committee:
    return Committee(slot=slot, index=index, validators=tuple(range(100, 100 + size)))


class TestParseBitfield:
    def test_accepts_prefixed_and_bare_hex(self):
        assert parse_bitfield("0x0aff") == b"\x0a\xff"
        assert parse_bitfield("0AFF") == b"\x0a\xff"
        assert parse_bitfield("0x") == b""

    @pytest.mark.parametrize("bits", ["0xabc", "0xzz", "0xa ", "0x0g", "abc\n", " ab"])
    def test_rejects_malformed_hex(self, bits):
        with pytest.raises(FormatError):
            parse_bitfield(bits)


class TestDecodeAggregationBits:
    def test_one_pair_per_member_in_committee_order(self):
        committee = committee_of(10)
        pairs = decode_aggregation_bits("0xffff", committee)
        assert [v for v, _ in pairs] == list(committee.validators)

    def test_bits_are_read_most_significant_first(self):
        # 0xa0 = 1010_0000, 0xc0 = 1100_0000
        pairs = decode_aggregation_bits("0xa0c0", committee_of(10))
        assert [attested for _, attested in pairs] == [
            True, False, True, False, False, False, False, False, True, True,
        ]

    def test_padding_bits_are_ignored(self):
        pairs = decode_aggregation_bits("0x81", committee_of(3))
        assert pairs == [(100, True), (101, False), (102, False)]

    def test_committee_larger_than_bitfield(self):
        with pytest.raises(ConsistencyError):
            decode_aggregation_bits("0xff", committee_of(9))

    def test_empty_committee(self):
        assert decode_aggregation_bits("0x", committee_of(0)) == []

    def test_malformed_bits(self):
        with pytest.raises(FormatError):
            decode_aggregation_bits("0xf", committee_of(2))


class TestBuildRecords:
    def test_records_use_target_epoch(self):
        # Attestation for slot 31 (epoch 0) included later
        committee = Committee(slot=31, index=2, validators=(7, 8))
        attestation = make_attestation(31, 2, "0x80", target_epoch=0)

        records = build_records(attestation, committee)

        assert records == [
            AttestationRecord(epoch=0, validator=7, slot=31, committee_index=2, attested=True),
            AttestationRecord(epoch=0, validator=8, slot=31, committee_index=2, attested=False),
        ]


class TestMergeRecords:
    def test_attested_wins_regardless_of_order(self):
        missed = AttestationRecord(epoch=1, validator=5, slot=33, committee_index=0, attested=False)
        hit = AttestationRecord(epoch=1, validator=5, slot=33, committee_index=0, attested=True)

        assert merge_records([missed, hit]) == [hit]
        assert merge_records([hit, missed]) == [hit]

    def test_keeps_first_occurrence_order(self):
        a = AttestationRecord(epoch=1, validator=9, slot=33, committee_index=0, attested=False)
        b = AttestationRecord(epoch=1, validator=3, slot=33, committee_index=0, attested=True)
        c = AttestationRecord(epoch=1, validator=9, slot=34, committee_index=1, attested=True)

        merged = merge_records([a, b, c])

        assert [r.validator for r in merged] == [9, 3]
        assert merged[0] == c
