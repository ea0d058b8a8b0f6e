"""Indexing engine: backfill, live ingestion and committee resolution."""

from .backfill import BackfillIndexer
from .committees import CommitteeResolver
from .decoder import build_records, decode_aggregation_bits, merge_records, parse_bitfield
from .live import LiveIndexer

__all__ = [
    "BackfillIndexer",
    "CommitteeResolver",
    "LiveIndexer",
    "build_records",
    "decode_aggregation_bits",
    "merge_records",
    "parse_bitfield",
]
