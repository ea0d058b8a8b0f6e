"""Beacon node access for the indexer."""

from .base import BeaconClient, BlockRef, StateRef
from .client import RemoteBeaconClient, format_ref

__all__ = [
    "BeaconClient",
    "BlockRef",
    "StateRef",
    "RemoteBeaconClient",
    "format_ref",
]
