"""Persistent storage for indexed chain data."""

from .base import (
    AttestationRepository,
    CommitteeRepository,
    EpochRepository,
    ProposerRepository,
    Repositories,
    ValidatorRepository,
)
from .database import Database

__all__ = [
    "Database",
    "Repositories",
    "EpochRepository",
    "ValidatorRepository",
    "CommitteeRepository",
    "AttestationRepository",
    "ProposerRepository",
]
