"""attestoor - beacon chain attestation indexer."""

__version__ = "0.1.0"
