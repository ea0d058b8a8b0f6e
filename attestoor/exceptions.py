"""Exceptions raised by the indexer."""


class IndexerError(Exception):
    """Base class for indexer errors."""


class NetworkError(IndexerError):
    """Beacon node unreachable or returned a non-2xx status."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"Beacon API error {status}: {message}")


class NotFoundError(IndexerError):
    """Requested slot, block, committee, epoch or validator does not exist."""


class StoreError(IndexerError):
    """Persistence failure."""


class FormatError(IndexerError):
    """Malformed hex bitfield or beacon payload."""


class ConsistencyError(IndexerError):
    """Committee bookkeeping is inconsistent.

    Raised when a committee that must exist cannot be found, or when a
    committee and an aggregation bitfield disagree in length. This always
    points to a bug in committee import and is never retried silently.
    """


class DivisionError(IndexerError):
    """A rate was requested against a zero denominator."""
