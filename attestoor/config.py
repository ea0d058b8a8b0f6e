"""Configuration for the attestoor indexer."""

from dataclasses import dataclass
from typing import Optional

from .constants import BATCH_SIZE


@dataclass
class Config:
    """Indexer configuration."""

    beacon_url: str = "http://localhost:5052"
    db_path: str = "./data/attestoor.db"
    from_epoch: Optional[int] = None
    max_epoch: Optional[int] = None
    resume: bool = False
    live: bool = True
    max_in_flight: int = 64
    poll_interval: float = 12.0
    request_timeout: float = 30.0
    batch_size: int = BATCH_SIZE
    metrics_port: int = 8008
    api_host: str = "127.0.0.1"
    api_port: int = 8080
    log_level: str = "INFO"

    @property
    def bounded(self) -> bool:
        """Whether backfill stops at max_epoch instead of following the chain."""
        return self.max_epoch is not None
