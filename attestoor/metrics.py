"""Prometheus metrics for attestoor."""

import logging
import threading
from typing import Optional

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

logger = logging.getLogger(__name__)

DEFAULT_METRICS_PORT = 8008

# Backfill progress
backfill_epoch = Gauge(
    "attestoor_backfill_epoch",
    "Epoch currently being backfilled",
)

justified_epoch = Gauge(
    "attestoor_justified_epoch",
    "Current justified epoch reported by the beacon node",
)

epochs_processed = Counter(
    "attestoor_epochs_processed_total",
    "Total epochs fully backfilled",
)

slots_processed = Counter(
    "attestoor_slots_processed_total",
    "Total slots backfilled",
    ["status"],
)

epoch_processing_time = Histogram(
    "attestoor_epoch_processing_seconds",
    "Time to backfill one epoch",
    buckets=[1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)

# Attestation writes
attestation_records_written = Counter(
    "attestoor_attestation_records_written_total",
    "Attestation records submitted to the store",
    ["source"],
)

# Committee resolution
committee_lookups = Counter(
    "attestoor_committee_lookups_total",
    "Committee resolver lookups",
    ["result"],
)

# Live ingestion
live_events_received = Counter(
    "attestoor_live_events_received_total",
    "Attestation events received from the beacon node",
)

live_events_failed = Counter(
    "attestoor_live_events_failed_total",
    "Attestation events that failed to decode or process",
    ["stage"],
)

live_tasks_in_flight = Gauge(
    "attestoor_live_tasks_in_flight",
    "Live attestation tasks currently running",
)

# Beacon API client
beacon_api_requests = Counter(
    "attestoor_beacon_api_requests_total",
    "Total Beacon API requests",
    ["endpoint"],
)

beacon_api_errors = Counter(
    "attestoor_beacon_api_errors_total",
    "Total Beacon API errors",
    ["endpoint", "error_type"],
)

beacon_api_latency = Histogram(
    "attestoor_beacon_api_latency_seconds",
    "Beacon API request latency",
    ["endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


_server_started = False
_server_lock = threading.Lock()


def start_metrics_server(port: int = DEFAULT_METRICS_PORT) -> bool:
    """Start the Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default 8008)

    Returns:
        True if server started successfully, False if already running
    """
    global _server_started

    with _server_lock:
        if _server_started:
            logger.warning("Metrics server already running")
            return False

        try:
            start_http_server(port)
            _server_started = True
            logger.info(f"Prometheus metrics server started on port {port}")
            return True
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False


def update_backfill_epoch(epoch: int) -> None:
    backfill_epoch.set(epoch)


def update_justified_epoch(epoch: int) -> None:
    justified_epoch.set(epoch)


def record_epoch_processed(duration: float) -> None:
    """Record a fully backfilled epoch and how long it took."""
    epochs_processed.inc()
    epoch_processing_time.observe(duration)


def record_slot_processed(empty: bool) -> None:
    slots_processed.labels(status="empty" if empty else "block").inc()


def record_attestations_written(source: str, count: int) -> None:
    attestation_records_written.labels(source=source).inc(count)


def record_committee_lookup(result: str) -> None:
    """Record a committee lookup: 'hit', 'fetched' or 'missing'."""
    committee_lookups.labels(result=result).inc()


def record_live_event() -> None:
    live_events_received.inc()


def record_live_failure(stage: str) -> None:
    live_events_failed.labels(stage=stage).inc()


def update_live_in_flight(count: int) -> None:
    live_tasks_in_flight.set(count)


def record_beacon_api_call(endpoint: str, latency: float, error: Optional[str] = None) -> None:
    """Record a Beacon API call.

    Args:
        endpoint: Logical endpoint name (e.g., 'headers', 'committees')
        latency: Request latency in seconds
        error: Error type if the call failed, None if successful
    """
    beacon_api_requests.labels(endpoint=endpoint).inc()
    beacon_api_latency.labels(endpoint=endpoint).observe(latency)
    if error:
        beacon_api_errors.labels(endpoint=endpoint, error_type=error).inc()
