"""Beacon API client for indexing from a remote beacon node."""

import asyncio
import json
import logging
import re
import time
from typing import AsyncIterator, Optional, Sequence, Union

import aiohttp

from .. import metrics
from ..constants import NAMED_REFS
from ..exceptions import FormatError, NetworkError, NotFoundError
from ..types import (
    Attestation,
    BlockHeader,
    Committee,
    FinalityCheckpoints,
    ValidatorSnapshot,
    ValidatorStatus,
)
from .base import BeaconClient, BlockRef, StateRef

logger = logging.getLogger(__name__)

_ROOT_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def format_ref(ref: Union[BlockRef, StateRef]) -> str:
    """Serialize a block or state reference to its URL token."""
    if isinstance(ref, bool):
        raise ValueError(f"Invalid block/state reference: {ref!r}")
    if isinstance(ref, int):
        if ref < 0:
            raise ValueError(f"Slot must be non-negative: {ref}")
        return str(ref)
    if ref in NAMED_REFS or _ROOT_RE.match(ref):
        return ref
    if ref.isdigit():
        return str(int(ref))
    raise ValueError(f"Invalid block/state reference: {ref!r}")


class RemoteBeaconClient(BeaconClient):
    """Client for a remote Beacon API (any conformant client)."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._running = False
        self._reconnect_delay = 1.0
        self._max_reconnect_delay = 30.0

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def _get(
        self,
        path: str,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> dict:
        """GET a JSON document and return its "data" member.

        Raises NotFoundError on 404 and NetworkError on any other non-200
        status or connection failure.
        """
        session = await self._ensure_session()
        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url} params={params}")

        start_time = time.time()
        error_type = None
        try:
            async with session.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
            ) as response:
                if response.status == 404:
                    error_type = "not_found"
                    raise NotFoundError(f"Not found: {path}")
                if response.status != 200:
                    error_type = str(response.status)
                    text = await response.text()
                    raise NetworkError(response.status, text)
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    error_type = "format"
                    raise FormatError(f"Invalid JSON from {path}: {e}") from e
        except aiohttp.ClientError as e:
            error_type = "connection_error"
            logger.error(f"Beacon API connection error on {path}: {e}")
            raise NetworkError(0, str(e)) from e
        except asyncio.TimeoutError as e:
            error_type = "timeout"
            raise NetworkError(0, f"Timed out requesting {path}") from e
        finally:
            metrics.record_beacon_api_call(endpoint, time.time() - start_time, error_type)

        if not isinstance(body, dict) or "data" not in body:
            raise FormatError(f"Response from {path} has no data member")
        return body["data"]

    async def header_for_block(self, block_id: BlockRef) -> Optional[BlockHeader]:
        """Get a block header, None if the slot has no block."""
        try:
            data = await self._get(f"/eth/v1/beacon/headers/{format_ref(block_id)}", "headers")
        except NotFoundError:
            return None
        return BlockHeader.from_dict(data)

    async def attestations_for_block(self, block_id: BlockRef) -> Optional[list[Attestation]]:
        """Get the attestations included in a block, None for an empty slot."""
        try:
            data = await self._get(
                f"/eth/v1/beacon/blocks/{format_ref(block_id)}/attestations",
                "block_attestations",
            )
        except NotFoundError:
            return None
        if not isinstance(data, list):
            raise FormatError("Attestation response data is not a list")
        return [Attestation.from_dict(item) for item in data]

    async def committees_for_state(
        self,
        state_id: StateRef,
        epoch: Optional[int] = None,
        index: Optional[int] = None,
        slot: Optional[int] = None,
    ) -> list[Committee]:
        """Get beacon committees for a state, optionally filtered."""
        params = {}
        if epoch is not None:
            params["epoch"] = str(epoch)
        if index is not None:
            params["index"] = str(index)
        if slot is not None:
            params["slot"] = str(slot)
        data = await self._get(
            f"/eth/v1/beacon/states/{format_ref(state_id)}/committees",
            "committees",
            params=params or None,
        )
        if not isinstance(data, list):
            raise FormatError("Committee response data is not a list")
        return [Committee.from_dict(item) for item in data]

    async def validators_for_state(
        self,
        state_id: StateRef,
        ids: Sequence[Union[int, str]] = (),
        status: Optional[ValidatorStatus] = None,
    ) -> list[ValidatorSnapshot]:
        """Get validators for a state, optionally filtered by id or status."""
        params = {}
        if ids:
            params["id"] = ",".join(str(i) for i in ids)
        if status is not None:
            params["status"] = status.value
        data = await self._get(
            f"/eth/v1/beacon/states/{format_ref(state_id)}/validators",
            "validators",
            params=params or None,
        )
        if not isinstance(data, list):
            raise FormatError("Validator response data is not a list")
        return [ValidatorSnapshot.from_dict(item) for item in data]

    async def finality_checkpoints(self, state_id: StateRef) -> FinalityCheckpoints:
        """Get finality checkpoints for a state."""
        data = await self._get(
            f"/eth/v1/beacon/states/{format_ref(state_id)}/finality_checkpoints",
            "finality_checkpoints",
        )
        return FinalityCheckpoints.from_dict(data)

    async def get_version(self) -> str:
        """Get the beacon node version string."""
        data = await self._get("/eth/v1/node/version", "version")
        return data.get("version", "unknown")

    async def subscribe_attestations(self) -> AsyncIterator[Union[Attestation, FormatError]]:
        """Stream attestation events over SSE, reconnecting on failure."""
        async for event_type, payload in self._sse_events(["attestation"]):
            if event_type != "attestation":
                continue
            if payload is None:
                yield FormatError("Attestation event is not valid UTF-8")
                continue
            try:
                yield Attestation.from_dict(json.loads(payload))
            except ValueError as e:
                yield FormatError(f"Invalid attestation event JSON: {e}")
            except FormatError as e:
                yield e

    async def _sse_events(self, topics: list[str]) -> AsyncIterator[tuple[str, Optional[str]]]:
        """Yield (event_type, data) pairs with reconnection logic.

        data is None for an event with a line that is not valid UTF-8.
        """
        url = f"{self.base_url}/eth/v1/events"
        params = {"topics": ",".join(topics)}
        self._running = True

        while self._running:
            try:
                session = await self._ensure_session()
                logger.info(f"Connecting to SSE stream: {url}?topics={params['topics']}")

                async with session.get(
                    url,
                    params=params,
                    headers={"Accept": "text/event-stream"},
                    timeout=aiohttp.ClientTimeout(total=None, sock_read=None),
                ) as response:
                    if response.status != 200:
                        logger.error(f"SSE connection failed: {response.status}")
                        await self._backoff()
                        continue

                    self._reconnect_delay = 1.0
                    logger.info("SSE connection established")

                    event_type = None
                    data_lines: list[str] = []
                    undecodable = False

                    async for raw in response.content:
                        if not self._running:
                            break

                        try:
                            line = raw.decode("utf-8").rstrip("\r\n")
                        except UnicodeDecodeError as e:
                            logger.error(f"Undecodable SSE line: {e}")
                            undecodable = True
                            continue

                        if not line:
                            if event_type and undecodable:
                                yield event_type, None
                            elif event_type and data_lines:
                                yield event_type, "\n".join(data_lines)
                            event_type = None
                            data_lines = []
                            undecodable = False
                            continue

                        if line.startswith(":"):
                            continue
                        if line.startswith("event:"):
                            event_type = line[6:].strip()
                        elif line.startswith("data:"):
                            data_lines.append(line[5:].strip())

                logger.warning("SSE stream closed by server, reconnecting")

            except aiohttp.ClientError as e:
                logger.error(f"SSE connection error: {e}")
                await self._backoff()
            except Exception as e:
                logger.error(f"Unexpected SSE error: {e}")
                await self._backoff()

    async def _backoff(self) -> None:
        await asyncio.sleep(self._reconnect_delay)
        self._reconnect_delay = min(
            self._reconnect_delay * 2,
            self._max_reconnect_delay,
        )

    def stop_events(self) -> None:
        """Stop the SSE subscription after the current event."""
        self._running = False

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        self.stop_events()
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
