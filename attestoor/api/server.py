"""Read-only HTTP API for participation rates."""

import logging
from typing import Optional

from aiohttp import web

from ..exceptions import DivisionError, NotFoundError
from ..service import ParticipationService

logger = logging.getLogger(__name__)


# Largest value an SQLite INTEGER column holds
MAX_INDEX = 2**63 - 1


def _parse_index(raw: str) -> Optional[int]:
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if 0 <= value <= MAX_INDEX else None


class QueryAPI:
    """Participation rate API server."""

    def __init__(self, service: ParticipationService, host: str = "127.0.0.1", port: int = 8080):
        self.service = service
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self):
        self.app.router.add_get("/health", self.get_health)
        self.app.router.add_get("/participation/epoch/{epoch}", self.get_epoch_participation)
        self.app.router.add_get("/participation/validator/{index}", self.get_validator_participation)

    async def start(self):
        """Start the API server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info(f"Query API listening on {self.host}:{self.port}")

    async def stop(self):
        """Stop the API server."""
        if self.runner:
            await self.runner.cleanup()

    async def get_health(self, request: web.Request) -> web.Response:
        """GET /health"""
        return web.Response(status=200)

    async def get_epoch_participation(self, request: web.Request) -> web.Response:
        """GET /participation/epoch/{epoch}"""
        epoch = _parse_index(request.match_info["epoch"])
        if epoch is None:
            return web.json_response({"message": "Invalid epoch"}, status=400)

        try:
            rate = await self.service.participation_rate_for_epoch(epoch)
        except NotFoundError as e:
            return web.json_response({"message": str(e)}, status=404)
        except DivisionError as e:
            return web.json_response({"message": str(e)}, status=422)

        return web.json_response({
            "data": {
                "epoch": str(epoch),
                "participation_rate": rate,
            }
        })

    async def get_validator_participation(self, request: web.Request) -> web.Response:
        """GET /participation/validator/{index}"""
        index = _parse_index(request.match_info["index"])
        if index is None:
            return web.json_response({"message": "Invalid validator index"}, status=400)

        try:
            rate = await self.service.participation_rate_for_validator(index)
        except NotFoundError as e:
            return web.json_response({"message": str(e)}, status=404)
        except DivisionError as e:
            return web.json_response({"message": str(e)}, status=422)

        return web.json_response({
            "data": {
                "validator": str(index),
                "participation_rate": rate,
            }
        })
