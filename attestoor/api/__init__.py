"""Participation query API."""

from .server import QueryAPI

__all__ = ["QueryAPI"]
