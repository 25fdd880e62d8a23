from __future__ import annotations

from typing import Optional


class NestedSearchError(Exception):
    """Base class for everything raised by this package."""


class ClientError(NestedSearchError):
    """Transport/connection failure or an error response from the cluster."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class QueryError(NestedSearchError):
    """Malformed query, or a query that does not fit the index mapping."""


class DeserializationError(NestedSearchError):
    """A hit's _source could not be turned into the requested result type."""

    def __init__(self, message: str, hit_id: Optional[str] = None):
        super().__init__(message)
        self.hit_id = hit_id
