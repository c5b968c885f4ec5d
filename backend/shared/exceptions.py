"""Exception hierarchy shared by the Riftwatch services."""
from __future__ import annotations

from typing import Optional


class RiftwatchError(Exception):
    """Base exception for all Riftwatch errors."""


class UpstreamError(RiftwatchError):
    """Non-retryable failure reported by the Riot API (4xx, 500, bad payload)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)


class UpstreamNotFoundError(UpstreamError):
    """The requested resource does not exist upstream. Never retried."""


class UpstreamTransientError(UpstreamError):
    """Service-unavailable class failure that outlived the retry budget."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        path: str = "",
        attempts: int = 0,
    ) -> None:
        self.attempts = attempts
        super().__init__(message, status_code=status_code, path=path)


class ConnectivityError(RiftwatchError):
    """The network or the upstream host is unreachable."""


class MatchDataError(RiftwatchError):
    """A match record is inconsistent with what the tracker expects."""


class StoreReadError(RiftwatchError):
    """Persisted tracking state could not be read or parsed."""


class StoreWriteError(RiftwatchError):
    """Tracking state could not be persisted."""
