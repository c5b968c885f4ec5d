"""Domain enumerations for Riftwatch."""
from __future__ import annotations

from enum import Enum


class CycleState(str, Enum):
    """Poll cycle guard. A tick is only accepted while IDLE."""
    IDLE = "idle"
    RUNNING = "running"


class CycleOutcome(str, Enum):
    COMPLETED = "completed"
    SKIPPED_OFFLINE = "skipped_offline"
    SAVE_FAILED = "save_failed"


class EntityCheckResult(str, Enum):
    UNCHANGED = "unchanged"
    NOTIFIED = "notified"
    SUPPRESSED = "suppressed"
    DISPATCH_FAILED = "dispatch_failed"
    EVICTED = "evicted"
    FAILED = "failed"


class DispatchOutcome(str, Enum):
    OK = "ok"
    FAILED = "failed"


class MatchResult(str, Enum):
    WON = "Won"
    LOST = "Lost"


class TrackResult(str, Enum):
    TRACKING = "tracking"
    ALREADY_TRACKED = "already_tracked"
    NOT_FOUND = "not_found"
    INVALID_ID = "invalid_id"


class UntrackResult(str, Enum):
    UNTRACKED = "untracked"
    NOT_TRACKED = "not_tracked"


class DestinationResult(str, Enum):
    SET = "set"
    INVALID_DESTINATION = "invalid_destination"
