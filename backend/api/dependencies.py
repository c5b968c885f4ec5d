"""
Dependency injection for the API service.
Provides the command surface and scheduler built at startup to route handlers.
"""
from __future__ import annotations

from api.commands import TrackingCommands
from scheduler.service import PollCycleScheduler

# Module-level singletons, initialized at startup
_commands: TrackingCommands | None = None
_scheduler: PollCycleScheduler | None = None


def init_dependencies(commands: TrackingCommands, scheduler: PollCycleScheduler | None = None) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _commands, _scheduler
    _commands = commands
    _scheduler = scheduler


def get_commands() -> TrackingCommands:
    """FastAPI dependency: returns the shared TrackingCommands."""
    if _commands is None:
        raise RuntimeError("TrackingCommands not initialized; call init_dependencies first")
    return _commands


def get_scheduler() -> PollCycleScheduler | None:
    """FastAPI dependency: the running scheduler, if any."""
    return _scheduler
