# core/state.py
import asyncio
from dataclasses import dataclass, field
from typing import Optional, Set

from gtfs.processor import PublishedFeed


@dataclass
class RefreshState:
    """Refresh bookkeeping shared by the scheduler and the status endpoint.

    Timestamps are UNIX seconds (time.time()).
    """
    last_attempt: Optional[float] = None  # Set when a run is triggered, before it finishes
    last_success: Optional[float] = None
    last_error: Optional[str] = None
    in_progress: bool = False
    next_check: Optional[float] = None
    published: Optional[PublishedFeed] = None
    update_task: Optional[asyncio.Task] = None  # The polling loop
    refresh_tasks: Set[asyncio.Task] = field(default_factory=set)  # Strong refs to in-flight runs


# Process-wide instance used by the app
refresh_state = RefreshState()
