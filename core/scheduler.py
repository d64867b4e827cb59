# core/scheduler.py
import logging
import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from gtfs.processor import PublishedFeed
from .config import POLL_INTERVAL_SECONDS, STALENESS_THRESHOLD_SECONDS
from .state import RefreshState

logger = logging.getLogger(__name__)

# Blocking callable that runs the whole pipeline once
PipelineRunner = Callable[[], PublishedFeed]
Clock = Callable[[], float]


def format_ts(ts: Optional[float]) -> str:
    if ts is None:
        return "never"
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds")


def is_stale(state: RefreshState, now: float, threshold: float = STALENESS_THRESHOLD_SECONDS) -> bool:
    """True when more than `threshold` seconds passed since the last attempt."""
    if state.last_attempt is None:
        return True
    return now - state.last_attempt > threshold


def record_success(state: RefreshState, feed: PublishedFeed, now: float) -> None:
    state.published = feed
    state.last_success = now
    state.last_error = None


async def run_refresh(state: RefreshState, runner: PipelineRunner, clock: Clock = time.time) -> bool:
    """Runs the pipeline once in a worker thread. Never raises (except on cancellation)."""
    try:
        feed = await asyncio.to_thread(runner)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        # Previously published data keeps being served
        state.last_error = str(e)
        logger.error(f"Scheduled GTFS refresh failed, keeping previously published data: {e}", exc_info=True)
        return False
    else:
        record_success(state, feed, clock())
        logger.info(f"Scheduled GTFS refresh finished: {len(feed.files)} files published.")
        return True
    finally:
        state.in_progress = False


def trigger_refresh_if_stale(state: RefreshState, now: float, runner: PipelineRunner,
                             threshold: float = STALENESS_THRESHOLD_SECONDS,
                             clock: Clock = time.time) -> Optional[asyncio.Task]:
    """
    One scheduler tick. Starts a refresh in the background when the data is
    stale and returns its task without awaiting it; returns None otherwise.
    Must be called from a running event loop.
    """
    if state.in_progress:
        logger.debug("GTFS refresh still running, skipping this tick.")
        return None
    if not is_stale(state, now, threshold):
        return None

    logger.info(f"GTFS data is stale (last attempt: {format_ts(state.last_attempt)}). Starting refresh...")
    # Mark the attempt before the run finishes so the next ticks don't pile up
    state.last_attempt = now
    state.in_progress = True
    # last_error stays until a run succeeds (record_success clears it)
    task = asyncio.create_task(run_refresh(state, runner, clock))
    state.refresh_tasks.add(task)
    task.add_done_callback(state.refresh_tasks.discard)
    return task


async def run_initial_update(state: RefreshState, runner: PipelineRunner, clock: Clock = time.time) -> PublishedFeed:
    """Runs the pipeline once and waits for it. Failures propagate to the caller."""
    now = clock()
    state.last_attempt = now
    state.in_progress = True
    try:
        feed = await asyncio.to_thread(runner)
    except Exception as e:
        state.last_error = str(e)
        raise
    finally:
        state.in_progress = False
    record_success(state, feed, clock())
    return feed


async def background_update_task(state: RefreshState, runner: PipelineRunner,
                                 poll_interval: float = POLL_INTERVAL_SECONDS,
                                 threshold: float = STALENESS_THRESHOLD_SECONDS,
                                 clock: Clock = time.time):
    """Checks data staleness every `poll_interval` seconds and refreshes when needed."""
    logger.info(f"Starting GTFS refresh loop (poll every {poll_interval}s, stale after {threshold}s).")
    while True:
        try:
            # Wait for the next tick
            state.next_check = clock() + poll_interval
            await asyncio.sleep(poll_interval)
            # Fire a refresh in the background if the data is stale; the loop never waits on it
            trigger_refresh_if_stale(state, clock(), runner, threshold, clock)
        except asyncio.CancelledError:
            logger.info("GTFS refresh loop cancelled.")
            break
        except Exception:
            # Keep polling; a broken tick must not stop future refreshes
            logger.exception("Unexpected error in GTFS refresh loop.")
