# core/lifespan.py
import logging
import asyncio
from contextlib import asynccontextmanager
from functools import partial
from fastapi import FastAPI

from gtfs.processor import run_pipeline
from .config import require_gtfs_url, DATA_ROOT, PUBLIC_DIR, POLL_INTERVAL_SECONDS, STALENESS_THRESHOLD_SECONDS
from .scheduler import background_update_task, run_initial_update
from .state import refresh_state

logger = logging.getLogger(__name__)


def build_pipeline_runner(gtfs_url: str):
    return partial(run_pipeline, gtfs_url, data_root=DATA_ROOT, public_dir=PUBLIC_DIR)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Lifespan: startup...")
    gtfs_url = require_gtfs_url()
    runner = build_pipeline_runner(gtfs_url)

    # Serving must not start without data, so a failure here aborts startup
    logger.info("Lifespan: running initial GTFS pipeline...")
    await run_initial_update(refresh_state, runner)
    logger.info("Lifespan: initial GTFS pipeline finished.")

    update_task = asyncio.create_task(background_update_task(
        refresh_state, runner,
        poll_interval=POLL_INTERVAL_SECONDS,
        threshold=STALENESS_THRESHOLD_SECONDS,
    ))
    refresh_state.update_task = update_task

    yield

    logger.info("Lifespan: shutdown...")
    task_to_cancel = refresh_state.update_task
    if task_to_cancel and not task_to_cancel.done():
        logger.info("Lifespan: cancelling refresh loop...")
        task_to_cancel.cancel()
        try:
            await asyncio.wait_for(task_to_cancel, timeout=5.0)
        except asyncio.CancelledError:
            logger.info("Lifespan: refresh loop cancelled.")
        except asyncio.TimeoutError:
            logger.warning("Lifespan: refresh loop did not stop in time.")
    refresh_state.update_task = None
    # In-flight pipeline threads can't be interrupted; their staging dirs get swept on next start
    for task in list(refresh_state.refresh_tasks):
        task.cancel()
    logger.info("Lifespan: done.")
