# api/endpoints/status.py
import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends

from api.models import StatusResponse
from api.deps import get_refresh_state
from core.state import RefreshState

router = APIRouter()
logger = logging.getLogger(__name__)

def to_utc(ts: Optional[float]) -> Optional[datetime]:
    if ts is None:
        return None
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OSError, OverflowError, TypeError, ValueError):
        logger.warning(f"Invalid timestamp in refresh state: {ts}")
        return None

@router.get("/status", response_model=StatusResponse, tags=["Status"])
async def get_status_endpoint(state: RefreshState = Depends(get_refresh_state)):
    """Reports whether data is published and how the background refresh is doing."""
    status = "OK"
    message = "GTFS data is published."

    if state.published is None:
        if state.in_progress:
            status = "Loading"
            message = "Initial GTFS download is in progress..."
        else:
            status = "Error"
            message = "GTFS data is not published."
            if state.last_error:
                message = f"{message} Last error: {state.last_error}"
    elif state.last_error:
        status = "Warning"
        message = f"Published data may be stale. Last refresh failed: {state.last_error}"
    elif state.in_progress:
        message = "GTFS data is published. A refresh is in progress."

    return StatusResponse(
        status=status,
        message=message,
        last_successful_update_utc=to_utc(state.last_success),
        last_attempt_utc=to_utc(state.last_attempt),
        next_check_approx_utc=to_utc(state.next_check),
        update_in_progress=state.in_progress,
        last_error=state.last_error,
        published_files=list(state.published.files) if state.published else [],
    )
