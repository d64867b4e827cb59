# api/deps.py
from fastapi import HTTPException, status

from core.state import RefreshState, refresh_state
from gtfs.processor import PublishedFeed

def get_refresh_state() -> RefreshState:
    """FastAPI dependency returning the process-wide refresh state."""
    return refresh_state

def get_published_feed() -> PublishedFeed:
    """
    FastAPI dependency returning the currently published feed.
    Raises HTTPException 503 if nothing has been published yet.
    """
    feed = refresh_state.published
    if feed is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="GTFS data has not been published yet."
        )
    return feed
