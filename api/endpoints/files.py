# api/endpoints/files.py
import logging
import os
from fastapi import APIRouter, Depends, HTTPException, status

from api.models import FilesResponse, PublishedFile
from api.deps import get_published_feed
from core.config import PUBLISHED_ARCHIVE_NAME, PUBLISHED_FILES_DIR_NAME
from gtfs.processor import PublishedFeed

router = APIRouter()
logger = logging.getLogger(__name__)

def describe_file(file_path: str, url_path: str) -> PublishedFile:
    return PublishedFile(
        name=os.path.basename(file_path),
        size_bytes=os.path.getsize(file_path),
        path=url_path,
    )

@router.get("/files", response_model=FilesResponse, tags=["GTFS Data"])
async def get_files_endpoint(feed: PublishedFeed = Depends(get_published_feed)):
    """Lists the published archive and the individual files with their download paths."""
    try:
        archive = describe_file(feed.archive_path, f"/{PUBLISHED_ARCHIVE_NAME}")
        files = [
            describe_file(os.path.join(feed.files_dir, name), f"/{PUBLISHED_FILES_DIR_NAME}/{name}")
            for name in feed.files
        ]
    except OSError as e:
        logger.error(f"Failed to read published GTFS files: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Published GTFS files could not be read."
        )
    return FilesResponse(archive=archive, files=files, published_at_utc=feed.published_at)
