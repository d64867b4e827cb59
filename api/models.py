# api/models.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime

# Shared model config
common_config = ConfigDict(
    populate_by_name=True,
)

# --- API response models ---

class StatusResponse(BaseModel):
    """Status endpoint response."""
    model_config = common_config
    status: str = Field(..., description="Service state (OK, Loading, Warning, Error)")
    message: str = Field(..., description="Human readable state description")
    last_successful_update_utc: Optional[datetime] = Field(None, description="Time of the last successful publish (UTC)")
    last_attempt_utc: Optional[datetime] = Field(None, description="Time the last refresh was triggered (UTC)")
    next_check_approx_utc: Optional[datetime] = Field(None, description="Approximate time of the next staleness check (UTC)")
    update_in_progress: bool = Field(False, description="Whether a refresh is running right now")
    last_error: Optional[str] = Field(None, description="Error of the last failed refresh, if any")
    published_files: List[str] = Field(default_factory=list, description="Names of the published GTFS files")

class PublishedFile(BaseModel):
    """One file available for download."""
    model_config = common_config
    name: str = Field(..., description="File name", examples=["regional-stop-times.txt"])
    size_bytes: int = Field(..., description="File size in bytes")
    path: str = Field(..., description="URL path to download the file", examples=["/gtfs/regional-stop-times.txt"])

class FilesResponse(BaseModel):
    model_config = common_config
    archive: PublishedFile
    files: List[PublishedFile]
    published_at_utc: datetime
