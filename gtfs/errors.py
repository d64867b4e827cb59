# gtfs/errors.py
"""Exception hierarchy for the GTFS relay pipeline.

Each stage of the pipeline raises its own error type so the scheduler can log
precise context, while `PipelineError` wraps them into one failure carrying
the stage that was being reached.
"""
from enum import Enum
from typing import Optional


class PipelineStage(str, Enum):
    """States of a single pipeline run, in order."""
    START = "start"
    STAGED = "staged"
    OUTER_DOWNLOADED = "outer_downloaded"
    OUTER_EXTRACTED = "outer_extracted"
    PER_MODE_EXTRACTED = "per_mode_extracted"
    FILES_COLLECTED = "files_collected"
    PACKAGED = "packaged"
    PUBLISHED = "published"
    CLEANED_UP = "cleaned_up"


class GtfsRelayError(RuntimeError):
    """Base error for everything raised by this service."""


class ConfigurationError(GtfsRelayError):
    """Required configuration is missing or invalid."""


class StagingError(GtfsRelayError):
    """A working directory could not be created or deleted."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class DownloadError(GtfsRelayError):
    """Transport failure, bad status or write failure while downloading."""

    def __init__(self, message: str, url: str):
        super().__init__(message)
        self.url = url


class NotAnArchiveError(DownloadError):
    """The server did not declare an archive content type."""

    def __init__(self, url: str, content_type: Optional[str]):
        super().__init__(f"File at '{url}' is not a zip archive (content-type: {content_type!r}).", url)
        self.content_type = content_type


class ExtractError(GtfsRelayError):
    def __init__(self, archive_path: str, reason: str = ""):
        message = f"Failed to extract zip archive '{archive_path}'."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)
        self.archive_path = archive_path


class CopyError(GtfsRelayError):
    def __init__(self, source: str, destination: str):
        super().__init__(f"Failed to copy '{source}' to '{destination}'.")
        self.source = source
        self.destination = destination


class PackageError(GtfsRelayError):
    """The output directory could not be listed or zipped."""


class PublishError(GtfsRelayError):
    def __init__(self, message: str, target: str):
        super().__init__(message)
        self.target = target


class PipelineError(GtfsRelayError):
    """A pipeline run failed; `stage` is the state it was trying to reach."""

    def __init__(self, stage: PipelineStage, cause: BaseException):
        super().__init__(f"GTFS pipeline failed at stage '{stage.value}': {cause}")
        self.stage = stage
        self.cause = cause
