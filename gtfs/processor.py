# gtfs/processor.py
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import requests

from core.config import (
    DATA_ROOT, PUBLIC_DIR, STAGING_PREFIX, DOWNLOAD_TIMEOUT_SECONDS,
    OUTER_ARCHIVE_NAME, INNER_ARCHIVE_NAME, OUTPUT_DIR_NAME,
    PUBLISHED_ARCHIVE_NAME, PUBLISHED_FILES_DIR_NAME, PUBLISHED_RELEASE_PREFIX
)
from .downloader import download_archive
from .errors import GtfsRelayError, PipelineError, PipelineStage, StagingError
from .staging import (
    prepare_empty_staging_area, sweep_stale_staging_areas, generate_staging_name,
    create_directory, delete_recursive, copy_file, extract_archive,
    create_archive_from_directory, publish_file_atomically, backup_file,
    restore_file, switch_symlink
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mode:
    """One transit sub-feed inside the outer archive."""
    ordinal: int  # Name of the folder holding this mode's inner archive
    name: str


MODES: Tuple[Mode, ...] = (
    Mode(1, "regional"),
    Mode(2, "suburban"),
)

FILES_OF_INTEREST: Tuple[str, ...] = (
    "calendar.txt",
    "calendar_dates.txt",
    "routes.txt",
    "stops.txt",
    "stop_times.txt",
    "trips.txt",
)


@dataclass(frozen=True)
class PublishedFeed:
    archive_path: str
    files_dir: str
    files: Tuple[str, ...]
    published_at: datetime
    duration_seconds: float


def output_file_name(mode: Mode, file_name: str) -> str:
    """e.g. (regional, stop_times.txt) -> regional-stop-times.txt"""
    return f"{mode.name}-{file_name.replace('_', '-')}"


def expected_output_files(modes=MODES, files_of_interest=FILES_OF_INTEREST) -> List[str]:
    return [output_file_name(mode, file_name) for mode in modes for file_name in files_of_interest]


def inner_archive_path(staging_path: str, mode: Mode) -> str:
    return os.path.join(staging_path, str(mode.ordinal), INNER_ARCHIVE_NAME)


def extract_mode_archive(staging_path: str, mode: Mode) -> str:
    """Extracts a mode's inner archive into `<staging>/<mode name>` and returns that folder."""
    mode_zip_path = inner_archive_path(staging_path, mode)
    mode_folder_path = os.path.join(staging_path, mode.name)
    create_directory(mode_folder_path)
    logger.info(f"Extracting '{mode_zip_path}' to '{mode_folder_path}'...")
    extract_archive(mode_zip_path, mode_folder_path)
    return mode_folder_path


def collect_mode_files(mode_folder_path: str, output_path: str, mode: Mode,
                       files_of_interest=FILES_OF_INTEREST) -> List[str]:
    """Copies the files of interest into `output_path` under their renamed names."""
    collected = []
    for file_name in files_of_interest:
        source = os.path.join(mode_folder_path, file_name)
        destination = os.path.join(output_path, output_file_name(mode, file_name))
        logger.debug(f"Copying '{source}' to '{destination}'...")
        copy_file(source, destination)
        collected.append(os.path.basename(destination))
    logger.info(f"Collected {len(collected)} files for mode '{mode.name}'.")
    return collected


def publish_output(output_path: str, archive_path: str, public_dir: str,
                   file_names: List[str]) -> Tuple[str, str]:
    """
    Publishes the archive and the flat files as one release.

    The flat files are copied into a new hidden release directory inside
    `public_dir`. The archive is replaced next, and only then is the served
    `gtfs` link switched to the release. If the archive or the link can't be
    replaced, the previous archive is put back and the previously served
    files stay in place.
    """
    create_directory(public_dir)
    files_dir = os.path.join(public_dir, PUBLISHED_FILES_DIR_NAME)
    public_archive = os.path.join(public_dir, PUBLISHED_ARCHIVE_NAME)
    release_name = generate_staging_name(PUBLISHED_RELEASE_PREFIX)
    release_dir = os.path.join(public_dir, release_name)

    try:
        create_directory(release_dir)
        for name in file_names:
            copy_file(os.path.join(output_path, name), os.path.join(release_dir, name))

        archive_backup = backup_file(public_archive)
        try:
            publish_file_atomically(archive_path, public_archive)
            switch_symlink(files_dir, release_name)
        except GtfsRelayError:
            restore_previous_archive(public_archive, archive_backup)
            raise
        finally:
            if archive_backup is not None:
                discard_path(archive_backup)
    except GtfsRelayError:
        discard_path(release_dir)
        raise

    logger.info(f"Published {len(file_names)} files to '{release_dir}' and '{public_archive}'.")
    sweep_stale_staging_areas(public_dir, PUBLISHED_RELEASE_PREFIX, exclude=[release_dir])
    return public_archive, files_dir


def restore_previous_archive(public_archive: str, archive_backup: Optional[str]) -> None:
    """Puts the archive from before the failed publish back (or removes it if there was none)."""
    try:
        if archive_backup is None:
            delete_recursive(public_archive, max_retries=0)
        else:
            restore_file(archive_backup, public_archive)
        logger.warning(f"Rolled back '{public_archive}' after a failed publish.")
    except GtfsRelayError as e:
        logger.error(f"Failed to roll back '{public_archive}': {e}")


def discard_path(path: str) -> None:
    try:
        delete_recursive(path, max_retries=0)
    except StagingError as e:
        logger.warning(f"Failed to remove '{path}': {e}")


def run_pipeline(source_url: str,
                 data_root: str = DATA_ROOT,
                 public_dir: str = PUBLIC_DIR,
                 session: Optional[requests.Session] = None,
                 timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
                 modes=MODES,
                 files_of_interest=FILES_OF_INTEREST,
                 staging_prefix: str = STAGING_PREFIX) -> PublishedFeed:
    """
    Downloads the outer GTFS archive, pulls the files of interest out of every
    mode's inner archive, repackages them and publishes the result.

    Blocking; the scheduler runs it in a worker thread. The staging directory
    is always removed afterwards, and any failure is raised as PipelineError.
    """
    logger.info(f"Starting GTFS pipeline for '{source_url}'...")
    start_time = time.monotonic()
    stage = PipelineStage.STAGED
    staging_path: Optional[str] = None

    try:
        # 1. Fresh staging directory (old ones from crashed runs are swept first)
        staging_path = prepare_empty_staging_area(True, root=data_root, prefix=staging_prefix)

        # 2. Download the outer archive
        stage = PipelineStage.OUTER_DOWNLOADED
        outer_zip_path = os.path.join(staging_path, OUTER_ARCHIVE_NAME)
        download_archive(source_url, outer_zip_path, session=session, timeout=timeout)

        # 3. Unpack it; every mode sits in its own numbered folder
        stage = PipelineStage.OUTER_EXTRACTED
        logger.info(f"Extracting '{outer_zip_path}' to '{staging_path}'...")
        extract_archive(outer_zip_path, staging_path)
        output_path = os.path.join(staging_path, OUTPUT_DIR_NAME)
        create_directory(output_path)

        # 4. Per mode: extract the inner archive, then copy and rename the files of interest
        collected: List[str] = []
        for mode in modes:
            stage = PipelineStage.PER_MODE_EXTRACTED
            mode_folder_path = extract_mode_archive(staging_path, mode)
            stage = PipelineStage.FILES_COLLECTED
            collected.extend(collect_mode_files(mode_folder_path, output_path, mode, files_of_interest))

        # 5. Repackage the renamed files
        stage = PipelineStage.PACKAGED
        # Separate name so the downloaded outer archive is not overwritten
        packaged_path = os.path.join(staging_path, f"packaged-{PUBLISHED_ARCHIVE_NAME}")
        logger.info(f"Zipping '{output_path}' to '{packaged_path}'...")
        create_archive_from_directory(output_path, packaged_path)

        # 6. Publish archive and flat files
        stage = PipelineStage.PUBLISHED
        public_archive, files_dir = publish_output(output_path, packaged_path, public_dir, collected)
    except GtfsRelayError as e:
        logger.error(f"GTFS pipeline failed at stage '{stage.value}': {e}")
        raise PipelineError(stage, e) from e
    except OSError as e:
        logger.error(f"GTFS pipeline failed at stage '{stage.value}' with an I/O error: {e}")
        raise PipelineError(stage, e) from e
    finally:
        # 7. Always drop the staging directory
        if staging_path is not None:
            cleanup_staging_area(staging_path)

    elapsed_time = time.monotonic() - start_time
    logger.info(f"GTFS pipeline finished in {elapsed_time:.2f}s. Published '{public_archive}' with {len(collected)} files.")
    return PublishedFeed(
        archive_path=public_archive,
        files_dir=files_dir,
        files=tuple(collected),
        published_at=datetime.now(timezone.utc),
        duration_seconds=elapsed_time,
    )


def cleanup_staging_area(staging_path: str) -> None:
    """Best-effort delete; failures are logged and left for the next run's sweep."""
    try:
        delete_recursive(staging_path)
        logger.debug(f"Removed staging directory '{staging_path}'.")
    except StagingError as e:
        logger.warning(f"Failed to remove staging directory '{staging_path}': {e}")
