# gtfs/staging.py
"""Filesystem helpers for one pipeline run.

Every run works inside its own staging directory (``<root>/.data-<token>``).
Directories left behind by crashed runs are swept before a new one is made.
"""
import logging
import os
import shutil
import time
import uuid
import warnings
import zipfile
from typing import Iterable, List, Optional

from core.config import (
    DATA_ROOT, STAGING_PREFIX, DELETE_MAX_RETRIES, DELETE_RETRY_DELAY_SECONDS
)
from .errors import StagingError, CopyError, ExtractError, PackageError, PublishError

logger = logging.getLogger(__name__)


def generate_staging_name(prefix: str = STAGING_PREFIX) -> str:
    return f"{prefix}{uuid.uuid4().hex}"


def find_staging_areas(root: str = DATA_ROOT, prefix: str = STAGING_PREFIX) -> List[str]:
    """Lists staging directories (by prefix) directly under `root`."""
    found = []
    with os.scandir(root) as entries:
        for entry in entries:
            if entry.name.startswith(prefix) and entry.is_dir(follow_symlinks=False):
                found.append(entry.path)
    return sorted(found)


def sweep_stale_staging_areas(root: str = DATA_ROOT, prefix: str = STAGING_PREFIX,
                              exclude: Iterable[str] = ()) -> int:
    """Deletes leftover staging directories. Failures are logged, never raised."""
    try:
        stale = find_staging_areas(root, prefix)
    except OSError as e:
        logger.warning(f"Failed to list '{root}' for old staging directories: {e}")
        return 0

    keep = {os.path.basename(path) for path in exclude}
    removed = 0
    for path in stale:
        if os.path.basename(path) in keep:
            continue
        try:
            delete_recursive(path)
            removed += 1
        except StagingError as e:
            logger.warning(f"Failed to clean up old staging directory '{path}': {e}")
    if removed:
        logger.info(f"Removed {removed} old staging director{'y' if removed == 1 else 'ies'} from '{root}'.")
    return removed


def prepare_empty_staging_area(cleanup_old: bool = True, root: str = DATA_ROOT,
                               prefix: str = STAGING_PREFIX) -> str:
    """Creates a fresh, uniquely named staging directory and returns its path."""
    if cleanup_old:
        sweep_stale_staging_areas(root, prefix)

    path = os.path.join(root, generate_staging_name(prefix))
    try:
        os.makedirs(path)
    except OSError as e:
        raise StagingError(f"Couldn't create staging directory '{path}': {e}", path) from e
    logger.debug(f"Created staging directory '{path}'.")
    return path


def create_directory(path: str) -> None:
    """Creates `path` (and parents) unless it already exists."""
    if os.path.isdir(path):
        return
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise StagingError(f"Couldn't create folder '{path}': {e}", path) from e


def delete_recursive(path: str, max_retries: int = DELETE_MAX_RETRIES,
                     retry_delay: float = DELETE_RETRY_DELAY_SECONDS) -> None:
    """Deletes a file or directory tree if it exists, retrying transient failures."""
    attempt = 0
    while True:
        if not os.path.lexists(path):
            return
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
            return
        except FileNotFoundError:
            return  # Someone else removed it between the check and the delete
        except OSError as e:
            attempt += 1
            if attempt > max_retries:
                raise StagingError(f"Couldn't delete '{path}' after {attempt} attempts: {e}", path) from e
            logger.debug(f"Delete of '{path}' failed (attempt {attempt}), retrying in {retry_delay}s: {e}")
            time.sleep(retry_delay)


def copy_file(source: str, destination: str) -> None:
    """Copies file contents. The destination's parent directory must already exist."""
    try:
        shutil.copyfile(source, destination)
    except OSError as e:
        raise CopyError(source, destination) from e


def extract_archive(archive_path: str, destination: str) -> None:
    """Extracts a zip archive into `destination`."""
    try:
        with zipfile.ZipFile(archive_path) as zip_ref:
            # Only zipfile's own warnings (duplicate names etc.) are silenced;
            # warnings raised elsewhere in the process still go through
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", module=r"zipfile(\..*)?$")
                zip_ref.extractall(destination)
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ExtractError(archive_path, f"Corrupt archive: {e}") from e
    except (OSError, RuntimeError, EOFError) as e:
        # RuntimeError: encrypted entries; EOFError: truncated data
        raise ExtractError(archive_path, str(e)) from e


def create_archive_from_directory(directory: str, archive_path: str) -> List[str]:
    """Zips the regular files directly inside `directory` into `archive_path`.

    Subdirectories are skipped. An existing file at `archive_path` is
    overwritten. Entries are written in sorted order and the names written
    are returned.
    """
    try:
        with os.scandir(directory) as entries:
            names = sorted(entry.name for entry in entries if entry.is_file())
    except OSError as e:
        raise PackageError(f"Failed to list '{directory}': {e}") from e

    try:
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zip_out:
            for name in names:
                zip_out.write(os.path.join(directory, name), arcname=name)
    except (OSError, zipfile.LargeZipFile) as e:
        raise PackageError(f"Failed to create zip '{archive_path}': {e}") from e
    return names


def publish_file_atomically(source: str, target: str) -> None:
    """Replaces `target` with a copy of `source` in one atomic rename.

    The copy is written to a hidden temporary file next to `target` first, so
    readers of `target` see either the old file or the complete new one.
    """
    target_dir = os.path.dirname(target) or "."
    create_directory(target_dir)
    temp_path = os.path.join(target_dir, f".{os.path.basename(target)}.{uuid.uuid4().hex}.tmp")
    try:
        shutil.copyfile(source, temp_path)
        os.replace(temp_path, target)
    except OSError as e:
        try:
            delete_recursive(temp_path, max_retries=0)
        except StagingError as cleanup_error:
            logger.warning(f"Failed to remove temporary file '{temp_path}': {cleanup_error}")
        raise PublishError(f"Failed to publish '{source}' to '{target}': {e}", target) from e


def backup_file(path: str) -> Optional[str]:
    """Copies an existing file to a hidden sibling and returns the copy's path (None if absent)."""
    if not os.path.isfile(path):
        return None
    backup_path = os.path.join(os.path.dirname(path) or ".",
                               f".{os.path.basename(path)}.{uuid.uuid4().hex}.bak")
    try:
        shutil.copyfile(path, backup_path)
    except OSError as e:
        raise PublishError(f"Failed to back up '{path}': {e}", path) from e
    return backup_path


def restore_file(backup_path: str, target: str) -> None:
    try:
        os.replace(backup_path, target)
    except OSError as e:
        raise PublishError(f"Failed to restore '{target}' from '{backup_path}': {e}", target) from e


def switch_symlink(link_path: str, target_name: str) -> None:
    """Points the symlink `link_path` at `target_name` (a sibling) in one atomic rename."""
    link_dir = os.path.dirname(link_path) or "."
    if os.path.isdir(link_path) and not os.path.islink(link_path):
        # Plain directory from an older layout; it can't be replaced by a rename
        delete_recursive(link_path)
    temp_link = os.path.join(link_dir, f".{os.path.basename(link_path)}.{uuid.uuid4().hex}.lnk")
    try:
        os.symlink(target_name, temp_link, target_is_directory=True)
        os.replace(temp_link, link_path)
    except OSError as e:
        try:
            delete_recursive(temp_link, max_retries=0)
        except StagingError as cleanup_error:
            logger.warning(f"Failed to remove temporary link '{temp_link}': {cleanup_error}")
        raise PublishError(f"Failed to point '{link_path}' at '{target_name}': {e}", link_path) from e
