# gtfs/downloader.py
import logging
from typing import Callable, Optional
import requests

from core.config import DOWNLOAD_TIMEOUT_SECONDS
from .errors import DownloadError, NotAnArchiveError

logger = logging.getLogger(__name__)

ARCHIVE_CONTENT_TYPES = frozenset({
    "application/zip",
    "application/x-zip-compressed",
    "application/x-zip",
})
CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[float], None]


def is_archive_content_type(content_type: Optional[str]) -> bool:
    """Checks the declared media type only, ignoring parameters and case."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type in ARCHIVE_CONTENT_TYPES


def parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        length = int(value)
    except (TypeError, ValueError):
        return None
    return length if length > 0 else None


def log_progress(percent: float) -> None:
    logger.info(f"Download {percent:.2f}% complete...")


def download_archive(url: str, destination: str,
                     session: Optional[requests.Session] = None,
                     timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
                     on_progress: Optional[ProgressCallback] = log_progress) -> int:
    """Streams the zip archive at `url` to `destination` and returns the bytes written.

    The response headers are checked before anything is written: a response
    that does not declare a zip content type raises NotAnArchiveError and
    leaves `destination` untouched. Progress is reported (every 10%) only
    when the server sends a Content-Length.
    """
    http = session or requests.Session()
    logger.info(f"Downloading '{url}' to '{destination}'...")
    try:
        with http.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()

            content_type = response.headers.get("content-type")
            if not is_archive_content_type(content_type):
                raise NotAnArchiveError(url, content_type)

            total_length = parse_content_length(response.headers.get("content-length"))
            if total_length is None:
                logger.info("Server did not report a content length; progress will not be shown.")

            written = 0
            next_report = 10.0
            with open(destination, "wb") as out_file:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    out_file.write(chunk)
                    written += len(chunk)
                    if total_length is None or on_progress is None:
                        continue
                    percent = min(written / total_length * 100, 100.0)
                    if percent >= next_report:
                        on_progress(percent)
                        next_report = (percent // 10 + 1) * 10
    except NotAnArchiveError:
        raise
    except requests.exceptions.RequestException as e:
        raise DownloadError(f"Failed to download '{url}': {e}", url) from e
    except OSError as e:
        raise DownloadError(f"Failed to write '{url}' to '{destination}': {e}", url) from e
    finally:
        if session is None:
            http.close()

    logger.info(f"Downloaded {written / 1024 / 1024:.2f} MB from '{url}'.")
    return written
