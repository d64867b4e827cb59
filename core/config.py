# core/config.py
import os
import logging
from typing import List
from dotenv import load_dotenv

from gtfs.errors import ConfigurationError

# Merge variables from a .env file into os.environ before reading anything
load_dotenv()

logger = logging.getLogger(__name__)

def get_env_variable(var_name: str, default_value: str | None = None) -> str | None:
    value = os.getenv(var_name, default_value)
    if value is None:
        logger.debug(f"Environment variable '{var_name}' is not set.")
    return value

def get_int_env_variable(var_name: str, default_value: int, minimum: int | None = None) -> int:
    """Reads an integer setting, falling back to the default on bad input."""
    raw_value = get_env_variable(var_name, str(default_value))
    try:
        value = int(raw_value)  # type: ignore[arg-type]
    except (ValueError, TypeError):
        logger.warning(f"Invalid value for {var_name}: {raw_value!r}. Using default: {default_value}")
        return default_value
    if minimum is not None and value < minimum:
        logger.warning(f"{var_name} ({value}) is below {minimum}. Using {minimum}.")
        return minimum
    return value

# --- Source feed ---
# Required; checked by require_gtfs_url() at startup
GTFS_URL: str | None = get_env_variable("GTFS_URL")

def require_gtfs_url(url: str | None = None) -> str:
    """Returns the configured source URL or raises if it is missing."""
    value = url if url is not None else GTFS_URL
    if value is None or not value.strip():
        raise ConfigurationError("GTFS_URL is not set. Set it in the environment or a .env file.")
    return value.strip()

# --- Refresh scheduling ---
STALENESS_THRESHOLD_SECONDS: int = get_int_env_variable("STALENESS_THRESHOLD_SECONDS", 24 * 60 * 60, minimum=60)
POLL_INTERVAL_SECONDS: int = get_int_env_variable("POLL_INTERVAL_SECONDS", 10 * 60, minimum=10)
DOWNLOAD_TIMEOUT_SECONDS: int = get_int_env_variable("DOWNLOAD_TIMEOUT_SECONDS", 60, minimum=1)

# --- Filesystem layout ---
DATA_ROOT: str = get_env_variable("DATA_ROOT", ".")  # type: ignore
PUBLIC_DIR: str = get_env_variable("PUBLIC_DIR", os.path.join(".out", "public"))  # type: ignore
STAGING_PREFIX: str = ".data-"

OUTER_ARCHIVE_NAME: str = "gtfs.zip"
INNER_ARCHIVE_NAME: str = "google_transit.zip"
OUTPUT_DIR_NAME: str = "out"
PUBLISHED_ARCHIVE_NAME: str = "gtfs.zip"
PUBLISHED_FILES_DIR_NAME: str = "gtfs"
# Hidden per-run directories the served `gtfs` link points at
PUBLISHED_RELEASE_PREFIX: str = ".gtfs-"

# Retries for recursive deletes (file handles on some filesystems linger briefly)
DELETE_MAX_RETRIES: int = 5
DELETE_RETRY_DELAY_SECONDS: float = 0.2

# --- HTTP server ---
default_cors = "*"
cors_origins_str = get_env_variable("CORS_ORIGINS", default_cors)
CORS_ORIGINS: List[str] = [origin.strip() for origin in cors_origins_str.split(',') if origin.strip()]  # type: ignore

APP_PORT: int = get_int_env_variable("APP_PORT", 3003, minimum=1)
APP_HOST: str = get_env_variable("APP_HOST", "0.0.0.0")  # type: ignore
LOG_LEVEL: str = (get_env_variable("LOG_LEVEL", "INFO") or "INFO").upper()
