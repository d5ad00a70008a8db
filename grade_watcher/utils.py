"""
Utility functions for the Grade Watcher pipeline.

This module provides:
- Central logging configuration
- Environment variable helpers and the watcher configuration
- Safe JSON read and atomic text write helpers
- Shared text helpers used across modules
"""

import json
import logging
import os
import re
import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple


# Defaults mirroring the Workday academic record page
DEFAULT_GRADES_URL = "https://wd10.myworkday.com/ubc/d/task/2998$30300.htmld"
DEFAULT_COOKIES_FILE = "cookies.json"
DEFAULT_SNAPSHOT_PATH = "oldData.csv"
DEFAULT_COURSE_MARKER = "_V"
DEFAULT_COMPARE_FIELDS = ("grade", "percent")

# Display fields of a grade record, in snapshot and comparison order
RECORD_FIELDS = ("grade", "percent", "credits")

DEFAULT_REQUEST_TIMEOUT = 100


@dataclass
class WatcherConfig:
    """
    Settings for one reconciliation cycle.

    Attributes:
        grades_url: Portal page holding the academic record grade table.
        cookies_file: JSON cookie export used to authenticate the session.
        snapshot_path: File holding the previous snapshot.
        course_marker: Substring a course cell must contain to be tracked.
        compare_fields: Record fields whose change is reported.
        request_timeout: HTTP timeout in seconds.
        max_retries: Retry attempts for transient HTTP failures.
        persist_on_notify_failure: Write the snapshot even if notifying fails.
        dry_run: Log notifications instead of sending them.
    """
    grades_url: str = DEFAULT_GRADES_URL
    cookies_file: str = DEFAULT_COOKIES_FILE
    snapshot_path: str = DEFAULT_SNAPSHOT_PATH
    course_marker: str = DEFAULT_COURSE_MARKER
    compare_fields: Tuple[str, ...] = DEFAULT_COMPARE_FIELDS
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    max_retries: int = 3
    persist_on_notify_failure: bool = True
    dry_run: bool = False

    def __post_init__(self):
        self.compare_fields = tuple(self.compare_fields)
        if not self.compare_fields:
            raise ValueError("compare_fields must name at least one field")
        unknown = [f for f in self.compare_fields if f not in RECORD_FIELDS]
        if unknown:
            raise ValueError(
                f"Unknown compare field(s): {', '.join(unknown)}; "
                f"expected one of {', '.join(RECORD_FIELDS)}"
            )

    @classmethod
    def from_env(cls) -> "WatcherConfig":
        """
        Build a configuration from environment variables.

        Unset variables fall back to the class defaults.

        Raises:
            ValueError: If a numeric variable does not hold an integer, or
                COMPARE_FIELDS names an unknown field.
        """
        compare_fields = get_env_var("COMPARE_FIELDS", required=False)
        if compare_fields:
            fields = tuple(f.strip().lower() for f in compare_fields.split(",") if f.strip())
        else:
            fields = DEFAULT_COMPARE_FIELDS

        return cls(
            grades_url=get_env_var("PORTAL_GRADES_URL", required=False, default=DEFAULT_GRADES_URL),
            cookies_file=get_env_var("PORTAL_COOKIES_FILE", required=False, default=DEFAULT_COOKIES_FILE),
            snapshot_path=get_env_var("SNAPSHOT_PATH", required=False, default=DEFAULT_SNAPSHOT_PATH),
            course_marker=get_env_var("COURSE_MARKER", required=False, default=DEFAULT_COURSE_MARKER),
            compare_fields=fields,
            request_timeout=_get_int_env("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            max_retries=_get_int_env("MAX_RETRIES", 3),
            persist_on_notify_failure=is_truthy(
                os.environ.get("PERSIST_ON_NOTIFY_FAILURE", "true")
            ),
            dry_run=is_truthy(os.environ.get("DRY_RUN", "")),
        )


def _get_int_env(name: str, default: int) -> int:
    value = get_env_var(name, required=False)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be a valid integer, got: {value}")


def is_truthy(value: Optional[str]) -> bool:
    """Interpret an environment flag such as "true", "1" or "yes"."""
    if not value:
        return False
    return value.strip().lower() in ("true", "1", "yes", "on")


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure and return the root logger for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to INFO.

    Returns:
        Configured logger instance.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    logger = logging.getLogger("grade_watcher")
    logger.setLevel(log_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Name for the logger, typically the module name.

    Returns:
        Logger instance configured as a child of the main application logger.
    """
    return logging.getLogger(f"grade_watcher.{name}")


def safe_read_json(filepath: str, default: Optional[Any] = None) -> Any:
    """
    Safely read JSON data from a file.

    Args:
        filepath: Path to the JSON file.
        default: Default value to return if file doesn't exist or is invalid.
                 Defaults to None.

    Returns:
        Parsed JSON data or the default value on failure.
    """
    logger = get_logger("utils")

    try:
        path = Path(filepath)
        if not path.exists():
            logger.debug(f"File does not exist: {filepath}, returning default")
            return default if default is not None else []

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
            logger.debug(f"Successfully read JSON from {filepath}")
            return data

    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in {filepath}: {e}")
        return default if default is not None else []
    except PermissionError as e:
        logger.error(f"Permission denied reading {filepath}: {e}")
        return default if default is not None else []


def safe_write_text(filepath: str, text: str) -> None:
    """
    Write text to a file using an atomic replace.

    Uses a temporary file in the target directory and a rename so that
    an interrupted write never leaves a truncated file behind.

    Args:
        filepath: Destination path.
        text: Content to write.

    Raises:
        OSError: If the directory cannot be created or the file written.
    """
    logger = get_logger("utils")

    path = Path(filepath)

    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        suffix=".tmp",
        prefix="grade_watcher_",
        dir=path.parent
    )

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)

        # Atomic rename (on POSIX) or copy+delete (on Windows)
        shutil.move(temp_path, filepath)
        logger.debug(f"Successfully wrote {len(text)} characters to {filepath}")

    except Exception:
        # Clean up temp file on failure
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def get_env_var(name: str, required: bool = True, default: Optional[str] = None) -> Optional[str]:
    """
    Get an environment variable with optional requirement enforcement.

    Args:
        name: Name of the environment variable.
        required: If True, raises ValueError when variable is not set.
                  Defaults to True.
        default: Default value if variable is not set and not required.

    Returns:
        Value of the environment variable or default.

    Raises:
        ValueError: If required=True and the variable is not set.
    """
    value = os.environ.get(name)

    if value is None or value.strip() == "":
        if required:
            raise ValueError(f"Required environment variable '{name}' is not set")
        return default

    return value.strip()


def sanitize_text(text: Optional[str]) -> str:
    """
    Clean and normalize text content.

    Collapses whitespace runs (including line breaks) to a single space
    and trims both ends.

    Args:
        text: Raw text to sanitize.

    Returns:
        Cleaned text string.
    """
    if not text:
        return ""

    cleaned = re.sub(r"\s+", " ", text)
    return cleaned.strip()
