"""
Fetch module for the Grade Watcher pipeline.

This module downloads the portal's academic record page using a session
authenticated with exported browser cookies, with retries and exponential
backoff for transient failures.

Any failure to obtain the page raises SourceFetchError, which aborts the
current cycle before anything is compared or written.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from grade_watcher.utils import get_logger, safe_read_json


# Module logger
logger = get_logger("fetch")

# Default configuration
DEFAULT_TIMEOUT = 100  # seconds
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 1.0  # exponential backoff multiplier
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class SourceFetchError(Exception):
    """Raised when the grade page cannot be fetched or read."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(SourceFetchError):
    """Raised when the portal answers with its login form."""


def create_session(
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
) -> requests.Session:
    """
    Create a requests session with retry configuration.

    Configures automatic retries with exponential backoff for
    transient failures (5xx errors, connection errors).

    Args:
        max_retries: Maximum number of retry attempts.
        backoff_factor: Multiplier for exponential backoff between retries.
                       Sleep time = backoff_factor * (2 ** retry_number)

    Returns:
        Configured requests.Session instance.
    """
    session = requests.Session()

    # Configure retry strategy
    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET", "HEAD"],
        raise_on_status=False
    )

    # Mount adapter for both HTTP and HTTPS
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    # Set default headers
    session.headers.update({
        "User-Agent": DEFAULT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Connection": "keep-alive",
    })

    return session


def validate_url(url: str) -> bool:
    """
    Validate that a URL is well-formed and uses HTTP/HTTPS.

    Args:
        url: URL string to validate.

    Returns:
        True if URL is valid, False otherwise.
    """
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def load_cookies(session: requests.Session, cookies_file: str) -> int:
    """
    Load exported browser cookies into the session.

    The file holds a JSON list of objects with at least ``name`` and
    ``value``; ``domain`` and ``path`` are used when present.

    Args:
        session: Session to receive the cookies.
        cookies_file: Path to the JSON cookie export.

    Returns:
        Number of cookies loaded.
    """
    cookies: List[Dict[str, Any]] = safe_read_json(cookies_file, default=[])

    if not isinstance(cookies, list):
        logger.warning(f"Unexpected cookie format in {cookies_file}, ignoring")
        return 0

    loaded = 0
    for cookie in cookies:
        if not isinstance(cookie, dict) or "name" not in cookie or "value" not in cookie:
            continue
        session.cookies.set(
            cookie["name"],
            cookie["value"],
            domain=cookie.get("domain", ""),
            path=cookie.get("path", "/"),
        )
        loaded += 1

    if loaded:
        logger.info(f"Loaded {loaded} saved cookie(s) from {cookies_file}")
    else:
        logger.warning(f"No cookies found in {cookies_file}, the portal may ask to log in")

    return loaded


def fetch_grade_page(
    url: str,
    session: requests.Session,
    timeout: int = DEFAULT_TIMEOUT
) -> str:
    """
    Fetch the grade page and return its HTML.

    Args:
        url: Grade page URL.
        session: Configured requests session.
        timeout: Request timeout in seconds.

    Returns:
        HTML content of the page.

    Raises:
        SourceFetchError: If the URL is invalid or the request fails.
    """
    if not validate_url(url):
        raise SourceFetchError(f"Invalid URL format: {url}")

    logger.debug(f"Fetching URL: {url}")

    try:
        response = session.get(url, timeout=timeout)

    except requests.exceptions.Timeout:
        raise SourceFetchError(f"Request timeout fetching {url}")

    except requests.exceptions.ConnectionError as e:
        raise SourceFetchError(f"Connection error for {url}: {e}")

    except requests.exceptions.RequestException as e:
        raise SourceFetchError(f"Request failed for {url}: {e}")

    if response.status_code != 200:
        raise SourceFetchError(
            f"HTTP {response.status_code} for {url}",
            status_code=response.status_code
        )

    logger.info(f"Successfully fetched {url} ({len(response.text)} bytes)")
    return response.text


def fetch_portal_html(
    url: str,
    cookies_file: str,
    timeout: int = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_MAX_RETRIES
) -> str:
    """
    Open a cookie-authenticated session and fetch the grade page.

    Args:
        url: Grade page URL.
        cookies_file: Path to the JSON cookie export.
        timeout: Request timeout in seconds.
        max_retries: Retry attempts for transient failures.

    Returns:
        HTML content of the page.

    Raises:
        SourceFetchError: If the page cannot be fetched.
    """
    session = create_session(max_retries=max_retries)

    try:
        load_cookies(session, cookies_file)
        return fetch_grade_page(url, session, timeout)
    finally:
        session.close()
