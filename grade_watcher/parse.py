"""
Parse module for the Grade Watcher pipeline.

This module extracts the academic record grade table from the portal
HTML as raw rows of cell text, ready for normalization.
"""

from typing import List

from bs4 import BeautifulSoup

from grade_watcher.fetch import SessionExpiredError, SourceFetchError
from grade_watcher.utils import get_logger


# Module logger
logger = get_logger("parse")

GRADE_TABLE_SELECTOR = '[data-testid="table"]'
LOGIN_FORM_SELECTORS = ["#username", "#password"]


def is_login_page(soup: BeautifulSoup) -> bool:
    """
    Check whether the page is the portal's login form.

    Args:
        soup: Parsed page.

    Returns:
        True if a username or password field is present.
    """
    return any(soup.select_one(selector) is not None for selector in LOGIN_FORM_SELECTORS)


def extract_grade_rows(html: str) -> List[List[str]]:
    """
    Extract the cell texts of every body row in the grade table.

    Args:
        html: Portal page HTML.

    Returns:
        One list of trimmed cell strings per table row.

    Raises:
        SessionExpiredError: If the portal served its login form.
        SourceFetchError: If the grade table is not on the page.
    """
    soup = BeautifulSoup(html, "html.parser")

    table = soup.select_one(GRADE_TABLE_SELECTOR)
    if table is None:
        if is_login_page(soup):
            raise SessionExpiredError("Portal session expired, saved cookies need refreshing")
        raise SourceFetchError(f"Grade table not found ({GRADE_TABLE_SELECTOR})")

    rows: List[List[str]] = []
    for tr in table.select("tbody tr"):
        rows.append([td.get_text(" ", strip=True) for td in tr.find_all("td")])

    logger.info(f"Scraped {len(rows)} grade table row(s)")

    return rows
