"""
Normalize module for the Grade Watcher pipeline.

This module turns raw grade table rows (lists of cell strings) into
GradeRecord objects keyed by course, and provides the RecordSet mapping
used by the snapshot codec and the change detector.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from grade_watcher.utils import DEFAULT_COURSE_MARKER, RECORD_FIELDS, get_logger, sanitize_text


# Module logger
logger = get_logger("normalize")

# Column positions in the portal's grade grid
COURSE_COLUMN = 1
GRADE_COLUMN = 2
PERCENT_COLUMN = 3
CREDITS_COLUMN = 4


@dataclass(frozen=True)
class GradeRecord:
    """
    One course row of the grade table.

    Attributes:
        course: Course identifier, the identity key across snapshots.
        grade: Letter grade or result, possibly empty.
        percent: Percentage grade, possibly empty.
        credits: Credit value, possibly empty.
    """
    course: str
    grade: str = ""
    percent: str = ""
    credits: str = ""

    @property
    def key(self) -> str:
        return self.course

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(getattr(self, name) for name in RECORD_FIELDS)

    def values_for(self, names: Sequence[str]) -> Tuple[str, ...]:
        """Return the values of the named fields, in the order given."""
        return tuple(getattr(self, name) for name in names)


class RecordSet:
    """
    Ordered mapping of course key to GradeRecord.

    Construction is last-wins: a record whose key was already seen
    replaces the earlier value but keeps the earlier position.
    """

    def __init__(self, records: Optional[Iterable[GradeRecord]] = None):
        self._by_key: Dict[str, GradeRecord] = {}
        for record in records or ():
            self._by_key[record.key] = record

    def __len__(self) -> int:
        return len(self._by_key)

    def __iter__(self) -> Iterator[GradeRecord]:
        return iter(self._by_key.values())

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecordSet):
            return NotImplemented
        return list(self._by_key.items()) == list(other._by_key.items())

    def __repr__(self) -> str:
        return f"RecordSet({list(self._by_key.values())!r})"

    def get(self, key: str) -> Optional[GradeRecord]:
        return self._by_key.get(key)

    def keys(self) -> List[str]:
        return list(self._by_key)

    def records(self) -> List[GradeRecord]:
        return list(self._by_key.values())


def _cell(row: Sequence[str], index: int) -> str:
    if index < len(row):
        return sanitize_text(row[index])
    return ""


def normalize_row(row: Sequence[str]) -> GradeRecord:
    """
    Build a GradeRecord from one raw table row.

    Missing cells become empty strings.

    Args:
        row: Cell texts in grid order.

    Returns:
        GradeRecord for the row.
    """
    return GradeRecord(
        course=_cell(row, COURSE_COLUMN),
        grade=_cell(row, GRADE_COLUMN),
        percent=_cell(row, PERCENT_COLUMN),
        credits=_cell(row, CREDITS_COLUMN),
    )


def normalize_rows(
    raw_rows: Iterable[Sequence[str]],
    marker: str = DEFAULT_COURSE_MARKER
) -> RecordSet:
    """
    Convert scraped table rows into a deduplicated RecordSet.

    Only rows whose course cell contains the marker are kept; headers,
    term subtotals and other grid rows are dropped. When the grid repeats
    a course (stale rows at another position) the later row wins.

    Args:
        raw_rows: Rows of cell strings as scraped.
        marker: Substring identifying a tracked course cell.

    Returns:
        RecordSet of the tracked courses, possibly empty.
    """
    kept: List[GradeRecord] = []
    skipped = 0

    for row in raw_rows:
        if marker not in _cell(row, COURSE_COLUMN):
            skipped += 1
            continue
        kept.append(normalize_row(row))

    records = RecordSet(kept)

    if len(records) < len(kept):
        logger.debug(f"Dropped {len(kept) - len(records)} duplicate course row(s)")
    logger.info(f"{len(records)} relevant course(s) found ({skipped} row(s) ignored)")

    return records
