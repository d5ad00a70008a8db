"""
Snapshot module for the Grade Watcher pipeline.

This module encodes a RecordSet into the quoted CSV text kept between
runs, decodes that text back, and reads and writes the snapshot file.

Decoding is lenient: a line that cannot be tokenized is skipped so that
a partially damaged snapshot still yields the rest of its history.
"""

import re
from pathlib import Path
from typing import List, Optional

from grade_watcher.normalize import GradeRecord, RecordSet
from grade_watcher.utils import get_logger, safe_write_text


# Module logger
logger = get_logger("snapshot")

SNAPSHOT_HEADER = ("Course", "Grade", "Percent", "Credits")
DELIMITER = ","

# One field: a quoted token with doubled inner quotes, or a bare token
_FIELD_RE = re.compile(r'\s*(?:"((?:[^"]|"")*)"|([^",]*))\s*')


class SnapshotWriteError(Exception):
    """Raised when the snapshot file cannot be written."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def encode_snapshot(records: RecordSet) -> str:
    """
    Serialize a RecordSet to snapshot text.

    Args:
        records: Records to serialize.

    Returns:
        Header line followed by one quoted line per record.
    """
    lines = [DELIMITER.join(SNAPSHOT_HEADER)]

    for record in records:
        values = (record.course,) + record.fields
        lines.append(DELIMITER.join(_quote(v) for v in values))

    return "\n".join(lines)


def tokenize_line(line: str) -> Optional[List[str]]:
    """
    Split one snapshot line into field values.

    Args:
        line: A single line without its line terminator.

    Returns:
        List of un-escaped values, or None if the line is malformed.
    """
    values: List[str] = []
    pos = 0

    while True:
        match = _FIELD_RE.match(line, pos)
        if match is None:
            return None

        quoted, bare = match.group(1), match.group(2)
        if quoted is not None:
            values.append(quoted.replace('""', '"'))
        else:
            values.append(bare.strip())

        pos = match.end()
        if pos == len(line):
            return values
        if line[pos] != DELIMITER:
            # Text after a closing quote, or a stray quote in a bare token
            return None
        pos += 1


def decode_snapshot(text: str) -> RecordSet:
    """
    Parse snapshot text back into a RecordSet.

    Blank lines are ignored, the first remaining line is treated as the
    header, and malformed lines are skipped.

    Args:
        text: Snapshot file content.

    Returns:
        RecordSet of the decoded records.
    """
    lines = [line.rstrip("\r") for line in text.split("\n")]
    lines = [line for line in lines if line.strip()]

    records: List[GradeRecord] = []
    skipped = 0

    for line in lines[1:]:
        values = tokenize_line(line)
        if not values or not values[0]:
            logger.debug(f"Skipping malformed snapshot line: {line!r}")
            skipped += 1
            continue

        values += [""] * (len(SNAPSHOT_HEADER) - len(values))
        course, grade, percent, credits = values[:len(SNAPSHOT_HEADER)]
        records.append(GradeRecord(course, grade, percent, credits))

    if skipped:
        logger.warning(f"Skipped {skipped} malformed snapshot line(s)")

    return RecordSet(records)


def load_snapshot_text(filepath: str) -> Optional[str]:
    """
    Read the snapshot file.

    Args:
        filepath: Path to the snapshot file.

    Returns:
        File content, or None if no snapshot exists yet.
    """
    path = Path(filepath)

    if not path.exists():
        logger.info(f"No previous snapshot at {filepath}, treating as first run")
        return None

    text = path.read_text(encoding="utf-8")
    logger.debug(f"Loaded snapshot from {filepath} ({len(text)} characters)")
    return text


def save_snapshot_text(filepath: str, text: str) -> None:
    """
    Replace the snapshot file with new content.

    Args:
        filepath: Path to the snapshot file.
        text: Encoded snapshot.

    Raises:
        SnapshotWriteError: If the file cannot be written.
    """
    try:
        safe_write_text(filepath, text)
    except OSError as e:
        raise SnapshotWriteError(f"Failed to write snapshot to {filepath}: {e}", e)

    logger.info(f"{filepath} updated")
