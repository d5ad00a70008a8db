"""
Compare module for the Grade Watcher pipeline.

This module compares the current grade records with the previous
snapshot and produces change events for new courses and updated grades.

Only additions and updates are reported. A course missing from the
current scrape produces no event.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from grade_watcher.normalize import GradeRecord, RecordSet
from grade_watcher.utils import DEFAULT_COMPARE_FIELDS, get_logger


# Module logger
logger = get_logger("compare")

COMPARISON_FIELDS = DEFAULT_COMPARE_FIELDS


@dataclass(frozen=True)
class NewRecord:
    """A course present in the current scrape but not in the snapshot."""
    record: GradeRecord


@dataclass(frozen=True)
class FieldChanged:
    """
    A course whose comparison fields differ from the snapshot.

    Attributes:
        key: Course identifier.
        old_fields: Previous values of the comparison fields.
        new_fields: Current values of the comparison fields.
        previous: Full previous record, if known.
        current: Full current record, if known.
        field_names: Names of the compared fields, aligned with the values.
    """
    key: str
    old_fields: Tuple[str, ...]
    new_fields: Tuple[str, ...]
    previous: Optional[GradeRecord] = field(default=None, compare=False, repr=False)
    current: Optional[GradeRecord] = field(default=None, compare=False, repr=False)
    field_names: Tuple[str, ...] = field(default=DEFAULT_COMPARE_FIELDS, compare=False)


ChangeEvent = Union[NewRecord, FieldChanged]


def detect_changes(
    previous: RecordSet,
    current: RecordSet,
    compare_fields: Sequence[str] = COMPARISON_FIELDS
) -> List[ChangeEvent]:
    """
    Find new and updated courses.

    Events follow the order of ``current`` so that notifications list
    courses as the grade table does.

    Args:
        previous: Records from the last snapshot.
        current: Records from the current scrape.
        compare_fields: Fields whose change counts as an update.

    Returns:
        List of NewRecord and FieldChanged events.
    """
    changes: List[ChangeEvent] = []

    for record in current:
        old = previous.get(record.key)

        if old is None:
            changes.append(NewRecord(record))
            continue

        old_values = old.values_for(compare_fields)
        new_values = record.values_for(compare_fields)

        if old_values != new_values:
            changes.append(FieldChanged(
                key=record.key,
                old_fields=old_values,
                new_fields=new_values,
                previous=old,
                current=record,
                field_names=tuple(compare_fields),
            ))

    logger.info(f"{len(changes)} change(s) detected")

    return changes


def get_comparison_summary(
    previous: RecordSet,
    current: RecordSet,
    compare_fields: Sequence[str] = COMPARISON_FIELDS
) -> Dict[str, int]:
    """
    Get a summary of the comparison between current and previous records.

    Args:
        previous: Records from the last snapshot.
        current: Records from the current scrape.
        compare_fields: Fields whose change counts as an update.

    Returns:
        Dictionary with comparison statistics.
    """
    new_count = 0
    updated_count = 0

    for record in current:
        old = previous.get(record.key)
        if old is None:
            new_count += 1
        elif old.values_for(compare_fields) != record.values_for(compare_fields):
            updated_count += 1

    removed_count = sum(1 for key in previous.keys() if key not in current)

    return {
        "current_count": len(current),
        "previous_count": len(previous),
        "new_count": new_count,
        "updated_count": updated_count,
        "unchanged_count": len(current) - new_count - updated_count,
        "removed_count": removed_count,
    }
