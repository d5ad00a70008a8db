"""
Reconciliation driver for the Grade Watcher pipeline.

One cycle runs: scrape → load snapshot → diff → notify → persist.

The driver only talks to its collaborators through plain callables, so
the portal, the snapshot store and the email channel can be swapped
(or faked in tests) without touching the cycle logic.

Cycles are not guarded against running concurrently; the scheduler that
invokes the process must not overlap runs.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from grade_watcher.compare import ChangeEvent, detect_changes, get_comparison_summary
from grade_watcher.normalize import RecordSet, normalize_rows
from grade_watcher.notify import NOTIFICATION_SUBJECT, format_changes_body
from grade_watcher.snapshot import decode_snapshot, encode_snapshot
from grade_watcher.utils import WatcherConfig, get_logger


# Module logger
logger = get_logger("reconcile")

ScrapeFn = Callable[[], Sequence[Sequence[str]]]
LoadSnapshotFn = Callable[[], Optional[str]]
SaveSnapshotFn = Callable[[str], None]
NotifyFn = Callable[[str, str], None]


@dataclass
class CycleOutcome:
    """
    Result of one reconciliation cycle.

    Attributes:
        events: Change events in table order.
        record_count: Number of records in the current scrape.
        notified: Whether a notification was delivered.
        snapshot_saved: Whether the snapshot was written.
        summary: Comparison counts from get_comparison_summary.
    """
    events: List[ChangeEvent] = field(default_factory=list)
    record_count: int = 0
    notified: bool = False
    snapshot_saved: bool = False
    summary: Dict[str, int] = field(default_factory=dict)


class ReconciliationDriver:
    """Runs scrape/diff/notify/persist cycles against injected collaborators."""

    def __init__(
        self,
        config: WatcherConfig,
        scrape_fn: ScrapeFn,
        load_snapshot_fn: LoadSnapshotFn,
        save_snapshot_fn: SaveSnapshotFn,
        notify_fn: NotifyFn,
    ):
        self.config = config
        self.scrape_fn = scrape_fn
        self.load_snapshot_fn = load_snapshot_fn
        self.save_snapshot_fn = save_snapshot_fn
        self.notify_fn = notify_fn

    def load_previous(self) -> RecordSet:
        """Load the previous snapshot, empty on first run."""
        text = self.load_snapshot_fn()
        if text is None or not text.strip():
            return RecordSet()
        return decode_snapshot(text)

    def run_cycle(self) -> CycleOutcome:
        """
        Execute one reconciliation cycle.

        A scrape, load or diff failure propagates before anything is
        written. A notification failure still persists the snapshot when
        ``persist_on_notify_failure`` is set, then re-raises.

        Returns:
            CycleOutcome describing what happened.
        """
        outcome = CycleOutcome()

        # Scrape
        raw_rows = self.scrape_fn()
        current = normalize_rows(raw_rows, marker=self.config.course_marker)
        outcome.record_count = len(current)

        # Load
        previous = self.load_previous()
        logger.info(f"Loaded {len(previous)} previous record(s)")

        # Diff
        outcome.events = detect_changes(previous, current, self.config.compare_fields)
        outcome.summary = get_comparison_summary(previous, current, self.config.compare_fields)
        logger.info(
            f"Comparison complete: "
            f"{outcome.summary['current_count']} current, "
            f"{outcome.summary['previous_count']} previous, "
            f"{outcome.summary['new_count']} new, "
            f"{outcome.summary['updated_count']} updated"
        )

        # Notify
        notify_error: Optional[Exception] = None
        if outcome.events:
            body = format_changes_body(outcome.events)
            try:
                self.notify_fn(NOTIFICATION_SUBJECT, body)
                outcome.notified = True
                logger.info("Change notification sent")
            except Exception as e:
                if not self.config.persist_on_notify_failure:
                    raise
                logger.error(f"Notification failed, persisting snapshot before re-raising: {e}")
                notify_error = e
        else:
            logger.info("No changes detected")

        # Persist
        try:
            self.save_snapshot_fn(encode_snapshot(current))
        except Exception as e:
            if notify_error is None:
                raise
            raise e from notify_error
        outcome.snapshot_saved = True

        if notify_error is not None:
            raise notify_error

        return outcome


def run_cycle(
    scrape_fn: ScrapeFn,
    load_snapshot_fn: LoadSnapshotFn,
    save_snapshot_fn: SaveSnapshotFn,
    notify_fn: NotifyFn,
    config: Optional[WatcherConfig] = None,
) -> CycleOutcome:
    """
    Run a single cycle with the given collaborators.

    Args:
        scrape_fn: Returns the raw grade table rows.
        load_snapshot_fn: Returns the stored snapshot text, or None.
        save_snapshot_fn: Stores the encoded snapshot text.
        notify_fn: Delivers (subject, body).
        config: Cycle settings; defaults to WatcherConfig().

    Returns:
        CycleOutcome of the cycle.
    """
    driver = ReconciliationDriver(
        config or WatcherConfig(),
        scrape_fn,
        load_snapshot_fn,
        save_snapshot_fn,
        notify_fn,
    )
    return driver.run_cycle()
