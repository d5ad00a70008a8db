#!/usr/bin/env python3
"""
Main orchestration module for the Grade Watcher pipeline.

This module wires the default collaborators together:
fetch → parse → normalize → compare → notify → persist

It handles environment validation, logging setup, and reports any
failure by email before exiting non-zero.
"""

import os
import sys
from typing import List

from dotenv import load_dotenv

from grade_watcher.fetch import fetch_portal_html
from grade_watcher.notify import (
    check_email_connection,
    get_missing_email_vars,
    send_email,
    send_error_notification,
)
from grade_watcher.parse import extract_grade_rows
from grade_watcher.reconcile import ReconciliationDriver
from grade_watcher.snapshot import load_snapshot_text, save_snapshot_text
from grade_watcher.utils import WatcherConfig, get_logger, is_truthy, setup_logging


# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_ENV_ERROR = 2


def validate_environment() -> bool:
    """
    Validate that required environment variables are set.

    Email credentials are required because notifications are the only
    output of a run.

    Returns:
        True if all required variables are set, False otherwise.
    """
    logger = get_logger("main")

    missing_vars = get_missing_email_vars()

    if missing_vars:
        logger.error(f"Missing required environment variables: {', '.join(missing_vars)}")
        return False

    logger.debug("Environment validation passed")
    return True


def build_driver(config: WatcherConfig) -> ReconciliationDriver:
    """
    Create a driver using the portal, snapshot file and email channel.

    Args:
        config: Watcher configuration.

    Returns:
        ReconciliationDriver ready to run.
    """
    def scrape() -> List[List[str]]:
        html = fetch_portal_html(
            config.grades_url,
            config.cookies_file,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
        )
        return extract_grade_rows(html)

    def notify(subject: str, body: str) -> None:
        send_email(subject, body, dry_run=config.dry_run)

    return ReconciliationDriver(
        config,
        scrape_fn=scrape,
        load_snapshot_fn=lambda: load_snapshot_text(config.snapshot_path),
        save_snapshot_fn=lambda text: save_snapshot_text(config.snapshot_path, text),
        notify_fn=notify,
    )


def run_pipeline(config: WatcherConfig) -> int:
    """
    Execute one grade check.

    Pipeline stages:
    1. Validate environment
    2. Fetch and parse the grade table
    3. Load the previous snapshot
    4. Compare and notify
    5. Persist the new snapshot

    Stages 2 to 5 run inside the reconciliation driver.

    Args:
        config: Watcher configuration.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    logger = get_logger("main")

    logger.info("=" * 60)
    logger.info("Grade Watcher Pipeline - Starting")
    logger.info("=" * 60)

    logger.info("[Stage 1/5] Validating environment...")
    if not validate_environment():
        logger.error("Environment validation failed")
        return EXIT_ENV_ERROR

    if not config.dry_run:
        logger.info("Verifying email connection...")
        if not check_email_connection():
            logger.warning("Email connection check failed, notifications may fail")

    logger.info("[Stage 2-5/5] Running reconciliation cycle...")
    outcome = build_driver(config).run_cycle()

    logger.info("=" * 60)
    logger.info("Grade Watcher Pipeline - Complete")
    logger.info(f"Summary: {outcome.record_count} course(s), {len(outcome.events)} change(s)")
    logger.info("=" * 60)

    return EXIT_SUCCESS


def main() -> int:
    """
    Main entry point for the Grade Watcher pipeline.

    Sets up logging and runs the pipeline; any failure is reported by
    email and turned into a non-zero exit code.

    Returns:
        Exit code for the process.
    """
    load_dotenv()

    # Determine log level from environment
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()

    setup_logging(log_level)
    logger = get_logger("main")

    dry_run = is_truthy(os.environ.get("DRY_RUN", ""))

    if dry_run:
        logger.info("Running in DRY RUN mode - notifications will be skipped")

    try:
        config = WatcherConfig.from_env()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_ENV_ERROR

    try:
        return run_pipeline(config)

    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        return EXIT_FAILURE

    except Exception as e:
        logger.exception(f"Execution failed: {e}")
        send_error_notification(e, dry_run=dry_run)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
