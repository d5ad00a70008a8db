"""
Grade Watcher - Automated grade change monitoring.

This package provides functionality to:
- Fetch the academic record grade table from the university portal
- Normalize table rows into course records keyed by course code
- Compare records with the previous snapshot to detect new and updated grades
- Notify via email when changes are found
- Persist the latest snapshot for the next run
"""

__version__ = "1.0.0"
__author__ = "Grade Watcher Team"
