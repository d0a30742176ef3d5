#!/usr/bin/env python3
"""
Retention Cleanup for the Image Watcher

Removes persisted frames older than the retention age. A sweep is best
effort: a file that cannot be removed is reported and skipped, and only a
failed enumeration aborts the pass.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from .storage import StorageBackend


class RetentionCleaner:
    """Applies the retention policy to the items of one storage backend."""

    def __init__(self, backend: StorageBackend, retention: timedelta, metrics):
        """
        Initialize the cleaner.

        Args:
            backend: Storage backend to enumerate and prune
            retention: Maximum age of a stored item
            metrics: MetricsCollector instance for removal counters
        """
        self.backend = backend
        self.retention = retention
        self.metrics = metrics

    def is_expired(self, mtime: datetime, now: datetime) -> bool:
        return now - mtime > self.retention

    def run(self, now: Optional[datetime] = None) -> int:
        """
        Run one cleanup pass.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            Number of items removed
        """
        now = now or datetime.now(timezone.utc)
        logging.debug("Removing items older than %s from %s", self.retention, self.backend.location)

        items = self.backend.list_items()
        if items is None:
            logging.error("Could not remove old files: enumeration of %s failed",
                          self.backend.location)
            self.metrics.increment_cleanup_failures()
            return 0

        removed = 0
        for item in items:
            if not item.is_file:
                continue

            logging.debug("Checking item %s - age %s", item.name, now - item.mtime)
            if not self.is_expired(item.mtime, now):
                continue

            if self.backend.remove(item.name):
                logging.info("Removed: %s", item.name)
                removed += 1
                self.metrics.increment_removed()
            else:
                logging.warning("Could not remove: %s", item.name)
                self.metrics.increment_remove_failures()

        logging.info("Cleanup of %s removed %d of %d items", self.backend.location, removed, len(items))
        return removed
