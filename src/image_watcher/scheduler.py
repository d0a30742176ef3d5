#!/usr/bin/env python3
"""
Main Capture Loop for the Image Watcher

Runs one capture -> composite -> save cycle per capture interval and,
on their own cadences, the retention cleanup and the session renewal.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .capture import ImageAcquirer
from .cleaner import RetentionCleaner
from .compositor import GridCompositor, available_slots
from .errors import TooManySaveFailures
from .metrics import MetricsCollector
from .session import SessionRenewer
from .storage import StorageBackend, frame_name
from .utils import utc_now

MIN_SLEEP_SEC = 1.0


class IntervalTimer:
    """Elapsed-time trigger with a private 'last fired' mark."""

    def __init__(self, interval_sec: float, clock: Callable[[], float] = time.monotonic):
        self.interval_sec = interval_sec
        self._clock = clock
        self.last_fired = clock()

    def due(self) -> bool:
        return self._clock() - self.last_fired >= self.interval_sec

    def reset(self):
        self.last_fired = self._clock()


@dataclass
class RunContext:
    """Everything one scheduler needs; replaces process-wide state."""
    config: object
    acquirer: ImageAcquirer
    compositor: GridCompositor
    backend: StorageBackend
    cleaner: RetentionCleaner
    renewer: SessionRenewer
    metrics: MetricsCollector
    clock: Callable[[], float] = time.monotonic
    wall_clock: Callable[[], datetime] = utc_now


class Scheduler:
    """
    Main loop orchestrating all components.

    The loop has a single running state; it only ends when stop() is called
    from a signal handler or a fatal error propagates.
    """

    def __init__(self, context: RunContext):
        self.context = context
        config = context.config
        self.cleanup_timer = IntervalTimer(config.cleanup_interval_min * 60, context.clock)
        self.renewal_timer = IntervalTimer(config.session_renewal_min * 60, context.clock)
        self._stop_event = threading.Event()

    @property
    def running(self) -> bool:
        return not self._stop_event.is_set()

    def now(self) -> datetime:
        """Current wall-clock time in the configured timezone."""
        return self.context.wall_clock().astimezone(self.context.config.tzinfo)

    def run_cycle(self) -> bool:
        """
        Acquire, composite and save one frame.

        Returns:
            True if the frame was persisted

        Raises:
            TooManySaveFailures: If the consecutive failure limit is exceeded
        """
        ctx = self.context
        ctx.metrics.increment_cycles()
        timestamp = self.now()
        name = frame_name(timestamp)

        logging.info("Retrieving images")
        frames = ctx.acquirer.acquire(ctx.config.camera_urls)
        logging.debug("Assembling %d of %d images",
                      len(available_slots(frames)), len(frames))

        try:
            composite = ctx.compositor.compose(frames, timestamp)
            logging.debug("Saving %s with quality of %d", name, ctx.config.output_quality)
            saved = ctx.backend.save(composite, name)
        except Exception as e:
            logging.error("Error producing frame %s: %s", name, e, exc_info=True)
            saved = False

        failures = ctx.metrics.record_save(saved)
        if not saved:
            logging.error("Frame %s was dropped", name)
            limit = ctx.config.max_consecutive_save_failures
            if limit and failures >= limit:
                raise TooManySaveFailures(f"{failures} consecutive save failures")
        return saved

    def run_iteration(self) -> float:
        """
        Run one loop iteration.

        Returns:
            Seconds to sleep before the next iteration
        """
        ctx = self.context
        start_time = ctx.clock()

        self.run_cycle()

        if self.cleanup_timer.due():
            logging.debug("Removing old files from %s", ctx.backend.location)
            self.cleanup_timer.reset()
            ctx.cleaner.run()

        if ctx.renewer.active and self.renewal_timer.due():
            logging.info("Re-requesting library decryption")
            self.renewal_timer.reset()
            ctx.renewer.renew()

        execution_time = ctx.clock() - start_time
        logging.debug("Completed regular cycle in %.2f secs", execution_time)

        return max(MIN_SLEEP_SEC, ctx.config.capture_interval_sec - execution_time)

    def run_forever(self):
        """Loop until stop() is called; fatal errors propagate to the caller."""
        config = self.context.config
        logging.info("Starting capture loop...")
        logging.info("Capture interval: %s seconds, %d cameras, storage %s",
                     config.capture_interval_sec, len(config.camera_urls),
                     self.context.backend.location)

        while self.running:
            sleep_time = self.run_iteration()
            logging.debug("Sleeping for %.2f secs", sleep_time)
            self._stop_event.wait(timeout=sleep_time)

        logging.info("Capture loop stopped")

    def stop(self):
        """Stop the loop after the current iteration."""
        logging.info("Stopping capture loop...")
        self._stop_event.set()
