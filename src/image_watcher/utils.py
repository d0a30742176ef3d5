#!/usr/bin/env python3
"""
Utility Functions for the Image Watcher

This module contains utility functions for:
- Logging setup
- Wall-clock time
"""

import logging
import sys
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def setup_logging(log_level: str = "INFO"):
    """
    Configure structured logging for the service.

    Logs are written to stdout in a structured format suitable
    for systemd journald.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
        force=True,
    )

    logging.info("Logging initialized at %s level", log_level)
