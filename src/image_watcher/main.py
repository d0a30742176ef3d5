#!/usr/bin/env python3
"""
Image Watcher - Main Entry Point

Unattended daemon that:
- Pulls snapshots from up to nine HTTP cameras on a fixed interval
- Assembles them into one timestamped composite frame
- Stores the frame in a local directory or a Seafile library
- Removes frames older than the retention age
- Keeps an encrypted Seafile library unlocked
"""

import argparse
import logging
import signal
import sys
from typing import Optional, Sequence

import yaml

from . import __version__
from .capture import ImageAcquirer
from .cleaner import RetentionCleaner
from .compositor import GridCompositor
from .config import Config, LOG_LEVELS
from .errors import AuthenticationDenied, ImageWatcherError, StorageConnectionError
from .metrics import MetricsCollector, start_metrics_server
from .scheduler import RunContext, Scheduler
from .seafile import SeafileClient
from .session import SessionRenewer
from .storage import create_backend
from .utils import setup_logging

scheduler: Optional[Scheduler] = None


def signal_handler(signum, frame):
    """Stop the loop after the current iteration on SIGINT/SIGTERM."""
    logging.info("Received signal %d, initiating graceful shutdown...", signum)
    if scheduler is not None:
        scheduler.stop()


def build_context(config: Config, metrics: MetricsCollector) -> RunContext:
    """
    Initialize the storage backend and every collaborator of the loop.

    For an encrypted remote library the initial decrypt happens here, so a
    refused secret stops the process before any frame is captured.

    Raises:
        StorageConnectionError: If the remote library is unreachable
        AuthenticationDenied: If the remote library refuses the secret
        OSError: If the local storage directory cannot be created
    """
    client = None
    if config.storage_mode == "remote":
        logging.info("Initializing Seafile client")
        client = SeafileClient(
            config.seafile_url,
            config.seafile_api_token,
            config.seafile_library_id,
            timeout=config.request_timeout_sec,
        )

    backend = create_backend(config, client)
    renewer = SessionRenewer(backend, config.session_secret, metrics)

    if client is not None:
        logging.debug("Getting Seafile target library by ID: %s", config.seafile_library_id)
        library = client.get_library()

        if renewer.active:
            renewer.renew()
            if not renewer.authenticated:
                raise StorageConnectionError("Initial library decryption did not complete")

        logging.info("Successfully retrieved Seafile target library: %s",
                     library.get('name', config.seafile_library_id))

    return RunContext(
        config=config,
        acquirer=ImageAcquirer(config, metrics),
        compositor=GridCompositor(config),
        backend=backend,
        cleaner=RetentionCleaner(backend, config.retention, metrics),
        renewer=renewer,
        metrics=metrics,
    )


def parse_arguments(argv: Optional[Sequence[str]] = None):
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description='Image Watcher: camera snapshot compositor',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Configure entirely from CAM_* environment variables
        image-watcher

        # Run with a YAML config file
        image-watcher --config /etc/image-watcher/config.yaml

        # Run with debug logging
        image-watcher --log-level DEBUG
        """
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to YAML configuration file (CAM_* variables override it)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=list(LOG_LEVELS),
        help='Logging level (default: from configuration, INFO)'
    )

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None):
    """
    Main entry point for the image watcher.

    Workflow:
    1. Parse arguments
    2. Load configuration
    3. Setup logging
    4. Initialize storage (and unlock a remote library)
    5. Start metrics server
    6. Run the capture loop until stopped
    """
    global scheduler

    args = parse_arguments(argv)
    setup_logging(args.log_level or "INFO")

    try:
        config = Config.load(args.config)
    except FileNotFoundError:
        logging.error("Configuration file not found: %s", args.config)
        sys.exit(1)
    except yaml.YAMLError as e:
        logging.error("Failed to parse configuration file: %s", e)
        sys.exit(1)
    except ImageWatcherError as e:
        logging.error("Invalid configuration: %s", e)
        sys.exit(1)

    if args.log_level is None and config.log_level != "INFO":
        setup_logging(config.log_level)

    logging.info("=" * 70)
    logging.info("Image Watcher v%s", __version__)
    logging.info("=" * 70)

    metrics = MetricsCollector()

    try:
        context = build_context(config, metrics)
    except AuthenticationDenied as e:
        logging.error("Exiting: %s", e)
        sys.exit(1)
    except (ImageWatcherError, OSError) as e:
        logging.error("Error initializing storage. Please check your configuration. "
                      "Error message received: %s", e)
        sys.exit(1)

    start_metrics_server(config, metrics)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler = Scheduler(context)
    try:
        scheduler.run_forever()
    except ImageWatcherError as e:
        logging.error("Fatal error, exiting: %s", e)
        sys.exit(1)
    except Exception as e:
        logging.error("Fatal error in capture loop: %s", e, exc_info=True)
        sys.exit(1)

    logging.info("Shutdown complete")


if __name__ == '__main__':
    main()
