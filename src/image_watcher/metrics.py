#!/usr/bin/env python3
"""
Metrics Collection and HTTP Server for the Image Watcher

This module implements metrics collection and HTTP endpoints for monitoring:
- Service health and uptime
- Capture cycle and save statistics
- Retention cleanup results
- Remote session state
"""

import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, Optional

from flask import Flask, jsonify


class MetricsCollector:
    """
    Thread-safe metrics collector for monitoring service health and statistics.

    Tracks:
    - Cycles run, frames saved, save failures
    - Source fetch failures
    - Items removed by retention cleanup
    - Session renewals
    - Service uptime
    """

    def __init__(self):
        """Initialize metrics with zero values."""
        self._lock = threading.Lock()
        self.start_time = time.time()

        # Counters
        self.cycles_total = 0
        self.frames_saved_total = 0
        self.save_failures_total = 0
        self.source_failures_total = 0
        self.items_removed_total = 0
        self.remove_failures_total = 0
        self.cleanup_failures_total = 0
        self.session_renewals_total = 0
        self.session_renewal_failures_total = 0

        # State
        self.consecutive_save_failures = 0
        self.last_cycle_time: Optional[str] = None
        self.last_successful_save: Optional[str] = None
        self.session_authenticated: Optional[bool] = None

    def increment_cycles(self):
        """Increment capture cycles counter."""
        with self._lock:
            self.cycles_total += 1
            self.last_cycle_time = datetime.now().isoformat()

    def record_save(self, success: bool) -> int:
        """
        Record the outcome of a save.

        Returns:
            Number of consecutive save failures after this one
        """
        with self._lock:
            if success:
                self.frames_saved_total += 1
                self.consecutive_save_failures = 0
                self.last_successful_save = datetime.now().isoformat()
            else:
                self.save_failures_total += 1
                self.consecutive_save_failures += 1
            return self.consecutive_save_failures

    def increment_source_failures(self):
        """Increment source fetch failures counter."""
        with self._lock:
            self.source_failures_total += 1

    def increment_removed(self):
        """Increment removed items counter."""
        with self._lock:
            self.items_removed_total += 1

    def increment_remove_failures(self):
        """Increment failed removals counter."""
        with self._lock:
            self.remove_failures_total += 1

    def increment_cleanup_failures(self):
        """Increment aborted cleanup passes counter."""
        with self._lock:
            self.cleanup_failures_total += 1

    def record_renewal(self, success: bool, authenticated: bool):
        """Record a session renewal attempt and the resulting session state."""
        with self._lock:
            self.session_renewals_total += 1
            if not success:
                self.session_renewal_failures_total += 1
            self.session_authenticated = authenticated

    def get_uptime_seconds(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self.start_time

    def get_snapshot(self) -> Dict[str, Any]:
        """
        Get thread-safe snapshot of all metrics.

        Returns:
            Dictionary containing all current metrics
        """
        with self._lock:
            return {
                'uptime_seconds': self.get_uptime_seconds(),
                'cycles_total': self.cycles_total,
                'frames_saved_total': self.frames_saved_total,
                'save_failures_total': self.save_failures_total,
                'consecutive_save_failures': self.consecutive_save_failures,
                'source_failures_total': self.source_failures_total,
                'items_removed_total': self.items_removed_total,
                'remove_failures_total': self.remove_failures_total,
                'cleanup_failures_total': self.cleanup_failures_total,
                'session_renewals_total': self.session_renewals_total,
                'session_renewal_failures_total': self.session_renewal_failures_total,
                'session_authenticated': self.session_authenticated,
                'last_cycle_time': self.last_cycle_time,
                'last_successful_save': self.last_successful_save,
            }


def create_metrics_app(config, metrics: MetricsCollector) -> Flask:
    """
    Create Flask app for metrics HTTP server.

    Exposes three endpoints:
    - /health: Service health check
    - /metrics: Prometheus-compatible metrics
    - /stats: Human-readable JSON statistics

    Args:
        config: Configuration object
        metrics: MetricsCollector instance

    Returns:
        Flask application instance
    """
    app = Flask(__name__)

    # Disable Flask default logging to avoid cluttering logs
    logging.getLogger('werkzeug').setLevel(logging.ERROR)

    @app.route('/health', methods=['GET'])
    def health():
        """Health check endpoint."""
        snapshot = metrics.get_snapshot()

        status = "healthy"
        if snapshot['consecutive_save_failures'] > 0 or snapshot['session_authenticated'] is False:
            status = "degraded"

        return jsonify({
            'status': status,
            'uptime_seconds': snapshot['uptime_seconds'],
            'last_cycle_time': snapshot['last_cycle_time'],
            'last_successful_save': snapshot['last_successful_save'],
            'consecutive_save_failures': snapshot['consecutive_save_failures'],
            'storage_mode': config.storage_mode,
        })

    @app.route('/metrics', methods=['GET'])
    def prometheus_metrics():
        """
        Prometheus-compatible metrics endpoint.

        Returns metrics in Prometheus text format.
        """
        snapshot = metrics.get_snapshot()

        counters = [
            ('cycles_total', 'Capture cycles run'),
            ('frames_saved_total', 'Composite frames persisted'),
            ('save_failures_total', 'Composite frames lost to save failures'),
            ('source_failures_total', 'Camera snapshots that could not be fetched'),
            ('items_removed_total', 'Stored frames removed by retention cleanup'),
            ('remove_failures_total', 'Stored frames that could not be removed'),
            ('cleanup_failures_total', 'Cleanup passes aborted by enumeration errors'),
            ('session_renewals_total', 'Library decryption requests'),
            ('session_renewal_failures_total', 'Library decryption requests that failed'),
        ]

        lines = []
        for name, help_text in counters:
            lines += [
                f'# HELP {name} {help_text}',
                f'# TYPE {name} counter',
                f'{name} {snapshot[name]}',
                '',
            ]

        lines += [
            '# HELP service_uptime_seconds Service uptime in seconds',
            '# TYPE service_uptime_seconds gauge',
            f'service_uptime_seconds {snapshot["uptime_seconds"]}',
            '',
            '# HELP session_authenticated Remote library unlocked (1=yes, 0=no)',
            '# TYPE session_authenticated gauge',
            f'session_authenticated {1 if snapshot["session_authenticated"] else 0}',
            '',
        ]

        return '\n'.join(lines), 200, {'Content-Type': 'text/plain; charset=utf-8'}

    @app.route('/stats', methods=['GET'])
    def stats():
        """Human-readable JSON statistics endpoint."""
        snapshot = metrics.get_snapshot()

        return jsonify({
            'service': {
                'uptime_seconds': snapshot['uptime_seconds'],
                'cameras': len(config.camera_urls),
                'capture_interval_sec': config.capture_interval_sec,
            },
            'capture': {
                'cycles': snapshot['cycles_total'],
                'frames_saved': snapshot['frames_saved_total'],
                'save_failures': snapshot['save_failures_total'],
                'source_failures': snapshot['source_failures_total'],
                'last_cycle_time': snapshot['last_cycle_time'],
                'last_successful_save': snapshot['last_successful_save'],
            },
            'retention': {
                'retention_hours': config.retention_hours,
                'items_removed': snapshot['items_removed_total'],
                'remove_failures': snapshot['remove_failures_total'],
                'cleanup_failures': snapshot['cleanup_failures_total'],
            },
            'session': {
                'authenticated': snapshot['session_authenticated'],
                'renewals': snapshot['session_renewals_total'],
                'renewal_failures': snapshot['session_renewal_failures_total'],
            },
        })

    return app


def start_metrics_server(config, metrics: MetricsCollector):
    """
    Start the metrics HTTP server in a background thread.

    Args:
        config: Configuration object with metrics settings
        metrics: MetricsCollector instance
    """
    if not config.metrics_enabled:
        logging.info("Metrics server disabled in configuration")
        return

    app = create_metrics_app(config, metrics)

    def run_server():
        """Run Flask server (non-blocking)."""
        app.run(
            host=config.metrics_host,
            port=config.metrics_port,
            debug=False,
            use_reloader=False,
        )

    server_thread = threading.Thread(target=run_server, daemon=True)
    server_thread.start()

    logging.info("Metrics HTTP server started on %s:%d", config.metrics_host, config.metrics_port)
