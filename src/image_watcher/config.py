#!/usr/bin/env python3
"""
Configuration Management for the Image Watcher

Settings are read from an optional YAML file and then overridden by
CAM_* environment variables, which lets the daemon run from a container
with nothing but an environment file. See configs/image_watcher.yaml for
an example configuration.
"""

import math
import os
from datetime import timedelta
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from PIL import ImageColor

from .errors import ConfigError

MAX_CAMERAS = 9
STORAGE_MODES = ("local", "remote")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Environment variable -> (config attribute, type)
ENV_OVERRIDES = {
    "CAM_MAX_WIDTH": ("max_width", int),
    "CAM_OUTPUT_QUALITY": ("output_quality", int),
    "CAM_INTERVAL_TIME_SECS": ("capture_interval_sec", float),
    "CAM_CLEAN_TIME_MINS": ("cleanup_interval_min", float),
    "CAM_RETENTION_TIME_HOURS": ("retention_hours", float),
    "CAM_ENCRYPT_TIMEOUT_MINS": ("session_renewal_min", float),
    "CAM_STORAGE_MODE": ("storage_mode", str),
    "CAM_STORAGE_PATH": ("storage_path", str),
    "CAM_SEAFILE_URL": ("seafile_url", str),
    "CAM_SEAFILE_APITOKEN": ("seafile_api_token", str),
    "CAM_SEAFILE_LIBRARY_ID": ("seafile_library_id", str),
    "CAM_SEAFILE_ENCRYPTION_KEY": ("seafile_encryption_key", str),
    "CAM_SEAFILE_DIRECTORY": ("seafile_directory", str),
    "CAM_FONT_FILE": ("font_file", str),
    "CAM_FONT_SIZE": ("font_size", int),
    "CAM_FONT_COLOR": ("font_color", str),
    "CAM_TIMEZONE": ("timezone", str),
}


def _convert(value: Any, name: str, cast: Callable) -> Any:
    """Convert a raw setting, raising ConfigError with the offending name."""
    if value is None:
        return None
    if cast is str:
        return str(value)
    if isinstance(value, bool):
        raise ConfigError(f"Cannot accept {name} of {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Cannot accept {name} of {value!r}") from None
    if not math.isfinite(number):
        raise ConfigError(f"Cannot accept {name} of {value!r}")
    return round(number) if cast is int else number


def _to_bool(value: Any, name: str) -> bool:
    """Accept YAML booleans and the usual true/false spellings."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "yes", "on", "1"):
        return True
    if text in ("false", "no", "off", "0"):
        return False
    raise ConfigError(f"Cannot accept {name} of {value!r}")


@dataclass
class Config:
    """
    Configuration data class for the image watcher.

    Immutable by convention once Config.load() has returned; every
    collaborator receives the same instance.
    """
    # Sources
    camera_urls: List[str] = field(default_factory=list)
    fetch_timeout_sec: float = 10

    # Composite
    max_width: int = 1280
    output_quality: int = 80
    font_file: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
    font_size: int = 12
    font_color: str = "#ff0000"
    timezone: str = "UTC"

    # Schedule
    capture_interval_sec: float = 60
    cleanup_interval_min: float = 60
    retention_hours: float = 24
    session_renewal_min: float = 60

    # Storage
    storage_mode: str = "local"
    storage_path: str = "/var/lib/image-watcher/frames"
    max_consecutive_save_failures: int = 0

    # Seafile
    seafile_url: Optional[str] = None
    seafile_api_token: Optional[str] = None
    seafile_library_id: Optional[str] = None
    seafile_directory: str = "/"
    seafile_encryption_key: Optional[str] = None
    request_timeout_sec: float = 30
    upload_retry_attempts: int = 1
    upload_retry_backoff_sec: float = 2

    # Logging
    log_level: str = "INFO"

    # Metrics
    metrics_enabled: bool = False
    metrics_host: str = "0.0.0.0"
    metrics_port: int = 8080

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Config':
        """
        Build a Config from the nested mapping found in the YAML file.

        Missing sections and keys fall back to the dataclass defaults.

        Raises:
            ConfigError: If a numeric setting does not parse
        """
        data = data or {}
        cameras = data.get('cameras') or {}
        capture = data.get('capture') or {}
        composite = data.get('composite') or {}
        font = composite.get('font') or {}
        schedule = data.get('schedule') or {}
        storage = data.get('storage') or {}
        seafile = data.get('seafile') or {}
        logging_section = data.get('logging') or {}
        metrics = data.get('metrics') or {}
        defaults = cls()

        def pick(section, key, attr, cast):
            value = section.get(key)
            if value is None:
                return getattr(defaults, attr)
            return _convert(value, key, cast)

        urls = cameras.get('urls') or []
        if not isinstance(urls, list):
            raise ConfigError("cameras.urls must be a list of URLs")

        return cls(
            # Sources
            camera_urls=[str(url) for url in urls],
            fetch_timeout_sec=pick(capture, 'fetch_timeout_sec', 'fetch_timeout_sec', float),

            # Composite
            max_width=pick(composite, 'max_width', 'max_width', int),
            output_quality=pick(composite, 'output_quality', 'output_quality', int),
            font_file=pick(font, 'file', 'font_file', str),
            font_size=pick(font, 'size', 'font_size', int),
            font_color=pick(font, 'color', 'font_color', str),
            timezone=pick(composite, 'timezone', 'timezone', str),

            # Schedule
            capture_interval_sec=pick(schedule, 'capture_interval_sec', 'capture_interval_sec', float),
            cleanup_interval_min=pick(schedule, 'cleanup_interval_min', 'cleanup_interval_min', float),
            retention_hours=pick(schedule, 'retention_hours', 'retention_hours', float),
            session_renewal_min=pick(schedule, 'session_renewal_min', 'session_renewal_min', float),

            # Storage
            storage_mode=pick(storage, 'mode', 'storage_mode', str),
            storage_path=pick(storage, 'path', 'storage_path', str),
            max_consecutive_save_failures=pick(
                storage, 'max_consecutive_save_failures', 'max_consecutive_save_failures', int
            ),

            # Seafile
            seafile_url=pick(seafile, 'url', 'seafile_url', str),
            seafile_api_token=pick(seafile, 'api_token', 'seafile_api_token', str),
            seafile_library_id=pick(seafile, 'library_id', 'seafile_library_id', str),
            seafile_directory=pick(seafile, 'directory', 'seafile_directory', str),
            seafile_encryption_key=pick(seafile, 'encryption_key', 'seafile_encryption_key', str),
            request_timeout_sec=pick(seafile, 'request_timeout_sec', 'request_timeout_sec', float),
            upload_retry_attempts=pick(seafile, 'upload_retry_attempts', 'upload_retry_attempts', int),
            upload_retry_backoff_sec=pick(
                seafile, 'upload_retry_backoff_sec', 'upload_retry_backoff_sec', float
            ),

            # Logging
            log_level=pick(logging_section, 'level', 'log_level', str).upper(),

            # Metrics
            metrics_enabled=_to_bool(metrics.get('enabled', defaults.metrics_enabled), 'metrics_enabled'),
            metrics_host=pick(metrics, 'host', 'metrics_host', str),
            metrics_port=pick(metrics, 'port', 'metrics_port', int),
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> 'Config':
        """
        Load configuration from YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config file is malformed
        """
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)

        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"{config_path} does not contain a mapping")

        return cls.from_dict(data)

    @classmethod
    def load(cls, config_path: Optional[str] = None,
             environ: Optional[Mapping[str, str]] = None) -> 'Config':
        """
        Load, override and validate the configuration.

        Args:
            config_path: Optional path to a YAML file
            environ: Environment mapping (defaults to os.environ)

        Returns:
            A validated Config

        Raises:
            ConfigError: If a setting is missing or out of bounds
        """
        config = cls.from_yaml(config_path) if config_path else cls()
        config.apply_environment(os.environ if environ is None else environ)
        config.validate()
        return config

    def apply_environment(self, environ: Mapping[str, str]):
        """Override settings with CAM_* environment variables."""
        urls = []
        for i in range(1, MAX_CAMERAS + 1):
            url = environ.get(f"CAM_IMAGE_URL{i}")
            if url:
                urls.append(url)
        if urls:
            self.camera_urls = urls

        for name, (attr, cast) in ENV_OVERRIDES.items():
            if name in environ:
                setattr(self, attr, _convert(environ[name], name, cast))

        if environ.get('CAM_LOG_DEBUG', '').lower() in ('true', '1'):
            self.log_level = 'DEBUG'

    def validate(self):
        """
        Check every invariant the daemon relies on.

        Raises:
            ConfigError: On the first violated invariant
        """
        if not self.camera_urls:
            raise ConfigError("No camera URLs configured (cameras.urls or CAM_IMAGE_URLx)")
        if len(self.camera_urls) > MAX_CAMERAS:
            raise ConfigError(
                f"At most {MAX_CAMERAS} camera URLs are supported, got {len(self.camera_urls)}"
            )

        if self.storage_mode not in STORAGE_MODES:
            raise ConfigError(f"Cannot accept storage mode of {self.storage_mode!r}")

        if not 0 <= self.output_quality <= 100:
            raise ConfigError(f"Cannot accept output quality of {self.output_quality}")
        if self.max_width < 10:
            raise ConfigError(f"Cannot accept max width of {self.max_width}")
        if self.font_size < 1:
            raise ConfigError(f"Cannot accept font size of {self.font_size}")

        for attr in ('capture_interval_sec', 'cleanup_interval_min', 'retention_hours',
                     'session_renewal_min', 'fetch_timeout_sec', 'request_timeout_sec'):
            value = getattr(self, attr)
            if not math.isfinite(value) or value <= 0:
                raise ConfigError(f"Cannot accept {attr} of {getattr(self, attr)}")

        if self.upload_retry_attempts < 1:
            raise ConfigError(f"Cannot accept upload_retry_attempts of {self.upload_retry_attempts}")
        if not math.isfinite(self.upload_retry_backoff_sec) or self.upload_retry_backoff_sec < 0:
            raise ConfigError(
                f"Cannot accept upload_retry_backoff_sec of {self.upload_retry_backoff_sec}"
            )
        if self.max_consecutive_save_failures < 0:
            raise ConfigError(
                f"Cannot accept max_consecutive_save_failures of {self.max_consecutive_save_failures}"
            )

        try:
            self.retention
        except OverflowError:
            raise ConfigError(f"Cannot accept retention_hours of {self.retention_hours}") from None

        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"Cannot accept log level of {self.log_level!r}")

        try:
            ImageColor.getrgb(self.font_color)
        except ValueError:
            raise ConfigError(f"Cannot accept font color of {self.font_color!r}") from None

        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigError(f"Unknown timezone {self.timezone!r}") from None

        if self.storage_mode == "remote":
            for attr, env_name in (('seafile_url', 'CAM_SEAFILE_URL'),
                                   ('seafile_api_token', 'CAM_SEAFILE_APITOKEN'),
                                   ('seafile_library_id', 'CAM_SEAFILE_LIBRARY_ID')):
                if not getattr(self, attr):
                    raise ConfigError(f"Remote storage requires {env_name}")

    @property
    def retention(self) -> timedelta:
        return timedelta(hours=self.retention_hours)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def session_secret(self) -> Optional[str]:
        """Unlock secret, only meaningful for remote storage."""
        if self.storage_mode != "remote":
            return None
        return self.seafile_encryption_key or None
