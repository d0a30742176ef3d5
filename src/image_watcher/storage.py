#!/usr/bin/env python3
"""
Storage Backends for the Image Watcher

A composite frame is persisted through a StorageBackend. Two variants exist:
- LocalStorageBackend writes JPEG files into a directory
- RemoteStorageBackend uploads them into a Seafile library

Both report failures as return values so one bad frame or one stubborn
file never interrupts the capture loop.
"""

import logging
import os
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from .errors import StorageConnectionError
from .seafile import SeafileClient, join_remote_path

FRAME_EXTENSION = ".jpg"
FRAME_NAME_FORMAT = "%Y-%m-%d-%H-%M-%S"


def frame_name(timestamp: datetime) -> str:
    """File name for a frame captured at timestamp; sorts chronologically."""
    return timestamp.strftime(FRAME_NAME_FORMAT) + FRAME_EXTENSION


@dataclass(frozen=True)
class StoredItem:
    """A persisted entry as reported by a backend."""
    name: str
    mtime: datetime
    is_file: bool = True


class StorageBackend(ABC):
    """Capability interface shared by the local and remote targets."""

    #: Whether authenticate() does anything for this backend
    requires_authentication = False

    def __init__(self, config):
        self.config = config

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable storage location for log lines."""

    @abstractmethod
    def save(self, frame: np.ndarray, name: str) -> bool:
        """Persist frame under name. Returns True on success."""

    @abstractmethod
    def list_items(self) -> Optional[List[StoredItem]]:
        """Enumerate persisted items, or None if enumeration failed."""

    @abstractmethod
    def remove(self, name: str) -> bool:
        """Remove one item. Returns True if it is gone."""

    def authenticate(self, secret: str) -> bool:
        """
        Unlock the storage target.

        Returns:
            True on success, False on explicit denial

        Raises:
            StorageConnectionError: If the target could not be reached
        """
        return True

    def encode_params(self) -> List[int]:
        return [cv2.IMWRITE_JPEG_QUALITY, int(self.config.output_quality)]


class LocalStorageBackend(StorageBackend):
    """
    Stores frames as JPEG files in a single local directory.

    The directory is created on construction; failure to create it is an
    initialization error and propagates.
    """

    def __init__(self, config):
        super().__init__(config)
        self.storage_path = Path(config.storage_path)
        self._ensure_storage_directory()

    def _ensure_storage_directory(self):
        """Create storage directory if it doesn't exist."""
        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            logging.info("Storage directory: %s", self.storage_path)
        except OSError as e:
            logging.error("Failed to create storage directory: %s", e)
            raise

    @property
    def location(self) -> str:
        return str(self.storage_path)

    def save(self, frame: np.ndarray, name: str) -> bool:
        filepath = self.storage_path / name
        try:
            success = cv2.imwrite(str(filepath), frame, self.encode_params())
        except cv2.error as e:
            logging.error("Error encoding frame %s: %s", filepath, e)
            return False

        if not success:
            logging.error("Failed to write image to %s", filepath)
            return False

        logging.info("Frame stored: %s (%.2f KB)", filepath, filepath.stat().st_size / 1024)
        return True

    def list_items(self) -> Optional[List[StoredItem]]:
        try:
            items = []
            for entry in self.storage_path.iterdir():
                if entry.suffix != FRAME_EXTENSION or not entry.is_file():
                    continue
                mtime = datetime.fromtimestamp(entry.stat().st_mtime, tz=timezone.utc)
                items.append(StoredItem(name=entry.name, mtime=mtime, is_file=True))
            return items
        except OSError as e:
            logging.error("Could not scan %s: %s", self.storage_path, e)
            return None

    def remove(self, name: str) -> bool:
        try:
            (self.storage_path / name).unlink()
            return True
        except OSError as e:
            logging.debug("Unlink of %s failed: %s", name, e)
            return False


class RemoteStorageBackend(StorageBackend):
    """
    Uploads frames into a directory of a Seafile library.

    Each frame is encoded to a temporary file which is removed after the
    upload attempt, whatever its outcome.
    """

    requires_authentication = True

    def __init__(self, config, client: SeafileClient, sleep=time.sleep):
        super().__init__(config)
        self.client = client
        self.directory = config.seafile_directory or "/"
        self._sleep = sleep

    @property
    def location(self) -> str:
        return f"{self.client.library_id}:{self.directory}"

    def _upload_with_retry(self, local_path: str, name: str) -> Optional[str]:
        """Upload, retrying connection failures with exponential backoff."""
        attempts = self.config.upload_retry_attempts
        for attempt in range(attempts):
            try:
                logging.debug("Uploading %s (attempt %d/%d)", name, attempt + 1, attempts)
                return self.client.upload(local_path, self.directory, name)
            except StorageConnectionError as e:
                logging.warning("Upload of %s failed (attempt %d): %s", name, attempt + 1, e)

            if attempt < attempts - 1:
                backoff_time = self.config.upload_retry_backoff_sec * (2 ** attempt)
                logging.debug("Retrying in %.1f seconds...", backoff_time)
                self._sleep(backoff_time)

        return None

    def save(self, frame: np.ndarray, name: str) -> bool:
        fd, local_path = tempfile.mkstemp(suffix=FRAME_EXTENSION)
        os.close(fd)
        try:
            if not cv2.imwrite(local_path, frame, self.encode_params()):
                logging.error("Failed to encode %s to %s", name, local_path)
                return False

            file_id = self._upload_with_retry(local_path, name)
            if file_id is None:
                logging.error("Could not upload %s to %s. An encrypted library without "
                              "CAM_SEAFILE_ENCRYPTION_KEY also causes this.", name, self.location)
                return False

            logging.info("Sent %s to %s (id %s)", name, self.location, file_id)
            return True
        except (OSError, cv2.error, ValueError) as e:
            logging.error("Error saving %s to %s: %s", name, self.location, e)
            return False
        finally:
            try:
                os.remove(local_path)
            except FileNotFoundError:
                pass

    def list_items(self) -> Optional[List[StoredItem]]:
        try:
            entries = self.client.list_entries(self.directory)
        except StorageConnectionError as e:
            logging.error("Could not list %s: %s", self.location, e)
            return None

        items = []
        for entry in entries:
            try:
                mtime = datetime.fromtimestamp(int(entry['mtime']), tz=timezone.utc)
                items.append(StoredItem(name=entry['name'], mtime=mtime,
                                        is_file=entry.get('type') == 'file'))
            except (KeyError, TypeError, ValueError) as e:
                logging.warning("Skipping malformed entry %r: %s", entry, e)
        return items

    def remove(self, name: str) -> bool:
        path = join_remote_path(self.directory, name)
        try:
            return self.client.remove_entry(path)
        except StorageConnectionError as e:
            logging.debug("Remove of %s failed: %s", path, e)
            return False

    def authenticate(self, secret: str) -> bool:
        return self.client.decrypt(secret)


def create_backend(config, client: Optional[SeafileClient] = None) -> StorageBackend:
    """
    Build the backend selected by config.storage_mode.

    Args:
        config: Validated configuration
        client: Seafile client, required for remote mode
    """
    if config.storage_mode == "remote":
        if client is None:
            raise ValueError("remote storage needs a SeafileClient")
        return RemoteStorageBackend(config, client)
    return LocalStorageBackend(config)
