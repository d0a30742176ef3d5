#!/usr/bin/env python3
"""
Snapshot Acquisition for the Image Watcher

Pulls one still image from each configured camera URL, decodes it with
OpenCV and normalizes it to the fixed tile size used by the compositor.
A failing camera never prevents the others from being fetched.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import cv2
import numpy as np
import requests

TILE_WIDTH = 640
TILE_HEIGHT = 480


@dataclass
class CapturedFrame:
    """One source slot of a capture cycle; image is None when acquisition failed."""
    slot: int
    url: str
    image: Optional[np.ndarray] = None

    @property
    def available(self) -> bool:
        return self.image is not None


class ImageAcquirer:
    """
    Fetches snapshots from HTTP camera endpoints.

    No retries are attempted within a cycle; the next scheduled cycle is
    the retry mechanism.
    """

    def __init__(self, config, metrics, session: Optional[requests.Session] = None):
        """
        Initialize the acquirer.

        Args:
            config: Configuration object with fetch_timeout_sec
            metrics: MetricsCollector instance for failure counters
            session: Optional requests session (shared connection pool)
        """
        self.config = config
        self.metrics = metrics
        self.session = session or requests.Session()

    def fetch(self, url: str) -> np.ndarray:
        """
        Fetch and decode a single snapshot, resized to the tile size.

        Raises:
            requests.RequestException: On transport errors or non-2xx status
            ValueError: If the body is not a decodable image
        """
        response = self.session.get(url, timeout=self.config.fetch_timeout_sec)
        response.raise_for_status()

        buffer = np.frombuffer(response.content, dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR) if buffer.size else None
        if image is None:
            raise ValueError("response body is not a decodable image")

        return cv2.resize(image, (TILE_WIDTH, TILE_HEIGHT), interpolation=cv2.INTER_AREA)

    def acquire(self, urls: Sequence[str]) -> List[CapturedFrame]:
        """
        Acquire one frame per source, preserving source order.

        Args:
            urls: Ordered camera URLs

        Returns:
            A CapturedFrame for every URL; failed slots carry no image
        """
        frames = []
        for slot, url in enumerate(urls):
            try:
                image = self.fetch(url)
                logging.debug("Received image from %s", url)
            except (requests.RequestException, ValueError, cv2.error) as e:
                logging.error("Error retrieving image from %s: %s", url, e)
                self.metrics.increment_source_failures()
                image = None
            frames.append(CapturedFrame(slot=slot, url=url, image=image))
        return frames
