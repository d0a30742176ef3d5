#!/usr/bin/env python3
"""
Grid Compositor for the Image Watcher

Assembles the per-camera tiles of one cycle into a single composite frame.
Canvas size and tile anchors are a fixed function of the camera count and
are kept in LAYOUTS so every row can be inspected and tested directly.
"""

import logging
from datetime import datetime
from typing import Dict, List, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from .capture import CapturedFrame

# Anchor -> (fraction of free width, fraction of free height)
ANCHORS: Dict[str, Tuple[float, float]] = {
    "top-left": (0.0, 0.0),
    "top-center": (0.5, 0.0),
    "top-right": (1.0, 0.0),
    "mid-left": (0.0, 0.5),
    "mid-center": (0.5, 0.5),
    "mid-right": (1.0, 0.5),
    "bottom-left": (0.0, 1.0),
    "bottom-center": (0.5, 1.0),
    "bottom-right": (1.0, 1.0),
}

_TOP_ROW = ("top-left", "top-center", "top-right")
_MID_ROW = ("mid-left", "mid-center", "mid-right")

# Camera count -> ((canvas width, canvas height), anchors in source order)
LAYOUTS: Dict[int, Tuple[Tuple[int, int], Tuple[str, ...]]] = {
    1: ((640, 480), ("top-left",)),
    2: ((640, 960), ("top-left", "bottom-left")),
    3: ((1280, 960), ("top-left", "top-right", "bottom-left")),
    4: ((1280, 960), ("top-left", "top-right", "bottom-left", "bottom-right")),
    5: ((1920, 960), _TOP_ROW + ("bottom-left", "bottom-center")),
    6: ((1920, 960), _TOP_ROW + ("bottom-left", "bottom-center", "bottom-right")),
    7: ((1920, 1440), _TOP_ROW + _MID_ROW + ("bottom-left",)),
    8: ((1920, 1440), _TOP_ROW + _MID_ROW + ("bottom-left", "bottom-center")),
    9: ((1920, 1440), _TOP_ROW + _MID_ROW + ("bottom-left", "bottom-center", "bottom-right")),
}


def anchor_position(anchor: str, canvas_size: Tuple[int, int],
                    tile_size: Tuple[int, int]) -> Tuple[int, int]:
    """Top-left pixel at which a tile of tile_size sits for the given anchor."""
    fx, fy = ANCHORS[anchor]
    canvas_w, canvas_h = canvas_size
    tile_w, tile_h = tile_size
    return int(round((canvas_w - tile_w) * fx)), int(round((canvas_h - tile_h) * fy))


def layout_for(count: int) -> Tuple[Tuple[int, int], Tuple[str, ...]]:
    """
    Look up the layout row for a camera count.

    Raises:
        ValueError: If no layout exists for count
    """
    try:
        return LAYOUTS[count]
    except KeyError:
        raise ValueError(f"No layout for {count} cameras (supported: 1-{max(LAYOUTS)})") from None


def format_overlay_timestamp(timestamp: datetime) -> str:
    """RFC 2822 style timestamp, e.g. 'Sun, 18 Oct 2026 14:03:05 +0000'."""
    return timestamp.strftime("%a, %d %b %Y %H:%M:%S %z")


def scale_to_width(image: np.ndarray, max_width: int) -> np.ndarray:
    """Shrink image to max_width keeping its aspect ratio; never enlarges."""
    height, width = image.shape[:2]
    if width <= max_width:
        return image

    new_height = max(1, int(round(height * max_width / width)))
    logging.debug("Resizing composite from %dx%d to %dx%d", width, height, max_width, new_height)
    return cv2.resize(image, (max_width, new_height), interpolation=cv2.INTER_AREA)


def _place(canvas: np.ndarray, tile: np.ndarray, x: int, y: int):
    """Copy tile onto canvas at (x, y), clipped to the canvas bounds."""
    if tile.ndim == 2:
        tile = cv2.cvtColor(tile, cv2.COLOR_GRAY2BGR)
    elif tile.shape[2] == 4:
        tile = cv2.cvtColor(tile, cv2.COLOR_BGRA2BGR)

    x, y = max(0, x), max(0, y)
    canvas_h, canvas_w = canvas.shape[:2]
    w = min(tile.shape[1], canvas_w - x)
    h = min(tile.shape[0], canvas_h - y)
    if w > 0 and h > 0:
        canvas[y:y + h, x:x + w] = tile[:h, :w]


class GridCompositor:
    """
    Lays out captured frames on a black canvas, scales and stamps them.

    The overlay font is loaded once; the composite itself is a pure function
    of the frames and the supplied timestamp.
    """

    def __init__(self, config):
        """
        Initialize the compositor.

        Args:
            config: Configuration object with max_width and font settings
        """
        self.config = config
        self.font = self._load_font(config.font_file, config.font_size)

    @staticmethod
    def _load_font(font_file: str, font_size: int):
        try:
            return ImageFont.truetype(font_file, font_size)
        except OSError as e:
            logging.warning("Cannot load font %s (%s), using default font", font_file, e)
            return ImageFont.load_default(size=font_size)

    def assemble(self, frames: Sequence[CapturedFrame]) -> np.ndarray:
        """
        Place every available frame at its anchor on a black canvas.

        Raises:
            ValueError: If the frame count has no layout
        """
        (canvas_w, canvas_h), anchors = layout_for(len(frames))
        canvas = np.zeros((canvas_h, canvas_w, 3), dtype=np.uint8)

        for frame, anchor in zip(frames, anchors):
            if not frame.available:
                continue
            tile_h, tile_w = frame.image.shape[:2]
            x, y = anchor_position(anchor, (canvas_w, canvas_h), (tile_w, tile_h))
            _place(canvas, frame.image, x, y)

        return canvas

    def stamp(self, image: np.ndarray, text: str) -> np.ndarray:
        """Draw text centered along the top edge of image."""
        pil_image = Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
        draw = ImageDraw.Draw(pil_image)

        left, top, right, _ = draw.textbbox((0, 0), text, font=self.font)
        x = (pil_image.width - (right - left)) / 2 - left
        draw.text((x, -top), text, font=self.font, fill=self.config.font_color)

        return cv2.cvtColor(np.asarray(pil_image), cv2.COLOR_RGB2BGR)

    def compose(self, frames: Sequence[CapturedFrame], timestamp: datetime) -> np.ndarray:
        """
        Build the composite frame for one cycle.

        Args:
            frames: Captured frames in source order (1-9 entries)
            timestamp: Capture time drawn as the overlay

        Returns:
            BGR composite ready for encoding
        """
        canvas = self.assemble(frames)
        canvas = scale_to_width(canvas, self.config.max_width)
        return self.stamp(canvas, format_overlay_timestamp(timestamp))


def available_slots(frames: Sequence[CapturedFrame]) -> List[int]:
    return [frame.slot for frame in frames if frame.available]
