from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np


# (N, 2) integer array of (x, y) pixel positions, raster order
CornerArray = np.ndarray


def empty_corners() -> CornerArray:
    return np.zeros((0, 2), dtype=np.int64)


def as_corners(points) -> CornerArray:
    """Coerce a sequence of (x, y) pairs into a CornerArray."""
    a = np.asarray(points, dtype=np.int64)
    if a.size == 0:
        return empty_corners()
    if a.ndim != 2 or a.shape[1] != 2:
        raise ValueError("corners must have shape (N, 2)")
    return a


@dataclass(slots=True)
class Frame:
    """
    One registered training image of a repeatability dataset.

    Attributes:
        index: dataset frame number (the N in frames/frame_N.pgm).
        image: np.ndarray of shape (H, W), dtype uint8.
    """
    index: int
    image: np.ndarray

    def __post_init__(self) -> None:
        if not isinstance(self.image, np.ndarray):
            raise TypeError("image must be a numpy ndarray")
        if self.image.ndim != 2:
            raise ValueError("image must be 2D grayscale")
        if self.image.size == 0:
            raise ValueError("image must not be empty")
        if self.image.dtype != np.uint8:
            self.image = self.image.astype(np.uint8, copy=False)

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    def to_meta(self) -> Dict[str, Any]:
        """Metadata without pixel data (safe to log/serialize)."""
        return {"index": self.index, "width": self.width, "height": self.height}
