from __future__ import annotations
"""
Repeatability of detected corners across registered frames.

Repeatability = good / (tested + eps), summed over every ordered pair (i, j), i != j:
  tested: corners of frame i whose warp into frame j is mapped
  good:   those landing within radius r of a corner detected in frame j

compute_repeatability() is the fast cached form used as the learning objective:
it paints a disc around every corner of each frame once and rounds warped
positions to the nearest pixel before the lookup. compute_repeatability_exact()
measures true distances from the unrounded warp destination and is used to
validate against published results. Each requires the matching WarpSet policy.
"""

from concurrent.futures import Executor
from typing import List, Optional, Sequence, Tuple

import numpy as np

from common.types import CornerArray
from common.utils import round_half_away
from repeatability.dataset import UNMAPPED, WarpSet


EPSILON = float(np.finfo(np.float64).eps)


def generate_disc(radius: int) -> np.ndarray:
    """Integer (dx, dy) offsets with dx^2 + dy^2 <= radius^2, raster order."""
    if radius < 0:
        raise ValueError("radius must be >= 0")
    r = int(radius)
    pts = [(dx, dy) for dy in range(-r, r + 1) for dx in range(-r, r + 1) if dx * dx + dy * dy <= r * r]
    return np.asarray(pts, dtype=np.int64)


def paint_circles(corners: CornerArray, disc: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """
    (H, W) bool image with `disc` painted at every corner; parts of a disc falling
    outside the image are dropped.
    """
    H, W = size
    im = np.zeros((H, W), dtype=bool)
    if len(corners) == 0:
        return im
    pts = (np.asarray(corners, dtype=np.int64)[:, None, :] + disc[None, :, :]).reshape(-1, 2)
    inside = (pts[:, 0] >= 0) & (pts[:, 0] < W) & (pts[:, 1] >= 0) & (pts[:, 1] < H)
    pts = pts[inside]
    im[pts[:, 1], pts[:, 0]] = True
    return im


def _count_cached(warp: np.ndarray, corners_i: CornerArray, detected_j: np.ndarray) -> Tuple[int, int]:
    if len(corners_i) == 0:
        return 0, 0
    dest = round_half_away(warp[corners_i[:, 1], corners_i[:, 0]])
    mapped = dest[:, 0] != -1
    dest = dest[mapped]
    tested = int(mapped.sum())
    good = int(detected_j[dest[:, 1], dest[:, 0]].sum()) if tested else 0
    return tested, good


def repeatability_counts(
    warps: WarpSet,
    corners: Sequence[CornerArray],
    radius: int,
    executor: Optional[Executor] = None,
) -> Tuple[int, int]:
    """(corners_tested, good_corners) of the cached scorer."""
    if not warps.pruned:
        raise ValueError("cached repeatability needs warps loaded with prune=True")
    n = len(corners)
    disc = generate_disc(radius)
    size = warps.size

    def paint(c: CornerArray) -> np.ndarray:
        return paint_circles(c, disc, size)

    if executor is not None:
        detected: List[np.ndarray] = list(executor.map(paint, corners))
    else:
        detected = [paint(c) for c in corners]

    pairs = [(i, j) for i in range(n) for j in range(n) if i != j]

    def count(pair: Tuple[int, int]) -> Tuple[int, int]:
        i, j = pair
        return _count_cached(warps.get(i, j), corners[i], detected[j])

    if executor is not None:
        results = list(executor.map(count, pairs))
    else:
        results = [count(p) for p in pairs]

    tested = sum(t for t, _ in results)
    good = sum(g for _, g in results)
    return tested, good


def compute_repeatability(
    warps: WarpSet,
    corners: Sequence[CornerArray],
    radius: int,
    executor: Optional[Executor] = None,
) -> float:
    """
    Cached repeatability in [0, 1]. When no corner is ever mappable the result
    is 0 / eps = 0, never NaN.
    """
    tested, good = repeatability_counts(warps, corners, radius, executor)
    return good / (EPSILON + tested)


def _count_exact(warp: np.ndarray, corners_i: CornerArray, corners_j: CornerArray, radius: float, chunk: int = 4096) -> Tuple[int, int]:
    if len(corners_i) == 0:
        return 0, 0
    dest = warp[corners_i[:, 1], corners_i[:, 0]]
    dest = dest[dest[:, 0] != UNMAPPED]
    tested = len(dest)
    if tested == 0 or len(corners_j) == 0:
        return tested, 0
    cj = np.asarray(corners_j, dtype=np.float64)
    r2 = float(radius) ** 2
    good = 0
    for s in range(0, tested, chunk):
        d = dest[s:s + chunk]
        d2 = ((d[:, None, :] - cj[None, :, :]) ** 2).sum(axis=2)
        good += int((d2.min(axis=1) <= r2).sum())
    return tested, good


def compute_repeatability_exact(
    warps: WarpSet,
    corners: Sequence[CornerArray],
    radius: float,
) -> float:
    """
    Exact repeatability: a warped corner repeats when its unrounded destination
    lies within `radius` of any corner detected in the other frame.
    """
    if warps.pruned:
        raise ValueError("exact repeatability needs warps loaded with prune=False")
    n = len(corners)
    tested = good = 0
    for i in range(n):
        for j in range(n):
            if i == j:
                continue
            t, g = _count_exact(warps.get(i, j), corners[i], corners[j], radius)
            tested += t
            good += g
    return good / (EPSILON + tested)
