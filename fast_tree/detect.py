from __future__ import annotations
"""
Corner detection with a learned tree.

- classify_image(): vectorised evaluation of the tree at every valid pixel
- corner scores: highest threshold at which a pixel still classifies as a corner
- 3x3 non-maximum suppression on the score map
- detect_corners(): the whole pass, returning (x, y) positions in raster order

Each test compares the pixel at p + offset against the centre p:
    p[offset] > c + t  -> gt
    p[offset] < c - t  -> lt
    otherwise          -> eq
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import cv2
import numpy as np

from common.types import CornerArray, Frame, empty_corners
from fast_tree.offsets import OffsetTable, offsets_bbox
from fast_tree.tree import DecisionTree, TreeNode


Sampler = Callable[[int], np.ndarray]

_NMS_KERNEL = np.ones((3, 3), dtype=np.uint8)


def _classify(node: TreeNode, center: np.ndarray, sample: Sampler, threshold, active: np.ndarray, out: np.ndarray) -> None:
    if not active.any():
        return
    if node.is_leaf:
        if node.is_corner:
            out |= active
        return
    p = sample(node.offset_index)
    brighter = p > center + threshold
    darker = p < center - threshold
    _classify(node.lt, center, sample, threshold, active & darker, out)  # type: ignore[arg-type]
    _classify(node.eq, center, sample, threshold, active & ~(brighter | darker), out)  # type: ignore[arg-type]
    _classify(node.gt, center, sample, threshold, active & brighter, out)  # type: ignore[arg-type]


def evaluate(root: TreeNode, center: np.ndarray, sample: Sampler, threshold) -> np.ndarray:
    """
    Classify every element of `center` (any shape). `sample(k)` must return the
    pixels at offset k aligned with `center`; `threshold` is a scalar or an
    array broadcastable to `center`.
    """
    out = np.zeros(center.shape, dtype=bool)
    _classify(root, center, sample, threshold, np.ones(center.shape, dtype=bool), out)
    return out


def valid_region(shape: Tuple[int, int], tree: DecisionTree, offsets: OffsetTable) -> Tuple[int, int, int, int]:
    """
    (x0, y0, x1, y1) half-open window of centre pixels whose samples are all in
    bounds, leaving one extra pixel of border for the 3x3 suppression.
    """
    H, W = shape
    (xmin, ymin), (xmax, ymax) = offsets_bbox(offsets, tree.used_offsets())
    return 1 - xmin, 1 - ymin, W - 1 - xmax, H - 1 - ymax


def _region_sampler(im: np.ndarray, offsets: OffsetTable, x0: int, y0: int, x1: int, y1: int) -> Sampler:
    cache: Dict[int, np.ndarray] = {}

    def sample(k: int) -> np.ndarray:
        if k not in cache:
            dx, dy = int(offsets[k][0]), int(offsets[k][1])
            cache[k] = im[y0 + dy:y1 + dy, x0 + dx:x1 + dx]
        return cache[k]

    return sample


def _point_sampler(im: np.ndarray, offsets: OffsetTable, xs: np.ndarray, ys: np.ndarray) -> Sampler:
    cache: Dict[int, np.ndarray] = {}

    def sample(k: int) -> np.ndarray:
        if k not in cache:
            dx, dy = int(offsets[k][0]), int(offsets[k][1])
            cache[k] = im[ys + dy, xs + dx]
        return cache[k]

    return sample


def classify_image(image: np.ndarray, tree: DecisionTree, offsets: OffsetTable, threshold: int) -> np.ndarray:
    """Full-size boolean map of pixels the tree labels as corners (before suppression)."""
    im = np.asarray(image).astype(np.int16)
    H, W = im.shape
    mask = np.zeros((H, W), dtype=bool)
    x0, y0, x1, y1 = valid_region((H, W), tree, offsets)
    if x1 <= x0 or y1 <= y0:
        return mask
    center = im[y0:y1, x0:x1]
    mask[y0:y1, x0:x1] = evaluate(tree.root, center, _region_sampler(im, offsets, x0, y0, x1, y1), threshold)
    return mask


def corner_scores(image: np.ndarray, tree: DecisionTree, offsets: OffsetTable, xs: np.ndarray, ys: np.ndarray, threshold: int) -> np.ndarray:
    """
    Score of each (xs[i], ys[i]), which must already be corners at `threshold`.
    Bisection on t keeps lo a corner and hi a non-corner, so the score s is a
    threshold where the pixel is a corner and s + 1 is not. A learned tree need
    not be monotone in t, so s is not necessarily the largest such threshold.
    At t = 255 no test can leave the eq branch, so the eq-reachable leaf (never a
    corner) bounds the search.
    """
    im = np.asarray(image).astype(np.int16)
    n = len(xs)
    if n == 0:
        return np.zeros(0, dtype=np.int16)
    center = im[ys, xs]
    sample = _point_sampler(im, offsets, xs, ys)
    lo = np.full(n, threshold, dtype=np.int16)
    hi = np.full(n, 255, dtype=np.int16)
    while True:
        open_ = (hi - lo) > 1
        if not open_.any():
            break
        mid = (lo + hi) // 2
        is_corner = evaluate(tree.root, center, sample, mid)
        lo = np.where(open_ & is_corner, mid, lo)
        hi = np.where(open_ & ~is_corner, mid, hi)
    return lo


def nonmax_suppression(xs: np.ndarray, ys: np.ndarray, scores: np.ndarray, scratch: np.ndarray) -> np.ndarray:
    """Boolean keep-mask: a corner survives when no 3x3 neighbour scores higher."""
    scratch.fill(0)
    scratch[ys, xs] = scores.astype(scratch.dtype)
    local_max = cv2.dilate(scratch, _NMS_KERNEL)
    return scratch[ys, xs] >= local_max[ys, xs]


def detect_corners(
    image: np.ndarray,
    tree: DecisionTree,
    offsets: OffsetTable,
    threshold: int,
    scratch: Optional[np.ndarray] = None,
) -> CornerArray:
    """
    Detect corners in a grayscale uint8 image.

    Args:
        image: (H, W) uint8
        tree: detector
        offsets: offset table the tree indexes into
        threshold: intensity difference for the brighter/darker tests
        scratch: optional reusable (H, W) uint8 score buffer

    Returns:
        (N, 2) int64 array of (x, y), raster order.
    """
    mask = classify_image(image, tree, offsets, threshold)
    ys, xs = np.nonzero(mask)
    if len(xs) == 0:
        return empty_corners()
    scores = corner_scores(image, tree, offsets, xs, ys, threshold)
    if scratch is None or scratch.shape != mask.shape:
        scratch = np.zeros(mask.shape, dtype=np.uint8)
    keep = nonmax_suppression(xs, ys, scores, scratch)
    return np.stack([xs[keep], ys[keep]], axis=1).astype(np.int64)


@dataclass
class TreeDetector:
    """
    Detector bound to an offset table and threshold, holding one scratch
    buffer per frame so frames can be processed concurrently.
    """
    offsets: OffsetTable
    threshold: int
    _scratch: Dict[int, np.ndarray] = field(default_factory=dict, repr=False)

    def detect(self, frame: Frame, tree: DecisionTree) -> CornerArray:
        buf = self._scratch.get(frame.index)
        if buf is None or buf.shape != frame.shape:
            buf = np.zeros(frame.shape, dtype=np.uint8)
            self._scratch[frame.index] = buf
        return detect_corners(frame.image, tree, self.offsets, self.threshold, buf)

    def detect_all(self, frames: List[Frame], tree: DecisionTree) -> List[CornerArray]:
        return [self.detect(f, tree) for f in frames]
