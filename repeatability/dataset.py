from __future__ import annotations
"""
Repeatability dataset loading.

Layout on disk:
    <dir>/frames/frame_<N>.pgm      grayscale frames, all the same size
    <dir>/warps/warp_<I>_<J>.warp   one "x y" line per pixel of frame I, raster order,
                                    giving where it lands in frame J; "-1 -1" = unmapped

Two rounding policies exist and a WarpSet records which one it was loaded with:
    pruned=True   destinations that round outside the frame become (-1, -1);
                  required by the cached (disc-painting) scorer
    pruned=False  values kept exactly as stored; required by the exact scorer so
                  results stay comparable with published numbers
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Sequence, Tuple

import cv2
import numpy as np

from common.logging_setup import get_logger
from common.types import Frame
from common.utils import round_half_away


log = get_logger("repeatability.dataset")

UNMAPPED = -1.0


class DatasetError(RuntimeError):
    """Missing, unreadable or inconsistent dataset files."""


def frame_path(directory: str, num: int) -> Path:
    return Path(directory) / "frames" / f"frame_{num}.pgm"


def warp_path(directory: str, src: int, dst: int) -> Path:
    return Path(directory) / "warps" / f"warp_{src}_{dst}.warp"


@dataclass
class WarpSet:
    """
    Pairwise warp fields between frames, indexed by position in the loaded list
    (not by dataset frame number).

    fields[(i, j)] is an (H, W, 2) float64 array; [y, x] holds the (x', y')
    destination of pixel (x, y) of frame i in frame j.
    """
    size: Tuple[int, int]  # (H, W)
    pruned: bool
    fields: Dict[Tuple[int, int], np.ndarray] = field(default_factory=dict, repr=False)

    @property
    def num_frames(self) -> int:
        return 1 + max((max(k) for k in self.fields), default=-1)

    def get(self, i: int, j: int) -> np.ndarray:
        try:
            return self.fields[(i, j)]
        except KeyError:
            raise KeyError(f"No warp from frame {i} to frame {j}") from None

    def pairs(self) -> Iterator[Tuple[int, int]]:
        n = self.num_frames
        for i in range(n):
            for j in range(n):
                if i != j:
                    yield i, j

    def lookup(self, i: int, j: int, x: int, y: int) -> Tuple[float, float] | None:
        """Destination of (x, y) from frame i in frame j, or None when unmapped."""
        dx, dy = self.get(i, j)[y, x]
        if dx == UNMAPPED and dy == UNMAPPED:
            return None
        return float(dx), float(dy)


def prune_warp(w: np.ndarray) -> np.ndarray:
    """Replace destinations that round outside the (H, W) frame with (-1, -1)."""
    H, W = w.shape[:2]
    r = round_half_away(w)
    outside = (r[..., 0] < 0) | (r[..., 0] >= W) | (r[..., 1] < 0) | (r[..., 1] >= H)
    out = w.copy()
    out[outside] = UNMAPPED
    return out


def load_images(directory: str, nums: Sequence[int]) -> List[Frame]:
    if not nums:
        raise DatasetError("No frames requested")
    frames: List[Frame] = []
    for num in nums:
        p = frame_path(directory, num)
        img = cv2.imread(str(p), cv2.IMREAD_GRAYSCALE)
        if img is None:
            raise DatasetError(f"Cannot read frame: {p}")
        frames.append(Frame(index=int(num), image=img))
    shapes = {f.shape for f in frames}
    if len(shapes) != 1:
        raise DatasetError(f"Frames differ in size: {sorted(shapes)}")
    log.info("Loaded frames", extra={"extra": {"count": len(frames), "frames": [f.to_meta() for f in frames]}})
    return frames


def load_warp_file(path: Path, size: Tuple[int, int]) -> np.ndarray:
    H, W = size
    if not path.is_file():
        raise DatasetError(f"Missing warp file: {path}")
    try:
        data = np.loadtxt(path, dtype=np.float64, ndmin=2)
    except ValueError as e:
        raise DatasetError(f"Malformed warp file {path}: {e}") from e
    if data.shape[1] != 2 or data.shape[0] < H * W:
        raise DatasetError(f"Warp file {path} went bad: expected {H * W} rows of 2 values, got {data.shape}")
    return data[: H * W].reshape(H, W, 2)


def load_warps(directory: str, nums: Sequence[int], size: Tuple[int, int], prune: bool = True) -> WarpSet:
    """
    Load every ordered pair of warps among `nums`.

    Args:
        directory: dataset root
        nums: dataset frame numbers, in the same order as the loaded frames
        size: (H, W) of the frames
        prune: rounding policy, see module docstring
    """
    ws = WarpSet(size=(int(size[0]), int(size[1])), pruned=prune)
    for i, src in enumerate(nums):
        for j, dst in enumerate(nums):
            if i == j:
                continue
            p = warp_path(directory, src, dst)
            w = load_warp_file(p, ws.size)
            ws.fields[(i, j)] = prune_warp(w) if prune else w
            log.debug("Loaded warp", extra={"extra": {"path": str(p), "pruned": prune}})
    log.info("Loaded warps", extra={"extra": {"pairs": len(ws.fields), "pruned": prune}})
    return ws


def save_warp_file(path: Path, w: np.ndarray) -> None:
    """Write an (H, W, 2) field in the on-disk text format."""
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(path, w.reshape(-1, 2), fmt="%.6f")
