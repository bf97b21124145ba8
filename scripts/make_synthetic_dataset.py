#!/usr/bin/env python3
"""
Write a small synthetic repeatability dataset: crops of one random texture at
different translations, plus the exact pixel warps between every pair.

Frames that shift relative to each other leave part of the source frame
unmapped; those pixels are written as "-1 -1" like the real datasets.

Example:
  python scripts/make_synthetic_dataset.py --out data/synthetic --frames 3 --size 96x72
  python -m anneal.learn --config config/learn.yaml   # with dataset.directory: data/synthetic
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Tuple

import cv2
import numpy as np

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(project_root)

from repeatability.dataset import frame_path, save_warp_file, warp_path


def make_texture(width: int, height: int, seed: int, cell: int = 6, blur_sigma: float = 1.0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    small = rng.integers(0, 256, size=(height // cell + 2, width // cell + 2), dtype=np.uint8)
    big = cv2.resize(small, (small.shape[1] * cell, small.shape[0] * cell), interpolation=cv2.INTER_NEAREST)
    if blur_sigma > 0:
        big = cv2.GaussianBlur(big, (0, 0), blur_sigma)
    return big[:height, :width]


def translation_warp(size: Tuple[int, int], shift: Tuple[int, int]) -> np.ndarray:
    """(H, W, 2) warp for a pure translation; destinations outside the frame are (-1, -1)."""
    H, W = size
    ys, xs = np.mgrid[0:H, 0:W]
    w = np.stack([xs + shift[0], ys + shift[1]], axis=-1).astype(np.float64)
    outside = (w[..., 0] < 0) | (w[..., 0] > W - 1) | (w[..., 1] < 0) | (w[..., 1] > H - 1)
    w[outside] = -1.0
    return w


def write_dataset(out: Path, frames: int, size: Tuple[int, int], step: Tuple[int, int], seed: int) -> List[int]:
    W, H = size
    margin_x = abs(step[0]) * frames
    margin_y = abs(step[1]) * frames
    base = make_texture(W + margin_x, H + margin_y, seed)
    origins = [(k * abs(step[0]), k * abs(step[1])) for k in range(frames)]

    for k, (ox, oy) in enumerate(origins):
        p = frame_path(str(out), k)
        p.parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(p), base[oy:oy + H, ox:ox + W])

    for i, (xi, yi) in enumerate(origins):
        for j, (xj, yj) in enumerate(origins):
            if i != j:
                save_warp_file(warp_path(str(out), i, j), translation_warp((H, W), (xi - xj, yi - yj)))
    return list(range(frames))


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--out", default="data/synthetic")
    ap.add_argument("--frames", type=int, default=3)
    ap.add_argument("--size", default="96x72", help="Frame WxH")
    ap.add_argument("--step", default="3,2", help="Translation per frame dx,dy")
    ap.add_argument("--seed", type=int, default=42)
    args = ap.parse_args()

    W, H = [int(x) for x in args.size.lower().split("x")]
    dx, dy = [int(x) for x in args.step.split(",")]
    nums = write_dataset(Path(args.out), args.frames, (W, H), (dx, dy), args.seed)
    print(f"Done. Wrote frames {nums} and {len(nums) * (len(nums) - 1)} warps to {args.out}")


if __name__ == "__main__":
    main()
