from __future__ import annotations
"""
Repeatability evaluation of a finished detector.

Sweeps the detection threshold and reports, for each value, the mean number of
corners per frame and the exact repeatability. The usual way to read it is as a
repeatability-vs-corner-count curve.

Entry point:
    python -m repeatability.evaluate --config config/learn.yaml --tree out/detector.json
"""

import argparse
import sys
from dataclasses import asdict, dataclass
from typing import Dict, List, Sequence

from anneal.config import ConfigError, load_config
from common.logging_setup import get_logger, setup_logging
from common.types import Frame
from common.utils import RunningStats
from fast_tree.detect import detect_corners
from fast_tree.offsets import OffsetTable
from fast_tree.serialize import load_detector
from fast_tree.tree import DecisionTree
from repeatability.dataset import DatasetError, WarpSet, load_images, load_warps
from repeatability.score import compute_repeatability_exact


log = get_logger("repeatability.evaluate")


@dataclass(slots=True)
class CurvePoint:
    threshold: int
    mean_corners: float
    std_corners: float
    repeatability: float

    def to_dict(self) -> Dict:
        return asdict(self)


def repeatability_curve(
    frames: Sequence[Frame],
    warps: WarpSet,
    tree: DecisionTree,
    offsets: OffsetTable,
    thresholds: Sequence[int],
    radius: float,
) -> List[CurvePoint]:
    out: List[CurvePoint] = []
    for t in thresholds:
        corners = [detect_corners(f.image, tree, offsets, int(t)) for f in frames]
        stats = RunningStats()
        for c in corners:
            stats.add(float(len(c)))
        rep = compute_repeatability_exact(warps, corners, radius)
        pt = CurvePoint(threshold=int(t), mean_corners=stats.mean, std_corners=stats.std, repeatability=rep)
        log.info("Evaluation point", extra={"extra": pt.to_dict()})
        out.append(pt)
    return out


def main(argv=None) -> None:
    ap = argparse.ArgumentParser(description="Evaluate a learned corner detector")
    ap.add_argument("--config", default="config/learn.yaml")
    ap.add_argument("--tree", required=True, help="Detector JSON written by anneal.learn")
    args = ap.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        setup_logging(force=True)
        log.error("Invalid configuration", extra={"extra": {"error": str(e)}})
        sys.exit(2)
    setup_logging(cfg.log_level, force=True)

    try:
        tree, offsets, _ = load_detector(args.tree)
    except (OSError, ValueError) as e:
        log.error("Cannot load detector", extra={"extra": {"path": args.tree, "error": str(e)}})
        sys.exit(1)
    try:
        frames = load_images(cfg.dataset_dir, cfg.examples)
        warps = load_warps(cfg.dataset_dir, cfg.examples, frames[0].shape, prune=False)
    except DatasetError as e:
        log.error("Cannot load dataset", extra={"extra": {"error": str(e)}})
        sys.exit(1)
    repeatability_curve(frames, warps, tree, offsets, cfg.eval_thresholds, cfg.fuzz)


if __name__ == "__main__":
    main()
