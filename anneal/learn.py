from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from pathlib import Path
from typing import Dict

from anneal.config import ConfigError, LearnConfig, load_config
from anneal.learner import AnnealingLearner, IterationRecord
from common.logging_setup import get_logger, setup_logging
from fast_tree.offsets import create_offsets, draw_offsets
from fast_tree.serialize import format_tree, save_detector
from repeatability.dataset import DatasetError, load_images, load_warps
from repeatability.evaluate import repeatability_curve


log = get_logger("anneal.learn")


def _write_metrics_row(path: Path, row: Dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", buffering=1) as f:
        f.write(json.dumps(row) + "\n")


def _parse_args(argv=None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Learn a corner detector tree by simulated annealing")
    ap.add_argument("--config", default="config/learn.yaml")
    ap.add_argument("--iterations", type=int, default=None, help="Override learning.iterations")
    ap.add_argument("--seed", type=int, default=None, help="Override learning.random_seed (-1 = unseeded)")
    ap.add_argument("--workers", type=int, default=None, help="Threads for per-frame detection")
    ap.add_argument("--out", default=None, help="Override output.tree_file")
    ap.add_argument("--evaluate", action="store_true", help="Run the exact repeatability sweep afterwards")
    return ap.parse_args(argv)


def run(cfg: LearnConfig, evaluate: bool = False) -> int:
    offsets = create_offsets(radius=cfg.offset_radius, offsets=cfg.offset_list)
    log.info("Offsets", extra={"extra": {"count": len(offsets), "layout": draw_offsets(offsets)}})

    try:
        frames = load_images(cfg.dataset_dir, cfg.examples)
        warps = load_warps(cfg.dataset_dir, cfg.examples, frames[0].shape, prune=True)
    except DatasetError as e:
        log.error("Cannot load dataset", extra={"extra": {"error": str(e)}})
        return 1

    stop = threading.Event()

    def _on_sigint(signum, frame):
        # second Ctrl-C falls through to the default handler
        signal.signal(signal.SIGINT, signal.default_int_handler)
        stop.set()

    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGINT, _on_sigint)

    metrics_path = Path(cfg.metrics_file) if cfg.metrics_file else None

    def on_iteration(rec: IterationRecord) -> None:
        if metrics_path is not None:
            _write_metrics_row(metrics_path, rec.to_dict())

    learner = AnnealingLearner(cfg, frames, warps, offsets, stop_event=stop)
    try:
        result = learner.run(on_iteration=on_iteration)
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    log.info("Final tree", extra={"extra": {"tree": format_tree(result.tree, offsets)}})
    out = save_detector(
        cfg.tree_file,
        result.tree,
        offsets,
        meta={
            "cost": result.cost,
            "iterations": result.iterations,
            "accepted": result.accepted,
            "stopped_early": result.stopped_early,
            "fast_threshold": cfg.fast_threshold,
            "random_seed": cfg.random_seed,
        },
    )
    log.info("Detector written", extra={"extra": {"path": str(out)}})

    if evaluate or cfg.eval_enabled:
        try:
            exact = load_warps(cfg.dataset_dir, cfg.examples, frames[0].shape, prune=False)
        except DatasetError as e:
            log.error("Cannot load warps for evaluation", extra={"extra": {"error": str(e)}})
            return 1
        repeatability_curve(frames, exact, result.tree, offsets, cfg.eval_thresholds, cfg.fuzz)
    return 0


def main(argv=None) -> None:
    args = _parse_args(argv)
    try:
        cfg = load_config(args.config).with_overrides(
            iterations=args.iterations,
            random_seed=args.seed,
            workers=args.workers,
            tree_file=args.out,
        )
    except ConfigError as e:
        setup_logging(force=True)
        log.error("Invalid configuration", extra={"extra": {"error": str(e)}})
        sys.exit(2)

    setup_logging(cfg.log_level, force=True)
    log.info("Starting", extra={"extra": {"config": args.config, "iterations": cfg.iterations, "seed": cfg.random_seed}})
    sys.exit(run(cfg, evaluate=args.evaluate))


if __name__ == "__main__":
    main()
