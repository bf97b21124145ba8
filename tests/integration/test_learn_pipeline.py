"""
Integration tests for the learn -> save -> evaluate pipeline on a synthetic dataset
"""

import json

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from anneal import learn
from anneal.config import LearnConfig
from fast_tree.serialize import load_detector
from fast_tree.tree import check_eq_invariant
from repeatability import evaluate
from repeatability.dataset import load_images, load_warps
from repeatability.evaluate import repeatability_curve


def pipeline_config(directory, nums, tmp_path, **kw):
    params = dict(
        dataset_dir=directory,
        examples=nums,
        iterations=20,
        fast_threshold=10,
        fuzz=2,
        random_seed=3,
        num_cost=200.0,
        initial_tree_depth=2,
        log_every=5,
        eval_thresholds=[10, 30],
        metrics_file=str(tmp_path / "logs" / "metrics.jsonl"),
        tree_file=str(tmp_path / "out" / "detector.json"),
    )
    params.update(kw)
    return LearnConfig(**params)


def write_yaml(path, directory, nums, tmp_path, iterations):
    path.write_text(
        "dataset:\n"
        f"  directory: {directory}\n"
        f"  examples: {list(nums)}\n"
        "learning:\n"
        f"  iterations: {iterations}\n"
        "  fast_threshold: 10\n"
        "  fuzz: 2\n"
        "  random_seed: 5\n"
        "  initial_tree_depth: 2\n"
        "evaluation:\n"
        "  thresholds: [20]\n"
        "logging:\n"
        "  level: WARNING\n"
        "output:\n"
        f"  tree_file: {tmp_path / 'cli' / 'detector.json'}\n"
    )


class TestLearnPipeline:
    """End-to-end learning runs"""

    def test_learn_writes_detector_and_metrics(self, synthetic_dataset, tmp_path):
        directory, nums = synthetic_dataset
        cfg = pipeline_config(directory, nums, tmp_path)
        assert learn.run(cfg) == 0

        tree, offsets, meta = load_detector(cfg.tree_file)
        check_eq_invariant(tree)
        assert len(offsets) == 28
        assert meta["iterations"] == 20
        assert meta["random_seed"] == 3
        assert meta["accepted"] >= 0

        rows = [json.loads(line) for line in open(cfg.metrics_file)]
        assert [r["iteration"] for r in rows] == list(range(20))
        assert rows[0]["mutation"] is None

    def test_same_seed_same_detector(self, synthetic_dataset, tmp_path):
        directory, nums = synthetic_dataset
        a = pipeline_config(directory, nums, tmp_path, tree_file=str(tmp_path / "a.json"), metrics_file=None)
        b = pipeline_config(directory, nums, tmp_path, tree_file=str(tmp_path / "b.json"), metrics_file=None)
        assert learn.run(a) == 0
        assert learn.run(b) == 0
        assert json.loads(open(a.tree_file).read())["tree"] == json.loads(open(b.tree_file).read())["tree"]

    def test_learn_then_evaluate(self, synthetic_dataset, tmp_path):
        directory, nums = synthetic_dataset
        cfg = pipeline_config(directory, nums, tmp_path)
        assert learn.run(cfg, evaluate=True) == 0

        tree, offsets, _ = load_detector(cfg.tree_file)
        frames = load_images(directory, nums)
        exact = load_warps(directory, nums, frames[0].shape, prune=False)
        curve = repeatability_curve(frames, exact, tree, offsets, [5, 40], radius=2.0)
        assert [p.threshold for p in curve] == [5, 40]
        for p in curve:
            assert 0.0 <= p.repeatability <= 1.0
            assert p.mean_corners >= 0.0
            assert p.std_corners >= 0.0

    def test_missing_dataset(self, tmp_path):
        cfg = pipeline_config(str(tmp_path / "nowhere"), [0, 1], tmp_path)
        assert learn.run(cfg) == 1
        assert not os.path.exists(cfg.tree_file)


class TestCommandLine:
    """Entry points"""

    def test_learn_main(self, synthetic_dataset, tmp_path):
        directory, nums = synthetic_dataset
        p = tmp_path / "learn.yaml"
        write_yaml(p, directory, nums, tmp_path, iterations=50)
        with pytest.raises(SystemExit) as exc:
            learn.main(["--config", str(p), "--iterations", "8"])
        assert exc.value.code == 0
        _, _, meta = load_detector(str(tmp_path / "cli" / "detector.json"))
        assert meta["iterations"] == 8

    def test_learn_main_bad_config(self, synthetic_dataset, tmp_path):
        directory, nums = synthetic_dataset
        p = tmp_path / "learn.yaml"
        write_yaml(p, directory, nums, tmp_path, iterations=0)
        with pytest.raises(SystemExit) as exc:
            learn.main(["--config", str(p)])
        assert exc.value.code == 2

    def test_evaluate_main(self, synthetic_dataset, tmp_path):
        directory, nums = synthetic_dataset
        p = tmp_path / "learn.yaml"
        write_yaml(p, directory, nums, tmp_path, iterations=5)
        with pytest.raises(SystemExit):
            learn.main(["--config", str(p)])
        # returns normally on success
        evaluate.main(["--config", str(p), "--tree", str(tmp_path / "cli" / "detector.json")])

    def test_evaluate_main_missing_tree(self, synthetic_dataset, tmp_path):
        directory, nums = synthetic_dataset
        p = tmp_path / "learn.yaml"
        write_yaml(p, directory, nums, tmp_path, iterations=5)
        with pytest.raises(SystemExit) as exc:
            evaluate.main(["--config", str(p), "--tree", str(tmp_path / "absent.json")])
        assert exc.value.code == 1

    def test_evaluate_main_corrupt_tree(self, synthetic_dataset, tmp_path):
        directory, nums = synthetic_dataset
        p = tmp_path / "learn.yaml"
        write_yaml(p, directory, nums, tmp_path, iterations=5)
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        with pytest.raises(SystemExit) as exc:
            evaluate.main(["--config", str(p), "--tree", str(bad)])
        assert exc.value.code == 1
