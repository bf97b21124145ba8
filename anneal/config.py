from __future__ import annotations
"""
Learning parameters, read once from YAML before anything else runs.

Example (config/learn.yaml):
    dataset:
      directory: data/repeatability
      examples: [0, 1, 2]
    offsets:
      radius: 3
    learning:
      iterations: 100000
      fast_threshold: 35
      fuzz: 5
      ...
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import yaml


class ConfigError(ValueError):
    """Missing or out-of-range configuration value."""


@dataclass(frozen=True)
class LearnConfig:
    # dataset
    dataset_dir: str = "data/repeatability"
    examples: List[int] = field(default_factory=lambda: [0, 1, 2])
    # offsets: explicit list wins over radius
    offset_radius: float = 3.0
    offset_list: Optional[List[List[int]]] = None
    # learning
    iterations: int = 100000
    fast_threshold: int = 35
    fuzz: int = 5
    repeatability_scale: float = 6.0
    num_cost: float = 3500.0
    max_nodes: int = 30
    initial_tree_depth: int = 3
    random_seed: int = -1
    workers: int = 1
    log_every: int = 100
    # temperature schedule: scale * exp(-alpha * i / imax)
    temperature_scale: float = 100.0
    temperature_alpha: float = 30.0
    # debug
    print_old_tree: bool = False
    print_new_tree: bool = False
    # evaluation after learning
    eval_enabled: bool = False
    eval_thresholds: List[int] = field(default_factory=lambda: [10, 20, 30, 40, 50, 60])
    # logging / output
    log_level: str = "INFO"
    metrics_file: Optional[str] = None
    tree_file: str = "out/detector.json"

    @property
    def seeded(self) -> bool:
        return self.random_seed != -1

    def with_overrides(self, **kw: Any) -> "LearnConfig":
        cfg = replace(self, **{k: v for k, v in kw.items() if v is not None})
        cfg.validate()
        return cfg

    def validate(self) -> None:
        def need(cond: bool, msg: str) -> None:
            if not cond:
                raise ConfigError(msg)

        need(len(self.examples) >= 2, "dataset.examples needs at least two frames")
        need(len(set(self.examples)) == len(self.examples), "dataset.examples must be unique")
        need(self.offset_list is not None or self.offset_radius >= 1, "offsets.radius must be >= 1")
        need(self.iterations >= 1, "learning.iterations must be >= 1")
        need(0 <= self.fast_threshold <= 255, "learning.fast_threshold must be in [0, 255]")
        need(self.fuzz >= 0, "learning.fuzz must be >= 0")
        need(self.repeatability_scale > 0, "learning.repeatability_scale must be > 0")
        need(self.num_cost > 0, "learning.num_cost must be > 0")
        need(self.max_nodes > 0, "learning.max_nodes must be > 0")
        need(self.initial_tree_depth >= 1, "learning.initial_tree_depth must be >= 1")
        need(self.random_seed >= -1, "learning.random_seed must be -1 (unseeded) or >= 0")
        need(self.workers >= 1, "learning.workers must be >= 1")
        need(self.log_every >= 1, "learning.log_every must be >= 1")
        need(self.temperature_scale > 0, "temperature.scale must be > 0")
        need(self.temperature_alpha >= 0, "temperature.alpha must be >= 0")
        need(all(0 <= t <= 255 for t in self.eval_thresholds), "evaluation.thresholds must be in [0, 255]")


def _section(P: Dict, name: str) -> Dict:
    s = P.get(name) or {}
    if not isinstance(s, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return s


def config_from_dict(P: Dict) -> LearnConfig:
    d = LearnConfig()
    ds = _section(P, "dataset")
    off = _section(P, "offsets")
    lrn = _section(P, "learning")
    tmp = _section(P, "temperature")
    dbg = _section(P, "debug")
    ev = _section(P, "evaluation")
    lg = _section(P, "logging")
    out = _section(P, "output")

    try:
        cfg = LearnConfig(
            dataset_dir=str(ds.get("directory", d.dataset_dir)),
            examples=[int(x) for x in ds.get("examples", d.examples)],
            offset_radius=float(off.get("radius", d.offset_radius)),
            offset_list=[[int(a), int(b)] for a, b in off["list"]] if off.get("list") else None,
            iterations=int(lrn.get("iterations", d.iterations)),
            fast_threshold=int(lrn.get("fast_threshold", d.fast_threshold)),
            fuzz=int(lrn.get("fuzz", d.fuzz)),
            repeatability_scale=float(lrn.get("repeatability_scale", d.repeatability_scale)),
            num_cost=float(lrn.get("num_cost", d.num_cost)),
            max_nodes=int(lrn.get("max_nodes", d.max_nodes)),
            initial_tree_depth=int(lrn.get("initial_tree_depth", d.initial_tree_depth)),
            random_seed=int(lrn.get("random_seed", d.random_seed)),
            workers=int(lrn.get("workers", d.workers)),
            log_every=int(lrn.get("log_every", d.log_every)),
            temperature_scale=float(tmp.get("scale", d.temperature_scale)),
            temperature_alpha=float(tmp.get("alpha", d.temperature_alpha)),
            print_old_tree=bool(dbg.get("print_old_tree", d.print_old_tree)),
            print_new_tree=bool(dbg.get("print_new_tree", d.print_new_tree)),
            eval_enabled=bool(ev.get("enabled", d.eval_enabled)),
            eval_thresholds=[int(t) for t in ev.get("thresholds", d.eval_thresholds)],
            log_level=str(lg.get("level", d.log_level)),
            metrics_file=lg.get("metrics_file", d.metrics_file),
            tree_file=str(out.get("tree_file", d.tree_file)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Bad configuration value: {e}") from e
    cfg.validate()
    return cfg


def load_config(path: str) -> LearnConfig:
    try:
        with open(path, "r") as f:
            P = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse config {path}: {e}") from e
    if not isinstance(P, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    return config_from_dict(P)
