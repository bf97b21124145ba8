from __future__ import annotations
"""
Simulated-annealing search for a corner-detector tree.

States: INITIALIZING -> ITERATING (config.iterations steps) -> DONE.

Each step:
  1. deep-copy the accepted tree
  2. mutate the copy (skipped on the very first step so the initial random
     tree gets a baseline cost)
  3. detect corners in every frame with the copy
  4. cached repeatability over all frame pairs
  5. cost = size * repeatability * number terms
  6. temperature = scale * exp(-alpha * i / imax)
  7. accept when uniform() < exp((old_cost - cost) / temperature)
  8. accepted copy replaces the tree; a rejected copy is dropped

Detection and disc painting are per-frame and may fan out to a thread pool;
results are joined in frame order so a seeded run is reproducible regardless
of the worker count.
"""

import math
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from anneal.config import LearnConfig
from anneal.schedule import CostTerms, acceptance_likelihood, compute_cost, compute_temperature
from common.logging_setup import get_logger
from common.types import CornerArray, Frame
from common.utils import RateTimer
from fast_tree.detect import TreeDetector
from fast_tree.mutate import Mutation, mutate
from fast_tree.offsets import OffsetTable
from fast_tree.serialize import format_tree
from fast_tree.tree import DecisionTree, check_eq_invariant, random_tree
from repeatability.dataset import WarpSet
from repeatability.score import compute_repeatability


log = get_logger("anneal")


class LearnerState(Enum):
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    DONE = "done"


@dataclass(slots=True)
class IterationRecord:
    iteration: int
    mutation: Optional[Mutation]
    num_nodes: int
    corner_counts: List[int]
    terms: CostTerms
    old_cost: float
    temperature: float
    likelihood: float
    accepted: bool
    accepted_cost: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "mutation": None if self.mutation is None else self.mutation.to_dict(),
            "nodes": self.num_nodes,
            "corners": self.corner_counts,
            **self.terms.to_dict(),
            "old_cost": self.old_cost,
            "temperature": self.temperature,
            "likelihood": self.likelihood,
            "accepted": self.accepted,
            "accepted_cost": self.accepted_cost,
        }


@dataclass
class LearnResult:
    tree: DecisionTree
    cost: float
    iterations: int
    accepted: int
    stopped_early: bool = False
    history: List[IterationRecord] = field(default_factory=list, repr=False)


class AnnealingLearner:
    """
    Owns the accepted tree, its cost, the RNG and the iteration counter.

    Args:
        config: validated LearnConfig
        frames: training frames (all the same size)
        warps: pairwise warps loaded with prune=True
        offsets: offset table the trees index into
        rng: optional generator; defaults to one seeded from config.random_seed
        stop_event: checked before each iteration; setting it ends the run early
        keep_history: keep every IterationRecord on the result
    """

    def __init__(
        self,
        config: LearnConfig,
        frames: Sequence[Frame],
        warps: WarpSet,
        offsets: OffsetTable,
        *,
        rng: Optional[np.random.Generator] = None,
        stop_event: Optional[threading.Event] = None,
        keep_history: bool = False,
    ):
        if len(frames) == 0:
            raise ValueError("at least one frame is required")
        if not warps.pruned:
            raise ValueError("learning uses cached repeatability: load warps with prune=True")
        if warps.size != frames[0].shape:
            raise ValueError(f"warp size {warps.size} does not match frame size {frames[0].shape}")
        if len(offsets) == 0:
            raise ValueError("offset table is empty")

        self.config = config
        self.frames = list(frames)
        self.warps = warps
        self.offsets = offsets
        self.num_offsets = len(offsets)
        if rng is None:
            rng = np.random.default_rng(config.random_seed if config.seeded else None)
        self.rng = rng
        self.stop_event = stop_event
        self.keep_history = keep_history
        self.detector = TreeDetector(offsets=offsets, threshold=config.fast_threshold)

        self.state = LearnerState.INITIALIZING
        self.tree: Optional[DecisionTree] = None
        self.cost = math.inf
        self.iteration = 0
        self.accepted_count = 0
        self._executor: Optional[Executor] = None

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def initialize(self, tree: Optional[DecisionTree] = None) -> None:
        """Create (or adopt) the starting tree; the first step scores it unmutated."""
        if self.state is not LearnerState.INITIALIZING:
            raise RuntimeError(f"cannot initialize in state {self.state.value}")
        if tree is None:
            tree = DecisionTree(random_tree(self.config.initial_tree_depth, self.rng, self.num_offsets, True))
        check_eq_invariant(tree)
        self.tree = tree
        self.state = LearnerState.ITERATING
        log.info(
            "Initial tree",
            extra={"extra": {"nodes": tree.num_nodes(), "depth": tree.depth(), "frames": len(self.frames)}},
        )

    def run(self, on_iteration: Optional[Callable[[IterationRecord], None]] = None) -> LearnResult:
        if self.state is LearnerState.INITIALIZING:
            self.initialize()
        history: List[IterationRecord] = []
        stopped = False
        rt = RateTimer()

        workers = self.config.workers
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="detect") if workers > 1 else None
        self._executor = executor
        try:
            while self.state is LearnerState.ITERATING:
                if self.stop_event is not None and self.stop_event.is_set():
                    stopped = True
                    log.warning("Stop requested", extra={"extra": {"iteration": self.iteration}})
                    self.state = LearnerState.DONE
                    break
                rec = self.step()
                its = rt.tick()
                if self.keep_history:
                    history.append(rec)
                if on_iteration is not None:
                    on_iteration(rec)
                if rec.iteration % self.config.log_every == 0 or self.state is LearnerState.DONE:
                    log.info(
                        "Iteration",
                        extra={"extra": {
                            "iteration": rec.iteration,
                            "cost": rec.accepted_cost,
                            "repeatability": rec.terms.repeatability,
                            "nodes": rec.num_nodes,
                            "accepted": rec.accepted,
                            "temperature": rec.temperature,
                            "it_per_s": round(its, 2),
                        }},
                    )
        finally:
            self._executor = None
            if executor is not None:
                executor.shutdown(wait=True)

        assert self.tree is not None
        log.info(
            "Learning finished",
            extra={"extra": {"iterations": self.iteration, "accepted": self.accepted_count, "cost": self.cost, "nodes": self.tree.num_nodes()}},
        )
        return LearnResult(
            tree=self.tree,
            cost=self.cost,
            iterations=self.iteration,
            accepted=self.accepted_count,
            stopped_early=stopped,
            history=history,
        )

    # -----------------------------
    # One iteration
    # -----------------------------

    def detect_all(self, tree: DecisionTree) -> List[CornerArray]:
        if self._executor is not None:
            return list(self._executor.map(lambda f: self.detector.detect(f, tree), self.frames))
        return self.detector.detect_all(self.frames, tree)

    def score(self, tree: DecisionTree) -> tuple[List[CornerArray], CostTerms]:
        corners = self.detect_all(tree)
        repeatability = compute_repeatability(self.warps, corners, self.config.fuzz, self._executor)
        terms = compute_cost(
            repeatability,
            [len(c) for c in corners],
            tree.num_nodes(),
            repeatability_scale=self.config.repeatability_scale,
            num_cost=self.config.num_cost,
            max_nodes=self.config.max_nodes,
        )
        return corners, terms

    def step(self) -> IterationRecord:
        if self.state is not LearnerState.ITERATING:
            raise RuntimeError(f"cannot step in state {self.state.value}")
        assert self.tree is not None
        cfg = self.config
        itnum = self.iteration

        if cfg.print_old_tree:
            log.info("Old tree", extra={"extra": {"tree": format_tree(self.tree, self.offsets)}})

        candidate = self.tree.copy()
        mutation: Optional[Mutation] = None
        if itnum > 0:
            mutation = mutate(candidate, self.rng, self.num_offsets)
            check_eq_invariant(candidate)
            log.debug("Mutation", extra={"extra": {"iteration": itnum, **mutation.to_dict()}})

        if cfg.print_new_tree:
            log.info("New tree", extra={"extra": {"tree": format_tree(candidate, self.offsets)}})

        corners, terms = self.score(candidate)
        temperature = compute_temperature(itnum, cfg.iterations, cfg.temperature_scale, cfg.temperature_alpha)
        old_cost = self.cost
        likelihood = acceptance_likelihood(old_cost, terms.cost, temperature)

        accepted = bool(self.rng.random() < likelihood)
        if accepted:
            self.tree = candidate
            self.cost = terms.cost
            self.accepted_count += 1

        rec = IterationRecord(
            iteration=itnum,
            mutation=mutation,
            num_nodes=candidate.num_nodes(),
            corner_counts=[len(c) for c in corners],
            terms=terms,
            old_cost=old_cost,
            temperature=temperature,
            likelihood=likelihood,
            accepted=accepted,
            accepted_cost=self.cost,
        )
        log.debug("Cost", extra={"extra": rec.to_dict()})

        self.iteration += 1
        if self.iteration >= cfg.iterations:
            self.state = LearnerState.DONE
        return rec
