from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Dict, Sequence

import numpy as np

from common.utils import sq


@dataclass(slots=True)
class CostTerms:
    """
    Cost = size * repeatability * number, each term >= 1:
      repeatability = 1 + (repeatability_scale / repeatability)^2
      number        = 1 + mean_i (corners_i / num_cost)^2
      size          = 1 + (nodes / max_nodes)^2
    A repeatability of exactly zero gives an infinite cost.
    """
    repeatability: float
    repeatability_cost: float
    number_cost: float
    size_cost: float
    cost: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def compute_temperature(i: int, imax: int, scale: float, alpha: float) -> float:
    return scale * math.exp(-alpha * i / imax)


def acceptance_likelihood(old_cost: float, cost: float, temperature: float) -> float:
    """
    exp((old_cost - cost) / temperature). Above 1 whenever the cost improves, so
    the draw `u < L` with u in [0, 1) always accepts. Overflow gives inf and
    inf - inf gives NaN, which never accepts.
    """
    with np.errstate(over="ignore", invalid="ignore"):
        return float(np.exp((np.float64(old_cost) - np.float64(cost)) / np.float64(temperature)))


def compute_cost(
    repeatability: float,
    corner_counts: Sequence[int],
    num_nodes: int,
    *,
    repeatability_scale: float,
    num_cost: float,
    max_nodes: int,
) -> CostTerms:
    if repeatability > 0:
        repeatability_cost = 1.0 + sq(repeatability_scale / repeatability)
    else:
        repeatability_cost = math.inf

    number_cost = 1.0 + sum(sq(n / num_cost) for n in corner_counts) / len(corner_counts)
    size_cost = 1.0 + sq(num_nodes / max_nodes)
    return CostTerms(
        repeatability=float(repeatability),
        repeatability_cost=repeatability_cost,
        number_cost=number_cost,
        size_cost=size_cost,
        cost=size_cost * repeatability_cost * number_cost,
    )
