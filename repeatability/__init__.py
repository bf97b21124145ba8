"""
Repeatability — dataset & scoring

- Load registered frames and pairwise warp fields (pruned or exact rounding policy)
- Cached repeatability (disc painting) used as the learning objective
- Exact repeatability and threshold sweeps for validating a finished detector
"""
from .score import compute_repeatability, compute_repeatability_exact

__all__ = ["compute_repeatability", "compute_repeatability_exact"]
