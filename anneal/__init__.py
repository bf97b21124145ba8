# FILE: anneal/__init__.py
"""
Anneal — detector learning driver

Optimises a corner-detector tree for repeatability with simulated annealing:
mutate a copy of the accepted tree, score it on every training frame, and keep
or drop it under an exponentially cooling temperature.

Entry point:
    python -m anneal.learn --config config/learn.yaml
"""
from .learner import AnnealingLearner, LearnResult

__all__ = ["AnnealingLearner", "LearnResult"]
