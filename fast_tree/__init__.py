# FILE: fast_tree/__init__.py
"""
Fast Tree — corner detector model

This package provides:
- The ternary decision tree over pixel comparisons and its random construction
- Mutation operators used by the annealing search (grow/flip/randomize/copy/splat)
- Vectorised detection with corner scoring and 3x3 non-maximum suppression
- The offset table and lossless JSON/text serialization of learned trees
"""
from .tree import DecisionTree, TreeNode, random_tree, check_eq_invariant
from .detect import detect_corners

__all__ = ["DecisionTree", "TreeNode", "random_tree", "check_eq_invariant", "detect_corners"]
