from __future__ import annotations
"""
Mutation operators for the annealing search.

Leaves:
    grow   - replace the leaf with a random depth-1 subtree
    flip   - invert the classification (never on the eq-reachable leaf)
Internal nodes (chosen uniformly):
    randomize - draw a new offset index
    copy      - clone one child subtree over a different child slot
    splat     - drop all children, turning the node into a leaf

Every operator edits the working copy it is given through DecisionTree.replace()
or direct field updates on the selected node; the accepted tree is never touched.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np

from fast_tree.tree import CHILD_ROLES, EQ, DecisionTree, NodeRef, TreeNode, eq_chain_leaf, random_tree


@dataclass(slots=True)
class Mutation:
    kind: str
    node_index: int
    node_is_eq: bool
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "node": self.node_index, "is_eq": self.node_is_eq, **self.detail}


def grow(tree: DecisionTree, ref: NodeRef, rng: np.random.Generator, num_offsets: int) -> TreeNode:
    stub = random_tree(1, rng, num_offsets, ref.is_eq)
    tree.replace(ref, stub)
    return stub


def flip(ref: NodeRef) -> None:
    if ref.is_eq:
        raise ValueError("cannot flip the eq-reachable leaf")
    ref.node.is_corner = not ref.node.is_corner


def randomize_test(ref: NodeRef, rng: np.random.Generator, num_offsets: int) -> int:
    ref.node.offset_index = int(rng.integers(num_offsets))
    return ref.node.offset_index


def copy_branch(ref: NodeRef, remove_role: str, copy_role: str) -> None:
    """
    Replace child `remove_role` with a clone of child `copy_role`.

    A clone landing in the eq slot of an eq-reachable node extends the eq-only
    path, so the leaf at the end of its eq chain is forced to non-corner.
    """
    if remove_role == copy_role:
        raise ValueError("source and destination branch must differ")
    node = ref.node
    clone = node.child(copy_role).copy()
    if remove_role == EQ and ref.is_eq:
        eq_chain_leaf(clone).is_corner = False
    setattr(node, remove_role, clone)


def splat(ref: NodeRef, rng: np.random.Generator) -> None:
    node = ref.node
    node.lt = node.eq = node.gt = None
    if ref.is_eq:
        node.is_corner = False
    else:
        node.is_corner = bool(rng.integers(2))


def mutate(tree: DecisionTree, rng: np.random.Generator, num_offsets: int) -> Mutation:
    """Apply exactly one random mutation to `tree` in place and describe it."""
    nnum = int(rng.integers(tree.num_nodes()))
    ref = tree.nth_element(nnum)

    if ref.node.is_leaf:
        coin = int(rng.integers(2))
        if coin or ref.is_eq:
            stub = grow(tree, ref, rng, num_offsets)
            return Mutation("grow", nnum, ref.is_eq, {"offset": stub.offset_index})
        flip(ref)
        return Mutation("flip", nnum, ref.is_eq, {"is_corner": ref.node.is_corner})

    d = float(rng.random())
    if d < 1.0 / 3.0:
        offset = randomize_test(ref, rng, num_offsets)
        return Mutation("randomize", nnum, ref.is_eq, {"offset": offset})
    if d < 2.0 / 3.0:
        r = int(rng.integers(3))
        c = int(rng.integers(3))
        while c == r:
            c = int(rng.integers(3))
        copy_branch(ref, CHILD_ROLES[r], CHILD_ROLES[c])
        return Mutation("copy", nnum, ref.is_eq, {"from": CHILD_ROLES[c], "to": CHILD_ROLES[r]})
    splat(ref, rng)
    return Mutation("splat", nnum, ref.is_eq, {"is_corner": ref.node.is_corner})
