from __future__ import annotations
"""
Ternary decision tree over pixel-intensity comparisons.

- TreeNode: internal node (offset test + lt/eq/gt children) or leaf (is_corner)
- DecisionTree: owns a root; structural queries (num_nodes, depth, nth_element)
- random_tree(): full random tree of a given depth
- check_eq_invariant(): the leaf reached from the root through eq edges only
  must never be a corner

The root counts as eq-reachable (it is reached through zero eq edges).
"""

from typing import Iterator, List, NamedTuple, Optional, Set, Tuple

import numpy as np


LT, EQ, GT = "lt", "eq", "gt"
CHILD_ROLES: Tuple[str, str, str] = (LT, EQ, GT)


class TreeInvariantError(AssertionError):
    """An eq-reachable leaf was classified as a corner."""


class TreeNode:
    """
    One node of the tree. Children are present all together (internal node)
    or absent all together (leaf).

    Args:
        offset_index: index into the offset table (ignored on leaves).
        is_corner: classification of a leaf (ignored on internal nodes).
        lt, eq, gt: exclusively owned children.
    """

    __slots__ = ("offset_index", "is_corner", "lt", "eq", "gt")

    def __init__(
        self,
        offset_index: int = 0,
        is_corner: bool = False,
        lt: Optional["TreeNode"] = None,
        eq: Optional["TreeNode"] = None,
        gt: Optional["TreeNode"] = None,
    ):
        present = [c is not None for c in (lt, eq, gt)]
        if any(present) and not all(present):
            raise ValueError("lt/eq/gt must be all present or all absent")
        self.offset_index: int = int(offset_index)
        self.is_corner: bool = bool(is_corner)
        self.lt: Optional[TreeNode] = lt
        self.eq: Optional[TreeNode] = eq
        self.gt: Optional[TreeNode] = gt

    @classmethod
    def leaf(cls, is_corner: bool) -> "TreeNode":
        return cls(is_corner=is_corner)

    @classmethod
    def internal(cls, offset_index: int, lt: "TreeNode", eq: "TreeNode", gt: "TreeNode") -> "TreeNode":
        return cls(offset_index=offset_index, lt=lt, eq=eq, gt=gt)

    @property
    def is_leaf(self) -> bool:
        return self.eq is None

    def child(self, role: str) -> "TreeNode":
        if role not in CHILD_ROLES:
            raise ValueError(f"Unknown child role: {role}")
        node = getattr(self, role)
        if node is None:
            raise ValueError("leaf has no children")
        return node

    def children(self) -> Tuple["TreeNode", "TreeNode", "TreeNode"]:
        if self.is_leaf:
            return ()  # type: ignore[return-value]
        return (self.lt, self.eq, self.gt)  # type: ignore[return-value]

    def copy(self) -> "TreeNode":
        if self.is_leaf:
            return TreeNode(offset_index=self.offset_index, is_corner=self.is_corner)
        return TreeNode(
            offset_index=self.offset_index,
            is_corner=self.is_corner,
            lt=self.lt.copy(),  # type: ignore[union-attr]
            eq=self.eq.copy(),  # type: ignore[union-attr]
            gt=self.gt.copy(),  # type: ignore[union-attr]
        )

    def num_nodes(self) -> int:
        if self.is_leaf:
            return 1
        return 1 + sum(c.num_nodes() for c in self.children())

    def depth(self) -> int:
        if self.is_leaf:
            return 0
        return 1 + max(c.depth() for c in self.children())

    def __repr__(self) -> str:
        if self.is_leaf:
            return f"TreeNode(leaf, is_corner={self.is_corner})"
        return f"TreeNode(offset_index={self.offset_index})"


class NodeRef(NamedTuple):
    """Location of a node: parent is None for the root; role names the parent's slot."""
    node: TreeNode
    parent: Optional[TreeNode]
    role: Optional[str]
    is_eq: bool


class DecisionTree:
    """Container owning the root of a ternary decision tree."""

    __slots__ = ("root",)

    def __init__(self, root: TreeNode):
        self.root = root

    def num_nodes(self) -> int:
        return self.root.num_nodes()

    def depth(self) -> int:
        return self.root.depth()

    def copy(self) -> "DecisionTree":
        return DecisionTree(self.root.copy())

    def iter_nodes(self) -> Iterator[NodeRef]:
        """Pre-order traversal (node, lt, eq, gt); index k of this sequence is nth_element(k)."""
        stack: List[NodeRef] = [NodeRef(self.root, None, None, True)]
        while stack:
            ref = stack.pop()
            yield ref
            node = ref.node
            if not node.is_leaf:
                # pushed in reverse so lt is visited first
                stack.append(NodeRef(node.gt, node, GT, False))  # type: ignore[arg-type]
                stack.append(NodeRef(node.eq, node, EQ, ref.is_eq))  # type: ignore[arg-type]
                stack.append(NodeRef(node.lt, node, LT, False))  # type: ignore[arg-type]

    def nth_element(self, k: int) -> NodeRef:
        n = self.num_nodes()
        if not 0 <= k < n:
            raise IndexError(f"node index {k} out of range for tree of {n} nodes")
        for i, ref in enumerate(self.iter_nodes()):
            if i == k:
                return ref
        raise AssertionError("unreachable")

    def replace(self, ref: NodeRef, new_node: TreeNode) -> None:
        """Put new_node in the slot described by ref, releasing the old subtree."""
        if ref.parent is None:
            self.root = new_node
        else:
            setattr(ref.parent, ref.role, new_node)  # type: ignore[arg-type]

    def leaves(self) -> List[NodeRef]:
        return [ref for ref in self.iter_nodes() if ref.node.is_leaf]

    def used_offsets(self) -> Set[int]:
        return {ref.node.offset_index for ref in self.iter_nodes() if not ref.node.is_leaf}

    def eq_leaf(self) -> TreeNode:
        return eq_chain_leaf(self.root)

    def __repr__(self) -> str:
        return f"DecisionTree(nodes={self.num_nodes()}, depth={self.depth()})"


def eq_chain_leaf(node: TreeNode) -> TreeNode:
    """Follow eq edges from node down to a leaf."""
    while not node.is_leaf:
        node = node.eq  # type: ignore[assignment]
    return node


def random_tree(depth: int, rng: np.random.Generator, num_offsets: int, is_eq_branch: bool = True) -> TreeNode:
    """
    Full random ternary tree of exactly the given depth.

    Leaves on an eq-only path are never corners; other leaves are a fair coin.
    """
    if depth < 0:
        raise ValueError("depth must be >= 0")
    if depth == 0:
        if is_eq_branch:
            return TreeNode.leaf(False)
        return TreeNode.leaf(bool(rng.integers(2)))
    offset_index = int(rng.integers(num_offsets))
    return TreeNode.internal(
        offset_index,
        lt=random_tree(depth - 1, rng, num_offsets, False),
        eq=random_tree(depth - 1, rng, num_offsets, True),
        gt=random_tree(depth - 1, rng, num_offsets, False),
    )


def check_eq_invariant(tree: DecisionTree) -> None:
    leaf = tree.eq_leaf()
    if leaf.is_corner:
        raise TreeInvariantError("eq-reachable leaf is classified as a corner")
