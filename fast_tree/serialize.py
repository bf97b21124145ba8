from __future__ import annotations
"""
Tree serialization.

Dict/JSON form (lossless):
    leaf:     {"corner": true}
    internal: {"offset": 7, "lt": {...}, "eq": {...}, "gt": {...}}

A saved detector file also carries the offset table so downstream tooling can
compile the tree without knowing how the table was generated.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from fast_tree.offsets import OffsetTable
from fast_tree.tree import CHILD_ROLES, DecisionTree, TreeNode


FORMAT_VERSION = 1


def node_to_dict(node: TreeNode) -> Dict[str, Any]:
    if node.is_leaf:
        return {"corner": bool(node.is_corner)}
    d: Dict[str, Any] = {"offset": int(node.offset_index)}
    for role in CHILD_ROLES:
        d[role] = node_to_dict(node.child(role))
    return d


def node_from_dict(d: Dict[str, Any], num_offsets: Optional[int] = None) -> TreeNode:
    if "corner" in d:
        return TreeNode.leaf(bool(d["corner"]))
    if "offset" not in d or not all(role in d for role in CHILD_ROLES):
        raise ValueError(f"Malformed tree node: keys={sorted(d)}")
    offset = int(d["offset"])
    if offset < 0 or (num_offsets is not None and offset >= num_offsets):
        raise ValueError(f"Offset index {offset} out of range")
    children = [node_from_dict(d[role], num_offsets) for role in CHILD_ROLES]
    return TreeNode.internal(offset, *children)


def tree_to_dict(tree: DecisionTree) -> Dict[str, Any]:
    return node_to_dict(tree.root)


def tree_from_dict(d: Dict[str, Any], num_offsets: Optional[int] = None) -> DecisionTree:
    return DecisionTree(node_from_dict(d, num_offsets))


def format_tree(tree: DecisionTree, offsets: Optional[OffsetTable] = None, indent: str = "  ") -> str:
    """
    Indented text rendering, e.g.

        test 3 (1,-3)
          lt: corner
          eq: non-corner
          gt: test 0 (0,-3)
            ...
    """
    lines: List[str] = []

    def label(node: TreeNode) -> str:
        if node.is_leaf:
            return "corner" if node.is_corner else "non-corner"
        s = f"test {node.offset_index}"
        if offsets is not None:
            dx, dy = offsets[node.offset_index]
            s += f" ({int(dx)},{int(dy)})"
        return s

    def walk(node: TreeNode, depth: int, prefix: str) -> None:
        lines.append(f"{indent * depth}{prefix}{label(node)}")
        for role in CHILD_ROLES if not node.is_leaf else ():
            walk(node.child(role), depth + 1, f"{role}: ")

    walk(tree.root, 0, "")
    return "\n".join(lines)


def save_detector(path: str, tree: DecisionTree, offsets: OffsetTable, meta: Optional[Dict[str, Any]] = None) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "version": FORMAT_VERSION,
        "num_nodes": tree.num_nodes(),
        "offsets": np.asarray(offsets).tolist(),
        "tree": tree_to_dict(tree),
        "meta": meta or {},
    }
    p.write_text(json.dumps(payload, indent=2))
    return p


def load_detector(path: str) -> Tuple[DecisionTree, OffsetTable, Dict[str, Any]]:
    payload = json.loads(Path(path).read_text())
    if payload.get("version") != FORMAT_VERSION:
        raise ValueError(f"Unsupported detector file version: {payload.get('version')}")
    offsets = np.asarray(payload["offsets"], dtype=np.int64)
    tree = tree_from_dict(payload["tree"], num_offsets=len(offsets))
    return tree, offsets, payload.get("meta", {})
