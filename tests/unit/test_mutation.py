"""
Unit tests for tree mutation operators
"""

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from fast_tree.mutate import copy_branch, flip, grow, mutate, splat
from fast_tree.serialize import tree_to_dict
from fast_tree.tree import EQ, GT, LT, DecisionTree, TreeNode, check_eq_invariant, random_tree


NUM_OFFSETS = 12


def count_nodes(node):
    if node.lt is None:
        return 1
    return 1 + count_nodes(node.lt) + count_nodes(node.eq) + count_nodes(node.gt)


def depth_one(lt=True, eq=False, gt=True, offset=0):
    return DecisionTree(TreeNode.internal(offset, TreeNode.leaf(lt), TreeNode.leaf(eq), TreeNode.leaf(gt)))


class TestMutationSequences:
    """Random mutation sequences keep the tree well formed"""

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_invariant_and_node_count(self, seed):
        rng = np.random.default_rng(seed)
        tree = DecisionTree(random_tree(2, rng, NUM_OFFSETS))
        kinds = set()
        for _ in range(400):
            m = mutate(tree, rng, NUM_OFFSETS)
            kinds.add(m.kind)
            check_eq_invariant(tree)
            assert tree.num_nodes() == count_nodes(tree.root)
            for ref in tree.iter_nodes():
                node = ref.node
                assert (node.lt is None) == (node.eq is None) == (node.gt is None)
                if not node.is_leaf:
                    assert 0 <= node.offset_index < NUM_OFFSETS
        assert kinds <= {"grow", "flip", "randomize", "copy", "splat"}
        assert len(kinds) >= 4

    def test_same_seed_same_mutations(self):
        """Mutation choices are reproducible from the generator"""
        base = DecisionTree(random_tree(3, np.random.default_rng(42), NUM_OFFSETS))
        a, b = base.copy(), base.copy()
        ra, rb = np.random.default_rng(7), np.random.default_rng(7)
        for _ in range(50):
            assert mutate(a, ra, NUM_OFFSETS).to_dict() == mutate(b, rb, NUM_OFFSETS).to_dict()
        assert tree_to_dict(a) == tree_to_dict(b)

    def test_source_tree_untouched(self):
        """Mutating a working copy leaves the accepted tree as it was"""
        accepted = DecisionTree(random_tree(3, np.random.default_rng(3), NUM_OFFSETS))
        snapshot = tree_to_dict(accepted)
        rng = np.random.default_rng(8)
        for _ in range(30):
            mutate(accepted.copy(), rng, NUM_OFFSETS)
        assert tree_to_dict(accepted) == snapshot


class TestLeafOperators:
    """Grow and flip"""

    @pytest.mark.parametrize("seed", range(10))
    def test_grow_on_eq_leaf_keeps_non_corner(self, seed):
        """Growing the eq-reachable leaf leaves a non-corner at the end of the eq chain"""
        tree = depth_one()
        ref = tree.nth_element(2)
        assert ref.is_eq and ref.node.is_leaf
        stub = grow(tree, ref, np.random.default_rng(seed), NUM_OFFSETS)
        assert tree.root.eq is stub
        assert not stub.is_leaf
        assert stub.eq.is_leaf and stub.eq.is_corner is False
        assert tree.num_nodes() == 7
        check_eq_invariant(tree)

    @pytest.mark.parametrize("seed", range(10))
    def test_mutate_on_eq_leaf_always_grows(self, seed):
        """An eq-reachable leaf is never flipped, whatever the coin says"""
        tree = DecisionTree(TreeNode.leaf(False))
        m = mutate(tree, np.random.default_rng(seed), NUM_OFFSETS)
        assert m.kind == "grow"
        assert m.node_is_eq is True
        assert tree.num_nodes() == 4
        assert tree.eq_leaf().is_corner is False

    def test_flip_inverts(self):
        tree = depth_one(lt=True)
        ref = tree.nth_element(1)
        flip(ref)
        assert tree.root.lt.is_corner is False

    def test_flip_eq_leaf_rejected(self):
        tree = depth_one()
        with pytest.raises(ValueError):
            flip(tree.nth_element(2))


class TestInternalOperators:
    """Splat and branch copy"""

    def test_splat_non_eq_node(self):
        """Splat on a non-eq internal node leaves a childless leaf"""
        inner = TreeNode.internal(1, TreeNode.leaf(True), TreeNode.leaf(False), TreeNode.leaf(False))
        tree = DecisionTree(TreeNode.internal(0, inner, TreeNode.leaf(False), TreeNode.leaf(True)))
        ref = tree.nth_element(1)
        assert ref.is_eq is False
        splat(ref, np.random.default_rng(0))
        assert inner.is_leaf
        assert inner.lt is None and inner.eq is None and inner.gt is None
        assert inner.is_corner in (True, False)
        assert tree.num_nodes() == 4

    @pytest.mark.parametrize("seed", range(10))
    def test_splat_eq_node_non_corner(self, seed):
        tree = DecisionTree(random_tree(2, np.random.default_rng(seed), NUM_OFFSETS))
        splat(tree.nth_element(0), np.random.default_rng(seed))
        assert tree.num_nodes() == 1
        assert tree.root.is_corner is False

    def test_copy_branch_clones(self):
        tree = depth_one(lt=True, eq=False, gt=False)
        copy_branch(tree.nth_element(0), GT, LT)
        assert tree.root.gt.is_corner is True
        assert tree.root.gt is not tree.root.lt

    def test_copy_into_eq_of_eq_node_normalises(self):
        """A corner copied onto the eq-only path is turned into a non-corner"""
        tree = depth_one(lt=True, eq=False, gt=True)
        copy_branch(tree.nth_element(0), EQ, LT)
        assert tree.root.eq.is_corner is False
        assert tree.root.lt.is_corner is True
        check_eq_invariant(tree)

    def test_copy_into_eq_normalises_deep_subtree(self):
        sub = TreeNode.internal(2, TreeNode.leaf(True), TreeNode.leaf(True), TreeNode.leaf(True))
        sub.eq.is_corner = True  # not eq-reachable where it sits
        tree = DecisionTree(TreeNode.internal(0, sub, TreeNode.leaf(False), TreeNode.leaf(False)))
        copy_branch(tree.nth_element(0), EQ, LT)
        assert tree.root.eq.eq.is_corner is False
        assert tree.root.eq.lt.is_corner is True
        assert tree.root.lt.eq.is_corner is True
        check_eq_invariant(tree)

    def test_copy_into_eq_of_non_eq_node_untouched(self):
        """Below an lt edge the eq slot carries no constraint"""
        inner = TreeNode.internal(1, TreeNode.leaf(True), TreeNode.leaf(False), TreeNode.leaf(False))
        tree = DecisionTree(TreeNode.internal(0, inner, TreeNode.leaf(False), TreeNode.leaf(False)))
        copy_branch(tree.nth_element(1), EQ, LT)
        assert inner.eq.is_corner is True

    def test_copy_same_role_rejected(self):
        tree = depth_one()
        with pytest.raises(ValueError):
            copy_branch(tree.nth_element(0), LT, LT)
