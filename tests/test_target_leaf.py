"""
Test suite for the computation of target leaves reachable by crossover.
"""

import pytest

from genetic_tuner.machine_learning.genome_representation import GenomeDoubleRepresentation
from genetic_tuner.machine_learning.prediction_tree import GenomePredictionTree, Node
from genetic_tuner.machine_learning.target_leaf import (
    ParentGenomesConverted,
    TargetLeafGenomeFixation,
    TreeNodeAndFixations,
    compute_reachable_target_leaves_for_tree,
)

COMPETITIVE = TargetLeafGenomeFixation.FIXED_TO_COMPETITIVE_PARENT
NON_COMPETITIVE = TargetLeafGenomeFixation.FIXED_TO_NON_COMPETITIVE_PARENT


def parents(competitive, non_competitive):
    return ParentGenomesConverted(
        GenomeDoubleRepresentation(competitive),
        GenomeDoubleRepresentation(non_competitive),
    )


def reachable(tree, competitive, non_competitive, categorical_index_sets=None):
    leaves = compute_reachable_target_leaves_for_tree(
        tree, parents(competitive, non_competitive), categorical_index_sets
    )
    return {leaf.current_node.node_index: dict(leaf.fixed_indices) for leaf in leaves}


class TestReachableTargetLeaves:
    """Test which leaves a crossover child can reach."""

    def test_diverging_parents_reach_all_leaves(self, balanced_tree):
        """Parents diverging at every split reach every leaf."""
        leaves = reachable(balanced_tree, [0, 1, 1], [1, 0, 1])

        assert leaves == {
            3: {0: COMPETITIVE, 1: NON_COMPETITIVE},
            4: {0: COMPETITIVE, 1: COMPETITIVE},
            5: {0: NON_COMPETITIVE, 1: NON_COMPETITIVE},
            6: {0: NON_COMPETITIVE, 1: COMPETITIVE},
        }

    def test_parents_agreeing_at_root(self, balanced_tree):
        """Agreeing splits need no fixation."""
        leaves = reachable(balanced_tree, [0, 0, 0], [0, 1, 1])

        assert leaves == {3: {1: COMPETITIVE}, 4: {1: NON_COMPETITIVE}}

    def test_identical_paths(self, balanced_tree):
        """Parents taking the same path reach a single leaf without fixations."""
        assert reachable(balanced_tree, [0, 1, 0], [0, 1, 1]) == {4: {}}

    def test_unbalanced_tree(self, unbalanced_tree):
        """Leaves at different depths are reached with their own fixations."""
        leaves = reachable(unbalanced_tree, [0, 0, 0], [1, 1, 1])

        assert leaves == {
            1: {0: COMPETITIVE},
            3: {0: NON_COMPETITIVE, 1: COMPETITIVE},
            4: {0: NON_COMPETITIVE, 1: NON_COMPETITIVE},
        }

    def test_unbalanced_tree_single_leaf(self, unbalanced_tree):
        """Agreeing at the root leads into the leaf next to it."""
        assert reachable(unbalanced_tree, [0, 0, 0], [0, 1, 1]) == {1: {}}

    def test_conflicting_fixation_is_pruned(self):
        """A feature fixed to one parent cannot be taken from the other further down."""
        tree = GenomePredictionTree(
            [
                Node(0, 0.5, 1, 2, 0, 0),
                Node(0, 0.25, 3, 4, 1, 1),
                Node(-1, 0.0, -1, -1, 2, 2),
                Node(-1, 1.0, -1, -1, 3, 3),
                Node(-1, 2.0, -1, -1, 4, 4),
            ]
        )

        leaves = reachable(tree, [0.0], [1.0])

        assert leaves == {2: {0: NON_COMPETITIVE}, 3: {0: COMPETITIVE}}

    def test_categorical_columns_are_fixed_together(self, balanced_tree):
        """Fixing one column of a categorical parameter fixes all of its columns."""
        leaves = reachable(balanced_tree, [0, 1, 1], [1, 0, 1], {0: [0, 1], 1: [0, 1]})

        assert leaves == {
            4: {0: COMPETITIVE, 1: COMPETITIVE},
            5: {0: NON_COMPETITIVE, 1: NON_COMPETITIVE},
        }

    def test_leaves_are_yielded_breadth_first(self, unbalanced_tree):
        """Shallow leaves come first."""
        leaves = compute_reachable_target_leaves_for_tree(unbalanced_tree, parents([0, 0, 0], [1, 1, 1]))

        assert [leaf.current_node.node_index for leaf in leaves] == [1, 3, 4]

    def test_empty_tree(self):
        """Trees without nodes have no root to start from."""
        with pytest.raises(ValueError):
            list(compute_reachable_target_leaves_for_tree(GenomePredictionTree([]), parents([0], [1])))


class TestTreeNodeAndFixations:
    """Test the copy-on-write fixation container."""

    def test_moving_shares_fixations(self, balanced_tree):
        """Moving to another node keeps the same mapping."""
        start = TreeNodeAndFixations(balanced_tree.root, {0: COMPETITIVE})

        moved = start.with_node(balanced_tree.nodes[1])

        assert moved.fixed_indices is start.fixed_indices
        assert moved.current_node.node_index == 1

    def test_new_fixations_do_not_change_original(self, balanced_tree):
        """Adding fixations creates a new mapping."""
        start = TreeNodeAndFixations(balanced_tree.root, {0: COMPETITIVE})

        extended = start.with_fixations(balanced_tree.nodes[2], [1, 2], NON_COMPETITIVE)

        assert dict(start.fixed_indices) == {0: COMPETITIVE}
        assert dict(extended.fixed_indices) == {0: COMPETITIVE, 1: NON_COMPETITIVE, 2: NON_COMPETITIVE}

    def test_fixations_are_read_only(self, balanced_tree):
        """The mapping cannot be modified."""
        node_and_fixations = TreeNodeAndFixations(balanced_tree.root)

        with pytest.raises(TypeError):
            node_and_fixations.fixed_indices[0] = COMPETITIVE

    def test_fixed_to_other_parent(self, balanced_tree):
        """Only fixations to the other parent conflict."""
        node_and_fixations = TreeNodeAndFixations(balanced_tree.root, {0: COMPETITIVE})

        assert node_and_fixations.is_fixed_to_other_parent(0, NON_COMPETITIVE)
        assert not node_and_fixations.is_fixed_to_other_parent(0, COMPETITIVE)
        assert not node_and_fixations.is_fixed_to_other_parent(1, NON_COMPETITIVE)

    def test_equality(self, balanced_tree):
        """Equal nodes with equal fixations are equal."""
        first = TreeNodeAndFixations(balanced_tree.root, {0: COMPETITIVE})
        second = TreeNodeAndFixations(balanced_tree.root, {0: COMPETITIVE})

        assert first == second
        assert hash(first) == hash(second)
        assert first == first.copy()
        assert first != TreeNodeAndFixations(balanced_tree.root)


class TestParentGenomesConverted:
    """Test parent selection by fixation."""

    def test_parent_to_follow(self):
        """Fixations select their parent and its counterpart."""
        converted = parents([0.0, 1.0], [1.0, 0.0])

        assert converted.get_parent_to_follow(COMPETITIVE) == [0.0, 1.0]
        assert converted.get_other_parent(COMPETITIVE) == [1.0, 0.0]
        assert converted.get_parent_to_follow(NON_COMPETITIVE) == [1.0, 0.0]
        assert converted.length_of_double_representation == 2

    def test_fixation_from_string(self):
        """Fixations parse from their names."""
        assert TargetLeafGenomeFixation.from_string("Competitive") is COMPETITIVE
        with pytest.raises(ValueError):
            TargetLeafGenomeFixation.from_string("both")
