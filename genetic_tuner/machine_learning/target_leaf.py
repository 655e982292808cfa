"""Leaves of a prediction tree reachable by crossing over two parents.

A crossover child takes every feature from one of its two parents. Walking
down a tree, the parents can only disagree at a split if they take
different directions; a child reaching a leaf below such a split must take
the split feature from the parent going in that direction. The computation
collects every reachable leaf together with these feature fixations.

Example:
    >>> parents = ParentGenomesConverted(
    ...     GenomeDoubleRepresentation([0, 1, 1]),
    ...     GenomeDoubleRepresentation([1, 0, 1]),
    ... )
    >>> for leaf in compute_reachable_target_leaves_for_tree(tree, parents):
    ...     print(leaf.current_node.node_index, dict(leaf.fixed_indices))
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from .genome_representation import GenomeDoubleRepresentation
    from .prediction_tree import GenomePredictionTree, Node


class TargetLeafGenomeFixation(Enum):
    """Parent a feature is taken from."""

    FIXED_TO_COMPETITIVE_PARENT = "competitive"
    FIXED_TO_NON_COMPETITIVE_PARENT = "non_competitive"

    @classmethod
    def from_string(cls, value: str) -> TargetLeafGenomeFixation:
        """Create from string value."""
        mapping = {
            "competitive": cls.FIXED_TO_COMPETITIVE_PARENT,
            "non_competitive": cls.FIXED_TO_NON_COMPETITIVE_PARENT,
        }
        try:
            return mapping[value.lower()]
        except KeyError:
            msg = f"Unknown genome fixation '{value}'"
            raise ValueError(msg) from None


@dataclass(frozen=True)
class ParentGenomesConverted:
    """The two crossover parents in their real-valued representation."""

    competitive_parent: GenomeDoubleRepresentation
    non_competitive_parent: GenomeDoubleRepresentation

    @property
    def length_of_double_representation(self) -> int:
        return len(self.competitive_parent)

    def get_parent_to_follow(self, fixation: TargetLeafGenomeFixation) -> GenomeDoubleRepresentation:
        if fixation is TargetLeafGenomeFixation.FIXED_TO_COMPETITIVE_PARENT:
            return self.competitive_parent
        return self.non_competitive_parent

    def get_other_parent(self, fixation: TargetLeafGenomeFixation) -> GenomeDoubleRepresentation:
        if fixation is TargetLeafGenomeFixation.FIXED_TO_COMPETITIVE_PARENT:
            return self.non_competitive_parent
        return self.competitive_parent


class TreeNodeAndFixations:
    """A tree node together with the feature fixations needed to reach it.

    The fixation mapping is read-only. Adding fixations creates a new
    instance; instances without new fixations share their mapping.

    Args:
        current_node: The node.
        fixed_indices: Feature index to the parent it is fixed to.
    """

    __slots__ = ("current_node", "_fixed_indices")

    def __init__(
        self,
        current_node: Node,
        fixed_indices: Mapping[int, TargetLeafGenomeFixation] | None = None,
    ) -> None:
        self.current_node = current_node
        if isinstance(fixed_indices, MappingProxyType):
            self._fixed_indices = fixed_indices
        else:
            self._fixed_indices = MappingProxyType(dict(fixed_indices or {}))

    @property
    def fixed_indices(self) -> Mapping[int, TargetLeafGenomeFixation]:
        return self._fixed_indices

    def with_node(self, node: Node) -> TreeNodeAndFixations:
        """Same fixations at another node."""
        return TreeNodeAndFixations(node, self._fixed_indices)

    def with_fixations(
        self,
        node: Node,
        feature_indices: Iterable[int],
        fixation: TargetLeafGenomeFixation,
    ) -> TreeNodeAndFixations:
        """Another node with additional fixations."""
        fixed_indices = dict(self._fixed_indices)
        for feature_index in feature_indices:
            fixed_indices[feature_index] = fixation
        return TreeNodeAndFixations(node, MappingProxyType(fixed_indices))

    def copy(self) -> TreeNodeAndFixations:
        return TreeNodeAndFixations(self.current_node, self._fixed_indices)

    def is_fixed_to_other_parent(self, feature_index: int, fixation: TargetLeafGenomeFixation) -> bool:
        current = self._fixed_indices.get(feature_index)
        return current is not None and current is not fixation

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TreeNodeAndFixations):
            return NotImplemented
        return self.current_node == other.current_node and dict(self._fixed_indices) == dict(other._fixed_indices)

    def __hash__(self) -> int:
        return hash((self.current_node, frozenset(self._fixed_indices.items())))

    def __repr__(self) -> str:
        fixations = {index: fixation.value for index, fixation in sorted(self._fixed_indices.items())}
        return f"TreeNodeAndFixations(node={self.current_node.node_index}, fixations={fixations})"


def compute_reachable_target_leaves_for_tree(
    tree: GenomePredictionTree,
    parent_genomes: ParentGenomesConverted,
    categorical_index_sets: Mapping[int, Iterable[int]] | None = None,
) -> Iterator[TreeNodeAndFixations]:
    """Yield every leaf reachable by a crossover child of the parents.

    Nodes are visited breadth first. Where the parents take the same
    direction no fixation is needed. Where they diverge, each parent may
    continue unless the split feature is already fixed to the other parent.

    Args:
        tree: Prediction tree to traverse.
        parent_genomes: The crossover parents.
        categorical_index_sets: For features of a categorical parameter that
            spans several columns, all columns of that parameter. Fixing one
            of them fixes all.

    Yields:
        A leaf with the fixations needed to reach it.
    """
    if categorical_index_sets is None:
        categorical_index_sets = {}

    queue = deque([TreeNodeAndFixations(tree.root)])
    while queue:
        current = queue.popleft()
        node = current.current_node
        if node.is_leaf():
            yield current.copy()
            continue

        competitive_goes_left = _parent_goes_left(parent_genomes.competitive_parent, node)
        non_competitive_goes_left = _parent_goes_left(parent_genomes.non_competitive_parent, node)
        if competitive_goes_left == non_competitive_goes_left:
            queue.append(current.with_node(_child(tree, node, goes_left=competitive_goes_left)))
            continue

        for fixation in TargetLeafGenomeFixation:
            if current.is_fixed_to_other_parent(node.feature_index, fixation):
                continue
            parent = parent_genomes.get_parent_to_follow(fixation)
            child = _child(tree, node, goes_left=_parent_goes_left(parent, node))
            fixed_features = categorical_index_sets.get(node.feature_index, (node.feature_index,))
            queue.append(current.with_fixations(child, fixed_features, fixation))


def _parent_goes_left(parent: GenomeDoubleRepresentation, node: Node) -> bool:
    return parent[node.feature_index] <= node.value


def _child(tree: GenomePredictionTree, node: Node, *, goes_left: bool) -> Node:
    return tree.nodes[node.left_index if goes_left else node.right_index]
