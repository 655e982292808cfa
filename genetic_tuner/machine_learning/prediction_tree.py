"""Binary regression trees predicting genome performance.

Trees are stored as flat node lists. A sample goes to the left child of a
split node if its value of the split feature is at most the split value,
which matches the convention of scikit-learn's fitted trees.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray
from sklearn.utils.validation import check_is_fitted

if TYPE_CHECKING:
    from collections.abc import Sequence


logger = logging.getLogger(__name__)

LEAF_FEATURE_INDEX = -1


@dataclass(frozen=True)
class Node:
    """Node of a prediction tree.

    Attributes:
        feature_index: Index of the split feature; negative for leaves.
        value: Split value, or the prediction of a leaf.
        left_index: Index of the left child in the tree's node list.
        right_index: Index of the right child in the tree's node list.
        node_index: Index of this node.
        leaf_probability_index: Index into the tree's leaf probabilities.
    """

    feature_index: int
    value: float
    left_index: int
    right_index: int
    node_index: int
    leaf_probability_index: int

    def is_leaf(self) -> bool:
        return self.feature_index < 0


class GenomePredictionTree:
    """A regression tree over genome feature vectors.

    Args:
        nodes: Nodes, root first.
        probabilities: Optional leaf probabilities.
        target_labels: Optional target labels.
        variable_importance: Optional importance per feature.
    """

    def __init__(
        self,
        nodes: Sequence[Node],
        probabilities: Sequence[Sequence[float]] | None = None,
        target_labels: Sequence[float] | None = None,
        variable_importance: Sequence[float] | None = None,
    ) -> None:
        if nodes is None:
            msg = "Nodes must not be None"
            raise TypeError(msg)
        self.nodes: tuple[Node, ...] = tuple(nodes)
        self.probabilities = [list(p) for p in probabilities] if probabilities is not None else []
        self.target_labels = np.asarray(target_labels if target_labels is not None else [], dtype=np.float64)
        self.variable_importance = np.asarray(
            variable_importance if variable_importance is not None else [], dtype=np.float64
        )

    @property
    def root(self) -> Node:
        """The root node.

        Raises:
            ValueError: If the tree has no nodes.
        """
        if not self.nodes:
            msg = "Tree is empty. Cannot access Root Node!"
            raise ValueError(msg)
        return self.nodes[0]

    def find_leaf(self, features: Sequence[float] | NDArray) -> Node:
        node = self.root
        while not node.is_leaf():
            goes_left = features[node.feature_index] <= node.value
            node = self.nodes[node.left_index if goes_left else node.right_index]
        return node

    def predict(self, features: Sequence[float] | NDArray) -> float:
        """Prediction of the leaf the features end up in."""
        return float(self.find_leaf(features).value)

    @classmethod
    def from_sklearn(cls, estimator: Any) -> GenomePredictionTree:
        """Convert a fitted scikit-learn decision tree regressor.

        Raises:
            sklearn.exceptions.NotFittedError: If the estimator is not fitted.
        """
        check_is_fitted(estimator)
        tree = estimator.tree_
        nodes = []
        for index in range(tree.node_count):
            is_leaf = tree.children_left[index] == tree.children_right[index]
            nodes.append(
                Node(
                    feature_index=LEAF_FEATURE_INDEX if is_leaf else int(tree.feature[index]),
                    value=float(tree.value[index].ravel()[0] if is_leaf else tree.threshold[index]),
                    left_index=int(tree.children_left[index]),
                    right_index=int(tree.children_right[index]),
                    node_index=index,
                    leaf_probability_index=index,
                )
            )
        return cls(nodes, variable_importance=estimator.feature_importances_)

    def __len__(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        return f"GenomePredictionTree(nodes={len(self.nodes)})"


def trees_from_sklearn_forest(forest: Any) -> list[GenomePredictionTree]:
    """Convert every tree of a fitted scikit-learn random forest regressor."""
    check_is_fitted(forest)
    trees = [GenomePredictionTree.from_sklearn(estimator) for estimator in forest.estimators_]
    logger.debug("Converted %d trees of %s.", len(trees), type(forest).__name__)
    return trees
