"""
Test suite for prediction trees and their genome feature vectors.
"""

import numpy as np
import pytest
from sklearn.ensemble import RandomForestRegressor
from sklearn.exceptions import NotFittedError
from sklearn.tree import DecisionTreeRegressor

from genetic_tuner.genome_transformation import GenomeTransformation
from genetic_tuner.machine_learning.genome_representation import GenomeDoubleRepresentation
from genetic_tuner.machine_learning.prediction_tree import (
    GenomePredictionTree,
    Node,
    trees_from_sklearn_forest,
)
from genetic_tuner.optimization_config import CategoricalEncodingType


def grid_data():
    features = np.array([[x, y] for x in range(6) for y in range(4)], dtype=float)
    targets = features[:, 0] * 2 + (features[:, 1] > 1) * 5
    return features, targets


def query_points():
    # thresholds of trees fitted on the integer grid are midpoints
    return [np.array([x + 0.25, y + 0.25]) for x in range(-1, 6) for y in range(-1, 4)]


class TestGenomePredictionTree:
    """Test prediction trees."""

    def test_nodes_are_required(self):
        """A tree needs a node list."""
        with pytest.raises(TypeError):
            GenomePredictionTree(None)

    def test_empty_tree_has_no_root(self):
        """Accessing the root of an empty tree raises."""
        with pytest.raises(ValueError, match="Tree is empty"):
            _ = GenomePredictionTree([]).root

    def test_leaf_detection(self):
        """Negative feature indices mark leaves."""
        assert Node(-1, 0.0, -1, -1, 0, 0).is_leaf()
        assert not Node(0, 0.5, 1, 2, 0, 0).is_leaf()

    def test_prediction_follows_splits(self, balanced_tree):
        """Values at most the split value go left."""
        assert balanced_tree.predict([0.0, 0.0]) == 0.0
        assert balanced_tree.predict([0.5, 0.6]) == 1.0
        assert balanced_tree.predict([0.6, 0.5]) == 2.0
        assert balanced_tree.predict([1.0, 1.0]) == 3.0
        assert balanced_tree.find_leaf([1.0, 1.0]).node_index == 6

    def test_from_fitted_regressor(self):
        """Converted trees predict like the scikit-learn tree."""
        features, targets = grid_data()
        estimator = DecisionTreeRegressor(max_depth=3, random_state=0).fit(features, targets)

        tree = GenomePredictionTree.from_sklearn(estimator)

        assert len(tree) == estimator.tree_.node_count
        for point in query_points():
            assert tree.predict(point) == pytest.approx(estimator.predict(point.reshape(1, -1))[0])
        np.testing.assert_allclose(tree.variable_importance, estimator.feature_importances_)

    def test_unfitted_regressor(self):
        """Unfitted estimators cannot be converted."""
        with pytest.raises(NotFittedError):
            GenomePredictionTree.from_sklearn(DecisionTreeRegressor())

    def test_forest_conversion(self):
        """Averaging the converted trees reproduces the forest's predictions."""
        features, targets = grid_data()
        forest = RandomForestRegressor(n_estimators=4, max_depth=4, random_state=0).fit(features, targets)

        trees = trees_from_sklearn_forest(forest)

        assert len(trees) == 4
        for point in query_points():
            mean_prediction = np.mean([tree.predict(point) for tree in trees])
            assert mean_prediction == pytest.approx(forest.predict(point.reshape(1, -1))[0])


class TestGenomeDoubleRepresentation:
    """Test the value semantics of genome feature vectors."""

    def test_from_genome(self, mixed_tree, genome_factory):
        """Genomes are converted by the given transformation."""
        genome = genome_factory(a="y", b=0.5, c=3, d=1)

        ordinal = GenomeDoubleRepresentation.from_genome(genome, GenomeTransformation(mixed_tree))
        one_hot = GenomeDoubleRepresentation.from_genome(
            genome, GenomeTransformation(mixed_tree, CategoricalEncodingType.ONE_HOT)
        )

        assert ordinal == [1.0, 0.5, 3.0, 1.0]
        assert one_hot == [0.0, 1.0, 0.0, 0.5, 3.0, 1.0]
        assert len(one_hot) == 6

    def test_value_equality_and_hashing(self):
        """Equal values are equal keys."""
        first = GenomeDoubleRepresentation([1, 2.5])
        second = GenomeDoubleRepresentation.from_array(np.array([1.0, 2.5]))

        assert first == second
        assert {first: "x"}[second] == "x"
        assert first != GenomeDoubleRepresentation([1.0, 2.6])
        assert first == np.array([1.0, 2.5])

    def test_identifier_string(self):
        """Identifier strings round values to 6 decimals."""
        representation = GenomeDoubleRepresentation([0.12345678, 2.0])

        identifier = representation.to_identifier_string()

        assert identifier == "[0.123457, 2.0]"
        assert GenomeDoubleRepresentation.from_identifier_string(identifier) == [0.123457, 2.0]

    def test_array_is_a_copy(self):
        """Modifying the array does not change the representation."""
        representation = GenomeDoubleRepresentation([1.0, 2.0])
        array = representation.to_array()
        array[0] = 7.0

        assert representation[0] == 1.0
        assert list(representation) == [1.0, 2.0]
