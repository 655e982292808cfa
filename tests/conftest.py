"""Shared fixtures: parameter trees, generators, sorters and prediction trees."""

from __future__ import annotations

import numpy as np
import pytest

from genetic_tuner.genome_builder import GenomeBuilder
from genetic_tuner.genomes import Genome, Population
from genetic_tuner.machine_learning.prediction_tree import GenomePredictionTree, Node
from genetic_tuner.optimization_config import TunerSettings
from genetic_tuner.parameter_space.domains import (
    CategoricalDomain,
    ContinuousDomain,
    DiscreteLogDomain,
    IntegerDomain,
    LogDomain,
)
from genetic_tuner.parameter_space.parameter_tree import AndNode, ParameterTree, ValueNode
from genetic_tuner.search_points import SearchPointSorter
from genetic_tuner.utils.utils import create_rng


class SphereSorter(SearchPointSorter):
    """Orders search points by their squared distance to a target."""

    def __init__(self, target=None):
        self.target = target
        self.sort_calls = 0

    def objective(self, point):
        values = np.asarray(point.values)
        target = np.zeros_like(values) if self.target is None else np.asarray(self.target)
        return float(np.sum((values - target) ** 2))

    def sort(self, points):
        self.sort_calls += 1
        return sorted(range(len(points)), key=lambda i: self.objective(points[i]))


def synthetic_objective(genome) -> float:
    """Smaller is better; optimum at a='x', b=1, c=500, d=2."""
    values = genome.genome.get_gene_values() if hasattr(genome, "genome") else genome.get_gene_values()
    penalty = 0.0 if values["a"] == "x" else 1.0
    return (values["b"] - 1.0) ** 2 + ((values["c"] - 500) / 100) ** 2 + abs(values["d"] - 2) + penalty


class SyntheticGenomeSorter:
    """Genome sorter ranking by ``synthetic_objective`` and recording the instances."""

    def __init__(self):
        self.seen_instances = []

    def sort_genomes(self, genomes, instances):
        self.seen_instances.append(list(instances))
        return sorted(genomes, key=synthetic_objective)


class DictResultStorage:
    """Result storage returning the same results for every genome."""

    def __init__(self, results):
        self.results = results

    def get_run_results(self, genome):
        return dict(self.results)


@pytest.fixture
def rng():
    return create_rng(42)


@pytest.fixture
def tuner_settings(tmp_path):
    return TunerSettings(population_size=16, status_file_directory=str(tmp_path / "status"))


@pytest.fixture
def mixed_tree():
    """a: categorical, b: float in [-5, 5], c: int in [0, 1000], d: int in [0, 3]."""
    root = AndNode(
        [
            ValueNode("a", CategoricalDomain(["x", "y", "z"])),
            ValueNode("b", ContinuousDomain(-5.0, 5.0)),
            ValueNode("c", IntegerDomain(0, 1000)),
            ValueNode("d", IntegerDomain(0, 3)),
        ]
    )
    return ParameterTree(root)


@pytest.fixture
def tolerant_tree():
    """a: categorical, b: unbounded float, c: log float, d: unbounded int, e: discrete log int."""
    root = AndNode(
        [
            ValueNode("a", CategoricalDomain(["first", "second", "third"])),
            ValueNode("b", ContinuousDomain()),
            ValueNode("c", LogDomain(1.0, 16.0)),
            ValueNode("d", IntegerDomain()),
            ValueNode("e", DiscreteLogDomain(2, 16)),
        ]
    )
    return ParameterTree(root)


@pytest.fixture
def builder(mixed_tree, tuner_settings):
    return GenomeBuilder(mixed_tree, tuner_settings)


@pytest.fixture
def genome_sorter():
    return SyntheticGenomeSorter()


@pytest.fixture
def sphere_sorter():
    return SphereSorter()


def make_genome(a="x", b=0.0, c=100, d=1, age=0):
    return Genome.from_values({"a": a, "b": float(b), "c": int(c), "d": int(d)}, age)


@pytest.fixture
def genome_factory():
    return make_genome


@pytest.fixture
def result_storage():
    return DictResultStorage({"instance_1": 1.5, "instance_2": 2.5, "instance_3": 3.5})


@pytest.fixture
def population(builder, tuner_settings, rng):
    """Eight competitive and four non-competitive random genomes of varying age."""
    competitive = [builder.create_random_genome(i % 3, rng) for i in range(8)]
    non_competitive = [builder.create_random_genome(i % 3, rng) for i in range(4)]
    return Population.from_genomes(tuner_settings, competitive, non_competitive)


def leaf(index, value):
    return Node(-1, float(value), -1, -1, index, index)


@pytest.fixture
def balanced_tree():
    """Depth two tree splitting on feature 0, then on feature 1."""
    nodes = [
        Node(0, 0.5, 1, 2, 0, 0),
        Node(1, 0.5, 3, 4, 1, 1),
        Node(1, 0.5, 5, 6, 2, 2),
        leaf(3, 0),
        leaf(4, 1),
        leaf(5, 2),
        leaf(6, 3),
    ]
    return GenomePredictionTree(nodes)


@pytest.fixture
def unbalanced_tree():
    """Tree with a leaf left of the root and a split on feature 1 to the right."""
    nodes = [
        Node(0, 0.5, 1, 2, 0, 0),
        Node(-1, 0.0, -1, -1, 1, 1),
        Node(1, 0.5, 3, 4, 2, 2),
        Node(-1, 1.0, -1, -1, 3, 3),
        Node(-1, 2.0, -1, -1, 4, 4),
    ]
    return GenomePredictionTree(nodes)
