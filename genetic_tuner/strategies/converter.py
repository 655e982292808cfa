"""Conversion between genomes and the real-valued part of their genes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from ..parameter_space.domains import NumericalDomain

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..genomes import Genome, ImmutableGenome
    from ..parameter_space.parameter_tree import ParameterNode, ParameterTree


class GenomeSearchPointConverter:
    """Extracts continuous gene values from genomes and merges them back.

    A parameter is considered continuous if its domain is float valued, or
    integer valued with at least ``minimum_domain_size`` values. Parameters
    are ordered by identifier.

    Args:
        tree: Parameter tree of the genomes.
        minimum_domain_size: Smallest integer domain treated as continuous.
    """

    def __init__(self, tree: ParameterTree, minimum_domain_size: int) -> None:
        if tree is None:
            msg = "Parameter tree must not be None"
            raise TypeError(msg)
        self.minimum_domain_size = minimum_domain_size
        self.continuous_parameters = self.extract_continuous_parameters(tree, minimum_domain_size)

    @property
    def dimension(self) -> int:
        return len(self.continuous_parameters)

    @staticmethod
    def extract_continuous_parameters(tree: ParameterTree, minimum_domain_size: int) -> list[ParameterNode]:
        return [
            parameter
            for parameter in tree.get_parameters(sort_by_identifier=True)
            if _is_considered_continuous(parameter, minimum_domain_size)
        ]

    def obtain_parameter_bounds(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Lower and upper bound of every continuous parameter."""
        lower = np.array([p.domain.minimum for p in self.continuous_parameters], dtype=np.float64)
        upper = np.array([p.domain.maximum for p in self.continuous_parameters], dtype=np.float64)
        return lower, upper

    def transform_genome_into_values(self, genome: Genome | ImmutableGenome) -> NDArray[np.float64]:
        if genome is None:
            msg = "Genome must not be None"
            raise TypeError(msg)
        return np.array(
            [float(genome.get_gene_value(p.identifier).value) for p in self.continuous_parameters],
            dtype=np.float64,
        )

    def randomly_create_real_valued_parameter_values(self, rng: np.random.Generator) -> NDArray[np.float64]:
        return np.array(
            [float(p.domain.generate_random_gene_value(rng).value) for p in self.continuous_parameters],
            dtype=np.float64,
        )

    def merge_into_genome(self, values: Sequence[float] | NDArray, base_genome: ImmutableGenome) -> Genome:
        """Copy of the base genome with the continuous genes replaced by ``values``.

        Integer genes are rounded half to even. The result is not marked as
        engineered.

        Raises:
            TypeError: If values or base genome are None.
            ValueError: If the number of values does not match.
        """
        if values is None or base_genome is None:
            msg = "Values and base genome must not be None"
            raise TypeError(msg)
        if len(values) != self.dimension:
            identifiers = ", ".join(p.identifier for p in self.continuous_parameters)
            msg = (
                f"Real-valued parameters are {identifiers} (Total: {self.dimension}), "
                f"but {len(values)} values were provided"
            )
            raise ValueError(msg)

        genome = base_genome.create_mutable_genome()
        for parameter, value in zip(self.continuous_parameters, values):
            if parameter.domain.value_type is float:
                genome.set_gene(parameter.identifier, float(value))
            else:
                genome.set_gene(parameter.identifier, int(np.rint(value)))
        genome.is_engineered = False
        return genome


def _is_considered_continuous(parameter: ParameterNode, minimum_domain_size: int) -> bool:
    domain = parameter.domain
    if not isinstance(domain, NumericalDomain):
        return False
    return domain.value_type is float or domain.domain_size >= minimum_domain_size
