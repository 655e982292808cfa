"""Search points backed by genomes, and the sorters ranking them.

* ``ContinuizedGenomeSearchPoint`` covers every parameter; categorical
  parameters are represented by their index (global CMA-ES).
* ``PartialGenomeSearchPoint`` covers only the continuous parameters and
  keeps all other genes of an underlying genome (local CMA-ES).
* ``GenomeSearchPoint`` covers only the continuous parameters without any
  bounds; invalid points are reported instead of repaired (JADE).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

import numpy as np
from numpy.typing import NDArray

from ..genome_transformation import TolerantGenomeTransformation
from ..genomes import Genome, ImmutableGenome
from ..parameter_space.domains import CategoricalDomain, NumericalDomain
from ..search_points import BoundedSearchPoint, SearchPoint, map_into_bounds, standardize_values
from .base import GenomeAssistedSorter
from .converter import GenomeSearchPointConverter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..genome_builder import GenomeBuilder
    from ..parameter_space.parameter_tree import ParameterTree


class _RepairedGenomePoint(BoundedSearchPoint):
    """Bounded search point with an underlying genome that may have been repaired."""

    def __init__(
        self,
        values: Sequence[float] | NDArray,
        lower_bounds: Sequence[float] | NDArray,
        upper_bounds: Sequence[float] | NDArray,
        genome: ImmutableGenome,
        *,
        is_repaired: bool = False,
    ) -> None:
        super().__init__(values, lower_bounds, upper_bounds)
        if genome is None:
            msg = "Genome must not be None"
            raise TypeError(msg)
        self.genome = genome
        self.is_repaired = is_repaired

    @staticmethod
    def _repair_if_invalid(genome: Genome, builder: GenomeBuilder, rng: np.random.Generator) -> bool:
        if builder.is_genome_valid(genome):
            return False
        builder.make_genome_valid(genome, rng)
        return True

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["genome"] = self.genome.genome.to_dict()
        data["is_repaired"] = self.is_repaired
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> _RepairedGenomePoint:
        return cls(
            data["values"],
            data["lower_bounds"],
            data["upper_bounds"],
            ImmutableGenome(Genome.from_dict(data["genome"])),
            is_repaired=data["is_repaired"],
        )

    def __str__(self) -> str:
        return str(self.genome)


class ContinuizedGenomeSearchPoint(_RepairedGenomePoint):
    """Search point representing a complete genome.

    Dimensions follow the parameters ordered by identifier. Categorical
    parameters are bounded by ``[0, number of values - 1]``, numerical ones
    by their domain.
    """

    type_name = "continuized_genome_search_point"

    @classmethod
    def from_values(
        cls,
        values: Sequence[float] | NDArray,
        transformation: TolerantGenomeTransformation,
        builder: GenomeBuilder,
        lower_bounds: Sequence[float] | NDArray,
        upper_bounds: Sequence[float] | NDArray,
        rng: np.random.Generator,
    ) -> ContinuizedGenomeSearchPoint:
        """Decode standardized values into a genome, repairing it if necessary."""
        if transformation is None or builder is None:
            msg = "Search point needs a genome transformation and a genome builder"
            raise TypeError(msg)
        gene_values = transformation.round_to_valid_values(map_into_bounds(values, lower_bounds, upper_bounds))
        genome = transformation.convert_back(gene_values)
        is_repaired = cls._repair_if_invalid(genome, builder, rng)
        return cls(values, lower_bounds, upper_bounds, ImmutableGenome(genome), is_repaired=is_repaired)

    @classmethod
    def create_from_genome(cls, genome: Genome, tree: ParameterTree) -> ContinuizedGenomeSearchPoint:
        """Search point decoding into the given genome."""
        if genome is None or tree is None:
            msg = "Genome and parameter tree must not be None"
            raise TypeError(msg)
        values = TolerantGenomeTransformation(tree).convert_genome_to_array(genome)
        lower, upper = cls.obtain_parameter_bounds(tree)
        return cls(standardize_values(values, lower, upper), lower, upper, ImmutableGenome(genome))

    @staticmethod
    def obtain_parameter_bounds(tree: ParameterTree) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Bounds of all parameters, ordered by identifier.

        Raises:
            NotImplementedError: If a domain is neither categorical nor numerical.
        """
        parameters = tree.get_parameters(sort_by_identifier=True)
        lower = np.zeros(len(parameters))
        upper = np.zeros(len(parameters))
        for dimension, parameter in enumerate(parameters):
            domain = parameter.domain
            if isinstance(domain, CategoricalDomain):
                upper[dimension] = domain.domain_size - 1
            elif isinstance(domain, NumericalDomain):
                lower[dimension] = domain.minimum
                upper[dimension] = domain.maximum
            else:
                msg = (
                    "All domains should either be categorical or numerical, but the one of "
                    f"parameter '{parameter.identifier}' is {type(domain).__name__}"
                )
                raise NotImplementedError(msg)
        return lower, upper


class PartialGenomeSearchPoint(_RepairedGenomePoint):
    """Search point over the continuous parameters of an underlying genome."""

    type_name = "partial_genome_search_point"

    @classmethod
    def from_underlying_genome(
        cls,
        underlying_genome: ImmutableGenome,
        values: Sequence[float] | NDArray,
        converter: GenomeSearchPointConverter,
        builder: GenomeBuilder,
        lower_bounds: Sequence[float] | NDArray,
        upper_bounds: Sequence[float] | NDArray,
        rng: np.random.Generator,
    ) -> PartialGenomeSearchPoint:
        """Merge the decoded values into the underlying genome, repairing it if necessary."""
        if converter is None or builder is None:
            msg = "Search point needs a converter and a genome builder"
            raise TypeError(msg)
        genome = converter.merge_into_genome(map_into_bounds(values, lower_bounds, upper_bounds), underlying_genome)
        is_repaired = cls._repair_if_invalid(genome, builder, rng)
        return cls(values, lower_bounds, upper_bounds, ImmutableGenome(genome), is_repaired=is_repaired)

    @classmethod
    def create_from_genome(
        cls,
        genome: Genome,
        tree: ParameterTree,
        minimum_domain_size: int,
    ) -> PartialGenomeSearchPoint:
        if genome is None:
            msg = "Genome must not be None"
            raise TypeError(msg)
        converter = GenomeSearchPointConverter(tree, minimum_domain_size)
        lower, upper = converter.obtain_parameter_bounds()
        values = converter.transform_genome_into_values(genome)
        return cls(standardize_values(values, lower, upper), lower, upper, ImmutableGenome(genome))

    @staticmethod
    def obtain_parameter_bounds(
        tree: ParameterTree,
        minimum_domain_size: int,
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        return GenomeSearchPointConverter(tree, minimum_domain_size).obtain_parameter_bounds()


class GenomeSearchPoint(SearchPoint):
    """Unbounded search point over the continuous parameters of a genome.

    The point is valid if the merged genome is valid according to the genome
    builder.

    Args:
        values: Values of the continuous parameters.
        genome: Genome with the values merged in.
        converter: Converter that produced the genome.
        is_valid: Whether the genome is valid.
    """

    type_name = "genome_search_point"

    def __init__(
        self,
        values: Sequence[float] | NDArray,
        genome: Genome,
        converter: GenomeSearchPointConverter,
        *,
        is_valid: bool,
    ) -> None:
        super().__init__(values)
        if genome is None or converter is None:
            msg = "Genome and converter must not be None"
            raise TypeError(msg)
        self._genome = genome.copy()
        self.converter = converter
        self._is_valid = is_valid

    @classmethod
    def from_underlying_genome(
        cls,
        values: Sequence[float] | NDArray,
        converter: GenomeSearchPointConverter,
        underlying_genome: ImmutableGenome,
        builder: GenomeBuilder,
    ) -> GenomeSearchPoint:
        if builder is None:
            msg = "Genome builder must not be None"
            raise TypeError(msg)
        genome = converter.merge_into_genome(values, underlying_genome)
        return cls(values, genome, converter, is_valid=builder.is_genome_valid(genome))

    @classmethod
    def from_parent(
        cls,
        values: Sequence[float] | NDArray,
        parent: GenomeSearchPoint,
        builder: GenomeBuilder,
    ) -> GenomeSearchPoint:
        """Point sharing the parent's discrete genes."""
        return cls.from_underlying_genome(values, parent.converter, parent.genome, builder)

    @classmethod
    def create_from_genome(
        cls,
        genome: Genome,
        converter: GenomeSearchPointConverter,
        builder: GenomeBuilder,
    ) -> GenomeSearchPoint:
        if genome is None:
            msg = "Genome must not be None"
            raise TypeError(msg)
        values = converter.transform_genome_into_values(genome)
        return cls.from_underlying_genome(values, converter, ImmutableGenome(genome), builder)

    @classmethod
    def base_random_point_on_genome(
        cls,
        genome: Genome,
        converter: GenomeSearchPointConverter,
        builder: GenomeBuilder,
        rng: np.random.Generator,
    ) -> GenomeSearchPoint:
        """Point with random continuous values and the genome's other genes."""
        values = converter.randomly_create_real_valued_parameter_values(rng)
        return cls.from_underlying_genome(values, converter, ImmutableGenome(genome), builder)

    @property
    def genome(self) -> ImmutableGenome:
        return ImmutableGenome(self._genome)

    def is_valid(self) -> bool:
        return self._is_valid and super().is_valid()

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["genome"] = self._genome.to_dict()
        data["is_valid"] = self._is_valid
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], converter: GenomeSearchPointConverter) -> GenomeSearchPoint:
        return cls(data["values"], Genome.from_dict(data["genome"]), converter, is_valid=data["is_valid"])

    def __str__(self) -> str:
        return str(self._genome)


RepairedPointT = TypeVar("RepairedPointT", bound=_RepairedGenomePoint)


class RepairedGenomeSearchPointSorter(GenomeAssistedSorter[RepairedPointT]):
    """Sorts points by their genomes' ranks, putting repaired points last."""

    def sort(self, points: Sequence[RepairedPointT]) -> list[int]:
        ranks = self._rank_genomes([point.genome for point in points])
        return sorted(range(len(points)), key=lambda i: (points[i].is_repaired, ranks[i]))


class GenomeSearchPointSorter(GenomeAssistedSorter[GenomeSearchPoint]):
    """Sorts JADE points by their genomes' ranks."""

    def sort(self, points: Sequence[GenomeSearchPoint]) -> list[int]:
        ranks = self._rank_genomes([point.genome for point in points])
        return sorted(range(len(points)), key=ranks.__getitem__)
