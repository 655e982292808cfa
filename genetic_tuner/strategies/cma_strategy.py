"""Population update strategies running CMA-ES phases.

The global strategy searches over all parameters, starting from the
incumbent (or the mean of the competitive population) and replacing the
competitive population by the final CMA-ES generation. The local strategy
only varies the continuous parameters of the incumbent and replaces a share
of the competitive population.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

import numpy as np

from ..cma_es import CmaEs, CmaEsConfiguration, CmaEsStatus
from ..genome_transformation import TolerantGenomeTransformation
from ..genomes import ImmutableGenome
from ..termination_criteria import ConditionCov, MaxIterations, NoEffectAxis, NoEffectCoord, TolUpSigma
from ..utils.utils import choose_random_subset
from .base import ContinuousOptimizationStrategy, ContinuousOptimizationStrategyStatus
from .converter import GenomeSearchPointConverter
from .genome_search_points import (
    ContinuizedGenomeSearchPoint,
    PartialGenomeSearchPoint,
    RepairedGenomeSearchPointSorter,
    RepairedPointT,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray

    from ..genome_builder import GenomeBuilder
    from ..genomes import Genome, Population
    from ..optimization_config import CmaEsStrategySettings, TunerSettings
    from ..parameter_space.parameter_tree import ParameterTree
    from ..termination_criteria import TerminationCriterion
    from .base import GenomeSorter, IncumbentGenomeWrapper, ResultStorage


logger = logging.getLogger(__name__)


class CmaEsStrategyStatus(ContinuousOptimizationStrategyStatus):
    FILE_NAME = "cmaesStatus.json"


class CmaEsStrategy(ContinuousOptimizationStrategy[RepairedPointT]):
    """Base of the CMA-ES strategies.

    Args:
        tuner_settings: General settings.
        strategy_settings: CMA-ES strategy settings.
        tree: Parameter tree of the genomes.
        builder: Checks and repairs genomes created from search points.
        genome_sorter: Ranks genomes.
        result_storage: Optional lookup of run results.
        rng: Random generator.
    """

    status_type = CmaEsStrategyStatus

    def __init__(
        self,
        tuner_settings: TunerSettings,
        strategy_settings: CmaEsStrategySettings,
        tree: ParameterTree,
        builder: GenomeBuilder,
        genome_sorter: GenomeSorter,
        result_storage: ResultStorage | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        super().__init__(
            tuner_settings,
            strategy_settings,
            tree,
            RepairedGenomeSearchPointSorter(genome_sorter),
            result_storage,
            rng,
        )
        if builder is None:
            msg = "Genome builder must not be None"
            raise TypeError(msg)
        self.genome_builder = builder
        self._cma_es: CmaEs[RepairedPointT] | None = None

    @property
    def continuous_optimizer(self) -> CmaEs[RepairedPointT]:
        return self._cma_es

    @property
    def continuous_optimizer_status_file_name(self) -> str:
        return CmaEsStatus.FILE_NAME

    def create_termination_criteria(self) -> list[TerminationCriterion]:
        return [
            ConditionCov(),
            NoEffectAxis(),
            NoEffectCoord(),
            TolUpSigma(),
            MaxIterations(self.strategy_settings.max_generations),
        ]

    def _create_cma_es_runner(self, search_point_factory: Callable[[NDArray], RepairedPointT]) -> CmaEs[RepairedPointT]:
        return CmaEs(self.search_point_sorter, search_point_factory, self.rng)

    def _start_cma_es(self, population_size: int, initial_mean: NDArray) -> None:
        configuration = CmaEsConfiguration(
            population_size,
            initial_mean,
            self.strategy_settings.initial_step_size,
        )
        self._cma_es.initialize(configuration, self.create_termination_criteria())


class GlobalCmaEsStrategy(CmaEsStrategy[ContinuizedGenomeSearchPoint]):
    """CMA-ES over all parameters of the competitive population."""

    def __init__(
        self,
        tuner_settings: TunerSettings,
        strategy_settings: CmaEsStrategySettings,
        tree: ParameterTree,
        builder: GenomeBuilder,
        genome_sorter: GenomeSorter,
        result_storage: ResultStorage | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        super().__init__(tuner_settings, strategy_settings, tree, builder, genome_sorter, result_storage, rng)
        transformation = TolerantGenomeTransformation(tree)
        lower, upper = ContinuizedGenomeSearchPoint.obtain_parameter_bounds(tree)

        def create_search_point(values: NDArray) -> ContinuizedGenomeSearchPoint:
            return ContinuizedGenomeSearchPoint.from_values(values, transformation, builder, lower, upper, self.rng)

        self._search_point_factory = create_search_point
        self._cma_es = self._create_cma_es_runner(create_search_point)

    def _initialize_continuous_optimizer(
        self,
        base_population: Population,
        current_incumbent: IncumbentGenomeWrapper | None,
    ) -> None:
        if base_population is None:
            msg = "Base population must not be None"
            raise TypeError(msg)
        if current_incumbent is not None:
            initial_mean = ContinuizedGenomeSearchPoint.create_from_genome(
                current_incumbent.incumbent_genome, self.tree
            ).values
        else:
            initial_mean = self._compute_mean_of_competitive_population_part(base_population)

        self._cma_es = self._create_cma_es_runner(self._search_point_factory)
        self._start_cma_es(len(base_population.get_competitive_individuals()), initial_mean)

    def _define_competitive_population(self, original_competitives: list[Genome]) -> list[Genome]:
        competitive_population: list[Genome] = []
        age_distribution = [individual.age for individual in original_competitives]
        if self.original_incumbent is not None:
            competitive_population.append(self.original_incumbent.copy())
            if self.original_incumbent.age in age_distribution:
                age_distribution.remove(self.original_incumbent.age)

        missing_points = self.most_recent_sorting[: len(self.most_recent_sorting) - len(competitive_population)]
        for age, point in zip(age_distribution, choose_random_subset(self.rng, missing_points)):
            competitive_population.append(point.genome.create_mutable_genome().with_age(age))
        return competitive_population

    def _compute_mean_of_competitive_population_part(self, population: Population) -> NDArray:
        competitives = population.get_competitive_individuals()
        if not competitives:
            msg = "Population must contain competitive individuals"
            raise ValueError(msg)
        values = [ContinuizedGenomeSearchPoint.create_from_genome(genome, self.tree).values for genome in competitives]
        return np.mean(values, axis=0)

    def _search_point_from_dict(self, data: dict[str, Any]) -> ContinuizedGenomeSearchPoint:
        return ContinuizedGenomeSearchPoint.from_dict(data)


class LocalCmaEsStrategy(CmaEsStrategy[PartialGenomeSearchPoint]):
    """CMA-ES over the continuous parameters of the incumbent.

    Needs an incumbent, so it cannot be the first strategy of a tuning run.
    """

    def __init__(
        self,
        tuner_settings: TunerSettings,
        strategy_settings: CmaEsStrategySettings,
        tree: ParameterTree,
        builder: GenomeBuilder,
        genome_sorter: GenomeSorter,
        result_storage: ResultStorage | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        super().__init__(tuner_settings, strategy_settings, tree, builder, genome_sorter, result_storage, rng)
        self._cma_es = self._create_cma_es_runner(_uninitialized_search_point_factory)

    def use_status_dump(self) -> None:
        status = self._read_strategy_status()
        if status.original_incumbent is not None:
            self._cma_es = self._create_cma_es_runner_for(status.original_incumbent)
        super().use_status_dump()

    def _initialize_continuous_optimizer(
        self,
        base_population: Population,
        current_incumbent: IncumbentGenomeWrapper | None,
    ) -> None:
        if base_population is None:
            msg = "Base population must not be None"
            raise TypeError(msg)
        if current_incumbent is None:
            logger.warning(
                "CMA-ES with focus on incumbent can only be executed if an incumbent exists, "
                "i.e. it is not possible to run it on its own."
            )
            msg = "Current incumbent must not be None"
            raise TypeError(msg)
        if GenomeSearchPointConverter(self.tree, self.strategy_settings.minimum_domain_size).dimension == 0:
            msg = (
                "CMA-ES with focus on incumbent needs at least one continuous parameter, "
                "but no parameter has a float domain or a large enough integer domain"
            )
            raise ValueError(msg)

        initial_mean = PartialGenomeSearchPoint.create_from_genome(
            current_incumbent.incumbent_genome,
            self.tree,
            self.strategy_settings.minimum_domain_size,
        ).values
        self._cma_es = self._create_cma_es_runner_for(current_incumbent.incumbent_genome)
        self._start_cma_es(len(base_population.get_competitive_individuals()), initial_mean)

    def _define_competitive_population(self, original_competitives: list[Genome]) -> list[Genome]:
        count = len(original_competitives)
        number_to_replace = min(math.ceil(self.strategy_settings.replacement_rate * count), count - 1)
        number_to_keep = count - number_to_replace - 1

        randomized_competitives = choose_random_subset(self.rng, original_competitives)
        updated_competitives = [genome.copy() for genome in randomized_competitives[:number_to_keep]]
        if any(genome.gene_values_equal(self.original_incumbent) for genome in updated_competitives):
            updated_competitives.append(randomized_competitives[number_to_keep].copy())
        else:
            updated_competitives.append(self.original_incumbent.copy())

        age_distribution = [genome.age for genome in choose_random_subset(self.rng, original_competitives)]
        for already_included in updated_competitives:
            if already_included.age in age_distribution:
                age_distribution.remove(already_included.age)

        for i in range(number_to_replace):
            genome = self.most_recent_sorting[i].genome.create_mutable_genome().with_age(age_distribution[i])
            updated_competitives.append(genome)
        return updated_competitives

    def _create_cma_es_runner_for(self, evaluation_base: Genome) -> CmaEs[PartialGenomeSearchPoint]:
        converter = GenomeSearchPointConverter(self.tree, self.strategy_settings.minimum_domain_size)
        lower, upper = converter.obtain_parameter_bounds()
        underlying_genome = ImmutableGenome(evaluation_base)

        def create_search_point(values: NDArray) -> PartialGenomeSearchPoint:
            return PartialGenomeSearchPoint.from_underlying_genome(
                underlying_genome, values, converter, self.genome_builder, lower, upper, self.rng
            )

        return self._create_cma_es_runner(create_search_point)

    def _search_point_from_dict(self, data: dict[str, Any]) -> PartialGenomeSearchPoint:
        return PartialGenomeSearchPoint.from_dict(data)


def _uninitialized_search_point_factory(values: NDArray) -> PartialGenomeSearchPoint:
    msg = "Called search point factory without initialization"
    raise RuntimeError(msg)


def create_cma_es_strategy(
    tuner_settings: TunerSettings,
    strategy_settings: CmaEsStrategySettings,
    tree: ParameterTree,
    builder: GenomeBuilder,
    genome_sorter: GenomeSorter,
    result_storage: ResultStorage | None = None,
    rng: np.random.Generator | None = None,
) -> CmaEsStrategy:
    """Create the local strategy if focusing on the incumbent, else the global one."""
    strategy_type = LocalCmaEsStrategy if strategy_settings.focus_on_incumbent else GlobalCmaEsStrategy
    return strategy_type(tuner_settings, strategy_settings, tree, builder, genome_sorter, result_storage, rng)
