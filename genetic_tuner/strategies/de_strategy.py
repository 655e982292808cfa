"""Population update strategy running JADE phases.

The information flow decides where the JADE population comes from and how
its result is written back:

* global: the whole competitive population is optimized and replaced;
* local: a population of random points around the incumbent is optimized,
  and either the incumbent or a share of the competitive population is
  replaced by the best points.

Mean mutation factor and crossover rate carry over from one phase to the
next.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ..differential_evolution import DifferentialEvolution, DifferentialEvolutionStatus
from ..optimization_config import DifferentialEvolutionSettings
from ..utils.utils import choose_random_subset
from .base import ContinuousOptimizationStrategy, ContinuousOptimizationStrategyStatus
from .converter import GenomeSearchPointConverter
from .genome_search_points import GenomeSearchPoint, GenomeSearchPointSorter

if TYPE_CHECKING:
    import numpy as np

    from ..genome_builder import GenomeBuilder
    from ..genomes import Genome, Population
    from ..optimization_config import DifferentialEvolutionStrategySettings, TunerSettings
    from ..parameter_space.parameter_tree import ParameterTree
    from .base import GenomeSorter, IncumbentGenomeWrapper, ResultStorage


logger = logging.getLogger(__name__)

MAX_RANDOM_POINT_TRIALS = 50


class DifferentialEvolutionStrategyStatus(ContinuousOptimizationStrategyStatus):
    FILE_NAME = "deStatus.json"


class InformationFlowStrategy(ABC):
    """Connects a JADE phase with the genetic population.

    Args:
        strategy_settings: Settings of the JADE strategy.
        converter: Converter between genomes and JADE search points.
        builder: Checks and repairs genomes.
        rng: Random generator.
    """

    def __init__(
        self,
        strategy_settings: DifferentialEvolutionStrategySettings,
        converter: GenomeSearchPointConverter,
        builder: GenomeBuilder,
        rng: np.random.Generator,
    ) -> None:
        if strategy_settings is None or converter is None or builder is None:
            msg = "Information flow needs strategy settings, a converter and a genome builder"
            raise TypeError(msg)
        self.strategy_settings = strategy_settings
        self.converter = converter
        self.genome_builder = builder
        self.rng = rng

    @abstractmethod
    def determine_initial_points(
        self,
        base_population: Population,
        current_incumbent: Genome | None,
    ) -> list[GenomeSearchPoint]:
        """Initial JADE population."""

    @abstractmethod
    def define_competitive_population(
        self,
        original_competitives: list[Genome],
        original_incumbent: Genome | None,
        most_recent_sorting: list[GenomeSearchPoint],
    ) -> list[Genome]:
        """Competitive genomes after the phase."""


class GlobalDifferentialEvolutionInformationFlow(InformationFlowStrategy):
    """Optimizes and replaces the complete competitive population."""

    def determine_initial_points(
        self,
        base_population: Population,
        current_incumbent: Genome | None,
    ) -> list[GenomeSearchPoint]:
        competitives = base_population.get_competitive_individuals()
        if len(competitives) < 3:
            msg = (
                "JADE needs at least 3 individuals to work, but the competitive population "
                f"only has {len(competitives)}"
            )
            raise ValueError(msg)
        return [
            GenomeSearchPoint.create_from_genome(genome, self.converter, self.genome_builder)
            for genome in competitives
        ]

    def define_competitive_population(
        self,
        original_competitives: list[Genome],
        original_incumbent: Genome | None,
        most_recent_sorting: list[GenomeSearchPoint],
    ) -> list[Genome]:
        return [point.genome.create_mutable_genome() for point in most_recent_sorting]


class LocalDifferentialEvolutionInformationFlow(InformationFlowStrategy):
    """Optimizes the continuous parameters of the incumbent.

    The JADE population has half the size of the competitive population and
    consists of the incumbent plus random variations of its continuous genes.
    """

    def determine_initial_points(
        self,
        base_population: Population,
        current_incumbent: Genome | None,
    ) -> list[GenomeSearchPoint]:
        competitive_count = len(base_population.get_competitive_individuals())
        jade_population_count = competitive_count // 2
        if jade_population_count < 3:
            msg = (
                "JADE needs at least 3 individuals to work. To ensure this, the regular competitive "
                f"population needs at least 6 individuals, but only has {competitive_count}"
            )
            raise ValueError(msg)
        if current_incumbent is None:
            msg = "Cannot use incumbent improving strategy without an incumbent"
            raise TypeError(msg)
        return self._create_search_points_from_genome(current_incumbent, jade_population_count)

    def define_competitive_population(
        self,
        original_competitives: list[Genome],
        original_incumbent: Genome | None,
        most_recent_sorting: list[GenomeSearchPoint],
    ) -> list[Genome]:
        replacement_rate = self.strategy_settings.replacement_rate
        if replacement_rate == 0:
            return self._replace_incumbent_with_best_point(
                original_competitives, original_incumbent, most_recent_sorting[0]
            )
        return self._replace_some_genomes_with_best_points(
            original_competitives, most_recent_sorting, replacement_rate
        )

    def _create_search_points_from_genome(self, genome: Genome, number: int) -> list[GenomeSearchPoint]:
        initial_positions = [self._create_valid_search_point_from_genome(genome) for _ in range(number - 1)]
        initial_positions.append(GenomeSearchPoint.create_from_genome(genome, self.converter, self.genome_builder))
        return initial_positions

    def _create_valid_search_point_from_genome(self, genome: Genome) -> GenomeSearchPoint:
        for _ in range(MAX_RANDOM_POINT_TRIALS):
            point = GenomeSearchPoint.base_random_point_on_genome(
                genome, self.converter, self.genome_builder, self.rng
            )
            if point.is_valid():
                return point

        logger.warning(
            "Did not find a valid point after %d trials, now using a repair operation on %s. "
            "If that changes discrete parameters, JADE performance may suffer.",
            MAX_RANDOM_POINT_TRIALS,
            point,
        )
        associated_genome = point.genome.create_mutable_genome()
        self.genome_builder.make_genome_valid(associated_genome, self.rng)
        point = GenomeSearchPoint.create_from_genome(associated_genome, self.converter, self.genome_builder)
        if point.is_valid():
            return point

        msg = (
            f"Could not find a valid point after {MAX_RANDOM_POINT_TRIALS} trials and a repair operation. "
            f"Consider modifying your GenomeBuilder implementation.\nCurrent invalid point: {point}."
        )
        raise TimeoutError(msg)

    def _replace_some_genomes_with_best_points(
        self,
        original_genomes: list[Genome],
        most_recent_sorting: list[GenomeSearchPoint],
        replacement_rate: float,
    ) -> list[Genome]:
        number_to_replace = min(math.ceil(replacement_rate * len(original_genomes)), len(most_recent_sorting))
        number_to_keep = len(original_genomes) - number_to_replace
        randomized_genomes = choose_random_subset(self.rng, original_genomes)

        updated_genomes = [genome.copy() for genome in randomized_genomes[:number_to_keep]]
        for i in range(number_to_replace):
            age = randomized_genomes[number_to_keep + i].age
            updated_genomes.append(most_recent_sorting[i].genome.create_mutable_genome().with_age(age))
        return updated_genomes

    def _replace_incumbent_with_best_point(
        self,
        original_genomes: list[Genome],
        original_incumbent: Genome | None,
        best_point: GenomeSearchPoint,
    ) -> list[Genome]:
        if original_incumbent is None:
            msg = "Cannot use incumbent improving strategy without an incumbent"
            raise TypeError(msg)
        genome_to_replace = next(
            (
                genome
                for genome in original_genomes
                if genome.is_engineered == original_incumbent.is_engineered
                and genome.age == original_incumbent.age
                and genome.gene_values_equal(original_incumbent)
            ),
            None,
        )
        if genome_to_replace is None:
            msg = f"Incumbent {original_incumbent} is not part of the competitive population"
            raise ValueError(msg)

        updated_genomes = [genome.copy() for genome in original_genomes if genome is not genome_to_replace]
        updated_genomes.append(best_point.genome.create_mutable_genome().with_age(genome_to_replace.age))
        return updated_genomes


class DifferentialEvolutionStrategy(ContinuousOptimizationStrategy[GenomeSearchPoint]):
    """Population update strategy running JADE on the continuous parameters.

    Args:
        tuner_settings: General settings.
        strategy_settings: JADE strategy settings.
        tree: Parameter tree of the genomes.
        builder: Checks and repairs genomes.
        genome_sorter: Ranks genomes.
        result_storage: Optional lookup of run results.
        rng: Random generator.
    """

    status_type = DifferentialEvolutionStrategyStatus

    def __init__(
        self,
        tuner_settings: TunerSettings,
        strategy_settings: DifferentialEvolutionStrategySettings,
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
            GenomeSearchPointSorter(genome_sorter),
            result_storage,
            rng,
        )
        if builder is None:
            msg = "Genome builder must not be None"
            raise TypeError(msg)
        self.genome_builder = builder
        self.converter = GenomeSearchPointConverter(tree, strategy_settings.minimum_domain_size)

        flow_type = (
            LocalDifferentialEvolutionInformationFlow
            if strategy_settings.focus_on_incumbent
            else GlobalDifferentialEvolutionInformationFlow
        )
        self.information_flow = flow_type(strategy_settings, self.converter, builder, self.rng)

        jade_settings = strategy_settings.differential_evolution
        self._differential_evolution = self._create_differential_evolution_runner(
            jade_settings.initial_mean_mutation_factor,
            jade_settings.initial_mean_crossover_rate,
        )

    @property
    def continuous_optimizer(self) -> DifferentialEvolution[GenomeSearchPoint]:
        return self._differential_evolution

    @property
    def continuous_optimizer_status_file_name(self) -> str:
        return DifferentialEvolutionStatus.FILE_NAME

    def _initialize_continuous_optimizer(
        self,
        base_population: Population,
        current_incumbent: IncumbentGenomeWrapper | None,
    ) -> None:
        if base_population is None:
            msg = "Base population must not be None"
            raise TypeError(msg)
        if not base_population.get_competitive_individuals():
            msg = "Population must have competitive individuals"
            raise ValueError(msg)

        self._differential_evolution = self._create_differential_evolution_runner(
            self._differential_evolution.mean_mutation_factor,
            self._differential_evolution.mean_crossover_rate,
        )
        initial_positions = self.information_flow.determine_initial_points(
            base_population,
            None if current_incumbent is None else current_incumbent.incumbent_genome,
        )
        self._differential_evolution.initialize(initial_positions, self.strategy_settings.max_generations)
        logger.debug("Tuning %d continuous parameters.", initial_positions[0].dimension)

    def _define_competitive_population(self, original_competitives: list[Genome]) -> list[Genome]:
        return self.information_flow.define_competitive_population(
            original_competitives,
            self.original_incumbent,
            self.most_recent_sorting,
        )

    def _search_point_from_dict(self, data: dict[str, Any]) -> GenomeSearchPoint:
        return GenomeSearchPoint.from_dict(data, self.converter)

    def _use_continuous_optimizer_status_dump(self) -> None:
        self._differential_evolution.use_status_dump(
            self.continuous_optimizer_status_file_path,
            self._search_point_from_dict,
        )

    def _create_differential_evolution_runner(
        self,
        mean_mutation_factor: float,
        mean_crossover_rate: float,
    ) -> DifferentialEvolution[GenomeSearchPoint]:
        jade_settings = self.strategy_settings.differential_evolution
        builder = self.genome_builder

        def create_search_point(values: Any, parent: GenomeSearchPoint) -> GenomeSearchPoint:
            return GenomeSearchPoint.from_parent(values, parent, builder)

        return DifferentialEvolution(
            self.search_point_sorter,
            create_search_point,
            DifferentialEvolutionSettings(
                best_percentage=jade_settings.best_percentage,
                initial_mean_mutation_factor=mean_mutation_factor,
                initial_mean_crossover_rate=mean_crossover_rate,
                learning_rate=jade_settings.learning_rate,
            ),
            self.rng,
        )
