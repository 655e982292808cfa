"""Population update strategies driven by a continuous optimizer.

A strategy turns the competitive part of the genetic population into search
points, lets CMA-ES or JADE improve them for a number of generations and
finally writes the result back into a population. Search points are ranked
by an external genome sorter, so the optimizers never see objective values.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

from ..genomes import Genome, Population
from ..search_points import PointT, SearchPointSorter
from ..status import StatusBase
from ..utils.utils import create_rng

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    import numpy as np

    from ..genomes import ImmutableGenome
    from ..optimization_config import StrategySettings, TunerSettings
    from ..parameter_space.parameter_tree import ParameterTree


logger = logging.getLogger(__name__)

StrategyStatusT = TypeVar("StrategyStatusT", bound="ContinuousOptimizationStrategyStatus")


class GenomeSorter(Protocol):
    """Ranks genomes by evaluating them on a set of instances."""

    def sort_genomes(self, genomes: Sequence[ImmutableGenome], instances: Sequence[Any]) -> list[ImmutableGenome]:
        """Return the genomes ordered best first.

        Args:
            genomes: Genomes to rank; may contain gene-value duplicates.
            instances: Instances to evaluate on.

        Returns:
            The same genomes, best first.
        """
        ...


class ResultStorage(Protocol):
    """Looks up the run results recorded for a genome."""

    def get_run_results(self, genome: ImmutableGenome) -> Mapping[Any, Any]:
        """Return the results of the genome, keyed by instance."""
        ...


@dataclass
class IncumbentGenomeWrapper:
    """The best genome found so far together with its results.

    Attributes:
        incumbent_generation: Generation in which the incumbent was found.
        incumbent_genome: The incumbent.
        incumbent_instance_results: Results on the current instances.
    """

    incumbent_generation: int
    incumbent_genome: Genome
    incumbent_instance_results: tuple[Any, ...] = field(default_factory=tuple)


class GenomeAssistedSorter(SearchPointSorter[PointT]):
    """Search point sorter delegating to a genome sorter.

    Args:
        genome_sorter: Ranks the genomes underlying the search points.
    """

    def __init__(self, genome_sorter: GenomeSorter) -> None:
        if genome_sorter is None:
            msg = "Genome sorter must not be None"
            raise TypeError(msg)
        self._genome_sorter = genome_sorter
        self._instances: list[Any] = []

    @property
    def instances(self) -> list[Any]:
        return list(self._instances)

    def update_instances(self, instances: Iterable[Any]) -> None:
        self._instances = list(instances)

    def _rank_genomes(self, genomes: Sequence[ImmutableGenome]) -> list[int]:
        ranking = self._genome_sorter.sort_genomes(list(genomes), list(self._instances))
        return assign_ranks_to_genomes(ranking, genomes)


def assign_ranks_to_genomes(ranking: Sequence[ImmutableGenome], genomes: Sequence[ImmutableGenome]) -> list[int]:
    """Rank of every genome, given the ranking returned by a genome sorter.

    Genomes with equal gene values get consecutive ranks in input order.

    Raises:
        ValueError: If the ranking does not match the genomes.
    """
    ranks: list[int | None] = [None] * len(genomes)
    for rank, ranked_genome in enumerate(ranking):
        index = next(
            (i for i, genome in enumerate(genomes) if ranks[i] is None and genome == ranked_genome),
            None,
        )
        if index is None:
            msg = f"Ranked genome {ranked_genome} is not among the genomes to sort"
            raise ValueError(msg)
        ranks[index] = rank
    if any(rank is None for rank in ranks):
        msg = f"Sorting returned {len(ranking)} genomes, but {len(genomes)} were sorted"
        raise ValueError(msg)
    return ranks


class ContinuousOptimizationStrategyStatus(StatusBase):
    """Status shared by all continuous optimization strategies.

    Instances are written as they are, so they need to be JSON serializable.

    Args:
        original_incumbent: Incumbent at the start of the phase.
        current_evaluation_instances: Instances the points are ranked on.
        most_recent_sorting: Search points of the last generation, best first.
    """

    FILE_NAME = "strategyStatus.json"

    def __init__(
        self,
        original_incumbent: Genome | None,
        current_evaluation_instances: list[Any] | None,
        most_recent_sorting: list[Any] | None,
    ) -> None:
        self.original_incumbent = original_incumbent
        self.current_evaluation_instances = current_evaluation_instances
        self.most_recent_sorting = most_recent_sorting

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_incumbent": None
            if self.original_incumbent is None
            else self.original_incumbent.to_dict(),
            "current_evaluation_instances": self.current_evaluation_instances,
            "most_recent_sorting": None
            if self.most_recent_sorting is None
            else [point.to_dict() for point in self.most_recent_sorting],
        }

    @classmethod
    def from_dict(cls: type[StrategyStatusT], data: dict[str, Any]) -> StrategyStatusT:
        """Create from dictionary; search points stay dictionaries."""
        incumbent = data.get("original_incumbent")
        return cls(
            None if incumbent is None else Genome.from_dict(incumbent),
            data.get("current_evaluation_instances"),
            data.get("most_recent_sorting"),
        )


class ContinuousOptimizationStrategy(ABC, Generic[PointT]):
    """Base of the population update strategies built on CMA-ES and JADE.

    Args:
        tuner_settings: General settings (population handling, status directory).
        strategy_settings: Settings of the strategy.
        tree: Parameter tree of the genomes.
        sorter: Sorter used by the continuous optimizer.
        result_storage: Optional lookup of run results for the incumbent.
        rng: Random generator shared with the continuous optimizer.
    """

    status_type: type[ContinuousOptimizationStrategyStatus] = ContinuousOptimizationStrategyStatus

    def __init__(
        self,
        tuner_settings: TunerSettings,
        strategy_settings: StrategySettings,
        tree: ParameterTree,
        sorter: GenomeAssistedSorter[PointT],
        result_storage: ResultStorage | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        if tuner_settings is None or strategy_settings is None:
            msg = "Strategy needs tuner settings and strategy settings"
            raise TypeError(msg)
        if tree is None:
            msg = "Parameter tree must not be None"
            raise TypeError(msg)
        if sorter is None:
            msg = "Search point sorter must not be None"
            raise TypeError(msg)
        self.tuner_settings = tuner_settings
        self.strategy_settings = strategy_settings
        self.tree = tree
        self.search_point_sorter = sorter
        self.result_storage = result_storage
        self.rng = rng if rng is not None else create_rng()

        self.original_incumbent: Genome | None = None
        self.most_recent_sorting: list[PointT] | None = None
        self.current_evaluation_instances: list[Any] | None = None
        self._current_generation = 0

    @property
    @abstractmethod
    def continuous_optimizer(self) -> Any:
        """The CMA-ES or JADE engine of the current phase."""

    @property
    @abstractmethod
    def continuous_optimizer_status_file_name(self) -> str:
        pass

    @property
    def status_directory(self) -> Path:
        return Path(self.tuner_settings.status_file_directory)

    @property
    def strategy_status_file_path(self) -> Path:
        return self.status_directory / self.status_type.FILE_NAME

    @property
    def continuous_optimizer_status_file_path(self) -> Path:
        return self.status_directory / self.continuous_optimizer_status_file_name

    def initialize(
        self,
        base_population: Population,
        current_incumbent: IncumbentGenomeWrapper | None,
        instances_for_evaluation: Iterable[Any],
    ) -> None:
        """Start a new phase.

        Args:
            base_population: Population the phase starts from.
            current_incumbent: Best genome so far, if any.
            instances_for_evaluation: Instances to rank search points on.

        Raises:
            TypeError: If no instances are given.
        """
        if instances_for_evaluation is None:
            msg = "Instances for evaluation must not be None"
            raise TypeError(msg)
        self.current_evaluation_instances = list(instances_for_evaluation)
        self.search_point_sorter.update_instances(self.current_evaluation_instances)
        self._initialize_continuous_optimizer(base_population, current_incumbent)
        self.original_incumbent = None if current_incumbent is None else current_incumbent.incumbent_genome

    def perform_iteration(self, current_generation: int, instances_for_evaluation: Iterable[Any]) -> None:
        """Let the continuous optimizer perform one generation.

        Unless instances are fixed for the phase, the points are ranked on
        the given instances.

        Raises:
            ValueError: If the generation index is negative.
        """
        if current_generation < 0:
            msg = f"Generation index may not be negative, but was {current_generation}"
            raise ValueError(msg)
        self._current_generation = current_generation
        if not self.strategy_settings.fix_instances:
            self.current_evaluation_instances = list(instances_for_evaluation)
            self.search_point_sorter.update_instances(self.current_evaluation_instances)
        self.most_recent_sorting = list(self.continuous_optimizer.next_generation())

    def find_incumbent_genome(self) -> IncumbentGenomeWrapper:
        """Best genome of the most recent generation with its current results.

        Raises:
            RuntimeError: If no generation has been performed in this phase.
        """
        if not self.most_recent_sorting:
            msg = "Cannot find an incumbent before performing an iteration"
            raise RuntimeError(msg)
        incumbent_genome = self.most_recent_sorting[0].genome
        results: tuple[Any, ...] = ()
        if self.result_storage is not None:
            run_results = self.result_storage.get_run_results(incumbent_genome)
            results = tuple(
                result
                for instance, result in run_results.items()
                if instance in self.current_evaluation_instances
            )
        return IncumbentGenomeWrapper(
            incumbent_generation=self._current_generation,
            incumbent_genome=incumbent_genome.create_mutable_genome(),
            incumbent_instance_results=results,
        )

    def finish_phase(self, base_population: Population) -> Population:
        """Write the phase's results into a copy of the population.

        Non-competitive genomes are kept, competitive ones are defined by the
        strategy. Returns the base population if no generation was performed.
        """
        if base_population is None:
            msg = "Base population must not be None"
            raise TypeError(msg)
        if self.most_recent_sorting is None:
            return base_population

        updated_population = Population(self.tuner_settings)
        for non_competitive in base_population.get_non_competitive_mates():
            updated_population.add_genome(non_competitive.copy(), is_competitive=False)
        for competitive in self._define_competitive_population(base_population.get_competitive_individuals()):
            updated_population.add_genome(competitive, is_competitive=True)

        self.most_recent_sorting = None
        return updated_population

    def has_terminated(self) -> bool:
        return self.continuous_optimizer.any_termination_criterion_met()

    def log_population(self) -> None:
        logger.debug("Current population:")
        logger.debug(
            "Competitive genomes:\n %s",
            "\n ".join(
                point.genome.genome.to_filtered_gene_string(self.tree)
                for point in self.most_recent_sorting or []
            ),
        )

    def dump_status(self) -> None:
        """Write strategy and optimizer status into the status directory."""
        status = self.status_type(
            self.original_incumbent,
            self.current_evaluation_instances,
            self.most_recent_sorting,
        )
        status.write_to_file(self.strategy_status_file_path)
        self.continuous_optimizer.dump_status(self.continuous_optimizer_status_file_path)

    def use_status_dump(self) -> None:
        """Continue the phase stored in the status directory."""
        status = self._read_strategy_status()
        self.original_incumbent = status.original_incumbent
        self.most_recent_sorting = (
            None
            if status.most_recent_sorting is None
            else [self._search_point_from_dict(point) for point in status.most_recent_sorting]
        )
        self.current_evaluation_instances = status.current_evaluation_instances
        if self.current_evaluation_instances is not None:
            self.search_point_sorter.update_instances(self.current_evaluation_instances)
        self._use_continuous_optimizer_status_dump()

    def _read_strategy_status(self) -> ContinuousOptimizationStrategyStatus:
        return self.status_type.read_from_file(self.strategy_status_file_path)

    def _use_continuous_optimizer_status_dump(self) -> None:
        self.continuous_optimizer.use_status_dump(self.continuous_optimizer_status_file_path)

    @abstractmethod
    def _search_point_from_dict(self, data: dict[str, Any]) -> PointT:
        pass

    @abstractmethod
    def _initialize_continuous_optimizer(
        self,
        base_population: Population,
        current_incumbent: IncumbentGenomeWrapper | None,
    ) -> None:
        pass

    @abstractmethod
    def _define_competitive_population(self, original_competitives: list[Genome]) -> Iterable[Genome]:
        """Competitive genomes of the population after the phase."""
