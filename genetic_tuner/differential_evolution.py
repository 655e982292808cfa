"""Differential evolution with self-adapting parameters (JADE).

Each generation creates one trial point per population member using
current-to-pbest/1 mutation and binomial crossover. Mutation factors are
drawn from a Cauchy distribution, crossover rates from a normal distribution;
their means adapt to the values that produced improvements.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Generic

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.distance import cdist
from scipy.stats import cauchy

from .optimization_config import DifferentialEvolutionSettings
from .search_points import PointT
from .status import StatusBase, restore_rng_state, rng_state
from .utils.utils import choose_random_subset, clamp, create_rng, decide, validate_probability

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from .search_points import SearchPointSorter


logger = logging.getLogger(__name__)

MAX_TRIAL_SAMPLES = 100
MAX_DISTANCE_TOLERANCE = 10e-4


class DifferentialEvolutionStatus(StatusBase, Generic[PointT]):
    """Status of a JADE run.

    Args:
        sorted_population: Population, best first.
        current_generation: Number of generations performed.
        max_generations: Maximum number of generations.
        mean_mutation_factor: Current mean of F.
        mean_crossover_rate: Current mean of CR.
        random_state: State of the random generator.

    Raises:
        ValueError: If a value is out of range.
    """

    FILE_NAME = "status.de"

    def __init__(
        self,
        sorted_population: list[PointT] | None,
        current_generation: int,
        max_generations: int,
        mean_mutation_factor: float,
        mean_crossover_rate: float,
        random_state: dict[str, Any] | None = None,
    ) -> None:
        if current_generation < 0:
            msg = f"Current generation must be nonnegative, but was {current_generation}"
            raise ValueError(msg)
        if max_generations < current_generation:
            msg = (
                f"Maximum number of generations ({max_generations}) must not be smaller "
                f"than the current generation ({current_generation})"
            )
            raise ValueError(msg)
        validate_probability(mean_mutation_factor, "mean_mutation_factor")
        validate_probability(mean_crossover_rate, "mean_crossover_rate")

        self.sorted_population = None if sorted_population is None else list(sorted_population)
        self.current_generation = int(current_generation)
        self.max_generations = int(max_generations)
        self.mean_mutation_factor = float(mean_mutation_factor)
        self.mean_crossover_rate = float(mean_crossover_rate)
        self.random_state = random_state

    def to_dict(self) -> dict[str, Any]:
        return {
            "sorted_population": None
            if self.sorted_population is None
            else [point.to_dict() for point in self.sorted_population],
            "current_generation": self.current_generation,
            "max_generations": self.max_generations,
            "mean_mutation_factor": self.mean_mutation_factor,
            "mean_crossover_rate": self.mean_crossover_rate,
            "random_state": self.random_state,
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        point_from_dict: Callable[[dict[str, Any]], PointT] | None = None,
    ) -> DifferentialEvolutionStatus:
        """Create from dictionary.

        Args:
            data: Dictionary written by ``to_dict``.
            point_from_dict: Restores a search point; points stay dictionaries
                if not given.
        """
        population = data.get("sorted_population")
        if population is not None and point_from_dict is not None:
            population = [point_from_dict(point) for point in population]
        return cls(
            population,
            data["current_generation"],
            data["max_generations"],
            data["mean_mutation_factor"],
            data["mean_crossover_rate"],
            data.get("random_state"),
        )

    @classmethod
    def read_from_file(
        cls,
        filepath: str | Path,
        point_from_dict: Callable[[dict[str, Any]], PointT] | None = None,
    ) -> DifferentialEvolutionStatus:
        status = super().read_from_file(filepath)
        if point_from_dict is not None and status.sorted_population is not None:
            status.sorted_population = [point_from_dict(p) for p in status.sorted_population]
        return status


class DifferentialEvolution(Generic[PointT]):
    """JADE engine.

    Args:
        sorter: Orders search points, best first.
        search_point_factory: Creates a point from a vector and the target
            point it was derived from.
        settings: JADE configuration.
        rng: Random generator.
    """

    def __init__(
        self,
        sorter: SearchPointSorter[PointT],
        search_point_factory: Callable[[NDArray, PointT], PointT],
        settings: DifferentialEvolutionSettings | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        if sorter is None or search_point_factory is None:
            msg = "Differential evolution needs a search point sorter and a search point factory"
            raise TypeError(msg)
        self._sorter = sorter
        self._search_point_factory = search_point_factory
        self.settings = settings if settings is not None else DifferentialEvolutionSettings()
        self._rng = rng if rng is not None else create_rng()

        self.mean_mutation_factor = self.settings.initial_mean_mutation_factor
        self.mean_crossover_rate = self.settings.initial_mean_crossover_rate
        self._sorted_population: list[PointT] | None = None
        self._current_generation = 0
        self._max_generations = 0

    @property
    def current_generation(self) -> int:
        return self._current_generation

    @property
    def sorted_population(self) -> list[PointT]:
        self._check_is_initialized("sorted_population")
        return list(self._sorted_population)

    def initialize(self, initial_positions: Iterable[PointT], max_generations: int) -> None:
        """Start a run from the given points.

        Raises:
            ValueError: If max_generations is negative or no point is given.
        """
        if max_generations < 0:
            msg = f"Maximum number of generations must be nonnegative, but was {max_generations}"
            raise ValueError(msg)
        if initial_positions is None:
            msg = "Initial positions must not be None"
            raise TypeError(msg)
        population = list(initial_positions)
        if not population:
            msg = "Population must not be empty"
            raise ValueError(msg)

        self._current_generation = 0
        self._max_generations = int(max_generations)
        order = self._sorter.sort(population)
        self._sorted_population = [population[index] for index in order]

    def next_generation(self) -> list[PointT]:
        """Perform one generation.

        Returns:
            The population, best first.

        Raises:
            RuntimeError: If called before ``initialize``.
        """
        self._check_is_initialized("next_generation")
        self._current_generation += 1
        logger.debug(
            "Mean mutation factor, crossover rate: %s; %s",
            self.mean_mutation_factor,
            self.mean_crossover_rate,
        )

        mutation_factors: list[float] = []
        crossover_rates: list[float] = []
        trial_points: list[PointT] = []
        for target in self._sorted_population:
            mutation_factors.append(self._generate_mutation_factor())
            crossover_rates.append(self._generate_crossover_rate())
            trial_points.append(
                self._generate_trial_point(target, mutation_factors[-1], crossover_rates[-1])
            )

        size = len(self._sorted_population)
        ranks = self._sorter.determine_ranks(self._sorted_population + trial_points)
        population_ranks = ranks[:size]

        successful_mutation_factors: list[float] = []
        successful_crossover_rates: list[float] = []
        for i, (target, trial) in enumerate(zip(list(self._sorted_population), trial_points)):
            # only replace if the trial ranks better and actually moved
            if ranks[i] > ranks[size + i] and not np.array_equal(target.values, trial.values):
                self._sorted_population[i] = trial
                population_ranks[i] = ranks[size + i]
                successful_mutation_factors.append(mutation_factors[i])
                successful_crossover_rates.append(crossover_rates[i])

        self._adapt_parameters(successful_mutation_factors, successful_crossover_rates)

        order = sorted(range(size), key=lambda index: population_ranks[index])
        self._sorted_population = [self._sorted_population[index] for index in order]
        return list(self._sorted_population)

    def any_termination_criterion_met(self) -> bool:
        """Check the generation limit and whether the population has collapsed.

        Raises:
            RuntimeError: If called before ``initialize``.
        """
        self._check_is_initialized("any_termination_criterion_met")
        if self._current_generation >= self._max_generations:
            logger.info("JADE: Termination criterion met.")
            logger.debug("MaxGenerations")
            return True
        if self._max_distance_criterion_met():
            logger.info("JADE: Termination criterion met.")
            logger.debug("MaxDist")
            return True
        return False

    def dump_status(self, filepath: str | Path) -> None:
        status = DifferentialEvolutionStatus(
            self._sorted_population,
            self._current_generation,
            self._max_generations,
            self.mean_mutation_factor,
            self.mean_crossover_rate,
            rng_state(self._rng),
        )
        status.write_to_file(filepath)

    def use_status_dump(
        self,
        filepath: str | Path,
        point_from_dict: Callable[[dict[str, Any]], PointT],
    ) -> None:
        """Continue the run stored in a status file.

        Args:
            filepath: Status file written by ``dump_status``.
            point_from_dict: Restores a search point from its dictionary.
        """
        status = DifferentialEvolutionStatus.read_from_file(filepath, point_from_dict)
        self._sorted_population = status.sorted_population
        self._current_generation = status.current_generation
        self._max_generations = status.max_generations
        self.mean_mutation_factor = status.mean_mutation_factor
        self.mean_crossover_rate = status.mean_crossover_rate
        restore_rng_state(self._rng, status.random_state)

    def _generate_mutation_factor(self) -> float:
        # terminates with probability 1: each draw is positive with probability > 1/2
        while True:
            factor = float(cauchy.rvs(loc=self.mean_mutation_factor, scale=0.1, random_state=self._rng))
            if factor > 0:
                return min(factor, 1.0)

    def _generate_crossover_rate(self) -> float:
        rate = self._rng.normal(self.mean_crossover_rate, 0.1)
        return float(clamp(rate, 0.0, 1.0))

    def _generate_trial_point(self, target: PointT, mutation_factor: float, crossover_rate: float) -> PointT:
        # resampling invalid trial points handles bound constraints well
        samples = 0
        while True:
            donor = self._mutate(target, mutation_factor)
            trial_vector = self._crossover(target, donor, crossover_rate)
            trial_point = self._search_point_factory(trial_vector, target)
            samples += 1
            if trial_point.is_valid() or samples >= MAX_TRIAL_SAMPLES:
                break

        if not trial_point.is_valid():
            trial_point = self._search_point_factory(np.array(target.values), target)
            logger.warning(
                "Did not manage to find a valid point based on %s. If this happens often, "
                "consider changing your search point type or search point factory.",
                target,
            )
        logger.debug("Found valid trial point in %d tries.", samples)
        return trial_point

    def _mutate(self, target: PointT, mutation_factor: float) -> NDArray:
        non_targets = [point.values for point in self._sorted_population if point is not target]
        first, second = choose_random_subset(self._rng, non_targets, 2)
        good_point = self._choose_random_good_search_point()
        return (
            target.values
            + mutation_factor * (good_point.values - target.values)
            + mutation_factor * (first - second)
        )

    def _crossover(self, target: PointT, donor: NDArray, crossover_rate: float) -> NDArray:
        fixed_replacement_index = int(self._rng.integers(len(donor)))
        trial = np.array(target.values)
        for i in range(len(trial)):
            if i == fixed_replacement_index or decide(self._rng, crossover_rate):
                trial[i] = donor[i]
        return trial

    def _choose_random_good_search_point(self) -> PointT:
        number_good_points = math.ceil(self.settings.best_percentage * len(self._sorted_population))
        return self._sorted_population[int(self._rng.integers(number_good_points))]

    def _adapt_parameters(self, mutation_factors: list[float], crossover_rates: list[float]) -> None:
        learning_rate = self.settings.learning_rate
        if mutation_factors:
            lehmer_mean = sum(f**2 for f in mutation_factors) / sum(mutation_factors)
            self.mean_mutation_factor = (1 - learning_rate) * self.mean_mutation_factor + learning_rate * lehmer_mean
        if crossover_rates:
            self.mean_crossover_rate = (1 - learning_rate) * self.mean_crossover_rate + learning_rate * (
                sum(crossover_rates) / len(crossover_rates)
            )

    def _max_distance_criterion_met(self) -> bool:
        values = np.array([point.values for point in self._sorted_population])
        distances = cdist(values[:1], values)
        return bool(distances.max() < MAX_DISTANCE_TOLERANCE)

    def _check_is_initialized(self, member_name: str) -> None:
        if self._sorted_population is None:
            msg = f"Cannot execute {member_name} before calling initialize"
            raise RuntimeError(msg)
