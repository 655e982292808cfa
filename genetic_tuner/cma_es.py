"""Covariance Matrix Adaptation Evolution Strategy (CMA-ES).

Implements the (mu/mu_w, lambda)-CMA-ES with active covariance update
(negative recombination weights), cumulative step-size adaptation and
rank-one plus rank-mu covariance updates. Candidate points are created by an
injected factory and ordered by an injected sorter, so the engine never sees
objective values.

Example:
    >>> configuration = CmaEsConfiguration(10, np.zeros(3), 1.0)
    >>> cma_es = CmaEs(sorter, SearchPoint, rng=create_rng(42))
    >>> cma_es.initialize(configuration, [MaxIterations(50)])
    >>> while not cma_es.any_termination_criterion_met():
    ...     best = cma_es.next_generation()[0]
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Generic

import numpy as np
from numpy.typing import NDArray
from scipy.special import gamma

from .search_points import PointT
from .status import StatusBase, array_to_list, list_to_array, restore_rng_state, rng_state
from .termination_criteria import termination_criterion_from_dict
from .utils.utils import create_rng

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from pathlib import Path

    from .search_points import SearchPointSorter
    from .termination_criteria import TerminationCriterion


logger = logging.getLogger(__name__)


class CmaEsConfiguration:
    """Static configuration and derived strategy parameters of a CMA-ES run.

    Args:
        population_size: Number of points sampled per generation (lambda).
        initial_distribution_mean: Initial mean; defines the dimension.
        initial_step_size: Initial step size (sigma).

    Raises:
        ValueError: If the population is smaller than 2, the mean is empty,
            or the step size is not positive.
        TypeError: If the mean is None.
    """

    def __init__(
        self,
        population_size: int,
        initial_distribution_mean: Sequence[float] | NDArray,
        initial_step_size: float,
    ) -> None:
        if population_size < 2:
            msg = f"Population needs to consist of at least 2 search points, but size was {population_size}"
            raise ValueError(msg)
        if initial_distribution_mean is None:
            msg = "Initial distribution mean must not be None"
            raise TypeError(msg)
        if not initial_step_size > 0:
            msg = f"Step size must be positive, but was {initial_step_size}"
            raise ValueError(msg)

        self._initial_distribution_mean = np.array(initial_distribution_mean, dtype=np.float64)
        if len(self._initial_distribution_mean) == 0:
            msg = "Search space needs at least one dimension, but the initial distribution mean was empty"
            raise ValueError(msg)
        self.search_space_dimension = len(self._initial_distribution_mean)
        self.population_size = int(population_size)
        self.parent_number = self.population_size // 2
        self.initial_step_size = float(initial_step_size)
        self._initialize_strategy_parameters()

    @property
    def initial_distribution_mean(self) -> NDArray[np.float64]:
        return self._initial_distribution_mean.copy()

    def compute_expected_conjugate_evolution_path_length(self) -> float:
        """Expected length of a standard normally distributed vector."""
        n = self.search_space_dimension
        return math.sqrt(2) * gamma((n + 1) / 2) / gamma(n / 2)

    def _initialize_strategy_parameters(self) -> None:
        n = self.search_space_dimension
        ranks = np.arange(1, self.population_size + 1, dtype=np.float64)
        unnormalized = np.log((self.population_size + 1) / 2) - np.log(ranks)

        parents = unnormalized[: self.parent_number]
        self.variance_effective_selection_mass = float(parents.sum() ** 2 / np.sum(parents**2))
        mu_eff = self.variance_effective_selection_mass

        # step size control
        self.step_size_control_learning_rate = (mu_eff + 2) / (n + mu_eff + 5)
        self.step_size_control_damping = (
            1
            + 2 * max(0.0, math.sqrt((mu_eff - 1) / (n + 1)) - 1)
            + self.step_size_control_learning_rate
        )

        # covariance matrix adaptation
        self.cumulation_learning_rate = (4 + mu_eff / n) / (n + 4 + 2 * mu_eff / n)
        alpha = 2
        self.rank_one_update_learning_rate = alpha / ((n + 1.3) ** 2 + mu_eff)
        unbound_rank_mu = alpha * (
            (mu_eff - 2 + 1 / mu_eff) / ((n + 2) ** 2 + alpha * mu_eff / 2)
        )
        self.rank_mu_update_learning_rate = min(1 - self.rank_one_update_learning_rate, unbound_rank_mu)

        self.weights = self._compute_weights(unnormalized)

    def _compute_weights(self, unnormalized: NDArray) -> tuple[float, ...]:
        positive_scale = 1 / unnormalized[unnormalized > 0].sum()
        negative = unnormalized < 0
        weights = np.where(unnormalized >= 0, positive_scale * unnormalized, 0.0)
        if np.any(negative):
            weights = np.where(
                negative, self._negative_weight_scale(unnormalized) * unnormalized, weights
            )
        return tuple(float(w) for w in weights)

    def _negative_weight_scale(self, unnormalized: NDArray) -> float:
        n = self.search_space_dimension
        c1 = self.rank_one_update_learning_rate
        c_mu = self.rank_mu_update_learning_rate
        not_selected = unnormalized[self.parent_number :]
        mu_eff_negative = not_selected.sum() ** 2 / np.sum(not_selected**2)

        # no decay of C
        prevent_decay = 1 + c1 / c_mu if c_mu > 0 else math.inf
        # negative weights comparable to positive ones
        adapt_weights = 1 + 2 * mu_eff_negative / (self.variance_effective_selection_mass + 2)
        # keeps C positive definite
        bound = (1 - c1 - c_mu) / (n * c_mu) if c_mu > 0 else math.inf

        smallest = min(prevent_decay, adapt_weights, bound)
        return float(smallest / -unnormalized[unnormalized < 0].sum())

    def to_dict(self) -> dict[str, Any]:
        return {
            "population_size": self.population_size,
            "initial_distribution_mean": array_to_list(self._initial_distribution_mean),
            "initial_step_size": self.initial_step_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CmaEsConfiguration:
        return cls(
            data["population_size"],
            list_to_array(data["initial_distribution_mean"]),
            data["initial_step_size"],
        )

    def __repr__(self) -> str:
        return (
            f"CmaEsConfiguration(population_size={self.population_size}, "
            f"dimension={self.search_space_dimension}, step_size={self.initial_step_size})"
        )


class CmaEsElements:
    """Snapshot of the internal state of a CMA-ES run.

    Every array is copied on construction and on access.

    Attributes:
        configuration: The run's configuration.
        generation: Current generation.
        distribution_mean: Mean of the search distribution.
        step_size: Current step size (sigma).
        covariances: Covariance matrix C.
        covariances_diagonal: Eigenvalues of C.
        covariances_eigenvectors: Eigenvectors of C, one per column.
        evolution_path: Evolution path p_c.
        conjugate_evolution_path: Conjugate evolution path p_sigma.
    """

    def __init__(
        self,
        configuration: CmaEsConfiguration | None,
        generation: int,
        distribution_mean: NDArray | None,
        step_size: float,
        covariances: NDArray | None,
        covariances_diagonal: NDArray | None,
        covariances_eigenvectors: NDArray | None,
        evolution_path: NDArray | None,
        conjugate_evolution_path: NDArray | None,
    ) -> None:
        if generation < 0:
            msg = f"Generation must be nonnegative, but was {generation}"
            raise ValueError(msg)
        if step_size < 0:
            msg = f"Step size must be nonnegative, but was {step_size}"
            raise ValueError(msg)

        self.configuration = configuration
        self.generation = int(generation)
        self.step_size = float(step_size)
        self._distribution_mean = _copy(distribution_mean)
        self._covariances = _copy(covariances)
        self._covariances_diagonal = _copy(covariances_diagonal)
        self._covariances_eigenvectors = _copy(covariances_eigenvectors)
        self._evolution_path = _copy(evolution_path)
        self._conjugate_evolution_path = _copy(conjugate_evolution_path)

    @property
    def distribution_mean(self) -> NDArray | None:
        return _copy(self._distribution_mean)

    @property
    def covariances(self) -> NDArray | None:
        return _copy(self._covariances)

    @property
    def covariances_diagonal(self) -> NDArray | None:
        return _copy(self._covariances_diagonal)

    @property
    def covariances_eigenvectors(self) -> NDArray | None:
        return _copy(self._covariances_eigenvectors)

    @property
    def evolution_path(self) -> NDArray | None:
        return _copy(self._evolution_path)

    @property
    def conjugate_evolution_path(self) -> NDArray | None:
        return _copy(self._conjugate_evolution_path)

    def is_completely_specified(self) -> bool:
        return (
            self.configuration is not None
            and self._distribution_mean is not None
            and self._covariances is not None
            and self._covariances_diagonal is not None
            and self._covariances_eigenvectors is not None
            and self._evolution_path is not None
            and self._conjugate_evolution_path is not None
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "configuration": None if self.configuration is None else self.configuration.to_dict(),
            "generation": self.generation,
            "distribution_mean": array_to_list(self._distribution_mean),
            "step_size": self.step_size,
            "covariances": array_to_list(self._covariances),
            "covariances_diagonal": array_to_list(self._covariances_diagonal),
            "covariances_eigenvectors": array_to_list(self._covariances_eigenvectors),
            "evolution_path": array_to_list(self._evolution_path),
            "conjugate_evolution_path": array_to_list(self._conjugate_evolution_path),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CmaEsElements:
        configuration = data.get("configuration")
        return cls(
            None if configuration is None else CmaEsConfiguration.from_dict(configuration),
            data["generation"],
            list_to_array(data.get("distribution_mean")),
            data["step_size"],
            list_to_array(data.get("covariances")),
            list_to_array(data.get("covariances_diagonal")),
            list_to_array(data.get("covariances_eigenvectors")),
            list_to_array(data.get("evolution_path")),
            list_to_array(data.get("conjugate_evolution_path")),
        )


def _copy(array: NDArray | None) -> NDArray | None:
    return None if array is None else np.array(array, dtype=np.float64)


class CmaEsStatus(StatusBase):
    """Status of a CMA-ES run: termination criteria, state and random generator state."""

    FILE_NAME = "status.cmaes"

    def __init__(
        self,
        termination_criteria: list[TerminationCriterion],
        data: CmaEsElements,
        random_state: dict[str, Any] | None = None,
    ) -> None:
        if termination_criteria is None:
            msg = "Termination criteria must not be None"
            raise TypeError(msg)
        if data is None:
            msg = "CMA-ES data must not be None"
            raise TypeError(msg)
        self.termination_criteria = list(termination_criteria)
        self.data = data
        self.random_state = random_state

    def to_dict(self) -> dict[str, Any]:
        return {
            "termination_criteria": [c.to_dict() for c in self.termination_criteria],
            "data": self.data.to_dict(),
            "random_state": self.random_state,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CmaEsStatus:
        return cls(
            [termination_criterion_from_dict(c) for c in data["termination_criteria"]],
            CmaEsElements.from_dict(data["data"]),
            data.get("random_state"),
        )


class CmaEs(Generic[PointT]):
    """CMA-ES engine.

    Args:
        sorter: Orders candidate points, best first.
        search_point_factory: Creates a search point from a real vector.
        rng: Random generator used for sampling.
    """

    def __init__(
        self,
        sorter: SearchPointSorter[PointT],
        search_point_factory: Callable[[NDArray], PointT],
        rng: np.random.Generator | None = None,
    ) -> None:
        if sorter is None or search_point_factory is None:
            msg = "CMA-ES needs a search point sorter and a search point factory"
            raise TypeError(msg)
        self._sorter = sorter
        self._search_point_factory = search_point_factory
        self._rng = rng if rng is not None else create_rng()

        self._termination_criteria: list[TerminationCriterion] = []
        self._configuration: CmaEsConfiguration | None = None
        self._generation = 0
        self._distribution_mean: NDArray | None = None
        self._step_size = 0.0
        self._covariances: NDArray | None = None
        self._eigenvalues: NDArray | None = None
        self._eigenvectors: NDArray | None = None
        self._evolution_path: NDArray | None = None
        self._conjugate_evolution_path: NDArray | None = None

    @property
    def elements(self) -> CmaEsElements:
        """Snapshot of the current state."""
        return CmaEsElements(
            self._configuration,
            self._generation,
            self._distribution_mean,
            self._step_size,
            self._covariances,
            self._eigenvalues,
            self._eigenvectors,
            self._evolution_path,
            self._conjugate_evolution_path,
        )

    def initialize(
        self,
        configuration: CmaEsConfiguration,
        termination_criteria: Iterable[TerminationCriterion],
    ) -> None:
        """Start a new run.

        Raises:
            TypeError: If an argument is None.
            ValueError: If no termination criterion is given.
        """
        if configuration is None or termination_criteria is None:
            msg = "CMA-ES needs a configuration and termination criteria"
            raise TypeError(msg)
        criteria = list(termination_criteria)
        if not criteria:
            msg = "There needs to be at least one termination criterion"
            raise ValueError(msg)

        n = configuration.search_space_dimension
        self._configuration = configuration
        self._termination_criteria = criteria
        self._generation = 0
        self._covariances = np.eye(n)
        self._decompose_covariances()
        self._evolution_path = np.zeros(n)
        self._conjugate_evolution_path = np.zeros(n)
        self._distribution_mean = configuration.initial_distribution_mean
        self._step_size = configuration.initial_step_size

    def next_generation(self) -> list[PointT]:
        """Sample, sort and learn from one generation.

        Returns:
            The generation's search points, best first.

        Raises:
            RuntimeError: If called before ``initialize``.
        """
        self._check_is_initialized("next_generation")
        config = self._configuration
        self._generation += 1

        random_directions = self._rng.standard_normal(
            (config.population_size, config.search_space_dimension)
        )
        covariances_shift = self._eigenvectors * np.sqrt(np.maximum(self._eigenvalues, 0.0))
        step_directions = random_directions @ covariances_shift.T
        search_points = [
            self._search_point_factory(self._distribution_mean + self._step_size * direction)
            for direction in step_directions
        ]
        order = list(self._sorter.sort(search_points))

        unscaled_mean_step = self._compute_unscaled_mean_step(step_directions, order)
        self._distribution_mean = self._distribution_mean + self._step_size * unscaled_mean_step
        self._update_step_size(random_directions, order)
        self._adapt_covariances(unscaled_mean_step, random_directions, step_directions, order)

        # enforce symmetry
        upper = np.triu(self._covariances)
        self._covariances = upper + np.triu(self._covariances, k=1).T
        self._decompose_covariances()

        return [search_points[index] for index in order]

    def any_termination_criterion_met(self) -> bool:
        """Check all termination criteria against the current state.

        Raises:
            RuntimeError: If called before ``initialize``.
        """
        self._check_is_initialized("any_termination_criterion_met")
        data = self.elements
        met = [criterion for criterion in self._termination_criteria if criterion.is_met(data)]
        if not met:
            return False

        logger.info("CMA-ES: Termination criterion met.")
        for criterion in met:
            logger.debug("%s", type(criterion).__name__)
        return True

    def dump_status(self, filepath: str | Path) -> None:
        status = CmaEsStatus(self._termination_criteria, self.elements, rng_state(self._rng))
        status.write_to_file(filepath)

    def use_status_dump(self, filepath: str | Path) -> None:
        """Continue the run stored in a status file."""
        status = CmaEsStatus.read_from_file(filepath)
        data = status.data
        self._termination_criteria = list(status.termination_criteria)
        self._configuration = data.configuration
        self._generation = data.generation
        self._distribution_mean = data.distribution_mean
        self._step_size = data.step_size
        self._covariances = data.covariances
        self._evolution_path = data.evolution_path
        self._conjugate_evolution_path = data.conjugate_evolution_path
        if self._covariances is not None:
            self._decompose_covariances()
        else:
            self._eigenvalues = self._eigenvectors = None
        restore_rng_state(self._rng, status.random_state)

    def _decompose_covariances(self) -> None:
        self._eigenvalues, self._eigenvectors = np.linalg.eigh(self._covariances)

    def _compute_unscaled_mean_step(self, step_directions: NDArray, order: list[int]) -> NDArray:
        parents = self._configuration.parent_number
        weights = np.asarray(self._configuration.weights[:parents])
        return weights @ step_directions[order[:parents]]

    def _update_step_size(self, random_directions: NDArray, order: list[int]) -> None:
        config = self._configuration
        parents = config.parent_number
        weights = np.asarray(config.weights[:parents])
        mean_direction = weights @ random_directions[order[:parents]]

        c_sigma = config.step_size_control_learning_rate
        normalization = math.sqrt(c_sigma * (2 - c_sigma) * config.variance_effective_selection_mass)
        self._conjugate_evolution_path = (
            (1 - c_sigma) * self._conjugate_evolution_path
            + normalization * (self._eigenvectors @ mean_direction)
        )

        path_length_ratio = (
            np.linalg.norm(self._conjugate_evolution_path)
            / config.compute_expected_conjugate_evolution_path_length()
        )
        factor = c_sigma / config.step_size_control_damping
        self._step_size *= math.exp(factor * (path_length_ratio - 1))

    def _adapt_covariances(
        self,
        unscaled_mean_step: NDArray,
        random_directions: NDArray,
        step_directions: NDArray,
        order: list[int],
    ) -> None:
        config = self._configuration
        c_c = config.cumulation_learning_rate
        normalization = math.sqrt(c_c * (2 - c_c) * config.variance_effective_selection_mass)
        stalling = self._decide_stalling_constant()
        self._evolution_path = (
            (1 - c_c) * self._evolution_path + (stalling * normalization) * unscaled_mean_step
        )

        rank_one_update = config.rank_one_update_learning_rate * np.outer(
            self._evolution_path, self._evolution_path
        )
        rank_mu_update = self._compute_rank_mu_update(random_directions, step_directions, order)
        decay = self._compute_covariance_decay_factor(stalling)
        self._covariances = decay * self._covariances + rank_one_update + rank_mu_update

    def _decide_stalling_constant(self) -> int:
        config = self._configuration
        c_sigma = config.step_size_control_learning_rate
        maximum_path_length = (
            math.sqrt(1 - (1 - c_sigma) ** (2 * (self._generation + 1)))
            * (1.4 + 2 / (config.search_space_dimension + 1))
            * config.compute_expected_conjugate_evolution_path_length()
        )
        return 0 if np.linalg.norm(self._conjugate_evolution_path) >= maximum_path_length else 1

    def _compute_rank_mu_update(
        self,
        random_directions: NDArray,
        step_directions: NDArray,
        order: list[int],
    ) -> NDArray:
        config = self._configuration
        n = config.search_space_dimension
        update = np.zeros((n, n))
        for rank, index in enumerate(order):
            weight = config.weights[rank]
            if weight < 0:
                weight *= n / np.linalg.norm(self._eigenvectors @ random_directions[index]) ** 2
            direction = step_directions[index]
            update += weight * np.outer(direction, direction)
        return config.rank_mu_update_learning_rate * update

    def _compute_covariance_decay_factor(self, stalling: int) -> float:
        config = self._configuration
        c_c = config.cumulation_learning_rate
        c1 = config.rank_one_update_learning_rate
        stalling_adapter = (1 - stalling) * c_c * (2 - c_c)
        return 1 + c1 * stalling_adapter - c1 - config.rank_mu_update_learning_rate * sum(config.weights)

    def _check_is_initialized(self, member_name: str) -> None:
        if self._configuration is None:
            msg = f"Cannot execute {member_name} before calling initialize"
            raise RuntimeError(msg)
