"""Termination criteria of CMA-ES.

Every criterion is a pure function of the current ``CmaEsElements``. The
no-effect criteria compare floats for exact equality: adding a scaled step
to the mean that leaves the mean bit for bit unchanged terminates the run,
even if this is caused by limited floating point precision.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np

if TYPE_CHECKING:
    from .cma_es import CmaEsElements


class TerminationCriterion(ABC):
    """A stopping rule evaluated on the state of a CMA-ES run."""

    type_name: ClassVar[str]

    @abstractmethod
    def is_met(self, data: CmaEsElements) -> bool:
        """Whether the run described by ``data`` should stop.

        Raises:
            TypeError: If data is None.
        """

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type_name}

    @staticmethod
    def _check_not_none(data: CmaEsElements | None) -> None:
        if data is None:
            msg = "CMA-ES data must not be None"
            raise TypeError(msg)

    @staticmethod
    def _check_completely_specified(data: CmaEsElements) -> None:
        if not data.is_completely_specified():
            msg = "Data must be completely specified for this termination criterion"
            raise ValueError(msg)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TerminationCriterion):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(self.type_name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class MaxIterations(TerminationCriterion):
    """Stops once a number of generations has been reached.

    Args:
        maximum: Maximum number of generations; at least 1.
    """

    type_name = "max_iterations"

    def __init__(self, maximum: int) -> None:
        if maximum < 1:
            msg = f"CMA-ES needs at least 1 generation, but was provided with a maximum of {maximum}"
            raise ValueError(msg)
        self.maximum = int(maximum)

    def is_met(self, data: CmaEsElements) -> bool:
        self._check_not_none(data)
        return data.generation >= self.maximum

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type_name, "maximum": self.maximum}

    def __repr__(self) -> str:
        return f"MaxIterations({self.maximum})"


class ConditionCov(TerminationCriterion):
    """Stops if the condition number of the covariance matrix exceeds 1e14."""

    type_name = "condition_cov"
    MAX_CONDITION = 1e14

    def is_met(self, data: CmaEsElements) -> bool:
        self._check_not_none(data)
        if data.covariances is None:
            msg = "Data must have the covariance matrix set for this termination criterion"
            raise ValueError(msg)
        return bool(np.linalg.cond(data.covariances) > self.MAX_CONDITION)


class NoEffectAxis(TerminationCriterion):
    """Stops if a 0.1 sigma step along a principal axis does not change the mean.

    The axis is chosen by the generation modulo the search space dimension.
    """

    type_name = "no_effect_axis"

    def is_met(self, data: CmaEsElements) -> bool:
        self._check_not_none(data)
        self._check_completely_specified(data)
        index = data.generation % data.configuration.search_space_dimension
        principal_axis = np.sqrt(data.covariances_diagonal[index]) * data.covariances_eigenvectors[:, index]
        mean = data.distribution_mean
        shifted_mean = mean + (0.1 * data.step_size) * principal_axis
        return bool(np.array_equal(mean, shifted_mean))


class NoEffectCoord(TerminationCriterion):
    """Stops if a 0.2 sigma step along any coordinate does not change the mean."""

    type_name = "no_effect_coord"

    def is_met(self, data: CmaEsElements) -> bool:
        self._check_not_none(data)
        self._check_completely_specified(data)
        mean = data.distribution_mean
        shifted_mean = mean + (0.2 * data.step_size) * np.diag(data.covariances)
        return bool(np.any(mean == shifted_mean))


class TolUpSigma(TerminationCriterion):
    """Stops if the step size grew by far more than the largest principal axis."""

    type_name = "tol_up_sigma"
    MAX_FACTOR = 1e4

    def is_met(self, data: CmaEsElements) -> bool:
        self._check_not_none(data)
        self._check_completely_specified(data)
        largest_eigenvalue = float(np.max(data.covariances_diagonal))
        ratio = data.step_size / data.configuration.initial_step_size
        return bool(ratio > self.MAX_FACTOR * np.sqrt(largest_eigenvalue))


_CRITERIA: dict[str, type[TerminationCriterion]] = {
    criterion.type_name: criterion
    for criterion in (MaxIterations, ConditionCov, NoEffectAxis, NoEffectCoord, TolUpSigma)
}


def termination_criterion_from_dict(data: dict[str, Any]) -> TerminationCriterion:
    """Restore a criterion from its tagged dictionary.

    Raises:
        ValueError: If the type tag is unknown.
    """
    criterion_type = _CRITERIA.get(data.get("type"))
    if criterion_type is None:
        msg = f"Unknown termination criterion '{data.get('type')}'"
        raise ValueError(msg)
    if criterion_type is MaxIterations:
        return MaxIterations(data["maximum"])
    return criterion_type()
