"""Parameter domains.

A domain describes the values a single parameter may take. The set of domain
kinds is closed: categorical, continuous, log, integer and discrete log.
Domains are (de)serialized through their ``DomainKind`` tag.
"""

from __future__ import annotations

import math
import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.stats import truncnorm

from ..genomes import Allele

if TYPE_CHECKING:
    from collections.abc import Sequence


INT_MIN = -(2**31)
INT_MAX = 2**31 - 1


class DomainKind(Enum):
    """Tag of every concrete domain type."""

    CATEGORICAL = "categorical"
    CONTINUOUS = "continuous"
    LOG = "log"
    INTEGER = "integer"
    DISCRETE_LOG = "discrete_log"

    @classmethod
    def from_string(cls, value: str) -> DomainKind:
        """Create from string value."""
        mapping = {
            "categorical": cls.CATEGORICAL,
            "continuous": cls.CONTINUOUS,
            "log": cls.LOG,
            "integer": cls.INTEGER,
            "int": cls.INTEGER,
            "discrete_log": cls.DISCRETE_LOG,
            "discretelog": cls.DISCRETE_LOG,
        }
        try:
            return mapping[value.lower()]
        except KeyError:
            msg = f"Unknown domain kind '{value}'"
            raise ValueError(msg) from None


class Domain(ABC):
    """Base class of all domains.

    Args:
        default_value: Optional default value; must be contained in the domain.
    """

    kind: DomainKind

    def __init__(self, default_value: Any = None) -> None:
        self._default: Allele | None = None
        if default_value is not None:
            default = default_value if isinstance(default_value, Allele) else Allele(default_value)
            if not self.contains_gene_value(default):
                msg = f"Default value {default} is not contained in {self}"
                raise ValueError(msg)
            self._default = default

    @property
    @abstractmethod
    def domain_size(self) -> float:
        """Number of values in the domain (``math.inf`` if unbounded or continuous)."""

    @property
    def is_categorical(self) -> bool:
        return False

    @property
    def default_value(self) -> Allele | None:
        return self._default

    def get_default_value(self, rng: np.random.Generator) -> Allele:
        """Return the default value, or a random value if the domain has none."""
        if self._default is not None:
            return self._default
        return self.generate_random_gene_value(rng)

    def generate_random_gene_value(self, rng: np.random.Generator) -> Allele:
        return Allele(self._generate_random_value(rng))

    def mutate_gene_value(
        self,
        allele: Allele,
        variance_percentage: float,
        rng: np.random.Generator,
    ) -> Allele:
        """Mutate a gene value.

        Args:
            allele: Current value; must be contained in the domain.
            variance_percentage: Relative strength of the mutation.
            rng: Random generator.

        Returns:
            The mutated value.

        Raises:
            ValueError: If the allele is not part of the domain.
        """
        if not self.contains_gene_value(allele):
            msg = f"Cannot mutate {allele}: value is not contained in {self}"
            raise ValueError(msg)
        return Allele(self._mutate(allele.value, variance_percentage, rng))

    def contains_gene_value(self, allele: Allele) -> bool:
        value = allele.value if isinstance(allele, Allele) else allele
        return self._contains(value)

    def convert_to_float(self, allele: Allele) -> float:
        """Convert a contained value into a float.

        Raises:
            ValueError: If the value is not contained in the domain.
        """
        if not self.contains_gene_value(allele):
            msg = f"Cannot convert {allele}: value is not contained in {self}"
            raise ValueError(msg)
        return float(allele.value)

    @abstractmethod
    def convert_back(self, value: float) -> Allele:
        """Convert a float produced by ``convert_to_float`` back into an allele."""

    @abstractmethod
    def _generate_random_value(self, rng: np.random.Generator) -> Any:
        pass

    @abstractmethod
    def _mutate(self, value: Any, variance_percentage: float, rng: np.random.Generator) -> Any:
        pass

    @abstractmethod
    def _contains(self, value: Any) -> bool:
        pass

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary tagged with the domain kind."""

    def _default_to_dict(self) -> Any:
        return None if self._default is None else self._default.value


class CategoricalDomain(Domain):
    """Domain consisting of a finite list of possible values.

    Args:
        possible_values: The values; must be non-empty and distinct.
        default_value: Optional default value.
    """

    kind = DomainKind.CATEGORICAL

    def __init__(self, possible_values: Sequence[Any], default_value: Any = None) -> None:
        if len(possible_values) == 0:
            msg = "Categorical domain needs at least one possible value"
            raise ValueError(msg)
        self.possible_values = [
            v.value if isinstance(v, Allele) else Allele(v).value for v in possible_values
        ]
        alleles = [Allele(v) for v in self.possible_values]
        if len(set(alleles)) != len(alleles):
            msg = f"Possible values must be distinct, got {self.possible_values}"
            raise ValueError(msg)
        self._alleles = alleles
        super().__init__(default_value)

    @property
    def domain_size(self) -> float:
        return len(self.possible_values)

    @property
    def is_categorical(self) -> bool:
        return True

    @property
    def possible_alleles(self) -> list[Allele]:
        return list(self._alleles)

    def index_of(self, allele: Allele) -> int:
        """Index of a value in the list of possible values."""
        allele = allele if isinstance(allele, Allele) else Allele(allele)
        try:
            return self._alleles.index(allele)
        except ValueError:
            msg = f"{allele} is not contained in {self}"
            raise ValueError(msg) from None

    def convert_to_float(self, allele: Allele) -> float:
        msg = "Categorical domains cannot be converted to floats, use a categorical encoding"
        raise TypeError(msg)

    def convert_back(self, value: float) -> Allele:
        msg = "Categorical domains cannot be converted from floats, use a categorical encoding"
        raise TypeError(msg)

    def _generate_random_value(self, rng: np.random.Generator) -> Any:
        return self.possible_values[int(rng.integers(len(self.possible_values)))]

    def _mutate(self, value: Any, variance_percentage: float, rng: np.random.Generator) -> Any:
        return self._generate_random_value(rng)

    def _contains(self, value: Any) -> bool:
        return Allele(value) in self._alleles

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "possible_values": list(self.possible_values),
            "default_value": self._default_to_dict(),
        }

    def __repr__(self) -> str:
        return f"CategoricalDomain({self.possible_values})"


class NumericalDomain(Domain):
    """Domain of numbers within ``[minimum, maximum]``."""

    value_type: type = float

    def __init__(self, minimum: float, maximum: float, default_value: Any = None) -> None:
        if maximum < minimum:
            msg = f"Maximum ({maximum}) must not be smaller than minimum ({minimum})"
            raise ValueError(msg)
        self.minimum = self.value_type(minimum)
        self.maximum = self.value_type(maximum)
        if default_value is not None and not isinstance(default_value, Allele):
            default_value = self.value_type(default_value)
        super().__init__(default_value)

    def _contains(self, value: Any) -> bool:
        if type(value) is not self.value_type:
            return False
        return self.minimum <= value <= self.maximum

    def _mutate(self, value: Any, variance_percentage: float, rng: np.random.Generator) -> Any:
        if not 0 < variance_percentage <= 1:
            msg = (
                "Variance percentage needs to be positive and at most 1, "
                f"but was {variance_percentage}"
            )
            raise ValueError(msg)
        return self._sample_from_gaussian(value, variance_percentage, rng)

    @abstractmethod
    def _sample_from_gaussian(
        self,
        mean: Any,
        variance_percentage: float,
        rng: np.random.Generator,
    ) -> Any:
        pass

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "minimum": self.minimum,
            "maximum": self.maximum,
            "default_value": self._default_to_dict(),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}([{self.minimum}, {self.maximum}])"


def _truncated_gaussian(
    mean: float,
    std: float,
    lower: float,
    upper: float,
    rng: np.random.Generator,
) -> float:
    """Sample from a normal distribution truncated to ``[lower, upper]``."""
    if std <= 0 or lower == upper:
        return float(min(max(mean, lower), upper))
    a = (lower - mean) / std
    b = (upper - mean) / std
    sample = truncnorm.rvs(a, b, loc=mean, scale=std, random_state=rng)
    return float(min(max(sample, lower), upper))


def _mutation_std(variance_percentage: float, minimum: float, maximum: float) -> float:
    fraction = variance_percentage / 100
    return 10 * math.sqrt(fraction * maximum - fraction * minimum)


class ContinuousDomain(NumericalDomain):
    """Domain of floats. Unbounded by default."""

    kind = DomainKind.CONTINUOUS

    def __init__(
        self,
        minimum: float = -sys.float_info.max,
        maximum: float = sys.float_info.max,
        default_value: float | None = None,
    ) -> None:
        super().__init__(minimum, maximum, default_value)

    @property
    def domain_size(self) -> float:
        return math.inf

    def convert_back(self, value: float) -> Allele:
        return Allele(float(value))

    def _generate_random_value(self, rng: np.random.Generator) -> float:
        # uniform(-max, max) overflows the interval width, so sample the midpoint form
        half_width = self.maximum / 2 - self.minimum / 2
        center = self.minimum / 2 + self.maximum / 2
        return float(min(max(center + rng.uniform(-1.0, 1.0) * half_width, self.minimum), self.maximum))

    def _sample_from_gaussian(
        self,
        mean: float,
        variance_percentage: float,
        rng: np.random.Generator,
    ) -> float:
        std = _mutation_std(variance_percentage, self.minimum, self.maximum)
        return _truncated_gaussian(mean, std, self.minimum, self.maximum, rng)


class LogDomain(ContinuousDomain):
    """Domain of positive floats sampled and mutated in log space."""

    kind = DomainKind.LOG

    def __init__(self, minimum: float, maximum: float, default_value: float | None = None) -> None:
        if minimum <= 0:
            msg = f"Logarithmically spaced domain must be positive, but minimum is {minimum}"
            raise ValueError(msg)
        super().__init__(minimum, maximum, default_value)
        self._log_space = ContinuousDomain(math.log(self.minimum), math.log(self.maximum))

    def _generate_random_value(self, rng: np.random.Generator) -> float:
        value = math.exp(self._log_space._generate_random_value(rng))
        return float(min(max(value, self.minimum), self.maximum))

    def _sample_from_gaussian(
        self,
        mean: float,
        variance_percentage: float,
        rng: np.random.Generator,
    ) -> float:
        log_value = self._log_space._sample_from_gaussian(math.log(mean), variance_percentage, rng)
        return float(min(max(math.exp(log_value), self.minimum), self.maximum))


class IntegerDomain(NumericalDomain):
    """Domain of integers. Spans the 32 bit range by default."""

    kind = DomainKind.INTEGER
    value_type = int

    def __init__(
        self,
        minimum: int = INT_MIN,
        maximum: int = INT_MAX,
        default_value: int | None = None,
    ) -> None:
        super().__init__(minimum, maximum, default_value)

    @property
    def domain_size(self) -> float:
        if self.minimum == INT_MIN or self.maximum == INT_MAX:
            return math.inf
        return float(self.maximum - self.minimum + 1)

    def convert_back(self, value: float) -> Allele:
        return Allele(int(value))

    def _generate_random_value(self, rng: np.random.Generator) -> int:
        return int(rng.integers(self.minimum, self.maximum, endpoint=True))

    def _sample_from_gaussian(
        self,
        mean: int,
        variance_percentage: float,
        rng: np.random.Generator,
    ) -> int:
        if self.maximum == self.minimum:
            return mean
        std = _mutation_std(variance_percentage, self.minimum, self.maximum)
        sample = _truncated_gaussian(mean, std, self.minimum, self.maximum, rng)
        return int(min(max(round(sample), self.minimum), self.maximum))


class DiscreteLogDomain(IntegerDomain):
    """Domain of positive integers sampled and mutated in log space."""

    kind = DomainKind.DISCRETE_LOG

    def __init__(self, minimum: int, maximum: int, default_value: int | None = None) -> None:
        if minimum <= 0:
            msg = (
                "Logarithmically spaced integer domain must be positive, "
                f"but minimum is {minimum}"
            )
            raise ValueError(msg)
        super().__init__(minimum, maximum, default_value)
        self._log_space = ContinuousDomain(math.log(self.minimum), math.log(self.maximum))

    @property
    def domain_size(self) -> float:
        return float(round(self.maximum - self.minimum) + 1)

    def _generate_random_value(self, rng: np.random.Generator) -> int:
        value = round(math.exp(self._log_space._generate_random_value(rng)))
        return int(min(max(value, self.minimum), self.maximum))

    def _sample_from_gaussian(
        self,
        mean: int,
        variance_percentage: float,
        rng: np.random.Generator,
    ) -> int:
        log_value = self._log_space._sample_from_gaussian(math.log(mean), variance_percentage, rng)
        return int(min(max(round(math.exp(log_value)), self.minimum), self.maximum))

    def __repr__(self) -> str:
        return f"DiscreteLogDomain([{self.minimum}, {self.maximum}]) (in discrete log space)"


_DOMAIN_TYPES: dict[DomainKind, type[Domain]] = {
    DomainKind.CATEGORICAL: CategoricalDomain,
    DomainKind.CONTINUOUS: ContinuousDomain,
    DomainKind.LOG: LogDomain,
    DomainKind.INTEGER: IntegerDomain,
    DomainKind.DISCRETE_LOG: DiscreteLogDomain,
}


def domain_from_dict(data: dict[str, Any]) -> Domain:
    """Create a domain from a dictionary tagged with its kind.

    Raises:
        ValueError: If the kind tag is unknown.
    """
    kind = DomainKind.from_string(data["kind"])
    domain_type = _DOMAIN_TYPES[kind]
    if kind is DomainKind.CATEGORICAL:
        return domain_type(data["possible_values"], data.get("default_value"))
    return domain_type(data["minimum"], data["maximum"], data.get("default_value"))
