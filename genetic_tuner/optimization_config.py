"""Optimization Configuration Module.

This module provides the configuration classes of the tuner and of its
continuous optimization phases, allowing fine-grained control over:
- Genome handling (age, mutation, repair)
- Categorical encodings used when continuizing genomes
- CMA-ES population update strategies
- Differential evolution (JADE) population update strategies

Example:
    >>> from genetic_tuner.optimization_config import (
    ...     TunerSettings, CmaEsStrategySettings, DifferentialEvolutionStrategySettings,
    ... )
    >>>
    >>> tuner = TunerSettings(max_genome_age=3, mutation_rate=0.1)
    >>> cma_es = CmaEsStrategySettings(
    ...     focus_on_incumbent=True,
    ...     max_generations=20,
    ...     replacement_rate=0.25,
    ...     initial_step_size=2.0,
    ... )
    >>> jade = DifferentialEvolutionStrategySettings(
    ...     max_generations=30,
    ...     differential_evolution=DifferentialEvolutionSettings(best_percentage=0.2),
    ... )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .utils.utils import (
    validate_in_range,
    validate_positive,
    validate_positive_int,
    validate_probability,
)

COMPATIBILITY_TOLERANCE = 1e-7


class CategoricalEncodingType(Enum):
    """Encodings of categorical domains into real-valued columns."""

    ORDINAL = "ordinal"
    BINARY = "binary"
    ONE_HOT = "one_hot"

    @classmethod
    def from_string(cls, value: str) -> CategoricalEncodingType:
        """Create from string value."""
        mapping = {
            "ordinal": cls.ORDINAL,
            "binary": cls.BINARY,
            "one_hot": cls.ONE_HOT,
            "onehot": cls.ONE_HOT,
        }
        return mapping.get(value.lower(), cls.ORDINAL)


class InformationFlowType(Enum):
    """How a continuous optimization phase uses the genetic population."""

    GLOBAL = "global"
    LOCAL = "local"

    @classmethod
    def from_string(cls, value: str) -> InformationFlowType:
        """Create from string value."""
        mapping = {
            "global": cls.GLOBAL,
            "local": cls.LOCAL,
            "incumbent": cls.LOCAL,
        }
        return mapping.get(value.lower(), cls.GLOBAL)


@dataclass
class TunerSettings:
    """General genome handling configuration.

    Attributes:
        population_size: Number of genomes in a freshly created population.
        max_genome_age: Genomes older than this are removed when aging.
        mutation_rate: Probability of mutating a single gene.
        mutation_variance_percentage: Relative strength of numerical mutations.
        max_repair_attempts: Rounds of repair mutations before giving up.
        categorical_encoding: Encoding used for categorical features.
        status_file_directory: Directory for status dumps.
    """

    population_size: int = 128
    max_genome_age: int = 3
    mutation_rate: float = 0.1
    mutation_variance_percentage: float = 0.1
    max_repair_attempts: int = 20
    categorical_encoding: CategoricalEncodingType = CategoricalEncodingType.ORDINAL
    status_file_directory: str = "status"

    def __post_init__(self) -> None:
        """Validate settings."""
        validate_positive_int(self.population_size, "population_size")
        validate_positive_int(self.max_genome_age, "max_genome_age")
        validate_probability(self.mutation_rate, "mutation_rate")
        validate_in_range(
            self.mutation_variance_percentage,
            0.0,
            1.0,
            "mutation_variance_percentage",
            include_lower=False,
        )
        validate_positive_int(self.max_repair_attempts, "max_repair_attempts")
        if isinstance(self.categorical_encoding, str):
            self.categorical_encoding = CategoricalEncodingType.from_string(
                self.categorical_encoding
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "population_size": self.population_size,
            "max_genome_age": self.max_genome_age,
            "mutation_rate": self.mutation_rate,
            "mutation_variance_percentage": self.mutation_variance_percentage,
            "max_repair_attempts": self.max_repair_attempts,
            "categorical_encoding": self.categorical_encoding.value,
            "status_file_directory": self.status_file_directory,
        }


@dataclass
class StrategySettings:
    """Settings shared by all continuous optimization strategies.

    Attributes:
        focus_on_incumbent: Whether to search close to the incumbent (local
            information flow) instead of across the competitive population.
        max_generations: Maximum number of generations per phase.
        minimum_domain_size: Integer domains with at least this many values
            are treated as continuous by the local information flows.
        replacement_rate: Share of the competitive population replaced by
            search results when focusing on the incumbent.
        fix_instances: Whether to keep the instance set fixed during a phase.
    """

    focus_on_incumbent: bool = False
    max_generations: int = sys.maxsize
    minimum_domain_size: int = 150
    replacement_rate: float = 0.0
    fix_instances: bool = False

    def __post_init__(self) -> None:
        """Validate settings."""
        validate_positive_int(self.max_generations, "max_generations")
        validate_positive_int(self.minimum_domain_size, "minimum_domain_size")

    @property
    def information_flow(self) -> InformationFlowType:
        if self.focus_on_incumbent:
            return InformationFlowType.LOCAL
        return InformationFlowType.GLOBAL

    def is_technically_compatible(self, other: object) -> bool:
        """Whether a status written with ``other`` can be read with these settings."""
        return isinstance(other, type(self))

    def is_compatible(self, other: object) -> bool:
        """Whether a run with ``other`` can be continued with these settings."""
        if not isinstance(other, type(self)):
            return False
        # replacement rate only matters when focusing on the incumbent
        if (
            self.focus_on_incumbent
            and abs(self.replacement_rate - other.replacement_rate) > COMPATIBILITY_TOLERANCE
        ):
            return False
        return (
            self.is_technically_compatible(other)
            and self.focus_on_incumbent == other.focus_on_incumbent
            and self.max_generations == other.max_generations
            and self.fix_instances == other.fix_instances
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "focus_on_incumbent": self.focus_on_incumbent,
            "max_generations": self.max_generations,
            "minimum_domain_size": self.minimum_domain_size,
            "replacement_rate": self.replacement_rate,
            "fix_instances": self.fix_instances,
        }


@dataclass
class CmaEsStrategySettings(StrategySettings):
    """CMA-ES strategy configuration.

    A replacement rate of 0 keeps all competitive genomes but the incumbent
    when focusing on the incumbent; otherwise it must be in (0, 1].

    Attributes:
        initial_step_size: Initial step size (sigma) of every CMA-ES phase.
    """

    initial_step_size: float = 3.0

    def __post_init__(self) -> None:
        """Validate settings."""
        super().__post_init__()
        if self.replacement_rate != 0.0:
            validate_in_range(
                self.replacement_rate, 0.0, 1.0, "replacement_rate", include_lower=False
            )
        validate_positive(self.initial_step_size, "initial_step_size")

    def is_technically_compatible(self, other: object) -> bool:
        if not super().is_technically_compatible(other):
            return False
        # the search point type cannot change within a phase
        if self.focus_on_incumbent != other.focus_on_incumbent:
            return False
        return not (
            self.focus_on_incumbent and self.minimum_domain_size != other.minimum_domain_size
        )

    def is_compatible(self, other: object) -> bool:
        return (
            super().is_compatible(other)
            and abs(self.initial_step_size - other.initial_step_size) < COMPATIBILITY_TOLERANCE
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result = super().to_dict()
        result["initial_step_size"] = self.initial_step_size
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CmaEsStrategySettings:
        return cls(**data)


@dataclass
class DifferentialEvolutionSettings:
    """JADE configuration.

    Attributes:
        best_percentage: Share of the population considered for the pbest
            vector in current-to-pbest mutation.
        initial_mean_mutation_factor: Initial mean of the mutation factor F.
        initial_mean_crossover_rate: Initial mean of the crossover rate CR.
        learning_rate: Rate at which the means adapt to successful values.
    """

    best_percentage: float = 0.1
    initial_mean_mutation_factor: float = 0.5
    initial_mean_crossover_rate: float = 0.5
    learning_rate: float = 0.1

    def __post_init__(self) -> None:
        """Validate settings."""
        validate_in_range(
            self.best_percentage, 0.0, 1.0, "best_percentage", include_lower=False
        )
        validate_probability(self.initial_mean_mutation_factor, "initial_mean_mutation_factor")
        validate_probability(self.initial_mean_crossover_rate, "initial_mean_crossover_rate")
        validate_probability(self.learning_rate, "learning_rate")

    def is_compatible(self, other: object) -> bool:
        if not isinstance(other, DifferentialEvolutionSettings):
            return False
        return (
            abs(self.best_percentage - other.best_percentage) < COMPATIBILITY_TOLERANCE
            and abs(self.learning_rate - other.learning_rate) < COMPATIBILITY_TOLERANCE
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "best_percentage": self.best_percentage,
            "initial_mean_mutation_factor": self.initial_mean_mutation_factor,
            "initial_mean_crossover_rate": self.initial_mean_crossover_rate,
            "learning_rate": self.learning_rate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DifferentialEvolutionSettings:
        return cls(**data)


@dataclass
class DifferentialEvolutionStrategySettings(StrategySettings):
    """Differential evolution strategy configuration.

    Attributes:
        differential_evolution: Settings of the JADE engine.
    """

    differential_evolution: DifferentialEvolutionSettings = field(
        default_factory=DifferentialEvolutionSettings
    )

    def __post_init__(self) -> None:
        """Validate settings."""
        super().__post_init__()
        validate_in_range(self.replacement_rate, 0.0, 0.5, "replacement_rate")
        if isinstance(self.differential_evolution, dict):
            self.differential_evolution = DifferentialEvolutionSettings.from_dict(
                self.differential_evolution
            )

    def is_compatible(self, other: object) -> bool:
        return super().is_compatible(other) and self.differential_evolution.is_compatible(
            other.differential_evolution
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result = super().to_dict()
        result["differential_evolution"] = self.differential_evolution.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DifferentialEvolutionStrategySettings:
        return cls(**data)


__all__ = [
    "COMPATIBILITY_TOLERANCE",
    "CategoricalEncodingType",
    "CmaEsStrategySettings",
    "DifferentialEvolutionSettings",
    "DifferentialEvolutionStrategySettings",
    "InformationFlowType",
    "StrategySettings",
    "TunerSettings",
]
