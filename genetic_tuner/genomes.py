"""Genomes: typed gene values, mutable and immutable genomes, populations.

A genome assigns an ``Allele`` to every parameter identifier of a
``ParameterTree`` and carries an age used by the outer genetic algorithm.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from .utils.utils import validate_non_negative

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .genome_builder import GenomeBuilder
    from .optimization_config import TunerSettings
    from .parameter_space.parameter_tree import ParameterTree


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allele:
    """The typed value held by a single gene.

    Equality takes the value type into account, so ``Allele(1)`` differs from
    ``Allele(1.0)`` and from ``Allele(True)``.

    Attributes:
        value: The gene value.
    """

    value: Any

    def __post_init__(self) -> None:
        # numpy scalars are stored as their python equivalents
        if isinstance(self.value, np.generic):
            object.__setattr__(self, "value", self.value.item())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Allele):
            return NotImplemented
        return type(self.value) is type(other.value) and self.value == other.value

    def __hash__(self) -> int:
        return hash((type(self.value).__name__, self.value))

    def __str__(self) -> str:
        return str(self.value)


def _as_allele(value: Any) -> Allele:
    return value if isinstance(value, Allele) else Allele(value)


class Genome:
    """A mutable assignment of alleles to parameter identifiers.

    Args:
        age: Age of the genome in generations.
        is_engineered: Whether the genome was created by genetic engineering.

    Raises:
        ValueError: If age is negative.
    """

    def __init__(self, age: int = 0, *, is_engineered: bool = False) -> None:
        validate_non_negative(age, "age")
        self.age = int(age)
        self.is_engineered = is_engineered
        self._genes: dict[str, Allele] = {}

    @classmethod
    def from_values(
        cls,
        values: dict[str, Any],
        age: int = 0,
        *,
        is_engineered: bool = False,
    ) -> Genome:
        """Create a genome from a mapping of identifiers to (raw or wrapped) values."""
        genome = cls(age, is_engineered=is_engineered)
        for identifier, value in values.items():
            genome.set_gene(identifier, value)
        return genome

    @property
    def identifiers(self) -> list[str]:
        """Gene identifiers in sorted order."""
        return sorted(self._genes)

    def __len__(self) -> int:
        return len(self._genes)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._genes

    def get_gene_value(self, identifier: str) -> Allele:
        """Get the allele stored for a gene.

        Raises:
            KeyError: If the genome has no gene with that identifier.
        """
        try:
            return self._genes[identifier]
        except KeyError:
            msg = f"Genome has no gene with identifier '{identifier}'"
            raise KeyError(msg) from None

    def set_gene(self, identifier: str, value: Any) -> None:
        """Set a gene to the given allele (raw values are wrapped)."""
        self._genes[identifier] = _as_allele(value)

    def items(self) -> Iterator[tuple[str, Allele]]:
        """Iterate over (identifier, allele) pairs in identifier order."""
        for identifier in self.identifiers:
            yield identifier, self._genes[identifier]

    def get_gene_values(self) -> dict[str, Any]:
        """Return a plain mapping from identifier to raw value."""
        return {identifier: allele.value for identifier, allele in self.items()}

    def get_active_genes(self, tree: ParameterTree) -> dict[str, Allele]:
        """Return the genes that are active with respect to the tree's OR nodes."""
        active = tree.find_active_identifiers(self._genes)
        return {identifier: self._genes[identifier] for identifier in sorted(active)}

    def age_once(self) -> None:
        self.age += 1

    def copy(self) -> Genome:
        """Create an independent copy of this genome."""
        genome = Genome(self.age, is_engineered=self.is_engineered)
        genome._genes = dict(self._genes)
        return genome

    def with_age(self, age: int) -> Genome:
        """Create a copy of this genome with a different age."""
        genome = self.copy()
        validate_non_negative(age, "age")
        genome.age = int(age)
        return genome

    def gene_values_equal(self, other: Genome | ImmutableGenome) -> bool:
        """Compare genes only, ignoring age and engineering flag."""
        if isinstance(other, ImmutableGenome):
            other = other.genome
        return self._genes == other._genes

    def gene_value_hash(self) -> int:
        return hash(frozenset(self._genes.items()))

    def to_filtered_gene_string(self, tree: ParameterTree) -> str:
        """Describe only the active genes."""
        genes = ", ".join(f"{k}: {v}" for k, v in self.get_active_genes(tree).items())
        return f"[{genes}]"

    def to_capped_decimal_string(self, decimals: int = 6) -> str:
        """Describe all genes, with floats rounded to a fixed number of decimals."""
        parts = []
        for identifier, allele in self.items():
            value = allele.value
            text = f"{value:.{decimals}f}" if isinstance(value, float) else str(value)
            parts.append(f"{identifier}: {text}")
        return f"[{', '.join(parts)}]"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON friendly dictionary."""
        return {
            "age": self.age,
            "is_engineered": self.is_engineered,
            "genes": {k: _allele_to_dict(v) for k, v in self.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Genome:
        genome = cls(data["age"], is_engineered=data.get("is_engineered", False))
        for identifier, allele_data in data["genes"].items():
            genome.set_gene(identifier, _allele_from_dict(allele_data))
        return genome

    def __str__(self) -> str:
        genes = ", ".join(f"{k}: {v}" for k, v in self.items())
        engineered = "yes" if self.is_engineered else "no"
        return f"[{genes}](Age: {self.age})[Engineered: {engineered}]"

    def __repr__(self) -> str:
        return f"Genome({self})"


_ALLELE_TYPES: dict[str, type] = {"bool": bool, "int": int, "float": float, "str": str}


def _allele_to_dict(allele: Allele) -> dict[str, Any]:
    type_name = type(allele.value).__name__
    if type_name not in _ALLELE_TYPES:
        msg = f"Cannot serialize allele of type {type_name}"
        raise TypeError(msg)
    return {"type": type_name, "value": allele.value}


def _allele_from_dict(data: dict[str, Any]) -> Allele:
    return Allele(_ALLELE_TYPES[data["type"]](data["value"]))


class ImmutableGenome:
    """Read-only wrapper around a copy of a genome.

    Equality and hashing are by gene values, so immutable genomes can be used
    as dictionary keys when collecting evaluation results.
    """

    def __init__(self, genome: Genome) -> None:
        self._genome = genome.copy()

    @property
    def genome(self) -> Genome:
        return self._genome

    @property
    def age(self) -> int:
        return self._genome.age

    @property
    def is_engineered(self) -> bool:
        return self._genome.is_engineered

    def get_gene_value(self, identifier: str) -> Allele:
        return self._genome.get_gene_value(identifier)

    def create_mutable_genome(self) -> Genome:
        """Return a mutable copy of the wrapped genome."""
        return self._genome.copy()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImmutableGenome):
            return NotImplemented
        return self._genome.gene_values_equal(other._genome)

    def __hash__(self) -> int:
        return self._genome.gene_value_hash()

    def __str__(self) -> str:
        return str(self._genome)

    def __repr__(self) -> str:
        return f"ImmutableGenome({self._genome})"


class Population:
    """Competitive and non-competitive genomes of the genetic algorithm.

    Args:
        settings: Tuner settings providing the maximum genome age.
    """

    def __init__(self, settings: TunerSettings) -> None:
        self.settings = settings
        self._competitive: list[Genome] = []
        self._non_competitive: list[Genome] = []

    @classmethod
    def from_genomes(
        cls,
        settings: TunerSettings,
        competitive: Iterable[Genome],
        non_competitive: Iterable[Genome] = (),
    ) -> Population:
        population = cls(settings)
        for genome in competitive:
            population.add_genome(genome, is_competitive=True)
        for genome in non_competitive:
            population.add_genome(genome, is_competitive=False)
        return population

    def add_genome(self, genome: Genome, *, is_competitive: bool) -> None:
        if is_competitive:
            self._competitive.append(genome)
        else:
            self._non_competitive.append(genome)

    def get_competitive_individuals(self) -> list[Genome]:
        return list(self._competitive)

    def get_non_competitive_mates(self) -> list[Genome]:
        return list(self._non_competitive)

    @property
    def count(self) -> int:
        return len(self._competitive) + len(self._non_competitive)

    def is_empty(self) -> bool:
        return self.count == 0

    def age(self) -> None:
        """Age every genome once and remove those older than the maximum age."""
        max_age = self.settings.max_genome_age
        for genome in self._competitive + self._non_competitive:
            genome.age_once()
        before = self.count
        self._competitive = [g for g in self._competitive if g.age <= max_age]
        self._non_competitive = [g for g in self._non_competitive if g.age <= max_age]
        logger.debug("Removed %d genomes older than %d.", before - self.count, max_age)

    def replace_individuals_with_mutants(
        self,
        builder: GenomeBuilder,
        rng: np.random.Generator,
    ) -> None:
        """Mutate every genome in place."""
        for genome in self._competitive + self._non_competitive:
            builder.mutate(genome, rng)

    def copy(self) -> Population:
        return Population.from_genomes(
            self.settings,
            (g.copy() for g in self._competitive),
            (g.copy() for g in self._non_competitive),
        )

    def __repr__(self) -> str:
        return (
            f"Population(competitive={len(self._competitive)}, "
            f"non_competitive={len(self._non_competitive)})"
        )
