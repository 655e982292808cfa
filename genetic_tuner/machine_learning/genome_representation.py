"""Real-valued representation of genomes as used by the prediction trees."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ..genome_transformation import GenomeTransformation
    from ..genomes import Genome


class GenomeDoubleRepresentation:
    """Immutable feature vector of a genome.

    Equality and hashing are by value, so representations can be used as
    dictionary keys.

    Args:
        values: Feature values.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[float]) -> None:
        self._values = tuple(float(value) for value in values)

    @classmethod
    def from_array(cls, array: NDArray | Iterable[float]) -> GenomeDoubleRepresentation:
        return cls(np.asarray(array, dtype=np.float64).ravel())

    @classmethod
    def from_genome(cls, genome: Genome, transformation: GenomeTransformation) -> GenomeDoubleRepresentation:
        return cls.from_array(transformation.convert_genome_to_array(genome))

    @classmethod
    def from_identifier_string(cls, identifier: str) -> GenomeDoubleRepresentation:
        """Inverse of ``to_identifier_string`` up to the rounding."""
        return cls(json.loads(identifier))

    def to_array(self) -> NDArray[np.float64]:
        return np.array(self._values, dtype=np.float64)

    def to_identifier_string(self) -> str:
        """JSON list of the values rounded to 6 decimals."""
        return json.dumps([round(value, 6) for value in self._values])

    def __len__(self) -> int:
        return len(self._values)

    def __getitem__(self, index: int) -> float:
        return self._values[index]

    def __iter__(self) -> Iterator[float]:
        return iter(self._values)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, GenomeDoubleRepresentation):
            return self._values == other._values
        if isinstance(other, (np.ndarray, list, tuple)):
            return self._values == tuple(float(value) for value in np.ravel(other))
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._values)

    def __repr__(self) -> str:
        return f"GenomeDoubleRepresentation({list(self._values)})"
