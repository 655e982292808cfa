"""Conversion of genomes into real-valued feature vectors and back.

Parameters are ordered by identifier. Numerical parameters use a single
column holding their value; categorical parameters use one or more columns
depending on the categorical encoding:

- ordinal: 1 column holding the index of the value,
- binary: ``max(1, ceil(log2(N)))`` columns holding the bits of the index,
  least significant bit first,
- one-hot: ``N`` columns, exactly one of them set to 1.

Example:
    >>> transformation = GenomeTransformation(tree, CategoricalEncodingType.ONE_HOT)
    >>> features = transformation.convert_genome_to_array(genome)
    >>> transformation.convert_back(features).gene_values_equal(genome)
    True
"""

from __future__ import annotations

import functools
import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray

from .genomes import Allele, Genome
from .optimization_config import CategoricalEncodingType
from .parameter_space.domains import CategoricalDomain, NumericalDomain

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from .parameter_space.domains import Domain
    from .parameter_space.parameter_tree import ParameterNode, ParameterTree

KNOWN_TRANSFORMATIONS_CACHE_SIZE = 10_000


class ConvertedCategory:
    """Mapping between the values of a categorical domain and their columns.

    Args:
        parameter_name: Identifier of the encoded parameter.
        category_values: Column representation per domain value.
        domain: The underlying categorical domain.

    Raises:
        ValueError: If representations differ in length or are not distinct.
    """

    def __init__(
        self,
        parameter_name: str,
        category_values: Mapping[Allele, Sequence[float]],
        domain: CategoricalDomain,
    ) -> None:
        if domain is None:
            msg = "Converted category needs a domain"
            raise TypeError(msg)
        representations = {key: tuple(float(v) for v in value) for key, value in category_values.items()}
        lengths = {len(value) for value in representations.values()}
        if len(lengths) > 1:
            msg = "All category values need to be represented by the same number of columns"
            raise ValueError(msg)
        if len(set(representations.values())) != len(representations):
            msg = "Column representations of category values need to be distinct"
            raise ValueError(msg)

        self.parameter_name = parameter_name
        self.domain = domain
        self.column_count = lengths.pop() if lengths else -1
        self._columns = representations
        self._inverse = {value: key for key, value in representations.items()}

    def get_column_representation(self, value: Any) -> tuple[float, ...]:
        """Columns representing a domain value.

        Raises:
            ValueError: If the value is not part of the domain.
        """
        allele = value if isinstance(value, Allele) else Allele(value)
        try:
            return self._columns[allele]
        except KeyError:
            msg = f"Value {allele} is not valid for the domain of '{self.parameter_name}'"
            raise ValueError(msg) from None

    def get_domain_value_as_allele(self, key: Sequence[float]) -> Allele:
        """Domain value represented by the given columns.

        Raises:
            ValueError: If the key has the wrong length or represents no value.
        """
        key = tuple(float(k) for k in key)
        if len(key) != self.column_count:
            msg = f"Expected a key of length {self.column_count} for '{self.parameter_name}', got {len(key)}"
            raise ValueError(msg)
        try:
            return self._inverse[key]
        except KeyError:
            msg = (
                f"Key {list(key)} does not represent any value of the domain of "
                f"'{self.parameter_name}'"
            )
            raise ValueError(msg) from None


class CategoricalEncoding(ABC):
    """Base class of categorical encodings."""

    encoding_type: CategoricalEncodingType

    def encode(self, parameter_name: str, domain: Domain) -> ConvertedCategory:
        """Encode every value of a categorical domain."""
        self._validate_domain(domain)
        column_count = self.number_of_generated_columns(domain)
        category_values = {
            allele: self._encode_value(index, column_count)
            for index, allele in enumerate(domain.possible_alleles)
        }
        return ConvertedCategory(parameter_name, category_values, domain)

    def number_of_generated_columns(self, domain: Domain) -> int:
        """Number of columns used for a domain (1 for non-categorical domains)."""
        if domain is None:
            msg = "Domain must not be None"
            raise TypeError(msg)
        if not domain.is_categorical:
            return 1
        return self._columns_for_categorical(int(domain.domain_size))

    @abstractmethod
    def _encode_value(self, index: int, column_count: int) -> tuple[float, ...]:
        pass

    @abstractmethod
    def _columns_for_categorical(self, domain_size: int) -> int:
        pass

    @staticmethod
    def _validate_domain(domain: Domain) -> None:
        if not isinstance(domain, CategoricalDomain) or math.isinf(domain.domain_size):
            msg = f"Domain {domain!r} is not a categorical domain"
            raise ValueError(msg)


class CategoricalOrdinalEncoding(CategoricalEncoding):
    encoding_type = CategoricalEncodingType.ORDINAL

    def _encode_value(self, index: int, column_count: int) -> tuple[float, ...]:
        return (float(index),)

    def _columns_for_categorical(self, domain_size: int) -> int:
        return 1


class CategoricalBinaryEncoding(CategoricalEncoding):
    encoding_type = CategoricalEncodingType.BINARY

    def _encode_value(self, index: int, column_count: int) -> tuple[float, ...]:
        return self.convert_to_bits(index, column_count)

    def _columns_for_categorical(self, domain_size: int) -> int:
        return max(1, math.ceil(math.log2(domain_size))) if domain_size > 0 else 1

    @staticmethod
    def convert_to_bits(value: int, column_count: int) -> tuple[float, ...]:
        """Binary digits of a non-negative integer, least significant first.

        Raises:
            ValueError: If the value does not fit into ``column_count`` bits.
        """
        if value < 0 or value >= 2**column_count:
            msg = f"Value {value} cannot be represented with {column_count} bits"
            raise ValueError(msg)
        return tuple(float((value >> bit) & 1) for bit in range(column_count))


class CategoricalOneHotEncoding(CategoricalEncoding):
    encoding_type = CategoricalEncodingType.ONE_HOT

    def _encode_value(self, index: int, column_count: int) -> tuple[float, ...]:
        columns = [0.0] * column_count
        columns[index] = 1.0
        return tuple(columns)

    def _columns_for_categorical(self, domain_size: int) -> int:
        return domain_size


_ENCODINGS: dict[CategoricalEncodingType, type[CategoricalEncoding]] = {
    CategoricalEncodingType.ORDINAL: CategoricalOrdinalEncoding,
    CategoricalEncodingType.BINARY: CategoricalBinaryEncoding,
    CategoricalEncodingType.ONE_HOT: CategoricalOneHotEncoding,
}


def create_encoding(encoding: CategoricalEncodingType | str) -> CategoricalEncoding:
    """Create the categorical encoding of the given type."""
    if isinstance(encoding, str):
        encoding = CategoricalEncodingType.from_string(encoding)
    return _ENCODINGS[encoding]()


class GenomeTransformation:
    """Converts genomes into feature vectors and back.

    Args:
        tree: Parameter tree of the genomes.
        encoding: Categorical encoding (instance or type).
        cache_size: Number of most recently converted genomes whose feature
            vectors are kept.
    """

    def __init__(
        self,
        tree: ParameterTree,
        encoding: CategoricalEncoding | CategoricalEncodingType | str = CategoricalEncodingType.ORDINAL,
        cache_size: int = KNOWN_TRANSFORMATIONS_CACHE_SIZE,
    ) -> None:
        self.tree = tree
        self.encoding = encoding if isinstance(encoding, CategoricalEncoding) else create_encoding(encoding)
        self.ordered_parameters: list[ParameterNode] = tree.get_parameters(sort_by_identifier=True)
        self._encoded_categories: dict[str, ConvertedCategory] = {}
        self._known_transformations = functools.lru_cache(maxsize=cache_size)(self._convert_genes_to_array)
        self._feature_lengths: list[int] | None = None

    @property
    def feature_count(self) -> int:
        return sum(self.get_feature_lengths())

    def get_feature_lengths(self) -> list[int]:
        """Number of columns per parameter, in identifier order."""
        if self._feature_lengths is None:
            self._feature_lengths = [
                self.encoding.number_of_generated_columns(p.domain) for p in self.ordered_parameters
            ]
        return list(self._feature_lengths)

    def convert_genome_to_array(self, genome: Genome) -> NDArray[np.float64]:
        """Feature vector of a genome.

        Raises:
            KeyError: If the genome misses a parameter of the tree.
        """
        if genome is None:
            msg = "Genome must not be None"
            raise TypeError(msg)
        return self._known_transformations(tuple(genome.items())).copy()

    def _convert_genes_to_array(self, genes: tuple[tuple[str, Allele], ...]) -> NDArray[np.float64]:
        values = dict(genes)
        columns: list[float] = []
        for parameter in self.ordered_parameters:
            allele = values[parameter.identifier]
            if parameter.domain.is_categorical:
                category = self._encode_category(parameter)
                columns.extend(category.get_column_representation(allele))
            else:
                columns.append(parameter.domain.convert_to_float(allele))
        return np.asarray(columns, dtype=np.float64)

    def convert_back(self, encoded_genome: Sequence[float] | NDArray) -> Genome:
        """Genome represented by a feature vector."""
        encoded_genome = np.asarray(encoded_genome, dtype=np.float64)
        lengths = self.get_feature_lengths()
        if len(encoded_genome) != sum(lengths):
            msg = f"Expected {sum(lengths)} features, got {len(encoded_genome)}"
            raise ValueError(msg)

        restored = Genome()
        column = 0
        for parameter, length in zip(self.ordered_parameters, lengths):
            if parameter.domain.is_categorical:
                key = encoded_genome[column : column + length]
                allele = self._encode_category(parameter).get_domain_value_as_allele(key)
            else:
                allele = parameter.domain.convert_back(float(encoded_genome[column]))
            restored.set_gene(parameter.identifier, allele)
            column += length
        return restored

    def _encode_category(self, parameter: ParameterNode) -> ConvertedCategory:
        category = self._encoded_categories.get(parameter.identifier)
        if category is None:
            category = self.encoding.encode(parameter.identifier, parameter.domain)
            self._encoded_categories[parameter.identifier] = category
        return category


class TolerantGenomeTransformation(GenomeTransformation):
    """Ordinal transformation that accepts arbitrary real vectors.

    ``round_to_valid_values`` saturates every column at its domain bounds and
    rounds discrete columns, so the result can always be converted back.
    """

    def __init__(self, tree: ParameterTree) -> None:
        super().__init__(tree, CategoricalEncodingType.ORDINAL)
        lower, upper, discrete = [], [], []
        for parameter in self.ordered_parameters:
            domain = parameter.domain
            if isinstance(domain, CategoricalDomain):
                lower.append(0.0)
                upper.append(float(domain.domain_size - 1))
                discrete.append(True)
            elif isinstance(domain, NumericalDomain):
                lower.append(float(domain.minimum))
                upper.append(float(domain.maximum))
                discrete.append(domain.value_type is int)
            else:
                msg = f"Domain {domain!r} of '{parameter.identifier}' is not supported"
                raise NotImplementedError(msg)
        self._lower = np.asarray(lower, dtype=np.float64)
        self._upper = np.asarray(upper, dtype=np.float64)
        self._discrete = np.asarray(discrete, dtype=bool)

    def round_to_valid_values(self, encoded_genome: Sequence[float] | NDArray) -> NDArray[np.float64]:
        """Round discrete columns to integers and clamp every column into its domain.

        Discrete columns are rounded half to even.
        """
        values = np.asarray(encoded_genome, dtype=np.float64)
        if len(values) != len(self.ordered_parameters):
            msg = f"Expected {len(self.ordered_parameters)} features, got {len(values)}"
            raise ValueError(msg)
        rounded = np.where(self._discrete, np.rint(values), values)
        return np.clip(rounded, self._lower, self._upper)
