"""
Test suite for categorical encodings and genome transformations.
"""

import numpy as np
import pytest

from genetic_tuner.genome_transformation import (
    CategoricalBinaryEncoding,
    CategoricalOneHotEncoding,
    CategoricalOrdinalEncoding,
    ConvertedCategory,
    GenomeTransformation,
    TolerantGenomeTransformation,
    create_encoding,
)
from genetic_tuner.genomes import Allele, Genome
from genetic_tuner.optimization_config import CategoricalEncodingType
from genetic_tuner.parameter_space.domains import CategoricalDomain, IntegerDomain

SEVEN_VALUES = CategoricalDomain(["a", "b", "c", "d", "e", "f", "g"])


class TestEncodings:
    """Test the column layout of each encoding."""

    @pytest.mark.parametrize(
        ("encoding", "columns"),
        [
            (CategoricalOrdinalEncoding(), 1),
            (CategoricalBinaryEncoding(), 3),
            (CategoricalOneHotEncoding(), 7),
        ],
    )
    def test_number_of_columns_for_seven_values(self, encoding, columns):
        """A domain of 7 values needs 1, 3 or 7 columns."""
        assert encoding.number_of_generated_columns(SEVEN_VALUES) == columns
        assert encoding.encode("p", SEVEN_VALUES).column_count == columns

    @pytest.mark.parametrize(
        "encoding", [CategoricalOrdinalEncoding(), CategoricalBinaryEncoding(), CategoricalOneHotEncoding()]
    )
    def test_numerical_domains_use_one_column(self, encoding):
        """Non-categorical domains always need one column."""
        assert encoding.number_of_generated_columns(IntegerDomain(0, 100)) == 1

    def test_binary_encoding_of_single_value(self):
        """A single value still gets one column."""
        assert CategoricalBinaryEncoding().number_of_generated_columns(CategoricalDomain(["a"])) == 1

    def test_binary_bits_are_little_endian(self):
        """The least significant bit comes first."""
        assert CategoricalBinaryEncoding.convert_to_bits(6, 3) == (0.0, 1.0, 1.0)
        assert CategoricalBinaryEncoding().encode("p", SEVEN_VALUES).get_column_representation("b") == (
            1.0,
            0.0,
            0.0,
        )

    def test_binary_bits_must_fit(self):
        """Values too large for the columns are rejected."""
        with pytest.raises(ValueError):
            CategoricalBinaryEncoding.convert_to_bits(8, 3)

    def test_one_hot_representation(self):
        """Exactly the value's column is set."""
        category = CategoricalOneHotEncoding().encode("p", SEVEN_VALUES)

        assert category.get_column_representation("c") == (0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0)

    def test_encoding_non_categorical_domain_fails(self):
        """Only categorical domains can be encoded."""
        with pytest.raises(ValueError):
            CategoricalOrdinalEncoding().encode("p", IntegerDomain(0, 3))

    def test_create_encoding_from_string(self):
        """Encodings can be created from their names."""
        assert isinstance(create_encoding("one_hot"), CategoricalOneHotEncoding)
        assert isinstance(create_encoding(CategoricalEncodingType.BINARY), CategoricalBinaryEncoding)


class TestConvertedCategory:
    """Test the value to column mapping."""

    def test_representations_must_have_same_length(self):
        """Mixed column counts are rejected."""
        with pytest.raises(ValueError):
            ConvertedCategory("p", {Allele("a"): [0.0], Allele("b"): [1.0, 0.0]}, CategoricalDomain(["a", "b"]))

    def test_representations_must_be_distinct(self):
        """Two values cannot share columns."""
        with pytest.raises(ValueError):
            ConvertedCategory("p", {Allele("a"): [0.0], Allele("b"): [0.0]}, CategoricalDomain(["a", "b"]))

    def test_inverse_lookup(self):
        """Columns are mapped back to values."""
        category = CategoricalOrdinalEncoding().encode("p", SEVEN_VALUES)

        assert category.get_domain_value_as_allele([3.0]) == Allele("d")

    def test_unknown_key_is_rejected(self):
        """Columns representing no value raise."""
        category = CategoricalOrdinalEncoding().encode("p", SEVEN_VALUES)

        with pytest.raises(ValueError):
            category.get_domain_value_as_allele([7.0])
        with pytest.raises(ValueError):
            category.get_domain_value_as_allele([1.0, 0.0])

    def test_unknown_value_is_rejected(self):
        """Values outside the domain have no representation."""
        category = CategoricalOrdinalEncoding().encode("p", SEVEN_VALUES)

        with pytest.raises(ValueError):
            category.get_column_representation("z")


class TestGenomeTransformation:
    """Test conversion of genomes into feature vectors and back."""

    @pytest.mark.parametrize("encoding", list(CategoricalEncodingType))
    def test_round_trip(self, mixed_tree, builder, rng, encoding):
        """Converting back restores gene-value equal genomes."""
        transformation = GenomeTransformation(mixed_tree, encoding)

        for _ in range(10):
            genome = builder.create_random_genome(0, rng)
            restored = transformation.convert_back(transformation.convert_genome_to_array(genome))

            assert restored.gene_values_equal(genome)

    def test_feature_lengths(self, mixed_tree):
        """Parameters are ordered by identifier; the categorical one spans several columns."""
        transformation = GenomeTransformation(mixed_tree, CategoricalEncodingType.ONE_HOT)

        assert transformation.get_feature_lengths() == [3, 1, 1, 1]
        assert transformation.feature_count == 6

    def test_array_layout(self, mixed_tree, genome_factory):
        """Columns follow the identifier order."""
        transformation = GenomeTransformation(mixed_tree, CategoricalEncodingType.ONE_HOT)

        features = transformation.convert_genome_to_array(genome_factory(a="y", b=0.5, c=7, d=3))

        np.testing.assert_array_equal(features, [0.0, 1.0, 0.0, 0.5, 7.0, 3.0])

    def test_cached_arrays_are_copies(self, mixed_tree, genome_factory):
        """Modifying a returned array does not affect later conversions."""
        transformation = GenomeTransformation(mixed_tree)
        genome = genome_factory()
        first = transformation.convert_genome_to_array(genome)
        first[:] = -1

        np.testing.assert_array_equal(transformation.convert_genome_to_array(genome), [0.0, 0.0, 100.0, 1.0])

    def test_cache_keeps_most_recent_genomes(self, mixed_tree, genome_factory):
        """The cache is bounded and conversions stay correct after eviction."""
        transformation = GenomeTransformation(mixed_tree, cache_size=2)
        genomes = [genome_factory(c=c) for c in range(5)]

        for genome in genomes:
            transformation.convert_genome_to_array(genome)

        assert transformation._known_transformations.cache_info().currsize == 2
        np.testing.assert_array_equal(transformation.convert_genome_to_array(genomes[0]), [0.0, 0.0, 0.0, 1.0])

    def test_wrong_length_is_rejected(self, mixed_tree):
        """Feature vectors must have the expected length."""
        with pytest.raises(ValueError):
            GenomeTransformation(mixed_tree).convert_back([0.0, 0.0])

    def test_missing_gene_is_rejected(self, mixed_tree):
        """Genomes must contain every parameter."""
        with pytest.raises(KeyError):
            GenomeTransformation(mixed_tree).convert_genome_to_array(Genome.from_values({"a": "x"}))


class TestTolerantGenomeTransformation:
    """Test rounding of arbitrary vectors into valid genomes."""

    def test_rounding_example(self, tolerant_tree):
        """Floats are clamped; integers and categories are rounded half to even, then clamped."""
        transformation = TolerantGenomeTransformation(tolerant_tree)

        rounded = transformation.round_to_valid_values([0.2, 0.3, 0.6, 0.8, 1.5])

        np.testing.assert_array_equal(rounded, [0.0, 0.3, 1.0, 1.0, 2.0])

    def test_rounding_saturates_at_bounds(self, tolerant_tree):
        """Values beyond the bounds are clamped."""
        transformation = TolerantGenomeTransformation(tolerant_tree)

        rounded = transformation.round_to_valid_values([7.0, -1.0, 100.0, -3.4, 40.0])

        np.testing.assert_array_equal(rounded, [2.0, -1.0, 16.0, -3.0, 16.0])

    def test_rounded_values_convert_back(self, tolerant_tree, rng):
        """Any rounded vector decodes into a genome of valid values."""
        transformation = TolerantGenomeTransformation(tolerant_tree)
        parameters = transformation.ordered_parameters

        for _ in range(20):
            genome = transformation.convert_back(transformation.round_to_valid_values(rng.normal(0, 20, size=5)))

            for parameter in parameters:
                assert parameter.domain.contains_gene_value(genome.get_gene_value(parameter.identifier))

    def test_wrong_length_is_rejected(self, tolerant_tree):
        """Vectors must have one value per parameter."""
        with pytest.raises(ValueError):
            TolerantGenomeTransformation(tolerant_tree).round_to_valid_values([0.0])
