"""
Test suite for alleles, genomes and populations.
"""

import pytest

from genetic_tuner.genomes import Allele, Genome, ImmutableGenome, Population
from genetic_tuner.optimization_config import TunerSettings


class TestAllele:
    """Test typed allele equality."""

    def test_equality_includes_type(self):
        """1, 1.0 and True are different alleles."""
        assert Allele(1) == Allele(1)
        assert Allele(1) != Allele(1.0)
        assert Allele(1) != Allele(True)

    def test_numpy_scalars_are_unwrapped(self):
        """numpy scalars are stored as python values."""
        import numpy as np

        assert Allele(np.float64(0.5)) == Allele(0.5)
        assert type(Allele(np.int64(3)).value) is int

    def test_hash_is_consistent(self):
        """Equal alleles hash equally, so they work in sets."""
        assert len({Allele(1), Allele(1), Allele(1.0)}) == 2


class TestGenome:
    """Test mutable genomes."""

    def test_negative_age_is_rejected(self):
        """Ages are non-negative."""
        with pytest.raises(ValueError):
            Genome(-1)

    def test_missing_gene_raises(self):
        """Unknown identifiers raise a KeyError."""
        with pytest.raises(KeyError):
            Genome().get_gene_value("a")

    def test_identifiers_are_sorted(self):
        """Genes are iterated in identifier order."""
        genome = Genome.from_values({"b": 1, "a": 2.0, "c": "x"})

        assert genome.identifiers == ["a", "b", "c"]
        assert [identifier for identifier, _ in genome.items()] == ["a", "b", "c"]

    def test_copy_is_independent(self, genome_factory):
        """Changing a copy leaves the original untouched."""
        genome = genome_factory(b=1.0)
        copy = genome.copy()
        copy.set_gene("b", 2.0)
        copy.age_once()

        assert genome.get_gene_value("b") == Allele(1.0)
        assert genome.age == 0

    def test_with_age(self, genome_factory):
        """with_age changes only the age of a copy."""
        genome = genome_factory(age=1)
        older = genome.with_age(3)

        assert older.age == 3
        assert genome.age == 1
        assert older.gene_values_equal(genome)

    def test_gene_values_equal_ignores_age_and_flag(self, genome_factory):
        """Gene equality looks at the genes only."""
        genome = genome_factory(age=1)
        other = genome_factory(age=2)
        other.is_engineered = True

        assert genome.gene_values_equal(other)
        assert genome.gene_values_equal(ImmutableGenome(other))
        assert genome.gene_value_hash() == other.gene_value_hash()
        assert not genome.gene_values_equal(genome_factory(b=0.5))

    def test_capped_decimal_string(self):
        """Floats are printed with a fixed number of decimals."""
        genome = Genome.from_values({"a": 0.123456789, "b": 3})

        assert genome.to_capped_decimal_string(3) == "[a: 0.123, b: 3]"

    def test_str(self, genome_factory):
        """The description contains genes, age and engineering flag."""
        assert str(genome_factory(age=2)) == "[a: x, b: 0.0, c: 100, d: 1](Age: 2)[Engineered: no]"

    def test_dictionary_round_trip_keeps_types(self):
        """Restored genomes keep gene types, age and flag."""
        genome = Genome.from_values({"a": 1, "b": 1.0, "c": True, "d": "x"}, age=2, is_engineered=True)

        restored = Genome.from_dict(genome.to_dict())

        assert restored.gene_values_equal(genome)
        assert restored.age == 2
        assert restored.is_engineered
        assert type(restored.get_gene_value("b").value) is float

    def test_unsupported_gene_type_cannot_be_serialized(self):
        """Only JSON friendly scalar genes are serialized."""
        with pytest.raises(TypeError):
            Genome.from_values({"a": (1, 2)}).to_dict()


class TestImmutableGenome:
    """Test the read-only genome wrapper."""

    def test_wraps_a_copy(self, genome_factory):
        """Later changes to the wrapped genome are not visible."""
        genome = genome_factory(b=1.0)
        immutable = ImmutableGenome(genome)
        genome.set_gene("b", 2.0)

        assert immutable.get_gene_value("b") == Allele(1.0)

    def test_mutable_copies_are_independent(self, genome_factory):
        """create_mutable_genome hands out fresh copies."""
        immutable = ImmutableGenome(genome_factory())
        mutable = immutable.create_mutable_genome()
        mutable.set_gene("b", 3.0)

        assert immutable.get_gene_value("b") == Allele(0.0)

    def test_usable_as_dictionary_key(self, genome_factory):
        """Equality and hash are by gene values."""
        results = {ImmutableGenome(genome_factory(age=1)): 1.0}

        assert results[ImmutableGenome(genome_factory(age=3))] == 1.0


class TestPopulation:
    """Test populations."""

    def test_counts(self, population):
        """Competitive and non-competitive genomes are counted together."""
        assert population.count == 12
        assert len(population.get_competitive_individuals()) == 8
        assert len(population.get_non_competitive_mates()) == 4
        assert not population.is_empty()

    def test_aging_removes_old_genomes(self, genome_factory):
        """Genomes older than the maximum age are dropped."""
        settings = TunerSettings(max_genome_age=2)
        population = Population.from_genomes(
            settings,
            [genome_factory(age=0), genome_factory(age=2)],
            [genome_factory(age=1)],
        )

        population.age()

        assert [g.age for g in population.get_competitive_individuals()] == [1]
        assert [g.age for g in population.get_non_competitive_mates()] == [2]

    def test_copy_is_deep(self, population):
        """Genomes of a copied population are copies."""
        copy = population.copy()
        copy.get_competitive_individuals()[0].age_once()

        assert copy.get_competitive_individuals()[0].age == population.get_competitive_individuals()[0].age + 1

    def test_replace_with_mutants_keeps_genomes_valid(self, population, builder, rng):
        """Mutated genomes stay valid."""
        population.replace_individuals_with_mutants(builder, rng)

        for genome in population.get_competitive_individuals() + population.get_non_competitive_mates():
            assert builder.is_genome_valid(genome)
