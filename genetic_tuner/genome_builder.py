from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .genomes import Genome
from .utils.utils import decide

if TYPE_CHECKING:
    import numpy as np

    from .optimization_config import TunerSettings
    from .parameter_space.parameter_tree import ParameterNode, ParameterTree


logger = logging.getLogger(__name__)


class GenomeBuilder:
    """Creates, mutates, checks and repairs genomes for a parameter tree.

    Subclasses may override ``is_genome_valid`` to add constraints between
    parameters, and ``make_genome_valid`` for a smarter repair.

    Args:
        tree: Parameter tree describing the genes.
        settings: Tuner settings (mutation rate and strength, repair attempts).
    """

    def __init__(self, tree: ParameterTree, settings: TunerSettings) -> None:
        if tree is None or settings is None:
            msg = "GenomeBuilder needs a parameter tree and tuner settings"
            raise TypeError(msg)
        self.tree = tree
        self.settings = settings
        self._parameters: list[ParameterNode] = tree.get_parameters()

    @property
    def max_repair_attempts(self) -> int:
        return self.settings.max_repair_attempts

    def create_random_genome(self, age: int, rng: np.random.Generator) -> Genome:
        """Create a valid genome with random gene values."""
        genome = Genome(age)
        for parameter in self._parameters:
            genome.set_gene(parameter.identifier, parameter.domain.generate_random_gene_value(rng))
        self.make_genome_valid(genome, rng)
        return genome

    def mutate(self, genome: Genome, rng: np.random.Generator) -> None:
        """Mutate each gene with the configured rate, then repair the genome in place."""
        for parameter in self._parameters:
            if decide(rng, self.settings.mutation_rate):
                self._mutate_parameter(genome, parameter, rng)
        self.make_genome_valid(genome, rng)

    def is_genome_valid(self, genome: Genome) -> bool:
        """Check that every parameter has a gene whose value lies in its domain."""
        for parameter in self._parameters:
            if parameter.identifier not in genome:
                return False
            if not parameter.domain.contains_gene_value(genome.get_gene_value(parameter.identifier)):
                return False
        return True

    def make_genome_valid(self, genome: Genome, rng: np.random.Generator) -> None:
        """Repair an invalid genome in place by mutating one gene at a time.

        Does nothing if the genome is already valid.

        Raises:
            TimeoutError: If the genome is still invalid after
                ``max_repair_attempts`` rounds over all parameters.
        """
        if self.is_genome_valid(genome):
            return

        logger.debug("Repairing genome %s.", genome)
        for _ in range(self.max_repair_attempts):
            for parameter in self._parameters:
                self._mutate_parameter(genome, parameter, rng)
                if self.is_genome_valid(genome):
                    logger.debug("Repaired genome, now %s.", genome)
                    return

        msg = (
            f"Tried to make the genome {genome} valid by mutating each parameter "
            f"{self.max_repair_attempts} times, but failed. Either allow more repair "
            "attempts, simplify the rules for valid genomes, or override make_genome_valid."
        )
        raise TimeoutError(msg)

    def _mutate_parameter(
        self,
        genome: Genome,
        parameter: ParameterNode,
        rng: np.random.Generator,
    ) -> None:
        domain = parameter.domain
        if parameter.identifier in genome and domain.contains_gene_value(
            genome.get_gene_value(parameter.identifier)
        ):
            value = domain.mutate_gene_value(
                genome.get_gene_value(parameter.identifier),
                self.settings.mutation_variance_percentage,
                rng,
            )
        else:
            value = domain.generate_random_gene_value(rng)
        genome.set_gene(parameter.identifier, value)
