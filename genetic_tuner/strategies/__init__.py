"""Population update strategies backed by continuous optimizers."""

from .base import (
    ContinuousOptimizationStrategy,
    GenomeSorter,
    IncumbentGenomeWrapper,
    ResultStorage,
)
from .cma_strategy import CmaEsStrategy, GlobalCmaEsStrategy, LocalCmaEsStrategy, create_cma_es_strategy
from .converter import GenomeSearchPointConverter
from .de_strategy import (
    DifferentialEvolutionStrategy,
    GlobalDifferentialEvolutionInformationFlow,
    LocalDifferentialEvolutionInformationFlow,
)
from .genome_search_points import ContinuizedGenomeSearchPoint, GenomeSearchPoint, PartialGenomeSearchPoint

__all__ = [
    "CmaEsStrategy",
    "ContinuizedGenomeSearchPoint",
    "ContinuousOptimizationStrategy",
    "DifferentialEvolutionStrategy",
    "GenomeSearchPoint",
    "GenomeSearchPointConverter",
    "GenomeSorter",
    "GlobalCmaEsStrategy",
    "GlobalDifferentialEvolutionInformationFlow",
    "IncumbentGenomeWrapper",
    "LocalCmaEsStrategy",
    "LocalDifferentialEvolutionInformationFlow",
    "PartialGenomeSearchPoint",
    "ResultStorage",
    "create_cma_es_strategy",
]
