"""Continuous optimization phases for a genetic algorithm configuration tuner.

Genomes over a parameter tree are handed to CMA-ES or JADE differential
evolution, which search over real-valued representations and return an
updated competitive population to the genetic algorithm.
"""

from .cma_es import CmaEs, CmaEsConfiguration, CmaEsElements, CmaEsStatus
from .differential_evolution import DifferentialEvolution, DifferentialEvolutionStatus
from .genome_builder import GenomeBuilder
from .genome_transformation import GenomeTransformation, TolerantGenomeTransformation
from .genomes import Allele, Genome, ImmutableGenome, Population
from .optimization_config import (
    CategoricalEncodingType,
    CmaEsStrategySettings,
    DifferentialEvolutionSettings,
    DifferentialEvolutionStrategySettings,
    InformationFlowType,
    StrategySettings,
    TunerSettings,
)
from .search_points import BoundedSearchPoint, SearchPoint, SearchPointSorter

__version__ = "0.1.0"

__all__ = [
    "Allele",
    "BoundedSearchPoint",
    "CategoricalEncodingType",
    "CmaEs",
    "CmaEsConfiguration",
    "CmaEsElements",
    "CmaEsStatus",
    "CmaEsStrategySettings",
    "DifferentialEvolution",
    "DifferentialEvolutionSettings",
    "DifferentialEvolutionStatus",
    "DifferentialEvolutionStrategySettings",
    "Genome",
    "GenomeBuilder",
    "GenomeTransformation",
    "ImmutableGenome",
    "InformationFlowType",
    "Population",
    "SearchPoint",
    "SearchPointSorter",
    "StrategySettings",
    "TolerantGenomeTransformation",
    "TunerSettings",
]
