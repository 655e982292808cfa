from .genome_representation import GenomeDoubleRepresentation
from .prediction_tree import GenomePredictionTree, Node, trees_from_sklearn_forest
from .target_leaf import (
    ParentGenomesConverted,
    TargetLeafGenomeFixation,
    TreeNodeAndFixations,
    compute_reachable_target_leaves_for_tree,
)

__all__ = [
    "GenomeDoubleRepresentation",
    "GenomePredictionTree",
    "Node",
    "ParentGenomesConverted",
    "TargetLeafGenomeFixation",
    "TreeNodeAndFixations",
    "compute_reachable_target_leaves_for_tree",
    "trees_from_sklearn_forest",
]
