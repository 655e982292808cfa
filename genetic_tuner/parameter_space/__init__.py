from .domains import (
    CategoricalDomain,
    ContinuousDomain,
    DiscreteLogDomain,
    Domain,
    IntegerDomain,
    LogDomain,
    NumericalDomain,
)
from .parameter_tree import AndNode, OrNode, ParameterNode, ParameterTree, ValueNode

__all__ = [
    "AndNode",
    "CategoricalDomain",
    "ContinuousDomain",
    "DiscreteLogDomain",
    "Domain",
    "IntegerDomain",
    "LogDomain",
    "NumericalDomain",
    "OrNode",
    "ParameterNode",
    "ParameterTree",
    "ValueNode",
]
