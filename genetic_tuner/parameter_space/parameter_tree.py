"""Parameter tree of AND, value and OR nodes.

The tree describes all tunable parameters together with their conditional
activation: an ``OrNode`` only activates the subtree belonging to the value
chosen for its own parameter.

Example:
    >>> root = AndNode()
    >>> solver = OrNode("solver", CategoricalDomain(["cg", "lbfgs"]))
    >>> solver.add_child("cg", ValueNode("tolerance", LogDomain(1e-8, 1e-2)))
    >>> root.add_child(solver)
    >>> root.add_child(ValueNode("max_iter", IntegerDomain(10, 1000)))
    >>> tree = ParameterTree(root)
"""

from __future__ import annotations

from abc import ABC
from collections import deque
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..genomes import Allele
from .domains import CategoricalDomain, Domain, domain_from_dict

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class NodeKind(Enum):
    """Tag of every node type."""

    AND = "and"
    VALUE = "value"
    OR = "or"


class ParameterTreeNode(ABC):
    """Base class of all tree nodes."""

    kind: NodeKind

    def __init__(self) -> None:
        self._children: list[ParameterTreeNode] = []

    @property
    def children(self) -> list[ParameterTreeNode]:
        return list(self._children)

    @property
    def is_parameter(self) -> bool:
        return False


class AndNode(ParameterTreeNode):
    """Pure grouping node without a parameter of its own."""

    kind = NodeKind.AND

    def __init__(self, children: Iterable[ParameterTreeNode] = ()) -> None:
        super().__init__()
        for child in children:
            self.add_child(child)

    def add_child(self, child: ParameterTreeNode) -> None:
        if child is None:
            msg = "Child node must not be None"
            raise TypeError(msg)
        self._children.append(child)

    def __repr__(self) -> str:
        return f"AndNode(children={len(self._children)})"


class ParameterNode(ParameterTreeNode):
    """Node representing a single parameter with a domain."""

    def __init__(self, identifier: str, domain: Domain) -> None:
        super().__init__()
        if not identifier or not identifier.strip():
            msg = "Parameter identifier cannot be empty"
            raise ValueError(msg)
        if domain is None:
            msg = f"Parameter '{identifier}' needs a domain"
            raise TypeError(msg)
        self.identifier = identifier
        self.domain = domain

    @property
    def is_parameter(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}('{self.identifier}', {self.domain!r})"


class ValueNode(ParameterNode):
    """Parameter node with at most one child."""

    kind = NodeKind.VALUE

    def __init__(
        self,
        identifier: str,
        domain: Domain,
        child: ParameterTreeNode | None = None,
    ) -> None:
        super().__init__(identifier, domain)
        if child is not None:
            self.set_child(child)

    def set_child(self, child: ParameterTreeNode) -> None:
        """Set the single child, replacing any previous one."""
        self._children = [child]


class OrNode(ParameterNode):
    """Categorical parameter node with one optional subtree per value.

    Args:
        identifier: Parameter identifier.
        domain: Categorical domain of the parameter.
    """

    kind = NodeKind.OR

    def __init__(self, identifier: str, domain: CategoricalDomain) -> None:
        if not isinstance(domain, CategoricalDomain):
            msg = f"OR node '{identifier}' needs a categorical domain, got {domain!r}"
            raise TypeError(msg)
        super().__init__(identifier, domain)
        self._branches: dict[Allele, ParameterTreeNode] = {}

    @property
    def children(self) -> list[ParameterTreeNode]:
        return list(self._branches.values())

    def add_child(self, value: Any, child: ParameterTreeNode) -> None:
        """Attach the subtree activated by ``value``.

        Raises:
            ValueError: If the value is not part of the domain.
        """
        allele = value if isinstance(value, Allele) else Allele(value)
        if not self.domain.contains_gene_value(allele):
            msg = f"Value {allele} is not contained in the domain of '{self.identifier}'"
            raise ValueError(msg)
        self._branches[allele] = child

    def try_get_child(self, value: Any) -> ParameterTreeNode | None:
        """Return the subtree activated by ``value``, or None if there is none.

        Raises:
            ValueError: If the value is not part of the domain.
        """
        allele = value if isinstance(value, Allele) else Allele(value)
        if not self.domain.contains_gene_value(allele):
            msg = f"Value {allele} is not contained in the domain of '{self.identifier}'"
            raise ValueError(msg)
        return self._branches.get(allele)


class ParameterTree:
    """Tree of all tunable parameters.

    Args:
        root: Root node of the tree.
    """

    def __init__(self, root: ParameterTreeNode) -> None:
        if root is None:
            msg = "Parameter tree needs a root node"
            raise TypeError(msg)
        self.root = root

    def _walk(self) -> Iterable[ParameterTreeNode]:
        open_nodes = deque([self.root])
        while open_nodes:
            node = open_nodes.popleft()
            yield node
            open_nodes.extend(node.children)

    def contains_parameters(self) -> bool:
        return any(node.is_parameter for node in self._walk())

    def identifiers_are_unique(self) -> bool:
        seen: set[str] = set()
        for parameter in self.get_parameters():
            if parameter.identifier in seen:
                return False
            seen.add(parameter.identifier)
        return True

    def get_parameters(self, *, sort_by_identifier: bool = False) -> list[ParameterNode]:
        """Return all parameter nodes in breadth-first order, or sorted by identifier."""
        parameters = [node for node in self._walk() if isinstance(node, ParameterNode)]
        if sort_by_identifier:
            parameters.sort(key=lambda p: p.identifier)
        return parameters

    def get_numerical_parameters(self) -> list[ParameterNode]:
        return [p for p in self.get_parameters() if not p.domain.is_categorical]

    def get_parameter(self, identifier: str) -> ParameterNode:
        for parameter in self.get_parameters():
            if parameter.identifier == identifier:
                return parameter
        msg = f"Parameter tree has no parameter '{identifier}'"
        raise KeyError(msg)

    def find_active_identifiers(self, values: Mapping[str, Any]) -> list[str]:
        """Identifiers of all parameters active for the given gene values.

        Args:
            values: Mapping from identifier to allele (or raw value).

        Returns:
            Active identifiers in breadth-first order.
        """
        active: list[str] = []
        open_nodes = deque([self.root])
        while open_nodes:
            node = open_nodes.popleft()
            if isinstance(node, ParameterNode):
                active.append(node.identifier)
            if isinstance(node, OrNode):
                child = node.try_get_child(values[node.identifier])
                if child is not None:
                    open_nodes.append(child)
            else:
                open_nodes.extend(node.children)
        return active

    def to_dict(self) -> dict[str, Any]:
        return _node_to_dict(self.root)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParameterTree:
        """Build a tree from a nested dictionary tagged with node kinds.

        Example:
            >>> ParameterTree.from_dict({
            ...     "kind": "and",
            ...     "children": [
            ...         {"kind": "value", "identifier": "a",
            ...          "domain": {"kind": "integer", "minimum": 0, "maximum": 5}},
            ...     ],
            ... })
        """
        return cls(_node_from_dict(data))


def _node_to_dict(node: ParameterTreeNode) -> dict[str, Any]:
    if isinstance(node, AndNode):
        return {"kind": node.kind.value, "children": [_node_to_dict(c) for c in node.children]}
    if isinstance(node, OrNode):
        return {
            "kind": node.kind.value,
            "identifier": node.identifier,
            "domain": node.domain.to_dict(),
            "branches": [
                {"value": value.value, "child": _node_to_dict(child)}
                for value, child in node._branches.items()
            ],
        }
    data = {
        "kind": node.kind.value,
        "identifier": node.identifier,
        "domain": node.domain.to_dict(),
    }
    if node.children:
        data["child"] = _node_to_dict(node.children[0])
    return data


def _node_from_dict(data: dict[str, Any]) -> ParameterTreeNode:
    kind = NodeKind(data["kind"])
    if kind is NodeKind.AND:
        return AndNode(_node_from_dict(child) for child in data.get("children", []))
    domain = domain_from_dict(data["domain"])
    if kind is NodeKind.OR:
        node = OrNode(data["identifier"], domain)
        for branch in data.get("branches", []):
            node.add_child(branch["value"], _node_from_dict(branch["child"]))
        return node
    child = data.get("child")
    return ValueNode(data["identifier"], domain, _node_from_dict(child) if child else None)
