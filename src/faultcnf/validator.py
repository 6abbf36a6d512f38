"""Structural validation of fault trees.

``validate`` is the only way to obtain a :class:`ValidatedTree`, the input type
accepted by the CNF compiler. Checks run in a fixed order and stop at the
first failure:

1. duplicate identifiers
2. top event present and designated
3. gate arity, distinct and known children
4. cycles, with a three-state depth-first search from the top
5. nodes unreachable from the top, handled according to an explicit
   :class:`OrphanPolicy`
"""
import logging
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Tuple

import networkx as nx

from .errors import (
    CycleDetectedError,
    DanglingReferenceError,
    DuplicateIdError,
    InvalidArityError,
    InvalidTopError,
    MissingTopError,
    UnreachableNodeError,
)
from .fault_tree import FaultTree
from .models import BasicEvent, Gate, GateType, Node

logger = logging.getLogger(__name__)

_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2


class OrphanPolicy(Enum):
    ERROR = "error"  # raise UnreachableNodeError
    WARN = "warn"    # log a warning and prune the orphans


class ValidatedTree:
    """Read-only fault tree that passed :func:`validate`.

    Every node is reachable from the top, the structure is acyclic and every
    gate has a valid arity.
    """

    __slots__ = ("_tree", "_nodes")

    def __init__(self, tree: FaultTree, _token: object = None):
        if _token is not _CONSTRUCTION_TOKEN:
            raise TypeError("ValidatedTree instances are created by validate()")
        self._tree = tree
        self._nodes: Mapping[str, Node] = MappingProxyType({n.id: n for n in tree.nodes})

    @property
    def tree(self) -> FaultTree:
        return self._tree

    @property
    def top(self) -> str:
        return self._tree.top

    @property
    def nodes(self) -> Mapping[str, Node]:
        return self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __getitem__(self, node_id: str) -> Node:
        return self._nodes[node_id]

    def children(self, node_id: str) -> Tuple[str, ...]:
        return self._nodes[node_id].children

    def basic_events(self) -> List[BasicEvent]:
        return [n for n in self._nodes.values() if isinstance(n, BasicEvent)]

    def __repr__(self) -> str:
        return f"ValidatedTree(top={self.top!r}, nodes={len(self._nodes)})"


_CONSTRUCTION_TOKEN = object()


def validate(tree: FaultTree, orphans: OrphanPolicy = OrphanPolicy.ERROR) -> ValidatedTree:
    """Check the structural invariants of ``tree``.

    Args:
        tree: The fault tree to check
        orphans: What to do with nodes that are unreachable from the top

    Returns:
        The validated tree, pruned to the reachable nodes under ``OrphanPolicy.WARN``

    Raises:
        ValidationError: The first invariant violation found
    """
    orphans = OrphanPolicy(orphans)
    lookup = _check_unique_ids(tree)
    _check_top(tree, lookup)
    _check_gates(lookup)
    _check_acyclic(tree.top, lookup)

    graph = tree.to_graph()
    reachable = nx.descendants(graph, tree.top) | {tree.top}
    unreachable = [node_id for node_id in lookup if node_id not in reachable]
    if unreachable:
        if orphans == OrphanPolicy.ERROR:
            raise UnreachableNodeError(unreachable)
        logger.warning(f"Pruning {len(unreachable)} node(s) unreachable from top "
                       f"{tree.top!r}: {', '.join(unreachable)}")
        tree = FaultTree(tuple(n for n in tree.nodes if n.id in reachable), tree.top)

    return ValidatedTree(tree, _CONSTRUCTION_TOKEN)


def _check_unique_ids(tree: FaultTree) -> Dict[str, Node]:
    lookup: Dict[str, Node] = {}
    for node in tree.nodes:
        if node.id in lookup:
            raise DuplicateIdError(node.id)
        lookup[node.id] = node
    return lookup


def _check_top(tree: FaultTree, lookup: Dict[str, Node]) -> None:
    if tree.top is None or tree.top == "":
        raise MissingTopError()
    if tree.top not in lookup:
        raise InvalidTopError(tree.top)


def _check_gates(lookup: Dict[str, Node]) -> None:
    for node in lookup.values():
        if not isinstance(node, Gate):
            continue
        n = len(node.children)
        if len(set(node.children)) != n:
            raise InvalidArityError(node.id, "children must be distinct")
        if node.gate_type == GateType.VOTING:
            if n < 2:
                raise InvalidArityError(node.id, f"voting gate needs at least 2 children, got {n}")
            if not 1 <= node.threshold <= n:
                raise InvalidArityError(node.id, f"threshold {node.threshold} outside 1..{n}")
        elif n < 2:
            raise InvalidArityError(node.id, f"{node.gate_type.value} gate needs at least 2 children, got {n}")
        for child in node.children:
            if child not in lookup:
                raise DanglingReferenceError(node.id, child)


def _check_acyclic(top: str, lookup: Dict[str, Node]) -> None:
    state = {node_id: _UNVISITED for node_id in lookup}
    # (node, index of the next child to explore)
    stack: List[Tuple[str, int]] = [(top, 0)]
    state[top] = _IN_PROGRESS
    while stack:
        node_id, index = stack[-1]
        children = lookup[node_id].children
        if index == len(children):
            state[node_id] = _DONE
            stack.pop()
            continue
        stack[-1] = (node_id, index + 1)
        child = children[index]
        if state[child] == _IN_PROGRESS:
            raise CycleDetectedError(child)
        if state[child] == _UNVISITED:
            state[child] = _IN_PROGRESS
            stack.append((child, 0))
