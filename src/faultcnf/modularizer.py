"""Linear-time module detection.

A module is a gate whose descendants are reachable from the rest of the tree
only through the gate itself. Its probability can be computed separately and
the gate replaced by a basic event of that probability.

Follows Dutuit, Y. & Rauzy, A. (1996), "A linear-time algorithm to find
modules of fault trees", IEEE Transactions on Reliability 45(3). A first
depth-first traversal records the first, second (return) and last visit time of
every node. A gate is a module when every visit of its descendants falls
strictly between its first and second visit.
"""
import logging
from typing import Dict, List

import networkx as nx

from .validator import ValidatedTree

logger = logging.getLogger(__name__)


def _visit_times(tree: ValidatedTree) -> Dict[str, List[int]]:
    """Map every node to its ``[first, second, last]`` visit times."""
    times: Dict[str, List[int]] = {}
    clock = 1
    times[tree.top] = [clock, 0, clock]
    if not tree.children(tree.top):
        times[tree.top][1] = clock
        return times

    stack = [(tree.top, 0)]
    while stack:
        node_id, index = stack[-1]
        children = tree.children(node_id)
        if index < len(children):
            stack[-1] = (node_id, index + 1)
            child = children[index]
            clock += 1
            if child in times:
                times[child][2] = clock
                continue
            times[child] = [clock, 0, clock]
            if tree.children(child):
                stack.append((child, 0))
            else:
                times[child][1] = clock
        else:
            # Return to the gate once all its children were explored
            stack.pop()
            clock += 1
            times[node_id][1] = clock
            times[node_id][2] = clock
    return times


def find_modules(tree: ValidatedTree) -> List[str]:
    """Gates of ``tree`` that are modules, top excluded.

    Returns:
        Module identifiers in first-visit order, so an enclosing module always
        precedes the modules nested in it
    """
    times = _visit_times(tree)
    low: Dict[str, float] = {}
    high: Dict[str, float] = {}
    # Children before parents
    for node_id in reversed(list(nx.topological_sort(tree.tree.to_graph()))):
        lowest, highest = float('inf'), float('-inf')
        for child in tree.children(node_id):
            lowest = min(lowest, times[child][0], low[child])
            highest = max(highest, times[child][2], high[child])
        low[node_id], high[node_id] = lowest, highest

    modules = [
        node_id for node_id in tree
        if node_id != tree.top and tree.children(node_id)
        and low[node_id] > times[node_id][0] and high[node_id] < times[node_id][1]
    ]
    modules.sort(key=lambda node_id: times[node_id][0])
    logger.debug(f"Found {len(modules)} module(s)")
    return modules
