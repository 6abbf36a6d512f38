import json
import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import graphviz
import networkx as nx

from .models import BasicEvent, Gate, GateType, Node, NodeSpec


@dataclass(frozen=True)
class FaultTree:
    """Flat arena of fault-tree nodes addressed by identifier.

    Children are identifier lists, never owned substructures, so a node
    referenced by several gates is a single entity. ``nodes`` keeps the source
    order, duplicates included; the validator is the one that rejects them.
    """
    nodes: Tuple[Node, ...]
    top: Optional[str]
    _lookup: Dict[str, Node] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        lookup: Dict[str, Node] = {}
        for node in self.nodes:
            lookup.setdefault(node.id, node)
        object.__setattr__(self, "_lookup", lookup)

    @classmethod
    def from_spec(cls, top: Optional[str], specs: Mapping[str, NodeSpec]) -> 'FaultTree':
        """Build a tree from a ``(top_id, {id -> NodeSpec})`` source structure."""
        return cls(tuple(spec.to_node(node_id) for node_id, spec in specs.items()), top)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._lookup

    def get(self, node_id: str) -> Node:
        return self._lookup[node_id]

    def ids(self) -> List[str]:
        return list(self._lookup)

    def basic_events(self) -> List[BasicEvent]:
        return [n for n in self._lookup.values() if isinstance(n, BasicEvent)]

    def gates(self) -> List[Gate]:
        return [n for n in self._lookup.values() if isinstance(n, Gate)]

    def to_graph(self) -> nx.DiGraph:
        """Return the tree as a networkx DiGraph with parent -> child edges."""
        graph = nx.DiGraph(top=self.top)
        for node in self._lookup.values():
            if isinstance(node, Gate):
                graph.add_node(node.id, type="gate", label=node.label)
            else:
                graph.add_node(node.id, type="basic")
        for node in self._lookup.values():
            for child in node.children:
                graph.add_edge(node.id, child)
        return graph

    def reachable_from(self, root: str) -> List[str]:
        """Identifiers reachable from ``root`` (inclusive), in depth-first preorder."""
        order: List[str] = []
        seen = set()
        stack = [root]
        while stack:
            node_id = stack.pop()
            if node_id in seen or node_id not in self._lookup:
                continue
            seen.add(node_id)
            order.append(node_id)
            stack.extend(reversed(self._lookup[node_id].children))
        return order

    def subtree(self, root: str) -> 'FaultTree':
        """Tree made of ``root`` and its descendants, with ``root`` as top."""
        return FaultTree(tuple(self._lookup[i] for i in self.reachable_from(root)), root)

    def replace(self, node: Node) -> 'FaultTree':
        """Swap the node with ``node.id`` and drop what is no longer reachable."""
        lookup = dict(self._lookup)
        lookup[node.id] = node
        replaced = FaultTree(tuple(lookup.values()), self.top)
        if self.top is None:
            return replaced
        return replaced.subtree(self.top)

    def stats(self) -> Dict[str, int]:
        graph = self.to_graph()
        gates = self.gates()
        return {
            "num_nodes": len(self._lookup),
            "num_basic_events": len(self._lookup) - len(gates),
            "num_gates": len(gates),
            "num_and": sum(1 for g in gates if g.gate_type == GateType.AND),
            "num_or": sum(1 for g in gates if g.gate_type == GateType.OR),
            "num_voting": sum(1 for g in gates if g.gate_type == GateType.VOTING),
            "num_shared": sum(1 for n in graph.nodes() if graph.in_degree(n) > 1),
        }

    def to_json(self) -> str:
        """Convert the tree to JSON format."""
        graph_data = {
            "top": self.top,
            "nodes": [],
            "edges": [],
        }
        for node in self._lookup.values():
            if isinstance(node, Gate):
                entry = {"id": node.id, "type": node.gate_type.value, "children": list(node.children)}
                if node.threshold is not None:
                    entry["threshold"] = node.threshold
            else:
                entry = {"id": node.id, "type": "basic"}
                if node.is_static:
                    entry["probability"] = node.probability
                else:
                    entry["rate"] = node.rate
            graph_data["nodes"].append(entry)
            for child in node.children:
                graph_data["edges"].append({"source": node.id, "target": child})
        return json.dumps(graph_data, indent=2)

    def visualize(self, filename: str = "fault_tree", highlight: Iterable[str] = ()) -> None:
        """Create a Graphviz rendering of the tree; ``highlight`` nodes are drawn in red."""
        highlight = set(highlight)
        try:
            dot = graphviz.Digraph(comment='Fault tree')
            dot.attr(rankdir='TB')

            for node in self._lookup.values():
                color = 'red' if node.id in highlight else 'black'
                if node.id == self.top:
                    color = 'blue' if color == 'black' else color
                if isinstance(node, Gate):
                    dot.node(node.id, f"{node.id}\n{node.label}", color=color, shape="box")
                else:
                    value = f"p={node.probability:g}" if node.is_static else f"lambda={node.rate:g}"
                    dot.node(node.id, f"{node.id}\n{value}", color=color, shape="ellipse")

            for node in self._lookup.values():
                for child in node.children:
                    dot.edge(node.id, child)

            dot.render(filename, view=False, format='png')
        except Exception as e:
            warnings.warn(f"Could not generate visualization: {e}\n"
                          f"Please install Graphviz and add it to your system PATH")
            warnings.warn("You can still use the JSON output for analysis")
