import json
import warnings

import pytest

from faultcnf.fault_tree import FaultTree
from faultcnf.models import BasicEvent, Gate, GateType, NodeSpec
from faultcnf.validator import ValidatedTree


def test_basic_event_needs_exactly_one_parameter() -> None:
    with pytest.raises(ValueError):
        BasicEvent("e")
    with pytest.raises(ValueError):
        BasicEvent("e", rate=0.1, probability=0.1)


@pytest.mark.parametrize("kwargs", [{"rate": -1.0}, {"rate": float("inf")}, {"probability": 0.0},
                                    {"probability": 1.5}])
def test_basic_event_ranges(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        BasicEvent("e", **kwargs)


def test_threshold_only_on_voting_gates() -> None:
    with pytest.raises(ValueError):
        Gate("g", GateType.VOTING, ("a", "b"))
    with pytest.raises(ValueError):
        Gate("g", GateType.AND, ("a", "b"), 1)
    assert Gate("g", GateType.VOTING, ["a", "b", "c"], 2).label == "2of3"


def test_node_spec_kinds() -> None:
    assert NodeSpec("AND", ("a", "b")).to_node("g") == Gate("g", GateType.AND, ("a", "b"))
    assert NodeSpec("voting", ("a", "b"), threshold=1).to_node("v").threshold == 1
    assert NodeSpec("basic", probability=0.5).to_node("e") == BasicEvent("e", probability=0.5)


def test_stats_count_shared_nodes(shared_tree: ValidatedTree) -> None:
    stats = shared_tree.tree.stats()
    assert stats["num_nodes"] == 6
    assert stats["num_gates"] == 3
    assert stats["num_and"] == 1 and stats["num_or"] == 2
    assert stats["num_shared"] == 1


def test_graph_edges_point_to_children(shared_tree: ValidatedTree) -> None:
    graph = shared_tree.tree.to_graph()
    assert set(graph.successors("g2")) == {"b", "c"}
    assert graph.in_degree("b") == 2
    assert graph.graph["top"] == "top"


def test_subtree_and_replace(shared_tree: ValidatedTree) -> None:
    tree = shared_tree.tree
    assert set(tree.subtree("g1").ids()) == {"g1", "a", "b"}
    assert tree.subtree("g1").top == "g1"

    replaced = tree.replace(BasicEvent("g1", probability=0.5))
    assert "a" not in replaced
    assert "b" in replaced
    assert replaced.top == "top"


def test_to_json(voting_tree: ValidatedTree) -> None:
    data = json.loads(voting_tree.tree.to_json())
    assert data["top"] == "top"
    assert data["nodes"][0] == {"id": "top", "type": "voting", "children": ["a", "b", "c"], "threshold": 2}
    assert {"source": "top", "target": "c"} in data["edges"]


def test_visualize_renders_or_warns(shared_tree: ValidatedTree, tmp_path) -> None:
    target = tmp_path / "tree"
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        shared_tree.tree.visualize(str(target), highlight={"b"})
    assert (tmp_path / "tree.png").exists() or caught


def test_first_definition_wins_lookup() -> None:
    tree = FaultTree((BasicEvent("a", rate=0.1), BasicEvent("a", rate=0.2)), "a")
    assert len(tree) == 2
    assert tree.get("a").rate == 0.1
