import itertools
from typing import Dict

import pytest
from pysat.solvers import Solver

from faultcnf.cnf_encoder import CNFEncoder, compile_tree
from faultcnf.fault_tree import FaultTree
from faultcnf.models import BasicEvent, Gate, GateType, NodeSpec
from faultcnf.validator import ValidatedTree, validate


def evaluate_tree(tree: ValidatedTree, assignment: Dict[str, bool], node_id: str = None) -> bool:
    """Boolean value of a node under a basic-event assignment."""
    node = tree[node_id or tree.top]
    if isinstance(node, BasicEvent):
        return assignment[node.id]
    values = [evaluate_tree(tree, assignment, child) for child in node.children]
    if node.gate_type == GateType.AND:
        return all(values)
    if node.gate_type == GateType.OR:
        return any(values)
    return sum(values) >= node.threshold


def _voting(n: int, k: int) -> ValidatedTree:
    events = [BasicEvent(f"x{i}", rate=0.1) for i in range(n)]
    return validate(FaultTree((Gate("top", GateType.VOTING, [e.id for e in events], k),) + tuple(events), "top"))


def test_rejects_unvalidated_trees() -> None:
    tree = FaultTree((BasicEvent("e", rate=0.1),), "e")
    with pytest.raises(TypeError):
        CNFEncoder(tree)


def test_or_gate_clauses(or_tree: ValidatedTree) -> None:
    cnf, variables = compile_tree(or_tree)
    assert variables.node_vars == {"top": 1, "e1": 2, "e2": 3}
    assert cnf.clauses == [[1, -2], [1, -3], [-1, 2, 3]]
    assert cnf.nv == 3


def test_and_gate_clauses() -> None:
    tree = validate(FaultTree.from_spec("top", {
        "top": NodeSpec("and", ("a", "b", "c")),
        "a": NodeSpec("basic", rate=0.1),
        "b": NodeSpec("basic", rate=0.1),
        "c": NodeSpec("basic", rate=0.1),
    }))
    cnf, _ = compile_tree(tree)
    assert cnf.clauses == [[-1, 2], [-1, 3], [-1, 4], [1, -2, -3, -4]]


def test_encoding_is_deterministic(shared_tree: ValidatedTree) -> None:
    first_cnf, first_vars = CNFEncoder(shared_tree).encode()
    second_cnf, second_vars = CNFEncoder(shared_tree).encode()
    assert first_cnf.clauses == second_cnf.clauses
    assert first_vars.node_vars == second_vars.node_vars


def test_encode_is_cached(shared_tree: ValidatedTree) -> None:
    encoder = CNFEncoder(shared_tree)
    assert encoder.encode() is encoder.encode()


def test_variables_follow_preorder(shared_tree: ValidatedTree) -> None:
    _, variables = compile_tree(shared_tree)
    assert variables.node_vars == {"top": 1, "g1": 2, "a": 3, "b": 4, "g2": 5, "c": 6}


def test_shared_event_has_one_variable(shared_tree: ValidatedTree) -> None:
    cnf, variables = compile_tree(shared_tree)
    assert variables.num_base == len(shared_tree)
    assert variables.num_aux == 0
    b = variables.var("b")
    gates_using_b = {variables.node(lit) for clause in cnf.clauses for lit in clause
                     if abs(lit) != b and b in map(abs, clause) and not variables.is_auxiliary(lit)}
    assert {"g1", "g2"} <= gates_using_b
    # Each gate is encoded once: n + 1 clauses per gate
    assert len(cnf.clauses) == 3 + 3 + 3


def test_decode_ignores_auxiliary_variables() -> None:
    _, variables = compile_tree(_voting(4, 2))
    assert variables.num_aux > 0
    decoded = variables.decode(list(range(1, variables.num_vars + 1)))
    assert set(decoded) == {"top", "x0", "x1", "x2", "x3"}


@pytest.mark.parametrize("fixture", ["or_tree", "shared_tree", "voting_tree"])
def test_equisatisfiable_with_tree(fixture: str, request) -> None:
    tree = request.getfixturevalue(fixture)
    cnf, variables = compile_tree(tree)
    events = [e.id for e in tree.basic_events()]
    top = variables.var(tree.top)
    with Solver(name="glucose3", bootstrap_with=cnf.clauses) as solver:
        for values in itertools.product([False, True], repeat=len(events)):
            assignment = dict(zip(events, values))
            literals = [variables.var(e) if v else -variables.var(e) for e, v in assignment.items()]
            assert solver.solve(assumptions=[top] + literals) == evaluate_tree(tree, assignment)


def test_equisatisfiable_mixed_tree() -> None:
    tree = validate(FaultTree.from_spec("top", {
        "top": NodeSpec("or", ("g1", "v")),
        "g1": NodeSpec("and", ("a", "b")),
        "v": NodeSpec("voting", ("b", "c", "d", "e"), threshold=3),
        "a": NodeSpec("basic", rate=0.1),
        "b": NodeSpec("basic", rate=0.1),
        "c": NodeSpec("basic", rate=0.1),
        "d": NodeSpec("basic", rate=0.1),
        "e": NodeSpec("basic", rate=0.1),
    }))
    cnf, variables = compile_tree(tree)
    events = [e.id for e in tree.basic_events()]
    with Solver(name="glucose3", bootstrap_with=cnf.clauses) as solver:
        for values in itertools.product([False, True], repeat=len(events)):
            assignment = dict(zip(events, values))
            literals = [variables.var(e) if v else -variables.var(e) for e, v in assignment.items()]
            assert solver.solve(assumptions=[variables.var("top")] + literals) == evaluate_tree(tree, assignment)


@pytest.mark.parametrize("n, k", [(n, k) for n in range(2, 7) for k in range(1, n + 1)])
def test_voting_gate_counts_exactly(n: int, k: int) -> None:
    tree = _voting(n, k)
    cnf, variables = compile_tree(tree)
    top = variables.var("top")
    inputs = [variables.var(f"x{i}") for i in range(n)]
    for values in itertools.product([False, True], repeat=n):
        literals = [v if on else -v for v, on in zip(inputs, values)]
        with Solver(name="glucose3", bootstrap_with=cnf.clauses) as solver:
            models = list(solver.enum_models(assumptions=literals))
        # Gate and counter registers are functions of the inputs
        assert len(models) == 1
        assert (top in models[0]) == (sum(values) >= k)


@pytest.mark.parametrize("k, expected_type", [(1, GateType.OR), (4, GateType.AND)])
def test_voting_extremes_need_no_counter(k: int, expected_type: GateType) -> None:
    cnf, variables = compile_tree(_voting(4, k))
    plain = validate(FaultTree(
        (Gate("top", expected_type, ["x0", "x1", "x2", "x3"]),)
        + tuple(BasicEvent(f"x{i}", rate=0.1) for i in range(4)), "top"))
    assert variables.num_aux == 0
    assert cnf.clauses == compile_tree(plain)[0].clauses


def test_counter_registers_belong_to_their_gate() -> None:
    cnf, variables = compile_tree(_voting(6, 3))
    assert variables.num_aux > 0
    assert set(variables.aux_owner.values()) == {"top"}
    assert set(variables.aux_owner) == set(range(variables.num_base + 1, variables.num_vars + 1))
    # Registers stay within O(n * k)
    assert variables.num_aux <= 6 * 3
    assert max(abs(lit) for clause in cnf.clauses for lit in clause) == cnf.nv
