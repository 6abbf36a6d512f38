from faultcnf.fault_tree import FaultTree
from faultcnf.models import NodeSpec
from faultcnf.modularizer import find_modules
from faultcnf.validator import ValidatedTree, validate


def _basic(*names):
    return {name: NodeSpec("basic", probability=0.1) for name in names}


def test_independent_subtrees_are_modules() -> None:
    specs = {
        "top": NodeSpec("and", ("g1", "g2")),
        "g1": NodeSpec("or", ("a", "b")),
        "g2": NodeSpec("or", ("c", "d")),
    }
    specs.update(_basic("a", "b", "c", "d"))
    assert find_modules(validate(FaultTree.from_spec("top", specs))) == ["g1", "g2"]


def test_shared_event_breaks_modules(shared_tree: ValidatedTree) -> None:
    assert find_modules(shared_tree) == []


def test_nested_modules_in_first_visit_order() -> None:
    specs = {
        "top": NodeSpec("or", ("g1", "e")),
        "g1": NodeSpec("and", ("g2", "f")),
        "g2": NodeSpec("or", ("a", "b")),
    }
    specs.update(_basic("a", "b", "e", "f"))
    assert find_modules(validate(FaultTree.from_spec("top", specs))) == ["g1", "g2"]


def test_sharing_inside_a_module() -> None:
    specs = {
        "top": NodeSpec("or", ("g1", "c")),
        "g1": NodeSpec("and", ("g2", "g3")),
        "g2": NodeSpec("or", ("a", "b")),
        "g3": NodeSpec("or", ("b", "d")),
    }
    specs.update(_basic("a", "b", "c", "d"))
    assert find_modules(validate(FaultTree.from_spec("top", specs))) == ["g1"]


def test_shared_gate_is_a_module_of_neither_parent() -> None:
    specs = {
        "top": NodeSpec("and", ("g1", "g2")),
        "g1": NodeSpec("or", ("s", "a")),
        "g2": NodeSpec("or", ("s", "b")),
        "s": NodeSpec("and", ("x", "y")),
    }
    specs.update(_basic("a", "b", "x", "y"))
    assert find_modules(validate(FaultTree.from_spec("top", specs))) == ["s"]


def test_basic_event_top_has_no_modules() -> None:
    tree = validate(FaultTree.from_spec("e", _basic("e")))
    assert find_modules(tree) == []
