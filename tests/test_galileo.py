import pytest

from faultcnf.errors import InvalidArityError, ParseError
from faultcnf.galileo import dump_galileo, parse_galileo, read_galileo, write_galileo
from faultcnf.models import BasicEvent, Gate, GateType
from faultcnf.validator import validate

SAMPLE = """
// pumping system
toplevel "System";
"System" or "Pumps" "Valve";
"Pumps" 2of3 "P1" "P2"
    "P3";
"Valve" and "V1" "V2";
"P1" lambda=0.001 dorm=0.5;
"P2" lambda=0.001;
"P3" lambda=2e-3;
"V1" prob=0.01;   // static
V2 prob=0.02;
"""


def test_parse_sample() -> None:
    tree = parse_galileo(SAMPLE)
    assert tree.top == "System"
    assert tree.get("Pumps") == Gate("Pumps", GateType.VOTING, ("P1", "P2", "P3"), 2)
    assert tree.get("Valve").gate_type == GateType.AND
    assert tree.get("P1") == BasicEvent("P1", rate=0.001)
    assert tree.get("V2") == BasicEvent("V2", probability=0.02)
    assert len(validate(tree)) == 8


def test_single_child_gates_are_collapsed() -> None:
    text = """
    toplevel "T";
    "T" or "G";
    "G" and "H" "B";
    "H" or "A";
    "A" lambda=0.1;
    "B" lambda=0.1;
    """
    tree = parse_galileo(text)
    assert tree.top == "G"
    assert tree.get("G").children == ("A", "B")
    assert "H" not in tree and "T" not in tree
    validate(tree)


def test_collapse_merges_repeated_children() -> None:
    text = 'toplevel "T"; "T" or "A" "H"; "H" and "A"; "A" lambda=0.1;'
    tree = parse_galileo(text)
    # T becomes OR(A), itself collapsed into A
    assert tree.top == "A"


def test_single_child_voting_gate_with_higher_threshold_is_rejected() -> None:
    text = 'toplevel "T"; "T" and "G" "B"; "G" 2of1 "A"; "A" lambda=0.1; "B" lambda=0.1;'
    tree = parse_galileo(text)
    assert tree.get("G") == Gate("G", GateType.VOTING, ("A",), 2)
    with pytest.raises(InvalidArityError):
        validate(tree)


def test_single_child_voting_gate_with_threshold_one_is_collapsed() -> None:
    text = 'toplevel "T"; "T" and "G" "B"; "G" 1of1 "A"; "A" lambda=0.1; "B" lambda=0.1;'
    tree = parse_galileo(text)
    assert "G" not in tree
    assert tree.get("T").children == ("A", "B")
    validate(tree)


def test_single_child_gates_are_kept_without_simplify() -> None:
    tree = parse_galileo('toplevel "T"; "T" or "A"; "A" lambda=0.1;', simplify=False)
    assert tree.get("T").children == ("A",)
    with pytest.raises(InvalidArityError):
        validate(tree)


def test_zero_probability_becomes_zero_rate() -> None:
    tree = parse_galileo('toplevel "T"; "T" or "A" "B"; "A" prob=0; "B" prob=0.5;')
    assert tree.get("A") == BasicEvent("A", rate=0.0)


@pytest.mark.parametrize(
    "text, line",
    [
        ('toplevel "T";\n"T" pand "A" "B";\n', 2),
        ('toplevel "T";\n"T" xor "A" "B";\n', 2),
        ('toplevel "T";\n\n"T" 2of4 "A" "B" "C";\n', 3),
        ('toplevel "T";\n"A" weibull=1;\n', 2),
        ('toplevel "T";\n"A" lambda=fast;\n', 2),
        ('toplevel "T";\n"A" lambda=-1;\n', 2),
        ('toplevel "T";\n"A" lambda=0.1 prob=0.2;\n', 2),
        ('toplevel "T";\ntoplevel "U";\n', 2),
        ('toplevel "T";\n"T";\n', 2),
        ('toplevel "T";\n"T" foo "A";\n', 2),
        ('toplevel "T";\n"T" or "A\n', 2),
        ('toplevel "T";\n"T" or "A" "B"\n', 2),
    ],
)
def test_parse_errors_carry_the_line(text: str, line: int) -> None:
    with pytest.raises(ParseError) as info:
        parse_galileo(text)
    assert info.value.line == line
    assert str(info.value).startswith(f"line {line}:")


def test_dump_reads_back(tmp_path) -> None:
    tree = parse_galileo(SAMPLE)
    path = tmp_path / "model.dft"
    write_galileo(str(path), tree)
    again = read_galileo(str(path))
    assert again.top == tree.top
    assert set(again.nodes) == set(tree.nodes)
    assert dump_galileo(again) == dump_galileo(tree)
