"""Weighted CNF text formats understood by model-counting engines.

Three dialects are supported. All of them share the DIMACS clause lines
(signed integers terminated by ``0``) and count the top-assumption unit
clause in the header:

``MC21``
    Model Counting Competition 2021: ``c t wmc`` line, ``p cnf`` header and
    one ``c p weight <lit> <w> 0`` line per literal.
``MCC``
    Older competition layout: ``p wcnf`` header and ``w <lit> <w> 0`` lines.
``PAIRED``
    ``p cnf`` header, then one ``w <var> <w_true> <w_false>`` line per
    variable, then the assumption unit clause.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pysat.formula import CNF

from .errors import WireFormatError
from .weights import WeightTable


class WireFormat(Enum):
    MC21 = "mc21"
    MCC = "mcc"
    PAIRED = "paired"

    @classmethod
    def from_str(cls, value: str) -> 'WireFormat':
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Unsupported format {value!r}. Try MC21, MCC or PAIRED.") from None


@dataclass
class WeightedInstance:
    """Weighted CNF read back from text."""
    num_vars: int
    clauses: List[List[int]]
    weights: WeightTable
    wire_format: WireFormat


def _fmt(weight: float) -> str:
    return repr(float(weight))


def _clause_line(clause: List[int]) -> str:
    return " ".join(str(lit) for lit in clause) + " 0"


def dump_weight_lines(weights: WeightTable, num_vars: int, wire_format: WireFormat = WireFormat.MC21) -> str:
    """Weight lines of variables ``1..num_vars`` in the given dialect."""
    lines: List[str] = []
    for var in range(1, num_vars + 1):
        w_true, w_false = weights[var]
        if wire_format == WireFormat.PAIRED:
            lines.append(f"w {var} {_fmt(w_true)} {_fmt(w_false)}")
        else:
            prefix = "c p weight" if wire_format == WireFormat.MC21 else "w"
            lines.append(f"{prefix} {var} {_fmt(w_true)} 0")
            lines.append(f"{prefix} -{var} {_fmt(w_false)} 0")
    return "".join(line + "\n" for line in lines)


def dump_weighted_cnf(formula: CNF, weights: WeightTable, assumption: int,
                      wire_format: WireFormat = WireFormat.MC21, include_weights: bool = True) -> str:
    """Serialize formula, weights and the top-truth assumption.

    Args:
        formula: Compiled formula
        weights: Weight table covering every variable of the formula
        assumption: Signed literal asserted as a unit clause
        wire_format: Output dialect
        include_weights: Leave out the weight lines when False, for engines
            reading them from a separate file

    Returns:
        The weighted CNF text
    """
    if assumption == 0:
        raise ValueError("assumption must be a non-zero literal")
    num_vars = formula.nv
    if weights.num_vars < num_vars or abs(assumption) > num_vars:
        raise ValueError(f"weights cover {weights.num_vars} variables, formula has {num_vars}")
    num_clauses = len(formula.clauses) + 1

    lines: List[str] = []
    if wire_format == WireFormat.MC21:
        lines.append("c t wmc")
        lines.append(f"p cnf {num_vars} {num_clauses}")
    elif wire_format == WireFormat.MCC:
        lines.append(f"p wcnf {num_vars} {num_clauses}")
    else:
        lines.append(f"p cnf {num_vars} {num_clauses}")
    lines.extend(_clause_line(clause) for clause in formula.clauses)
    text = "\n".join(lines) + "\n"

    weight_text = dump_weight_lines(weights, num_vars, wire_format) if include_weights else ""
    unit = _clause_line([assumption]) + "\n"
    # PAIRED keeps the assumption last, the other dialects put the weights last
    if wire_format == WireFormat.PAIRED:
        return text + weight_text + unit
    return text + unit + weight_text


def write_weighted_cnf(filename: str, formula: CNF, weights: WeightTable, assumption: int,
                       wire_format: WireFormat = WireFormat.MC21, weights_filename: Optional[str] = None) -> None:
    """Write the weighted CNF to ``filename``.

    With ``weights_filename`` the weight lines go to that file instead.
    """
    with open(filename, 'w', encoding='utf-8') as f:
        f.write(dump_weighted_cnf(formula, weights, assumption, wire_format,
                                  include_weights=weights_filename is None))
    if weights_filename is not None:
        with open(weights_filename, 'w', encoding='utf-8') as f:
            f.write(dump_weight_lines(weights, formula.nv, wire_format))


def parse_weighted_cnf(text: str) -> WeightedInstance:
    """Parse any of the supported dialects.

    Literals without a weight line weigh 1.

    Raises:
        WireFormatError: Missing or repeated header, bad literals, clause
            count mismatch or unparsable weights
    """
    header: Optional[Tuple[str, int, int]] = None
    saw_paired = False
    clauses: List[List[int]] = []
    literal_weights: Dict[int, float] = {}

    for number, raw in enumerate(text.splitlines(), start=1):
        tokens = raw.split()
        if not tokens:
            continue
        head = tokens[0]

        if head == "c":
            if tokens[1:3] == ["p", "weight"]:
                lit, weight = _parse_literal_weight(tokens[3:], number)
                literal_weights[lit] = weight
            continue

        if head == "p":
            if header is not None:
                raise WireFormatError(f"line {number}: repeated problem line")
            if len(tokens) != 4 or tokens[1] not in ("cnf", "wcnf"):
                raise WireFormatError(f"line {number}: malformed problem line {raw!r}")
            header = (tokens[1], _parse_int(tokens[2], number), _parse_int(tokens[3], number))
            continue

        if header is None:
            raise WireFormatError(f"line {number}: data before the problem line")

        if head == "w":
            if header[0] == "wcnf":
                lit, weight = _parse_literal_weight(tokens[1:], number)
                literal_weights[lit] = weight
            else:
                if len(tokens) != 4:
                    raise WireFormatError(f"line {number}: expected 'w <var> <w_true> <w_false>'")
                saw_paired = True
                var = _parse_int(tokens[1], number)
                literal_weights[var] = _parse_float(tokens[2], number)
                literal_weights[-var] = _parse_float(tokens[3], number)
            continue

        literals = [_parse_int(tok, number) for tok in tokens]
        if literals[-1] != 0 or 0 in literals[:-1]:
            raise WireFormatError(f"line {number}: clause must end with a single 0")
        clauses.append(literals[:-1])

    if header is None:
        raise WireFormatError("missing problem line")
    kind, num_vars, num_clauses = header
    if len(clauses) != num_clauses:
        raise WireFormatError(f"header declares {num_clauses} clauses, found {len(clauses)}")
    for clause in clauses:
        for lit in clause:
            if abs(lit) > num_vars:
                raise WireFormatError(f"literal {lit} exceeds the {num_vars} declared variables")

    entries = {}
    for var in range(1, num_vars + 1):
        pair = (literal_weights.get(var, 1.0), literal_weights.get(-var, 1.0))
        if pair != (1.0, 1.0):
            entries[var] = pair
    if kind == "wcnf":
        wire_format = WireFormat.MCC
    elif saw_paired:
        wire_format = WireFormat.PAIRED
    else:
        wire_format = WireFormat.MC21
    return WeightedInstance(num_vars, clauses, WeightTable(num_vars, entries), wire_format)


def _parse_literal_weight(tokens: List[str], number: int) -> Tuple[int, float]:
    if len(tokens) != 3 or tokens[2] != "0":
        raise WireFormatError(f"line {number}: expected '<lit> <weight> 0'")
    lit = _parse_int(tokens[0], number)
    if lit == 0:
        raise WireFormatError(f"line {number}: weight for literal 0")
    return lit, _parse_float(tokens[1], number)


def _parse_int(token: str, number: int) -> int:
    try:
        return int(token)
    except ValueError:
        raise WireFormatError(f"line {number}: expected an integer, got {token!r}") from None


def _parse_float(token: str, number: int) -> float:
    try:
        value = float(token)
    except ValueError:
        raise WireFormatError(f"line {number}: expected a number, got {token!r}") from None
    if not value >= 0:
        raise WireFormatError(f"line {number}: weights must be non-negative, got {token!r}")
    return value
