"""Reader and writer for static fault trees in Galileo (``.dft``) format.

Supported statements, each terminated by ``;``::

    toplevel "T";
    "G1" and "A" "B";
    "G2" or "G1" "C";
    "G3" 2of3 "A" "B" "C";
    "A" lambda=0.01;
    "B" prob=0.2 dorm=0;

Names may be quoted. ``//`` starts a comment that runs to the end of the line.
Basic-event attributes other than ``lambda`` and ``prob`` are ignored.
"""
import logging
import re
import shlex
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import ParseError
from .fault_tree import FaultTree
from .models import BasicEvent, Gate, GateType, Node

logger = logging.getLogger(__name__)

_VOTING_RE = re.compile(r"^(\d+)of(\d+)$")

# Gates that exist in Galileo but have no static AND/OR/voting meaning
_UNSUPPORTED_GATES = {
    "pand", "por", "seq", "spare", "wsp", "csp", "hsp", "fdep", "pdep",
    "mutex", "inhibit", "xor", "not",
}


def _statements(text: str) -> Iterator[Tuple[int, str]]:
    """Yield ``(line number, statement)`` pairs, comments removed."""
    pending: List[str] = []
    start: Optional[int] = None
    for number, raw in enumerate(text.splitlines(), start=1):
        parts = raw.split("//", 1)[0].split(";")
        for index, part in enumerate(parts):
            if part.strip() and start is None:
                start = number
            pending.append(part)
            if index < len(parts) - 1:
                statement = " ".join(pending).strip()
                if statement:
                    yield start, statement
                pending, start = [], None
    if " ".join(pending).strip():
        raise ParseError("missing ';' after the last statement", start)


def _tokenize(statement: str, line: int) -> List[str]:
    try:
        return shlex.split(statement)
    except ValueError as e:
        raise ParseError(f"cannot tokenize {statement!r}: {e}", line) from None


def _parse_basic_event(name: str, attributes: List[str], line: int) -> BasicEvent:
    values: Dict[str, str] = {}
    for attribute in attributes:
        key, sep, value = attribute.partition("=")
        if not sep:
            raise ParseError(f"expected key=value for basic event {name!r}, got {attribute!r}", line)
        values[key.lower()] = value

    if "lambda" in values and "prob" in values:
        raise ParseError(f"basic event {name!r} sets both lambda and prob", line)
    try:
        if "lambda" in values:
            return BasicEvent(name, rate=float(values["lambda"]))
        if "prob" in values:
            return BasicEvent.with_probability(name, float(values["prob"]))
    except ValueError as e:
        raise ParseError(str(e), line) from None
    raise ParseError(f"unsupported distribution for basic event {name!r}, try 'lambda' or 'prob'", line)


def _parse_gate(name: str, kind: str, children: List[str], line: int) -> Gate:
    lowered = kind.lower()
    if lowered in ("and", "or"):
        return Gate(name, GateType(lowered), children)
    match = _VOTING_RE.match(lowered)
    if match:
        k, n = int(match.group(1)), int(match.group(2))
        if n != len(children):
            raise ParseError(f"gate {name!r} is {kind} but has {len(children)} children", line)
        return Gate(name, GateType.VOTING, children, k)
    if lowered in _UNSUPPORTED_GATES:
        raise ParseError(f"gate {name!r}: {kind} gates are not supported by static analysis", line)
    raise ParseError(f"gate {name!r}: unknown gate type {kind!r}", line)


def parse_galileo(text: str, simplify: bool = True) -> FaultTree:
    """
    Parse a Galileo fault tree.

    Args:
        text: Galileo source
        simplify: Collapse gates with a single child into that child

    Returns:
        The fault tree, not yet validated

    Raises:
        ParseError: Malformed statement or unsupported gate
    """
    top: Optional[str] = None
    nodes: List[Node] = []
    for line, statement in _statements(text):
        tokens = _tokenize(statement, line)
        if tokens[0].lower() == "toplevel":
            if len(tokens) != 2:
                raise ParseError("toplevel takes exactly one name", line)
            if top is not None:
                raise ParseError(f"toplevel given twice ({top!r} and {tokens[1]!r})", line)
            top = tokens[1]
            continue
        if len(tokens) < 2:
            raise ParseError(f"incomplete statement {statement!r}", line)
        name = tokens[0]
        if "=" in tokens[1]:
            nodes.append(_parse_basic_event(name, tokens[1:], line))
        else:
            nodes.append(_parse_gate(name, tokens[1], tokens[2:], line))

    if simplify:
        nodes, top = _collapse_single_child_gates(nodes, top)
    return FaultTree(tuple(nodes), top)


def _resolve(aliases: Dict[str, str], node_id: str) -> str:
    seen = set()
    while node_id in aliases:
        if node_id in seen:
            raise ParseError(f"single-child gates form a cycle through {node_id!r}")
        seen.add(node_id)
        node_id = aliases[node_id]
    return node_id


def _collapse_single_child_gates(nodes: List[Node], top: Optional[str]) -> Tuple[List[Node], Optional[str]]:
    """Replace every single-child gate by its child, chains and top included.

    A single-child voting gate is only an alias when its threshold is 1; any
    other threshold is left for the validator to reject.
    """
    collapsed = 0
    while True:
        aliases = {}
        for node in nodes:
            if not isinstance(node, Gate) or len(node.children) != 1:
                continue
            if node.gate_type == GateType.VOTING and node.threshold != 1:
                continue
            aliases.setdefault(node.id, node.children[0])
        if not aliases:
            break
        collapsed += len(aliases)

        rewritten: List[Node] = []
        for node in nodes:
            if node.id in aliases:
                continue
            if isinstance(node, Gate):
                children = [_resolve(aliases, child) for child in node.children]
                if node.gate_type != GateType.VOTING:
                    # A OR A is A; repeated voting inputs are left for the validator
                    children = list(dict.fromkeys(children))
                node = Gate(node.id, node.gate_type, children, node.threshold)
            rewritten.append(node)
        nodes = rewritten
        if top is not None:
            top = _resolve(aliases, top)

    if collapsed:
        logger.debug(f"Collapsed {collapsed} single-child gate(s)")
    return nodes, top


def read_galileo(filename: str, simplify: bool = True) -> FaultTree:
    with open(filename, encoding='utf-8') as f:
        return parse_galileo(f.read(), simplify)


def _quote(name: str) -> str:
    return '"' + name + '"'


def dump_galileo(tree: FaultTree) -> str:
    """Galileo text of ``tree``: top line, then gates, then basic events."""
    lines = []
    if tree.top is not None:
        lines.append(f"toplevel {_quote(tree.top)};")
    for gate in tree.gates():
        kind = gate.label
        children = " ".join(_quote(child) for child in gate.children)
        lines.append(f"{_quote(gate.id)} {kind} {children};")
    for event in tree.basic_events():
        if event.is_static:
            lines.append(f"{_quote(event.id)} prob={event.probability!r};")
        else:
            lines.append(f"{_quote(event.id)} lambda={event.rate!r};")
    return "\n".join(lines) + "\n"


def write_galileo(filename: str, tree: FaultTree) -> None:
    with open(filename, 'w', encoding='utf-8') as f:
        f.write(dump_galileo(tree))
