import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from pysat.formula import CNF

from .errors import EmptyTreeError, InvalidGateParametersError
from .models import BasicEvent, Gate, GateType
from .validator import ValidatedTree

logger = logging.getLogger(__name__)


@dataclass
class VariableMap:
    """Correspondence between fault-tree nodes and CNF variables.

    Base variables ``1..num_base`` map one-to-one onto tree nodes. Variables
    above ``num_base`` are auxiliary registers of voting-gate counters.
    """
    node_vars: Dict[str, int]
    num_vars: int
    aux_owner: Dict[int, str] = field(default_factory=dict)  # aux var -> voting gate id
    _var_nodes: Dict[int, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self._var_nodes = {v: k for k, v in self.node_vars.items()}

    @property
    def num_base(self) -> int:
        return len(self.node_vars)

    @property
    def num_aux(self) -> int:
        return self.num_vars - self.num_base

    def var(self, node_id: str) -> int:
        return self.node_vars[node_id]

    def node(self, var: int) -> Optional[str]:
        """Node id of a base variable, ``None`` for auxiliary variables."""
        return self._var_nodes.get(abs(var))

    def is_auxiliary(self, var: int) -> bool:
        return abs(var) > self.num_base

    def decode(self, model: List[int]) -> Dict[str, bool]:
        """Convert a solver model (list of literals) to node truth values."""
        assignments = {}
        for lit in model:
            node_id = self._var_nodes.get(abs(lit))
            if node_id is not None:
                assignments[node_id] = lit > 0
        return assignments


class CNFEncoder:
    """Encodes a validated fault tree into an equisatisfiable CNF formula."""

    def __init__(self, tree: ValidatedTree):
        """
        Initialize the encoder.

        Args:
            tree: Fault tree returned by ``validate``
        """
        if not isinstance(tree, ValidatedTree):
            raise TypeError("CNFEncoder only accepts a ValidatedTree, call validate() first")
        self.tree = tree
        self.var_map: Dict[str, int] = {}  # node id -> SAT variable
        self.aux_owner: Dict[int, str] = {}
        self.clauses: List[List[int]] = []
        self.var_counter = 1  # Start from 1 (0 is reserved)
        self._encoded: Set[str] = set()
        self._result: Optional[Tuple[CNF, VariableMap]] = None

    def _get_next_var(self) -> int:
        """Get next available variable ID."""
        var_id = self.var_counter
        self.var_counter += 1
        return var_id

    def encode(self) -> Tuple[CNF, VariableMap]:
        """Encode the fault tree into CNF format.

        The top event is left unconstrained: callers add it as an assumption.

        Returns:
            The formula and the node/variable correspondence
        """
        if self._result is not None:
            return self._result
        if len(self.tree) == 0:
            raise EmptyTreeError()

        # First pass: one base variable per node, DFS preorder from the top
        self._assign_variables()

        # Second pass: equivalence clauses, each node exactly once
        self._encode_nodes()

        cnf = CNF(from_clauses=self.clauses)
        cnf.nv = self.var_counter - 1
        variables = VariableMap(dict(self.var_map), cnf.nv, dict(self.aux_owner))

        logger.debug(f"Encoded {variables.num_base} nodes into {len(cnf.clauses)} clauses "
                     f"over {cnf.nv} variables ({variables.num_aux} auxiliary)")
        self._result = (cnf, variables)
        return self._result

    def _assign_variables(self) -> None:
        """Assign SAT variables to all nodes reachable from the top."""
        stack = [self.tree.top]
        while stack:
            node_id = stack.pop()
            if node_id in self.var_map:
                continue
            self.var_map[node_id] = self._get_next_var()
            stack.extend(reversed(self.tree.children(node_id)))

    def _encode_nodes(self) -> None:
        """Visit the tree in postorder and encode each node once."""
        stack = [(self.tree.top, False)]
        while stack:
            node_id, expanded = stack.pop()
            if node_id in self._encoded:
                continue
            if expanded:
                self._encode_node(node_id)
                self._encoded.add(node_id)
                continue
            stack.append((node_id, True))
            for child in reversed(self.tree.children(node_id)):
                if child not in self._encoded:
                    stack.append((child, False))

    def _encode_node(self, node_id: str) -> None:
        """Generate CNF clauses for a specific node."""
        node = self.tree[node_id]
        if isinstance(node, BasicEvent):
            # Free decision variable, constrained only by its weights
            return

        inputs = [self.var_map[child] for child in node.children]
        output = self.var_map[node_id]

        if node.gate_type == GateType.AND:
            self._encode_and_gate(inputs, output)
        elif node.gate_type == GateType.OR:
            self._encode_or_gate(inputs, output)
        elif node.gate_type == GateType.VOTING:
            self._encode_voting_gate(inputs, output, node)
        else:
            raise InvalidGateParametersError(node_id, f"unsupported gate type {node.gate_type}")

    def _encode_and_gate(self, inputs: List[int], output: int) -> None:
        """Encode AND gate: Y <-> (A & B & ...)"""
        # Y -> A, Y -> B, ...
        for inp in inputs:
            self.clauses.append([-output, inp])
        # (A & B & ...) -> Y
        self.clauses.append([output] + [-inp for inp in inputs])

    def _encode_or_gate(self, inputs: List[int], output: int) -> None:
        """Encode OR gate: Y <-> (A | B | ...)"""
        # A -> Y, B -> Y, ...
        for inp in inputs:
            self.clauses.append([output, -inp])
        # Y -> (A | B | ...)
        self.clauses.append([-output] + inputs)

    def _encode_voting_gate(self, inputs: List[int], output: int, gate: Gate) -> None:
        """Encode k-out-of-n gate: Y <-> (at least k inputs are true).

        Uses a sequential counter. Register s[i][j] is true iff at least j of
        the first i inputs are true:

            s[i][j] <-> s[i-1][j] | (x_i & s[i-1][j-1])

        with s[i-1][0] true and s[i-1][j] false for j > i-1. Registers with
        j < k - (n - i) can no longer reach k and are never created. The last
        register s[n][k] is the gate variable itself.
        """
        n, k = len(inputs), gate.threshold
        if k is None or not 1 <= k <= n:
            raise InvalidGateParametersError(gate.id, f"threshold {k} outside 1..{n}")
        if k == 1:
            self._encode_or_gate(inputs, output)
            return
        if k == n:
            self._encode_and_gate(inputs, output)
            return

        previous: Dict[int, int] = {}
        for i, x in enumerate(inputs, start=1):
            current: Dict[int, int] = {}
            for j in range(max(1, k - (n - i)), min(i, k) + 1):
                if i == n:
                    register = output
                else:
                    register = self._get_next_var()
                    self.aux_owner[register] = gate.id
                carry = previous.get(j)
                below = previous[j - 1] if j > 1 else None
                self._define_register(register, carry, x, below)
                current[j] = register
            previous = current

    def _define_register(self, register: int, carry: Optional[int], x: int,
                         below: Optional[int]) -> None:
        """Clauses for register <-> carry | (x & below).

        ``carry`` None stands for false and ``below`` None for true.
        """
        keep = [carry] if carry is not None else []
        if carry is not None:
            self.clauses.append([register, -carry])
        if below is None:
            self.clauses.append([register, -x])
            self.clauses.append([-register, x] + keep)
        else:
            self.clauses.append([register, -x, -below])
            self.clauses.append([-register, x] + keep)
            self.clauses.append([-register, below] + keep)


def compile_tree(tree: ValidatedTree) -> Tuple[CNF, VariableMap]:
    """Compile ``tree`` into a CNF formula and its variable map."""
    return CNFEncoder(tree).encode()
