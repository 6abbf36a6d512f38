from typing import Iterable, Optional, Tuple


class FaultCNFError(Exception):
    """Base class for every error raised by faultcnf."""
    kind = "error"


class ParseError(FaultCNFError):
    """Malformed fault-tree source."""
    kind = "parse_error"

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class WireFormatError(FaultCNFError):
    """Malformed weighted CNF text."""
    kind = "wire_format_error"


class ValidationError(FaultCNFError):
    """A fault tree violates a structural invariant."""
    kind = "validation_error"


class DuplicateIdError(ValidationError):
    kind = "duplicate_id"

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Identifier {node_id!r} is used by more than one node")


class MissingTopError(ValidationError):
    kind = "missing_top"

    def __init__(self):
        super().__init__("No top event was designated")


class InvalidTopError(ValidationError):
    kind = "invalid_top"

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Top event {node_id!r} is not a node of the tree")


class InvalidArityError(ValidationError):
    kind = "invalid_arity"

    def __init__(self, node_id: str, reason: str):
        self.node_id = node_id
        super().__init__(f"Gate {node_id!r}: {reason}")


class DanglingReferenceError(ValidationError):
    kind = "dangling_reference"

    def __init__(self, node_id: str, child_id: str):
        self.node_id = node_id
        self.child_id = child_id
        super().__init__(f"Gate {node_id!r} references unknown node {child_id!r}")


class CycleDetectedError(ValidationError):
    kind = "cycle_detected"

    def __init__(self, at: str):
        self.at = at
        super().__init__(f"Cycle detected at node {at!r}")


class UnreachableNodeError(ValidationError):
    kind = "unreachable_node"

    def __init__(self, node_ids: Iterable[str]):
        self.node_ids: Tuple[str, ...] = tuple(node_ids)
        super().__init__(
            f"{len(self.node_ids)} node(s) unreachable from the top: {', '.join(self.node_ids)}"
        )


class EncodingError(FaultCNFError):
    """The compiler refused its input."""
    kind = "encoding_error"


class EmptyTreeError(EncodingError):
    kind = "empty_tree"

    def __init__(self):
        super().__init__("Cannot encode a fault tree without nodes")


class InvalidGateParametersError(EncodingError):
    kind = "invalid_gate_parameters"

    def __init__(self, node_id: str, reason: str):
        self.node_id = node_id
        super().__init__(f"Gate {node_id!r}: {reason}")


class SolverFailure(FaultCNFError):
    """The counting engine did not produce a usable result.

    A failure is an unknown outcome. It is never a probability of 0 or 1.
    """
    kind = "solver_failure"


class SolverTimeoutError(SolverFailure):
    kind = "timeout"

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Counting engine exceeded the timeout of {timeout:g} seconds")


class MalformedOutputError(SolverFailure):
    kind = "malformed_output"


class EngineCrashError(SolverFailure):
    kind = "engine_crash"

    def __init__(self, message: str, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(message)
