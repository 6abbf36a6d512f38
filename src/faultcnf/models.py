import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union


class GateType(Enum):
    AND = "and"
    OR = "or"
    VOTING = "voting"


@dataclass(frozen=True)
class BasicEvent:
    """Leaf failure event.

    Exactly one of ``rate`` (exponential failure rate, lambda >= 0) or
    ``probability`` (static probability in (0, 1]) is authoritative.
    """
    id: str
    rate: Optional[float] = None
    probability: Optional[float] = None

    def __post_init__(self):
        if (self.rate is None) == (self.probability is None):
            raise ValueError(f"Basic event {self.id!r} needs exactly one of rate or probability")
        if self.rate is not None:
            if not math.isfinite(self.rate) or self.rate < 0:
                raise ValueError(f"Basic event {self.id!r}: rate must be a finite value >= 0")
        elif not 0.0 < self.probability <= 1.0:
            raise ValueError(f"Basic event {self.id!r}: probability must be in (0, 1]")

    @property
    def children(self) -> Tuple[str, ...]:
        return ()

    @property
    def is_static(self) -> bool:
        return self.probability is not None

    @classmethod
    def with_probability(cls, event_id: str, probability: float) -> 'BasicEvent':
        """Create an event that fails with ``probability`` at every time bound.

        A probability of exactly 0 is expressed as a zero failure rate.
        """
        if probability == 0.0:
            return cls(event_id, rate=0.0)
        return cls(event_id, probability=probability)


@dataclass(frozen=True)
class Gate:
    """Internal node combining its children with AND, OR or k-out-of-n voting."""
    id: str
    gate_type: GateType
    children: Tuple[str, ...]
    threshold: Optional[int] = None  # k, VOTING only

    def __post_init__(self):
        # Accept any iterable of ids but store an immutable tuple.
        object.__setattr__(self, "children", tuple(self.children))
        if self.gate_type == GateType.VOTING:
            if self.threshold is None:
                raise ValueError(f"Voting gate {self.id!r} needs a threshold")
        elif self.threshold is not None:
            raise ValueError(f"Only voting gates carry a threshold (gate {self.id!r})")

    @property
    def label(self) -> str:
        if self.gate_type == GateType.VOTING:
            return f"{self.threshold}of{len(self.children)}"
        return self.gate_type.value


Node = Union[BasicEvent, Gate]


@dataclass(frozen=True)
class NodeSpec:
    """Node description produced by an external fault-tree source.

    ``kind`` is one of ``"basic"``, ``"and"``, ``"or"`` or ``"voting"``.
    """
    kind: str
    children: Tuple[str, ...] = ()
    threshold: Optional[int] = None
    rate: Optional[float] = None
    probability: Optional[float] = None

    def to_node(self, node_id: str) -> Node:
        kind = self.kind.lower()
        if kind == "basic":
            return BasicEvent(node_id, rate=self.rate, probability=self.probability)
        if kind == "voting":
            return Gate(node_id, GateType.VOTING, tuple(self.children), self.threshold)
        return Gate(node_id, GateType(kind), tuple(self.children))
