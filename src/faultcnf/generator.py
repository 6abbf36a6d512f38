import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from .fault_tree import FaultTree
from .models import BasicEvent, Gate, GateType, Node

logger = logging.getLogger(__name__)

RATE_TOLERANCE = 1e-9


@dataclass
class RandomTreeConfig:
    """Shape parameters of a random fault tree.

    ``max_children`` bounds the children sampled for each gate. Unreferenced
    gates and unused basic events are attached afterwards, so a gate can end
    up with more children than that.
    """
    rate_be: float = 0.5  # share of basic events among all nodes
    rate_and: float = 0.5  # shares of each gate type among gates
    rate_or: float = 0.5
    rate_vot: float = 0.0
    prob_multiplier: float = 1e-4
    perc_last: float = 0.6  # unused basic events go to gates past this fraction
    max_children: int = 5  # bound of the first sampling pass only
    vot_k: Optional[int] = None  # fixed voting threshold, sampled per gate if None

    def __post_init__(self):
        """Validate generator parameters."""
        if not 0 < self.rate_be < 1:
            raise ValueError("rate_be must be in (0, 1)")
        for name in ("rate_and", "rate_or", "rate_vot"):
            if not 0 <= getattr(self, name) <= 1:
                raise ValueError(f"{name} must be in [0, 1]")
        if abs(self.rate_and + self.rate_or + self.rate_vot - 1) > RATE_TOLERANCE:
            raise ValueError("rate_and + rate_or + rate_vot must be 1")
        if not 0 < self.prob_multiplier <= 1:
            raise ValueError("prob_multiplier must be in (0, 1]")
        if not 0 <= self.perc_last < 1:
            raise ValueError("perc_last must be in [0, 1)")
        if self.max_children < 2:
            raise ValueError("max_children must be at least 2")
        if self.vot_k is not None and self.vot_k < 1:
            raise ValueError("vot_k must be at least 1")

    @classmethod
    def from_dict(cls, params: dict) -> 'RandomTreeConfig':
        return cls(**{k: v for k, v in params.items() if k in cls.__dataclass_fields__})

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


def _gate_type(rng: random.Random, config: RandomTreeConfig) -> GateType:
    value = rng.random()
    if value < config.rate_and:
        return GateType.AND
    if value < config.rate_and + config.rate_or or config.rate_vot == 0:
        return GateType.OR
    return GateType.VOTING


def _threshold(rng: random.Random, config: RandomTreeConfig, n: int) -> int:
    if config.vot_k is not None:
        return min(config.vot_k, n)
    if n == 2:
        return rng.randint(1, 2)
    return rng.randint(2, n - 1)


def generate_random_tree(n_nodes: int, config: RandomTreeConfig, seed: int) -> FaultTree:
    """
    Generate a random fault tree that passes validation.

    Nodes are laid out as ``root, g0 .. g(m-1), x0 .. x(b-1)``. Every gate only
    points forward in that order, which keeps the structure acyclic, and every
    gate is referenced by an earlier one, which keeps it reachable from the
    root. Basic events no gate picked are attached to gates past ``perc_last``.

    Args:
        n_nodes: Total number of nodes, root included
        config: Shape parameters
        seed: Seed of the random generator; equal seeds give equal trees

    Returns:
        The generated tree, with static basic-event probabilities
    """
    rng = random.Random(seed)
    n_be = int(config.rate_be * n_nodes)
    if n_be < 2:
        raise ValueError(f"{n_nodes} nodes at rate_be={config.rate_be} give fewer than 2 basic events")
    n_gates = n_nodes - n_be  # root included
    if n_gates < 1:
        raise ValueError("no room left for the root gate")

    gate_names = ["root"] + [f"g{i}" for i in range(n_gates - 1)]
    event_names = [f"x{i}" for i in range(n_be)]
    ahead = max(config.max_children, 8)

    children: List[List[str]] = []
    referenced = [False] * n_gates
    used_events = set()
    for i in range(n_gates):
        k = rng.randint(2, config.max_children)
        offsets = sorted(rng.sample(range(1, ahead + 1), k))
        gate_children = [i + offset for offset in offsets if i + offset < n_gates]
        for j in gate_children:
            referenced[j] = True
        events = rng.sample(range(n_be), min(k - len(gate_children), n_be))
        used_events.update(events)
        children.append([gate_names[j] for j in gate_children] + [event_names[e] for e in events])

    # Unreferenced gates hang below an earlier, already reachable gate
    for j in range(1, n_gates):
        if not referenced[j]:
            parent = rng.randrange(max(0, j - ahead), j)
            children[parent].append(gate_names[j])

    last_gates = list(range(int(n_gates * config.perc_last), n_gates))
    for e in range(n_be):
        if e not in used_events:
            children[rng.choice(last_gates)].append(event_names[e])

    nodes: List[Node] = []
    counts: Dict[GateType, int] = {t: 0 for t in GateType}
    for i, name in enumerate(gate_names):
        gate_type = _gate_type(rng, config)
        counts[gate_type] += 1
        threshold = _threshold(rng, config, len(children[i])) if gate_type == GateType.VOTING else None
        nodes.append(Gate(name, gate_type, children[i], threshold))
    for name in event_names:
        nodes.append(BasicEvent(name, probability=(1.0 - rng.random()) * config.prob_multiplier))

    logger.debug(f"Generated {n_gates} gates ({counts[GateType.AND]} and, {counts[GateType.OR]} or, "
                 f"{counts[GateType.VOTING]} voting) and {n_be} basic events with seed {seed}")
    return FaultTree(tuple(nodes), "root")
