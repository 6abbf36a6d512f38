import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, Tuple

from .cnf_encoder import VariableMap
from .models import BasicEvent
from .validator import ValidatedTree

WeightPair = Tuple[float, float]

NEUTRAL_WEIGHT: WeightPair = (1.0, 1.0)


def failure_probability(event: BasicEvent, time_bound: float) -> float:
    """Probability that ``event`` has failed by ``time_bound``.

    Exponential events fail with 1 - exp(-lambda * t); static events ignore
    the time bound.
    """
    if time_bound < 0 or math.isnan(time_bound):
        raise ValueError(f"time bound must be >= 0, got {time_bound}")
    if event.is_static:
        return event.probability
    return -math.expm1(-event.rate * time_bound)


def _survival_probability(event: BasicEvent, time_bound: float) -> float:
    if event.is_static:
        return 1.0 - event.probability
    return math.exp(-event.rate * time_bound)


@dataclass(frozen=True)
class WeightTable:
    """Per-variable (weight-if-true, weight-if-false) pairs.

    Only basic-event variables carry explicit entries, which sum to 1. Every
    other variable up to ``num_vars`` (gates and counter registers) reads as
    (1, 1) so that it adds no probability mass.
    """
    num_vars: int
    entries: Dict[int, WeightPair] = field(default_factory=dict)

    def __getitem__(self, var: int) -> WeightPair:
        if not 1 <= var <= self.num_vars:
            raise KeyError(var)
        return self.entries.get(var, NEUTRAL_WEIGHT)

    def items(self) -> Iterator[Tuple[int, WeightPair]]:
        for var in range(1, self.num_vars + 1):
            yield var, self[var]

    def override(self, var: int, probability: float) -> 'WeightTable':
        """Copy of the table where ``var`` is true with ``probability``."""
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"probability must be in [0, 1], got {probability}")
        entries = dict(self.entries)
        entries[var] = (probability, 1.0 - probability)
        return WeightTable(self.num_vars, entries)


def compute_weights(tree: ValidatedTree, variables: VariableMap, time_bound: float) -> WeightTable:
    """Build the weight table of ``tree`` at ``time_bound``.

    Only the table depends on the time bound; the formula behind
    ``variables`` is reused as is.
    """
    entries: Dict[int, WeightPair] = {}
    for event in tree.basic_events():
        p = failure_probability(event, time_bound)
        entries[variables.var(event.id)] = (p, _survival_probability(event, time_bound))
    return WeightTable(variables.num_vars, entries)
