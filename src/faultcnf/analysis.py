import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence

from pysat.solvers import Solver

from .cnf_encoder import CNFEncoder
from .config import AnalysisConfig
from .driver import STATUS_OK, EvaluationResult, evaluate
from .errors import SolverFailure
from .fault_tree import FaultTree
from .model_counter import CountingEngine
from .models import BasicEvent, Gate, GateType
from .modularizer import find_modules
from .validator import ValidatedTree, validate
from .weights import WeightTable, compute_weights

logger = logging.getLogger(__name__)


@dataclass
class ImportanceMeasures:
    """Importance of one basic event at a time bound."""
    event: str
    probability: float
    birnbaum: float
    improvement_potential: float
    criticality: Optional[float]  # undefined when the top probability is 0

    def to_dict(self) -> dict:
        return {
            'event': self.event,
            'probability': self.probability,
            'birnbaum': self.birnbaum,
            'improvement_potential': self.improvement_potential,
            'criticality': self.criticality,
        }


def expand_time_bounds(start: float, end: float, step: float) -> List[float]:
    """Inclusive grid ``start, start + step, ..., end``."""
    if not step > 0:
        raise ValueError(f"step must be positive, got {step}")
    if end < start:
        raise ValueError(f"end ({end}) is smaller than start ({start})")
    count = int(math.floor((end - start) / step + 1e-9))
    return [start + i * step for i in range(count + 1)]


class FaultTreeAnalyzer:
    """Probability analyses of one validated fault tree.

    The tree is compiled once; every time bound or weight override reuses the
    same formula and only builds a new weight table.
    """

    def __init__(self, tree: ValidatedTree, engine: Optional[CountingEngine] = None,
                 config: Optional[AnalysisConfig] = None):
        """
        Args:
            tree: Tree returned by ``validate``
            engine: Counting engine, ``config.create_engine()`` if None
            config: Analysis parameters, defaults if None
        """
        self.tree = tree
        self.config = config or AnalysisConfig()
        self.engine = engine or self.config.create_engine()
        self.preprocessor = self.config.create_preprocessor()
        self.formula, self.variables = CNFEncoder(tree).encode()
        self.top_var = self.variables.var(tree.top)

    def weights(self, time_bound: float) -> WeightTable:
        return compute_weights(self.tree, self.variables, time_bound)

    def _negates_top(self) -> bool:
        top = self.tree[self.tree.top]
        return self.config.negate_top_or and isinstance(top, Gate) and top.gate_type == GateType.OR

    def probability(self, weights: WeightTable) -> float:
        """Top event probability under ``weights``.

        A basic-event top is answered from its own weight without an engine.
        """
        if isinstance(self.tree[self.tree.top], BasicEvent):
            return weights[self.top_var][0]
        if self._negates_top():
            complement = evaluate(self.formula, weights, -self.top_var, self.config.timeout_s,
                                  self.engine, self.config.wire_format,
                                  self.config.workdir, self.config.keep_files, self.preprocessor)
            return min(1.0, max(0.0, 1.0 - complement))
        return evaluate(self.formula, weights, self.top_var, self.config.timeout_s,
                        self.engine, self.config.wire_format,
                        self.config.workdir, self.config.keep_files, self.preprocessor)

    def top_event_probability(self, time_bound: float) -> float:
        """Probability that the top event has occurred by ``time_bound``.

        Raises:
            SolverFailure: The engine gave no usable answer
        """
        return self.probability(self.weights(time_bound))

    def _evaluate_one(self, time_bound: float) -> EvaluationResult:
        try:
            value = self.top_event_probability(time_bound)
        except SolverFailure as e:
            logger.warning(f"Evaluation at t={time_bound:g} failed ({e.kind}): {e}")
            return EvaluationResult(time_bound, e.kind, None, str(e))
        return EvaluationResult(time_bound, STATUS_OK, value)

    def evaluate_time_bounds(self, time_bounds: Sequence[float]) -> List[EvaluationResult]:
        """Evaluate every time bound, in input order.

        A solver failure at one time bound is reported in its result and does
        not stop the others.
        """
        start_time = time.time()
        with ThreadPoolExecutor(max_workers=self.config.num_threads) as executor:
            results = list(executor.map(self._evaluate_one, time_bounds))
        logger.info(f"Evaluated {len(results)} time bound(s) in {time.time() - start_time:.2f} seconds")
        return results

    def importance_measures(self, time_bound: float) -> Dict[str, ImportanceMeasures]:
        """Birnbaum, improvement potential and criticality of every basic event."""
        weights = self.weights(time_bound)
        top_probability = self.probability(weights)
        measures = {}
        for event in self.tree.basic_events():
            var = self.variables.var(event.id)
            p = weights[var][0]
            p_failed = self.probability(weights.override(var, 1.0))
            p_working = self.probability(weights.override(var, 0.0))
            birnbaum = p_failed - p_working
            criticality = birnbaum * p / top_probability if top_probability > 0 else None
            measures[event.id] = ImportanceMeasures(
                event=event.id,
                probability=p,
                birnbaum=birnbaum,
                improvement_potential=top_probability - p_working,
                criticality=criticality,
            )
        return measures

    def modules(self) -> List[str]:
        return find_modules(self.tree)

    def modularized_probability(self, time_bound: float) -> float:
        """Top event probability computed module by module.

        Innermost modules are solved first and replaced by a basic event of
        the same probability; the reduced tree is solved last.
        """
        reduced = self.reduce_modules(time_bound)
        return FaultTreeAnalyzer(reduced, self.engine, self.config).top_event_probability(time_bound)

    def reduce_modules(self, time_bound: float) -> ValidatedTree:
        """Tree where every module is replaced by its probability at ``time_bound``."""
        tree: FaultTree = self.tree.tree
        for module_id in reversed(self.modules()):
            sub = validate(tree.subtree(module_id))
            p = FaultTreeAnalyzer(sub, self.engine, self.config).top_event_probability(time_bound)
            logger.debug(f"Module {module_id!r} has probability {p}")
            tree = tree.replace(BasicEvent.with_probability(module_id, min(p, 1.0)))
        return validate(tree)

    def failure_scenario(self, minimize: bool = True) -> Optional[FrozenSet[str]]:
        """Basic events whose joint failure makes the top event occur.

        Args:
            minimize: Reduce the scenario to a minimal cut set

        Returns:
            The failed basic events, or None when the top event cannot occur
        """
        if isinstance(self.tree[self.tree.top], BasicEvent):
            return frozenset([self.tree.top])
        event_vars = {self.variables.var(e.id): e.id for e in self.tree.basic_events()}
        with Solver(name=self.config.solver_name, bootstrap_with=self.formula.clauses) as solver:
            if not solver.solve(assumptions=[self.top_var]):
                return None
            failed = sorted(lit for lit in solver.get_model() if lit > 0 and lit in event_vars)
            if minimize:
                # Gates are monotone: dropping a failure keeps the top true or breaks it for good
                for var in list(failed):
                    candidate = [v for v in failed if v != var]
                    if solver.solve(assumptions=[self.top_var] + self._fix_events(candidate, event_vars)):
                        failed = candidate
        return frozenset(event_vars[var] for var in failed)

    @staticmethod
    def _fix_events(failed: List[int], event_vars: Dict[int, str]) -> List[int]:
        failed_set = set(failed)
        return [var if var in failed_set else -var for var in sorted(event_vars)]
