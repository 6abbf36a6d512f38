import logging
import os
import tempfile
import time
from dataclasses import dataclass
from typing import Optional

from pysat.formula import CNF

from .errors import EngineCrashError, SolverTimeoutError
from .model_counter import CountingEngine, RawResult
from .preprocessor import CNFPreprocessor
from .weights import WeightTable
from .wire_format import WireFormat, dump_weighted_cnf

logger = logging.getLogger(__name__)

STATUS_OK = "ok"


@dataclass
class EvaluationResult:
    """Outcome of one time-bound evaluation in a batch.

    ``status`` is ``"ok"`` or the ``kind`` of the solver failure; in the latter
    case ``probability`` is ``None``.
    """
    time_bound: float
    status: str
    probability: Optional[float] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> dict:
        return {
            'timepoint': self.time_bound,
            'status': self.status,
            'probability': self.probability,
            'message': self.message,
        }


def evaluate(formula: CNF, weights: WeightTable, top_assumption: int, timeout: float,
             engine: CountingEngine, wire_format: WireFormat = WireFormat.MC21,
             workdir: Optional[str] = None, keep_file: bool = False,
             preprocessor: Optional[CNFPreprocessor] = None) -> float:
    """
    Weighted model count of ``formula`` under the unit clause ``top_assumption``.

    Args:
        formula: Compiled formula, shared read-only between calls
        weights: Weight table of this evaluation
        top_assumption: Signed literal asserted before counting
        timeout: Wall-clock budget of the engine in seconds
        engine: Counting engine to invoke
        wire_format: Dialect of the formula file handed to the engine
        workdir: Directory of the temporary formula file (system default if None)
        keep_file: Leave the formula file on disk
        preprocessor: CNF preprocessor run first; its time counts against ``timeout``

    Returns:
        The probability reported by the engine

    Raises:
        SolverTimeoutError: The engine exceeded ``timeout`` and was killed
        MalformedOutputError: The engine output holds no usable probability
        EngineCrashError: The engine could not start or exited with an error
    """
    if not timeout > 0:
        raise ValueError(f"timeout must be positive, got {timeout}")
    budget = timeout
    if preprocessor is not None:
        start_time = time.monotonic()
        formula = preprocessor.run(formula, budget)
        timeout = budget - (time.monotonic() - start_time)
        if timeout <= 0:
            raise SolverTimeoutError(budget)
    text = dump_weighted_cnf(formula, weights, top_assumption, wire_format)

    fd, path = tempfile.mkstemp(prefix="faultcnf-", suffix=".wcnf", dir=workdir)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
        result = engine.invoke(path, timeout)
    finally:
        if keep_file:
            logger.info(f"Formula kept in {path}")
        else:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass

    return interpret_result(engine, result, budget)


def interpret_result(engine: CountingEngine, result: RawResult, timeout: float) -> float:
    """Turn a raw engine outcome into a probability or a solver failure."""
    if result.timed_out:
        raise SolverTimeoutError(timeout)
    if result.stderr.strip():
        logger.warning(f"{engine.name} wrote to stderr: {result.stderr.strip()[:500]}")
    if result.returncode != 0:
        raise EngineCrashError(f"{engine.name} exited with code {result.returncode}", result.returncode)
    value = engine.parse_result(result.stdout)
    logger.info(f"Solving took {result.elapsed:.2f} seconds")
    return value
