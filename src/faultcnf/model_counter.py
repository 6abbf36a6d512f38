import logging
import math
import os
import signal
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from pysat.solvers import Solver

from .errors import EngineCrashError, MalformedOutputError, WireFormatError
from .wire_format import parse_weighted_cnf

logger = logging.getLogger(__name__)

# Weighted counts above 1 by more than this are rejected as malformed
PROBABILITY_TOLERANCE = 1e-9


@dataclass
class RawResult:
    """What a counting engine left behind after one invocation."""
    returncode: Optional[int]
    stdout: str
    stderr: str
    timed_out: bool
    elapsed: float


class CountingEngine(ABC):
    """A weighted model counter that can be invoked on a formula file."""

    name = "engine"
    result_prefix = "c s exact double"

    @abstractmethod
    def invoke(self, path: str, timeout: float) -> RawResult:
        """
        Run the engine on a weighted CNF file.

        Args:
            path: Path of the weighted CNF file
            timeout: Wall-clock budget in seconds

        Returns:
            The raw outcome; ``timed_out`` is set when the budget was exceeded
        """

    def parse_result(self, stdout: str) -> float:
        """Extract the weighted model count from the engine's stdout.

        The value is read from the last token of the last line starting with
        ``result_prefix``.

        Raises:
            MalformedOutputError: No such line, or the value is not a probability
        """
        lines = [line for line in stdout.splitlines() if line.startswith(self.result_prefix)]
        if not lines:
            raise MalformedOutputError(f"{self.name}: no line starting with {self.result_prefix!r} in output")
        token = lines[-1].split()[-1]
        try:
            value = float(token)
        except ValueError:
            raise MalformedOutputError(f"{self.name}: cannot read {token!r} as a number") from None
        if not math.isfinite(value) or value < 0 or value > 1 + PROBABILITY_TOLERANCE:
            raise MalformedOutputError(f"{self.name}: {value} is not a probability")
        return value

    def set_cache_size(self, cache_size: int) -> None:
        """Limit the component cache of the engine, in megabytes."""
        logger.warning(f"{self.name} has no parameter to limit its cache size, ignoring {cache_size} MB")

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def run_bounded(argv: List[str], timeout: float, input_text: Optional[str] = None) -> RawResult:
    """
    Run a command with a wall-clock budget.

    The child gets its own session so that a timeout kills the whole process
    group, wrappers and grandchildren included.

    Args:
        argv: Command and arguments
        timeout: Budget in seconds
        input_text: Text written to the child's stdin (stdin is closed if None)

    Raises:
        EngineCrashError: The command could not be started
    """
    logger.debug(f"Running {' '.join(argv)}")
    start_time = time.monotonic()
    try:
        process = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL if input_text is None else subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
    except OSError as e:
        raise EngineCrashError(f"Could not start {argv[0]}: {e}") from e

    try:
        stdout, stderr = process.communicate(input=input_text, timeout=timeout)
        timed_out = False
    except subprocess.TimeoutExpired:
        _kill(process)
        stdout, stderr = process.communicate()
        timed_out = True

    return RawResult(process.returncode, stdout, stderr, timed_out, time.monotonic() - start_time)


def _kill(process: subprocess.Popen) -> None:
    if hasattr(os, "killpg"):
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:
        process.kill()


class SubprocessEngine(CountingEngine):
    """External counting engine run as a bounded subprocess (see :func:`run_bounded`)."""

    name = "subprocess"

    def __init__(self, executable: str, args: Sequence[str] = (),
                 result_prefix: Optional[str] = None, timeout_flag: Optional[str] = None):
        """
        Args:
            executable: Path of the engine binary
            args: Extra arguments placed before the formula path
            result_prefix: Prefix of the stdout line carrying the result
            timeout_flag: Flag used to pass the timeout (in whole seconds) to the engine
        """
        self.executable = executable
        self.args = list(args)
        self.timeout_flag = timeout_flag
        if result_prefix is not None:
            self.result_prefix = result_prefix
        self.name = os.path.basename(executable)

    def arguments(self) -> List[str]:
        return list(self.args)

    def command(self, path: str, timeout: float) -> List[str]:
        argv = [self.executable] + self.arguments()
        if self.timeout_flag:
            argv += [self.timeout_flag, str(math.ceil(timeout))]
        return argv + [path]

    def invoke(self, path: str, timeout: float) -> RawResult:
        return run_bounded(self.command(path, timeout), timeout)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.executable!r})"


class GPMCEngine(SubprocessEngine):
    """GPMC in weighted model counting mode."""

    result_prefix = "c s exact double"

    def __init__(self, executable: str, precision: int = 15, cache_size: Optional[int] = None):
        super().__init__(executable, ["-mode=1", f"-prec={precision}"])
        self.cache_size = cache_size

    def set_cache_size(self, cache_size: int) -> None:
        self.cache_size = cache_size

    def arguments(self) -> List[str]:
        if self.cache_size is None:
            return list(self.args)
        return self.args + [f"-cs={self.cache_size}"]


class SharpsatTDEngine(SubprocessEngine):
    """SharpSAT-TD with weighted counting enabled."""

    result_prefix = "c s exact arb float"

    def __init__(self, executable: str, decot: int = 2, decow: int = 1, tmpdir: str = ".tmp",
                 precision: int = 20, cache_size: Optional[int] = None):
        args = ["-WE", "-decot", str(decot), "-decow", str(decow),
                "-tmpdir", tmpdir, "-prec", str(precision)]
        super().__init__(executable, args)
        self.tmpdir = tmpdir
        self.cache_size = cache_size

    def set_cache_size(self, cache_size: int) -> None:
        self.cache_size = cache_size

    def arguments(self) -> List[str]:
        if self.cache_size is None:
            return list(self.args)
        return self.args + ["-cs", str(self.cache_size)]

    def invoke(self, path: str, timeout: float) -> RawResult:
        os.makedirs(self.tmpdir, exist_ok=True)
        return super().invoke(path, timeout)


class ADDMCEngine(SubprocessEngine):
    """ADDMC, reading the formula with ``--cf``."""

    result_prefix = "s wmc"

    def __init__(self, executable: str):
        super().__init__(executable, ["--cf"])


class DMCEngine(SubprocessEngine):
    """DMC fed with a join tree planned by HTB.

    HTB runs first on the formula file; its stdout is piped into DMC. Both
    share the wall-clock budget. HTB is looked up next to the DMC binary
    unless ``htb_path`` is given.
    """

    result_prefix = "c s exact double"

    def __init__(self, executable: str, htb_path: Optional[str] = None):
        super().__init__(executable, ["--cf"])
        if htb_path is None:
            directory, binary = os.path.split(executable)
            if not binary.lower().endswith("dmc"):
                raise ValueError(f"Cannot locate htb next to {executable!r}, pass htb_path")
            htb_path = os.path.join(directory, binary[:-3] + "htb")
        self.htb_path = htb_path

    def planner_command(self, path: str) -> List[str]:
        return [self.htb_path, "--cf", path]

    def invoke(self, path: str, timeout: float) -> RawResult:
        planned = run_bounded(self.planner_command(path), timeout)
        if planned.timed_out or planned.returncode != 0:
            logger.debug(f"htb did not produce a join tree (exit code {planned.returncode})")
            return planned
        remaining = timeout - planned.elapsed
        if remaining <= 0:
            return RawResult(None, "", planned.stderr, True, planned.elapsed)
        solved = run_bounded(self.command(path, remaining), remaining, input_text=planned.stdout)
        solved.stderr = planned.stderr + solved.stderr
        solved.elapsed += planned.elapsed
        return solved


class EnumerationEngine(CountingEngine):
    """In-process counter that sums the weights of enumerated models.

    Models are enumerated with a pysat solver. The cost is exponential in the
    number of basic events, so it is meant for small trees and for testing.
    The timeout is checked between models.
    """

    name = "enumeration"

    def __init__(self, solver_name: str = "glucose3"):
        self.solver_name = solver_name

    def invoke(self, path: str, timeout: float) -> RawResult:
        start_time = time.monotonic()
        try:
            with open(path, encoding='utf-8') as f:
                instance = parse_weighted_cnf(f.read())
        except (OSError, WireFormatError) as e:
            return RawResult(1, "", f"{e}\n", False, time.monotonic() - start_time)

        weights = instance.weights
        clause_vars = {abs(lit) for clause in instance.clauses for lit in clause}
        # Variables outside every clause are free: each contributes w_true + w_false
        free_factor = 1.0
        for var in range(1, instance.num_vars + 1):
            if var not in clause_vars:
                free_factor *= sum(weights[var])

        total = 0.0
        models = 0
        with Solver(name=self.solver_name, bootstrap_with=instance.clauses) as solver:
            # Models are enumerated over the clause variables only; blocking
            # on the full model would enumerate the free ones a second time
            while solver.solve():
                elapsed = time.monotonic() - start_time
                if elapsed > timeout:
                    return RawResult(None, "", "", True, elapsed)
                projected = [lit for lit in solver.get_model() if abs(lit) in clause_vars]
                weight = 1.0
                for lit in projected:
                    w_true, w_false = weights[abs(lit)]
                    weight *= w_true if lit > 0 else w_false
                total += weight
                models += 1
                if not projected:
                    break
                solver.add_clause([-lit for lit in projected])

        stdout = f"c o models {models}\n{self.result_prefix} float {total * free_factor!r}\n"
        return RawResult(0, stdout, "", False, time.monotonic() - start_time)

    def __repr__(self) -> str:
        return f"EnumerationEngine({self.solver_name!r})"


def get_engine_from_path(path: str) -> CountingEngine:
    """Pick the engine wrapper matching the executable name.

    ``"enumeration"`` selects the in-process :class:`EnumerationEngine`; names
    that match no known engine get a generic :class:`SubprocessEngine`.
    """
    lowered = os.path.basename(path).lower()
    if lowered in ("enumeration", "pysat"):
        return EnumerationEngine()
    if "sharpsat" in lowered:
        return SharpsatTDEngine(path)
    if "addmc" in lowered:
        return ADDMCEngine(path)
    if "gpmc" in lowered:
        return GPMCEngine(path)
    if "dmc" in lowered:
        return DMCEngine(path)
    logger.info(f"No dedicated wrapper for {path}, using a generic subprocess engine")
    return SubprocessEngine(path)
