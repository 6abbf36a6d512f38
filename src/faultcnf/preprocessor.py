"""External CNF preprocessors run on the compiled formula before counting.

Preprocessing is best effort: when the tool cannot be started, fails, runs
out of time, prints something that is not a CNF, or reports that it solved
the formula on its own, the formula is kept as it was.
"""
import logging
import os
import tempfile
from typing import List, Optional

from pysat.formula import CNF

from .errors import EngineCrashError, WireFormatError
from .model_counter import run_bounded
from .wire_format import parse_weighted_cnf

logger = logging.getLogger(__name__)

SOLVED_MARKER = "c Solved by preprocessing"


class CNFPreprocessor:
    """Equivalence-preserving CNF simplifier invoked on a temporary file."""

    name = "preprocessor"

    def __init__(self, executable: str, workdir: Optional[str] = None):
        self.executable = executable
        self.workdir = workdir

    def arguments(self) -> List[str]:
        return []

    def command(self, path: str) -> List[str]:
        return [self.executable] + self.arguments() + [path]

    def run(self, formula: CNF, timeout: float) -> CNF:
        """
        Simplify ``formula``; the original formula is returned on any failure.

        The result keeps at least ``formula.nv`` variables so that weight
        tables built for the original formula still cover it.
        """
        text = f"p cnf {formula.nv} {len(formula.clauses)}\n"
        text += "".join(" ".join(str(lit) for lit in clause) + " 0\n" for clause in formula.clauses)

        fd, path = tempfile.mkstemp(prefix="faultcnf-pre-", suffix=".cnf", dir=self.workdir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(text)
            result = run_bounded(self.command(path), timeout)
        except EngineCrashError as e:
            logger.warning(f"{e}, counting the formula without preprocessing")
            return formula
        finally:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass

        if result.timed_out:
            logger.warning(f"{self.name} timed out after {timeout} seconds, keeping the formula")
            return formula
        if result.returncode != 0:
            logger.warning(f"{self.name} exited with code {result.returncode}, keeping the formula")
            return formula
        if any(line.startswith(SOLVED_MARKER) for line in result.stdout.splitlines()):
            logger.info(f"{self.name} solved the formula by itself, keeping the original")
            return formula
        try:
            instance = parse_weighted_cnf(result.stdout)
        except WireFormatError as e:
            logger.warning(f"Cannot read the output of {self.name}: {e}")
            return formula
        if instance.num_vars > formula.nv:
            logger.warning(f"{self.name} introduced new variables, keeping the formula")
            return formula

        processed = CNF(from_clauses=instance.clauses)
        processed.nv = formula.nv
        logger.info(f"Preprocessed with {self.name} in {result.elapsed:.2f} seconds: "
                    f"{len(formula.clauses)} -> {len(processed.clauses)} clauses")
        return processed

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.executable!r})"


class PMCPreprocessor(CNFPreprocessor):
    """pmc (``preproc``) in its equivalence-preserving configuration."""

    name = "pmc"

    def __init__(self, executable: str, workdir: Optional[str] = None, iterations: int = 10,
                 luby_restart: bool = True, rnd_init: bool = False):
        super().__init__(executable, workdir)
        self.iterations = iterations
        self.luby_restart = luby_restart
        self.rnd_init = rnd_init

    def arguments(self) -> List[str]:
        return [
            f"-iterate={self.iterations}",
            "-luby" if self.luby_restart else "-no-luby",
            "-rnd-init" if self.rnd_init else "-no-rnd-init",
            "-no-affine", "-no-orGate", "-no-equiv",
            "-vivification", "-litImplied", "-eliminateLit", "-no-addClause",
        ]


class BPlusEPreprocessor(CNFPreprocessor):
    """B+E, bipartition and elimination of defined variables."""

    name = "b+e"

    def __init__(self, executable: str, workdir: Optional[str] = None, lim_solver: int = 0,
                 max_resolutions: int = 500, luby_restart: bool = True, rnd_init: bool = False):
        super().__init__(executable, workdir)
        self.lim_solver = lim_solver
        self.max_resolutions = max_resolutions
        self.luby_restart = luby_restart
        self.rnd_init = rnd_init

    def arguments(self) -> List[str]:
        return [
            "-luby" if self.luby_restart else "-no-luby",
            "-rnd-init" if self.rnd_init else "-no-rnd-init",
            f"-limSolver={self.lim_solver}",
            f"-max#Res={self.max_resolutions}",
        ]


def get_preprocessor_from_path(path: str, workdir: Optional[str] = None) -> CNFPreprocessor:
    """B+E for executables named like ``B+E_linux``, pmc for everything else."""
    lowered = os.path.basename(path).lower()
    if "b+e" in lowered or "bpluse" in lowered:
        return BPlusEPreprocessor(path, workdir)
    return PMCPreprocessor(path, workdir)
