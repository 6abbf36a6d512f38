import math
import sys

import pytest

from faultcnf.analysis import FaultTreeAnalyzer
from faultcnf.cnf_encoder import compile_tree
from faultcnf.config import AnalysisConfig
from faultcnf.driver import evaluate
from faultcnf.preprocessor import BPlusEPreprocessor, PMCPreprocessor, get_preprocessor_from_path
from faultcnf.validator import ValidatedTree
from faultcnf.weights import compute_weights

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="shell-script tools need a POSIX shell")

# The formula file is the last argument
LAST_ARG = 'for last; do :; done\n'


@pytest.fixture
def compiled(or_tree: ValidatedTree):
    return compile_tree(or_tree)


def test_output_replaces_the_formula(compiled, fake_executable) -> None:
    cnf, variables = compiled
    top = variables.var("top")
    # keep only the clause implying the children from the top
    tool = fake_executable(LAST_ARG + f'test -f "$last" && printf "c done\\np cnf 3 1\\n-{top} 2 3 0\\n"', "pmc")
    processed = PMCPreprocessor(tool).run(cnf, 10)
    assert processed.clauses == [[-top, 2, 3]]
    assert processed.nv == cnf.nv


def test_identity_preprocessing_keeps_the_probability(or_tree: ValidatedTree, fake_executable,
                                                      enumeration_engine) -> None:
    cnf, variables = compile_tree(or_tree)
    tool = PMCPreprocessor(fake_executable(LAST_ARG + 'cat "$last"', "pmc"))
    weights = compute_weights(or_tree, variables, 10.0)
    value = evaluate(cnf, weights, variables.var("top"), 10, enumeration_engine, preprocessor=tool)
    assert math.isclose(value, 0.25917, abs_tol=1e-5)


@pytest.mark.parametrize(
    "body",
    [
        'echo "c Solved by preprocessing"\necho "p cnf 0 0"',
        'echo "p cnf 3 1"\nexit 1',
        'echo "not a formula"',
        'printf "p cnf 9 1\\n9 0\\n"',
        'sleep 30',
    ],
)
def test_formula_is_kept_when_preprocessing_fails(compiled, fake_executable, body: str) -> None:
    cnf, _ = compiled
    tool = PMCPreprocessor(fake_executable(body, "pmc"))
    assert tool.run(cnf, 1) is cnf


def test_missing_preprocessor_keeps_the_formula(compiled, tmp_path) -> None:
    cnf, _ = compiled
    assert PMCPreprocessor(str(tmp_path / "missing")).run(cnf, 10) is cnf


def test_temporary_file_is_removed(compiled, fake_executable, tmp_path) -> None:
    cnf, _ = compiled
    workdir = tmp_path / "work"
    workdir.mkdir()
    PMCPreprocessor(fake_executable(LAST_ARG + 'cat "$last"', "pmc"), workdir=str(workdir)).run(cnf, 10)
    assert list(workdir.iterdir()) == []


def test_command_lines() -> None:
    pmc = PMCPreprocessor("./preproc_linux")
    assert pmc.command("f.cnf")[0] == "./preproc_linux"
    assert pmc.command("f.cnf")[-1] == "f.cnf"
    assert "-iterate=10" in pmc.command("f.cnf")
    assert "-eliminateLit" in pmc.command("f.cnf")
    bpe = BPlusEPreprocessor("./B+E_linux")
    assert bpe.command("f.cnf") == ["./B+E_linux", "-luby", "-no-rnd-init", "-limSolver=0", "-max#Res=500", "f.cnf"]


@pytest.mark.parametrize(
    "path, tool_type",
    [("./B+E_linux", BPlusEPreprocessor), ("/opt/preproc_linux", PMCPreprocessor), ("pmc", PMCPreprocessor)],
)
def test_preprocessor_from_path(path: str, tool_type: type) -> None:
    assert type(get_preprocessor_from_path(path)) is tool_type


def test_analyzer_uses_the_configured_preprocessor(or_tree: ValidatedTree, fake_executable, tmp_path) -> None:
    marker = tmp_path / "ran"
    tool = fake_executable(LAST_ARG + f'touch "{marker}"\ncat "$last"', "pmc")
    analyzer = FaultTreeAnalyzer(or_tree, config=AnalysisConfig(preprocess=tool))
    assert isinstance(analyzer.preprocessor, PMCPreprocessor)
    assert math.isclose(analyzer.top_event_probability(10.0), 0.25917, abs_tol=1e-5)
    assert marker.exists()
