import os
import stat
from typing import Callable

import pytest

from faultcnf.fault_tree import FaultTree
from faultcnf.model_counter import EnumerationEngine, SubprocessEngine
from faultcnf.models import NodeSpec
from faultcnf.validator import ValidatedTree, validate


@pytest.fixture
def or_tree() -> ValidatedTree:
    """OR top over two exponential events, lambda 0.01 and 0.02."""
    return validate(FaultTree.from_spec("top", {
        "top": NodeSpec("or", ("e1", "e2")),
        "e1": NodeSpec("basic", rate=0.01),
        "e2": NodeSpec("basic", rate=0.02),
    }))


@pytest.fixture
def shared_tree() -> ValidatedTree:
    """AND of two OR gates that share the basic event ``b``."""
    return validate(FaultTree.from_spec("top", {
        "top": NodeSpec("and", ("g1", "g2")),
        "g1": NodeSpec("or", ("a", "b")),
        "g2": NodeSpec("or", ("b", "c")),
        "a": NodeSpec("basic", probability=0.1),
        "b": NodeSpec("basic", probability=0.2),
        "c": NodeSpec("basic", probability=0.3),
    }))


@pytest.fixture
def voting_tree() -> ValidatedTree:
    """2-out-of-3 top over static events."""
    return validate(FaultTree.from_spec("top", {
        "top": NodeSpec("voting", ("a", "b", "c"), threshold=2),
        "a": NodeSpec("basic", probability=0.1),
        "b": NodeSpec("basic", probability=0.2),
        "c": NodeSpec("basic", probability=0.3),
    }))


@pytest.fixture
def enumeration_engine() -> EnumerationEngine:
    return EnumerationEngine()


@pytest.fixture
def fake_executable(tmp_path) -> Callable[[str, str], str]:
    """Factory of small shell scripts standing in for external tools."""
    def make(body: str, name: str = "engine.sh") -> str:
        script = tmp_path / name
        script.write_text("#!/bin/sh\n" + body + "\n")
        os.chmod(script, os.stat(script).st_mode | stat.S_IEXEC)
        return str(script)
    return make


@pytest.fixture
def fake_engine(fake_executable) -> Callable[..., SubprocessEngine]:
    """Factory of engines backed by a small shell script."""
    def make(body: str, name: str = "engine.sh", **kwargs) -> SubprocessEngine:
        return SubprocessEngine(fake_executable(body, name), **kwargs)
    return make
