import json
from dataclasses import dataclass
from typing import Optional

from .model_counter import CountingEngine, EnumerationEngine, get_engine_from_path
from .preprocessor import CNFPreprocessor, get_preprocessor_from_path
from .validator import OrphanPolicy
from .wire_format import WireFormat


@dataclass
class AnalysisConfig:
    """Parameters shared by every analysis of a fault tree."""
    solver_path: Optional[str] = None  # None: in-process enumeration
    timeout_s: float = 300
    wire_format: WireFormat = WireFormat.MC21
    negate_top_or: bool = False  # count the negated OR top and return 1 - count
    num_threads: int = 1
    simplify: bool = True  # collapse single-child gates when reading Galileo
    orphan_policy: OrphanPolicy = OrphanPolicy.ERROR
    workdir: Optional[str] = None
    keep_files: bool = False
    solver_name: str = "glucose3"  # pysat backend
    preprocess: Optional[str] = None  # path of a CNF preprocessor
    max_cache_size: Optional[int] = None  # MB, split evenly between the threads

    def __post_init__(self):
        """Validate analysis parameters."""
        if not self.timeout_s > 0:
            raise ValueError("timeout_s must be positive")
        if self.num_threads < 1:
            raise ValueError("num_threads must be at least 1")
        if not isinstance(self.wire_format, WireFormat):
            raise ValueError("wire_format must be a WireFormat enum value")
        if not isinstance(self.orphan_policy, OrphanPolicy):
            raise ValueError("orphan_policy must be an OrphanPolicy enum value")
        if not self.solver_name:
            raise ValueError("solver_name must not be empty")
        if self.max_cache_size is not None and self.max_cache_size < 1:
            raise ValueError("max_cache_size must be at least 1 MB")

    @classmethod
    def from_dict(cls, params: dict) -> 'AnalysisConfig':
        """Create an AnalysisConfig from a dictionary of parameters."""
        return cls(
            solver_path=params.get('solver_path'),
            timeout_s=params.get('timeout_s', 300),
            wire_format=WireFormat.from_str(params.get('wire_format', 'mc21')),
            negate_top_or=params.get('negate_top_or', False),
            num_threads=params.get('num_threads', 1),
            simplify=params.get('simplify', True),
            orphan_policy=OrphanPolicy(params.get('orphan_policy', 'error')),
            workdir=params.get('workdir'),
            keep_files=params.get('keep_files', False),
            solver_name=params.get('solver_name', 'glucose3'),
            preprocess=params.get('preprocess'),
            max_cache_size=params.get('max_cache_size'),
        )

    @classmethod
    def from_file(cls, filename: str) -> 'AnalysisConfig':
        with open(filename, encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> dict:
        """Convert the configuration to a dictionary."""
        return {
            'solver_path': self.solver_path,
            'timeout_s': self.timeout_s,
            'wire_format': self.wire_format.value,
            'negate_top_or': self.negate_top_or,
            'num_threads': self.num_threads,
            'simplify': self.simplify,
            'orphan_policy': self.orphan_policy.value,
            'workdir': self.workdir,
            'keep_files': self.keep_files,
            'solver_name': self.solver_name,
            'preprocess': self.preprocess,
            'max_cache_size': self.max_cache_size,
        }

    def create_engine(self) -> CountingEngine:
        """Counting engine for ``solver_path``, in-process enumeration when unset.

        With ``max_cache_size`` set, each of the ``num_threads`` concurrent
        invocations gets an equal share of it.
        """
        if self.solver_path is None:
            engine = EnumerationEngine(self.solver_name)
        else:
            engine = get_engine_from_path(self.solver_path)
        if self.max_cache_size is not None:
            engine.set_cache_size(max(1, self.max_cache_size // self.num_threads))
        return engine

    def create_preprocessor(self) -> Optional[CNFPreprocessor]:
        if self.preprocess is None:
            return None
        return get_preprocessor_from_path(self.preprocess, self.workdir)
