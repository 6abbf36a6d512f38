from .models import BasicEvent, Gate, GateType, NodeSpec
from .fault_tree import FaultTree
from .validator import OrphanPolicy, ValidatedTree, validate
from .cnf_encoder import CNFEncoder, VariableMap, compile_tree
from .weights import WeightTable, compute_weights, failure_probability
from .wire_format import WireFormat, dump_weighted_cnf, parse_weighted_cnf
from .model_counter import CountingEngine, DMCEngine, EnumerationEngine, SubprocessEngine, get_engine_from_path
from .preprocessor import CNFPreprocessor, get_preprocessor_from_path
from .driver import EvaluationResult, evaluate
from .config import AnalysisConfig
from .analysis import FaultTreeAnalyzer, ImportanceMeasures, expand_time_bounds
from .modularizer import find_modules
from .galileo import parse_galileo, read_galileo, dump_galileo
from .generator import RandomTreeConfig, generate_random_tree

__all__ = [
    'BasicEvent',
    'Gate',
    'GateType',
    'NodeSpec',
    'FaultTree',
    'OrphanPolicy',
    'ValidatedTree',
    'validate',
    'CNFEncoder',
    'VariableMap',
    'compile_tree',
    'WeightTable',
    'compute_weights',
    'failure_probability',
    'WireFormat',
    'dump_weighted_cnf',
    'parse_weighted_cnf',
    'CountingEngine',
    'DMCEngine',
    'EnumerationEngine',
    'SubprocessEngine',
    'get_engine_from_path',
    'CNFPreprocessor',
    'get_preprocessor_from_path',
    'EvaluationResult',
    'evaluate',
    'AnalysisConfig',
    'FaultTreeAnalyzer',
    'ImportanceMeasures',
    'expand_time_bounds',
    'find_modules',
    'parse_galileo',
    'read_galileo',
    'dump_galileo',
    'RandomTreeConfig',
    'generate_random_tree',
]
