"""Command-line front ends: ``faultcnf`` and ``faultcnf-rft``.

Results are printed to stdout as one JSON object per line; logging goes to
stderr.
"""
import argparse
import json
import logging
import os
import random
import sys
import time
from typing import List, Optional

from .analysis import FaultTreeAnalyzer, expand_time_bounds
from .cnf_encoder import CNFEncoder
from .config import AnalysisConfig
from .errors import FaultCNFError
from .galileo import read_galileo, write_galileo
from .generator import RandomTreeConfig, generate_random_tree
from .validator import ValidatedTree, validate
from .weights import compute_weights
from .wire_format import write_weighted_cnf

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _emit(record: dict) -> None:
    print(json.dumps(record), flush=True)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('-i', '--input', required=True, help='Fault tree in Galileo format')
    parser.add_argument('--config', help='JSON file with analysis parameters')
    parser.add_argument('--no-simplify', dest='simplify', action='store_false', default=None,
                        help='Keep gates with a single child')
    parser.add_argument('--orphans', choices=['error', 'warn'], dest='orphan_policy',
                        help='Handling of nodes unreachable from the top')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')


def _add_solver(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('-s', '--solver-path',
                        help='Counting engine executable ("enumeration" for the in-process engine)')
    parser.add_argument('--timeout-s', type=float, help='Engine timeout in seconds')
    parser.add_argument('--format', dest='wire_format', choices=['MC21', 'MCC', 'PAIRED', 'mc21', 'mcc', 'paired'],
                        help='Weighted CNF dialect handed to the engine')
    parser.add_argument('--negate-or', dest='negate_top_or', action='store_true', default=None,
                        help='Count the negation of an OR top event')
    parser.add_argument('--workdir', help='Directory of the temporary formula files')
    parser.add_argument('--keep-files', action='store_true', default=None,
                        help='Keep the formula files handed to the engine')
    parser.add_argument('--preprocess', metavar='PATH',
                        help='CNF preprocessor run before counting (pmc or B+E executable)')
    parser.add_argument('--max-cache-size', type=int, metavar='MB',
                        help='Engine cache size, split evenly between the threads')


def _add_time(parser: argparse.ArgumentParser, batch: bool = True) -> None:
    if batch:
        group = parser.add_mutually_exclusive_group()
        group.add_argument('--timepoint', type=float, default=1.0, help='Time bound of the analysis')
        group.add_argument('--timebounds', type=float, nargs=3, metavar=('START', 'END', 'STEP'),
                           help='Inclusive grid of time bounds')
    else:
        parser.add_argument('--timepoint', type=float, default=1.0, help='Time bound of the analysis')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='faultcnf',
        description='Compile static fault trees into weighted CNF and compute top event probabilities.')
    commands = parser.add_subparsers(dest='command', required=True)

    info = commands.add_parser('info', help='Size of the tree and of its formula')
    _add_common(info)
    info.add_argument('--render', metavar='FILE', help='Draw the tree with Graphviz (FILE.png)')

    translate = commands.add_parser('translate', help='Write the weighted CNF of each time bound')
    _add_common(translate)
    _add_time(translate)
    translate.add_argument('-o', '--output', required=True, help='Prefix of the .wcnf files')
    translate.add_argument('--format', dest='wire_format', choices=['MC21', 'MCC', 'PAIRED', 'mc21', 'mcc', 'paired'])
    translate.add_argument('--w-file', metavar='PREFIX',
                           help='Write the weights to PREFIX_t=<t>.w instead of the formula files')

    solve = commands.add_parser('solve', help='Top event probability at one or more time bounds')
    _add_common(solve)
    _add_solver(solve)
    _add_time(solve)
    solve.add_argument('--num-threads', type=int, help='Parallel engine invocations')

    modularize = commands.add_parser('modularize', help='Solve the tree module by module')
    _add_common(modularize)
    _add_solver(modularize)
    _add_time(modularize, batch=False)

    importance = commands.add_parser('importance', help='Importance measures of the basic events')
    _add_common(importance)
    _add_solver(importance)
    _add_time(importance, batch=False)

    scenario = commands.add_parser('scenario', help='A minimal set of failures causing the top event')
    _add_common(scenario)
    scenario.add_argument('--no-minimize', dest='minimize', action='store_false',
                          help='Report the first scenario found without reducing it')
    scenario.add_argument('--render', metavar='FILE', help='Draw the tree with the scenario highlighted')
    return parser


def load_config(args: argparse.Namespace) -> AnalysisConfig:
    """Configuration file values overridden by the flags given on the command line."""
    params = {}
    if getattr(args, 'config', None):
        with open(args.config, encoding='utf-8') as f:
            params = json.load(f)
    for key in ('solver_path', 'timeout_s', 'wire_format', 'negate_top_or', 'num_threads',
                'simplify', 'orphan_policy', 'workdir', 'keep_files', 'preprocess', 'max_cache_size'):
        value = getattr(args, key, None)
        if value is not None:
            params[key] = value
    return AnalysisConfig.from_dict(params)


def _load_tree(path: str, config: AnalysisConfig) -> ValidatedTree:
    tree = read_galileo(path, config.simplify)
    return validate(tree, config.orphan_policy)


def _time_bounds(args: argparse.Namespace) -> List[float]:
    if getattr(args, 'timebounds', None):
        return expand_time_bounds(*args.timebounds)
    return [args.timepoint]


def _info(args: argparse.Namespace, config: AnalysisConfig) -> None:
    tree = _load_tree(args.input, config)
    formula, variables = CNFEncoder(tree).encode()
    record = {'model': os.path.basename(args.input)}
    record.update(tree.tree.stats())
    record.update({
        'num_vars': formula.nv,
        'num_aux_vars': variables.num_aux,
        'num_clauses': len(formula.clauses),
    })
    if args.render:
        tree.tree.visualize(args.render)
    _emit(record)


def _translate(args: argparse.Namespace, config: AnalysisConfig) -> None:
    tree = _load_tree(args.input, config)
    formula, variables = CNFEncoder(tree).encode()
    top_var = variables.var(tree.top)
    for t in _time_bounds(args):
        filename = f"{args.output}_t={t:g}.wcnf"
        weights_filename = f"{args.w_file}_t={t:g}.w" if args.w_file else None
        write_weighted_cnf(filename, formula, compute_weights(tree, variables, t), top_var, config.wire_format,
                           weights_filename)
        record = {'model': os.path.basename(args.input), 'timepoint': t, 'output': filename,
                  'format': config.wire_format.value}
        if weights_filename:
            record['weights'] = weights_filename
        _emit(record)


def _solve(args: argparse.Namespace, config: AnalysisConfig) -> bool:
    analyzer = FaultTreeAnalyzer(_load_tree(args.input, config), config=config)
    model = os.path.basename(args.input)
    all_ok = True
    for result in analyzer.evaluate_time_bounds(_time_bounds(args)):
        record = {'model': model, 'solver': analyzer.engine.name}
        record.update(result.to_dict())
        _emit(record)
        all_ok = all_ok and result.ok
    return all_ok


def _modularize(args: argparse.Namespace, config: AnalysisConfig) -> None:
    analyzer = FaultTreeAnalyzer(_load_tree(args.input, config), config=config)
    start_time = time.time()
    modules = analyzer.modules()
    reduced = analyzer.reduce_modules(args.timepoint)
    probability = FaultTreeAnalyzer(reduced, analyzer.engine, config).top_event_probability(args.timepoint)
    _emit({
        'model': os.path.basename(args.input),
        'timepoint': args.timepoint,
        'modules': modules,
        'num_nodes_before': len(analyzer.tree),
        'num_nodes_after': len(reduced),
        'probability': probability,
        'elapsed': time.time() - start_time,
    })


def _importance(args: argparse.Namespace, config: AnalysisConfig) -> None:
    analyzer = FaultTreeAnalyzer(_load_tree(args.input, config), config=config)
    for measures in analyzer.importance_measures(args.timepoint).values():
        record = {'timepoint': args.timepoint}
        record.update(measures.to_dict())
        _emit(record)


def _scenario(args: argparse.Namespace, config: AnalysisConfig) -> None:
    analyzer = FaultTreeAnalyzer(_load_tree(args.input, config), config=config)
    events = analyzer.failure_scenario(minimize=args.minimize)
    if args.render:
        analyzer.tree.tree.visualize(args.render, highlight=events or ())
    _emit({
        'model': os.path.basename(args.input),
        'events': sorted(events) if events is not None else None,
    })


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    try:
        config = load_config(args)
        if args.command == 'info':
            _info(args, config)
        elif args.command == 'translate':
            _translate(args, config)
        elif args.command == 'solve':
            return 0 if _solve(args, config) else 1
        elif args.command == 'modularize':
            _modularize(args, config)
        elif args.command == 'importance':
            _importance(args, config)
        elif args.command == 'scenario':
            _scenario(args, config)
    except (FaultCNFError, ValueError, OSError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0


def build_rft_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='faultcnf-rft',
        description='Generate a random static fault tree in Galileo format. '
                    'Requires rate-and + rate-or + rate-vot = 1.')
    parser.add_argument('-n', '--n-nodes', type=int, required=True, help='Total number of nodes')
    parser.add_argument('-o', '--output', required=True, help='Output file, .dft is appended if missing')
    parser.add_argument('--rate-be', type=float, default=0.5, help='Share of basic events among all nodes')
    parser.add_argument('--rate-and', type=float, default=0.5, help='Share of AND gates among gates')
    parser.add_argument('--rate-or', type=float, default=0.5, help='Share of OR gates among gates')
    parser.add_argument('--rate-vot', type=float, default=0.0, help='Share of voting gates among gates')
    parser.add_argument('--prob-multiplier', type=float, default=1e-4,
                        help='Scales the sampled basic-event probabilities')
    parser.add_argument('--perc-last', type=float, default=0.6,
                        help='Unused basic events are attached to the gates past this fraction')
    parser.add_argument('--max-n-children', type=int, default=5,
                        help='Maximum number of children sampled per gate; attaching '
                             'unused nodes afterwards can exceed it')
    parser.add_argument('--vot-k', type=int, help='Fixed voting threshold, sampled per gate if omitted')
    parser.add_argument('--timeout-s', type=float, default=300, help='Engine timeout in seconds')
    parser.add_argument('--seed', type=int, help='Random seed, drawn at random if omitted')
    parser.add_argument('-s', '--solver-path', help='Solve the generated tree at t=1 with this engine')
    parser.add_argument('--format', dest='wire_format', default='MC21',
                        choices=['MC21', 'MCC', 'PAIRED', 'mc21', 'mcc', 'paired'])
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def rft_main(argv: Optional[List[str]] = None) -> int:
    args = build_rft_parser().parse_args(argv)
    _setup_logging(args.verbose)
    seed = args.seed if args.seed is not None else random.randrange(2 ** 16)
    output = args.output if args.output.endswith('.dft') else f"{args.output}.dft"

    try:
        config = RandomTreeConfig(
            rate_be=args.rate_be,
            rate_and=args.rate_and,
            rate_or=args.rate_or,
            rate_vot=args.rate_vot,
            prob_multiplier=args.prob_multiplier,
            perc_last=args.perc_last,
            max_children=args.max_n_children,
            vot_k=args.vot_k,
        )
        logger.info(f"Generating random fault tree with {args.n_nodes} nodes. Seed: {seed}. Saving dft in: {output}")
        start_time = time.time()
        tree = generate_random_tree(args.n_nodes, config, seed)
        write_galileo(output, tree)
        record = {'output': output, 'seed': seed, 'elapsed': time.time() - start_time}

        if args.solver_path:
            analysis_config = AnalysisConfig.from_dict({
                'solver_path': args.solver_path,
                'timeout_s': args.timeout_s,
                'wire_format': args.wire_format,
            })
            analyzer = FaultTreeAnalyzer(validate(tree), config=analysis_config)
            result = analyzer.evaluate_time_bounds([1.0])[0]
            record.update({'solver': analyzer.engine.name, 'status': result.status,
                           'probability': result.probability})
            record['elapsed'] = time.time() - start_time
        _emit(record)
    except (FaultCNFError, ValueError, OSError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
