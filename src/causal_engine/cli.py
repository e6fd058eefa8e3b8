"""
Command-line interface for the causal engine.

Provides subcommands for inspecting a network, learning its CPTs from
samples, and answering observational, interventional, counterfactual and
MAP queries.

Node references on the command line are numeric ids; a leading ``*`` marks
the hypothetical (twin) copy of a node, e.g. ``--target *3=1``.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from src.logging_config import configure_logging

from . import discretise
from .config import get_logging_level
from .em import ParameterLearner
from .errors import CausalEngineError
from .interventions import Factual, Hypothetical, NodeRef, TWIN_SUFFIX
from .matrix import LabeledMatrix
from .network import Network
from .query import QueryExecuter


def parse_ref(token: str) -> NodeRef:
    """``3`` -> Factual(3), ``*3`` -> Hypothetical(3)."""
    try:
        if token.startswith(TWIN_SUFFIX):
            return Hypothetical(int(token[len(TWIN_SUFFIX):]))
        return Factual(int(token))
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{token}' is not a node id") from None


def parse_assignment(token: str) -> Tuple[NodeRef, int]:
    """``ID=VALUE`` with an optional ``*`` before the id."""
    ref, sep, value = token.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"'{token}' is not of the form ID=VALUE")
    try:
        return parse_ref(ref), int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer value") from None


def parse_edge(token: str) -> Tuple[NodeRef, NodeRef]:
    """``SOURCE,TARGET``."""
    source, sep, target = token.partition(",")
    if not sep:
        raise argparse.ArgumentTypeError(f"'{token}' is not of the form SOURCE,TARGET")
    return parse_ref(source), parse_ref(target)


def load_network(args: argparse.Namespace) -> Network:
    network = Network()
    network.read_network(args.network)
    if args.sif:
        network.read_network(args.sif)
    return network


def load_samples(args: argparse.Namespace) -> LabeledMatrix:
    return discretise.load_samples(
        args.samples,
        control=args.control,
        col_names=not args.no_header,
        deleted_samples=args.delete,
    )


def learn(args: argparse.Namespace, network: Network) -> ParameterLearner:
    samples = load_samples(args)
    if getattr(args, "save_discretised", None):
        samples.write(args.save_discretised)
        print(f"Wrote discretised samples to {args.save_discretised}")
    return ParameterLearner(
        network,
        samples,
        difference_threshold=args.threshold,
        max_runs=args.max_runs,
    )


def cmd_show(args: argparse.Namespace) -> int:
    """Print nodes and adjacency matrix."""
    try:
        network = load_network(args)
    except CausalEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"{len(network)} nodes, {len(network.get_edges())} edges")
    for node in network.get_nodes():
        parents = network.get_parents(node.id)
        print(f"  {node.id}\t{node.name}" + (f"\t<- {parents}" if parents else ""))
    print()
    print(network)
    return 0


def cmd_learn(args: argparse.Namespace) -> int:
    """Learn CPTs with EM and report the run."""
    try:
        network = load_network(args)
        learner = learn(args, network)
    except CausalEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    summary = learner.summary()
    print(f"Runs:           {summary['runs']}")
    print(f"Difference:     {summary['difference']:.6g}")
    print(f"Method:         {summary['method'] or 'complete data'}")
    print(f"Log-likelihood: {summary['log_likelihood']:.6g}")
    print(f"Time:           {summary['microseconds']} us")

    if args.dump_dir:
        dump_dir = Path(args.dump_dir)
        dump_dir.mkdir(parents=True, exist_ok=True)
        for node in network.get_nodes():
            node.cpt.write(dump_dir / f"{node.name}.cpt")
        print(f"Wrote {len(network)} CPTs to {dump_dir}")
    elif args.verbose:
        for node in network.get_nodes():
            print(f"\n{node.name}")
            print(node.cpt)
    return 0


def cmd_query(args: argparse.Namespace) -> int:
    """Learn CPTs, then answer one query."""
    try:
        network = load_network(args)
        learn(args, network)

        executer = QueryExecuter(network)
        executer.set_non_intervention(args.target)
        executer.set_condition(args.condition)
        executer.set_do_intervention(args.do)
        executer.set_add_edge(args.add_edge)
        executer.set_remove_edge(args.remove_edge)
        executer.set_argmax(args.argmax)
        description = str(executer)
        result = executer.execute()
    except CausalEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"{description} = {result.probability:.6g}")
    if result.assignments:
        refs = [str(ref) for ref in args.argmax]
        print("argmax: " + ", ".join(f"{ref}={value}" for ref, value in zip(refs, result.assignments)))
    return 0


def _add_network_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--network", required=True, help="Network file (.tgf or .na)")
    parser.add_argument("--sif", help="Edge file (.sif) read after a .na network")


def _add_learning_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--samples", required=True,
                        help="Sample table: one row per node (name or id first), -1 for missing")
    parser.add_argument("--no-header", action="store_true", help="Sample table has no header row")
    parser.add_argument("--control", help="Discretisation control file: '<row> <method> [threshold]' per line")
    parser.add_argument("--delete", type=int, action="append", default=[], metavar="COL",
                        help="0-based sample column to leave out (repeatable)")
    parser.add_argument("--threshold", type=float, help="EM convergence threshold (default from config)")
    parser.add_argument("--max-runs", type=int, help="Maximum EM iterations (default from config)")


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="causal-engine",
        description="Causal inference on discrete Bayesian networks"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # show command
    show_parser = subparsers.add_parser("show", help="Show nodes and edges of a network")
    _add_network_args(show_parser)
    show_parser.set_defaults(func=cmd_show)

    # learn command
    learn_parser = subparsers.add_parser("learn", help="Learn CPTs from samples")
    _add_network_args(learn_parser)
    _add_learning_args(learn_parser)
    learn_parser.add_argument("--dump-dir", help="Write one <name>.cpt file per node here")
    learn_parser.add_argument("--save-discretised", metavar="FILE",
                              help="Write the discretised sample table used for learning")
    learn_parser.set_defaults(func=cmd_learn)

    # query command
    query_parser = subparsers.add_parser("query", help="Learn CPTs and answer a query")
    _add_network_args(query_parser)
    _add_learning_args(query_parser)
    query_parser.add_argument("--target", type=parse_assignment, action="append", default=[],
                              metavar="ID=V", help="Target value (repeatable)")
    query_parser.add_argument("--condition", type=parse_assignment, action="append", default=[],
                              metavar="ID=V", help="Observed evidence (repeatable)")
    query_parser.add_argument("--do", type=parse_assignment, action="append", default=[],
                              metavar="ID=V", help="do-intervention (repeatable)")
    query_parser.add_argument("--add-edge", type=parse_edge, action="append", default=[],
                              metavar="S,T", help="Edge added for the query (repeatable)")
    query_parser.add_argument("--remove-edge", type=parse_edge, action="append", default=[],
                              metavar="S,T", help="Edge removed for the query (repeatable)")
    query_parser.add_argument("--argmax", type=parse_ref, action="append", default=[],
                              metavar="ID", help="MAP target (repeatable)")
    query_parser.set_defaults(func=cmd_query)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else get_logging_level())
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
