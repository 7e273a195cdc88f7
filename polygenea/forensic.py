"""
Forensic Reporter CLI
=====================

Tool for inspecting serialized polygenea data without writing code.

COMMANDS:
- canonicalize: Print the canonical serialization of a value file
- identity:     Print the identity of every node in a node file
- verify:       Load a node file and validate every node
- topo:         Print node identities in topological order
- compress:     Print the compressed serialization of a node file

USAGE:
    python -m polygenea.forensic [--set-policy POLICY] COMMAND FILE
"""

from __future__ import annotations
from typing import List, Optional
import argparse
import logging
import os
import sys

from .canonical.parser import SetPolicy, parse_file
from .canonical.serializer import serialize
from .contracts.base import PolygeneaError
from .engine import ENV_LOG_LEVEL, configure_logging
from .storage import GraphStore, GraphStoreConfig

logger = logging.getLogger(__name__)


def _load(args) -> GraphStore:
    store = GraphStore(GraphStoreConfig(set_policy=args.set_policy))
    store.ingest_file(args.file)
    return store


def cmd_canonicalize(args) -> int:
    """Print the canonical text of a single value."""
    print(serialize(parse_file(args.file, args.set_policy)))
    return 0


def cmd_identity(args) -> int:
    """Print one line per input entry: identity and variant."""
    store = GraphStore(GraphStoreConfig(set_policy=args.set_policy))
    for node in store.ingest_file(args.file):
        print(f"{node.identity} {node.variant}")
    return 0


def cmd_verify(args) -> int:
    """Load and validate; exit status 1 on any issue."""
    print(f"[*] Verifying nodes in: {args.file}")
    store = _load(args)
    print(f"    Loaded {len(store)} nodes.")

    errors = 0
    for node in store.topological_order():
        issues = []
        if node.validate(issues):
            continue
        for issue in issues:
            print(f"[FAIL] {node.variant} {node.identity}: {issue}")
            errors += 1

    if errors == 0:
        print(f"[PASS] Verified {len(store)} nodes. Integrity intact.")
        return 0
    print(f"[FAIL] Found {errors} issues.")
    return 1


def cmd_topo(args) -> int:
    """Dependencies first; one line per node with its height."""
    for node in _load(args).topological_order():
        print(f"{node.height:>3} {node.identity} {node.variant}")
    return 0


def cmd_compress(args) -> int:
    print(_load(args).dump())
    return 0


COMMANDS = {
    "canonicalize": cmd_canonicalize,
    "identity": cmd_identity,
    "verify": cmd_verify,
    "topo": cmd_topo,
    "compress": cmd_compress,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="polygenea.forensic", description="Forensic Reporter")
    parser.add_argument(
        "--set-policy",
        type=SetPolicy.from_name,
        default=SetPolicy.NEVER,
        help="when parsed arrays become sets: never, if_sorted, if_unique, always",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get(ENV_LOG_LEVEL) or "WARNING",
        help=f"logging level name (default: ${ENV_LOG_LEVEL} or WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command")
    for name, handler in COMMANDS.items():
        command = subparsers.add_parser(name, help=handler.__doc__.splitlines()[0] if handler.__doc__ else None)
        command.add_argument("file", help="Path to the input file")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    try:
        configure_logging(args.log_level)
        return COMMANDS[args.command](args)
    except PolygeneaError as exc:
        logger.debug("command %s failed", args.command, exc_info=True)
        print(f"[FAIL] {type(exc).__name__}: {exc}")
        return 1
    except OSError as exc:
        print(f"[FAIL] Cannot read {args.file}: {exc.strerror or exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
