"""Raffle CLI — off-system tooling for campaign owners and auditors.

Usage:
    raffle leaf --serial-id 0x.. --secret 0x.. --win
    raffle build-tree outcomes.json [--out tree.json]
    raffle verify --root 0x.. --serial-id 0x.. --secret 0x.. --lose --proof 0x.. 0x..
    raffle audit [--log events.jsonl]

outcomes.json is a list of {"serial_id": "0x..", "secret": "0x..", "win": true}.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from raffle.config import RaffleSettings
from raffle.crypto.merkle import MerkleTree, RevealedLeaf, leaf_hash, to_hex, verify
from raffle.errors import ValidationError
from raffle.persistence.event_log import EventLog


log = logging.getLogger("raffle.cli")


def setup_logging(verbose: bool, level_name: str = "INFO") -> None:
    level = logging.DEBUG if verbose else logging.getLevelName(level_name)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def cmd_leaf(args: argparse.Namespace) -> int:
    print(to_hex(leaf_hash(args.serial_id, args.secret, args.win)))
    return 0


def _load_outcomes(path: Path) -> list[RevealedLeaf]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ValidationError(f"Cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ValidationError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise ValidationError(f"{path} must hold a JSON list of outcomes")

    outcomes = []
    for i, item in enumerate(raw):
        try:
            serial_id, secret, win = item["serial_id"], item["secret"], item["win"]
        except (KeyError, TypeError) as exc:
            raise ValidationError(
                f"outcome {i} must be an object with serial_id, secret and win"
            ) from exc
        if not isinstance(win, bool):
            raise ValidationError(f"outcome {i}: win must be true or false, got {win!r}")
        outcomes.append(RevealedLeaf(serial_id, secret, win))
    return outcomes


def cmd_build_tree(args: argparse.Namespace) -> int:
    outcomes = _load_outcomes(Path(args.outcomes))
    tree = MerkleTree.from_outcomes(outcomes)
    log.info("Built tree: %d leaves, depth %d", tree.leaf_count, tree.depth)

    document = {
        "root": to_hex(tree.root),
        "total_leaves": tree.leaf_count,
        "leaves": [
            {
                "serial_id": to_hex(o.serial_id),
                "win": o.win,
                **tree.proof(i).as_hex(),
            }
            for i, o in enumerate(outcomes)
        ],
    }
    text = json.dumps(document, indent=2)
    if args.out:
        Path(args.out).write_text(text + "\n", encoding="utf-8")
        print(f"Root: {document['root']} ({tree.leaf_count} leaves) -> {args.out}")
    else:
        print(text)
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    leaf = leaf_hash(args.serial_id, args.secret, args.win)
    ok = verify(args.root, leaf, args.proof)
    print("valid" if ok else "invalid")
    return 0 if ok else 1


def cmd_audit(args: argparse.Namespace) -> int:
    path = Path(args.log) if args.log else args.settings.event_log_path
    if path is None:
        print("No event log given (use --log or set RAFFLE_EVENT_LOG)", file=sys.stderr)
        return 1
    if not path.exists():
        print(f"Event log not found: {path}", file=sys.stderr)
        return 1
    try:
        event_log = EventLog(storage_path=path)
    except ValueError as exc:
        print(f"Audit failed: {exc}", file=sys.stderr)
        return 1
    print(json.dumps({
        "events": event_log.count,
        "by_kind": event_log.counts_by_kind(),
        "last_event": event_log.last_event.event_id if event_log.last_event else None,
    }, indent=2))
    return 0


def _add_leaf_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--serial-id", required=True, help="32-byte serial id (hex).")
    p.add_argument("--secret", required=True, help="32-byte reveal secret (hex).")
    outcome = p.add_mutually_exclusive_group(required=True)
    outcome.add_argument("--win", dest="win", action="store_true", help="Winning leaf.")
    outcome.add_argument("--lose", dest="win", action="store_false", help="Non-winning leaf.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="raffle", description="Raffle commit-reveal tooling")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("leaf", help="Print the leaf digest for one outcome")
    _add_leaf_args(p)
    p.set_defaults(func=cmd_leaf)

    p = sub.add_parser("build-tree", help="Build a tree and proofs from an outcomes file")
    p.add_argument("outcomes", help="JSON file of {serial_id, secret, win} objects")
    p.add_argument("--out", help="Write the tree document here instead of stdout")
    p.set_defaults(func=cmd_build_tree)

    p = sub.add_parser("verify", help="Verify a reveal against a committed root")
    p.add_argument("--root", required=True, help="Committed root (hex).")
    _add_leaf_args(p)
    p.add_argument("--proof", nargs="*", default=[], help="Sibling digests, leaf to root.")
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("audit", help="Verify an event log file and summarise it")
    p.add_argument("--log", help="JSONL event log (defaults to RAFFLE_EVENT_LOG)")
    p.set_defaults(func=cmd_audit)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.settings = RaffleSettings.from_env()
    except RuntimeError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    setup_logging(args.verbose, args.settings.log_level)
    try:
        return args.func(args)
    except ValidationError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
