"""
Planroom CLI — database bootstrap and hierarchy inspection.

Commands:
- planroom init             — Create the tables
- planroom tree OWNER_ID    — Print an owner's hierarchy, indented
- planroom audit OWNER_ID   — Check an owner's hierarchy for cycles and bad parents
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from planroom.engine.config import PlanroomConfig, load_config
from planroom.engine.errors import PlanroomConfigError, PlanroomError

logger = logging.getLogger("planroom.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="planroom",
        description="Planroom — locations, drawing sets and drawing revisions",
    )
    parser.add_argument(
        "--config", default=None, help="Path to planroom.yaml (default: search from CWD)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init", help="Create database tables")

    tree_parser = subparsers.add_parser("tree", help="Print an owner's hierarchy")
    tree_parser.add_argument("owner_id", help="Project (or collection) id")

    audit_parser = subparsers.add_parser("audit", help="Check an owner's hierarchy integrity")
    audit_parser.add_argument("owner_id", help="Project (or collection) id")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
    except PlanroomConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1

    if args.command == "init":
        return cmd_init(config)
    elif args.command == "tree":
        return cmd_tree(config, args.owner_id)
    elif args.command == "audit":
        return cmd_audit(config, args.owner_id)
    parser.print_help()
    return 0


def _runtime(config: PlanroomConfig, create_tables: bool = False):
    from planroom.engine.runtime import PlanroomRuntime

    if create_tables:
        config = config.model_copy(
            update={"database": config.database.model_copy(update={"create_tables": True})}
        )
    # The CLI only reads or creates tables; the structured log stays off
    config = config.model_copy(
        update={"logging": config.logging.model_copy(update={"enabled": False})}
    )
    return PlanroomRuntime(config).boot()


def cmd_init(config: PlanroomConfig) -> int:
    try:
        runtime = _runtime(config, create_tables=True)
    except PlanroomError as e:
        print(f"[ERROR] {e.message}")
        return 1
    runtime.shutdown()
    print(f"[OK] Tables ready on {config.database.url}")
    return 0


def cmd_tree(config: PlanroomConfig, owner_id: str) -> int:
    try:
        runtime = _runtime(config)
        try:
            rows = runtime.paths.flatten(owner_id)
        finally:
            runtime.shutdown()
    except PlanroomError as e:
        print(f"[ERROR] {e.kind}: {e.message}")
        return 1

    if not rows:
        print(f"(no nodes for {owner_id})")
    for row in rows:
        kind = f"  [{row.node.kind}]" if row.node.kind else ""
        print(f"{'  ' * row.depth}{row.node.name}{kind}")
    return 0


def cmd_audit(config: PlanroomConfig, owner_id: str) -> int:
    try:
        runtime = _runtime(config)
        try:
            report = runtime.paths.audit(owner_id)
        finally:
            runtime.shutdown()
    except PlanroomError as e:
        print(f"[ERROR] {e.kind}: {e.message}")
        return 1

    print(f"Owner {owner_id}: {report.node_count} node(s)")
    if report.is_clean:
        print("[OK] Hierarchy is a clean forest")
        return 0
    for cycle in report.cycles:
        print(f"[ERROR] Cycle: {' -> '.join(cycle)}")
    for node_id in report.dangling_parents:
        print(f"[ERROR] Dangling parent on node {node_id}")
    for node_id in report.cross_owner_parents:
        print(f"[ERROR] Parent in another owner on node {node_id}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
