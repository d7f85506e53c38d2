"""
Path Resolver — breadcrumb paths, depths and selector-ready flattening.

All reads load the owner's nodes once into a HierarchyIndex and walk it in
memory. Corrupted parent chains surface as CorruptHierarchyError and are
logged as integrity defects, never as user errors.
"""

from __future__ import annotations

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from planroom.db.models import NodeRow
from planroom.db.session import DEFAULT_CONNECTION, session_scope
from planroom.engine.errors import CorruptHierarchyError, NotFoundError
from planroom.engine.logging import report_defect
from planroom.hierarchy.index import HierarchyIndex
from planroom.hierarchy.models import PATH_SEPARATOR, FlatNode, HierarchyAudit, NodeRecord

logger = logging.getLogger("planroom.hierarchy.paths")


def format_label(path: List[NodeRecord]) -> str:
    return PATH_SEPARATOR.join(n.name for n in path)


class PathResolver:
    """Read-only views over one owner's tree."""

    def __init__(self, connection: str = DEFAULT_CONNECTION):
        self._connection = connection

    def resolve_path(self, node_id: str) -> List[NodeRecord]:
        """Nodes from the root down to node_id, inclusive."""
        with session_scope(self._connection, operation="path.resolve") as session:
            index = self._index_for_node(session, node_id)
        try:
            return index.path(node_id)
        except CorruptHierarchyError as e:
            report_defect("nodes", e)
            raise

    def display_label(self, node_id: str) -> str:
        """e.g. ``"Building A > Floor 2 > Room 201"``."""
        return format_label(self.resolve_path(node_id))

    def depth(self, node_id: str) -> int:
        """0 for a root."""
        return len(self.resolve_path(node_id)) - 1

    def flatten(self, owner_id: str) -> List[FlatNode]:
        """
        Depth-first, sibling-ordered listing of the whole tree.

        Each parent is immediately followed by all of its descendants, which
        is the order hierarchical selectors render with indentation.
        """
        index = self.load_index(owner_id)
        try:
            return [
                FlatNode(node=node, depth=depth, display_label=format_label(path))
                for node, depth, path in index.walk()
            ]
        except CorruptHierarchyError as e:
            report_defect("nodes", e)
            raise

    def audit(self, owner_id: str) -> HierarchyAudit:
        """
        Report invariant violations in an owner's tree without raising.

        Distinguishes parents that do not exist at all from parents owned by
        someone else; cycles are found on the parent → child graph.
        """
        with session_scope(self._connection, operation="path.audit") as session:
            index = self._load(session, owner_id)
            foreign = index.foreign_parents()
            existing = {}
            if foreign:
                existing = dict(session.execute(
                    select(NodeRow.id, NodeRow.owner_id).where(NodeRow.id.in_(set(foreign.values())))
                ).all())

        report = HierarchyAudit(
            owner_id=owner_id,
            node_count=len(index),
            cycles=index.find_cycles(),
            dangling_parents=sorted(n for n, p in foreign.items() if p not in existing),
            cross_owner_parents=sorted(n for n, p in foreign.items() if p in existing),
        )
        if not report.is_clean:
            logger.error(
                "Hierarchy audit for owner %s: %d cycle(s), %d dangling, %d cross-owner",
                owner_id, len(report.cycles), len(report.dangling_parents), len(report.cross_owner_parents),
            )
        return report

    def load_index(self, owner_id: str) -> HierarchyIndex:
        with session_scope(self._connection, operation="path.index") as session:
            return self._load(session, owner_id)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    @staticmethod
    def _load(session: Session, owner_id: str) -> HierarchyIndex:
        rows = session.scalars(select(NodeRow).where(NodeRow.owner_id == owner_id)).all()
        return HierarchyIndex.from_rows(owner_id, rows)

    def _index_for_node(self, session: Session, node_id: str) -> HierarchyIndex:
        row = session.get(NodeRow, node_id)
        if row is None:
            raise NotFoundError(f"Node {node_id} not found", entity="node", entity_id=node_id, node_id=node_id)
        return self._load(session, row.owner_id)
