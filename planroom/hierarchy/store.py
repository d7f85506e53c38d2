"""
Tree Node Store — create, edit, move and delete hierarchy nodes.

Used for project locations (Building A > Floor 2 > Room 201) and drawing-set
folders. Each owner's nodes form a forest:

- a parent must belong to the same owner
- a node may never become its own ancestor
- a node with children cannot be deleted; nothing cascades

Every operation is one transaction. Checks that depend on the tree shape
re-read it inside that transaction under row locks (``SELECT … FOR UPDATE``),
so two concurrent re-parents cannot both pass the cycle check.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from planroom.db.models import DocumentRow, NodeRow
from planroom.db.session import DEFAULT_CONNECTION, session_scope
from planroom.engine.errors import (
    CorruptHierarchyError,
    CrossOwnerViolationError,
    CycleDetectedError,
    EmptyNameError,
    HasChildrenError,
    InvalidParentError,
    NotFoundError,
    PlanroomValidationError,
)
from planroom.engine.logging import log, log_node_operation, report_defect
from planroom.hierarchy.index import HierarchyIndex
from planroom.hierarchy.models import NodeChanges, NodeRecord

logger = logging.getLogger("planroom.hierarchy.store")


def clean_name(name: Optional[str], field: str = "name") -> str:
    """Trim a name; blank names are rejected."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise EmptyNameError(f"{field.capitalize()} must not be blank", field=field)
    return cleaned


def _parent_clause(parent_id: Optional[str]):
    if parent_id is None:
        return NodeRow.parent_id.is_(None)
    return NodeRow.parent_id == parent_id


class TreeNodeStore:
    """CRUD over the ``nodes`` table with forest invariants enforced."""

    def __init__(self, connection: str = DEFAULT_CONNECTION):
        self._connection = connection

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def get(self, node_id: str) -> NodeRecord:
        with session_scope(self._connection, operation="node.get") as session:
            return NodeRecord.model_validate(self._get_row(session, node_id))

    def list_children(self, owner_id: str, parent_id: Optional[str] = None) -> List[NodeRecord]:
        """Direct children ordered by (sort_order, name). parent_id=None lists roots."""
        stmt = (
            select(NodeRow)
            .where(NodeRow.owner_id == owner_id, _parent_clause(parent_id))
            .order_by(NodeRow.sort_order, NodeRow.name)
        )
        with session_scope(self._connection, operation="node.list_children") as session:
            return [NodeRecord.model_validate(r) for r in session.scalars(stmt)]

    def list_nodes(self, owner_id: str) -> List[NodeRecord]:
        """Every node of an owner, flat, in (sort_order, name) order."""
        stmt = (
            select(NodeRow)
            .where(NodeRow.owner_id == owner_id)
            .order_by(NodeRow.sort_order, NodeRow.name)
        )
        with session_scope(self._connection, operation="node.list") as session:
            return [NodeRecord.model_validate(r) for r in session.scalars(stmt)]

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    def create(
        self,
        owner_id: str,
        name: str,
        parent_id: Optional[str] = None,
        kind: Optional[str] = None,
        description: Optional[str] = None,
        sort_order: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> NodeRecord:
        """
        Insert a node, optionally under an existing parent of the same owner.

        Without an explicit sort_order the node goes after its current siblings.
        A new node has no descendants, so it cannot close a cycle here.
        """
        name = clean_name(name)

        with session_scope(self._connection, operation="node.create") as session:
            if parent_id is not None:
                # Shared lock: a concurrent delete of the parent waits for us
                parent = session.scalars(
                    select(NodeRow).where(NodeRow.id == parent_id).with_for_update(read=True)
                ).one_or_none()
                if parent is None or parent.owner_id != owner_id:
                    raise InvalidParentError(
                        f"Parent {parent_id} does not exist in owner {owner_id}",
                        owner_id=owner_id,
                        parent_id=parent_id,
                        field="parent_id",
                    )

            if sort_order is None:
                sort_order = session.scalar(
                    select(func.count())
                    .select_from(NodeRow)
                    .where(NodeRow.owner_id == owner_id, _parent_clause(parent_id))
                )

            row = NodeRow(
                owner_id=owner_id,
                name=name,
                parent_id=parent_id,
                kind=kind or None,
                description=description,
                sort_order=sort_order,
                created_by=created_by,
            )
            session.add(row)
            session.flush()
            record = NodeRecord.model_validate(row)

        logger.info("Created node %s '%s' under %s", record.id, record.name, parent_id or "root")
        log(log_node_operation("create", record.id, owner_id, actor=created_by, parent_id=parent_id))
        return record

    def reparent(
        self,
        node_id: str,
        new_parent_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> NodeRecord:
        """
        Move a node (and its subtree) under a new parent, or to the root level.

        Walks the new parent's ancestor chain up to a root; the move is
        rejected with CycleDetectedError if node_id appears on it.
        """
        with session_scope(self._connection, operation="node.reparent") as session:
            row = self._get_row(session, node_id)
            index = self._lock_owner(session, row.owner_id)
            previous_parent_id = row.parent_id

            if new_parent_id is not None:
                self._check_new_parent(session, index, row, new_parent_id)

            row.parent_id = new_parent_id
            session.flush()
            record = NodeRecord.model_validate(row)

        logger.info("Moved node %s from %s to %s", node_id, previous_parent_id, new_parent_id)
        log(log_node_operation(
            "reparent", node_id, record.owner_id, actor=actor,
            parent_id=new_parent_id, previous_parent_id=previous_parent_id,
        ))
        return record

    def rename(self, node_id: str, name: str, actor: Optional[str] = None) -> NodeRecord:
        name = clean_name(name)
        with session_scope(self._connection, operation="node.rename") as session:
            row = self._get_row(session, node_id)
            row.name = name
            session.flush()
            record = NodeRecord.model_validate(row)

        log(log_node_operation("rename", node_id, record.owner_id, actor=actor, fields_changed=["name"]))
        return record

    def update(self, node_id: str, changes: NodeChanges, actor: Optional[str] = None) -> NodeRecord:
        """Apply descriptive edits (kind, description, sort_order)."""
        fields = changes.applied_fields()
        with session_scope(self._connection, operation="node.update") as session:
            row = self._get_row(session, node_id)
            for field in fields:
                value = getattr(changes, field)
                if field == "sort_order" and value is None:
                    value = 0
                setattr(row, field, value)
            session.flush()
            record = NodeRecord.model_validate(row)

        if fields:
            log(log_node_operation("update", node_id, record.owner_id, actor=actor, fields_changed=fields))
        return record

    def reorder(
        self,
        owner_id: str,
        parent_id: Optional[str],
        ordered_ids: Sequence[str],
        actor: Optional[str] = None,
    ) -> List[NodeRecord]:
        """
        Rewrite sibling order: ordered_ids[i] gets sort_order i.

        ordered_ids must name every child of parent_id exactly once.
        """
        with session_scope(self._connection, operation="node.reorder") as session:
            index = self._lock_owner(session, owner_id)
            if parent_id is not None and parent_id not in index:
                raise InvalidParentError(
                    f"Parent {parent_id} does not exist in owner {owner_id}",
                    owner_id=owner_id,
                    parent_id=parent_id,
                )

            sibling_ids = [n.id for n in index.children_of(parent_id)]
            if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(sibling_ids):
                raise PlanroomValidationError(
                    "New order must list every sibling exactly once",
                    owner_id=owner_id,
                    parent_id=parent_id,
                    field="ordered_ids",
                )

            rows = {
                r.id: r for r in session.scalars(select(NodeRow).where(NodeRow.id.in_(sibling_ids)))
            }
            for position, sibling_id in enumerate(ordered_ids):
                rows[sibling_id].sort_order = position
            session.flush()
            records = [NodeRecord.model_validate(rows[i]) for i in ordered_ids]

        log(log_node_operation(
            "reorder", parent_id or "root", owner_id, actor=actor, fields_changed=["sort_order"],
        ))
        return records

    def delete(self, node_id: str, actor: Optional[str] = None) -> None:
        """
        Delete a childless node. Documents filed under it become unfiled.

        Raises HasChildrenError when any node still has it as parent.
        """
        with session_scope(self._connection, operation="node.delete") as session:
            row = session.scalars(
                select(NodeRow).where(NodeRow.id == node_id).with_for_update()
            ).one_or_none()
            if row is None:
                raise NotFoundError(f"Node {node_id} not found", entity="node", entity_id=node_id, node_id=node_id)

            child_count = session.scalar(
                select(func.count()).select_from(NodeRow).where(NodeRow.parent_id == node_id)
            )
            if child_count:
                raise HasChildrenError(
                    f"'{row.name}' still has {child_count} child node(s); move or delete them first",
                    node_id=node_id,
                    owner_id=row.owner_id,
                    child_count=child_count,
                )

            unfiled = session.execute(
                update(DocumentRow).where(DocumentRow.set_id == node_id).values(set_id=None)
            ).rowcount
            owner_id = row.owner_id
            session.delete(row)

        if unfiled:
            logger.info("Unfiled %d document(s) from deleted set %s", unfiled, node_id)
        log(log_node_operation("delete", node_id, owner_id, actor=actor))

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    @staticmethod
    def _get_row(session: Session, node_id: str) -> NodeRow:
        row = session.get(NodeRow, node_id)
        if row is None:
            raise NotFoundError(f"Node {node_id} not found", entity="node", entity_id=node_id, node_id=node_id)
        return row

    @staticmethod
    def _lock_owner(session: Session, owner_id: str) -> HierarchyIndex:
        """Lock and index every node of the owner for the rest of the transaction."""
        rows = session.scalars(
            select(NodeRow).where(NodeRow.owner_id == owner_id).with_for_update()
        ).all()
        return HierarchyIndex.from_rows(owner_id, rows)

    @staticmethod
    def _check_new_parent(
        session: Session,
        index: HierarchyIndex,
        row: NodeRow,
        new_parent_id: str,
    ) -> None:
        if new_parent_id == row.id:
            raise CycleDetectedError(
                f"'{row.name}' cannot be its own parent",
                node_id=row.id,
                owner_id=row.owner_id,
                parent_id=new_parent_id,
            )

        if new_parent_id not in index:
            other = session.get(NodeRow, new_parent_id)
            if other is None:
                raise InvalidParentError(
                    f"Parent {new_parent_id} does not exist",
                    node_id=row.id,
                    owner_id=row.owner_id,
                    parent_id=new_parent_id,
                    field="parent_id",
                )
            raise CrossOwnerViolationError(
                f"Parent {new_parent_id} belongs to owner {other.owner_id}, not {row.owner_id}",
                node_id=row.id,
                owner_id=row.owner_id,
                parent_id=new_parent_id,
                parent_owner_id=other.owner_id,
            )

        try:
            ancestors = index.chain_to_root(new_parent_id)
        except CorruptHierarchyError as e:
            report_defect("nodes", e)
            raise

        if any(a.id == row.id for a in ancestors):
            raise CycleDetectedError(
                f"'{row.name}' cannot move under its own descendant",
                node_id=row.id,
                owner_id=row.owner_id,
                parent_id=new_parent_id,
                ancestor_chain=[a.id for a in ancestors],
            )
